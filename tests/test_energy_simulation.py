import numpy as np
import pytest

from solar_roi.config import BatteryConfig
from solar_roi.energy_simulation import run_energy_simulation

LOAD = [10.0] * 24
SOLAR = [0.0] * 6 + [5, 10, 20, 30, 30, 30, 30, 30, 20, 10, 5, 0] + [0.0] * 6


def test_without_battery_surplus_is_exported():
    result = run_energy_simulation(LOAD, SOLAR)
    assert result.total_load == 240
    assert result.total_solar == 220
    assert result.total_solar_used == pytest.approx(10 * 9 + 5 * 2)
    assert result.total_grid_export == pytest.approx(220 - 100)
    assert result.total_grid_import == pytest.approx(240 - 100)
    assert result.total_battery_charge == 0
    assert result.battery_cycles == 0
    assert result.self_consumption_rate == pytest.approx(100 / 220 * 100)


def test_battery_stays_within_soc_window():
    battery = BatteryConfig(capacity_kwh=100, power_kw=25, min_soc=0.1, max_soc=0.9, initial_soc=0.5)
    result = run_energy_simulation(LOAD, SOLAR, battery)
    soc = result.hourly['battery_soc']
    assert soc.min() >= 10 - 1e-9
    assert soc.max() <= 90 + 1e-9
    assert result.hourly['battery_charge'].max() <= 25
    assert result.hourly['battery_discharge'].max() <= 25
    assert result.total_grid_export < run_energy_simulation(LOAD, SOLAR).total_grid_export
    assert result.battery_cycles > 0


def test_energy_balance_each_hour():
    battery = BatteryConfig(capacity_kwh=50, power_kw=20)
    hourly = run_energy_simulation(LOAD, SOLAR, battery).hourly
    supply = hourly['solar'] + hourly['grid_import'] + hourly['battery_discharge']
    demand = hourly['load'] + hourly['grid_export'] + hourly['battery_charge']
    assert np.allclose(supply, demand)


def test_round_trip_losses_applied_on_charge():
    battery = BatteryConfig(capacity_kwh=100, power_kw=100, min_soc=0.0, max_soc=1.0,
                            initial_soc=0.0, round_trip_efficiency=0.9)
    result = run_energy_simulation([0.0] * 24, [10.0] + [0.0] * 23, battery)
    assert result.hourly['battery_soc'].iloc[0] == pytest.approx(9.0)


def test_scaling_to_month_and_year():
    result = run_energy_simulation(LOAD, SOLAR)
    assert result.monthly()['load_kwh'] == 240 * 30
    assert result.annual()['solar_kwh'] == 220 * 365


def test_profiles_must_have_24_values():
    with pytest.raises(ValueError):
        run_energy_simulation([1.0] * 23, [0.0] * 24)
