"""Hourly energy flow for one representative day: solar, battery and grid."""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .config import BatteryConfig
from .constants import DAYS_PER_MONTH, DAYS_PER_YEAR, HOURS_PER_DAY


@dataclass
class EnergySimulationResult:
    """Hourly flows (kWh) and daily totals. Rates are percentages."""
    hourly: pd.DataFrame
    total_load: float
    total_solar: float
    total_grid_import: float
    total_grid_export: float
    total_solar_used: float
    total_battery_charge: float
    total_battery_discharge: float
    self_consumption_rate: float
    solar_coverage_rate: float
    peak_load: float
    peak_grid_import: float
    peak_reduction: float
    battery_cycles: float
    battery_utilization: float

    def scale(self, days) -> dict:
        """Daily totals multiplied out to a period of `days` days."""
        return {
            'load_kwh': self.total_load * days,
            'solar_kwh': self.total_solar * days,
            'grid_import_kwh': self.total_grid_import * days,
            'grid_export_kwh': self.total_grid_export * days,
            'solar_used_kwh': self.total_solar_used * days,
            'battery_cycles': self.battery_cycles * days,
        }

    def monthly(self) -> dict:
        return self.scale(DAYS_PER_MONTH)

    def annual(self) -> dict:
        return self.scale(DAYS_PER_YEAR)


def run_energy_simulation(load_kwh, solar_kwh, battery: BatteryConfig = None) -> EnergySimulationResult:
    """
    Dispatch a battery against a 24-hour load and solar profile.

    A deficit is met from the battery down to its minimum SoC and within its power
    limit, then from the grid. A surplus charges the battery up to its maximum SoC
    and power limit, then is exported.

    Parameters:
    - load_kwh (array-like): 24 hourly load values (kWh).
    - solar_kwh (array-like): 24 hourly solar values (kWh).
    - battery (BatteryConfig): Battery size and SoC window. No battery when omitted.

    Returns:
    - EnergySimulationResult
    """
    load = np.asarray(load_kwh, dtype=float)
    solar = np.asarray(solar_kwh, dtype=float)
    if load.size != HOURS_PER_DAY or solar.size != HOURS_PER_DAY:
        logging.error(f"Load and solar profiles must have {HOURS_PER_DAY} values")
        raise ValueError(f"Load and solar profiles must have {HOURS_PER_DAY} values, "
                         f"got {load.size} and {solar.size}")
    load = np.nan_to_num(load)
    solar = np.nan_to_num(solar)
    battery = battery or BatteryConfig()

    capacity = battery.capacity_kwh
    state = capacity * battery.initial_soc
    min_level = capacity * battery.min_soc
    max_level = capacity * battery.max_soc

    rows = []
    for h in range(HOURS_PER_DAY):
        net_load = load[h] - solar[h]
        solar_used = min(solar[h], load[h])
        grid_import = grid_export = charge = discharge = 0.0

        if net_load > 0:
            available = min(state - min_level, battery.power_kw)
            discharge = min(net_load, max(0.0, available))
            state -= discharge
            grid_import = net_load - discharge
        else:
            excess = -net_load
            space = min(max_level - state, battery.power_kw)
            charge = min(excess, max(0.0, space / battery.round_trip_efficiency))
            state += charge * battery.round_trip_efficiency
            grid_export = excess - charge

        rows.append({
            'hour': h,
            'load': load[h],
            'solar': solar[h],
            'net_load': net_load,
            'solar_used': solar_used,
            'battery_charge': charge,
            'battery_discharge': discharge,
            'battery_soc': state / capacity * 100 if capacity > 0 else 0.0,
            'grid_import': grid_import,
            'grid_export': grid_export,
        })

    hourly = pd.DataFrame(rows).set_index('hour')

    total_load = float(load.sum())
    total_solar = float(solar.sum())
    total_solar_used = float(hourly['solar_used'].sum())
    total_charge = float(hourly['battery_charge'].sum())
    total_discharge = float(hourly['battery_discharge'].sum())
    peak_load = float(load.max())
    peak_grid_import = float(hourly['grid_import'].max())

    result = EnergySimulationResult(
        hourly=hourly,
        total_load=total_load,
        total_solar=total_solar,
        total_grid_import=float(hourly['grid_import'].sum()),
        total_grid_export=float(hourly['grid_export'].sum()),
        total_solar_used=total_solar_used,
        total_battery_charge=total_charge,
        total_battery_discharge=total_discharge,
        self_consumption_rate=total_solar_used / total_solar * 100 if total_solar > 0 else 0.0,
        solar_coverage_rate=(total_solar_used + total_discharge) / total_load * 100 if total_load > 0 else 0.0,
        peak_load=peak_load,
        peak_grid_import=peak_grid_import,
        peak_reduction=(peak_load - peak_grid_import) / peak_load * 100 if peak_load > 0 else 0.0,
        battery_cycles=total_discharge / capacity if capacity > 0 else 0.0,
        battery_utilization=(total_charge + total_discharge) / 2 / capacity * 100 if capacity > 0 else 0.0,
    )

    logging.info(f"Energy simulation: load {total_load:.1f} kWh/day, solar {total_solar:.1f} kWh/day, "
                 f"grid import {result.total_grid_import:.1f} kWh/day, "
                 f"self-consumption {result.self_consumption_rate:.1f}%")
    return result
