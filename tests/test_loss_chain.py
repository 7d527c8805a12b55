from dataclasses import fields

import numpy as np
import pytest

from solar_roi.config import (
    ArrayLosses,
    InverterLosses,
    IrradianceLosses,
    LossChainConfig,
    LossChainConfigError,
    PostInverterLosses,
)
from solar_roi.loss_chain import (
    calculate_cell_temperature,
    calculate_cumulative_degradation,
    calculate_temperature_loss,
    clipping_summary,
    convert_tmy_to_solar_generation,
    dc_loss_multiplier,
    degradation_multiplier,
    degradation_projection,
    inverter_loss_multiplier,
    loss_breakdown,
)


def _zeroed(group_cls):
    return group_cls(**{f.name: 0.0 for f in fields(group_cls)})


@pytest.fixture
def lossless():
    return LossChainConfig(
        irradiance=_zeroed(IrradianceLosses),
        array=_zeroed(ArrayLosses),
        inverter=_zeroed(InverterLosses),
        post_inverter=_zeroed(PostInverterLosses),
    )


def test_lossless_chain_is_identity(ghi_year, lossless):
    result = convert_tmy_to_solar_generation(ghi_year, collector_area_m2=1000, stc_efficiency=1.0,
                                             config=lossless)
    expected = np.where(ghi_year > 0, ghi_year, 0.0)
    assert result.dc_kwh == pytest.approx(expected)
    assert result.ac_kwh == pytest.approx(expected)
    assert result.dc_loss_multiplier == 1.0
    assert result.inverter_loss_multiplier == 1.0


def test_night_hours_produce_nothing(ghi_year):
    result = convert_tmy_to_solar_generation(ghi_year, 500, 0.2, LossChainConfig())
    assert np.all(result.dc_kwh[ghi_year <= 0] == 0)
    assert np.all(result.ac_kwh >= 0)
    assert result.annual_ac_kwh < result.annual_dc_kwh


def test_default_multipliers_match_stage_products():
    config = LossChainConfig()
    irradiance = np.prod([1 - v / 100 for v in (0.13, 0.93, 2.57, 3.00, 1.05, 0.23)])
    array = np.prod([1 - v / 100 for v in (0.42, 4.92, -0.75, 2.00, 3.80, 3.40, 1.06)])
    assert dc_loss_multiplier(config) == pytest.approx(irradiance * array)
    assert dc_loss_multiplier(config, include_temperature=False) == pytest.approx(irradiance * array / (1 - 0.0492))
    inverter = np.prod([1 - v / 100 for v in (1.53, 1.04, 0, 0, 0.004, 0.001)]) * (1 - 0.0207)
    assert inverter_loss_multiplier(config) == pytest.approx(inverter)


def test_ac_is_clipped_at_inverter_limit(lossless):
    ghi = np.array([0, 700, 300, 0], dtype=float)
    result = convert_tmy_to_solar_generation(ghi, 100, 1.0, lossless, max_ac_output_kw=50)
    # Unclipped AC would be 70 kWh in the second hour
    assert result.dc_kwh.tolist() == pytest.approx([0, 70, 30, 0])
    assert result.ac_kwh.tolist() == pytest.approx([0, 50, 30, 0])

    summary = clipping_summary(result)
    assert summary['clipped_kwh'] == pytest.approx(20)
    assert summary['clipped_hours'] == 1
    assert summary['clipping_percent'] == pytest.approx(20)
    assert clipping_summary(result, max_ac_kw=100)['clipped_kwh'] == 0


def test_reduction_factor_scales_output(lossless):
    ghi = np.array([500.0])
    result = convert_tmy_to_solar_generation(ghi, 100, 0.5, lossless, reduction_factor=0.8)
    assert result.dc_kwh[0] == pytest.approx(500 * 100 * 0.5 * 0.8 / 1000)


@pytest.mark.parametrize("kwargs", [
    {'collector_area_m2': -1},
    {'stc_efficiency': 0},
    {'stc_efficiency': 18},
    {'reduction_factor': -0.1},
    {'max_ac_output_kw': -5},
])
def test_bad_inputs_raise(kwargs):
    params = {'hourly_ghi': [100.0], 'collector_area_m2': 10, 'stc_efficiency': 0.2,
              'config': LossChainConfig()}
    params.update(kwargs)
    with pytest.raises(ValueError):
        convert_tmy_to_solar_generation(**params)


def test_invalid_config_fails_before_computing():
    config = LossChainConfig()
    config.inverter = None
    with pytest.raises(LossChainConfigError):
        convert_tmy_to_solar_generation([100.0], 10, 0.2, config)


def test_hourly_temperature_loss_replaces_static_factor(lossless):
    ghi = np.array([800.0, 800.0])
    result = convert_tmy_to_solar_generation(ghi, 100, 1.0, lossless, hourly_temperature_loss=[0.0, 10.0])
    assert result.dc_kwh.tolist() == pytest.approx([80.0, 72.0])
    with pytest.raises(ValueError):
        convert_tmy_to_solar_generation(ghi, 100, 1.0, lossless, hourly_temperature_loss=[0.0])


def test_noct_cell_temperature_and_loss():
    assert calculate_cell_temperature(20, 800, noct=45) == pytest.approx(45)
    assert calculate_temperature_loss(45, -0.40) == pytest.approx(8.0)
    assert calculate_temperature_loss(10, -0.40) == 0


def test_degradation():
    assert calculate_cumulative_degradation(1, 2.0, 0.5) == 2.0
    assert calculate_cumulative_degradation(11, 2.0, 0.5) == 7.0
    projection = degradation_projection(1000, LossChainConfig(), years=3)
    assert projection['year'].tolist() == [1, 2, 3]
    assert projection['energy_kwh'].iloc[0] == pytest.approx(1000)
    assert projection['energy_kwh'].iloc[1] == pytest.approx(1000 * 0.975 / 0.98)


def test_loss_breakdown_ends_at_total_multiplier():
    config = LossChainConfig()
    rows = loss_breakdown(config)
    assert rows[0]['name'] == 'Transposition'
    assert rows[-1]['stage'] == 'post_inverter'
    assert rows[-1]['remaining'] == pytest.approx(dc_loss_multiplier(config) * inverter_loss_multiplier(config))


def test_operation_year_applies_degradation_since_year_one(ghi_year):
    year_one = convert_tmy_to_solar_generation(ghi_year, 500, 0.2, LossChainConfig())
    year_twenty = convert_tmy_to_solar_generation(ghi_year, 500, 0.2, LossChainConfig(operation_year=20))
    ratio = (1 - (2 + 19 * 0.5) / 100) / (1 - 2 / 100)
    assert degradation_multiplier(1, LossChainConfig()) == 1.0
    assert degradation_multiplier(20, LossChainConfig()) == pytest.approx(ratio)
    assert year_twenty.annual_dc_kwh == pytest.approx(year_one.annual_dc_kwh * ratio)
    assert year_twenty.annual_ac_kwh < year_one.annual_ac_kwh


def test_loss_breakdown_includes_operation_year_degradation():
    config = LossChainConfig(operation_year=20)
    rows = loss_breakdown(config)
    degradation = [r for r in rows if r['name'] == 'Degradation (year 20)']
    assert len(degradation) == 1
    assert degradation[0]['stage'] == 'array'
    assert rows[-1]['remaining'] == pytest.approx(
        dc_loss_multiplier(config) * inverter_loss_multiplier(config) * degradation_multiplier(20, config))
    assert not any(r['name'].startswith('Degradation') for r in loss_breakdown(LossChainConfig()))


def test_full_loss_zeroes_output_without_error(ghi_year):
    config = LossChainConfig(array=ArrayLosses(lid_loss=100.0), operation_year=5)
    result = convert_tmy_to_solar_generation(ghi_year, 500, 0.2, config)
    assert result.annual_ac_kwh == 0
    assert degradation_projection(1000, config, years=2)['energy_kwh'].tolist() == [1000, 1000]
