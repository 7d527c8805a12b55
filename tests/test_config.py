import pytest

from solar_roi.config import (
    ArrayLosses,
    BatteryConfig,
    LossChainConfig,
    LossChainConfigError,
    SystemCosts,
    merge_loss_chain_config,
    validate_loss_chain_config,
)


def test_from_dict_round_trips_full_config():
    data = LossChainConfig().to_dict()
    data['array']['temperature_loss'] = 6.0
    config = LossChainConfig.from_dict(data)
    assert config.array.temperature_loss == 6.0
    assert config.inverter == LossChainConfig().inverter


def test_from_dict_rejects_missing_stage():
    data = LossChainConfig().to_dict()
    del data['inverter']
    with pytest.raises(LossChainConfigError, match='inverter'):
        LossChainConfig.from_dict(data)


def test_from_dict_rejects_missing_field():
    data = LossChainConfig().to_dict()
    del data['irradiance']['soiling_loss']
    with pytest.raises(LossChainConfigError, match='soiling_loss'):
        LossChainConfig.from_dict(data)


def test_from_dict_rejects_non_numeric_factor():
    data = LossChainConfig().to_dict()
    data['array']['mismatch_loss'] = None
    with pytest.raises(LossChainConfigError):
        LossChainConfig.from_dict(data)


def test_merge_overrides_keep_other_defaults():
    merged = merge_loss_chain_config({'array': {'temperature_loss': 7.5}, 'noct': 47})
    defaults = LossChainConfig()
    assert merged.array.temperature_loss == 7.5
    assert merged.array.mismatch_loss == defaults.array.mismatch_loss
    assert merged.irradiance == defaults.irradiance
    assert merged.noct == 47


def test_merge_does_not_modify_defaults():
    defaults = LossChainConfig()
    merge_loss_chain_config({'post_inverter': {'availability_loss': 0.0}}, defaults)
    assert defaults.post_inverter.availability_loss == 2.07


@pytest.mark.parametrize("saved", [
    {'cabling': {'loss': 1.0}},
    {'array': {'temprature_loss': 1.0}},
])
def test_merge_rejects_unknown_keys(saved):
    with pytest.raises(LossChainConfigError):
        merge_loss_chain_config(saved)


def test_total_loss_is_accepted_and_excess_rejected():
    config = merge_loss_chain_config({'irradiance': {'soiling_loss': 100}})
    assert config.irradiance.soiling_loss == 100
    with pytest.raises(LossChainConfigError):
        merge_loss_chain_config({'irradiance': {'soiling_loss': 100.5}})
    with pytest.raises(LossChainConfigError):
        merge_loss_chain_config({'operation_year': 0})


def test_validate_rejects_missing_group():
    config = LossChainConfig()
    config.array = None
    with pytest.raises(LossChainConfigError):
        validate_loss_chain_config(config)
    config.array = ArrayLosses()
    validate_loss_chain_config(config)


def test_system_costs_from_dict_and_derived_costs():
    costs = SystemCosts.from_dict({'solar_cost_per_kwp': 10000, 'cctv_cost': 5000,
                                   'water_points_cost': 2000, 'unused': 1})
    assert costs.additional_costs == 7000
    assert costs.maintenance_per_year(100, 0) == pytest.approx(100 * 10000 * 0.035)
    # 45% equipment, split 70/30, replaced at 10% and 50%
    assert costs.replacement_cost(100, 0) == pytest.approx(1_000_000 * 0.45 * (0.7 * 0.1 + 0.3 * 0.5))


def test_battery_config_validates_soc_window():
    battery = BatteryConfig.from_dict({'capacity_kwh': 100, 'power_kw': 50, 'colour': 'red'})
    assert battery.capacity_kwh == 100
    with pytest.raises(ValueError):
        BatteryConfig(capacity_kwh=100, min_soc=0.9, max_soc=0.2)
    with pytest.raises(ValueError):
        BatteryConfig(capacity_kwh=-1)
