"""Typed configuration for the loss chain, system costs and battery dispatch."""

import logging
from dataclasses import dataclass, field, fields, asdict
from typing import Dict, Optional

from .constants import BATTERY_INITIAL_SOC, BATTERY_MAX_SOC, BATTERY_MIN_SOC, DEFAULT_TRANSPOSITION_FACTOR


class LossChainConfigError(ValueError):
    """Raised when a loss-chain configuration is missing a stage or a field."""


@dataclass
class IrradianceLosses:
    """Optical losses between the horizontal plane and the module surface (percent)."""
    transposition_loss: float = 0.13
    near_shading_loss: float = 0.93
    iam_loss: float = 2.57
    soiling_loss: float = 3.00
    spectral_loss: float = 1.05
    electrical_shading_loss: float = 0.23


@dataclass
class ArrayLosses:
    """DC array losses (percent). Negative values are gains."""
    irradiance_level_loss: float = 0.42
    temperature_loss: float = 4.92
    module_quality_loss: float = -0.75
    lid_loss: float = 2.00
    module_degradation_loss: float = 3.80
    mismatch_loss: float = 3.40
    ohmic_loss: float = 1.06


@dataclass
class InverterLosses:
    """Inverter-stage losses (percent)."""
    operation_efficiency: float = 1.53
    over_nominal_power: float = 1.04
    max_input_current: float = 0.0
    over_nominal_voltage: float = 0.0
    power_threshold: float = 0.004
    voltage_threshold: float = 0.001


@dataclass
class PostInverterLosses:
    availability_loss: float = 2.07


@dataclass
class LossChainConfig:
    """
    Full loss chain grouped by stage.

    Each stage factor is a percentage loss applied as (1 - loss/100).
    The scalar fields drive the cell-temperature and degradation models.
    """
    irradiance: IrradianceLosses = field(default_factory=IrradianceLosses)
    array: ArrayLosses = field(default_factory=ArrayLosses)
    inverter: InverterLosses = field(default_factory=InverterLosses)
    post_inverter: PostInverterLosses = field(default_factory=PostInverterLosses)
    annual_degradation: float = 0.5       # % per year after the first year
    operation_year: int = 1               # year the generation estimate represents
    cell_temp_coefficient: float = -0.40  # %/°C
    noct: float = 45.0                    # °C
    transposition_factor: float = DEFAULT_TRANSPOSITION_FACTOR

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "LossChainConfig":
        """
        Build a config from a fully specified mapping.

        Every stage group and every field inside it must be present.
        Missing factors are never treated as zero loss.
        """
        if not isinstance(data, dict):
            raise LossChainConfigError("Loss-chain config must be a mapping")

        groups = {}
        for name, group_cls in _STAGE_GROUPS.items():
            if name not in data:
                logging.error(f"Loss-chain config is missing stage '{name}'")
                raise LossChainConfigError(f"Missing loss-chain stage: {name}")
            groups[name] = _group_from_dict(name, group_cls, data[name], strict=True)

        scalars = {}
        for key in _SCALAR_FIELDS:
            if key in data:
                scalars[key] = _as_number(key, data[key])
        config = cls(**groups, **scalars)
        validate_loss_chain_config(config)
        return config


_STAGE_GROUPS = {
    'irradiance': IrradianceLosses,
    'array': ArrayLosses,
    'inverter': InverterLosses,
    'post_inverter': PostInverterLosses,
}

_SCALAR_FIELDS = ('annual_degradation', 'operation_year', 'cell_temp_coefficient',
                  'noct', 'transposition_factor')


def _as_number(name, value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        logging.error(f"Loss-chain field '{name}' is not numeric: {value!r}")
        raise LossChainConfigError(f"Loss-chain field '{name}' must be numeric, got {value!r}")
    return value


def _group_from_dict(group_name, group_cls, values, strict, base=None):
    if not isinstance(values, dict):
        raise LossChainConfigError(f"Loss-chain stage '{group_name}' must be a mapping")

    known = {f.name for f in fields(group_cls)}
    unknown = set(values) - known
    if unknown:
        logging.error(f"Unknown fields in loss-chain stage '{group_name}': {sorted(unknown)}")
        raise LossChainConfigError(f"Unknown fields in stage '{group_name}': {sorted(unknown)}")

    kwargs = {}
    for name in known:
        if name in values:
            kwargs[name] = _as_number(f"{group_name}.{name}", values[name])
        elif strict:
            logging.error(f"Loss-chain stage '{group_name}' is missing field '{name}'")
            raise LossChainConfigError(f"Missing loss-chain field: {group_name}.{name}")
        else:
            kwargs[name] = getattr(base, name)
    return group_cls(**kwargs)


def merge_irradiance_losses(saved: Optional[Dict], defaults: IrradianceLosses) -> IrradianceLosses:
    return _group_from_dict('irradiance', IrradianceLosses, saved or {}, strict=False, base=defaults)


def merge_array_losses(saved: Optional[Dict], defaults: ArrayLosses) -> ArrayLosses:
    return _group_from_dict('array', ArrayLosses, saved or {}, strict=False, base=defaults)


def merge_inverter_losses(saved: Optional[Dict], defaults: InverterLosses) -> InverterLosses:
    return _group_from_dict('inverter', InverterLosses, saved or {}, strict=False, base=defaults)


def merge_post_inverter_losses(saved: Optional[Dict], defaults: PostInverterLosses) -> PostInverterLosses:
    return _group_from_dict('post_inverter', PostInverterLosses, saved or {}, strict=False, base=defaults)


def merge_loss_chain_config(saved: Optional[Dict], defaults: Optional[LossChainConfig] = None) -> LossChainConfig:
    """
    Overlay saved overrides onto a default loss-chain config, group by group.

    Parameters:
    - saved (dict or None): Partial config, e.g. as stored with a project.
    - defaults (LossChainConfig): Base values. Library defaults when omitted.

    Returns:
    - LossChainConfig: New config. Neither input is modified.
    """
    defaults = defaults or LossChainConfig()
    saved = saved or {}

    unknown = set(saved) - set(_STAGE_GROUPS) - set(_SCALAR_FIELDS)
    if unknown:
        logging.error(f"Unknown loss-chain keys: {sorted(unknown)}")
        raise LossChainConfigError(f"Unknown loss-chain keys: {sorted(unknown)}")

    merged = LossChainConfig(
        irradiance=merge_irradiance_losses(saved.get('irradiance'), defaults.irradiance),
        array=merge_array_losses(saved.get('array'), defaults.array),
        inverter=merge_inverter_losses(saved.get('inverter'), defaults.inverter),
        post_inverter=merge_post_inverter_losses(saved.get('post_inverter'), defaults.post_inverter),
        annual_degradation=_as_number('annual_degradation', saved.get('annual_degradation', defaults.annual_degradation)),
        operation_year=int(_as_number('operation_year', saved.get('operation_year', defaults.operation_year))),
        cell_temp_coefficient=_as_number('cell_temp_coefficient', saved.get('cell_temp_coefficient', defaults.cell_temp_coefficient)),
        noct=_as_number('noct', saved.get('noct', defaults.noct)),
        transposition_factor=_as_number('transposition_factor', saved.get('transposition_factor', defaults.transposition_factor)),
    )
    validate_loss_chain_config(merged)
    return merged


def validate_loss_chain_config(config: LossChainConfig) -> None:
    """
    Check a config before any hourly loop runs.

    Raises LossChainConfigError if a stage group is absent or a loss is above 100%,
    which would turn output negative. A loss of exactly 100% zeroes that stage.
    """
    for name, group_cls in _STAGE_GROUPS.items():
        group = getattr(config, name, None)
        if not isinstance(group, group_cls):
            logging.error(f"Loss-chain stage '{name}' is missing or has the wrong type")
            raise LossChainConfigError(f"Missing loss-chain stage: {name}")
        for f in fields(group):
            value = _as_number(f"{name}.{f.name}", getattr(group, f.name))
            if value > 100:
                logging.error(f"Loss {name}.{f.name}={value}% is above 100%")
                raise LossChainConfigError(f"Loss {name}.{f.name}={value}% is above 100%")
    if config.operation_year < 1:
        raise LossChainConfigError(f"operation_year must be 1 or later, got {config.operation_year}")
    if config.transposition_factor <= 0:
        raise LossChainConfigError("transposition_factor must be positive")


@dataclass
class SystemCosts:
    """Capital cost schedule (Rand) and lifetime financial assumptions (percent)."""
    solar_cost_per_kwp: float = 11000
    battery_cost_per_kwh: float = 7500
    health_and_safety_cost: float = 0
    water_points_cost: float = 0
    cctv_cost: float = 0
    mv_switch_gear_cost: float = 0
    professional_fees_percent: float = 0
    project_management_percent: float = 0
    contingency_percent: float = 0
    solar_maintenance_percent: float = 3.5
    battery_maintenance_percent: float = 1.5
    insurance_rate_percent: float = 1.0   # of total capital cost, per year
    replacement_year: Optional[int] = 10
    equipment_cost_percent: float = 45    # share of solar cost that is equipment
    module_share_percent: float = 70
    inverter_share_percent: float = 30
    module_replacement_percent: float = 10
    inverter_replacement_percent: float = 50
    battery_replacement_percent: float = 30
    cost_of_capital: float = 9
    cpi: float = 6
    electricity_inflation: float = 10
    project_duration_years: int = 20
    lcoe_discount_rate: float = 9
    mirr_finance_rate: float = 9
    mirr_reinvestment_rate: float = 10

    @property
    def additional_costs(self) -> float:
        return (self.health_and_safety_cost + self.water_points_cost
                + self.cctv_cost + self.mv_switch_gear_cost)

    def maintenance_per_year(self, solar_capacity_kwp, battery_capacity_kwh):
        """Annual O&M as a percentage of the solar and battery hardware cost."""
        solar_cost = solar_capacity_kwp * self.solar_cost_per_kwp
        battery_cost = battery_capacity_kwh * self.battery_cost_per_kwh
        return (solar_cost * self.solar_maintenance_percent / 100
                + battery_cost * self.battery_maintenance_percent / 100)

    def replacement_cost(self, solar_capacity_kwp, battery_capacity_kwh):
        """Mid-life replacement of part of the modules, inverters and battery, in today's Rand."""
        equipment = solar_capacity_kwp * self.solar_cost_per_kwp * self.equipment_cost_percent / 100
        modules = equipment * self.module_share_percent / 100
        inverters = equipment * self.inverter_share_percent / 100
        battery = battery_capacity_kwh * self.battery_cost_per_kwh
        return (modules * self.module_replacement_percent / 100
                + inverters * self.inverter_replacement_percent / 100
                + battery * self.battery_replacement_percent / 100)

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "SystemCosts":
        data = data or {}
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logging.warning(f"Ignoring unknown system cost keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class BatteryConfig:
    capacity_kwh: float = 0.0
    power_kw: float = 0.0
    min_soc: float = BATTERY_MIN_SOC
    max_soc: float = BATTERY_MAX_SOC
    initial_soc: float = BATTERY_INITIAL_SOC
    round_trip_efficiency: float = 1.0

    def __post_init__(self):
        if self.capacity_kwh < 0 or self.power_kw < 0:
            raise ValueError("Battery capacity and power must be non-negative")
        if not 0 <= self.min_soc <= self.max_soc <= 1:
            raise ValueError(f"Invalid SoC window: min={self.min_soc}, max={self.max_soc}")
        if not 0 < self.round_trip_efficiency <= 1:
            raise ValueError("round_trip_efficiency must be in (0, 1]")

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "BatteryConfig":
        data = data or {}
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
