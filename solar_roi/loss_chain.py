"""
PVsyst-style loss chain: hourly GHI to DC and AC energy.

Every loss is a percentage applied as a factor (1 - loss/100). Irradiance and
array stages form the DC multiplier; inverter and post-inverter stages form the
inverter multiplier. AC output is hard-clipped at the inverter rating.
"""

import logging
from dataclasses import dataclass, fields
from typing import List, Optional

import numpy as np
import pandas as pd

from .config import LossChainConfig, validate_loss_chain_config
from .constants import (
    HOURS_PER_YEAR,
    NOCT_AMBIENT,
    NOCT_IRRADIANCE,
    PROJECTION_YEARS,
    STC_TEMPERATURE,
)


@dataclass
class GenerationResult:
    """Hourly DC and AC energy (kWh) plus the multipliers used to produce them."""
    dc_kwh: np.ndarray
    ac_kwh: np.ndarray
    dc_loss_multiplier: float
    inverter_loss_multiplier: float
    max_ac_output_kw: Optional[float] = None

    @property
    def annual_dc_kwh(self) -> float:
        return float(self.dc_kwh.sum())

    @property
    def annual_ac_kwh(self) -> float:
        return float(self.ac_kwh.sum())


def _factor(loss_percent) -> float:
    return 1 - loss_percent / 100


def _group_multiplier(group, skip=()) -> float:
    multiplier = 1.0
    for f in fields(group):
        if f.name not in skip:
            multiplier *= _factor(getattr(group, f.name))
    return multiplier


def dc_loss_multiplier(config: LossChainConfig, include_temperature: bool = True) -> float:
    """Product of every irradiance-stage and array-stage factor."""
    skip = () if include_temperature else ('temperature_loss',)
    return _group_multiplier(config.irradiance) * _group_multiplier(config.array, skip)


def inverter_loss_multiplier(config: LossChainConfig) -> float:
    """Product of the inverter-stage factors and the availability factor."""
    return _group_multiplier(config.inverter) * _group_multiplier(config.post_inverter)


def convert_tmy_to_solar_generation(hourly_ghi, collector_area_m2, stc_efficiency,
                                    config: LossChainConfig, reduction_factor=1.0,
                                    max_ac_output_kw=None, hourly_temperature_loss=None) -> GenerationResult:
    """
    Convert hourly GHI to DC and AC energy through the loss chain.

    Parameters:
    - hourly_ghi (array-like): Hourly GHI in W/m² (normally 8760 values).
    - collector_area_m2 (float): Physical module area in m².
    - stc_efficiency (float): Module efficiency at STC, as a fraction in (0, 1].
    - config (LossChainConfig): Loss factors. Validated before any hour is computed.
      operation_year above one adds the annual degradation since year one.
    - reduction_factor (float): Production reduction applied to DC output.
    - max_ac_output_kw (float, optional): Inverter AC limit; AC above it is discarded.
    - hourly_temperature_loss (array-like, optional): Per-hour temperature loss in percent.
      When given it replaces the static array temperature factor.

    Returns:
    - GenerationResult: dc_kwh and ac_kwh arrays of the same length as hourly_ghi.
    """
    validate_loss_chain_config(config)

    if collector_area_m2 < 0:
        logging.error(f"Collector area must be non-negative, got {collector_area_m2}")
        raise ValueError(f"Collector area must be non-negative, got {collector_area_m2}")
    if not 0 < stc_efficiency <= 1:
        logging.error(f"STC efficiency must be in (0, 1], got {stc_efficiency}")
        raise ValueError(f"STC efficiency must be in (0, 1], got {stc_efficiency}")
    if reduction_factor < 0:
        raise ValueError(f"Reduction factor must be non-negative, got {reduction_factor}")
    if max_ac_output_kw is not None and max_ac_output_kw < 0:
        raise ValueError(f"max_ac_output_kw must be non-negative, got {max_ac_output_kw}")

    ghi = np.asarray(hourly_ghi, dtype=float)
    if len(ghi) != HOURS_PER_YEAR:
        logging.warning(f"GHI series has {len(ghi)} hours, expected {HOURS_PER_YEAR}")

    if hourly_temperature_loss is not None:
        temp_loss = np.asarray(hourly_temperature_loss, dtype=float)
        if temp_loss.shape != ghi.shape:
            logging.error("Temperature loss series length does not match GHI length")
            raise ValueError(f"Temperature loss series has {temp_loss.size} values, GHI has {ghi.size}")
        dc_multiplier = dc_loss_multiplier(config, include_temperature=False) * (1 - temp_loss / 100)
    else:
        dc_multiplier = dc_loss_multiplier(config)
    if config.operation_year > 1:
        dc_multiplier = dc_multiplier * degradation_multiplier(config.operation_year, config)

    inv_multiplier = inverter_loss_multiplier(config)

    scale = collector_area_m2 * stc_efficiency * reduction_factor / 1000
    dc = np.where(ghi > 0, ghi * scale * dc_multiplier, 0.0)
    dc = np.clip(dc, 0, None)
    ac = dc * inv_multiplier
    if max_ac_output_kw is not None:
        ac = np.minimum(ac, max_ac_output_kw)

    logging.info(f"Loss chain: DC {dc.sum():,.0f} kWh, AC {ac.sum():,.0f} kWh "
                 f"(inverter multiplier {inv_multiplier:.4f})")

    return GenerationResult(
        dc_kwh=dc,
        ac_kwh=ac,
        dc_loss_multiplier=float(np.mean(dc_multiplier)),
        inverter_loss_multiplier=inv_multiplier,
        max_ac_output_kw=max_ac_output_kw,
    )


def calculate_cell_temperature(ambient_temp, irradiance, noct=45.0):
    """NOCT model: Tcell = Tamb + (NOCT - 20) * G / 800."""
    return ambient_temp + (noct - NOCT_AMBIENT) * np.asarray(irradiance, dtype=float) / NOCT_IRRADIANCE


def calculate_temperature_loss(cell_temp, temp_coefficient=-0.40):
    """Percent loss above 25 °C; cold cells give no gain."""
    return np.maximum(0.0, (np.asarray(cell_temp, dtype=float) - STC_TEMPERATURE) * abs(temp_coefficient))


def hourly_temperature_loss(ambient_temp, poa_irradiance, config: LossChainConfig):
    cell_temp = calculate_cell_temperature(np.asarray(ambient_temp, dtype=float), poa_irradiance, config.noct)
    return calculate_temperature_loss(cell_temp, config.cell_temp_coefficient)


def calculate_cumulative_degradation(year, lid_loss, annual_degradation) -> float:
    """LID in year one, plus the annual rate for each later year (percent)."""
    if year <= 1:
        return lid_loss
    return lid_loss + (year - 1) * annual_degradation


def degradation_multiplier(year, config: LossChainConfig) -> float:
    """
    Output in a given year of operation relative to year one.

    LID is already part of the array stage, so only the annual rate after year one
    counts here. Never negative.
    """
    lid = config.array.lid_loss
    if _factor(lid) == 0:
        return 1.0
    cumulative = calculate_cumulative_degradation(year, lid, config.annual_degradation)
    return max(0.0, _factor(cumulative) / _factor(lid))


def degradation_projection(first_year_kwh, config: LossChainConfig, years=PROJECTION_YEARS) -> pd.DataFrame:
    """
    Year-by-year energy after degradation.

    first_year_kwh is the output with LID already applied, so later years only
    lose the annual rate relative to year one.
    """
    rows = []
    lid = config.array.lid_loss
    for year in range(1, years + 1):
        rows.append({
            'year': year,
            'cumulative_degradation': calculate_cumulative_degradation(year, lid, config.annual_degradation),
            'energy_kwh': first_year_kwh * degradation_multiplier(year, config),
        })
    return pd.DataFrame(rows)


_STAGE_LABELS = {
    'transposition_loss': 'Transposition',
    'near_shading_loss': 'Near shading',
    'iam_loss': 'IAM',
    'soiling_loss': 'Soiling',
    'spectral_loss': 'Spectral',
    'electrical_shading_loss': 'Electrical shading',
    'irradiance_level_loss': 'Irradiance level',
    'temperature_loss': 'Temperature',
    'module_quality_loss': 'Module quality',
    'lid_loss': 'LID',
    'module_degradation_loss': 'Module degradation',
    'mismatch_loss': 'Mismatch',
    'ohmic_loss': 'Ohmic wiring',
    'operation_efficiency': 'Inverter efficiency',
    'over_nominal_power': 'Over nominal power',
    'max_input_current': 'Max input current',
    'over_nominal_voltage': 'Over nominal voltage',
    'power_threshold': 'Power threshold',
    'voltage_threshold': 'Voltage threshold',
    'availability_loss': 'Availability',
}


def loss_breakdown(config: LossChainConfig) -> List[dict]:
    """
    Ordered waterfall of stages for charting.

    Each entry holds the stage group, label, loss percent and the fraction of
    the input energy left after that stage. Past year one an extra array-stage
    entry carries the degradation since year one.
    """
    remaining = 1.0
    rows = []
    for group_name in ('irradiance', 'array', 'inverter', 'post_inverter'):
        group = getattr(config, group_name)
        for f in fields(group):
            loss = getattr(group, f.name)
            remaining *= _factor(loss)
            rows.append({
                'stage': group_name,
                'name': _STAGE_LABELS.get(f.name, f.name),
                'loss_percent': loss,
                'remaining': remaining,
            })
        if group_name == 'array' and config.operation_year > 1:
            multiplier = degradation_multiplier(config.operation_year, config)
            remaining *= multiplier
            rows.append({
                'stage': group_name,
                'name': f"Degradation (year {config.operation_year})",
                'loss_percent': (1 - multiplier) * 100,
                'remaining': remaining,
            })
    return rows


def clipping_summary(result: GenerationResult, max_ac_kw=None) -> dict:
    """
    Energy lost to inverter clipping compared with a 1:1 DC/AC baseline.

    The baseline is the AC output without any clipping limit.
    """
    limit = max_ac_kw if max_ac_kw is not None else result.max_ac_output_kw
    unclipped_ac = result.dc_kwh * result.inverter_loss_multiplier
    clipped_ac = np.minimum(unclipped_ac, limit) if limit is not None else unclipped_ac
    dc_total = float(result.dc_kwh.sum())
    baseline_total = float(unclipped_ac.sum())
    ac_total = float(clipped_ac.sum())
    clipped = baseline_total - ac_total
    return {
        'dc_kwh': dc_total,
        'ac_kwh': ac_total,
        'baseline_ac_kwh': baseline_total,
        'clipped_kwh': clipped,
        'clipping_percent': clipped / dc_total * 100 if dc_total > 0 else 0.0,
        'clipped_hours': int(np.count_nonzero(unclipped_ac > clipped_ac)),
    }
