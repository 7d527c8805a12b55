"""Time-of-use classification, blended solar rates and monthly bill estimates."""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence

import numpy as np

from .constants import (
    HOURS_PER_DAY,
    HIGH_SEASON_MONTH_NUMBERS,
    LOW_SEASON_MONTHS,
    HIGH_SEASON_MONTHS,
)
from .models import DayType, Season, TariffRate, TariffType, TimeOfUse, TOUPeriod, Tariff

PEAK = TimeOfUse.PEAK
STANDARD = TimeOfUse.STANDARD
OFF_PEAK = TimeOfUse.OFF_PEAK


def build_hour_map(blocks) -> List[TimeOfUse]:
    """Expand (start, end, period) blocks into 24 hourly labels; uncovered hours are off-peak."""
    hours = [OFF_PEAK] * HOURS_PER_DAY
    for start, end, period in blocks:
        for h in range(start, end):
            hours[h] = period
    return hours


# South African default schedule; the high season runs June to August
DEFAULT_TOU_SCHEDULE = {
    Season.HIGH: {
        DayType.WEEKDAY: build_hour_map([
            (6, 9, PEAK), (9, 12, STANDARD), (12, 14, OFF_PEAK),
            (14, 17, STANDARD), (17, 19, PEAK), (19, 22, STANDARD),
        ]),
        DayType.SATURDAY: build_hour_map([(7, 12, STANDARD)]),
        DayType.SUNDAY: build_hour_map([]),
    },
    Season.LOW: {
        DayType.WEEKDAY: build_hour_map([
            (6, 7, STANDARD), (7, 10, PEAK), (10, 18, STANDARD),
            (18, 20, PEAK), (20, 22, STANDARD),
        ]),
        DayType.SATURDAY: build_hour_map([(7, 12, STANDARD), (18, 20, STANDARD)]),
        DayType.SUNDAY: build_hour_map([]),
    },
}

# Typical relative PV output per hour, peaking at noon
SOLAR_CURVE = {
    5: 0.05, 6: 0.15, 7: 0.35, 8: 0.55, 9: 0.75, 10: 0.88, 11: 0.95,
    12: 1.0, 13: 0.98, 14: 0.92, 15: 0.82, 16: 0.68, 17: 0.50, 18: 0.30, 19: 0.10,
}

SUNSHINE_HOURS = {
    Season.LOW: (6, 19),
    Season.HIGH: (7, 17),
}

# Weekday TOU hours used to weight the blended solar rate
BLENDED_RATE_PEAK_HOURS = (7, 8, 9, 18, 19)
BLENDED_RATE_STANDARD_HOURS = (6, 10, 11, 12, 13, 14, 15, 16, 17, 20, 21)

CRITICAL_PEAK_HOURS_BASIS = 720  # hours per 30-day month


@dataclass
class TOUBlock:
    """Contiguous hours [start_hour, end_hour) sharing one period."""
    start_hour: int
    end_hour: int
    period: Optional[TimeOfUse]
    rate_per_kwh: Optional[float] = None


def _check_hour(hour):
    if not isinstance(hour, (int, np.integer)) or not 0 <= hour < HOURS_PER_DAY:
        logging.error(f"Hour must be an integer 0-23, got {hour!r}")
        raise ValueError(f"Hour must be an integer 0-23, got {hour!r}")


def season_for_month(month: int) -> Season:
    """month is 1-12."""
    return Season.HIGH if month in HIGH_SEASON_MONTH_NUMBERS else Season.LOW


def day_type_for_weekday(weekday: int) -> DayType:
    """weekday is 0 = Monday ... 6 = Sunday."""
    if weekday == 5:
        return DayType.SATURDAY
    if weekday == 6:
        return DayType.SUNDAY
    return DayType.WEEKDAY


def day_type_for_date(day: date) -> DayType:
    return day_type_for_weekday(day.weekday())


def classify_hour(hour, day_type: DayType, season: Season, periods: Sequence[TOUPeriod]) -> Optional[TOUPeriod]:
    """
    Find the tariff period covering an hour.

    Parameters:
    - hour (int): 0-23.
    - day_type (DayType): Weekday, Saturday or Sunday.
    - season (Season): HIGH or LOW. All-year periods match either season.
    - periods (sequence of TOUPeriod): Tariff periods.

    Returns:
    - TOUPeriod or None when no period covers the hour.
    """
    _check_hour(hour)
    season_specific = None
    for period in periods:
        if period.applies_to(hour, day_type, season):
            if period.season == season:
                return period
            season_specific = season_specific or period
    return season_specific


def default_period_for_hour(hour, day_type: DayType, season: Season, schedule=None) -> TimeOfUse:
    """Period from an hour-map schedule (the South African default when none is given)."""
    _check_hour(hour)
    schedule = schedule or DEFAULT_TOU_SCHEDULE
    if season == Season.ALL_YEAR:
        season = Season.LOW
    return schedule[season][day_type][hour]


def hourly_periods(day_type: DayType, season: Season, periods: Optional[Sequence[TOUPeriod]] = None) -> List:
    """24 labels for a day; from tariff periods when given, else from the default schedule."""
    if periods is None:
        return [default_period_for_hour(h, day_type, season) for h in range(HOURS_PER_DAY)]
    return [classify_hour(h, day_type, season, periods) for h in range(HOURS_PER_DAY)]


def _period_key(label):
    return label.time_of_use if isinstance(label, TOUPeriod) else label


def tou_boundaries(labels: Sequence) -> List[int]:
    """Hours where a new block starts: hour 0 always, then wherever the period changes from the hour before."""
    keys = [_period_key(label) for label in labels]
    return [h for h in range(len(keys)) if h == 0 or keys[h] != keys[h - 1]]


def merge_tou_blocks(labels: Sequence) -> List[TOUBlock]:
    """
    Merge adjacent hours with the same period into blocks.

    labels may hold TimeOfUse values or TOUPeriod objects (as returned by classify_hour).
    Each day is evaluated on its own; hour 0 always opens a block.
    """
    starts = tou_boundaries(labels)
    blocks = []
    for i, start in enumerate(starts):
        end = starts[i + 1] if i + 1 < len(starts) else len(labels)
        label = labels[start]
        if isinstance(label, TOUPeriod):
            blocks.append(TOUBlock(start, end, label.time_of_use, label.rate_per_kwh))
        else:
            blocks.append(TOUBlock(start, end, label))
    return blocks


# ==============================================
# Blended solar rate
# ==============================================

def _find_rate(rates, time_of_use, season):
    for r in rates:
        if r.time_of_use == time_of_use and r.season == season:
            return r.rate_per_kwh
    return 0.0


def calculate_blended_solar_rate(rates: Sequence[TariffRate], season: Season) -> Dict:
    """
    Effective tariff during sunshine hours, weighted by a typical PV output curve.

    Parameters:
    - rates (sequence of TariffRate): Peak/Standard/Off-Peak rates per season.
    - season (Season): Season.LOW (summer) or Season.HIGH (winter).

    Returns:
    - dict: 'blended_rate' (R/kWh) plus per-period hours, energy shares and contributions.
    """
    start, end = SUNSHINE_HOURS[season]
    period_rates = {p: _find_rate(rates, p, season) for p in (PEAK, STANDARD, OFF_PEAK)}
    energy = {p: 0.0 for p in period_rates}
    hours = {p: 0 for p in period_rates}

    for hour in range(start, end):
        if hour in BLENDED_RATE_PEAK_HOURS:
            period = PEAK
        elif hour in BLENDED_RATE_STANDARD_HOURS:
            period = STANDARD
        else:
            period = OFF_PEAK
        energy[period] += SOLAR_CURVE.get(hour, 0.0)
        hours[period] += 1

    total = sum(energy.values())
    blended = sum(energy[p] * period_rates[p] for p in energy) / total if total > 0 else 0.0

    return {
        'blended_rate': blended,
        'total_energy': total,
        'breakdown': [
            {
                'period': p.value,
                'hours': hours[p],
                'energy_percent': energy[p] / total * 100 if total > 0 else 0.0,
                'rate': period_rates[p],
                'contribution': energy[p] * period_rates[p] / total if total > 0 else 0.0,
            }
            for p in (PEAK, STANDARD, OFF_PEAK)
        ],
    }


def calculate_annual_blended_rate(rates: Optional[Sequence[TariffRate]]) -> Optional[float]:
    """
    Annual blended solar rate: nine low-season months and three high-season months.

    Non-TOU rate sets fall back to an all-year/any rate, then to the simple average.
    Returns None when there are no usable rates.
    """
    if not rates:
        return None

    summer = calculate_blended_solar_rate(rates, Season.LOW)['blended_rate']
    winter = calculate_blended_solar_rate(rates, Season.HIGH)['blended_rate']

    if summer == 0 and winter == 0:
        for r in rates:
            if r.time_of_use == TimeOfUse.ANY or r.season == Season.ALL_YEAR:
                return r.rate_per_kwh
        average = sum(r.rate_per_kwh for r in rates) / len(rates)
        return average if average > 0 else None

    return (summer * LOW_SEASON_MONTHS + winter * HIGH_SEASON_MONTHS) / (LOW_SEASON_MONTHS + HIGH_SEASON_MONTHS)


# ==============================================
# Bills
# ==============================================

def calculate_tou_energy_cost(hourly_kwh, periods: Sequence[TOUPeriod], day_type: DayType,
                              season: Season) -> Dict:
    """
    Cost of one day's hourly consumption under TOU periods.

    Hours no period covers are reported under 'unclassified' and cost nothing.
    """
    hourly_kwh = np.asarray(hourly_kwh, dtype=float)
    if hourly_kwh.size != HOURS_PER_DAY:
        raise ValueError(f"Expected {HOURS_PER_DAY} hourly values, got {hourly_kwh.size}")

    cost = 0.0
    kwh_by_period = {}
    for hour, kwh in enumerate(hourly_kwh):
        period = classify_hour(hour, day_type, season, periods)
        key = period.time_of_use.value if period else 'unclassified'
        kwh_by_period[key] = kwh_by_period.get(key, 0.0) + kwh
        if period:
            cost += kwh * period.rate_per_kwh
    return {'energy_cost': cost, 'kwh_by_period': kwh_by_period}


def calculate_ibt_cost(monthly_kwh, rates: Sequence[TariffRate]) -> float:
    """Inclining block tariff: fill blocks in order of their starting kWh."""
    ordered = sorted(rates, key=lambda r: r.block_start_kwh or 0.0)
    remaining = monthly_kwh
    cost = 0.0
    for rate in ordered:
        if remaining <= 0:
            break
        start = rate.block_start_kwh or 0.0
        end = rate.block_end_kwh if rate.block_end_kwh is not None else float('inf')
        in_block = min(remaining, end - start)
        cost += in_block * rate.rate_per_kwh
        remaining -= in_block
    return cost


def calculate_tou_bill(monthly_kwh, periods: Sequence[TOUPeriod], hourly_profile, weekday_percentage,
                       season: Season, max_demand_kva, base_demand_charge) -> Dict:
    """
    Monthly TOU energy and demand cost for a consumption shape.

    Parameters:
    - monthly_kwh (float): Consumption in the month.
    - periods (sequence of TOUPeriod): Tariff periods.
    - hourly_profile (sequence of float): 24 relative weights, normalised internally.
    - weekday_percentage (float): Share of consumption on weekdays; the rest is split
      evenly between Saturday and Sunday.
    - season (Season): Billing season.
    - max_demand_kva (float): Maximum demand.
    - base_demand_charge (float): R/kVA/month when no period carries its own charge.

    Returns:
    - dict: energy_cost, demand_cost, kwh breakdown by period and billed demand.
    """
    profile = np.asarray(hourly_profile, dtype=float)
    if profile.size != HOURS_PER_DAY or profile.sum() <= 0:
        raise ValueError("hourly_profile must have 24 values with a positive sum")
    normalized = profile / profile.sum()

    weights = {
        DayType.WEEKDAY: weekday_percentage / 100,
        DayType.SATURDAY: (100 - weekday_percentage) / 100 / 2,
        DayType.SUNDAY: (100 - weekday_percentage) / 100 / 2,
    }

    energy_cost = 0.0
    breakdown = {}
    peak_standard_demand = 0.0
    demand_charge = base_demand_charge

    for hour in range(HOURS_PER_DAY):
        hour_kwh = monthly_kwh * normalized[hour]
        hour_demand = max_demand_kva * normalized[hour] * HOURS_PER_DAY
        for day_type, weight in weights.items():
            period = classify_hour(hour, day_type, season, periods)
            if period is None:
                continue
            kwh = hour_kwh * weight
            energy_cost += kwh * period.rate_per_kwh
            key = period.time_of_use.value
            breakdown[key] = breakdown.get(key, 0.0) + kwh
            if day_type == DayType.WEEKDAY and period.time_of_use in (PEAK, STANDARD):
                peak_standard_demand = max(peak_standard_demand, hour_demand)
                demand_charge = max(demand_charge, period.demand_charge_per_kva)

    billed_demand = peak_standard_demand if peak_standard_demand > 0 else max_demand_kva
    return {
        'energy_cost': energy_cost,
        'demand_cost': billed_demand * demand_charge,
        'breakdown': breakdown,
        'peak_demand': billed_demand,
    }


def calculate_monthly_bill(tariff: Tariff, monthly_kwh, hourly_profile=None, max_demand_kva=0.0,
                           weekday_percentage=500 / 7, season: Season = Season.LOW) -> Dict:
    """
    Estimate a month's bill under a Fixed, IBT or TOU tariff.

    Returns:
    - dict: energy_cost, demand_cost, fixed_cost, total_bill, breakdown, season, peak_demand.
    """
    if monthly_kwh < 0:
        raise ValueError("monthly_kwh must be non-negative")
    profile = hourly_profile if hourly_profile is not None else np.ones(HOURS_PER_DAY)

    energy_cost = 0.0
    demand_cost = max_demand_kva * tariff.demand_charge_per_kva
    breakdown = {}
    peak_demand = max_demand_kva

    if tariff.tariff_type == TariffType.TOU and tariff.periods:
        result = calculate_tou_bill(monthly_kwh, tariff.periods, profile, weekday_percentage,
                                    season, max_demand_kva, tariff.demand_charge_per_kva)
        energy_cost = result['energy_cost']
        demand_cost = result['demand_cost']
        breakdown = result['breakdown']
        peak_demand = result['peak_demand']

        if tariff.critical_peak_rate and tariff.critical_peak_hours_per_month > 0:
            cpp_kwh = monthly_kwh / CRITICAL_PEAK_HOURS_BASIS * tariff.critical_peak_hours_per_month
            energy_cost += cpp_kwh * tariff.critical_peak_rate
            breakdown[TimeOfUse.CRITICAL_PEAK.value] = cpp_kwh
    elif tariff.tariff_type == TariffType.IBT and tariff.rates:
        energy_cost = calculate_ibt_cost(monthly_kwh, tariff.rates)
    elif tariff.rates:
        energy_cost = monthly_kwh * tariff.rates[0].rate_per_kwh
    else:
        logging.warning(f"Tariff '{tariff.name}' has no rates; energy cost is 0")

    fixed_cost = tariff.fixed_monthly_charge + tariff.network_access_charge
    return {
        'energy_cost': energy_cost,
        'demand_cost': demand_cost,
        'fixed_cost': fixed_cost,
        'total_bill': energy_cost + demand_cost + fixed_cost,
        'breakdown': breakdown,
        'season': season.value,
        'peak_demand': peak_demand,
    }


def average_rate(tariff: Tariff) -> float:
    """Single R/kWh figure for a tariff, used for daily savings estimates."""
    if tariff.tariff_type == TariffType.TOU and tariff.periods:
        rates = [TariffRate(p.rate_per_kwh, p.time_of_use, p.season) for p in tariff.periods
                 if p.day_type == DayType.WEEKDAY]
        blended = calculate_annual_blended_rate(rates)
        if blended:
            return blended
        return float(np.mean([p.rate_per_kwh for p in tariff.periods]))
    blended = calculate_annual_blended_rate(tariff.rates)
    return blended or 0.0
