"""Domain records: tenants, meter imports, templates and tariffs."""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .constants import HOURS_PER_DAY


def _profile_24(values, name) -> Tuple[float, ...]:
    if values is None:
        return tuple()
    values = tuple(float(v) for v in values)
    if values and len(values) != HOURS_PER_DAY:
        logging.error(f"{name} must have {HOURS_PER_DAY} values, got {len(values)}")
        raise ValueError(f"{name} must have {HOURS_PER_DAY} values, got {len(values)}")
    return values


def _optional_float(value) -> Optional[float]:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    return float(value)


class TimeOfUse(Enum):
    """Time-of-use tariff bucket."""
    PEAK = "Peak"
    STANDARD = "Standard"
    OFF_PEAK = "Off-Peak"
    HIGH_DEMAND = "High Demand"
    LOW_DEMAND = "Low Demand"
    CRITICAL_PEAK = "Critical Peak"
    ANY = "Any"

    @classmethod
    def parse(cls, value) -> "TimeOfUse":
        return _parse_enum(cls, value, _TOU_ALIASES)


class DayType(Enum):
    WEEKDAY = "Weekday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def parse(cls, value) -> "DayType":
        return _parse_enum(cls, value, {})


class Season(Enum):
    """Tariff season. HIGH is the winter high-demand season (June to August)."""
    ALL_YEAR = "All Year"
    HIGH = "High/Winter"
    LOW = "Low/Summer"

    @classmethod
    def parse(cls, value) -> "Season":
        return _parse_enum(cls, value, _SEASON_ALIASES)


class TariffType(Enum):
    FIXED = "Fixed"
    IBT = "IBT"
    TOU = "TOU"

    @classmethod
    def parse(cls, value) -> "TariffType":
        return _parse_enum(cls, value, _TARIFF_TYPE_ALIASES)


def _normalize_key(value):
    return str(value).strip().lower().replace('_', ' ').replace('-', ' ')


_TOU_ALIASES = {
    'offpeak': TimeOfUse.OFF_PEAK,
    'off peak': TimeOfUse.OFF_PEAK,
    'critical': TimeOfUse.CRITICAL_PEAK,
    'all': TimeOfUse.ANY,
}

_SEASON_ALIASES = {
    'all': Season.ALL_YEAR,
    'any': Season.ALL_YEAR,
    'high': Season.HIGH,
    'high demand': Season.HIGH,
    'winter': Season.HIGH,
    'low': Season.LOW,
    'low demand': Season.LOW,
    'summer': Season.LOW,
}

_TARIFF_TYPE_ALIASES = {
    'flat': TariffType.FIXED,
    'inclining block': TariffType.IBT,
    'tiered': TariffType.IBT,
    'time of use': TariffType.TOU,
}


def _parse_enum(enum_cls, value, aliases):
    if isinstance(value, enum_cls):
        return value
    key = _normalize_key(value)
    for member in enum_cls:
        if key in (_normalize_key(member.value), _normalize_key(member.name)):
            return member
    if key in aliases:
        return aliases[key]
    raise ValueError(f"Unknown {enum_cls.__name__} value: {value!r}")


@dataclass
class Tenant:
    """A leasable unit. Area scales consumption but never decides whether data exists."""
    id: str
    name: str
    area_sqm: float = 0.0
    monthly_kwh_override: Optional[float] = None
    shop_type_id: Optional[str] = None
    meter_import_id: Optional[str] = None
    stacked_profile_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict) -> "Tenant":
        area = _optional_float(record.get('area_sqm'))
        return cls(
            id=str(record['id']),
            name=str(record.get('name', record['id'])),
            area_sqm=area if area is not None else 0.0,
            monthly_kwh_override=_optional_float(record.get('monthly_kwh_override')),
            shop_type_id=record.get('shop_type_id'),
            meter_import_id=record.get('meter_import_id'),
            stacked_profile_id=record.get('stacked_profile_id'),
        )


@dataclass(frozen=True)
class MeterImport:
    """
    One imported meter time series, summarised into weekday and weekend shapes.

    Immutable once created. Profiles are average kW per hour of day.
    """
    id: str
    site_name: str
    load_profile_weekday: Tuple[float, ...]
    load_profile_weekend: Tuple[float, ...]
    weekday_days: int = 0
    weekend_days: int = 0
    shop_name: Optional[str] = None
    shop_number: Optional[str] = None
    meter_label: Optional[str] = None
    area_sqm: Optional[float] = None
    detected_interval_minutes: Optional[int] = None
    date_range_start: Optional[date] = None
    date_range_end: Optional[date] = None
    data_points: int = 0
    total_kwh: float = 0.0
    peak_kw: float = 0.0
    is_valid: bool = True
    warnings: Tuple[str, ...] = ()
    readings: Optional[pd.DataFrame] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, 'load_profile_weekday',
                           _profile_24(self.load_profile_weekday, 'load_profile_weekday'))
        object.__setattr__(self, 'load_profile_weekend',
                           _profile_24(self.load_profile_weekend, 'load_profile_weekend'))

    @property
    def display_name(self) -> str:
        return self.shop_name or self.meter_label or self.site_name or self.id

    @property
    def has_profile(self) -> bool:
        return bool(self.load_profile_weekday) and any(v > 0 for v in self.load_profile_weekday)

    @classmethod
    def from_record(cls, record: Dict) -> "MeterImport":
        """
        Build from a stored record. Stored shapes hold averages of the raw interval
        values, so they are corrected to hourly kW using the detected interval.
        """
        from .meter_data import correct_profile_for_interval

        interval = record.get('detected_interval_minutes')
        return cls(
            id=str(record['id']),
            site_name=str(record.get('site_name') or ''),
            shop_name=record.get('shop_name'),
            shop_number=record.get('shop_number'),
            meter_label=record.get('meter_label'),
            load_profile_weekday=correct_profile_for_interval(record.get('load_profile_weekday') or (), interval),
            load_profile_weekend=correct_profile_for_interval(record.get('load_profile_weekend') or (), interval),
            weekday_days=int(record.get('weekday_days') or 0),
            weekend_days=int(record.get('weekend_days') or 0),
            area_sqm=_optional_float(record.get('area_sqm')),
            detected_interval_minutes=interval,
            data_points=int(record.get('data_points') or 0),
        )


@dataclass(frozen=True)
class ShopTypeTemplate:
    """Statistical profile for a category of tenant; shapes are percent per hour."""
    id: str
    name: str
    kwh_per_sqm_month: float
    load_profile_weekday: Tuple[float, ...] = ()
    load_profile_weekend: Tuple[float, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'load_profile_weekday',
                           _profile_24(self.load_profile_weekday, 'load_profile_weekday'))
        object.__setattr__(self, 'load_profile_weekend',
                           _profile_24(self.load_profile_weekend, 'load_profile_weekend'))

    @classmethod
    def from_record(cls, record: Dict) -> "ShopTypeTemplate":
        return cls(
            id=str(record.get('id', record['name'])),
            name=str(record['name']),
            kwh_per_sqm_month=float(record['kwh_per_sqm_month']),
            load_profile_weekday=record.get('load_profile_weekday') or (),
            load_profile_weekend=record.get('load_profile_weekend') or (),
        )


@dataclass(frozen=True)
class StackedMeter:
    meter_import_id: str
    weight: float = 1.0


@dataclass(frozen=True)
class StackedProfile:
    """Several meter imports averaged into one reference load."""
    id: str
    name: str
    meters: Tuple[StackedMeter, ...]

    @classmethod
    def from_record(cls, record: Dict) -> "StackedProfile":
        meters = []
        for item in record.get('meters', []):
            if isinstance(item, dict):
                meters.append(StackedMeter(str(item['meter_import_id']), float(item.get('weight', 1.0))))
            else:
                meters.append(StackedMeter(str(item)))
        return cls(id=str(record['id']), name=str(record.get('name', record['id'])), meters=tuple(meters))


@dataclass
class TOUPeriod:
    """A tariff bucket bound to an hour range [start_hour, end_hour), day type and season."""
    time_of_use: TimeOfUse
    day_type: DayType
    season: Season
    start_hour: int
    end_hour: int
    rate_per_kwh: float
    demand_charge_per_kva: float = 0.0

    def __post_init__(self):
        if not (0 <= self.start_hour < self.end_hour <= 24):
            raise ValueError(f"Invalid TOU hour range {self.start_hour}-{self.end_hour}")

    def applies_to(self, hour: int, day_type: DayType, season: Season) -> bool:
        season_ok = self.season == Season.ALL_YEAR or self.season == season
        return season_ok and self.day_type == day_type and self.start_hour <= hour < self.end_hour

    @classmethod
    def from_record(cls, record: Dict) -> "TOUPeriod":
        return cls(
            time_of_use=TimeOfUse.parse(record['time_of_use']),
            day_type=DayType.parse(record['day_type']),
            season=Season.parse(record.get('season', Season.ALL_YEAR)),
            start_hour=int(record['start_hour']),
            end_hour=int(record['end_hour']),
            rate_per_kwh=float(record['rate_per_kwh']),
            demand_charge_per_kva=float(record.get('demand_charge_per_kva') or 0.0),
        )


@dataclass
class TariffRate:
    """A rate row keyed by (day_type, season, time_of_use), optionally an IBT block."""
    rate_per_kwh: float
    time_of_use: TimeOfUse = TimeOfUse.ANY
    season: Season = Season.ALL_YEAR
    day_type: Optional[DayType] = None
    block_start_kwh: Optional[float] = None
    block_end_kwh: Optional[float] = None

    @classmethod
    def from_record(cls, record: Dict) -> "TariffRate":
        day_type = record.get('day_type')
        return cls(
            rate_per_kwh=float(record['rate_per_kwh']),
            time_of_use=TimeOfUse.parse(record.get('time_of_use', TimeOfUse.ANY)),
            season=Season.parse(record.get('season', Season.ALL_YEAR)),
            day_type=DayType.parse(day_type) if day_type else None,
            block_start_kwh=_optional_float(record.get('block_start_kwh')),
            block_end_kwh=_optional_float(record.get('block_end_kwh')),
        )


@dataclass
class Tariff:
    """
    A named rate structure.

    Fixed tariffs use a single rate, IBT tariffs use block rates and TOU tariffs
    use periods. Charges are in Rand; demand charges per kVA per month.
    """
    name: str
    tariff_type: TariffType
    rates: List[TariffRate] = field(default_factory=list)
    periods: List[TOUPeriod] = field(default_factory=list)
    fixed_monthly_charge: float = 0.0
    demand_charge_per_kva: float = 0.0
    network_access_charge: float = 0.0
    export_rate_per_kwh: float = 0.0
    voltage_level: Optional[str] = None
    critical_peak_rate: float = 0.0
    critical_peak_hours_per_month: float = 0.0

    @classmethod
    def from_record(cls, record: Dict) -> "Tariff":
        return cls(
            name=str(record['name']),
            tariff_type=TariffType.parse(record.get('tariff_type', TariffType.FIXED)),
            rates=[TariffRate.from_record(r) for r in record.get('rates', [])],
            periods=[TOUPeriod.from_record(p) for p in record.get('periods', [])],
            fixed_monthly_charge=float(record.get('fixed_monthly_charge') or 0.0),
            demand_charge_per_kva=float(record.get('demand_charge_per_kva') or 0.0),
            network_access_charge=float(record.get('network_access_charge') or 0.0),
            export_rate_per_kwh=float(record.get('export_rate_per_kwh') or 0.0),
            voltage_level=record.get('voltage_level'),
            critical_peak_rate=float(record.get('critical_peak_rate') or 0.0),
            critical_peak_hours_per_month=float(record.get('critical_peak_hours_per_month') or 0.0),
        )
