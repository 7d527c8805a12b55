"""
Meter and SCADA data import.

Turns raw (date, time, value) rows into timestamped kW readings, then into the
weekday/weekend hourly shapes carried by a MeterImport.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .constants import (
    HOURS_PER_DAY,
    STANDARD_INTERVALS_MINUTES,
    DEFAULT_VOLTAGE_V,
    DEFAULT_POWER_FACTOR,
)
from .models import MeterImport
from .timestamps import parse_date, calculate_delta, DATE_FORMAT_DMY
from .validation import validate_profile

POWER_UNITS = ('W', 'kW', 'MW', 'kVA', 'A')
ENERGY_UNITS = ('Wh', 'kWh', 'MWh', 'kVAh')

DATE_HEADER_PATTERNS = ["rdate", "date", "datetime", "timestamp", "day", "datum"]
TIME_HEADER_PATTERNS = ["rtime", "time", "hour", "zeit"]
VALUE_HEADER_PATTERNS = ["kwh+", "kwh-", "kwh", "kw", "energy", "consumption", "reading",
                         "value", "power", "load", "demand", "active"]
METER_HEADER_PATTERNS = ["meter", "meter_id", "meterid", "device", "channel", "point", "site"]

MAX_REPORTED_ERRORS = 5


@dataclass
class ImportReport:
    """Row accounting for one import. Skipped rows are counted, never fatal."""
    total_rows: int = 0
    processed_rows: int = 0
    skipped_rows: int = 0
    negative_values: int = 0
    rollovers: int = 0
    parse_errors: List[str] = field(default_factory=list)

    def add_error(self, message):
        self.skipped_rows += 1
        if len(self.parse_errors) < MAX_REPORTED_ERRORS:
            self.parse_errors.append(message)


def convert_to_kw(value, unit, voltage_v=DEFAULT_VOLTAGE_V, power_factor=DEFAULT_POWER_FACTOR):
    """Convert a power reading to kW. Current (A) is treated as balanced three-phase."""
    if unit == 'kW':
        return value
    if unit == 'W':
        return value / 1000
    if unit == 'MW':
        return value * 1000
    if unit == 'kVA':
        return value * power_factor
    if unit == 'A':
        return math.sqrt(3) * voltage_v * value * power_factor / 1000
    return value


def convert_to_kwh(value, unit, power_factor=DEFAULT_POWER_FACTOR):
    if unit == 'kWh':
        return value
    if unit == 'Wh':
        return value / 1000
    if unit == 'MWh':
        return value * 1000
    if unit == 'kVAh':
        return value * power_factor
    return value


def detect_unit_from_header(header: str) -> str:
    """Guess the unit of a value column from its header; interval meters default to kWh."""
    h = header.lower()
    words = set(h.replace('(', ' ').replace(')', ' ').replace('[', ' ').replace(']', ' ').split())

    if 'mwh' in h:
        return 'MWh'
    if 'mw' in h:
        return 'MW'
    if 'kvah' in h:
        return 'kVAh'
    if 'kva' in h:
        return 'kVA'
    if 'kwh' in h or 'energy' in h or 'consumption' in h:
        return 'kWh'
    if 'kw' in h:
        return 'kW'
    if 'wh' in h:
        return 'Wh'
    if 'w' in words or 'watt' in h:
        return 'W'
    if 'amp' in h or 'a' in words or 'current' in h:
        return 'A'
    return 'kWh'


def handle_negative_value(value, strategy='filter'):
    """Apply the negative-reading policy: 'filter' drops it, 'absolute' flips it, 'keep' keeps it."""
    if value >= 0:
        return value
    if strategy == 'filter':
        return None
    if strategy == 'absolute':
        return abs(value)
    if strategy == 'keep':
        return value
    raise ValueError(f"Unknown negative value strategy: {strategy}")


def round_to_standard_interval(minutes: float) -> int:
    return min(STANDARD_INTERVALS_MINUTES, key=lambda s: abs(minutes - s))


def estimate_data_interval(timestamps, sample_size=50) -> int:
    """
    Modal spacing between readings, snapped to a standard interval.

    Parameters:
    - timestamps (iterable of datetime): Parsed reading times.

    Returns:
    - int: Interval in minutes; 60 when it cannot be estimated.
    """
    stamps = pd.Series(pd.to_datetime(list(timestamps)[:sample_size])).sort_values()
    if len(stamps) < 2:
        return 60
    diffs = stamps.diff().dt.total_seconds().div(60).dropna()
    diffs = diffs[(diffs > 0) & (diffs <= 240)]
    if diffs.empty:
        return 60
    snapped = diffs.apply(round_to_standard_interval)
    return int(snapped.value_counts().idxmax())


def correct_profile_for_interval(profile, interval_minutes=None) -> List[float]:
    """
    Reduce a stored profile to 24 hourly kW values.

    48- and 96-value profiles (half-hourly and quarter-hourly) are averaged per hour.
    A 24-value profile built from raw 30- or 15-minute energy readings is divided
    by 2 or 4 to express energy per hour slot as kW. Other lengths are bucket-averaged.
    """
    values = np.asarray(profile, dtype=float)
    if values.size == 0:
        return []
    if values.size == HOURS_PER_DAY:
        if interval_minutes in (30, 15):
            return (values / (60 // interval_minutes)).tolist()
        return values.tolist()
    if values.size % HOURS_PER_DAY == 0:
        return values.reshape(HOURS_PER_DAY, -1).mean(axis=1).tolist()

    buckets = np.array_split(values, HOURS_PER_DAY)
    logging.warning(f"Profile with {values.size} values resampled to {HOURS_PER_DAY} hourly buckets")
    return [float(b.mean()) if b.size else 0.0 for b in buckets]


def detect_columns(headers) -> Dict[str, Optional[int]]:
    """Locate date, time, value and meter-id columns by header keywords."""
    lower = [str(h).lower().strip() for h in headers]
    found = {'date': None, 'time': None, 'value': None, 'meter_id': None}

    for i, h in enumerate(lower):
        if found['date'] is None and any(p in h for p in DATE_HEADER_PATTERNS):
            found['date'] = i
        if found['time'] is None and any(h == p or (p in h and 'date' not in h) for p in TIME_HEADER_PATTERNS):
            found['time'] = i
        if found['value'] is None and any(p in h for p in VALUE_HEADER_PATTERNS):
            found['value'] = i
        if found['meter_id'] is None and any(p in h for p in METER_HEADER_PATTERNS):
            found['meter_id'] = i

    if found['date'] is None:
        found['date'] = 0
    if found['value'] is None:
        found['value'] = 1 if len(headers) > 1 else 0
    return found


_UNIT_SUFFIX = re.compile(r'\s*(k|m)?(wh|w|vah|va|a)\s*$', re.I)
_COMMA_THOUSANDS = re.compile(r'^[-+]?\d{1,3}(,\d{3})+\.\d+$|^[-+]?\d{1,3}(,\d{3}){2,}$')


def _to_float(text) -> Optional[float]:
    """
    Parse a meter value. Returns None when the text is not a number or is ambiguous.

    Unit suffixes ("12.5 kWh") and space or comma thousands separators ("1,234.5",
    "1 234") are accepted. A lone comma ("12,5" or "1,234") could be a decimal or a
    thousands separator and is rejected rather than guessed.
    """
    if isinstance(text, (int, float, np.number)):
        return None if pd.isna(text) else float(text)
    if text is None:
        return None
    cleaned = str(text).strip()
    try:
        value = float(cleaned)
    except ValueError:
        cleaned = _UNIT_SUFFIX.sub('', cleaned)
        cleaned = re.sub(r'(?<=\d)\s(?=\d{3}\b)', '', cleaned)
        if _COMMA_THOUSANDS.match(cleaned):
            cleaned = cleaned.replace(',', '')
        try:
            value = float(cleaned)
        except ValueError:
            return None
    return value if math.isfinite(value) else None


def parse_readings(rows, date_format=DATE_FORMAT_DMY, unit='kWh', negative_strategy='filter',
                   cumulative=False, interval_minutes=None) -> Tuple[pd.DataFrame, ImportReport]:
    """
    Convert raw rows into timestamped kW readings.

    Parameters:
    - rows (iterable): (date, time, value) tuples; time may be None.
    - date_format (str): "DMY" or "MDY".
    - unit (str): Unit of the value column (power or energy per interval).
    - negative_strategy (str): 'filter', 'absolute' or 'keep'.
    - cumulative (bool): Values are register readings; convert to per-interval deltas.
    - interval_minutes (int or None): Reading interval; estimated when omitted.

    Returns:
    - (DataFrame, ImportReport): Columns 'timestamp', 'kw', 'kwh', sorted by time.
    """
    if unit not in POWER_UNITS + ENERGY_UNITS:
        logging.error(f"Unsupported meter unit: {unit}")
        raise ValueError(f"Unsupported meter unit: {unit}")

    report = ImportReport()
    parsed = []
    previous_raw = None

    for line_no, row in enumerate(rows, start=1):
        report.total_rows += 1
        date_str, time_str, raw_value = (tuple(row) + (None, None, None))[:3]

        timestamp = parse_date(date_str, time_str, date_format)
        if timestamp is None:
            report.add_error(f"Line {line_no}: invalid date {date_str!r}")
            continue

        value = _to_float(raw_value)
        if value is None:
            report.add_error(f"Line {line_no}: invalid value {raw_value!r}")
            continue

        if cumulative:
            register = value
            if previous_raw is None:
                previous_raw = register
                continue
            value = calculate_delta(previous_raw, register)
            if register < previous_raw and value == register:
                report.rollovers += 1
            previous_raw = register

        if value < 0:
            report.negative_values += 1
            value = handle_negative_value(value, negative_strategy)
            if value is None:
                report.skipped_rows += 1
                continue

        parsed.append((timestamp, value))
        report.processed_rows += 1

    if report.skipped_rows:
        logging.warning(f"Skipped {report.skipped_rows} of {report.total_rows} rows during import")

    readings = pd.DataFrame(parsed, columns=['timestamp', 'value'])
    readings['timestamp'] = pd.to_datetime(readings['timestamp'])
    readings = readings.sort_values('timestamp').reset_index(drop=True)

    if interval_minutes is None:
        interval_minutes = estimate_data_interval(readings['timestamp'])
    hours_per_reading = interval_minutes / 60

    if unit in ENERGY_UNITS:
        readings['kwh'] = readings['value'].apply(lambda v: convert_to_kwh(v, unit))
        readings['kw'] = readings['kwh'] / hours_per_reading
    else:
        readings['kw'] = readings['value'].apply(lambda v: convert_to_kw(v, unit))
        readings['kwh'] = readings['kw'] * hours_per_reading

    readings = readings[['timestamp', 'kw', 'kwh']]
    readings.attrs['interval_minutes'] = interval_minutes
    return readings, report


def read_meter_csv(path, date_format=DATE_FORMAT_DMY, unit=None, **kwargs) -> Tuple[pd.DataFrame, ImportReport]:
    """Read a meter export with pandas, detect its columns and parse the readings."""
    try:
        frame = pd.read_csv(path, sep=None, engine='python', dtype=str)
    except Exception as e:
        logging.error(f"Error reading meter file {path}: {e}", exc_info=True)
        raise

    columns = detect_columns(list(frame.columns))
    value_header = frame.columns[columns['value']]
    unit = unit or detect_unit_from_header(value_header)
    logging.info(f"Reading {path}: value column '{value_header}' in {unit}")

    dates = frame.iloc[:, columns['date']]
    times = frame.iloc[:, columns['time']] if columns['time'] is not None and columns['time'] != columns['date'] else [None] * len(frame)
    values = frame.iloc[:, columns['value']]
    return parse_readings(zip(dates, times, values), date_format=date_format, unit=unit, **kwargs)


def build_meter_profile(readings: pd.DataFrame) -> Dict:
    """
    Summarise readings into average weekday and weekend kW per hour of day.

    Parameters:
    - readings (DataFrame): Output of parse_readings.

    Returns:
    - dict: weekday/weekend profiles, day counts, totals and date range.
    """
    if readings.empty:
        return {
            'weekday_profile': [0.0] * HOURS_PER_DAY,
            'weekend_profile': [0.0] * HOURS_PER_DAY,
            'weekday_days': 0,
            'weekend_days': 0,
            'total_kwh': 0.0,
            'peak_kw': 0.0,
            'average_kw': 0.0,
            'date_range': (None, None),
            'data_points': 0,
        }

    df = readings.copy()
    df['date'] = df['timestamp'].dt.date
    df['hour'] = df['timestamp'].dt.hour
    df['is_weekend'] = df['timestamp'].dt.dayofweek >= 5

    profiles = {}
    for is_weekend, label in ((False, 'weekday_profile'), (True, 'weekend_profile')):
        subset = df[df['is_weekend'] == is_weekend]
        hourly = subset.groupby('hour')['kw'].mean().reindex(range(HOURS_PER_DAY), fill_value=0.0)
        profiles[label] = hourly.fillna(0.0).tolist()

    days = df.drop_duplicates('date')
    return {
        **profiles,
        'weekday_days': int((~days['is_weekend']).sum()),
        'weekend_days': int(days['is_weekend'].sum()),
        'total_kwh': float(df['kwh'].sum()),
        'peak_kw': float(df['kw'].max()),
        'average_kw': float(df['kw'].mean()),
        'date_range': (df['date'].min(), df['date'].max()),
        'data_points': int(len(df)),
    }


def daily_hourly_profiles(readings: pd.DataFrame, area_scale=1.0) -> pd.DataFrame:
    """Per-date 24-hour kW arrays (readings within an hour are averaged)."""
    if readings.empty:
        return pd.DataFrame(columns=range(HOURS_PER_DAY), dtype=float)
    df = readings.assign(date=readings['timestamp'].dt.date, hour=readings['timestamp'].dt.hour)
    daily = df.pivot_table(index='date', columns='hour', values='kw', aggfunc='mean')
    daily = daily.reindex(columns=range(HOURS_PER_DAY)).fillna(0.0)
    return daily * area_scale


def build_meter_import(meter_id, site_name, readings: pd.DataFrame, shop_name=None, shop_number=None,
                       meter_label=None, area_sqm=None) -> MeterImport:
    """
    Validate parsed readings and freeze them into a MeterImport.

    An invalid profile is still returned (flagged) so the resolver can fall back
    to another data source.
    """
    summary = build_meter_profile(readings)
    check = validate_profile(summary['weekday_profile'] + summary['weekend_profile'],
                             data_points=summary['data_points'])
    for warning in check.warnings:
        logging.warning(f"Meter {meter_id} ({site_name}): {warning}")

    start, end = summary['date_range']
    meter = MeterImport(
        id=str(meter_id),
        site_name=site_name,
        shop_name=shop_name,
        shop_number=shop_number,
        meter_label=meter_label,
        load_profile_weekday=summary['weekday_profile'],
        load_profile_weekend=summary['weekend_profile'],
        weekday_days=summary['weekday_days'],
        weekend_days=summary['weekend_days'],
        area_sqm=area_sqm,
        detected_interval_minutes=readings.attrs.get('interval_minutes'),
        date_range_start=start,
        date_range_end=end,
        data_points=summary['data_points'],
        total_kwh=summary['total_kwh'],
        peak_kw=summary['peak_kw'],
        is_valid=not check.is_invalid,
        warnings=tuple(check.warnings),
        readings=readings,
    )
    logging.info(f"Imported meter {meter_id}: {summary['data_points']} readings, "
                 f"{meter.weekday_days} weekdays, {meter.weekend_days} weekend days")
    return meter


def create_meter_import(meter_id, site_name, rows, date_format=DATE_FORMAT_DMY, unit='kWh',
                        negative_strategy='filter', cumulative=False, interval_minutes=None,
                        shop_name=None, shop_number=None, meter_label=None,
                        area_sqm=None) -> Tuple[MeterImport, ImportReport]:
    """Import one meter's (date, time, value) rows into a MeterImport and its ImportReport."""
    readings, report = parse_readings(rows, date_format=date_format, unit=unit,
                                      negative_strategy=negative_strategy, cumulative=cumulative,
                                      interval_minutes=interval_minutes)
    meter = build_meter_import(meter_id, site_name, readings, shop_name=shop_name, shop_number=shop_number,
                               meter_label=meter_label, area_sqm=area_sqm)
    return meter, report


def import_meter_file(path, meter_id, site_name, date_format=DATE_FORMAT_DMY, unit=None, shop_name=None,
                      shop_number=None, meter_label=None, area_sqm=None,
                      **kwargs) -> Tuple[MeterImport, ImportReport]:
    """Read a meter CSV export and freeze it into a MeterImport."""
    readings, report = read_meter_csv(path, date_format=date_format, unit=unit, **kwargs)
    if report.skipped_rows:
        logging.warning(f"Meter file {path}: skipped {report.skipped_rows} of {report.total_rows} rows")
    meter = build_meter_import(meter_id, site_name, readings, shop_name=shop_name, shop_number=shop_number,
                               meter_label=meter_label, area_sqm=area_sqm)
    return meter, report
