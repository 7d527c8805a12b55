"""Timestamp parsing and cumulative meter-reading deltas for imported meter files."""

import logging
import re
from datetime import datetime
from typing import Optional

import pandas as pd

from .constants import ROLLOVER_DROP_FRACTION

DATE_FORMAT_DMY = "DMY"
DATE_FORMAT_MDY = "MDY"

_SEP = r"[/\-. ]"
_TIME = r"(?:[ T]+(\d{1,2}):(\d{2})(?::(\d{2}))?)?"

_ISO_PREFIX = re.compile(r"^\d{4}[-/]\d{1,2}[-/]\d{1,2}")
_DAY_FIRST = re.compile(rf"^(\d{{1,2}}){_SEP}(\d{{1,2}}){_SEP}(\d{{4}}){_TIME}$")
_YEAR_FIRST = re.compile(rf"^(\d{{4}}){_SEP}(\d{{1,2}}){_SEP}(\d{{1,2}}){_TIME}$")
_MONTH_NAME = re.compile(rf"^(\d{{1,2}}){_SEP}([A-Za-z]{{3}}){_SEP}(\d{{4}}|\d{{2}}){_TIME}$")

MONTH_ABBREVIATIONS = {
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'may': 5, 'jun': 6,
    'jul': 7, 'aug': 8, 'sep': 9, 'oct': 10, 'nov': 11, 'dec': 12,
}


def _build(year, month, day, hour, minute, second) -> Optional[datetime]:
    try:
        return datetime(int(year), int(month), int(day),
                        int(hour or 0), int(minute or 0), int(second or 0))
    except ValueError:
        return None


def _parse_native(text: str) -> Optional[datetime]:
    # Only year-first strings go to the general parser, so day/month order is never guessed
    if not _ISO_PREFIX.match(text):
        return None
    try:
        parsed = pd.to_datetime(text, format="ISO8601")
    except (ValueError, TypeError):
        return None
    if pd.isna(parsed):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_localize(None)
    return parsed.to_pydatetime()


def parse_date(date_str, time_str=None, date_format=DATE_FORMAT_DMY) -> Optional[datetime]:
    """
    Convert a textual meter timestamp into a naive local datetime.

    Formats are tried in order: year-first ISO via pandas, day-first numeric,
    year-first numeric, then day with a three-letter month name. Separators may be
    '/', '-', '.' or a space.

    Parameters:
    - date_str (str): Date text, optionally already containing the time.
    - time_str (str or None): Separate time column, H:MM[:SS].
    - date_format (str): "DMY" or "MDY". Decides the order of ambiguous numeric dates.

    Returns:
    - datetime or None: None when no format matches. Never raises for bad input.
    """
    if date_format not in (DATE_FORMAT_DMY, DATE_FORMAT_MDY):
        raise ValueError(f"date_format must be 'DMY' or 'MDY', got {date_format!r}")
    if date_str is None:
        return None

    text = str(date_str).strip()
    if time_str is not None and str(time_str).strip():
        text = f"{text} {str(time_str).strip()}"
    if not text:
        return None

    result = _parse_native(text)
    if result is not None:
        return result

    match = _DAY_FIRST.match(text)
    if match:
        first, second, year, hour, minute, sec = match.groups()
        day, month = (second, first) if date_format == DATE_FORMAT_MDY else (first, second)
        result = _build(year, month, day, hour, minute, sec)
        if result is not None:
            return result

    match = _YEAR_FIRST.match(text)
    if match:
        year, month, day, hour, minute, sec = match.groups()
        result = _build(year, month, day, hour, minute, sec)
        if result is not None:
            return result

    match = _MONTH_NAME.match(text)
    if match:
        day, month_name, year, hour, minute, sec = match.groups()
        month = MONTH_ABBREVIATIONS.get(month_name.lower())
        if month is not None:
            if len(year) == 2:
                year = 2000 + int(year)
            result = _build(year, month, day, hour, minute, sec)
            if result is not None:
                return result

    logging.debug(f"Unparseable timestamp: {text!r}")
    return None


def format_timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%S")


def calculate_delta(previous, current, rollover_fraction=ROLLOVER_DROP_FRACTION):
    """
    Usage between two consecutive cumulative register readings.

    A drop of more than `rollover_fraction` of the previous reading is a counter
    wrap: the register restarted from zero, so the new reading is the usage.
    A smaller drop is treated as a genuine decrease (meter correction or bad read)
    and yields 0.

    Examples: (90, 100) -> 10, (9999, 5) -> 5, (1000, 990) -> 0.
    """
    if not 0 < rollover_fraction <= 1:
        raise ValueError(f"rollover_fraction must be in (0, 1], got {rollover_fraction}")
    if current >= previous:
        return current - previous
    if previous - current > rollover_fraction * previous:
        logging.debug(f"Counter rollover detected: {previous} -> {current}")
        return current
    logging.warning(f"Cumulative reading decreased from {previous} to {current}; treating usage as 0")
    return 0.0
