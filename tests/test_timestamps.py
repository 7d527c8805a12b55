from datetime import datetime

import pytest

from solar_roi.timestamps import calculate_delta, format_timestamp, parse_date


@pytest.mark.parametrize("date_str, time_str, expected", [
    ("2024-01-31 23:30", None, "2024-01-31T23:30:00"),
    ("31/01/2024 23:30", None, "2024-01-31T23:30:00"),
    ("31-Jan-24", "23:30", "2024-01-31T23:30:00"),
    ("2024.01.31 23:30:00", None, "2024-01-31T23:30:00"),
    ("31.01.2024", "07:05", "2024-01-31T07:05:00"),
    ("2024/01/31", "00:00", "2024-01-31T00:00:00"),
    ("5 Mar 2023 14:15", None, "2023-03-05T14:15:00"),
])
def test_supported_formats_reformat_to_iso(date_str, time_str, expected):
    assert format_timestamp(parse_date(date_str, time_str, "DMY")) == expected


def test_mdy_swaps_day_and_month():
    assert parse_date("02/03/2024", "10:00", "MDY") == datetime(2024, 2, 3, 10, 0)
    assert parse_date("02/03/2024", "10:00", "DMY") == datetime(2024, 3, 2, 10, 0)


def test_timezone_suffix_is_dropped():
    assert parse_date("2024-01-31T23:30:00+02:00") == datetime(2024, 1, 31, 23, 30)


@pytest.mark.parametrize("bad", ["", "not a date", "32/01/2024 10:00", "31-Foo-24", None, "2024-13-45"])
def test_unparseable_returns_none(bad):
    assert parse_date(bad) is None


def test_invalid_date_format_raises():
    with pytest.raises(ValueError):
        parse_date("31/01/2024", date_format="YMD")


def test_delta_monotonic_increase():
    assert calculate_delta(90, 100) == 10


def test_delta_rollover_returns_new_reading():
    assert calculate_delta(9999, 5) == 5


def test_delta_small_decrease_is_zero():
    assert calculate_delta(1000, 990) == 0


def test_delta_threshold_is_configurable():
    # A 30% drop is a wrap only when the threshold is below 30%
    assert calculate_delta(1000, 700) == 0
    assert calculate_delta(1000, 700, rollover_fraction=0.25) == 700
