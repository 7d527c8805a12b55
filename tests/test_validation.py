import numpy as np
import pandas as pd

from solar_roi.validation import FLAT_LINE_WARNING, NO_USAGE_WARNING, remove_outlier_days, validate_profile


def test_all_zero_profile_is_invalid():
    result = validate_profile([0.0] * 24)
    assert result.is_invalid
    assert result.is_all_zero
    assert NO_USAGE_WARNING in result.warnings


def test_flat_profile_is_valid_with_warning():
    result = validate_profile([5.5] * 24)
    assert not result.is_invalid
    assert result.is_flat
    assert FLAT_LINE_WARNING in result.warnings


def test_single_huge_value_is_an_outlier():
    values = [10.0] * 24
    values[7] = 100000000
    result = validate_profile(values)
    assert result.is_invalid
    assert result.outlier_indices == [7]
    assert "index 7" in result.warnings[0]


def test_absolute_ceiling_applies_without_median_spike():
    result = validate_profile([20000.0] * 24)
    assert result.is_invalid
    assert result.has_outliers


def test_reference_peak_replaces_median():
    values = [1.0] * 23 + [500.0]
    assert not validate_profile(values).is_invalid
    assert validate_profile(values, reference_peak=0.1).is_invalid


def test_export_meter_with_negative_readings_has_no_outliers():
    result = validate_profile([-2.0] * 13 + [3.0] * 11)
    assert not result.is_invalid
    assert not result.has_outliers


def test_realistic_profile_has_no_warnings():
    values = [5, 5, 5, 5, 5, 6, 10, 18, 25, 28, 30, 30, 30, 29, 28, 27, 25, 20, 15, 10, 8, 6, 5, 5]
    result = validate_profile(values, data_points=720)
    assert not result.is_invalid
    assert result.warnings == []


def test_few_data_points_warns_only():
    values = np.linspace(1, 24, 24)
    result = validate_profile(values, data_points=12)
    assert not result.is_invalid
    assert any("12 data points" in w for w in result.warnings)


def test_nan_makes_profile_invalid():
    values = [1.0] * 24
    values[3] = float('nan')
    result = validate_profile(values)
    assert result.is_invalid
    assert "index 3" in result.warnings[0]


def _daily_frame(totals):
    index = pd.date_range('2024-01-01', periods=len(totals), freq='D').date
    return pd.DataFrame(np.outer(totals, np.ones(24) / 24), index=index, columns=range(24))


def test_outlier_day_removed():
    totals = [100.0 + (i % 5) for i in range(30)]
    totals[12] = 5000.0
    filtered, removed = remove_outlier_days(_daily_frame(totals))
    assert removed == 1
    assert len(filtered) == 29
    assert filtered.sum(axis=1).max() < 200


def test_short_series_is_untouched():
    totals = [100.0] * 10 + [5000.0]
    filtered, removed = remove_outlier_days(_daily_frame(totals))
    assert removed == 0
    assert len(filtered) == 11
