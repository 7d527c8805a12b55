"""Quality checks for consumption profiles and daily meter series."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from .constants import (
    ZERO_EPSILON,
    OUTLIER_MEDIAN_MULTIPLE,
    OUTLIER_ABSOLUTE_CEILING,
    FLAT_LINE_CV_THRESHOLD,
    MIN_DATA_POINTS,
    OUTLIER_DAY_MIN_DAYS,
    OUTLIER_DAY_IQR_MULTIPLE,
    OUTLIER_DAY_MEDIAN_MULTIPLE,
)

NO_USAGE_WARNING = "no usage data"
FLAT_LINE_WARNING = "flat line: profile may not reflect real variability"


@dataclass
class ProfileValidation:
    is_invalid: bool = False
    warnings: List[str] = field(default_factory=list)
    is_all_zero: bool = False
    is_flat: bool = False
    outlier_indices: List[int] = field(default_factory=list)

    @property
    def has_outliers(self) -> bool:
        return bool(self.outlier_indices)


def validate_profile(values, reference_peak: Optional[float] = None, data_points: Optional[int] = None,
                     median_multiple=OUTLIER_MEDIAN_MULTIPLE, absolute_ceiling=OUTLIER_ABSOLUTE_CEILING,
                     flat_cv_threshold=FLAT_LINE_CV_THRESHOLD) -> ProfileValidation:
    """
    Classify a consumption series and collect warnings.

    Parameters:
    - values (sequence of float): 24 hourly values or a longer series.
    - reference_peak (float or None): Expected peak. When given, outliers are measured
      against it instead of the median of nonzero values.
    - data_points (int or None): Number of raw readings behind the profile.

    Returns:
    - ProfileValidation: verdict and warnings. Several rules may fire together.
    """
    result = ProfileValidation()
    arr = np.asarray(values, dtype=float)

    if arr.size == 0 or not np.any(np.abs(arr[np.isfinite(arr)]) > ZERO_EPSILON):
        result.is_invalid = True
        result.is_all_zero = True
        result.warnings.append(NO_USAGE_WARNING)
        return result

    if not np.all(np.isfinite(arr)):
        bad = int(np.flatnonzero(~np.isfinite(arr))[0])
        result.is_invalid = True
        result.warnings.append(f"non-numeric value at index {bad}")
        arr = np.where(np.isfinite(arr), arr, 0.0)

    # Magnitudes, so net or export meters with negative readings are judged by size
    magnitude = np.abs(arr)
    nonzero = magnitude[magnitude > ZERO_EPSILON]
    base = reference_peak if reference_peak and reference_peak > 0 else float(np.median(nonzero))
    threshold = median_multiple * base
    offending = np.flatnonzero((magnitude > threshold) | (magnitude > absolute_ceiling))
    if offending.size:
        result.is_invalid = True
        result.outlier_indices = offending.tolist()
        first = int(offending[0])
        result.warnings.append(
            f"outlier value {arr[first]:g} at index {first}"
            + (f" ({offending.size} outliers in total)" if offending.size > 1 else "")
        )

    mean = float(np.mean(arr))
    if mean > 0 and float(np.std(arr)) / mean < flat_cv_threshold:
        result.is_flat = True
        result.warnings.append(FLAT_LINE_WARNING)

    if data_points is not None and data_points < MIN_DATA_POINTS:
        result.warnings.append(f"only {data_points} data points; at least {MIN_DATA_POINTS} recommended")

    return result


def remove_outlier_days(daily: pd.DataFrame) -> Tuple[pd.DataFrame, int]:
    """
    Drop days whose total consumption is far outside the meter's normal range.

    A day is removed only if its total exceeds both Q3 + 3*IQR and 5x the median
    daily total. Needs at least 20 days; shorter series are returned unchanged.

    Parameters:
    - daily (DataFrame): One row per date, one column per hour.

    Returns:
    - (DataFrame, int): Filtered frame and number of removed days.
    """
    if len(daily) < OUTLIER_DAY_MIN_DAYS:
        return daily, 0

    totals = daily.sum(axis=1)
    q1, q3 = totals.quantile(0.25), totals.quantile(0.75)
    iqr = q3 - q1
    median = totals.median()
    outliers = (totals > q3 + OUTLIER_DAY_IQR_MULTIPLE * iqr) & (totals > OUTLIER_DAY_MEDIAN_MULTIPLE * median)

    removed = int(outliers.sum())
    if removed:
        logging.warning(f"Removed {removed} outlier day(s): {[str(d) for d in daily.index[outliers.values]]}")
    return daily.loc[~outliers.values], removed
