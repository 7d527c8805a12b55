"""Hourly irradiance input: PVGIS TMY files, plain CSV series and typical-day reduction."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np
import pandas as pd
import pvlib

from .constants import HOURS_PER_DAY, HOURS_PER_YEAR


@dataclass
class IrradianceSeries:
    """8760 hourly GHI values (W/m²), optional ambient temperature and location metadata."""
    ghi: np.ndarray
    temp_air: Optional[np.ndarray] = None
    metadata: Dict = field(default_factory=dict)

    def __post_init__(self):
        self.ghi = np.asarray(self.ghi, dtype=float)
        if self.temp_air is not None:
            self.temp_air = np.asarray(self.temp_air, dtype=float)
            if self.temp_air.shape != self.ghi.shape:
                raise ValueError("temp_air must have the same length as ghi")

    @property
    def annual_ghi_kwh_m2(self) -> float:
        return float(np.clip(self.ghi, 0, None).sum() / 1000)

    def typical_day(self) -> np.ndarray:
        return typical_day(self.ghi)


def load_pvgis_tmy(path) -> IrradianceSeries:
    """
    Read a PVGIS TMY file (csv, json or epw-style basic output) with pvlib.

    Parameters:
    - path (str): Path to the downloaded TMY file.

    Returns:
    - IrradianceSeries: GHI and air temperature in file order, plus location metadata.
    """
    try:
        result = pvlib.iotools.read_pvgis_tmy(path, map_variables=True)
    except Exception as e:
        logging.error(f"Error reading PVGIS TMY file {path}: {e}", exc_info=True)
        raise

    data = result[0]
    metadata = result[-1] if isinstance(result[-1], dict) else {}
    if 'ghi' not in data.columns:
        logging.error(f"'ghi' column is missing in {path}")
        raise ValueError(f"'ghi' column is missing in {path}")

    ghi = data['ghi'].to_numpy(dtype=float)
    temp_air = data['temp_air'].to_numpy(dtype=float) if 'temp_air' in data.columns else None
    if len(ghi) != HOURS_PER_YEAR:
        logging.warning(f"TMY file has {len(ghi)} hours, expected {HOURS_PER_YEAR}")

    location = metadata.get('location', {}) if isinstance(metadata, dict) else {}
    logging.info(f"Loaded TMY data from {path}: {len(ghi)} hours, "
                 f"annual GHI {np.clip(ghi, 0, None).sum() / 1000:.0f} kWh/m²")
    return IrradianceSeries(ghi=ghi, temp_air=temp_air, metadata=dict(location))


def load_ghi_csv(path, ghi_column='ghi', temp_column='temp_air') -> IrradianceSeries:
    """Read an hourly GHI series from a CSV file with a header row."""
    try:
        df = pd.read_csv(path)
    except Exception as e:
        logging.error(f"Error reading irradiance CSV {path}: {e}", exc_info=True)
        raise

    if ghi_column not in df.columns:
        logging.error(f"'{ghi_column}' column is missing in {path}")
        raise ValueError(f"'{ghi_column}' column is missing in {path}")
    temp_air = df[temp_column].to_numpy(dtype=float) if temp_column in df.columns else None
    logging.info(f"Loaded {len(df)} hourly irradiance values from {path}")
    return IrradianceSeries(ghi=df[ghi_column].to_numpy(dtype=float), temp_air=temp_air)


def typical_day(hourly_values) -> np.ndarray:
    """
    Mean value for each hour of day across the series.

    The series must be a whole number of days; 8760 values give a 365-day average.
    """
    values = np.asarray(hourly_values, dtype=float)
    if values.size == 0 or values.size % HOURS_PER_DAY != 0:
        logging.error(f"Series of {values.size} values is not a whole number of days")
        raise ValueError(f"Series of {values.size} values is not a whole number of days")
    return values.reshape(-1, HOURS_PER_DAY).mean(axis=0)


def monthly_totals(hourly_values, year=2023) -> pd.Series:
    """Sum an 8760-hour series by calendar month of a non-leap year."""
    values = np.asarray(hourly_values, dtype=float)
    index = pd.date_range(f"{year}-01-01", periods=values.size, freq='h')
    return pd.Series(values, index=index).groupby(index.month).sum()
