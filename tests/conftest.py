from datetime import datetime, timedelta

import numpy as np
import pytest

from solar_roi.load_profiles import ProfileCatalog
from solar_roi.models import MeterImport, ShopTypeTemplate, StackedMeter, StackedProfile

OFFICE_SHAPE = [5, 5, 5, 5, 5, 6, 10, 18, 25, 28, 30, 30, 30, 29, 28, 27, 25, 20, 15, 10, 8, 6, 5, 5]
WEEKEND_SHAPE = [4, 4, 4, 4, 4, 4, 6, 10, 14, 16, 17, 17, 17, 16, 15, 14, 12, 10, 8, 6, 5, 4, 4, 4]


def make_meter(meter_id='m1', weekday=OFFICE_SHAPE, weekend=WEEKEND_SHAPE, area_sqm=None, **kwargs):
    return MeterImport(
        id=meter_id,
        site_name=kwargs.pop('site_name', 'Test Centre'),
        load_profile_weekday=weekday,
        load_profile_weekend=weekend,
        weekday_days=kwargs.pop('weekday_days', 20),
        weekend_days=kwargs.pop('weekend_days', 8),
        area_sqm=area_sqm,
        **kwargs,
    )


def hourly_rows(start=datetime(2024, 1, 1), days=28, shape=OFFICE_SHAPE):
    """(date, time, kWh) rows for hourly interval data, DMY dates."""
    rows = []
    for i in range(days * 24):
        ts = start + timedelta(hours=i)
        rows.append((ts.strftime('%d/%m/%Y'), ts.strftime('%H:%M'), str(shape[ts.hour])))
    return rows


@pytest.fixture
def office_meter():
    return make_meter('m-office', shop_name='Office Park', area_sqm=200)


@pytest.fixture
def grocery_template():
    return ShopTypeTemplate(id='grocery', name='Grocery', kwh_per_sqm_month=90)


@pytest.fixture
def catalog(office_meter, grocery_template):
    other = make_meter('m-other', weekday=[v * 2 for v in OFFICE_SHAPE],
                       weekend=[v * 2 for v in WEEKEND_SHAPE], area_sqm=400, shop_name='Bookshop')
    stacked = StackedProfile('s1', 'Offices', (StackedMeter('m-office'), StackedMeter('m-other')))
    return ProfileCatalog.from_items(meters=[office_meter, other], shop_types=[grocery_template],
                                     stacked_profiles=[stacked])


@pytest.fixture
def ghi_year():
    """A clear-sky-like 8760-hour GHI series with zero and negative night values."""
    day = np.array([-2, -1, 0, 0, 0, 10, 120, 300, 480, 640, 760, 830,
                    850, 820, 740, 620, 460, 280, 100, 5, 0, 0, -1, -2], dtype=float)
    return np.tile(day, 365)
