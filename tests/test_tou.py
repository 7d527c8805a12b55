from datetime import date

import numpy as np
import pytest

from solar_roi.models import DayType, Season, Tariff, TariffRate, TariffType, TimeOfUse, TOUPeriod
from solar_roi.tou import (
    calculate_annual_blended_rate,
    calculate_blended_solar_rate,
    calculate_ibt_cost,
    calculate_monthly_bill,
    calculate_tou_energy_cost,
    classify_hour,
    day_type_for_date,
    default_period_for_hour,
    hourly_periods,
    merge_tou_blocks,
    season_for_month,
    tou_boundaries,
)

PEAK, STANDARD, OFF_PEAK = TimeOfUse.PEAK, TimeOfUse.STANDARD, TimeOfUse.OFF_PEAK


@pytest.fixture
def low_season_periods():
    return [
        TOUPeriod(OFF_PEAK, DayType.WEEKDAY, Season.LOW, 0, 6, 1.0),
        TOUPeriod(PEAK, DayType.WEEKDAY, Season.LOW, 6, 10, 3.0, demand_charge_per_kva=150),
        TOUPeriod(STANDARD, DayType.WEEKDAY, Season.LOW, 10, 18, 2.0),
        TOUPeriod(OFF_PEAK, DayType.WEEKDAY, Season.LOW, 18, 24, 1.0),
        TOUPeriod(OFF_PEAK, DayType.SATURDAY, Season.ALL_YEAR, 0, 24, 1.0),
        TOUPeriod(OFF_PEAK, DayType.SUNDAY, Season.ALL_YEAR, 0, 24, 1.0),
    ]


def test_season_and_day_type():
    assert season_for_month(7) == Season.HIGH
    assert season_for_month(1) == Season.LOW
    assert day_type_for_date(date(2024, 1, 6)) == DayType.SATURDAY
    assert day_type_for_date(date(2024, 1, 7)) == DayType.SUNDAY
    assert day_type_for_date(date(2024, 1, 8)) == DayType.WEEKDAY


def test_classify_hour_returns_period_and_rate(low_season_periods):
    period = classify_hour(7, DayType.WEEKDAY, Season.LOW, low_season_periods)
    assert period.time_of_use == PEAK
    assert period.rate_per_kwh == 3.0
    assert classify_hour(7, DayType.WEEKDAY, Season.HIGH, low_season_periods) is None
    assert classify_hour(12, DayType.SATURDAY, Season.HIGH, low_season_periods).time_of_use == OFF_PEAK


@pytest.mark.parametrize("hour", [-1, 24, 3.5])
def test_classify_hour_rejects_bad_hour(hour, low_season_periods):
    with pytest.raises(ValueError):
        classify_hour(hour, DayType.WEEKDAY, Season.LOW, low_season_periods)


def test_default_schedule_high_season_weekday():
    assert default_period_for_hour(6, DayType.WEEKDAY, Season.HIGH) == PEAK
    assert default_period_for_hour(12, DayType.WEEKDAY, Season.HIGH) == OFF_PEAK
    assert default_period_for_hour(18, DayType.WEEKDAY, Season.HIGH) == PEAK
    assert default_period_for_hour(23, DayType.WEEKDAY, Season.HIGH) == OFF_PEAK
    assert all(p == OFF_PEAK for p in hourly_periods(DayType.SUNDAY, Season.LOW))


def test_adjacent_hours_merge_into_blocks(low_season_periods):
    labels = hourly_periods(DayType.WEEKDAY, Season.LOW, low_season_periods)
    blocks = merge_tou_blocks(labels)
    assert [(b.start_hour, b.end_hour, b.period) for b in blocks] == [
        (0, 6, OFF_PEAK), (6, 10, PEAK), (10, 18, STANDARD), (18, 24, OFF_PEAK),
    ]
    assert blocks[1].rate_per_kwh == 3.0


def test_split_tariff_rows_for_one_period_merge():
    periods = [
        TOUPeriod(OFF_PEAK, DayType.WEEKDAY, Season.ALL_YEAR, 0, 6, 1.0),
        TOUPeriod(PEAK, DayType.WEEKDAY, Season.ALL_YEAR, 6, 7, 3.0),
        TOUPeriod(PEAK, DayType.WEEKDAY, Season.ALL_YEAR, 7, 10, 3.0),
        TOUPeriod(OFF_PEAK, DayType.WEEKDAY, Season.ALL_YEAR, 10, 24, 1.0),
    ]
    labels = hourly_periods(DayType.WEEKDAY, Season.LOW, periods)
    assert tou_boundaries(labels) == [0, 6, 10]
    blocks = merge_tou_blocks(labels)
    assert [(b.start_hour, b.end_hour, b.period) for b in blocks] == [
        (0, 6, OFF_PEAK), (6, 10, PEAK), (10, 24, OFF_PEAK),
    ]


def test_boundaries_start_at_hour_zero():
    labels = [OFF_PEAK] * 24
    assert tou_boundaries(labels) == [0]
    labels[6:9] = [PEAK] * 3
    assert tou_boundaries(labels) == [0, 6, 9]


def test_unmatched_hours_form_their_own_block():
    periods = [TOUPeriod(PEAK, DayType.WEEKDAY, Season.ALL_YEAR, 8, 10, 3.0)]
    blocks = merge_tou_blocks(hourly_periods(DayType.WEEKDAY, Season.LOW, periods))
    assert [(b.start_hour, b.end_hour, b.period) for b in blocks] == [
        (0, 8, None), (8, 10, PEAK), (10, 24, None),
    ]


def test_blended_solar_rate_weights_by_solar_curve():
    rates = [TariffRate(3.0, PEAK, Season.LOW), TariffRate(2.0, STANDARD, Season.LOW),
             TariffRate(1.0, OFF_PEAK, Season.LOW)]
    result = calculate_blended_solar_rate(rates, Season.LOW)
    assert 2.0 < result['blended_rate'] < 3.0
    shares = sum(b['energy_percent'] for b in result['breakdown'])
    assert shares == pytest.approx(100)


def test_annual_blended_rate_fallbacks():
    assert calculate_annual_blended_rate([]) is None
    assert calculate_annual_blended_rate([TariffRate(2.5)]) == 2.5
    flat = [TariffRate(2.0, STANDARD, Season.LOW), TariffRate(2.0, STANDARD, Season.HIGH),
            TariffRate(2.0, PEAK, Season.LOW), TariffRate(2.0, PEAK, Season.HIGH),
            TariffRate(2.0, OFF_PEAK, Season.LOW), TariffRate(2.0, OFF_PEAK, Season.HIGH)]
    assert calculate_annual_blended_rate(flat) == pytest.approx(2.0)


def test_tou_energy_cost(low_season_periods):
    hourly = np.ones(24)
    result = calculate_tou_energy_cost(hourly, low_season_periods, DayType.WEEKDAY, Season.LOW)
    assert result['energy_cost'] == pytest.approx(12 * 1.0 + 4 * 3.0 + 8 * 2.0)
    assert result['kwh_by_period'][PEAK.value] == 4


def test_ibt_blocks_fill_in_order():
    rates = [TariffRate(2.0, block_start_kwh=600, block_end_kwh=None),
             TariffRate(1.0, block_start_kwh=0, block_end_kwh=600)]
    assert calculate_ibt_cost(1000, rates) == pytest.approx(600 * 1.0 + 400 * 2.0)
    assert calculate_ibt_cost(200, rates) == pytest.approx(200)


def test_monthly_bill_fixed_tariff():
    tariff = Tariff('Flat', TariffType.FIXED, rates=[TariffRate(2.0)], fixed_monthly_charge=500,
                    network_access_charge=100, demand_charge_per_kva=50)
    bill = calculate_monthly_bill(tariff, 1000, max_demand_kva=10)
    assert bill['energy_cost'] == 2000
    assert bill['demand_cost'] == 500
    assert bill['fixed_cost'] == 600
    assert bill['total_bill'] == 3100


def test_monthly_bill_tou_with_critical_peak(low_season_periods):
    tariff = Tariff('TOU', TariffType.TOU, periods=low_season_periods, demand_charge_per_kva=100,
                    critical_peak_rate=10.0, critical_peak_hours_per_month=72)
    bill = calculate_monthly_bill(tariff, 7200, max_demand_kva=50, weekday_percentage=100, season=Season.LOW)
    # Flat profile, weekdays only: 300 kWh/hour-slot per month
    assert bill['energy_cost'] == pytest.approx(300 * (12 * 1.0 + 4 * 3.0 + 8 * 2.0) + 720 * 10.0)
    assert bill['breakdown'][TimeOfUse.CRITICAL_PEAK.value] == pytest.approx(720)
    # Peak period carries the higher demand charge
    assert bill['demand_cost'] == pytest.approx(50 * 150)
    assert bill['season'] == Season.LOW.value


def test_monthly_bill_rejects_negative_consumption():
    with pytest.raises(ValueError):
        calculate_monthly_bill(Tariff('Flat', TariffType.FIXED, rates=[TariffRate(1.0)]), -1)
