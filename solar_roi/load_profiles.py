"""
Tenant load resolution and site aggregation.

Each tenant gets exactly one data source, chosen in priority order:
stacked meters, a single assigned meter, then a shop-type estimate. Floor area
scales a profile but never decides whether a tenant has data.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .constants import (
    HOURS_PER_DAY,
    DAYS_PER_MONTH,
    DAY_MULTIPLIERS,
    WEEKEND_DAYS,
    DEFAULT_PROFILE_PERCENT,
    DEFAULT_KWH_PER_SQM_MONTH,
    SHOP_TYPE_WEEKEND_FACTOR,
    SITE_OUTAGE_THRESHOLD_KW,
    DEFAULT_POWER_FACTOR,
)
from .meter_data import daily_hourly_profiles
from .models import MeterImport, ShopTypeTemplate, StackedProfile, Tenant
from .validation import validate_profile, remove_outlier_days

SOURCE_STACKED = 'stacked'
SOURCE_METER = 'meter'
SOURCE_SHOP_TYPE = 'shop_type'
SOURCE_NONE = 'no_data'

ALL_DAYS = tuple(range(7))


# ==============================================
# Data sources
# ==============================================

@dataclass(frozen=True)
class StackedMeterSource:
    """Weighted average of several meters, expressed per square meter of each meter."""
    profile: StackedProfile
    meters: Tuple[Tuple[MeterImport, float], ...]
    kind: str = SOURCE_STACKED


@dataclass(frozen=True)
class SingleMeterSource:
    meter: MeterImport
    kind: str = SOURCE_METER


@dataclass(frozen=True)
class ShopTypeSource:
    """Area-based estimate; template is None when the default intensity and flat shape apply."""
    template: Optional[ShopTypeTemplate]
    monthly_kwh: float
    kind: str = SOURCE_SHOP_TYPE


DataSource = Union[StackedMeterSource, SingleMeterSource, ShopTypeSource]


@dataclass
class ProfileCatalog:
    """Reference data the resolver looks tenants' sources up in."""
    meters: Dict[str, MeterImport] = field(default_factory=dict)
    shop_types: Dict[str, ShopTypeTemplate] = field(default_factory=dict)
    stacked_profiles: Dict[str, StackedProfile] = field(default_factory=dict)

    @classmethod
    def from_items(cls, meters=(), shop_types=(), stacked_profiles=()) -> "ProfileCatalog":
        return cls(
            meters={m.id: m for m in meters},
            shop_types={s.id: s for s in shop_types},
            stacked_profiles={p.id: p for p in stacked_profiles},
        )


@dataclass
class TenantLoad:
    """
    Resolved consumption for one tenant over the selected day window.

    source is 'no_data' when the tenant has no viable source. Such a tenant adds
    nothing to site totals but stays visible with its warnings.
    """
    tenant_id: str
    name: str
    source: str
    hourly_kw: np.ndarray
    daily_kwh: float
    weekday_daily_kwh: float = 0.0
    weekend_daily_kwh: float = 0.0
    area_scale: float = 1.0
    day_multiplier: float = 1.0
    warnings: List[str] = field(default_factory=list)

    @property
    def included(self) -> bool:
        return self.source != SOURCE_NONE


def day_multiplier(selected_days: Iterable[int]) -> Tuple[float, bool]:
    """
    Average consumption multiplier over a set of weekdays.

    Parameters:
    - selected_days (iterable of int): 0 = Monday ... 6 = Sunday.

    Returns:
    - (float, bool): Mean multiplier and whether every selected day is a weekend day.
    """
    days = sorted(set(selected_days))
    if not days:
        raise ValueError("At least one day must be selected")
    invalid = [d for d in days if d not in DAY_MULTIPLIERS]
    if invalid:
        raise ValueError(f"Invalid weekday indices: {invalid}")
    multiplier = sum(DAY_MULTIPLIERS[d] for d in days) / len(days)
    return multiplier, all(d in WEEKEND_DAYS for d in days)


def _meter_shape(meter: MeterImport, weekend: bool) -> np.ndarray:
    if weekend and meter.load_profile_weekend and any(v > 0 for v in meter.load_profile_weekend):
        return np.asarray(meter.load_profile_weekend, dtype=float)
    return np.asarray(meter.load_profile_weekday, dtype=float)


def _meter_problems(meter: MeterImport) -> List[str]:
    """Validation warnings that make a meter unusable; empty when usable."""
    if not meter.has_profile:
        return [f"meter {meter.id} has no usable profile"]
    check = validate_profile(list(meter.load_profile_weekday) + list(meter.load_profile_weekend))
    if check.is_invalid:
        return [f"meter {meter.id}: {w}" for w in check.warnings]
    return []


def select_data_source(tenant: Tenant, catalog: ProfileCatalog) -> Tuple[Optional[DataSource], List[str]]:
    """
    Choose a tenant's data source, falling through paths that are not viable.

    Returns:
    - (DataSource or None, list of str): Source and the reasons earlier paths were skipped.
    """
    warnings = []
    area = tenant.area_sqm or 0.0

    # Path 1: stacked meters
    if tenant.stacked_profile_id:
        stacked = catalog.stacked_profiles.get(tenant.stacked_profile_id)
        if stacked is None:
            warnings.append(f"stacked profile {tenant.stacked_profile_id} not found")
        elif len(stacked.meters) >= 2:
            if area <= 0:
                warnings.append("stacked profile needs a floor area to scale to; skipped")
            else:
                usable = []
                for entry in stacked.meters:
                    meter = catalog.meters.get(entry.meter_import_id)
                    if meter is None:
                        warnings.append(f"meter {entry.meter_import_id} in stacked profile not found")
                        continue
                    if not meter.area_sqm or meter.area_sqm <= 0:
                        warnings.append(f"meter {meter.id} has no reference area; left out of stacked average")
                        continue
                    problems = _meter_problems(meter)
                    if problems:
                        warnings.extend(problems)
                        continue
                    usable.append((meter, entry.weight if entry.weight > 0 else 1.0))
                if usable:
                    return StackedMeterSource(stacked, tuple(usable)), warnings
                warnings.append("no usable meters in stacked profile")
        elif stacked.meters and not tenant.meter_import_id:
            # A single-meter stack is an assigned meter
            meter = catalog.meters.get(stacked.meters[0].meter_import_id)
            if meter is not None:
                problems = _meter_problems(meter)
                if not problems:
                    return SingleMeterSource(meter), warnings
                warnings.extend(problems)

    # Path 2: directly assigned meter
    if tenant.meter_import_id:
        meter = catalog.meters.get(tenant.meter_import_id)
        if meter is None:
            warnings.append(f"assigned meter {tenant.meter_import_id} not found")
        else:
            problems = _meter_problems(meter)
            if not problems:
                return SingleMeterSource(meter), warnings
            warnings.extend(problems)
            warnings.append("assigned meter profile rejected; falling back to estimate")

    # Path 3: shop-type estimate
    if area <= 0:
        warnings.append("no floor area for a shop-type estimate")
        return None, warnings

    template = None
    if tenant.shop_type_id:
        template = catalog.shop_types.get(tenant.shop_type_id)
        if template is None:
            warnings.append(f"shop type {tenant.shop_type_id} not found; using default intensity")
    intensity = template.kwh_per_sqm_month if template else DEFAULT_KWH_PER_SQM_MONTH
    monthly_kwh = tenant.monthly_kwh_override or intensity * area
    return ShopTypeSource(template, monthly_kwh), warnings


def _stacked_kw_per_sqm(source: StackedMeterSource, weekend: bool) -> np.ndarray:
    total_weight = sum(w for _, w in source.meters)
    per_sqm = np.zeros(HOURS_PER_DAY)
    for meter, weight in source.meters:
        per_sqm += _meter_shape(meter, weekend) / meter.area_sqm * (weight / total_weight)
    return per_sqm


def _template_shape(template: Optional[ShopTypeTemplate], weekend: bool) -> np.ndarray:
    if template is not None:
        if weekend and len(template.load_profile_weekend) == HOURS_PER_DAY:
            return np.asarray(template.load_profile_weekend, dtype=float)
        if len(template.load_profile_weekday) == HOURS_PER_DAY:
            return np.asarray(template.load_profile_weekday, dtype=float)
    return np.asarray(DEFAULT_PROFILE_PERCENT, dtype=float)


def meter_area_scale(tenant: Tenant, meter: MeterImport) -> float:
    """tenant area / meter reference area; 1 when the tenant has no area (raw readings apply)."""
    area = tenant.area_sqm or 0.0
    if area <= 0:
        return 1.0
    reference = meter.area_sqm if meter.area_sqm and meter.area_sqm > 0 else area
    return area / reference


def resolve_tenant_load(tenant: Tenant, catalog: ProfileCatalog, selected_days=ALL_DAYS) -> TenantLoad:
    """
    Produce 24 hourly kW values and a daily kWh total for one tenant.

    Parameters:
    - tenant (Tenant): The tenant to resolve.
    - catalog (ProfileCatalog): Meters, shop types and stacked profiles.
    - selected_days (iterable of int): Reporting window, 0 = Monday ... 6 = Sunday.

    Returns:
    - TenantLoad: source 'no_data' with zero load when nothing viable exists.
    """
    multiplier, weekend = day_multiplier(selected_days)
    source, warnings = select_data_source(tenant, catalog)
    area = tenant.area_sqm or 0.0
    scale = 1.0

    if source is None:
        for w in warnings:
            logging.warning(f"Tenant '{tenant.name}': {w}")
        logging.warning(f"Tenant '{tenant.name}' excluded from totals: no viable data source")
        return TenantLoad(tenant.id, tenant.name, SOURCE_NONE, np.zeros(HOURS_PER_DAY), 0.0,
                          day_multiplier=multiplier, warnings=warnings)

    if isinstance(source, StackedMeterSource):
        scale = area
        hourly = _stacked_kw_per_sqm(source, weekend) * area * multiplier
        weekday_kwh = float(_stacked_kw_per_sqm(source, False).sum() * area)
        weekend_kwh = float(_stacked_kw_per_sqm(source, True).sum() * area)
    elif isinstance(source, SingleMeterSource):
        scale = meter_area_scale(tenant, source.meter)
        hourly = _meter_shape(source.meter, weekend) * scale * multiplier
        weekday_kwh = float(_meter_shape(source.meter, False).sum() * scale)
        weekend_kwh = float(_meter_shape(source.meter, True).sum() * scale)
    else:
        daily = source.monthly_kwh / DAYS_PER_MONTH
        hourly = daily * _template_shape(source.template, weekend) / 100 * multiplier
        weekday_kwh = daily
        weekend_kwh = daily * SHOP_TYPE_WEEKEND_FACTOR

    for w in warnings:
        logging.warning(f"Tenant '{tenant.name}': {w}")
    logging.debug(f"Tenant '{tenant.name}' resolved from {source.kind}: {hourly.sum():.1f} kWh/day")

    return TenantLoad(
        tenant_id=tenant.id,
        name=tenant.name,
        source=source.kind,
        hourly_kw=hourly,
        daily_kwh=float(hourly.sum()),
        weekday_daily_kwh=weekday_kwh,
        weekend_daily_kwh=weekend_kwh,
        area_scale=scale,
        day_multiplier=multiplier,
        warnings=warnings,
    )


# ==============================================
# Site aggregation
# ==============================================

@dataclass
class SiteProfile:
    """
    Site load over a typical day.

    hourly has one column per included tenant plus 'total', indexed by hour 0-23.
    """
    hourly: pd.DataFrame
    tenant_loads: List[TenantLoad]
    weekday_daily_kwh: float
    weekend_daily_kwh: float
    diversity_factor: float = 1.0

    @property
    def total(self) -> np.ndarray:
        return self.hourly['total'].to_numpy()

    @property
    def total_daily_kwh(self) -> float:
        return float(self.hourly['total'].sum())

    @property
    def peak_hour(self) -> int:
        return int(self.hourly['total'].idxmax())

    @property
    def peak_kw(self) -> float:
        return float(self.hourly['total'].max())

    @property
    def average_hourly_kw(self) -> float:
        return self.total_daily_kwh / HOURS_PER_DAY

    @property
    def load_factor(self) -> float:
        """Average over peak load, in percent."""
        return self.average_hourly_kw / self.peak_kw * 100 if self.peak_kw > 0 else 0.0

    @property
    def metered_count(self) -> int:
        return sum(1 for t in self.tenant_loads if t.source in (SOURCE_METER, SOURCE_STACKED))

    @property
    def estimated_count(self) -> int:
        return sum(1 for t in self.tenant_loads if t.source == SOURCE_SHOP_TYPE)

    @property
    def excluded(self) -> List[TenantLoad]:
        return [t for t in self.tenant_loads if not t.included]

    @property
    def warnings(self) -> Dict[str, List[str]]:
        return {t.name: t.warnings for t in self.tenant_loads if t.warnings}

    def to_kva(self, power_factor=DEFAULT_POWER_FACTOR) -> pd.DataFrame:
        return self.hourly / power_factor

    def summary(self) -> Dict:
        return {
            'total_daily_kwh': self.total_daily_kwh,
            'weekday_daily_kwh': self.weekday_daily_kwh,
            'weekend_daily_kwh': self.weekend_daily_kwh,
            'peak_hour': self.peak_hour,
            'peak_kw': self.peak_kw,
            'average_hourly_kw': self.average_hourly_kw,
            'load_factor_percent': self.load_factor,
            'metered_tenants': self.metered_count,
            'estimated_tenants': self.estimated_count,
            'excluded_tenants': [t.name for t in self.excluded],
            'warnings': self.warnings,
        }


def build_site_profile(tenants: Iterable[Tenant], catalog: ProfileCatalog, selected_days=ALL_DAYS,
                       diversity_factor=1.0) -> SiteProfile:
    """
    Resolve every tenant and stack the results into a site profile.

    Parameters:
    - tenants (iterable of Tenant): Tenants of the property.
    - catalog (ProfileCatalog): Reference data for the resolver.
    - selected_days (iterable of int): Reporting window, 0 = Monday ... 6 = Sunday.
    - diversity_factor (float): Coincidence factor applied to every hourly value
      and to the weekday and weekend daily totals.

    Returns:
    - SiteProfile
    """
    if not 0 < diversity_factor <= 1:
        raise ValueError(f"diversity_factor must be in (0, 1], got {diversity_factor}")

    loads = [resolve_tenant_load(t, catalog, selected_days) for t in tenants]

    columns = {}
    for load in loads:
        if not load.included:
            continue
        key = load.name if load.name not in columns else f"{load.name} ({load.tenant_id})"
        columns[key] = load.hourly_kw * diversity_factor

    hourly = pd.DataFrame(columns, index=pd.RangeIndex(HOURS_PER_DAY, name='hour'))
    hourly['total'] = hourly.sum(axis=1) if columns else 0.0

    profile = SiteProfile(
        hourly=hourly,
        tenant_loads=loads,
        weekday_daily_kwh=sum(l.weekday_daily_kwh for l in loads) * diversity_factor,
        weekend_daily_kwh=sum(l.weekend_daily_kwh for l in loads) * diversity_factor,
        diversity_factor=diversity_factor,
    )
    logging.info(f"Site profile: {profile.metered_count} metered, {profile.estimated_count} estimated, "
                 f"{len(profile.excluded)} excluded tenants; {profile.total_daily_kwh:,.0f} kWh/day, "
                 f"peak {profile.peak_kw:,.1f} kW at {profile.peak_hour:02d}:00")
    return profile


@dataclass
class SiteDailySeries:
    """Per-date site totals built from raw meter readings."""
    site: pd.DataFrame
    tenant_daily: Dict[str, pd.DataFrame]
    validated_date_count: int
    outlier_count: int

    def average_day(self, selected_days=ALL_DAYS) -> np.ndarray:
        """Mean 24-hour site kW over validated dates falling on the selected weekdays."""
        if self.site.empty:
            return np.zeros(HOURS_PER_DAY)
        weekdays = pd.to_datetime(pd.Series(self.site.index)).dt.dayofweek.to_numpy()
        mask = np.isin(weekdays, list(selected_days))
        if not mask.any():
            return np.zeros(HOURS_PER_DAY)
        return self.site.loc[mask].mean(axis=0).to_numpy()


def build_site_daily_series(tenants: Iterable[Tenant], catalog: ProfileCatalog,
                            outage_threshold_kw=SITE_OUTAGE_THRESHOLD_KW) -> SiteDailySeries:
    """
    Sum tenants' raw readings into site-level hourly kW per date.

    Only dates inside the range every metered tenant covers are kept, and dates
    whose site total is below outage_threshold_kw are treated as outages and skipped.
    Per-tenant outlier days are removed first.
    """
    tenant_daily = {}
    outlier_count = 0
    for tenant in tenants:
        meter = catalog.meters.get(tenant.meter_import_id) if tenant.meter_import_id else None
        if meter is None or meter.readings is None or meter.readings.empty:
            continue
        area = tenant.area_sqm or 0.0
        scale = area / meter.area_sqm if meter.area_sqm and meter.area_sqm > 0 and area > 0 else 1.0
        daily, removed = remove_outlier_days(daily_hourly_profiles(meter.readings, scale))
        outlier_count += removed
        if not daily.empty:
            tenant_daily[tenant.id] = daily

    if not tenant_daily:
        empty = pd.DataFrame(columns=range(HOURS_PER_DAY), dtype=float)
        return SiteDailySeries(empty, tenant_daily, 0, outlier_count)

    range_start = max(d.index.min() for d in tenant_daily.values())
    range_end = min(d.index.max() for d in tenant_daily.values())
    if range_start > range_end:
        logging.warning("Meter date ranges do not overlap; no site-level daily series")
        empty = pd.DataFrame(columns=range(HOURS_PER_DAY), dtype=float)
        return SiteDailySeries(empty, tenant_daily, 0, outlier_count)

    clipped = [d[(d.index >= range_start) & (d.index <= range_end)] for d in tenant_daily.values()]
    site = pd.concat(clipped).groupby(level=0).sum().sort_index()
    validated = len(site)

    outages = site.sum(axis=1) < outage_threshold_kw
    if outages.any():
        logging.info(f"Skipping {int(outages.sum())} outage day(s) below {outage_threshold_kw} kW site total")
    site = site.loc[~outages.values]

    logging.info(f"Site daily series: {len(site)} days from {range_start} to {range_end}")
    return SiteDailySeries(site, tenant_daily, validated, outlier_count)
