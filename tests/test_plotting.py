import os

from solar_roi.config import LossChainConfig, SystemCosts
from solar_roi.energy_simulation import run_energy_simulation
from solar_roi.financial import project_cashflows
from solar_roi.load_profiles import build_site_profile
from solar_roi.loss_chain import loss_breakdown
from solar_roi.models import Season, Tenant
from solar_roi import plotting
from solar_roi.plotting import (
    excluded_tenants_note,
    plot_cumulative_cashflow,
    plot_loss_waterfall,
    plot_site_load_profile,
)


def test_site_load_profile_plot(tmp_path, catalog):
    tenants = [Tenant('t1', 'Office', area_sqm=200, meter_import_id='m-office'),
               Tenant('t2', 'Grocer', area_sqm=100, shop_type_id='grocery')]
    site = build_site_profile(tenants, catalog, [2])
    path = plot_site_load_profile(site, str(tmp_path), solar_kw=[0.0] * 6 + [10.0] * 12 + [0.0] * 6,
                                  season=Season.HIGH)
    assert os.path.exists(path)


def test_site_load_profile_plot_skips_empty_site(tmp_path, catalog):
    site = build_site_profile([Tenant('t3', 'Vacant', area_sqm=0)], catalog, [2])
    assert plot_site_load_profile(site, str(tmp_path)) is None


def test_site_load_profile_plot_names_excluded_tenants(tmp_path, catalog, monkeypatch):
    tenants = [Tenant('t1', 'Office', area_sqm=200, meter_import_id='m-office'),
               Tenant('t3', 'Vacant', area_sqm=0)]
    site = build_site_profile(tenants, catalog, [2])
    assert excluded_tenants_note(site) == 'No data (excluded): Vacant'

    closed = []
    real_close = plotting.plt.close
    monkeypatch.setattr(plotting.plt, 'close', lambda fig=None: (closed.append(fig), real_close(fig)))
    assert os.path.exists(plot_site_load_profile(site, str(tmp_path)))
    texts = [t.get_text() for t in closed[0].axes[0].texts]
    assert 'No data (excluded): Vacant' in texts


def test_excluded_note_absent_when_every_tenant_has_data(catalog):
    site = build_site_profile([Tenant('t1', 'Office', area_sqm=200, meter_import_id='m-office')], catalog, [2])
    assert excluded_tenants_note(site) is None


def test_loss_waterfall_plot(tmp_path):
    path = plot_loss_waterfall(loss_breakdown(LossChainConfig()), str(tmp_path))
    assert os.path.basename(path) == 'loss_chain_waterfall.png'
    assert os.path.exists(path)
    assert plot_loss_waterfall([], str(tmp_path)) is None


def test_cumulative_cashflow_plot(tmp_path):
    energy = run_energy_simulation([10.0] * 24, [0.0] * 8 + [20.0] * 8 + [0.0] * 8)
    cashflows = project_cashflows(energy, SystemCosts(), 20, 0, rate_per_kwh=2.0)['cashflows']
    path = plot_cumulative_cashflow(cashflows, str(tmp_path))
    assert os.path.exists(path)
