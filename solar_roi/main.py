"""Command-line driver: project YAML in, load profile, generation and ROI results out."""

import argparse
import logging
import os
import sys

import numpy as np

from .config import BatteryConfig, SystemCosts, merge_loss_chain_config
from .energy_simulation import run_energy_simulation
from .financial import calculate_financials, compare_tariffs, project_cashflows
from .irradiance import load_ghi_csv, load_pvgis_tmy, typical_day
from .load_profiles import ALL_DAYS, ProfileCatalog, build_site_profile
from .loss_chain import clipping_summary, convert_tmy_to_solar_generation, hourly_temperature_loss, loss_breakdown
from .matching import match_names_to_meters
from .meter_data import import_meter_file
from .models import MeterImport, ShopTypeTemplate, StackedProfile, Tariff, Tenant
from .plotting import plot_cumulative_cashflow, plot_loss_waterfall, plot_site_load_profile
from .tou import average_rate
from .utils import load_config, save_summary, setup_logging


def load_meters(records, base_dir):
    """
    Build MeterImports from project records.

    A record with a 'file' key is read from CSV (relative to the project file);
    any other record is treated as a stored meter summary.
    """
    meters = []
    for record in records or []:
        if 'file' in record:
            path = record['file']
            if not os.path.isabs(path):
                path = os.path.join(base_dir, path)
            meter, _ = import_meter_file(
                path,
                meter_id=record['id'],
                site_name=record.get('site_name', ''),
                date_format=record.get('date_format', 'DMY'),
                unit=record.get('unit'),
                shop_name=record.get('shop_name'),
                shop_number=record.get('shop_number'),
                meter_label=record.get('meter_label'),
                area_sqm=record.get('area_sqm'),
            )
        else:
            meter = MeterImport.from_record(record)
        meters.append(meter)
    return meters


def auto_match_tenants(tenants, meters):
    """
    Assign imported meters to tenants by name.

    Only tenants without a meter or stacked profile are considered, and meters
    already assigned to another tenant are skipped. Each meter is used once; when
    several tenants share a name only the first one is matched.

    Parameters:
    - tenants (list of Tenant): Updated in place.
    - meters (list of MeterImport): Candidate meters.

    Returns:
    - dict: tenant id -> MatchResult for every assignment made.
    """
    taken = {t.meter_import_id for t in tenants if t.meter_import_id}
    open_tenants = [t for t in tenants if not t.meter_import_id and not t.stacked_profile_id]
    available = [m for m in meters if m.id not in taken]
    matches = match_names_to_meters(list(dict.fromkeys(t.name for t in open_tenants)), available)

    assigned = {}
    for tenant in open_tenants:
        match = matches.pop(tenant.name, None)
        if match is None:
            continue
        tenant.meter_import_id = match.meter_id
        assigned[tenant.id] = match
        logging.info(f"Tenant '{tenant.name}' matched to meter {match.meter_id} ('{match.meter_name}', "
                     f"{match.match_type}, {match.confidence}%)")
    logging.info(f"Auto-matched {len(assigned)} of {len(open_tenants)} unassigned tenants to meters")
    return assigned


def load_irradiance(args, solar_config, base_dir):
    tmy_file = args.tmy_file or solar_config.get('tmy_file')
    ghi_file = solar_config.get('ghi_csv')
    if tmy_file:
        return load_pvgis_tmy(tmy_file if os.path.isabs(tmy_file) else os.path.join(base_dir, tmy_file))
    if ghi_file:
        return load_ghi_csv(ghi_file if os.path.isabs(ghi_file) else os.path.join(base_dir, ghi_file))
    logging.error("No irradiance source: pass --tmy_file or set solar.tmy_file / solar.ghi_csv")
    raise ValueError("No irradiance source configured")


def main(argv=None):
    try:
        # -------------------- Step 1: Parse Command-Line Arguments --------------------
        parser = argparse.ArgumentParser(description='Commercial Solar PV and Battery ROI Analysis')
        parser.add_argument('--config_file', type=str, required=True, help='Path to the YAML project file')
        parser.add_argument('--output_dir', type=str, required=True, help='Directory to save results and plots')
        parser.add_argument('--tmy_file', type=str, default=None,
                            help='PVGIS TMY file (overrides solar.tmy_file in the project file)')
        parser.add_argument('--days', type=int, nargs='*', default=list(ALL_DAYS),
                            help='Weekdays in the reporting window, 0 = Monday ... 6 = Sunday (default: all)')
        parser.add_argument('--no_plots', action='store_true', help='Skip chart generation')
        args = parser.parse_args(argv)

        # -------------------- Step 2: Set Up Logging and Configuration --------------------
        setup_logging(args.output_dir)
        logging.info("=== COMMERCIAL SOLAR ROI ANALYSIS ===")
        config = load_config(args.config_file)
        base_dir = os.path.dirname(os.path.abspath(args.config_file))
        project = config.get('project', {})

        # -------------------- Step 3: Build Site Load Profile --------------------
        meters = load_meters(config.get('meters'), base_dir)
        tenants = [Tenant.from_record(r) for r in config.get('tenants', [])]
        meter_matches = {}
        if project.get('auto_match_meters', False):
            meter_matches = auto_match_tenants(tenants, meters)
        catalog = ProfileCatalog.from_items(
            meters=meters,
            shop_types=[ShopTypeTemplate.from_record(r) for r in config.get('shop_types', [])],
            stacked_profiles=[StackedProfile.from_record(r) for r in config.get('stacked_profiles', [])],
        )
        site = build_site_profile(tenants, catalog, selected_days=args.days,
                                  diversity_factor=project.get('diversity_factor', 1.0))
        for name, warnings in site.warnings.items():
            for warning in warnings:
                logging.warning(f"Tenant '{name}': {warning}")

        # -------------------- Step 4: Solar Generation Through the Loss Chain --------------------
        solar_config = config.get('solar', {})
        loss_config = merge_loss_chain_config(config.get('loss_chain'))
        irradiance = load_irradiance(args, solar_config, base_dir)

        temperature_loss = None
        if solar_config.get('dynamic_temperature', False) and irradiance.temp_air is not None:
            poa = irradiance.ghi * loss_config.transposition_factor
            temperature_loss = hourly_temperature_loss(irradiance.temp_air, poa, loss_config)

        generation = convert_tmy_to_solar_generation(
            irradiance.ghi,
            collector_area_m2=solar_config['collector_area_m2'],
            stc_efficiency=solar_config['stc_efficiency'],
            config=loss_config,
            reduction_factor=solar_config.get('reduction_factor', 1.0),
            max_ac_output_kw=solar_config.get('max_ac_output_kw'),
            hourly_temperature_loss=temperature_loss,
        )
        solar_day = typical_day(generation.ac_kwh)
        clipping = clipping_summary(generation)

        # -------------------- Step 5: Energy Simulation --------------------
        battery = BatteryConfig.from_dict(config.get('battery'))
        energy = run_energy_simulation(site.total, solar_day, battery)

        # -------------------- Step 6: Financial Analysis --------------------
        tariffs = [Tariff.from_record(r) for r in config.get('tariffs', [])]
        if not tariffs:
            logging.error("Project file defines no tariffs")
            raise ValueError("At least one tariff is required")
        tariff = tariffs[0]
        system_costs = SystemCosts.from_dict(config.get('system_costs'))
        solar_kwp = solar_config['capacity_kwp']

        financials = calculate_financials(energy, tariff, system_costs, solar_kwp, battery.capacity_kwh)
        comparison = compare_tariffs(energy, tariffs, system_costs, solar_kwp, battery.capacity_kwh)
        projection = project_cashflows(
            energy, system_costs, solar_kwp, battery.capacity_kwh,
            rate_per_kwh=average_rate(tariff),
            demand_charge_per_kva=tariff.demand_charge_per_kva,
            export_rate_per_kwh=tariff.export_rate_per_kwh,
            annual_degradation=loss_config.annual_degradation,
        )

        # -------------------- Step 7: Save Results --------------------
        site.hourly.to_csv(os.path.join(args.output_dir, 'site_profile.csv'))
        projection['cashflows'].to_csv(os.path.join(args.output_dir, 'cashflows.csv'))
        summary = {
            'project': project.get('name', os.path.basename(args.config_file)),
            'selected_days': list(args.days),
            'site': site.summary(),
            'meter_matches': {tid: vars(m) for tid, m in meter_matches.items()},
            'generation': {
                'annual_dc_kwh': generation.annual_dc_kwh,
                'annual_ac_kwh': generation.annual_ac_kwh,
                'inverter_loss_multiplier': generation.inverter_loss_multiplier,
                'typical_day_kwh': np.round(solar_day, 3).tolist(),
                'clipping': clipping,
            },
            'energy': {k: v for k, v in vars(energy).items() if k != 'hourly'},
            'financials': financials,
            'tariff_comparison': [
                {'tariff': r['tariff_name'], 'annual_savings': r['annual_savings'], 'payback_years': r['payback_years']}
                for r in comparison
            ],
            'lifetime': projection['financial_metrics'],
        }
        save_summary(summary, args.output_dir)

        # -------------------- Step 8: Plots --------------------
        if not args.no_plots:
            plot_site_load_profile(site, args.output_dir, solar_kw=solar_day)
            plot_loss_waterfall(loss_breakdown(loss_config), args.output_dir)
            plot_cumulative_cashflow(projection['cashflows'], args.output_dir)

        logging.info("Analysis completed successfully.")
        return 0

    except Exception as e:
        logging.error(f"An unexpected error occurred: {e}", exc_info=True)
        raise


if __name__ == '__main__':
    sys.exit(main())
