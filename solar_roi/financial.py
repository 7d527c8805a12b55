"""Capital cost waterfall, tariff-based savings and lifetime cashflow metrics."""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np
import numpy_financial as npf
import pandas as pd

from .config import SystemCosts
from .constants import DAYS_PER_MONTH, DAYS_PER_YEAR, DEFAULT_POWER_FACTOR
from .energy_simulation import EnergySimulationResult
from .models import Tariff
from .tou import average_rate


def calculate_total_system_cost(system_costs: SystemCosts, solar_capacity_kwp, battery_capacity_kwh=0.0) -> Dict:
    """
    Total capital cost via the fixed fee waterfall.

    Fees are charged on the subtotal before fees; contingency is charged on the
    subtotal with fees. No intermediate value is rounded.

    Parameters:
    - system_costs (SystemCosts): Unit costs, add-on costs and fee percentages.
    - solar_capacity_kwp (float): Installed solar capacity.
    - battery_capacity_kwh (float): Installed battery capacity.

    Returns:
    - dict: Every stage of the waterfall, ending in 'total_capital_cost'.
    """
    if solar_capacity_kwp < 0 or battery_capacity_kwh < 0:
        logging.error("Solar and battery capacities must be non-negative")
        raise ValueError("Solar and battery capacities must be non-negative")

    solar_cost = solar_capacity_kwp * system_costs.solar_cost_per_kwp
    battery_cost = battery_capacity_kwh * system_costs.battery_cost_per_kwh
    base_cost = solar_cost + battery_cost
    additional_costs = system_costs.additional_costs
    subtotal_before_fees = base_cost + additional_costs
    professional_fees = subtotal_before_fees * system_costs.professional_fees_percent / 100
    project_management_fees = subtotal_before_fees * system_costs.project_management_percent / 100
    subtotal_with_fees = subtotal_before_fees + professional_fees + project_management_fees
    contingency = subtotal_with_fees * system_costs.contingency_percent / 100
    total_capital_cost = subtotal_with_fees + contingency

    logging.info(f"Capital cost: base R{base_cost:,.0f}, add-ons R{additional_costs:,.0f}, "
                 f"fees R{professional_fees + project_management_fees:,.0f}, "
                 f"contingency R{contingency:,.0f}, total R{total_capital_cost:,.0f}")

    return {
        'solar_cost': solar_cost,
        'battery_cost': battery_cost,
        'base_cost': base_cost,
        'additional_costs': additional_costs,
        'subtotal_before_fees': subtotal_before_fees,
        'professional_fees': professional_fees,
        'project_management_fees': project_management_fees,
        'subtotal_with_fees': subtotal_with_fees,
        'contingency': contingency,
        'total_capital_cost': total_capital_cost,
    }


def calculate_financials(energy: EnergySimulationResult, tariff: Tariff, system_costs: SystemCosts,
                         solar_capacity_kwp, battery_capacity_kwh, rate_per_kwh: Optional[float] = None) -> Dict:
    """
    Compare grid-only and with-solar costs for the simulated day.

    Demand charges are billed on kVA at a 0.9 power factor and pro-rated daily over
    a 30-day month. Monthly figures use 30 days, annual figures 365.

    Parameters:
    - energy (EnergySimulationResult): Daily energy flows.
    - tariff (Tariff): Applied tariff.
    - system_costs (SystemCosts): Costs and fee schedule.
    - solar_capacity_kwp (float): Installed solar capacity.
    - battery_capacity_kwh (float): Installed battery capacity.
    - rate_per_kwh (float, optional): Energy rate override; the tariff's blended rate otherwise.

    Returns:
    - dict: Costs, savings, payback and ROI plus the capital cost breakdown.
    """
    rate = rate_per_kwh if rate_per_kwh is not None else average_rate(tariff)
    daily_fixed = (tariff.fixed_monthly_charge + tariff.network_access_charge) / DAYS_PER_MONTH
    demand_charge = tariff.demand_charge_per_kva

    grid_only_energy = energy.total_load * rate
    grid_only_demand = energy.peak_load / DEFAULT_POWER_FACTOR * demand_charge / DAYS_PER_MONTH
    grid_only_daily = grid_only_energy + grid_only_demand + daily_fixed

    solar_energy = energy.total_grid_import * rate
    solar_demand = energy.peak_grid_import / DEFAULT_POWER_FACTOR * demand_charge / DAYS_PER_MONTH
    export_revenue = energy.total_grid_export * tariff.export_rate_per_kwh
    solar_daily = solar_energy + solar_demand + daily_fixed - export_revenue

    daily_savings = grid_only_daily - solar_daily
    annual_savings = daily_savings * DAYS_PER_YEAR
    grid_only_annual = grid_only_daily * DAYS_PER_YEAR

    capital = calculate_total_system_cost(system_costs, solar_capacity_kwp, battery_capacity_kwh)
    system_cost = capital['total_capital_cost']
    maintenance = system_costs.maintenance_per_year(solar_capacity_kwp, battery_capacity_kwh)
    net_annual_savings = annual_savings - maintenance

    payback_years = system_cost / net_annual_savings if net_annual_savings > 0 else float('inf')
    roi = net_annual_savings / system_cost * 100 if system_cost > 0 else 0.0

    logging.info(f"Tariff '{tariff.name}': annual savings R{annual_savings:,.0f}, "
                 f"payback {payback_years:.1f} years, ROI {roi:.1f}%")

    return {
        'tariff_name': tariff.name,
        'rate_per_kwh': rate,
        'grid_only_energy_cost': grid_only_energy,
        'grid_only_demand_cost': grid_only_demand,
        'grid_only_fixed_cost': daily_fixed,
        'grid_only_daily_cost': grid_only_daily,
        'grid_only_monthly_cost': grid_only_daily * DAYS_PER_MONTH,
        'grid_only_annual_cost': grid_only_annual,
        'solar_energy_cost': solar_energy,
        'solar_demand_cost': solar_demand,
        'solar_fixed_cost': daily_fixed,
        'solar_daily_cost': solar_daily,
        'solar_monthly_cost': solar_daily * DAYS_PER_MONTH,
        'solar_annual_cost': solar_daily * DAYS_PER_YEAR,
        'daily_export_revenue': export_revenue,
        'annual_export_revenue': export_revenue * DAYS_PER_YEAR,
        'daily_savings': daily_savings,
        'monthly_savings': daily_savings * DAYS_PER_MONTH,
        'annual_savings': annual_savings,
        'savings_percentage': annual_savings / grid_only_annual * 100 if grid_only_annual > 0 else 0.0,
        'maintenance_per_year': maintenance,
        'system_cost': system_cost,
        'payback_years': payback_years,
        'roi': roi,
        'capital_cost': capital,
    }


def compare_tariffs(energy: EnergySimulationResult, tariffs: Sequence[Tariff], system_costs: SystemCosts,
                    solar_capacity_kwp, battery_capacity_kwh) -> List[Dict]:
    """Run calculate_financials for each tariff against the same energy results."""
    return [calculate_financials(energy, t, system_costs, solar_capacity_kwp, battery_capacity_kwh)
            for t in tariffs]


def _payback(net_flows: pd.Series) -> float:
    """Year in which the cumulative flow turns positive, interpolated within the year."""
    cumulative = net_flows.cumsum()
    positive = cumulative[cumulative > 0]
    if positive.empty:
        return float('inf')
    payback_year = positive.index[0]
    if payback_year == 0:
        return 0.0
    last_negative = cumulative[payback_year - 1]
    year_flow = net_flows[payback_year]
    if year_flow == 0:
        return float(payback_year)
    return payback_year - 1 + (-last_negative / year_flow)


def project_cashflows(energy: EnergySimulationResult, system_costs: SystemCosts, solar_capacity_kwp,
                      battery_capacity_kwh, rate_per_kwh, demand_charge_per_kva=0.0,
                      export_rate_per_kwh=0.0, annual_degradation=0.5) -> Dict:
    """
    Project yearly cashflows over the project lifetime.

    Solar consumed on site earns the escalating energy rate, exports earn the export
    rate, and the peak reduction earns the demand charge for twelve months a year.
    Maintenance and insurance escalate with CPI. A one-off replacement is charged in
    the replacement year.

    Parameters:
    - energy (EnergySimulationResult): Representative day, scaled to a year.
    - system_costs (SystemCosts): Capital schedule and lifetime assumptions.
    - solar_capacity_kwp (float): Installed solar capacity.
    - battery_capacity_kwh (float): Installed battery capacity.
    - rate_per_kwh (float): Year-one energy rate (R/kWh).
    - demand_charge_per_kva (float): Year-one demand charge (R/kVA/month).
    - export_rate_per_kwh (float): Year-one export credit (R/kWh).
    - annual_degradation (float): Panel output loss per year after year one (percent).

    Returns:
    - dict: 'cashflows' DataFrame indexed by year (0 = investment) and 'financial_metrics'.
    """
    lifetime = int(system_costs.project_duration_years)
    if lifetime < 1:
        raise ValueError("project_duration_years must be at least 1")

    capital = calculate_total_system_cost(system_costs, solar_capacity_kwp, battery_capacity_kwh)
    initial_cost = capital['total_capital_cost']

    annual = energy.annual()
    self_consumed_kwh = (energy.total_solar_used + energy.total_battery_discharge) * DAYS_PER_YEAR
    export_kwh = annual['grid_export_kwh']
    production_kwh = annual['solar_kwh']
    demand_saving_kva = max(0.0, energy.peak_load - energy.peak_grid_import) / DEFAULT_POWER_FACTOR

    base_maintenance = system_costs.maintenance_per_year(solar_capacity_kwp, battery_capacity_kwh)
    base_insurance = initial_cost * system_costs.insurance_rate_percent / 100
    tariff_escalation = system_costs.electricity_inflation / 100
    cpi = system_costs.cpi / 100
    discount_rate = system_costs.lcoe_discount_rate / 100

    years = np.arange(0, lifetime + 1)
    cashflows = pd.DataFrame(index=years)
    cashflows.index.name = 'year'
    for column in ('production_kwh', 'energy_income', 'export_income', 'demand_income',
                   'maintenance', 'insurance', 'replacement', 'investment'):
        cashflows[column] = 0.0

    cashflows.loc[0, 'investment'] = -initial_cost

    for year in range(1, lifetime + 1):
        production_factor = max(0.0, 1 - (year - 1) * annual_degradation / 100)
        rate_index = (1 + tariff_escalation) ** (year - 1)
        cost_index = (1 + cpi) ** (year - 1)

        cashflows.loc[year, 'production_kwh'] = production_kwh * production_factor
        cashflows.loc[year, 'energy_income'] = self_consumed_kwh * production_factor * rate_per_kwh * rate_index
        cashflows.loc[year, 'export_income'] = export_kwh * production_factor * export_rate_per_kwh * rate_index
        cashflows.loc[year, 'demand_income'] = demand_saving_kva * demand_charge_per_kva * 12 * rate_index
        cashflows.loc[year, 'maintenance'] = -base_maintenance * cost_index
        cashflows.loc[year, 'insurance'] = -base_insurance * cost_index

        if system_costs.replacement_year and year == system_costs.replacement_year:
            replacement = system_costs.replacement_cost(solar_capacity_kwp, battery_capacity_kwh) * cost_index
            cashflows.loc[year, 'replacement'] = -replacement
            logging.info(f"Equipment replacement in year {year}: R{replacement:,.0f}")

    cashflows['total_income'] = cashflows[['energy_income', 'export_income', 'demand_income']].sum(axis=1)
    cashflows['total_costs'] = cashflows[['maintenance', 'insurance', 'replacement', 'investment']].sum(axis=1)
    cashflows['net_cash_flow'] = cashflows['total_income'] + cashflows['total_costs']  # costs are negative
    cashflows['cumulative_cash_flow'] = cashflows['net_cash_flow'].cumsum()
    discount_factors = (1 + discount_rate) ** cashflows.index.to_numpy()
    cashflows['discounted_cash_flow'] = cashflows['net_cash_flow'] / discount_factors
    cashflows['discounted_energy_kwh'] = cashflows['production_kwh'] / discount_factors

    npv = cashflows['discounted_cash_flow'].sum()
    values = cashflows['net_cash_flow'].to_numpy()
    irr = npf.irr(values)
    mirr = npf.mirr(values, system_costs.mirr_finance_rate / 100, system_costs.mirr_reinvestment_rate / 100)
    irr_percent = None if np.isnan(irr) else irr * 100
    mirr_percent = None if np.isnan(mirr) else mirr * 100

    discounted_costs = -(cashflows['total_costs'] / discount_factors).sum()
    discounted_energy = cashflows['discounted_energy_kwh'].sum()
    lcoe = discounted_costs / discounted_energy if discounted_energy > 0 else None

    financial_metrics = {
        'npv': npv,
        'irr_percent': irr_percent,
        'mirr_percent': mirr_percent,
        'payback_years': _payback(cashflows['net_cash_flow']),
        'discounted_payback_years': _payback(cashflows['discounted_cash_flow']),
        'lcoe_per_kwh': lcoe,
        'total_investment': initial_cost,
        'lifetime_production_kwh': cashflows['production_kwh'].sum(),
        'lifetime_income': cashflows['total_income'].sum(),
        'income_year1': cashflows.loc[1, 'total_income'],
        'operating_cost_year1': -(cashflows.loc[1, 'maintenance'] + cashflows.loc[1, 'insurance']),
    }

    logging.info("Financial Analysis Results:")
    logging.info(f"  NPV: R{npv:,.0f}")
    logging.info(f"  IRR: {irr_percent:.1f}%" if irr_percent is not None else "  IRR: n/a")
    logging.info(f"  Payback Period: {financial_metrics['payback_years']:.1f} years")
    if lcoe is not None:
        logging.info(f"  LCOE: R{lcoe:.3f}/kWh")

    return {'cashflows': cashflows, 'financial_metrics': financial_metrics, 'capital_cost': capital}
