"""PNG charts for the site load, the loss chain and the lifetime cashflows."""

import logging
import os

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .load_profiles import SiteProfile
from .models import DayType, Season, TimeOfUse
from .tou import hourly_periods, merge_tou_blocks

TOU_COLORS = {
    TimeOfUse.PEAK: '#f4a6a6',
    TimeOfUse.STANDARD: '#f9e79f',
    TimeOfUse.OFF_PEAK: '#a9dfbf',
}


def excluded_tenants_note(profile: SiteProfile):
    """Caption naming tenants left out of the stack for lack of data, or None when all are drawn."""
    names = [load.name for load in profile.excluded]
    if not names:
        return None
    return "No data (excluded): " + ", ".join(names)


def plot_site_load_profile(profile: SiteProfile, output_dir, solar_kw=None, season=Season.LOW,
                           filename='site_load_profile.png'):
    """
    Stacked tenant loads over a typical day with TOU periods shaded behind them.

    Parameters:
    - profile (SiteProfile): Site profile with one column per tenant plus 'total'.
    - output_dir (str): Directory to save the plot.
    - solar_kw (array-like, optional): 24 hourly solar values drawn as a line.
    - season (Season): Season whose weekday TOU schedule is shaded.
    """
    tenants = profile.hourly.drop(columns=['total'])
    if tenants.empty:
        logging.warning("No included tenants to plot in the site load profile.")
        return None

    fig, ax = plt.subplots(figsize=(12, 6))

    # Each TOU block is shaded once, hours [start, end)
    for block in merge_tou_blocks(hourly_periods(DayType.WEEKDAY, season)):
        ax.axvspan(block.start_hour - 0.5, block.end_hour - 0.5,
                   color=TOU_COLORS.get(block.period, '#eeeeee'), alpha=0.35, lw=0)

    hours = np.arange(len(tenants))
    ax.stackplot(hours, tenants.T.to_numpy(), labels=list(tenants.columns), alpha=0.85)
    if solar_kw is not None:
        ax.plot(hours, solar_kw, color='black', linestyle='--', label='Solar (kW)')

    ax.set_xticks(hours)
    ax.set_xticklabels([f"{h:02d}:00" for h in hours], rotation=90)
    ax.set_title(f'Site Load Profile ({season.value} weekday TOU shading)')
    ax.set_xlabel('Hour of Day')
    ax.set_ylabel('Load (kW)')
    ax.legend(loc='upper left', fontsize='small', ncol=2)
    note = excluded_tenants_note(profile)
    if note:
        ax.text(0.99, 0.98, note, transform=ax.transAxes, ha='right', va='top', fontsize='small',
                bbox=dict(facecolor='white', alpha=0.8, edgecolor='#999999'))
    plt.tight_layout()

    plot_file = os.path.join(output_dir, filename)
    plt.savefig(plot_file, dpi=300, bbox_inches='tight')
    plt.close(fig)
    logging.info(f"Site load profile plot saved to {plot_file}")
    return plot_file


def plot_loss_waterfall(breakdown, output_dir, filename='loss_chain_waterfall.png'):
    """
    Remaining energy after each loss-chain stage.

    Parameters:
    - breakdown (list of dict): Output of loss_chain.loss_breakdown.
    - output_dir (str): Directory to save the plot.
    """
    df = pd.DataFrame(breakdown)
    if df.empty:
        logging.warning("Empty loss breakdown; skipping waterfall plot.")
        return None

    fig, ax = plt.subplots(figsize=(12, 6))
    remaining = df['remaining'] * 100
    previous = pd.concat([pd.Series([100.0]), remaining[:-1]], ignore_index=True)
    colors = np.where(df['loss_percent'] >= 0, 'tab:red', 'tab:green')
    ax.bar(df['name'], previous - remaining, bottom=remaining, color=colors)
    ax.plot(df['name'], remaining, color='black', marker='o', linewidth=1)
    ax.set_title('PV Loss Chain')
    ax.set_ylabel('Energy Remaining (%)')
    ax.set_ylim(max(0, remaining.min() - 5), 101)
    plt.xticks(rotation=60, ha='right')
    plt.tight_layout()

    plot_file = os.path.join(output_dir, filename)
    plt.savefig(plot_file, dpi=300, bbox_inches='tight')
    plt.close(fig)
    logging.info(f"Loss chain waterfall plot saved to {plot_file}")
    return plot_file


def plot_cumulative_cashflow(cashflows: pd.DataFrame, output_dir, filename='cumulative_cashflow.png'):
    """
    Yearly net cashflow bars with the cumulative position as a line.

    Parameters:
    - cashflows (DataFrame): Output of financial.project_cashflows, indexed by year.
    - output_dir (str): Directory to save the plot.
    """
    if cashflows.empty:
        logging.warning("No cashflows to plot.")
        return None

    fig, ax = plt.subplots(figsize=(12, 6))
    colors = np.where(cashflows['net_cash_flow'] >= 0, 'tab:green', 'tab:red')
    ax.bar(cashflows.index, cashflows['net_cash_flow'], color=colors, alpha=0.6, label='Net Cash Flow')
    ax.plot(cashflows.index, cashflows['cumulative_cash_flow'], color='navy', marker='o',
            label='Cumulative Cash Flow')
    ax.axhline(0, color='black', linewidth=0.8)
    ax.set_title('Project Cash Flows')
    ax.set_xlabel('Year')
    ax.set_ylabel('Rand')
    ax.legend()
    plt.tight_layout()

    plot_file = os.path.join(output_dir, filename)
    plt.savefig(plot_file, dpi=300, bbox_inches='tight')
    plt.close(fig)
    logging.info(f"Cumulative cashflow plot saved to {plot_file}")
    return plot_file
