#!/usr/bin/env python3
"""
Realty CRM Terminal CLI
Reporting commands over a demo-seeded in-memory store.
State lives for a single invocation; there is no persistence layer.
"""

import asyncio
import json
import logging
import re
import click
from datetime import date
from typing import Optional

from realtycrm.db.seed import seed_demo_data
from realtycrm.db.store import Store
from realtycrm.engine.crm import RealtyCRM
from realtycrm.engine.reports import report_to_dict
from realtycrm.engine.temporal import is_current_month, month_window, parse_instant, to_iso, utc_now, window_for
from realtycrm.logging_config import configure_logging, log_call
from realtycrm.models import ReportingWindow

_MONTH_RE = re.compile(r'^(\d{4})-(\d{2})$')


def _build_crm() -> RealtyCRM:
    """Fresh CRM over freshly seeded demo data."""
    return RealtyCRM(seed_demo_data(Store(), utc_now()))


def _resolve_window(month: Optional[str]) -> ReportingWindow:
    """YYYY-MM → that reporting month; None → the current one."""
    if not month:
        return month_window()
    match = _MONTH_RE.match(month)
    if not match:
        raise click.BadParameter(f"expected YYYY-MM, got {month!r}", param_hint='--month')
    try:
        return window_for(int(match.group(1)), int(match.group(2)))
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='--month')


def _money(amount) -> str:
    return f"{amount:,.2f}"


def _run(coro):
    return asyncio.run(coro)


month_option = click.option('--month', help='Reporting month YYYY-MM (default: current)')


@click.group()
def cli():
    """Realty CRM - point-in-time stats and monthly income statements"""
    configure_logging()


# =============================================================================
# REPORTING CALENDAR
# =============================================================================

@cli.command('month')
@click.option('--date', 'on_date', help='Any day inside the month, YYYY-MM-DD (default: today)')
@log_call
def month(on_date):
    """Show the reporting window containing a date"""
    logger = logging.getLogger("realtycrm")
    try:
        instant = parse_instant(date.fromisoformat(on_date)) if on_date else utc_now()
    except ValueError:
        logger.debug(f"month | rejected input={on_date!r}")
        click.echo("Invalid format — please use YYYY-MM-DD.", err=True)
        return

    window = month_window(instant)
    state = 'LIVE' if is_current_month(instant) else 'ARCHIVED'
    click.echo(f"\n{window.label} [{state}]")
    click.echo(f"  start: {to_iso(window.start)}")
    click.echo(f"  end:   {to_iso(window.end)}\n")


# =============================================================================
# DASHBOARD
# =============================================================================

@cli.command('stats')
@month_option
@log_call
def stats(month):
    """Dashboard counters for a month"""
    window = _resolve_window(month)
    try:
        result = _run(_build_crm().get_stats(window.start, window.end))

        click.echo(f"\n{'='*50}")
        click.echo(f"DASHBOARD — {window.label}")
        click.echo(f"{'='*50}")
        click.echo(f"Total sales:      {_money(result.total_sales)}")
        click.echo(f"Active listings:  {result.active_listings}")
        click.echo(f"New customers:    {result.total_customers}")
        click.echo(f"Agents:           {result.total_agents}")
        click.echo()

    except Exception as e:
        logging.getLogger("realtycrm").error(f"stats command failed for {window.label}: {e}", exc_info=True)
        click.echo(f"Error: {e}", err=True)


@cli.command('report')
@month_option
@click.option('--json', 'as_json', is_flag=True, help='Print the raw report as JSON')
@log_call
def report(month, as_json):
    """Income statement for a month"""
    window = _resolve_window(month)
    try:
        result = _run(_build_crm().get_financial_report(window.start, window.end))
    except Exception as e:
        logging.getLogger("realtycrm").error(f"report command failed for {window.label}: {e}", exc_info=True)
        click.echo(f"Error: {e}", err=True)
        return

    if as_json:
        click.echo(json.dumps(report_to_dict(result), indent=2, default=str))
        return

    income, expenses = result.income, result.expenses
    click.echo(f"\n{'='*60}")
    click.echo(f"INCOME STATEMENT — {window.label}")
    click.echo(f"{'='*60}")
    click.echo("INCOME")
    click.echo(f"  {'Sales revenue':<32}{_money(income.sales_revenue):>24}")
    click.echo(f"  {'Service revenue (3%)':<32}{_money(income.service_revenue):>24}")
    click.echo(f"  {'Interest income':<32}{_money(income.interest_income):>24}")
    click.echo(f"  {'Other income':<32}{_money(income.other_income):>24}")
    click.echo(f"  {'TOTAL INCOME':<32}{_money(income.total_income):>24}")
    for item in income.details.sold_products:
        click.echo(f"    · {item.title[:30]:<30} {_money(item.price):>18}  {to_iso(item.date)}")

    click.echo("\nEXPENSES")
    rows = [
        ('Rent', expenses.rent),
        ('Salaries & wages', expenses.salaries_wages),
        ('Utilities', expenses.utilities),
        ('Supplies', expenses.supplies_raw_materials),
        ('Depreciation', expenses.depreciation),
        ('Taxes', expenses.taxes),
        ('Insurance', expenses.insurance),
        ('Marketing', expenses.marketing_advertising),
        ('Maintenance', expenses.maintenance_repairs),
        ('Miscellaneous', expenses.miscellaneous_expenses),
        ('Property transaction costs', expenses.property_transaction_costs),
    ]
    for label, amount in rows:
        click.echo(f"  {label:<32}{_money(amount):>24}")
    click.echo(f"  {'TOTAL EXPENSES':<32}{_money(expenses.total_expenses):>24}")
    for c in expenses.details.commissions:
        click.echo(f"    · {c.name[:30]:<30} {c.points:>4} pts {_money(c.amount):>14}")

    click.echo(f"\n{'-'*60}")
    click.echo(f"  {'NET PROFIT / LOSS':<32}{_money(result.net_profit_loss):>24}")
    click.echo()


# =============================================================================
# LISTINGS
# =============================================================================

@cli.group()
def agents():
    """Sales agents"""
    pass


@agents.command('list')
@month_option
@log_call
def agents_list(month):
    """Agents that existed by the end of the month, with target progress"""
    window = _resolve_window(month)
    try:
        results = _run(_build_crm().get_agent_performance(window.start, window.end))

        if not results:
            click.echo(f"No agents in {window.label}.")
            return

        click.echo(f"\n{len(results)} agents ({window.label}):\n")
        click.echo(
            f"{'ID':<18} {'Name':<24} {'Deals':>6} {'Points':>7} {'Commission':>14} {'Target':>7} {'Progress':>9}"
        )
        click.echo("-" * 91)
        for p in results:
            target = str(p.target) if p.target else '-'
            click.echo(
                f"{p.agent_id[:16]:<18} {p.name[:22]:<24} {p.actual_sales:>6} {p.points:>7} "
                f"{_money(p.commission):>14} {target:>7} {p.progress:>8.0f}%"
            )

    except Exception as e:
        logging.getLogger("realtycrm").error(f"agents list failed for {window.label}: {e}", exc_info=True)
        click.echo(f"Error: {e}", err=True)


@agents.command('leaderboard')
@month_option
@log_call
def agents_leaderboard(month):
    """Active agents ranked by lifetime points"""
    window = _resolve_window(month)
    try:
        ranked = _run(_build_crm().get_leaderboard(window.start, window.end))

        if not ranked:
            click.echo(f"No active agents in {window.label}.")
            return

        click.echo(f"\nLEADERBOARD — {window.label}\n")
        click.echo(f"{'#':>3}  {'Name':<24} {'Points':>7} {'Sales':>6}")
        click.echo("-" * 44)
        for rank, a in enumerate(ranked, start=1):
            click.echo(f"{rank:>3}  {a.name[:22]:<24} {a.points:>7} {a.sales_count:>6}")

    except Exception as e:
        logging.getLogger("realtycrm").error(f"agents leaderboard failed for {window.label}: {e}", exc_info=True)
        click.echo(f"Error: {e}", err=True)


@cli.group()
def customers():
    """Customers and deals"""
    pass


@customers.command('list')
@month_option
@log_call
def customers_list(month):
    """Customers created during the month"""
    window = _resolve_window(month)
    try:
        results = _run(_build_crm().get_customers(window.start, window.end))

        if not results:
            click.echo(f"No customers in {window.label}.")
            return

        click.echo(f"\n{len(results)} customers ({window.label}):\n")
        click.echo(f"{'ID':<18} {'Name':<24} {'Status':<12} {'Agent':<12} {'Updated':<24}")
        click.echo("-" * 92)
        for c in results:
            click.echo(
                f"{c.id[:16]:<18} {c.name[:22]:<24} {c.status:<12} "
                f"{(c.agent_id or '')[:10]:<12} {to_iso(c.updated_at):<24}"
            )

    except Exception as e:
        logging.getLogger("realtycrm").error(f"customers list failed for {window.label}: {e}", exc_info=True)
        click.echo(f"Error: {e}", err=True)


@cli.group()
def products():
    """Property listings"""
    pass


@products.command('list')
@month_option
@log_call
def products_list(month):
    """Properties listed by the end of the month"""
    window = _resolve_window(month)
    try:
        results = _run(_build_crm().get_products(window.end))

        if not results:
            click.echo(f"No properties in {window.label}.")
            return

        click.echo(f"\n{len(results)} properties ({window.label}):\n")
        click.echo(f"{'ID':<18} {'Title':<24} {'Price':>16} {'Status':<10} {'Qty':>4}")
        click.echo("-" * 76)
        for p in results:
            click.echo(
                f"{p.id[:16]:<18} {p.title[:22]:<24} {_money(p.price):>16} {p.status:<10} {p.quantity:>4}"
            )

    except Exception as e:
        logging.getLogger("realtycrm").error(f"products list failed for {window.label}: {e}", exc_info=True)
        click.echo(f"Error: {e}", err=True)


# =============================================================================
# MAIN
# =============================================================================

if __name__ == '__main__':
    cli()
