"""
Report Synthesizer
Builds the monthly income statement from three kinds of input:
  - derived from transactions : closed deals, their properties, agent commissions
  - manually entered          : the FinancialConfig ledger
  - point-in-time filters     : which agents existed by the end of the window

Pure functions over plain collections; RealtyCRM supplies the data.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Optional

from realtycrm.engine.commission import closed_deals, compute_commissions
from realtycrm.engine.temporal import existed_by, to_iso
from realtycrm.models import (
    Agent, Customer, ExpenseDetails, ExpenseSection, FinancialConfig, FinancialReport,
    IncomeDetails, IncomeSection, Property, PropertyCost, SoldItem, ZERO,
)

logger = logging.getLogger(__name__)

SERVICE_FEE_RATE = Decimal('0.03')  # brokerage fee on every sale


def _number(value: Decimal) -> Decimal:
    return value if value else ZERO


def build_financial_report(
    agents: Iterable[Agent],
    customers: Iterable[Customer],
    properties: Mapping[str, Property],
    config: FinancialConfig,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> FinancialReport:
    """
    Assemble the income statement for [start, end].

    Short-circuits to an all-zero report when no agent existed by `end` and nothing sold,
    so a month before the business existed never shows the current manual ledger.
    """
    agents = list(agents)
    closed = closed_deals(customers, start, end)

    # 1. Sales from closed deals with a linked property
    sales_revenue = ZERO
    sold_items = []
    for customer in closed:
        if not customer.property_id:
            continue
        prop = properties.get(customer.property_id)
        if prop is None:
            logger.debug(f"build_financial_report: customer {customer.id} links missing property {customer.property_id}")
            continue
        sales_revenue += prop.price
        sold_items.append(SoldItem(
            property_id=prop.id, title=prop.title, price=prop.price, date=customer.updated_at,
        ))

    agents_exist = any(existed_by(a.created_at, end) for a in agents)
    if not agents_exist and sales_revenue == 0:
        logger.info(f"build_financial_report: no agents by {to_iso(end)} and no sales, returning zero report")
        return FinancialReport()

    # 2–3. Income
    service_revenue = sales_revenue * SERVICE_FEE_RATE
    total_income = sales_revenue + service_revenue + config.interest_income + config.other_income

    # 4–5. Salaries = fixed staff + commissions at current rates
    commissions = compute_commissions(agents, closed, end)
    total_salaries = config.base_salaries + commissions.total

    # 6. Transaction costs of each sold property
    property_costs = []
    property_transaction_costs = ZERO
    for item in sold_items:
        prop = properties[item.property_id]
        cost = prop.transaction_cost
        property_transaction_costs += cost
        property_costs.append(PropertyCost(
            property_id=prop.id, title=prop.title, cost=cost,
            breakdown=f"VAT: {_number(prop.vat_tax)}, Other: {_number(prop.other_cost)}",
        ))

    # 7. Expenses
    total_expenses = (
        config.rent
        + total_salaries
        + config.utilities
        + config.supplies
        + config.depreciation
        + config.taxes
        + config.insurance
        + config.marketing
        + config.maintenance
        + config.misc
        + property_transaction_costs
    )

    report = FinancialReport(
        income=IncomeSection(
            sales_revenue=sales_revenue,
            service_revenue=service_revenue,
            interest_income=config.interest_income,
            other_income=config.other_income,
            total_income=total_income,
            details=IncomeDetails(sold_products=sold_items),
        ),
        expenses=ExpenseSection(
            rent=config.rent,
            salaries_wages=total_salaries,
            utilities=config.utilities,
            supplies_raw_materials=config.supplies,
            depreciation=config.depreciation,
            taxes=config.taxes,
            insurance=config.insurance,
            marketing_advertising=config.marketing,
            maintenance_repairs=config.maintenance,
            miscellaneous_expenses=config.misc,
            property_transaction_costs=property_transaction_costs,
            total_expenses=total_expenses,
            details=ExpenseDetails(
                base_salaries=config.base_salaries,
                commissions=commissions.breakdown,
                property_costs=property_costs,
            ),
        ),
        # 8.
        net_profit_loss=total_income - total_expenses,
    )
    logger.info(
        f"build_financial_report: {len(sold_items)} sales, income={total_income}, "
        f"expenses={total_expenses}, net={report.net_profit_loss}"
    )
    return report


# =============================================================================
# SERIALISATION
# =============================================================================

def report_to_dict(report: FinancialReport) -> Dict[str, Any]:
    """Render the report in its wire shape (camelCase keys, ISO timestamps, Decimals untouched)."""
    income, expenses = report.income, report.expenses
    return {
        'income': {
            'salesRevenue': income.sales_revenue,
            'serviceRevenue': income.service_revenue,
            'interestIncome': income.interest_income,
            'otherIncome': income.other_income,
            'totalIncome': income.total_income,
            'details': {
                'soldProducts': [
                    {'title': s.title, 'price': s.price, 'date': to_iso(s.date)}
                    for s in income.details.sold_products
                ],
            },
        },
        'expenses': {
            'rent': expenses.rent,
            'salariesWages': expenses.salaries_wages,
            'utilities': expenses.utilities,
            'suppliesRawMaterials': expenses.supplies_raw_materials,
            'depreciation': expenses.depreciation,
            'taxes': expenses.taxes,
            'insurance': expenses.insurance,
            'marketingAdvertising': expenses.marketing_advertising,
            'maintenanceRepairs': expenses.maintenance_repairs,
            'miscellaneousExpenses': expenses.miscellaneous_expenses,
            'propertyTransactionCosts': expenses.property_transaction_costs,
            'totalExpenses': expenses.total_expenses,
            'details': {
                'baseSalaries': expenses.details.base_salaries,
                'commissions': [
                    {'name': c.name, 'amount': c.amount, 'points': c.points}
                    for c in expenses.details.commissions
                ],
                'propertyCosts': [
                    {'title': p.title, 'cost': p.cost, 'breakdown': p.breakdown}
                    for p in expenses.details.property_costs
                ],
            },
        },
        'netProfitLoss': report.net_profit_loss,
    }
