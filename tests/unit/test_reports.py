"""
Unit tests for realtycrm/engine/reports.py.
build_financial_report is pure: every test hands it plain lists and a ledger.
"""

from datetime import datetime, timezone
from decimal import Decimal

from unittest.mock import PropertyMock, patch

import pytest

from realtycrm.engine.reports import SERVICE_FEE_RATE, build_financial_report, report_to_dict
from realtycrm.models import Agent, Customer, FinancialConfig, Property

UTC = timezone.utc
OCT_START = datetime(2026, 9, 30, 18, tzinfo=UTC)
OCT_END = datetime(2026, 10, 31, 17, 59, 59, 999000, tzinfo=UTC)
SEP_START = datetime(2026, 8, 31, 18, tzinfo=UTC)
SEP_END = datetime(2026, 9, 30, 17, 59, 59, 999000, tzinfo=UTC)
CLOSED_AT = datetime(2026, 10, 18, 9, tzinfo=UTC)

LEDGER = FinancialConfig(
    interest_income=Decimal('1000'), other_income=Decimal('500'),
    rent=Decimal('20000'), utilities=Decimal('3000'), supplies=Decimal('700'),
    marketing=Decimal('4000'), insurance=Decimal('1500'), maintenance=Decimal('800'),
    misc=Decimal('200'), base_salaries=Decimal('50000'), depreciation=Decimal('2500'),
    taxes=Decimal('9000'),
)
MANUAL_EXPENSES = Decimal('20000') + 3000 + 700 + 4000 + 1500 + 800 + 200 + 50000 + 2500 + 9000


def _agent(created=datetime(2026, 10, 17, tzinfo=UTC)):
    return Agent(id='agent-1', name='James Bond', commission_rate=Decimal('500'), created_at=created)


def _loft():
    return Property(id='prod-2', title='Downtown Loft', price=Decimal('8500000'),
                    vat_tax=Decimal('25000'), other_cost=Decimal('5000'), quantity=0, status='Sold')


def _closed(cid='cust-1', property_id='prod-2', updated=CLOSED_AT):
    return Customer(id=cid, name='Alice', status='Closed', agent_id='agent-1', property_id=property_id,
                    created_at=datetime(2026, 10, 16, tzinfo=UTC), updated_at=updated)


@pytest.fixture
def october_report():
    loft = _loft()
    return build_financial_report([_agent()], [_closed()], {loft.id: loft}, LEDGER, OCT_START, OCT_END)


# ---------------------------------------------------------------------------
# The single-sale scenario
# ---------------------------------------------------------------------------

def test_sales_and_service_revenue(october_report):
    assert october_report.income.sales_revenue == Decimal('8500000')
    assert october_report.income.service_revenue == Decimal('255000')


def test_total_income_includes_manual_income(october_report):
    assert october_report.income.total_income == Decimal('8755000') + 1000 + 500


def test_commission_at_agent_rate(october_report):
    commissions = october_report.expenses.details.commissions
    assert len(commissions) == 1
    assert commissions[0].name == 'James Bond'
    assert commissions[0].points == 10
    assert commissions[0].amount == Decimal('500')
    assert october_report.expenses.salaries_wages == Decimal('50000') + 500


def test_property_transaction_costs(october_report):
    assert october_report.expenses.property_transaction_costs == Decimal('30000')
    cost = october_report.expenses.details.property_costs[0]
    assert cost.title == 'Downtown Loft'
    assert cost.breakdown == 'VAT: 25000, Other: 5000'


def test_total_expenses(october_report):
    assert october_report.expenses.total_expenses == MANUAL_EXPENSES + 500 + 30000


def test_net_is_income_minus_expenses(october_report):
    r = october_report
    assert r.net_profit_loss == r.income.total_income - r.expenses.total_expenses


def test_sold_item_entry(october_report):
    item = october_report.income.details.sold_products[0]
    assert (item.title, item.price, item.date) == ('Downtown Loft', Decimal('8500000'), CLOSED_AT)


def test_manual_lines_copied_through(october_report):
    e = october_report.expenses
    assert e.rent == LEDGER.rent
    assert e.marketing_advertising == LEDGER.marketing
    assert e.maintenance_repairs == LEDGER.maintenance
    assert e.miscellaneous_expenses == LEDGER.misc
    assert e.supplies_raw_materials == LEDGER.supplies
    assert e.details.base_salaries == LEDGER.base_salaries


# ---------------------------------------------------------------------------
# Period membership
# ---------------------------------------------------------------------------

def test_deal_closed_outside_window_is_excluded():
    loft = _loft()
    report = build_financial_report([_agent()], [_closed(updated=datetime(2026, 11, 2, tzinfo=UTC))],
                                    {loft.id: loft}, LEDGER, OCT_START, OCT_END)
    assert report.income.sales_revenue == 0
    assert report.expenses.details.commissions[0].points == 0


def test_closed_customer_without_property_earns_commission_but_no_revenue():
    report = build_financial_report([_agent()], [_closed(property_id=None)], {}, LEDGER, OCT_START, OCT_END)
    assert report.income.sales_revenue == 0
    assert report.expenses.details.commissions[0].amount == Decimal('500')
    assert report.income.details.sold_products == []


def test_link_to_deleted_property_is_skipped():
    report = build_financial_report([_agent()], [_closed(property_id='gone')], {}, LEDGER, OCT_START, OCT_END)
    assert report.income.sales_revenue == 0
    assert report.expenses.property_transaction_costs == 0


def test_costs_looked_up_by_id_even_with_duplicate_titles():
    cheap = Property(id='p-a', title='Twin Flat', price=Decimal('100'), vat_tax=Decimal('1'), other_cost=Decimal('0'))
    dear = Property(id='p-b', title='Twin Flat', price=Decimal('200'), vat_tax=Decimal('50'), other_cost=Decimal('5'))
    report = build_financial_report(
        [_agent()], [_closed('c1', 'p-a'), _closed('c2', 'p-b')],
        {cheap.id: cheap, dear.id: dear}, FinancialConfig(), OCT_START, OCT_END,
    )
    assert report.expenses.property_transaction_costs == Decimal('56')


def test_cost_line_comes_from_property_transaction_cost():
    loft = _loft()
    with patch.object(Property, 'transaction_cost', new_callable=PropertyMock, return_value=Decimal('42')):
        report = build_financial_report([_agent()], [_closed()], {loft.id: loft}, LEDGER, OCT_START, OCT_END)
    assert report.expenses.property_transaction_costs == Decimal('42')
    assert report.expenses.details.property_costs[0].cost == Decimal('42')


def test_missing_cost_fields_count_as_zero():
    bare = Property(id='p-x', title='Plot', price=Decimal('100'), vat_tax=None, other_cost=Decimal('5'))
    report = build_financial_report([_agent()], [_closed(property_id='p-x')], {bare.id: bare},
                                    FinancialConfig(), OCT_START, OCT_END)
    assert report.expenses.property_transaction_costs == Decimal('5')
    assert report.expenses.details.property_costs[0].breakdown == 'VAT: 0, Other: 5'


def test_service_fee_rate():
    assert SERVICE_FEE_RATE == Decimal('0.03')


# ---------------------------------------------------------------------------
# Bootstrap: before the business existed
# ---------------------------------------------------------------------------

def test_month_before_any_agent_is_all_zero():
    report = build_financial_report([_agent()], [], {}, LEDGER, SEP_START, SEP_END)
    assert report.income.total_income == 0
    assert report.income.interest_income == 0
    assert report.expenses.rent == 0
    assert report.expenses.total_expenses == 0
    assert report.net_profit_loss == 0
    assert report.expenses.details.commissions == []


def test_no_agents_at_all_and_no_sales_is_zero():
    report = build_financial_report([], [], {}, LEDGER, OCT_START, OCT_END)
    assert report.net_profit_loss == 0


def test_sales_without_agents_still_reported():
    loft = _loft()
    customer = _closed()
    customer.agent_id = None
    report = build_financial_report([], [customer], {loft.id: loft}, LEDGER, OCT_START, OCT_END)
    assert report.income.sales_revenue == Decimal('8500000')
    assert report.expenses.details.commissions == []


def test_unbounded_report_covers_everything():
    loft = _loft()
    report = build_financial_report([_agent()], [_closed()], {loft.id: loft}, LEDGER)
    assert report.income.sales_revenue == Decimal('8500000')


# ---------------------------------------------------------------------------
# report_to_dict
# ---------------------------------------------------------------------------

def test_report_to_dict_shape(october_report):
    data = report_to_dict(october_report)
    assert set(data) == {'income', 'expenses', 'netProfitLoss'}
    assert data['income']['details']['soldProducts'][0] == {
        'title': 'Downtown Loft', 'price': Decimal('8500000'), 'date': '2026-10-18T09:00:00.000Z',
    }
    assert data['expenses']['details']['commissions'][0] == {
        'name': 'James Bond', 'amount': Decimal('500'), 'points': 10,
    }
    assert data['expenses']['details']['propertyCosts'][0]['cost'] == Decimal('30000')
    assert data['expenses']['salariesWages'] == Decimal('50500')
    assert data['netProfitLoss'] == october_report.net_profit_loss


def test_zero_report_to_dict_has_full_shape():
    data = report_to_dict(build_financial_report([], [], {}, LEDGER, SEP_START, SEP_END))
    assert data['income']['details'] == {'soldProducts': []}
    assert data['expenses']['details'] == {'baseSalaries': 0, 'commissions': [], 'propertyCosts': []}
