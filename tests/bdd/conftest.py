"""
Shared fixtures and step definitions for BDD tests.

- runner, context: available to all scenario files in this directory
- no_logging: autouse, prevents log file creation during tests
- agency steps drive the `crm` fixture from tests/conftest.py through asyncio.run
- 'the output contains' step: shared by the terminal scenarios
"""

import asyncio
from datetime import datetime

import pytest
from unittest.mock import patch
from click.testing import CliRunner
from pytest_bdd import given, when, then, parsers

from realtycrm.engine.temporal import window_for


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def context():
    """Mutable dict shared between Given/When/Then steps within a scenario."""
    return {"agents": {}, "customers": {}, "properties": {}}


@pytest.fixture(autouse=True)
def no_logging():
    with patch("realtycrm.cli.main.configure_logging"):
        yield


def _month_number(name: str) -> int:
    return datetime.strptime(name, "%B").month


# ---------------------------------------------------------------------------
# Agency setup
# ---------------------------------------------------------------------------

@given(parsers.parse('an agent "{name}" with a commission rate of {rate:d}'))
def agent_with_rate(crm, context, name, rate):
    email = name.lower().replace(" ", ".") + "@agency.com"
    agent = asyncio.run(crm.create_agent(name, email))
    asyncio.run(crm.update_agent_commission(agent.id, rate))
    context["agents"][name] = agent.id


@given(parsers.parse('a property "{title}" priced {price:d} with VAT {vat:d} and other costs {other:d}'))
def priced_property(crm, context, title, price, vat, other):
    prop = asyncio.run(crm.create_product(title, address="1 Main St", price=price, vat_tax=vat, other_cost=other))
    context["properties"][title] = prop.id


@given(parsers.parse('a property "{title}" with stock {quantity:d}'))
def stocked_property(crm, context, title, quantity):
    prop = asyncio.run(crm.create_product(title, address="1 Main St", price=1000000, quantity=quantity))
    context["properties"][title] = prop.id


@given(parsers.parse('a customer "{name}" working with "{agent}"'))
def customer_with_agent(crm, context, name, agent):
    customer = asyncio.run(crm.create_customer(name, agent_id=context["agents"][agent]))
    context["customers"][name] = customer.id


@when(parsers.parse('"{customer}" closes on "{title}"'))
def customer_closes(crm, context, customer, title):
    asyncio.run(crm.update_customer(
        context["customers"][customer],
        {"status": "Closed", "property_id": context["properties"][title]},
    ))


@when(parsers.parse('the income statement for {month} {year:d} is requested'))
def request_statement(crm, context, month, year):
    window = window_for(year, _month_number(month))
    context["report"] = asyncio.run(crm.get_financial_report(window.start, window.end))


# ---------------------------------------------------------------------------
# Terminal
# ---------------------------------------------------------------------------

@then(parsers.parse('the output contains "{text}"'))
def output_contains(context, text):
    assert text in context["result"].output, (
        f"Expected {text!r} in output:\n{context['result'].output}"
    )
