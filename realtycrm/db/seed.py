"""
Demo data
A small, very recent dataset: every record is 0–4 days old, so stepping back one reporting
month shows an empty business and exercises the zero-report path.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from realtycrm.config import config
from realtycrm.db.store import Store
from realtycrm.engine.temporal import month_window
from realtycrm.models import (
    CUSTOMER_CLOSED, CUSTOMER_LEAD, CUSTOMER_NEGOTIATION,
    PROPERTY_AVAILABLE, PROPERTY_PENDING, PROPERTY_SOLD,
    Agent, Customer, FinancialConfig, Property, TargetRecord,
)

logger = logging.getLogger(__name__)


def seed_demo_data(store: Store, now: datetime) -> Store:
    """Load the demo agents, customers and properties relative to `now`."""
    def days_ago(days: int) -> datetime:
        return now - timedelta(days=days)

    window = month_window(now)

    store.add_agent(Agent(
        id='agent-1', name='James Bond', email='agent@bond.com',
        sales_count=12, points=120, commission_rate=Decimal('500'),
        targets=[TargetRecord(start_date=window.start, end_date=window.end, target=20)],
        created_at=days_ago(2),
    ), password=config.DEFAULT_AGENT_PASSWORD)
    store.add_agent(Agent(
        id='agent-2', name='Sarah Connor', email='agent@sarah.com',
        sales_count=8, points=80, commission_rate=Decimal('450'),
        targets=[TargetRecord(start_date=window.start, end_date=window.end, target=12)],
        created_at=days_ago(1),
    ), password=config.DEFAULT_AGENT_PASSWORD)

    store.add_customer(Customer(
        id='cust-1', name='Alice Wonderland', email='alice@example.com', phone='555-0101',
        status=CUSTOMER_NEGOTIATION, budget=Decimal('450000'), agent_id='agent-1',
        created_at=days_ago(3), updated_at=days_ago(1),
    ))
    store.add_customer(Customer(
        id='cust-2', name='Bob Builder', email='bob@example.com', phone='555-0102',
        status=CUSTOMER_LEAD, budget=Decimal('300000'), agent_id='agent-2',
        created_at=days_ago(2), updated_at=days_ago(2),
    ))
    store.add_customer(Customer(
        id='cust-3', name='Charlie Bucket', email='charlie@example.com', phone='555-0103',
        status=CUSTOMER_CLOSED, budget=Decimal('1200000'), agent_id='agent-1',
        created_at=days_ago(4), updated_at=days_ago(0),
    ))

    store.add_property(Property(
        id='prod-1', title='Sunset Villa', address='123 Ocean Dr', price=Decimal('12000000'),
        type='House', status=PROPERTY_AVAILABLE, quantity=1, agent_id='agent-1',
        vat_tax=Decimal('50000'), other_cost=Decimal('10000'), created_at=days_ago(3),
    ))
    store.add_property(Property(
        id='prod-2', title='Downtown Loft', address='456 Main St', price=Decimal('8500000'),
        type='Apartment', status=PROPERTY_PENDING, quantity=5, agent_id='agent-2',
        vat_tax=Decimal('25000'), other_cost=Decimal('5000'), created_at=days_ago(2),
    ))
    store.add_property(Property(
        id='prod-3', title='Lakeside Cabin', address='789 Lakeview Rd', price=Decimal('15000000'),
        type='House', status=PROPERTY_SOLD, quantity=0, agent_id='agent-1',
        vat_tax=Decimal('75000'), other_cost=Decimal('15000'), created_at=days_ago(4),
    ))

    store.financial_config = FinancialConfig()
    logger.info(f"Seeded demo data: {len(store.agents)} agents, {len(store.customers)} customers, "
                f"{len(store.properties)} properties")
    return store
