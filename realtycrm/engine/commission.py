"""
Commission Engine
Closed deals → agent points → commission payout.

Two halves:
  - read time : compute_commissions() prices a period's closed deals at each agent's
                *current* commission_rate (a later rate change rewrites history).
  - write time: apply_closed_transition() awards points and takes inventory the moment a
                customer first enters Closed. Leaving Closed reverses nothing.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from realtycrm.db.store import Store
from realtycrm.engine.temporal import existed_by, in_range
from realtycrm.models import (
    CUSTOMER_CLOSED, PROPERTY_SOLD,
    Agent, AgentCommission, CommissionSummary, Customer, ZERO,
)

logger = logging.getLogger(__name__)

POINTS_PER_SALE = 10
POINTS_PER_RATE_UNIT = 10  # commission_rate is paid per this many points


def closed_deals(customers: Iterable[Customer], start: Optional[datetime] = None,
                 end: Optional[datetime] = None) -> List[Customer]:
    """Customers in Closed whose updated_at falls inside [start, end]."""
    return [
        c for c in customers
        if c.status == CUSTOMER_CLOSED and in_range(c.updated_at, start, end)
    ]


def commission_for_points(points: int, rate: Decimal) -> Decimal:
    return Decimal(points) / POINTS_PER_RATE_UNIT * rate


def compute_commissions(agents: Iterable[Agent], closed: List[Customer],
                        end: Optional[datetime] = None) -> CommissionSummary:
    """
    Commission owed for an already-filtered list of closed deals.
    Every agent visible by `end` gets a breakdown line, including those with no deals.
    """
    summary = CommissionSummary()
    for agent in agents:
        if not existed_by(agent.created_at, end):
            continue
        deal_count = sum(1 for c in closed if c.agent_id == agent.id)
        points = deal_count * POINTS_PER_SALE
        amount = commission_for_points(points, agent.commission_rate)
        summary.total += amount
        summary.breakdown.append(AgentCommission(
            agent_id=agent.id, name=agent.name, amount=amount, points=points,
        ))

    logger.debug(f"compute_commissions: {len(summary.breakdown)} agents, total={summary.total}")
    return summary


# =============================================================================
# WRITE-TIME SIDE EFFECT
# =============================================================================

@dataclass
class ClosedTransition:
    """What apply_closed_transition changed, for post-commit events."""
    closed: bool = False
    agent_id: Optional[str] = None
    points_awarded: int = 0
    property_id: Optional[str] = None
    property_sold: bool = False


def apply_closed_transition(store: Store, customer: Customer, updates: Dict[str, Any]) -> ClosedTransition:
    """
    Apply the side effects of saving `updates` onto `customer`.
    Must run inside store.transaction(); it mutates agents and properties in place
    and leaves the customer record itself to the caller.
    """
    result = ClosedTransition()
    entering_closed = updates.get('status') == CUSTOMER_CLOSED and customer.status != CUSTOMER_CLOSED
    if not entering_closed:
        return result

    result.closed = True

    # the owning agent on record before this update is merged
    agent_id = customer.agent_id
    agent = store.agents.get(agent_id) if agent_id else None
    if agent is not None:
        agent.points += POINTS_PER_SALE
        agent.sales_count += 1
        result.agent_id = agent.id
        result.points_awarded = POINTS_PER_SALE
        logger.info(f"Awarded {POINTS_PER_SALE} points to agent {agent.id} for customer {customer.id}")
    elif agent_id:
        logger.warning(f"apply_closed_transition: agent {agent_id} not found, no points awarded")

    property_id = updates.get('property_id')
    prop = store.properties.get(property_id) if property_id else None
    if prop is not None:
        if prop.quantity > 0:
            prop.quantity -= 1
        if prop.quantity == 0:
            prop.status = PROPERTY_SOLD
            result.property_sold = True
        result.property_id = prop.id
        logger.info(f"Property {prop.id} inventory now {prop.quantity} ({prop.status})")
    elif property_id:
        logger.warning(f"apply_closed_transition: property {property_id} not found, inventory unchanged")

    return result
