"""
Stats Aggregator
Dashboard counters, per-agent target progress and the points leaderboard for a reporting
window, using the same point-in-time rules as reports.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional

from realtycrm.engine.commission import POINTS_PER_SALE, closed_deals, commission_for_points
from realtycrm.engine.temporal import existed_by, in_range
from realtycrm.models import (
    PROPERTY_AVAILABLE, Agent, AgentPerformance, Customer, DashboardStats, Property, ZERO,
)

logger = logging.getLogger(__name__)

FULL_PROGRESS = Decimal(100)


def compute_stats(
    agents: Iterable[Agent],
    customers: Iterable[Customer],
    properties: Mapping[str, Property],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> DashboardStats:
    """
    total_sales     : prices of properties linked to deals closed in the window
    active_listings : properties visible by `end` that are Available or still have stock
    total_customers : customers created in the window
    total_agents    : agents visible by `end`
    """
    customers = list(customers)

    total_sales = ZERO
    for customer in closed_deals(customers, start, end):
        prop = properties.get(customer.property_id) if customer.property_id else None
        if prop is not None:
            total_sales += prop.price

    active_listings = sum(
        1 for p in properties.values()
        if existed_by(p.created_at, end) and (p.status == PROPERTY_AVAILABLE or p.quantity > 0)
    )

    stats = DashboardStats(
        total_sales=total_sales,
        active_listings=active_listings,
        total_customers=sum(1 for c in customers if in_range(c.created_at, start, end)),
        total_agents=sum(1 for a in agents if existed_by(a.created_at, end)),
    )
    logger.debug(f"compute_stats: {stats}")
    return stats


def compute_agent_performance(
    agents: Iterable[Agent],
    customers: Iterable[Customer],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[AgentPerformance]:
    """
    Per-agent month view for every agent visible by `end`.
    The target is the one recorded for exactly (start, end); progress is capped at 100%.
    """
    closed = closed_deals(customers, start, end)
    results = []
    for agent in agents:
        if not existed_by(agent.created_at, end):
            continue
        actual = sum(1 for c in closed if c.agent_id == agent.id)
        points = actual * POINTS_PER_SALE
        record = agent.target_for(start, end) if start is not None and end is not None else None
        target = record.target if record else 0
        progress = min(Decimal(actual) / target * 100, FULL_PROGRESS) if target > 0 else ZERO
        results.append(AgentPerformance(
            agent_id=agent.id,
            name=agent.name,
            actual_sales=actual,
            points=points,
            commission=commission_for_points(points, agent.commission_rate),
            target=target,
            progress=progress,
        ))

    logger.debug(f"compute_agent_performance: {len(results)} agents (start={start}, end={end})")
    return results


def leaderboard(agents: Iterable[Agent], end: Optional[datetime] = None) -> List[Agent]:
    """Active agents visible by `end`, most lifetime points first."""
    ranked = [a for a in agents if a.active and existed_by(a.created_at, end)]
    ranked.sort(key=lambda a: a.points, reverse=True)
    return ranked
