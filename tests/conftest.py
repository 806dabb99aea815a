"""
Shared fixtures for unit and BDD tests.

- clock: a FrozenClock the CRM reads "now" from; tests move it with advance()
- store: a fresh Store per test, reset on teardown
- event_bus: a private EventBus so handlers never leak between tests
- crm: RealtyCRM over the above with zero simulated latency
"""

from datetime import datetime, timedelta, timezone

import pytest

from realtycrm.bus.events import EventBus
from realtycrm.db.store import Store
from realtycrm.engine.crm import RealtyCRM

# Mid-October 2026 on the UTC+6 reporting calendar
FROZEN_NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime = FROZEN_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store():
    s = Store()
    yield s
    s.reset()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def crm(store, clock, event_bus):
    return RealtyCRM(store, clock=clock, latency_ms=0, event_bus=event_bus)
