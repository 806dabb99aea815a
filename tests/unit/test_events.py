"""
Unit tests for the EventBus (realtycrm/bus/events.py).
No mocking required: pure Python.
"""

import pytest
from realtycrm.bus import events
from realtycrm.bus.events import EventBus


@pytest.fixture
def bus():
    return EventBus()


ALL_EVENTS = [value for name, value in vars(events).items() if name.startswith('EVENT_')]


# ---------------------------------------------------------------------------
# Basic emit / subscribe
# ---------------------------------------------------------------------------

def test_handler_called_on_emit(bus):
    received = []
    bus.on('deal_closed', received.append)
    bus.emit('deal_closed', {'customer_id': 'cust-1'})
    assert received == [{'customer_id': 'cust-1'}]


def test_handlers_run_in_registration_order(bus):
    calls = []
    bus.on('evt', lambda d: calls.append('toast'))
    bus.on('evt', lambda d: calls.append('audit'))
    bus.emit('evt', {})
    assert calls == ['toast', 'audit']


def test_emit_without_handlers_is_silent(bus):
    bus.emit('nobody_listens', {'x': 1})


def test_emit_default_data_is_empty_dict(bus):
    received = []
    bus.on('evt', received.append)
    bus.emit('evt')
    assert received == [{}]


def test_events_do_not_cross_fire(bus):
    a_calls, b_calls = [], []
    bus.on('property_sold', a_calls.append)
    bus.on('message_sent', b_calls.append)
    bus.emit('property_sold', {})
    assert len(a_calls) == 1
    assert b_calls == []


# ---------------------------------------------------------------------------
# Error isolation
# ---------------------------------------------------------------------------

def test_failing_handler_does_not_stop_the_rest(bus):
    good_calls = []

    def bad_handler(data):
        raise RuntimeError("toast renderer exploded")

    bus.on('evt', bad_handler)
    bus.on('evt', lambda d: good_calls.append(True))
    bus.emit('evt', {})
    assert good_calls == [True]


def test_failing_handler_is_logged(bus, caplog):
    def bad_handler(data):
        raise ValueError("nope")

    bus.on('evt', bad_handler)
    with caplog.at_level('ERROR', logger='realtycrm.bus.events'):
        bus.emit('evt', {})
    assert any('bad_handler' in r.message and 'nope' in r.message for r in caplog.records)


# ---------------------------------------------------------------------------
# off() / clear()
# ---------------------------------------------------------------------------

def test_off_removes_one_handler(bus):
    calls = []

    def first(d):
        calls.append('first')

    bus.on('evt', first)
    bus.on('evt', lambda d: calls.append('second'))
    bus.off('evt', first)
    bus.emit('evt', {})
    assert calls == ['second']


def test_off_unknown_handler_is_ignored(bus):
    bus.off('evt', print)


def test_handler_may_unsubscribe_itself_during_emit(bus):
    calls = []

    def once(d):
        calls.append(d)
        bus.off('evt', once)

    bus.on('evt', once)
    bus.emit('evt', {'n': 1})
    bus.emit('evt', {'n': 2})
    assert calls == [{'n': 1}]


def test_clear_allows_reregistration(bus):
    calls = []
    bus.on('evt', lambda d: calls.append('first'))
    bus.clear()
    bus.emit('evt', {})
    bus.on('evt', lambda d: calls.append('second'))
    bus.emit('evt', {})
    assert calls == ['second']


# ---------------------------------------------------------------------------
# Event name constants
# ---------------------------------------------------------------------------

def test_event_constants_are_non_empty_strings():
    assert len(ALL_EVENTS) == 14
    for c in ALL_EVENTS:
        assert isinstance(c, str) and c


def test_event_constants_are_unique():
    assert len(ALL_EVENTS) == len(set(ALL_EVENTS))
