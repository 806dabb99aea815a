"""
Event Bus - Post-commit notifications
RealtyCRM emits after a write has committed; listeners (chat toasts, dashboards,
audit trails) react without the engine importing them.
"""

from typing import Callable, Dict, List, Any
import logging

logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple event bus for decoupled module communication.
    A failing handler is logged and skipped; it never undoes the write that emitted the event.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, handler: Callable):
        """
        Register a handler for an event.

        Args:
            event_name: Name of the event to listen for
            handler: Callable that receives event_data dict
        """
        self._handlers.setdefault(event_name, []).append(handler)
        logger.debug(f"Registered handler for event '{event_name}': {getattr(handler, '__name__', handler)}")

    def off(self, event_name: str, handler: Callable):
        """Unregister a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event_name: str, event_data: Dict[str, Any] = None):
        """
        Emit an event to all registered handlers.

        Args:
            event_name: Name of the event
            event_data: Optional dict of data to pass to handlers
        """
        if event_data is None:
            event_data = {}

        logger.debug(f"Emitting event '{event_name}' with data: {event_data}")

        for handler in list(self._handlers.get(event_name, [])):
            try:
                handler(event_data)
            except Exception as e:
                logger.error(f"Error in handler {getattr(handler, '__name__', handler)} for event '{event_name}': {e}")

    def clear(self):
        """Clear all handlers (useful for testing)."""
        self._handlers.clear()


# Shared default instance; RealtyCRM accepts its own bus for isolation
bus = EventBus()


# =============================================================================
# STANDARD EVENTS
# =============================================================================

# Agents
EVENT_AGENT_CREATED = 'agent_created'
EVENT_AGENT_UPDATED = 'agent_updated'
EVENT_AGENT_DELETED = 'agent_deleted'

# Customers / deals
EVENT_CUSTOMER_CREATED = 'customer_created'
EVENT_CUSTOMER_UPDATED = 'customer_updated'
EVENT_CUSTOMER_DELETED = 'customer_deleted'
EVENT_DEAL_CLOSED = 'deal_closed'
EVENT_COMMISSION_AWARDED = 'commission_awarded'

# Properties
EVENT_PROPERTY_CREATED = 'property_created'
EVENT_PROPERTY_UPDATED = 'property_updated'
EVENT_PROPERTY_SOLD = 'property_sold'
EVENT_PROPERTY_DELETED = 'property_deleted'

# Ledger
EVENT_FINANCIAL_CONFIG_UPDATED = 'financial_config_updated'

# Chat
EVENT_MESSAGE_SENT = 'message_sent'
