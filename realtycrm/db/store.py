"""
In-Memory Store
Holds every collection for one CRM instance. Constructed explicitly and injected into
RealtyCRM; nothing here is a module-level singleton.

Lifecycle:
    store = Store()
    seed_demo_data(store, now)      # optional, see realtycrm.db.seed
    ...
    store.reset()                   # teardown
"""

import copy
import logging
from contextlib import contextmanager
from typing import Dict, List, Optional

from realtycrm.models import Agent, Customer, FinancialConfig, Message, Property

logger = logging.getLogger(__name__)


class Store:
    """Process-local entity collections keyed by id, in insertion order."""

    def __init__(self):
        self.agents: Dict[str, Agent] = {}
        self.passwords: Dict[str, str] = {}
        self.customers: Dict[str, Customer] = {}
        self.properties: Dict[str, Property] = {}
        self.messages: List[Message] = []
        self.financial_config: FinancialConfig = FinancialConfig()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def reset(self):
        """Drop everything and restore the zeroed ledger."""
        self.agents.clear()
        self.passwords.clear()
        self.customers.clear()
        self.properties.clear()
        self.messages.clear()
        self.financial_config = FinancialConfig()
        logger.debug("Store reset")

    def _snapshot(self) -> dict:
        return copy.deepcopy({
            'agents': self.agents,
            'passwords': self.passwords,
            'customers': self.customers,
            'properties': self.properties,
            'messages': self.messages,
            'financial_config': self.financial_config,
        })

    def _restore(self, snapshot: dict):
        for name, value in snapshot.items():
            setattr(self, name, value)

    @contextmanager
    def transaction(self):
        """
        Context manager for a multi-entity write.
        Commits on success; on any error restores the state captured on entry and re-raises.

        Usage:
            with store.transaction():
                agent.points += 10
                prop.quantity -= 1
        """
        snapshot = self._snapshot()
        logger.debug("Transaction started")
        try:
            yield self
        except Exception as e:
            self._restore(snapshot)
            logger.error(f"Transaction rolled back due to error: {e}")
            raise
        logger.debug("Transaction committed")

    # -------------------------------------------------------------------------
    # Inserts (used by RealtyCRM and by seeding)
    # -------------------------------------------------------------------------

    def add_agent(self, agent: Agent, password: Optional[str] = None) -> Agent:
        self.agents[agent.id] = agent
        if password is not None:
            self.passwords[agent.id] = password
        return agent

    def add_customer(self, customer: Customer) -> Customer:
        self.customers[customer.id] = customer
        return customer

    def add_property(self, prop: Property) -> Property:
        self.properties[prop.id] = prop
        return prop

    def add_message(self, message: Message) -> Message:
        self.messages.append(message)
        return message

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def find_agent_by_email(self, email: str) -> Optional[Agent]:
        for agent in self.agents.values():
            if agent.email == email:
                return agent
        return None

    def find_message(self, message_id: str) -> Optional[Message]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None
