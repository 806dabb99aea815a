"""
CRM Engine - Operation surface over the in-memory store
Every operation is async and pays a simulated latency, standing in for the real service
boundary this will eventually sit behind. Writes go through one lock (single writer) and one
store transaction each, so a multi-entity write either lands completely or not at all.
Post-commit notifications go out on the event bus.
"""

import asyncio
import copy
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from realtycrm.bus.events import (
    bus as default_bus, EventBus,
    EVENT_AGENT_CREATED, EVENT_AGENT_UPDATED, EVENT_AGENT_DELETED,
    EVENT_CUSTOMER_CREATED, EVENT_CUSTOMER_UPDATED, EVENT_CUSTOMER_DELETED,
    EVENT_DEAL_CLOSED, EVENT_COMMISSION_AWARDED,
    EVENT_PROPERTY_CREATED, EVENT_PROPERTY_UPDATED, EVENT_PROPERTY_SOLD, EVENT_PROPERTY_DELETED,
    EVENT_FINANCIAL_CONFIG_UPDATED, EVENT_MESSAGE_SENT,
)
from realtycrm.config import config
from realtycrm.db.store import Store
from realtycrm.engine import commission
from realtycrm.engine.reports import build_financial_report
from realtycrm.engine.stats import compute_agent_performance, compute_stats, leaderboard
from realtycrm.engine.temporal import Instant, existed_by, in_range, parse_instant, utc_now
from realtycrm.logging_config import log_call
from realtycrm.models import (
    CUSTOMER_LEAD, CUSTOMER_STATUSES, PROPERTY_AVAILABLE, PROPERTY_PENDING, PROPERTY_SOLD,
    PROPERTY_STATUSES, PROPERTY_TYPES, ROLE_ADMIN,
    Agent, AgentPerformance, Customer, DashboardStats, FinancialConfig, FinancialReport, Message,
    Property, TargetRecord, User,
)

logger = logging.getLogger(__name__)

ADMIN_USER_ID = 'admin-1'

# Allowlists for partial updates; field names never come from callers unchecked
_AGENT_FIELDS = {'name', 'email', 'active', 'commission_rate'}
_CUSTOMER_FIELDS = {'name', 'email', 'phone', 'budget', 'status', 'agent_id', 'property_id'}
_PRODUCT_FIELDS = {
    'title', 'address', 'price', 'type', 'status', 'quantity', 'vat_tax', 'other_cost',
    'images', 'agent_id',
}


class CrmOperationError(RuntimeError):
    """A write failed part-way and was rolled back; nothing was changed."""


def _validate_fields(updates: Mapping[str, Any], allowed: set, entity: str) -> None:
    """Raise ValueError if any key in updates is not an allowed field name."""
    invalid = set(updates.keys()) - allowed
    if invalid:
        raise ValueError(f"Invalid {entity} fields: {invalid}")


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _decimal(value: Any, name: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"{name} must be numeric, got {value!r}")
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"{name} must be a non-negative number, got {value!r}")
    return amount


def _quantity(value: Any) -> int:
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"quantity must be an integer, got {value!r}")
    if quantity < 0:
        raise ValueError(f"quantity must be >= 0, got {quantity}")
    return quantity


def _choice(value: str, allowed: Iterable[str], name: str) -> str:
    if value not in allowed:
        raise ValueError(f"Invalid {name} {value!r}; expected one of {list(allowed)}")
    return value


def _normalise_customer(updates: Mapping[str, Any]) -> Dict[str, Any]:
    clean = dict(updates)
    if 'status' in clean:
        _choice(clean['status'], CUSTOMER_STATUSES, 'customer status')
    if 'budget' in clean:
        clean['budget'] = _decimal(clean['budget'], 'budget')
    return clean


def _normalise_product(updates: Mapping[str, Any]) -> Dict[str, Any]:
    clean = dict(updates)
    if 'status' in clean:
        _choice(clean['status'], PROPERTY_STATUSES, 'property status')
    if 'type' in clean:
        _choice(clean['type'], PROPERTY_TYPES, 'property type')
    if 'quantity' in clean:
        clean['quantity'] = _quantity(clean['quantity'])
    for name in ('price', 'vat_tax', 'other_cost'):
        if name in clean:
            clean[name] = _decimal(clean[name] or 0, name)
    if 'images' in clean:
        clean['images'] = list(clean['images'] or [])
    return clean


def _apply_inventory_rule(prop: Property, updates: Mapping[str, Any]) -> None:
    """
    Keep status in step with a manually edited quantity.
    0 → Sold (unless this same edit sets Pending); back above 0 while Sold → Available.
    """
    if 'quantity' not in updates:
        return
    if prop.quantity == 0:
        if updates.get('status') != PROPERTY_PENDING:
            prop.status = PROPERTY_SOLD
    elif prop.status == PROPERTY_SOLD:
        prop.status = PROPERTY_AVAILABLE


def _detached(entity):
    """Deep copy handed to callers so nothing outside the engine holds store references."""
    return copy.deepcopy(entity)


def _as_user(agent: Agent) -> User:
    return User(id=agent.id, email=agent.email, name=agent.name, role=agent.role)


class RealtyCRM:
    """
    Async CRM operations over one injected Store.

    Args:
        store: collections to operate on (a fresh empty Store by default)
        clock: zero-arg callable returning the current aware UTC datetime
        latency_ms: simulated delay per operation (config.SIMULATED_LATENCY_MS by default)
        event_bus: where post-commit events go (the shared bus by default)
    """

    def __init__(
        self,
        store: Optional[Store] = None,
        clock: Callable[[], datetime] = utc_now,
        latency_ms: Optional[int] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.store = store if store is not None else Store()
        self._clock = clock
        if latency_ms is None:
            latency_ms = config.SIMULATED_LATENCY_MS
        self._latency = latency_ms / 1000
        self._bus = event_bus if event_bus is not None else default_bus
        self._write_lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    def _now(self) -> datetime:
        return parse_instant(self._clock())

    async def _delay(self):
        if self._latency > 0:
            await asyncio.sleep(self._latency)

    @asynccontextmanager
    async def _write(self, operation: str):
        """Serialise writers and run the body as one store transaction."""
        await self._delay()
        async with self._write_lock:
            try:
                with self.store.transaction():
                    yield self.store
            except Exception as e:
                raise CrmOperationError(f"{operation} did not complete: {e}") from e

    def _config_as_of(self, end: Optional[datetime]) -> FinancialConfig:
        """Manual ledger as seen from `end`: zeroed if the window closes before the first agent existed."""
        if end is not None:
            earliest = min((a.created_at for a in self.store.agents.values()), default=self._now())
            if end < earliest:
                logger.debug(f"_config_as_of: {end} predates first agent ({earliest}), using zero ledger")
                return FinancialConfig()
        return self.store.financial_config

    # =========================================================================
    # AUTH (lookup only; sessions live outside the engine)
    # =========================================================================

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        """Built-in admin, or an active agent whose password matches. None otherwise."""
        await self._delay()
        if email == config.ADMIN_EMAIL and password == config.ADMIN_PASSWORD:
            return User(id=ADMIN_USER_ID, email=config.ADMIN_EMAIL, name='System Admin', role=ROLE_ADMIN)

        agent = self.store.find_agent_by_email(email)
        if agent and agent.active and self.store.passwords.get(agent.id) == password:
            return _as_user(agent)

        logger.warning(f"authenticate: rejected login for {email}")
        return None

    async def get_user(self, user_id: str) -> Optional[User]:
        await self._delay()
        if user_id == ADMIN_USER_ID:
            return User(id=ADMIN_USER_ID, email=config.ADMIN_EMAIL, name='System Admin', role=ROLE_ADMIN)
        agent = self.store.agents.get(user_id)
        return _as_user(agent) if agent else None

    # =========================================================================
    # AGENTS
    # =========================================================================

    async def get_agents(self, start: Optional[Instant] = None, end: Optional[Instant] = None) -> List[Agent]:
        """Agents that existed by `end`. `start` is accepted for symmetry and does not filter."""
        await self._delay()
        end = parse_instant(end)
        agents = [_detached(a) for a in self.store.agents.values() if existed_by(a.created_at, end)]
        logger.debug(f"get_agents: {len(agents)} agents (end={end})")
        return agents

    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        await self._delay()
        agent = self.store.agents.get(agent_id)
        if agent is None:
            logger.debug(f"get_agent: agent_id={agent_id} not found")
            return None
        return _detached(agent)

    async def create_agent(self, name: str, email: str, password: Optional[str] = None) -> Agent:
        if not name or not email:
            raise ValueError("Agent name and email are required")

        async with self._write('create_agent') as store:
            agent = store.add_agent(
                Agent(
                    id=_new_id('agent'),
                    name=name,
                    email=email,
                    commission_rate=Decimal(config.DEFAULT_COMMISSION_RATE),
                    created_at=self._now(),
                ),
                password=password or config.DEFAULT_AGENT_PASSWORD,
            )
            created = _detached(agent)

        logger.info(f"Created agent {created.id}: {created.name}")
        self._bus.emit(EVENT_AGENT_CREATED, {'agent_id': created.id, 'agent': created})
        return created

    async def update_agent(self, agent_id: str, updates: Dict[str, Any]) -> Optional[Agent]:
        """Merge partial fields into an agent. Returns None if not found."""
        _validate_fields(updates, _AGENT_FIELDS, 'agent')
        clean = dict(updates)
        if 'commission_rate' in clean:
            clean['commission_rate'] = _decimal(clean['commission_rate'], 'commission_rate')

        async with self._write('update_agent') as store:
            agent = store.agents.get(agent_id)
            if agent is not None:
                for key, value in clean.items():
                    setattr(agent, key, value)
                agent = _detached(agent)

        if agent is None:
            logger.debug(f"update_agent: agent_id={agent_id} not found")
            return None
        logger.info(f"Updated agent {agent_id}: {list(clean.keys())}")
        self._bus.emit(EVENT_AGENT_UPDATED, {'agent_id': agent_id, 'updates': clean})
        return agent

    async def update_agent_commission(self, agent_id: str, rate: Any) -> Optional[Agent]:
        """Set the agent's current rate (currency per 10 points). Applies to every report, past ones too."""
        return await self.update_agent(agent_id, {'commission_rate': rate})

    async def update_agent_target(self, agent_id: str, start: Instant, end: Instant, target: int) -> Optional[Agent]:
        """Upsert the target for exactly (start, end)."""
        start, end = parse_instant(start), parse_instant(end)
        target = int(target)

        async with self._write('update_agent_target') as store:
            agent = store.agents.get(agent_id)
            if agent is not None:
                record = agent.target_for(start, end)
                if record is not None:
                    record.target = target
                else:
                    agent.targets.append(TargetRecord(start_date=start, end_date=end, target=target))
                agent = _detached(agent)

        if agent is None:
            logger.debug(f"update_agent_target: agent_id={agent_id} not found")
            return None
        logger.info(f"Set target {target} for agent {agent_id} ({start} .. {end})")
        return agent

    async def remove_agent_target(self, agent_id: str, start: Instant, end: Instant) -> Optional[Agent]:
        start, end = parse_instant(start), parse_instant(end)

        async with self._write('remove_agent_target') as store:
            agent = store.agents.get(agent_id)
            if agent is not None:
                agent.targets = [
                    t for t in agent.targets if not (t.start_date == start and t.end_date == end)
                ]
                agent = _detached(agent)

        if agent is None:
            logger.debug(f"remove_agent_target: agent_id={agent_id} not found")
        return agent

    async def reset_agent_password(self, agent_id: str, password: str) -> bool:
        if not password:
            raise ValueError("Password must not be empty")

        async with self._write('reset_agent_password') as store:
            found = agent_id in store.agents
            if found:
                store.passwords[agent_id] = password

        if found:
            logger.info(f"Reset password for agent {agent_id}")
        else:
            logger.debug(f"reset_agent_password: agent_id={agent_id} not found")
        return found

    async def toggle_agent_status(self, agent_id: str) -> Optional[Agent]:
        async with self._write('toggle_agent_status') as store:
            agent = store.agents.get(agent_id)
            if agent is not None:
                agent.active = not agent.active
                agent = _detached(agent)

        if agent is None:
            logger.debug(f"toggle_agent_status: agent_id={agent_id} not found")
            return None
        logger.info(f"Agent {agent_id} is now {'active' if agent.active else 'inactive'}")
        self._bus.emit(EVENT_AGENT_UPDATED, {'agent_id': agent_id, 'updates': {'active': agent.active}})
        return agent

    async def delete_agent(self, agent_id: str) -> bool:
        """Permanent. The agent vanishes from every report, past and future."""
        async with self._write('delete_agent') as store:
            found = store.agents.pop(agent_id, None) is not None
            store.passwords.pop(agent_id, None)

        if found:
            logger.info(f"Deleted agent {agent_id}")
            self._bus.emit(EVENT_AGENT_DELETED, {'agent_id': agent_id})
        return found

    # =========================================================================
    # CUSTOMERS
    # =========================================================================

    async def get_customers(self, start: Optional[Instant] = None, end: Optional[Instant] = None) -> List[Customer]:
        """
        Both bounds : customers created inside [start, end]
        End only    : customers that existed by end
        Neither     : everyone
        Newest activity first.
        """
        await self._delay()
        start, end = parse_instant(start), parse_instant(end)
        customers = list(self.store.customers.values())
        if start is not None and end is not None:
            customers = [c for c in customers if in_range(c.created_at, start, end)]
        elif end is not None:
            customers = [c for c in customers if existed_by(c.created_at, end)]

        customers.sort(key=lambda c: c.updated_at, reverse=True)
        logger.debug(f"get_customers: {len(customers)} customers (start={start}, end={end})")
        return [_detached(c) for c in customers]

    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        await self._delay()
        customer = self.store.customers.get(customer_id)
        if customer is None:
            logger.debug(f"get_customer: customer_id={customer_id} not found")
            return None
        return _detached(customer)

    async def create_customer(
        self,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        budget: Any = 0,
        status: str = CUSTOMER_LEAD,
        agent_id: Optional[str] = None,
        property_id: Optional[str] = None,
    ) -> Customer:
        if not name:
            raise ValueError("Customer name is required")
        fields = _normalise_customer({'budget': budget, 'status': status})

        async with self._write('create_customer') as store:
            now = self._now()
            customer = store.add_customer(Customer(
                id=_new_id('cust'),
                name=name,
                email=email,
                phone=phone,
                budget=fields['budget'],
                status=fields['status'],
                agent_id=agent_id,
                property_id=property_id,
                created_at=now,
                updated_at=now,
            ))
            created = _detached(customer)

        logger.info(f"Created customer {created.id}: {created.name}")
        self._bus.emit(EVENT_CUSTOMER_CREATED, {'customer_id': created.id, 'customer': created})
        return created

    async def update_customer(self, customer_id: str, updates: Dict[str, Any]) -> Optional[Customer]:
        """
        Merge partial fields and stamp updated_at.
        Entering Closed awards the agent's points and takes one unit of the linked property,
        in the same transaction as the merge. Returns None if not found.
        """
        _validate_fields(updates, _CUSTOMER_FIELDS, 'customer')
        clean = _normalise_customer(updates)

        async with self._write('update_customer') as store:
            customer = store.customers.get(customer_id)
            transition = None
            if customer is not None:
                transition = commission.apply_closed_transition(store, customer, clean)
                for key, value in clean.items():
                    setattr(customer, key, value)
                customer.updated_at = self._now()
                customer = _detached(customer)

        if customer is None:
            logger.debug(f"update_customer: customer_id={customer_id} not found")
            return None

        logger.info(f"Updated customer {customer_id}: {list(clean.keys())}")
        self._bus.emit(EVENT_CUSTOMER_UPDATED, {'customer_id': customer_id, 'updates': clean})
        if transition.closed:
            self._bus.emit(EVENT_DEAL_CLOSED, {
                'customer_id': customer_id,
                'agent_id': transition.agent_id,
                'property_id': transition.property_id,
            })
        if transition.points_awarded:
            self._bus.emit(EVENT_COMMISSION_AWARDED, {
                'agent_id': transition.agent_id, 'points': transition.points_awarded,
            })
        if transition.property_sold:
            self._bus.emit(EVENT_PROPERTY_SOLD, {'property_id': transition.property_id})
        return customer

    async def delete_customer(self, customer_id: str) -> bool:
        async with self._write('delete_customer') as store:
            found = store.customers.pop(customer_id, None) is not None

        if found:
            logger.info(f"Deleted customer {customer_id}")
            self._bus.emit(EVENT_CUSTOMER_DELETED, {'customer_id': customer_id})
        return found

    # =========================================================================
    # PRODUCTS (properties)
    # =========================================================================

    async def get_products(self, end: Optional[Instant] = None) -> List[Property]:
        """Properties that existed by `end`, newest first."""
        await self._delay()
        end = parse_instant(end)
        products = [p for p in self.store.properties.values() if existed_by(p.created_at, end)]
        products.sort(key=lambda p: p.created_at, reverse=True)
        logger.debug(f"get_products: {len(products)} properties (end={end})")
        return [_detached(p) for p in products]

    async def get_product(self, product_id: str) -> Optional[Property]:
        await self._delay()
        prop = self.store.properties.get(product_id)
        if prop is None:
            logger.debug(f"get_product: product_id={product_id} not found")
            return None
        return _detached(prop)

    async def create_product(
        self,
        title: str,
        address: Optional[str] = None,
        price: Any = 0,
        type: str = 'House',
        status: str = PROPERTY_AVAILABLE,
        quantity: Any = 1,
        vat_tax: Any = 0,
        other_cost: Any = 0,
        images: Optional[List[str]] = None,
        agent_id: Optional[str] = None,
    ) -> Property:
        if not title:
            raise ValueError("Property title is required")
        fields = _normalise_product({
            'price': price, 'type': type, 'status': status, 'quantity': 1 if quantity is None else quantity,
            'vat_tax': vat_tax, 'other_cost': other_cost, 'images': images,
        })
        if fields['quantity'] == 0:
            fields['status'] = PROPERTY_SOLD

        async with self._write('create_product') as store:
            prop = store.add_property(Property(
                id=_new_id('prod'), title=title, address=address, agent_id=agent_id,
                created_at=self._now(), **fields,
            ))
            created = _detached(prop)

        logger.info(f"Created property {created.id}: {created.title}")
        self._bus.emit(EVENT_PROPERTY_CREATED, {'property_id': created.id, 'property': created})
        return created

    async def update_product(self, product_id: str, updates: Dict[str, Any]) -> Optional[Property]:
        """Merge partial fields, then reconcile status with quantity. Returns None if not found."""
        _validate_fields(updates, _PRODUCT_FIELDS, 'property')
        clean = _normalise_product(updates)

        async with self._write('update_product') as store:
            prop = store.properties.get(product_id)
            became_sold = False
            if prop is not None:
                was_sold = prop.status == PROPERTY_SOLD
                for key, value in clean.items():
                    setattr(prop, key, value)
                _apply_inventory_rule(prop, clean)
                became_sold = prop.status == PROPERTY_SOLD and not was_sold
                prop = _detached(prop)

        if prop is None:
            logger.debug(f"update_product: product_id={product_id} not found")
            return None

        logger.info(f"Updated property {product_id}: {list(clean.keys())} → {prop.status} x{prop.quantity}")
        self._bus.emit(EVENT_PROPERTY_UPDATED, {'property_id': product_id, 'updates': clean})
        if became_sold:
            self._bus.emit(EVENT_PROPERTY_SOLD, {'property_id': product_id})
        return prop

    async def delete_product(self, product_id: str) -> bool:
        async with self._write('delete_product') as store:
            found = store.properties.pop(product_id, None) is not None

        if found:
            logger.info(f"Deleted property {product_id}")
            self._bus.emit(EVENT_PROPERTY_DELETED, {'property_id': product_id})
        return found

    # =========================================================================
    # CHAT MESSAGES
    # =========================================================================

    async def get_messages(self, user_id: str) -> List[Message]:
        """Conversation history involving the user, oldest first."""
        await self._delay()
        messages = [m for m in self.store.messages if user_id in (m.from_id, m.to_id)]
        messages.sort(key=lambda m: m.timestamp)
        return [_detached(m) for m in messages]

    async def send_message(self, from_id: str, to_id: str, text: str,
                           images: Optional[List[str]] = None) -> Message:
        async with self._write('send_message') as store:
            message = store.add_message(Message(
                id=_new_id('msg'), from_id=from_id, to_id=to_id, text=text,
                images=list(images or []), timestamp=self._now(),
            ))
            sent = _detached(message)

        self._bus.emit(EVENT_MESSAGE_SENT, {'message_id': sent.id, 'from_id': from_id, 'to_id': to_id})
        return sent

    async def update_message(self, message_id: str, text: str) -> Optional[Message]:
        async with self._write('update_message') as store:
            message = store.find_message(message_id)
            if message is not None:
                message.text = text
                message.edited = True
                message = _detached(message)
        return message

    async def delete_message(self, message_id: str) -> bool:
        async with self._write('delete_message') as store:
            before = len(store.messages)
            store.messages = [m for m in store.messages if m.id != message_id]
            found = len(store.messages) < before
        return found

    async def mark_as_read(self, message_ids: Iterable[str]) -> int:
        """Mark the given messages read. Returns how many were found."""
        wanted = set(message_ids)
        async with self._write('mark_as_read') as store:
            marked = 0
            for message in store.messages:
                if message.id in wanted:
                    message.read = True
                    marked += 1
        return marked

    # =========================================================================
    # FINANCIALS & STATS
    # =========================================================================

    @log_call
    async def get_stats(self, start: Optional[Instant] = None, end: Optional[Instant] = None) -> DashboardStats:
        await self._delay()
        return compute_stats(
            self.store.agents.values(),
            self.store.customers.values(),
            self.store.properties,
            parse_instant(start),
            parse_instant(end),
        )

    @log_call
    async def get_agent_performance(self, start: Optional[Instant] = None,
                                    end: Optional[Instant] = None) -> List[AgentPerformance]:
        """Deals closed in the window per agent, against the target set for exactly that window."""
        await self._delay()
        return compute_agent_performance(
            self.store.agents.values(),
            self.store.customers.values(),
            parse_instant(start),
            parse_instant(end),
        )

    async def get_leaderboard(self, start: Optional[Instant] = None,
                              end: Optional[Instant] = None) -> List[Agent]:
        """Active agents that existed by `end`, ranked by lifetime points. `start` does not filter."""
        await self._delay()
        return [_detached(a) for a in leaderboard(self.store.agents.values(), parse_instant(end))]

    async def get_financial_config(self, end: Optional[Instant] = None) -> FinancialConfig:
        """The manual ledger, or the zero ledger if `end` predates the earliest agent."""
        await self._delay()
        return _detached(self._config_as_of(parse_instant(end)))

    async def update_financial_config(
        self, new_config: Union[FinancialConfig, Mapping[str, Any]]
    ) -> FinancialConfig:
        """Replace the whole ledger. Non-numeric entries are stored as 0."""
        if isinstance(new_config, FinancialConfig):
            new_config = new_config.to_dict()
        ledger = FinancialConfig.from_mapping(new_config)

        async with self._write('update_financial_config') as store:
            store.financial_config = ledger

        logger.info("Replaced financial config")
        self._bus.emit(EVENT_FINANCIAL_CONFIG_UPDATED, {'config': _detached(ledger)})
        return _detached(ledger)

    @log_call
    async def get_financial_report(self, start: Optional[Instant] = None,
                                   end: Optional[Instant] = None) -> FinancialReport:
        await self._delay()
        end = parse_instant(end)
        return build_financial_report(
            self.store.agents.values(),
            self.store.customers.values(),
            self.store.properties,
            self._config_as_of(end),
            parse_instant(start),
            end,
        )
