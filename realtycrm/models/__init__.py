"""
Data Models
Dataclasses for all entities and report sections. Pure Python objects, no store logic.
"""

import logging
from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

# Customer funnel (one-directional by convention, not enforced)
CUSTOMER_LEAD = 'Lead'
CUSTOMER_NEGOTIATION = 'Negotiation'
CUSTOMER_CLOSED = 'Closed'
CUSTOMER_STATUSES = (CUSTOMER_LEAD, CUSTOMER_NEGOTIATION, CUSTOMER_CLOSED)

PROPERTY_AVAILABLE = 'Available'
PROPERTY_PENDING = 'Pending'
PROPERTY_SOLD = 'Sold'
PROPERTY_STATUSES = (PROPERTY_AVAILABLE, PROPERTY_PENDING, PROPERTY_SOLD)

PROPERTY_TYPES = ('House', 'Apartment', 'Condo', 'Land')

ROLE_ADMIN = 'admin'
ROLE_AGENT = 'agent'

ZERO = Decimal('0')


def to_amount(value: Any) -> Decimal:
    """
    Coerce a manual ledger entry to Decimal.
    Blank, non-numeric, NaN and infinite input all become 0 so the ledger stays renderable.
    """
    if value is None or value == '':
        return ZERO
    if isinstance(value, bool):
        return Decimal(int(value))
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        logger.warning(f"to_amount: non-numeric value {value!r} coerced to 0")
        return ZERO
    if not amount.is_finite():
        logger.warning(f"to_amount: non-finite value {value!r} coerced to 0")
        return ZERO
    return amount


# =============================================================================
# ENTITIES
# =============================================================================

@dataclass
class User:
    """Authenticated principal (the built-in admin, or an agent without credentials)"""
    id: str = ''
    email: str = ''
    name: str = ''
    role: str = ROLE_AGENT


@dataclass
class TargetRecord:
    """Per-agent sales goal keyed by the exact (start_date, end_date) pair"""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    target: int = 0


@dataclass
class Agent:
    """Sales agent. commission_rate is currency paid per 10 points."""
    id: Optional[str] = None
    name: str = ''
    email: str = ''
    role: str = ROLE_AGENT
    active: bool = True
    points: int = 0
    commission_rate: Decimal = Decimal('100')
    sales_count: int = 0
    targets: List[TargetRecord] = field(default_factory=list)
    created_at: Optional[datetime] = None

    def target_for(self, start_date: datetime, end_date: datetime) -> Optional[TargetRecord]:
        for record in self.targets:
            if record.start_date == start_date and record.end_date == end_date:
                return record
        return None


@dataclass
class Customer:
    """Buyer moving through the Lead → Negotiation → Closed funnel"""
    id: Optional[str] = None
    name: str = ''
    email: Optional[str] = None
    phone: Optional[str] = None
    budget: Decimal = ZERO
    status: str = CUSTOMER_LEAD
    agent_id: Optional[str] = None
    property_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Property:
    """Listed property with an inventory count"""
    id: Optional[str] = None
    title: str = ''
    address: Optional[str] = None
    price: Decimal = ZERO
    type: str = 'House'
    status: str = PROPERTY_AVAILABLE
    quantity: int = 1
    vat_tax: Decimal = ZERO
    other_cost: Decimal = ZERO
    images: List[str] = field(default_factory=list)
    agent_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def transaction_cost(self) -> Decimal:
        return (self.vat_tax or ZERO) + (self.other_cost or ZERO)


@dataclass
class Message:
    """Chat message between two users"""
    id: Optional[str] = None
    from_id: str = ''
    to_id: str = ''
    text: str = ''
    images: List[str] = field(default_factory=list)
    timestamp: Optional[datetime] = None
    read: bool = False
    edited: bool = False


@dataclass
class FinancialConfig:
    """Manually entered ledger figures that cannot be derived from transactions"""
    # Income
    interest_income: Decimal = ZERO
    other_income: Decimal = ZERO
    # Expenses
    rent: Decimal = ZERO
    utilities: Decimal = ZERO
    supplies: Decimal = ZERO
    marketing: Decimal = ZERO
    insurance: Decimal = ZERO
    maintenance: Decimal = ZERO
    misc: Decimal = ZERO
    base_salaries: Decimal = ZERO  # fixed staff; agent commissions are added at report time
    depreciation: Decimal = ZERO
    taxes: Decimal = ZERO

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> 'FinancialConfig':
        """Build a config from loose input. Missing keys and bad values become 0, unknown keys are ignored."""
        data = data or {}
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            logger.warning(f"FinancialConfig.from_mapping: ignoring unknown fields {sorted(unknown)}")
        return cls(**{f.name: to_amount(data.get(f.name)) for f in fields(cls)})

    def to_dict(self) -> Dict[str, Decimal]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# =============================================================================
# REPORTS
# =============================================================================

@dataclass
class ReportingWindow:
    """One reporting month: absolute [start, end] instants plus its civil year/month"""
    start: datetime
    end: datetime
    year: int
    month: int

    @property
    def label(self) -> str:
        return f"{_MONTH_NAMES[self.month - 1]} {self.year}"


_MONTH_NAMES = (
    'January', 'February', 'March', 'April', 'May', 'June',
    'July', 'August', 'September', 'October', 'November', 'December',
)


@dataclass
class DashboardStats:
    total_sales: Decimal = ZERO
    active_listings: int = 0
    total_customers: int = 0
    total_agents: int = 0


@dataclass
class AgentPerformance:
    """One agent's month: deals closed in the window against the target set for exactly that window."""
    agent_id: str
    name: str
    actual_sales: int = 0
    points: int = 0
    commission: Decimal = ZERO
    target: int = 0
    progress: Decimal = ZERO  # percent of target, capped at 100; 0 when no target


@dataclass
class SoldItem:
    property_id: str
    title: str
    price: Decimal
    date: datetime


@dataclass
class AgentCommission:
    agent_id: str
    name: str
    amount: Decimal
    points: int


@dataclass
class CommissionSummary:
    total: Decimal = ZERO
    breakdown: List[AgentCommission] = field(default_factory=list)


@dataclass
class PropertyCost:
    property_id: str
    title: str
    cost: Decimal
    breakdown: str


@dataclass
class IncomeDetails:
    sold_products: List[SoldItem] = field(default_factory=list)


@dataclass
class IncomeSection:
    sales_revenue: Decimal = ZERO
    service_revenue: Decimal = ZERO
    interest_income: Decimal = ZERO
    other_income: Decimal = ZERO
    total_income: Decimal = ZERO
    details: IncomeDetails = field(default_factory=IncomeDetails)


@dataclass
class ExpenseDetails:
    base_salaries: Decimal = ZERO
    commissions: List[AgentCommission] = field(default_factory=list)
    property_costs: List[PropertyCost] = field(default_factory=list)


@dataclass
class ExpenseSection:
    rent: Decimal = ZERO
    salaries_wages: Decimal = ZERO
    utilities: Decimal = ZERO
    supplies_raw_materials: Decimal = ZERO
    depreciation: Decimal = ZERO
    taxes: Decimal = ZERO
    insurance: Decimal = ZERO
    marketing_advertising: Decimal = ZERO
    maintenance_repairs: Decimal = ZERO
    miscellaneous_expenses: Decimal = ZERO
    property_transaction_costs: Decimal = ZERO
    total_expenses: Decimal = ZERO
    details: ExpenseDetails = field(default_factory=ExpenseDetails)


@dataclass
class FinancialReport:
    """Consolidated income statement for one reporting window"""
    income: IncomeSection = field(default_factory=IncomeSection)
    expenses: ExpenseSection = field(default_factory=ExpenseSection)
    net_profit_loss: Decimal = ZERO
