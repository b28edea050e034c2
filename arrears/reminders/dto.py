"""Data Transfer Objects for overdue reminders.

Provides type-safe data structures for the overdue computation and the
dispatch pipeline, with dictionary serialization for reports.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Union

from arrears.comm.events import DispatchState

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize(amount: Decimal) -> Decimal:
    """Round an amount to whole cents."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CustomerId:
    """Identity backed by a stable customer id."""

    value: str

    def __str__(self) -> str:
        return f"id:{self.value}"


@dataclass(frozen=True)
class NameFallback:
    """Identity derived from a display name when no customer id exists.

    Two different customers sharing a name end up under the same key; see
    `aggregation.find_name_collisions`.
    """

    name: str

    def __str__(self) -> str:
        return f"name:{self.name}"


IdentityKey = Union[CustomerId, NameFallback]


@dataclass(frozen=True)
class Installment:
    """A scheduled installment of a contract."""

    amount: Decimal
    due_date: date
    description: str = ""


@dataclass
class Contract:
    """Read-only contract snapshot.

    `raw_schedule` carries the schedule as stored (JSON text or a list of
    mappings); `installments` may be given instead when already decoded.
    """

    id: str
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    installments: List[Installment] = field(default_factory=list)
    raw_schedule: Any = None


@dataclass(frozen=True)
class Payment:
    """A payment booked against a contract."""

    contract_id: str
    amount: Decimal
    paid_at: Optional[datetime] = None


@dataclass(frozen=True)
class OverdueInstallmentRecord:
    """Unpaid remainder of an installment whose due date has passed."""

    contract_id: str
    customer_id: Optional[str]
    customer_name: str
    overdue_amount: Decimal
    due_date: date
    days_overdue: int
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contract_id": self.contract_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "overdue_amount": str(self.overdue_amount),
            "due_date": self.due_date.isoformat(),
            "days_overdue": self.days_overdue,
            "description": self.description,
        }


@dataclass(frozen=True)
class UnpaidInvoiceRecord:
    """Outstanding non-installment charge merged into a customer rollup."""

    contract_id: str
    amount: Decimal
    created_at: datetime
    days_overdue: int
    invoice_id: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "invoice_id": self.invoice_id,
            "contract_id": self.contract_id,
            "amount": str(self.amount),
            "created_at": self.created_at.isoformat(),
            "days_overdue": self.days_overdue,
        }


@dataclass
class CustomerOverdueAggregate:
    """Per-customer rollup of overdue amounts across contracts."""

    identity_key: IdentityKey
    customer_name: str
    total_overdue: Decimal = ZERO
    overdue_count: int = 0
    oldest_days_overdue: int = 0
    installments: List[OverdueInstallmentRecord] = field(default_factory=list)
    unpaid_invoices: List[UnpaidInvoiceRecord] = field(default_factory=list)

    @property
    def item_count(self) -> int:
        """Installments plus unpaid invoices."""
        return len(self.installments) + len(self.unpaid_invoices)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity_key": str(self.identity_key),
            "customer_name": self.customer_name,
            "total_overdue": str(self.total_overdue),
            "overdue_count": self.overdue_count,
            "oldest_days_overdue": self.oldest_days_overdue,
            "installments": [i.to_dict() for i in self.installments],
            "unpaid_invoices": [i.to_dict() for i in self.unpaid_invoices],
        }


@dataclass(frozen=True)
class DispatchTarget:
    """An addressable recipient plus the message destined for them."""

    id: str
    phone: Optional[str]
    display_name: str
    message: str


@dataclass
class DispatchResult:
    """Outcome of one dispatch call."""

    per_target: Dict[str, DispatchState] = field(default_factory=dict)
    success_count: int = 0
    error_count: int = 0
    excluded: List[str] = field(default_factory=list)
    cancelled: bool = False
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def pending_count(self) -> int:
        return sum(1 for s in self.per_target.values() if s is DispatchState.PENDING)

    def failed_ids(self) -> List[str]:
        return [tid for tid, s in self.per_target.items() if s is DispatchState.ERROR]

    def failed_targets(self, targets: List[DispatchTarget]) -> List[DispatchTarget]:
        """Subset of `targets` that ended in error, for a manual re-dispatch."""
        failed = set(self.failed_ids())
        return [t for t in targets if t.id in failed]

    def summary(self) -> str:
        return f"{self.success_count} succeeded, {self.error_count} failed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "per_target": {tid: s.value for tid, s in self.per_target.items()},
            "success_count": self.success_count,
            "error_count": self.error_count,
            "excluded": self.excluded,
            "cancelled": self.cancelled,
            "errors": self.errors,
        }
