"""FIFO allocation of a contract's payments to its installments.

The whole payment pool of a contract is applied to its installments in
due-date order. Whatever an installment cannot be covered by becomes its
overdue remainder, reported only once the due date has passed.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal

from .config import ReminderConfig
from .dto import ZERO, Contract, Installment, OverdueInstallmentRecord, Payment
from .normalizer import coerce_amount, contract_installments

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class Allocation:
    """How much of the pool went to one installment."""

    installment: Installment
    allocated: Decimal
    overdue_amount: Decimal
    days_overdue: int


@dataclass
class AllocationOutcome:
    """Result of allocating one contract."""

    contract_id: str
    pool: Decimal
    allocations: list[Allocation] = field(default_factory=list)
    records: list[OverdueInstallmentRecord] = field(default_factory=list)

    @property
    def allocated_total(self) -> Decimal:
        return sum((a.allocated for a in self.allocations), ZERO)

    @property
    def remaining(self) -> Decimal:
        return self.pool - self.allocated_total


def days_overdue(reference: date | datetime, due_date: date) -> int:
    """Whole days between due date and reference, rounded up.

    With a datetime reference the due date counts from midnight in the
    reference's timezone, so any part of a day past the due date counts.
    """
    if isinstance(reference, datetime):
        due_start = datetime.combine(due_date, time.min, tzinfo=reference.tzinfo)
        return math.ceil((reference - due_start).total_seconds() / SECONDS_PER_DAY)
    return (reference - due_date).days


def build_payment_pool(payments: Iterable[Payment]) -> Decimal:
    """Sum a contract's payments into one available pool."""
    return sum((coerce_amount(p.amount, p.contract_id) for p in payments), ZERO)


def group_payments_by_contract(payments: Iterable[Payment]) -> dict[str, list[Payment]]:
    """Group payments by owning contract, keeping input order."""
    grouped: dict[str, list[Payment]] = {}
    for payment in payments:
        grouped.setdefault(str(payment.contract_id), []).append(payment)
    return grouped


def allocate_installments(
    installments: Iterable[Installment],
    pool: Decimal,
    reference: date | datetime,
    *,
    contract_id: str,
    customer_id: str | None = None,
    customer_name: str = "",
) -> AllocationOutcome:
    """Apply a payment pool to installments in due-date order.

    Not-yet-due installments still consume the pool so that ordering stays
    FIFO, but they are never reported as overdue.

    Args:
        installments: Installments of one contract, any order
        pool: Total paid against the contract
        reference: Date (or aware datetime) overdue-ness is measured at
        contract_id: Owning contract
        customer_id: Customer id copied onto emitted records
        customer_name: Display name copied onto emitted records

    Returns:
        Allocation outcome with per-installment allocations and the
        overdue records
    """
    outcome = AllocationOutcome(contract_id=contract_id, pool=pool)
    remaining = pool

    # sorted() is stable: equal due dates keep their input order
    for installment in sorted(installments, key=lambda i: i.due_date):
        amount = max(installment.amount, ZERO)
        days = days_overdue(reference, installment.due_date)
        allocated = min(amount, max(ZERO, remaining))
        overdue_amount = amount - allocated
        remaining -= allocated

        outcome.allocations.append(
            Allocation(
                installment=installment,
                allocated=allocated,
                overdue_amount=overdue_amount,
                days_overdue=days,
            )
        )

        if days > 0 and overdue_amount > 0:
            outcome.records.append(
                OverdueInstallmentRecord(
                    contract_id=contract_id,
                    customer_id=customer_id,
                    customer_name=customer_name,
                    overdue_amount=overdue_amount,
                    due_date=installment.due_date,
                    days_overdue=days,
                    description=installment.description,
                )
            )

    return outcome


def allocate_contract(
    contract: Contract,
    payments: Iterable[Payment],
    reference: date | datetime,
    config: ReminderConfig | None = None,
) -> AllocationOutcome:
    """Normalize, pool and allocate a single contract."""
    config = config or ReminderConfig()
    return allocate_installments(
        contract_installments(contract, config),
        build_payment_pool(payments),
        reference,
        contract_id=str(contract.id),
        customer_id=contract.customer_id or None,
        customer_name=(contract.customer_name or "").strip() or config.unknown_customer_label,
    )
