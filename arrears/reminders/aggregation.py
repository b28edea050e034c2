"""Cross-contract customer aggregation of overdue amounts.

Groups overdue installment records (and unpaid invoices supplied from
outside) by customer identity. Customers without a stable id are grouped
by display name; such keys are typed `NameFallback` so that collisions can
be detected instead of silently merged away.
"""

import logging
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any

from arrears.core.observability.metrics import increment_contracts_processed, increment_data_errors

from .allocation import SECONDS_PER_DAY, allocate_contract, group_payments_by_contract
from .config import ReminderConfig
from .dto import (
    Contract,
    CustomerId,
    CustomerOverdueAggregate,
    IdentityKey,
    NameFallback,
    OverdueInstallmentRecord,
    Payment,
    UnpaidInvoiceRecord,
)
from .errors import DataError
from .normalizer import parse_amount, parse_timestamp

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

SORT_KEYS = ("total_overdue", "oldest_days_overdue")

UnpaidInvoices = Mapping[IdentityKey, Iterable[UnpaidInvoiceRecord]] | Iterable[UnpaidInvoiceRecord]


@dataclass(frozen=True)
class NameCollision:
    """A name-fallback identity whose name is shared with other aggregates."""

    name: str
    keys: tuple[IdentityKey, ...]


def identity_for(
    customer_id: Any, customer_name: str | None, config: ReminderConfig | None = None
) -> IdentityKey:
    """Identity key for a customer: id when present, else the display name."""
    if customer_id is not None and str(customer_id).strip():
        return CustomerId(str(customer_id).strip())
    name = _WHITESPACE.sub(" ", customer_name or "").strip()
    if not name:
        name = (config or ReminderConfig()).unknown_customer_label
    return NameFallback(name)


def _display_name(key: IdentityKey, name: str | None, config: ReminderConfig) -> str:
    name = (name or "").strip()
    if name:
        return name
    if isinstance(key, NameFallback):
        return key.name
    return config.unknown_customer_label


def _iter_unpaid(unpaid_invoices: UnpaidInvoices, config: ReminderConfig):
    if isinstance(unpaid_invoices, Mapping):
        for key, invoices in unpaid_invoices.items():
            for invoice in invoices:
                yield key, invoice
    else:
        for invoice in unpaid_invoices:
            yield identity_for(invoice.customer_id, invoice.customer_name, config), invoice


def aggregate_overdue(
    records: Iterable[OverdueInstallmentRecord],
    unpaid_invoices: UnpaidInvoices | None = None,
    config: ReminderConfig | None = None,
) -> list[CustomerOverdueAggregate]:
    """Merge overdue records into one rollup per customer.

    Args:
        records: Overdue installment records across all contracts
        unpaid_invoices: Unpaid invoices keyed by identity, or a flat
            iterable keyed through `identity_for`
        config: Reminder configuration

    Returns:
        Aggregates in first-seen order
    """
    config = config or ReminderConfig()
    by_key: dict[IdentityKey, CustomerOverdueAggregate] = {}

    def _get(key: IdentityKey, name: str | None) -> CustomerOverdueAggregate:
        if key not in by_key:
            by_key[key] = CustomerOverdueAggregate(
                identity_key=key, customer_name=_display_name(key, name, config)
            )
        return by_key[key]

    for record in records:
        aggregate = _get(identity_for(record.customer_id, record.customer_name, config), record.customer_name)
        aggregate.installments.append(record)
        aggregate.total_overdue += record.overdue_amount
        aggregate.overdue_count += 1
        aggregate.oldest_days_overdue = max(aggregate.oldest_days_overdue, record.days_overdue)

    if unpaid_invoices is not None:
        for key, invoice in _iter_unpaid(unpaid_invoices, config):
            aggregate = _get(key, invoice.customer_name)
            aggregate.unpaid_invoices.append(invoice)
            aggregate.total_overdue += invoice.amount
            aggregate.oldest_days_overdue = max(aggregate.oldest_days_overdue, invoice.days_overdue)

    return list(by_key.values())


def compute_overdue_aggregates(
    contracts: Iterable[Contract],
    payments: Iterable[Payment],
    reference_date: date | datetime,
    unpaid_invoices: UnpaidInvoices | None = None,
    config: ReminderConfig | None = None,
) -> list[CustomerOverdueAggregate]:
    """Compute per-customer overdue rollups as of `reference_date`.

    Runs the normalizer, payment pool and allocation per contract, then
    aggregates the overdue records across contracts.
    """
    config = config or ReminderConfig()
    payments_by_contract = group_payments_by_contract(payments)

    records: list[OverdueInstallmentRecord] = []
    processed = 0
    for contract in contracts:
        outcome = allocate_contract(
            contract, payments_by_contract.get(str(contract.id), []), reference_date, config
        )
        records.extend(outcome.records)
        processed += 1

    increment_contracts_processed(processed)
    aggregates = aggregate_overdue(records, unpaid_invoices, config)

    logger.info(
        "Computed overdue aggregates",
        extra={
            "contracts": processed,
            "overdue_records": len(records),
            "customers": len(aggregates),
        },
    )
    return aggregates


def sort_aggregates(
    aggregates: Iterable[CustomerOverdueAggregate], by: str = "total_overdue"
) -> list[CustomerOverdueAggregate]:
    """Sort aggregates descending for presentation (stable).

    Raises:
        ValueError: If `by` is not a known sort key
    """
    if by not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {by}")
    return sorted(aggregates, key=lambda a: getattr(a, by), reverse=True)


def find_name_collisions(aggregates: Iterable[CustomerOverdueAggregate]) -> list[NameCollision]:
    """Detect name-fallback aggregates that share a name with another aggregate.

    Such pairs may be one customer split in two, or two customers merged
    under one name; either way they need a human look. Each collision is
    logged as a warning.
    """
    by_name: dict[str, list[CustomerOverdueAggregate]] = {}
    for aggregate in aggregates:
        by_name.setdefault(aggregate.customer_name.casefold(), []).append(aggregate)

    collisions = []
    for group in by_name.values():
        if len(group) < 2 or not any(isinstance(a.identity_key, NameFallback) for a in group):
            continue
        collision = NameCollision(name=group[0].customer_name, keys=tuple(a.identity_key for a in group))
        logger.warning(
            "Customer name shared across identities",
            extra={"keys": [str(k) for k in collision.keys]},
        )
        collisions.append(collision)
    return collisions


def unpaid_invoice_from_row(
    row: Mapping[str, Any], reference: date | datetime
) -> UnpaidInvoiceRecord | None:
    """Build an unpaid invoice record from a raw invoice row.

    Returns None for rows already marked paid.

    Raises:
        DataError: If amount or creation timestamp is unusable
    """
    if row.get("paid"):
        return None

    created_at = parse_timestamp(row.get("created_at"))
    if isinstance(reference, datetime):
        if reference.tzinfo is None:
            reference = reference.replace(tzinfo=UTC)
        days = math.ceil((reference - created_at).total_seconds() / SECONDS_PER_DAY)
    else:
        days = (reference - created_at.date()).days

    contract_id = row.get("contract_id", row.get("contract_number"))
    return UnpaidInvoiceRecord(
        contract_id=str(contract_id) if contract_id is not None else "",
        amount=parse_amount(row.get("total_amount", row.get("amount"))),
        created_at=created_at,
        days_overdue=days,
        invoice_id=str(row["id"]) if row.get("id") is not None else None,
        customer_id=str(row["customer_id"]) if row.get("customer_id") else None,
        customer_name=row.get("customer_name"),
    )


def unpaid_invoices_from_rows(
    rows: Iterable[Mapping[str, Any]], reference: date | datetime
) -> list[UnpaidInvoiceRecord]:
    """Convert raw invoice rows, skipping (and counting) unusable ones."""
    invoices = []
    for row in rows:
        try:
            invoice = unpaid_invoice_from_row(row, reference)
        except DataError as err:
            logger.warning(
                "Skipping malformed unpaid invoice",
                extra={"invoice_id": row.get("id"), "reason": err.reason},
            )
            increment_data_errors(err.reason)
            continue
        if invoice is not None:
            invoices.append(invoice)
    return invoices
