"""Recipient resolution for reminders.

Maps customer identities and management contacts to phone numbers and
builds the dispatch targets. A customer without a phone number is not a
send failure: it is left out of the dispatch and counted separately.
"""

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from arrears.core.observability.metrics import increment_targets_unresolved

from .composer import MessageComposer
from .dto import CustomerId, CustomerOverdueAggregate, DispatchTarget, IdentityKey, NameFallback
from .errors import ResolutionError

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def _name_key(name: str | None) -> str:
    return _WHITESPACE.sub(" ", name or "").strip().casefold()


class CustomerDirectory(Protocol):
    """Looks up a phone number for a customer identity."""

    def resolve_phone(self, identity_key: IdentityKey) -> str | None:
        ...


@dataclass(frozen=True)
class CustomerContact:
    """Customer directory entry."""

    id: str | None
    name: str
    phone: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CustomerContact":
        customer_id = row.get("id", row.get("customer_id"))
        return cls(
            id=str(customer_id) if customer_id not in (None, "") else None,
            name=str(row.get("name") or row.get("customer_name") or ""),
            phone=row.get("phone"),
        )


class InMemoryCustomerDirectory:
    """Directory over a fixed set of contacts.

    Ids resolve exactly; name-fallback identities resolve by name, ignoring
    case and repeated whitespace.
    """

    def __init__(self, contacts: Iterable[CustomerContact] = ()):
        self._by_id: dict[str, CustomerContact] = {}
        self._by_name: dict[str, CustomerContact] = {}
        for contact in contacts:
            self.add(contact)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> "InMemoryCustomerDirectory":
        return cls(CustomerContact.from_row(row) for row in rows)

    def add(self, contact: CustomerContact) -> None:
        if contact.id:
            self._by_id[contact.id] = contact
        if contact.name:
            self._by_name.setdefault(_name_key(contact.name), contact)

    def __len__(self) -> int:
        return len(self._by_id) + sum(1 for c in self._by_name.values() if not c.id)

    def resolve_phone(self, identity_key: IdentityKey) -> str | None:
        if isinstance(identity_key, CustomerId):
            contact = self._by_id.get(identity_key.value)
        elif isinstance(identity_key, NameFallback):
            contact = self._by_name.get(_name_key(identity_key.name))
        else:
            contact = None
        if contact is None or not contact.phone:
            return None
        return str(contact.phone).strip() or None


@dataclass(frozen=True)
class ManagementContact:
    """Recipient of the management report."""

    id: str
    phone: str | None
    label: str = ""
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ManagementContact":
        return cls(
            id=str(row["id"]),
            phone=row.get("phone"),
            label=str(row.get("label") or row.get("name") or ""),
            is_active=bool(row.get("is_active", True)),
        )


def build_customer_targets(
    aggregates: Iterable[CustomerOverdueAggregate],
    directory: CustomerDirectory,
    composer: MessageComposer | None = None,
) -> tuple[list[DispatchTarget], list[IdentityKey]]:
    """Compose one reminder per customer that has a phone number.

    Returns:
        Tuple (targets, unresolved identity keys)
    """
    composer = composer or MessageComposer()
    targets: list[DispatchTarget] = []
    unresolved: list[IdentityKey] = []

    for aggregate in aggregates:
        phone = directory.resolve_phone(aggregate.identity_key)
        if not phone:
            error = ResolutionError(str(aggregate.identity_key))
            logger.warning(
                "No phone number for customer",
                extra={"identity_key": str(aggregate.identity_key), "error": str(error)},
            )
            increment_targets_unresolved()
            unresolved.append(aggregate.identity_key)
            continue

        targets.append(
            DispatchTarget(
                id=str(aggregate.identity_key),
                phone=phone,
                display_name=aggregate.customer_name,
                message=composer.compose_customer_message(aggregate),
            )
        )

    return targets, unresolved


def build_management_targets(
    contacts: Iterable[ManagementContact], report: str
) -> list[DispatchTarget]:
    """One target per active management contact, all carrying the same report.

    Contacts without a phone are kept; dispatch excludes them.
    """
    return [
        DispatchTarget(
            id=f"management:{contact.id}",
            phone=contact.phone,
            display_name=contact.label or "Management",
            message=report,
        )
        for contact in contacts
        if contact.is_active
    ]
