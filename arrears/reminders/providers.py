"""Record sources for reminder runs.

The playbook depends on the small protocols below. `LocalSnapshotProvider`
implements all of them from one JSON or YAML file so that preview and
dry-run runs work without a database.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import date, datetime
from pathlib import Path
from typing import Any, Protocol

import yaml

from .aggregation import unpaid_invoices_from_rows
from .directory import InMemoryCustomerDirectory, ManagementContact
from .dto import Contract, Payment, UnpaidInvoiceRecord
from .errors import DataError, InputError
from .normalizer import parse_timestamp


class ContractSource(Protocol):
    def load_contracts(self) -> list[Contract]:
        ...

    def load_payments(self) -> list[Payment]:
        ...


class UnpaidInvoiceSource(Protocol):
    def load_unpaid_invoices(self, reference: date | datetime) -> list[UnpaidInvoiceRecord]:
        ...


def contract_from_row(row: Mapping[str, Any]) -> Contract:
    """Build a contract snapshot from a raw row.

    The schedule stays raw (`installments` / `installments_data`); the
    normalizer decodes it during allocation.
    """
    contract_id = row.get("id", row.get("contract_number"))
    customer_id = row.get("customer_id")
    return Contract(
        id=str(contract_id),
        customer_id=str(customer_id) if customer_id not in (None, "") else None,
        customer_name=row.get("customer_name"),
        raw_schedule=row.get("installments", row.get("installments_data")),
    )


def payment_from_row(row: Mapping[str, Any]) -> Payment:
    """Build a payment from a raw row; the amount is coerced during pooling."""
    contract_id = row.get("contract_id", row.get("contract_number"))
    try:
        paid_at = parse_timestamp(row.get("paid_at"))
    except DataError:
        paid_at = None
    return Payment(contract_id=str(contract_id), amount=row.get("amount"), paid_at=paid_at)


class LocalSnapshotProvider:
    """In-process provider backed by a local snapshot file.

    The file holds a mapping with any of the sections `contracts`,
    `payments`, `unpaid_invoices`, `customers` and `management_contacts`.
    Missing sections are empty.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is None:
            text = self.path.read_text(encoding="utf-8")
            if self.path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(text)
            else:
                data = json.loads(text)
            if data is None:
                data = {}
            if not isinstance(data, dict):
                raise InputError(f"Snapshot {self.path} must contain a mapping")
            self._data = data
        return self._data

    def _section(self, name: str) -> list[Mapping[str, Any]]:
        rows = self._load().get(name) or []
        if not isinstance(rows, list):
            raise InputError(f"Snapshot section '{name}' must be a list")
        return rows

    def load_contracts(self) -> list[Contract]:
        return [contract_from_row(row) for row in self._section("contracts")]

    def load_payments(self) -> list[Payment]:
        return [payment_from_row(row) for row in self._section("payments")]

    def load_unpaid_invoices(self, reference: date | datetime) -> list[UnpaidInvoiceRecord]:
        return unpaid_invoices_from_rows(self._section("unpaid_invoices"), reference)

    def load_directory(self) -> InMemoryCustomerDirectory:
        return InMemoryCustomerDirectory.from_rows(self._section("customers"))

    def load_management_contacts(self) -> list[ManagementContact]:
        return [ManagementContact.from_row(row) for row in self._section("management_contacts")]
