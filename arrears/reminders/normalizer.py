"""Installment schedule normalization.

Decodes the raw schedule stored with a contract into validated
`Installment` records. Malformed payloads never abort a run: the contract
contributes zero installments and the problem is logged and counted.
"""

import json
import logging
from collections.abc import Mapping
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from arrears.core.observability.metrics import increment_data_errors

from .config import ReminderConfig
from .dto import ZERO, Contract, Installment, quantize
from .errors import DataError

logger = logging.getLogger(__name__)

_DUE_DATE_KEYS = ("dueDate", "due_date")


def parse_amount(value: Any) -> Decimal:
    """Parse a monetary amount.

    Raises:
        DataError: If the value is missing, non-numeric or not finite
    """
    if value is None or isinstance(value, bool):
        raise DataError(f"invalid amount {value!r}", reason="invalid_amount")
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as err:
            raise DataError(f"invalid amount {value!r}", reason="invalid_amount") from err
    if not amount.is_finite():
        raise DataError(f"invalid amount {value!r}", reason="invalid_amount")
    return quantize(amount)


def coerce_amount(value: Any, contract_id: str | None = None) -> Decimal:
    """Parse an amount, falling back to zero for unusable values."""
    try:
        return parse_amount(value)
    except DataError as err:
        logger.warning(
            "Amount coerced to zero",
            extra={"contract_id": contract_id, "reason": err.reason},
        )
        increment_data_errors(err.reason)
        return ZERO


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp; naive values are taken as UTC.

    Raises:
        DataError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as err:
            raise DataError(f"invalid timestamp {value!r}", reason="invalid_timestamp") from err
    else:
        raise DataError(f"invalid timestamp {value!r}", reason="invalid_timestamp")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_due_date(value: Any) -> date:
    """Parse a due date from a date, datetime or ISO string.

    Raises:
        DataError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError as err:
            raise DataError(f"invalid due date {value!r}", reason="invalid_due_date") from err
    raise DataError(f"invalid due date {value!r}", reason="invalid_due_date")


def decode_schedule(raw: Any) -> list:
    """Decode a raw schedule payload into a list of entries.

    Args:
        raw: None, JSON text, or a list of mappings/Installments

    Returns:
        List of undecoded entries (empty for an absent schedule)

    Raises:
        DataError: If the payload cannot be decoded into a list
    """
    if raw is None:
        return []
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        if not raw.strip():
            return []
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as err:
            raise DataError(f"schedule is not valid JSON: {err.msg}") from err
    if not isinstance(raw, list):
        raise DataError(f"schedule must be a list, got {type(raw).__name__}")
    return raw


def normalize_installments(
    contract_id: str, raw: Any, config: ReminderConfig | None = None
) -> list[Installment]:
    """Normalize a contract's raw schedule into installments.

    Entries without a usable due date are dropped since they cannot be
    scheduled. The result keeps input order and is not sorted.

    Args:
        contract_id: Contract the schedule belongs to (for logging)
        raw: Raw schedule payload
        config: Reminder configuration (default description)

    Returns:
        List of validated installments; empty when the payload is unusable
    """
    config = config or ReminderConfig()

    try:
        entries = decode_schedule(raw)
    except DataError as err:
        logger.warning(
            "Skipping contract with malformed schedule",
            extra={"contract_id": contract_id, "reason": err.reason, "error": str(err)},
        )
        increment_data_errors(err.reason)
        return []

    installments: list[Installment] = []
    for entry in entries:
        if isinstance(entry, Installment):
            installments.append(entry)
            continue
        if not isinstance(entry, Mapping):
            increment_data_errors("invalid_entry")
            continue

        due_raw = next((entry[k] for k in _DUE_DATE_KEYS if entry.get(k)), None)
        if due_raw is None:
            increment_data_errors("missing_due_date")
            continue
        try:
            due_date = parse_due_date(due_raw)
        except DataError as err:
            logger.debug(
                "Dropping installment with unparseable due date",
                extra={"contract_id": contract_id, "error": str(err)},
            )
            increment_data_errors(err.reason)
            continue

        installments.append(
            Installment(
                amount=coerce_amount(entry.get("amount"), contract_id),
                due_date=due_date,
                description=entry.get("description") or config.default_installment_description,
            )
        )

    return installments


def contract_installments(contract: Contract, config: ReminderConfig | None = None) -> list[Installment]:
    """Installments of a contract, decoding `raw_schedule` when needed."""
    if contract.installments:
        return list(contract.installments)
    return normalize_installments(contract.id, contract.raw_schedule, config)
