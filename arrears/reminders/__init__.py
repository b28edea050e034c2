"""Overdue reminders - installment arrears per customer.

This module provides the core functionality for overdue reminders: FIFO
allocation of payments to installments, customer-level aggregation across
contracts, message composition and throttled dispatch.

Key Components:
- Normalizer: Decodes raw installment schedules
- Allocation: FIFO payment waterfall per contract
- Aggregation: Per-customer rollups with resilient identity keys
- Composer: Jinja2-based customer reminders and management report
- Dispatch: Sequential, rate-limited delivery with per-target state

Run orchestration lives in `arrears.reminders.playbooks` and the console
in `arrears.reminders.console`; both depend on `arrears.integrations` and
are imported from their modules.
"""

__version__ = "1.0.0"

from .aggregation import (
    aggregate_overdue,
    compute_overdue_aggregates,
    find_name_collisions,
    identity_for,
    sort_aggregates,
)
from .allocation import allocate_contract, allocate_installments, build_payment_pool
from .composer import MessageComposer, compose_customer_message, compose_management_report
from .config import ReminderConfig
from .dispatch import DispatchPipeline, dispatch
from .dto import (
    Contract,
    CustomerId,
    CustomerOverdueAggregate,
    DispatchResult,
    DispatchState,
    DispatchTarget,
    Installment,
    NameFallback,
    OverdueInstallmentRecord,
    Payment,
    UnpaidInvoiceRecord,
)
from .errors import ChannelError, DataError, InputError, ReminderError, ResolutionError

__all__ = [
    "ReminderConfig",
    "Contract",
    "Installment",
    "Payment",
    "OverdueInstallmentRecord",
    "UnpaidInvoiceRecord",
    "CustomerOverdueAggregate",
    "CustomerId",
    "NameFallback",
    "DispatchTarget",
    "DispatchState",
    "DispatchResult",
    "ReminderError",
    "DataError",
    "ResolutionError",
    "ChannelError",
    "InputError",
    "allocate_installments",
    "allocate_contract",
    "build_payment_pool",
    "identity_for",
    "aggregate_overdue",
    "compute_overdue_aggregates",
    "sort_aggregates",
    "find_name_collisions",
    "MessageComposer",
    "compose_customer_message",
    "compose_management_report",
    "DispatchPipeline",
    "dispatch",
]
