"""Reminder run orchestration.

A run computes the overdue aggregates as of a reference date, composes the
messages for the chosen recipients, resolves phone numbers and, unless it
is a preview, dispatches through a channel.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from arrears.comm.event_sink import TransitionSink
from arrears.comm.events import Observer, TransitionStream
from arrears.core.config import settings
from arrears.core.observability import start_run
from arrears.integrations import get_channel

from .aggregation import compute_overdue_aggregates, find_name_collisions, sort_aggregates
from .composer import MessageComposer
from .config import ReminderConfig
from .directory import (
    CustomerDirectory,
    InMemoryCustomerDirectory,
    ManagementContact,
    build_customer_targets,
    build_management_targets,
)
from .dispatch import DispatchPipeline
from .dto import ZERO, CustomerOverdueAggregate, DispatchResult, DispatchTarget
from .errors import InputError
from .providers import ContractSource, UnpaidInvoiceSource

RECIPIENT_TYPES = ("customers", "management")
RUN_MODES = ("preview", "send")


@dataclass
class ReminderContext:
    """Context for one reminder run."""

    reference_date: date | datetime
    source: ContractSource | None = None
    recipients: str = "customers"
    mode: str = "preview"
    run_id: str | None = None
    channel_name: str | None = None
    channel: Any = None
    invoice_source: UnpaidInvoiceSource | None = None
    directory: CustomerDirectory | None = None
    management_contacts: list[ManagementContact] = field(default_factory=list)
    config: ReminderConfig | None = None
    composer: MessageComposer | None = None
    delay: float | None = None
    send_timeout: float | None = None
    cancellation: threading.Event | None = None
    observers: list[Observer] = field(default_factory=list)
    sort_by: str = "total_overdue"
    transition_log_dir: str | None = None

    def __post_init__(self):
        """Validate options and fill in defaults."""
        if self.recipients not in RECIPIENT_TYPES:
            raise InputError(f"Unknown recipient type '{self.recipients}'")
        if self.mode not in RUN_MODES:
            raise InputError(f"Unknown run mode '{self.mode}'")

        if self.config is None:
            self.config = ReminderConfig.from_env()

        if self.composer is None:
            self.composer = MessageComposer(self.config)

        if self.directory is None:
            self.directory = InMemoryCustomerDirectory()

        if self.cancellation is None:
            self.cancellation = threading.Event()


@dataclass
class ReminderRunResult:
    """Result of one reminder run."""

    success: bool
    run_id: str = ""
    recipients: str = "customers"
    mode: str = "preview"
    aggregates: list[CustomerOverdueAggregate] = field(default_factory=list)
    targets: list[DispatchTarget] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)
    dispatch: DispatchResult | None = None
    processing_time_seconds: float = 0.0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def total_overdue(self):
        return sum((a.total_overdue for a in self.aggregates), ZERO)

    def summary(self) -> str:
        if self.dispatch is not None:
            return self.dispatch.summary()
        return f"{len(self.targets)} messages composed, {len(self.unresolved)} unresolved"

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "run_id": self.run_id,
            "recipients": self.recipients,
            "mode": self.mode,
            "customers": len(self.aggregates),
            "total_overdue": str(self.total_overdue),
            "targets": [
                {"id": t.id, "display_name": t.display_name, "has_phone": bool(t.phone)}
                for t in self.targets
            ],
            "unresolved": self.unresolved,
            "dispatch": self.dispatch.to_dict() if self.dispatch else None,
            "summary": self.summary(),
            "processing_time_seconds": self.processing_time_seconds,
            "errors": self.errors,
            "warnings": self.warnings,
        }


class ReminderPlaybook:
    """Overdue reminder orchestrator."""

    def __init__(self, config: ReminderConfig | None = None):
        """Initialize playbook.

        Args:
            config: Reminder configuration
        """
        self.config = config
        self.logger = logging.getLogger(__name__)

    def run_once(self, context: ReminderContext) -> ReminderRunResult:
        """Run the reminder process once.

        Args:
            context: Reminder context

        Returns:
            Reminder run result

        Raises:
            InputError: On structural misuse (missing source, unknown channel,
                invalid dispatch parameters)
        """
        start_time = datetime.now(UTC)
        run_id = start_run(context.run_id)
        result = ReminderRunResult(
            success=True, run_id=run_id, recipients=context.recipients, mode=context.mode
        )

        if context.source is None:
            raise InputError("A contract source is required")

        config = self.config or context.config

        try:
            aggregates = self._compute(context, config)
            result.aggregates = aggregates

            for collision in find_name_collisions(aggregates):
                result.warnings.append(
                    f"Customer name '{collision.name}' shared by {len(collision.keys)} identities"
                )

            if not aggregates:
                result.warnings.append("No overdue customers found")
                return self._finish(result, start_time)

            if context.recipients == "customers":
                targets, unresolved = build_customer_targets(
                    aggregates, context.directory, context.composer
                )
                result.unresolved = [str(key) for key in unresolved]
            else:
                report = context.composer.compose_management_report(
                    sort_aggregates(aggregates, context.sort_by), report_date=context.reference_date
                )
                targets = build_management_targets(context.management_contacts, report)
                if not targets:
                    result.warnings.append("No active management contacts")
            result.targets = targets

            if context.mode == "preview" or not targets:
                return self._finish(result, start_time)

            result.dispatch = self._dispatch(context, targets, run_id)
            if result.dispatch.error_count:
                result.warnings.append(f"{result.dispatch.error_count} sends failed")

        except InputError:
            raise
        except Exception as e:
            self.logger.error(f"Reminder run failed: {e}", extra={"run_id": run_id})
            result.success = False
            result.errors.append(str(e))

        return self._finish(result, start_time)

    def _compute(
        self, context: ReminderContext, config: ReminderConfig
    ) -> list[CustomerOverdueAggregate]:
        contracts = context.source.load_contracts()
        payments = context.source.load_payments()
        unpaid = None
        if context.invoice_source is not None:
            unpaid = context.invoice_source.load_unpaid_invoices(context.reference_date)
        return compute_overdue_aggregates(
            contracts, payments, context.reference_date, unpaid, config
        )

    def _dispatch(
        self, context: ReminderContext, targets: list[DispatchTarget], run_id: str
    ) -> DispatchResult:
        stream = TransitionStream()
        for observer in context.observers:
            stream.subscribe(observer)
        log_dir = context.transition_log_dir or settings.TRANSITION_LOG_DIR
        if log_dir:
            stream.subscribe(TransitionSink(log_dir))

        if context.channel is not None:
            return self._run_pipeline(context, context.channel, targets, stream, run_id)

        with get_channel(context.channel_name) as channel:
            return self._run_pipeline(context, channel, targets, stream, run_id)

    @staticmethod
    def _run_pipeline(context, channel, targets, stream, run_id) -> DispatchResult:
        pipeline = DispatchPipeline(
            channel,
            context.delay,
            context.send_timeout,
            stream=stream,
            run_id=run_id,
        )
        return pipeline.run(targets, context.cancellation)

    def _finish(self, result: ReminderRunResult, start_time: datetime) -> ReminderRunResult:
        result.processing_time_seconds = (datetime.now(UTC) - start_time).total_seconds()
        self.logger.info(
            "Reminder run finished",
            extra={
                "run_id": result.run_id,
                "recipients": result.recipients,
                "mode": result.mode,
                "customers": len(result.aggregates),
                "targets": len(result.targets),
                "unresolved": len(result.unresolved),
                "summary": result.summary(),
                "success": result.success,
            },
        )
        return result
