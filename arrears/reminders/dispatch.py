"""Sequential, throttled delivery of reminder messages.

A single worker drains a FIFO queue of targets: exactly one send is in
flight at any time, and a fixed delay separates consecutive sends so that
provider rate limits are respected. A failed send marks its target as
`error` and the worker moves on. Every state change is published as a
`DispatchTransition` on a `TransitionStream`, so progress can be observed
without coupling to the worker loop.
"""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable, Sequence

import httpx

from arrears.comm.events import DispatchState, DispatchTransition, Observer, TransitionStream
from arrears.comm.outbound_tags import generate_message_id
from arrears.core.config import settings
from arrears.core.observability.logging import get_run_id
from arrears.core.observability.metrics import (
    increment_reminders_failed,
    increment_reminders_sent,
    increment_targets_unresolved,
    record_send_duration,
)

from .dto import DispatchResult, DispatchTarget
from .errors import ChannelError, InputError


def validate_dispatch_inputs(
    targets: Sequence[DispatchTarget], delay: float, send_timeout: float | None
) -> None:
    """Reject structural misuse before anything is sent.

    Raises:
        InputError: Empty target list, negative delay or timeout, duplicate ids
    """
    if not targets:
        raise InputError("No dispatch targets given")
    if delay < 0:
        raise InputError(f"Delay must not be negative: {delay}")
    if send_timeout is not None and send_timeout < 0:
        raise InputError(f"Send timeout must not be negative: {send_timeout}")

    seen: set[str] = set()
    duplicates = []
    for target in targets:
        if target.id in seen:
            duplicates.append(target.id)
        seen.add(target.id)
    if duplicates:
        raise InputError(f"Duplicate target ids: {', '.join(sorted(set(duplicates)))}")


class DispatchPipeline:
    """Single-worker dispatch of messages through one channel."""

    def __init__(
        self,
        channel,
        delay: float | None = None,
        send_timeout: float | None = None,
        *,
        stream: TransitionStream | None = None,
        sleep: Callable[[float], None] | None = None,
        run_id: str | None = None,
    ):
        """Initialize pipeline.

        Args:
            channel: Object with `send(phone, text, timeout=None)`
            delay: Seconds to wait between sends (default: REMINDER_SEND_DELAY_MS)
            send_timeout: Seconds each send may take (default: REMINDER_SEND_TIMEOUT_MS)
            stream: Transition stream to publish on (a fresh one by default)
            sleep: Replaces the cancellable inter-send wait (tests)
            run_id: Run ID stamped on transitions (default: current log run ID)
        """
        self.channel = channel
        self.delay = settings.REMINDER_SEND_DELAY_MS / 1000.0 if delay is None else delay
        self.send_timeout = (
            settings.REMINDER_SEND_TIMEOUT_MS / 1000.0 if send_timeout is None else send_timeout
        )
        self.stream = stream or TransitionStream()
        self.run_id = run_id
        self._sleep = sleep
        self.logger = logging.getLogger(__name__)

    @property
    def channel_name(self) -> str:
        return getattr(self.channel, "name", type(self.channel).__name__)

    def run(
        self, targets: Iterable[DispatchTarget], cancellation: threading.Event | None = None
    ) -> DispatchResult:
        """Dispatch all targets in order.

        Args:
            targets: Recipients with their messages
            cancellation: Set to stop before the next send

        Returns:
            Per-target states and counts; targets never reached stay pending

        Raises:
            InputError: On structural misuse, before any send
        """
        targets = list(targets)
        validate_dispatch_inputs(targets, self.delay, self.send_timeout)
        cancellation = cancellation or threading.Event()
        run_id = self.run_id or get_run_id() or "adhoc"

        result = DispatchResult()
        queue: deque[DispatchTarget] = deque()
        for target in targets:
            if not (target.phone or "").strip():
                result.excluded.append(target.id)
                increment_targets_unresolved()
                self.logger.warning(
                    "Dispatch target has no phone number", extra={"target_id": target.id}
                )
                continue
            queue.append(target)
            self._publish(target.id, DispatchState.PENDING, run_id)

        queued_ids = [t.id for t in queue]
        self.logger.info(
            "Dispatch started",
            extra={
                "targets": len(queued_ids),
                "excluded": len(result.excluded),
                "channel": self.channel_name,
                "delay_s": self.delay,
            },
        )

        while queue:
            if cancellation.is_set():
                result.cancelled = True
                self.logger.info("Dispatch cancelled", extra={"not_sent": len(queue)})
                break

            target = queue.popleft()
            error = self._send_one(target, run_id)
            if error is not None:
                result.errors[target.id] = error

            if queue:
                self._wait(cancellation)

        states = self.stream.snapshot()
        result.per_target = {tid: states[tid] for tid in queued_ids}
        result.success_count = sum(1 for s in result.per_target.values() if s is DispatchState.SUCCESS)
        result.error_count = sum(1 for s in result.per_target.values() if s is DispatchState.ERROR)

        self.logger.info(
            "Dispatch finished",
            extra={
                "success": result.success_count,
                "error": result.error_count,
                "pending": result.pending_count,
                "cancelled": result.cancelled,
            },
        )
        return result

    def _send_one(self, target: DispatchTarget, run_id: str) -> str | None:
        """Send to one target and publish its terminal state.

        Returns:
            Failure reason, or None on success
        """
        t0 = time.time()
        message_id = generate_message_id(run_id, target.id)
        error = None
        try:
            outcome = self.channel.send(target.phone, target.message, timeout=self.send_timeout)
        except ChannelError as e:
            error = str(e)
        except httpx.TimeoutException:
            error = "timeout"
        except Exception as e:
            self.logger.exception("Unexpected channel error", extra={"target_id": target.id})
            error = f"Unexpected channel error: {str(e)}"
        else:
            # plain bool results are accepted from simple channels
            if isinstance(outcome, bool):
                error = None if outcome else "send failed"
            elif not hasattr(outcome, "success"):
                error = f"Unexpected channel result: {type(outcome).__name__}"
            elif outcome.success:
                message_id = getattr(outcome, "message_id", None) or message_id
            else:
                error = getattr(outcome, "error", None) or "send failed"

        duration_ms = (time.time() - t0) * 1000.0
        record_send_duration(duration_ms)

        if error is None:
            increment_reminders_sent()
            self._publish(target.id, DispatchState.SUCCESS, run_id, message_id=message_id)
        else:
            increment_reminders_failed()
            self._publish(target.id, DispatchState.ERROR, run_id, error=error, message_id=message_id)

        self.logger.info(
            "Reminder sent" if error is None else "Reminder send failed",
            extra={
                "target_id": target.id,
                "channel": self.channel_name,
                "status": "success" if error is None else "error",
                "error": error,
                "duration_ms": duration_ms,
            },
        )
        return error

    def _wait(self, cancellation: threading.Event) -> None:
        if self.delay <= 0:
            return
        if self._sleep is not None:
            self._sleep(self.delay)
        else:
            cancellation.wait(self.delay)

    def _publish(self, target_id: str, state: DispatchState, run_id: str, **fields) -> None:
        self.stream.publish(
            DispatchTransition(
                target_id=target_id,
                state=state,
                channel=self.channel_name,
                run_id=run_id,
                **fields,
            )
        )


def dispatch(
    targets: Iterable[DispatchTarget],
    channel,
    delay: float,
    cancellation: threading.Event | None = None,
    *,
    send_timeout: float | None = None,
    observers: Iterable[Observer] = (),
    sleep: Callable[[float], None] | None = None,
) -> DispatchResult:
    """Send each target's message through `channel`, one at a time.

    Args:
        targets: Recipients with their messages
        channel: Object with `send(phone, text, timeout=None)`
        delay: Seconds between consecutive sends
        cancellation: Set to stop before the next send
        send_timeout: Seconds each send may take
        observers: Callables receiving every DispatchTransition
        sleep: Replaces the cancellable inter-send wait

    Returns:
        DispatchResult
    """
    stream = TransitionStream()
    for observer in observers:
        stream.subscribe(observer)
    pipeline = DispatchPipeline(channel, delay, send_timeout, stream=stream, sleep=sleep)
    return pipeline.run(targets, cancellation)
