"""Dispatch transition events and the stream that carries them."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from threading import Lock

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class DispatchState(Enum):
    """Per-recipient dispatch state."""
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not DispatchState.PENDING


class DispatchTransition(BaseModel):
    """One recipient moving to a dispatch state."""

    target_id: str = Field(..., description="Dispatch target ID")
    state: DispatchState = Field(..., description="State entered")
    ts: datetime = Field(default_factory=lambda: datetime.now(UTC), description="Transition timestamp (UTC)")
    error: str | None = Field(None, description="Failure reason for error transitions")
    message_id: str | None = Field(None, description="Outbound message ID")
    channel: str | None = Field(None, description="Channel name")
    run_id: str | None = Field(None, description="Reminder run ID")


Observer = Callable[[DispatchTransition], None]


class TransitionStream:
    """Append-only stream of dispatch transitions.

    Observers are called synchronously in subscription order. A failing
    observer is logged and skipped; it never affects dispatch or the other
    observers.
    """

    def __init__(self):
        self._history: list[DispatchTransition] = []
        self._observers: list[Observer] = []
        self._lock = Lock()

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer.

        Returns:
            Callable that unsubscribes the observer
        """
        with self._lock:
            self._observers.append(observer)
        return lambda: self.unsubscribe(observer)

    def unsubscribe(self, observer: Observer) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    def publish(self, transition: DispatchTransition) -> None:
        """Append a transition and notify observers."""
        with self._lock:
            self._history.append(transition)
            observers = list(self._observers)

        for observer in observers:
            try:
                observer(transition)
            except Exception as e:
                logger.error(
                    "Transition observer failed",
                    extra={"target_id": transition.target_id, "error": str(e)},
                )

    @property
    def history(self) -> tuple[DispatchTransition, ...]:
        with self._lock:
            return tuple(self._history)

    def snapshot(self) -> dict[str, DispatchState]:
        """Latest state per target, in first-transition order."""
        states: dict[str, DispatchState] = {}
        for transition in self.history:
            states[transition.target_id] = transition.state
        return states
