"""Error taxonomy for overdue reminders.

Per-record and per-target errors are contained where they happen and only
surface as counters; `InputError` is the one that reaches callers.
"""


class ReminderError(Exception):
    """Base class for reminder errors."""


class DataError(ReminderError):
    """Malformed schedule payload or non-numeric amount.

    Raised while decoding a contract; the normalizer catches it and the
    contract contributes no installments.
    """

    def __init__(self, message: str, reason: str = "malformed_schedule"):
        super().__init__(message)
        self.reason = reason


class ResolutionError(ReminderError):
    """No phone number could be resolved for a recipient."""

    def __init__(self, target_id: str, message: str = "no phone number"):
        super().__init__(f"{target_id}: {message}")
        self.target_id = target_id


class ChannelError(ReminderError):
    """A send failed (network error, provider rejection or timeout)."""

    def __init__(self, message: str, status_code: int | None = None, retriable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retriable = retriable


class InputError(ReminderError, ValueError):
    """Structural misuse of the API; rejected before any send."""
