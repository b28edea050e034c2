"""JSON structured logging with mandatory fields and PII redaction."""
import json
import logging
import re
import sys
import threading
from datetime import UTC, datetime
from typing import Optional

from arrears.core.config import settings

# Thread-local storage for context
_context = threading.local()

_RESERVED = frozenset(
    (
        "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
        "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
        "created", "msecs", "relativeCreated", "thread", "threadName",
        "processName", "process", "message", "taskName",
    )
)


class JSONFormatter(logging.Formatter):
    """JSON formatter with mandatory fields and PII redaction."""

    def __init__(self):
        super().__init__()
        self.email_pattern = re.compile(r"(\b\S+@\S+\.\S+\b)")
        self.phone_pattern = re.compile(r"(\+?\d[\d \-/]{6,}\d)")

    def _redact_pii(self, text: str) -> str:
        """Redact phone numbers and emails from text."""
        if not isinstance(text, str):
            return text
        text = self.email_pattern.sub(self._mask_email, text)
        text = self.phone_pattern.sub(self._mask_phone, text)
        return text

    def _mask_email(self, match) -> str:
        """Mask email: show first char of user, keep domain."""
        email = match.group(1)
        if "@" not in email:
            return email
        user, domain = email.split("@", 1)
        masked_user = "*" if len(user) <= 1 else user[0] + "*" * (len(user) - 1)
        return f"{masked_user}@{domain}"

    def _mask_phone(self, match) -> str:
        """Mask phone: keep the last 3 digits."""
        phone = match.group(1)
        if len(phone) <= 3:
            return "*" * len(phone)
        return "*" * (len(phone) - 3) + phone[-3:]

    def format(self, record):
        """Format log record as JSON with mandatory fields and PII redaction."""
        run_id = getattr(_context, "run_id", None) or "unknown"

        log_entry = {
            "run_id": run_id,
            "logger": record.name,
            "level": record.levelname.lower(),
            "msg": self._redact_pii(record.getMessage()),
            "ts_utc": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        }

        if record.exc_info:
            log_entry["exc_info"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED or key in log_entry:
                continue
            if isinstance(value, str):
                value = self._redact_pii(value)
            log_entry[key] = value

        return json.dumps(log_entry, default=str)


def set_run_id(run_id: Optional[str]) -> None:
    """Set reminder run ID for current thread context."""
    _context.run_id = run_id


def get_run_id() -> Optional[str]:
    return getattr(_context, "run_id", None)


def init_logging(level: Optional[str] = None) -> None:
    """Initialize JSON logging on the root logger."""
    logger = logging.getLogger()
    level_name = (level or settings.log_level).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    # Remove existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get logger with JSON formatting."""
    return logging.getLogger(name)
