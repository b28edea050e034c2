"""Dry-run channel and channel selection by name."""

import logging

from arrears.core.config import settings
from arrears.reminders.errors import InputError

from .base import Channel, SendResult
from .textly_client import TextlyChannel
from .whatsapp_bridge import WhatsAppBridgeChannel

CHANNELS = ("dry_run", "textly", "whatsapp")


class DryRunChannel:
    """Simulates sending: logs each message and records it in `sent`."""

    name = "dry_run"

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.sent: list[tuple[str, str]] = []

    def send(self, phone: str, text: str, timeout: float | None = None) -> SendResult:
        self.sent.append((phone, text))
        self.logger.info(
            "DRY-RUN: Would send message",
            extra={"to": phone, "chars": len(text), "dry_run": True},
        )
        return SendResult(success=True, message_id=f"dry-run-{len(self.sent)}", dry_run=True)

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def get_channel(name: str | None = None) -> Channel:
    """Build a channel by name (default: REMINDER_CHANNEL).

    Raises:
        InputError: If the name is not a known channel
    """
    name = (name or settings.REMINDER_CHANNEL).strip().lower()
    if name == "textly":
        return TextlyChannel()
    if name == "whatsapp":
        return WhatsAppBridgeChannel()
    if name == "dry_run":
        return DryRunChannel()
    raise InputError(f"Unknown channel '{name}', expected one of: {', '.join(CHANNELS)}")
