"""Channel contract shared by all messaging integrations."""

from dataclasses import dataclass
from typing import Protocol


@dataclass
class SendResult:
    """Response from a messaging channel."""

    success: bool
    message_id: str | None = None
    error: str | None = None
    status_code: int | None = None
    dry_run: bool = False


class Channel(Protocol):
    """Anything that can deliver a text message to a phone number.

    Implementations report failures through `SendResult(success=False)`;
    custom channels may raise `ChannelError` instead.
    """

    name: str

    def send(self, phone: str, text: str, timeout: float | None = None) -> SendResult:
        ...
