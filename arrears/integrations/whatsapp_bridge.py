"""Client for the local whatsapp-web bridge.

The bridge exposes `POST /send {phone, message}` and answers 400
`invalid_number` for unknown numbers and 503 `not_connected` while no
WhatsApp session is linked.
"""

import logging
import re

import httpx

from arrears.core.config import settings
from arrears.reminders.errors import ChannelError

from .base import SendResult

_NON_DIGITS = re.compile(r"\D")


class WhatsAppBridgeChannel:
    """Channel posting to a locally running WhatsApp bridge."""

    name = "whatsapp"

    def __init__(
        self,
        base_url: str | None = None,
        timeout_ms: int | None = None,
        raise_on_error: bool = False,
    ):
        self.logger = logging.getLogger(__name__)
        self.base_url = (base_url or settings.WHATSAPP_BRIDGE_URL).rstrip("/")
        self.raise_on_error = raise_on_error
        timeout_ms = settings.REMINDER_SEND_TIMEOUT_MS if timeout_ms is None else timeout_ms

        self._client = httpx.Client(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout_ms / 1000.0,
        )

    def send(self, phone: str, text: str, timeout: float | None = None) -> SendResult:
        """Send a message through the bridge.

        The bridge keeps the country code, so the number is only reduced to
        its digits.
        """
        number = _NON_DIGITS.sub("", phone or "")
        if not number:
            return self._failure("invalid_number", status_code=None, retriable=False)

        try:
            response = self._client.post(
                "/send",
                json={"phone": number, "message": text},
                timeout=httpx.USE_CLIENT_DEFAULT if timeout is None else timeout,
            )
        except httpx.TimeoutException as e:
            self.logger.error("WhatsApp bridge request timed out", extra={"error": str(e)})
            return self._failure("timeout")
        except httpx.RequestError as e:
            error_msg = f"WhatsApp bridge unreachable at {self.base_url}: {str(e)}"
            self.logger.error(error_msg)
            return self._failure(error_msg)

        data = self._json(response)
        if 200 <= response.status_code < 300:
            message_id = data.get("messageId") or data.get("id")
            return SendResult(
                success=True,
                message_id=str(message_id) if message_id else None,
                status_code=response.status_code,
            )

        error = data.get("error") or f"http_{response.status_code}"
        self.logger.error(
            "WhatsApp bridge rejected message",
            extra={"status_code": response.status_code, "error": error},
        )
        # invalid_number will fail again; not_connected may recover once linked
        return self._failure(error, status_code=response.status_code, retriable=response.status_code != 400)

    def status(self) -> dict:
        """Bridge connection status (`GET /status`)."""
        try:
            response = self._client.get("/status")
        except httpx.RequestError as e:
            return {"connected": False, "error": str(e)}
        data = self._json(response)
        data.setdefault("connected", False)
        return data

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {"raw": response.text}
        return data if isinstance(data, dict) else {"raw": data}

    def _failure(self, error: str, status_code: int | None = None, retriable: bool = True) -> SendResult:
        if self.raise_on_error:
            raise ChannelError(error, status_code=status_code, retriable=retriable)
        return SendResult(success=False, error=error, status_code=status_code)

    def close(self):
        """Close HTTP client connection."""
        if hasattr(self, "_client"):
            self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
