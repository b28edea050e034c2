"""Textly WhatsApp API client for reminder delivery.

Sends plain-text WhatsApp messages through the Textly HTTP API. Textly
expects numbers in local format (0912345678): no plus sign and no country
code.
"""

import logging
import re

import httpx

from arrears.core.config import settings
from arrears.reminders.errors import ChannelError

from .base import SendResult

_NON_DIGITS = re.compile(r"\D")


def format_local_number(phone: str, country_code: str = "218") -> str:
    """Convert a phone number to Textly's local format.

    Args:
        phone: Number in any common notation (+218 91-234-5678, 00218..., 091...)
        country_code: Country code stripped from the front

    Returns:
        Digits only, leading zero ensured; empty string for input without digits
    """
    digits = _NON_DIGITS.sub("", phone or "")
    if not digits:
        return ""
    if digits.startswith("00" + country_code):
        digits = digits[2 + len(country_code):]
    elif country_code and digits.startswith(country_code):
        digits = digits[len(country_code):]
    if not digits.startswith("0"):
        digits = "0" + digits
    return digits


class TextlyChannel:
    """Textly API channel."""

    name = "textly"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        country_code: str | None = None,
        timeout_ms: int | None = None,
        raise_on_error: bool = False,
    ):
        """Initialize Textly channel.

        Args:
            api_key: Bearer API key (default: TEXTLY_API_KEY)
            base_url: API base URL (default: TEXTLY_BASE_URL)
            country_code: Country code stripped from numbers
            timeout_ms: Default per-request timeout
            raise_on_error: Raise ChannelError instead of returning a failed result
        """
        self.logger = logging.getLogger(__name__)

        self.api_key = settings.TEXTLY_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.TEXTLY_BASE_URL).rstrip("/")
        self.country_code = settings.TEXTLY_COUNTRY_CODE if country_code is None else country_code
        self.raise_on_error = raise_on_error
        timeout_ms = settings.REMINDER_SEND_TIMEOUT_MS if timeout_ms is None else timeout_ms

        if not self.api_key:
            self.logger.warning("TEXTLY_API_KEY not set - sends will fail")

        self._client = httpx.Client(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=timeout_ms / 1000.0,
        )

    def send(self, phone: str, text: str, timeout: float | None = None) -> SendResult:
        """Send a plain WhatsApp message.

        Args:
            phone: Recipient number
            text: Message body
            timeout: Seconds before the request is abandoned (default: client timeout)

        Returns:
            SendResult with success status and details
        """
        if not self.api_key:
            return self._failure("TEXTLY_API_KEY not set", retriable=False)

        number = format_local_number(phone, self.country_code)
        if not number:
            return self._failure("invalid_number", retriable=False)

        payload = {
            "target_numbers": [number],
            "content": text,
            "wait_for_send": False,
        }

        try:
            response = self._client.post(
                "/whatsapp/send_plain",
                json=payload,
                timeout=httpx.USE_CLIENT_DEFAULT if timeout is None else timeout,
            )
        except httpx.TimeoutException as e:
            self.logger.error("Textly request timed out", extra={"error": str(e)})
            return self._failure("timeout")
        except httpx.RequestError as e:
            error_msg = f"Network error sending message: {str(e)}"
            self.logger.error(error_msg, extra={"error": str(e)})
            return self._failure(error_msg)

        if 200 <= response.status_code < 300:
            message_id = self._extract_message_id(response)
            self.logger.info(
                "Message sent via Textly",
                extra={"status_code": response.status_code, "message_id": message_id},
            )
            return SendResult(success=True, message_id=message_id, status_code=response.status_code)

        error_msg = f"Textly API error: {response.status_code} - {response.text}"
        self.logger.error(
            "Failed to send message via Textly", extra={"status_code": response.status_code}
        )
        retriable = response.status_code == 429 or response.status_code >= 500
        return self._failure(error_msg, status_code=response.status_code, retriable=retriable)

    @staticmethod
    def _extract_message_id(response: httpx.Response) -> str | None:
        try:
            data = response.json()
        except ValueError:
            return None
        if isinstance(data, dict):
            message_id = data.get("message_id") or data.get("id")
            return str(message_id) if message_id is not None else None
        return None

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
