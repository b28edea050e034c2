"""Messaging channels for reminder delivery."""

from .base import Channel, SendResult
from .channels import CHANNELS, DryRunChannel, get_channel
from .textly_client import TextlyChannel, format_local_number
from .whatsapp_bridge import WhatsAppBridgeChannel

__all__ = [
    "Channel",
    "SendResult",
    "CHANNELS",
    "DryRunChannel",
    "TextlyChannel",
    "WhatsAppBridgeChannel",
    "format_local_number",
    "get_channel",
]
