"""Chat transports."""

from wa_operator.channels.base import BaseChannel, Transport
from wa_operator.channels.whatsapp import WhatsAppChannel

__all__ = ["BaseChannel", "Transport", "WhatsAppChannel"]
