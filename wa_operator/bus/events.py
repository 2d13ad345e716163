"""Event types carried on the bus."""

from dataclasses import dataclass, field
from time import time
from typing import Any

# Named channels on the event bus.
MESSAGE_RAW = "transport:message:raw"
MESSAGE_OWNER = "transport:message:owner"
OWNER_TYPING = "transport:owner:typing"
TRANSPORT_READY = "transport:ready"
TRANSPORT_DISCONNECTED = "transport:disconnected"
INTENT_COMMAND = "intent:command"
ALERT_MOOD = "alert:mood"
FORWARD_WEBHOOK = "forward:webhook"


@dataclass
class InboundEvent:
    """Normalized one-to-one chat message coming from the transport."""

    contact_id: str
    text: str = ""
    content_type: str = "text"
    is_from_me: bool = False
    is_group: bool = False
    display_name: str | None = None
    timestamp: float = field(default_factory=time)  # epoch seconds
    has_media: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_command(self) -> bool:
        return self.text.startswith(("!", "/"))


@dataclass
class TypingEvent:
    """Owner typing indicator for a contact chat."""

    contact_id: str
    timestamp: float = field(default_factory=time)
