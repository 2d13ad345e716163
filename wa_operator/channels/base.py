"""Transport contract and base channel."""

from abc import ABC, abstractmethod
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from wa_operator.bus.events import MESSAGE_OWNER, MESSAGE_RAW, OWNER_TYPING, InboundEvent, TypingEvent
from wa_operator.bus.queue import EventBus


@runtime_checkable
class Transport(Protocol):
    """What the conversation engine needs from a chat transport."""

    async def send_message(self, contact_id: str, text: str) -> None: ...

    async def send_media(
        self,
        contact_id: str,
        data: bytes,
        mime_type: str = "application/octet-stream",
        as_voice: bool = False,
    ) -> None: ...

    async def simulate_typing(self, contact_id: str, duration_ms: int) -> None: ...

    def is_ready(self) -> bool: ...


class BaseChannel(ABC):
    """
    Abstract base class for chat channel implementations.

    A channel owns the connection to one chat platform, normalizes what it
    receives into `InboundEvent`s and publishes them on the bus:
    contact messages as `transport:message:raw`, the owner's own messages as
    `transport:message:owner` and owner typing as `transport:owner:typing`.
    """

    name: str = "base"

    def __init__(self, config: Any, bus: EventBus):
        """
        Initialize the channel.

        Args:
            config: Channel-specific configuration.
            bus: The event bus for communication.
        """
        self.config = config
        self.bus = bus
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """Connect and keep listening until `stop()` is called."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop the channel and clean up resources."""
        pass

    @abstractmethod
    async def send_message(self, contact_id: str, text: str) -> None:
        pass

    @abstractmethod
    async def send_media(
        self,
        contact_id: str,
        data: bytes,
        mime_type: str = "application/octet-stream",
        as_voice: bool = False,
    ) -> None:
        pass

    @abstractmethod
    async def simulate_typing(self, contact_id: str, duration_ms: int) -> None:
        pass

    @abstractmethod
    def is_ready(self) -> bool:
        pass

    def _publish_message(self, event: InboundEvent) -> None:
        if not event.contact_id:
            logger.debug(f"Dropping {self.name} message without chat id")
            return
        self.bus.emit(MESSAGE_OWNER if event.is_from_me else MESSAGE_RAW, event)

    def _publish_typing(self, contact_id: str) -> None:
        if contact_id:
            self.bus.emit(OWNER_TYPING, TypingEvent(contact_id=contact_id))

    @property
    def is_running(self) -> bool:
        """Check if the channel is running."""
        return self._running
