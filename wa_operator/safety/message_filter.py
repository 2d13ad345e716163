"""Pre-AI message validation chain."""

from collections.abc import Callable
from dataclasses import dataclass
from time import time

from loguru import logger

from wa_operator.bus.events import InboundEvent

BROADCAST_JID = "status@broadcast"


@dataclass(frozen=True)
class FilterResult:
    passed: bool
    reason: str = ""


class MessageFilter:
    """
    Ordered boolean gates; the first failing gate decides.

    Order: group chat, empty text without media, stale by age, status
    broadcast, self-authored.
    """

    def __init__(
        self,
        old_message_threshold_s: int = 60,
        clock: Callable[[], float] = time,
    ):
        self.old_message_threshold_s = old_message_threshold_s
        self._clock = clock

    def check(self, event: InboundEvent) -> FilterResult:
        if event.is_group:
            return FilterResult(False, "group_message")

        if not (event.text or "").strip() and not event.has_media:
            return FilterResult(False, "empty_message")

        now = self._clock()
        age = now - (event.timestamp or now)
        if age > self.old_message_threshold_s:
            logger.debug(f"Dropping stale message from {event.contact_id} ({age:.0f}s old)")
            return FilterResult(False, "stale_message")

        if event.contact_id == BROADCAST_JID:
            return FilterResult(False, "status_broadcast")

        if event.is_from_me:
            return FilterResult(False, "own_message")

        return FilterResult(True)
