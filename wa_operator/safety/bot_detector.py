"""Heuristic detection of automated senders to avoid bot-to-bot loops."""

import re
from dataclasses import dataclass

from loguru import logger

from wa_operator.bus.events import InboundEvent

BOT_TEXT_PATTERNS = (
    re.compile(r"\bthis is an automated", re.IGNORECASE),
    re.compile(r"\bdo not reply", re.IGNORECASE),
    re.compile(r"\bauto.?generated", re.IGNORECASE),
    re.compile(r"\bno.?reply", re.IGNORECASE),
    re.compile(r"\bpowered by", re.IGNORECASE),
    re.compile(r"\bbot\b", re.IGNORECASE),
    re.compile(r"\bsent via", re.IGNORECASE),
    re.compile(r"\bunsubscribe", re.IGNORECASE),
)

BOT_NAME_MARKERS = ("bot", "auto", "system", "noreply")


@dataclass(frozen=True)
class BotVerdict:
    is_bot: bool
    confidence: float = 0.0
    reason: str = ""


class BotDetector:
    """
    Classify a sender as automated.

    Deny-listed JIDs score highest, then text patterns, then display-name
    markers. Callers decide which confidence is high enough to act on.
    """

    def __init__(
        self,
        known_bots: set[str] | None = None,
        jid_confidence: float = 1.0,
        text_confidence: float = 0.7,
        name_confidence: float = 0.6,
    ):
        self.known_bots = set(known_bots or {"status@broadcast"})
        self.jid_confidence = jid_confidence
        self.text_confidence = text_confidence
        self.name_confidence = name_confidence

    def check(self, event: InboundEvent) -> BotVerdict:
        if event.contact_id in self.known_bots:
            return BotVerdict(True, self.jid_confidence, "known_bot_jid")

        if event.text:
            for pattern in BOT_TEXT_PATTERNS:
                if pattern.search(event.text):
                    return BotVerdict(True, self.text_confidence, f"text_pattern: {pattern.pattern}")

        if event.display_name:
            lowered = event.display_name.lower()
            if any(marker in lowered for marker in BOT_NAME_MARKERS):
                return BotVerdict(True, self.name_confidence, f"name_pattern: {event.display_name}")

        return BotVerdict(False)

    def mark_as_bot(self, contact_id: str) -> None:
        """Deny-list a JID for the lifetime of the process."""
        self.known_bots.add(contact_id)
        logger.info(f"{contact_id} marked as bot")
