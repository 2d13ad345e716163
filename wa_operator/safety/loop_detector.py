"""Echo-loop and repetition detection with per-contact halts."""

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from wa_operator.utils.helpers import now_ms


@dataclass(frozen=True)
class LoopDecision:
    loop_detected: bool
    is_halted: bool
    halt_remaining_ms: int = 0


@dataclass
class LoopState:
    recent_texts: deque[str]
    halted_until_ms: int | None = None
    last_seen_ms: int = 0


def jaccard(a: set[str], b: set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


class LoopDetector:
    """
    Halt auto-reply for contacts that keep sending the same thing.

    While a contact is halted every check short-circuits without looking at
    the text. A halt ends purely by timestamp, at which point the window
    starts over.
    """

    def __init__(
        self,
        threshold: int = 3,
        window_size: int = 6,
        similarity_threshold: float = 0.8,
        halt_duration_ms: int = 600_000,
        tolerance: int = 1,
        clock: Callable[[], int] = now_ms,
    ):
        self.threshold = max(2, threshold)
        self.window_size = max(self.threshold, window_size)
        self.similarity_threshold = similarity_threshold
        self.halt_duration_ms = halt_duration_ms
        self.tolerance = max(0, tolerance)
        self._clock = clock
        self._state: dict[str, LoopState] = {}

    def _entry(self, contact_id: str) -> LoopState:
        entry = self._state.get(contact_id)
        if entry is None:
            entry = LoopState(recent_texts=deque(maxlen=self.window_size))
            self._state[contact_id] = entry
        return entry

    def check(self, contact_id: str, text: str) -> LoopDecision:
        entry = self._entry(contact_id)
        now = self._clock()
        entry.last_seen_ms = now

        if entry.halted_until_ms is not None:
            if entry.halted_until_ms > now:
                return LoopDecision(True, True, entry.halted_until_ms - now)
            entry.halted_until_ms = None
            entry.recent_texts.clear()

        entry.recent_texts.append((text or "").lower().strip())

        if len(entry.recent_texts) >= self.threshold:
            recent = list(entry.recent_texts)[-self.threshold:]
            if self.has_repetition(recent):
                entry.halted_until_ms = now + self.halt_duration_ms
                logger.warning(
                    f"Loop detected for {contact_id}, halting auto-reply for "
                    f"{self.halt_duration_ms}ms: {recent}"
                )
                return LoopDecision(True, True, self.halt_duration_ms)

        return LoopDecision(False, False)

    def has_repetition(self, messages: list[str]) -> bool:
        if len(messages) < 2:
            return False
        if len(set(messages)) == 1:
            return True

        first = set(messages[0].split())
        similar = sum(
            1
            for other in messages[1:]
            if jaccard(first, set(other.split())) >= self.similarity_threshold
        )
        return similar >= len(messages) - self.tolerance

    def is_halted(self, contact_id: str) -> bool:
        entry = self._state.get(contact_id)
        if entry is None or entry.halted_until_ms is None:
            return False
        return entry.halted_until_ms > self._clock()

    def clear_halt(self, contact_id: str) -> None:
        """Admin override: forget everything about the contact."""
        self._state.pop(contact_id, None)
        logger.info(f"Loop halt cleared for {contact_id}")

    def halted_contacts(self) -> list[str]:
        return [contact_id for contact_id in self._state if self.is_halted(contact_id)]

    def gc(self, idle_ms: int | None = None) -> int:
        """Drop state for contacts that are not halted and have been quiet for `idle_ms`."""
        idle_ms = self.halt_duration_ms if idle_ms is None else idle_ms
        now = self._clock()
        stale = [
            contact_id
            for contact_id, entry in self._state.items()
            if not self.is_halted(contact_id) and now - entry.last_seen_ms >= idle_ms
        ]
        for contact_id in stale:
            del self._state[contact_id]
        if stale:
            logger.debug(f"Loop detector GC removed {len(stale)} idle contacts")
        return len(stale)
