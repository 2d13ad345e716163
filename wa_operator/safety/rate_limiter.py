"""Per-contact sliding-window rate limiting."""

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from wa_operator.utils.helpers import now_ms


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    retry_after_ms: int = 0


class RateLimiter:
    """
    Sliding window of processed-message timestamps per contact.

    `check` never records; call `record` only after a message was actually
    answered so rejected attempts and retries are not double counted.
    """

    def __init__(
        self,
        max_requests: int = 15,
        window_ms: int = 60_000,
        clock: Callable[[], int] = now_ms,
    ):
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._clock = clock
        self._windows: dict[str, deque[int]] = {}

    def _prune(self, timestamps: deque[int], now: int) -> None:
        cutoff = now - self.window_ms
        while timestamps and timestamps[0] < cutoff:
            timestamps.popleft()

    def check(self, contact_id: str) -> RateDecision:
        now = self._clock()
        timestamps = self._windows.setdefault(contact_id, deque())
        self._prune(timestamps, now)

        if len(timestamps) >= self.max_requests:
            retry_after_ms = timestamps[0] + self.window_ms - now
            logger.warning(
                f"Rate limit exceeded for {contact_id} ({len(timestamps)}/{self.max_requests})"
            )
            return RateDecision(False, 0, max(0, retry_after_ms))

        return RateDecision(True, self.max_requests - len(timestamps))

    def record(self, contact_id: str) -> None:
        self._windows.setdefault(contact_id, deque()).append(self._clock())

    def reset(self, contact_id: str) -> None:
        self._windows.pop(contact_id, None)

    def stats(self, contact_id: str) -> dict[str, int]:
        cutoff = self._clock() - self.window_ms
        timestamps = self._windows.get(contact_id, ())
        active = sum(1 for ts in timestamps if ts >= cutoff)
        return {"count": active, "max": self.max_requests, "window_ms": self.window_ms}

    def gc(self) -> int:
        """Drop expired timestamps everywhere; return number of contacts removed."""
        now = self._clock()
        removed = 0
        for contact_id in list(self._windows):
            timestamps = self._windows[contact_id]
            self._prune(timestamps, now)
            if not timestamps:
                del self._windows[contact_id]
                removed += 1
        return removed

    def __len__(self) -> int:
        return len(self._windows)
