"""Rotating API key pool with per-key cooldown."""

from collections.abc import Callable

from loguru import logger

from wa_operator.providers.base import QuotaExceededError
from wa_operator.utils.helpers import now_ms


class KeyPool:
    """
    Round-robin over API keys, skipping keys that recently hit a quota.

    An empty key list yields a single anonymous slot so providers can fall
    back to credentials from the environment.
    """

    def __init__(
        self,
        keys: list[str] | None = None,
        cooldown_ms: int = 60_000,
        clock: Callable[[], int] = now_ms,
    ):
        self._keys = [key for key in (keys or []) if key] or [""]
        self.cooldown_ms = cooldown_ms
        self._clock = clock
        self._cooling_until: dict[int, int] = {}
        self._index = 0

    def __len__(self) -> int:
        return len(self._keys)

    def _available(self, index: int, now: int) -> bool:
        return self._cooling_until.get(index, 0) <= now

    def acquire(self) -> str:
        """Return the current usable key, rotating past cooling ones."""
        now = self._clock()
        for offset in range(len(self._keys)):
            index = (self._index + offset) % len(self._keys)
            if self._available(index, now):
                self._index = index
                return self._keys[index]
        raise QuotaExceededError("all API keys exhausted", exhausted=True)

    def mark_exhausted(self, key: str) -> None:
        try:
            index = self._keys.index(key)
        except ValueError:
            return
        self._cooling_until[index] = self._clock() + self.cooldown_ms
        self._index = (index + 1) % len(self._keys)
        logger.warning(
            f"API key #{index + 1} hit quota, cooling down for {self.cooldown_ms}ms "
            f"({self.available_count()}/{len(self._keys)} available)"
        )

    def mark_ok(self, key: str) -> None:
        try:
            self._cooling_until.pop(self._keys.index(key), None)
        except ValueError:
            return

    def available_count(self) -> int:
        now = self._clock()
        return sum(1 for index in range(len(self._keys)) if self._available(index, now))

    def is_exhausted(self) -> bool:
        return self.available_count() == 0
