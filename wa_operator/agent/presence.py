"""Owner-activity tracking: defer to the owner while they handle a chat."""

from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from wa_operator.utils.helpers import now_ms


@dataclass
class Cooldown:
    """Expiry timestamp that can only be pushed later by `extend_if_later`."""
    expires_at_ms: int

    def extend_if_later(self, candidate_ms: int) -> bool:
        if candidate_ms > self.expires_at_ms:
            self.expires_at_ms = candidate_ms
            return True
        return False

    def is_active(self, now: int) -> bool:
        return now < self.expires_at_ms

    def remaining(self, now: int) -> int:
        return max(0, self.expires_at_ms - now)


class OwnerActivityTracker:
    """
    Per-contact cooldowns started by owner activity.

    A manual owner reply starts the full cooldown from now. Typing applies a
    shorter pause that never shortens an existing cooldown.
    """

    def __init__(
        self,
        cooldown_ms: int = 180_000,
        typing_pause_ms: int = 60_000,
        clock: Callable[[], int] = now_ms,
    ):
        self.cooldown_ms = cooldown_ms
        self.typing_pause_ms = typing_pause_ms
        self._clock = clock
        self._cooldowns: dict[str, Cooldown] = {}

    def record_owner_reply(self, contact_id: str) -> None:
        self._cooldowns[contact_id] = Cooldown(self._clock() + self.cooldown_ms)
        logger.info(f"Owner replied to {contact_id}, auto-reply paused for {self.cooldown_ms}ms")

    def record_typing(self, contact_id: str) -> None:
        candidate = self._clock() + self.typing_pause_ms
        cooldown = self._cooldowns.get(contact_id)
        if cooldown is None:
            self._cooldowns[contact_id] = Cooldown(candidate)
        elif not cooldown.extend_if_later(candidate):
            return
        logger.debug(f"Owner typing to {contact_id}, auto-reply paused until {candidate}")

    def is_owner_active(self, contact_id: str) -> bool:
        cooldown = self._cooldowns.get(contact_id)
        if cooldown is None:
            return False
        if cooldown.is_active(self._clock()):
            return True
        del self._cooldowns[contact_id]
        return False

    def remaining_ms(self, contact_id: str) -> int:
        cooldown = self._cooldowns.get(contact_id)
        return cooldown.remaining(self._clock()) if cooldown else 0

    def expiry_ms(self, contact_id: str) -> int | None:
        cooldown = self._cooldowns.get(contact_id)
        return cooldown.expires_at_ms if cooldown else None

    def force_resume(self, contact_id: str) -> bool:
        removed = self._cooldowns.pop(contact_id, None) is not None
        logger.info(f"Auto-reply force-resumed for {contact_id}")
        return removed

    def forget(self, contact_id: str) -> None:
        self._cooldowns.pop(contact_id, None)

    def active_contacts(self) -> list[str]:
        now = self._clock()
        return [cid for cid, cooldown in self._cooldowns.items() if cooldown.is_active(now)]

    def expired_contacts(self) -> list[str]:
        """Contacts whose cooldown has lapsed but were not yet resumed."""
        now = self._clock()
        return [cid for cid, cooldown in self._cooldowns.items() if not cooldown.is_active(now)]
