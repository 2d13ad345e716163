"""Follow-up tracking for promises made in auto-replies."""

from collections.abc import Callable
from datetime import datetime, timedelta

from loguru import logger

from wa_operator.agent.analyzer import lenient_json
from wa_operator.agent.prompts import PromptBuilder
from wa_operator.providers.client import AIClient
from wa_operator.store.memory import Store
from wa_operator.store.models import FollowUp
from wa_operator.utils.helpers import utc_now

OPEN_STATUSES = ("pending", "reminded")


def _number(value: object, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return default
    return float(value)


class FollowUpTracker:
    """
    Detect commitments in outbound replies and nag the owner about them.

    Each overdue follow-up is reminded at most `max_reminders` times; the
    sweep after that expires it instead.
    """

    def __init__(
        self,
        store: Store,
        ai: AIClient,
        prompts: PromptBuilder,
        *,
        default_due_hours: float = 24,
        max_reminders: int = 3,
        now: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.ai = ai
        self.prompts = prompts
        self.default_due_hours = default_due_hours
        self.max_reminders = max_reminders
        self._now = now

    async def analyze_reply(self, contact_id: str, reply: str) -> FollowUp | None:
        """Classify a reply for an implied promise. Never raises."""
        try:
            raw = await self.ai.generate(
                self.prompts.build_follow_up_prompt(reply), temperature=0.1, max_tokens=100
            )
            result = lenient_json(raw)
            if result.status == "failed" or not result.get("hasFollowUp"):
                return None

            due_hours = _number(result.get("dueHours"), self.default_due_hours)
            priority = int(_number(result.get("priority"), 2))
            follow_up = self.store.follow_ups.add(
                contact_id,
                str(result.get("description") or "Follow up on conversation"),
                due_at=self._now() + timedelta(hours=due_hours),
                priority=min(4, max(1, priority)),
            )
        except Exception as exc:
            logger.debug(f"Follow-up analysis failed (non-critical): {exc}")
            return None

        logger.info(
            f"Follow-up #{follow_up.id} created for {contact_id}: "
            f"{follow_up.description} (due {follow_up.due_at.isoformat()})"
        )
        return follow_up

    def list_pending(self, contact_id: str | None = None) -> list[FollowUp]:
        rows = self.store.follow_ups.with_status(*OPEN_STATUSES, contact_id=contact_id)
        return sorted(rows, key=lambda row: (-row.priority, row.due_at))

    def list_overdue(self) -> list[FollowUp]:
        now = self._now()
        rows = [row for row in self.store.follow_ups.with_status(*OPEN_STATUSES) if row.due_at <= now]
        return sorted(rows, key=lambda row: row.due_at)

    def resolve(self, follow_up_id: int) -> bool:
        follow_up = self.store.follow_ups.get(follow_up_id)
        if follow_up is None or follow_up.status not in OPEN_STATUSES:
            return False
        follow_up.status = "resolved"
        follow_up.resolved_at = self._now()
        return True

    def collect_reminders(self) -> list[FollowUp]:
        """Mark overdue follow-ups reminded and return them, expiring worn-out ones."""
        reminders = []
        for follow_up in self.list_overdue():
            if follow_up.reminded_count < self.max_reminders:
                follow_up.reminded_count += 1
                follow_up.status = "reminded"
                reminders.append(follow_up)
            else:
                follow_up.status = "expired"
                logger.info(
                    f"Follow-up #{follow_up.id} expired after {follow_up.reminded_count} reminders"
                )
        return reminders
