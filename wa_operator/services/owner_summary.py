"""Periodic briefings for the owner."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from loguru import logger

from wa_operator.agent.prompts import PromptBuilder
from wa_operator.proactive.followups import FollowUpTracker
from wa_operator.providers.base import ProviderError
from wa_operator.providers.client import AIClient
from wa_operator.services.schedules import ScheduleAssistant
from wa_operator.store.memory import Store
from wa_operator.utils.helpers import utc_now

QUIET_PERIOD = "No new messages in the last period. All quiet! 🤫"


@dataclass
class Briefing:
    text: str
    period_start: datetime
    period_end: datetime
    counts: dict[str, int] = field(default_factory=dict)
    delivered: bool = False


class OwnerSummary:
    """
    Summarize recent conversations for the owner.

    The AI briefing covers every message in the lookback window and is
    followed by pending and overdue follow-ups and the schedules of the next
    48 hours. The last briefing is kept so the gateway can mark it delivered.
    """

    def __init__(
        self,
        store: Store,
        ai: AIClient,
        prompts: PromptBuilder,
        follow_ups: FollowUpTracker,
        schedules: ScheduleAssistant,
        *,
        interval_hours: float = 4,
        now: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.ai = ai
        self.prompts = prompts
        self.follow_ups = follow_ups
        self.schedules = schedules
        self.interval_hours = interval_hours
        self._now = now
        self.latest: Briefing | None = None

    def _name(self, contact_id: str) -> str:
        profile = self.store.contacts.get(contact_id)
        return profile.display_name if profile and profile.display_name else contact_id

    async def generate(self, hours: float | None = None) -> str:
        """Build the briefing text. AI failures come back as a readable message."""
        lookback = hours or self.interval_hours
        end = self._now()
        start = end - timedelta(hours=lookback)

        messages = self.store.messages.since(start)
        if not messages:
            return QUIET_PERIOD

        names = {m.contact_id: self._name(m.contact_id) for m in messages}
        pending = self.follow_ups.list_pending()
        overdue = self.follow_ups.list_overdue()
        upcoming = self.schedules.list_upcoming(48)

        prompt = self.prompts.build_owner_summary_prompt(messages, names)
        if pending:
            prompt += "\n\nPending follow-ups:\n" + "\n".join(
                f"- {self._name(f.contact_id)}: {f.description} (due: {f.due_at:%Y-%m-%d %H:%M})"
                for f in pending
            )
        if overdue:
            prompt += "\n\n⚠️ OVERDUE follow-ups:\n" + "\n".join(
                f"- {self._name(f.contact_id)}: {f.description}" for f in overdue
            )
        if upcoming:
            prompt += "\n\nUpcoming schedules:\n" + "\n".join(
                f"- {s.title} at {s.event_at:%Y-%m-%d %H:%M}" for s in upcoming
            )

        try:
            text = await self.ai.generate(prompt, temperature=0.3, max_tokens=500)
        except ProviderError as exc:
            logger.error(f"Owner summary failed: {exc}")
            return f"Summary generation failed: {exc}"

        self.latest = Briefing(
            text=text,
            period_start=start,
            period_end=end,
            counts={
                "messages": len(messages),
                "pending_follow_ups": len(pending),
                "overdue_follow_ups": len(overdue),
                "upcoming_schedules": len(upcoming),
            },
        )
        logger.info(f"Owner summary generated over {len(messages)} messages ({lookback:g}h)")
        return text

    def mark_delivered(self) -> None:
        if self.latest is not None:
            self.latest.delivered = True
