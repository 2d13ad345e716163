"""Schedule requests from contacts and reminders for the owner."""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from loguru import logger

from wa_operator.agent.analyzer import lenient_json
from wa_operator.agent.prompts import SCHEDULE_PROMPT
from wa_operator.providers.client import AIClient
from wa_operator.store.memory import Store
from wa_operator.store.models import ContactProfile, Schedule
from wa_operator.utils.helpers import utc_now

REPHRASE_REPLY = (
    "I'm not sure what you'd like to schedule. Could you rephrase? "
    'For example: "Remind me about the meeting tomorrow at 3pm"'
)
FAILED_REPLY = (
    "I had trouble understanding that scheduling request. "
    "Could you try again with a specific date and time?"
)


def _parse_datetime(value: object) -> datetime | None:
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _minutes(value: object, default: int = 30) -> int:
    try:
        minutes = int(float(str(value)))
    except (TypeError, ValueError):
        return default
    return minutes if minutes > 0 else default


class ScheduleAssistant:
    """Turns natural-language scheduling requests into stored schedules."""

    def __init__(
        self,
        store: Store,
        ai: AIClient,
        owner_name: str = "Owner",
        now: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.ai = ai
        self.owner_name = owner_name
        self._now = now

    async def handle_request(
        self,
        contact_id: str,
        text: str,
        profile: ContactProfile | None = None,
    ) -> str:
        """Parse, store and confirm a request. Always returns a reply for the contact."""
        now = self._now()
        try:
            raw = await self.ai.generate(
                SCHEDULE_PROMPT.format(now=now.isoformat(), text=text),
                temperature=0.1,
                max_tokens=150,
            )
        except Exception as exc:
            logger.error(f"Schedule parsing failed for {contact_id}: {exc}")
            return FAILED_REPLY

        result = lenient_json(raw)
        if result.status == "failed":
            logger.warning(f"Schedule parse returned no JSON: {raw!r}")
            return FAILED_REPLY
        if result.get("isSchedule") is False:
            return REPHRASE_REPLY

        event_at = _parse_datetime(result.get("date")) or now + timedelta(hours=24)
        remind_minutes = _minutes(result.get("remindBefore"))
        recurrence = str(result.get("recurrence") or "none")
        title = str(result.get("title") or text[:100])

        schedule = self.store.schedules.add(
            contact_id,
            title,
            event_at,
            description=text,
            remind_at=event_at - timedelta(minutes=remind_minutes),
            recurrence=None if recurrence == "none" else recurrence,
        )
        who = profile.display_name if profile and profile.display_name else contact_id
        logger.info(f"Schedule #{schedule.id} created for {who}: {title} at {event_at.isoformat()}")
        return (
            f'Got it! I\'ve scheduled "{title}" for {event_at.strftime("%a, %b %d %H:%M")}. '
            f"I'll remind {self.owner_name} {remind_minutes} minutes before. 📅"
        )

    def list_upcoming(self, hours: int = 24) -> list[Schedule]:
        now = self._now()
        until = now + timedelta(hours=hours)
        rows = [
            row
            for row in self.store.schedules.all()
            if row.status == "upcoming" and now <= row.event_at <= until
        ]
        return sorted(rows, key=lambda row: row.event_at)

    def due_reminders(self) -> list[Schedule]:
        """Schedules whose reminder time has passed; each is returned once."""
        now = self._now()
        due = []
        for row in self.store.schedules.all():
            if row.status == "upcoming" and row.remind_at is not None and row.remind_at <= now:
                due.append(self.store.schedules.update(row.id, remind_at=None))
        return due

    def complete(self, schedule_id: int) -> bool:
        return self.store.schedules.update(schedule_id, status="completed") is not None

    def cancel(self, schedule_id: int) -> bool:
        return self.store.schedules.update(schedule_id, status="cancelled") is not None

    def snooze(self, schedule_id: int, minutes: int = 15) -> bool:
        remind_at = self._now() + timedelta(minutes=minutes)
        return self.store.schedules.update(schedule_id, remind_at=remind_at) is not None
