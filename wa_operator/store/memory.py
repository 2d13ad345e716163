"""In-memory repositories and the Store aggregate."""

from collections.abc import Iterable
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from wa_operator.store.models import (
    ContactProfile,
    ConversationSummary,
    FollowUp,
    KnowledgeEntry,
    LearnedPattern,
    Schedule,
    StoredMessage,
)
from wa_operator.utils.helpers import utc_now

RecordT = TypeVar("RecordT", bound=BaseModel)


class _Table(Generic[RecordT]):
    """Integer-keyed table with a monotonic id counter."""

    model: type[RecordT]

    def __init__(self) -> None:
        self._rows: dict[int, RecordT] = {}
        self._next_id = 1

    def _insert(self, **fields: Any) -> RecordT:
        row = self.model(id=self._next_id, **fields)
        self._rows[row.id] = row
        self._next_id += 1
        return row

    def get(self, row_id: int) -> RecordT | None:
        return self._rows.get(row_id)

    def delete(self, row_id: int) -> bool:
        return self._rows.pop(row_id, None) is not None

    def all(self) -> list[RecordT]:
        return list(self._rows.values())

    def __len__(self) -> int:
        return len(self._rows)

    def dump(self) -> list[dict[str, Any]]:
        return [row.model_dump(mode="json") for row in self._rows.values()]

    def load(self, rows: Iterable[dict[str, Any]]) -> None:
        self._rows = {}
        for raw in rows:
            row = self.model.model_validate(raw)
            self._rows[row.id] = row
        self._next_id = max(self._rows, default=0) + 1


class ContactRepository:
    """Contact profiles keyed by JID. Profiles are never deleted."""

    def __init__(self) -> None:
        self._rows: dict[str, ContactProfile] = {}

    def get(self, contact_id: str) -> ContactProfile | None:
        return self._rows.get(contact_id)

    def upsert(self, contact_id: str, display_name: str | None = None) -> ContactProfile:
        """Create on first contact; otherwise refresh name, last seen and message count."""
        profile = self._rows.get(contact_id)
        if profile is None:
            profile = ContactProfile(contact_id=contact_id, display_name=display_name)
            self._rows[contact_id] = profile
        elif display_name:
            profile.display_name = display_name
        profile.message_count += 1
        profile.last_seen_at = utc_now()
        return profile

    def update(self, contact_id: str, **changes: Any) -> ContactProfile:
        profile = self._rows.get(contact_id) or ContactProfile(contact_id=contact_id)
        updated = profile.model_copy(update=changes)
        self._rows[contact_id] = updated
        return updated

    def all(self) -> list[ContactProfile]:
        return sorted(self._rows.values(), key=lambda p: p.last_seen_at, reverse=True)

    def __len__(self) -> int:
        return len(self._rows)

    def dump(self) -> list[dict[str, Any]]:
        return [row.model_dump(mode="json") for row in self._rows.values()]

    def load(self, rows: Iterable[dict[str, Any]]) -> None:
        self._rows = {}
        for raw in rows:
            profile = ContactProfile.model_validate(raw)
            self._rows[profile.contact_id] = profile


class MessageRepository(_Table[StoredMessage]):
    model = StoredMessage

    def insert(
        self,
        contact_id: str,
        direction: str,
        content: str,
        *,
        content_type: str = "text",
        intent: str | None = None,
        mood: str | None = None,
        is_ai_generated: bool = False,
    ) -> StoredMessage:
        return self._insert(
            contact_id=contact_id,
            direction=direction,
            content=content,
            content_type=content_type,
            intent=intent,
            mood=mood,
            is_ai_generated=is_ai_generated,
        )

    def for_contact(self, contact_id: str) -> list[StoredMessage]:
        """All messages of a contact, oldest first."""
        return [row for row in self._rows.values() if row.contact_id == contact_id]

    def get_recent(self, contact_id: str, limit: int = 10) -> list[StoredMessage]:
        """Newest `limit` messages, returned oldest first."""
        if limit <= 0:
            return []
        return self.for_contact(contact_id)[-limit:]

    def latest(self, contact_id: str) -> StoredMessage | None:
        recent = self.get_recent(contact_id, 1)
        return recent[0] if recent else None

    def since(self, cutoff: datetime, limit: int = 200) -> list[StoredMessage]:
        """Messages of every contact created at or after `cutoff`, newest `limit` kept."""
        rows = [row for row in self._rows.values() if row.created_at >= cutoff]
        return rows[-limit:] if limit > 0 else []

    def count(self, contact_id: str) -> int:
        return sum(1 for row in self._rows.values() if row.contact_id == contact_id)

    def counts_by_contact(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for row in self._rows.values():
            counts[row.contact_id] = counts.get(row.contact_id, 0) + 1
        return counts

    def delete_range(self, contact_id: str, first_id: int, last_id: int) -> int:
        doomed = [
            row.id
            for row in self._rows.values()
            if row.contact_id == contact_id and first_id <= row.id <= last_id
        ]
        for row_id in doomed:
            del self._rows[row_id]
        return len(doomed)

    def search(self, contact_id: str, query: str, limit: int = 10) -> list[StoredMessage]:
        needle = (query or "").strip().lower()
        if not needle:
            return []
        hits = [row for row in self.for_contact(contact_id) if needle in row.content.lower()]
        return hits[-limit:]


class SummaryRepository(_Table[ConversationSummary]):
    model = ConversationSummary

    def add(
        self,
        contact_id: str,
        summary_text: str,
        first_message_id: int,
        last_message_id: int,
        message_count: int,
    ) -> ConversationSummary:
        return self._insert(
            contact_id=contact_id,
            summary_text=summary_text,
            first_message_id=first_message_id,
            last_message_id=last_message_id,
            message_count=message_count,
        )

    def for_contact(self, contact_id: str) -> list[ConversationSummary]:
        return [row for row in self._rows.values() if row.contact_id == contact_id]

    def latest(self, contact_id: str) -> ConversationSummary | None:
        rows = self.for_contact(contact_id)
        return rows[-1] if rows else None

    def prune(self, keep: int = 5) -> int:
        """Keep the newest `keep` summaries per contact; return deleted count."""
        removed = 0
        contacts = {row.contact_id for row in self._rows.values()}
        for contact_id in contacts:
            rows = self.for_contact(contact_id)
            for row in rows[: max(0, len(rows) - keep)]:
                del self._rows[row.id]
                removed += 1
        return removed


class FollowUpRepository(_Table[FollowUp]):
    model = FollowUp

    def add(
        self,
        contact_id: str,
        description: str,
        due_at: datetime,
        priority: int = 2,
    ) -> FollowUp:
        return self._insert(
            contact_id=contact_id,
            description=description,
            due_at=due_at,
            priority=priority,
        )

    def with_status(self, *statuses: str, contact_id: str | None = None) -> list[FollowUp]:
        return [
            row
            for row in self._rows.values()
            if row.status in statuses and (contact_id is None or row.contact_id == contact_id)
        ]


class KnowledgeRepository(_Table[KnowledgeEntry]):
    model = KnowledgeEntry

    def add(
        self,
        question: str,
        answer: str,
        *,
        category: str = "general",
        topic: str = "",
        keywords: list[str] | None = None,
        priority: int = 0,
    ) -> KnowledgeEntry:
        return self._insert(
            question=question,
            answer=answer,
            category=category,
            topic=topic,
            keywords=list(keywords or []),
            priority=priority,
        )


class LearningRepository(_Table[LearnedPattern]):
    model = LearnedPattern

    def add(self, **fields: Any) -> LearnedPattern:
        return self._insert(**fields)

    def find(self, contact_id: str | None, intent: str, style: str) -> LearnedPattern | None:
        for row in self._rows.values():
            if (
                row.contact_id == contact_id
                and row.intent == intent
                and row.style == style
            ):
                return row
        return None

    def for_contact(self, contact_id: str | None, min_confidence: float = 0.0) -> list[LearnedPattern]:
        return [
            row
            for row in self._rows.values()
            if row.contact_id == contact_id and row.confidence >= min_confidence
        ]


class ScheduleRepository(_Table[Schedule]):
    model = Schedule

    def add(
        self,
        contact_id: str,
        title: str,
        event_at: datetime,
        *,
        description: str = "",
        remind_at: datetime | None = None,
        recurrence: str | None = None,
    ) -> Schedule:
        return self._insert(
            contact_id=contact_id,
            title=title,
            event_at=event_at,
            description=description,
            remind_at=remind_at,
            recurrence=recurrence,
        )

    def update(self, schedule_id: int, **changes: Any) -> Schedule | None:
        row = self._rows.get(schedule_id)
        if row is None:
            return None
        updated = row.model_copy(update=changes)
        self._rows[schedule_id] = updated
        return updated


class Store:
    """Aggregate of every repository the engine reads and writes."""

    def __init__(self) -> None:
        self.contacts = ContactRepository()
        self.messages = MessageRepository()
        self.summaries = SummaryRepository()
        self.follow_ups = FollowUpRepository()
        self.knowledge = KnowledgeRepository()
        self.learning = LearningRepository()
        self.schedules = ScheduleRepository()

    def _sections(self) -> dict[str, Any]:
        return {
            "contacts": self.contacts,
            "messages": self.messages,
            "summaries": self.summaries,
            "follow_ups": self.follow_ups,
            "knowledge": self.knowledge,
            "learning": self.learning,
            "schedules": self.schedules,
        }

    def counts(self) -> dict[str, int]:
        return {name: len(repo) for name, repo in self._sections().items()}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"version": 1}
        for name, repo in self._sections().items():
            payload[name] = repo.dump()
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Store":
        store = cls()
        for name, repo in store._sections().items():
            rows = payload.get(name)
            if isinstance(rows, list):
                repo.load(rows)
        return store
