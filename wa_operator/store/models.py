"""Persisted records."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from wa_operator.utils.helpers import utc_now

Direction = Literal["inbound", "outbound", "owner_manual"]
FollowUpStatus = Literal["pending", "reminded", "resolved", "expired"]

# Intent stored on inbound rows that a safety gate refused to answer.
BLOCKED_INTENT = "blocked"


class ContactProfile(BaseModel):
    """Everything known about one chat peer."""
    contact_id: str
    display_name: str | None = None
    relationship_type: str = "unknown"
    vip_tier: int = 0
    auto_reply_enabled: bool = True
    preferred_language: str = "en"
    last_mood: str = "neutral"
    custom_tone: dict[str, str] | None = None  # {"style": ..., "formality": ...}
    message_count: int = 0
    is_bot: bool = False
    first_seen_at: datetime = Field(default_factory=utc_now)
    last_seen_at: datetime = Field(default_factory=utc_now)


class StoredMessage(BaseModel):
    id: int
    contact_id: str
    direction: Direction
    content: str
    content_type: str = "text"
    intent: str | None = None
    mood: str | None = None
    is_ai_generated: bool = False
    created_at: datetime = Field(default_factory=utc_now)


class ConversationSummary(BaseModel):
    id: int
    contact_id: str
    summary_text: str
    first_message_id: int
    last_message_id: int
    message_count: int
    created_at: datetime = Field(default_factory=utc_now)


class FollowUp(BaseModel):
    """A promise made in a reply that someone should come back to."""
    id: int
    contact_id: str
    description: str
    due_at: datetime
    priority: int = Field(default=2, ge=1, le=4)
    status: FollowUpStatus = "pending"
    reminded_count: int = 0
    resolved_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)


class KnowledgeEntry(BaseModel):
    id: int
    category: str = "general"
    question: str
    answer: str
    topic: str = ""
    keywords: list[str] = Field(default_factory=list)
    priority: int = 0
    created_at: datetime = Field(default_factory=utc_now)


class LearnedPattern(BaseModel):
    """Reply style learned from the owner. `contact_id=None` applies to everyone."""
    id: int
    contact_id: str | None = None
    intent: str = "general"
    incoming_sample: str = ""
    owner_response: str = ""
    style: str = ""
    key_phrases: list[str] = Field(default_factory=list)
    approach: str = ""
    confidence: float = 0.6
    usage_count: int = 1
    updated_at: datetime = Field(default_factory=utc_now)


class Schedule(BaseModel):
    id: int
    contact_id: str
    title: str
    description: str = ""
    event_at: datetime
    remind_at: datetime | None = None
    recurrence: str | None = None
    status: str = "upcoming"  # upcoming, completed, cancelled
    created_at: datetime = Field(default_factory=utc_now)
