"""Persistence: in-memory repositories with a JSON snapshot."""

from wa_operator.store.memory import Store
from wa_operator.store.models import (
    ContactProfile,
    ConversationSummary,
    FollowUp,
    KnowledgeEntry,
    LearnedPattern,
    Schedule,
    StoredMessage,
)
from wa_operator.store.snapshot import SnapshotStore

__all__ = [
    "ContactProfile",
    "ConversationSummary",
    "FollowUp",
    "KnowledgeEntry",
    "LearnedPattern",
    "Schedule",
    "SnapshotStore",
    "Store",
    "StoredMessage",
]
