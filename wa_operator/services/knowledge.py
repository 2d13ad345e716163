"""Owner-curated Q&A that can answer questions without the AI."""

from loguru import logger

from wa_operator.store.memory import Store
from wa_operator.store.models import KnowledgeEntry


class KnowledgeBase:
    def __init__(self, store: Store):
        self.store = store

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
        entry = self.store.knowledge.add(
            question.strip(),
            answer.strip(),
            category=category.strip() or "general",
            topic=topic or question[:50],
            keywords=[k.strip().lower() for k in (keywords or []) if k.strip()],
            priority=priority,
        )
        logger.info(f"Knowledge entry #{entry.id} added ({entry.category}: {entry.topic})")
        return entry

    def search(self, query: str, limit: int = 5) -> list[KnowledgeEntry]:
        """Entries whose keywords, topic, question or answer mention the query."""
        needle = (query or "").strip().lower()
        if len(needle) < 2:
            return []

        hits = []
        for entry in self.store.knowledge.all():
            haystacks = [entry.topic, entry.question, entry.answer, *entry.keywords]
            if any(needle in text.lower() for text in haystacks) or any(
                keyword and keyword in needle for keyword in entry.keywords
            ):
                hits.append(entry)
        hits.sort(key=lambda entry: entry.priority, reverse=True)
        return hits[:limit]

    def entries(self, category: str | None = None) -> list[KnowledgeEntry]:
        entries = self.store.knowledge.all()
        if category:
            entries = [entry for entry in entries if entry.category == category]
        return sorted(entries, key=lambda entry: (entry.category, -entry.priority))

    def remove(self, entry_id: int) -> bool:
        return self.store.knowledge.delete(entry_id)
