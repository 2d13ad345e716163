"""Long-term conversation memory: compression and summaries."""

from dataclasses import dataclass, field

from loguru import logger

from wa_operator.agent.prompts import PromptBuilder, transcript_lines
from wa_operator.agent.session import SessionCache
from wa_operator.providers.base import ProviderError
from wa_operator.providers.client import AIClient
from wa_operator.store.memory import Store
from wa_operator.store.models import ConversationSummary, StoredMessage


class SummaryCompressor:
    """Turn a run of messages into a short summary, never raising."""

    def __init__(self, ai: AIClient, prompts: PromptBuilder):
        self.ai = ai
        self.prompts = prompts

    def _lines(self, messages: list[StoredMessage]) -> list[str]:
        return transcript_lines(messages, bot_name="Bot")

    async def compress(self, messages: list[StoredMessage]) -> str:
        if not messages:
            return ""
        lines = self._lines(messages)
        try:
            return await self.ai.generate(
                self.prompts.build_compress_prompt(lines), temperature=0.2, max_tokens=200
            )
        except ProviderError as exc:
            logger.warning(f"Context compression failed, keeping last lines: {exc}")
            return "\n".join(lines[-5:])

    async def merge(self, existing_summary: str, messages: list[StoredMessage]) -> str:
        if not messages:
            return existing_summary
        lines = self._lines(messages)
        try:
            return await self.ai.generate(
                self.prompts.build_merge_prompt(existing_summary, lines),
                temperature=0.2,
                max_tokens=200,
            )
        except ProviderError as exc:
            logger.warning(f"Summary merge failed, keeping previous summary: {exc}")
            return existing_summary


@dataclass
class ConversationContext:
    summary: str | None = None
    recent_messages: list[StoredMessage] = field(default_factory=list)


class MemoryManager:
    """
    Keeps per-contact history bounded.

    Once a contact accumulates more than ``compress_threshold + keep_recent``
    messages, everything but the newest ``keep_recent`` is folded into the
    latest summary and removed from storage. The contact's chat session is
    reset so the next reply starts from the refreshed context.
    """

    def __init__(
        self,
        store: Store,
        compressor: SummaryCompressor,
        sessions: SessionCache,
        *,
        compress_threshold: int = 50,
        keep_recent: int = 20,
        summary_retention: int = 5,
    ):
        self.store = store
        self.compressor = compressor
        self.sessions = sessions
        self.compress_threshold = compress_threshold
        self.keep_recent = keep_recent
        self.summary_retention = summary_retention
        self._in_flight: set[str] = set()

    def needs_compression(self, contact_id: str) -> bool:
        return self.store.messages.count(contact_id) > self.compress_threshold + self.keep_recent

    async def compress_contact(self, contact_id: str) -> ConversationSummary | None:
        """Fold older messages into the summary. Concurrent calls for one contact run once."""
        if contact_id in self._in_flight:
            logger.debug(f"Compression already running for {contact_id}")
            return None
        self._in_flight.add(contact_id)
        try:
            return await self._compress(contact_id)
        finally:
            self._in_flight.discard(contact_id)

    async def _compress(self, contact_id: str) -> ConversationSummary | None:
        messages = self.store.messages.for_contact(contact_id)
        if len(messages) <= self.keep_recent:
            return None

        to_compress = messages[: len(messages) - self.keep_recent]
        existing = self.store.summaries.latest(contact_id)
        if existing is not None:
            text = await self.compressor.merge(existing.summary_text, to_compress)
        else:
            text = await self.compressor.compress(to_compress)
        if not text:
            return None

        first_id, last_id = to_compress[0].id, to_compress[-1].id
        summary = self.store.summaries.add(
            contact_id,
            text,
            first_message_id=first_id,
            last_message_id=last_id,
            message_count=len(to_compress),
        )
        deleted = self.store.messages.delete_range(contact_id, first_id, last_id)
        self.sessions.reset(contact_id)
        logger.info(f"Conversation compressed for {contact_id}: {deleted} messages summarized")
        return summary

    async def compress_all(self) -> int:
        limit = self.compress_threshold + self.keep_recent
        candidates = [
            contact_id
            for contact_id, count in self.store.messages.counts_by_contact().items()
            if count > limit
        ]
        compressed = 0
        for contact_id in candidates:
            try:
                if await self.compress_contact(contact_id) is not None:
                    compressed += 1
            except Exception as exc:
                logger.error(f"Conversation compression failed for {contact_id}: {exc}")
        logger.info(f"Bulk compression complete: {compressed}/{len(candidates)} contacts")
        return compressed

    def prune_summaries(self) -> int:
        removed = self.store.summaries.prune(keep=self.summary_retention)
        if removed:
            logger.debug(f"Pruned {removed} old conversation summaries")
        return removed

    def get_context(self, contact_id: str, recent: int = 10) -> ConversationContext:
        summary = self.store.summaries.latest(contact_id)
        return ConversationContext(
            summary=summary.summary_text if summary else None,
            recent_messages=self.store.messages.get_recent(contact_id, recent),
        )
