"""Learn the owner's reply style from their manual messages."""

from typing import Any

from loguru import logger

from wa_operator.agent.analyzer import lenient_json
from wa_operator.agent.prompts import LEARN_PROMPT
from wa_operator.providers.client import AIClient
from wa_operator.store.memory import Store
from wa_operator.store.models import BLOCKED_INTENT, LearnedPattern
from wa_operator.utils.helpers import utc_now

REINFORCE_STEP = 0.05
INITIAL_CONFIDENCE = 0.6


class LearningEngine:
    """
    Pair each manual owner reply with the inbound message it answered and
    keep a confidence-weighted catalogue of the owner's style per intent.
    """

    def __init__(self, store: Store, ai: AIClient):
        self.store = store
        self.ai = ai

    async def learn_from_owner(self, contact_id: str, text: str) -> LearnedPattern | None:
        """Extract and store a reply pattern. Failures are logged and swallowed."""
        text = (text or "").strip()
        if len(text) < 5 or text.startswith(("!", "/")):
            return None

        recent = self.store.messages.get_recent(contact_id, 5)
        last_inbound = next((m for m in reversed(recent) if m.direction == "inbound"), None)
        if last_inbound is None:
            return None

        try:
            raw = await self.ai.generate(
                LEARN_PROMPT.format(context=last_inbound.content[:200], reply=text[:300]),
                temperature=0.1,
                max_tokens=150,
            )
        except Exception as exc:
            logger.debug(f"Learning extraction failed (non-critical): {exc}")
            return None

        result = lenient_json(raw)
        style = str(result.get("style") or "").strip()
        if result.status == "failed" or not style:
            logger.debug(f"Learning extraction returned nothing usable: {raw!r}")
            return None

        intent = last_inbound.intent if last_inbound.intent not in (None, BLOCKED_INTENT) else "general"
        pattern = self._store_pattern(
            contact_id,
            intent,
            style=style,
            key_phrases=result.get("key_phrases"),
            approach=str(result.get("approach") or ""),
            incoming_sample=last_inbound.content[:500],
            owner_response=text[:500],
        )
        logger.debug(f"Learned from owner reply to {contact_id} (intent={intent})")
        return pattern

    def _store_pattern(self, contact_id: str, intent: str, *, style: str, **fields: Any) -> LearnedPattern:
        existing = self.store.learning.find(contact_id, intent, style)
        if existing is not None:
            existing.confidence = min(1.0, round(existing.confidence + REINFORCE_STEP, 4))
            existing.usage_count += 1
            existing.updated_at = utc_now()
            return existing

        phrases = fields.pop("key_phrases", None)
        return self.store.learning.add(
            contact_id=contact_id,
            intent=intent,
            style=style,
            key_phrases=[str(p) for p in phrases] if isinstance(phrases, list) else [],
            confidence=INITIAL_CONFIDENCE,
            **fields,
        )

    def relevant_patterns(self, contact_id: str, intent: str, limit: int = 5) -> list[LearnedPattern]:
        """Contact-specific patterns (>=0.5) first, then strong ones from anyone (>=0.7)."""
        rows = [row for row in self.store.learning.all() if row.intent == intent]
        by_confidence = sorted(rows, key=lambda row: row.confidence, reverse=True)

        merged = [row for row in by_confidence if row.contact_id == contact_id and row.confidence >= 0.5]
        seen = {row.id for row in merged}
        merged.extend(row for row in by_confidence if row.id not in seen and row.confidence >= 0.7)
        return merged[:limit]

    @staticmethod
    def describe(pattern: LearnedPattern) -> str:
        text = pattern.style
        if pattern.approach:
            text += f" ({pattern.approach})"
        return text

    def stats(self) -> dict[str, Any]:
        rows = self.store.learning.all()
        by_intent: dict[str, int] = {}
        for row in rows:
            by_intent[row.intent] = by_intent.get(row.intent, 0) + 1
        average = sum(row.confidence for row in rows) / len(rows) if rows else 0.0
        return {
            "total_patterns": len(rows),
            "by_intent": by_intent,
            "avg_confidence": round(average, 2),
        }
