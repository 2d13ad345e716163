"""Intent and mood classification with lenient JSON recovery."""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Literal

from loguru import logger

from wa_operator.agent.prompts import ANALYZE_PROMPT, INTENT_LABELS, MOOD_LABELS
from wa_operator.providers.base import ProviderError
from wa_operator.providers.client import AIClient
from wa_operator.utils.helpers import compact_preview

GREETING_RE = re.compile(
    r"^(hi+|hello+|hey+|namaste+|yo+|sup+|hola+|gm|gn|good\s*(morning|night|evening))$",
    re.IGNORECASE,
)
SHORT_REPLY_RE = re.compile(
    r"^(ok|okay|yes|no|thanks|thank\s*you|fine|good|working|wow|nice|cool)$",
    re.IGNORECASE,
)
_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_FIELD_RE = re.compile(
    r'"(?P<key>[A-Za-z_][A-Za-z0-9_]*)"\s*:\s*'
    r'(?P<value>"(?:[^"\\]|\\.)*"|-?\d+(?:\.\d+)?|true|false|null)'
)

ParseStatus = Literal["ok", "partial", "failed"]


@dataclass(frozen=True)
class ParseResult:
    """Outcome of a lenient parse: which fields could be recovered."""
    status: ParseStatus
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


def lenient_json(raw: str) -> ParseResult:
    """
    Parse a JSON object out of model output.

    Markdown fences and surrounding prose are ignored. When the object is
    truncated or otherwise invalid, top-level scalar fields that are still
    intact are recovered and the result is marked ``partial``.
    """
    text = _FENCE_RE.sub("", raw or "").strip()
    start = text.find("{")
    if start == -1:
        return ParseResult("failed")

    end = text.rfind("}")
    if end > start:
        try:
            parsed = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            pass
        else:
            if isinstance(parsed, dict):
                return ParseResult("ok", parsed)

    recovered: dict[str, Any] = {}
    for match in _FIELD_RE.finditer(text[start:]):
        try:
            recovered[match.group("key")] = json.loads(match.group("value"))
        except json.JSONDecodeError:
            continue
    if recovered:
        return ParseResult("partial", recovered)
    return ParseResult("failed")


@dataclass(frozen=True)
class Analysis:
    intent: str = "general"
    confidence: float = 0.3
    mood: str = "neutral"
    mood_intensity: float = 0.3
    language: str = "en"


DEFAULT_ANALYSIS = Analysis()
COMMAND_ANALYSIS = Analysis("command", 1.0, "neutral", 0.0, "en")
EMPTY_ANALYSIS = Analysis("general", 1.0, "neutral", 0.0, "en")


def _clamp(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return min(1.0, max(0.0, float(value)))


def analysis_from_fields(fields: dict[str, Any]) -> Analysis:
    intent = fields.get("intent")
    mood = fields.get("mood")
    language = fields.get("language")
    return Analysis(
        intent=intent if intent in INTENT_LABELS else "general",
        confidence=_clamp(fields.get("confidence"), 0.5),
        mood=mood if mood in MOOD_LABELS else "neutral",
        mood_intensity=_clamp(fields.get("moodIntensity"), 0.5),
        language=language if isinstance(language, str) and language else "en",
    )


class MessageAnalyzer:
    """
    Classify a message's intent and mood in a single AI call.

    Commands, greetings and one-word acknowledgements take a fast path that
    never touches the AI. Any failure degrades to `DEFAULT_ANALYSIS`.
    """

    def __init__(self, ai: AIClient):
        self.ai = ai

    @staticmethod
    def fast_path(text: str) -> Analysis | None:
        if not text or not text.strip():
            return EMPTY_ANALYSIS
        if text.startswith(("!", "/")):
            return COMMAND_ANALYSIS

        lower = text.lower().strip()
        is_greeting = bool(GREETING_RE.match(lower))
        if is_greeting or SHORT_REPLY_RE.match(lower):
            return Analysis(
                intent="greeting" if is_greeting else "general",
                confidence=0.95,
                mood="happy",
                mood_intensity=0.5,
                language="ne" if lower.startswith("namaste") else "en",
            )
        return None

    async def analyze(self, text: str) -> Analysis:
        quick = self.fast_path(text)
        if quick is not None:
            return quick

        try:
            raw = await self.ai.generate(f'{ANALYZE_PROMPT}"{text}"', temperature=0.1, max_tokens=100)
        except ProviderError as exc:
            logger.debug(f"AI analysis failed, using defaults: {exc}")
            return DEFAULT_ANALYSIS

        result = lenient_json(raw)
        if result.status == "failed":
            logger.warning(f"Failed to parse analysis JSON for {compact_preview(text, 50)!r}: {raw!r}")
            return DEFAULT_ANALYSIS
        if result.status == "partial":
            logger.warning(f"Recovered partial analysis from truncated JSON: {result.fields}")

        analysis = analysis_from_fields(result.fields)
        logger.info(
            f"Message analysis: intent={analysis.intent} ({analysis.confidence:.2f}) "
            f"mood={analysis.mood}"
        )
        return analysis
