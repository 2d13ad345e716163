import asyncio

from conftest import FakeProvider

from wa_operator.agent.analyzer import DEFAULT_ANALYSIS, MessageAnalyzer, lenient_json
from wa_operator.providers.base import ProviderUnavailableError
from wa_operator.providers.client import AIClient


def _analyzer(provider):
    return MessageAnalyzer(AIClient(provider, max_retries=0))


def test_fast_path_needs_no_ai():
    provider = FakeProvider()
    analyzer = _analyzer(provider)

    async def _run():
        return [await analyzer.analyze(text) for text in ("hi", "Namaste", "thanks", "!status", "")]

    greeting, namaste, thanks, command, empty = asyncio.run(_run())

    assert provider.calls == []
    assert greeting.intent == "greeting" and greeting.confidence == 0.95
    assert namaste.language == "ne"
    assert thanks.intent == "general"
    assert command.intent == "command" and command.confidence == 1.0
    assert empty.intent == "general" and empty.confidence == 1.0


def test_analysis_parsed_from_fenced_json():
    provider = FakeProvider(
        queue=['```json\n{"intent": "urgent", "confidence": 0.8, "mood": "anxious", "moodIntensity": 0.9, "language": "en"}\n```']
    )
    analysis = asyncio.run(_analyzer(provider).analyze("my car broke down, need help"))

    assert analysis.intent == "urgent"
    assert analysis.mood == "anxious"
    assert analysis.mood_intensity == 0.9
    assert provider.calls[0]["temperature"] == 0.1
    assert provider.calls[0]["max_tokens"] == 100


def test_truncated_json_recovers_fields():
    provider = FakeProvider(queue=['{"intent": "question", "confidence": 0.7, "mood": "confu'])
    analysis = asyncio.run(_analyzer(provider).analyze("when is the meeting?"))

    assert analysis.intent == "question"
    assert analysis.confidence == 0.7
    assert analysis.mood == "neutral"


def test_unknown_labels_fall_back():
    provider = FakeProvider(queue=['{"intent": "dance", "mood": "sleepy", "confidence": 7}'])
    analysis = asyncio.run(_analyzer(provider).analyze("random words here"))

    assert analysis.intent == "general"
    assert analysis.mood == "neutral"
    assert analysis.confidence == 1.0


def test_provider_failure_returns_defaults():
    provider = FakeProvider(queue=[ProviderUnavailableError("down", transient=False)])
    assert asyncio.run(_analyzer(provider).analyze("what about tomorrow")) == DEFAULT_ANALYSIS


def test_garbage_returns_defaults():
    provider = FakeProvider(queue=["I think this is a question"])
    assert asyncio.run(_analyzer(provider).analyze("what about tomorrow")) == DEFAULT_ANALYSIS


def test_lenient_json_statuses():
    assert lenient_json('prefix {"a": 1} suffix').ok
    partial = lenient_json('{"a": "x", "b": tru')
    assert partial.status == "partial" and partial.get("a") == "x"
    assert lenient_json("no json").status == "failed"
    assert lenient_json('{"broken').status == "failed"
