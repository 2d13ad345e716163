import asyncio
import json
from datetime import datetime, timedelta, timezone

import httpx

from conftest import FakeProvider

from wa_operator.providers.client import AIClient
from wa_operator.services.forwarder import WebhookForwarder
from wa_operator.services.knowledge import KnowledgeBase
from wa_operator.services.learning import INITIAL_CONFIDENCE, LearningEngine
from wa_operator.services.schedules import FAILED_REPLY, REPHRASE_REPLY, ScheduleAssistant
from wa_operator.store.memory import Store
from wa_operator.store.models import BLOCKED_INTENT, ContactProfile

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def test_knowledge_search_matches_keywords_and_priority():
    kb = KnowledgeBase(Store())
    kb.add("Office hours?", "Mon-Fri 9 to 5", category="work", keywords=["hours", "Office"])
    top = kb.add("Office address?", "Kathmandu, Thamel", category="work", keywords=["office"], priority=5)
    kb.add("Favourite food?", "Momo", category="personal")

    hits = kb.search("where is your office")
    assert [h.id for h in hits][0] == top.id
    assert len(hits) == 2
    assert kb.search("a") == []
    assert [e.answer for e in kb.entries("personal")] == ["Momo"]
    assert kb.remove(top.id)
    assert len(kb.entries()) == 2


def test_learning_pairs_owner_reply_with_last_inbound():
    store = Store()
    store.messages.insert("a", "inbound", "can we meet tomorrow?", intent="schedule")
    provider = FakeProvider(
        queue=['{"style": "brief and friendly", "key_phrases": ["sure thing"], "approach": "confirms quickly"}']
    )
    engine = LearningEngine(store, AIClient(provider, max_retries=0))

    pattern = asyncio.run(engine.learn_from_owner("a", "Sure thing, 3pm works"))

    assert pattern.intent == "schedule"
    assert pattern.style == "brief and friendly"
    assert pattern.key_phrases == ["sure thing"]
    assert pattern.confidence == INITIAL_CONFIDENCE
    assert pattern.incoming_sample == "can we meet tomorrow?"
    assert '"can we meet tomorrow?"' in provider.calls[0]["messages"][-1]["content"]


def test_learning_files_replies_to_blocked_messages_as_general():
    store = Store()
    store.messages.insert("a", "inbound", "buy now buy now", intent=BLOCKED_INTENT)
    engine = LearningEngine(store, AIClient(FakeProvider(queue=['{"style": "firm"}']), max_retries=0))

    pattern = asyncio.run(engine.learn_from_owner("a", "Please stop sending this"))

    assert pattern.intent == "general"


def test_learning_reinforces_existing_pattern():
    store = Store()
    store.messages.insert("a", "inbound", "how are you?", intent="question")
    reply = '{"style": "playful", "approach": "jokes"}'
    engine = LearningEngine(store, AIClient(FakeProvider(queue=[reply, reply]), max_retries=0))

    async def _run():
        await engine.learn_from_owner("a", "never better haha")
        return await engine.learn_from_owner("a", "all good here haha")

    pattern = asyncio.run(_run())

    assert len(store.learning) == 1
    assert pattern.confidence == 0.65
    assert pattern.usage_count == 2
    assert engine.stats() == {"total_patterns": 1, "by_intent": {"question": 1}, "avg_confidence": 0.65}


def test_learning_skips_short_commands_and_missing_context():
    store = Store()
    provider = FakeProvider()
    engine = LearningEngine(store, AIClient(provider))

    async def _run():
        return [
            await engine.learn_from_owner("a", "ok"),
            await engine.learn_from_owner("a", "!status please"),
            await engine.learn_from_owner("a", "no inbound message yet"),
        ]

    assert asyncio.run(_run()) == [None, None, None]
    assert provider.calls == []


def test_relevant_patterns_prefer_contact_then_strong_global():
    store = Store()
    engine = LearningEngine(store, AIClient(FakeProvider()))
    own = store.learning.add(contact_id="a", intent="question", style="own", confidence=0.55)
    store.learning.add(contact_id="b", intent="question", style="weak", confidence=0.6)
    strong = store.learning.add(contact_id="b", intent="question", style="strong", confidence=0.9)
    store.learning.add(contact_id="a", intent="greeting", style="other", confidence=0.9)

    assert [p.id for p in engine.relevant_patterns("a", "question")] == [own.id, strong.id]


def test_schedule_request_is_stored_and_confirmed():
    provider = FakeProvider(
        queue=['{"title": "Dentist", "date": "2026-03-02T15:00:00Z", "remindBefore": "60", "recurrence": "none"}']
    )
    store = Store()
    assistant = ScheduleAssistant(store, AIClient(provider), owner_name="Sam", now=lambda: NOW)
    profile = ContactProfile(contact_id="a", display_name="Alice")

    reply = asyncio.run(assistant.handle_request("a", "remind sam about the dentist tomorrow 3pm", profile))

    schedule = store.schedules.all()[0]
    assert schedule.title == "Dentist"
    assert schedule.event_at == datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)
    assert schedule.remind_at == schedule.event_at - timedelta(minutes=60)
    assert schedule.recurrence is None
    assert "Dentist" in reply and "remind Sam 60 minutes before" in reply


def test_schedule_request_failures():
    provider = FakeProvider(queue=['{"isSchedule": false}', "no idea", RuntimeError("down")])
    assistant = ScheduleAssistant(Store(), AIClient(provider, max_retries=0), now=lambda: NOW)

    async def _run():
        return [await assistant.handle_request("a", "hmm") for _ in range(3)]

    assert asyncio.run(_run()) == [REPHRASE_REPLY, FAILED_REPLY, FAILED_REPLY]


def test_schedule_reminders_fire_once():
    current = {"now": NOW}
    store = Store()
    assistant = ScheduleAssistant(store, AIClient(FakeProvider()), now=lambda: current["now"])
    event = store.schedules.add("a", "Call", NOW + timedelta(hours=1), remind_at=NOW + timedelta(minutes=30))
    store.schedules.add("a", "Later", NOW + timedelta(days=5))

    assert assistant.due_reminders() == []
    assert [s.title for s in assistant.list_upcoming(24)] == ["Call"]
    current["now"] = NOW + timedelta(minutes=31)
    assert [s.id for s in assistant.due_reminders()] == [event.id]
    assert assistant.due_reminders() == []

    assert assistant.snooze(event.id, minutes=10)
    current["now"] += timedelta(minutes=10)
    assert len(assistant.due_reminders()) == 1
    assert assistant.complete(event.id)
    assert not assistant.cancel(999)


def test_webhook_forwarder_posts_payload(monkeypatch):
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(200 if len(received) == 1 else 500)

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        httpx, "AsyncClient", lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs)
    )
    forwarder = WebhookForwarder("http://hooks.local/wa")
    payload = {"contact_id": "a", "text": "hi", "reply": "hello", "intent": "greeting", "extra": 1}

    assert asyncio.run(forwarder.forward(payload)) is True
    assert received[0] == {"contact_id": "a", "text": "hi", "reply": "hello", "intent": "greeting"}
    assert asyncio.run(forwarder.forward(payload)) is False
    assert asyncio.run(WebhookForwarder("").forward(payload)) is False
