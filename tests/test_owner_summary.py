import asyncio
from datetime import timedelta

from conftest import FakeProvider, prompt_of

from wa_operator.agent.prompts import PromptBuilder
from wa_operator.config.schema import PersonaConfig
from wa_operator.proactive.followups import FollowUpTracker
from wa_operator.providers.base import ProviderUnavailableError
from wa_operator.providers.client import AIClient
from wa_operator.services.owner_summary import QUIET_PERIOD, OwnerSummary
from wa_operator.services.schedules import ScheduleAssistant
from wa_operator.store.memory import Store
from wa_operator.utils.helpers import utc_now


def _summary(provider: FakeProvider, store: Store | None = None, **kwargs):
    store = store or Store()
    ai = AIClient(provider, max_retries=0)
    prompts = PromptBuilder(PersonaConfig(bot_name="Friday", owner_name="Sam"))
    owner_summary = OwnerSummary(
        store,
        ai,
        prompts,
        FollowUpTracker(store, ai, prompts),
        ScheduleAssistant(store, ai, "Sam"),
        **kwargs,
    )
    return owner_summary, store


def test_quiet_period_skips_the_model():
    provider = FakeProvider()
    owner_summary, _ = _summary(provider)

    assert asyncio.run(owner_summary.generate()) == QUIET_PERIOD
    assert provider.calls == []
    assert owner_summary.latest is None


def test_briefing_covers_messages_follow_ups_and_schedules():
    provider = FakeProvider(queue=["Alice wants the photos today."])
    owner_summary, store = _summary(provider)
    store.contacts.upsert("alice", "Alice")
    store.messages.insert("alice", "inbound", "did you send the photos?")
    store.messages.insert("alice", "outbound", "Sam will send them tonight.")
    store.messages.insert("alice", "owner_manual", "sending now")
    store.follow_ups.add("alice", "Send the photos", due_at=utc_now() - timedelta(hours=1))
    store.schedules.add("alice", "Dinner", utc_now() + timedelta(hours=3))

    text = asyncio.run(owner_summary.generate())

    assert text == "Alice wants the photos today."
    prompt = prompt_of(provider.calls[0])
    assert "Summarize the following WhatsApp conversations for Sam" in prompt
    assert '- Alice said: "did you send the photos?"' in prompt
    assert '- Friday replied to Alice: "Sam will send them tonight."' in prompt
    assert '- Sam told Alice: "sending now"' in prompt
    assert "Pending follow-ups:\n- Alice: Send the photos" in prompt
    assert "OVERDUE follow-ups:\n- Alice: Send the photos" in prompt
    assert "Upcoming schedules:\n- Dinner at" in prompt
    assert provider.calls[0]["temperature"] == 0.3

    assert owner_summary.latest.counts == {
        "messages": 3,
        "pending_follow_ups": 1,
        "overdue_follow_ups": 1,
        "upcoming_schedules": 1,
    }
    assert owner_summary.latest.delivered is False
    owner_summary.mark_delivered()
    assert owner_summary.latest.delivered is True


def test_lookback_window_limits_messages():
    provider = FakeProvider()
    later = utc_now() + timedelta(hours=5)
    owner_summary, store = _summary(provider, interval_hours=4, now=lambda: later)
    store.messages.insert("alice", "inbound", "old news")

    assert asyncio.run(owner_summary.generate()) == QUIET_PERIOD
    assert asyncio.run(owner_summary.generate(hours=6)) == "Sure, talk soon!"
    assert "old news" in prompt_of(provider.calls[0])


def test_model_failure_is_reported_as_text():
    provider = FakeProvider(queue=[ProviderUnavailableError("overloaded", transient=False)])
    owner_summary, store = _summary(provider)
    store.messages.insert("alice", "inbound", "hi")

    assert asyncio.run(owner_summary.generate()) == "Summary generation failed: overloaded"
    assert owner_summary.latest is None
