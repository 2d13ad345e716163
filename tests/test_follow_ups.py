import asyncio
from datetime import datetime, timedelta, timezone

from conftest import FakeProvider

from wa_operator.agent.prompts import PromptBuilder
from wa_operator.proactive.followups import FollowUpTracker
from wa_operator.providers.client import AIClient
from wa_operator.store.memory import Store


class MovableNow:
    def __init__(self):
        self.value = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.value


def _tracker(provider, now=None, **kwargs):
    store = Store()
    tracker = FollowUpTracker(
        store, AIClient(provider, max_retries=0), PromptBuilder(), now=now or MovableNow(), **kwargs
    )
    return tracker, store


def test_promise_in_reply_creates_follow_up():
    now = MovableNow()
    provider = FakeProvider(
        queue=['{"hasFollowUp": true, "description": "Send the photos", "dueHours": 2, "priority": 3}']
    )
    tracker, _ = _tracker(provider, now)

    follow_up = asyncio.run(tracker.analyze_reply("a", "Sam will send the photos in a couple of hours"))

    assert follow_up.description == "Send the photos"
    assert follow_up.due_at == now.value + timedelta(hours=2)
    assert follow_up.priority == 3
    assert tracker.list_pending("a") == [follow_up]


def test_missing_due_hours_uses_default():
    now = MovableNow()
    provider = FakeProvider(queue=['{"hasFollowUp": true, "description": "Call back", "priority": 9}'])
    tracker, _ = _tracker(provider, now, default_due_hours=24)

    follow_up = asyncio.run(tracker.analyze_reply("a", "will call back"))

    assert follow_up.due_at == now.value + timedelta(hours=24)
    assert follow_up.priority == 4


def test_no_promise_or_garbage_creates_nothing():
    provider = FakeProvider(queue=['{"hasFollowUp": false}', "nope", RuntimeError("boom")])
    tracker, store = _tracker(provider)

    async def _run():
        for _ in range(3):
            assert await tracker.analyze_reply("a", "ok") is None

    asyncio.run(_run())
    assert len(store.follow_ups) == 0


def test_overdue_follow_up_reminded_three_times_then_expired():
    now = MovableNow()
    tracker, store = _tracker(FakeProvider(), now, max_reminders=3)
    follow_up = store.follow_ups.add("a", "Send invoice", due_at=now.value + timedelta(hours=1))

    assert tracker.collect_reminders() == []
    now.value += timedelta(hours=2)

    for expected in (1, 2, 3):
        reminders = tracker.collect_reminders()
        assert [r.id for r in reminders] == [follow_up.id]
        assert reminders[0].reminded_count == expected
        assert reminders[0].status == "reminded"

    assert tracker.collect_reminders() == []
    assert store.follow_ups.get(follow_up.id).status == "expired"
    assert tracker.list_pending() == []


def test_resolve_and_ordering():
    now = MovableNow()
    tracker, store = _tracker(FakeProvider(), now)
    low = store.follow_ups.add("a", "low", due_at=now.value, priority=1)
    high = store.follow_ups.add("a", "high", due_at=now.value + timedelta(hours=5), priority=4)

    assert [f.id for f in tracker.list_pending()] == [high.id, low.id]
    assert tracker.resolve(low.id)
    assert not tracker.resolve(low.id)
    assert store.follow_ups.get(low.id).resolved_at == now.value
    assert tracker.list_overdue() == []
