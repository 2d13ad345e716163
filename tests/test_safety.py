import time

from conftest import FakeClock

from wa_operator.bus.events import InboundEvent
from wa_operator.safety.bot_detector import BotDetector
from wa_operator.safety.loop_detector import LoopDetector, jaccard
from wa_operator.safety.message_filter import BROADCAST_JID, MessageFilter
from wa_operator.safety.rate_limiter import RateLimiter


def test_rate_limiter_rejects_over_limit_until_window_slides():
    clock = FakeClock()
    limiter = RateLimiter(max_requests=15, window_ms=60_000, clock=clock)

    for _ in range(15):
        assert limiter.check("a").allowed
        limiter.record("a")
        clock.advance(100)

    rejected = limiter.check("a")
    assert not rejected.allowed
    assert rejected.remaining == 0
    assert rejected.retry_after_ms == 60_000 - 1500

    clock.advance(60_000)
    assert limiter.check("a").allowed


def test_rate_limiter_check_does_not_record():
    limiter = RateLimiter(max_requests=1, clock=FakeClock())
    for _ in range(5):
        assert limiter.check("a").allowed
    assert limiter.stats("a")["count"] == 0


def test_rate_limiter_gc_drops_idle_contacts():
    clock = FakeClock()
    limiter = RateLimiter(max_requests=3, window_ms=1_000, clock=clock)
    limiter.record("a")
    limiter.record("b")
    clock.advance(500)
    limiter.record("b")
    clock.advance(600)

    assert limiter.gc() == 1
    assert len(limiter) == 1
    limiter.reset("b")
    assert len(limiter) == 0


def test_loop_detector_halts_on_identical_messages():
    clock = FakeClock()
    detector = LoopDetector(threshold=3, halt_duration_ms=600_000, clock=clock)

    assert not detector.check("a", "Hello").loop_detected
    assert not detector.check("a", "hello ").loop_detected
    decision = detector.check("a", "HELLO")
    assert decision.loop_detected and decision.is_halted
    assert decision.halt_remaining_ms == 600_000

    clock.advance(600_000 - 1)
    still = detector.check("a", "something else")
    assert still.is_halted and still.halt_remaining_ms == 1

    clock.advance(2)
    assert not detector.check("a", "hello").is_halted
    assert not detector.is_halted("a")


def test_loop_detector_similar_messages_within_tolerance():
    detector = LoopDetector(threshold=3, similarity_threshold=0.8, tolerance=1, clock=FakeClock())
    assert detector.has_repetition(
        ["please call me back now", "please call me back now ok", "please call me back now"]
    )
    assert not detector.has_repetition(["good morning", "what is the plan", "see you at five"])


def test_loop_detector_clear_halt_and_listing():
    detector = LoopDetector(threshold=2, clock=FakeClock())
    detector.check("a", "spam")
    detector.check("a", "spam")
    assert detector.halted_contacts() == ["a"]

    detector.clear_halt("a")
    assert not detector.is_halted("a")
    assert not detector.check("a", "spam").loop_detected


def test_loop_detector_gc_keeps_halted_and_recent_contacts():
    clock = FakeClock()
    detector = LoopDetector(threshold=2, halt_duration_ms=60_000, clock=clock)
    detector.check("quiet", "hello")
    clock.advance(30_000)
    detector.check("spammer", "buy now")
    detector.check("spammer", "buy now")
    clock.advance(20_000)
    detector.check("recent", "hi")
    clock.advance(15_000)

    assert detector.gc() == 1
    assert detector.is_halted("spammer")

    clock.advance(30_000)
    assert detector.gc() == 1
    assert not detector.is_halted("spammer")

    clock.advance(20_000)
    assert detector.gc(idle_ms=60_000) == 1
    assert detector.gc() == 0


def test_jaccard():
    assert jaccard(set(), set()) == 0.0
    assert jaccard({"a", "b"}, {"b", "c"}) == 1 / 3


def test_message_filter_gates_in_order():
    now = time.time()
    message_filter = MessageFilter(old_message_threshold_s=60, clock=lambda: now)

    assert message_filter.check(InboundEvent("x@g.us", "", is_group=True)).reason == "group_message"
    assert message_filter.check(InboundEvent("a", "  ", timestamp=now)).reason == "empty_message"
    assert message_filter.check(InboundEvent("a", "hi", timestamp=now - 61)).reason == "stale_message"
    assert message_filter.check(InboundEvent(BROADCAST_JID, "hi", timestamp=now)).reason == "status_broadcast"
    assert message_filter.check(InboundEvent("a", "hi", is_from_me=True, timestamp=now)).reason == "own_message"
    assert message_filter.check(InboundEvent("a", "hi", timestamp=now)).passed


def test_message_filter_allows_media_without_text():
    now = time.time()
    message_filter = MessageFilter(clock=lambda: now)
    event = InboundEvent("a", "", content_type="image", has_media=True, timestamp=now)
    assert message_filter.check(event).passed


def test_bot_detector_confidence_levels():
    detector = BotDetector(known_bots={"bank@s.whatsapp.net"})

    assert detector.check(InboundEvent("bank@s.whatsapp.net", "hi")).confidence == 1.0
    text_verdict = detector.check(InboundEvent("a", "Your OTP. This is an automated message."))
    assert text_verdict.is_bot and text_verdict.confidence == 0.7
    name_verdict = detector.check(InboundEvent("a", "hello", display_name="Alerts System"))
    assert name_verdict.is_bot and name_verdict.confidence == 0.6
    assert not detector.check(InboundEvent("a", "hello", display_name="Alice")).is_bot

    detector.mark_as_bot("a")
    assert detector.check(InboundEvent("a", "hello")).confidence == 1.0
