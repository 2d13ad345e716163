"""Inbound message pipeline: filter, analyze, route and reply."""

import asyncio
import random
from collections.abc import Coroutine
from typing import Any

from loguru import logger

from wa_operator.agent.analyzer import Analysis, MessageAnalyzer
from wa_operator.agent.memory import MemoryManager
from wa_operator.agent.presence import OwnerActivityTracker
from wa_operator.agent.prompts import PromptBuilder, transcript_lines
from wa_operator.agent.session import SessionCache
from wa_operator.bus.events import (
    ALERT_MOOD,
    FORWARD_WEBHOOK,
    INTENT_COMMAND,
    MESSAGE_OWNER,
    MESSAGE_RAW,
    OWNER_TYPING,
    InboundEvent,
    TypingEvent,
)
from wa_operator.bus.queue import EventBus
from wa_operator.channels.base import Transport
from wa_operator.config.schema import PersonaConfig
from wa_operator.observability.metrics import MetricsStore
from wa_operator.proactive.followups import FollowUpTracker
from wa_operator.providers.base import ProviderUnavailableError, QuotaExceededError
from wa_operator.safety.bot_detector import BotDetector
from wa_operator.safety.loop_detector import LoopDetector
from wa_operator.safety.message_filter import MessageFilter
from wa_operator.safety.rate_limiter import RateLimiter
from wa_operator.services.knowledge import KnowledgeBase
from wa_operator.services.learning import LearningEngine
from wa_operator.services.schedules import ScheduleAssistant
from wa_operator.store.memory import Store
from wa_operator.store.models import BLOCKED_INTENT, ContactProfile
from wa_operator.utils.helpers import compact_preview

ALERT_MOODS = frozenset({"angry", "frustrated", "urgent", "sad", "anxious"})
ALERT_INTENSITY = 0.7

FALLBACK_MESSAGES = (
    "Hey! I'm taking a short break right now. {owner} will get back to you soon! 😊",
    "Hi there! My brain is recharging at the moment. {owner} will reply shortly! ⚡",
    "Hey! I'm temporarily unavailable, but {owner} will catch up with you soon! 🙏",
)


def is_alert_worthy(mood: str, intensity: float) -> bool:
    return mood in ALERT_MOODS and intensity >= ALERT_INTENSITY


def typing_duration_ms(reply: str) -> int:
    return min(len(reply) * 15, 1500)


class MessageRouter:
    """
    Central orchestrator for inbound messages.

    Pipeline for a contact message: filter, bot check, loop check, rate
    check, contact upsert, analysis, inbound persistence, suppression
    (auto-reply disabled or owner active), mood alert, routing by intent,
    a final owner-interjection recheck and finally send + bookkeeping.
    AI quota and availability failures turn into a canned fallback reply;
    nothing the AI says wrong ever reaches the contact as an error.
    """

    def __init__(
        self,
        *,
        store: Store,
        transport: Transport,
        bus: EventBus,
        message_filter: MessageFilter,
        bot_detector: BotDetector,
        loop_detector: LoopDetector,
        rate_limiter: RateLimiter,
        analyzer: MessageAnalyzer,
        sessions: SessionCache,
        tracker: OwnerActivityTracker,
        prompts: PromptBuilder,
        memory: MemoryManager,
        follow_ups: FollowUpTracker,
        knowledge: KnowledgeBase,
        learning: LearningEngine,
        schedules: ScheduleAssistant,
        persona: PersonaConfig | None = None,
        bot_confidence_threshold: float = 0.7,
        forward_enabled: bool = False,
        metrics: MetricsStore | None = None,
        rng: random.Random | None = None,
    ):
        self.store = store
        self.transport = transport
        self.bus = bus
        self.message_filter = message_filter
        self.bot_detector = bot_detector
        self.loop_detector = loop_detector
        self.rate_limiter = rate_limiter
        self.analyzer = analyzer
        self.sessions = sessions
        self.tracker = tracker
        self.prompts = prompts
        self.memory = memory
        self.follow_ups = follow_ups
        self.knowledge = knowledge
        self.learning = learning
        self.schedules = schedules
        self.persona = persona or PersonaConfig()
        self.bot_confidence_threshold = bot_confidence_threshold
        self.forward_enabled = forward_enabled
        self.metrics = metrics
        self._rng = rng or random.Random()
        self._background: set[asyncio.Task[Any]] = set()

    def attach(self, bus: EventBus | None = None) -> None:
        """Subscribe the router to transport events."""
        bus = bus or self.bus
        bus.subscribe(MESSAGE_RAW, self.handle_inbound)
        bus.subscribe(MESSAGE_OWNER, self.handle_owner_message)
        bus.subscribe(OWNER_TYPING, self._on_owner_typing)
        logger.info("Message router initialized")

    # Inbound pipeline

    async def handle_inbound(self, event: InboundEvent) -> str | None:
        """
        Run the full pipeline for one contact message.

        Returns:
            The text sent back to the contact, or None when nothing was sent.
        """
        contact_id = event.contact_id
        try:
            verdict = self.message_filter.check(event)
            if not verdict.passed:
                logger.debug(f"Message from {contact_id} filtered out: {verdict.reason}")
                return self._drop(contact_id, verdict.reason or "filtered")

            bot = self.bot_detector.check(event)
            if bot.is_bot and bot.confidence >= self.bot_confidence_threshold:
                logger.info(f"Bot message from {contact_id} skipped: {bot.reason}")
                self._persist_unanswered(event)
                return self._drop(contact_id, "bot")

            loop = self.loop_detector.check(contact_id, event.text)
            if loop.is_halted:
                logger.warning(
                    f"Contact {contact_id} halted (loop), {loop.halt_remaining_ms}ms remaining"
                )
                self._persist_unanswered(event)
                return self._drop(contact_id, "halted")

            rate = self.rate_limiter.check(contact_id)
            if not rate.allowed:
                self._persist_unanswered(event)
                return self._drop(contact_id, "rate_limited")

            profile = self.store.contacts.upsert(contact_id, event.display_name)
            analysis = await self.analyzer.analyze(event.text)

            self.store.messages.insert(
                contact_id,
                "inbound",
                event.text,
                content_type=event.content_type,
                intent=analysis.intent,
                mood=analysis.mood,
            )
            if analysis.mood != "neutral":
                profile = self.store.contacts.update(contact_id, last_mood=analysis.mood)

            if not profile.auto_reply_enabled:
                logger.debug(f"Auto-reply disabled for {contact_id}")
                return self._drop(contact_id, "auto_reply_disabled")
            if self.tracker.is_owner_active(contact_id):
                logger.info(f"Owner active in chat with {contact_id}, observing only")
                return self._drop(contact_id, "owner_active")

            if is_alert_worthy(analysis.mood, analysis.mood_intensity):
                self.bus.emit(
                    ALERT_MOOD,
                    {
                        "contact_id": contact_id,
                        "mood": analysis.mood,
                        "intensity": analysis.mood_intensity,
                        "text": event.text,
                    },
                )

            return await self._route_and_reply(event, profile, analysis)

        except (QuotaExceededError, ProviderUnavailableError) as exc:
            logger.warning(f"AI unavailable while answering {contact_id}: {exc}")
            return await self._send_fallback(contact_id)
        except Exception:
            logger.exception(f"Error in message router for {contact_id}")
            return self._drop(contact_id, "error")

    async def _route_and_reply(
        self,
        event: InboundEvent,
        profile: ContactProfile,
        analysis: Analysis,
    ) -> str | None:
        contact_id = event.contact_id
        intent = analysis.intent

        if intent == "command":
            self.bus.emit(INTENT_COMMAND, event)
            return self._drop(contact_id, "command")

        if intent == "greeting" and self.analyzer.ai.is_quota_exhausted():
            reply = (
                f"Hello! {self.persona.bot_name} here. I'm running in low-power mode right now, "
                f"but {self.persona.owner_name} will be back soon to chat with you properly! 😊"
            )
        elif intent == "schedule":
            reply = await self.schedules.handle_request(contact_id, event.text, profile)
        elif intent == "knowledge":
            reply = await self._answer_from_knowledge(event, profile, analysis)
        else:
            reply = await self._generate_reply(event, profile, analysis)

        reply = (reply or "").strip()
        if not reply:
            logger.warning(f"Empty reply for {contact_id} (intent={intent}), skipping send")
            return self._drop(contact_id, "empty_reply")

        await self.transport.simulate_typing(contact_id, typing_duration_ms(reply))

        # The owner may have started typing while the reply was being generated.
        if self.tracker.is_owner_active(contact_id):
            logger.info(f"Owner interjected in chat with {contact_id}, dropping generated reply")
            return self._drop(contact_id, "owner_interjected")

        await self.transport.send_message(contact_id, reply)
        self.store.messages.insert(
            contact_id, "outbound", reply, intent=intent, is_ai_generated=True
        )
        self.rate_limiter.record(contact_id)
        self._spawn(self.follow_ups.analyze_reply(contact_id, reply), "follow-up analysis")

        if self.forward_enabled:
            self.bus.emit(
                FORWARD_WEBHOOK,
                {"contact_id": contact_id, "text": event.text, "reply": reply, "intent": intent},
            )
        if self.memory.needs_compression(contact_id):
            self._spawn(self.memory.compress_contact(contact_id), "compression")

        logger.info(
            f"Replied to {contact_id} (intent={intent}, mood={analysis.mood}): "
            f"{compact_preview(reply, 80)}"
        )
        self._record(contact_id, "replied")
        return reply

    async def _generate_reply(
        self,
        event: InboundEvent,
        profile: ContactProfile,
        analysis: Analysis,
    ) -> str:
        contact_id = event.contact_id
        context = self.memory.get_context(contact_id, recent=5)
        if context.summary:
            summary = context.summary
        else:
            summary = "\n".join(transcript_lines(context.recent_messages, bot_name="Bot"))

        knowledge_hits = [entry.answer for entry in self.knowledge.search(event.text)]
        patterns = [
            self.learning.describe(pattern)
            for pattern in self.learning.relevant_patterns(contact_id, analysis.intent)
        ]
        pending = "; ".join(f.description for f in self.follow_ups.list_pending(contact_id)[:3])

        prompt = self.prompts.build_user_prompt(
            event.text,
            conversation_summary=summary,
            knowledge_hits=knowledge_hits,
            learned_patterns=patterns,
            pending_follow_ups=pending,
        )
        logger.debug(f"Sending enriched prompt for {contact_id} ({len(prompt)} chars)")
        return await self.sessions.reply(contact_id, prompt, profile)

    async def _answer_from_knowledge(
        self,
        event: InboundEvent,
        profile: ContactProfile,
        analysis: Analysis,
    ) -> str:
        hits = self.knowledge.search(event.text, limit=1)
        if hits:
            return hits[0].answer
        return await self._generate_reply(event, profile, analysis)

    async def _send_fallback(self, contact_id: str) -> str | None:
        reply = self._rng.choice(FALLBACK_MESSAGES).format(owner=self.persona.owner_name)
        try:
            await self.transport.send_message(contact_id, reply)
        except Exception as exc:
            logger.error(f"Failed to send fallback message to {contact_id}: {exc}")
            return self._drop(contact_id, "fallback_failed")
        self.store.messages.insert(contact_id, "outbound", reply, is_ai_generated=False)
        self._record(contact_id, "fallback")
        return reply

    def _persist_unanswered(self, event: InboundEvent) -> None:
        self.store.messages.insert(
            event.contact_id,
            "inbound",
            event.text,
            content_type=event.content_type,
            intent=BLOCKED_INTENT,
        )

    # Owner activity

    async def handle_owner_message(self, event: InboundEvent) -> None:
        """Owner wrote in a chat: pause auto-reply there, then learn or run the command."""
        contact_id = event.contact_id
        if not contact_id or event.is_group:
            return
        try:
            self.store.contacts.upsert(contact_id, None)
            self.tracker.record_owner_reply(contact_id)

            if event.is_command:
                self.bus.emit(INTENT_COMMAND, event)
                return

            self.store.messages.insert(
                contact_id, "owner_manual", event.text, content_type=event.content_type
            )
            self._spawn(self.learning.learn_from_owner(contact_id, event.text), "learning")
            logger.debug(f"Owner message recorded for {contact_id}")
        except Exception:
            logger.exception(f"Error handling owner message for {contact_id}")

    def handle_owner_typing(self, contact_id: str) -> None:
        if contact_id:
            self.tracker.record_typing(contact_id)

    def _on_owner_typing(self, event: TypingEvent) -> None:
        self.handle_owner_typing(event.contact_id)

    async def resume_sweep(self) -> int:
        """Answer chats the owner walked away from; returns the number of replies sent."""
        resumed = 0
        for contact_id in self.tracker.expired_contacts():
            try:
                latest = self.store.messages.latest(contact_id)
                profile = self.store.contacts.get(contact_id)
                if (
                    latest is not None
                    and latest.direction == "inbound"
                    and profile is not None
                    and profile.auto_reply_enabled
                    and self._resumable(contact_id, latest.intent)
                ):
                    logger.info(f"Auto-resuming conversation with {contact_id} after owner inactivity")
                    event = InboundEvent(
                        contact_id=contact_id,
                        text=latest.content,
                        content_type=latest.content_type,
                        display_name=profile.display_name,
                    )
                    analysis = Analysis(
                        intent=latest.intent or "general",
                        confidence=1.0,
                        mood=latest.mood or "neutral",
                        mood_intensity=1.0,
                    )
                    try:
                        reply = await self._route_and_reply(event, profile, analysis)
                    except (QuotaExceededError, ProviderUnavailableError) as exc:
                        logger.warning(f"AI unavailable while resuming {contact_id}: {exc}")
                        reply = await self._send_fallback(contact_id)
                    if reply:
                        resumed += 1
            except Exception:
                logger.exception(f"Error in resume sweep for {contact_id}")
            finally:
                self.tracker.forget(contact_id)
        return resumed

    def _resumable(self, contact_id: str, intent: str | None) -> bool:
        """The safety gates still hold when the owner walks away."""
        if intent == BLOCKED_INTENT:
            logger.debug(f"Not resuming {contact_id}: last message was refused by a safety gate")
            return False
        if self.loop_detector.is_halted(contact_id):
            logger.debug(f"Not resuming {contact_id}: contact is halted")
            return False
        if not self.rate_limiter.check(contact_id).allowed:
            logger.debug(f"Not resuming {contact_id}: rate limited")
            return False
        return True

    # Background work

    def _spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._background.add(task)

        def _done(finished: asyncio.Task[Any]) -> None:
            self._background.discard(finished)
            if not finished.cancelled() and finished.exception() is not None:
                logger.warning(f"Background {label} failed: {finished.exception()}")

        task.add_done_callback(_done)
        return task

    async def wait_background(self) -> None:
        """Wait for follow-up analysis, learning and compression tasks to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _drop(self, contact_id: str, reason: str) -> None:
        self._record(contact_id, "dropped", reason)
        return None

    def _record(self, contact_id: str, outcome: str, reason: str = "") -> None:
        if self.metrics is not None:
            self.metrics.record_pipeline(contact_id=contact_id, outcome=outcome, reason=reason)
