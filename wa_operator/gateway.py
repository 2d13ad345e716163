"""Wires config, transport, AI and the conversation engine into one process."""

import asyncio
from collections.abc import Callable
from typing import Any

from loguru import logger

from wa_operator.agent.analyzer import MessageAnalyzer
from wa_operator.agent.memory import MemoryManager, SummaryCompressor
from wa_operator.agent.presence import OwnerActivityTracker
from wa_operator.agent.prompts import PromptBuilder
from wa_operator.agent.router import MessageRouter
from wa_operator.agent.session import SessionCache
from wa_operator.bus.events import ALERT_MOOD, FORWARD_WEBHOOK, INTENT_COMMAND
from wa_operator.bus.queue import EventBus
from wa_operator.channels.base import BaseChannel, Transport
from wa_operator.channels.whatsapp import WhatsAppChannel
from wa_operator.config.schema import Config
from wa_operator.cron.service import CronService
from wa_operator.lifecycle import Lifecycle
from wa_operator.observability.metrics import MetricsStore
from wa_operator.proactive.followups import FollowUpTracker
from wa_operator.providers.base import LLMProvider
from wa_operator.providers.client import AIClient
from wa_operator.providers.pool import KeyPool
from wa_operator.safety.bot_detector import BotDetector
from wa_operator.safety.loop_detector import LoopDetector
from wa_operator.safety.message_filter import MessageFilter
from wa_operator.safety.rate_limiter import RateLimiter
from wa_operator.services.admin_commands import AdminCommands
from wa_operator.services.forwarder import WebhookForwarder
from wa_operator.services.knowledge import KnowledgeBase
from wa_operator.services.learning import LearningEngine
from wa_operator.services.owner_summary import OwnerSummary
from wa_operator.services.schedules import ScheduleAssistant
from wa_operator.store.memory import Store
from wa_operator.store.snapshot import SnapshotStore
from wa_operator.utils.helpers import now_ms


def build_provider(config: Config) -> LLMProvider:
    from wa_operator.providers.litellm_provider import LiteLLMProvider

    return LiteLLMProvider(api_base=config.provider.api_base, default_model=config.provider.model)


class Gateway:
    """
    The running operator: one bus, one transport, one router.

    Responsibilities:
    - build every component from `Config` (collaborators can be injected)
    - subscribe the router, admin commands, alerts and webhook forwarding
    - register the periodic maintenance jobs
    - start the transport and shut everything down in reverse order
    """

    def __init__(
        self,
        config: Config,
        *,
        transport: Transport | None = None,
        provider: LLMProvider | None = None,
        store: Store | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.config = config
        self.bus = EventBus()
        self.lifecycle = Lifecycle()
        self.metrics = MetricsStore(config.metrics_path)
        self.snapshots = SnapshotStore(config.snapshot_path)
        self.store = store if store is not None else self.snapshots.load()
        self.transport: Transport = transport or WhatsAppChannel(config.channels.whatsapp, self.bus)

        provider_cfg = config.provider
        self.ai = AIClient(
            provider or build_provider(config),
            KeyPool(provider_cfg.api_keys, int(provider_cfg.key_cooldown_s * 1000), clock=clock),
            model=provider_cfg.model,
            temperature=provider_cfg.temperature,
            max_tokens=provider_cfg.max_tokens,
            timeout_s=provider_cfg.timeout_s,
            max_retries=provider_cfg.max_retries,
            metrics=self.metrics,
        )

        safety = config.safety
        persona = config.persona
        self.prompts = PromptBuilder(persona)
        self.rate_limiter = RateLimiter(safety.rate_limit_max, safety.rate_limit_window_ms, clock=clock)
        self.loop_detector = LoopDetector(
            threshold=safety.loop_detect_threshold,
            window_size=safety.loop_window_size,
            similarity_threshold=safety.loop_similarity_threshold,
            halt_duration_ms=safety.halt_duration_ms,
            tolerance=safety.loop_tolerance,
            clock=clock,
        )
        self.sessions = SessionCache(
            self.ai,
            self.prompts,
            max_sessions=config.sessions.max_sessions,
            ttl_ms=config.sessions.ttl_ms,
            clock=clock,
        )
        self.tracker = OwnerActivityTracker(
            config.offline.cooldown_ms, config.offline.typing_pause_ms, clock=clock
        )
        self.memory = MemoryManager(
            self.store,
            SummaryCompressor(self.ai, self.prompts),
            self.sessions,
            compress_threshold=config.memory.compress_threshold,
            keep_recent=config.memory.keep_recent,
            summary_retention=config.memory.summary_retention,
        )
        self.follow_ups = FollowUpTracker(
            self.store,
            self.ai,
            self.prompts,
            default_due_hours=config.follow_ups.default_due_hours,
            max_reminders=config.follow_ups.max_reminders,
        )
        self.knowledge = KnowledgeBase(self.store)
        self.learning = LearningEngine(self.store, self.ai)
        self.schedules = ScheduleAssistant(self.store, self.ai, persona.owner_name)
        self.owner_summary = OwnerSummary(
            self.store,
            self.ai,
            self.prompts,
            self.follow_ups,
            self.schedules,
            interval_hours=config.summary.interval_hours,
        )
        self.forwarder = WebhookForwarder(
            config.integrations.webhook_url, config.integrations.webhook_timeout_s
        )

        self.router = MessageRouter(
            store=self.store,
            transport=self.transport,
            bus=self.bus,
            message_filter=MessageFilter(safety.old_message_threshold_s),
            bot_detector=BotDetector(),
            loop_detector=self.loop_detector,
            rate_limiter=self.rate_limiter,
            analyzer=MessageAnalyzer(self.ai),
            sessions=self.sessions,
            tracker=self.tracker,
            prompts=self.prompts,
            memory=self.memory,
            follow_ups=self.follow_ups,
            knowledge=self.knowledge,
            learning=self.learning,
            schedules=self.schedules,
            persona=persona,
            bot_confidence_threshold=safety.bot_confidence_threshold,
            forward_enabled=self.forwarder.enabled,
            metrics=self.metrics,
        )
        self.commands = AdminCommands(
            persona=persona,
            store=self.store,
            transport=self.transport,
            sessions=self.sessions,
            tracker=self.tracker,
            loop_detector=self.loop_detector,
            follow_ups=self.follow_ups,
            schedules=self.schedules,
            knowledge=self.knowledge,
            learning=self.learning,
            owner_summary=self.owner_summary,
        )
        self.cron = CronService(self.metrics)

        self._wire()
        self._register_jobs()

    def _wire(self) -> None:
        self.router.attach(self.bus)
        self.bus.subscribe(INTENT_COMMAND, self.commands.handle)
        self.bus.subscribe(ALERT_MOOD, self.on_mood_alert)
        if self.forwarder.enabled:
            self.bus.subscribe(FORWARD_WEBHOOK, self.forwarder.forward)

    def _register_jobs(self) -> None:
        cfg = self.config
        self.cron.add_job("rate-limiter-gc", cfg.safety.rate_gc_interval_s, self.rate_limiter.gc)
        self.cron.add_job("loop-detector-gc", cfg.safety.rate_gc_interval_s, self.loop_detector.gc)
        self.cron.add_job("session-sweep", cfg.sessions.sweep_interval_s, self.sessions.evict_stale)
        self.cron.add_job("resume-sweep", cfg.offline.resume_interval_s, self.router.resume_sweep)
        self.cron.add_job("follow-up-reminders", cfg.follow_ups.check_interval_s, self.send_follow_up_reminders)
        self.cron.add_job(
            "schedule-reminders", cfg.follow_ups.schedule_check_interval_s, self.send_schedule_reminders
        )
        self.cron.add_job("compression", cfg.memory.compress_interval_s, self.compact_memory)
        self.cron.add_job("snapshot", cfg.storage.snapshot_interval_s, self.save_snapshot)
        self.cron.add_job("metrics-prune", 24 * 60 * 60, self.metrics.prune)
        if cfg.summary.enabled:
            self.cron.add_job(
                "owner-summary", int(cfg.summary.interval_hours * 60 * 60), self.send_owner_summary
            )

    # Owner notifications

    @property
    def owner_jid(self) -> str:
        return self.config.persona.owner_jid

    async def notify_owner(self, text: str) -> bool:
        if not self.owner_jid or not self.transport.is_ready():
            logger.debug("Owner notification skipped (no owner JID or transport not ready)")
            return False
        await self.transport.send_message(self.owner_jid, text)
        return True

    def _display(self, contact_id: str) -> str:
        profile = self.store.contacts.get(contact_id)
        return profile.display_name if profile and profile.display_name else contact_id

    async def on_mood_alert(self, payload: dict[str, Any]) -> None:
        contact_id = payload.get("contact_id", "")
        await self.notify_owner(
            f"⚠️ *Mood alert*: {self._display(contact_id)} seems {payload.get('mood')} "
            f"({float(payload.get('intensity', 0.0)):.0%})\n"
            f"> {str(payload.get('text', ''))[:200]}"
        )

    async def send_follow_up_reminders(self) -> int:
        reminders = self.follow_ups.collect_reminders()
        if not reminders:
            return 0
        lines = ["🔔 *Follow-up reminders:*"]
        lines.extend(
            f"• #{f.id} {self._display(f.contact_id)}: {f.description} (reminder {f.reminded_count})"
            for f in reminders
        )
        await self.notify_owner("\n".join(lines))
        return len(reminders)

    async def send_schedule_reminders(self) -> int:
        due = self.schedules.due_reminders()
        for schedule in due:
            await self.notify_owner(
                f"📅 *Reminder*: {schedule.title} at {schedule.event_at:%Y-%m-%d %H:%M} "
                f"(requested by {self._display(schedule.contact_id)})"
            )
        return len(due)

    async def send_owner_summary(self) -> bool:
        if not self.owner_jid or not self.transport.is_ready():
            logger.debug("Owner summary skipped (no owner JID or transport not ready)")
            return False
        summary = await self.owner_summary.generate()
        sent = await self.notify_owner(f"📋 *Periodic Summary*\n\n{summary}")
        if sent:
            self.owner_summary.mark_delivered()
        return sent

    async def compact_memory(self) -> None:
        await self.memory.compress_all()
        self.memory.prune_summaries()

    def save_snapshot(self) -> bool:
        return self.snapshots.save(self.store)

    # Lifecycle

    async def start(self) -> None:
        """Start jobs and the transport, register shutdown hooks in start order."""
        self.lifecycle.on_shutdown("snapshot", self.save_snapshot)
        self.lifecycle.on_shutdown("background-tasks", self._drain)
        await self.cron.start()
        self.lifecycle.on_shutdown("cron", self.cron.stop)

        if isinstance(self.transport, BaseChannel):
            task = asyncio.create_task(self.transport.start(), name="transport")
            self.lifecycle.on_shutdown("transport", self.transport.stop)
            task.add_done_callback(self._on_transport_done)
        logger.info(f"{self.config.persona.bot_name} is running for {self.config.persona.owner_name}")

    def _on_transport_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled() or self.lifecycle.is_stopping:
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Transport crashed: {error}")
            asyncio.ensure_future(self.lifecycle.shutdown("transport failure"))

    async def _drain(self) -> None:
        try:
            await asyncio.wait_for(
                asyncio.gather(self.router.wait_background(), self.bus.drain()), timeout=10
            )
        except asyncio.TimeoutError:
            logger.warning("Background tasks still running at shutdown")

    async def run(self) -> None:
        """Run until SIGINT/SIGTERM or a fatal transport error."""
        self.lifecycle.install_signal_handlers()
        await self.start()
        try:
            await self.lifecycle.wait()
        finally:
            await self.lifecycle.shutdown("stop")
