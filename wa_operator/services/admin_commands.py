"""Owner chat commands (`!status`, `!vip ...`, ...)."""

import time
from collections.abc import Awaitable, Callable
from datetime import timedelta

from loguru import logger

from wa_operator.agent.presence import OwnerActivityTracker
from wa_operator.agent.session import SessionCache
from wa_operator.bus.events import InboundEvent
from wa_operator.channels.base import Transport
from wa_operator.config.schema import PersonaConfig
from wa_operator.proactive.followups import FollowUpTracker
from wa_operator.safety.loop_detector import LoopDetector
from wa_operator.services.knowledge import KnowledgeBase
from wa_operator.services.learning import LearningEngine
from wa_operator.services.owner_summary import OwnerSummary
from wa_operator.services.schedules import ScheduleAssistant
from wa_operator.store.memory import Store
from wa_operator.utils.helpers import utc_now

CommandHandler = Callable[[list[str]], str | Awaitable[str]]


def normalize_jid(jid: str) -> str:
    return (jid or "").strip().replace("@c.us", "@s.whatsapp.net")


class AdminCommands:
    """
    Dispatches `intent:command` events sent by the owner.

    Non-owner commands are ignored silently. Every reply goes back to the
    chat the command came from.
    """

    def __init__(
        self,
        *,
        persona: PersonaConfig,
        store: Store,
        transport: Transport,
        sessions: SessionCache,
        tracker: OwnerActivityTracker,
        loop_detector: LoopDetector,
        follow_ups: FollowUpTracker,
        schedules: ScheduleAssistant,
        knowledge: KnowledgeBase,
        learning: LearningEngine,
        owner_summary: OwnerSummary,
    ):
        self.persona = persona
        self.store = store
        self.transport = transport
        self.sessions = sessions
        self.tracker = tracker
        self.loop_detector = loop_detector
        self.follow_ups = follow_ups
        self.schedules = schedules
        self.knowledge = knowledge
        self.learning = learning
        self.owner_summary = owner_summary
        self._started = time.monotonic()
        self._handlers: dict[str, CommandHandler] = {
            "help": lambda args: self.help_text,
            "status": lambda args: self._status(),
            "vip": self._vip,
            "disable": lambda args: self._toggle(args, False),
            "enable": lambda args: self._toggle(args, True),
            "followups": lambda args: self._follow_ups(),
            "schedules": self._schedules,
            "kb": self._kb,
            "learning": lambda args: self._learning(),
            "reset": self._reset,
            "unhalt": self._unhalt,
            "resume": self._resume,
            "contacts": lambda args: self._contacts(),
            "summary": self._summary,
        }

    @property
    def help_text(self) -> str:
        return (
            f"*{self.persona.bot_name} Admin Commands*\n\n"
            "!status - Bot status + stats\n"
            "!help - This help menu\n"
            "!vip <jid> <tier> - Set VIP tier (0-3)\n"
            "!disable <jid> - Disable auto-reply for contact\n"
            "!enable <jid> - Enable auto-reply for contact\n"
            "!followups - List pending follow-ups\n"
            "!schedules - Upcoming schedules\n"
            "!schedules done|cancel <id> - Close a schedule\n"
            "!schedules snooze <id> [minutes] - Push its reminder back\n"
            "!kb add <category> | <question> | <answer> - Add KB entry\n"
            "!kb search <query> - Search KB\n"
            "!learning - Learning stats\n"
            "!reset [jid] - Reset chat session(s)\n"
            "!unhalt <jid> - Clear loop halt\n"
            "!resume <jid> - Force-resume auto-reply\n"
            "!contacts - List active contacts\n"
            "!summary [hours] - Generate owner summary now"
        )

    def is_owner(self, event: InboundEvent) -> bool:
        if event.is_from_me:
            return True
        owner = normalize_jid(self.persona.owner_jid)
        return bool(owner) and normalize_jid(event.contact_id) == owner

    async def handle(self, event: InboundEvent) -> str | None:
        """Run one command; returns the reply that was sent (None when ignored)."""
        if not self.is_owner(event):
            logger.debug(f"Non-owner {event.contact_id} tried to run a command")
            return None

        try:
            parts = event.text.strip().split()
            command = parts[0].lower().lstrip("!/") if parts else ""
            handler = self._handlers.get(command)
            if handler is None:
                reply = f"Unknown command: {command}\nType !help for available commands."
            else:
                reply = handler(parts[1:])
                if not isinstance(reply, str):
                    reply = await reply
        except Exception as e:
            logger.error(f"Admin command {event.text!r} failed: {e}")
            reply = f"Command failed: {e}"

        await self.transport.send_message(event.contact_id, reply)
        return reply

    def _status(self) -> str:
        uptime = int(time.monotonic() - self._started)
        return (
            f"*{self.persona.bot_name} Status*\n"
            f"⏱ Uptime: {uptime // 3600}h {(uptime % 3600) // 60}m\n"
            f"🔌 Transport: {'connected' if self.transport.is_ready() else 'disconnected'}\n"
            f"💬 Active sessions: {len(self.sessions)}\n"
            f"👥 Contacts: {len(self.store.contacts)}\n"
            f"⏸ Owner active in: {len(self.tracker.active_contacts())} chats\n"
            f"🛑 Halted: {len(self.loop_detector.halted_contacts())}\n"
            f"📚 Learning: {self.learning.stats()['total_patterns']} patterns"
        )

    def _vip(self, args: list[str]) -> str:
        if len(args) < 2:
            return "Usage: !vip <jid> <tier (0-3)>"
        jid, tier_text = args[0], args[1]
        try:
            tier = int(tier_text)
        except ValueError:
            return "Tier must be 0-3"
        if not 0 <= tier <= 3:
            return "Tier must be 0-3"
        self.store.contacts.update(jid, vip_tier=tier)
        self.sessions.reset(jid)
        return f"VIP tier set to {tier} for {jid}"

    def _toggle(self, args: list[str], enabled: bool) -> str:
        verb = "enable" if enabled else "disable"
        if not args:
            return f"Usage: !{verb} <jid>"
        self.store.contacts.update(args[0], auto_reply_enabled=enabled)
        return f"Auto-reply {verb}d for {args[0]}"

    def _name(self, contact_id: str) -> str:
        profile = self.store.contacts.get(contact_id)
        return profile.display_name if profile and profile.display_name else contact_id

    def _follow_ups(self) -> str:
        pending = self.follow_ups.list_pending()
        if not pending:
            return "No pending follow-ups. ✅"
        lines = [
            f"• #{f.id} {self._name(f.contact_id)}: {f.description} "
            f"(due: {f.due_at:%Y-%m-%d %H:%M})"
            for f in pending
        ]
        return "*Pending Follow-ups:*\n" + "\n".join(lines)

    def _schedules(self, args: list[str]) -> str:
        if args:
            return self._schedule_action(args)
        upcoming = self.schedules.list_upcoming(72)
        if not upcoming:
            return "No upcoming schedules. 📭"
        lines = [f"• #{s.id} {s.title} - {s.event_at:%Y-%m-%d %H:%M}" for s in upcoming]
        return "*Upcoming Schedules:*\n" + "\n".join(lines)

    def _schedule_action(self, args: list[str]) -> str:
        usage = "Usage: !schedules done|cancel|snooze <id> [minutes]"
        sub = args[0].lower()
        if sub not in ("done", "cancel", "snooze") or len(args) < 2:
            return usage
        try:
            schedule_id = int(args[1].lstrip("#"))
            minutes = int(args[2]) if sub == "snooze" and len(args) > 2 else 15
        except ValueError:
            return usage

        if sub == "done":
            found, reply = self.schedules.complete(schedule_id), f"Schedule #{schedule_id} completed ✅"
        elif sub == "cancel":
            found, reply = self.schedules.cancel(schedule_id), f"Schedule #{schedule_id} cancelled"
        else:
            found = self.schedules.snooze(schedule_id, minutes)
            reply = f"Schedule #{schedule_id} reminder snoozed {minutes} minutes ⏰"
        return reply if found else f"Schedule #{schedule_id} not found"

    async def _summary(self, args: list[str]) -> str:
        hours = None
        if args:
            try:
                hours = float(args[0])
            except ValueError:
                return "Usage: !summary [hours]"
            if hours <= 0:
                return "Usage: !summary [hours]"
        text = await self.owner_summary.generate(hours)
        return f"📋 *Summary*\n\n{text}"

    def _kb(self, args: list[str]) -> str:
        if not args:
            return "Usage: !kb add <cat>|<q>|<a> or !kb search <query>"
        sub, rest = args[0].lower(), " ".join(args[1:])

        if sub == "add":
            parts = [part.strip() for part in rest.split("|")]
            if len(parts) < 3 or not all(parts[:3]):
                return "Usage: !kb add <category> | <question> | <answer>"
            entry = self.knowledge.add(parts[1], parts[2], category=parts[0])
            return f"KB entry added (ID: {entry.id})"

        if sub == "search":
            results = self.knowledge.search(rest)
            if not results:
                return "No KB matches found."
            return "*KB Results:*\n" + "\n\n".join(
                f"• [{k.category}] {k.question}\n  → {k.answer}" for k in results
            )

        return "Unknown KB subcommand. Use: add, search"

    def _learning(self) -> str:
        stats = self.learning.stats()
        text = (
            "*Learning Stats*\n"
            f"📊 Total patterns: {stats['total_patterns']}\n"
            f"📈 Avg confidence: {stats['avg_confidence']:.2f}"
        )
        if stats["by_intent"]:
            text += "\n\nBy intent:" + "".join(
                f"\n• {intent}: {count}" for intent, count in stats["by_intent"].items()
            )
        return text

    def _reset(self, args: list[str]) -> str:
        if args:
            self.sessions.reset(args[0])
            return f"Chat session reset for {args[0]}"
        self.sessions.reset_all()
        return "All chat sessions reset"

    def _unhalt(self, args: list[str]) -> str:
        if not args:
            return "Usage: !unhalt <jid>"
        self.loop_detector.clear_halt(args[0])
        return f"Loop halt cleared for {args[0]}"

    def _resume(self, args: list[str]) -> str:
        if not args:
            return "Usage: !resume <jid>"
        self.tracker.force_resume(args[0])
        return f"Auto-reply force-resumed for {args[0]}"

    def _contacts(self) -> str:
        since = utc_now() - timedelta(hours=24)
        active = [p for p in self.store.contacts.all() if p.last_seen_at >= since]
        if not active:
            return "No active contacts in the last 24h."
        lines = [
            f"• {p.display_name or p.contact_id} {'⭐' * p.vip_tier}".rstrip() for p in active[:20]
        ]
        return "*Active Contacts (24h):*\n" + "\n".join(lines)
