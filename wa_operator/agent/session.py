"""Per-contact AI chat session cache."""

from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from wa_operator.agent.prompts import PromptBuilder
from wa_operator.providers.base import QuotaExceededError
from wa_operator.providers.client import AIClient
from wa_operator.store.models import ContactProfile
from wa_operator.utils.helpers import now_ms


@dataclass
class ChatSession:
    """Cached conversation state for one contact."""
    system_instruction: str
    history: list[dict[str, str]] = field(default_factory=list)
    last_access_ms: int = 0
    turn_count: int = 0


class SessionCache:
    """
    Bounded LRU of chat sessions keyed by contact.

    The system instruction is built once when a session is created; a reset
    (after compression, or by the owner) forces a rebuild on the next reply.
    """

    def __init__(
        self,
        ai: AIClient,
        prompts: PromptBuilder,
        *,
        max_sessions: int = 200,
        ttl_ms: int = 30 * 60 * 1000,
        clock: Callable[[], int] = now_ms,
    ):
        self.ai = ai
        self.prompts = prompts
        self.max_sessions = max(1, max_sessions)
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._sessions: OrderedDict[str, ChatSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, contact_id: str) -> bool:
        return contact_id in self._sessions

    def get_or_create(self, contact_id: str, profile: ContactProfile | None = None) -> ChatSession:
        session = self._sessions.get(contact_id)
        now = self._clock()
        if session is not None:
            session.last_access_ms = now
            self._sessions.move_to_end(contact_id)
            return session

        session = ChatSession(
            system_instruction=self.prompts.build_system_prompt(profile),
            last_access_ms=now,
        )
        self._sessions[contact_id] = session
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.debug(f"Evicted least recently used chat session {evicted} (capacity)")
        logger.debug(f"Initialized chat session for {contact_id} ({len(self._sessions)} total)")
        return session

    async def reply(self, contact_id: str, text: str, profile: ContactProfile | None = None) -> str:
        """
        Generate the next assistant turn for a contact.

        Each attempt opens the chat on the next usable pool key. A key-level
        quota hit moves on to another key; pool exhaustion stops immediately.

        Raises:
            QuotaExceededError: when no key could serve the request.
        """
        session = self.get_or_create(contact_id, profile)
        last_error: QuotaExceededError | None = None

        for attempt in range(max(1, self.ai.pool_size)):
            try:
                chat = self.ai.create_chat(session.system_instruction, history=session.history)
                result = await self.ai.send_message(chat, text)
            except QuotaExceededError as exc:
                last_error = exc
                if exc.exhausted:
                    break
                logger.warning(
                    f"Key rate limited for {contact_id} (attempt {attempt + 1}), switching key"
                )
                continue

            session.history = result.history
            session.turn_count += 1
            session.last_access_ms = self._clock()
            return result.text

        raise last_error or QuotaExceededError("all API keys exhausted", exhausted=True)

    def reset(self, contact_id: str) -> bool:
        removed = self._sessions.pop(contact_id, None) is not None
        if removed:
            logger.debug(f"Chat session reset for {contact_id}")
        return removed

    def reset_all(self) -> int:
        count = len(self._sessions)
        self._sessions.clear()
        logger.info(f"All chat sessions reset ({count})")
        return count

    def info(self, contact_id: str) -> dict[str, Any] | None:
        session = self._sessions.get(contact_id)
        if session is None:
            return None
        return {
            "turn_count": session.turn_count,
            "last_access_ms": session.last_access_ms,
            "idle_ms": self._clock() - session.last_access_ms,
        }

    def evict_stale(self) -> int:
        now = self._clock()
        stale = [
            contact_id
            for contact_id, session in self._sessions.items()
            if now - session.last_access_ms > self.ttl_ms
        ]
        for contact_id in stale:
            del self._sessions[contact_id]
        if stale:
            logger.debug(f"Evicted {len(stale)} stale chat sessions ({len(self._sessions)} left)")
        return len(stale)
