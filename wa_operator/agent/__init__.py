"""Conversation engine core: analysis, sessions, owner activity and memory."""

from wa_operator.agent.analyzer import Analysis, MessageAnalyzer, ParseResult, lenient_json
from wa_operator.agent.presence import Cooldown, OwnerActivityTracker
from wa_operator.agent.prompts import PromptBuilder
from wa_operator.agent.session import ChatSession, SessionCache

__all__ = [
    "Analysis",
    "ChatSession",
    "Cooldown",
    "MessageAnalyzer",
    "OwnerActivityTracker",
    "ParseResult",
    "PromptBuilder",
    "SessionCache",
    "lenient_json",
]
