"""Owner-facing services around the conversation engine."""

from wa_operator.services.admin_commands import AdminCommands
from wa_operator.services.forwarder import WebhookForwarder
from wa_operator.services.knowledge import KnowledgeBase
from wa_operator.services.learning import LearningEngine
from wa_operator.services.schedules import ScheduleAssistant

__all__ = [
    "AdminCommands",
    "KnowledgeBase",
    "LearningEngine",
    "ScheduleAssistant",
    "WebhookForwarder",
]
