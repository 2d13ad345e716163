"""Event bus module for decoupled transport-router-command communication."""

from wa_operator.bus.events import InboundEvent, TypingEvent
from wa_operator.bus.queue import EventBus

__all__ = ["EventBus", "InboundEvent", "TypingEvent"]
