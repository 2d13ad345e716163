"""Safety gates that run before any AI work."""

from wa_operator.safety.bot_detector import BotDetector, BotVerdict
from wa_operator.safety.loop_detector import LoopDecision, LoopDetector
from wa_operator.safety.message_filter import FilterResult, MessageFilter
from wa_operator.safety.rate_limiter import RateDecision, RateLimiter

__all__ = [
    "BotDetector",
    "BotVerdict",
    "FilterResult",
    "LoopDecision",
    "LoopDetector",
    "MessageFilter",
    "RateDecision",
    "RateLimiter",
]
