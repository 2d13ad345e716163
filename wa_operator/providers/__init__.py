"""LLM provider abstraction module."""

from wa_operator.providers.base import (
    LLMProvider,
    LLMResponse,
    ProviderError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    QuotaExceededError,
)
from wa_operator.providers.client import AIClient, ChatHandle, ChatReply
from wa_operator.providers.pool import KeyPool

__all__ = [
    "AIClient",
    "ChatHandle",
    "ChatReply",
    "KeyPool",
    "LLMProvider",
    "LLMResponse",
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "QuotaExceededError",
]
