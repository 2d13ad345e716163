"""Base LLM provider interface and error taxonomy."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


class ProviderError(Exception):
    """Generic, non-retryable failure of the AI capability."""


class QuotaExceededError(ProviderError):
    """
    Quota or rate limit hit.

    `exhausted` is True only when every key in the pool is cooling down,
    which is terminal for the current request.
    """

    def __init__(self, message: str = "quota exceeded", *, exhausted: bool = False):
        super().__init__(message)
        self.exhausted = exhausted


class ProviderUnavailableError(ProviderError):
    """Provider unreachable or overloaded. `transient` errors are retried."""

    def __init__(self, message: str = "provider unavailable", *, transient: bool = True):
        super().__init__(message)
        self.transient = transient


class ProviderTimeoutError(ProviderUnavailableError):
    """Provider call exceeded its deadline."""

    def __init__(self, message: str = "provider call timed out"):
        super().__init__(message, transient=True)


@dataclass
class LLMResponse:
    """Response from an LLM provider."""
    content: str | None
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Implementations should raise the errors above instead of leaking
    SDK-specific exception types.
    """

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        api_key: str | None = None,
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            model: Model identifier (provider-specific).
            max_tokens: Maximum tokens in response.
            temperature: Sampling temperature.
            api_key: Per-call key override (used by the key pool).

        Returns:
            LLMResponse with content.
        """
        pass

    @abstractmethod
    def get_default_model(self) -> str:
        """Get the default model for this provider."""
        pass
