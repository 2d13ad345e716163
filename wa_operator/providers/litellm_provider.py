"""LiteLLM-backed provider."""

from typing import Any

import litellm
from loguru import logger

from wa_operator.providers.base import (
    LLMProvider,
    LLMResponse,
    ProviderError,
    ProviderUnavailableError,
    QuotaExceededError,
)

_QUOTA_MARKERS = ("ratelimit", "rate limit", "quota", "resource_exhausted", "429")
_UNAVAILABLE_MARKERS = (
    "serviceunavailable",
    "service unavailable",
    "apiconnection",
    "connection",
    "timeout",
    "internalserver",
    "overloaded",
    "503",
    "502",
)


def classify_error(exc: Exception) -> ProviderError:
    """Map a LiteLLM/SDK exception onto the provider error taxonomy."""
    if isinstance(exc, ProviderError):
        return exc
    status = getattr(exc, "status_code", None)
    text = f"{type(exc).__name__} {exc}".lower()

    if status == 429 or any(marker in text for marker in _QUOTA_MARKERS):
        return QuotaExceededError(str(exc) or "quota exceeded")
    if (isinstance(status, int) and status >= 500) or any(
        marker in text for marker in _UNAVAILABLE_MARKERS
    ):
        return ProviderUnavailableError(str(exc) or "provider unavailable", transient=True)
    if status in (401, 403):
        return ProviderUnavailableError(str(exc) or "authentication failed", transient=False)
    return ProviderError(str(exc) or type(exc).__name__)


class LiteLLMProvider(LLMProvider):
    """
    LLM provider using LiteLLM for multi-provider support.

    The model string carries the provider prefix (e.g. ``groq/...``,
    ``gemini/...``); keys are passed per call so one instance serves a
    whole key pool.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "groq/openai/gpt-oss-120b",
        extra_headers: dict[str, str] | None = None,
    ):
        super().__init__(api_key, api_base)
        self.default_model = default_model
        self.extra_headers = extra_headers or {}

        if api_base:
            litellm.api_base = api_base

        # Disable LiteLLM logging noise
        litellm.suppress_debug_info = True
        # Drop unsupported parameters for providers (e.g., gpt-5 rejects some params)
        litellm.drop_params = True

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        api_key: str | None = None,
    ) -> LLMResponse:
        kwargs: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        key = api_key or self.api_key
        if key:
            kwargs["api_key"] = key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.extra_headers:
            kwargs["extra_headers"] = self.extra_headers

        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as exc:
            error = classify_error(exc)
            logger.debug(f"LiteLLM call failed ({type(error).__name__}): {exc}")
            raise error from exc
        return self._parse_response(response)

    def _parse_response(self, response: Any) -> LLMResponse:
        """Parse LiteLLM response into our standard format."""
        choice = response.choices[0]
        message = choice.message

        usage: dict[str, int] = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": int(getattr(response.usage, "prompt_tokens", 0) or 0),
                "completion_tokens": int(getattr(response.usage, "completion_tokens", 0) or 0),
                "total_tokens": int(getattr(response.usage, "total_tokens", 0) or 0),
            }

        return LLMResponse(
            content=message.content,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
        )

    def get_default_model(self) -> str:
        """Get the default model."""
        return self.default_model
