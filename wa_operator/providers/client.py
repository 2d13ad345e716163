"""AI capability used by the conversation engine."""

import asyncio
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any

from loguru import logger

from wa_operator.observability.metrics import MetricsStore
from wa_operator.providers.base import (
    LLMProvider,
    ProviderError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    QuotaExceededError,
)
from wa_operator.providers.pool import KeyPool


@dataclass
class ChatHandle:
    """A multi-turn chat bound to one pool key."""
    system_instruction: str
    history: list[dict[str, str]] = field(default_factory=list)
    api_key: str = ""


@dataclass
class ChatReply:
    text: str
    history: list[dict[str, str]]


class AIClient:
    """
    One-shot generation and multi-turn chat over an LLM provider.

    Responsibilities:
    - pick keys from the pool and cool down keys that hit a quota
    - bound every provider call with a timeout
    - retry transient failures with exponential backoff (1s, 2s, ...)
    - record LLM call metrics
    """

    def __init__(
        self,
        provider: LLMProvider,
        pool: KeyPool | None = None,
        *,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        timeout_s: float = 30.0,
        max_retries: int = 2,
        metrics: MetricsStore | None = None,
    ):
        self.provider = provider
        self.pool = pool or KeyPool()
        self.model = model or provider.get_default_model()
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_s = timeout_s
        self.max_retries = max(0, max_retries)
        self.metrics = metrics

    @property
    def pool_size(self) -> int:
        return len(self.pool)

    def is_quota_exhausted(self) -> bool:
        return self.pool.is_exhausted()

    async def generate(
        self,
        prompt: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Single-turn completion, rotating keys on quota errors."""
        messages = [{"role": "user", "content": prompt}]
        return await self._complete(messages, temperature=temperature, max_tokens=max_tokens)

    def create_chat(
        self,
        system_instruction: str,
        history: list[dict[str, str]] | None = None,
    ) -> ChatHandle:
        """
        Open a chat on the next usable key.

        Raises:
            QuotaExceededError: with ``exhausted=True`` when no key is usable.
        """
        return ChatHandle(
            system_instruction=system_instruction,
            history=list(history or []),
            api_key=self.pool.acquire(),
        )

    async def send_message(self, chat: ChatHandle, text: str) -> ChatReply:
        """Send one user turn. A quota hit is raised so the caller can re-open on another key."""
        messages: list[dict[str, Any]] = [{"role": "system", "content": chat.system_instruction}]
        messages.extend(chat.history)
        messages.append({"role": "user", "content": text})

        reply = await self._complete(messages, api_key=chat.api_key)
        history = [
            *chat.history,
            {"role": "user", "content": text},
            {"role": "assistant", "content": reply},
        ]
        return ChatReply(text=reply, history=history)

    async def _complete(
        self,
        messages: list[dict[str, Any]],
        *,
        api_key: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        bound = api_key is not None
        attempt = 0
        rotations = 0

        while True:
            key = api_key if bound else self.pool.acquire()
            started = perf_counter()
            try:
                response = await asyncio.wait_for(
                    self.provider.chat(
                        messages=messages,
                        model=self.model,
                        max_tokens=max_tokens or self.max_tokens,
                        temperature=self.temperature if temperature is None else temperature,
                        api_key=key or None,
                    ),
                    timeout=self.timeout_s,
                )
            except asyncio.TimeoutError:
                error: ProviderError = ProviderTimeoutError(
                    f"LLM call timed out after {self.timeout_s}s"
                )
            except ProviderError as exc:
                error = exc
            else:
                self._record(started, success=True, usage=response.usage)
                self.pool.mark_ok(key)
                return (response.content or "").strip()

            self._record(started, success=False, error=str(error))

            if isinstance(error, QuotaExceededError):
                self.pool.mark_exhausted(key)
                exhausted = self.pool.is_exhausted()
                if not bound and not exhausted and rotations < len(self.pool):
                    rotations += 1
                    continue
                raise QuotaExceededError(str(error), exhausted=exhausted) from error

            if (
                isinstance(error, ProviderUnavailableError)
                and error.transient
                and attempt < self.max_retries
            ):
                delay = 2**attempt
                attempt += 1
                logger.warning(
                    f"LLM call failed ({error}); retry {attempt}/{self.max_retries} in {delay}s"
                )
                await asyncio.sleep(delay)
                continue

            raise error

    def _record(
        self,
        started: float,
        *,
        success: bool,
        usage: dict[str, int] | None = None,
        error: str = "",
    ) -> None:
        if self.metrics is None:
            return
        usage = usage or {}
        self.metrics.record_llm_call(
            model=self.model,
            success=success,
            latency_ms=(perf_counter() - started) * 1000.0,
            prompt_tokens=int(usage.get("prompt_tokens", 0) or 0),
            completion_tokens=int(usage.get("completion_tokens", 0) or 0),
            error=error,
        )
