from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from wa_operator.config.schema import Config, PersonaConfig, StorageConfig
from wa_operator.gateway import Gateway
from wa_operator.providers.base import LLMProvider, LLMResponse

OWNER_JID = "9779800000000@s.whatsapp.net"
ALICE = "9779811111111@s.whatsapp.net"


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FakeTransport:
    def __init__(self, ready: bool = True):
        self.ready = ready
        self.sent: list[tuple[str, str]] = []
        self.media: list[tuple[str, bytes, str, bool]] = []
        self.typing: list[tuple[str, int]] = []
        self.on_typing: Callable[[str], None] | None = None

    async def send_message(self, contact_id: str, text: str) -> None:
        self.sent.append((contact_id, text))

    async def send_media(
        self,
        contact_id: str,
        data: bytes,
        mime_type: str = "application/octet-stream",
        as_voice: bool = False,
    ) -> None:
        self.media.append((contact_id, data, mime_type, as_voice))

    async def simulate_typing(self, contact_id: str, duration_ms: int) -> None:
        self.typing.append((contact_id, duration_ms))
        if self.on_typing is not None:
            self.on_typing(contact_id)

    def is_ready(self) -> bool:
        return self.ready

    def texts_to(self, contact_id: str) -> list[str]:
        return [text for to, text in self.sent if to == contact_id]


Responder = Callable[[list[dict[str, Any]]], str]


class FakeProvider(LLMProvider):
    """
    Scripted provider.

    Queued items are consumed first (an Exception item is raised), then
    `responder(messages)` decides, then `default` is returned.
    """

    def __init__(
        self,
        queue: list[str | Exception] | None = None,
        responder: Responder | None = None,
        default: str = "Sure, talk soon!",
    ):
        super().__init__()
        self.queue = list(queue or [])
        self.responder = responder
        self.default = default
        self.calls: list[dict[str, Any]] = []

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        api_key: str | None = None,
    ) -> LLMResponse:
        self.calls.append(
            {
                "messages": messages,
                "model": model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "api_key": api_key,
            }
        )
        if self.queue:
            item = self.queue.pop(0)
            if isinstance(item, Exception):
                raise item
            return LLMResponse(content=item)
        if self.responder is not None:
            return LLMResponse(content=self.responder(messages))
        return LLMResponse(content=self.default, usage={"prompt_tokens": 10, "completion_tokens": 5})

    def get_default_model(self) -> str:
        return "fake/model"


def is_reply_call(call: dict[str, Any]) -> bool:
    return call["messages"][0]["role"] == "system"


def prompt_of(call: dict[str, Any]) -> str:
    return str(call["messages"][-1]["content"])


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def make_config(tmp_path: Path):
    def _make(**sections: Any) -> Config:
        sections.setdefault("persona", PersonaConfig(bot_name="Friday", owner_name="Sam", owner_jid=OWNER_JID))
        sections.setdefault("storage", StorageConfig(snapshot_path=str(tmp_path / "state" / "store.json")))
        return Config(**sections)

    return _make


@pytest.fixture
def make_gateway(make_config, transport: FakeTransport, provider: FakeProvider, clock: FakeClock):
    """Fully wired gateway over the fake transport, provider and clock."""

    def _make(config: Config | None = None, **overrides: Any) -> Gateway:
        overrides.setdefault("transport", transport)
        overrides.setdefault("provider", provider)
        overrides.setdefault("clock", clock)
        return Gateway(config or make_config(), **overrides)

    return _make
