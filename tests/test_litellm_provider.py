"""Tests for LiteLLMProvider with litellm mocked out."""

import asyncio
import importlib
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from wa_operator.providers.base import ProviderError, ProviderUnavailableError, QuotaExceededError


@pytest.fixture
def mock_litellm():
    """Mock litellm so we don't need a network or API key."""
    mock = MagicMock()
    mock.suppress_debug_info = False
    mock.drop_params = False
    mock.acompletion = AsyncMock()
    with patch.dict("sys.modules", {"litellm": mock}):
        yield mock


@pytest.fixture
def provider_module(mock_litellm):
    import wa_operator.providers.litellm_provider as mod

    importlib.reload(mod)
    return mod


def _response(content="hello", finish_reason="stop"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=3, total_tokens=15),
    )


def test_init_quiets_litellm(provider_module, mock_litellm):
    provider_module.LiteLLMProvider(api_base="http://127.0.0.1:8317/v1")
    assert mock_litellm.suppress_debug_info is True
    assert mock_litellm.drop_params is True
    assert mock_litellm.api_base == "http://127.0.0.1:8317/v1"


def test_chat_passes_per_call_key(provider_module, mock_litellm):
    mock_litellm.acompletion.return_value = _response("hey there")
    provider = provider_module.LiteLLMProvider(api_key="default-key", default_model="groq/llama")

    response = asyncio.run(
        provider.chat([{"role": "user", "content": "hi"}], max_tokens=50, temperature=0.1, api_key="pool-key")
    )

    kwargs = mock_litellm.acompletion.call_args.kwargs
    assert kwargs["model"] == "groq/llama"
    assert kwargs["api_key"] == "pool-key"
    assert kwargs["max_tokens"] == 50
    assert response.content == "hey there"
    assert response.usage["total_tokens"] == 15


def test_chat_classifies_sdk_errors(provider_module, mock_litellm):
    class RateLimitError(Exception):
        status_code = 429

    mock_litellm.acompletion.side_effect = RateLimitError("Rate limit reached")
    provider = provider_module.LiteLLMProvider()

    with pytest.raises(QuotaExceededError):
        asyncio.run(provider.chat([{"role": "user", "content": "hi"}]))


@pytest.mark.parametrize(
    ("error", "expected", "transient"),
    [
        (Exception("RESOURCE_EXHAUSTED: quota"), QuotaExceededError, None),
        (Exception("503 Service Unavailable"), ProviderUnavailableError, True),
        (Exception("Connection reset by peer"), ProviderUnavailableError, True),
        (Exception("invalid request: bad role"), ProviderError, None),
    ],
)
def test_classify_error(provider_module, error, expected, transient):
    classified = provider_module.classify_error(error)
    assert type(classified) is expected
    if transient is not None:
        assert classified.transient is transient


def test_classify_auth_error_is_not_transient(provider_module):
    class AuthenticationError(Exception):
        status_code = 401

    classified = provider_module.classify_error(AuthenticationError("invalid api key"))
    assert isinstance(classified, ProviderUnavailableError)
    assert classified.transient is False
