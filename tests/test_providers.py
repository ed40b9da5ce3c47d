"""Backend request shaping with the SDK clients mocked out — no API calls."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from config.config_loader import ProviderConfig
from deepthink.models import GenerationRequest
from deepthink.providers.anthropic import AnthropicProvider
from deepthink.providers.base import ProviderError
from deepthink.providers.gemini import _to_contents
from deepthink.providers.openai_provider import OpenAIProvider
from deepthink.providers.openrouter import OpenRouterProvider


def _config(name: str, sdk: str, prefixes: list[str], base_url: str | None = None) -> ProviderConfig:
    return ProviderConfig(
        name=name,
        sdk=sdk,
        api_key_env="PROVIDER_TEST_KEY",
        timeout_sec=5,
        max_tokens=256,
        model_prefixes=prefixes,
        base_url=base_url,
    )


def _chat_response(content: str | None):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=42),
    )


@pytest.fixture(autouse=True)
def _api_key(monkeypatch):
    monkeypatch.setenv("PROVIDER_TEST_KEY", "sk-test")


def test_missing_key_raises(monkeypatch):
    monkeypatch.delenv("PROVIDER_TEST_KEY")
    with pytest.raises(ProviderError, match="Missing API key"):
        OpenAIProvider(_config("openai", "openai", ["gpt-"]))


def test_handles_by_prefix():
    provider = OpenAIProvider(_config("openai", "openai", ["gpt-", "o3"]))
    assert provider.handles("gpt-4o")
    assert provider.handles("o3-mini")
    assert not provider.handles("claude-sonnet-4-5")


async def test_openai_chat_request():
    provider = OpenAIProvider(_config("openai", "openai", ["gpt-"]))
    create = AsyncMock(return_value=_chat_response("answer"))
    provider._client = MagicMock()
    provider._client.chat.completions.create = create

    response = await provider.generate(
        GenerationRequest(
            model="gpt-4o",
            messages=[{"role": "user", "content": "hi"}],
            system="be terse",
            json_mode=True,
        )
    )

    assert response.content == "answer"
    assert response.token_count == 42
    kwargs = create.call_args.kwargs
    assert kwargs["messages"][0] == {"role": "system", "content": "be terse"}
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["max_completion_tokens"] == 256


async def test_openai_tools_use_responses_api():
    provider = OpenAIProvider(_config("openai", "openai", ["gpt-"]))
    provider._client = MagicMock()
    provider._client.responses.create = AsyncMock(
        return_value=SimpleNamespace(output_text="searched answer", usage=None)
    )
    provider._client.chat.completions.create = AsyncMock()
    tools = [{"type": "web_search_preview", "search_context_size": "medium"}]

    response = await provider.generate(
        GenerationRequest(model="gpt-4o", messages=[{"role": "user", "content": "news?"}], system="sys", tools=tools)
    )

    assert response.content == "searched answer"
    kwargs = provider._client.responses.create.call_args.kwargs
    assert kwargs["tools"] == tools
    assert kwargs["instructions"] == "sys"
    provider._client.chat.completions.create.assert_not_called()


async def test_openai_empty_content_raises():
    provider = OpenAIProvider(_config("openai", "openai", ["gpt-"]))
    provider._client = MagicMock()
    provider._client.chat.completions.create = AsyncMock(return_value=_chat_response(None))

    with pytest.raises(ProviderError, match="Empty response"):
        await provider.generate(GenerationRequest(model="gpt-4o", messages=[{"role": "user", "content": "hi"}]))


async def test_openai_sdk_error_wrapped():
    provider = OpenAIProvider(_config("openai", "openai", ["gpt-"]))
    provider._client = MagicMock()
    provider._client.chat.completions.create = AsyncMock(side_effect=RuntimeError("rate limited"))

    with pytest.raises(ProviderError, match="rate limited"):
        await provider.generate(GenerationRequest(model="gpt-4o", messages=[{"role": "user", "content": "hi"}]))


def test_openrouter_requires_base_url():
    with pytest.raises(ProviderError, match="base_url"):
        OpenRouterProvider(_config("openrouter", "openrouter", ["openrouter/"]))


async def test_openrouter_strips_prefix_and_sends_plugins():
    provider = OpenRouterProvider(
        _config("openrouter", "openrouter", ["openrouter/"], base_url="https://openrouter.ai/api/v1")
    )
    create = AsyncMock(return_value=_chat_response("routed"))
    provider._client = MagicMock()
    provider._client.chat.completions.create = create
    options = {"openrouter": {"plugins": [{"id": "web", "max_results": 5}]}}

    response = await provider.generate(
        GenerationRequest(
            model="openrouter/anthropic/claude-3.5-sonnet",
            messages=[{"role": "user", "content": "hi"}],
            provider_options=options,
        )
    )

    assert response.content == "routed"
    kwargs = create.call_args.kwargs
    assert kwargs["model"] == "anthropic/claude-3.5-sonnet"
    assert kwargs["extra_body"] == options["openrouter"]


async def test_anthropic_joins_text_blocks_and_drops_tools():
    provider = AnthropicProvider(_config("anthropic", "anthropic", ["claude-"]))
    create = AsyncMock(
        return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text="part one"), SimpleNamespace(type="text", text="part two")],
            usage=SimpleNamespace(input_tokens=3, output_tokens=4),
        )
    )
    provider._client = MagicMock()
    provider._client.messages.create = create

    response = await provider.generate(
        GenerationRequest(
            model="claude-sonnet-4-5",
            messages=[{"role": "user", "content": "hi"}],
            system="sys",
            tools=[{"type": "web_search_preview"}],
        )
    )

    assert response.content == "part one\npart two"
    assert response.token_count == 7
    kwargs = create.call_args.kwargs
    assert kwargs["system"] == "sys"
    assert "tools" not in kwargs


def test_gemini_roles_mapped():
    contents = _to_contents(
        [{"role": "user", "content": "q"}, {"role": "assistant", "content": "a"}, {"role": "user", "content": "more"}]
    )
    assert [c.role for c in contents] == ["user", "model", "user"]
    assert contents[1].parts[0].text == "a"
