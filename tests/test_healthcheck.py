"""Unit tests for deepthink/healthcheck.py — no real API calls."""

import asyncio
from unittest.mock import AsyncMock

import deepthink.healthcheck as hc
from deepthink.generation import GenerationPort
from deepthink.healthcheck import models_for_run, run_health_checks
from deepthink.providers.base import ProviderError
from tests.conftest import MockProvider


def _port(*providers, default="gpt-4o", stages=None) -> GenerationPort:
    return GenerationPort(list(providers), default, stages)


def test_models_for_deep_run_single_model():
    port = _port(MockProvider())
    assert models_for_run(port, ultra=False) == ["gpt-4o"]


def test_models_for_deep_run_with_overrides():
    port = _port(MockProvider(), stages={"verification": "claude-opus-4", "planning": "gemini-2.5-pro"})
    # Planning is not part of a Deep Think run
    assert models_for_run(port, ultra=False) == ["gpt-4o", "claude-opus-4"]


def test_models_for_ultra_run_includes_agent_model():
    port = _port(MockProvider(), stages={"agent_thinking": "claude-sonnet-4-5", "synthesis": "gemini-2.5-pro"})
    assert models_for_run(port, ultra=True) == ["gpt-4o", "gemini-2.5-pro", "claude-sonnet-4-5"]


async def test_all_models_pass():
    """Every model answers -> all marked ok, no errors."""
    port = _port(
        MockProvider("openai", "OK", prefixes=("gpt-",)),
        MockProvider("anthropic", "OK", prefixes=("claude-",)),
    )

    results = await run_health_checks(port, ["gpt-4o", "claude-sonnet-4-5"])

    assert results == {"gpt-4o": (True, ""), "claude-sonnet-4-5": (True, "")}


async def test_one_model_fails():
    """A backend that raises marks only its model as failed."""
    openai = MockProvider("openai", "OK", prefixes=("gpt-",))
    anthropic = MockProvider("anthropic", "OK", prefixes=("claude-",))
    anthropic.generate = AsyncMock(side_effect=ProviderError("anthropic", "403 Forbidden"))

    results = await run_health_checks(_port(openai, anthropic), ["gpt-4o", "claude-sonnet-4-5"])

    assert results["gpt-4o"] == (True, "")
    ok, err = results["claude-sonnet-4-5"]
    assert ok is False
    assert "403" in err


async def test_unroutable_model_fails():
    port = _port(MockProvider("openai", "OK", prefixes=("gpt-",)))

    results = await run_health_checks(port, ["mistral-large"])

    ok, err = results["mistral-large"]
    assert ok is False
    assert "No provider configured" in err


async def test_duplicate_models_checked_once():
    provider = MockProvider("openai", "OK", prefixes=("gpt-",))
    results = await run_health_checks(_port(provider), ["gpt-4o", "gpt-4o"])
    assert list(results) == ["gpt-4o"]
    assert provider.generate.call_count == 1


async def test_empty_models():
    results = await run_health_checks(_port(MockProvider()), [])
    assert results == {}


async def test_timeout_counts_as_failure(monkeypatch):
    """A model that hangs past the timeout is marked as failed."""
    provider = MockProvider("slow")

    async def hang(*args, **kwargs):
        await asyncio.sleep(9999)

    provider.generate = AsyncMock(side_effect=hang)
    monkeypatch.setattr(hc, "_TIMEOUT_SEC", 0.05)

    results = await run_health_checks(_port(provider), ["gpt-4o"])

    ok, err = results["gpt-4o"]
    assert ok is False
    assert err == "TimeoutError"
