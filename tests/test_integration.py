"""Integration tests — real API calls, no mocks. Requires .env with an API key."""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

load_dotenv()

_AVAILABLE_KEYS = [
    k for k in ["OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GEMINI_API_KEY", "OPENROUTER_API_KEY"]
    if os.environ.get(k, "").strip()
]
pytestmark = pytest.mark.integration

if not _AVAILABLE_KEYS:
    pytestmark = pytest.mark.skip(reason="Need at least one provider API key")

_MODELS = {
    "OPENAI_API_KEY": "gpt-4o-mini",
    "ANTHROPIC_API_KEY": "claude-3-5-haiku-latest",
    "GEMINI_API_KEY": "gemini-2.5-flash",
    "OPENROUTER_API_KEY": "openrouter/openai/gpt-4o-mini",
}


def _port():
    from config.config_loader import load_config
    from deepthink.cli import _build_all_providers
    from deepthink.generation import GenerationPort

    config = load_config()
    providers = _build_all_providers(config)
    assert providers, "No providers could be built"
    return config, GenerationPort(providers, _MODELS[_AVAILABLE_KEYS[0]])


async def test_deep_think_small_problem(tmp_path: Path):
    """Run a short real Deep Think loop and save the report."""
    from deepthink.deep_think import run_deep_think
    from deepthink.models import RunOptions
    from deepthink.output import save_to_file

    config, port = _port()
    options = RunOptions(max_iterations=2, required_successful_verifications=1, max_errors_before_give_up=2)

    result = await run_deep_think("What is the sum of the first 10 positive integers?", port, config.prompts, options)

    assert result.final_solution
    assert result.verifications
    assert 1 <= result.total_iterations <= 2

    saved = save_to_file(result, "sum of first ten", tmp_path / "output")
    assert "## Final Solution" in saved.read_text(encoding="utf-8")


async def test_ultra_think_two_agents():
    """Plan, two agents and a synthesis against a real model."""
    from deepthink.models import RunOptions
    from deepthink.ultra_think import run_ultra_think

    config, port = _port()
    options = RunOptions(
        max_iterations=1,
        required_successful_verifications=1,
        max_errors_before_give_up=1,
        num_agents=2,
    )

    result = await run_ultra_think("Is 221 prime? Justify briefly.", port, config.prompts, options)

    assert 1 <= result.total_agents <= 2
    assert len(result.agent_results) == result.total_agents
    assert result.synthesis
