"""Shared pytest fixtures."""

from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, DefaultsConfig, PromptsConfig, ProviderConfig
from deepthink.generation import GenerationPort
from deepthink.models import GenerationRequest, ModelResponse
from deepthink.providers.base import AIProvider


@pytest.fixture
def sample_provider_config() -> ProviderConfig:
    return ProviderConfig(
        name="test_provider",
        sdk="openai",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        model_prefixes=["test-"],
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    # Each template starts with a distinct tag so test doubles can tell the calls apart.
    return PromptsConfig(
        system="SYSTEM: be rigorous.",
        self_improvement="IMPROVE: review your work.",
        correction="CORRECT: address the report.",
        verification_system="VERIFIER: find issues.",
        verification="VERIFY problem={problem}\nsolution={solution}",
        verification_check="CHECK: {verdict}",
        plan="PLAN: {problem}",
        agent_config="AGENTS: {plan}",
        synthesis="SYNTHESIZE: {problem}\n{agent_results}",
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        thinking_model="test-model",
        output_dir=tmp_path / "output",
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
    sample_provider_config: ProviderConfig,
) -> AppConfig:
    return AppConfig(
        defaults=sample_defaults_config,
        providers={"test_provider": sample_provider_config},
        prompts=sample_prompts_config,
        available_providers={"test_provider"},
    )


def last_user_message(request: GenerationRequest) -> str:
    return request.messages[-1]["content"]


class MockProvider(AIProvider):
    """Test double AIProvider serving every model id (or the given prefixes)."""

    def __init__(
        self,
        provider_name: str = "mock",
        response_content: str = "Mock response",
        prefixes: tuple[str, ...] = ("",),
    ) -> None:
        self._name = provider_name
        self._response_content = response_content
        self.model_prefixes = prefixes
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(side_effect=self._respond)  # type: ignore[assignment]

    def name(self) -> str:
        return self._name

    async def _respond(self, request: GenerationRequest) -> ModelResponse:
        return ModelResponse(
            provider=self._name,
            model=request.model,
            content=self._response_content,
            latency_sec=0.1,
            token_count=10,
        )

    async def generate(self, request: GenerationRequest) -> ModelResponse:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return await self._respond(request)

    def requests(self) -> list[GenerationRequest]:
        return [c.args[0] for c in self.generate.call_args_list]


class ScriptedProvider(MockProvider):
    """MockProvider whose reply is computed from the request by `handler`."""

    def __init__(self, handler: Callable[[GenerationRequest], str], provider_name: str = "scripted") -> None:
        super().__init__(provider_name)
        self._handler = handler

    async def _respond(self, request: GenerationRequest) -> ModelResponse:
        return ModelResponse(
            provider=self._name,
            model=request.model,
            content=self._handler(request),
            latency_sec=0.1,
            token_count=10,
        )


class DeepThinkScript:
    """Request handler that plays a Deep Think run.

    `verdicts` is the sequence of pass/fail outcomes, one per verification
    judgment call, in order. Solutions are numbered so tests can follow which
    candidate each call saw.
    """

    def __init__(self, verdicts: list[bool]) -> None:
        self.verdicts = list(verdicts)
        self.calls: dict[str, int] = {"initial": 0, "improve": 0, "verify": 0, "check": 0, "correct": 0}
        self.solution_counter = 0

    def _new_solution(self, kind: str) -> str:
        self.solution_counter += 1
        return f"Summary\n{kind} #{self.solution_counter}\nDetailed Solution\nsteps {self.solution_counter}"

    def __call__(self, request: GenerationRequest) -> str:
        text = last_user_message(request)
        if text.startswith("CHECK:"):
            idx = self.calls["check"]
            self.calls["check"] += 1
            return "yes" if self.verdicts[idx] else "no"
        if text.startswith("VERIFY"):
            self.calls["verify"] += 1
            return "Summary: issue found.\nDetailed Verification Log\nstep-by-step..."
        if text.startswith("IMPROVE:"):
            self.calls["improve"] += 1
            return self._new_solution("improved")
        if text.startswith("CORRECT:"):
            self.calls["correct"] += 1
            return self._new_solution("corrected")
        self.calls["initial"] += 1
        return self._new_solution("first")


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def mock_port(mock_provider: MockProvider) -> GenerationPort:
    return GenerationPort([mock_provider], default_model="test-model")
