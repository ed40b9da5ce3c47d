"""Ultra Think: plan, fan the problem out to parallel Deep Think agents, synthesize.

Each agent owns its AgentResult and is the only writer to it. A failing agent
is recorded as failed and never aborts its siblings; synthesis runs once every
agent has finished.
"""

import asyncio
import json
import logging
import re
from typing import Any

from pydantic import BaseModel, ValidationError

from config.config_loader import PromptsConfig
from deepthink.deep_think import DeepThinkEngine, validate_options
from deepthink.events import (
    AgentUpdateSink,
    CorrectionEvent,
    FailureEvent,
    InitEvent,
    ProgressEvent,
    ProgressMessage,
    ProgressSink,
    SuccessEvent,
    ThinkingEvent,
    VerificationEvent,
)
from deepthink.generation import GenerationPort, StructuredDecodeError
from deepthink.models import (
    AgentConfig,
    AgentResult,
    AgentStatus,
    RunOptions,
    Stage,
    UltraThinkResult,
)
from deepthink.providers.base import ProviderError

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 200
_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


class AgentConfigDecodeError(Exception):
    """Raised when neither structured nor textual decoding yields agent configs."""


class _AgentConfigItem(BaseModel):
    agentId: str = ""
    approach: str
    specificPrompt: str


class AgentConfigList(BaseModel):
    configs: list[_AgentConfigItem]


def _to_agent_configs(decoded: AgentConfigList) -> list[AgentConfig]:
    return [
        AgentConfig(agent_id=item.agentId.strip(), approach=item.approach, specific_prompt=item.specificPrompt)
        for item in decoded.configs
    ]


def strip_code_fence(text: str) -> str:
    """Remove a leading ```/```json fence and a trailing ``` fence."""
    return _FENCE_RE.sub("", text.strip()).strip()


def parse_agent_configs_text(text: str) -> list[AgentConfig]:
    """Parse free-text model output holding agent configs as JSON.

    Accepts a bare list or an object holding a list (``configs`` preferred,
    otherwise the first list-valued field).
    """
    json_text = strip_code_fence(text)
    try:
        parsed: Any = json.loads(json_text)
    except json.JSONDecodeError as exc:
        raise AgentConfigDecodeError(
            f"Failed to parse agent configurations: {exc}. Response text: {json_text[:_PREVIEW_CHARS]}..."
        ) from exc

    if isinstance(parsed, dict):
        items = parsed.get("configs")
        if not isinstance(items, list):
            items = next((v for v in parsed.values() if isinstance(v, list)), None)
    else:
        items = parsed

    if not isinstance(items, list):
        raise AgentConfigDecodeError(
            f"Agent configurations are not a list. Response text: {json_text[:_PREVIEW_CHARS]}..."
        )
    try:
        return _to_agent_configs(AgentConfigList.model_validate({"configs": items}))
    except ValidationError as exc:
        raise AgentConfigDecodeError(
            f"Invalid agent configuration entries: {exc}. Response text: {json_text[:_PREVIEW_CHARS]}..."
        ) from exc


async def decode_agent_configs(port: GenerationPort, model: str, prompt: str) -> list[AgentConfig]:
    """Schema-validated decode first, free-text JSON parsing as the fallback."""
    try:
        decoded = await port.invoke_structured(model, AgentConfigList, prompt)
    except (StructuredDecodeError, ProviderError) as exc:
        logger.warning("Structured agent config decode failed, falling back to text parsing: %s", exc)
    else:
        if decoded.configs:
            return _to_agent_configs(decoded)
        logger.warning("Structured agent config decode returned no configs, falling back to text parsing")

    text = await port.invoke_text(model, prompt=prompt)
    return parse_agent_configs_text(text)


def ensure_unique_ids(configs: list[AgentConfig]) -> list[AgentConfig]:
    """Fill blank agent ids by position and suffix repeats with _2, _3, ..."""
    seen: set[str] = set()
    unique: list[AgentConfig] = []
    for idx, config in enumerate(configs, start=1):
        base = config.agent_id or f"agent_{idx:02d}"
        agent_id = base
        n = 2
        while agent_id in seen:
            agent_id = f"{base}_{n}"
            n += 1
        seen.add(agent_id)
        if agent_id != config.agent_id:
            logger.debug("Renamed agent id %r -> %r", config.agent_id, agent_id)
            config = AgentConfig(agent_id=agent_id, approach=config.approach, specific_prompt=config.specific_prompt)
        unique.append(config)
    return unique


def select_configs(configs: list[AgentConfig], num_agents: int | None) -> list[AgentConfig]:
    """First `num_agents` configs in generation order, or all when unset."""
    if num_agents:
        return configs[:num_agents]
    return list(configs)


def thinking_progress(iteration: int) -> int:
    return min(20 + iteration * 2, 80)


def format_agent_results(results: list[AgentResult]) -> str:
    """Format every agent's outcome into the transcript the synthesizer reads."""
    parts: list[str] = []
    for idx, result in enumerate(results, start=1):
        status = result.status.value if isinstance(result.status, AgentStatus) else str(result.status)
        lines = [f"### Agent {idx}: {result.approach}", "", f"**Status:** {status}"]
        if result.error:
            lines.append(f"**Error:** {result.error}")
        lines += ["", "**Solution:**", result.solution or "No solution generated"]
        parts.append("\n".join(lines))
    return "\n\n---\n\n".join(parts)


class UltraThinkEngine:
    """Plan → configure agents → run them concurrently → synthesize."""

    def __init__(
        self,
        problem: str,
        port: GenerationPort,
        prompts: PromptsConfig,
        options: RunOptions | None = None,
        on_progress: ProgressSink | None = None,
        on_agent_update: AgentUpdateSink | None = None,
    ) -> None:
        self._problem = problem
        self._port = port
        self._prompts = prompts
        self._options = options or RunOptions()
        self._on_progress = on_progress
        self._on_agent_update = on_agent_update
        validate_options(self._options)
        if self._options.num_agents is not None and self._options.num_agents < 1:
            raise ValueError(f"num_agents must be >= 1, got {self._options.num_agents}")

    def _emit(self, event: ProgressEvent) -> None:
        if self._on_progress:
            self._on_progress(event)

    def _update(self, agent_id: str, **update: Any) -> None:
        if self._on_agent_update:
            self._on_agent_update(agent_id, update)

    async def generate_plan(self) -> str:
        self._emit(ProgressMessage(message="Generating thinking plan..."))
        model = self._port.resolve_model(Stage.PLANNING)
        return await self._port.invoke_text(model, prompt=self._prompts.plan.format(problem=self._problem))

    async def generate_agent_configs(self, plan: str) -> list[AgentConfig]:
        self._emit(ProgressMessage(message="Generating agent configurations..."))
        model = self._port.resolve_model(Stage.AGENT_CONFIG)
        configs = await decode_agent_configs(self._port, model, self._prompts.agent_config.format(plan=plan))
        if not configs:
            raise AgentConfigDecodeError("Planner produced no agent configurations")
        return ensure_unique_ids(configs)

    def _agent_options(self, config: AgentConfig) -> RunOptions:
        base = self._options
        return RunOptions(
            max_iterations=base.max_iterations,
            required_successful_verifications=base.required_successful_verifications,
            max_errors_before_give_up=base.max_errors_before_give_up,
            enable_web_search=base.enable_web_search,
            search_provider=base.search_provider,
            other_prompts=[*base.other_prompts, config.specific_prompt],
            knowledge_context=base.knowledge_context,
        )

    async def run_agent(self, config: AgentConfig) -> AgentResult:
        """Run one agent to completion; errors end up on its AgentResult."""
        result = AgentResult(
            agent_id=config.agent_id,
            approach=config.approach,
            specific_prompt=config.specific_prompt,
            status=AgentStatus.THINKING,
            progress=10,
        )
        self._update(config.agent_id, status=AgentStatus.THINKING, progress=10)

        def on_progress(event: ProgressEvent) -> None:
            if isinstance(event, (ThinkingEvent, CorrectionEvent)):
                result.status = AgentStatus.THINKING
                result.progress = thinking_progress(event.iteration)
                self._update(config.agent_id, status=result.status, progress=result.progress)
            elif isinstance(event, VerificationEvent):
                result.status = AgentStatus.VERIFYING
                self._update(config.agent_id, status=result.status)
            elif isinstance(event, SuccessEvent):
                result.status = AgentStatus.COMPLETED
                result.progress = 100
                self._update(config.agent_id, status=result.status, progress=100)
            elif isinstance(event, FailureEvent):
                # Final status still comes from the engine's return
                logger.info("Agent %s stopped unverified: %s", config.agent_id, event.reason)
                self._update(config.agent_id, error=event.reason)

        agent_port = self._port.with_default_model(self._port.resolve_model(Stage.AGENT_THINKING))
        try:
            engine = DeepThinkEngine(
                self._problem,
                agent_port,
                self._prompts,
                self._agent_options(config),
                on_progress=on_progress,
            )
            outcome = await engine.run()
        except Exception as exc:
            result.status = AgentStatus.FAILED
            result.error = str(exc) or type(exc).__name__
            logger.warning("Agent %s failed: %s", config.agent_id, result.error)
            self._update(config.agent_id, status=result.status, error=result.error)
            return result

        result.solution = outcome.final_solution
        result.verifications = outcome.verifications
        result.status = AgentStatus.COMPLETED
        result.progress = 100
        logger.info(
            "Agent %s finished after %d iterations (verified: %s)",
            config.agent_id,
            outcome.total_iterations,
            outcome.succeeded,
        )
        self._update(
            config.agent_id,
            status=result.status,
            progress=100,
            solution=result.solution,
            verifications=result.verifications,
        )
        return result

    async def synthesize(self, agent_results: list[AgentResult]) -> str:
        self._emit(ProgressMessage(message="Synthesizing results..."))
        model = self._port.resolve_model(Stage.SYNTHESIS)
        prompt = self._prompts.synthesis.format(
            problem=self._problem,
            agent_results=format_agent_results(agent_results),
        )
        return await self._port.invoke_text(model, prompt=prompt)

    async def run(self) -> UltraThinkResult:
        self._emit(InitEvent(problem=self._problem))

        plan = await self.generate_plan()
        configs = await self.generate_agent_configs(plan)
        selected = select_configs(configs, self._options.num_agents)
        total_agents = len(selected)

        for config in selected:
            self._update(
                config.agent_id,
                approach=config.approach,
                specific_prompt=config.specific_prompt,
                status=AgentStatus.PENDING,
                progress=0,
            )

        self._emit(ProgressMessage(message=f"Running {total_agents} agents in parallel..."))
        logger.info("Dispatching %d of %d planned agents", total_agents, len(configs))

        agent_results = list(await asyncio.gather(*(self.run_agent(c) for c in selected)))
        completed_agents = sum(1 for r in agent_results if r.status == AgentStatus.COMPLETED)
        logger.info("Agents complete: %d/%d succeeded", completed_agents, total_agents)

        synthesis = await self.synthesize(agent_results)
        self._emit(SuccessEvent(solution=synthesis, iterations=1))

        return UltraThinkResult(
            plan=plan,
            agent_results=agent_results,
            synthesis=synthesis,
            final_solution=synthesis,
            total_agents=total_agents,
            completed_agents=completed_agents,
        )


async def run_ultra_think(
    problem: str,
    port: GenerationPort,
    prompts: PromptsConfig,
    options: RunOptions | None = None,
    on_progress: ProgressSink | None = None,
    on_agent_update: AgentUpdateSink | None = None,
) -> UltraThinkResult:
    engine = UltraThinkEngine(problem, port, prompts, options, on_progress, on_agent_update)
    return await engine.run()
