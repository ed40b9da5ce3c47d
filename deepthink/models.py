"""Pure dataclasses for the Deep Think / Ultra Think pipelines. No logic, no deps."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Stage(str, Enum):
    """Pipeline stages that may each run on a distinct model."""

    INITIAL = "initial"
    IMPROVEMENT = "improvement"
    VERIFICATION = "verification"
    CORRECTION = "correction"
    PLANNING = "planning"
    AGENT_CONFIG = "agent_config"
    AGENT_THINKING = "agent_thinking"
    SYNTHESIS = "synthesis"


class IterationStatus(str, Enum):
    THINKING = "thinking"
    VERIFYING = "verifying"
    CORRECTING = "correcting"
    COMPLETED = "completed"
    FAILED = "failed"


class AgentStatus(str, Enum):
    PENDING = "pending"
    THINKING = "thinking"
    VERIFYING = "verifying"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Verification:
    timestamp: float
    passed: bool
    bug_report: str        # Review text before "Detailed Verification"; "" when passed
    raw_verdict: str       # The yes/no judgment text that decides `passed`


@dataclass(frozen=True)
class Iteration:
    index: int
    solution: str
    verification: Verification
    status: IterationStatus


@dataclass(frozen=True)
class DeepThinkResult:
    initial_thought: str
    iterations: list[Iteration]
    verifications: list[Verification]
    final_solution: str
    total_iterations: int
    successful_verifications: int
    succeeded: bool = False


@dataclass(frozen=True)
class AgentConfig:
    agent_id: str
    approach: str
    specific_prompt: str


@dataclass
class AgentResult:
    agent_id: str
    approach: str
    specific_prompt: str
    status: AgentStatus = AgentStatus.PENDING
    progress: int = 0                                  # 0..100
    solution: str | None = None
    verifications: list[Verification] | None = None
    error: str | None = None


@dataclass(frozen=True)
class UltraThinkResult:
    plan: str
    agent_results: list[AgentResult]
    synthesis: str
    final_solution: str
    total_agents: int
    completed_agents: int


@dataclass
class SearchProviderConfig:
    provider: str = "model"
    max_results: int = 5


@dataclass
class RunOptions:
    max_iterations: int = 30
    required_successful_verifications: int = 3
    max_errors_before_give_up: int = 10
    enable_web_search: bool = False
    search_provider: SearchProviderConfig = field(default_factory=SearchProviderConfig)
    other_prompts: list[str] = field(default_factory=list)
    knowledge_context: str | None = None
    num_agents: int | None = None          # Ultra Think only; None = all planned agents


@dataclass
class GenerationRequest:
    model: str
    messages: list[dict[str, str]]         # [{"role": "user"|"assistant", "content": ...}]
    system: str | None = None
    tools: list[dict[str, Any]] | None = None
    provider_options: dict[str, dict[str, Any]] | None = None
    json_mode: bool = False


@dataclass
class ModelResponse:
    provider: str          # backend name, e.g. "openai", "anthropic"
    model: str             # actual model string sent to the API
    content: str
    latency_sec: float
    token_count: int | None
