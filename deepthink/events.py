"""Progress events and callback contracts exposed by both engines.

Every engine transition emits exactly one event through a caller-supplied
sink. Events are observational only; the engines never read them back.
"""

from collections.abc import Callable
from dataclasses import dataclass, fields
from typing import Any, ClassVar

from deepthink.models import AgentResult


@dataclass(frozen=True)
class InitEvent:
    type: ClassVar[str] = "init"
    problem: str


@dataclass(frozen=True)
class ThinkingEvent:
    type: ClassVar[str] = "thinking"
    iteration: int
    phase: str


@dataclass(frozen=True)
class SolutionEvent:
    type: ClassVar[str] = "solution"
    solution: str
    iteration: int


@dataclass(frozen=True)
class VerificationEvent:
    type: ClassVar[str] = "verification"
    passed: bool
    iteration: int


@dataclass(frozen=True)
class CorrectionEvent:
    type: ClassVar[str] = "correction"
    iteration: int


@dataclass(frozen=True)
class SuccessEvent:
    type: ClassVar[str] = "success"
    solution: str
    iterations: int


@dataclass(frozen=True)
class FailureEvent:
    type: ClassVar[str] = "failure"
    reason: str


@dataclass(frozen=True)
class ProgressMessage:
    type: ClassVar[str] = "progress"
    message: str


ProgressEvent = (
    InitEvent
    | ThinkingEvent
    | SolutionEvent
    | VerificationEvent
    | CorrectionEvent
    | SuccessEvent
    | FailureEvent
    | ProgressMessage
)

ProgressSink = Callable[[ProgressEvent], None]

# (agent_id, partial AgentResult as a field -> value mapping)
AgentUpdateSink = Callable[[str, dict[str, Any]], None]

_AGENT_FIELDS = frozenset(f.name for f in fields(AgentResult))


def apply_agent_update(result: AgentResult, update: dict[str, Any]) -> AgentResult:
    """Merge a partial update into a caller-owned AgentResult, in place.

    Unknown keys raise KeyError so a typo in an update can't silently vanish.
    """
    unknown = set(update) - _AGENT_FIELDS
    if unknown:
        raise KeyError(f"Unknown AgentResult fields: {sorted(unknown)}")
    for key, value in update.items():
        setattr(result, key, value)
    return result
