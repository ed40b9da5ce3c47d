"""Deep Think: single-agent explore → verify → correct loop.

A solution is accepted only after `required_successful_verifications`
consecutive, independent verification passes. One failed verification resets
the streak; `max_errors_before_give_up` consecutive failures abort the run.
Both terminal outcomes are returned as a DeepThinkResult; only provider
failures raise.
"""

import logging
import time
from typing import Any

from config.config_loader import PromptsConfig
from deepthink.events import (
    CorrectionEvent,
    FailureEvent,
    InitEvent,
    ProgressEvent,
    ProgressMessage,
    ProgressSink,
    SolutionEvent,
    SuccessEvent,
    ThinkingEvent,
    VerificationEvent,
)
from deepthink.generation import GenerationPort
from deepthink.models import (
    DeepThinkResult,
    Iteration,
    IterationStatus,
    RunOptions,
    Stage,
    Verification,
)

logger = logging.getLogger(__name__)

DETAILED_SOLUTION_MARKER = "Detailed Solution"
DETAILED_VERIFICATION_MARKER = "Detailed Verification"

_KNOWLEDGE_HEADER = "### Available Knowledge Base ###"
_KNOWLEDGE_FOOTER = "### End of Knowledge Base ###"


def text_after(text: str, marker: str) -> str:
    """Everything after `marker`, stripped; the whole text when absent."""
    idx = text.find(marker)
    if idx == -1:
        return text
    return text[idx + len(marker):].strip()


def text_before(text: str, marker: str) -> str:
    """Everything before `marker`, stripped; the whole text when absent."""
    idx = text.find(marker)
    if idx == -1:
        return text
    return text[:idx].strip()


def is_passing_verdict(verdict: str) -> bool:
    return "yes" in verdict.lower()


def build_initial_prompt(
    system_prompt: str,
    problem: str,
    other_prompts: list[str],
    knowledge_context: str | None = None,
) -> str:
    """Fold instructions, knowledge and extra instructions into one prompt."""
    prompt = system_prompt
    if knowledge_context and knowledge_context.strip():
        prompt += f"\n\n{_KNOWLEDGE_HEADER}\n\n"
        prompt += "The following knowledge and resources are available to help you solve this problem:\n\n"
        prompt += knowledge_context
        prompt += f"\n\n{_KNOWLEDGE_FOOTER}\n"
    prompt += "\n\n" + problem
    if other_prompts:
        prompt += "\n\n### Additional Instructions ###\n\n"
        prompt += "\n\n".join(other_prompts)
    return prompt


def validate_options(options: RunOptions) -> None:
    for name in ("max_iterations", "required_successful_verifications", "max_errors_before_give_up"):
        if getattr(options, name) < 1:
            raise ValueError(f"{name} must be >= 1, got {getattr(options, name)}")


class DeepThinkEngine:
    """One agent working one problem to a verified solution (or giving up)."""

    def __init__(
        self,
        problem: str,
        port: GenerationPort,
        prompts: PromptsConfig,
        options: RunOptions | None = None,
        on_progress: ProgressSink | None = None,
    ) -> None:
        self._problem = problem
        self._port = port
        self._prompts = prompts
        self._options = options or RunOptions()
        self._on_progress = on_progress
        validate_options(self._options)

    def _emit(self, event: ProgressEvent) -> None:
        if self._on_progress:
            self._on_progress(event)

    def _system_prompt(self) -> str:
        knowledge = self._options.knowledge_context
        if not knowledge:
            return self._prompts.system
        return f"{self._prompts.system}\n\n{_KNOWLEDGE_HEADER}\n\n{knowledge}\n\n{_KNOWLEDGE_FOOTER}\n"

    def _search_kwargs(self, model: str) -> dict[str, Any]:
        if not self._options.enable_web_search:
            return {}
        search = self._options.search_provider
        augmentation = self._port.resolve_search_augmentation(
            model, provider=search.provider, max_results=search.max_results
        )
        return {"tools": augmentation.tools, "provider_options": augmentation.provider_options}

    async def _revise(self, stage: Stage, solution: str, instruction: str) -> str:
        """Replay the current solution as assistant context and ask for a revision."""
        model = self._port.resolve_model(stage)
        return await self._port.invoke_text(
            model,
            system=self._system_prompt(),
            messages=[
                {"role": "user", "content": self._problem},
                {"role": "assistant", "content": solution},
                {"role": "user", "content": instruction},
            ],
            **self._search_kwargs(model),
        )

    async def verify(self, solution: str) -> Verification:
        """Review the detailed part of `solution`, then ask for a yes/no judgment."""
        detailed = text_after(solution, DETAILED_SOLUTION_MARKER)
        self._emit(ProgressMessage(message="Verifying solution..."))

        model = self._port.resolve_model(Stage.VERIFICATION)
        review = await self._port.invoke_text(
            model,
            system=self._prompts.verification_system,
            prompt=self._prompts.verification.format(problem=self._problem, solution=detailed),
        )
        verdict = await self._port.invoke_text(
            model,
            prompt=self._prompts.verification_check.format(verdict=review),
        )

        passed = is_passing_verdict(verdict)
        bug_report = "" if passed else text_before(review, DETAILED_VERIFICATION_MARKER)
        return Verification(
            timestamp=time.time(),
            passed=passed,
            bug_report=bug_report,
            raw_verdict=verdict,
        )

    async def _initial_exploration(self) -> tuple[str, Verification]:
        self._emit(ThinkingEvent(iteration=0, phase="initial-exploration"))

        model = self._port.resolve_model(Stage.INITIAL)
        first = await self._port.invoke_text(
            model,
            prompt=build_initial_prompt(
                self._prompts.system,
                self._problem,
                self._options.other_prompts,
                self._options.knowledge_context,
            ),
            **self._search_kwargs(model),
        )
        self._emit(SolutionEvent(solution=first, iteration=0))

        self._emit(ThinkingEvent(iteration=0, phase="self-improvement"))
        improved = await self._revise(Stage.IMPROVEMENT, first, self._prompts.self_improvement)
        self._emit(SolutionEvent(solution=improved, iteration=0))

        verification = await self.verify(improved)
        self._emit(VerificationEvent(passed=verification.passed, iteration=0))
        return improved, verification

    async def run(self) -> DeepThinkResult:
        max_iterations = self._options.max_iterations
        required = self._options.required_successful_verifications
        max_errors = self._options.max_errors_before_give_up

        self._emit(InitEvent(problem=self._problem))
        initial_thought, verification = await self._initial_exploration()

        solution = initial_thought
        iterations: list[Iteration] = []
        verifications: list[Verification] = []
        correct_count = 0
        error_count = 0

        def result(total: int, succeeded: bool) -> DeepThinkResult:
            return DeepThinkResult(
                initial_thought=initial_thought,
                iterations=list(iterations),
                verifications=list(verifications),
                final_solution=solution,
                total_iterations=total,
                successful_verifications=correct_count,
                succeeded=succeeded,
            )

        for i in range(max_iterations):
            verifications.append(verification)

            if verification.passed:
                iterations.append(Iteration(i, solution, verification, IterationStatus.COMPLETED))
                correct_count += 1
                error_count = 0
            else:
                correct_count = 0
                error_count += 1

                if error_count >= max_errors:
                    iterations.append(Iteration(i, solution, verification, IterationStatus.FAILED))
                    logger.warning("Giving up after %d consecutive failed verifications", error_count)
                    self._emit(FailureEvent(reason="Too many errors"))
                    return result(i + 1, succeeded=False)

                iterations.append(Iteration(i, solution, verification, IterationStatus.CORRECTING))
                self._emit(CorrectionEvent(iteration=i))
                solution = await self._revise(
                    Stage.CORRECTION,
                    solution,
                    f"{self._prompts.correction}\n\n{verification.bug_report}",
                )
                self._emit(SolutionEvent(solution=solution, iteration=i + 1))

            logger.info(
                "Pass %d: verification %s, streak %d/%d, errors %d/%d",
                i,
                "passed" if verification.passed else "failed",
                correct_count,
                required,
                error_count,
                max_errors,
            )

            if correct_count >= required:
                self._emit(SuccessEvent(solution=solution, iterations=i + 1))
                return result(i + 1, succeeded=True)

            # No pass left to consume another verification
            if i + 1 == max_iterations:
                break

            verification = await self.verify(solution)
            self._emit(VerificationEvent(passed=verification.passed, iteration=i + 1))

        logger.warning("Max iterations (%d) reached without %d consecutive passes", max_iterations, required)
        self._emit(FailureEvent(reason="Max iterations reached"))
        return result(max_iterations, succeeded=False)


async def run_deep_think(
    problem: str,
    port: GenerationPort,
    prompts: PromptsConfig,
    options: RunOptions | None = None,
    on_progress: ProgressSink | None = None,
) -> DeepThinkResult:
    engine = DeepThinkEngine(problem, port, prompts, options, on_progress)
    return await engine.run()
