"""Click CLI: loads config, builds providers, runs an engine and renders the result."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from deepthink.deep_think import run_deep_think
from deepthink.events import (
    CorrectionEvent,
    FailureEvent,
    InitEvent,
    ProgressEvent,
    ProgressMessage,
    SolutionEvent,
    SuccessEvent,
    ThinkingEvent,
    VerificationEvent,
    apply_agent_update,
)
from deepthink.generation import GenerationPort
from deepthink.healthcheck import models_for_run, run_health_checks
from deepthink.models import AgentResult, AgentStatus, DeepThinkResult, RunOptions, UltraThinkResult
from deepthink.output import print_deep_think, print_ultra_think, save_to_file
from deepthink.problems import parse_problem_file
from deepthink.providers.anthropic import AnthropicProvider
from deepthink.providers.base import AIProvider
from deepthink.providers.gemini import GeminiProvider
from deepthink.providers.openai_provider import OpenAIProvider
from deepthink.providers.openrouter import OpenRouterProvider
from deepthink.ultra_think import run_ultra_think

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
    "openrouter": OpenRouterProvider,
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_all_providers(config: AppConfig) -> list[AIProvider]:
    """Build a backend for every provider with an API key."""
    providers: list[AIProvider] = []
    for name in sorted(config.available_providers):
        provider_cfg = config.providers[name]
        cls = PROVIDER_CLASSES.get(provider_cfg.sdk)
        if cls is None:
            logging.warning("Provider '%s' has unknown sdk '%s', skipping", name, provider_cfg.sdk)
            continue
        try:
            providers.append(cls(provider_cfg))
        except Exception as exc:
            logging.warning("Failed to instantiate provider '%s': %s", name, exc)
    return providers


def _resolve_options(
    config: AppConfig,
    meta: dict[str, Any],
    *,
    agents: int | None,
    max_iterations: int | None,
    required_verifications: int | None,
    max_errors: int | None,
    web_search: bool,
    instructions: tuple[str, ...],
    knowledge_context: str | None,
) -> RunOptions:
    """Precedence for each setting: CLI flag > frontmatter > config default."""
    options = config.defaults.to_run_options()

    def pick(cli_value: Any, meta_key: str, default: Any) -> Any:
        if cli_value is not None:
            return cli_value
        if meta_key in meta:
            return meta[meta_key]
        return default

    options.max_iterations = int(pick(max_iterations, "max_iterations", options.max_iterations))
    options.required_successful_verifications = int(
        pick(required_verifications, "required_verifications", options.required_successful_verifications)
    )
    options.max_errors_before_give_up = int(pick(max_errors, "max_errors", options.max_errors_before_give_up))
    num_agents = pick(agents, "agents", options.num_agents)
    options.num_agents = int(num_agents) if num_agents else None
    options.enable_web_search = web_search or bool(meta.get("web_search", options.enable_web_search))
    options.other_prompts = list(instructions) if instructions else list(meta.get("instructions", []))
    options.knowledge_context = knowledge_context
    return options


class AgentBoard:
    """Caller-side aggregation of per-agent updates, keyed by agent id."""

    def __init__(self) -> None:
        self.agents: dict[str, AgentResult] = {}

    def update(self, agent_id: str, update: dict[str, Any]) -> None:
        agent = self.agents.get(agent_id)
        if agent is None:
            agent = AgentResult(
                agent_id=agent_id,
                approach=update.get("approach", ""),
                specific_prompt=update.get("specific_prompt", ""),
            )
            self.agents[agent_id] = agent
        apply_agent_update(agent, update)

    def summary(self) -> str:
        done = sum(1 for a in self.agents.values() if a.status.value in ("completed", "failed"))
        return f"Agents finished: {done}/{len(self.agents)}"


def describe_event(event: ProgressEvent) -> str:
    """One status line per progress event."""
    if isinstance(event, InitEvent):
        return "Initializing..."
    if isinstance(event, ThinkingEvent):
        return f"Thinking (iteration {event.iteration}, {event.phase})..."
    if isinstance(event, SolutionEvent):
        return f"Generated solution (iteration {event.iteration})"
    if isinstance(event, VerificationEvent):
        return f"Verification {'passed' if event.passed else 'failed'} (iteration {event.iteration})"
    if isinstance(event, CorrectionEvent):
        return f"Correcting (iteration {event.iteration})..."
    if isinstance(event, SuccessEvent):
        return "Solution accepted"
    if isinstance(event, FailureEvent):
        return f"Stopped: {event.reason}"
    if isinstance(event, ProgressMessage):
        return event.message
    raise TypeError(f"Unknown progress event: {event!r}")


def _check_models(port: GenerationPort, ultra: bool) -> None:
    """Ping every model the run uses; ask whether to continue on failures."""
    console.print("\n[bold]Checking models...[/bold]")
    results = asyncio.run(run_health_checks(port, models_for_run(port, ultra)))

    failed = [m for m, (ok, _) in results.items() if not ok]
    for model in sorted(results):
        ok, err = results[model]
        if ok:
            console.print(f"  [green]OK  [/green] {model}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {model}: {short_err}")

    if not failed:
        console.print()
        return
    if not click.confirm(f"{len(failed)} model(s) failed the check. Continue anyway?", default=False):
        sys.exit(0)
    console.print()


async def _run(
    problem: str,
    port: GenerationPort,
    config: AppConfig,
    options: RunOptions,
    ultra: bool,
) -> DeepThinkResult | UltraThinkResult:
    board = AgentBoard()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting...", total=None)

        def on_progress(event: ProgressEvent) -> None:
            progress.update(task, description=describe_event(event))
            if isinstance(event, VerificationEvent):
                mark = "[green]pass[/green]" if event.passed else "[red]fail[/red]"
                progress.print(f"Verification {event.iteration}: {mark}")

        def on_agent_update(agent_id: str, update: dict[str, Any]) -> None:
            board.update(agent_id, update)
            progress.update(task, description=board.summary())
            if update.get("status") == AgentStatus.FAILED:
                progress.print(f"[red]FAIL[/red] {agent_id}: {update['error']}")
            elif "error" in update:
                progress.print(f"[yellow]UNVERIFIED[/yellow] {agent_id}: {update['error']}")
            elif "solution" in update:
                progress.print(f"[green]OK[/green] {agent_id} finished")

        if ultra:
            return await run_ultra_think(
                problem, port, config.prompts, options,
                on_progress=on_progress, on_agent_update=on_agent_update,
            )
        return await run_deep_think(problem, port, config.prompts, options, on_progress=on_progress)


@click.command()
@click.argument("problem", required=False)
@click.option("--file", "problem_file", type=click.Path(exists=True), help="Read the problem from a .md file")
@click.option("--ultra", is_flag=True, help="Fan out to parallel agents and synthesize (Ultra Think)")
@click.option("--agents", type=int, default=None, help="Cap on the number of Ultra Think agents")
@click.option("--model", default=None, help="Default thinking model (default: from config)")
@click.option("--max-iterations", type=int, default=None, help="Cap on verify/correct passes")
@click.option("--required-verifications", type=int, default=None,
              help="Consecutive verification passes needed to accept a solution")
@click.option("--max-errors", type=int, default=None, help="Consecutive failed verifications before giving up")
@click.option("--web-search", is_flag=True, help="Enable built-in model search where supported")
@click.option("--instruction", "instructions", multiple=True, help="Additional instruction (repeatable)")
@click.option("--context", "context_file", type=click.Path(exists=True),
              help="Text file with background knowledge for the model")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--no-save", is_flag=True, help="Don't write a markdown report")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the model connectivity check at startup")
def main(
    problem: str | None,
    problem_file: str | None,
    ultra: bool,
    agents: int | None,
    model: str | None,
    max_iterations: int | None,
    required_verifications: int | None,
    max_errors: int | None,
    web_search: bool,
    instructions: tuple[str, ...],
    context_file: str | None,
    output_path: str | None,
    no_save: bool,
    verbose: bool,
    skip_health_check: bool,
) -> None:
    """Deep Think -- verify-and-correct reasoning over LLMs.

    \b
    Examples:
      deepthink "Prove that sqrt(2) is irrational"
      deepthink "Design a rate limiter" --ultra --agents 3
      deepthink --file problem.md --model claude-sonnet-4-5
      deepthink "Latest CPython release?" --model gpt-4o --web-search
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    meta: dict[str, Any] = {}
    if problem_file:
        problem_text, meta = parse_problem_file(Path(problem_file))
    elif problem:
        problem_text = problem
    else:
        console.print("[bold red]Error:[/bold red] Provide a PROBLEM argument or --file.")
        sys.exit(1)

    if not problem_text:
        console.print("[bold red]Error:[/bold red] Problem statement is empty.")
        sys.exit(1)

    ultra = ultra or meta.get("mode") == "ultra"
    knowledge = Path(context_file).read_text(encoding="utf-8") if context_file else None
    options = _resolve_options(
        config,
        meta,
        agents=agents,
        max_iterations=max_iterations,
        required_verifications=required_verifications,
        max_errors=max_errors,
        web_search=web_search,
        instructions=instructions,
        knowledge_context=knowledge,
    )

    providers = _build_all_providers(config)
    if not providers:
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)

    port = GenerationPort(providers, model or config.defaults.thinking_model, config.stages)

    if not skip_health_check:
        _check_models(port, ultra)

    mode = "Ultra Think" if ultra else "Deep Think"
    console.print(f"\n[bold cyan]{mode}[/bold cyan] — model {port.default_model}")
    console.print(f"Problem: [italic]{problem_text[:80]}{'...' if len(problem_text) > 80 else ''}[/italic]\n")

    try:
        result = asyncio.run(_run(problem_text, port, config, options, ultra))
    except Exception as exc:
        logger.debug("Run failed", exc_info=True)
        console.print(f"[bold red]Run failed:[/bold red] {exc}")
        sys.exit(1)

    if isinstance(result, UltraThinkResult):
        print_ultra_think(result)
    else:
        print_deep_think(result)

    if not no_save:
        output_dir = Path(output_path) if output_path else config.defaults.output_dir
        slug = Path(problem_file).stem if problem_file else None
        saved = save_to_file(result, problem_text, output_dir, slug_override=slug)
        console.print(f"\n[dim]Saved to: {saved}[/dim]")


if __name__ == "__main__":
    main()
