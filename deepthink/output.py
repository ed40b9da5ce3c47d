"""Rich console output and markdown file save for Deep Think / Ultra Think results."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from deepthink.models import AgentResult, AgentStatus, DeepThinkResult, UltraThinkResult

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STATUS_STYLES = {
    AgentStatus.PENDING: "dim",
    AgentStatus.THINKING: "cyan",
    AgentStatus.VERIFYING: "yellow",
    AgentStatus.COMPLETED: "green",
    AgentStatus.FAILED: "red",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _preview(text: str, words: int = 50) -> str:
    """Return first N words of a text."""
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_deep_think(result: DeepThinkResult) -> None:
    """Print the verification trail and the final solution."""
    outcome = "[green]verified[/green]" if result.succeeded else "[red]not verified[/red]"
    console.print(Rule(f"[bold cyan]Deep Think[/bold cyan] — {outcome}"))
    console.print(
        Text(
            f"Iterations: {result.total_iterations} | "
            f"Consecutive passes: {result.successful_verifications} | "
            f"Verifications: {len(result.verifications)}",
            style="dim",
        )
    )
    trail = " ".join("[green]✓[/green]" if v.passed else "[red]✗[/red]" for v in result.verifications)
    if trail:
        console.print(trail)
    console.print(Markdown(result.final_solution))


def print_agent_table(agents: list[AgentResult]) -> None:
    table = Table(title="Agents", show_lines=False)
    table.add_column("Agent")
    table.add_column("Approach")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    for agent in agents:
        style = _STATUS_STYLES.get(agent.status, "")
        status = agent.status.value if isinstance(agent.status, AgentStatus) else str(agent.status)
        table.add_row(agent.agent_id, agent.approach, f"[{style}]{status}[/{style}]", f"{agent.progress}%")
    console.print(table)


def print_ultra_think(result: UltraThinkResult) -> None:
    """Print per-agent previews followed by the synthesis."""
    console.print(Rule("[bold cyan]Ultra Think Agents[/bold cyan]"))
    print_agent_table(result.agent_results)
    for agent in result.agent_results:
        body = agent.error if agent.error else _preview(agent.solution or "No solution generated")
        console.print(
            Panel(
                body,
                title=f"[bold]{agent.agent_id}[/bold] ({agent.approach})",
                border_style="red" if agent.status == AgentStatus.FAILED else "dim",
            )
        )
    console.print(Rule("[bold green]Synthesis[/bold green]"))
    console.print(
        Text(f"Agents completed: {result.completed_agents}/{result.total_agents}", style="dim")
    )
    console.print(Markdown(result.synthesis))


def _deep_think_lines(result: DeepThinkResult) -> list[str]:
    lines = [
        "**Mode:** deep think",
        f"**Verified:** {'yes' if result.succeeded else 'no'}",
        f"**Iterations:** {result.total_iterations}",
        f"**Consecutive passes:** {result.successful_verifications}",
        "",
        "---",
        "",
        "## Verification Trail",
        "",
    ]
    for it in result.iterations:
        mark = "pass" if it.verification.passed else "fail"
        lines.append(f"- Iteration {it.index}: {mark} ({it.status.value})")
    lines += ["", "## Initial Thought", "", result.initial_thought, "", "## Final Solution", "", result.final_solution, ""]
    return lines


def _ultra_think_lines(result: UltraThinkResult) -> list[str]:
    lines = [
        "**Mode:** ultra think",
        f"**Agents:** {result.completed_agents}/{result.total_agents} completed",
        "",
        "---",
        "",
        "## Plan",
        "",
        result.plan,
        "",
    ]
    for agent in result.agent_results:
        lines.append(f"## {agent.agent_id}: {agent.approach}")
        lines.append("")
        lines.append(f"*Status: {agent.status.value}*")
        lines.append("")
        if agent.error:
            lines.append(f"**Error:** {agent.error}")
            lines.append("")
        lines.append(agent.solution or "No solution generated")
        lines.append("")
    lines += ["## Synthesis", "", result.synthesis, ""]
    return lines


def save_to_file(
    result: DeepThinkResult | UltraThinkResult,
    problem: str,
    output_dir: Path,
    slug_override: str | None = None,
) -> Path:
    """Save the run as a markdown report.

    Args:
        result: The terminal result of either engine.
        problem: The problem statement the run worked on.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the problem text.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(problem)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    lines: list[str] = [
        f"# Deep Think: {problem[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
    ]
    if isinstance(result, UltraThinkResult):
        lines += _ultra_think_lines(result)
    else:
        lines += _deep_think_lines(result)

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Result saved to: %s", filepath)
    return filepath
