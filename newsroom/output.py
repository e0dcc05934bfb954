"""Rich console output, live event rendering and markdown save for simulations."""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from newsroom.events import EventName
from newsroom.models import SimulationResult
from newsroom.store import BudgetStatus, StoredSimulation

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_AGENT_STYLES = {"progressive": "magenta", "conservative": "blue", "tech": "cyan"}

# Activity types worth a console line; the rest stay in the stored log.
_SHOWN_ACTIVITY = {"web_search", "tool_result", "turn_start", "response", "error"}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _style(agent: str) -> str:
    return _AGENT_STYLES.get(agent, "white")


def _editions(payload: dict) -> list[tuple[str, dict]]:
    """Per-persona entries of a simulation:complete payload, in stored order."""
    return [(key, value) for key, value in payload.items() if isinstance(value, dict) and "headline" in value]


class ConsoleSink:
    """Renders the event stream as compact console lines.

    Heartbeats and writing previews are dropped unless ``verbose``.
    """

    def __init__(self, out: Console | None = None, verbose: bool = False) -> None:
        self.console = out or console
        self.verbose = verbose

    def _agent_line(self, payload: dict, text: str, style: str = "") -> None:
        agent = payload.get("agent", "?")
        line = Text.assemble((f"[{agent}] ", f"bold {_style(agent)}"), (text, style))
        self.console.print(line)

    def publish(self, event: str, payload: dict) -> None:
        if event == EventName.SIMULATION_START.value:
            self.console.print(Rule(f"[bold cyan]Newsroom[/bold cyan]: {escape(payload.get('topic', ''))}"))
        elif event == EventName.PHASE_CHANGE.value:
            self.console.print(f"\n[bold]{payload.get('title')}[/bold] [dim]{payload.get('description', '')}[/dim]")
        elif event == EventName.PHASE_SKIP.value:
            self.console.print(f"[yellow]Phase {payload.get('phase')} skipped:[/yellow] {payload.get('reason')}")
        elif event in (
            EventName.AGENT_THINKING.value,
            EventName.AGENT_READING.value,
            EventName.AGENT_DEBATING.value,
        ):
            self._agent_line(payload, payload.get("message", ""))
        elif event == EventName.AGENT_PROGRESS.value:
            if self.verbose and not payload.get("heartbeat"):
                self._agent_line(payload, payload.get("message", ""), "dim")
        elif event == EventName.AGENT_ACTIVITY.value:
            if payload.get("type") in _SHOWN_ACTIVITY or self.verbose:
                self._agent_line(payload, payload.get("message", ""))
        elif event == EventName.AGENT_DEBATE_COMPLETE.value:
            self._agent_line(payload, f"rebuts {payload.get('target') or 'the others'}")
        elif event == EventName.AGENT_COMPLETE.value:
            if payload.get("error"):
                status, style = "error", "red"
            elif payload.get("refused"):
                status, style = "declined", "yellow"
            else:
                status, style = "done", "green"
            self._agent_line(payload, f"{status} ${payload.get('cost', 0):.4f}", style)
        elif event == EventName.SIMULATION_COMPLETE.value:
            self.console.print(f"[green]Simulation complete[/green] - total ${payload.get('cost', 0):.4f}")
        elif event == EventName.SIMULATION_ERROR.value:
            self.console.print(f"[bold red]Simulation failed:[/bold red] {escape(str(payload.get('error')))}")


def print_simulation(payload: dict) -> None:
    """Print each newspaper's front page and rebuttal."""
    console.print(Rule(f"[bold green]{escape(payload.get('topic', ''))}[/bold green]"))
    for agent, edition in _editions(payload):
        body = edition.get("story", "")
        if edition.get("sources"):
            body += "\n\n" + "\n".join(f"- {url}" for url in edition["sources"])
        debate = edition.get("debate")
        if debate:
            body += f"\n\n> **Rebuttal to {debate.get('targetNewspaper')}:** {debate.get('rebuttal')}"
        border = "red" if edition.get("error") else ("yellow" if edition.get("refused") else _style(agent))
        console.print(
            Panel(
                Markdown(body),
                title=f"[bold]{escape(edition.get('headline', ''))}[/bold]",
                subtitle=escape(f"{edition.get('name', agent)} | {edition.get('tagline', '')}"),
                border_style=border,
            )
        )
    console.print(Text(f"Total cost: ${payload.get('cost', 0):.4f}", style="dim"))


def print_history(simulations: list[StoredSimulation]) -> None:
    table = Table(title="Recent simulations")
    table.add_column("ID", style="bold")
    table.add_column("Created")
    table.add_column("Topic")
    table.add_column("Cost", justify="right")
    for sim in simulations:
        created = datetime.fromtimestamp(sim.created_at, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
        table.add_row(sim.id, created, sim.topic[:60], f"${sim.cost:.4f}")
    console.print(table)


def print_budget(status: BudgetStatus) -> None:
    console.print(
        f"[bold]Budget {status.date}:[/bold] spent ${status.total_cost:.4f} "
        f"over {status.simulation_count} simulation(s), ${status.remaining:.4f} remaining"
    )


def save_to_file(result: SimulationResult, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the simulation as a markdown front page.

    Args:
        result: The completed SimulationResult.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the topic.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(result.topic)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    lines: list[str] = [
        f"# Newsroom: {result.topic[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Newspapers:** {', '.join(e.persona.name for e in result.editions)}",
        f"**Duration:** {result.duration_sec:.1f}s",
        f"**Cost:** ${result.cost:.4f}",
        f"**Debate:** {'skipped' if result.debate_skipped else 'held'}",
        "",
        "---",
        "",
    ]

    for edition in result.editions:
        persona, article = edition.persona, edition.result
        lines.append(f"## {persona.name}")
        lines.append(f"*{persona.tagline}*")
        lines.append("")
        if article.error:
            lines.append("**Status:** error")
        elif article.refused:
            lines.append("**Status:** declined")
        lines.append(f"### {article.headline}")
        lines.append("")
        lines.append(article.story)
        lines.append("")
        if article.sources:
            lines.append("**Sources:**")
            lines.extend(f"- {url}" for url in article.sources)
            lines.append("")
        lines.append(f"*Cost: ${article.cost:.4f}" + (" | max turns reached" if article.hit_max_turns else "") + "*")
        lines.append("")

    debated = [e for e in result.editions if e.debate is not None]
    if debated:
        lines += ["## Debate", ""]
        for edition in debated:
            lines.append(f"**{edition.persona.name} → {edition.debate.target}:** {edition.debate.rebuttal}")
            lines.append("")

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Simulation saved to: %s", filepath)
    return filepath
