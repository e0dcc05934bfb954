"""Click CLI: orchestrates config loading, limits, simulation, output and history."""

import asyncio
import logging
import sys
from pathlib import Path

import aiosqlite
import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import AppConfig, load_config
from newsroom.coordinator import run_simulation
from newsroom.events import FanoutSink, RecordingSink, simulation_payload
from newsroom.healthcheck import run_health_check
from newsroom.models import SimulationResult
from newsroom.output import ConsoleSink, print_budget, print_history, print_simulation, save_to_file
from newsroom.providers.anthropic import AnthropicAgentClient
from newsroom.providers.base import AgentClient
from newsroom.store import SimulationStore, fingerprint, new_simulation_id

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _open_store(config: AppConfig) -> SimulationStore:
    return SimulationStore(config.defaults.database_path, config.budget, config.rate_limit)


def _check_health(client: AgentClient) -> None:
    """Ping the provider and ask the user whether to go on when it fails.

    A failing check is not fatal: every agent will report its own error.
    """
    console.print("\n[bold]Checking provider...[/bold]")
    ok, err = asyncio.run(run_health_check(client))
    if ok:
        console.print(f"  [green]OK  [/green] {client.name()} ({client.model_string()})\n")
        return

    short_err = err.splitlines()[0][:120] if err else "unknown error"
    console.print(f"  [red]FAIL[/red] {client.name()}: {short_err}")
    if not click.confirm("Run the simulation anyway?", default=False):
        sys.exit(0)
    console.print()


async def _run_topic(
    topic: str,
    config: AppConfig,
    client: AgentClient,
    output_dir: Path,
    fingerprint_hash: str,
    skip_rate_limit: bool,
    save: bool,
    verbose: bool,
) -> SimulationResult:
    """Check limits, run one simulation, print it, and persist it."""
    async with _open_store(config) as store:
        if not skip_rate_limit:
            limit = await store.check_rate_limit(fingerprint_hash)
            if not limit.allowed:
                console.print(f"[bold red]Rate limit exceeded:[/bold red] {limit.message}")
                sys.exit(1)

        budget = await store.get_daily_budget()
        if budget.remaining <= 0:
            console.print(
                "[bold red]Daily budget exceeded:[/bold red] "
                "The daily budget has been reached. Please try again tomorrow."
            )
            sys.exit(1)

        recorder = RecordingSink()
        sink = FanoutSink(recorder, ConsoleSink(verbose=verbose))
        result = await run_simulation(topic, config, client, sink)

        print_simulation(simulation_payload(result))

        if save:
            saved_path = save_to_file(result, output_dir)
            console.print(f"\n[dim]Saved to: {saved_path}[/dim]")

        simulation_id = new_simulation_id()
        try:
            await store.save_simulation(simulation_id, result, fingerprint_hash, recorder.events)
            await store.record_run(fingerprint_hash)
            await store.add_to_daily_budget(result.cost)
        except aiosqlite.Error as exc:
            logger.error("Failed to persist simulation %s: %s", simulation_id, exc)
        else:
            console.print(f"[dim]Simulation id: {simulation_id}[/dim]")
        return result


async def _show_history(config: AppConfig) -> None:
    async with _open_store(config) as store:
        simulations = await store.list_simulations(config.defaults.history_limit)
    if not simulations:
        click.echo("No simulations yet.")
        return
    print_history(simulations)


async def _show_simulation(config: AppConfig, simulation_id: str, replay: bool) -> None:
    async with _open_store(config) as store:
        simulation = await store.get_simulation(simulation_id)
        events = await store.get_events(simulation_id) if simulation and replay else []

    if simulation is None:
        console.print(f"[bold red]Error:[/bold red] Simulation not found: {simulation_id}")
        sys.exit(1)

    if replay:
        sink = ConsoleSink(verbose=True)
        for name, payload in events:
            sink.publish(name, payload)
    print_simulation(simulation.result)


async def _show_budget(config: AppConfig) -> None:
    async with _open_store(config) as store:
        print_budget(await store.get_daily_budget())


@click.command()
@click.argument("topic", required=False)
@click.option("--history", "show_history", is_flag=True, help="List recent simulations")
@click.option("--show", "show_id", default=None, help="Print a stored simulation by id")
@click.option("--replay", is_flag=True, help="With --show, re-render the stored event log")
@click.option("--budget", "show_budget", is_flag=True, help="Print today's budget status")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--no-save", is_flag=True, default=False, help="Do not write the markdown transcript")
@click.option("--fingerprint", "fingerprint_arg", default=None,
              help="Rate-limit identity (default: derived from user and host)")
@click.option("--skip-rate-limit", is_flag=True, default=False, help="Do not enforce the per-fingerprint limit")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging and full event output")
def main(
    topic: str | None,
    show_history: bool,
    show_id: str | None,
    replay: bool,
    show_budget: bool,
    output_path: str | None,
    no_save: bool,
    fingerprint_arg: str | None,
    skip_rate_limit: bool,
    skip_health_check: bool,
    verbose: bool,
) -> None:
    """AI Newsroom -- three editors research a topic, write, and debate.

    \b
    Examples:
      newsroom "Rising sea levels"
      newsroom "AI regulation" --skip-health-check --verbose
      newsroom --history
      newsroom --show Ab3dE9xYz_ --replay
      newsroom --budget
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    if show_history:
        asyncio.run(_show_history(config))
        return
    if show_id:
        asyncio.run(_show_simulation(config, show_id, replay))
        return
    if show_budget:
        asyncio.run(_show_budget(config))
        return

    if not topic or not topic.strip():
        console.print("[bold red]Error:[/bold red] Provide a TOPIC argument, --history, --show or --budget.")
        sys.exit(1)

    client = AnthropicAgentClient(config.model)

    if not skip_health_check:
        _check_health(client)

    effective_output = Path(output_path) if output_path else config.defaults.output_dir
    fingerprint_hash = fingerprint(fingerprint_arg) if fingerprint_arg else fingerprint()

    try:
        asyncio.run(
            _run_topic(
                topic=topic.strip(),
                config=config,
                client=client,
                output_dir=effective_output,
                fingerprint_hash=fingerprint_hash,
                skip_rate_limit=skip_rate_limit,
                save=not no_save,
                verbose=verbose,
            )
        )
    except Exception as exc:
        logger.error("Simulation failed: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
