"""Tests for newsroom/output.py."""

import io
from pathlib import Path

from rich.console import Console

from newsroom.events import simulation_payload
from newsroom.models import AgentRunResult, DebateResult, Edition, SimulationResult
from newsroom.output import ConsoleSink, _editions, _slug, print_simulation, save_to_file


def _make_result(progressive, conservative, tech) -> SimulationResult:
    return SimulationResult(
        topic="Rising sea levels and coastal cities",
        editions=(
            Edition(
                persona=progressive,
                result=AgentRunResult(
                    agent="progressive",
                    headline="Workers Drown First",
                    story="The poor lose their homes.",
                    sources=("https://example.com/a",),
                    cost=0.02,
                ),
                debate=DebateResult(
                    agent="progressive", rebuttal="Adaptation is a myth.", target="The Traditional Post", cost=0.001
                ),
            ),
            Edition(
                persona=conservative,
                result=AgentRunResult(
                    agent="conservative",
                    headline="The Traditional Post - Error",
                    story="Agent encountered an error: boom",
                    error=True,
                ),
            ),
            Edition(
                persona=tech,
                result=AgentRunResult(
                    agent="tech",
                    headline="The Digital Daily Declined",
                    story="Not today.",
                    refused=True,
                    cost=0.03,
                    hit_max_turns=True,
                ),
            ),
        ),
        cost=0.051,
        duration_sec=12.34,
    )


def _console() -> tuple[Console, io.StringIO]:
    buffer = io.StringIO()
    return Console(file=buffer, width=120, color_system=None), buffer


def test_slug_basic():
    assert _slug("Rising sea levels!") == "rising-sea-levels"


def test_slug_truncates():
    assert len(_slug("word " * 30)) <= 40


def test_slug_collapses_separators():
    assert _slug("AI -- regulation__now") == "ai-regulation-now"


def test_save_to_file_creates_file(tmp_path: Path, progressive, conservative, tech):
    path = save_to_file(_make_result(progressive, conservative, tech), tmp_path / "out")
    assert path.exists()
    assert path.suffix == ".md"
    assert path.name.endswith("_rising-sea-levels-and-coastal-cities.md")


def test_save_to_file_content(tmp_path: Path, progressive, conservative, tech):
    path = save_to_file(_make_result(progressive, conservative, tech), tmp_path)
    content = path.read_text(encoding="utf-8")

    assert content.startswith("# Newsroom: Rising sea levels and coastal cities")
    assert "**Newspapers:** The Progressive Tribune, The Traditional Post, The Digital Daily" in content
    assert "**Duration:** 12.3s" in content
    assert "**Cost:** $0.0510" in content
    assert "**Debate:** held" in content
    assert "### Workers Drown First" in content
    assert "- https://example.com/a" in content
    assert "**Status:** error" in content
    assert "**Status:** declined" in content
    assert "max turns reached" in content
    assert "## Debate" in content
    assert "**The Progressive Tribune → The Traditional Post:** Adaptation is a myth." in content


def test_save_to_file_slug_override(tmp_path: Path, progressive, conservative, tech):
    path = save_to_file(_make_result(progressive, conservative, tech), tmp_path, slug_override="custom")
    assert path.name.endswith("_custom.md")


def test_editions_from_payload(progressive, conservative, tech):
    payload = simulation_payload(_make_result(progressive, conservative, tech))
    assert [agent for agent, _ in _editions(payload)] == ["progressive", "conservative", "tech"]


def test_console_sink_renders_events():
    console, buffer = _console()
    sink = ConsoleSink(out=console)
    base = {"agent": "tech", "newspaper": "The Digital Daily"}

    sink.publish("simulation:start", {"topic": "[bold]Markup[/bold] topic"})
    sink.publish("phase:change", {"phase": 1, "title": "Phase 1: Independent Research", "description": "d"})
    sink.publish("agent:activity", {**base, "type": "web_search", "message": 'Searching for: "seawalls"'})
    sink.publish("agent:activity", {**base, "type": "thinking", "message": "hidden thinking"})
    sink.publish("agent:progress", {**base, "action": "active", "message": "hidden beat", "heartbeat": True})
    sink.publish("agent:complete", {"agent": "tech", "refused": True, "cost": 0.03, "phase": 1})
    sink.publish("phase:skip", {"phase": 2, "reason": "Too many errors in initial research"})
    sink.publish("simulation:complete", {"cost": 0.05})

    out = buffer.getvalue()
    assert "[bold]Markup[/bold] topic" in out
    assert "Phase 1: Independent Research" in out
    assert '[tech] Searching for: "seawalls"' in out
    assert "hidden thinking" not in out
    assert "hidden beat" not in out
    assert "[tech] declined $0.0300" in out
    assert "Too many errors in initial research" in out
    assert "total $0.0500" in out


def test_console_sink_verbose_shows_progress():
    console, buffer = _console()
    sink = ConsoleSink(out=console, verbose=True)
    base = {"agent": "progressive", "newspaper": "The Progressive Tribune"}
    sink.publish("agent:progress", {**base, "action": "writing", "message": "is writing"})
    sink.publish("agent:progress", {**base, "action": "active", "message": "beat", "heartbeat": True})
    sink.publish("agent:activity", {**base, "type": "thinking", "message": "formulating"})

    out = buffer.getvalue()
    assert "is writing" in out
    assert "beat" not in out
    assert "formulating" in out


def test_print_simulation(monkeypatch, progressive, conservative, tech):
    console, buffer = _console()
    monkeypatch.setattr("newsroom.output.console", console)
    print_simulation(simulation_payload(_make_result(progressive, conservative, tech)))

    out = buffer.getvalue()
    assert "Workers Drown First" in out
    assert "The Digital Daily Declined" in out
    assert "Adaptation is a myth." in out
    assert "Total cost: $0.0510" in out
