"""Integration tests -- real API calls, no mocks. Requires ANTHROPIC_API_KEY in .env."""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

load_dotenv()

pytestmark = pytest.mark.integration

if not os.environ.get("ANTHROPIC_API_KEY", "").strip():
    pytestmark = pytest.mark.skip(reason="ANTHROPIC_API_KEY is not set")


async def test_health_check_live():
    from config.config_loader import load_config
    from newsroom.healthcheck import run_health_check
    from newsroom.providers.anthropic import AnthropicAgentClient

    config = load_config()
    ok, err = await run_health_check(AnthropicAgentClient(config.model))
    assert ok, err


async def test_full_simulation(tmp_path: Path):
    """Run a real simulation end to end and save it, verify no crash."""
    from config.config_loader import load_config
    from newsroom.coordinator import run_simulation
    from newsroom.events import RecordingSink
    from newsroom.output import save_to_file
    from newsroom.providers.anthropic import AnthropicAgentClient

    config = load_config()
    sink = RecordingSink()
    result = await run_simulation(
        "Should cities ban cars from their downtown cores?",
        config,
        AnthropicAgentClient(config.model),
        sink,
    )

    assert len(result.editions) == len(config.personas)
    assert all(e.result.headline for e in result.editions)
    assert result.cost >= 0
    assert sink.names()[0] == "simulation:start"
    assert sink.names()[-1] == "simulation:complete"

    path = save_to_file(result, tmp_path)
    assert path.exists()
    print(f"\nSimulation cost ${result.cost:.4f} in {result.duration_sec:.1f}s, saved to {path}")
