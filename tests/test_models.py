"""Tests for newsroom/models.py dataclasses."""

import dataclasses

import pytest

from newsroom.models import AgentRunResult, DebateResult, Edition, SimulationResult, TokenUsage


def test_agent_run_result_defaults():
    r = AgentRunResult(agent="tech", headline="H", story="S")
    assert r.sources == ()
    assert r.cost == 0.0
    assert not r.refused and not r.error and not r.hit_max_turns


def test_agent_run_result_is_frozen(sample_result):
    with pytest.raises(dataclasses.FrozenInstanceError):
        sample_result.cost = 1.0


def test_token_usage_defaults():
    assert TokenUsage() == TokenUsage(input_tokens=0, output_tokens=0)


def test_edition_debate_optional(progressive, sample_result):
    edition = Edition(persona=progressive, result=sample_result)
    assert edition.debate is None


def test_simulation_result_fields(progressive, sample_result):
    debate = DebateResult(agent="progressive", rebuttal="No.", target="The Digital Daily", cost=0.01)
    sim = SimulationResult(
        topic="Topic",
        editions=(Edition(persona=progressive, result=sample_result, debate=debate),),
        cost=0.03,
    )
    assert sim.debate_skipped is False
    assert sim.editions[0].debate.target == "The Digital Daily"
