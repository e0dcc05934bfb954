"""Shared pytest fixtures."""

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from pathlib import Path

import pytest

from config.config_loader import (
    AppConfig,
    BudgetConfig,
    DefaultsConfig,
    ModelConfig,
    PricingConfig,
    PromptsConfig,
    RateLimitConfig,
    SessionConfig,
)
from newsroom.models import AgentRunResult, Persona
from newsroom.providers.base import AgentClient


# --- raw provider messages ----------------------------------------------------

def system_msg() -> dict:
    return {"type": "system", "subtype": "init", "tools": ["WebSearch"], "model": "mock-model"}


def user_msg(uuid: str = "u-1", content: str = "prompt") -> dict:
    return {"type": "user", "uuid": uuid, "message": {"role": "user", "content": content}}


def text_msg(text: str, turn_id: str | None = "turn-1") -> dict:
    return {"type": "assistant", "message": {"id": turn_id, "content": [{"type": "text", "text": text}]}}


def search_msg(query: str, turn_id: str | None = "turn-1", tool_id: str = "srv-1") -> dict:
    return {
        "type": "assistant",
        "message": {
            "id": turn_id,
            "content": [{"type": "tool_use", "id": tool_id, "name": "WebSearch", "input": {"query": query}}],
        },
    }


def tool_result_msg(output, tool_use_id: str = "srv-1") -> dict:
    return {"type": "tool_result", "tool_use_id": tool_use_id, "output": output}


def result_msg(text: str | None, cost: float | None = 0.01, subtype: str = "success") -> dict:
    msg = {
        "type": "result",
        "subtype": subtype,
        "result": text,
        "usage": {"input_tokens": 100, "output_tokens": 50},
        "errors": [],
    }
    if cost is not None:
        msg["total_cost_usd"] = cost
    return msg


def article_json(headline: str, story: str = "A lead paragraph.", sources: list[str] | None = None) -> str:
    return json.dumps({"headline": headline, "story": story, "sources": sources or ["https://example.com/a"]})


def article_script(headline: str, cost: float = 0.01) -> list[dict]:
    """A full research conversation: one search, then the article."""
    text = article_json(headline)
    return [
        system_msg(),
        user_msg(),
        search_msg(f"{headline} news", turn_id="turn-1"),
        tool_result_msg(json.dumps([{"title": "Result", "url": "https://example.com/a"}])),
        text_msg(text, turn_id="turn-2"),
        result_msg(text, cost=cost),
    ]


def rebuttal_script(rebuttal: str, target: str, cost: float = 0.005) -> list[dict]:
    text = json.dumps({"rebuttal": rebuttal, "targetNewspaper": target})
    return [system_msg(), user_msg(uuid="u-debate"), text_msg(text, turn_id="d-1"), result_msg(text, cost=cost)]


# --- test double client ---------------------------------------------------------

Script = list | BaseException


class FakeAgentClient(AgentClient):
    """Scripted AgentClient.

    ``script`` is a list of raw messages, an exception to raise before the
    first message, or a callable taking the prompt and returning either.
    A raw message that is an exception is raised mid-stream.
    """

    def __init__(
        self,
        script: Script | Callable[[str], Script] = (),
        *,
        is_configured: bool = True,
        delay: float = 0.0,
    ) -> None:
        self.script = script
        self.is_configured = is_configured
        self.delay = delay
        self.calls: list[dict] = []

    def name(self) -> str:
        return "fake"

    def model_string(self) -> str:
        return "mock-model"

    def configured(self) -> bool:
        return self.is_configured

    async def stream_messages(
        self,
        prompt: str,
        *,
        allowed_tools: frozenset[str],
        max_turns: int,
        max_tokens: int | None = None,
    ) -> AsyncIterator[dict]:
        self.calls.append({
            "prompt": prompt,
            "allowed_tools": allowed_tools,
            "max_turns": max_turns,
            "max_tokens": max_tokens,
        })
        script = self.script(prompt) if callable(self.script) else self.script
        if isinstance(script, BaseException):
            raise script
        for raw in script:
            if self.delay:
                await asyncio.sleep(self.delay)
            if isinstance(raw, BaseException):
                raise raw
            yield raw


def routed(research: dict[str, Script], debate: dict[str, Script] | None = None) -> Callable[[str], Script]:
    """Pick a script by the editor named in the prompt and the prompt kind."""
    debate = debate or {}

    def pick(prompt: str) -> Script:
        table = debate if "rebuttal" in prompt else research
        for newspaper, script in table.items():
            if f"You are the editor of {newspaper}" in prompt:
                return script
        raise AssertionError(f"No script for prompt: {prompt[:80]}")

    return pick


# --- config ------------------------------------------------------------------------

@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="claude",
        sdk="anthropic",
        model="claude-test-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
        max_web_searches=3,
        pricing=PricingConfig(input_per_mtok=3.0, output_per_mtok=15.0, web_search_per_1k=10.0),
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        research=(
            "You are the editor of {name}. Stance: {personality}. Style: {style}. "
            "Tone: {tone}. Write about: {topic}. Reply as JSON."
        ),
        debate=(
            'You are the editor of {name}. Topic: "{topic}".\n{perspectives}\n'
            'Write a rebuttal as JSON: {{"rebuttal": "...", "targetNewspaper": "..."}}'
        ),
    )


@pytest.fixture
def research_session_config() -> SessionConfig:
    return SessionConfig(max_turns=5, max_tokens=2048, allowed_tools=frozenset({"WebSearch"}))


@pytest.fixture
def debate_session_config() -> SessionConfig:
    return SessionConfig(max_turns=2, max_tokens=512)


@pytest.fixture
def progressive() -> Persona:
    return Persona(
        id="progressive",
        name="The Progressive Tribune",
        tagline="Question Everything",
        personality="Question power structures",
        style="Provocative",
        tone="Passionate",
    )


@pytest.fixture
def conservative() -> Persona:
    return Persona(
        id="conservative",
        name="The Traditional Post",
        tagline="Trusted Since 1887",
        personality="Preserve institutions",
        style="Measured",
        tone="Authoritative",
    )


@pytest.fixture
def tech() -> Persona:
    return Persona(
        id="tech",
        name="The Digital Daily",
        tagline="Tomorrow's News Today",
        personality="Everything is disruption",
        style="Buzzword-heavy",
        tone="Enthusiastic",
    )


@pytest.fixture
def personas(progressive: Persona, conservative: Persona, tech: Persona) -> dict[str, Persona]:
    return {p.id: p for p in (progressive, conservative, tech)}


@pytest.fixture
def sample_app_config(
    tmp_path: Path,
    sample_model_config: ModelConfig,
    sample_prompts_config: PromptsConfig,
    research_session_config: SessionConfig,
    debate_session_config: SessionConfig,
    personas: dict[str, Persona],
) -> AppConfig:
    return AppConfig(
        defaults=DefaultsConfig(
            output_dir=tmp_path / "output",
            database_path=tmp_path / "data" / "simulations.db",
            heartbeat_interval_sec=60.0,
        ),
        model=sample_model_config,
        research=research_session_config,
        debate=debate_session_config,
        prompts=sample_prompts_config,
        budget=BudgetConfig(daily_limit=2.0),
        rate_limit=RateLimitConfig(window_hours=24, max_requests=1),
        personas=personas,
        api_key_available=True,
    )


@pytest.fixture
def sample_result() -> AgentRunResult:
    return AgentRunResult(
        agent="progressive",
        headline="Workers Left Behind",
        story="The policy favors the few.",
        sources=("https://example.com/a",),
        cost=0.02,
    )
