"""Debate session runner: one persona reads its peers' headlines and rebuts one.

Debate is best-effort. ``run_debate_session`` returns None instead of
raising whenever the rebuttal cannot be produced.
"""

import logging

from config.config_loader import PromptsConfig, SessionConfig
from newsroom.events import ActivityType, AgentReporter, EventName, EventSink
from newsroom.models import AgentRunResult, DebateResult, Persona
from newsroom.providers.base import AgentClient
from newsroom.session import extract_json_object
from newsroom.stream import AssistantMessage, StreamFault, TerminalResult, TextContent

logger = logging.getLogger(__name__)


def format_perspectives(peers: list[tuple[Persona, AgentRunResult]]) -> str:
    """One ``<Newspaper>: "<headline>"`` line per usable peer result.

    Errored and refused results are left out.
    """
    return "\n".join(
        f'{persona.name}: "{result.headline}"'
        for persona, result in peers
        if result is not None and not result.error and not result.refused
    )


def build_debate_prompt(persona: Persona, topic: str, perspectives: str, prompts: PromptsConfig) -> str:
    return prompts.debate.format(name=persona.name, topic=topic, perspectives=perspectives)


async def _converse(
    reporter: AgentReporter,
    client: AgentClient,
    prompt: str,
    session: SessionConfig,
) -> tuple[str | None, float]:
    """Run the rebuttal conversation. Returns (final_text, cost)."""
    name = reporter.persona.name
    final_text: str | None = None
    cost = 0.0

    async for unit in client.submit(
        prompt,
        allowed_tools=session.allowed_tools,
        max_turns=session.max_turns,
        max_tokens=session.max_tokens,
    ):
        if isinstance(unit, AssistantMessage):
            for block in unit.content:
                if isinstance(block, TextContent):
                    final_text = block.text
                    reporter.status(EventName.AGENT_DEBATING, f"{name} is writing a rebuttal...")
                    reporter.activity(
                        ActivityType.THINKING,
                        f"{name} formulating rebuttal",
                        response=block.text,
                    )
        elif isinstance(unit, TerminalResult):
            if unit.text:
                final_text = unit.text
            cost = unit.cost_usd
            reporter.activity(
                ActivityType.RESPONSE,
                "Debate response completed",
                response=final_text,
                cost=cost,
            )
        elif isinstance(unit, StreamFault):
            logger.warning("[DEBATE %s] Stream fault: %s", reporter.agent, unit.error)

    return final_text, cost


async def run_debate_session(
    persona: Persona,
    topic: str,
    peers: list[tuple[Persona, AgentRunResult]],
    client: AgentClient,
    sink: EventSink,
    prompts: PromptsConfig,
    session: SessionConfig,
) -> DebateResult | None:
    """Produce a short rebuttal against one peer headline.

    Returns None when the client is unconfigured, no peer is usable, the
    conversation fails, or the reply holds no rebuttal JSON.
    """
    logger.info("[DEBATE %s] Reading other perspectives...", persona.id)
    reporter = AgentReporter(sink, persona)
    reporter.status(EventName.AGENT_READING, f"{persona.name} is reading the other perspectives...")

    if not client.configured():
        return None

    perspectives = format_perspectives(peers)
    if not perspectives:
        logger.info("[DEBATE %s] No valid perspectives to debate", persona.id)
        return None

    prompt = build_debate_prompt(persona, topic, perspectives, prompts)
    reporter.activity(ActivityType.PROMPT, f"Sending debate prompt to {persona.name}", prompt=prompt)

    try:
        final_text, cost = await _converse(reporter, client, prompt, session)
    except Exception as exc:
        logger.error("[DEBATE %s] ERROR: %s", persona.id, exc)
        return None

    if not final_text:
        return None

    response = extract_json_object(final_text, "rebuttal")
    if response is None:
        logger.info("[DEBATE %s] No rebuttal JSON in response", persona.id)
        return None

    target = str(response.get("targetNewspaper") or "")
    logger.info("[DEBATE %s] Completed - Cost: $%.4f", persona.id, cost)
    reporter.status(
        EventName.AGENT_DEBATE_COMPLETE,
        f"{persona.name} responded to {target or 'the others'}",
        rebuttal=response["rebuttal"],
        target=target,
    )
    return DebateResult(agent=persona.id, rebuttal=response["rebuttal"], target=target, cost=cost)
