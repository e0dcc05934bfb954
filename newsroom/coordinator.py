"""Simulation orchestration: parallel research, quorum gate, parallel debate."""

import asyncio
import logging
import time

from config.config_loader import AppConfig
from newsroom.debate import run_debate_session
from newsroom.events import EventName, EventSink, result_payload, simulation_payload
from newsroom.models import AgentRunResult, DebateResult, Edition, Persona, SimulationResult
from newsroom.providers.base import AgentClient
from newsroom.session import run_agent_session

logger = logging.getLogger(__name__)

PHASE_RESEARCH = {
    "phase": 1,
    "title": "Phase 1: Independent Research",
    "description": "Each newsroom researches the topic independently",
}
PHASE_DEBATE = {
    "phase": 2,
    "title": "Phase 2: Agent Debate",
    "description": "Each newsroom reads and responds to the others",
}
SKIP_REASON = "Too many errors in initial research"


def debate_quorum(persona_count: int) -> int:
    """Minimum successful research sessions needed to enter the debate phase.

    N-1 of N personas: a single failure is tolerated, two are not.
    """
    return max(persona_count - 1, 1)


def error_result(persona: Persona, exc: BaseException) -> AgentRunResult:
    return AgentRunResult(
        agent=persona.id,
        headline=f"{persona.name} - Error",
        story=f"Agent encountered an error: {exc}",
        cost=0.0,
        error=True,
    )


async def _research(
    persona: Persona,
    topic: str,
    client: AgentClient,
    sink: EventSink,
    config: AppConfig,
) -> AgentRunResult:
    """Run one research session. Failures become error results, never exceptions."""
    try:
        return await run_agent_session(
            persona,
            topic,
            client,
            sink,
            config.prompts,
            config.research,
            heartbeat_interval_sec=config.defaults.heartbeat_interval_sec,
        )
    except Exception as exc:
        logger.error("[AGENT ERROR] %s: %s", persona.id, exc)
        return error_result(persona, exc)


async def _debate(
    persona: Persona,
    topic: str,
    peers: list[tuple[Persona, AgentRunResult]],
    client: AgentClient,
    sink: EventSink,
    config: AppConfig,
) -> DebateResult | None:
    """Run one debate session. Failures become None, never exceptions."""
    try:
        return await run_debate_session(
            persona, topic, peers, client, sink, config.prompts, config.debate
        )
    except Exception as exc:
        logger.error("[DEBATE ERROR] %s: %s", persona.id, exc)
        return None


async def run_simulation(
    topic: str,
    config: AppConfig,
    client: AgentClient,
    sink: EventSink,
) -> SimulationResult:
    """Run the full two-phase simulation for ``topic``.

    Every persona always gets a research result; per-persona failures are
    folded into error results and never abort the run.

    Raises:
        Exception: Only for faults outside the per-persona boundaries,
            after publishing ``simulation:error``.
    """
    logger.info("[SIMULATION START] Topic: %s", topic)
    sink.publish(EventName.SIMULATION_START.value, {"topic": topic})
    start = time.monotonic()

    try:
        personas = list(config.personas.values())
        if not personas:
            raise ValueError("No personas configured")

        logger.info("[PHASE 1] Starting independent research with %d agents", len(personas))
        sink.publish(EventName.PHASE_CHANGE.value, dict(PHASE_RESEARCH))

        results: list[AgentRunResult] = await asyncio.gather(
            *(_research(p, topic, client, sink, config) for p in personas)
        )
        for persona, result in zip(personas, results):
            sink.publish(
                EventName.AGENT_COMPLETE.value,
                {"agent": persona.id, **result_payload(result), "phase": 1},
            )

        succeeded = sum(1 for r in results if not r.error)
        quorum = debate_quorum(len(personas))
        logger.info("[PHASE 1] Complete: %d/%d agents succeeded", succeeded, len(personas))

        debates: list[DebateResult | None] = [None] * len(personas)
        debate_skipped = succeeded < quorum
        if debate_skipped:
            logger.warning(
                "[PHASE 2] Skipping debate: only %d/%d succeeded, need %d",
                succeeded, len(personas), quorum,
            )
            sink.publish(EventName.PHASE_SKIP.value, {"phase": 2, "reason": SKIP_REASON})
        else:
            logger.info("[PHASE 2] Starting agent debate...")
            sink.publish(EventName.PHASE_CHANGE.value, dict(PHASE_DEBATE))
            outcomes = list(zip(personas, results))
            debates = await asyncio.gather(*(
                _debate(
                    persona,
                    topic,
                    [(p, r) for p, r in outcomes if p.id != persona.id],
                    client,
                    sink,
                    config,
                )
                for persona in personas
            ))
            logger.info("[PHASE 2] Debate completed")

        research_cost = sum(r.cost for r in results)
        debate_cost = sum(d.cost for d in debates if d is not None)

        result = SimulationResult(
            topic=topic,
            editions=tuple(
                Edition(persona=p, result=r, debate=d)
                for p, r, d in zip(personas, results, debates)
            ),
            cost=research_cost + debate_cost,
            debate_skipped=debate_skipped,
            duration_sec=time.monotonic() - start,
        )
        sink.publish(EventName.SIMULATION_COMPLETE.value, simulation_payload(result))
        logger.info("[SIMULATION COMPLETE] Total cost: $%.4f", result.cost)
        return result
    except Exception as exc:
        logger.error("[SIMULATION ERROR] %s", exc)
        sink.publish(EventName.SIMULATION_ERROR.value, {"error": str(exc)})
        raise
