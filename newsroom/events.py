"""Event vocabulary shared by the session runners and any listener.

Two families of events go through an ``EventSink``:

* progress events (``agent:progress``): coarse, one active status per
  persona, meant for a lightweight indicator. Heartbeats are flagged with
  ``heartbeat=True`` so a listener can give them lower priority.
* activity events (``agent:activity``): fine-grained and append-only, meant
  for a detailed, replayable log. Each carries a millisecond ``timestamp``
  that never decreases within one persona, and an ``eventId``.

Events from different personas interleave arbitrarily; listeners key their
state by ``agent``. Payload keys are camelCase because the main consumer is a
browser client.
"""

import asyncio
import contextlib
import logging
import time
import uuid
from collections.abc import AsyncIterator
from enum import Enum
from typing import Protocol

from newsroom.models import (
    ActivityEvent,
    AgentRunResult,
    DebateResult,
    Persona,
    SimulationResult,
)

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 100


class EventName(str, Enum):
    SIMULATION_START = "simulation:start"
    SIMULATION_COMPLETE = "simulation:complete"
    SIMULATION_ERROR = "simulation:error"
    PHASE_CHANGE = "phase:change"
    PHASE_SKIP = "phase:skip"
    AGENT_THINKING = "agent:thinking"
    AGENT_PROGRESS = "agent:progress"
    AGENT_ACTIVITY = "agent:activity"
    AGENT_READING = "agent:reading"
    AGENT_DEBATING = "agent:debating"
    AGENT_DEBATE_COMPLETE = "agent:debate-complete"
    AGENT_COMPLETE = "agent:complete"


class ActivityType(str, Enum):
    PROMPT = "prompt"
    INPUT = "input"
    TURN_START = "turn_start"
    THINKING = "thinking"
    TOOL_USE = "tool_use"
    WEB_SEARCH = "web_search"
    TOOL_RESULT = "tool_result"
    RESPONSE = "response"
    CONVERSATION_SUMMARY = "conversation_summary"
    ERROR = "error"


class EventSink(Protocol):
    """Anything that can deliver a named event to listeners."""

    def publish(self, event: str, payload: dict) -> None:
        ...


class RecordingSink:
    """Keeps every published event in memory, in arrival order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def publish(self, event: str, payload: dict) -> None:
        self.events.append((str(event), dict(payload)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of(self, event: str) -> list[dict]:
        return [payload for name, payload in self.events if name == event]

    def activities(self, agent: str) -> list[dict]:
        return [p for p in self.of(EventName.AGENT_ACTIVITY.value) if p.get("agent") == agent]

    def activity_types(self, agent: str) -> list[str]:
        return [p["type"] for p in self.activities(agent)]


class QueueSink:
    """Pushes ``(event, payload)`` pairs onto an asyncio queue for a streaming consumer."""

    def __init__(self, queue: asyncio.Queue) -> None:
        self.queue = queue

    def publish(self, event: str, payload: dict) -> None:
        self.queue.put_nowait((str(event), payload))


class FanoutSink:
    """Publishes to several sinks. A failing sink never affects the others."""

    def __init__(self, *sinks: EventSink) -> None:
        self.sinks = list(sinks)

    def publish(self, event: str, payload: dict) -> None:
        for sink in self.sinks:
            try:
                sink.publish(event, payload)
            except Exception:
                logger.exception("Event sink %s failed on %s", type(sink).__name__, event)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    return text[:limit]


class AgentReporter:
    """Publishes one persona's status, progress and activity events."""

    def __init__(self, sink: EventSink, persona: Persona) -> None:
        self.sink = sink
        self.persona = persona
        self._last_timestamp = 0

    @property
    def agent(self) -> str:
        return self.persona.id

    def _base(self) -> dict:
        return {"agent": self.persona.id, "newspaper": self.persona.name}

    def status(self, event: EventName, message: str, **fields) -> None:
        self.sink.publish(event.value, {**self._base(), "message": message, **fields})

    def progress(self, action: str, message: str, **fields) -> None:
        payload = {**self._base(), "action": action, "message": message}
        payload.update({k: v for k, v in fields.items() if v is not None})
        self.sink.publish(EventName.AGENT_PROGRESS.value, payload)

    def activity(
        self,
        activity_type: ActivityType,
        message: str,
        *,
        event_id: str | None = None,
        **details,
    ) -> ActivityEvent:
        # Wall clock can step backwards; keep per-persona order.
        timestamp = max(_now_ms(), self._last_timestamp)
        self._last_timestamp = timestamp
        event = ActivityEvent(
            agent=self.persona.id,
            newspaper=self.persona.name,
            type=activity_type.value,
            message=message,
            timestamp=timestamp,
            event_id=event_id or uuid.uuid4().hex,
            details=details,
        )
        self.sink.publish(EventName.AGENT_ACTIVITY.value, activity_payload(event))
        return event


@contextlib.asynccontextmanager
async def heartbeat(
    reporter: AgentReporter,
    status_text: str,
    interval_sec: float,
) -> AsyncIterator[asyncio.Task]:
    """Emit a liveness progress event every ``interval_sec`` while the block runs.

    The background task is cancelled and awaited on every exit path, so no
    heartbeat can fire after the block is left.
    """

    async def beat() -> None:
        counter = 0
        while True:
            await asyncio.sleep(interval_sec)
            counter += 1
            reporter.progress("active", f"{status_text} {'.' * (counter % 4)}", heartbeat=True)

    task = asyncio.create_task(beat(), name=f"heartbeat-{reporter.agent}")
    try:
        yield task
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("[%s] Heartbeat failed", reporter.agent)


def activity_payload(event: ActivityEvent) -> dict:
    return {
        "agent": event.agent,
        "newspaper": event.newspaper,
        "type": event.type,
        "message": event.message,
        "timestamp": event.timestamp,
        "eventId": event.event_id,
        **event.details,
    }


def result_payload(result: AgentRunResult) -> dict:
    return {
        "headline": result.headline,
        "story": result.story,
        "sources": list(result.sources),
        "cost": result.cost,
        "refused": result.refused,
        "error": result.error,
        "hitMaxTurns": result.hit_max_turns,
    }


def debate_payload(debate: DebateResult | None) -> dict | None:
    if debate is None:
        return None
    return {"rebuttal": debate.rebuttal, "targetNewspaper": debate.target, "cost": debate.cost}


def simulation_payload(result: SimulationResult) -> dict:
    """Full aggregate as sent with ``simulation:complete``, keyed by persona id."""
    payload: dict = {"topic": result.topic}
    for edition in result.editions:
        payload[edition.persona.id] = {
            "name": edition.persona.name,
            "tagline": edition.persona.tagline,
            **result_payload(edition.result),
            "debate": debate_payload(edition.debate),
        }
    payload["cost"] = result.cost
    payload["debateSkipped"] = result.debate_skipped
    payload["durationSec"] = result.duration_sec
    return payload
