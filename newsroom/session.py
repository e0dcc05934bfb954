"""Agent session runner: one persona researches and writes one article.

Drives a single conversation through an ``AgentClient``, turns every stream
unit into activity/progress events in arrival order, and extracts the final
article from the last text the model produced.
"""

import json
import logging
import time
from dataclasses import dataclass, field

from config.config_loader import PromptsConfig, SessionConfig
from newsroom.events import (
    PREVIEW_CHARS,
    ActivityType,
    AgentReporter,
    EventName,
    EventSink,
    heartbeat,
)
from newsroom.models import AgentRunResult, Persona, TokenUsage
from newsroom.providers.base import AgentClient, ProviderNotConfiguredError
from newsroom.stream import (
    WEB_SEARCH_TOOL,
    AssistantMessage,
    StreamFault,
    StreamUnit,
    SystemInit,
    TerminalResult,
    TextContent,
    ToolInvocation,
    ToolResult,
    UnknownMessage,
    UserInput,
)

logger = logging.getLogger(__name__)


class NoResultError(RuntimeError):
    """Raised when a conversation ends without producing any text."""


@dataclass
class SessionContext:
    """Mutable state threaded through one session's stream loop."""

    reporter: AgentReporter
    started_at: float = field(default_factory=time.monotonic)
    turn_count: int = 0
    last_turn_id: str | None = None
    final_text: str | None = None
    cost: float = 0.0
    usage: TokenUsage = field(default_factory=TokenUsage)
    message_count: int = 0
    hit_max_turns: bool = False
    seen_inputs: set[str] = field(default_factory=set)

    @property
    def persona(self) -> Persona:
        return self.reporter.persona

    def duration_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


def build_research_prompt(persona: Persona, topic: str, prompts: PromptsConfig) -> str:
    return prompts.research.format(
        name=persona.name,
        personality=persona.personality,
        style=persona.style,
        tone=persona.tone,
        topic=topic,
    )


def extract_json_object(text: str, required_key: str) -> dict | None:
    """Return the first JSON object in ``text`` that has a string ``required_key``."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            obj = None
        if isinstance(obj, dict) and isinstance(obj.get(required_key), str):
            return obj
        start = text.find("{", start + 1)
    return None


def parse_article(
    text: str,
    persona: Persona,
    cost: float = 0.0,
    hit_max_turns: bool = False,
) -> AgentRunResult:
    """Turn the model's final text into an article.

    Text without a usable JSON object is a refusal: the raw text is kept as the
    story rather than discarded.
    """
    article = extract_json_object(text, "headline")
    if article is None:
        logger.info("[%s] non-JSON response (likely refusal): %s", persona.id, text[:200])
        return AgentRunResult(
            agent=persona.id,
            headline=f"{persona.name} Declined",
            story=text.strip(),
            cost=cost,
            refused=True,
            hit_max_turns=hit_max_turns,
        )

    sources = article.get("sources") or []
    if not isinstance(sources, list):
        sources = [sources]
    return AgentRunResult(
        agent=persona.id,
        headline=article["headline"],
        story=str(article.get("story") or ""),
        sources=tuple(str(s) for s in sources if s),
        cost=cost,
        hit_max_turns=hit_max_turns,
    )


def parse_search_results(output) -> list[dict] | None:
    """Parse a tool result as a list of ``{title, url}`` hits, or None."""
    parsed = output
    if isinstance(output, str):
        try:
            parsed = json.loads(output)
        except (ValueError, RecursionError):
            return None
    if not isinstance(parsed, list):
        return None
    return [
        {
            "title": r.get("title") or r.get("name") or "Unknown",
            "url": r.get("url") or r.get("link") or "",
        }
        for r in parsed
        if isinstance(r, dict)
    ]


def _handle_assistant(ctx: SessionContext, unit: AssistantMessage) -> None:
    reporter = ctx.reporter
    name = ctx.persona.name
    if ctx.turn_count == 0 or unit.turn_id is None or unit.turn_id != ctx.last_turn_id:
        ctx.turn_count += 1
        ctx.last_turn_id = unit.turn_id
        reporter.activity(
            ActivityType.TURN_START,
            f"{name} - Turn {ctx.turn_count} starting",
            turnNumber=ctx.turn_count,
        )

    for block in unit.content:
        if isinstance(block, TextContent):
            ctx.final_text = block.text
            reporter.activity(
                ActivityType.THINKING,
                f"{name} is formulating response (Turn {ctx.turn_count})",
                response=block.text,
                turnNumber=ctx.turn_count,
            )
            reporter.progress(
                "writing",
                f"{name} is writing the article...",
                preview=block.text[:PREVIEW_CHARS],
            )
        elif isinstance(block, ToolInvocation):
            if block.name == WEB_SEARCH_TOOL:
                query = str(block.input.get("query", ""))
                reporter.activity(
                    ActivityType.WEB_SEARCH,
                    f'Searching for: "{query}"',
                    tool=block.name,
                    searchQuery=query,
                    turnNumber=ctx.turn_count,
                )
            reporter.activity(
                ActivityType.TOOL_USE,
                f"Using tool: {block.name}",
                tool=block.name,
                toolInput=block.input,
                toolId=block.tool_id,
                turnNumber=ctx.turn_count,
            )
            reporter.progress(
                "tool_use",
                f"{name} is using {block.name}...",
                tool=block.name,
                details=json.dumps(block.input, default=str)[:PREVIEW_CHARS],
            )


def _handle_result(ctx: SessionContext, unit: TerminalResult) -> None:
    if unit.text:
        ctx.final_text = unit.text
    ctx.cost = unit.cost_usd
    if unit.usage is not None:
        ctx.usage = TokenUsage(
            input_tokens=unit.usage.input_tokens or ctx.usage.input_tokens,
            output_tokens=unit.usage.output_tokens or ctx.usage.output_tokens,
        )
    ctx.hit_max_turns = unit.hit_max_turns
    usage = {"input": ctx.usage.input_tokens, "output": ctx.usage.output_tokens}
    duration = ctx.duration_ms()
    reporter = ctx.reporter

    reporter.activity(
        ActivityType.RESPONSE,
        f"Max turns reached ({ctx.turn_count})" if unit.hit_max_turns else "Completed generation",
        response=ctx.final_text,
        cost=ctx.cost,
        tokenUsage=usage,
        duration=duration,
        totalTurns=ctx.turn_count,
        hitMaxTurns=unit.hit_max_turns,
        errors=list(unit.errors),
    )
    reporter.activity(
        ActivityType.CONVERSATION_SUMMARY,
        f"Conversation completed - {ctx.turn_count} turns, {ctx.message_count} messages",
        summary={
            "totalTurns": ctx.turn_count,
            "totalMessages": ctx.message_count,
            "duration": duration,
            "hitMaxTurns": unit.hit_max_turns,
            "hasErrors": bool(unit.errors),
            "cost": ctx.cost,
            "tokenUsage": usage,
        },
    )
    reporter.progress("finalizing", f"{ctx.persona.name} is finalizing the article...")


def handle_unit(ctx: SessionContext, unit: StreamUnit) -> None:
    """Report one stream unit and fold it into the session context."""
    reporter = ctx.reporter
    name = ctx.persona.name

    if isinstance(unit, SystemInit):
        logger.info("[%s] System initialized with %d tools", ctx.persona.id, len(unit.tools))
    elif isinstance(unit, UserInput):
        if unit.message_id not in ctx.seen_inputs:
            ctx.seen_inputs.add(unit.message_id)
            reporter.activity(
                ActivityType.INPUT,
                f"User input to {name}",
                event_id=unit.message_id,
                content=unit.content,
                turnNumber=ctx.turn_count + 1,
            )
    elif isinstance(unit, AssistantMessage):
        _handle_assistant(ctx, unit)
    elif isinstance(unit, ToolResult):
        reporter.activity(
            ActivityType.TOOL_RESULT,
            "Received tool results",
            toolOutput=unit.output,
            toolId=unit.tool_use_id,
            searchResults=parse_search_results(unit.output),
            turnNumber=ctx.turn_count,
        )
        reporter.progress("tool_result", f"{name} received research results...")
    elif isinstance(unit, TerminalResult):
        _handle_result(ctx, unit)
    elif isinstance(unit, StreamFault):
        logger.warning("[%s] Stream fault: %s", ctx.persona.id, unit.error)
        reporter.activity(
            ActivityType.ERROR,
            f"Error occurred: {unit.error}",
            error=unit.error,
        )
    elif isinstance(unit, UnknownMessage):
        logger.debug("[%s] Skipping %s message", ctx.persona.id, unit.kind)


async def run_agent_session(
    persona: Persona,
    topic: str,
    client: AgentClient,
    sink: EventSink,
    prompts: PromptsConfig,
    session: SessionConfig,
    heartbeat_interval_sec: float = 3.0,
) -> AgentRunResult:
    """Run one persona's research session and return its article.

    Raises:
        ProviderNotConfiguredError: If the client has no credentials.
        NoResultError: If the conversation produced no text at all.
        ProviderError: If the conversation could not be started.
    """
    logger.info("[%s] Starting...", persona.id)
    reporter = AgentReporter(sink, persona)
    reporter.status(EventName.AGENT_THINKING, f"{persona.name} is analyzing the story...")

    if not client.configured():
        raise ProviderNotConfiguredError(
            client.name(), "API key is not configured. Please add it to your .env file."
        )

    ctx = SessionContext(reporter=reporter)
    async with heartbeat(reporter, f"{persona.name} is researching", heartbeat_interval_sec):
        prompt = build_research_prompt(persona, topic, prompts)
        reporter.activity(ActivityType.PROMPT, f"Sending prompt to {persona.name}", prompt=prompt)

        async for unit in client.submit(
            prompt,
            allowed_tools=session.allowed_tools,
            max_turns=session.max_turns,
            max_tokens=session.max_tokens,
        ):
            ctx.message_count += 1
            try:
                handle_unit(ctx, unit)
            except Exception as exc:
                logger.exception("[%s] Error processing message", persona.id)
                reporter.activity(
                    ActivityType.ERROR,
                    f"Error processing message: {exc}",
                    error=str(exc),
                )

        if not ctx.final_text:
            raise NoResultError(f"No result received from {persona.name}")

        result = parse_article(ctx.final_text, persona, ctx.cost, ctx.hit_max_turns)

    logger.info("[%s] Completed - Cost: $%.4f", persona.id, result.cost)
    return result
