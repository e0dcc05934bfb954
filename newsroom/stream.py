"""Decode raw provider messages into a closed set of stream units.

Providers yield plain dicts tagged by ``type`` (``system``, ``user``,
``assistant``, ``tool_result``, ``result``, ``error``). ``decode_unit`` maps
each one onto exactly one of the dataclasses below so the session runners
only ever dispatch over known variants. Decoding never raises: a message of
a known type with malformed fields becomes a ``StreamFault``.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Union

from newsroom.models import TokenUsage

logger = logging.getLogger(__name__)

WEB_SEARCH_TOOL = "WebSearch"


@dataclass(frozen=True)
class SystemInit:
    tools: tuple[str, ...] = ()
    model: str | None = None


@dataclass(frozen=True)
class UserInput:
    message_id: str
    content: Any = None


@dataclass(frozen=True)
class TextContent:
    text: str


@dataclass(frozen=True)
class ToolInvocation:
    tool_id: str | None
    name: str
    input: dict = field(default_factory=dict)


@dataclass(frozen=True)
class AssistantMessage:
    turn_id: str | None
    content: tuple[Union[TextContent, ToolInvocation], ...] = ()


@dataclass(frozen=True)
class ToolResult:
    tool_use_id: str | None
    output: Any = None


@dataclass(frozen=True)
class TerminalResult:
    text: str | None
    cost_usd: float = 0.0
    usage: TokenUsage | None = None
    hit_max_turns: bool = False
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class StreamFault:
    error: str
    raw: Any = None


@dataclass(frozen=True)
class UnknownMessage:
    kind: str


StreamUnit = Union[
    SystemInit,
    UserInput,
    AssistantMessage,
    ToolResult,
    TerminalResult,
    StreamFault,
    UnknownMessage,
]


class _Malformed(ValueError):
    """Internal: a known message type carried unusable fields."""


def _decode_block(block: Any) -> TextContent | ToolInvocation | None:
    if not isinstance(block, dict):
        raise _Malformed(f"content block is {type(block).__name__}, expected object")
    block_type = block.get("type")
    if block_type == "text":
        text = block.get("text")
        if not isinstance(text, str):
            raise _Malformed("text block without text")
        return TextContent(text=text)
    if block_type == "tool_use":
        tool_input = block.get("input") or {}
        if not isinstance(tool_input, dict):
            raise _Malformed("tool_use block input is not an object")
        return ToolInvocation(
            tool_id=block.get("id"),
            name=str(block.get("name") or "unknown"),
            input=tool_input,
        )
    # thinking, redacted_thinking, etc. carry nothing the runners report
    return None


def _decode_assistant(raw: dict) -> AssistantMessage:
    message = raw.get("message")
    if not isinstance(message, dict):
        raise _Malformed("assistant message without message body")
    content = message.get("content")
    if not isinstance(content, list):
        raise _Malformed("assistant message content is not a list")
    blocks = tuple(b for b in (_decode_block(block) for block in content) if b is not None)
    return AssistantMessage(turn_id=message.get("id"), content=blocks)


def _decode_user(raw: dict) -> UserInput:
    message = raw.get("message")
    message_id = raw.get("uuid") or json.dumps(message, sort_keys=True, default=str)
    content = message.get("content") if isinstance(message, dict) else message
    return UserInput(message_id=str(message_id), content=content)


def _decode_result(raw: dict) -> TerminalResult:
    text = raw.get("result")
    if text is None:
        text = raw.get("content") or raw.get("text")
    if text is not None and not isinstance(text, str):
        text = json.dumps(text, default=str)

    cost = raw.get("total_cost_usd") or 0
    if not isinstance(cost, (int, float)) or isinstance(cost, bool) or cost < 0:
        raise _Malformed(f"invalid total_cost_usd: {cost!r}")

    usage: TokenUsage | None = None
    usage_raw = raw.get("usage")
    if isinstance(usage_raw, dict):
        usage = TokenUsage(
            input_tokens=int(usage_raw.get("input_tokens") or 0),
            output_tokens=int(usage_raw.get("output_tokens") or 0),
        )

    errors = raw.get("errors") or ()
    return TerminalResult(
        text=text,
        cost_usd=float(cost),
        usage=usage,
        hit_max_turns=raw.get("subtype") == "error_max_turns",
        errors=tuple(str(e) for e in errors),
    )


def decode_unit(raw: Any) -> StreamUnit:
    """Classify one raw provider message. Never raises."""
    if not isinstance(raw, dict):
        return StreamFault(error=f"Malformed stream message: {type(raw).__name__}", raw=raw)

    kind = raw.get("type")
    try:
        if kind == "system":
            return SystemInit(tools=tuple(raw.get("tools") or ()), model=raw.get("model"))
        if kind == "user":
            return _decode_user(raw)
        if kind == "assistant":
            return _decode_assistant(raw)
        if kind == "tool_result":
            output = raw.get("output")
            if output is None:
                output = raw.get("result")
            if output is None:
                output = raw.get("content")
            return ToolResult(tool_use_id=raw.get("tool_use_id"), output=output)
        if kind == "result":
            return _decode_result(raw)
        if kind == "error":
            error = raw.get("error") or raw.get("message") or "Unknown error"
            return StreamFault(error=str(error), raw=raw)
    except (_Malformed, TypeError, ValueError) as exc:
        return StreamFault(error=f"Malformed {kind} message: {exc}", raw=raw)

    logger.debug("Ignoring stream message of type %r", kind)
    return UnknownMessage(kind=str(kind))
