"""Anthropic Claude agent client using anthropic SDK with native async.

Runs a short agentic conversation on the Messages API. The web search tool
executes server-side, so one API call is one turn; a ``pause_turn`` stop
reason continues the conversation until the turn budget is spent.
"""

import asyncio
import json
import logging
import os
import time
import uuid
from collections.abc import AsyncIterator

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig, PricingConfig
from newsroom.providers.base import AgentClient, ProviderError
from newsroom.stream import WEB_SEARCH_TOOL

logger = logging.getLogger(__name__)

_WEB_SEARCH_TOOL_TYPE = "web_search_20250305"
_SERVER_TOOL_NAMES = {"web_search": WEB_SEARCH_TOOL}


def estimate_cost(
    pricing: PricingConfig,
    input_tokens: int,
    output_tokens: int,
    web_searches: int = 0,
) -> float:
    """Return the USD cost of a conversation from its cumulative usage."""
    token_cost = (
        input_tokens * pricing.input_per_mtok + output_tokens * pricing.output_per_mtok
    ) / 1_000_000
    return token_cost + web_searches * pricing.web_search_per_1k / 1000


def _search_output(content) -> str:
    """Serialize a web_search_tool_result payload as JSON text."""
    if isinstance(content, list):
        return json.dumps([
            {"title": getattr(r, "title", "") or "", "url": getattr(r, "url", "") or ""}
            for r in content
        ])
    return json.dumps({"error": getattr(content, "error_code", "unknown")})


def split_content(response) -> list[dict]:
    """Split one API response into assistant and tool_result messages.

    Blocks keep their order. Consecutive text/tool-use blocks form one
    assistant message; each search result block becomes its own tool_result
    message. All assistant messages share the response id as their turn id.
    """
    messages: list[dict] = []
    segment: list[dict] = []

    def flush() -> None:
        if segment:
            messages.append({
                "type": "assistant",
                "message": {"id": response.id, "content": list(segment)},
            })
            segment.clear()

    for block in response.content:
        if block.type == "text":
            segment.append({"type": "text", "text": block.text})
        elif block.type in ("server_tool_use", "tool_use"):
            segment.append({
                "type": "tool_use",
                "id": block.id,
                "name": _SERVER_TOOL_NAMES.get(block.name, block.name),
                "input": block.input or {},
            })
        elif block.type == "web_search_tool_result":
            flush()
            messages.append({
                "type": "tool_result",
                "tool_use_id": block.tool_use_id,
                "output": _search_output(block.content),
            })
    flush()
    return messages


class AnthropicAgentClient(AgentClient):
    """Anthropic Claude agent client via anthropic SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        self._client: anthropic_sdk.AsyncAnthropic | None = None
        if api_key:
            self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key, base_url=config.base_url)
        else:
            logger.warning("No API key in %s; %s sessions will fail", config.api_key_env, config.name)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def configured(self) -> bool:
        return self._client is not None

    def _tool_params(self, allowed_tools: frozenset[str]) -> list[dict]:
        tools: list[dict] = []
        for tool in sorted(allowed_tools):
            if tool == WEB_SEARCH_TOOL:
                tools.append({
                    "type": _WEB_SEARCH_TOOL_TYPE,
                    "name": "web_search",
                    "max_uses": self._config.max_web_searches,
                })
            else:
                logger.warning("Tool %r is not supported by %s, ignoring", tool, self._config.name)
        return tools

    async def _create(self, messages: list[dict], tools: list[dict], max_tokens: int):
        if self._client is None:
            raise ProviderError(self._config.name, f"Missing API key: {self._config.api_key_env}")
        kwargs = {
            "model": self._config.model,
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if tools:
            kwargs["tools"] = tools
        try:
            return await asyncio.wait_for(
                self._client.messages.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

    async def stream_messages(
        self,
        prompt: str,
        *,
        allowed_tools: frozenset[str],
        max_turns: int,
        max_tokens: int | None = None,
    ) -> AsyncIterator[dict]:
        tools = self._tool_params(allowed_tools)
        max_tokens = max_tokens or self._config.max_tokens

        yield {
            "type": "system",
            "subtype": "init",
            "tools": sorted(allowed_tools),
            "model": self._config.model,
        }
        yield {
            "type": "user",
            "uuid": uuid.uuid4().hex,
            "message": {"role": "user", "content": prompt},
        }

        messages: list[dict] = [{"role": "user", "content": prompt}]
        input_tokens = output_tokens = web_searches = 0
        final_text: str | None = None
        stop_reason: str | None = None
        errors: list[str] = []
        turns = 0

        while turns < max_turns:
            start = time.monotonic()
            try:
                response = await self._create(messages, tools, max_tokens)
            except ProviderError as exc:
                if turns == 0:
                    raise
                # Keep what earlier turns produced.
                logger.warning("%s failed on turn %d: %s", self._config.name, turns + 1, exc)
                errors.append(str(exc))
                yield {"type": "error", "error": str(exc)}
                break
            turns += 1

            if response.usage:
                input_tokens += response.usage.input_tokens or 0
                output_tokens += response.usage.output_tokens or 0
                server_use = getattr(response.usage, "server_tool_use", None)
                if server_use is not None:
                    web_searches += getattr(server_use, "web_search_requests", 0) or 0

            logger.info(
                "Anthropic turn %d: %.2fs, stop=%s, %d/%d tokens",
                turns,
                time.monotonic() - start,
                response.stop_reason,
                input_tokens,
                output_tokens,
            )

            for message in split_content(response):
                yield message

            text = "".join(b.text for b in response.content if b.type == "text").strip()
            if text:
                final_text = text

            stop_reason = response.stop_reason
            if stop_reason != "pause_turn":
                break
            messages.append({"role": "assistant", "content": response.content})

        if errors:
            subtype = "error_during_execution"
        elif stop_reason == "pause_turn":
            subtype = "error_max_turns"
        else:
            subtype = "success"

        yield {
            "type": "result",
            "subtype": subtype,
            "result": final_text,
            "total_cost_usd": estimate_cost(
                self._config.pricing, input_tokens, output_tokens, web_searches
            ),
            "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
            "num_turns": turns,
            "errors": errors,
        }
