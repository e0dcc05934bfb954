"""Provider health check: ping the model before starting a simulation."""

import asyncio
import logging

from newsroom.providers.base import AgentClient, ProviderError
from newsroom.stream import StreamFault

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


async def _ping(client: AgentClient) -> None:
    async for unit in client.submit(_PING_PROMPT, max_turns=1, max_tokens=16):
        if isinstance(unit, StreamFault):
            raise ProviderError(client.name(), unit.error)


async def run_health_check(client: AgentClient) -> tuple[bool, str]:
    """Ping the client once.

    Returns:
        (ok, error_message); error_message is "" when ok is True.
    """
    if not client.configured():
        return False, "API key is not configured"
    try:
        await asyncio.wait_for(_ping(client), timeout=_TIMEOUT_SEC)
        return True, ""
    except TimeoutError:
        return False, f"Health check timed out after {_TIMEOUT_SEC}s"
    except Exception as exc:
        logger.debug("Health check failed for %s: %s", client.name(), exc)
        return False, str(exc)
