"""Abstract base for the model-call collaborator used by the session runners."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from newsroom.stream import StreamUnit, decode_unit


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class ProviderNotConfiguredError(ProviderError):
    """Raised when no API credentials are configured for the provider."""


class AgentClient(ABC):
    """Submits one prompt and streams back the conversation it produces."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    def configured(self) -> bool:
        """Return True when credentials for the provider are available."""
        ...

    @abstractmethod
    def stream_messages(
        self,
        prompt: str,
        *,
        allowed_tools: frozenset[str],
        max_turns: int,
        max_tokens: int | None = None,
    ) -> AsyncIterator[dict]:
        """Run one conversation and yield its raw messages in order.

        Messages are dicts tagged by ``type`` (see ``newsroom.stream``). The
        last message is a ``result`` carrying the final text and the
        cumulative cost in USD.

        Raises:
            ProviderError: When the conversation cannot be started.
        """
        ...

    async def submit(
        self,
        prompt: str,
        *,
        allowed_tools: frozenset[str] = frozenset(),
        max_turns: int = 1,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamUnit]:
        """Run one conversation and yield decoded stream units in order."""
        async for raw in self.stream_messages(
            prompt,
            allowed_tools=allowed_tools,
            max_turns=max_turns,
            max_tokens=max_tokens,
        ):
            yield decode_unit(raw)
