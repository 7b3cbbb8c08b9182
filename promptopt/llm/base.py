from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, List, Literal, Optional, Protocol

from pydantic import BaseModel

from promptopt.models.types import ModelConfig

MessageRole = Literal["system", "user", "assistant"]
MESSAGE_ROLES = ("system", "user", "assistant")


class Message(BaseModel):
    """One chat message sent to a provider."""

    role: MessageRole
    content: str


class StreamHandlers(Protocol):
    """Protocol for receiving events from a streamed completion."""

    def on_token(self, token: str) -> None:
        """Called once per chunk received from the provider."""
        ...

    def on_complete(self) -> None:
        """Called once after the last chunk."""
        ...

    def on_error(self, error: Exception) -> None:
        """Called once when the stream fails, before the error is raised."""
        ...


class StreamCallbacks:
    """
    StreamHandlers built from plain functions.
    Any handler left as None is a no-op.
    """

    def __init__(
        self,
        on_token: Optional[Callable[[str], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self._on_token = on_token
        self._on_complete = on_complete
        self._on_error = on_error

    def on_token(self, token: str) -> None:
        if self._on_token:
            self._on_token(token)

    def on_complete(self) -> None:
        if self._on_complete:
            self._on_complete()

    def on_error(self, error: Exception) -> None:
        if self._on_error:
            self._on_error(error)


class LLMProvider(ABC):
    """Abstract Base Class for LLM Providers."""

    def __init__(self, config: ModelConfig):
        self.config = config

    @abstractmethod
    async def complete(self, messages: List[Message]) -> str:
        """
        Generate a full completion.

        Args:
            messages: Validated chat messages.

        Returns:
            The response text (may be empty).
        """

    @abstractmethod
    def stream(self, messages: List[Message]) -> AsyncIterator[str]:
        """Yield response chunks as they arrive."""

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
