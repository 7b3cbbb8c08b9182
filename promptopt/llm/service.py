"""
LLM Service

Resolves a model key to its configuration and provider, validates the
request and sends it, either as a single call or as a token stream.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from promptopt.models.manager import ModelManager
from promptopt.models.types import ModelConfig

from .base import MESSAGE_ROLES, LLMProvider, Message, StreamHandlers
from .errors import ERROR_MESSAGES, APIError, LLMError, RequestConfigError
from .factory import get_provider

logger = logging.getLogger("promptopt.llm")

MessageInput = Union[Message, Mapping[str, Any]]


def validate_messages(messages: Sequence[MessageInput]) -> List[Message]:
    """
    Check message shape and convert to Message models.

    Raises:
        RequestConfigError: Not a list, empty, or a message is malformed
    """
    if not isinstance(messages, (list, tuple)):
        raise RequestConfigError("Messages must be a list")
    if not messages:
        raise RequestConfigError("Message list cannot be empty")

    validated = []
    for msg in messages:
        data = msg.model_dump() if isinstance(msg, Message) else msg
        if not isinstance(data, Mapping) or not data.get("role") or not data.get("content"):
            raise RequestConfigError("Invalid message: missing role or content")
        if data["role"] not in MESSAGE_ROLES:
            raise RequestConfigError(f"Unsupported message role: {data['role']}")
        if not isinstance(data["content"], str):
            raise RequestConfigError("Message content must be a string")
        validated.append(Message(role=data["role"], content=data["content"]))
    return validated


def validate_model_config(config: Optional[ModelConfig]) -> None:
    if config is None:
        raise RequestConfigError("Model configuration cannot be empty")
    if not config.provider:
        raise RequestConfigError("Model provider cannot be empty")
    if not config.api_key:
        raise RequestConfigError(ERROR_MESSAGES["API_KEY_REQUIRED"])
    if not config.default_model:
        raise RequestConfigError("Default model cannot be empty")
    if not config.enabled:
        raise RequestConfigError("Model is not enabled")


class LLMService:
    """Gateway to the configured LLM providers."""

    def __init__(self, model_manager: ModelManager, providers: Optional[Dict[str, LLMProvider]] = None):
        """
        Args:
            model_manager: Source of model configurations
            providers: Fixed provider instances by model key, used instead of
                the factory (tests inject MockProvider here)
        """
        self.model_manager = model_manager
        self._overrides = dict(providers or {})
        self._cache: Dict[Tuple[str, str], LLMProvider] = {}

    async def _resolve(self, provider_key: str) -> Tuple[ModelConfig, LLMProvider]:
        if not provider_key:
            raise RequestConfigError("Model provider key cannot be empty")
        config = await self.model_manager.get_model(provider_key)
        if config is None:
            raise RequestConfigError(f"Model {provider_key} does not exist")
        validate_model_config(config)

        if provider_key in self._overrides:
            return config, self._overrides[provider_key]

        # Providers hold HTTP clients; reuse one per unchanged config
        cache_key = (provider_key, config.model_dump_json())
        provider = self._cache.get(cache_key)
        if provider is None:
            for stale_key in [k for k in self._cache if k[0] == provider_key]:
                logger.debug("Model %s config changed; closing previous provider", provider_key)
                await self._cache.pop(stale_key).aclose()
            provider = get_provider(config)
            self._cache[cache_key] = provider
        return config, provider

    async def send_message(self, messages: Sequence[MessageInput], provider_key: str) -> str:
        """
        Send messages and wait for the full response.

        Raises:
            RequestConfigError: Invalid messages or unusable model config
            APIError: The provider call failed
        """
        try:
            validated = validate_messages(messages)
            config, provider = await self._resolve(provider_key)
            logger.debug(
                "Sending message: provider=%s model=%s messages=%d",
                config.provider,
                config.default_model,
                len(validated),
            )
            return await provider.complete(validated)
        except LLMError:
            raise
        except Exception as exc:
            raise APIError(f"Failed to send message: {exc}") from exc

    async def send_message_stream(
        self,
        messages: Sequence[MessageInput],
        provider_key: str,
        handlers: StreamHandlers,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Stream a response through ``handlers``.

        ``on_token`` fires once per chunk and ``on_complete`` once at the end.
        On failure ``on_error`` fires once and the error is raised. When
        ``cancel_event`` is set the stream is closed and the method returns
        without calling ``on_complete``.
        """
        stream = None
        try:
            validated = validate_messages(messages)
            config, provider = await self._resolve(provider_key)
            logger.debug("Starting stream: provider=%s model=%s", config.provider, config.default_model)

            stream = provider.stream(validated)
            async for token in stream:
                if cancel_event is not None and cancel_event.is_set():
                    break
                handlers.on_token(token)

            if cancel_event is not None and cancel_event.is_set():
                logger.debug("Stream cancelled for %s", provider_key)
                return
            handlers.on_complete()
        except Exception as exc:
            error = exc if isinstance(exc, LLMError) else APIError(f"Stream request failed: {exc}")
            logger.error("Stream request failed: %s", error)
            handlers.on_error(error)
            if error is exc:
                raise
            raise error from exc
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def test_connection(self, provider_key: str) -> str:
        """Send a trivial request. Returns the reply text."""
        if not provider_key:
            raise RequestConfigError("Model provider key cannot be empty")
        return await self.send_message([Message(role="user", content="Please reply ok")], provider_key)

    async def aclose(self) -> None:
        for provider in list(self._cache.values()) + list(self._overrides.values()):
            await provider.aclose()
        self._cache.clear()


__all__ = ["LLMService", "validate_messages", "validate_model_config"]
