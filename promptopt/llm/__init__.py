"""LLM gateway: message model, providers and the streaming service."""

from .base import LLMProvider, Message, StreamCallbacks, StreamHandlers
from .errors import APIError, LLMError, RequestConfigError
from .factory import PROVIDERS, get_provider, register_provider
from .providers import GeminiProvider, MockProvider, OpenAICompatibleProvider
from .service import LLMService, validate_messages

__all__ = [
    "Message",
    "StreamHandlers",
    "StreamCallbacks",
    "LLMProvider",
    "MockProvider",
    "OpenAICompatibleProvider",
    "GeminiProvider",
    "PROVIDERS",
    "get_provider",
    "register_provider",
    "LLMService",
    "validate_messages",
    "LLMError",
    "RequestConfigError",
    "APIError",
]
