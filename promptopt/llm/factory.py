"""Factory for instantiating LLM providers based on model configuration."""

from __future__ import annotations

from promptopt.models.types import ModelConfig

from .base import LLMProvider
from .providers import GeminiProvider, MockProvider, OpenAICompatibleProvider

# Registry of available providers. Unlisted provider names speak the
# OpenAI chat completions protocol.
PROVIDERS = {
    "mock": MockProvider,
    "openai": OpenAICompatibleProvider,
    "deepseek": OpenAICompatibleProvider,
    "custom": OpenAICompatibleProvider,
    "gemini": GeminiProvider,
}


def get_provider(config: ModelConfig) -> LLMProvider:
    """
    Instantiate the provider class for ``config.provider``.

    Args:
        config: Model configuration the provider is bound to.

    Returns:
        Instantiated LLMProvider.
    """
    provider_class = PROVIDERS.get((config.provider or "").lower(), OpenAICompatibleProvider)
    return provider_class(config)


def register_provider(name: str, provider_class: type) -> None:
    """
    Register a custom provider class.

    Args:
        name: Provider name as used in ModelConfig.provider.
        provider_class: Class that inherits from LLMProvider.
    """
    if not issubclass(provider_class, LLMProvider):
        raise TypeError(f"{provider_class} must be a subclass of LLMProvider")
    PROVIDERS[name.lower()] = provider_class
