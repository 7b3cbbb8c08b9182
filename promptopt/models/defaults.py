"""Built-in provider entries, filled from environment variables."""

from __future__ import annotations

import os
from typing import Dict, Mapping, Optional

from .types import ModelConfig


def build_default_models(env: Optional[Mapping[str, str]] = None) -> Dict[str, ModelConfig]:
    """
    Build the built-in model configs.

    Each entry is enabled only when its API key is present.

    Args:
        env: Variables to read from. Defaults to os.environ.
    """
    if env is None:
        env = os.environ

    def get(name: str) -> str:
        return (env.get(name) or "").strip()

    openai_key = get("OPENAI_API_KEY")
    gemini_key = get("GEMINI_API_KEY")
    deepseek_key = get("DEEPSEEK_API_KEY")
    custom_key = get("CUSTOM_API_KEY")
    custom_model = get("CUSTOM_API_MODEL")

    return {
        "openai": ModelConfig(
            name="OpenAI",
            base_url="https://api.openai.com/v1",
            api_key=openai_key or None,
            models=["gpt-4", "gpt-3.5-turbo"],
            default_model="gpt-3.5-turbo",
            enabled=bool(openai_key),
            provider="openai",
        ),
        "gemini": ModelConfig(
            name="Google Gemini",
            base_url="https://generativelanguage.googleapis.com/v1beta",
            api_key=gemini_key or None,
            models=["gemini-2.0-flash"],
            default_model="gemini-2.0-flash",
            enabled=bool(gemini_key),
            provider="gemini",
        ),
        "deepseek": ModelConfig(
            name="DeepSeek",
            base_url="https://api.siliconflow.cn/v1",
            api_key=deepseek_key or None,
            models=["Pro/deepseek-ai/DeepSeek-V3"],
            default_model="Pro/deepseek-ai/DeepSeek-V3",
            enabled=bool(deepseek_key),
            provider="deepseek",
        ),
        "custom": ModelConfig(
            name="Custom API",
            base_url=get("CUSTOM_API_BASE_URL"),
            api_key=custom_key or None,
            models=[custom_model] if custom_model else [],
            default_model=custom_model,
            enabled=bool(custom_key),
            provider="custom",
        ),
    }


__all__ = ["build_default_models"]
