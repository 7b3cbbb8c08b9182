from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ModelConfig(BaseModel):
    """Connection settings for one LLM provider entry."""

    model_config = ConfigDict(protected_namespaces=())

    name: str
    base_url: str = ""
    api_key: Optional[str] = None
    models: List[str] = Field(default_factory=list)
    default_model: str = ""
    enabled: bool = False
    provider: str = "custom"  # openai, gemini, deepseek, custom, mock
    llm_params: Dict[str, Any] = Field(default_factory=dict)

    def masked(self) -> "ModelConfig":
        """Copy with the API key hidden, for display."""
        if not self.api_key:
            return self.model_copy()
        hint = self.api_key[-4:] if len(self.api_key) > 8 else ""
        return self.model_copy(update={"api_key": f"****{hint}"})
