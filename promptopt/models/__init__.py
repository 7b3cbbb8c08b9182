"""Provider/model configuration management."""

from .defaults import build_default_models
from .errors import ModelConfigError, ModelError, ModelValidationError
from .manager import ModelManager, validate_model_config
from .types import ModelConfig
from .validation import LLMParamsValidation, validate_llm_params

__all__ = [
    "ModelConfig",
    "ModelManager",
    "build_default_models",
    "validate_model_config",
    "validate_llm_params",
    "LLMParamsValidation",
    "ModelError",
    "ModelConfigError",
    "ModelValidationError",
]
