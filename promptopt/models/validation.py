"""Safety and range checks for per-model LLM parameters.

``llm_params`` are passed through to the provider SDK, so names that could
redirect a request or leak credentials are refused outright. Known
parameters are type and range checked; unknown ones only warn.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

# Substring match, case-insensitive
DANGEROUS_PARAMS = (
    "eval", "exec", "function", "script", "code",
    "apiKey", "api_key", "secret", "password", "credentials",
    "authorization", "baseURL", "base_url", "endpoint", "url",
    "__proto__", "constructor", "prototype", "require", "import",
)

OPENAI_COMPATIBLE = ("openai", "deepseek", "custom", "zhipu", "siliconflow")


@dataclass(frozen=True)
class ParameterDefinition:
    name: str
    type: str  # number, integer, string, boolean, string_list
    providers: Tuple[str, ...]
    default: Any = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    @property
    def expected_range(self) -> str:
        if self.min_value is not None and self.max_value is not None:
            return f"{self.min_value} - {self.max_value}"
        if self.min_value is not None:
            return f">= {self.min_value}"
        if self.max_value is not None:
            return f"<= {self.max_value}"
        return ""


PARAMETER_DEFINITIONS: List[ParameterDefinition] = [
    ParameterDefinition("temperature", "number", OPENAI_COMPATIBLE + ("gemini",), 0.7, 0.0, 2.0),
    ParameterDefinition("top_p", "number", OPENAI_COMPATIBLE, 1.0, 0.0, 1.0),
    ParameterDefinition("max_tokens", "integer", OPENAI_COMPATIBLE, 40000, 1),
    ParameterDefinition("presence_penalty", "number", OPENAI_COMPATIBLE, 0, -2.0, 2.0),
    ParameterDefinition("frequency_penalty", "number", OPENAI_COMPATIBLE, 0, -2.0, 2.0),
    ParameterDefinition("timeout", "integer", OPENAI_COMPATIBLE, 60000, 1000),  # ms
    ParameterDefinition("maxOutputTokens", "integer", ("gemini",), 40000, 1),
    ParameterDefinition("topP", "number", ("gemini",), 1.0, 0.0, 1.0),
    ParameterDefinition("topK", "integer", ("gemini",), 1, 1),
    ParameterDefinition("candidateCount", "integer", ("gemini",), 1, 1, 8),
    ParameterDefinition("stopSequences", "string_list", ("gemini",), None),
]


@dataclass
class ParamIssue:
    """A single problem with one parameter."""

    name: str
    value: Any
    message: str
    expected_type: Optional[str] = None
    expected_range: Optional[str] = None


@dataclass
class LLMParamsValidation:
    errors: List[ParamIssue] = field(default_factory=list)
    warnings: List[ParamIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": [{"name": e.name, "message": e.message} for e in self.errors],
            "warnings": [{"name": w.name, "message": w.message} for w in self.warnings],
        }


def is_dangerous_parameter(name: str) -> bool:
    lowered = name.lower()
    return any(d.lower() in lowered for d in DANGEROUS_PARAMS)


def get_supported_parameters(provider: str) -> List[ParameterDefinition]:
    return [d for d in PARAMETER_DEFINITIONS if provider in d.providers]


def _type_matches(value: Any, expected: str) -> bool:
    if isinstance(value, bool):
        return expected == "boolean"
    if expected == "number":
        return isinstance(value, (int, float)) and not math.isnan(value)
    if expected == "integer":
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if expected == "string":
        return isinstance(value, str)
    if expected == "boolean":
        return False
    return True


def _check_parameter(value: Any, definition: ParameterDefinition) -> Optional[str]:
    if definition.type == "string_list":
        if not isinstance(value, list):
            return f"Parameter '{definition.name}' should be a string array, but received {type(value).__name__}"
        if not all(isinstance(item, str) for item in value):
            return f"Parameter '{definition.name}' array should only contain strings"
        return None

    if not _type_matches(value, definition.type):
        return (
            f"Parameter '{definition.name}' should be of type {definition.type}, "
            f"but received {type(value).__name__}"
        )

    if definition.type in ("number", "integer"):
        if definition.min_value is not None and value < definition.min_value:
            return f"Parameter '{definition.name}' value {value} is less than minimum value {definition.min_value}"
        if definition.max_value is not None and value > definition.max_value:
            return f"Parameter '{definition.name}' value {value} is greater than maximum value {definition.max_value}"
    return None


def validate_llm_params(params: Optional[Mapping[str, Any]], provider: str) -> LLMParamsValidation:
    """
    Validate provider parameters.

    Args:
        params: Parameter mapping from a ModelConfig (None is valid).
        provider: Provider id used to pick the applicable definitions.

    Returns:
        LLMParamsValidation with blocking errors and advisory warnings.
    """
    result = LLMParamsValidation()
    if not params:
        return result

    supported = {d.name: d for d in get_supported_parameters(provider)}

    for name, value in params.items():
        if is_dangerous_parameter(name):
            result.errors.append(
                ParamIssue(
                    name,
                    value,
                    f"Parameter '{name}' is potentially dangerous and not allowed for security reasons.",
                )
            )
            continue

        definition = supported.get(name)
        if definition is None:
            result.warnings.append(
                ParamIssue(
                    name,
                    value,
                    f"Parameter '{name}' is not defined for {provider}. "
                    "It will be passed to the SDK but may not be supported.",
                )
            )
            continue

        message = _check_parameter(value, definition)
        if message:
            result.errors.append(
                ParamIssue(name, value, message, definition.type, definition.expected_range)
            )

    return result


__all__ = [
    "DANGEROUS_PARAMS",
    "PARAMETER_DEFINITIONS",
    "ParameterDefinition",
    "ParamIssue",
    "LLMParamsValidation",
    "get_supported_parameters",
    "is_dangerous_parameter",
    "validate_llm_params",
]
