from __future__ import annotations


class LLMError(Exception):
    """Base error for LLM gateway failures."""


class RequestConfigError(LLMError):
    """The request cannot be sent: bad messages or unusable model config."""

    def __init__(self, message: str):
        super().__init__(f"Configuration error: {message}")


class APIError(LLMError):
    """The provider call failed."""

    def __init__(self, message: str):
        super().__init__(f"API error: {message}")


# Messages shared with the orchestration layer
ERROR_MESSAGES = {
    "API_KEY_REQUIRED": "API key cannot be empty",
    "MODEL_NOT_FOUND": "Model does not exist",
    "TEMPLATE_INVALID": "Template content is invalid",
    "EMPTY_INPUT": "Prompt cannot be empty",
    "OPTIMIZATION_FAILED": "Optimization failed",
    "ITERATION_FAILED": "Iteration failed",
    "TEST_FAILED": "Test failed",
    "MODEL_KEY_REQUIRED": "Model key cannot be empty",
    "INPUT_TOO_LONG": "Input is too long",
    "EMPTY_RESPONSE": "Model returned an empty response",
}
