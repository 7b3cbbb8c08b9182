"""Prompt orchestration: optimize, iterate and test flows."""

from .errors import IterationError, OptimizationError, PromptError, ServiceDependencyError, TestError
from .service import DEFAULT_ITERATE_TEMPLATE, DEFAULT_OPTIMIZE_TEMPLATE, PromptService

__all__ = [
    "PromptService",
    "DEFAULT_OPTIMIZE_TEMPLATE",
    "DEFAULT_ITERATE_TEMPLATE",
    "PromptError",
    "OptimizationError",
    "IterationError",
    "TestError",
    "ServiceDependencyError",
]
