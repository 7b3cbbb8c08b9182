from __future__ import annotations


class PromptError(Exception):
    """Base error for prompt optimization flows."""


class OptimizationError(PromptError):
    def __init__(self, message: str, original_prompt: str):
        super().__init__(message)
        self.original_prompt = original_prompt


class IterationError(PromptError):
    def __init__(self, message: str, original_prompt: str, iterate_input: str):
        super().__init__(message)
        self.original_prompt = original_prompt
        self.iterate_input = iterate_input


class TestError(PromptError):
    __test__ = False

    def __init__(self, message: str, prompt: str, test_input: str):
        super().__init__(message)
        self.prompt = prompt
        self.test_input = test_input


class ServiceDependencyError(PromptError):
    """A required collaborator was not supplied."""

    def __init__(self, message: str, service_name: str):
        super().__init__(message)
        self.service_name = service_name
