from __future__ import annotations

from typing import List


class ModelError(Exception):
    """Base error for model configuration handling."""


class ModelConfigError(ModelError):
    """A model configuration is unknown, duplicated or cannot be used."""


class ModelValidationError(ModelConfigError):
    """A model configuration failed validation. ``errors`` lists every problem."""

    def __init__(self, message: str, errors: List[str]):
        super().__init__(f"{message}: {', '.join(errors)}" if errors else message)
        self.errors = list(errors)
