"""Prompt record history: model, validation and the chain-aware manager."""

from .errors import (
    ChainNotFoundError,
    HistoryError,
    HistoryNotInitializedError,
    RecordNotFoundError,
    RecordValidationError,
    StorageError,
    StorageUnavailableError,
)
from .manager import DEFAULT_MAX_RECORDS, HistoryManager
from .models import PromptChain, PromptRecord, RecordType
from .validator import validate_record

__all__ = [
    "HistoryManager",
    "DEFAULT_MAX_RECORDS",
    "PromptRecord",
    "PromptChain",
    "RecordType",
    "validate_record",
    "HistoryError",
    "HistoryNotInitializedError",
    "StorageError",
    "StorageUnavailableError",
    "RecordValidationError",
    "RecordNotFoundError",
    "ChainNotFoundError",
]
