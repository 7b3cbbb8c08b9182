from __future__ import annotations

from typing import List


class HistoryError(Exception):
    """Base error for the history subsystem."""


class HistoryNotInitializedError(HistoryError):
    """An operation ran before HistoryManager.init() succeeded."""

    def __init__(self, message: str = "History manager is not initialized; call init() first"):
        super().__init__(message)


class StorageError(HistoryError):
    """The record store could not be read or written."""

    def __init__(self, message: str, operation: str):
        super().__init__(message)
        self.operation = operation  # read, write, delete, init


class StorageUnavailableError(StorageError):
    """The writability probe run by init() failed."""

    def __init__(self, message: str = "Storage is unavailable"):
        super().__init__(message, operation="init")


class RecordValidationError(HistoryError):
    """A record failed validation. ``errors`` lists every problem found."""

    def __init__(self, message: str, errors: List[str]):
        super().__init__(f"{message}: {'; '.join(errors)}" if errors else message)
        self.errors = list(errors)


class RecordNotFoundError(HistoryError):
    def __init__(self, record_id: str):
        super().__init__(f"Record not found: {record_id}")
        self.record_id = record_id


class ChainNotFoundError(HistoryError):
    def __init__(self, chain_id: str):
        super().__init__(f"Record chain not found: {chain_id}")
        self.chain_id = chain_id
