from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional


class StorageProviderError(Exception):
    """Raised by a storage provider when the backing store cannot be used."""

    def __init__(self, message: str, operation: str = "read"):
        super().__init__(message)
        self.operation = operation


class StorageQuotaExceeded(StorageProviderError):
    """The backing store is full."""

    def __init__(self, key: str, size: int, quota: int):
        super().__init__(
            f"Writing {size} bytes under '{key}' exceeds storage quota of {quota} bytes",
            operation="write",
        )
        self.key = key


class StorageProvider(ABC):
    """Abstract key-value store holding serialized strings.

    Every method is awaitable so that file, database and in-memory
    backends share one contract with callers.
    """

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        """Return the value stored under key, or None."""

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Store value under key, replacing any existing value."""

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Remove key. Removing a missing key is a no-op."""

    @abstractmethod
    async def clear_all(self) -> None:
        """Remove every key."""

    async def update_data(self, key: str, modifier: Callable[[Any], Any]) -> Any:
        """
        Read-modify-write a JSON value.

        The current value (decoded, or None when absent) is passed to
        ``modifier`` and its return value is encoded and written back. This
        is a plain last-writer-wins cycle with no locking.

        Returns:
            The value written.
        """
        raw = await self.get_item(key)
        current = None
        if raw is not None:
            try:
                current = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise StorageProviderError(f"Stored value for '{key}' is not valid JSON: {exc}") from exc
        updated = modifier(current)
        await self.set_item(key, json.dumps(updated, ensure_ascii=False))
        return updated
