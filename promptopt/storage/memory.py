from __future__ import annotations

from typing import Dict, Optional

from .base import StorageProvider, StorageQuotaExceeded


class MemoryStorageProvider(StorageProvider):
    """
    Dict-backed provider for tests and throwaway sessions.

    An optional byte quota mimics a browser store that refuses writes once
    it is full.
    """

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._data: Dict[str, str] = {}

    def _used_bytes(self, excluding: str) -> int:
        return sum(len(v.encode("utf-8")) for k, v in self._data.items() if k != excluding)

    async def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            size = len(value.encode("utf-8"))
            if self._used_bytes(excluding=key) + size > self.quota_bytes:
                raise StorageQuotaExceeded(key, size, self.quota_bytes)
        self._data[key] = value

    async def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    async def clear_all(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return sorted(self._data)
