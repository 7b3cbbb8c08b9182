"""
JSON file storage

Each key is kept as its own file under a data directory, which is how the
CLI persists history between runs.
"""

from __future__ import annotations

import contextlib
import hashlib
import os
import re
import tempfile
from pathlib import Path
from typing import Optional

from .base import StorageProvider, StorageProviderError

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


class FileStorageProvider(StorageProvider):
    """Stores each key as a UTF-8 file in ``directory``."""

    def __init__(self, directory: Path):
        """
        Initialize file storage

        Args:
            directory: Folder holding one file per key. Created if missing.
        """
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageProviderError(
                f"Cannot create storage directory {self.directory}: {exc}", operation="init"
            ) from exc

    def _path_for(self, key: str) -> Path:
        # Keys such as "app:templates" are not valid file names everywhere
        safe = _SAFE_KEY.sub("_", key)
        if safe != key:
            safe = f"{safe}-{hashlib.sha256(key.encode()).hexdigest()[:8]}"
        return self.directory / f"{safe}.json"

    async def get_item(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageProviderError(f"Failed to read {path}: {exc}", operation="read") from exc

    async def set_item(self, key: str, value: str) -> None:
        path = self._path_for(key)
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except OSError as exc:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
            raise StorageProviderError(f"Failed to write {path}: {exc}", operation="write") from exc

    async def remove_item(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageProviderError(f"Failed to delete {path}: {exc}", operation="delete") from exc

    async def clear_all(self) -> None:
        try:
            for path in self.directory.glob("*.json"):
                path.unlink()
        except OSError as exc:
            raise StorageProviderError(
                f"Failed to clear {self.directory}: {exc}", operation="delete"
            ) from exc
