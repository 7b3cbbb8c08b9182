import sqlite3
from pathlib import Path
from typing import Optional

from .base import StorageProvider, StorageProviderError


class SQLiteStorageProvider(StorageProvider):
    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        # Ensure the parent directory exists before initializing the database
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self):
        return sqlite3.connect(self.db_path, check_same_thread=False)

    def _init_db(self):
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StorageProviderError(f"Cannot open {self.db_path}: {exc}", operation="init") from exc
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """
            )
            conn.commit()
        except sqlite3.Error as exc:
            raise StorageProviderError(f"Cannot create table: {exc}", operation="init") from exc
        finally:
            conn.close()

    async def get_item(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None
        except sqlite3.Error as exc:
            raise StorageProviderError(f"Failed to read '{key}': {exc}", operation="read") from exc
        finally:
            conn.close()

    async def set_item(self, key: str, value: str) -> None:
        conn = self._connect()
        try:
            conn.execute("INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, value))
            conn.commit()
        except sqlite3.Error as exc:
            raise StorageProviderError(f"Failed to write '{key}': {exc}", operation="write") from exc
        finally:
            conn.close()

    async def remove_item(self, key: str) -> None:
        conn = self._connect()
        try:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.Error as exc:
            raise StorageProviderError(f"Failed to delete '{key}': {exc}", operation="delete") from exc
        finally:
            conn.close()

    async def clear_all(self) -> None:
        conn = self._connect()
        try:
            conn.execute("DELETE FROM kv")
            conn.commit()
        except sqlite3.Error as exc:
            raise StorageProviderError(f"Failed to clear store: {exc}", operation="delete") from exc
        finally:
            conn.close()
