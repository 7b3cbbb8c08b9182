"""Key-value storage backends shared by history, models and templates."""

from .base import StorageProvider, StorageProviderError, StorageQuotaExceeded
from .factory import get_storage_provider, register_storage_provider
from .file import FileStorageProvider
from .memory import MemoryStorageProvider
from .sqlite import SQLiteStorageProvider

__all__ = [
    "StorageProvider",
    "StorageProviderError",
    "StorageQuotaExceeded",
    "FileStorageProvider",
    "MemoryStorageProvider",
    "SQLiteStorageProvider",
    "get_storage_provider",
    "register_storage_provider",
]
