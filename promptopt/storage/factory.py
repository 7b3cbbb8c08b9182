"""Factory for instantiating storage providers based on configuration."""

from __future__ import annotations

from typing import Optional

from promptopt.config import Settings

from .base import StorageProvider
from .file import FileStorageProvider
from .memory import MemoryStorageProvider
from .sqlite import SQLiteStorageProvider

# Registry of available providers
PROVIDERS = {
    "file": FileStorageProvider,
    "sqlite": SQLiteStorageProvider,
    "memory": MemoryStorageProvider,
}


def get_storage_provider(
    name: Optional[str] = None, settings: Optional[Settings] = None
) -> StorageProvider:
    """
    Instantiate a storage provider.

    Args:
        name: Provider name ("file", "sqlite", "memory").
              If None, uses settings.storage.
        settings: Settings supplying paths. Defaults to Settings.from_env().

    Returns:
        Instantiated StorageProvider.

    Raises:
        ValueError: If provider name is not recognized.
    """
    if settings is None:
        settings = Settings.from_env()
    name = (name or settings.storage).lower()

    if name not in PROVIDERS:
        available = ", ".join(PROVIDERS.keys())
        raise ValueError(f"Unknown storage provider '{name}'. Available: {available}")

    provider_class = PROVIDERS[name]
    if provider_class is FileStorageProvider:
        return provider_class(settings.file_store_dir)
    if provider_class is SQLiteStorageProvider:
        return provider_class(settings.sqlite_path)
    return provider_class()


def register_storage_provider(name: str, provider_class: type) -> None:
    """
    Register a custom storage provider class.

    The class must be constructible without arguments.
    """
    if not issubclass(provider_class, StorageProvider):
        raise TypeError(f"{provider_class} must be a subclass of StorageProvider")
    PROVIDERS[name.lower()] = provider_class
