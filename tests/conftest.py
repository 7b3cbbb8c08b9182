"""Shared fixtures: in-memory storage, a mock model and service builders."""

from __future__ import annotations

import pytest

from promptopt.config import Settings
from promptopt.history import HistoryManager
from promptopt.models import ModelConfig, ModelManager
from promptopt.services import build_services
from promptopt.storage import MemoryStorageProvider


def make_mock_config(**overrides) -> ModelConfig:
    data = {
        "name": "Mock",
        "base_url": "http://mock.local/v1",
        "api_key": "test-key-1234567890",
        "models": ["mock-1"],
        "default_model": "mock-1",
        "enabled": True,
        "provider": "mock",
    }
    data.update(overrides)
    return ModelConfig(**data)


@pytest.fixture
def storage():
    return MemoryStorageProvider()


@pytest.fixture
def mock_config():
    return make_mock_config()


@pytest.fixture
def model_defaults(mock_config):
    return {"mock": mock_config}


@pytest.fixture
def settings(tmp_path):
    return Settings(home=tmp_path, storage="memory", max_records=50)


@pytest.fixture
def make_history(storage):
    """Async builder for an initialized HistoryManager."""

    async def _make(max_records: int = 50, model_manager=None, **kwargs) -> HistoryManager:
        manager = HistoryManager(storage, max_records=max_records, model_manager=model_manager, **kwargs)
        await manager.init()
        return manager

    return _make


@pytest.fixture
def make_models(storage, model_defaults):
    """Async builder for an initialized ModelManager."""

    async def _make(defaults=None) -> ModelManager:
        manager = ModelManager(storage, defaults=defaults if defaults is not None else model_defaults)
        await manager.init()
        return manager

    return _make


@pytest.fixture
def make_services(settings, storage, model_defaults):
    """Async builder for the full service graph over in-memory storage."""

    async def _make(providers=None, **overrides):
        return await build_services(
            settings=overrides.pop("settings", settings),
            storage=overrides.pop("storage", storage),
            model_defaults=overrides.pop("model_defaults", model_defaults),
            providers=providers,
        )

    return _make


def record_data(**overrides):
    """A complete, valid optimize record as a plain mapping."""
    data = {
        "id": "rec-1",
        "original_prompt": "write a poem",
        "optimized_prompt": "Write a four-line poem about autumn.",
        "type": "optimize",
        "chain_id": "chain-1",
        "version": 1,
        "previous_id": None,
        "timestamp": 1700000000000,
        "model_key": "mock",
        "template_id": "general-optimize",
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_record():
    return record_data
