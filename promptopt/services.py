"""Wiring of the managers and services used by the CLI and API entry points."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from promptopt.config import Settings
from promptopt.data import DataManager
from promptopt.history.manager import HistoryManager
from promptopt.llm.base import LLMProvider
from promptopt.llm.service import LLMService
from promptopt.models.manager import ModelManager
from promptopt.models.types import ModelConfig
from promptopt.prompt.service import PromptService
from promptopt.storage.base import StorageProvider
from promptopt.storage.factory import get_storage_provider
from promptopt.templates.manager import TemplateManager

logger = logging.getLogger("promptopt")


@dataclass
class Services:
    settings: Settings
    storage: StorageProvider
    models: ModelManager
    templates: TemplateManager
    history: HistoryManager
    llm: LLMService
    prompts: PromptService
    data: DataManager

    async def aclose(self) -> None:
        await self.llm.aclose()


async def build_services(
    settings: Optional[Settings] = None,
    storage: Optional[StorageProvider] = None,
    model_defaults: Optional[Dict[str, ModelConfig]] = None,
    providers: Optional[Dict[str, LLMProvider]] = None,
) -> Services:
    """
    Construct and initialize every collaborator.

    Args:
        settings: Runtime settings. Defaults to Settings.from_env().
        storage: Record store. Defaults to the provider named in settings.
        model_defaults: Built-in model configs (defaults come from env keys).
        providers: Fixed LLM providers by model key.

    Raises:
        StorageUnavailableError: The record store is not writable
    """
    settings = settings or Settings.from_env()
    storage = storage or get_storage_provider(settings=settings)

    models = ModelManager(storage, defaults=model_defaults)
    await models.init()

    templates = TemplateManager(storage)
    await templates.init()

    history = HistoryManager(storage, max_records=settings.max_records, model_manager=models)
    await history.init()

    llm = LLMService(models, providers=providers)
    prompts = PromptService(models, llm, templates, history, max_input_chars=settings.max_input_chars)
    data = DataManager(history, models, templates)

    logger.debug("Services ready (storage=%s)", type(storage).__name__)
    return Services(
        settings=settings,
        storage=storage,
        models=models,
        templates=templates,
        history=history,
        llm=llm,
        prompts=prompts,
        data=data,
    )


__all__ = ["Services", "build_services"]
