"""
Model Manager

Keeps provider configurations in the record store under one key as a JSON
object mapping model key -> config. Built-in entries are merged in on init.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from promptopt.storage.base import StorageProvider

from .defaults import build_default_models
from .errors import ModelConfigError, ModelValidationError
from .types import ModelConfig
from .validation import validate_llm_params

logger = logging.getLogger("promptopt.models")

DEFAULT_STORAGE_KEY = "models"

# Fields whose change requires re-validating the whole config
_VALIDATED_FIELDS = ("name", "base_url", "models", "default_model", "api_key", "llm_params")

ConfigInput = Union[ModelConfig, Mapping[str, Any]]


def validate_model_config(config: ModelConfig) -> List[str]:
    """Return every problem with ``config``. Empty when valid."""
    errors: List[str] = []
    if not config.name:
        errors.append("Missing model name (name)")
    if not config.base_url:
        errors.append("Missing base URL (base_url)")
    if not config.models:
        errors.append("Model list (models) cannot be empty")
    if not config.default_model:
        errors.append("Missing default model (default_model)")
    elif config.default_model not in config.models:
        errors.append("Default model must be in the model list")

    params = validate_llm_params(config.llm_params, config.provider or "openai")
    for issue in params.errors:
        errors.append(f"Parameter {issue.name}: {issue.message}")
    for issue in params.warnings:
        logger.warning(issue.message)
    return errors


class ModelManager:
    """CRUD over stored model configurations."""

    def __init__(
        self,
        storage: StorageProvider,
        storage_key: str = DEFAULT_STORAGE_KEY,
        defaults: Optional[Dict[str, ModelConfig]] = None,
    ):
        self.storage = storage
        self.storage_key = storage_key
        self.defaults = defaults if defaults is not None else build_default_models()
        self._models: Dict[str, ModelConfig] = {k: v.model_copy(deep=True) for k, v in self.defaults.items()}

    @staticmethod
    def _parse(data: Mapping[str, Any]) -> Dict[str, ModelConfig]:
        models = {}
        for key, raw in data.items():
            try:
                models[key] = ModelConfig.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Ignoring invalid stored model config %s: %s", key, exc)
        return models

    @staticmethod
    def _dump(models: Mapping[str, ModelConfig]) -> Dict[str, Any]:
        return {key: config.model_dump(mode="json") for key, config in models.items()}

    async def init(self) -> None:
        """Load stored configs and add any missing built-in entries."""
        raw = await self.storage.get_item(self.storage_key)
        if raw:
            try:
                self._models = self._parse(json.loads(raw))
            except (json.JSONDecodeError, AttributeError) as exc:
                logger.error("Failed to parse stored model configuration: %s", exc)

        changed = False
        for key, config in self.defaults.items():
            stored = self._models.get(key)
            if stored is None:
                self._models[key] = config.model_copy(deep=True)
                changed = True
                continue
            # Pick up parameters added to a built-in since it was stored
            missing = {k: v for k, v in config.llm_params.items() if k not in stored.llm_params}
            if missing:
                self._models[key] = stored.model_copy(update={"llm_params": {**stored.llm_params, **missing}})
                changed = True

        if changed:
            await self.storage.set_item(self.storage_key, json.dumps(self._dump(self._models)))

    async def _reload(self) -> Dict[str, ModelConfig]:
        raw = await self.storage.get_item(self.storage_key)
        if raw:
            try:
                self._models = self._parse(json.loads(raw))
            except (json.JSONDecodeError, AttributeError) as exc:
                logger.error("Failed to parse stored model configuration: %s", exc)
        return self._models

    async def get_all_models(self) -> List[Tuple[str, ModelConfig]]:
        """All configs as (key, config) pairs, in storage order."""
        models = await self._reload()
        return list(models.items())

    async def get_model(self, key: str) -> Optional[ModelConfig]:
        models = await self._reload()
        return models.get(key)

    async def get_enabled_models(self) -> List[Tuple[str, ModelConfig]]:
        return [(key, config) for key, config in await self.get_all_models() if config.enabled]

    def _coerce(self, config: ConfigInput) -> ModelConfig:
        if isinstance(config, ModelConfig):
            return config
        try:
            return ModelConfig.model_validate(dict(config))
        except ValidationError as exc:
            raise ModelValidationError("Invalid model configuration", [str(exc)]) from exc

    def _validate(self, config: ModelConfig) -> None:
        errors = validate_model_config(config)
        if errors:
            raise ModelValidationError("Invalid model configuration", errors)

    async def add_model(self, key: str, config: ConfigInput) -> ModelConfig:
        """
        Add a new model configuration.

        Raises:
            ModelValidationError: Config is incomplete or has unsafe llm_params
            ModelConfigError: key already exists
        """
        model = self._coerce(config)
        self._validate(model)

        def modifier(current):
            models = current or {}
            if key in models:
                raise ModelConfigError(f"Model {key} already exists")
            models[key] = model.model_dump(mode="json")
            return models

        await self.storage.update_data(self.storage_key, modifier)
        self._models[key] = model
        return model

    async def update_model(self, key: str, changes: Mapping[str, Any]) -> ModelConfig:
        """
        Merge ``changes`` into an existing config.

        A built-in key that was never stored is created from its default
        first. The merged config is validated when a connection field or
        llm_params changes, or when the update enables the model.
        """
        result: Dict[str, ModelConfig] = {}

        def modifier(current):
            models = current or {}
            if key not in models:
                if key not in self.defaults:
                    raise ModelConfigError(f"Model {key} does not exist")
                models[key] = self.defaults[key].model_dump(mode="json")

            merged = {**models[key], **dict(changes)}
            updated = self._coerce(merged)
            if any(f in changes for f in _VALIDATED_FIELDS) or changes.get("enabled"):
                self._validate(updated)
            models[key] = updated.model_dump(mode="json")
            result["config"] = updated
            return models

        await self.storage.update_data(self.storage_key, modifier)
        self._models[key] = result["config"]
        return result["config"]

    async def delete_model(self, key: str) -> None:
        def modifier(current):
            models = current or {}
            if key not in models:
                raise ModelConfigError(f"Model {key} does not exist")
            del models[key]
            return models

        await self.storage.update_data(self.storage_key, modifier)
        self._models.pop(key, None)

    async def enable_model(self, key: str) -> None:
        """
        Enable a model after full validation.

        Raises:
            ModelConfigError: Unknown key or missing API key
            ModelValidationError: Config is incomplete
        """

        def modifier(current):
            models = current or {}
            if key not in models:
                raise ModelConfigError(f"Unknown model: {key}")
            config = self._coerce(models[key])
            self._validate(config)
            if not config.api_key:
                raise ModelConfigError("API key is required to enable model")
            models[key] = {**models[key], "enabled": True}
            return models

        await self.storage.update_data(self.storage_key, modifier)
        if key in self._models:
            self._models[key] = self._models[key].model_copy(update={"enabled": True})

    async def disable_model(self, key: str) -> None:
        def modifier(current):
            models = current or {}
            if key not in models:
                raise ModelConfigError(f"Unknown model: {key}")
            models[key] = {**models[key], "enabled": False}
            return models

        await self.storage.update_data(self.storage_key, modifier)
        if key in self._models:
            self._models[key] = self._models[key].model_copy(update={"enabled": False})

    async def export_models(self) -> Dict[str, Any]:
        return self._dump(await self._reload())

    async def import_models(self, data: Mapping[str, Any]) -> int:
        """
        Replace stored configs with ``data``. Invalid entries are skipped.

        Returns:
            Number of configs imported
        """
        imported: Dict[str, ModelConfig] = {}
        for key, raw in data.items():
            try:
                imported[key] = self._coerce(raw)
            except ModelValidationError as exc:
                logger.warning("Skipping model config %s: %s", key, exc)
        await self.storage.set_item(self.storage_key, json.dumps(self._dump(imported)))
        self._models = imported
        return len(imported)


__all__ = ["ModelManager", "validate_model_config", "DEFAULT_STORAGE_KEY"]
