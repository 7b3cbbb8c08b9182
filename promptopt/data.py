"""
Export/Import Module

Bundles history, model configurations and user templates into one JSON
document for backup and migration, and restores them from it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict

from promptopt import DATA_SCHEMA_VERSION
from promptopt.history.manager import HistoryManager
from promptopt.models.manager import ModelManager
from promptopt.templates.manager import TemplateManager

logger = logging.getLogger("promptopt.data")


class DataImportError(ValueError):
    """The import document is malformed."""


class DataManager:
    """Exports and imports all persisted application data."""

    def __init__(self, history: HistoryManager, models: ModelManager, templates: TemplateManager):
        self.history = history
        self.models = models
        self.templates = templates

    async def export_all_data(self, pretty: bool = True) -> str:
        """Serialize history, model configs and user templates to JSON."""
        records = await self.history.get_records()
        models = await self.models.get_all_models()
        data = {
            "export_date": datetime.now().isoformat(),
            "version": DATA_SCHEMA_VERSION,
            "history": [r.model_dump(mode="json") for r in records],
            "models": [{"key": key, **config.model_dump(mode="json")} for key, config in models],
            "user_templates": self.templates.export_user_templates(),
        }
        return json.dumps(data, indent=2 if pretty else None, ensure_ascii=False)

    async def import_all_data(self, json_text: str) -> Dict[str, int]:
        """
        Replace all data with the contents of an export document.

        Sections that are absent are left untouched. Invalid entries inside a
        section are skipped with a warning.

        Returns:
            Number of imported entries per section

        Raises:
            DataImportError: Not JSON, not an object, or a section is not a list
        """
        try:
            data = json.loads(json_text)
        except json.JSONDecodeError as exc:
            raise DataImportError(f"Invalid JSON format: {exc}") from exc

        if not isinstance(data, dict):
            raise DataImportError("Invalid import data format: expected an object")
        for section in ("history", "models", "user_templates"):
            if section in data and not isinstance(data[section], list):
                raise DataImportError(f"Invalid {section} data: expected an array")

        stats = {"history": 0, "models": 0, "user_templates": 0}

        if "history" in data:
            stats["history"] = await self.history.import_records(data["history"])

        if "models" in data:
            configs: Dict[str, Any] = {}
            for entry in data["models"]:
                if not isinstance(entry, dict) or not entry.get("key"):
                    logger.warning("Skipping model config without key: %r", entry)
                    continue
                key = entry["key"]
                configs[key] = {k: v for k, v in entry.items() if k != "key"}
            stats["models"] = await self.models.import_models(configs)

        if "user_templates" in data:
            stats["user_templates"] = await self.templates.import_user_templates(data["user_templates"])

        logger.info("Imported data: %s", stats)
        return stats


__all__ = ["DataManager", "DataImportError"]
