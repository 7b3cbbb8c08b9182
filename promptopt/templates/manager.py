"""Template management: built-in YAML templates plus user templates in the record store."""

from __future__ import annotations

import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from promptopt.storage.base import StorageProvider

from .errors import TemplateError, TemplateNotFoundError, TemplateValidationError
from .types import TEMPLATE_TYPES, Template

logger = logging.getLogger("promptopt.templates")

BUILTIN_DIR = Path(__file__).parent / "builtin"
DEFAULT_STORAGE_KEY = "app:templates"

_ID_PATTERN = re.compile(r"^[a-z0-9-]{3,}$")

TemplateInput = Union[Template, Mapping[str, Any]]


def validate_template_id(template_id: Optional[str]) -> None:
    if not template_id:
        raise TemplateValidationError("Invalid template ID")
    if not _ID_PATTERN.match(template_id):
        raise TemplateValidationError(
            "Invalid template ID format: must be at least 3 characters, "
            "using only lowercase letters, numbers, and hyphens"
        )


def load_builtin_templates(directory: Path = BUILTIN_DIR) -> Dict[str, Template]:
    """Load every *.yaml / *.yml template in ``directory``."""
    templates: Dict[str, Template] = {}
    if not directory.exists():
        return templates
    for path in sorted(directory.glob("*.y*ml")):
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
            if not isinstance(data, dict):
                continue
            template = Template.model_validate({**data, "is_builtin": True})
        except (OSError, yaml.YAMLError, ValidationError) as exc:
            logger.warning("Failed to load template %s: %s", path, exc)
            continue
        templates[template.id] = template
    return templates


class TemplateManager:
    """High-level template access with built-in protection."""

    def __init__(
        self,
        storage: StorageProvider,
        storage_key: str = DEFAULT_STORAGE_KEY,
        builtin_dir: Path = BUILTIN_DIR,
    ):
        self.storage = storage
        self.storage_key = storage_key
        self.builtin_templates = load_builtin_templates(builtin_dir)
        self.user_templates: Dict[str, Template] = {}

    async def init(self) -> None:
        """Load user templates from the store."""
        try:
            raw = await self.storage.get_item(self.storage_key)
        except Exception as exc:
            raise TemplateError(f"Failed to load user templates: {exc}") from exc
        if not raw:
            return
        try:
            items = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise TemplateError(f"Failed to load user templates: {exc}") from exc

        for item in items if isinstance(items, list) else []:
            try:
                template = Template.model_validate({**item, "is_builtin": False})
            except (TypeError, ValidationError) as exc:
                logger.warning("Skipping invalid stored template: %s", exc)
                continue
            self.user_templates[template.id] = template

    async def _persist(self) -> None:
        payload = json.dumps(
            [t.model_dump(mode="json") for t in self.user_templates.values()], ensure_ascii=False
        )
        try:
            await self.storage.set_item(self.storage_key, payload)
        except Exception as exc:
            raise TemplateError(f"Failed to save user templates: {exc}") from exc

    def get_template(self, template_id: str) -> Template:
        """
        Get a template by ID. Built-ins win over user templates.

        Raises:
            TemplateValidationError: Malformed id
            TemplateNotFoundError: No such template
        """
        validate_template_id(template_id)
        if template_id in self.builtin_templates:
            return self.builtin_templates[template_id]
        if template_id in self.user_templates:
            return self.user_templates[template_id]
        available = list(self.builtin_templates) + list(self.user_templates)
        raise TemplateNotFoundError(template_id, available)

    def list_templates(self) -> List[Template]:
        """Built-ins first, then user templates newest-modified first."""
        user = sorted(self.user_templates.values(), key=lambda t: t.metadata.last_modified, reverse=True)
        return list(self.builtin_templates.values()) + user

    def list_templates_by_type(self, template_type: str) -> List[Template]:
        return [t for t in self.list_templates() if t.metadata.template_type == template_type]

    async def save_template(self, template: TemplateInput) -> Template:
        """
        Save a user template, replacing one with the same id.

        Raises:
            TemplateValidationError: Bad id, type or shape
            TemplateError: The id belongs to a built-in template
        """
        data = template.model_dump() if isinstance(template, Template) else dict(template)
        validate_template_id(data.get("id"))

        template_type = (data.get("metadata") or {}).get("template_type")
        if template_type is not None and template_type not in TEMPLATE_TYPES:
            raise TemplateValidationError("Invalid template type")

        if data["id"] in self.builtin_templates:
            raise TemplateError(f"Cannot overwrite built-in template: {data['id']}")

        data["is_builtin"] = False
        data["metadata"] = {**(data.get("metadata") or {}), "last_modified": int(time.time() * 1000)}
        try:
            saved = Template.model_validate(data)
        except ValidationError as exc:
            raise TemplateValidationError(f"Template validation failed: {exc}") from exc

        self.user_templates[saved.id] = saved
        await self._persist()
        return saved

    async def delete_template(self, template_id: str) -> None:
        validate_template_id(template_id)
        if template_id in self.builtin_templates:
            raise TemplateError(f"Cannot delete built-in template: {template_id}")
        if template_id not in self.user_templates:
            raise TemplateNotFoundError(template_id)
        del self.user_templates[template_id]
        await self._persist()

    def export_template(self, template_id: str, fmt: str = "json") -> str:
        """Serialize a template as JSON (default) or YAML."""
        data = self.get_template(template_id).model_dump(mode="json")
        if fmt == "yaml":
            return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
        return json.dumps(data, indent=2, ensure_ascii=False)

    async def import_template(self, text: str) -> Template:
        """
        Import a template from JSON or YAML text.

        Raises:
            TemplateError: Unparsable text or a save failure
        """
        try:
            try:
                data = json.loads(text)
            except json.JSONDecodeError:
                data = yaml.safe_load(text)
            if not isinstance(data, dict):
                raise TemplateValidationError("Template must be a mapping")
            return await self.save_template(data)
        except TemplateError:
            raise
        except Exception as exc:
            raise TemplateError(f"Failed to import template: {exc}") from exc

    def export_user_templates(self) -> List[Dict[str, Any]]:
        return [t.model_dump(mode="json") for t in self.user_templates.values()]

    async def import_user_templates(self, items: List[Mapping[str, Any]]) -> int:
        """
        Replace all user templates. Invalid or built-in ids are skipped.

        Returns:
            Number of templates imported
        """
        imported: Dict[str, Template] = {}
        for item in items:
            try:
                validate_template_id(item.get("id"))
                if item["id"] in self.builtin_templates:
                    raise TemplateError(f"Cannot overwrite built-in template: {item['id']}")
                template = Template.model_validate({**item, "is_builtin": False})
            except (AttributeError, TemplateError, ValidationError) as exc:
                logger.warning("Skipping template during import: %s", exc)
                continue
            imported[template.id] = template

        self.user_templates = imported
        await self._persist()
        return len(imported)


__all__ = ["TemplateManager", "load_builtin_templates", "validate_template_id", "DEFAULT_STORAGE_KEY"]
