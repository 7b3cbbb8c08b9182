"""Prompt templates: built-in YAML plus user templates."""

from .errors import TemplateError, TemplateNotFoundError, TemplateValidationError
from .manager import TemplateManager, load_builtin_templates, validate_template_id
from .processor import process_template
from .types import MessageTemplate, Template, TemplateMetadata

__all__ = [
    "Template",
    "TemplateMetadata",
    "MessageTemplate",
    "TemplateManager",
    "load_builtin_templates",
    "validate_template_id",
    "process_template",
    "TemplateError",
    "TemplateValidationError",
    "TemplateNotFoundError",
]
