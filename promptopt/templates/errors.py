from __future__ import annotations


class TemplateError(Exception):
    """Base error for template handling."""


class TemplateValidationError(TemplateError):
    """A template or template id is malformed."""


class TemplateNotFoundError(TemplateError):
    def __init__(self, template_id: str, available=()):
        message = f"Template {template_id} not found"
        if available:
            message += f", available templates: {', '.join(available)}"
        super().__init__(message)
        self.template_id = template_id
