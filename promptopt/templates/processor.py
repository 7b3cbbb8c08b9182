"""Turn a template plus context variables into chat messages."""

from __future__ import annotations

import re
from typing import List, Mapping, Optional

from promptopt.llm.base import Message

from .errors import TemplateError
from .types import Template

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def render(text: str, context: Mapping[str, Optional[str]]) -> str:
    """Replace {{name}} placeholders. Unknown names render as empty text."""
    return _PLACEHOLDER.sub(lambda m: context.get(m.group(1)) or "", text)


def process_template(template: Template, context: Mapping[str, Optional[str]]) -> List[Message]:
    """
    Build the messages for an LLM call.

    Context keys used by the built-in flows are ``original_prompt``,
    ``last_optimized_prompt`` and ``iterate_input``.

    A plain string template becomes the system message, followed by the
    original prompt as the user message without substitution. A message
    list template is rendered message by message.

    Raises:
        TemplateError: An iterate context was given a plain string template
    """
    is_iterate_context = bool(context.get("original_prompt") and context.get("iterate_input"))

    if isinstance(template.content, str):
        if is_iterate_context:
            raise TemplateError(
                f"Iteration requires a message-list template with variable substitution; "
                f"template {template.id} is a plain string template"
            )
        messages = [Message(role="system", content=template.content)]
        if context.get("original_prompt"):
            messages.append(Message(role="user", content=context["original_prompt"]))
        return messages

    return [Message(role=msg.role, content=render(msg.content, context)) for msg in template.content]


__all__ = ["process_template", "render"]
