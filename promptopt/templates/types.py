from __future__ import annotations

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from promptopt.llm.base import MessageRole

TemplateType = Literal["optimize", "iterate"]
TEMPLATE_TYPES = ("optimize", "iterate")


class MessageTemplate(BaseModel):
    """One chat message with {{variable}} placeholders."""

    role: MessageRole
    content: str


class TemplateMetadata(BaseModel):
    version: str = "1.0.0"
    last_modified: int = 0  # epoch milliseconds
    author: Optional[str] = None
    description: Optional[str] = None
    template_type: TemplateType = "optimize"
    language: Optional[str] = None


class Template(BaseModel):
    """
    A prompt template.

    ``content`` is either a plain system prompt or a list of message
    templates rendered with variable substitution.
    """

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    content: Union[str, List[MessageTemplate]]
    metadata: TemplateMetadata = Field(default_factory=TemplateMetadata)
    is_builtin: bool = False

    @field_validator("content")
    @classmethod
    def _content_not_empty(cls, value):
        if isinstance(value, str) and not value.strip():
            raise ValueError("template content cannot be empty")
        if isinstance(value, list) and not value:
            raise ValueError("template message list cannot be empty")
        return value

    @property
    def is_simple(self) -> bool:
        return isinstance(self.content, str)
