"""Wire models for the chat-completion provider."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import MessageRole


class CompletionMessage(BaseModel):
    """One ``{role, content}`` item of a completion request or reply."""

    role: MessageRole
    content: str


class CompletionRequest(BaseModel):
    """Body posted to ``/chat/completions``."""

    model: str
    messages: List[CompletionMessage]
    max_tokens: int
    temperature: float
    user: str


class CompletionChoiceMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Optional[str] = None
    content: Optional[str] = None


class CompletionChoice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int = 0
    message: Optional[CompletionChoiceMessage] = None
    finish_reason: Optional[str] = None


class CompletionUsage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class CompletionResponse(BaseModel):
    """Provider reply.

    Every field is optional so that a partial body degrades to "no
    response generated" instead of a validation failure.
    """

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    object: Optional[str] = None
    created: Optional[int] = None
    choices: List[CompletionChoice] = Field(default_factory=list)
    usage: Optional[CompletionUsage] = None

    def first_content(self) -> str | None:
        """Return the text of the first choice, or None if there is none."""
        if not self.choices:
            return None
        message = self.choices[0].message
        if message is None or not message.content:
            return None
        return message.content
