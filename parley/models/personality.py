"""Persona (system prompt profile) model."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from ..prompts.system import DEFAULT_PERSONA_DESCRIPTION, DEFAULT_PERSONA_NAME, DEFAULT_SYSTEM_PROMPT
from ..utils.tokens import count_tokens


class Personality(BaseModel):
    """A named system prompt users can select.

    ``tokens`` is the approximate size of ``prompt``.  Seed records may
    supply it explicitly; otherwise it is derived from the prompt.
    """

    name: str = Field(..., min_length=1)
    description: str = ""
    prompt: str = ""
    tokens: int = Field(default=0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _derive_tokens(cls, data: object) -> object:
        if isinstance(data, dict) and data.get("tokens") is None:
            data = dict(data)
            data["tokens"] = count_tokens(data.get("prompt") or "")
        return data

    @classmethod
    def default(cls) -> "Personality":
        return cls(
            name=DEFAULT_PERSONA_NAME,
            description=DEFAULT_PERSONA_DESCRIPTION,
            prompt=DEFAULT_SYSTEM_PROMPT,
        )
