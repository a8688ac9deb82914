"""Completion model profiles and their history budgets."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# Retained-history budget per model, in approximate (word) tokens.
SUPPORTED_MODELS: dict[str, int] = {
    "gpt-3.5-turbo": 4096,
    "gpt-4": 8000,
}

DEFAULT_MODEL_NAME = "gpt-3.5-turbo"


class ModelProfile(BaseModel):
    """A supported completion model together with its token budget."""

    model_config = ConfigDict(frozen=True)

    name: str = DEFAULT_MODEL_NAME
    token_limit: int = Field(default=SUPPORTED_MODELS[DEFAULT_MODEL_NAME], gt=0)

    @classmethod
    def from_name(cls, name: str) -> "ModelProfile":
        """Return the profile for ``name``.

        Raises
        ------
        ModelNotFound
            If ``name`` is not one of :data:`SUPPORTED_MODELS`.
        """
        if name not in SUPPORTED_MODELS:
            from ..utils.error_handler import ModelNotFound

            raise ModelNotFound(name)
        return cls(name=name, token_limit=SUPPORTED_MODELS[name])
