"""Enumerations used across models."""

from enum import Enum


class MessageRole(str, Enum):
    """Enum for message roles sent to the completion provider.

    ``SYSTEM`` carries the active persona prompt, ``USER`` the human side
    of each stored turn and ``ASSISTANT`` the reply that was generated
    for it.
    """

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class EvictionPolicy(str, Enum):
    """How many history entries may be dropped after a turn is stored."""

    ONE_SHOT = "one_shot"
    UNTIL_UNDER_BUDGET = "until_under_budget"


class CommandStateKind(str, Enum):
    """Progress marker for the multi-step persona workflow."""

    NONE = "none"
    AWAITING_PERSONALITY_PROMPT = "awaiting_personality_prompt"


class CommandEventKind(str, Enum):
    """Inputs accepted by the persona workflow state machine."""

    DEFINE_PERSONA = "define_persona"
    CANCEL = "cancel"
