"""Static prompt and reply text."""

from .system import DEFAULT_PERSONA_DESCRIPTION, DEFAULT_PERSONA_NAME, DEFAULT_SYSTEM_PROMPT  # noqa: F401
