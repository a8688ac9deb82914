"""Built-in persona used when nothing else is selected."""

DEFAULT_PERSONA_NAME = "default"

DEFAULT_PERSONA_DESCRIPTION = "General purpose assistant."

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
