"""parley: per-user conversation state for a chat-completion bot."""

__version__ = "0.1.0"
