"""Error handling utilities and custom exceptions."""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger


class ChatError(Exception):
    """Base class for errors raised by the session/state engine.

    Subclasses carry a ``user_message`` that the command dispatcher can
    show to the person who issued the command.  The exception text itself
    may contain more detail and is only ever logged.
    """

    user_message = "Something went wrong while handling your command."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)


class UserNotFound(ChatError):
    """Raised when a user is modified before it has been created."""

    user_message = "No settings were found for you yet. Please try again."

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class PersonaNotFound(ChatError):
    """Raised when a persona name is not present in the registry."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Persona {name!r} not found")

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return f"There is no persona called {self.name!r}."


class ModelNotFound(ChatError):
    """Raised when an unsupported model profile is requested."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Model {name!r} is not supported")

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return f"The model {self.name!r} is not supported."


class ProviderError(ChatError):
    """Raised when the completion provider cannot produce a usable response."""

    user_message = "Sorry, I could not generate a response right now."


class AcknowledgmentTimeout(ChatError):
    """Raised when the gateway acknowledgment deadline is missed.

    The interaction can no longer be answered once this happens.
    """

    user_message = "The interaction expired before it could be acknowledged."


class PermissionDenied(ChatError):
    """Raised when a non-admin issues an admin command."""

    user_message = "You do not have permission to use this command."


class InvalidCommand(ChatError):
    """Raised when a command is unknown or its arguments are unusable."""

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return str(self)


class PersonaSeedError(ChatError):
    """Raised when the persona seed file exists but cannot be parsed."""


class StateConsistencyError(ChatError):
    """Raised when an internal invariant is violated.

    Reaching this indicates a concurrency bug.  It is never converted into
    a friendly message silently; callers log it at error level.
    """


async def http_exception_handler(request: Request, exc: ChatError) -> JSONResponse:
    """Convert a ChatError into an HTTP response."""
    logger.error("ChatError occurred: {}", exc)
    status_code = 404 if isinstance(exc, (UserNotFound, PersonaNotFound, ModelNotFound)) else 500
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc)},
    )
