"""In-memory state owned by the session engine."""

from .persona_registry import PersonaRegistry, get_persona_registry  # noqa: F401
from .session_store import SessionStore, get_session_store  # noqa: F401
