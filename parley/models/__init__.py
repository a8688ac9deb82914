"""Expose commonly used model classes at the package level.

Importing these classes here allows consumers to write concise imports like::

    from parley.models import User, ConversationData, ChatEntry

These names refer to the underlying Pydantic models defined in their
respective modules.
"""

from .chat_entry import ChatEntry  # noqa: F401
from .chat_response import ChatReply  # noqa: F401
from .command_state import CommandState, PersonaChange, Transition, advance  # noqa: F401
from .conversation import ConversationData  # noqa: F401
from .enums import CommandEventKind, CommandStateKind, EvictionPolicy, MessageRole  # noqa: F401
from .interaction import CommandEvent, CommandOption  # noqa: F401
from .model_profile import ModelProfile, SUPPORTED_MODELS  # noqa: F401
from .personality import Personality  # noqa: F401
from .user import User, UserSettings, UserUsage  # noqa: F401
