"""User aggregate: settings plus usage for one person."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict

from pydantic import BaseModel, Field

from .command_state import CommandState
from .conversation import ConversationData
from .model_profile import ModelProfile
from .personality import Personality


class UserSettings(BaseModel):
    """Preferences a user controls through commands."""

    chat_privacy: bool = Field(default=False, description="Deliver replies ephemerally when true.")
    personality: Personality = Field(default_factory=Personality.default)
    model: ModelProfile = Field(default_factory=ModelProfile)
    command_state: CommandState = Field(default_factory=CommandState.none)


class UserUsage(BaseModel):
    """Usage counters and per-conversation history.

    ``total_tokens`` is a lifetime counter.  Evicting or resetting a
    conversation never lowers it.
    """

    chat_count: int = 0
    last_interaction_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    total_tokens: int = 0
    channel_history: Dict[str, ConversationData] = Field(default_factory=dict)

    def conversation(self, conversation_id: str) -> ConversationData:
        """Return the data for ``conversation_id``, creating it on first use."""
        data = self.channel_history.get(conversation_id)
        if data is None:
            data = ConversationData(conversation_id=conversation_id)
            self.channel_history[conversation_id] = data
        return data

    def contains_conversation(self, conversation_id: str) -> bool:
        return conversation_id in self.channel_history

    def reset_conversation(self, conversation_id: str) -> bool:
        """Clear one conversation's history.  Returns False if it never existed."""
        data = self.channel_history.get(conversation_id)
        if data is None:
            return False
        data.reset()
        return True

    def record_interaction(self, tokens: int) -> None:
        self.chat_count += 1
        self.total_tokens += tokens
        self.last_interaction_time = datetime.now(timezone.utc)


class User(BaseModel):
    """Everything the session engine tracks for one user identity."""

    id: str
    settings: UserSettings = Field(default_factory=UserSettings)
    usage: UserUsage = Field(default_factory=UserUsage)

    @classmethod
    def new(cls, user_id: str, model: ModelProfile | None = None) -> "User":
        settings = UserSettings(model=model) if model is not None else UserSettings()
        return cls(id=user_id, settings=settings)
