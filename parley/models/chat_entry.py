"""Model representing one completed chat turn."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from ..utils.tokens import count_tokens


class ChatEntry(BaseModel):
    """A stored exchange between the user and the assistant.

    Entries are immutable once created; the only way they leave a
    conversation is by being evicted or reset as a whole.  Token fields
    are approximate word counts (see :mod:`parley.utils.tokens`), and
    ``total_tokens`` is always ``user_tokens + completion_tokens``.
    """

    model_config = ConfigDict(frozen=True)

    combined_text: str
    user_text: str = ""
    ai_text: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    total_tokens: int = Field(default=0, ge=0)
    user_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)

    @classmethod
    def from_exchange(cls, user_text: str, ai_text: str) -> "ChatEntry":
        """Build an entry for a prompt and its reply, counting tokens."""
        user_tokens = count_tokens(user_text)
        completion_tokens = count_tokens(ai_text)
        return cls(
            combined_text=f"user: {user_text}\nai: {ai_text}\n",
            user_text=user_text,
            ai_text=ai_text,
            total_tokens=user_tokens + completion_tokens,
            user_tokens=user_tokens,
            completion_tokens=completion_tokens,
        )

    @property
    def user_message(self) -> str | None:
        return self.user_text or None

    @property
    def ai_message(self) -> str | None:
        return self.ai_text or None
