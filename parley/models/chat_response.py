"""Result of a chat turn."""

from typing import List, Optional

from pydantic import BaseModel, Field

from .chat_entry import ChatEntry


class ChatReply(BaseModel):
    """Outcome of :meth:`ChatService.chat`.

    ``content`` is ``None`` when the provider answered without any usable
    text; nothing is stored in that case.
    """

    user_id: str
    conversation_id: str
    content: Optional[str] = None
    entry: Optional[ChatEntry] = None
    evicted: List[ChatEntry] = Field(default_factory=list)
    tokens_used: int = 0

    @property
    def generated(self) -> bool:
        return self.content is not None
