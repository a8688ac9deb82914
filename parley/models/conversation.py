"""Per-conversation chat history with a token budget."""

from __future__ import annotations

from typing import List

from loguru import logger
from pydantic import BaseModel, Field

from .chat_entry import ChatEntry
from .enums import EvictionPolicy


class ConversationData(BaseModel):
    """History retained for one user in one conversation.

    ``tokens_used`` always equals the sum of ``total_tokens`` over the
    entries currently in ``chat_history``.  It is kept up to date
    incrementally by :meth:`add_entry`, :meth:`remove_oldest` and
    :meth:`reset`; nothing else should touch either field.
    """

    conversation_id: str = Field(..., description="Identifier of the conversation (e.g. a channel).")
    tokens_used: int = Field(default=0, ge=0, description="Tokens retained in chat_history.")
    chat_history: List[ChatEntry] = Field(
        default_factory=list,
        description="Retained turns, oldest first.",
    )

    def add_entry(
        self,
        entry: ChatEntry,
        token_limit: int,
        policy: EvictionPolicy = EvictionPolicy.ONE_SHOT,
    ) -> list[ChatEntry]:
        """Append a completed turn and enforce the token budget.

        With :attr:`EvictionPolicy.ONE_SHOT` at most one (the oldest) entry
        is dropped per call, so a conversation can stay above
        ``token_limit`` when a single turn is larger than what one eviction
        frees.  :attr:`EvictionPolicy.UNTIL_UNDER_BUDGET` keeps evicting
        until the budget holds or the history is empty.

        Returns
        -------
        list[ChatEntry]
            The evicted entries, oldest first.
        """
        self.chat_history.append(entry)
        self.tokens_used += entry.total_tokens
        logger.debug(
            "Conversation {} now holds {} entries / {} tokens",
            self.conversation_id,
            len(self.chat_history),
            self.tokens_used,
        )

        evicted: list[ChatEntry] = []
        while self.tokens_used > token_limit and self.chat_history:
            evicted.append(self.remove_oldest())
            if policy is EvictionPolicy.ONE_SHOT:
                break

        if evicted:
            logger.debug(
                "Evicted {} entries from conversation {} (limit {}, now {})",
                len(evicted),
                self.conversation_id,
                token_limit,
                self.tokens_used,
            )
        return evicted

    def remove_oldest(self) -> ChatEntry:
        """Remove and return the oldest entry."""
        if not self.chat_history:
            from ..utils.error_handler import StateConsistencyError

            raise StateConsistencyError(
                f"Cannot evict from empty conversation {self.conversation_id}"
            )
        oldest = self.chat_history.pop(0)
        if oldest.total_tokens > self.tokens_used:
            from ..utils.error_handler import StateConsistencyError

            raise StateConsistencyError(
                f"Conversation {self.conversation_id} accounts {self.tokens_used} tokens "
                f"but the evicted entry holds {oldest.total_tokens}"
            )
        self.tokens_used -= oldest.total_tokens
        return oldest

    def reset(self) -> None:
        """Forget every retained turn."""
        self.tokens_used = 0
        self.chat_history.clear()

    def verify_accounting(self) -> None:
        """Raise if ``tokens_used`` drifted from the retained entries."""
        actual = sum(entry.total_tokens for entry in self.chat_history)
        if actual != self.tokens_used:
            from ..utils.error_handler import StateConsistencyError

            raise StateConsistencyError(
                f"Conversation {self.conversation_id} accounts {self.tokens_used} tokens "
                f"but retains {actual}"
            )
