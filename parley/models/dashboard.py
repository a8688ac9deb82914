"""Pydantic models for admin dashboard analytics."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel


class ConversationStats(BaseModel):
    """Analytics for a single conversation."""

    conversation_id: str
    entry_count: int
    tokens_used: int
    token_limit: int


class UserStats(BaseModel):
    """Aggregated analytics for one user."""

    user_id: str
    chat_count: int
    total_tokens: int
    last_interaction_time: datetime
    persona: str
    model: str
    chat_privacy: bool
    command_state: str
    conversations: List[ConversationStats]


class DashboardData(BaseModel):
    """Top-level container for admin dashboard analytics."""

    total_users: int
    total_chats: int
    total_tokens: int
    persona_count: int
    users: List[UserStats]
