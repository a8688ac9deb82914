"""Orchestration service combining session state and the provider.

The ChatService reads a consistent snapshot of a user's settings and
history, asks the completion provider for a reply with no locks held, and
then writes the new turn back through the session store.  Settings that
change between the snapshot and the write-back are resolved
last-write-wins; the write-back always uses the budget of the model the
user has at that moment.

Locking discipline: the persona registry and the session store each have
their own lock and this service never holds both.  Persona data is copied
out of the registry between, not inside, session-store calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence

from loguru import logger

from ..config.app_config import AppConfig, get_app_config
from ..memory.persona_registry import PersonaRegistry, get_persona_registry
from ..memory.session_store import SessionStore, get_session_store
from ..models.chat_entry import ChatEntry
from ..models.chat_response import ChatReply
from ..models.completion import CompletionMessage
from ..models.dashboard import ConversationStats, DashboardData, UserStats
from ..models.enums import EvictionPolicy, MessageRole
from ..models.model_profile import ModelProfile
from ..models.personality import Personality
from ..models.user import User
from .llm_service import LLMService, get_llm_service


@dataclass(frozen=True)
class ChatContext:
    """What the orchestrator copies out of the store before a provider call."""

    persona: Personality
    model: ModelProfile
    history: tuple[ChatEntry, ...]


@dataclass(frozen=True)
class UsageSummary:
    chat_count: int
    total_tokens: int
    tokens_used: int
    token_limit: int
    persona: str
    model: str


def build_messages(
    system_prompt: str,
    history: Sequence[ChatEntry],
    prompt: str,
) -> list[CompletionMessage]:
    """Assemble the message sequence sent to the provider.

    The persona prompt comes first as a system message, followed by every
    retained turn in insertion order (user then assistant, each only if
    non-empty) and finally the new prompt.  No truncation happens here;
    history size is bounded by eviction when turns are stored.
    """
    messages = [CompletionMessage(role=MessageRole.SYSTEM, content=system_prompt)]
    for entry in history:
        if entry.user_message is not None:
            messages.append(CompletionMessage(role=MessageRole.USER, content=entry.user_message))
        if entry.ai_message is not None:
            messages.append(CompletionMessage(role=MessageRole.ASSISTANT, content=entry.ai_message))
    messages.append(CompletionMessage(role=MessageRole.USER, content=prompt))
    return messages


class ChatService:
    """Coordinates the session store, persona registry and provider."""

    def __init__(
        self,
        store: SessionStore | None = None,
        personas: PersonaRegistry | None = None,
        llm_service: LLMService | None = None,
        app_config: AppConfig | None = None,
    ) -> None:
        self.app_config = app_config or get_app_config()
        self.store = store if store is not None else get_session_store()
        self.personas = personas if personas is not None else get_persona_registry()
        self.llm_service = llm_service if llm_service is not None else get_llm_service()
        self.eviction_policy = EvictionPolicy(self.app_config.eviction_policy)

    # ------------------------------------------------------------------
    # Chat

    async def chat(self, user_id: str, conversation_id: str, prompt: str) -> ChatReply:
        """Generate a reply to ``prompt`` and store the turn.

        Raises
        ------
        ProviderError
            If the provider call fails.  Nothing is stored in that case.
        """
        self.store.ensure(user_id)
        context = self._snapshot_context(user_id, conversation_id)
        messages = build_messages(context.persona.prompt, context.history, prompt)
        logger.debug(
            "Chat user={} conversation={} persona={} history={}",
            user_id,
            conversation_id,
            context.persona.name,
            len(context.history),
        )

        response = await self.llm_service.complete(context.model.name, messages, user_id)
        content = response.first_content()
        if content is None:
            logger.warning("Provider returned no content for user={} conversation={}", user_id, conversation_id)
            return ChatReply(user_id=user_id, conversation_id=conversation_id)

        entry = ChatEntry.from_exchange(prompt, content)

        def store_turn(user: User) -> tuple[list[ChatEntry], int]:
            conversation = user.usage.conversation(conversation_id)
            evicted = conversation.add_entry(
                entry,
                token_limit=user.settings.model.token_limit,
                policy=self.eviction_policy,
            )
            user.usage.record_interaction(entry.total_tokens)
            return evicted, conversation.tokens_used

        evicted, tokens_used = self.store.modify(user_id, store_turn)
        return ChatReply(
            user_id=user_id,
            conversation_id=conversation_id,
            content=content,
            entry=entry,
            evicted=evicted,
            tokens_used=tokens_used,
        )

    def _snapshot_context(self, user_id: str, conversation_id: str) -> ChatContext:
        def capture(user: User) -> ChatContext:
            conversation = user.usage.channel_history.get(conversation_id)
            history = tuple(conversation.chat_history) if conversation else ()
            return ChatContext(user.settings.personality, user.settings.model, history)

        context = self.store.read(user_id, capture)
        if context is None:
            from ..utils.error_handler import UserNotFound

            raise UserNotFound(user_id)

        # Prefer the registry's current prompt so persona edits apply to
        # users who selected it earlier.
        current = self.personas.get(context.persona.name)
        if current is not None:
            return ChatContext(current, context.model, context.history)
        return context

    # ------------------------------------------------------------------
    # Settings

    def reset(self, user_id: str, conversation_id: str) -> bool:
        """Clear one conversation's history, keeping lifetime counters."""
        self.store.ensure(user_id)
        cleared = self.store.modify(user_id, lambda user: user.usage.reset_conversation(conversation_id))
        logger.info("Reset conversation {} for user {} (existed={})", conversation_id, user_id, cleared)
        return cleared

    def set_privacy(self, user_id: str, private: bool) -> None:
        self.store.ensure(user_id)

        def apply(user: User) -> None:
            user.settings.chat_privacy = private

        self.store.modify(user_id, apply)

    def is_private(self, user_id: str) -> bool:
        return bool(self.store.read(user_id, lambda user: user.settings.chat_privacy))

    def select_persona(self, user_id: str, name: str) -> Personality:
        """Switch the user's persona.

        Raises
        ------
        PersonaNotFound
            If ``name`` is not registered; the current persona is kept.
        """
        persona = self.personas.resolve(name)
        self.store.ensure(user_id)

        def apply(user: User) -> None:
            user.settings.personality = persona

        self.store.modify(user_id, apply)
        logger.info("User {} selected persona {!r}", user_id, name)
        return persona

    def select_model(self, user_id: str, name: str) -> ModelProfile:
        """Switch the user's model profile (and with it the history budget).

        Raises
        ------
        ModelNotFound
            If ``name`` is not a supported model.
        """
        profile = ModelProfile.from_name(name)
        self.store.ensure(user_id)

        def apply(user: User) -> None:
            user.settings.model = profile

        self.store.modify(user_id, apply)
        return profile

    def usage_summary(self, user_id: str, conversation_id: str) -> UsageSummary:
        self.store.ensure(user_id)

        def summarise(user: User) -> UsageSummary:
            conversation = user.usage.channel_history.get(conversation_id)
            return UsageSummary(
                chat_count=user.usage.chat_count,
                total_tokens=user.usage.total_tokens,
                tokens_used=conversation.tokens_used if conversation else 0,
                token_limit=user.settings.model.token_limit,
                persona=user.settings.personality.name,
                model=user.settings.model.name,
            )

        summary = self.store.read(user_id, summarise)
        if summary is None:
            from ..utils.error_handler import UserNotFound

            raise UserNotFound(user_id)
        return summary

    # ------------------------------------------------------------------
    # Analytics

    def get_dashboard_data(self) -> DashboardData:
        """Return analytics for all users and conversations."""
        users: list[UserStats] = []
        total_chats = 0
        total_tokens = 0
        for user in self.store.snapshots():
            conversations = [
                ConversationStats(
                    conversation_id=conversation.conversation_id,
                    entry_count=len(conversation.chat_history),
                    tokens_used=conversation.tokens_used,
                    token_limit=user.settings.model.token_limit,
                )
                for conversation in user.usage.channel_history.values()
            ]
            total_chats += user.usage.chat_count
            total_tokens += user.usage.total_tokens
            users.append(
                UserStats(
                    user_id=user.id,
                    chat_count=user.usage.chat_count,
                    total_tokens=user.usage.total_tokens,
                    last_interaction_time=user.usage.last_interaction_time,
                    persona=user.settings.personality.name,
                    model=user.settings.model.name,
                    chat_privacy=user.settings.chat_privacy,
                    command_state=user.settings.command_state.kind.value,
                    conversations=conversations,
                )
            )
        return DashboardData(
            total_users=len(users),
            total_chats=total_chats,
            total_tokens=total_tokens,
            persona_count=len(self.personas),
            users=users,
        )


@lru_cache()
def get_chat_service() -> ChatService:
    """Dependency injector for ChatService instances.

    FastAPI will call this function to obtain a singleton
    ChatService.  The lru_cache decorator ensures only one
    instance exists.
    """
    return ChatService()
