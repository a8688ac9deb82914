"""Dispatcher for inbound gateway commands.

Each inbound event is handled as one task: the user is created if
needed, the interaction is acknowledged within the gateway deadline, the
command runs, and its reply is delivered.  This is also the error
boundary towards the gateway.  :class:`ChatError` subclasses turn into a
message for the caller, anything else is logged and reported generically.
A failure never leaves shared state unusable for other users.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from functools import lru_cache
from typing import Awaitable, Callable, Dict, Optional

from loguru import logger

from ..memory.persona_registry import PersonaRegistry
from ..memory.session_store import SessionStore
from ..models.command_state import PersonaChange, Transition, TransitionKind, advance
from ..models.enums import CommandEventKind
from ..models.interaction import CommandEvent
from ..models.user import User
from ..prompts import replies
from ..utils.error_handler import (
    AcknowledgmentTimeout,
    ChatError,
    InvalidCommand,
    PermissionDenied,
    PersonaNotFound,
    ProviderError,
    StateConsistencyError,
)
from .chat_service import ChatService, get_chat_service
from .gateway_service import GatewayError, GatewayService, get_gateway_service

GENERIC_FAILURE_REPLY = "Something went wrong while handling your command."

# Commands whose acknowledgement and reply are always private.
PRIVACY_COMMANDS = frozenset({"set-privacy", "private", "public"})

ADMIN_COMMANDS = frozenset({"define-persona", "cancel-persona", "admin-persona"})


@dataclass
class CommandOutcome:
    """What happened to one inbound command."""

    name: str
    acknowledged: bool = False
    reply: Optional[str] = None
    delivered: bool = False
    error: Optional[str] = None


class CommandService:
    """Route commands to the chat service and the persona workflow."""

    def __init__(
        self,
        chat_service: ChatService | None = None,
        gateway: GatewayService | None = None,
        store: SessionStore | None = None,
        personas: PersonaRegistry | None = None,
    ) -> None:
        self.chat_service = chat_service if chat_service is not None else get_chat_service()
        self.gateway = gateway if gateway is not None else get_gateway_service()
        self.store = store if store is not None else self.chat_service.store
        self.personas = personas if personas is not None else self.chat_service.personas
        self._handlers: Dict[str, Callable[[CommandEvent], Awaitable[str]]] = {
            "chat": self._chat,
            "reset": self._reset,
            "set-privacy": self._set_privacy,
            "private": self._private,
            "public": self._public,
            "select-persona": self._select_persona,
            "select-model": self._select_model,
            "usage": self._usage,
            "define-persona": self._define_persona,
            "cancel-persona": self._cancel_persona,
            "admin-persona": self._admin_persona,
        }

    @property
    def command_names(self) -> list[str]:
        return list(self._handlers)

    async def handle(self, event: CommandEvent) -> CommandOutcome:
        """Acknowledge, execute and answer one command event."""
        outcome = CommandOutcome(name=event.name)
        logger.info("User {} ({}) issued /{}", event.user_name or event.user_id, event.user_id, event.name)
        self.store.ensure(event.user_id)

        ephemeral = event.name in PRIVACY_COMMANDS or self.chat_service.is_private(event.user_id)
        try:
            await self.gateway.acknowledge(event, ephemeral)
        except AcknowledgmentTimeout as exc:
            logger.error("Abandoning /{} from {}: {}", event.name, event.user_id, exc)
            outcome.error = str(exc)
            return outcome
        outcome.acknowledged = True

        outcome.reply = await self.execute(event, outcome)

        # Privacy may have changed while the command ran.
        if event.name not in PRIVACY_COMMANDS:
            ephemeral = self.chat_service.is_private(event.user_id)
        try:
            await self.gateway.edit_original_or_followup(event, outcome.reply, ephemeral)
            outcome.delivered = True
        except GatewayError as exc:
            logger.error("Could not deliver reply to /{} for {}: {}", event.name, event.user_id, exc)
            outcome.error = outcome.error or str(exc)
        return outcome

    async def execute(self, event: CommandEvent, outcome: CommandOutcome | None = None) -> str:
        """Run the command and return the text to show the caller."""
        handler = self._handlers.get(event.name)
        try:
            if handler is None:
                raise InvalidCommand(replies.UNKNOWN_COMMAND_REPLY.format(name=event.name))
            if event.name in ADMIN_COMMANDS and not event.is_admin:
                raise PermissionDenied(f"User {event.user_id} is not an admin")
            return await handler(event)
        except ProviderError as exc:
            logger.error("Provider failure for /{} from {}: {}", event.name, event.user_id, exc)
            if outcome is not None:
                outcome.error = str(exc)
            return ProviderError.user_message
        except StateConsistencyError as exc:
            logger.error("Internal state error in /{} from {}: {}", event.name, event.user_id, exc)
            if outcome is not None:
                outcome.error = str(exc)
            return exc.user_message
        except ChatError as exc:
            logger.warning("/{} from {} failed: {}", event.name, event.user_id, exc)
            if outcome is not None:
                outcome.error = str(exc)
            return exc.user_message
        except Exception as exc:
            logger.exception("Unexpected error handling /{} from {}", event.name, event.user_id)
            if outcome is not None:
                outcome.error = repr(exc)
            return GENERIC_FAILURE_REPLY

    # ------------------------------------------------------------------
    # User commands

    async def _chat(self, event: CommandEvent) -> str:
        prompt = _require_text(event, "prompt")
        reply = await self.chat_service.chat(event.user_id, event.conversation_id, prompt)
        return reply.content if reply.content is not None else replies.NO_RESPONSE_REPLY

    async def _reset(self, event: CommandEvent) -> str:
        self.chat_service.reset(event.user_id, event.conversation_id)
        return replies.RESET_REPLY

    async def _set_privacy(self, event: CommandEvent) -> str:
        mode = _require_text(event, "mode").lower()
        if mode not in ("private", "public"):
            raise InvalidCommand("Privacy must be either 'private' or 'public'.")
        self.chat_service.set_privacy(event.user_id, mode == "private")
        return replies.PRIVACY_REPLY.format(mode=mode)

    async def _private(self, event: CommandEvent) -> str:
        self.chat_service.set_privacy(event.user_id, True)
        return replies.PRIVACY_REPLY.format(mode="private")

    async def _public(self, event: CommandEvent) -> str:
        self.chat_service.set_privacy(event.user_id, False)
        return replies.PRIVACY_REPLY.format(mode="public")

    async def _select_persona(self, event: CommandEvent) -> str:
        name = _require_text(event, "name")
        persona = self.chat_service.select_persona(event.user_id, name)
        return replies.PERSONA_SELECTED_REPLY.format(name=persona.name)

    async def _select_model(self, event: CommandEvent) -> str:
        name = _require_text(event, "name")
        profile = self.chat_service.select_model(event.user_id, name)
        return replies.MODEL_SELECTED_REPLY.format(name=profile.name)

    async def _usage(self, event: CommandEvent) -> str:
        summary = self.chat_service.usage_summary(event.user_id, event.conversation_id)
        return replies.USAGE_REPLY.format(**asdict(summary))

    # ------------------------------------------------------------------
    # Persona workflow

    async def _define_persona(self, event: CommandEvent) -> str:
        text = _require_text(event, "text")
        transition = await self.advance_workflow(event.user_id, CommandEventKind.DEFINE_PERSONA, text)
        name = transition.previous.persona_name or transition.state.persona_name
        if transition.outcome == TransitionKind.STARTED:
            return replies.PERSONA_PROMPT_REQUEST.format(name=name)
        return replies.PERSONA_DEFINED_REPLY.format(name=name)

    async def _cancel_persona(self, event: CommandEvent) -> str:
        transition = await self.advance_workflow(event.user_id, CommandEventKind.CANCEL)
        if transition.outcome == TransitionKind.CANCELLED:
            return replies.PERSONA_CANCELLED_REPLY.format(name=transition.previous.persona_name)
        return replies.NOTHING_TO_CANCEL_REPLY

    async def advance_workflow(self, user_id: str, kind: CommandEventKind, text: str = "") -> Transition:
        """Apply one workflow event for ``user_id``.

        The state is read, advanced and committed inside a single store
        mutation, so overlapping invocations for one user are applied one
        after the other and each sees the state the previous one left
        behind.  The persona write follows once the user lock has been
        released.
        """
        self.store.ensure(user_id)

        def step(user: User) -> Transition:
            try:
                transition = advance(user.settings.command_state, kind, text)
            except ValueError as exc:
                raise InvalidCommand(str(exc).capitalize() + ".") from exc
            user.settings.command_state = transition.state
            return transition

        transition = self.store.modify(user_id, step)
        if transition.change is not None:
            self._apply_persona_change(transition.change)
        logger.info(
            "Persona workflow for {}: {} -> {} ({})",
            user_id,
            transition.previous.kind.value,
            transition.state.kind.value,
            transition.outcome,
        )
        return transition

    def _apply_persona_change(self, change: PersonaChange) -> None:
        self.personas.upsert(change.name, prompt=change.prompt)

    # ------------------------------------------------------------------
    # Admin persona management

    async def _admin_persona(self, event: CommandEvent) -> str:
        sub = event.subcommand()
        if sub is None:
            raise InvalidCommand("Choose either 'add' or 'remove'.")
        args = {opt.name: opt.value for opt in sub.options}
        if sub.name == "add":
            name = _clean(args.get("name"))
            prompt = args.get("prompt")
            if not name or not isinstance(prompt, str) or not prompt.strip():
                raise InvalidCommand("Adding a persona needs a name and a prompt.")
            description = args.get("description")
            self.personas.upsert(name, description=description if isinstance(description, str) else "", prompt=prompt)
            return replies.PERSONA_ADDED_REPLY.format(name=name)
        if sub.name == "remove":
            name = _clean(args.get("name"))
            if not name:
                raise InvalidCommand("Removing a persona needs its name.")
            if not self.personas.remove(name):
                raise PersonaNotFound(name)
            return replies.PERSONA_REMOVED_REPLY.format(name=name)
        raise InvalidCommand(f"Unknown persona action: {sub.name}.")


def _clean(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _require_text(event: CommandEvent, option: str) -> str:
    value = event.option(option)
    if value is None:
        value = event.option()
    text = _clean(value)
    if not text:
        raise InvalidCommand(f"The /{event.name} command needs a {option}.")
    return text


@lru_cache()
def get_command_service() -> CommandService:
    return CommandService()
