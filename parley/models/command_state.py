"""State machine for the two-step persona definition workflow.

An admin defines a persona in two commands.  The first names it and the
second supplies the prompt::

    NONE --define(name)--> AWAITING_PERSONALITY_PROMPT(name)
    AWAITING_PERSONALITY_PROMPT(name) --define(prompt)--> NONE
    AWAITING_PERSONALITY_PROMPT(name) --cancel--> NONE
    NONE --cancel--> NONE

Transitions are pure: :func:`advance` returns the next state together with
the registry change the caller has to apply.  It never touches the
registry itself so that it can run while the user table is locked.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from .enums import CommandEventKind, CommandStateKind


class CommandState(BaseModel):
    """Per-user workflow marker."""

    model_config = ConfigDict(frozen=True)

    kind: CommandStateKind = CommandStateKind.NONE
    persona_name: Optional[str] = None

    @model_validator(mode="after")
    def _check_payload(self) -> "CommandState":
        if self.kind is CommandStateKind.AWAITING_PERSONALITY_PROMPT and not self.persona_name:
            raise ValueError("awaiting a personality prompt requires a persona name")
        if self.kind is CommandStateKind.NONE and self.persona_name is not None:
            raise ValueError("the idle state carries no persona name")
        return self

    @classmethod
    def none(cls) -> "CommandState":
        return cls()

    @classmethod
    def awaiting_prompt(cls, name: str) -> "CommandState":
        return cls(kind=CommandStateKind.AWAITING_PERSONALITY_PROMPT, persona_name=name)

    @property
    def is_idle(self) -> bool:
        return self.kind is CommandStateKind.NONE


@dataclass(frozen=True)
class PersonaChange:
    """Registry write requested by a transition.

    ``prompt`` of ``None`` means "create the persona if missing, otherwise
    leave it as it is".
    """

    name: str
    prompt: Optional[str] = None


class TransitionKind:
    STARTED = "started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    IGNORED = "ignored"


@dataclass(frozen=True)
class Transition:
    previous: CommandState
    state: CommandState
    outcome: str
    change: Optional[PersonaChange] = None


def _begin(state: CommandState, text: str) -> Transition:
    name = text.strip()
    if not name:
        raise ValueError("a persona name is required")
    return Transition(state, CommandState.awaiting_prompt(name), TransitionKind.STARTED, PersonaChange(name))


def _complete(state: CommandState, text: str) -> Transition:
    name = state.persona_name or ""
    return Transition(state, CommandState.none(), TransitionKind.COMPLETED, PersonaChange(name, prompt=text))


def _abort(state: CommandState, text: str) -> Transition:
    return Transition(state, CommandState.none(), TransitionKind.CANCELLED)


def _stay(state: CommandState, text: str) -> Transition:
    return Transition(state, state, TransitionKind.IGNORED)


TRANSITIONS: dict[tuple[CommandStateKind, CommandEventKind], Callable[[CommandState, str], Transition]] = {
    (CommandStateKind.NONE, CommandEventKind.DEFINE_PERSONA): _begin,
    (CommandStateKind.NONE, CommandEventKind.CANCEL): _stay,
    (CommandStateKind.AWAITING_PERSONALITY_PROMPT, CommandEventKind.DEFINE_PERSONA): _complete,
    (CommandStateKind.AWAITING_PERSONALITY_PROMPT, CommandEventKind.CANCEL): _abort,
}


def advance(state: CommandState, event: CommandEventKind, text: str = "") -> Transition:
    """Apply ``event`` to ``state`` using :data:`TRANSITIONS`."""
    return TRANSITIONS[(state.kind, event)](state, text)
