"""Inbound command events delivered by the messaging gateway."""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, Field


class CommandOption(BaseModel):
    """A named argument of a command.

    Sub-commands (``admin-persona add ...``) are options without a value
    whose own ``options`` hold the arguments.
    """

    name: str
    value: Optional[Any] = None
    options: List["CommandOption"] = Field(default_factory=list)


class CommandEvent(BaseModel):
    """A single slash-command invocation.

    ``id`` and ``token`` identify the interaction towards the gateway and
    are required to acknowledge it and to deliver the reply later.
    """

    id: str
    token: str
    name: str = Field(..., min_length=1)
    user_id: str
    user_name: str = ""
    conversation_id: str
    is_admin: bool = False
    options: List[CommandOption] = Field(default_factory=list)

    def option(self, name: str | None = None) -> Any:
        """Return the value of option ``name`` (or of the first option)."""
        if not self.options:
            return None
        if name is None:
            return self.options[0].value
        for opt in self.options:
            if opt.name == name:
                return opt.value
        return None

    def subcommand(self) -> CommandOption | None:
        """Return the first value-less option, if the command has one."""
        for opt in self.options:
            if opt.value is None:
                return opt
        return None


class InteractionAccepted(BaseModel):
    status: str = "accepted"
    interaction_id: str


CommandOption.model_rebuild()
