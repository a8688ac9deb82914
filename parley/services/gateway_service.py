"""Outbound calls to the messaging gateway.

Every inbound command must be acknowledged within a hard deadline.  After
that the final content is delivered either by editing the original
response or, if the edit fails, by sending a follow-up message.  Replies
can be ephemeral (visible only to the caller).
"""

from __future__ import annotations

import asyncio
from functools import lru_cache
from typing import Any, Iterable

import httpx
from loguru import logger

from ..config.app_config import AppConfig, get_app_config
from ..config.gateway_config import GatewayConfig, get_gateway_config
from ..models.interaction import CommandEvent
from ..utils.error_handler import AcknowledgmentTimeout, ChatError

# Interaction callback types and message flags understood by the gateway.
CHANNEL_MESSAGE_WITH_SOURCE = 4
DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE = 5
EPHEMERAL_FLAG = 64

# Option kinds used when registering commands.
OPTION_SUB_COMMAND = 1
OPTION_STRING = 3

ADMINISTRATOR_PERMISSION = "8"


class GatewayError(ChatError):
    """Raised when the gateway rejects a delivery."""


class GatewayService:
    """HTTP client for acknowledging interactions and delivering replies."""

    def __init__(
        self,
        gateway_config: GatewayConfig | None = None,
        app_config: AppConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.gateway_config = gateway_config or get_gateway_config()
        self.app_config = app_config or get_app_config()
        self._transport = transport

    @property
    def ack_deadline(self) -> float:
        return self.app_config.ack_deadline_seconds

    def _client(self) -> httpx.AsyncClient:
        headers = {}
        if self.gateway_config.token:
            headers["Authorization"] = f"Bot {self.gateway_config.token}"
        return httpx.AsyncClient(
            base_url=self.gateway_config.base_url,
            headers=headers,
            timeout=self.gateway_config.timeout,
            transport=self._transport,
        )

    async def acknowledge(self, event: CommandEvent, ephemeral: bool) -> None:
        """Acknowledge ``event`` within the gateway deadline.

        Ephemeral acknowledgements answer immediately with a private
        "Processing..." message; public ones are deferred.

        Raises
        ------
        AcknowledgmentTimeout
            If the deadline passes or the gateway refuses the
            acknowledgement.  The interaction cannot be answered anymore.
        """
        if ephemeral:
            body: dict[str, Any] = {
                "type": CHANNEL_MESSAGE_WITH_SOURCE,
                "data": {"content": "Processing...", "flags": EPHEMERAL_FLAG},
            }
        else:
            body = {"type": DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE}

        async def send() -> None:
            async with self._client() as client:
                response = await client.post(f"/interactions/{event.id}/{event.token}/callback", json=body)
                response.raise_for_status()

        try:
            await asyncio.wait_for(send(), timeout=self.ack_deadline)
        except asyncio.TimeoutError as exc:
            logger.error("Timed out while acknowledging interaction {}", event.id)
            raise AcknowledgmentTimeout(f"Interaction {event.id} not acknowledged within {self.ack_deadline}s") from exc
        except httpx.HTTPError as exc:
            logger.error("Error acknowledging interaction {}: {!r}", event.id, exc)
            raise AcknowledgmentTimeout(f"Interaction {event.id} could not be acknowledged") from exc
        logger.debug("Acknowledged interaction {}", event.id)

    async def create_followup(self, event: CommandEvent, content: str, ephemeral: bool) -> None:
        """Send ``content`` as a follow-up message."""
        path = f"/webhooks/{self.gateway_config.application_id}/{event.token}"
        try:
            async with self._client() as client:
                response = await client.post(path, json=_message_body(content, ephemeral))
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Error sending follow-up message for {}: {!r}", event.id, exc)
            raise GatewayError(f"Follow-up for interaction {event.id} failed") from exc
        logger.debug("Sent the follow-up message for {}", event.id)

    async def edit_original_or_followup(self, event: CommandEvent, content: str, ephemeral: bool) -> None:
        """Replace the acknowledgement with ``content``, falling back to a follow-up."""
        path = f"/webhooks/{self.gateway_config.application_id}/{event.token}/messages/@original"
        try:
            async with self._client() as client:
                response = await client.patch(path, json=_message_body(content, ephemeral))
                response.raise_for_status()
            logger.debug("Edited the original message for {}", event.id)
            return
        except httpx.HTTPError as exc:
            logger.warning("Editing original response for {} failed ({!r}); sending follow-up", event.id, exc)
        await self.create_followup(event, content, ephemeral)

    async def register_commands(self, persona_names: Iterable[str]) -> None:
        """Overwrite the application's global commands."""
        definitions = build_command_definitions(list(persona_names))
        path = f"/applications/{self.gateway_config.application_id}/commands"
        try:
            async with self._client() as client:
                response = await client.put(path, json=definitions)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Error registering application commands: {!r}", exc)
            raise GatewayError("Command registration failed") from exc
        logger.info("Registered {} application commands", len(definitions))


def _message_body(content: str, ephemeral: bool) -> dict[str, Any]:
    body: dict[str, Any] = {"content": content}
    if ephemeral:
        body["flags"] = EPHEMERAL_FLAG
    return body


def _string_option(name: str, description: str, choices: list[str] | None = None) -> dict[str, Any]:
    option: dict[str, Any] = {
        "type": OPTION_STRING,
        "name": name,
        "description": description,
        "required": True,
    }
    if choices:
        # The gateway accepts at most 25 fixed choices per option.
        option["choices"] = [{"name": choice, "value": choice} for choice in choices[:25]]
    return option


def build_command_definitions(persona_names: list[str]) -> list[dict[str, Any]]:
    """Return the command surface in the gateway's registration format."""
    admin = {"default_member_permissions": ADMINISTRATOR_PERMISSION}
    return [
        {
            "name": "chat",
            "description": "Your message to the AI",
            "options": [_string_option("prompt", "Your message to the AI")],
        },
        {"name": "reset", "description": "Reset the chat history"},
        {
            "name": "set-privacy",
            "description": "Choose whether replies are private or public",
            "options": [_string_option("mode", "private or public", ["private", "public"])],
        },
        {"name": "private", "description": "Set the chat privacy to private"},
        {"name": "public", "description": "Set the chat privacy to public"},
        {
            "name": "select-persona",
            "description": "Set the AI personality",
            "options": [_string_option("name", "Set the AI personality", persona_names)],
        },
        {
            "name": "select-model",
            "description": "Set the AI model",
            "options": [_string_option("name", "Model name")],
        },
        {"name": "usage", "description": "Show your usage"},
        {
            "name": "define-persona",
            "description": "Define a persona: first its name, then its prompt",
            "options": [_string_option("text", "Persona name, or the prompt when one is pending")],
            **admin,
        },
        {"name": "cancel-persona", "description": "Cancel a pending persona definition", **admin},
        {
            "name": "admin-persona",
            "description": "Add or remove a personality",
            "options": [
                {
                    "type": OPTION_SUB_COMMAND,
                    "name": "add",
                    "description": "Add a new personality",
                    "options": [
                        _string_option("name", "The name of the new personality"),
                        _string_option("description", "The description of the new personality"),
                        _string_option("prompt", "The prompt of the new personality"),
                    ],
                },
                {
                    "type": OPTION_SUB_COMMAND,
                    "name": "remove",
                    "description": "Remove a personality",
                    "options": [_string_option("name", "The name of the personality to remove", persona_names)],
                },
            ],
            **admin,
        },
    ]


@lru_cache()
def get_gateway_service() -> GatewayService:
    return GatewayService()
