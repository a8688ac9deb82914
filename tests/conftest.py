from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from parley.config.app_config import AppConfig
from parley.config.gateway_config import GatewayConfig
from parley.config.llm_config import LlmConfig
from parley.memory.persona_registry import PersonaRegistry
from parley.memory.session_store import SessionStore
from parley.models.personality import Personality
from parley.services.chat_service import ChatService
from parley.services.gateway_service import GatewayService
from parley.services.llm_service import LLMService


def completion_body(content: str | None = "Hello there") -> dict[str, Any]:
    choices = []
    if content is not None:
        choices.append(
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        )
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "choices": choices,
        "usage": {"prompt_tokens": 10, "completion_tokens": 2, "total_tokens": 12},
    }


class ProviderStub:
    """Records completion requests and answers them from a queue."""

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.replies: list[httpx.Response] = []

    def reply_with(self, content: str | None = "Hello there", status_code: int = 200) -> None:
        self.replies.append(httpx.Response(status_code, json=completion_body(content)))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if self.replies:
            return self.replies.pop(0)
        return httpx.Response(200, json=completion_body())

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class GatewayStub:
    """Records gateway calls; individual paths can be made to fail."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.fail_edits = False
        self.fail_acks = False
        self.fail_followups = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        self.calls.append((request.method, request.url.path, body))
        if request.url.path.endswith("/callback") and self.fail_acks:
            return httpx.Response(500)
        if request.method == "PATCH" and self.fail_edits:
            return httpx.Response(404)
        if request.method == "POST" and "/webhooks/" in request.url.path and self.fail_followups:
            return httpx.Response(500)
        return httpx.Response(200, json={})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def deliveries(self) -> list[dict[str, Any]]:
        return [body for method, path, body in self.calls if not path.endswith("/callback")]

    def acks(self) -> list[dict[str, Any]]:
        return [body for method, path, body in self.calls if path.endswith("/callback")]


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(persona_seed_file=str(tmp_path / "personas.json"), eviction_policy="one_shot")


@pytest.fixture
def llm_config() -> LlmConfig:
    return LlmConfig(LLM_API_KEY="test-key", LLM_BASE_URL="https://llm.test/v1", LLM_MODEL="gpt-3.5-turbo")


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig(
        GATEWAY_BASE_URL="https://gateway.test/api",
        GATEWAY_APPLICATION_ID="app-1",
        GATEWAY_TOKEN="bot-token",
    )


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def registry() -> PersonaRegistry:
    return PersonaRegistry(
        [
            Personality.default(),
            Personality(name="Pirate", description="Arr", prompt="Speak like a pirate."),
        ]
    )


@pytest.fixture
def provider() -> ProviderStub:
    return ProviderStub()


@pytest.fixture
def gateway_stub() -> GatewayStub:
    return GatewayStub()


@pytest.fixture
def chat_service(
    store: SessionStore,
    registry: PersonaRegistry,
    provider: ProviderStub,
    llm_config: LlmConfig,
    app_config: AppConfig,
) -> ChatService:
    llm = LLMService(llm_config=llm_config, transport=provider.transport)
    return ChatService(store=store, personas=registry, llm_service=llm, app_config=app_config)


@pytest.fixture
def gateway_service(
    gateway_stub: GatewayStub,
    gateway_config: GatewayConfig,
    app_config: AppConfig,
) -> GatewayService:
    return GatewayService(gateway_config=gateway_config, app_config=app_config, transport=gateway_stub.transport)


@pytest.fixture
def event_factory() -> Callable[..., Any]:
    from parley.models.interaction import CommandEvent, CommandOption

    counter = {"n": 0}

    def make(name: str, *args: tuple[str, Any], user_id: str = "u1", conversation_id: str = "c1",
             is_admin: bool = False, options: list[CommandOption] | None = None) -> CommandEvent:
        counter["n"] += 1
        opts = options if options is not None else [CommandOption(name=k, value=v) for k, v in args]
        return CommandEvent(
            id=f"i{counter['n']}",
            token=f"t{counter['n']}",
            name=name,
            user_id=user_id,
            user_name=user_id,
            conversation_id=conversation_id,
            is_admin=is_admin,
            options=opts,
        )

    return make
