from __future__ import annotations

import asyncio
import threading
from pathlib import Path

import httpx
import pytest
from loguru import logger

from parley.config.app_config import AppConfig
from parley.memory.persona_registry import PersonaRegistry
from parley.memory.session_store import SessionStore
from parley.models.command_state import TransitionKind
from parley.models.enums import CommandEventKind, CommandStateKind
from parley.models.interaction import CommandOption
from parley.prompts import replies
from parley.services.command_service import GENERIC_FAILURE_REPLY, CommandService
from parley.services.gateway_service import GatewayService
from parley.utils.error_handler import PermissionDenied, ProviderError, StateConsistencyError


@pytest.fixture
def service(chat_service, gateway_service) -> CommandService:
    return CommandService(chat_service=chat_service, gateway=gateway_service)


def run(service: CommandService, event):
    return asyncio.run(service.handle(event))


def test_chat_is_acknowledged_then_delivered(service, event_factory, gateway_stub) -> None:
    outcome = run(service, event_factory("chat", ("prompt", "hello")))

    assert outcome.acknowledged
    assert outcome.delivered
    assert outcome.reply == "Hello there"
    assert outcome.error is None
    assert [(method, path) for method, path, _ in gateway_stub.calls] == [
        ("POST", "/api/interactions/i1/t1/callback"),
        ("PATCH", "/api/webhooks/app-1/t1/messages/@original"),
    ]
    assert gateway_stub.acks() == [{"type": 5}]
    assert gateway_stub.deliveries() == [{"content": "Hello there"}]


def test_first_command_creates_the_user(service, event_factory, store: SessionStore) -> None:
    run(service, event_factory("usage", user_id="newcomer"))
    assert store.exists("newcomer")


def test_private_users_get_ephemeral_replies(service, event_factory, gateway_stub, chat_service) -> None:
    chat_service.set_privacy("u1", True)

    run(service, event_factory("chat", ("prompt", "hello")))

    assert gateway_stub.acks() == [{"type": 4, "data": {"content": "Processing...", "flags": 64}}]
    assert gateway_stub.deliveries() == [{"content": "Hello there", "flags": 64}]


@pytest.mark.parametrize("name,args", [("public", ()), ("private", ()), ("set-privacy", (("mode", "public"),))])
def test_privacy_commands_are_always_ephemeral(service, event_factory, gateway_stub, name, args) -> None:
    outcome = run(service, event_factory(name, *args))

    assert gateway_stub.acks()[0]["data"]["flags"] == 64
    assert gateway_stub.deliveries()[0]["flags"] == 64
    assert outcome.reply and outcome.reply.startswith("Chat privacy set to")


def test_going_public_is_reflected_in_later_replies(service, event_factory, gateway_stub, chat_service) -> None:
    run(service, event_factory("private"))
    assert chat_service.is_private("u1")

    run(service, event_factory("public"))
    run(service, event_factory("reset"))

    assert gateway_stub.acks()[-1] == {"type": 5}
    assert gateway_stub.deliveries()[-1] == {"content": replies.RESET_REPLY}


def test_set_privacy_rejects_unknown_modes(service, event_factory, chat_service) -> None:
    outcome = run(service, event_factory("set-privacy", ("mode", "secret")))

    assert outcome.reply == "Privacy must be either 'private' or 'public'."
    assert chat_service.is_private("u1") is False


def test_failed_acknowledgement_abandons_the_command(service, event_factory, gateway_stub, provider) -> None:
    gateway_stub.fail_acks = True

    outcome = run(service, event_factory("chat", ("prompt", "hello")))

    assert not outcome.acknowledged
    assert not outcome.delivered
    assert outcome.error
    assert provider.requests == []
    assert gateway_stub.deliveries() == []


def test_slow_acknowledgement_times_out(chat_service, gateway_config, event_factory, provider, tmp_path: Path) -> None:
    async def slow(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200, json={})

    gateway = GatewayService(
        gateway_config=gateway_config,
        app_config=AppConfig(persona_seed_file=str(tmp_path / "p.json"), ack_deadline_seconds=0.05),
        transport=httpx.MockTransport(slow),
    )
    service = CommandService(chat_service=chat_service, gateway=gateway)

    outcome = run(service, event_factory("chat", ("prompt", "hello")))

    assert not outcome.acknowledged
    assert "not acknowledged" in (outcome.error or "")
    assert provider.requests == []


def test_failed_edit_falls_back_to_follow_up(service, event_factory, gateway_stub) -> None:
    gateway_stub.fail_edits = True

    outcome = run(service, event_factory("reset"))

    assert outcome.delivered
    assert [(method, path) for method, path, _ in gateway_stub.calls] == [
        ("POST", "/api/interactions/i1/t1/callback"),
        ("PATCH", "/api/webhooks/app-1/t1/messages/@original"),
        ("POST", "/api/webhooks/app-1/t1"),
    ]
    assert gateway_stub.deliveries()[-1] == {"content": replies.RESET_REPLY}


def test_undeliverable_reply_is_reported(service, event_factory, gateway_stub, chat_service) -> None:
    gateway_stub.fail_edits = True
    gateway_stub.fail_followups = True

    outcome = run(service, event_factory("private"))

    assert outcome.acknowledged
    assert not outcome.delivered
    assert outcome.error
    # The command itself still took effect.
    assert chat_service.is_private("u1")


def test_provider_failure_is_reported_politely(service, event_factory, provider, store: SessionStore) -> None:
    provider.reply_with(status_code=502)

    outcome = run(service, event_factory("chat", ("prompt", "hello")))

    assert outcome.reply == ProviderError.user_message
    assert outcome.delivered
    assert outcome.error
    assert store.read("u1", lambda user: user.usage.chat_count) == 0


def test_empty_completion_has_a_placeholder_reply(service, event_factory, provider) -> None:
    provider.reply_with(None)
    outcome = run(service, event_factory("chat", ("prompt", "hello")))
    assert outcome.reply == replies.NO_RESPONSE_REPLY


def test_chat_without_prompt_is_invalid(service, event_factory, provider) -> None:
    outcome = run(service, event_factory("chat"))
    assert outcome.reply == "The /chat command needs a prompt."
    assert provider.requests == []


def test_unknown_command(service, event_factory) -> None:
    outcome = run(service, event_factory("dance"))
    assert outcome.reply == "Unknown command: dance."


def test_unexpected_errors_do_not_break_other_users(service, event_factory, chat_service, monkeypatch) -> None:
    original_reset = chat_service.reset

    def explode(user_id: str, conversation_id: str) -> bool:
        if user_id == "u1":
            raise RuntimeError("boom")
        return original_reset(user_id, conversation_id)

    monkeypatch.setattr(chat_service, "reset", explode)

    failed = run(service, event_factory("reset", user_id="u1"))
    assert failed.reply == GENERIC_FAILURE_REPLY
    assert failed.delivered

    ok = run(service, event_factory("reset", user_id="u2"))
    assert ok.reply == replies.RESET_REPLY
    again = run(service, event_factory("chat", ("prompt", "still there?"), user_id="u1"))
    assert again.reply == "Hello there"


def test_select_persona_and_model_commands(service, event_factory, store: SessionStore) -> None:
    persona = run(service, event_factory("select-persona", ("name", "Pirate")))
    model = run(service, event_factory("select-model", ("name", "gpt-4")))
    missing = run(service, event_factory("select-persona", ("name", "Nobody")))

    assert persona.reply == "Personality has been set to Pirate."
    assert model.reply == "Model has been set to gpt-4."
    assert missing.reply == "There is no persona called 'Nobody'."
    user = store.snapshot("u1")
    assert user is not None
    assert user.settings.personality.name == "Pirate"
    assert user.settings.model.token_limit == 8000


def test_usage_command_formats_summary(service, event_factory) -> None:
    run(service, event_factory("chat", ("prompt", "hello")))
    outcome = run(service, event_factory("usage"))

    assert outcome.reply == replies.USAGE_REPLY.format(
        chat_count=1,
        total_tokens=3,
        tokens_used=3,
        token_limit=4096,
        persona="default",
        model="gpt-3.5-turbo",
    )


@pytest.mark.parametrize("name", ["define-persona", "cancel-persona", "admin-persona"])
def test_admin_commands_require_admin(service, event_factory, registry: PersonaRegistry, name) -> None:
    outcome = run(service, event_factory(name, ("text", "Poet")))

    assert outcome.reply == PermissionDenied.user_message
    assert registry.names() == ["default", "Pirate"]


def test_define_persona_in_two_steps(service, event_factory, registry: PersonaRegistry, store: SessionStore) -> None:
    started = run(service, event_factory("define-persona", ("text", "Poet"), is_admin=True))

    assert started.reply == replies.PERSONA_PROMPT_REQUEST.format(name="Poet")
    assert store.read("u1", lambda u: u.settings.command_state.kind) is CommandStateKind.AWAITING_PERSONALITY_PROMPT
    assert registry.names() == ["default", "Pirate", "Poet"]

    done = run(service, event_factory("define-persona", ("text", "Answer in rhyme."), is_admin=True))

    assert done.reply == replies.PERSONA_DEFINED_REPLY.format(name="Poet")
    assert store.read("u1", lambda u: u.settings.command_state.is_idle) is True
    poet = registry.get("Poet")
    assert poet is not None
    assert poet.prompt == "Answer in rhyme."
    assert registry.names().count("Poet") == 1


def test_redefining_an_existing_persona_updates_it_in_place(service, event_factory, registry: PersonaRegistry) -> None:
    run(service, event_factory("define-persona", ("text", "Pirate"), is_admin=True))
    run(service, event_factory("define-persona", ("text", "Talk like a captain."), is_admin=True))

    assert registry.names() == ["default", "Pirate"]
    pirate = registry.get("Pirate")
    assert pirate is not None
    assert pirate.prompt == "Talk like a captain."
    assert pirate.description == "Arr"


def test_cancel_persona_definition(service, event_factory, store: SessionStore) -> None:
    run(service, event_factory("define-persona", ("text", "Poet"), is_admin=True))

    cancelled = run(service, event_factory("cancel-persona", is_admin=True))
    nothing = run(service, event_factory("cancel-persona", is_admin=True))

    assert cancelled.reply == replies.PERSONA_CANCELLED_REPLY.format(name="Poet")
    assert nothing.reply == replies.NOTHING_TO_CANCEL_REPLY
    assert store.read("u1", lambda u: u.settings.command_state.is_idle) is True


def test_workflow_state_is_per_user(service, event_factory, store: SessionStore) -> None:
    run(service, event_factory("define-persona", ("text", "Poet"), user_id="admin-a", is_admin=True))
    other = run(service, event_factory("cancel-persona", user_id="admin-b", is_admin=True))

    assert other.reply == replies.NOTHING_TO_CANCEL_REPLY
    assert store.read("admin-a", lambda u: u.settings.command_state.persona_name) == "Poet"


def test_overlapping_workflow_events_are_serialised(service, registry: PersonaRegistry) -> None:
    async def both():
        return await asyncio.gather(
            service.advance_workflow("u1", CommandEventKind.DEFINE_PERSONA, "Poet"),
            service.advance_workflow("u1", CommandEventKind.DEFINE_PERSONA, "Rhyme."),
        )

    first, second = asyncio.run(both())

    assert first.outcome == TransitionKind.STARTED
    assert second.outcome == TransitionKind.COMPLETED
    assert second.previous.persona_name == "Poet"
    poet = registry.get("Poet")
    assert poet is not None
    assert poet.prompt == "Rhyme."
    assert registry.names().count("Poet") == 1


def test_admin_persona_add_and_remove(service, event_factory, registry: PersonaRegistry) -> None:
    add = CommandOption(
        name="add",
        options=[
            CommandOption(name="name", value="Chef"),
            CommandOption(name="description", value="Cooks"),
            CommandOption(name="prompt", value="Talk about food."),
        ],
    )
    added = run(service, event_factory("admin-persona", options=[add], is_admin=True))

    assert added.reply == replies.PERSONA_ADDED_REPLY.format(name="Chef")
    chef = registry.get("Chef")
    assert chef is not None
    assert chef.description == "Cooks"
    assert chef.prompt == "Talk about food."

    remove = CommandOption(name="remove", options=[CommandOption(name="name", value="Chef")])
    removed = run(service, event_factory("admin-persona", options=[remove], is_admin=True))
    again = run(service, event_factory("admin-persona", options=[remove], is_admin=True))

    assert removed.reply == replies.PERSONA_REMOVED_REPLY.format(name="Chef")
    assert again.reply == "There is no persona called 'Chef'."
    assert "Chef" not in registry


def test_admin_persona_add_needs_a_prompt(service, event_factory, registry: PersonaRegistry) -> None:
    add = CommandOption(name="add", options=[CommandOption(name="name", value="Chef")])

    outcome = run(service, event_factory("admin-persona", options=[add], is_admin=True))

    assert outcome.reply == "Adding a persona needs a name and a prompt."
    assert "Chef" not in registry


def test_workflow_events_from_many_threads_alternate_cleanly(service, registry: PersonaRegistry, store: SessionStore) -> None:
    outcomes: list[str] = []
    guard = threading.Lock()

    def worker(n: int) -> None:
        transition = asyncio.run(service.advance_workflow("u1", CommandEventKind.DEFINE_PERSONA, f"p{n}"))
        with guard:
            outcomes.append(transition.outcome)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    # Every read-advance-commit is atomic, so starts and completions pair up.
    assert outcomes.count(TransitionKind.STARTED) == 10
    assert outcomes.count(TransitionKind.COMPLETED) == 10
    assert store.read("u1", lambda u: u.settings.command_state.is_idle) is True
    created = [name for name in registry.names() if name not in ("default", "Pirate")]
    assert len(created) == 10
    assert all(registry.get(name).prompt for name in created)


def test_state_consistency_errors_are_logged_at_error_level(service, event_factory, chat_service, monkeypatch) -> None:
    def broken(user_id: str, conversation_id: str) -> bool:
        raise StateConsistencyError("accounting drift")

    monkeypatch.setattr(chat_service, "reset", broken)
    levels: list[tuple[str, str]] = []
    handler_id = logger.add(lambda message: levels.append((message.record["level"].name, message.record["message"])))
    try:
        outcome = run(service, event_factory("reset"))
    finally:
        logger.remove(handler_id)

    assert outcome.reply == GENERIC_FAILURE_REPLY
    assert outcome.error == "accounting drift"
    assert any(level == "ERROR" and "accounting drift" in text for level, text in levels)
    assert not any(level == "WARNING" and "accounting drift" in text for level, text in levels)
