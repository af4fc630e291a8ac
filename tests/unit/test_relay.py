"""Unit tests for the event relay envelopes and recipient rules."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from groupchat.realtime.registry import ConnectionRegistry
from groupchat.realtime.relay import EventRelay, envelope


def _message(**overrides):
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    author = SimpleNamespace(id="u1", username="alice", created_at=now)
    fields = dict(
        id="m1",
        conversation_id="c1",
        author_id="u1",
        text="hi",
        created_at=now,
        updated_at=None,
        author=author,
        reactions=[],
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def relay():
    return EventRelay(ConnectionRegistry())


def test_envelope_shape():
    assert envelope("welcome", "connected") == '{"type": "welcome", "payload": "connected"}'


@pytest.mark.asyncio
async def test_message_created_payload_is_camel_case(relay, make_connection):
    conn = make_connection()
    relay.registry.join(conn, "c1")

    await relay.message_created(_message())

    event = conn.sent[0]
    assert event["type"] == "message:new"
    payload = event["payload"]
    assert payload["id"] == "m1"
    assert payload["conversationId"] == "c1"
    assert payload["authorId"] == "u1"
    assert payload["author"]["username"] == "alice"
    assert payload["reactions"] == []


@pytest.mark.asyncio
async def test_message_deleted_payload(relay, make_connection):
    conn = make_connection()
    relay.registry.join(conn, "c1")

    await relay.message_deleted("m1", "c1")

    assert conn.sent == [{"type": "message:deleted", "payload": {"id": "m1", "conversationId": "c1"}}]


@pytest.mark.asyncio
async def test_reaction_added_payload(relay, make_connection):
    conn = make_connection()
    relay.registry.join(conn, "c1")
    reaction = SimpleNamespace(id="r1", message_id="m1", user_id="u2", emoji="👍",
                               created_at=datetime(2026, 1, 1, tzinfo=timezone.utc))

    await relay.reaction_added(_message(reactions=[reaction]), reaction)

    payload = conn.sent[0]["payload"]
    assert conn.sent[0]["type"] == "reaction:added"
    assert payload["messageId"] == "m1"
    assert payload["reaction"]["emoji"] == "👍"
    assert payload["message"]["reactions"][0]["id"] == "r1"


@pytest.mark.asyncio
async def test_reaction_removed_payload(relay, make_connection):
    conn = make_connection()
    relay.registry.join(conn, "c1")

    await relay.reaction_removed(_message(), "u2", "👍")

    payload = conn.sent[0]["payload"]
    assert conn.sent[0]["type"] == "reaction:removed"
    assert payload["userId"] == "u2"
    assert payload["emoji"] == "👍"
    assert payload["message"]["id"] == "m1"


@pytest.mark.asyncio
async def test_typing_skips_the_typists_own_connections(relay, make_connection):
    sender = make_connection()
    peer = make_connection()
    own_other_tab = make_connection()
    elsewhere = make_connection()
    relay.registry.join(sender, "c1", "u1")
    relay.registry.join(peer, "c1", "u2")
    relay.registry.join(own_other_tab, "c1", "u1")
    relay.registry.join(elsewhere, "c2", "u3")

    delivered = await relay.typing("c1", "u1", "Alice", sender=sender)

    assert delivered == 1
    assert peer.sent == [{"type": "typing",
                          "payload": {"userId": "u1", "username": "Alice", "conversationId": "c1"}}]
    assert sender.sent == []
    assert own_other_tab.sent == []
    assert elsewhere.sent == []


@pytest.mark.asyncio
async def test_presence_lists_online_users(relay, make_connection):
    a, b = make_connection(), make_connection()
    relay.registry.join(a, "c1", "u1")
    relay.registry.join(b, "c1", "u2")

    await relay.presence("c1")

    for conn in (a, b):
        assert conn.sent == [{"type": "users:online",
                              "payload": {"conversationId": "c1", "userIds": ["u1", "u2"]}}]
