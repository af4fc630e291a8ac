import pytest


async def _user(client, username):
    return (await client.post("/users", json={"username": username})).json()


async def _conversation(client, title, *members):
    return (await client.post("/conversations", json={
        "title": title, "memberUserIds": [m["id"] for m in members]})).json()


async def _post(client, conversation, author, text):
    return await client.post("/messages", json={
        "conversationId": conversation["id"], "authorId": author["id"], "text": text})


async def _delete(client, message_id, author_id):
    return await client.request("DELETE", f"/messages/{message_id}", json={"authorId": author_id})


@pytest.mark.asyncio
async def test_alice_says_hi_in_general(client):
    alice = await _user(client, "alice")
    general = await _conversation(client, "General", alice)

    r = await _post(client, general, alice, "hi")
    assert r.status_code == 201

    r = await client.get("/messages", params={"conversationId": general["id"]})
    assert r.status_code == 200
    messages = r.json()
    assert len(messages) == 1
    assert messages[0]["text"] == "hi"
    assert messages[0]["author"]["username"] == "alice"
    assert messages[0]["reactions"] == []


@pytest.mark.asyncio
async def test_created_message_includes_author_and_reactions(client):
    alice = await _user(client, "alice")
    general = await _conversation(client, "General", alice)

    data = (await _post(client, general, alice, "hello")).json()
    assert data["conversationId"] == general["id"]
    assert data["authorId"] == alice["id"]
    assert data["author"]["id"] == alice["id"]
    assert data["reactions"] == []
    assert data["updatedAt"] is None


@pytest.mark.asyncio
async def test_messages_listed_oldest_first(client):
    alice = await _user(client, "alice")
    general = await _conversation(client, "General", alice)
    for text in ("one", "two", "three"):
        await _post(client, general, alice, text)

    r = await client.get("/messages", params={"conversationId": general["id"]})
    assert [m["text"] for m in r.json()] == ["one", "two", "three"]


@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["conversationId", "authorId", "text"])
async def test_create_message_requires_fields(client, missing):
    body = {"conversationId": "c", "authorId": "a", "text": "t"}
    del body[missing]
    r = await client.post("/messages", json=body)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_create_message_with_unknown_author_is_rejected(client):
    general = await _conversation(client, "General")
    r = await client.post("/messages", json={
        "conversationId": general["id"], "authorId": "ghost", "text": "boo"})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_long_message_is_stored_verbatim(client):
    alice = await _user(client, "alice")
    general = await _conversation(client, "General", alice)
    text = "x" * 10000
    r = await _post(client, general, alice, text)
    assert r.status_code == 201
    assert r.json()["text"] == text


@pytest.mark.asyncio
async def test_list_messages_requires_conversation_id(client):
    r = await client.get("/messages")
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_author_can_edit_message(client):
    alice = await _user(client, "alice")
    general = await _conversation(client, "General", alice)
    message = (await _post(client, general, alice, "hi")).json()

    r = await client.patch(f"/messages/{message['id']}", json={"text": "hi all", "authorId": alice["id"]})
    assert r.status_code == 200
    data = r.json()
    assert data["text"] == "hi all"
    assert data["updatedAt"] is not None


@pytest.mark.asyncio
async def test_edit_by_someone_else_is_forbidden(client):
    alice = await _user(client, "alice")
    mallory = await _user(client, "mallory")
    general = await _conversation(client, "General", alice, mallory)
    message = (await _post(client, general, alice, "original")).json()

    r = await client.patch(f"/messages/{message['id']}", json={"text": "hacked", "authorId": mallory["id"]})
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "forbidden"

    history = (await client.get("/messages", params={"conversationId": general["id"]})).json()
    assert history[0]["text"] == "original"


@pytest.mark.asyncio
async def test_edit_unknown_message_is_404(client):
    r = await client.patch("/messages/nope", json={"text": "x", "authorId": "a"})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_edit_requires_text(client):
    r = await client.patch("/messages/nope", json={"authorId": "a"})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_author_can_delete_message(client):
    alice = await _user(client, "alice")
    general = await _conversation(client, "General", alice)
    message = (await _post(client, general, alice, "oops")).json()
    await client.post(f"/messages/{message['id']}/reactions", json={"userId": alice["id"], "emoji": "👍"})

    r = await _delete(client, message["id"], alice["id"])
    assert r.status_code == 200
    assert r.json() == {"success": True, "id": message["id"]}

    history = (await client.get("/messages", params={"conversationId": general["id"]})).json()
    assert history == []


@pytest.mark.asyncio
async def test_delete_by_someone_else_is_forbidden(client):
    alice = await _user(client, "alice")
    bob = await _user(client, "bob")
    general = await _conversation(client, "General", alice, bob)
    message = (await _post(client, general, alice, "mine")).json()

    r = await _delete(client, message["id"], bob["id"])
    assert r.status_code == 403

    history = (await client.get("/messages", params={"conversationId": general["id"]})).json()
    assert len(history) == 1


@pytest.mark.asyncio
async def test_delete_unknown_message_is_404(client):
    r = await _delete(client, "nope", "a")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_delete_requires_author_id(client):
    r = await client.request("DELETE", "/messages/nope", json={})
    assert r.status_code == 400
