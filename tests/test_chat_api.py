import logging

from convochat.models import Conversation


def _count_conversations(app_session):
    db = app_session()
    try:
        return db.query(Conversation).count()
    finally:
        db.close()


def test_guest_chat_is_not_persisted(client, generator, app_session):
    res = client.post("/api/chat", data={"message": "hello"})

    assert res.status_code == 200
    assert res.json() == {"text": "Hello from the model"}
    assert generator.calls == [(["hello"], None)]
    assert _count_conversations(app_session) == 0


def test_invalid_bearer_is_served_as_guest(client, app_session):
    res = client.post("/api/chat", data={"message": "hello"}, headers={"Authorization": "Bearer null"})
    assert res.status_code == 200
    assert "conversationId" not in res.json()

    res = client.post("/api/chat", data={"message": "hello"}, headers={"Authorization": "Bearer forged.token.value"})
    assert res.status_code == 200
    assert "conversationId" not in res.json()
    assert _count_conversations(app_session) == 0


def test_empty_input_rejected(client, generator):
    res = client.post("/api/chat", data={"message": "   "})
    assert res.status_code == 400
    assert res.json() == {"error": "Message or file is required"}
    assert generator.calls == []


def test_empty_file_without_message_rejected(client, generator):
    res = client.post("/api/chat", files={"file": ("empty.txt", b"", "text/plain")})
    assert res.status_code == 400
    assert res.json() == {"error": "Message or file is required"}
    assert generator.calls == []


def test_empty_file_with_message_is_text_only(client, generator, auth_headers):
    headers = auth_headers()
    res = client.post(
        "/api/chat",
        data={"message": "hi"},
        files={"file": ("empty.txt", b"", "text/plain")},
        headers=headers,
    )

    assert res.status_code == 200
    assert generator.calls == [(["hi"], None)]
    conv = client.get(f"/api/conversations/{res.json()['conversationId']}", headers=headers).json()
    assert conv["messages"][0]["text"] == "hi"


def test_message_is_stored_and_sent_verbatim(client, generator, auth_headers):
    headers = auth_headers()
    raw = "  indented code\n"
    res = client.post("/api/chat", data={"message": raw}, headers=headers)

    assert generator.calls == [([raw], None)]
    conv = client.get(f"/api/conversations/{res.json()['conversationId']}", headers=headers).json()
    assert conv["messages"][0]["text"] == raw
    assert conv["title"] == "indented code"


def test_upstream_failure_logged_once(client, generator, caplog):
    generator.error = TimeoutError("model exploded")

    with caplog.at_level(logging.INFO):
        res = client.post("/api/chat", data={"message": "hi"})

    assert res.status_code == 500
    errors = [r for r in caplog.records if r.levelno >= logging.ERROR]
    assert len(errors) == 1
    assert errors[0].exc_info is not None


def test_signed_in_chat_builds_conversation(client, auth_headers):
    headers = auth_headers()

    first = client.post("/api/chat", data={"message": "hi"}, headers=headers)
    assert first.status_code == 200
    conv_id = first.json()["conversationId"]

    second = client.post("/api/chat", data={"message": "tell me more", "conversationId": conv_id}, headers=headers)
    assert second.json()["conversationId"] == conv_id

    res = client.get(f"/api/conversations/{conv_id}", headers=headers)
    assert res.status_code == 200
    body = res.json()
    assert body["_id"] == conv_id
    assert body["title"] == "hi"
    assert [(m["role"], m["text"]) for m in body["messages"]] == [
        ("user", "hi"),
        ("assistant", "Hello from the model"),
        ("user", "tell me more"),
        ("assistant", "Hello from the model"),
    ]
    assert all(m["timestamp"] for m in body["messages"])

    listing = client.get("/api/conversations", headers=headers).json()
    assert [(c["_id"], c["title"]) for c in listing] == [(conv_id, "hi")]


def test_unknown_conversation_id_starts_new_thread(client, auth_headers, app_session):
    headers = auth_headers()
    res = client.post("/api/chat", data={"message": "hi", "conversationId": "0" * 32}, headers=headers)

    assert res.status_code == 200
    assert res.json()["conversationId"] != "0" * 32
    assert _count_conversations(app_session) == 1


def test_upstream_failure_persists_nothing(client, generator, auth_headers, app_session):
    generator.error = TimeoutError("model exploded")

    res = client.post("/api/chat", data={"message": "hi"}, headers=auth_headers())

    assert res.status_code == 500
    assert res.json() == {"error": "model exploded"}
    assert _count_conversations(app_session) == 0


def test_file_only_turn(client, generator, auth_headers):
    headers = auth_headers()
    res = client.post(
        "/api/chat",
        files={"file": ("notes.txt", b"remember the milk", "text/plain")},
        headers=headers,
    )

    assert res.status_code == 200
    [(text_parts, inline_file)] = generator.calls
    assert text_parts == []
    assert inline_file.filename == "notes.txt"
    assert inline_file.mime_type == "text/plain"
    assert inline_file.data == b"remember the milk"

    conv = client.get(f"/api/conversations/{res.json()['conversationId']}", headers=headers).json()
    assert conv["title"] == "File Upload"
    assert conv["messages"][0]["text"] == "[File: notes.txt]"


def test_file_with_message_is_marked_in_transcript(client, auth_headers):
    headers = auth_headers()
    res = client.post(
        "/api/chat",
        data={"message": "what is in this picture?"},
        files={"file": ("cat.png", b"\x89PNG fake", "image/png")},
        headers=headers,
    )

    conv = client.get(f"/api/conversations/{res.json()['conversationId']}", headers=headers).json()
    assert conv["title"] == "what is in this picture?"
    assert conv["messages"][0]["text"] == "[File: cat.png] what is in this picture?"


def test_oversized_file_rejected(client, generator):
    res = client.post("/api/chat", files={"file": ("big.bin", b"x" * 2048, "application/octet-stream")})
    assert res.status_code == 400
    assert res.json() == {"error": "File too large"}
    assert generator.calls == []


def test_guest_conversation_list_is_empty(client):
    res = client.get("/api/conversations")
    assert res.status_code == 200
    assert res.json() == []


def test_conversation_fetch_errors(client, auth_headers):
    alice = auth_headers("alice@example.com")
    bob = auth_headers("bob@example.com")
    conv_id = client.post("/api/chat", data={"message": "hi"}, headers=alice).json()["conversationId"]

    assert client.get(f"/api/conversations/{conv_id}").status_code == 401
    assert client.get("/api/conversations/not-an-id", headers=alice).status_code == 400
    res = client.get(f"/api/conversations/{conv_id}", headers=bob)
    assert res.status_code == 404
    assert client.get(f"/api/conversations/{'0' * 32}", headers=alice).status_code == 404
    assert client.get("/api/conversations", headers=bob).json() == []


def test_delete_conversation(client, auth_headers):
    alice = auth_headers("alice@example.com")
    bob = auth_headers("bob@example.com")
    conv_id = client.post("/api/chat", data={"message": "hi"}, headers=alice).json()["conversationId"]

    assert client.delete(f"/api/conversations/{conv_id}").status_code == 401
    # not bob's: silently ignored
    assert client.delete(f"/api/conversations/{conv_id}", headers=bob).status_code == 200
    assert client.get(f"/api/conversations/{conv_id}", headers=alice).status_code == 200

    res = client.delete(f"/api/conversations/{conv_id}", headers=alice)
    assert res.status_code == 200
    assert res.json() == {"message": "Deleted"}
    assert client.get(f"/api/conversations/{conv_id}", headers=alice).status_code == 404
    assert client.delete(f"/api/conversations/{conv_id}", headers=alice).status_code == 200
