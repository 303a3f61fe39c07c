# tests/v1/test_conversations.py
"""Tests for symmetric conversation endpoints."""

from fastapi import status

from marketplace_chat.core.settings import settings


def _start(client, participant, headers) -> str:
    response = client.post(
        "/api/v1/chat/conversations/start",
        json={"participantId": participant.id},
        headers=headers,
    )
    assert response.status_code == status.HTTP_200_OK, response.text
    return response.json()["conversation_id"]


def _send(client, conversation_id, body, headers):
    return client.post(
        f"/api/v1/chat/conversations/{conversation_id}/messages",
        json={"body": body},
        headers=headers,
    )


def _listing(client, headers, **params) -> list[dict]:
    response = client.get("/api/v1/chat/conversations", params=params, headers=headers)
    assert response.status_code == status.HTTP_200_OK
    return response.json()["conversations"]


def test_start_is_idempotent_and_symmetric(client, seller, buyer, buyer_headers, seller_headers, broadcast) -> None:
    first = _start(client, seller, buyer_headers)
    again = _start(client, seller, buyer_headers)
    reverse = _start(client, buyer, seller_headers)

    assert first == again == reverse
    assert broadcast.events_on(f"private-user-{seller.id}") == ["chat:conversation:started"]


def test_start_validation(client, buyer, buyer_headers) -> None:
    to_self = client.post(
        "/api/v1/chat/conversations/start",
        json={"participantId": buyer.id},
        headers=buyer_headers,
    )
    assert to_self.status_code == status.HTTP_400_BAD_REQUEST

    unknown = client.post(
        "/api/v1/chat/conversations/start",
        json={"participantId": "ghost"},
        headers=buyer_headers,
    )
    assert unknown.status_code == status.HTTP_404_NOT_FOUND

    missing = client.post("/api/v1/chat/conversations/start", json={}, headers=buyer_headers)
    assert missing.status_code == status.HTTP_400_BAD_REQUEST


def test_message_updates_unread_and_preview(client, seller, buyer, buyer_headers, seller_headers, broadcast) -> None:
    conversation_id = _start(client, seller, buyer_headers)

    response = _send(client, conversation_id, "  Hello there  ", buyer_headers)
    assert response.status_code == status.HTTP_201_CREATED
    message = response.json()["message"]
    assert message["body"] == "Hello there"
    assert message["sender_id"] == buyer.id

    [seller_entry] = _listing(client, seller_headers)
    assert seller_entry["id"] == conversation_id
    assert seller_entry["unread_count"] == 1
    assert seller_entry["preview"] == "Hello there"
    assert seller_entry["counterparty_id"] == buyer.id
    assert seller_entry["counterparty_name"] == "Bea Buyer"
    assert seller_entry["hidden"] is False

    [buyer_entry] = _listing(client, buyer_headers)
    assert buyer_entry["unread_count"] == 0
    assert buyer_entry["counterparty_name"] == "Acme Tools"

    assert broadcast.events_on(f"private-conversation-{conversation_id}") == ["chat:message:new"]
    assert broadcast.events_on(f"private-user-{seller.id}")[-1] == "chat:conversation:updated"
    assert "chat:conversation:updated" not in broadcast.events_on(f"private-user-{buyer.id}")
    [live] = broadcast.payloads("chat:message:new")
    assert live["sender_name"] == "Bea Buyer"


def test_mark_read_resets_unread(client, seller, buyer_headers, seller_headers, broadcast) -> None:
    conversation_id = _start(client, seller, buyer_headers)
    _send(client, conversation_id, "one", buyer_headers)
    _send(client, conversation_id, "two", buyer_headers)
    assert _listing(client, seller_headers)[0]["unread_count"] == 2

    for _ in range(2):
        response = client.post(
            f"/api/v1/chat/conversations/{conversation_id}/read",
            headers=seller_headers,
        )
        assert response.json() == {"ok": True}

    assert _listing(client, seller_headers)[0]["unread_count"] == 0
    assert "chat:conversation:read" in broadcast.events_on(f"private-user-{seller.id}")


def test_non_members_are_rejected(client, seller, buyer_headers, other_headers) -> None:
    conversation_id = _start(client, seller, buyer_headers)

    assert _send(client, conversation_id, "hi", other_headers).status_code == status.HTTP_403_FORBIDDEN
    history = client.get(
        f"/api/v1/chat/conversations/{conversation_id}/messages",
        headers=other_headers,
    )
    assert history.status_code == status.HTTP_403_FORBIDDEN
    read = client.post(f"/api/v1/chat/conversations/{conversation_id}/read", headers=other_headers)
    assert read.status_code == status.HTTP_403_FORBIDDEN


def test_empty_message_is_rejected(client, seller, buyer_headers) -> None:
    conversation_id = _start(client, seller, buyer_headers)
    response = _send(client, conversation_id, "   ", buyer_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "INVALID_REQUEST"


def test_hide_is_per_member_and_new_message_unhides(client, seller, buyer_headers, seller_headers) -> None:
    conversation_id = _start(client, seller, buyer_headers)
    _send(client, conversation_id, "first", buyer_headers)

    hide = client.post(f"/api/v1/chat/conversations/{conversation_id}/hide", headers=seller_headers)
    assert hide.json() == {"ok": True}
    assert _listing(client, seller_headers) == []
    [hidden] = _listing(client, seller_headers, includeHidden="true")
    assert hidden["hidden"] is True
    assert len(_listing(client, buyer_headers)) == 1

    _send(client, conversation_id, "still there?", buyer_headers)
    [visible] = _listing(client, seller_headers)
    assert visible["hidden"] is False

    client.post(f"/api/v1/chat/conversations/{conversation_id}/hide", headers=buyer_headers)
    client.post(f"/api/v1/chat/conversations/{conversation_id}/unhide", headers=buyer_headers)
    assert len(_listing(client, buyer_headers)) == 1


def test_history_pages_and_tags_direction(client, seller, buyer_headers, seller_headers) -> None:
    conversation_id = _start(client, seller, buyer_headers)
    for body in ("one", "two", "three"):
        _send(client, conversation_id, body, buyer_headers)
    _send(client, conversation_id, "four", seller_headers)

    full = client.get(
        f"/api/v1/chat/conversations/{conversation_id}/messages",
        headers=buyer_headers,
    ).json()["messages"]
    assert [item["body"] for item in full] == ["one", "two", "three", "four"]
    assert [item["type"] for item in full] == ["outgoing"] * 3 + ["incoming"]
    assert full[-1]["sender_name"] == "Acme Tools"

    latest = client.get(
        f"/api/v1/chat/conversations/{conversation_id}/messages",
        params={"order": "desc", "limit": 2},
        headers=buyer_headers,
    ).json()["messages"]
    assert [item["body"] for item in latest] == ["four", "three"]


def test_typing_is_throttled(client, seller, buyer, buyer_headers, broadcast) -> None:
    conversation_id = _start(client, seller, buyer_headers)
    url = f"/api/v1/chat/conversations/{conversation_id}/typing"

    first = client.post(url, json={"typing": True}, headers=buyer_headers)
    second = client.post(url, json={"typing": True}, headers=buyer_headers)

    assert first.json() == {"ok": True}
    assert second.json() == {"ok": True, "throttled": True}
    [signal] = broadcast.payloads("chat:typing")
    assert signal["user_id"] == buyer.id
    assert signal["typing"] is True


def test_inbox_snapshot(client, seller, buyer_headers, seller_headers) -> None:
    conversation_id = _start(client, seller, buyer_headers)
    _send(client, conversation_id, "Is pickup possible today?", buyer_headers)
    _send(client, conversation_id, "Around 5pm?", buyer_headers)

    snapshot = client.get("/api/v1/chat/inbox-snapshot", headers=seller_headers).json()
    assert snapshot["unread_count"] == 2
    [recent] = snapshot["recent_threads"]
    assert recent["id"] == conversation_id
    assert recent["sender_name"] == "Bea Buyer"
    assert recent["subject"] == "Around 5pm?"


def test_chat_disabled_returns_gone(client, seller, buyer_headers, monkeypatch) -> None:
    monkeypatch.setattr(settings, "chat_v2_enabled", False)
    response = client.post(
        "/api/v1/chat/conversations/start",
        json={"participantId": seller.id},
        headers=buyer_headers,
    )
    assert response.status_code == status.HTTP_410_GONE
    assert response.json()["error"] == "CHAT_DISABLED"
