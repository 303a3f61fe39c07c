# tests/v1/test_legacy_messages.py
"""Tests for legacy seller thread endpoints."""

from fastapi import status

SELLER_EMAIL_SLUG = "buyer-example-com"


def _contact(client, seller, buyer_headers, body="Is the drill still available?"):
    response = client.post(
        "/api/v1/messages/send",
        json={"sellerId": seller.id, "body": body},
        headers=buyer_headers,
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()


def test_buyer_contact_creates_seed(client, seller, buyer, buyer_headers, seller_headers, broadcast) -> None:
    data = _contact(client, seller, buyer_headers)
    assert data["ok"] is True
    assert "reply_id" not in data

    detail = client.get(f"/api/v1/messages/{data['id']}", headers=seller_headers).json()
    assert detail["status"] == "new"
    assert detail["delivery_status"] == "sent"
    assert detail["sender_email"] == "buyer@example.com"
    assert detail["sender_name"] == "Bea Buyer"
    assert detail["subject"] == "Is the drill still available?"

    assert broadcast.events_on(f"private-seller-{seller.id}") == ["message:new"]
    assert broadcast.events_on(f"private-thread-{seller.id}-{SELLER_EMAIL_SLUG}") == ["message:new"]


def test_second_contact_appends_to_live_thread(client, seller, buyer_headers, seller_headers) -> None:
    first = _contact(client, seller, buyer_headers)
    second = _contact(client, seller, buyer_headers, body="Also, do you ship?")

    assert second["id"] == first["id"]
    assert second["reply_id"]

    inbox = client.get("/api/v1/messages", headers=seller_headers).json()["items"]
    assert [item["id"] for item in inbox] == [first["id"]]


def test_seller_read_advances_delivery_not_triage(client, seller, buyer_headers, seller_headers, broadcast) -> None:
    message_id = _contact(client, seller, buyer_headers)["id"]

    response = client.post(f"/api/v1/messages/{message_id}/read", headers=seller_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"ok": True, "delivery_status": "read"}

    # A late "delivered" never downgrades.
    late = client.post(f"/api/v1/messages/{message_id}/delivered", headers=seller_headers)
    assert late.json()["delivery_status"] == "read"

    detail = client.get(f"/api/v1/messages/{message_id}", headers=seller_headers).json()
    assert detail["status"] == "new"
    assert detail["delivery_status"] == "read"

    thread = f"private-thread-{seller.id}-{SELLER_EMAIL_SLUG}"
    assert broadcast.events_on(thread) == ["message:new", "message:read"]


def test_only_the_receiver_can_acknowledge(client, seller, buyer_headers, other_headers) -> None:
    message_id = _contact(client, seller, buyer_headers)["id"]

    for headers in (buyer_headers, other_headers):
        response = client.post(f"/api/v1/messages/{message_id}/delivered", headers=headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error"] == "FORBIDDEN"


def test_seller_without_messaging_plan_cannot_be_contacted(client, other_user, buyer_headers) -> None:
    response = client.post(
        "/api/v1/messages/send",
        json={"sellerId": other_user.id, "body": "hello"},
        headers=buyer_headers,
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["error"] == "PLAN_REQUIRED"


def test_contact_validation(client, seller, buyer, buyer_headers) -> None:
    empty = client.post(
        "/api/v1/messages/send",
        json={"sellerId": seller.id, "body": " \x00 "},
        headers=buyer_headers,
    )
    assert empty.status_code == status.HTTP_400_BAD_REQUEST
    assert empty.json()["error"] == "INVALID_REQUEST"

    unknown = client.post(
        "/api/v1/messages/send",
        json={"sellerId": "no-such-seller", "body": "hello"},
        headers=buyer_headers,
    )
    assert unknown.status_code == status.HTTP_404_NOT_FOUND

    to_self = client.post(
        "/api/v1/messages/send",
        json={"sellerId": buyer.id, "body": "hello"},
        headers=buyer_headers,
    )
    assert to_self.status_code == status.HTTP_400_BAD_REQUEST


def test_seller_reply_and_buyer_acknowledgement(client, seller, buyer_headers, seller_headers, broadcast) -> None:
    message_id = _contact(client, seller, buyer_headers)["id"]

    reply = client.post(
        f"/api/v1/messages/{message_id}/reply",
        json={"body": "Yes, still available."},
        headers=seller_headers,
    )
    assert reply.status_code == status.HTTP_201_CREATED
    reply_id = reply.json()["reply"]["id"]
    assert reply.json()["reply"]["delivery_status"] == "sent"

    detail = client.get(f"/api/v1/messages/{message_id}", headers=seller_headers).json()
    assert detail["status"] == "replied"

    first = client.post(f"/api/v1/replies/{reply_id}/delivered", headers=buyer_headers)
    again = client.post(f"/api/v1/replies/{reply_id}/delivered", headers=buyer_headers)
    assert first.json()["delivery_status"] == "delivered"
    assert again.json()["delivery_status"] == "delivered"

    read = client.post(f"/api/v1/replies/{reply_id}/read", headers=buyer_headers)
    assert read.json()["delivery_status"] == "read"

    # The author is not the receiver.
    own = client.post(f"/api/v1/replies/{reply_id}/read", headers=seller_headers)
    assert own.status_code == status.HTTP_403_FORBIDDEN

    seller_events = broadcast.events_on(f"private-seller-{seller.id}")
    assert seller_events.count("reply:delivered") == 1
    assert seller_events.count("reply:read") == 1


def test_buyer_reply_moves_thread_back_to_new(client, seller, buyer_headers, seller_headers) -> None:
    message_id = _contact(client, seller, buyer_headers)["id"]
    client.post(
        f"/api/v1/messages/{message_id}/reply",
        json={"body": "Yes."},
        headers=seller_headers,
    )

    response = client.post(
        f"/api/v1/messages/{message_id}/reply/buyer",
        json={"body": "Great, I'll take it."},
        headers=buyer_headers,
    )
    assert response.status_code == status.HTTP_201_CREATED

    detail = client.get(f"/api/v1/messages/{message_id}", headers=seller_headers).json()
    assert detail["status"] == "new"

    wrong_side = client.post(
        f"/api/v1/messages/{message_id}/reply",
        json={"body": "pretending to be the seller"},
        headers=buyer_headers,
    )
    assert wrong_side.status_code == status.HTTP_403_FORBIDDEN


def test_seller_started_thread_hides_placeholder(client, seller, buyer, buyer_headers, seller_headers) -> None:
    response = client.post(
        "/api/v1/messages/start-by-seller",
        json={"buyerEmail": "Buyer@Example.com", "body": "Your order is ready for pickup"},
        headers=seller_headers,
    )
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()

    buyer_view = client.get(
        "/api/v1/messages/history/buyer",
        params={"sellerId": seller.id},
        headers=buyer_headers,
    ).json()["timeline"]
    assert len(buyer_view) == 1
    assert buyer_view[0]["id"] == f"rep-{data['reply_id']}"
    assert buyer_view[0]["type"] == "incoming"
    assert "delivery_status" not in buyer_view[0]

    seller_view = client.get(
        "/api/v1/messages/history",
        params={"buyerEmail": "buyer@example.com"},
        headers=seller_headers,
    ).json()["timeline"]
    assert [item["type"] for item in seller_view] == ["outgoing"]
    assert seller_view[0]["delivery_status"] == "sent"

    # Acknowledging the placeholder seed changes nothing.
    ack = client.post(f"/api/v1/messages/{data['message_id']}/read", headers=seller_headers)
    assert ack.json()["delivery_status"] == "sent"

    # The buyer answering lands in the same thread.
    answer = _contact(client, seller, buyer_headers, body="Thanks, on my way")
    assert answer["id"] == data["message_id"]
    detail = client.get(f"/api/v1/messages/{data['message_id']}", headers=seller_headers).json()
    assert detail["status"] == "replied"


def test_start_by_seller_requires_plan_and_valid_email(client, other_headers, seller_headers) -> None:
    no_plan = client.post(
        "/api/v1/messages/start-by-seller",
        json={"buyerEmail": "buyer@example.com", "body": "hello"},
        headers=other_headers,
    )
    assert no_plan.status_code == status.HTTP_403_FORBIDDEN

    bad_email = client.post(
        "/api/v1/messages/start-by-seller",
        json={"buyerEmail": "nope", "body": "hello"},
        headers=seller_headers,
    )
    assert bad_email.status_code == status.HTTP_400_BAD_REQUEST

    self_thread = client.post(
        "/api/v1/messages/start-by-seller",
        json={"buyerEmail": "seller@example.com", "body": "hello"},
        headers=seller_headers,
    )
    assert self_thread.status_code == status.HTTP_400_BAD_REQUEST


def test_status_update_and_inbox_filter(client, seller, buyer_headers, seller_headers, broadcast) -> None:
    message_id = _contact(client, seller, buyer_headers)["id"]

    response = client.patch(
        f"/api/v1/messages/{message_id}",
        json={"status": "Archived"},
        headers=seller_headers,
    )
    assert response.json() == {"ok": True, "id": message_id, "status": "archived"}
    assert "message:updated" in broadcast.events_on(f"private-seller-{seller.id}")

    archived = client.get("/api/v1/messages", params={"status": "archived"}, headers=seller_headers)
    assert [item["id"] for item in archived.json()["items"]] == [message_id]
    fresh = client.get("/api/v1/messages", params={"status": "new"}, headers=seller_headers)
    assert fresh.json()["items"] == []

    invalid = client.patch(
        f"/api/v1/messages/{message_id}",
        json={"status": "bogus"},
        headers=seller_headers,
    )
    assert invalid.status_code == status.HTTP_400_BAD_REQUEST

    # Archived threads stay archived when the buyer writes again.
    _contact(client, seller, buyer_headers, body="Any update?")
    detail = client.get(f"/api/v1/messages/{message_id}", headers=seller_headers).json()
    assert detail["status"] == "archived"


def test_message_detail_is_seller_only(client, seller, buyer_headers) -> None:
    message_id = _contact(client, seller, buyer_headers)["id"]
    response = client.get(f"/api/v1/messages/{message_id}", headers=buyer_headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_buyer_deletes_seed_idempotently(client, seller, buyer_headers, seller_headers, broadcast) -> None:
    message_id = _contact(client, seller, buyer_headers)["id"]

    forbidden = client.delete(f"/api/v1/messages/{message_id}", headers=seller_headers)
    assert forbidden.status_code == status.HTTP_403_FORBIDDEN

    first = client.delete(f"/api/v1/messages/{message_id}", headers=buyer_headers)
    second = client.delete(f"/api/v1/messages/{message_id}", headers=buyer_headers)
    assert first.json() == {"ok": True, "id": message_id}
    assert second.status_code == status.HTTP_200_OK
    assert broadcast.events_on(f"private-seller-{seller.id}").count("message:deleted") == 1

    gone = client.get(f"/api/v1/messages/{message_id}", headers=seller_headers)
    assert gone.status_code == status.HTTP_404_NOT_FOUND

    # A new contact after deletion starts a fresh thread.
    fresh = _contact(client, seller, buyer_headers, body="Trying again")
    assert fresh["id"] != message_id


def test_reply_deletion_by_author_only(client, seller, buyer_headers, seller_headers) -> None:
    message_id = _contact(client, seller, buyer_headers)["id"]
    reply_id = client.post(
        f"/api/v1/messages/{message_id}/reply",
        json={"body": "Typo here"},
        headers=seller_headers,
    ).json()["reply"]["id"]

    forbidden = client.delete(f"/api/v1/replies/{reply_id}", headers=buyer_headers)
    assert forbidden.status_code == status.HTTP_403_FORBIDDEN

    assert client.delete(f"/api/v1/replies/{reply_id}", headers=seller_headers).json()["ok"] is True
    assert client.delete(f"/api/v1/replies/{reply_id}", headers=seller_headers).json()["ok"] is True

    timeline = client.get(
        "/api/v1/messages/history",
        params={"buyerEmail": "buyer@example.com"},
        headers=seller_headers,
    ).json()["timeline"]
    assert [item["id"] for item in timeline] == [f"msg-{message_id}"]
    assert timeline[0]["type"] == "incoming"


def test_history_rejects_outsiders(client, seller, buyer_headers, other_headers) -> None:
    _contact(client, seller, buyer_headers)
    response = client.get(
        "/api/v1/messages/history/buyer",
        params={"sellerId": seller.id},
        headers=other_headers,
    )
    # The outsider's own thread with this seller is simply empty.
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["timeline"] == []

    missing = client.get("/api/v1/messages/history/buyer", headers=other_headers)
    assert missing.status_code == status.HTTP_400_BAD_REQUEST
