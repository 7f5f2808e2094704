"""
Tests for POST /functions/v1/send-message.

Tests cover:
- Input validation (missing fields, empty text, length limit, self messages)
- Free quota per recipient
- Temporary account hard cap
- Coin charging for registered accounts
- Partial failure after the message is stored
- Lost coin deduction under concurrent sends
"""

import pytest

from coin_chat.server import store
from coin_chat.server.errors import DependencyError
from coin_chat.server.models import Message, MessageCount, User
from coin_chat.shared.utils import chat_id
from conftest import auth, rpc


def send(client, token, target_id, text="hello"):
    return client.post(
        "/functions/v1/send-message",
        json={"targetUserId": target_id, "text": text},
        headers=auth(token),
    )


def message_rows(db):
    db.expire_all()
    return db.query(Message).count()


def coins_of(db, user_id):
    db.expire_all()
    return db.query(User).filter(User.id == user_id).one().coins


def seed_count(db, sender_id, target_id, count):
    db.add(MessageCount(sender_id=sender_id, target_id=target_id, count=count))
    db.commit()


class TestSendMessageValidation:
    """Requests rejected before any state changes."""

    def test_requires_token(self, client, make_user):
        target, _ = make_user("bob")
        response = client.post("/functions/v1/send-message", json={"targetUserId": target["id"], "text": "hi"})

        assert response.status_code == 401
        assert "error" in response.json()

    def test_requires_api_key(self, client, make_user):
        sender, token = make_user("alice")
        target, _ = make_user("bob")
        response = client.post(
            "/functions/v1/send-message",
            json={"targetUserId": target["id"], "text": "hi"},
            headers={**auth(token), "apikey": "wrong"},
        )

        assert response.status_code == 401

    def test_missing_target(self, client, make_user, db):
        _, token = make_user("alice")
        response = client.post("/functions/v1/send-message", json={"text": "hi"}, headers=auth(token))

        assert response.status_code == 400
        assert response.json()["errorCode"] == "INVALID_REQUEST"
        assert message_rows(db) == 0

    @pytest.mark.parametrize("text", ["", "   ", "\n\t "])
    def test_blank_text_rejected(self, client, make_user, db, text):
        _, token = make_user("alice")
        target, _ = make_user("bob")
        response = send(client, token, target["id"], text)

        assert response.status_code == 400
        assert response.json()["errorCode"] == "INVALID_REQUEST"
        assert message_rows(db) == 0

    def test_non_string_text_rejected(self, client, make_user, db):
        _, token = make_user("alice")
        target, _ = make_user("bob")
        response = send(client, token, target["id"], 42)

        assert response.status_code == 400
        assert message_rows(db) == 0

    def test_501_characters_rejected(self, client, make_user, db):
        _, token = make_user("alice")
        target, _ = make_user("bob")
        response = send(client, token, target["id"], "x" * 501)

        assert response.status_code == 400
        assert response.json()["errorCode"] == "TEXT_TOO_LONG"
        assert message_rows(db) == 0

    def test_500_characters_accepted(self, client, make_user):
        _, token = make_user("alice")
        target, _ = make_user("bob")
        response = send(client, token, target["id"], "x" * 500)

        assert response.status_code == 200

    def test_self_message_rejected(self, client, make_user, db):
        sender, token = make_user("alice", coins=100)
        response = send(client, token, sender["id"])

        assert response.status_code == 400
        assert response.json()["errorCode"] == "INVALID_REQUEST"
        assert message_rows(db) == 0

    def test_self_message_rejected_even_after_quota(self, client, make_user, db):
        sender, token = make_user("alice", temp=True)
        seed_count(db, sender["id"], sender["id"], 10)
        response = send(client, token, sender["id"])

        assert response.status_code == 400

    def test_unknown_target_rejected(self, client, make_user, db):
        _, token = make_user("alice")
        response = send(client, token, "no-such-user")

        assert response.status_code == 400
        assert message_rows(db) == 0


class TestSendMessageFreeQuota:
    """The first five messages to a recipient are free."""

    def test_first_message_is_free(self, client, make_user, db):
        sender, token = make_user("alice")
        target, _ = make_user("bob")
        response = send(client, token, target["id"], "  hello bob  ")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["coinsDeducted"] == 0
        assert data["newMessageCount"] == 1
        assert data["message"]["text"] == "hello bob"
        assert data["message"]["chat_id"] == chat_id(sender["id"], target["id"])
        assert data["message"]["sender_id"] == sender["id"]
        assert data["message"]["receiver_id"] == target["id"]
        assert data["message"]["read"] is False

    def test_counter_tracks_each_send(self, client, make_user, db):
        sender, token = make_user("alice")
        target, _ = make_user("bob")
        for expected in range(1, 6):
            response = send(client, token, target["id"])
            assert response.json()["newMessageCount"] == expected

        assert store.get_message_count(db, sender["id"], target["id"]) == 5

    def test_quota_is_per_recipient(self, client, make_user, db):
        sender, token = make_user("alice", temp=True)
        bob, _ = make_user("bob")
        carol, _ = make_user("carol")
        seed_count(db, sender["id"], bob["id"], 5)

        assert send(client, token, bob["id"]).status_code == 403
        assert send(client, token, carol["id"]).status_code == 200


class TestSendMessageTemporaryAccounts:
    def test_sixth_message_rejected(self, client, make_user, db):
        sender, token = make_user(temp=True)
        target, _ = make_user("bob")
        for _ in range(5):
            assert send(client, token, target["id"]).status_code == 200

        response = send(client, token, target["id"])

        assert response.status_code == 403
        data = response.json()
        assert data["errorCode"] == "TEMP_USER_LIMIT"
        assert data["message"]
        assert message_rows(db) == 5
        assert coins_of(db, sender["id"]) == 0
        assert store.get_message_count(db, sender["id"], target["id"]) == 5

    def test_coins_do_not_lift_the_cap(self, client, make_user, db):
        sender, token = make_user(temp=True)
        target, _ = make_user("bob")
        store.set_coins(db, sender["id"], 50)
        seed_count(db, sender["id"], target["id"], 5)

        response = send(client, token, target["id"])

        assert response.status_code == 403
        assert response.json()["errorCode"] == "TEMP_USER_LIMIT"
        assert coins_of(db, sender["id"]) == 50


class TestSendMessageCoins:
    def test_one_coin_is_not_enough(self, client, make_user, db):
        sender, token = make_user("alice", coins=1)
        target, _ = make_user("bob")
        seed_count(db, sender["id"], target["id"], 5)

        response = send(client, token, target["id"])

        assert response.status_code == 403
        data = response.json()
        assert data["errorCode"] == "INSUFFICIENT_COINS"
        assert data["currentCoins"] == 1
        assert coins_of(db, sender["id"]) == 1
        assert message_rows(db) == 0

    def test_paid_send_deducts_two_coins(self, client, make_user, db):
        sender, token = make_user("alice", coins=10)
        target, _ = make_user("bob")
        for _ in range(5):
            send(client, token, target["id"])

        response = send(client, token, target["id"])

        assert response.status_code == 200
        data = response.json()
        assert data["coinsDeducted"] == 2
        assert data["remainingCoins"] == 8
        assert data["newMessageCount"] == 6
        assert coins_of(db, sender["id"]) == 8
        assert store.get_message_count(db, sender["id"], target["id"]) == 6

    def test_exactly_two_coins_allows_one_paid_send(self, client, make_user, db):
        sender, token = make_user("alice", coins=2)
        target, _ = make_user("bob")
        seed_count(db, sender["id"], target["id"], 5)

        first = send(client, token, target["id"])
        second = send(client, token, target["id"])

        assert first.status_code == 200
        assert second.status_code == 403
        assert second.json()["currentCoins"] == 0
        assert coins_of(db, sender["id"]) == 0

    def test_lost_deduction_is_rejected(self, client, make_user, db, monkeypatch):
        """A concurrent send spent the coins between the balance read and the deduction."""
        sender, token = make_user("alice", coins=2)
        target, _ = make_user("bob")
        seed_count(db, sender["id"], target["id"], 5)
        store.set_coins(db, sender["id"], 0)

        real_flags = store.get_sender_flags
        reads = []

        def stale_flags(session, user_id):
            reads.append(user_id)
            if len(reads) == 1:
                return False, 2
            return real_flags(session, user_id)

        monkeypatch.setattr(store, "get_sender_flags", stale_flags)
        response = send(client, token, target["id"])

        assert response.status_code == 403
        assert response.json()["errorCode"] == "INSUFFICIENT_COINS"
        assert response.json()["currentCoins"] == 0
        assert coins_of(db, sender["id"]) == 0
        assert message_rows(db) == 0

    def test_deduction_never_goes_negative(self, client, make_user, db):
        sender, _ = make_user("alice", coins=2)

        assert store.deduct_coins(db, sender["id"], 2) is True
        assert store.deduct_coins(db, sender["id"], 2) is False
        assert coins_of(db, sender["id"]) == 0


class TestSendMessagePartialFailures:
    def test_counter_failure_keeps_message(self, client, make_user, db, monkeypatch):
        sender, token = make_user("alice")
        target, _ = make_user("bob")

        def broken_increment(*args, **kwargs):
            raise DependencyError("Failed to update message count")

        monkeypatch.setattr(store, "increment_message_count", broken_increment)
        response = send(client, token, target["id"])

        assert response.status_code == 200
        assert response.json()["newMessageCount"] == 1
        assert message_rows(db) == 1
        assert store.get_message_count(db, sender["id"], target["id"]) == 0

    def test_insert_failure_is_500_without_refund(self, client, make_user, db, monkeypatch):
        sender, token = make_user("alice", coins=4)
        target, _ = make_user("bob")
        seed_count(db, sender["id"], target["id"], 5)

        def broken_insert(*args, **kwargs):
            raise DependencyError("Failed to create message")

        monkeypatch.setattr(store, "insert_message", broken_insert)
        response = send(client, token, target["id"])

        assert response.status_code == 500
        assert "error" in response.json()
        assert coins_of(db, sender["id"]) == 2
        assert store.get_message_count(db, sender["id"], target["id"]) == 5

    def test_banned_sender_token_is_revoked(self, client, make_user):
        from conftest import admin_login

        sender, token = make_user("alice")
        target, _ = make_user("bob")
        rpc(client, "ban_user", {"p_user_id": sender["id"], "p_banned": True}, token=admin_login(client))

        assert send(client, token, target["id"]).status_code == 401
