"""
Tests for the client facade, driven against the in-process backend.
"""

from coin_chat.client.adapter import ChatAdapter
from coin_chat.client.api import BaaSClient, RemoteError
from coin_chat.client.presence import Heartbeat
from coin_chat.client.realtime import RealtimeClient
from conftest import ADMIN_PASSWORD, ADMIN_USERNAME, ANON_KEY


def second_adapter(client):
    api = BaaSClient("http://testserver", ANON_KEY, session=client)
    return ChatAdapter(api, RealtimeClient(api, auto_start=False))


def registered(adapter, username):
    assert adapter.register_user(username, "correct-horse")["success"] is True
    result = adapter.login_user(username, "correct-horse", "Rome")
    assert result["success"] is True
    return result["user"]


class TestAccounts:
    def test_login_stores_token(self, adapter):
        user = registered(adapter, "alice")

        assert adapter.client.access_token
        assert user["username"] == "alice"
        assert user["is_temp"] is False

    def test_login_failure(self, adapter):
        result = adapter.login_user("nobody", "whatever")

        assert result == {"success": False, "error": "Invalid username or password"}
        assert adapter.client.access_token is None

    def test_temp_user_upgrade(self, adapter):
        temp = adapter.create_temp_user(location="Rome")["user"]

        result = adapter.register_user("alice", "correct-horse", temp_id=temp["id"], sent_counts={"x": 2})

        assert result == {"success": True, "userId": temp["id"]}

    def test_rejected_api_key(self, client):
        api = BaaSClient("http://testserver", "wrong-key", session=client)
        adapter = ChatAdapter(api, RealtimeClient(api, auto_start=False))
        client.headers.pop("apikey", None)

        result = adapter.login_user("alice", "correct-horse")

        assert result["success"] is False
        assert result["error"] == "Invalid API key"


class TestPresence:
    def test_online_users_and_offline(self, client, adapter):
        alice = registered(adapter, "alice")
        other = second_adapter(client)
        bob = registered(other, "bob")

        users = adapter.get_online_users()["users"]
        assert {u["id"] for u in users} == {alice["id"], bob["id"]}

        assert other.set_offline(bob["id"]) == {"success": True}
        users = adapter.get_online_users()["users"]
        assert [u["id"] for u in users] == [alice["id"]]

    def test_update_online_status(self, adapter):
        alice = registered(adapter, "alice")

        assert adapter.update_online_status(alice["id"], {"location": "Lima"}) == {"success": True}
        assert adapter.get_online_users()["users"][0]["location"] == "Lima"

    def test_heartbeat(self, adapter):
        alice = registered(adapter, "alice")
        adapter.set_offline(alice["id"])
        heartbeat = Heartbeat(adapter, alice["id"], interval=60)

        assert heartbeat.beat() is True
        assert [u["id"] for u in adapter.get_online_users()["users"]] == [alice["id"]]

        heartbeat.stop()
        assert adapter.get_online_users()["users"] == []

    def test_heartbeat_without_session(self, adapter):
        assert adapter.update_heartbeat("someone") == {"success": False}


class TestMessaging:
    def test_send_and_read_history(self, client, adapter):
        alice = registered(adapter, "alice")
        other = second_adapter(client)
        bob = registered(other, "bob")

        sent = adapter.send_message_secure(bob["id"], "hello")
        assert sent["success"] is True
        assert sent["coinsDeducted"] == 0

        chat = adapter.generate_chat_id(alice["id"], bob["id"])
        assert chat == other.generate_chat_id(bob["id"], alice["id"])
        messages = other.get_messages(chat)["messages"]
        assert [m["text"] for m in messages] == ["hello"]

        assert other.mark_message_as_read(messages[0]["id"]) == {"success": True}
        assert other.get_messages(chat)["messages"][0]["read"] is True

    def test_quota_error_is_preserved(self, client, adapter):
        temp = adapter.create_temp_user()["user"]
        other = second_adapter(client)
        bob = registered(other, "bob")
        for _ in range(5):
            assert adapter.send_message_secure(bob["id"], "hi")["success"] is True

        result = adapter.send_message_secure(bob["id"], "hi")

        assert result["success"] is False
        assert result["status"] == 403
        assert result["errorCode"] == "TEMP_USER_LIMIT"
        assert temp["is_temp"] is True

    def test_validation_error_is_preserved(self, adapter):
        alice = registered(adapter, "alice")

        result = adapter.send_message_secure(alice["id"], "talking to myself")

        assert result["status"] == 400
        assert result["errorCode"] == "INVALID_REQUEST"

    def test_rpc_send_message(self, client, adapter):
        alice = registered(adapter, "alice")
        bob = registered(second_adapter(client), "bob")

        result = adapter.send_message(alice["id"], bob["id"], "hi")

        assert result["success"] is True
        assert result["remainingCoins"] == 0
        assert adapter.send_message(alice["id"], bob["id"], "x" * 501) == {
            "success": False,
            "error": "TEXT_TOO_LONG",
            "message": "Message cannot exceed 500 characters",
        }

    def test_recharge(self, adapter):
        alice = registered(adapter, "alice")

        assert adapter.recharge_coins(alice["id"], "order-9", 10, 3) == {"success": True, "newBalance": 10}
        assert adapter.recharge_coins(alice["id"], "order-9", 10, 3)["success"] is False


class TestSubscriptions:
    def test_messages_snapshot_then_refresh(self, client, adapter):
        alice = registered(adapter, "alice")
        other = second_adapter(client)
        bob = registered(other, "bob")
        chat = adapter.generate_chat_id(alice["id"], bob["id"])
        snapshots = []

        unsubscribe = adapter.subscribe_to_messages(chat, snapshots.append)
        assert snapshots == [[]]

        other.send_message_secure(alice["id"], "first")
        other.send_message_secure(alice["id"], "second")
        adapter.realtime.poll_once()

        assert len(snapshots) == 2
        assert [m["text"] for m in snapshots[-1]] == ["first", "second"]

        unsubscribe()
        other.send_message_secure(alice["id"], "third")
        adapter.realtime.poll_once()
        assert len(snapshots) == 2
        assert adapter.subscriptions == {}

    def test_other_chats_do_not_refresh(self, client, adapter):
        alice = registered(adapter, "alice")
        bob_adapter = second_adapter(client)
        bob = registered(bob_adapter, "bob")
        carol_adapter = second_adapter(client)
        registered(carol_adapter, "carol")
        snapshots = []
        adapter.subscribe_to_messages(adapter.generate_chat_id(alice["id"], bob["id"]), snapshots.append)

        carol_adapter.send_message_secure(bob["id"], "not for alice")
        adapter.realtime.poll_once()

        assert len(snapshots) == 1

    def test_online_users_subscription(self, client, adapter):
        registered(adapter, "alice")
        snapshots = []
        adapter.subscribe_to_online_users(snapshots.append)

        registered(second_adapter(client), "bob")
        adapter.realtime.poll_once()

        assert [len(s) for s in snapshots] == [1, 2]
        adapter.unsubscribe_all()
        assert adapter.subscriptions == {}


class TestAdministration:
    def test_admin_flow(self, client, adapter):
        user_adapter = second_adapter(client)
        alice = registered(user_adapter, "alice")

        assert adapter.admin_login(ADMIN_USERNAME, ADMIN_PASSWORD)["success"] is True
        snapshots = []
        adapter.subscribe_to_users(snapshots.append)
        assert [u["username"] for u in snapshots[0]] == ["alice"]

        assert adapter.update_user_coins(alice["id"], 7) == {"success": True}
        assert adapter.ban_user(alice["id"], True) == {"success": True}
        adapter.realtime.poll_once()
        assert snapshots[-1][0]["coins"] == 7
        assert snapshots[-1][0]["is_banned"] is True

        stats = adapter.get_stats()
        assert stats["success"] is True
        assert stats["stats"]["totalUsers"] == 1

    def test_admin_calls_need_admin_token(self, adapter):
        registered(adapter, "alice")

        assert adapter.get_all_users() == {"success": False, "users": []}
        assert adapter.get_stats() == {"success": False, "stats": {}}


class TestBaaSClient:
    def test_remote_error_carries_payload(self, api):
        try:
            api.invoke("send-message", {"targetUserId": "x", "text": "hi"})
        except RemoteError as exc:
            assert exc.status_code == 401
            assert exc.payload == {"error": "Not signed in or token expired"}
        else:
            raise AssertionError("expected RemoteError")
