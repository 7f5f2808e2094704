"""Facade over the backend used by the chat front end.

Every method performs one round trip (subscriptions: one initial fetch plus a
refetch per change batch) and returns a dict with a ``success`` flag instead
of raising.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

import requests

from ..shared.utils import chat_id
from .api import BaaSClient, RemoteError
from .realtime import RealtimeClient

logger = logging.getLogger(__name__)

REMOTE_ERRORS = (RemoteError, requests.RequestException)

Unsubscribe = Callable[[], None]


class ChatAdapter:
    def __init__(self, client: BaaSClient, realtime: Optional[RealtimeClient] = None):
        self.client = client
        self.realtime = realtime or RealtimeClient(client)
        self.subscriptions: Dict[str, Any] = {}

    def _call_rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.client.rpc(name, params)

    # Users

    def login_user(self, username: str, password: str, location: Optional[str] = None) -> Dict[str, Any]:
        try:
            data = self._call_rpc(
                "login_user", {"p_username": username, "p_password": password, "p_location": location}
            )
        except REMOTE_ERRORS as exc:
            logger.error("Login failed: %s", exc)
            return {"success": False, "error": str(exc)}
        if not data.get("success"):
            return {"success": False, "error": data.get("error")}
        self.client.access_token = data["token"]
        return {"success": True, "user": data["user"], "token": data["token"]}

    def create_temp_user(
        self, gender: Optional[str] = None, avatar_url: Optional[str] = None, location: Optional[str] = None
    ) -> Dict[str, Any]:
        try:
            data = self._call_rpc(
                "create_temp_user", {"p_gender": gender, "p_avatar_url": avatar_url, "p_location": location}
            )
        except REMOTE_ERRORS as exc:
            logger.error("Temporary sign-in failed: %s", exc)
            return {"success": False, "error": str(exc)}
        self.client.access_token = data["token"]
        return {"success": True, "user": data["user"], "token": data["token"]}

    def register_user(
        self,
        username: str,
        password: str,
        temp_id: Optional[str] = None,
        gender: Optional[str] = None,
        avatar_url: Optional[str] = None,
        location: Optional[str] = None,
        sent_counts: Optional[Dict[str, int]] = None,
    ) -> Dict[str, Any]:
        try:
            data = self._call_rpc(
                "register_user",
                {
                    "p_username": username,
                    "p_password": password,
                    "p_temp_id": temp_id,
                    "p_gender": gender,
                    "p_avatar_url": avatar_url,
                    "p_location": location,
                    "p_sent_counts": sent_counts or {},
                },
            )
        except REMOTE_ERRORS as exc:
            logger.error("Registration failed: %s", exc)
            return {"success": False, "error": str(exc)}
        if not data.get("success"):
            return {"success": False, "error": data.get("error")}
        return {"success": True, "userId": data["userId"]}

    def update_online_status(self, user_id: str, user_data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            self.client.upsert(
                "online_users",
                {
                    "id": user_id,
                    "username": user_data.get("username"),
                    "gender": user_data.get("gender"),
                    "avatar_url": user_data.get("avatar_url"),
                    "location": user_data.get("location"),
                    "coins": user_data.get("coins"),
                    "is_temp": bool(user_data.get("is_temp")),
                    "is_online": True,
                },
            )
        except REMOTE_ERRORS as exc:
            logger.error("Failed to update online status: %s", exc)
            return {"success": False, "error": str(exc)}
        return {"success": True}

    def update_heartbeat(self, user_id: str) -> Dict[str, Any]:
        try:
            self._call_rpc("update_heartbeat", {"p_user_id": user_id})
        except REMOTE_ERRORS as exc:
            logger.error("Heartbeat failed: %s", exc)
            return {"success": False}
        return {"success": True}

    def set_offline(self, user_id: str) -> Dict[str, Any]:
        try:
            self.client.update("online_users", {"is_online": False}, {"id": user_id})
        except REMOTE_ERRORS as exc:
            logger.error("Failed to set offline: %s", exc)
            return {"success": False}
        return {"success": True}

    # Online users

    def get_online_users(self) -> Dict[str, Any]:
        try:
            users = self.client.select("online_users", {"is_online": True}, order="last_seen.desc")
        except REMOTE_ERRORS as exc:
            logger.error("Failed to fetch online users: %s", exc)
            return {"success": False, "users": []}
        return {"success": True, "users": users}

    def subscribe_to_online_users(self, callback: Callable[[List[Dict[str, Any]]], None]) -> Unsubscribe:
        return self._subscribe("online_users_channel", "online_users", self.get_online_users, "users", callback)

    # Messages

    def send_message(self, sender_id: str, receiver_id: str, text: str, is_temp: bool = False) -> Dict[str, Any]:
        try:
            data = self._call_rpc(
                "send_message_with_limits",
                {"p_sender_id": sender_id, "p_receiver_id": receiver_id, "p_text": text, "p_is_temp": is_temp},
            )
        except REMOTE_ERRORS as exc:
            logger.error("Failed to send message: %s", exc)
            return {"success": False, "error": str(exc)}
        if not data.get("success"):
            return {"success": False, "error": data.get("error"), "message": data.get("message")}
        return {"success": True, "messageId": data["messageId"], "remainingCoins": data["remainingCoins"]}

    def send_message_secure(self, target_user_id: str, text: str) -> Dict[str, Any]:
        """Send through the server-side quota function, keeping its error code."""
        try:
            return self.client.invoke("send-message", {"targetUserId": target_user_id, "text": text})
        except RemoteError as exc:
            payload = exc.payload if isinstance(exc.payload, dict) else {}
            logger.error("Failed to send message: %s (%s)", exc, exc.status_code)
            result = {
                "success": False,
                "status": exc.status_code,
                "error": payload.get("error", exc.message),
                "errorCode": payload.get("errorCode"),
                "message": payload.get("message"),
                "currentCoins": payload.get("currentCoins"),
            }
            return {key: value for key, value in result.items() if value is not None}
        except requests.RequestException as exc:
            logger.error("Failed to send message: %s", exc)
            return {"success": False, "error": str(exc)}

    def get_messages(self, chat: str) -> Dict[str, Any]:
        try:
            messages = self.client.select("messages", {"chat_id": chat}, order="timestamp.asc")
        except REMOTE_ERRORS as exc:
            logger.error("Failed to fetch messages: %s", exc)
            return {"success": False, "messages": []}
        return {"success": True, "messages": messages}

    def subscribe_to_messages(self, chat: str, callback: Callable[[List[Dict[str, Any]]], None]) -> Unsubscribe:
        return self._subscribe(
            f"messages_{chat}",
            "messages",
            lambda: self.get_messages(chat),
            "messages",
            callback,
            filter=f"chat_id=eq.{chat}",
        )

    def mark_message_as_read(self, message_id: int) -> Dict[str, Any]:
        try:
            self.client.update("messages", {"read": True}, {"id": message_id})
        except REMOTE_ERRORS as exc:
            logger.error("Failed to mark message as read: %s", exc)
            return {"success": False}
        return {"success": True}

    # Recharge

    def recharge_coins(self, user_id: str, order_id: str, coins: int, amount: int) -> Dict[str, Any]:
        try:
            data = self._call_rpc(
                "recharge_coins",
                {"p_user_id": user_id, "p_order_id": order_id, "p_coins": coins, "p_amount": amount},
            )
        except REMOTE_ERRORS as exc:
            logger.error("Recharge failed: %s", exc)
            return {"success": False, "error": str(exc)}
        if not data.get("success"):
            return {"success": False, "error": data.get("error")}
        return {"success": True, "newBalance": data["newBalance"]}

    # Administration

    def admin_login(self, username: str, password: str) -> Dict[str, Any]:
        try:
            data = self._call_rpc("admin_login", {"p_username": username, "p_password": password})
        except REMOTE_ERRORS as exc:
            logger.error("Admin login failed: %s", exc)
            return {"success": False, "error": str(exc)}
        if not data.get("success"):
            return {"success": False, "error": data.get("error")}
        self.client.access_token = data["token"]
        return {"success": True, "admin": data["admin"]}

    def get_all_users(self) -> Dict[str, Any]:
        try:
            users = self.client.select("users", order="created_at.desc")
        except REMOTE_ERRORS as exc:
            logger.error("Failed to fetch users: %s", exc)
            return {"success": False, "users": []}
        return {"success": True, "users": users}

    def ban_user(self, user_id: str, banned: bool) -> Dict[str, Any]:
        try:
            data = self._call_rpc("ban_user", {"p_user_id": user_id, "p_banned": banned})
        except REMOTE_ERRORS as exc:
            logger.error("Ban operation failed: %s", exc)
            return {"success": False, "error": str(exc)}
        if not data.get("success"):
            return {"success": False, "error": "Operation failed"}
        return {"success": True}

    def update_user_coins(self, user_id: str, coins: int) -> Dict[str, Any]:
        try:
            data = self._call_rpc("admin_update_coins", {"p_user_id": user_id, "p_coins": coins})
        except REMOTE_ERRORS as exc:
            logger.error("Failed to update coins: %s", exc)
            return {"success": False}
        return {"success": bool(data.get("success"))}

    def get_stats(self) -> Dict[str, Any]:
        try:
            stats = self._call_rpc("get_stats")
        except REMOTE_ERRORS as exc:
            logger.error("Failed to fetch stats: %s", exc)
            return {"success": False, "stats": {}}
        return {"success": True, "stats": stats}

    def subscribe_to_users(self, callback: Callable[[List[Dict[str, Any]]], None]) -> Unsubscribe:
        return self._subscribe("users_channel", "users", self.get_all_users, "users", callback)

    # Helpers

    def generate_chat_id(self, user_id: str, other_id: str) -> str:
        return chat_id(user_id, other_id)

    def _subscribe(
        self,
        name: str,
        table: str,
        fetch: Callable[[], Dict[str, Any]],
        key: str,
        callback: Callable[[List[Dict[str, Any]]], None],
        filter: Optional[str] = None,
    ) -> Unsubscribe:
        def refresh(_change: Optional[Dict[str, Any]] = None) -> None:
            result = fetch()
            if result["success"]:
                callback(result[key])

        refresh()
        channel = self.realtime.channel(name).on("*", table, refresh, filter=filter).subscribe()
        self.subscriptions[name] = channel

        def unsubscribe() -> None:
            channel.unsubscribe()
            if self.subscriptions.get(name) is channel:
                del self.subscriptions[name]

        return unsubscribe

    def unsubscribe_all(self) -> None:
        for channel in list(self.subscriptions.values()):
            channel.unsubscribe()
        self.subscriptions.clear()
