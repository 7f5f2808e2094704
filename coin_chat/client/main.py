"""Console client for the coin chat application."""
import sys
import uuid
from typing import Dict, List, Optional

from ..shared.dto import MessageDTO, OnlineUserDTO
from ..shared.utils import is_password_strong
from .adapter import ChatAdapter
from .api import BaaSClient
from .config import BAAS_ANON_KEY, BAAS_URL
from .models import ChatSession
from .presence import Heartbeat
from .storage import SessionStore

QUOTA_HINTS = {
    "TEMP_USER_LIMIT": "Free messages to this user are used up. Register to keep chatting.",
    "INSUFFICIENT_COINS": "Not enough coins. Recharge to keep chatting.",
}


class ChatClient:
    """Interactive console client: sign in, see who is online, chat."""

    def __init__(self, adapter: ChatAdapter, store: SessionStore):
        self.adapter = adapter
        self.store = store
        self.session: Optional[ChatSession] = store.get()
        self.heartbeat: Optional[Heartbeat] = None
        if self.session and self.session.token:
            self.adapter.client.access_token = self.session.token

    def _start_session(self, user: Dict, token: str) -> None:
        self.session = ChatSession.from_login(user, token)
        self.store.save(self.session)
        self.heartbeat = Heartbeat(self.adapter, self.session.user_id)
        self.heartbeat.start()
        print(f"Welcome, {self.session.display_name}! Coins: {self.session.coins}")

    def sign_in_temporary(self) -> bool:
        location = input("Location (optional): ").strip() or None
        result = self.adapter.create_temp_user(location=location)
        if not result["success"]:
            print(f"Sign-in failed: {result['error']}")
            return False
        self._start_session(result["user"], result["token"])
        return True

    def register(self) -> None:
        print("=== Register ===")
        username = input("Username: ").strip()
        password = input("Password (min 8 chars): ").strip()
        if not is_password_strong(password):
            print("Password too weak or blacklisted.")
            return
        temp_id = self.session.user_id if self.session and self.session.is_temp else None
        result = self.adapter.register_user(username, password, temp_id=temp_id)
        if result["success"]:
            print("Registration successful. You can now log in.")
        else:
            print(f"Registration failed: {result['error']}")

    def login(self) -> bool:
        print("=== Login ===")
        username = input("Username: ").strip()
        password = input("Password: ").strip()
        location = input("Location (optional): ").strip() or None
        result = self.adapter.login_user(username, password, location)
        if not result["success"]:
            print(f"Login failed: {result['error']}")
            return False
        self._start_session(result["user"], result["token"])
        return True

    def list_users(self) -> List[OnlineUserDTO]:
        result = self.adapter.get_online_users()
        if not result["success"]:
            print("Could not fetch online users.")
            return []
        users = [OnlineUserDTO.from_dict(row) for row in result["users"] if row["id"] != self.session.user_id]
        for u in users:
            kind = "guest" if u.is_temp else "member"
            print(f"- {u.display_name} ({kind}, {u.location or 'unknown'})")
        if not users:
            print("Nobody else is online.")
        return users

    def start_chat(self) -> None:
        users = self.list_users()
        name = input("Chat with: ").strip()
        peer = next((u for u in users if u.display_name == name), None)
        if not peer:
            print("User not found.")
            return
        seen = set()

        def show(rows: List[Dict]) -> None:
            for msg in (MessageDTO.from_dict(row) for row in rows):
                if msg.id in seen:
                    continue
                seen.add(msg.id)
                who = "(you)" if msg.sender_id == self.session.user_id else peer.display_name
                print(f"[{msg.timestamp[11:16]}] {who}: {msg.text}")
                if msg.receiver_id == self.session.user_id and not msg.read:
                    self.adapter.mark_message_as_read(msg.id)

        chat = self.adapter.generate_chat_id(self.session.user_id, peer.id)
        unsubscribe = self.adapter.subscribe_to_messages(chat, show)
        try:
            print("Type a message and press enter. Empty line to go back.")
            while True:
                text = input("> ")
                if not text:
                    break
                self._send_message(peer, text)
        finally:
            unsubscribe()

    def _send_message(self, peer: OnlineUserDTO, text: str) -> None:
        result = self.adapter.send_message_secure(peer.id, text)
        if result.get("success"):
            self.session.coins = result["remainingCoins"]
            self.store.save(self.session)
            if result["coinsDeducted"]:
                print(f"({result['coinsDeducted']} coins spent, {result['remainingCoins']} left)")
            return
        hint = QUOTA_HINTS.get(result.get("errorCode"))
        print(hint or f"Failed to send message: {result.get('error')}")

    def recharge(self) -> None:
        raw = input("Coins to add: ").strip()
        if not raw.isdigit() or int(raw) <= 0:
            print("Enter a positive number.")
            return
        coins = int(raw)
        result = self.adapter.recharge_coins(self.session.user_id, uuid.uuid4().hex, coins, coins)
        if result["success"]:
            self.session.coins = result["newBalance"]
            self.store.save(self.session)
            print(f"Balance: {result['newBalance']} coins")
        else:
            print(f"Recharge failed: {result['error']}")

    def logout(self) -> None:
        if self.heartbeat:
            self.heartbeat.stop()
            self.heartbeat = None
        elif self.session:
            self.adapter.set_offline(self.session.user_id)
        self.adapter.unsubscribe_all()
        self.adapter.realtime.close()
        self.adapter.client.access_token = None
        self.store.clear()
        self.session = None
        print("Logged out.")


def main():
    print("Coin Chat Client")
    adapter = ChatAdapter(BaaSClient(BAAS_URL, BAAS_ANON_KEY))
    client = ChatClient(adapter, SessionStore())

    while True:
        if client.session is None:
            print("\nMenu: [t]emporary sign-in, [r]egister, [l]ogin, [q]uit")
            choice = input("> ").strip().lower()
            if choice == "q":
                sys.exit(0)
            if choice == "t":
                client.sign_in_temporary()
            if choice == "r":
                client.register()
            if choice == "l":
                client.login()
            continue

        if client.heartbeat is None:
            client.heartbeat = Heartbeat(adapter, client.session.user_id)
            client.heartbeat.start()
        print("\nUser menu: [u]sers, [c]hat, [p]ay/recharge, [r]egister, [o]logout, [q]uit")
        sub = input("> ").strip().lower()
        if sub == "q":
            client.heartbeat.stop()
            sys.exit(0)
        if sub == "o":
            client.logout()
        if sub == "u":
            client.list_users()
        if sub == "c":
            client.start_chat()
        if sub == "p":
            client.recharge()
        if sub == "r":
            client.register()


if __name__ == "__main__":
    main()
