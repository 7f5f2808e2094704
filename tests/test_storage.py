"""
Tests for the local session store.
"""

from coin_chat.client.models import ChatSession
from coin_chat.client.storage import SessionStore


def make_session(**overrides):
    data = {"user_id": "1234567890", "username": "alice", "token": "t", "coins": 4}
    data.update(overrides)
    return ChatSession(**data)


class TestSessionStore:
    def test_get_without_file(self, tmp_path):
        assert SessionStore(tmp_path / "session.json").get() is None

    def test_save_and_get(self, tmp_path):
        store = SessionStore(tmp_path / "nested" / "session.json")
        store.save(make_session())

        loaded = store.get()

        assert loaded == make_session()

    def test_clear(self, tmp_path):
        store = SessionStore(tmp_path / "session.json")
        store.save(make_session())

        store.clear()

        assert store.get() is None

    def test_other_keys_untouched(self, tmp_path):
        path = tmp_path / "session.json"
        SessionStore(path, key="other").save(make_session(username="bob"))
        store = SessionStore(path)
        store.save(make_session())

        store.clear()

        assert SessionStore(path, key="other").get().username == "bob"

    def test_corrupt_file_reads_as_empty(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("{not json", encoding="utf-8")
        store = SessionStore(path)

        assert store.get() is None
        store.save(make_session())
        assert store.get() == make_session()

    def test_unknown_fields_ignored(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text('{"chat_user_session": {"user_id": "u1", "legacy": true}}', encoding="utf-8")

        assert SessionStore(path).get() == ChatSession(user_id="u1")


class TestChatSession:
    def test_from_login(self):
        session = ChatSession.from_login({"id": "abc", "username": None, "coins": 3, "is_temp": True}, "tok")

        assert session.user_id == "abc"
        assert session.token == "tok"
        assert session.is_temp is True
        assert session.display_name == "guest-abc"
