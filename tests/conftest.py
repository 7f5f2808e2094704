"""
Pytest configuration and shared fixtures.

Server settings are read at import time, so the environment is prepared here
before anything from ``coin_chat.server`` is imported.
"""

import os
import tempfile

os.environ["COIN_CHAT_DATABASE_URL"] = "sqlite://"
os.environ["COIN_CHAT_LOG_FILE"] = os.path.join(tempfile.mkdtemp(prefix="coin-chat-"), "server.log")
os.environ["COIN_CHAT_ANON_KEY"] = "test-anon-key"
os.environ["COIN_CHAT_BCRYPT_ROUNDS"] = "4"
os.environ["COIN_CHAT_ADMIN_USERNAME"] = "admin"
os.environ["COIN_CHAT_ADMIN_PASSWORD"] = "admin-secret-1"

import pytest
from fastapi.testclient import TestClient

from coin_chat.client.adapter import ChatAdapter
from coin_chat.client.api import BaaSClient
from coin_chat.client.realtime import RealtimeClient
from coin_chat.server.auth import TOKEN_STORE
from coin_chat.server.database import Base, SessionLocal, engine
from coin_chat.server.main import app
from coin_chat.server.realtime import change_log

ANON_KEY = "test-anon-key"
ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin-secret-1"


@pytest.fixture(scope="function")
def client():
    """Test client with fresh tables for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        test_client.headers.update({"apikey": ANON_KEY})
        yield test_client

    Base.metadata.drop_all(bind=engine)
    TOKEN_STORE.clear()
    change_log.reset()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def rpc(client, name, params=None, token=None):
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return client.post(f"/rest/v1/rpc/{name}", json=params or {}, headers=headers)


def auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(client):
    """Factory creating a signed-in account and returning ``(user, token)``."""

    def factory(username=None, coins=0, temp=False):
        response = rpc(client, "create_temp_user", {"p_location": "Beijing"})
        assert response.status_code == 200
        data = response.json()
        user, token = data["user"], data["token"]
        if not temp:
            registered = rpc(
                client,
                "register_user",
                {
                    "p_username": username or f"user-{user['id'][:8]}",
                    "p_password": "correct-horse",
                    "p_temp_id": user["id"],
                },
                token=token,
            )
            assert registered.json()["success"] is True
        if coins:
            admin_token = admin_login(client)
            rpc(client, "admin_update_coins", {"p_user_id": user["id"], "p_coins": coins}, token=admin_token)
        return user, token

    return factory


def admin_login(client):
    response = rpc(client, "admin_login", {"p_username": ADMIN_USERNAME, "p_password": ADMIN_PASSWORD})
    return response.json()["token"]


@pytest.fixture
def api(client):
    return BaaSClient("http://testserver", ANON_KEY, session=client)


@pytest.fixture
def adapter(api):
    return ChatAdapter(api, RealtimeClient(api, auto_start=False))
