"""Client configuration values."""
import os
from pathlib import Path

BAAS_URL = os.environ.get("COIN_CHAT_URL", "http://127.0.0.1:8000")
BAAS_ANON_KEY = os.environ.get("COIN_CHAT_ANON_KEY", "dev-anon-key")

REQUEST_TIMEOUT = float(os.environ.get("COIN_CHAT_REQUEST_TIMEOUT", 10))
HEARTBEAT_INTERVAL = float(os.environ.get("COIN_CHAT_HEARTBEAT_INTERVAL", 30))
REALTIME_POLL_INTERVAL = float(os.environ.get("COIN_CHAT_REALTIME_POLL_INTERVAL", 2.5))

SESSION_FILE = Path(os.environ.get("COIN_CHAT_SESSION_FILE", str(Path.home() / ".coin_chat_session.json")))
