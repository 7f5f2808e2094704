"""Server configuration values."""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent
DATABASE_URL = os.environ.get("COIN_CHAT_DATABASE_URL", f"sqlite:///{BASE_DIR / 'coin_chat.db'}")
LOG_FILE = Path(os.environ.get("COIN_CHAT_LOG_FILE", str(BASE_DIR / "server.log")))

# Public key every caller sends in the ``apikey`` header.
ANON_KEY = os.environ.get("COIN_CHAT_ANON_KEY", "dev-anon-key")

TOKEN_EXPIRY_MINUTES = int(os.environ.get("COIN_CHAT_TOKEN_EXPIRY_MINUTES", 60 * 24))
BCRYPT_ROUNDS = int(os.environ.get("COIN_CHAT_BCRYPT_ROUNDS", 12))

ADMIN_USERNAME = os.environ.get("COIN_CHAT_ADMIN_USERNAME")
ADMIN_PASSWORD = os.environ.get("COIN_CHAT_ADMIN_PASSWORD")

CHANGE_LOG_SIZE = int(os.environ.get("COIN_CHAT_CHANGE_LOG_SIZE", 1000))
INITIAL_COINS = int(os.environ.get("COIN_CHAT_INITIAL_COINS", 0))
