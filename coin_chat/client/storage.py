"""Local persistence of the signed-in session."""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .config import SESSION_FILE
from .models import ChatSession

logger = logging.getLogger(__name__)


class SessionStore:
    """Keeps one serialized session under ``key`` in a JSON file.

    Nothing expires on its own; callers save and clear explicitly. Read and
    write failures are logged and otherwise ignored.
    """

    def __init__(self, path: Path = SESSION_FILE, key: str = "chat_user_session"):
        self.path = Path(path)
        self.key = key

    def _load_state(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            state = json.load(f)
        return state if isinstance(state, dict) else {}

    def _save_state(self, state: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(state, f, indent=2)

    def save(self, session: ChatSession) -> None:
        try:
            try:
                state = self._load_state()
            except ValueError:
                state = {}
            state[self.key] = session.to_dict()
            self._save_state(state)
        except OSError as exc:
            logger.error("Failed to save session: %s", exc)

    def get(self) -> Optional[ChatSession]:
        try:
            data = self._load_state().get(self.key)
            return ChatSession.from_dict(data) if data else None
        except (OSError, ValueError, TypeError, KeyError) as exc:
            logger.error("Failed to read session: %s", exc)
            return None

    def clear(self) -> None:
        try:
            state = self._load_state()
            if state.pop(self.key, None) is not None:
                self._save_state(state)
        except (OSError, ValueError) as exc:
            logger.error("Failed to clear session: %s", exc)
