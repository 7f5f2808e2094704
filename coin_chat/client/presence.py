"""Periodic liveness reporting for a signed-in user."""
import logging
import threading
from typing import Optional

from .adapter import ChatAdapter
from .config import HEARTBEAT_INTERVAL

logger = logging.getLogger(__name__)


class Heartbeat:
    """Reports liveness every ``interval`` seconds until stopped.

    The backend never expires presence by itself; a client that dies without
    calling ``stop`` stays listed as online.
    """

    def __init__(self, adapter: ChatAdapter, user_id: str, interval: float = HEARTBEAT_INTERVAL):
        self.adapter = adapter
        self.user_id = user_id
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def beat(self) -> bool:
        result = self.adapter.update_heartbeat(self.user_id)
        if not result["success"]:
            logger.warning("Heartbeat for %s was not recorded", self.user_id)
        return result["success"]

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.beat()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self.beat()
        self._thread = threading.Thread(target=self._run, name="coin-chat-heartbeat", daemon=True)
        self._thread.start()

    def stop(self, mark_offline: bool = True) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1)
            self._thread = None
        if mark_offline:
            self.adapter.set_offline(self.user_id)
