"""Change subscriptions driven by polling the backend change feed.

Handlers are told *that* something changed, not what; callers refetch the
collection they care about. A handler runs at most once per poll even if
several matching events arrived.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from .api import BaaSClient, RemoteError
from .config import REALTIME_POLL_INTERVAL

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[Dict[str, Any]], None]


def parse_filter(expression: Optional[str]) -> Optional[Tuple[str, str]]:
    """Turn ``"chat_id=eq.abc"`` into ``("chat_id", "abc")``."""
    if not expression:
        return None
    column, sep, rest = expression.partition("=")
    operator, dot, value = rest.partition(".")
    if not sep or operator != "eq" or not dot:
        raise ValueError(f"Unsupported filter {expression!r}")
    return column, value


@dataclass
class Binding:
    event: str
    table: str
    handler: ChangeHandler
    filter: Optional[Tuple[str, str]] = None

    def matches(self, change: Dict[str, Any]) -> bool:
        if change.get("table") != self.table:
            return False
        if self.event != "*" and change.get("type") != self.event:
            return False
        if self.filter is not None:
            column, value = self.filter
            return str(change.get("record", {}).get(column)) == value
        return True


class Channel:
    def __init__(self, client: "RealtimeClient", name: str):
        self.client = client
        self.name = name
        self.bindings: List[Binding] = []

    def on(self, event: str, table: str, handler: ChangeHandler, filter: Optional[str] = None) -> "Channel":
        self.bindings.append(Binding(event, table, handler, parse_filter(filter)))
        return self

    def subscribe(self) -> "Channel":
        self.client.attach(self)
        return self

    def unsubscribe(self) -> None:
        self.client.detach(self)

    def dispatch(self, changes: List[Dict[str, Any]], refresh_all: bool = False) -> int:
        calls = 0
        for binding in self.bindings:
            matching = [change for change in changes if binding.matches(change)]
            if not matching and not refresh_all:
                continue
            change = matching[-1] if matching else {"type": "*", "table": binding.table, "record": {}}
            try:
                binding.handler(change)
            except Exception:  # noqa: BLE001
                logger.exception("Realtime handler for channel %s failed", self.name)
            calls += 1
        return calls


class RealtimeClient:
    def __init__(
        self, api: BaaSClient, poll_interval: float = REALTIME_POLL_INTERVAL, auto_start: bool = True
    ):
        self.api = api
        self.poll_interval = poll_interval
        self.auto_start = auto_start
        self.cursor: Optional[int] = None
        self._channels: Dict[str, Channel] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def channel(self, name: str) -> Channel:
        return Channel(self, name)

    @property
    def channels(self) -> List[Channel]:
        with self._lock:
            return list(self._channels.values())

    def attach(self, channel: Channel) -> None:
        with self._lock:
            self._channels[channel.name] = channel
        if self.cursor is None:
            try:
                self.cursor = self.api.changes()["cursor"]
            except (RemoteError, requests.RequestException) as exc:
                logger.error("Could not read change feed cursor: %s", exc)
        if self.auto_start:
            self.start()

    def detach(self, channel: Channel) -> None:
        with self._lock:
            if self._channels.get(channel.name) is channel:
                del self._channels[channel.name]

    def poll_once(self) -> int:
        """Fetch pending changes and run matching handlers. Returns handler calls."""
        if self.cursor is None:
            self.cursor = self.api.changes()["cursor"]
            return 0
        feed = self.api.changes(after=self.cursor)
        self.cursor = feed["cursor"]
        events = feed.get("events") or []
        truncated = bool(feed.get("truncated"))
        if not events and not truncated:
            return 0
        return sum(channel.dispatch(events, refresh_all=truncated) for channel in self.channels)

    def _run(self) -> None:
        while not self._stop.wait(self.poll_interval):
            try:
                self.poll_once()
            except (RemoteError, requests.RequestException) as exc:
                logger.warning("Change feed poll failed: %s", exc)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="coin-chat-realtime", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.poll_interval + 1)
        self._thread = None

    def close(self) -> None:
        with self._lock:
            self._channels.clear()
        self.stop()
