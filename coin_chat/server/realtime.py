"""Change feed consumed by real-time subscribers.

Every committed mutation appends an event carrying only the key columns of the
changed row. Subscribers poll with the last cursor they saw and refetch
whatever collections the events touch.
"""
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends

from .auth import Identity, get_current_identity, require_api_key
from .config import CHANGE_LOG_SIZE

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


class ChangeLog:
    def __init__(self, maxlen: int = CHANGE_LOG_SIZE):
        self._events: Deque[Dict[str, Any]] = deque(maxlen=maxlen)
        self._seq = 0
        self._lock = threading.Lock()

    @property
    def cursor(self) -> int:
        with self._lock:
            return self._seq

    def record(self, table: str, event_type: str, record: Dict[str, Any]) -> int:
        with self._lock:
            self._seq += 1
            self._events.append({"seq": self._seq, "table": table, "type": event_type, "record": dict(record)})
            return self._seq

    def since(self, after: int) -> Tuple[List[Dict[str, Any]], int, bool]:
        """Return events newer than ``after``, the new cursor and whether some were evicted."""
        with self._lock:
            events = [event for event in self._events if event["seq"] > after]
            oldest = self._events[0]["seq"] if self._events else self._seq + 1
            truncated = after > self._seq or (after < self._seq and oldest > after + 1)
            return events, self._seq, truncated

    def reset(self) -> None:
        with self._lock:
            self._events.clear()
            self._seq = 0


change_log = ChangeLog()

router = APIRouter(prefix="/realtime/v1", tags=["realtime"], dependencies=[Depends(require_api_key)])


@router.get("/changes")
def get_changes(after: Optional[int] = None, _: Identity = Depends(get_current_identity)):
    if after is None:
        return {"events": [], "cursor": change_log.cursor, "truncated": False}
    events, cursor, truncated = change_log.since(after)
    return {"events": events, "cursor": cursor, "truncated": truncated}
