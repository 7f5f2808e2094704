"""Shared data transfer object helpers."""
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class OnlineUserDTO:
    id: str
    username: Optional[str]
    gender: Optional[str]
    location: Optional[str]
    is_temp: bool
    is_online: bool
    last_seen: Optional[str]

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "OnlineUserDTO":
        return cls(
            id=row["id"],
            username=row.get("username"),
            gender=row.get("gender"),
            location=row.get("location"),
            is_temp=bool(row.get("is_temp")),
            is_online=bool(row.get("is_online")),
            last_seen=row.get("last_seen"),
        )

    @property
    def display_name(self) -> str:
        return self.username or f"guest-{self.id[:8]}"


@dataclass
class MessageDTO:
    id: int
    chat_id: str
    sender_id: str
    receiver_id: str
    text: str
    read: bool
    timestamp: str

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "MessageDTO":
        return cls(
            id=int(row["id"]),
            chat_id=row["chat_id"],
            sender_id=row["sender_id"],
            receiver_id=row["receiver_id"],
            text=row["text"],
            read=bool(row.get("read")),
            timestamp=row.get("timestamp") or "",
        )
