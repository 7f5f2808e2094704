"""Client-side session model."""
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional


@dataclass
class ChatSession:
    """Signed-in user as cached on this machine."""

    user_id: str
    username: Optional[str] = None
    token: Optional[str] = None
    gender: Optional[str] = None
    avatar_url: Optional[str] = None
    location: Optional[str] = None
    coins: int = 0
    is_temp: bool = False

    @property
    def display_name(self) -> str:
        return self.username or f"guest-{self.user_id[:8]}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatSession":
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})

    @classmethod
    def from_login(cls, user: Dict[str, Any], token: Optional[str]) -> "ChatSession":
        return cls(
            user_id=user["id"],
            username=user.get("username"),
            token=token,
            gender=user.get("gender"),
            avatar_url=user.get("avatar_url"),
            location=user.get("location"),
            coins=int(user.get("coins") or 0),
            is_temp=bool(user.get("is_temp")),
        )
