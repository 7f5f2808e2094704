"""Shared utility functions."""
import re
from typing import Tuple

MAX_MESSAGE_LENGTH = 500
FREE_MESSAGE_LIMIT = 5
MESSAGE_COST = 2

PASSWORD_BLACKLIST = {
    "123456",
    "123456789",
    "password",
    "qwerty",
    "111111",
    "12345678",
}


def chat_id(user_id: str, other_id: str) -> str:
    """Return the identifier of the conversation between two users.

    Both ids are sorted before joining so the result does not depend on who
    is the sender.
    """
    return "_".join(sorted([str(user_id), str(other_id)]))


def chat_participants(value: str) -> Tuple[str, str]:
    first, sep, second = value.partition("_")
    if not sep or not first or not second:
        raise ValueError(f"Malformed chat id: {value!r}")
    return first, second


def is_password_strong(password: str, min_length: int = 8) -> bool:
    """Return True if password meets simple strength requirements."""
    if len(password) < min_length:
        return False
    if password.lower() in PASSWORD_BLACKLIST:
        return False
    if re.fullmatch(r"\d+", password):
        return False
    return True
