"""Authentication and authorization utilities."""
from datetime import datetime, timedelta
from typing import Dict, NamedTuple, Optional, Union

import bcrypt
import secrets
from fastapi import Depends, Header

from .config import ANON_KEY, BCRYPT_ROUNDS, TOKEN_EXPIRY_MINUTES
from .errors import AuthenticationError, PermissionDeniedError
from .logging_config import configure_logging

logger = configure_logging()

ROLE_USER = "user"
ROLE_ADMIN = "admin"


class Identity(NamedTuple):
    subject: Union[str, int]
    role: str


# In-memory token store: token -> {"subject": id, "role": str, "expires": datetime}
TOKEN_STORE: Dict[str, Dict[str, Union[datetime, str, int]]] = {}


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode()


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    return bcrypt.checkpw(password.encode(), password_hash.encode())


def issue_token(subject: Union[str, int], role: str = ROLE_USER) -> str:
    token = secrets.token_urlsafe(32)
    TOKEN_STORE[token] = {
        "subject": subject,
        "role": role,
        "expires": datetime.utcnow() + timedelta(minutes=TOKEN_EXPIRY_MINUTES),
    }
    return token


def revoke_user_tokens(user_id: str) -> int:
    stale = [
        token
        for token, data in TOKEN_STORE.items()
        if data["role"] == ROLE_USER and data["subject"] == user_id
    ]
    for token in stale:
        TOKEN_STORE.pop(token, None)
    return len(stale)


def _validate_token(header: Optional[str]) -> Identity:
    if not header or not header.startswith("Bearer "):
        logger.warning("UNAUTHORIZED_ACCESS reason=missing_token")
        raise AuthenticationError("Not signed in or token expired")
    token = header.split(" ", 1)[1]
    token_data = TOKEN_STORE.get(token)
    if not token_data:
        logger.warning("UNAUTHORIZED_ACCESS reason=unknown_token")
        raise AuthenticationError("Not signed in or token expired")
    if token_data["expires"] < datetime.utcnow():
        logger.warning("UNAUTHORIZED_ACCESS reason=expired_token")
        TOKEN_STORE.pop(token, None)
        raise AuthenticationError("Not signed in or token expired")
    return Identity(token_data["subject"], str(token_data["role"]))


def require_api_key(apikey: Optional[str] = Header(default=None)) -> None:
    """Reject requests that do not carry the project's public API key."""
    if apikey != ANON_KEY:
        logger.warning("UNAUTHORIZED_ACCESS reason=bad_api_key")
        raise AuthenticationError("Invalid API key")


def get_current_identity(authorization: Optional[str] = Header(default=None)) -> Identity:
    return _validate_token(authorization)


def get_optional_identity(authorization: Optional[str] = Header(default=None)) -> Optional[Identity]:
    if authorization is None:
        return None
    try:
        return _validate_token(authorization)
    except AuthenticationError:
        return None


def get_current_user_id(identity: Identity = Depends(get_current_identity)) -> str:
    """FastAPI dependency returning authenticated user's id."""
    if identity.role != ROLE_USER:
        raise AuthenticationError("A user session is required")
    return str(identity.subject)


def get_current_admin_id(identity: Identity = Depends(get_current_identity)) -> int:
    if identity.role != ROLE_ADMIN:
        logger.warning("UNAUTHORIZED_ACCESS reason=not_admin subject=%s", identity.subject)
        raise PermissionDeniedError("Administrator privileges required")
    return int(identity.subject)
