"""Table-scoped queries: ``GET /rest/v1/{table}?column=eq.value&order=column.desc``.

Only equality filters on whitelisted columns are understood. Writes are
limited to the presence upsert/patch and the message read flag.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..shared.utils import chat_participants
from . import schemas, store
from .auth import ROLE_ADMIN, Identity, get_current_identity, require_api_key
from .database import Base, get_db
from .errors import NotFoundError, PermissionDeniedError, ValidationError
from .models import Message, OnlineUser, User

router = APIRouter(prefix="/rest/v1", tags=["tables"], dependencies=[Depends(require_api_key)])

RESERVED_PARAMS = {"order", "select", "limit"}


@dataclass
class TableSpec:
    model: Type[Base]
    schema: Type[BaseModel]
    filterable: Dict[str, Callable[[str], Any]]
    orderable: frozenset


def _to_bool(raw: str) -> bool:
    if raw == "true":
        return True
    if raw == "false":
        return False
    raise ValueError(raw)


TABLES: Dict[str, TableSpec] = {
    "users": TableSpec(
        User,
        schemas.UserOut,
        {"id": str, "username": str, "is_temp": _to_bool, "is_banned": _to_bool},
        frozenset({"created_at", "username", "coins"}),
    ),
    "online_users": TableSpec(
        OnlineUser,
        schemas.OnlineUserOut,
        {"id": str, "is_online": _to_bool, "is_temp": _to_bool},
        frozenset({"last_seen", "username"}),
    ),
    "messages": TableSpec(
        Message,
        schemas.MessageOut,
        {"id": int, "chat_id": str, "sender_id": str, "receiver_id": str, "read": _to_bool},
        frozenset({"timestamp", "id"}),
    ),
}


def parse_filters(spec: TableSpec, request: Request) -> Dict[str, Any]:
    filters: Dict[str, Any] = {}
    for column, raw in request.query_params.multi_items():
        if column in RESERVED_PARAMS:
            continue
        if column not in spec.filterable:
            raise ValidationError(f"Unknown filter column {column}")
        operator, sep, value = raw.partition(".")
        if operator != "eq" or not sep:
            raise ValidationError(f"Unsupported filter {column}={raw}")
        try:
            filters[column] = spec.filterable[column](value)
        except ValueError as exc:
            raise ValidationError(f"Invalid value for {column}") from exc
    return filters


def parse_order(spec: TableSpec, raw: Optional[str]) -> List[Any]:
    clauses = []
    for part in (raw or "").split(","):
        if not part:
            continue
        column, _, direction = part.partition(".")
        direction = direction or "asc"
        if column not in spec.orderable or direction not in ("asc", "desc"):
            raise ValidationError(f"Unsupported order {part}")
        attr = getattr(spec.model, column)
        clauses.append(attr.desc() if direction == "desc" else attr.asc())
    return clauses


def _rows(spec: TableSpec, rows) -> List[Dict[str, Any]]:
    return [spec.schema.model_validate(row).model_dump(mode="json") for row in rows]


def _is_admin(identity: Identity) -> bool:
    return identity.role == ROLE_ADMIN


@router.get("/{table}")
def select_rows(
    table: str,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    spec = TABLES.get(table)
    if spec is None:
        raise NotFoundError(f"Table {table} not found")
    filters = parse_filters(spec, request)
    order = parse_order(spec, request.query_params.get("order"))

    if table == "users":
        if not _is_admin(identity):
            raise PermissionDeniedError("Administrator privileges required")
        return _rows(spec, store.list_users(db, filters, order))

    if table == "online_users":
        return _rows(spec, store.list_presence(db, filters, order))

    chat = filters.get("chat_id")
    if chat is None:
        raise ValidationError("A chat_id filter is required")
    if not _is_admin(identity):
        try:
            participants = chat_participants(chat)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if str(identity.subject) not in participants:
            raise PermissionDeniedError("Not a participant of this chat")
    return _rows(spec, store.list_messages(db, filters, order))


@router.post("/online_users")
def upsert_online_user(
    payload: schemas.OnlineStatusIn,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    if _is_admin(identity) or str(identity.subject) != payload.id:
        raise PermissionDeniedError("Cannot update another user's status")
    user = store.get_user(db, payload.id)
    if user is None:
        raise NotFoundError("User not found")
    if not payload.is_online:
        store.set_offline(db, user.id)
        return _rows(TABLES["online_users"], store.list_presence(db, {"id": user.id}, []))
    presence = store.upsert_presence(
        db, user, location=payload.location, gender=payload.gender, avatar_url=payload.avatar_url
    )
    return _rows(TABLES["online_users"], [presence])


@router.patch("/online_users")
def patch_online_user(
    payload: schemas.PresencePatch,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    spec = TABLES["online_users"]
    user_id = parse_filters(spec, request).get("id")
    if user_id is None:
        raise ValidationError("An id filter is required")
    if _is_admin(identity) or str(identity.subject) != user_id:
        raise PermissionDeniedError("Cannot update another user's status")
    if payload.is_online:
        user = store.get_user(db, user_id)
        if user is None:
            return []
        return _rows(spec, [store.upsert_presence(db, user)])
    if not store.set_offline(db, user_id):
        return []
    return _rows(spec, store.list_presence(db, {"id": user_id}, []))


@router.patch("/messages")
def patch_message(
    payload: schemas.MessagePatch,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    spec = TABLES["messages"]
    message_id = parse_filters(spec, request).get("id")
    if message_id is None:
        raise ValidationError("An id filter is required")
    message = store.get_message(db, message_id)
    if message is None:
        return []
    if not _is_admin(identity) and str(identity.subject) != message.receiver_id:
        raise PermissionDeniedError("Only the receiver can mark a message as read")
    return _rows(spec, [store.mark_message_read(db, message, payload.read)])
