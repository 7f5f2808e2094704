"""Data access primitives used by the RPC, table and function routes.

Each function is its own committed unit of work. Callers that chain several
of them (the quota workflow) get no atomicity across the chain. Storage
failures are rolled back and surfaced as ``DependencyError``.
"""
import functools
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..shared.utils import chat_id
from .errors import ChatError, DependencyError, NotFoundError, ValidationError
from .logging_config import configure_logging
from .models import Admin, Message, MessageCount, OnlineUser, RechargeOrder, User
from .realtime import INSERT, UPDATE, change_log

logger = configure_logging()

T = TypeVar("T")


def unit_of_work(action: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(fn)
        def wrapper(db: Session, *args: Any, **kwargs: Any) -> T:
            try:
                return fn(db, *args, **kwargs)
            except ChatError:
                db.rollback()
                raise
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("STORAGE_ERROR action=%s error=%s", action, exc)
                raise DependencyError(f"Failed to {action}") from exc

        return wrapper

    return decorator


def _sync_presence(db: Session, user: User) -> bool:
    """Copy the denormalized user fields onto the presence row, if any."""
    updated = (
        db.query(OnlineUser)
        .filter(OnlineUser.id == user.id)
        .update(
            {
                OnlineUser.username: user.username,
                OnlineUser.coins: user.coins,
                OnlineUser.is_temp: user.is_temp,
            },
            synchronize_session=False,
        )
    )
    return updated > 0


# Users


@unit_of_work("load user")
def get_user(db: Session, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.id == str(user_id)).first()


@unit_of_work("load user")
def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return db.query(User).filter(User.username == username).first()


@unit_of_work("load sender account")
def get_sender_flags(db: Session, user_id: str) -> Tuple[bool, int]:
    """Return ``(is_temp, coins)`` for the sender."""
    row = db.query(User.is_temp, User.coins).filter(User.id == user_id).first()
    if row is None:
        raise DependencyError("Failed to load sender account")
    return bool(row.is_temp), int(row.coins)


@unit_of_work("create temporary user")
def create_temp_user(
    db: Session, gender: Optional[str] = None, avatar_url: Optional[str] = None, location: Optional[str] = None
) -> User:
    user = User(gender=gender, avatar_url=avatar_url, location=location, coins=0, is_temp=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    change_log.record("users", INSERT, {"id": user.id})
    return user


@unit_of_work("register user")
def register_user(
    db: Session,
    username: str,
    password_hash: str,
    temp_id: Optional[str] = None,
    gender: Optional[str] = None,
    avatar_url: Optional[str] = None,
    location: Optional[str] = None,
    sent_counts: Optional[Mapping[str, int]] = None,
    initial_coins: int = 0,
) -> User:
    """Create a registered account, upgrading ``temp_id`` in place when it names a temporary one."""
    if db.query(User.id).filter(User.username == username).first() is not None:
        raise ValidationError("Username already taken")

    user = None
    if temp_id:
        user = db.query(User).filter(User.id == temp_id, User.is_temp.is_(True)).first()
    event = UPDATE
    if user is None:
        user = User(coins=initial_coins)
        db.add(user)
        event = INSERT
    else:
        user.coins = user.coins + initial_coins
    user.username = username
    user.password_hash = password_hash
    user.is_temp = False
    if gender is not None:
        user.gender = gender
    if avatar_url is not None:
        user.avatar_url = avatar_url
    if location is not None:
        user.location = location
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("Username already taken") from exc

    for target_id, count in (sent_counts or {}).items():
        _merge_count(db, user.id, str(target_id), int(count))
    _sync_presence(db, user)
    db.commit()
    db.refresh(user)
    change_log.record("users", event, {"id": user.id})
    return user


@unit_of_work("ban user")
def set_banned(db: Session, user_id: str, banned: bool) -> bool:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        return False
    user.is_banned = banned
    presence_changed = False
    if banned:
        presence_changed = (
            db.query(OnlineUser)
            .filter(OnlineUser.id == user_id)
            .update({OnlineUser.is_online: False, OnlineUser.last_seen: datetime.utcnow()}, synchronize_session=False)
            > 0
        )
    db.commit()
    change_log.record("users", UPDATE, {"id": user_id})
    if presence_changed:
        change_log.record("online_users", UPDATE, {"id": user_id})
    return True


@unit_of_work("update coins")
def set_coins(db: Session, user_id: str, coins: int) -> bool:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        return False
    user.coins = coins
    presence_changed = _sync_presence(db, user)
    db.commit()
    change_log.record("users", UPDATE, {"id": user_id})
    if presence_changed:
        change_log.record("online_users", UPDATE, {"id": user_id})
    return True


@unit_of_work("deduct coins")
def deduct_coins(db: Session, user_id: str, amount: int) -> bool:
    """Spend ``amount`` coins only if the balance covers it.

    The balance check and the decrement are one conditional UPDATE, so two
    concurrent deductions can never drive the balance below zero.
    """
    updated = (
        db.query(User)
        .filter(User.id == user_id, User.coins >= amount)
        .update({User.coins: User.coins - amount}, synchronize_session=False)
    )
    if not updated:
        db.rollback()
        return False
    presence_changed = (
        db.query(OnlineUser)
        .filter(OnlineUser.id == user_id)
        .update({OnlineUser.coins: OnlineUser.coins - amount}, synchronize_session=False)
        > 0
    )
    db.commit()
    change_log.record("users", UPDATE, {"id": user_id})
    if presence_changed:
        change_log.record("online_users", UPDATE, {"id": user_id})
    return True


@unit_of_work("recharge coins")
def recharge(db: Session, user_id: str, order_id: str, coins: int, amount: int) -> int:
    """Credit an order once and return the new balance."""
    if db.query(RechargeOrder.id).filter(RechargeOrder.order_id == order_id).first() is not None:
        raise ValidationError("Order already processed")
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError("User not found")
    db.add(RechargeOrder(order_id=order_id, user_id=user_id, coins=coins, amount=amount))
    user.coins = user.coins + coins
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("Order already processed") from exc
    presence_changed = _sync_presence(db, user)
    db.commit()
    db.refresh(user)
    change_log.record("users", UPDATE, {"id": user_id})
    if presence_changed:
        change_log.record("online_users", UPDATE, {"id": user_id})
    return user.coins


@unit_of_work("list users")
def list_users(db: Session, filters: Mapping[str, Any], order: List[Any]) -> List[User]:
    return db.query(User).filter_by(**filters).order_by(*order).all()


# Message counters


def _merge_count(db: Session, sender_id: str, target_id: str, count: int) -> None:
    row = (
        db.query(MessageCount)
        .filter(MessageCount.sender_id == sender_id, MessageCount.target_id == target_id)
        .first()
    )
    if row is None:
        db.add(MessageCount(sender_id=sender_id, target_id=target_id, count=max(count, 0)))
    elif count > row.count:
        row.count = count


@unit_of_work("load message count")
def get_message_count(db: Session, sender_id: str, target_id: str) -> int:
    value = (
        db.query(MessageCount.count)
        .filter(MessageCount.sender_id == sender_id, MessageCount.target_id == target_id)
        .scalar()
    )
    return int(value or 0)


@unit_of_work("update message count")
def increment_message_count(db: Session, sender_id: str, target_id: str) -> int:
    updated = (
        db.query(MessageCount)
        .filter(MessageCount.sender_id == sender_id, MessageCount.target_id == target_id)
        .update({MessageCount.count: MessageCount.count + 1}, synchronize_session=False)
    )
    if not updated:
        db.add(MessageCount(sender_id=sender_id, target_id=target_id, count=1))
    db.commit()
    return get_message_count(db, sender_id, target_id)


# Messages


@unit_of_work("create message")
def insert_message(db: Session, sender_id: str, receiver_id: str, text: str) -> Message:
    message = Message(
        chat_id=chat_id(sender_id, receiver_id),
        sender_id=sender_id,
        receiver_id=receiver_id,
        text=text,
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    change_log.record("messages", INSERT, {"id": message.id, "chat_id": message.chat_id})
    return message


@unit_of_work("load message")
def get_message(db: Session, message_id: int) -> Optional[Message]:
    return db.query(Message).filter(Message.id == message_id).first()


@unit_of_work("list messages")
def list_messages(db: Session, filters: Mapping[str, Any], order: List[Any]) -> List[Message]:
    order = order or [Message.timestamp.asc()]
    return db.query(Message).filter_by(**filters).order_by(*order, Message.id.asc()).all()


@unit_of_work("mark message as read")
def mark_message_read(db: Session, message: Message, read: bool = True) -> Message:
    message.read = read
    db.commit()
    db.refresh(message)
    change_log.record("messages", UPDATE, {"id": message.id, "chat_id": message.chat_id})
    return message


# Presence


@unit_of_work("update online status")
def upsert_presence(db: Session, user: User, **overrides: Any) -> OnlineUser:
    """Mark ``user`` online, refreshing the denormalized projection."""
    presence = db.query(OnlineUser).filter(OnlineUser.id == user.id).first()
    event = UPDATE
    if presence is None:
        presence = OnlineUser(id=user.id)
        db.add(presence)
        event = INSERT
    presence.username = user.username
    presence.gender = user.gender
    presence.avatar_url = user.avatar_url
    presence.location = user.location
    presence.coins = user.coins
    presence.is_temp = user.is_temp
    for key, value in overrides.items():
        if value is not None:
            setattr(presence, key, value)
    presence.is_online = True
    presence.last_seen = datetime.utcnow()
    db.commit()
    db.refresh(presence)
    change_log.record("online_users", event, {"id": user.id})
    return presence


@unit_of_work("set offline")
def set_offline(db: Session, user_id: str) -> bool:
    updated = (
        db.query(OnlineUser)
        .filter(OnlineUser.id == user_id)
        .update({OnlineUser.is_online: False, OnlineUser.last_seen: datetime.utcnow()}, synchronize_session=False)
    )
    db.commit()
    if updated:
        change_log.record("online_users", UPDATE, {"id": user_id})
    return updated > 0


@unit_of_work("list online users")
def list_presence(db: Session, filters: Mapping[str, Any], order: List[Any]) -> List[OnlineUser]:
    return db.query(OnlineUser).filter_by(**filters).order_by(*order).all()


# Administration


@unit_of_work("load admin")
def get_admin_by_username(db: Session, username: str) -> Optional[Admin]:
    return db.query(Admin).filter(Admin.username == username).first()


@unit_of_work("create admin")
def ensure_admin(db: Session, username: str, password_hash: str) -> Admin:
    admin = db.query(Admin).filter(Admin.username == username).first()
    if admin is None:
        admin = Admin(username=username, password_hash=password_hash)
        db.add(admin)
        db.commit()
        db.refresh(admin)
        logger.info("ADMIN_CREATED username=%s", username)
    return admin


@unit_of_work("compute statistics")
def get_stats(db: Session) -> Dict[str, int]:
    return {
        "totalUsers": db.query(func.count(User.id)).scalar() or 0,
        "registeredUsers": db.query(func.count(User.id)).filter(User.is_temp.is_(False)).scalar() or 0,
        "tempUsers": db.query(func.count(User.id)).filter(User.is_temp.is_(True)).scalar() or 0,
        "bannedUsers": db.query(func.count(User.id)).filter(User.is_banned.is_(True)).scalar() or 0,
        "onlineUsers": db.query(func.count(OnlineUser.id)).filter(OnlineUser.is_online.is_(True)).scalar() or 0,
        "totalMessages": db.query(func.count(Message.id)).scalar() or 0,
        "totalCoins": db.query(func.coalesce(func.sum(User.coins), 0)).scalar() or 0,
    }
