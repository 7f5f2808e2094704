"""Database models for the chat backend."""
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from .database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    # Temporary accounts have no credentials until they register.
    username = Column(String, unique=True, index=True, nullable=True)
    password_hash = Column(String, nullable=True)
    gender = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    location = Column(String, nullable=True)
    coins = Column(Integer, nullable=False, default=0)
    is_temp = Column(Boolean, nullable=False, default=False)
    is_banned = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class OnlineUser(Base):
    """Presence projection of a user. Not authoritative."""

    __tablename__ = "online_users"

    id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    username = Column(String, nullable=True)
    gender = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    location = Column(String, nullable=True)
    coins = Column(Integer, nullable=False, default=0)
    is_temp = Column(Boolean, nullable=False, default=False)
    is_online = Column(Boolean, nullable=False, default=True)
    last_seen = Column(DateTime, default=datetime.utcnow)


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(String, index=True, nullable=False)
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    receiver_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    text = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    timestamp = Column(DateTime, default=datetime.utcnow)


class MessageCount(Base):
    __tablename__ = "message_counts"
    __table_args__ = (UniqueConstraint("sender_id", "target_id", name="uq_message_counts_pair"),)

    id = Column(Integer, primary_key=True)
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    target_id = Column(String(36), nullable=False)
    count = Column(Integer, nullable=False, default=0)


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True)
    username = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)


class RechargeOrder(Base):
    __tablename__ = "recharge_orders"

    id = Column(Integer, primary_key=True)
    order_id = Column(String, unique=True, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    coins = Column(Integer, nullable=False)
    amount = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
