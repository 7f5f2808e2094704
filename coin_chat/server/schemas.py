"""Pydantic schemas for request and response bodies."""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class UserOut(BaseModel):
    id: str
    username: Optional[str] = None
    gender: Optional[str] = None
    avatar_url: Optional[str] = None
    location: Optional[str] = None
    coins: int
    is_temp: bool
    is_banned: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OnlineUserOut(BaseModel):
    id: str
    username: Optional[str] = None
    gender: Optional[str] = None
    avatar_url: Optional[str] = None
    location: Optional[str] = None
    coins: int
    is_temp: bool
    is_online: bool
    last_seen: Optional[datetime] = None

    class Config:
        from_attributes = True


class MessageOut(BaseModel):
    id: int
    chat_id: str
    sender_id: str
    receiver_id: str
    text: str
    read: bool
    timestamp: datetime

    class Config:
        from_attributes = True


class AdminOut(BaseModel):
    id: int
    username: str

    class Config:
        from_attributes = True


class SendMessageRequest(BaseModel):
    # Loosely typed so that the quota workflow reports 400s itself.
    target_user_id: Optional[Any] = Field(default=None, alias="targetUserId")
    text: Optional[Any] = None

    class Config:
        populate_by_name = True


class SendMessageResponse(BaseModel):
    success: bool = True
    message: MessageOut
    coins_deducted: int = Field(..., alias="coinsDeducted")
    remaining_coins: int = Field(..., alias="remainingCoins")
    new_message_count: int = Field(..., alias="newMessageCount")

    class Config:
        populate_by_name = True


class ErrorResponse(BaseModel):
    error: str
    error_code: Optional[str] = Field(default=None, alias="errorCode")
    message: Optional[str] = None
    current_coins: Optional[int] = Field(default=None, alias="currentCoins")

    class Config:
        populate_by_name = True


class OnlineStatusIn(BaseModel):
    id: str
    username: Optional[str] = None
    gender: Optional[str] = None
    avatar_url: Optional[str] = None
    location: Optional[str] = None
    coins: Optional[int] = None
    is_temp: bool = False
    is_online: bool = True


class PresencePatch(BaseModel):
    is_online: bool


class MessagePatch(BaseModel):
    read: bool
