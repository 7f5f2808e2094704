"""Message sending with per-recipient free quota and coin charging.

A sender gets ``FREE_MESSAGE_LIMIT`` free messages per recipient. After that,
temporary accounts are refused and registered accounts pay ``MESSAGE_COST``
coins per message. The steps below are separate storage calls: a failure
after the coin deduction does not refund it, and a failed counter increment
leaves the message in place with a stale count.
"""
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from ..shared.utils import FREE_MESSAGE_LIMIT, MAX_MESSAGE_LENGTH, MESSAGE_COST
from . import store
from .errors import (
    INSUFFICIENT_COINS,
    TEMP_USER_LIMIT,
    TEXT_TOO_LONG,
    DependencyError,
    QuotaError,
    ValidationError,
)
from .logging_config import configure_logging
from .models import Message

logger = configure_logging()


@dataclass
class SendOutcome:
    message: Message
    coins_deducted: int
    remaining_coins: int
    message_count: int


def validate_send_request(sender_id: str, target_user_id: Any, text: Any) -> str:
    """Check the request shape and return the text to store (trimmed)."""
    if not target_user_id or text is None or text == "":
        raise ValidationError("Incomplete parameters")
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("Message text cannot be empty")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(
            f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters", error_code=TEXT_TOO_LONG
        )
    if str(target_user_id) == str(sender_id):
        raise ValidationError("Cannot send a message to yourself")
    return text.strip()


def _insufficient_coins(coins: int) -> QuotaError:
    return QuotaError(
        "Insufficient coins",
        error_code=INSUFFICIENT_COINS,
        message="Recharge to keep chatting",
        current_coins=coins,
    )


def send_message(db: Session, sender_id: str, target_user_id: Any, text: Any) -> SendOutcome:
    body = validate_send_request(sender_id, target_user_id, text)
    target_user_id = str(target_user_id)

    is_temp, coins = store.get_sender_flags(db, sender_id)
    if store.get_user(db, target_user_id) is None:
        raise ValidationError("Target user does not exist")

    sent_count = store.get_message_count(db, sender_id, target_user_id)
    coins_deducted = 0

    if sent_count >= FREE_MESSAGE_LIMIT:
        if is_temp:
            logger.info("QUOTA_REJECTED sender_id=%s target_id=%s reason=temp_user_limit", sender_id, target_user_id)
            raise QuotaError(
                "Temporary account free quota exhausted",
                error_code=TEMP_USER_LIMIT,
                message="Register to keep chatting",
            )
        if coins < MESSAGE_COST:
            logger.info(
                "QUOTA_REJECTED sender_id=%s target_id=%s reason=insufficient_coins coins=%s",
                sender_id,
                target_user_id,
                coins,
            )
            raise _insufficient_coins(coins)
        try:
            deducted = store.deduct_coins(db, sender_id, MESSAGE_COST)
        except DependencyError as exc:
            raise DependencyError("Failed to deduct coins") from exc
        if not deducted:
            # Another request spent the coins after our balance read.
            _, coins = store.get_sender_flags(db, sender_id)
            logger.warning(
                "QUOTA_REJECTED sender_id=%s target_id=%s reason=deduction_lost coins=%s",
                sender_id,
                target_user_id,
                coins,
            )
            raise _insufficient_coins(coins)
        coins_deducted = MESSAGE_COST

    try:
        message = store.insert_message(db, sender_id, target_user_id, body)
    except DependencyError as exc:
        logger.error(
            "MESSAGE_SEND_FAIL sender_id=%s target_id=%s coins_deducted=%s",
            sender_id,
            target_user_id,
            coins_deducted,
        )
        raise DependencyError("Message delivery failed, please retry") from exc

    try:
        store.increment_message_count(db, sender_id, target_user_id)
    except DependencyError:
        logger.error("COUNTER_INCREMENT_FAILED sender_id=%s target_id=%s", sender_id, target_user_id)

    logger.info(
        "MESSAGE_SENT sender_id=%s target_id=%s message_id=%s coins_deducted=%s",
        sender_id,
        target_user_id,
        message.id,
        coins_deducted,
    )
    return SendOutcome(
        message=message,
        coins_deducted=coins_deducted,
        remaining_coins=coins - coins_deducted,
        message_count=sent_count + 1,
    )
