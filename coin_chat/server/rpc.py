"""Named remote procedures, called as ``POST /rest/v1/rpc/{name}``.

Parameters arrive as a JSON object with ``p_``-prefixed keys. Expected
business failures (bad credentials, duplicate order, quota refusal) are
returned as ``{"success": false, "error": ...}`` with status 200; missing
authentication, missing privileges and storage failures are HTTP errors.
"""
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from ..shared.utils import is_password_strong
from . import quota, schemas, store
from .auth import (
    ROLE_ADMIN,
    ROLE_USER,
    Identity,
    get_optional_identity,
    hash_password,
    issue_token,
    require_api_key,
    revoke_user_tokens,
    verify_password,
)
from .config import INITIAL_COINS
from .database import get_db
from .errors import AuthenticationError, NotFoundError, PermissionDeniedError, QuotaError, ValidationError
from .logging_config import configure_logging

router = APIRouter(prefix="/rest/v1/rpc", tags=["rpc"], dependencies=[Depends(require_api_key)])
logger = configure_logging()

RpcHandler = Callable[[Session, Dict[str, Any], Optional[Identity]], Any]
RPC_FUNCTIONS: Dict[str, RpcHandler] = {}

_MISSING = object()


def rpc(name: str) -> Callable[[RpcHandler], RpcHandler]:
    def decorator(fn: RpcHandler) -> RpcHandler:
        RPC_FUNCTIONS[name] = fn
        return fn

    return decorator


def _param(params: Dict[str, Any], name: str, default: Any = _MISSING) -> Any:
    value = params.get(name, default)
    if value is _MISSING or (default is _MISSING and value in (None, "")):
        raise ValidationError(f"Missing parameter {name}")
    return value


def _int_param(params: Dict[str, Any], name: str, minimum: int = 0) -> int:
    value = _param(params, name)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ValidationError(f"Parameter {name} must be an integer >= {minimum}")
    return value


def _require_user(identity: Optional[Identity], user_id: Any) -> str:
    if identity is None:
        raise AuthenticationError("Not signed in or token expired")
    if identity.role != ROLE_USER or str(identity.subject) != str(user_id):
        raise PermissionDeniedError("Cannot act on behalf of another user")
    return str(user_id)


def _require_admin(identity: Optional[Identity]) -> int:
    if identity is None:
        raise AuthenticationError("Not signed in or token expired")
    if identity.role != ROLE_ADMIN:
        raise PermissionDeniedError("Administrator privileges required")
    return int(identity.subject)


def _user_json(user) -> Dict[str, Any]:
    return schemas.UserOut.model_validate(user).model_dump(mode="json")


@router.post("/{name}")
def call_rpc(
    name: str,
    params: Optional[Dict[str, Any]] = Body(default=None),
    db: Session = Depends(get_db),
    identity: Optional[Identity] = Depends(get_optional_identity),
):
    handler = RPC_FUNCTIONS.get(name)
    if handler is None:
        raise NotFoundError(f"Function {name} not found")
    return handler(db, params or {}, identity)


# Accounts and presence


@rpc("create_temp_user")
def create_temp_user(db: Session, params: Dict[str, Any], identity: Optional[Identity]):
    user = store.create_temp_user(
        db,
        gender=params.get("p_gender"),
        avatar_url=params.get("p_avatar_url"),
        location=params.get("p_location"),
    )
    store.upsert_presence(db, user)
    logger.info("TEMP_USER_CREATED user_id=%s", user.id)
    return {"success": True, "user": _user_json(user), "token": issue_token(user.id, ROLE_USER)}


@rpc("login_user")
def login_user(db: Session, params: Dict[str, Any], identity: Optional[Identity]):
    username = _param(params, "p_username")
    password = str(_param(params, "p_password"))
    user = store.get_user_by_username(db, username)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("LOGIN_FAIL username=%s reason=bad_credentials", username)
        return {"success": False, "error": "Invalid username or password"}
    if user.is_banned:
        logger.warning("LOGIN_FAIL username=%s reason=banned", username)
        return {"success": False, "error": "Account is banned"}

    store.upsert_presence(db, user, location=params.get("p_location"))
    logger.info("LOGIN_SUCCESS username=%s user_id=%s", username, user.id)
    return {"success": True, "user": _user_json(user), "token": issue_token(user.id, ROLE_USER)}


@rpc("register_user")
def register_user(db: Session, params: Dict[str, Any], identity: Optional[Identity]):
    username = str(_param(params, "p_username")).strip()
    password = str(_param(params, "p_password"))
    temp_id = params.get("p_temp_id")
    sent_counts = params.get("p_sent_counts") or {}

    if not username:
        return {"success": False, "error": "Username is required"}
    if not is_password_strong(password):
        return {"success": False, "error": "Password too weak"}
    if not isinstance(sent_counts, dict):
        raise ValidationError("Parameter p_sent_counts must be an object")
    for count in sent_counts.values():
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ValidationError("Parameter p_sent_counts must map ids to integers")
    if temp_id:
        _require_user(identity, temp_id)

    try:
        user = store.register_user(
            db,
            username=username,
            password_hash=hash_password(password),
            temp_id=temp_id,
            gender=params.get("p_gender"),
            avatar_url=params.get("p_avatar_url"),
            location=params.get("p_location"),
            sent_counts=sent_counts,
            initial_coins=INITIAL_COINS,
        )
    except ValidationError as exc:
        logger.info("REGISTER_FAIL username=%s reason=%s", username, exc.error)
        return {"success": False, "error": exc.error}
    logger.info("REGISTER_SUCCESS username=%s user_id=%s upgraded=%s", username, user.id, bool(temp_id))
    return {"success": True, "userId": user.id}


@rpc("update_heartbeat")
def update_heartbeat(db: Session, params: Dict[str, Any], identity: Optional[Identity]):
    user_id = _require_user(identity, _param(params, "p_user_id"))
    user = store.get_user(db, user_id)
    if user is None:
        raise NotFoundError("User not found")
    store.upsert_presence(db, user)
    return {"success": True}


# Messaging primitives


@rpc("get_message_count")
def get_message_count(db: Session, params: Dict[str, Any], identity: Optional[Identity]):
    user_id = _require_user(identity, _param(params, "p_user_id"))
    return store.get_message_count(db, user_id, str(_param(params, "p_target_id")))


@rpc("increment_message_count")
def increment_message_count(db: Session, params: Dict[str, Any], identity: Optional[Identity]):
    user_id = _require_user(identity, _param(params, "p_user_id"))
    return store.increment_message_count(db, user_id, str(_param(params, "p_target_id")))


@rpc("deduct_coins")
def deduct_coins(db: Session, params: Dict[str, Any], identity: Optional[Identity]):
    user_id = _require_user(identity, _param(params, "p_user_id"))
    return store.deduct_coins(db, user_id, _int_param(params, "p_amount", minimum=1))


@rpc("send_message_with_limits")
def send_message_with_limits(db: Session, params: Dict[str, Any], identity: Optional[Identity]):
    # p_is_temp is accepted for compatibility; the stored account flag decides.
    sender_id = _require_user(identity, _param(params, "p_sender_id"))
    try:
        outcome = quota.send_message(db, sender_id, params.get("p_receiver_id"), params.get("p_text"))
    except (ValidationError, QuotaError) as exc:
        result = {"success": False, "error": exc.error_code, "message": exc.error}
        if exc.current_coins is not None:
            result["currentCoins"] = exc.current_coins
        return result
    return {
        "success": True,
        "messageId": outcome.message.id,
        "coinsDeducted": outcome.coins_deducted,
        "remainingCoins": outcome.remaining_coins,
        "newMessageCount": outcome.message_count,
    }


@rpc("recharge_coins")
def recharge_coins(db: Session, params: Dict[str, Any], identity: Optional[Identity]):
    user_id = _require_user(identity, _param(params, "p_user_id"))
    order_id = str(_param(params, "p_order_id"))
    coins = _int_param(params, "p_coins", minimum=1)
    amount = _int_param(params, "p_amount", minimum=0)
    try:
        balance = store.recharge(db, user_id, order_id, coins, amount)
    except (ValidationError, NotFoundError) as exc:
        logger.info("RECHARGE_FAIL user_id=%s order_id=%s reason=%s", user_id, order_id, exc.error)
        return {"success": False, "error": exc.error}
    logger.info("RECHARGE_SUCCESS user_id=%s order_id=%s coins=%s", user_id, order_id, coins)
    return {"success": True, "newBalance": balance}


# Administration


@rpc("admin_login")
def admin_login(db: Session, params: Dict[str, Any], identity: Optional[Identity]):
    username = _param(params, "p_username")
    password = str(_param(params, "p_password"))
    admin = store.get_admin_by_username(db, username)
    if admin is None or not verify_password(password, admin.password_hash):
        logger.info("ADMIN_LOGIN_FAIL username=%s", username)
        return {"success": False, "error": "Invalid username or password"}
    logger.info("ADMIN_LOGIN_SUCCESS username=%s", username)
    return {
        "success": True,
        "admin": schemas.AdminOut.model_validate(admin).model_dump(),
        "token": issue_token(admin.id, ROLE_ADMIN),
    }


@rpc("ban_user")
def ban_user(db: Session, params: Dict[str, Any], identity: Optional[Identity]):
    admin_id = _require_admin(identity)
    user_id = str(_param(params, "p_user_id"))
    banned = params.get("p_banned")
    if not isinstance(banned, bool):
        raise ValidationError("Parameter p_banned must be a boolean")
    ok = store.set_banned(db, user_id, banned)
    if ok and banned:
        revoke_user_tokens(user_id)
    logger.info("USER_BAN admin_id=%s user_id=%s banned=%s ok=%s", admin_id, user_id, banned, ok)
    return {"success": ok}


@rpc("admin_update_coins")
def admin_update_coins(db: Session, params: Dict[str, Any], identity: Optional[Identity]):
    admin_id = _require_admin(identity)
    user_id = str(_param(params, "p_user_id"))
    coins = _int_param(params, "p_coins", minimum=0)
    ok = store.set_coins(db, user_id, coins)
    logger.info("COINS_SET admin_id=%s user_id=%s coins=%s ok=%s", admin_id, user_id, coins, ok)
    return {"success": ok}


@rpc("get_stats")
def get_stats(db: Session, params: Dict[str, Any], identity: Optional[Identity]):
    _require_admin(identity)
    return store.get_stats(db)
