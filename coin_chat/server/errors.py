"""Error taxonomy shared by the HTTP routes and the quota workflow.

Each error carries the HTTP status it maps to and, where the client needs to
branch on it, a machine readable ``error_code``.
"""
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .logging_config import configure_logging

logger = configure_logging()

INVALID_REQUEST = "INVALID_REQUEST"
TEXT_TOO_LONG = "TEXT_TOO_LONG"
TEMP_USER_LIMIT = "TEMP_USER_LIMIT"
INSUFFICIENT_COINS = "INSUFFICIENT_COINS"
FORBIDDEN = "FORBIDDEN"


class ChatError(Exception):
    status_code = 500

    def __init__(
        self,
        error: str,
        error_code: Optional[str] = None,
        message: Optional[str] = None,
        current_coins: Optional[int] = None,
    ):
        super().__init__(error)
        self.error = error
        self.error_code = error_code
        self.message = message
        self.current_coins = current_coins

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.error_code is not None:
            body["errorCode"] = self.error_code
        if self.message is not None:
            body["message"] = self.message
        if self.current_coins is not None:
            body["currentCoins"] = self.current_coins
        return body


class AuthenticationError(ChatError):
    status_code = 401


class ValidationError(ChatError):
    status_code = 400

    def __init__(self, error: str, error_code: str = INVALID_REQUEST, **kwargs):
        super().__init__(error, error_code=error_code, **kwargs)


class QuotaError(ChatError):
    status_code = 403


class PermissionDeniedError(ChatError):
    status_code = 403

    def __init__(self, error: str = "Not allowed", **kwargs):
        super().__init__(error, error_code=FORBIDDEN, **kwargs)


class NotFoundError(ChatError):
    status_code = 404


class DependencyError(ChatError):
    status_code = 500


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = ValidationError("Incomplete or malformed parameters")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("INTERNAL_ERROR path=%s error=%s", request.url.path, exc)
    error = DependencyError("Internal server error")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())
