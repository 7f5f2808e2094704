"""HTTP entry point for the metered send-message workflow."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from . import quota, schemas
from .auth import get_current_user_id, require_api_key
from .database import get_db

router = APIRouter(prefix="/functions/v1", tags=["functions"], dependencies=[Depends(require_api_key)])

ERROR_RESPONSES = {
    status: {"model": schemas.ErrorResponse}
    for status in (400, 401, 403, 500)
}


@router.post("/send-message", response_model=schemas.SendMessageResponse, responses=ERROR_RESPONSES)
def send_message(
    payload: schemas.SendMessageRequest,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    outcome = quota.send_message(db, current_user_id, payload.target_user_id, payload.text)
    return schemas.SendMessageResponse(
        message=schemas.MessageOut.model_validate(outcome.message),
        coins_deducted=outcome.coins_deducted,
        remaining_coins=outcome.remaining_coins,
        new_message_count=outcome.message_count,
    )
