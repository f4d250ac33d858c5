"""
Kitchen webhook endpoints

The kitchen reports which waiter picked up or served each comanda.
"""

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlmodel import Session
from typing import Optional
import hmac
import structlog

from tableside.api.schemas import WaiterInteractionCreate, WaiterInteractionRead
from tableside.core.config import get_settings
from tableside.core.database import get_session
from tableside.services.kitchen import KitchenNotifier, get_kitchen_notifier
from tableside.services.ratings import RatingService

logger = structlog.get_logger(__name__)
settings = get_settings()
router = APIRouter()


def verify_webhook_token(x_webhook_token: Optional[str] = Header(None)) -> None:
    expected = settings.KITCHEN_WEBHOOK_TOKEN
    if not expected:
        return
    if not x_webhook_token or not hmac.compare_digest(x_webhook_token, expected):
        logger.warning("Kitchen webhook called with a bad token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook token",
        )


@router.post(
    "/waiter-interaction",
    response_model=WaiterInteractionRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_webhook_token)],
)
def waiter_interaction(
    payload: WaiterInteractionCreate,
    session: Session = Depends(get_session),
    kitchen: KitchenNotifier = Depends(get_kitchen_notifier),
):
    """Record that a waiter took (ASSIGN) or served (SERVE) an order"""
    interaction = RatingService(session, kitchen=kitchen).record_interaction(
        payload.external_order_id,
        payload.action,
        waiter_id=payload.waiter_id,
        worker_code=payload.worker_code,
    )
    return WaiterInteractionRead.model_validate(interaction)
