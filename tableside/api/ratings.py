"""
Waiter rating API endpoints
"""

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session
from datetime import datetime
from typing import List, Literal, Optional
import structlog

from tableside.api.schemas import (
    RatingCreate,
    RatingList,
    RatingPoint,
    RatingRead,
    RatingSummary,
    WaiterRatingGroup,
    WaiterRatingGroupList,
)
from tableside.core.database import get_session
from tableside.core.dependencies import guest_or_staff, require_staff
from tableside.core.identity import Identity, StaffIdentity, ensure_client_access
from tableside.core.permissions import Permission
from tableside.services.ratings import RatingService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/clients/{client_id}", response_model=List[RatingRead], status_code=status.HTTP_201_CREATED)
def rate_client_session(
    client_id: int,
    payload: RatingCreate,
    identity: Identity = Depends(guest_or_staff(Permission.RATINGS_CREATE, allow_closed=True)),
    session: Session = Depends(get_session),
):
    """Rate the waiter(s) who served a visit; rating again overwrites"""
    ensure_client_access(identity, client_id)
    ratings = RatingService(session).rate_session(
        client_id,
        payload.score,
        comment=payload.comment,
        waiter_id=payload.waiter_id,
        for_all=payload.for_all,
    )
    logger.info(f"Client {client_id} rated {len(ratings)} waiter(s) with score {payload.score}")
    return [RatingRead.model_validate(r) for r in ratings]


@router.get("/", response_model=List[RatingRead])
def list_ratings(
    waiter_id: Optional[str] = None,
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    staff: StaffIdentity = Depends(require_staff(Permission.RATINGS_VIEW)),
    session: Session = Depends(get_session),
):
    ratings = RatingService(session).list_ratings(waiter_id, date_from, date_to)
    return [RatingRead.model_validate(r) for r in ratings]


@router.get("/summary", response_model=RatingSummary)
def ratings_summary(
    waiter_id: Optional[str] = None,
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    staff: StaffIdentity = Depends(require_staff(Permission.RATINGS_VIEW)),
    session: Session = Depends(get_session),
):
    return RatingService(session).summary(waiter_id, date_from, date_to)


@router.get("/clients/{client_id}/waiters", response_model=List[str])
def client_waiters(
    client_id: int,
    staff: StaffIdentity = Depends(require_staff(Permission.RATINGS_VIEW)),
    session: Session = Depends(get_session),
):
    """Waiters who touched a session"""
    return RatingService(session).list_waiters_for_client(client_id)


@router.get("/by-waiter", response_model=WaiterRatingGroupList)
def ratings_by_waiter(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    recent_count: int = Query(10, ge=1, le=50),
    staff: StaffIdentity = Depends(require_staff(Permission.RATINGS_VIEW)),
    session: Session = Depends(get_session),
):
    groups, meta = RatingService(session).list_grouped_by_waiter(page, page_size, recent_count)
    return WaiterRatingGroupList(
        data=[
            WaiterRatingGroup(
                waiter_id=group["waiter_id"],
                count=group["count"],
                average=group["average"],
                recent=[RatingRead.model_validate(r) for r in group["recent"]],
            )
            for group in groups
        ],
        meta=meta,
    )


@router.get("/paged", response_model=RatingList)
def ratings_paged(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    waiter_id: Optional[str] = None,
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    order_by: Literal["created_at", "score"] = "created_at",
    direction: Literal["asc", "desc"] = "desc",
    staff: StaffIdentity = Depends(require_staff(Permission.RATINGS_VIEW)),
    session: Session = Depends(get_session),
):
    ratings, meta = RatingService(session).list_ratings_paged(
        page, page_size, waiter_id, date_from, date_to, order_by, direction
    )
    return RatingList(data=[RatingRead.model_validate(r) for r in ratings], meta=meta)


@router.get("/timeseries", response_model=List[RatingPoint])
def ratings_timeseries(
    granularity: Literal["daily", "weekly"],
    waiter_id: Optional[str] = None,
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    staff: StaffIdentity = Depends(require_staff(Permission.RATINGS_VIEW)),
    session: Session = Depends(get_session),
):
    return RatingService(session).timeseries(granularity, waiter_id, date_from, date_to)
