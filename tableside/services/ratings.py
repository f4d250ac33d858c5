"""
Waiter assignment and rating domain service

The kitchen reports which waiter took or served each comanda. Those reports
decide who a guest's rating is credited to once the visit ends.
"""

from collections import OrderedDict
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
import structlog

from tableside.core.database import transaction
from tableside.core.errors import ErrorCode, InvalidRequestError, NotFoundError
from tableside.models import Comanda, TemporaryClient, WaiterAction, WaiterInteraction, WaiterRating
from tableside.services.kitchen import KitchenNotifier
from tableside.services.pagination import page_metadata, page_offset

logger = structlog.get_logger(__name__)

SCORES = range(0, 6)
ORDERABLE_COLUMNS = {
    "created_at": WaiterRating.created_at,
    "score": WaiterRating.score,
}


def end_of_day(value: datetime) -> datetime:
    """Make a date-only upper bound inclusive of the whole day"""
    if isinstance(value, datetime) and value.time() != time(0, 0):
        return value
    day = value.date() if isinstance(value, datetime) else value
    return datetime.combine(day, time.max)


def _as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def period_start(moment: datetime, granularity: str) -> date:
    day = moment.date()
    if granularity == "weekly":
        return day - timedelta(days=day.weekday())
    return day


class RatingService:
    """Domain service for waiter interactions and ratings"""

    def __init__(self, db: Session, kitchen: Optional[KitchenNotifier] = None):
        self._db = db
        self._kitchen = kitchen

    # ------------------------------------------------------------------
    # Kitchen reports
    # ------------------------------------------------------------------

    def _resolve_waiter(self, waiter_id: Optional[str], worker_code: Optional[str]) -> Dict[str, Any]:
        if waiter_id:
            return {"id": waiter_id, "role": None}
        if worker_code and self._kitchen is not None:
            staff = self._kitchen.validate_worker(worker_code)
            if staff:
                return staff
        raise InvalidRequestError(ErrorCode.WAITER_VALIDATION_FAILED, "Could not validate the waiter")

    def record_interaction(
        self,
        external_order_id: int,
        action: WaiterAction,
        waiter_id: Optional[str] = None,
        worker_code: Optional[str] = None,
    ) -> WaiterInteraction:
        comanda = self._db.get(Comanda, external_order_id)
        if not comanda:
            raise NotFoundError(ErrorCode.ORDER_NOT_FOUND, "Order not found")

        waiter = self._resolve_waiter(waiter_id, worker_code)

        with transaction(self._db):
            interaction = WaiterInteraction(
                cliente_id=comanda.cliente_id,
                waiter_id=waiter["id"],
                role=waiter.get("role"),
                action=action,
                external_order_id=external_order_id,
            )
            self._db.add(interaction)

            if action == WaiterAction.SERVE:
                client = self._db.get(TemporaryClient, comanda.cliente_id)
                client.last_waiter_id = waiter["id"]
                client.updated_at = datetime.utcnow()
                self._db.add(client)

        self._db.refresh(interaction)
        logger.info(f"Waiter {waiter['id']} {action.value} order {external_order_id}")
        return interaction

    # ------------------------------------------------------------------
    # Rating
    # ------------------------------------------------------------------

    def list_waiters_for_client(self, client_id: int) -> List[str]:
        """Distinct waiters who touched a session, in first-seen order"""
        client = self._db.get(TemporaryClient, client_id)
        if not client:
            raise NotFoundError(ErrorCode.CLIENT_NOT_FOUND, "Client not found")

        waiter_ids = self._db.exec(
            select(WaiterInteraction.waiter_id)
            .where(WaiterInteraction.cliente_id == client_id)
            .order_by(WaiterInteraction.created_at.asc(), WaiterInteraction.id.asc())
        ).all()

        seen: "OrderedDict[str, None]" = OrderedDict()
        for waiter_id in list(waiter_ids) + [client.last_waiter_id, client.closed_by_waiter_id]:
            if waiter_id:
                seen.setdefault(waiter_id, None)
        return list(seen)

    def rate_session(
        self,
        client_id: int,
        score: int,
        comment: Optional[str] = None,
        waiter_id: Optional[str] = None,
        for_all: bool = False,
    ) -> List[WaiterRating]:
        """Rate the waiter(s) of a session; one rating per (session, waiter)"""
        client = self._db.get(TemporaryClient, client_id)
        if not client:
            raise NotFoundError(ErrorCode.CLIENT_NOT_FOUND, "Client not found")

        if for_all:
            targets = self.list_waiters_for_client(client_id)
            if not targets:
                fallback = client.closed_by_waiter_id or client.last_waiter_id
                targets = [fallback] if fallback else []
        else:
            single = client.closed_by_waiter_id or client.last_waiter_id or waiter_id
            targets = [single] if single else []

        if not targets:
            raise InvalidRequestError(
                ErrorCode.WAITER_NOT_ASSIGNED,
                "No waiter has been associated with this visit yet",
            )

        ratings = [self._upsert(client_id, target, score, comment) for target in targets]
        logger.info(f"Session {client_id} rated {score} for waiter(s) {', '.join(targets)}")
        return ratings

    def _upsert(self, client_id: int, waiter_id: str, score: int, comment: Optional[str]) -> WaiterRating:
        try:
            with transaction(self._db):
                rating = self._find_rating(client_id, waiter_id)
                if rating is None:
                    rating = WaiterRating(cliente_id=client_id, waiter_id=waiter_id, score=score, comment=comment)
                else:
                    rating.score = score
                    rating.comment = comment
                    rating.updated_at = datetime.utcnow()
                self._db.add(rating)
        except IntegrityError:
            # A concurrent insert won; overwrite it instead
            with transaction(self._db):
                rating = self._find_rating(client_id, waiter_id)
                rating.score = score
                rating.comment = comment
                rating.updated_at = datetime.utcnow()
                self._db.add(rating)

        self._db.refresh(rating)
        return rating

    def _find_rating(self, client_id: int, waiter_id: str) -> Optional[WaiterRating]:
        return self._db.exec(
            select(WaiterRating).where(
                WaiterRating.cliente_id == client_id,
                WaiterRating.waiter_id == waiter_id,
            )
        ).first()

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------

    def _filters(self, waiter_id: Optional[str], date_from, date_to) -> list:
        conditions = []
        if waiter_id:
            conditions.append(WaiterRating.waiter_id == waiter_id)
        if date_from:
            conditions.append(WaiterRating.created_at >= _as_datetime(date_from))
        if date_to:
            conditions.append(WaiterRating.created_at <= end_of_day(_as_datetime(date_to)))
        return conditions

    def list_ratings(self, waiter_id: Optional[str] = None, date_from=None, date_to=None) -> List[WaiterRating]:
        return list(self._db.exec(
            select(WaiterRating)
            .where(*self._filters(waiter_id, date_from, date_to))
            .order_by(WaiterRating.created_at.desc(), WaiterRating.id.desc())
        ).all())

    def summary(self, waiter_id: Optional[str] = None, date_from=None, date_to=None) -> Dict[str, Any]:
        rows = self._db.exec(
            select(WaiterRating.score, func.count(WaiterRating.id))
            .where(*self._filters(waiter_id, date_from, date_to))
            .group_by(WaiterRating.score)
        ).all()

        distribution = {score: 0 for score in SCORES}
        for score, count in rows:
            distribution[score] = count
        count = sum(distribution.values())
        average = sum(score * n for score, n in distribution.items()) / count if count else 0
        return {"count": count, "average": round(average, 2), "distribution": distribution}

    def list_grouped_by_waiter(
        self,
        page: int = 1,
        page_size: int = 10,
        recent_count: int = 10,
    ) -> Tuple[List[Dict[str, Any]], dict]:
        """Per-waiter aggregates, best-rated first, each with its latest ratings"""
        total = self._db.exec(select(func.count(func.distinct(WaiterRating.waiter_id)))).one()

        average = func.avg(WaiterRating.score)
        groups = self._db.exec(
            select(WaiterRating.waiter_id, func.count(WaiterRating.id), average)
            .group_by(WaiterRating.waiter_id)
            .order_by(average.desc(), WaiterRating.waiter_id.asc())
            .offset(page_offset(page, page_size))
            .limit(page_size)
        ).all()

        result = []
        for waiter_id, count, avg in groups:
            recent = self._db.exec(
                select(WaiterRating)
                .where(WaiterRating.waiter_id == waiter_id)
                .order_by(WaiterRating.created_at.desc(), WaiterRating.id.desc())
                .limit(recent_count)
            ).all()
            result.append({
                "waiter_id": waiter_id,
                "count": count,
                "average": round(float(avg or 0), 2),
                "recent": list(recent),
            })
        return result, page_metadata(total, page, page_size)

    def list_ratings_paged(
        self,
        page: int = 1,
        page_size: int = 10,
        waiter_id: Optional[str] = None,
        date_from=None,
        date_to=None,
        order_by: str = "created_at",
        direction: str = "desc",
    ) -> Tuple[List[WaiterRating], dict]:
        conditions = self._filters(waiter_id, date_from, date_to)
        total = self._db.exec(select(func.count(WaiterRating.id)).where(*conditions)).one()

        column = ORDERABLE_COLUMNS.get(order_by, WaiterRating.created_at)
        ordering = column.asc() if direction == "asc" else column.desc()
        tiebreak = WaiterRating.id.asc() if direction == "asc" else WaiterRating.id.desc()

        ratings = self._db.exec(
            select(WaiterRating)
            .where(*conditions)
            .order_by(ordering, tiebreak)
            .offset(page_offset(page, page_size))
            .limit(page_size)
        ).all()
        return list(ratings), page_metadata(total, page, page_size)

    def timeseries(
        self,
        granularity: str = "daily",
        waiter_id: Optional[str] = None,
        date_from=None,
        date_to=None,
    ) -> List[Dict[str, Any]]:
        """Count and average per day, or per ISO week starting Monday"""
        if granularity not in ("daily", "weekly"):
            raise ValueError(f"Unsupported granularity: {granularity}")

        rows = self._db.exec(
            select(WaiterRating.created_at, WaiterRating.score)
            .where(*self._filters(waiter_id, date_from, date_to))
            .order_by(WaiterRating.created_at.asc())
        ).all()

        buckets: "OrderedDict[date, List[int]]" = OrderedDict()
        for created_at, score in rows:
            buckets.setdefault(period_start(created_at, granularity), []).append(score)

        return [
            {
                "period_start": start,
                "count": len(scores),
                "average": round(sum(scores) / len(scores), 2),
            }
            for start, scores in buckets.items()
        ]
