"""
Table registry domain service

Owns table creation, occupancy-aware status changes, soft deletion and
restore, plus the QR gate guests pass through before opening a session.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
import uuid

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
import structlog

from tableside.core.database import transaction
from tableside.core.errors import ConflictError, ErrorCode, ForbiddenError, InvalidRequestError, NotFoundError
from tableside.models import ClientStatus, OCCUPYING_STATUSES, Table, TableStatus, TemporaryClient
from tableside.services.pagination import clamp_limit, page_metadata, page_offset

logger = structlog.get_logger(__name__)

NEW_SESSION = "NEW_SESSION"
JOIN_SESSION = "JOIN_SESSION"


def lock_table(db: Session, table_id: int) -> Optional[Table]:
    """Load a table with a row lock held until the surrounding transaction ends"""
    return db.exec(
        select(Table)
        .where(Table.id == table_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()


def lock_client_and_table(db: Session, client_id: int) -> Tuple[Optional[TemporaryClient], Optional[Table]]:
    """Lock a session and its table, table first; (None, None) for an unknown session"""
    client = db.get(TemporaryClient, client_id)
    if not client:
        return None, None
    table = lock_table(db, client.table_id)
    client = db.exec(
        select(TemporaryClient)
        .where(TemporaryClient.id == client_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).one()
    return client, table


def count_occupying(db: Session, table_id: int) -> int:
    """Sessions currently holding the table (ACTIVE or BILL_REQUESTED)"""
    return db.exec(
        select(func.count(TemporaryClient.id)).where(
            TemporaryClient.table_id == table_id,
            TemporaryClient.status.in_(OCCUPYING_STATUSES),
        )
    ).one()


def count_active_by_table(db: Session, table_ids: Iterable[int]) -> Dict[int, int]:
    """ACTIVE session count per table, computed at query time"""
    ids = list(table_ids)
    if not ids:
        return {}
    rows = db.exec(
        select(TemporaryClient.table_id, func.count(TemporaryClient.id))
        .where(
            TemporaryClient.table_id.in_(ids),
            TemporaryClient.status == ClientStatus.ACTIVE,
        )
        .group_by(TemporaryClient.table_id)
    ).all()
    return {table_id: count for table_id, count in rows}


class TableService:
    """Domain service for Table operations"""

    def __init__(self, db: Session):
        self._db = db

    def create_table(self, table_number: int, capacity: int) -> Table:
        existing = self._db.exec(select(Table).where(Table.table_number == table_number)).first()
        if existing:
            raise ConflictError(
                ErrorCode.DUPLICATE_TABLE_NUMBER,
                f"Table number {table_number} is already registered",
            )

        table = Table(
            table_number=table_number,
            capacity=capacity,
            qr_uuid=str(uuid.uuid4()),
            current_status=TableStatus.AVAILABLE,
            is_active=True,
        )
        try:
            with transaction(self._db):
                self._db.add(table)
        except IntegrityError as e:
            # Lost a race against a concurrent create with the same number
            raise ConflictError(
                ErrorCode.DUPLICATE_TABLE_NUMBER,
                f"Table number {table_number} is already registered",
            ) from e

        self._db.refresh(table)
        logger.info(f"Table created: {table.id} (number {table.table_number}, capacity {capacity})")
        return table

    def get_table(self, table_id: int) -> Tuple[Table, int]:
        """Return the table and its live ACTIVE session count"""
        table = self._db.get(Table, table_id)
        if not table:
            raise NotFoundError(ErrorCode.TABLE_NOT_FOUND, "Table not found")
        active = count_active_by_table(self._db, [table.id]).get(table.id, 0)
        return table, active

    def list_tables(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[TableStatus] = None,
        archived: bool = False,
    ) -> Tuple[List[Tuple[Table, int]], dict]:
        limit = clamp_limit(limit)
        conditions = [Table.is_active == (not archived)]
        if status:
            conditions.append(Table.current_status == status)

        total = self._db.exec(select(func.count(Table.id)).where(*conditions)).one()

        query = select(Table).where(*conditions)
        if archived:
            query = query.order_by(Table.updated_at.desc(), Table.id.desc())
        else:
            query = query.order_by(Table.table_number.asc())
        tables = self._db.exec(query.offset(page_offset(page, limit)).limit(limit)).all()

        counts = count_active_by_table(self._db, [t.id for t in tables])
        rows = [(table, counts.get(table.id, 0)) for table in tables]
        return rows, page_metadata(total, page, limit)

    def verify_qr(self, qr_uuid: str) -> dict:
        """Capacity gate shown to guests before they log in"""
        table = self._db.exec(
            select(Table).where(Table.qr_uuid == qr_uuid, Table.is_active == True)  # noqa: E712
        ).first()
        if not table:
            raise NotFoundError(ErrorCode.TABLE_NOT_FOUND, "No table matches this QR code")

        if table.current_status == TableStatus.OUT_OF_SERVICE:
            raise ForbiddenError("The table is out of service", code=ErrorCode.TABLE_OUT_OF_SERVICE)

        occupying = 0
        action = NEW_SESSION
        if table.current_status == TableStatus.OCCUPIED:
            occupying = count_occupying(self._db, table.id)
            if occupying >= table.capacity:
                raise ConflictError(
                    ErrorCode.TABLE_FULL,
                    f"Table {table.table_number} is at full capacity",
                    meta={"capacity": table.capacity, "active_sessions": occupying},
                )
            action = JOIN_SESSION

        return {
            "table_id": table.id,
            "table_number": table.table_number,
            "capacity": table.capacity,
            "current_status": table.current_status,
            "active_sessions": occupying,
            "action": action,
        }

    def update_table_status(
        self,
        table_id: int,
        new_status: Optional[TableStatus] = None,
        new_capacity: Optional[int] = None,
    ) -> Table:
        with transaction(self._db):
            table = lock_table(self._db, table_id)
            if not table or not table.is_active:
                raise NotFoundError(ErrorCode.TABLE_NOT_FOUND, "Table not found")

            occupying = count_occupying(self._db, table.id)

            if new_status is not None and new_status != table.current_status:
                if new_status == TableStatus.OCCUPIED:
                    raise InvalidRequestError(
                        ErrorCode.INVALID_STATUS_TRANSITION,
                        "Tables become occupied only when a guest session opens",
                    )
                if occupying > 0:
                    if new_status == TableStatus.AVAILABLE:
                        raise ConflictError(
                            ErrorCode.ACTIVE_SESSIONS_PENDING,
                            f"Table {table.table_number} still has {occupying} open session(s)",
                        )
                    raise ConflictError(
                        ErrorCode.TABLE_OCCUPIED_MAINTENANCE,
                        f"Table {table.table_number} cannot go out of service while occupied",
                    )
                table.current_status = new_status

            if new_capacity is not None and new_capacity != table.capacity:
                if new_capacity < occupying:
                    raise ConflictError(
                        ErrorCode.CAPACITY_BELOW_OCCUPANCY,
                        f"Capacity {new_capacity} is below the {occupying} session(s) seated",
                        meta={"required": occupying, "provided": new_capacity},
                    )
                table.capacity = new_capacity

            table.updated_at = datetime.utcnow()
            self._db.add(table)

        self._db.refresh(table)
        logger.info(f"Table updated: {table.id} status={table.current_status.value} capacity={table.capacity}")
        return table

    def delete_table(self, table_id: int) -> Tuple[Table, int]:
        """Archive a table; returns it along with its original number"""
        with transaction(self._db):
            table = lock_table(self._db, table_id)
            if not table:
                raise NotFoundError(ErrorCode.TABLE_NOT_FOUND, "Table not found")
            if not table.is_active:
                raise ConflictError(ErrorCode.TABLE_ALREADY_ARCHIVED, "Table is already archived")

            occupying = count_occupying(self._db, table.id)
            if occupying > 0:
                raise ConflictError(
                    ErrorCode.ACTIVE_SESSIONS_EXIST,
                    f"Table {table.table_number} has {occupying} open session(s)",
                )
            if table.current_status == TableStatus.OCCUPIED:
                raise ConflictError(ErrorCode.TABLE_OCCUPIED, f"Table {table.table_number} is occupied")

            original_number = table.table_number
            table.table_number = table.archived_number()
            table.is_active = False
            table.current_status = TableStatus.OUT_OF_SERVICE
            table.updated_at = datetime.utcnow()
            self._db.add(table)

        self._db.refresh(table)
        logger.info(f"Table archived: {table.id} (was number {original_number})")
        return table, original_number

    def restore_table(self, table_id: int, new_table_number: int) -> Table:
        with transaction(self._db):
            table = lock_table(self._db, table_id)
            if not table:
                raise NotFoundError(ErrorCode.TABLE_NOT_FOUND, "Table not found")
            if table.is_active:
                raise ConflictError(ErrorCode.TABLE_ALREADY_ACTIVE, "Table is already active")

            clash = self._db.exec(select(Table).where(Table.table_number == new_table_number)).first()
            if clash:
                raise ConflictError(
                    ErrorCode.DUPLICATE_TABLE_NUMBER,
                    f"Table number {new_table_number} is already registered",
                )

            table.table_number = new_table_number
            table.is_active = True
            table.current_status = TableStatus.AVAILABLE
            table.updated_at = datetime.utcnow()
            self._db.add(table)

        self._db.refresh(table)
        logger.info(f"Table restored: {table.id} as number {new_table_number}")
        return table
