"""
Session manager domain service

Temporary client sessions drive table occupancy: opening one may flip its
table to OCCUPIED, and closing the last one releases the table. Every
decision that depends on how many sessions a table holds is taken with the
table row locked, inside the same transaction that writes the outcome, so
concurrent logins cannot overrun capacity and concurrent closes cannot both
believe another session is still open. Locks are always taken table first,
then session.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlmodel import Session, select
import structlog

from tableside.core.config import get_settings
from tableside.core.database import transaction
from tableside.core.errors import ConflictError, ErrorCode, ForbiddenError, InvalidRequestError, NotFoundError
from tableside.core.identity import Identity, ensure_client_access, is_guest, staff_id_of
from tableside.models import (
    ClientStatus,
    Comanda,
    ComandaStatus,
    OCCUPYING_STATUSES,
    OrderItem,
    ServiceRequest,
    ServiceRequestStatus,
    Table,
    TableStatus,
    TemporaryClient,
)
from tableside.services.kitchen import KitchenNotifier
from tableside.services.pagination import clamp_limit, page_metadata, page_offset
from tableside.services.security import TokenIssuer
from tableside.services.tables import count_occupying, lock_client_and_table, lock_table

logger = structlog.get_logger(__name__)
settings = get_settings()

CANCELLABLE_ON_FORCE_CLOSE = (ComandaStatus.PENDING, ComandaStatus.COOKING)


@dataclass
class ForceCloseResult:
    client_id: int
    cancelled_requests: int
    cancelled_orders: int
    table_released: bool


def live_consumption(db: Session, client_ids: List[int]) -> Dict[int, Decimal]:
    """Sum of unit_price * quantity over non-cancelled comandas, per client"""
    if not client_ids:
        return {}
    rows = db.exec(
        select(Comanda.cliente_id, func.sum(OrderItem.unit_price * OrderItem.quantity))
        .join(OrderItem, OrderItem.comanda_id == Comanda.id)
        .where(
            Comanda.cliente_id.in_(client_ids),
            Comanda.status != ComandaStatus.CANCELLED,
        )
        .group_by(Comanda.cliente_id)
    ).all()
    return {
        cliente_id: Decimal(str(total or 0)).quantize(Decimal("0.01"))
        for cliente_id, total in rows
    }


def release_table_if_empty(db: Session, table: Table) -> bool:
    """Flip a locked table to AVAILABLE when no session occupies it any more.

    Must run inside the transaction that closed the session, with the table
    row already locked, after the closing session has been flushed.
    """
    db.flush()
    remaining = count_occupying(db, table.id)
    if remaining == 0 and table.current_status == TableStatus.OCCUPIED:
        table.current_status = TableStatus.AVAILABLE
        table.updated_at = datetime.utcnow()
        db.add(table)
        logger.info(f"Table {table.id} released: last session closed")
        return True
    return False


class ClientService:
    """Domain service for temporary client sessions"""

    def __init__(self, db: Session, token_issuer: Optional[TokenIssuer] = None,
                 kitchen: Optional[KitchenNotifier] = None):
        self._db = db
        self._token_issuer = token_issuer
        self._kitchen = kitchen

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def _check_table_accepts_guests(self, table: Optional[Table]) -> Table:
        if not table or not table.is_active:
            raise NotFoundError(ErrorCode.TABLE_NOT_FOUND, "Table not found")
        if table.current_status == TableStatus.OUT_OF_SERVICE:
            raise ForbiddenError("The table is out of service", code=ErrorCode.TABLE_OUT_OF_SERVICE)
        occupying = count_occupying(self._db, table.id)
        if occupying >= table.capacity:
            raise ConflictError(
                ErrorCode.TABLE_CAPACITY_EXCEEDED,
                f"Table {table.table_number} is at full capacity",
                meta={"capacity": table.capacity, "active_sessions": occupying},
            )
        return table

    def create_session(self, table_id: int, customer_name: str, customer_dni: str) -> Dict[str, Any]:
        """Open a guest session at a table (QR login)"""
        if self._token_issuer is None:
            raise RuntimeError("ClientService.create_session needs a token issuer")

        # Fail fast before calling the security module
        self._check_table_accepts_guests(self._db.get(Table, table_id))
        self._db.rollback()

        session_token = self._token_issuer.issue({
            "table_id": table_id,
            "customer_name": customer_name,
            "customer_dni": customer_dni,
        })

        with transaction(self._db):
            # Authoritative check under the table lock
            table = self._check_table_accepts_guests(lock_table(self._db, table_id))

            client = TemporaryClient(
                table_id=table.id,
                session_token=session_token,
                customer_name=customer_name,
                customer_dni=customer_dni,
                status=ClientStatus.ACTIVE,
            )
            self._db.add(client)

            if table.current_status == TableStatus.AVAILABLE:
                table.current_status = TableStatus.OCCUPIED
                table.updated_at = datetime.utcnow()
                self._db.add(table)

        self._db.refresh(client)
        logger.info(f"Created session {client.id} for table {table_id}")
        return {
            "session_token": client.session_token,
            "client": {"id": client.id, "name": client.customer_name, "status": client.status},
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_client(self, client_id: int, actor: Optional[Identity] = None) -> Tuple[TemporaryClient, Table]:
        ensure_client_access(actor, client_id)
        client = self._db.get(TemporaryClient, client_id)
        if not client:
            raise NotFoundError(ErrorCode.CLIENT_NOT_FOUND, "Client not found")
        return client, self._db.get(Table, client.table_id)

    def list_clients(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[ClientStatus] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        min_amount: Optional[Decimal] = None,
    ) -> Tuple[List[TemporaryClient], dict]:
        limit = clamp_limit(limit)
        conditions = []
        if status:
            conditions.append(TemporaryClient.status == status)
        if date_from:
            conditions.append(TemporaryClient.created_at >= date_from)
        if date_to:
            conditions.append(TemporaryClient.created_at <= date_to)
        if min_amount is not None:
            conditions.append(TemporaryClient.total_amount >= min_amount)

        total = self._db.exec(select(func.count(TemporaryClient.id)).where(*conditions)).one()

        query = select(TemporaryClient).where(*conditions)
        if status == ClientStatus.ACTIVE:
            # Longest-waiting guests first
            query = query.order_by(TemporaryClient.created_at.asc(), TemporaryClient.id.asc())
        elif status == ClientStatus.CLOSED:
            query = query.order_by(TemporaryClient.closed_at.desc(), TemporaryClient.id.desc())
        else:
            query = query.order_by(TemporaryClient.created_at.desc(), TemporaryClient.id.desc())

        clients = self._db.exec(query.offset(page_offset(page, limit)).limit(limit)).all()
        page_sales = sum((Decimal(c.total_amount or 0) for c in clients), Decimal("0.00"))
        return list(clients), page_metadata(total, page, limit, page_sales_total=page_sales)

    def get_active_clients_with_consumption(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Open sessions with live consumption and the ghost-session heuristic"""
        now = now or datetime.utcnow()
        ghost_after = timedelta(minutes=settings.GHOST_SESSION_MINUTES)

        rows = self._db.exec(
            select(TemporaryClient, Table)
            .join(Table, Table.id == TemporaryClient.table_id)
            .where(TemporaryClient.status.in_(OCCUPYING_STATUSES))
            .order_by(TemporaryClient.created_at.asc(), TemporaryClient.id.asc())
        ).all()

        consumption = live_consumption(self._db, [client.id for client, _ in rows])

        result = []
        for client, table in rows:
            spent = consumption.get(client.id, Decimal("0.00"))
            elapsed = now - client.created_at
            result.append({
                "id": client.id,
                "name": client.customer_name,
                "status": client.status,
                "table_id": table.id,
                "table_number": table.table_number,
                "created_at": client.created_at,
                "minutes_open": int(elapsed.total_seconds() // 60),
                "consumption": spent,
                "is_ghost": elapsed > ghost_after and spent == 0,
            })
        return result

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _lock_client_and_table(self, client_id: int) -> Tuple[TemporaryClient, Table]:
        client, table = lock_client_and_table(self._db, client_id)
        if not client:
            raise NotFoundError(ErrorCode.CLIENT_NOT_FOUND, "Client not found")
        return client, table

    def update_client_status(
        self,
        client_id: int,
        status: Optional[ClientStatus] = None,
        total_amount: Optional[Decimal] = None,
        actor: Optional[Identity] = None,
    ) -> Tuple[TemporaryClient, bool]:
        """Request the bill or close a session; returns (client, table_released)"""
        ensure_client_access(actor, client_id)
        if is_guest(actor) and status != ClientStatus.BILL_REQUESTED:
            raise ForbiddenError("Guests can only request the bill")

        table_released = False
        bill_requested = False
        with transaction(self._db):
            client, table = self._lock_client_and_table(client_id)

            if client.status == ClientStatus.CLOSED:
                raise ConflictError(ErrorCode.SESSION_ALREADY_CLOSED, "The session is already closed")

            if status is not None and status != client.status and not client.can_transition_to(status):
                raise ConflictError(
                    ErrorCode.INVALID_STATUS_TRANSITION,
                    f"Cannot move a session from {client.status.value} to {status.value}",
                )
            if status is not None and status == client.status:
                raise ConflictError(
                    ErrorCode.INVALID_STATUS_TRANSITION,
                    f"The session is already {client.status.value}",
                )

            now = datetime.utcnow()
            if total_amount is not None:
                client.total_amount = total_amount

            if status == ClientStatus.BILL_REQUESTED:
                resolved_total = Decimal(client.total_amount or 0)
                if resolved_total <= 0:
                    raise InvalidRequestError(
                        ErrorCode.ZERO_AMOUNT_ERROR,
                        "Cannot request the bill with a zero total",
                    )
                client.status = ClientStatus.BILL_REQUESTED
                bill_requested = True

            elif status == ClientStatus.CLOSED:
                if total_amount is None and Decimal(client.total_amount or 0) == 0:
                    client.total_amount = live_consumption(self._db, [client.id]).get(client.id, Decimal("0.00"))
                client.status = ClientStatus.CLOSED
                client.closed_at = now
                client.closed_by_waiter_id = staff_id_of(actor) or client.closed_by_waiter_id
                self._db.add(client)
                table_released = release_table_if_empty(self._db, table)

            client.updated_at = now
            self._db.add(client)

        self._db.refresh(client)
        if bill_requested:
            self._alert_bill_requested(client, table)
        logger.info(f"Updated session {client.id}: status={client.status.value} table_released={table_released}")
        return client, table_released

    def force_close_client(self, client_id: int, actor: Optional[Identity] = None) -> ForceCloseResult:
        """Close a session and cancel its outstanding requests and comandas, all or nothing"""
        ensure_client_access(actor, client_id)

        with transaction(self._db):
            client, table = self._lock_client_and_table(client_id)
            if client.status == ClientStatus.CLOSED:
                raise NotFoundError(ErrorCode.CLIENT_NOT_FOUND, "No open session with this id")

            now = datetime.utcnow()

            pending_requests = self._db.exec(
                select(ServiceRequest).where(
                    ServiceRequest.cliente_id == client.id,
                    ServiceRequest.status == ServiceRequestStatus.PENDING,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            ).all()
            for request in pending_requests:
                request.status = ServiceRequestStatus.CANCELLED
                self._db.add(request)

            open_comandas = self._db.exec(
                select(Comanda).where(
                    Comanda.cliente_id == client.id,
                    Comanda.status.in_(CANCELLABLE_ON_FORCE_CLOSE),
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            ).all()
            cancelled_ids = []
            for comanda in open_comandas:
                comanda.status = ComandaStatus.CANCELLED
                comanda.cancelled_at = now
                comanda.updated_at = now
                self._db.add(comanda)
                cancelled_ids.append(comanda.id)

            client.status = ClientStatus.CLOSED
            client.closed_at = now
            client.updated_at = now
            client.closed_by_waiter_id = staff_id_of(actor) or client.closed_by_waiter_id
            self._db.add(client)

            table_released = release_table_if_empty(self._db, table)

        for comanda_id in cancelled_ids:
            self._notify_kitchen_cancel(comanda_id)

        logger.info(
            "Session force-closed",
            client_id=client_id,
            cancelled_requests=len(pending_requests),
            cancelled_orders=len(cancelled_ids),
            table_released=table_released,
        )
        return ForceCloseResult(
            client_id=client_id,
            cancelled_requests=len(pending_requests),
            cancelled_orders=len(cancelled_ids),
            table_released=table_released,
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _alert_bill_requested(self, client: TemporaryClient, table: Table) -> None:
        logger.info(
            "Bill requested",
            client_id=client.id,
            table_id=table.id,
            table_number=table.table_number,
            total_amount=str(client.total_amount),
        )

    def _notify_kitchen_cancel(self, comanda_id: int) -> None:
        if self._kitchen is None:
            return
        result = self._kitchen.cancel_order(comanda_id)
        if not result.ok:
            logger.warning(
                "Kitchen cancellation not delivered",
                comanda_id=comanda_id,
                status_code=result.status_code,
                detail=result.detail,
            )
