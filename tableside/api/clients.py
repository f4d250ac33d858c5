"""
Temporary client (guest session) API endpoints
"""

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
import structlog

from tableside.api.schemas import (
    ActiveClientRead,
    ClientCreate,
    ClientList,
    ClientRead,
    ClientStatusChanged,
    ClientUpdate,
    ForceCloseResponse,
    SessionCreated,
    client_read,
)
from tableside.core.database import get_session
from tableside.core.dependencies import guest_or_staff, require_staff
from tableside.core.identity import Identity, StaffIdentity
from tableside.core.permissions import Permission
from tableside.models import ClientStatus, Table
from tableside.services.clients import ClientService
from tableside.services.kitchen import KitchenNotifier, get_kitchen_notifier
from tableside.services.security import TokenIssuer, get_token_issuer

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/", response_model=SessionCreated, status_code=status.HTTP_201_CREATED)
def create_session(
    payload: ClientCreate,
    session: Session = Depends(get_session),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
):
    """Open a guest session after scanning the table QR"""
    service = ClientService(session, token_issuer=token_issuer)
    return service.create_session(payload.table_id, payload.customer_name, payload.customer_dni)


@router.get("/", response_model=ClientList)
def list_clients(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status_filter: Optional[ClientStatus] = Query(None, alias="status"),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    min_amount: Optional[Decimal] = Query(None, ge=0),
    staff: StaffIdentity = Depends(require_staff(Permission.CLIENTS_VIEW)),
    session: Session = Depends(get_session),
):
    clients, meta = ClientService(session).list_clients(page, limit, status_filter, date_from, date_to, min_amount)
    table_numbers = {}
    for client in clients:
        if client.table_id not in table_numbers:
            table = session.get(Table, client.table_id)
            table_numbers[client.table_id] = table.table_number if table else None
    return ClientList(
        data=[client_read(client, table_numbers.get(client.table_id)) for client in clients],
        meta=meta,
    )


@router.get("/active", response_model=List[ActiveClientRead])
def list_active_clients(
    staff: StaffIdentity = Depends(require_staff(Permission.CLIENTS_VIEW)),
    session: Session = Depends(get_session),
):
    """Open sessions with live consumption, oldest first"""
    return ClientService(session).get_active_clients_with_consumption()


@router.get("/{client_id}", response_model=ClientRead)
def get_client(
    client_id: int,
    identity: Identity = Depends(guest_or_staff(Permission.CLIENTS_VIEW)),
    session: Session = Depends(get_session),
):
    client, table = ClientService(session).get_client(client_id, actor=identity)
    return client_read(client, table.table_number if table else None)


@router.patch("/{client_id}", response_model=ClientStatusChanged)
def update_client(
    client_id: int,
    payload: ClientUpdate,
    identity: Identity = Depends(guest_or_staff(Permission.CLIENTS_EDIT)),
    session: Session = Depends(get_session),
):
    """Request the bill or close the session"""
    service = ClientService(session)
    client, released = service.update_client_status(
        client_id,
        status=payload.status,
        total_amount=payload.total_amount,
        actor=identity,
    )
    table = session.get(Table, client.table_id)
    return ClientStatusChanged(
        client=client_read(client, table.table_number if table else None),
        table_released=released,
    )


@router.post("/{client_id}/force-close", response_model=ForceCloseResponse)
def force_close_client(
    client_id: int,
    identity: Identity = Depends(guest_or_staff(Permission.CLIENTS_FORCE_CLOSE)),
    session: Session = Depends(get_session),
    kitchen: KitchenNotifier = Depends(get_kitchen_notifier),
):
    """Close a session and cancel everything it still has outstanding"""
    result = ClientService(session, kitchen=kitchen).force_close_client(client_id, actor=identity)
    logger.info(f"Force close of client {client_id} cancelled {result.cancelled_orders} order(s), {result.cancelled_requests} request(s)")
    return ForceCloseResponse(
        client_id=result.client_id,
        cancelled_requests=result.cancelled_requests,
        cancelled_orders=result.cancelled_orders,
        table_released=result.table_released,
    )
