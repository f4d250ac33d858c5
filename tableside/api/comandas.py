"""
Comanda (order) API endpoints
"""

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session
from datetime import datetime
from typing import Optional
import structlog

from tableside.api.schemas import ComandaCreate, ComandaList, ComandaRead, ComandaUpdate, comanda_read
from tableside.core.database import get_session
from tableside.core.dependencies import guest_or_staff, require_staff, target_client_id
from tableside.core.identity import Identity, StaffIdentity
from tableside.core.permissions import Permission
from tableside.models import ComandaStatus
from tableside.services.comandas import ComandaService
from tableside.services.kitchen import KitchenNotifier, get_kitchen_notifier

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/", response_model=ComandaRead, status_code=status.HTTP_201_CREATED)
def create_comanda(
    payload: ComandaCreate,
    identity: Identity = Depends(guest_or_staff(Permission.COMANDAS_CREATE)),
    session: Session = Depends(get_session),
    kitchen: KitchenNotifier = Depends(get_kitchen_notifier),
):
    """Place an order and send it to the kitchen"""
    client_id = target_client_id(identity, payload.client_id)
    comanda = ComandaService(session, kitchen=kitchen).create_order(
        client_id,
        [item.model_dump() for item in payload.items],
        notes=payload.notes,
        actor=identity,
    )
    logger.info(f"Comanda {comanda.id} placed for client {client_id} with {len(payload.items)} item(s)")
    return comanda_read(comanda)


@router.get("/", response_model=ComandaList)
def list_comandas(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status_filter: Optional[ComandaStatus] = Query(None, alias="status"),
    table_id: Optional[int] = None,
    client_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    staff: StaffIdentity = Depends(require_staff(Permission.COMANDAS_VIEW)),
    session: Session = Depends(get_session),
):
    comandas, meta = ComandaService(session).find_all(
        page, limit, status_filter, table_id, date_from, date_to, client_id
    )
    return ComandaList(data=[comanda_read(c) for c in comandas], meta=meta)


@router.get("/{comanda_id}", response_model=ComandaRead)
def get_comanda(
    comanda_id: int,
    identity: Identity = Depends(guest_or_staff(Permission.COMANDAS_VIEW)),
    session: Session = Depends(get_session),
):
    return comanda_read(ComandaService(session).find_by_id(comanda_id, actor=identity))


@router.patch("/{comanda_id}", response_model=ComandaRead)
def update_comanda(
    comanda_id: int,
    payload: ComandaUpdate,
    identity: Identity = Depends(guest_or_staff(Permission.COMANDAS_EDIT)),
    session: Session = Depends(get_session),
    kitchen: KitchenNotifier = Depends(get_kitchen_notifier),
):
    comanda = ComandaService(session, kitchen=kitchen).update_order_status(
        comanda_id, payload.status, actor=identity
    )
    return comanda_read(comanda)
