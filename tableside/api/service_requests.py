"""
Service request API endpoints
"""

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session
from typing import Optional

from tableside.api.schemas import ServiceRequestCreate, ServiceRequestList, ServiceRequestRead, ServiceRequestUpdate
from tableside.core.database import get_session
from tableside.core.dependencies import guest_or_staff, require_staff, target_client_id
from tableside.core.identity import Identity, StaffIdentity
from tableside.core.permissions import Permission
from tableside.models import ServiceRequestStatus, ServiceRequestType
from tableside.services.kitchen import KitchenNotifier, get_kitchen_notifier
from tableside.services.service_requests import ServiceRequestService

router = APIRouter()


@router.post("/", response_model=ServiceRequestRead, status_code=status.HTTP_201_CREATED)
def create_service_request(
    payload: ServiceRequestCreate,
    identity: Identity = Depends(guest_or_staff(Permission.SERVICE_REQUESTS_CREATE)),
    session: Session = Depends(get_session),
):
    """Call a waiter or file a complaint"""
    client_id = target_client_id(identity, payload.client_id)
    request = ServiceRequestService(session).create_request(
        client_id, payload.type, payload.message, actor=identity
    )
    return ServiceRequestRead.model_validate(request)


@router.get("/", response_model=ServiceRequestList)
def list_service_requests(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status_filter: Optional[ServiceRequestStatus] = Query(None, alias="status"),
    type_filter: Optional[ServiceRequestType] = Query(None, alias="type"),
    table_id: Optional[int] = None,
    client_id: Optional[int] = None,
    staff: StaffIdentity = Depends(require_staff(Permission.SERVICE_REQUESTS_VIEW)),
    session: Session = Depends(get_session),
):
    requests, meta = ServiceRequestService(session).list_requests(
        page, limit, status_filter, type_filter, table_id, client_id
    )
    return ServiceRequestList(
        data=[ServiceRequestRead.model_validate(r) for r in requests],
        meta=meta,
    )


@router.get("/{request_id}", response_model=ServiceRequestRead)
def get_service_request(
    request_id: int,
    identity: Identity = Depends(guest_or_staff(Permission.SERVICE_REQUESTS_VIEW)),
    session: Session = Depends(get_session),
):
    request = ServiceRequestService(session).get_request(request_id, actor=identity)
    return ServiceRequestRead.model_validate(request)


@router.patch("/{request_id}", response_model=ServiceRequestRead)
def attend_service_request(
    request_id: int,
    payload: ServiceRequestUpdate,
    identity: Identity = Depends(guest_or_staff(Permission.SERVICE_REQUESTS_ATTEND)),
    session: Session = Depends(get_session),
    kitchen: KitchenNotifier = Depends(get_kitchen_notifier),
):
    """Mark a request attended, or cancel it"""
    request = ServiceRequestService(session, kitchen=kitchen).attend_request(
        request_id,
        payload.status,
        waiter_id=payload.waiter_id,
        actor=identity,
        worker_code=payload.worker_code,
    )
    return ServiceRequestRead.model_validate(request)
