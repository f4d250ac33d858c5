"""
Service request domain service (call waiter, complaints)
"""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlmodel import Session, select
import structlog

from tableside.core.database import transaction
from tableside.core.errors import ConflictError, ErrorCode, ForbiddenError, InvalidRequestError, NotFoundError
from tableside.core.identity import GuestIdentity, Identity, ensure_client_access, staff_id_of
from tableside.models import (
    ClientStatus,
    ServiceRequest,
    ServiceRequestStatus,
    ServiceRequestType,
    TemporaryClient,
)
from tableside.services.kitchen import KitchenNotifier
from tableside.services.pagination import clamp_limit, page_metadata, page_offset
from tableside.services.tables import lock_client_and_table

logger = structlog.get_logger(__name__)

RESOLVED_STATUSES = (ServiceRequestStatus.ATTENDED, ServiceRequestStatus.CANCELLED)


class ServiceRequestService:
    """Domain service for guest service requests"""

    def __init__(self, db: Session, kitchen: Optional[KitchenNotifier] = None):
        self._db = db
        self._kitchen = kitchen

    def create_request(
        self,
        client_id: int,
        request_type: ServiceRequestType,
        message: str,
        actor: Optional[Identity] = None,
    ) -> ServiceRequest:
        ensure_client_access(actor, client_id)

        with transaction(self._db):
            client, _ = lock_client_and_table(self._db, client_id)
            if not client:
                raise NotFoundError(ErrorCode.CLIENT_NOT_FOUND, "Client not found")
            if client.status == ClientStatus.CLOSED:
                raise ConflictError(
                    ErrorCode.SESSION_NOT_ACTIVE,
                    "Closed sessions cannot raise service requests",
                )

            request = ServiceRequest(
                cliente_id=client.id,
                type=request_type,
                message=message,
                status=ServiceRequestStatus.PENDING,
            )
            self._db.add(request)

        self._db.refresh(request)
        logger.info(f"Service request {request.id} ({request_type.value}) raised by session {client_id}")
        return request

    def attend_request(
        self,
        request_id: int,
        status: ServiceRequestStatus = ServiceRequestStatus.ATTENDED,
        waiter_id: Optional[str] = None,
        actor: Optional[Identity] = None,
        worker_code: Optional[str] = None,
    ) -> ServiceRequest:
        """Resolve a PENDING request as ATTENDED or CANCELLED"""
        if status not in RESOLVED_STATUSES:
            raise ConflictError(
                ErrorCode.INVALID_REQUEST_STATE,
                f"A request can only be resolved as ATTENDED or CANCELLED, not {status.value}",
            )

        if waiter_id is None and worker_code and self._kitchen is not None:
            staff = self._kitchen.validate_worker(worker_code)
            if not staff:
                raise InvalidRequestError(ErrorCode.WAITER_VALIDATION_FAILED, "Could not validate the waiter")
            waiter_id = staff["id"]

        with transaction(self._db):
            request = self._db.exec(
                select(ServiceRequest)
                .where(ServiceRequest.id == request_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).first()
            if not request:
                raise NotFoundError(ErrorCode.SERVICE_REQUEST_NOT_FOUND, "Service request not found")

            if isinstance(actor, GuestIdentity):
                ensure_client_access(actor, request.cliente_id)
                if status != ServiceRequestStatus.CANCELLED:
                    raise ForbiddenError("Guests can only cancel their own requests")

            if request.status != ServiceRequestStatus.PENDING:
                raise ConflictError(
                    ErrorCode.INVALID_REQUEST_STATE,
                    f"Request is already {request.status.value}",
                )

            request.status = status
            if status == ServiceRequestStatus.ATTENDED:
                request.attended_at = datetime.utcnow()
                request.attended_by_waiter_id = waiter_id or staff_id_of(actor)
            self._db.add(request)

        self._db.refresh(request)
        logger.info(f"Service request {request.id} marked {status.value}")
        return request

    def get_request(self, request_id: int, actor: Optional[Identity] = None) -> ServiceRequest:
        request = self._db.get(ServiceRequest, request_id)
        if not request:
            raise NotFoundError(ErrorCode.SERVICE_REQUEST_NOT_FOUND, "Service request not found")
        ensure_client_access(actor, request.cliente_id)
        return request

    def list_requests(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[ServiceRequestStatus] = None,
        request_type: Optional[ServiceRequestType] = None,
        table_id: Optional[int] = None,
        client_id: Optional[int] = None,
    ) -> Tuple[List[ServiceRequest], dict]:
        limit = clamp_limit(limit)
        conditions = []
        if status:
            conditions.append(ServiceRequest.status == status)
        if request_type:
            conditions.append(ServiceRequest.type == request_type)
        if client_id is not None:
            conditions.append(ServiceRequest.cliente_id == client_id)
        if table_id is not None:
            conditions.append(
                ServiceRequest.cliente_id.in_(
                    select(TemporaryClient.id).where(TemporaryClient.table_id == table_id)
                )
            )

        total = self._db.exec(select(func.count(ServiceRequest.id)).where(*conditions)).one()

        query = select(ServiceRequest).where(*conditions)
        if status == ServiceRequestStatus.PENDING:
            query = query.order_by(ServiceRequest.created_at.asc(), ServiceRequest.id.asc())
        else:
            query = query.order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc())

        requests = self._db.exec(query.offset(page_offset(page, limit)).limit(limit)).all()
        return list(requests), page_metadata(total, page, limit)
