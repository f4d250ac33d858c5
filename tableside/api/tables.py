"""
Tables API endpoints
"""

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session
from typing import Optional
import structlog

from tableside.api.schemas import (
    QRVerifyRequest,
    QRVerifyResponse,
    TableCreate,
    TableDeleteResponse,
    TableList,
    TableRead,
    TableRestore,
    TableUpdate,
    table_read,
)
from tableside.core.database import get_session
from tableside.core.dependencies import require_staff
from tableside.core.identity import StaffIdentity
from tableside.core.permissions import Permission
from tableside.models import TableStatus
from tableside.services.tables import TableService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/", response_model=TableRead, status_code=status.HTTP_201_CREATED)
def create_table(
    table_data: TableCreate,
    staff: StaffIdentity = Depends(require_staff(Permission.TABLES_CREATE)),
    session: Session = Depends(get_session),
):
    """Register a new table with a fresh QR code"""
    table = TableService(session).create_table(table_data.table_number, table_data.capacity)
    return table_read(table)


@router.get("/", response_model=TableList)
def list_tables(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status_filter: Optional[TableStatus] = Query(None, alias="status"),
    archived: bool = False,
    staff: StaffIdentity = Depends(require_staff(Permission.TABLES_VIEW)),
    session: Session = Depends(get_session),
):
    rows, meta = TableService(session).list_tables(page, limit, status_filter, archived)
    return TableList(data=[table_read(table, active) for table, active in rows], meta=meta)


@router.post("/verify-qr", response_model=QRVerifyResponse)
def verify_qr(
    payload: QRVerifyRequest,
    session: Session = Depends(get_session),
):
    """Public capacity check run before a guest logs in"""
    return TableService(session).verify_qr(payload.qr_uuid)


@router.get("/{table_id}", response_model=TableRead)
def get_table(
    table_id: int,
    staff: StaffIdentity = Depends(require_staff(Permission.TABLES_VIEW)),
    session: Session = Depends(get_session),
):
    table, active = TableService(session).get_table(table_id)
    return table_read(table, active)


@router.patch("/{table_id}", response_model=TableRead)
def update_table(
    table_id: int,
    table_data: TableUpdate,
    staff: StaffIdentity = Depends(require_staff(Permission.TABLES_EDIT)),
    session: Session = Depends(get_session),
):
    """Change a table's status and/or capacity"""
    service = TableService(session)
    service.update_table_status(table_id, table_data.current_status, table_data.capacity)
    table, active = service.get_table(table_id)
    return table_read(table, active)


@router.delete("/{table_id}", response_model=TableDeleteResponse)
def delete_table(
    table_id: int,
    staff: StaffIdentity = Depends(require_staff(Permission.TABLES_DELETE)),
    session: Session = Depends(get_session),
):
    """Archive a table; its number becomes free for reuse"""
    table, original_number = TableService(session).delete_table(table_id)
    logger.info(f"Table {table_id} archived by {staff.staff_id}")
    return TableDeleteResponse(
        message=f"Table {original_number} archived",
        table=table_read(table),
    )


@router.patch("/{table_id}/restore", response_model=TableRead)
def restore_table(
    table_id: int,
    payload: TableRestore,
    staff: StaffIdentity = Depends(require_staff(Permission.TABLES_EDIT)),
    session: Session = Depends(get_session),
):
    table = TableService(session).restore_table(table_id, payload.new_table_number)
    return table_read(table)
