"""
API schemas for tables, sessions, comandas, service requests and ratings
"""

from sqlmodel import Field, SQLModel
from pydantic import field_validator
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from tableside.models import (
    ClientStatus,
    ComandaStatus,
    ServiceRequestStatus,
    ServiceRequestType,
    TableStatus,
    WaiterAction,
)

# ============================================================================
# Shared
# ============================================================================

class PageMeta(SQLModel):
    total: int
    page: int
    limit: int
    total_pages: int


# ============================================================================
# Table Schemas
# ============================================================================

class TableCreate(SQLModel):
    table_number: int = Field(ge=1, le=9999)
    capacity: int = Field(ge=2, le=6)


class TableUpdate(SQLModel):
    current_status: Optional[TableStatus] = None
    capacity: Optional[int] = Field(default=None, ge=2, le=6)


class TableRestore(SQLModel):
    new_table_number: int = Field(ge=1, le=9999)


class QRVerifyRequest(SQLModel):
    qr_uuid: str = Field(min_length=1, max_length=64)


class TableRead(SQLModel):
    id: int
    table_number: int
    original_number: int
    capacity: int
    qr_uuid: str
    current_status: TableStatus
    is_active: bool
    active_sessions: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None


class TableList(SQLModel):
    data: List[TableRead]
    meta: PageMeta


class QRVerifyResponse(SQLModel):
    table_id: int
    table_number: int
    capacity: int
    current_status: TableStatus
    active_sessions: int
    action: str


class TableDeleteResponse(SQLModel):
    message: str
    table: TableRead


# ============================================================================
# Client Session Schemas
# ============================================================================

class ClientCreate(SQLModel):
    table_id: int = Field(gt=0)
    customer_name: str = Field(min_length=1, max_length=100)
    customer_dni: str = Field(min_length=6, max_length=8)


class ClientSummary(SQLModel):
    id: int
    name: str
    status: ClientStatus


class SessionCreated(SQLModel):
    session_token: str
    client: ClientSummary


class ClientUpdate(SQLModel):
    status: Optional[ClientStatus] = None
    total_amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)

    @field_validator("status")
    @classmethod
    def status_is_a_move(cls, value):
        if value == ClientStatus.ACTIVE:
            raise ValueError("status must be BILL_REQUESTED or CLOSED")
        return value


class ClientRead(SQLModel):
    id: int
    table_id: int
    table_number: Optional[int] = None
    customer_name: str
    customer_dni: str
    status: ClientStatus
    total_amount: Decimal
    last_waiter_id: Optional[str] = None
    closed_by_waiter_id: Optional[str] = None
    created_at: datetime
    closed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ClientPageMeta(PageMeta):
    page_sales_total: Decimal


class ClientList(SQLModel):
    data: List[ClientRead]
    meta: ClientPageMeta


class ClientStatusChanged(SQLModel):
    client: ClientRead
    table_released: bool


class ActiveClientRead(SQLModel):
    id: int
    name: str
    status: ClientStatus
    table_id: int
    table_number: int
    created_at: datetime
    minutes_open: int
    consumption: Decimal
    is_ghost: bool


class ForceCloseResponse(SQLModel):
    client_id: int
    cancelled_requests: int
    cancelled_orders: int
    table_released: bool


# ============================================================================
# Comanda Schemas
# ============================================================================

class OrderItemCreate(SQLModel):
    product_id: str = Field(min_length=1, max_length=64)
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    special_instructions: Optional[str] = Field(default=None, max_length=500)

    @field_validator("product_id", mode="before")
    @classmethod
    def product_id_as_text(cls, value):
        # Menu references may arrive as numbers
        if isinstance(value, int):
            return str(value)
        return value


class ComandaCreate(SQLModel):
    client_id: Optional[int] = Field(default=None, gt=0)
    notes: Optional[str] = Field(default=None, max_length=1000)
    items: List[OrderItemCreate]

    @field_validator("items")
    @classmethod
    def at_least_one_item(cls, value):
        if not value:
            raise ValueError("an order needs at least one item")
        return value


class ComandaUpdate(SQLModel):
    status: ComandaStatus


class OrderItemRead(SQLModel):
    id: int
    product_id: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    special_instructions: Optional[str] = None


class ComandaRead(SQLModel):
    id: int
    cliente_id: int
    status: ComandaStatus
    notes: Optional[str] = None
    total: Decimal
    sent_at: datetime
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    items: List[OrderItemRead] = []


class ComandaList(SQLModel):
    data: List[ComandaRead]
    meta: PageMeta


# ============================================================================
# Service Request Schemas
# ============================================================================

class ServiceRequestCreate(SQLModel):
    client_id: Optional[int] = Field(default=None, gt=0)
    type: ServiceRequestType
    message: str = Field(min_length=3, max_length=500)


class ServiceRequestUpdate(SQLModel):
    status: ServiceRequestStatus
    waiter_id: Optional[str] = Field(default=None, max_length=64)
    worker_code: Optional[str] = Field(default=None, min_length=3, max_length=64)

    @field_validator("status")
    @classmethod
    def status_resolves(cls, value):
        if value == ServiceRequestStatus.PENDING:
            raise ValueError("status must be ATTENDED or CANCELLED")
        return value


class ServiceRequestRead(SQLModel):
    id: int
    cliente_id: int
    type: ServiceRequestType
    message: str
    status: ServiceRequestStatus
    attended_by_waiter_id: Optional[str] = None
    created_at: datetime
    attended_at: Optional[datetime] = None


class ServiceRequestList(SQLModel):
    data: List[ServiceRequestRead]
    meta: PageMeta


# ============================================================================
# Waiter and Rating Schemas
# ============================================================================

class WaiterInteractionCreate(SQLModel):
    external_order_id: int = Field(gt=0)
    action: WaiterAction
    waiter_id: Optional[str] = Field(default=None, max_length=64)
    worker_code: Optional[str] = Field(default=None, min_length=3, max_length=64)


class WaiterInteractionRead(SQLModel):
    id: int
    cliente_id: int
    waiter_id: str
    role: Optional[str] = None
    action: WaiterAction
    external_order_id: int
    created_at: datetime


class RatingCreate(SQLModel):
    score: int = Field(ge=0, le=5)
    comment: Optional[str] = Field(default=None, max_length=300)
    waiter_id: Optional[str] = Field(default=None, max_length=64)
    for_all: bool = False


class RatingRead(SQLModel):
    id: int
    cliente_id: int
    waiter_id: str
    score: int
    comment: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class RatingSummary(SQLModel):
    count: int
    average: float
    distribution: Dict[int, int]


class WaiterRatingGroup(SQLModel):
    waiter_id: str
    count: int
    average: float
    recent: List[RatingRead]


class WaiterRatingGroupList(SQLModel):
    data: List[WaiterRatingGroup]
    meta: PageMeta


class RatingList(SQLModel):
    data: List[RatingRead]
    meta: PageMeta


class RatingPoint(SQLModel):
    period_start: date
    count: int
    average: float


def table_read(table: Any, active_sessions: int = 0) -> TableRead:
    return TableRead(
        id=table.id,
        table_number=table.table_number,
        original_number=table.original_number,
        capacity=table.capacity,
        qr_uuid=table.qr_uuid,
        current_status=table.current_status,
        is_active=table.is_active,
        active_sessions=active_sessions,
        created_at=table.created_at,
        updated_at=table.updated_at,
    )


def client_read(client: Any, table_number: Optional[int] = None) -> ClientRead:
    return ClientRead(
        id=client.id,
        table_id=client.table_id,
        table_number=table_number,
        customer_name=client.customer_name,
        customer_dni=client.customer_dni,
        status=client.status,
        total_amount=client.total_amount,
        last_waiter_id=client.last_waiter_id,
        closed_by_waiter_id=client.closed_by_waiter_id,
        created_at=client.created_at,
        closed_at=client.closed_at,
        updated_at=client.updated_at,
    )


def comanda_read(comanda: Any) -> ComandaRead:
    return ComandaRead(
        id=comanda.id,
        cliente_id=comanda.cliente_id,
        status=comanda.status,
        notes=comanda.notes,
        total=comanda.calculate_total(),
        sent_at=comanda.sent_at,
        delivered_at=comanda.delivered_at,
        cancelled_at=comanda.cancelled_at,
        items=[
            OrderItemRead(
                id=item.id,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.line_total,
                special_instructions=item.special_instructions,
            )
            for item in comanda.items
        ],
    )
