"""
Temporary client model: one guest visit to a table, opened by scanning its QR
"""

from sqlmodel import Field, SQLModel, Relationship
from datetime import datetime
from decimal import Decimal
from typing import Optional, TYPE_CHECKING
from enum import Enum

if TYPE_CHECKING:
    from tableside.models.table import Table
    from tableside.models.comanda import Comanda
    from tableside.models.service_request import ServiceRequest


class ClientStatus(str, Enum):
    """Status of a temporary client session"""
    ACTIVE = "ACTIVE"                   # Seated, may order
    BILL_REQUESTED = "BILL_REQUESTED"   # Waiting for the bill, still seated
    CLOSED = "CLOSED"                   # Visit finished (terminal)


# Sessions in these states keep their table occupied
OCCUPYING_STATUSES = (ClientStatus.ACTIVE, ClientStatus.BILL_REQUESTED)

# Forward-only transitions
CLIENT_TRANSITIONS = {
    ClientStatus.ACTIVE: {ClientStatus.BILL_REQUESTED, ClientStatus.CLOSED},
    ClientStatus.BILL_REQUESTED: {ClientStatus.CLOSED},
    ClientStatus.CLOSED: set(),
}


class TemporaryClient(SQLModel, table=True):
    """Guest session bound to a table, authenticated by an opaque token"""

    __tablename__ = "temporary_clients"

    id: Optional[int] = Field(default=None, primary_key=True)
    table_id: int = Field(foreign_key="tables.id", index=True)

    session_token: str = Field(
        unique=True,
        index=True,
        description="Bearer credential issued by the security module"
    )
    customer_name: str = Field(max_length=100)
    customer_dni: str = Field(max_length=20)

    status: ClientStatus = Field(default=ClientStatus.ACTIVE, index=True)
    total_amount: Decimal = Field(
        default=Decimal("0.00"),
        max_digits=12,
        decimal_places=2,
        description="Last known / closing-time total; live consumption is computed from comandas"
    )

    # Staff references
    last_waiter_id: Optional[str] = Field(default=None, max_length=64)
    closed_by_waiter_id: Optional[str] = Field(default=None, max_length=64)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    closed_at: Optional[datetime] = Field(default=None, index=True)
    updated_at: Optional[datetime] = None

    # Relationships
    table: Optional["Table"] = Relationship(back_populates="clients")
    comandas: list["Comanda"] = Relationship(back_populates="cliente")
    service_requests: list["ServiceRequest"] = Relationship(back_populates="cliente")

    def can_transition_to(self, new_status: ClientStatus) -> bool:
        return new_status in CLIENT_TRANSITIONS[self.status]
