"""
Service request model (call waiter, complaints)
"""

from sqlmodel import Field, SQLModel, Relationship
from datetime import datetime
from typing import Optional, TYPE_CHECKING
from enum import Enum

if TYPE_CHECKING:
    from tableside.models.temporary_client import TemporaryClient


class ServiceRequestType(str, Enum):
    CALL_WAITER = "CALL_WAITER"
    COMPLAINT = "COMPLAINT"
    OTHER = "OTHER"


class ServiceRequestStatus(str, Enum):
    PENDING = "PENDING"
    ATTENDED = "ATTENDED"
    CANCELLED = "CANCELLED"


class ServiceRequest(SQLModel, table=True):
    """Request raised by a guest and resolved by staff"""

    __tablename__ = "service_requests"

    id: Optional[int] = Field(default=None, primary_key=True)
    cliente_id: int = Field(foreign_key="temporary_clients.id", index=True)

    type: ServiceRequestType = Field(index=True)
    message: str = Field(max_length=500)
    status: ServiceRequestStatus = Field(default=ServiceRequestStatus.PENDING, index=True)

    attended_by_waiter_id: Optional[str] = Field(default=None, max_length=64)

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    attended_at: Optional[datetime] = None

    cliente: Optional["TemporaryClient"] = Relationship(back_populates="service_requests")
