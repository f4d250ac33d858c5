"""
Comanda (order ticket) and its line items
"""

from sqlmodel import Field, SQLModel, Relationship
from datetime import datetime
from decimal import Decimal
from typing import Optional, TYPE_CHECKING
from enum import Enum

if TYPE_CHECKING:
    from tableside.models.temporary_client import TemporaryClient


class ComandaStatus(str, Enum):
    """Status of a comanda"""
    PENDING = "PENDING"         # Sent, kitchen has not started
    COOKING = "COOKING"         # Kitchen is preparing it
    DELIVERED = "DELIVERED"     # Served to the table
    CANCELLED = "CANCELLED"     # Withdrawn before cooking


COMANDA_TRANSITIONS = {
    ComandaStatus.PENDING: {ComandaStatus.COOKING, ComandaStatus.DELIVERED, ComandaStatus.CANCELLED},
    ComandaStatus.COOKING: {ComandaStatus.DELIVERED},
    ComandaStatus.DELIVERED: set(),
    ComandaStatus.CANCELLED: set(),
}


class Comanda(SQLModel, table=True):
    """Order ticket owned by a temporary client"""

    __tablename__ = "comandas"

    id: Optional[int] = Field(default=None, primary_key=True)
    cliente_id: int = Field(foreign_key="temporary_clients.id", index=True)

    status: ComandaStatus = Field(default=ComandaStatus.PENDING, index=True)
    notes: Optional[str] = Field(default=None, max_length=1000)

    # Timestamps
    sent_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Relationships
    cliente: Optional["TemporaryClient"] = Relationship(back_populates="comandas")
    items: list["OrderItem"] = Relationship(
        back_populates="comanda",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )

    def can_transition_to(self, new_status: ComandaStatus) -> bool:
        return new_status in COMANDA_TRANSITIONS[self.status]

    def calculate_total(self) -> Decimal:
        """Sum of unit price times quantity over all items"""
        return sum((item.line_total for item in self.items), Decimal("0.00"))


class OrderItem(SQLModel, table=True):
    """Line item of a comanda; the price is supplied by the client"""

    __tablename__ = "order_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    comanda_id: int = Field(foreign_key="comandas.id", index=True)

    product_id: str = Field(max_length=64, description="Product reference from the kitchen menu")
    quantity: int = Field(description="Units ordered, always positive")
    unit_price: Decimal = Field(max_digits=10, decimal_places=2)
    special_instructions: Optional[str] = Field(default=None, max_length=500)

    comanda: Optional[Comanda] = Relationship(back_populates="items")

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.unit_price) * self.quantity
