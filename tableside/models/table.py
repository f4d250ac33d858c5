"""
Table model for restaurant seating
"""

from sqlmodel import Field, SQLModel, Relationship
from datetime import datetime
from typing import Optional, TYPE_CHECKING
from enum import Enum

if TYPE_CHECKING:
    from tableside.models.temporary_client import TemporaryClient

# Archived tables get a negative number built from their id and original
# number, so the original stays recoverable and the positive one is freed.
ARCHIVE_NUMBER_FACTOR = 10000


class TableStatus(str, Enum):
    """Occupancy status of a table"""
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"


class Table(SQLModel, table=True):
    """Table model for restaurant seating"""

    __tablename__ = "tables"

    id: Optional[int] = Field(default=None, primary_key=True)

    # Table details
    table_number: int = Field(
        unique=True,
        index=True,
        description="Number shown to guests; negative once archived"
    )
    capacity: int = Field(default=4, description="Maximum number of concurrent guest sessions")

    # QR code for guest access
    qr_uuid: str = Field(
        max_length=64,
        unique=True,
        index=True,
        description="Opaque identifier printed in the table QR"
    )

    # Status
    current_status: TableStatus = Field(default=TableStatus.AVAILABLE, index=True)
    is_active: bool = Field(default=True, index=True, description="False once soft-deleted")

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    # Relationships
    clients: list["TemporaryClient"] = Relationship(back_populates="table")

    @property
    def original_number(self) -> int:
        """Number the table had before being archived"""
        if self.table_number >= 0:
            return self.table_number
        return abs(self.table_number) % ARCHIVE_NUMBER_FACTOR

    def archived_number(self) -> int:
        return -(self.id * ARCHIVE_NUMBER_FACTOR + self.original_number)
