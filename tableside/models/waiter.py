"""
Waiter interaction log and waiter ratings
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import UniqueConstraint
from datetime import datetime
from typing import Optional
from enum import Enum


class WaiterAction(str, Enum):
    ASSIGN = "ASSIGN"
    SERVE = "SERVE"


class WaiterInteraction(SQLModel, table=True):
    """Append-only record of a waiter touching a session, reported by the kitchen"""

    __tablename__ = "waiter_interactions"

    id: Optional[int] = Field(default=None, primary_key=True)
    cliente_id: int = Field(foreign_key="temporary_clients.id", index=True)
    waiter_id: str = Field(max_length=64, index=True)
    role: Optional[str] = Field(default=None, max_length=50)
    action: WaiterAction
    external_order_id: int = Field(index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class WaiterRating(SQLModel, table=True):
    """Score a guest gave a waiter for one session"""

    __tablename__ = "waiter_ratings"
    __table_args__ = (
        UniqueConstraint("cliente_id", "waiter_id", name="uq_waiter_rating_cliente_waiter"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    cliente_id: int = Field(foreign_key="temporary_clients.id", index=True)
    waiter_id: str = Field(max_length=64, index=True)
    score: int = Field(description="0 to 5")
    comment: Optional[str] = Field(default=None, max_length=300)
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: Optional[datetime] = None
