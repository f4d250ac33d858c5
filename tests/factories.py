"""
Test doubles and data builders shared by the test modules
"""

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import event
from sqlalchemy.dialects import postgresql
from sqlmodel import Session

from tableside.core.auth import create_access_token
from tableside.models import Comanda, ComandaStatus, OrderItem, Table
from tableside.services.clients import ClientService
from tableside.services.kitchen import KitchenResult
from tableside.services.tables import TableService


class FakeTokenIssuer:
    """Issues predictable, unique session tokens"""

    def __init__(self):
        self.issued: List[Dict[str, Any]] = []

    def issue(self, payload: Dict[str, Any]) -> str:
        self.issued.append(payload)
        return f"guest-token-{len(self.issued)}"


class FakeKitchen:
    """Records every call; flip ``accept`` to simulate a kitchen outage"""

    def __init__(self):
        self.accept = True
        self.submitted: List[Dict[str, Any]] = []
        self.cancelled: List[int] = []
        self.workers: Dict[str, Dict[str, Any]] = {}

    def submit_order(self, payload: Dict[str, Any]) -> KitchenResult:
        self.submitted.append(payload)
        if self.accept:
            return KitchenResult(ok=True, status_code=201)
        return KitchenResult(ok=False, status_code=503, detail="kitchen down")

    def cancel_order(self, external_id: int) -> KitchenResult:
        self.cancelled.append(external_id)
        if self.accept:
            return KitchenResult(ok=True, status_code=200)
        return KitchenResult(ok=False, status_code=503)

    def validate_worker(self, worker_code: str) -> Optional[Dict[str, Any]]:
        return self.workers.get(worker_code)


def staff_headers(role: str = "waiter", staff_id: str = "waiter-1", is_admin: bool = False) -> Dict[str, str]:
    token = create_access_token(staff_id, role, is_admin=is_admin)
    return {"Authorization": f"Bearer {token}"}


def guest_headers(session_token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {session_token}"}


def make_table(db: Session, table_number: int = 1, capacity: int = 4) -> Table:
    return TableService(db).create_table(table_number, capacity)


def open_session(db: Session, table: Table, issuer: FakeTokenIssuer, name: str = "Ana") -> Dict[str, Any]:
    return ClientService(db, token_issuer=issuer).create_session(table.id, name, "12345678")


def add_comanda(
    db: Session,
    client_id: int,
    status: ComandaStatus = ComandaStatus.PENDING,
    unit_price: str = "10.50",
    quantity: int = 2,
) -> Comanda:
    """Insert a comanda directly, bypassing the kitchen"""
    comanda = Comanda(cliente_id=client_id, status=status)
    comanda.items = [OrderItem(product_id="p-1", quantity=quantity, unit_price=Decimal(unit_price))]
    db.add(comanda)
    db.commit()
    db.refresh(comanda)
    return comanda


def reload(db: Session, model, ident):
    """Fresh copy of a row, bypassing the identity map"""
    db.expire_all()
    return db.get(model, ident)


@contextmanager
def row_locks(db: Session):
    """Collect the entities loaded with SELECT ... FOR UPDATE inside the block.

    SQLite drops the FOR UPDATE clause, so statements are compiled for
    PostgreSQL to see what production would lock.
    """
    locked: List[str] = []

    def record(state):
        if not state.is_select or state.bind_mapper is None:
            return
        sql = str(state.statement.compile(dialect=postgresql.dialect()))
        if "FOR UPDATE" in sql and state.statement.get_execution_options().get("populate_existing"):
            locked.append(state.bind_mapper.class_.__name__)

    event.listen(db, "do_orm_execute", record)
    try:
        yield locked
    finally:
        event.remove(db, "do_orm_execute", record)
