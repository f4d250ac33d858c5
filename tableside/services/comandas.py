"""
Order lifecycle domain service

A comanda is committed first and announced to the kitchen afterwards. If the
kitchen cannot take it, a second transaction deletes it again so no order
exists that the kitchen never saw.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlmodel import Session, select
import structlog

from tableside.core.database import transaction
from tableside.core.errors import ConflictError, DependencyError, ErrorCode, ForbiddenError, NotFoundError
from tableside.core.identity import GuestIdentity, Identity, ensure_client_access
from tableside.models import ClientStatus, Comanda, ComandaStatus, OrderItem, TemporaryClient
from tableside.services.kitchen import KitchenNotifier
from tableside.services.pagination import clamp_limit, page_metadata, page_offset
from tableside.services.tables import lock_client_and_table

logger = structlog.get_logger(__name__)


def kitchen_ticket(comanda: Comanda) -> Dict[str, Any]:
    """Payload the kitchen display expects for a new order"""
    return {
        "orderId": comanda.id,
        "notes": comanda.notes,
        "timestamp": comanda.sent_at.isoformat(),
        "items": [
            {
                "productId": item.product_id,
                "quantity": item.quantity,
                "unitPrice": str(item.unit_price),
                "specialInstructions": item.special_instructions,
            }
            for item in comanda.items
        ],
    }


class ComandaService:
    """Domain service for comandas and their items"""

    def __init__(self, db: Session, kitchen: Optional[KitchenNotifier] = None):
        self._db = db
        self._kitchen = kitchen

    def create_order(
        self,
        client_id: int,
        items: List[Dict[str, Any]],
        notes: Optional[str] = None,
        actor: Optional[Identity] = None,
    ) -> Comanda:
        """
        Create a comanda for an ACTIVE session and send it to the kitchen

        Raises:
            NotFoundError: unknown session
            ConflictError: session is not ACTIVE
            DependencyError: kitchen refused or was unreachable; nothing is kept
        """
        ensure_client_access(actor, client_id)

        with transaction(self._db):
            # Table then session, as in the close paths
            client, _ = lock_client_and_table(self._db, client_id)
            if not client:
                raise NotFoundError(ErrorCode.CLIENT_NOT_FOUND, "Client not found")
            if client.status != ClientStatus.ACTIVE:
                raise ConflictError(
                    ErrorCode.NO_ACTIVE_CLIENT,
                    f"Session {client_id} is not active and cannot place orders",
                )

            comanda = Comanda(cliente_id=client.id, status=ComandaStatus.PENDING, notes=notes)
            comanda.items = [
                OrderItem(
                    product_id=str(item["product_id"]),
                    quantity=item["quantity"],
                    unit_price=Decimal(str(item["unit_price"])),
                    special_instructions=item.get("special_instructions"),
                )
                for item in items
            ]
            self._db.add(comanda)

        self._db.refresh(comanda)
        ticket = kitchen_ticket(comanda)

        if self._kitchen is not None:
            result = self._kitchen.submit_order(ticket)
            if not result.ok:
                self._discard(comanda.id)
                raise DependencyError(
                    ErrorCode.KDS_NOTIFICATION_FAILED,
                    "The kitchen did not accept the order",
                    meta={"upstream_status": result.status_code},
                )

        logger.info(f"Comanda {comanda.id} created for session {client_id} with {len(ticket['items'])} item(s)")
        return comanda

    def _discard(self, comanda_id: int) -> None:
        with transaction(self._db):
            comanda = self._db.get(Comanda, comanda_id)
            if comanda:
                # Items go with it through the delete-orphan cascade
                self._db.delete(comanda)
        logger.warning(f"Comanda {comanda_id} removed after kitchen rejection")

    def update_order_status(
        self,
        comanda_id: int,
        new_status: ComandaStatus,
        actor: Optional[Identity] = None,
    ) -> Comanda:
        cancelled = False
        with transaction(self._db):
            comanda = self._db.exec(
                select(Comanda)
                .where(Comanda.id == comanda_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).first()
            if not comanda:
                raise NotFoundError(ErrorCode.ORDER_NOT_FOUND, "Order not found")

            if isinstance(actor, GuestIdentity):
                ensure_client_access(actor, comanda.cliente_id)
                if new_status != ComandaStatus.CANCELLED:
                    raise ForbiddenError("Guests can only cancel their own orders")

            if new_status == ComandaStatus.CANCELLED and comanda.status != ComandaStatus.PENDING:
                raise ConflictError(
                    ErrorCode.ORDER_CANNOT_BE_CANCELLED,
                    f"Only pending orders can be cancelled; this one is {comanda.status.value}",
                )
            if not comanda.can_transition_to(new_status):
                raise ConflictError(
                    ErrorCode.INVALID_ORDER_TRANSITION,
                    f"Cannot move an order from {comanda.status.value} to {new_status.value}",
                )

            now = datetime.utcnow()
            comanda.status = new_status
            comanda.updated_at = now
            if new_status == ComandaStatus.DELIVERED:
                comanda.delivered_at = now
            elif new_status == ComandaStatus.CANCELLED:
                comanda.cancelled_at = now
                cancelled = True
            self._db.add(comanda)

        self._db.refresh(comanda)

        if cancelled and self._kitchen is not None:
            result = self._kitchen.cancel_order(comanda.id)
            if not result.ok:
                logger.warning(
                    "Kitchen cancellation not delivered",
                    comanda_id=comanda.id,
                    status_code=result.status_code,
                )

        logger.info(f"Comanda {comanda.id} moved to {new_status.value}")
        return comanda

    def find_by_id(self, comanda_id: int, actor: Optional[Identity] = None) -> Comanda:
        comanda = self._db.get(Comanda, comanda_id)
        if not comanda:
            raise NotFoundError(ErrorCode.ORDER_NOT_FOUND, "Order not found")
        ensure_client_access(actor, comanda.cliente_id)
        return comanda

    def find_all(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[ComandaStatus] = None,
        table_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        client_id: Optional[int] = None,
    ) -> Tuple[List[Comanda], dict]:
        limit = clamp_limit(limit)
        conditions = []
        if status:
            conditions.append(Comanda.status == status)
        if client_id is not None:
            conditions.append(Comanda.cliente_id == client_id)
        if table_id is not None:
            conditions.append(
                Comanda.cliente_id.in_(
                    select(TemporaryClient.id).where(TemporaryClient.table_id == table_id)
                )
            )
        if date_from:
            conditions.append(Comanda.sent_at >= date_from)
        if date_to:
            conditions.append(Comanda.sent_at <= date_to)

        total = self._db.exec(select(func.count(Comanda.id)).where(*conditions)).one()

        query = select(Comanda).where(*conditions)
        if status == ComandaStatus.PENDING:
            # Kitchen queue order: oldest ticket first
            query = query.order_by(Comanda.sent_at.asc(), Comanda.id.asc())
        else:
            query = query.order_by(Comanda.sent_at.desc(), Comanda.id.desc())

        comandas = self._db.exec(query.offset(page_offset(page, limit)).limit(limit)).all()
        return list(comandas), page_metadata(total, page, limit)
