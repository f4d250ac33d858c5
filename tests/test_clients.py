"""
Unit tests for guest sessions: login, bill, close, force close
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from sqlmodel import Session, select

from tableside.core.errors import (
    ConflictError,
    DependencyError,
    ErrorCode,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from tableside.core.identity import GuestIdentity, StaffIdentity
from tableside.models import (
    ClientStatus,
    Comanda,
    ComandaStatus,
    ServiceRequest,
    ServiceRequestStatus,
    ServiceRequestType,
    Table,
    TableStatus,
    TemporaryClient,
)
from tableside.services.clients import ClientService
from tableside.services.comandas import ComandaService
from tableside.services.service_requests import ServiceRequestService
from tableside.services.tables import TableService

from factories import FakeKitchen, FakeTokenIssuer, add_comanda, make_table, open_session, reload, row_locks

WAITER = StaffIdentity(staff_id="waiter-7", role="waiter", token="t")


class RejectingIssuer:
    def issue(self, payload):
        raise InvalidRequestError(
            ErrorCode.SECURITY_MODULE_REJECTION,
            "Security module rejected the session: bad dni",
            meta={"upstream_status": 422, "upstream_message": "bad dni"},
        )


class UnreachableIssuer:
    def issue(self, payload):
        raise DependencyError(ErrorCode.SECURITY_MODULE_UNAVAILABLE, "down", status_code=503)


class TestCreateSession:

    def test_first_guest_occupies_table(self, db, token_issuer):
        table = make_table(db)

        result = open_session(db, table, token_issuer)

        assert result["session_token"] == "guest-token-1"
        assert result["client"]["status"] == ClientStatus.ACTIVE
        assert reload(db, Table, table.id).current_status == TableStatus.OCCUPIED
        assert token_issuer.issued[0]["table_id"] == table.id

    def test_capacity_is_enforced(self, db, token_issuer):
        table = make_table(db, capacity=2)
        open_session(db, table, token_issuer, name="A")
        open_session(db, table, token_issuer, name="B")

        with pytest.raises(ConflictError) as exc:
            open_session(db, table, token_issuer, name="C")

        assert exc.value.code == ErrorCode.TABLE_CAPACITY_EXCEEDED
        # No token is requested for a login that cannot succeed
        assert len(token_issuer.issued) == 2

    def test_bill_requested_sessions_still_count(self, db, token_issuer):
        table = make_table(db, capacity=2)
        first = open_session(db, table, token_issuer, name="A")
        open_session(db, table, token_issuer, name="B")
        ClientService(db).update_client_status(first["client"]["id"], ClientStatus.BILL_REQUESTED, Decimal("5"))

        with pytest.raises(ConflictError):
            open_session(db, table, token_issuer, name="C")

    def test_out_of_service_table(self, db, token_issuer):
        table = make_table(db)
        TableService(db).update_table_status(table.id, TableStatus.OUT_OF_SERVICE)

        with pytest.raises(ForbiddenError) as exc:
            open_session(db, table, token_issuer)
        assert exc.value.code == ErrorCode.TABLE_OUT_OF_SERVICE

    def test_archived_table(self, db, token_issuer):
        table = make_table(db)
        TableService(db).delete_table(table.id)

        with pytest.raises(NotFoundError):
            open_session(db, table, token_issuer)

    def test_security_rejection_keeps_upstream_detail(self, db):
        table = make_table(db)

        with pytest.raises(InvalidRequestError) as exc:
            ClientService(db, token_issuer=RejectingIssuer()).create_session(table.id, "Ana", "1")

        assert exc.value.meta["upstream_status"] == 422
        assert reload(db, Table, table.id).current_status == TableStatus.AVAILABLE

    def test_security_outage_creates_nothing(self, db):
        table = make_table(db)

        with pytest.raises(DependencyError) as exc:
            ClientService(db, token_issuer=UnreachableIssuer()).create_session(table.id, "Ana", "12345678")

        assert exc.value.status_code == 503
        assert db.exec(select(TemporaryClient)).all() == []


class TestUpdateClientStatus:

    def test_bill_request_with_zero_total(self, db, token_issuer):
        table = make_table(db)
        created = open_session(db, table, token_issuer)

        with pytest.raises(InvalidRequestError) as exc:
            ClientService(db).update_client_status(created["client"]["id"], ClientStatus.BILL_REQUESTED)
        assert exc.value.code == ErrorCode.ZERO_AMOUNT_ERROR

    def test_bill_request_succeeds_once_total_is_recorded(self, db, token_issuer):
        table = make_table(db)
        client_id = open_session(db, table, token_issuer)["client"]["id"]
        service = ClientService(db)

        with pytest.raises(InvalidRequestError):
            service.update_client_status(client_id, ClientStatus.BILL_REQUESTED)

        add_comanda(db, client_id, unit_price="12.50", quantity=2)
        service.update_client_status(client_id, total_amount=Decimal("25.00"))
        client, _ = service.update_client_status(client_id, ClientStatus.BILL_REQUESTED)

        assert client.status == ClientStatus.BILL_REQUESTED
        assert client.total_amount == Decimal("25.00")

    def test_bill_request_uses_given_total(self, db, token_issuer):
        table = make_table(db)
        created = open_session(db, table, token_issuer)

        client, released = ClientService(db).update_client_status(
            created["client"]["id"], ClientStatus.BILL_REQUESTED, Decimal("42.50")
        )

        assert client.status == ClientStatus.BILL_REQUESTED
        assert client.total_amount == Decimal("42.50")
        assert released is False

    def test_closing_last_session_releases_table(self, db, token_issuer):
        table = make_table(db)
        first = open_session(db, table, token_issuer, name="A")
        second = open_session(db, table, token_issuer, name="B")
        service = ClientService(db)

        _, released = service.update_client_status(first["client"]["id"], ClientStatus.CLOSED, actor=WAITER)
        assert released is False
        assert reload(db, Table, table.id).current_status == TableStatus.OCCUPIED

        closed, released = service.update_client_status(second["client"]["id"], ClientStatus.CLOSED, actor=WAITER)
        assert released is True
        assert closed.closed_at is not None
        assert closed.closed_by_waiter_id == "waiter-7"
        assert reload(db, Table, table.id).current_status == TableStatus.AVAILABLE

    def test_close_snapshots_live_consumption(self, db, token_issuer):
        table = make_table(db)
        created = open_session(db, table, token_issuer)
        client_id = created["client"]["id"]
        add_comanda(db, client_id, unit_price="10.50", quantity=2)
        add_comanda(db, client_id, status=ComandaStatus.CANCELLED, unit_price="99.00", quantity=1)

        client, _ = ClientService(db).update_client_status(client_id, ClientStatus.CLOSED)

        assert client.total_amount == Decimal("21.00")

    def test_closed_session_is_terminal(self, db, token_issuer):
        table = make_table(db)
        created = open_session(db, table, token_issuer)
        service = ClientService(db)
        service.update_client_status(created["client"]["id"], ClientStatus.CLOSED)

        with pytest.raises(ConflictError) as exc:
            service.update_client_status(created["client"]["id"], ClientStatus.BILL_REQUESTED, Decimal("1"))
        assert exc.value.code == ErrorCode.SESSION_ALREADY_CLOSED

    def test_no_backward_moves(self, db, token_issuer):
        table = make_table(db)
        created = open_session(db, table, token_issuer)
        service = ClientService(db)
        service.update_client_status(created["client"]["id"], ClientStatus.BILL_REQUESTED, Decimal("3"))

        with pytest.raises(ConflictError) as exc:
            service.update_client_status(created["client"]["id"], ClientStatus.ACTIVE)
        assert exc.value.code == ErrorCode.INVALID_STATUS_TRANSITION

    def test_guest_may_only_request_the_bill(self, db, token_issuer):
        table = make_table(db)
        created = open_session(db, table, token_issuer)
        client_id = created["client"]["id"]
        guest = GuestIdentity(client_id=client_id, table_id=table.id)

        with pytest.raises(ForbiddenError):
            ClientService(db).update_client_status(client_id, ClientStatus.CLOSED, actor=guest)

        client, _ = ClientService(db).update_client_status(
            client_id, ClientStatus.BILL_REQUESTED, Decimal("18.00"), actor=guest
        )
        assert client.status == ClientStatus.BILL_REQUESTED

    def test_guest_cannot_touch_another_session(self, db, token_issuer):
        table = make_table(db)
        mine = open_session(db, table, token_issuer, name="A")
        other = open_session(db, table, token_issuer, name="B")
        guest = GuestIdentity(client_id=mine["client"]["id"], table_id=table.id)

        with pytest.raises(ForbiddenError):
            ClientService(db).update_client_status(
                other["client"]["id"], ClientStatus.BILL_REQUESTED, actor=guest
            )


class TestForceClose:

    def test_cancels_outstanding_work_and_releases_table(self, db, token_issuer):
        kitchen = FakeKitchen()
        table = make_table(db)
        created = open_session(db, table, token_issuer)
        client_id = created["client"]["id"]
        requests = ServiceRequestService(db)
        requests.create_request(client_id, ServiceRequestType.CALL_WAITER, "Water please")
        requests.create_request(client_id, ServiceRequestType.OTHER, "More bread")
        cooking = add_comanda(db, client_id, status=ComandaStatus.COOKING)
        delivered = add_comanda(db, client_id, status=ComandaStatus.DELIVERED)

        result = ClientService(db, kitchen=kitchen).force_close_client(client_id, actor=WAITER)

        assert result.cancelled_requests == 2
        assert result.cancelled_orders == 1
        assert result.table_released is True
        assert kitchen.cancelled == [cooking.id]

        db.expire_all()
        assert db.get(TemporaryClient, client_id).status == ClientStatus.CLOSED
        assert db.get(Comanda, cooking.id).status == ComandaStatus.CANCELLED
        assert db.get(Comanda, delivered.id).status == ComandaStatus.DELIVERED
        assert all(r.status == ServiceRequestStatus.CANCELLED for r in db.exec(select(ServiceRequest)).all())
        assert db.get(Table, table.id).current_status == TableStatus.AVAILABLE

    def test_locks_every_row_it_overwrites(self, db, token_issuer):
        table = make_table(db)
        client_id = open_session(db, table, token_issuer)["client"]["id"]
        ServiceRequestService(db).create_request(client_id, ServiceRequestType.CALL_WAITER, "Water please")
        add_comanda(db, client_id, status=ComandaStatus.COOKING)

        with row_locks(db) as locked:
            ClientService(db).force_close_client(client_id)

        assert locked == ["Table", "TemporaryClient", "ServiceRequest", "Comanda"]

    def test_work_resolved_by_another_transaction_is_kept(self, db, token_issuer):
        table = make_table(db)
        client_id = open_session(db, table, token_issuer)["client"]["id"]
        request = ServiceRequestService(db).create_request(client_id, ServiceRequestType.CALL_WAITER, "Water")
        cooking = add_comanda(db, client_id, status=ComandaStatus.COOKING)
        # This session keeps the COOKING and PENDING copies loaded
        assert db.get(Comanda, cooking.id).status == ComandaStatus.COOKING
        assert db.get(ServiceRequest, request.id).status == ServiceRequestStatus.PENDING
        with Session(db.get_bind()) as other:
            ComandaService(other).update_order_status(cooking.id, ComandaStatus.DELIVERED)
            ServiceRequestService(other).attend_request(request.id, ServiceRequestStatus.ATTENDED, waiter_id="w-2")

        result = ClientService(db).force_close_client(client_id)

        assert result.cancelled_orders == 0
        assert result.cancelled_requests == 0
        assert reload(db, Comanda, cooking.id).status == ComandaStatus.DELIVERED
        assert reload(db, ServiceRequest, request.id).status == ServiceRequestStatus.ATTENDED

    def test_kitchen_outage_does_not_undo_close(self, db, token_issuer):
        kitchen = FakeKitchen()
        kitchen.accept = False
        table = make_table(db)
        created = open_session(db, table, token_issuer)
        add_comanda(db, created["client"]["id"])

        result = ClientService(db, kitchen=kitchen).force_close_client(created["client"]["id"])

        assert result.cancelled_orders == 1
        assert reload(db, TemporaryClient, created["client"]["id"]).status == ClientStatus.CLOSED

    def test_already_closed_session(self, db, token_issuer):
        table = make_table(db)
        created = open_session(db, table, token_issuer)
        service = ClientService(db)
        service.force_close_client(created["client"]["id"])

        with pytest.raises(NotFoundError) as exc:
            service.force_close_client(created["client"]["id"])
        assert exc.value.code == ErrorCode.CLIENT_NOT_FOUND

    def test_other_sessions_keep_table(self, db, token_issuer):
        table = make_table(db)
        first = open_session(db, table, token_issuer, name="A")
        open_session(db, table, token_issuer, name="B")

        result = ClientService(db).force_close_client(first["client"]["id"])

        assert result.table_released is False
        assert reload(db, Table, table.id).current_status == TableStatus.OCCUPIED


class TestReads:

    def test_list_orders_active_oldest_first(self, db, token_issuer):
        table = make_table(db)
        first = open_session(db, table, token_issuer, name="A")
        second = open_session(db, table, token_issuer, name="B")

        clients, meta = ClientService(db).list_clients(status=ClientStatus.ACTIVE)

        assert [c.id for c in clients] == [first["client"]["id"], second["client"]["id"]]
        assert meta["total"] == 2

    def test_list_closed_by_closing_time(self, db, token_issuer):
        table = make_table(db)
        service = ClientService(db)
        ids = []
        for name in ("A", "B", "C"):
            created = open_session(db, table, token_issuer, name=name)
            service.update_client_status(created["client"]["id"], ClientStatus.CLOSED, Decimal("1"))
            ids.append(created["client"]["id"])
        now = datetime.utcnow()
        for client_id, hours_ago in zip(ids, (1, 3, 2)):
            closed = db.get(TemporaryClient, client_id)
            closed.closed_at = now - timedelta(hours=hours_ago)
            db.add(closed)
        db.commit()

        clients, _ = service.list_clients(status=ClientStatus.CLOSED)

        assert [c.id for c in clients] == [ids[0], ids[2], ids[1]]

    def test_list_defaults_to_newest_first(self, db, token_issuer):
        table = make_table(db)
        service = ClientService(db)
        first = open_session(db, table, token_issuer, name="A")["client"]["id"]
        second = open_session(db, table, token_issuer, name="B")["client"]["id"]
        third = open_session(db, table, token_issuer, name="C")["client"]["id"]
        service.update_client_status(third, ClientStatus.CLOSED)
        moved = db.get(TemporaryClient, first)
        moved.created_at = datetime.utcnow() + timedelta(minutes=5)
        db.add(moved)
        db.commit()

        clients, meta = service.list_clients()

        assert [c.id for c in clients] == [first, third, second]
        assert meta["total"] == 3

    def test_list_reports_page_sales_total(self, db, token_issuer):
        table = make_table(db)
        service = ClientService(db)
        for name, amount in (("A", "10.00"), ("B", "5.25")):
            created = open_session(db, table, token_issuer, name=name)
            service.update_client_status(created["client"]["id"], ClientStatus.CLOSED, Decimal(amount))

        clients, meta = service.list_clients(status=ClientStatus.CLOSED, min_amount=Decimal("1"))

        assert len(clients) == 2
        assert meta["page_sales_total"] == Decimal("15.25")

    def test_active_clients_flag_ghost_sessions(self, db, token_issuer):
        table = make_table(db)
        idle = open_session(db, table, token_issuer, name="Idle")
        busy = open_session(db, table, token_issuer, name="Busy")
        add_comanda(db, busy["client"]["id"], unit_price="4.00", quantity=3)

        later = datetime.utcnow() + timedelta(minutes=120)
        rows = ClientService(db).get_active_clients_with_consumption(now=later)

        by_id = {row["id"]: row for row in rows}
        assert by_id[idle["client"]["id"]]["is_ghost"] is True
        assert by_id[busy["client"]["id"]]["is_ghost"] is False
        assert by_id[busy["client"]["id"]]["consumption"] == Decimal("12.00")
        assert by_id[idle["client"]["id"]]["minutes_open"] >= 119

    def test_get_client_includes_table(self, db, token_issuer):
        table = make_table(db, table_number=5)
        created = open_session(db, table, token_issuer)

        client, client_table = ClientService(db).get_client(created["client"]["id"])

        assert client.customer_name == "Ana"
        assert client_table.table_number == 5

    def test_get_unknown_client(self, db):
        with pytest.raises(NotFoundError):
            ClientService(db).get_client(404)


def test_unique_tokens_per_session(db):
    issuer = FakeTokenIssuer()
    table = make_table(db)
    tokens = {open_session(db, table, issuer, name=str(i))["session_token"] for i in range(3)}
    assert len(tokens) == 3
