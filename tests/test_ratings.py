"""
Unit tests for waiter interactions and ratings
"""

import pytest
from datetime import date, datetime, timedelta

from tableside.core.errors import ErrorCode, InvalidRequestError, NotFoundError
from tableside.core.identity import StaffIdentity
from tableside.models import ClientStatus, WaiterAction, WaiterRating
from tableside.services.clients import ClientService
from tableside.services.ratings import RatingService, end_of_day

from factories import FakeKitchen, add_comanda, make_table, open_session


@pytest.fixture
def visit(db, token_issuer):
    """A session with one comanda"""
    table = make_table(db)
    client_id = open_session(db, table, token_issuer)["client"]["id"]
    comanda = add_comanda(db, client_id)
    return client_id, comanda


class TestRecordInteraction:

    def test_serve_sets_last_waiter(self, db, visit):
        client_id, comanda = visit

        interaction = RatingService(db).record_interaction(comanda.id, WaiterAction.SERVE, waiter_id="w-1")

        assert interaction.cliente_id == client_id
        client, _ = ClientService(db).get_client(client_id)
        assert client.last_waiter_id == "w-1"

    def test_assign_leaves_last_waiter(self, db, visit):
        client_id, comanda = visit

        RatingService(db).record_interaction(comanda.id, WaiterAction.ASSIGN, waiter_id="w-1")

        client, _ = ClientService(db).get_client(client_id)
        assert client.last_waiter_id is None

    def test_worker_code_resolved_by_kitchen(self, db, visit):
        _, comanda = visit
        kitchen = FakeKitchen()
        kitchen.workers["K-9"] = {"id": "w-9", "role": "runner"}

        interaction = RatingService(db, kitchen=kitchen).record_interaction(
            comanda.id, WaiterAction.SERVE, worker_code="K-9"
        )

        assert interaction.waiter_id == "w-9"
        assert interaction.role == "runner"

    def test_unvalidated_waiter(self, db, visit):
        _, comanda = visit
        with pytest.raises(InvalidRequestError) as exc:
            RatingService(db, kitchen=FakeKitchen()).record_interaction(
                comanda.id, WaiterAction.SERVE, worker_code="bad"
            )
        assert exc.value.code == ErrorCode.WAITER_VALIDATION_FAILED

    def test_unknown_order(self, db):
        with pytest.raises(NotFoundError) as exc:
            RatingService(db).record_interaction(404, WaiterAction.SERVE, waiter_id="w-1")
        assert exc.value.code == ErrorCode.ORDER_NOT_FOUND


class TestRateSession:

    def test_closing_waiter_is_credited_first(self, db, visit):
        client_id, comanda = visit
        service = RatingService(db)
        service.record_interaction(comanda.id, WaiterAction.SERVE, waiter_id="server")
        closer = StaffIdentity(staff_id="closer", role="waiter", token="t")
        ClientService(db).update_client_status(client_id, ClientStatus.CLOSED, actor=closer)

        ratings = service.rate_session(client_id, 5, comment="Great")

        assert [r.waiter_id for r in ratings] == ["closer"]

    def test_explicit_waiter_as_last_resort(self, db, visit):
        client_id, _ = visit

        ratings = RatingService(db).rate_session(client_id, 3, waiter_id="named")

        assert ratings[0].waiter_id == "named"

    def test_nobody_to_credit(self, db, visit):
        client_id, _ = visit
        with pytest.raises(InvalidRequestError) as exc:
            RatingService(db).rate_session(client_id, 4)
        assert exc.value.code == ErrorCode.WAITER_NOT_ASSIGNED

    def test_for_all_rates_every_waiter_once(self, db, visit):
        client_id, comanda = visit
        service = RatingService(db)
        service.record_interaction(comanda.id, WaiterAction.ASSIGN, waiter_id="a")
        service.record_interaction(comanda.id, WaiterAction.SERVE, waiter_id="b")
        service.record_interaction(comanda.id, WaiterAction.SERVE, waiter_id="a")

        ratings = service.rate_session(client_id, 4, for_all=True)

        assert sorted(r.waiter_id for r in ratings) == ["a", "b"]
        assert service.list_waiters_for_client(client_id) == ["a", "b"]

    def test_rating_again_overwrites(self, db, visit):
        client_id, _ = visit
        service = RatingService(db)
        service.rate_session(client_id, 1, waiter_id="w")

        service.rate_session(client_id, 5, comment="Changed my mind", waiter_id="w")

        ratings = service.list_ratings()
        assert len(ratings) == 1
        assert ratings[0].score == 5
        assert ratings[0].updated_at is not None


class TestReadViews:

    @pytest.fixture
    def rated(self, db, token_issuer):
        table = make_table(db)
        service = RatingService(db)
        scores = [("w-1", 5), ("w-1", 3), ("w-2", 4)]
        for index, (waiter, score) in enumerate(scores):
            client_id = open_session(db, table, token_issuer, name=f"g{index}")["client"]["id"]
            service.rate_session(client_id, score, waiter_id=waiter)
            ClientService(db).update_client_status(client_id, ClientStatus.CLOSED)
        return service

    def test_summary(self, rated):
        summary = rated.summary()

        assert summary["count"] == 3
        assert summary["average"] == 4.0
        assert summary["distribution"] == {0: 0, 1: 0, 2: 0, 3: 1, 4: 1, 5: 1}

    def test_summary_for_waiter(self, rated):
        assert rated.summary(waiter_id="w-1")["average"] == 4.0
        assert rated.summary(waiter_id="nobody") == {
            "count": 0,
            "average": 0,
            "distribution": {0: 0, 1: 0, 2: 0, 3: 0, 4: 0, 5: 0},
        }

    def test_date_to_includes_whole_day(self, rated):
        today = datetime.combine(date.today(), datetime.min.time())
        assert len(rated.list_ratings(date_from=today, date_to=today)) == 3
        assert rated.list_ratings(date_to=today - timedelta(days=1)) == []

    def test_grouped_by_waiter(self, rated):
        groups, meta = rated.list_grouped_by_waiter(page=1, page_size=10, recent_count=1)

        assert meta["total"] == 2
        assert [g["waiter_id"] for g in groups] == ["w-1", "w-2"]
        assert groups[0]["count"] == 2
        assert len(groups[0]["recent"]) == 1

    def test_paged_by_score(self, rated):
        ratings, meta = rated.list_ratings_paged(page=1, page_size=2, order_by="score", direction="asc")

        assert [r.score for r in ratings] == [3, 4]
        assert meta["total_pages"] == 2

    def test_timeseries(self, db, rated):
        first = db.get(WaiterRating, 1)
        first.created_at = first.created_at - timedelta(days=7)
        db.add(first)
        db.commit()

        daily = rated.timeseries("daily")
        weekly = rated.timeseries("weekly")

        assert [point["count"] for point in daily] == [1, 2]
        assert [point["count"] for point in weekly] == [1, 2]
        assert all(point["period_start"].weekday() == 0 for point in weekly)


def test_end_of_day_only_stretches_bare_dates():
    midnight = datetime(2026, 3, 1)
    assert end_of_day(midnight).hour == 23
    precise = datetime(2026, 3, 1, 15, 30)
    assert end_of_day(precise) == precise
