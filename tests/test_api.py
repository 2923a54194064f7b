"""
Integration tests for API endpoints.

The FastAPI lifespan (init_db, catalogue load, tracker build) is patched
for every test: the tracker is built from in-memory trains with a fixed
clock.  Each test gets its own in-memory SQLite database via the
db_session / client fixtures, so tests are fully isolated.
"""

import pytest
from datetime import datetime
from unittest.mock import patch, MagicMock

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db.models import Base, Station
from db.session import get_session
from journey.fares import FareTable
from journey.schedule import TrainSchedule, TrainStatus
from tracking.tracker import TrainTracker


MORNING = datetime(2026, 1, 1, 8, 15)


def _train(
    train_id: str,
    destination: str = "Kandy",
    dep: str = "07:00",
    arr: str = "09:30",
    fares: FareTable = FareTable(first_class=1100, second_class=580, third_class=290),
    status: TrainStatus = TrainStatus.ON_TIME,
) -> TrainSchedule:
    return TrainSchedule(
        id=train_id,
        name=f"Train {train_id}",
        number=f"T-{train_id}",
        source="Colombo Fort",
        destination=destination,
        departure_time=dep,
        arrival_time=arr,
        duration_minutes=150,
        distance_km=120.74,
        fare_table=fares,
        amenities=frozenset({"Wi-Fi"}),
        status=status,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def db_session():
    """Fresh in-memory SQLite database, schema pre-created, per test.

    StaticPool is required so that create_all and the session both use
    the same single connection, otherwise each pool checkout gets a new
    in-memory DB that has no tables.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestSession = sessionmaker(bind=engine)
    session = TestSession()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def tracker():
    return TrainTracker(
        [
            _train("1", destination="Badulla", dep="05:55", arr="14:30",
                   fares=FareTable(first_class=2200, second_class=1100, third_class=550)),
            _train("17"),
            _train("99", status=TrainStatus.CANCELLED),
            _train("bad", destination="Galle", dep="7am"),
        ],
        route_stops={("Colombo Fort", "Kandy"): ["Ragama", "Gampaha", "Peradeniya"]},
        clock=lambda: MORNING,
    )


@pytest.fixture
def client(db_session, tracker):
    """
    TestClient with:
      - lifespan init_db / SessionLocal patched to no-ops
      - build_tracker patched to return the in-memory tracker
      - get_session dependency overridden to use the test db_session
    """
    from api.main import app

    def override_get_session():
        yield db_session

    with (
        patch("api.main.init_db"),
        patch("api.main.SessionLocal", return_value=MagicMock()),
        patch("api.main.build_tracker", return_value=tracker),
    ):
        app.dependency_overrides[get_session] = override_get_session
        with TestClient(app, raise_server_exceptions=True) as c:
            yield c
        app.dependency_overrides.clear()


def _booking_body(**overrides) -> dict:
    body = {
        "train_id": "17",
        "journey_date": "2030-01-01",
        "fare_class": "secondClass",
        "passengers": [{"name": "Nimal Perera", "age": 34, "gender": "M"}],
        "contact": {"name": "Nimal", "phone": "0771234567", "email": "nimal@example.lk"},
        "payment_method": "card",
    }
    body.update(overrides)
    return body


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------

class TestHealth:
    def test_returns_200(self, client):
        assert client.get("/health").status_code == 200

    def test_contains_status_ok(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert "timestamp" in body

    def test_empty_db_returns_zero_counts(self, client):
        catalogue = client.get("/health").json()["catalogue"]
        assert catalogue == {"stations": 0, "trains": 0, "bookings": 0}

    def test_tracking_section(self, client):
        tracking = client.get("/health").json()["tracking"]
        assert tracking["active_trains"] == 2
        assert tracking["last_refreshed_at"] == MORNING.isoformat()
        assert tracking["next_refresh_at"] is not None


# ---------------------------------------------------------------------------
# GET /stations
# ---------------------------------------------------------------------------

class TestStationsSearch:
    def test_empty_db_returns_empty_list(self, client):
        resp = client.get("/stations", params={"query": "kandy"})
        assert resp.status_code == 200
        assert resp.json() == []

    def test_case_insensitive_match(self, client, db_session):
        db_session.add(Station(id="22", name="Kandy", code="KDT", city="Kandy", province="Central Province"))
        db_session.commit()
        body = client.get("/stations", params={"query": "KAN"}).json()
        assert body == [
            {"id": "22", "name": "Kandy", "code": "KDT", "city": "Kandy", "province": "Central Province"}
        ]

    def test_query_too_short_returns_422(self, client):
        assert client.get("/stations", params={"query": "k"}).status_code == 422

    def test_missing_query_param_returns_422(self, client):
        assert client.get("/stations").status_code == 422


# ---------------------------------------------------------------------------
# GET /trains
# ---------------------------------------------------------------------------

class TestTrains:
    def test_all_trains(self, client):
        body = client.get("/trains").json()
        assert [t["id"] for t in body] == ["1", "17", "99", "bad"]

    def test_search_by_route(self, client):
        body = client.get(
            "/trains", params={"source": "colombo fort", "destination": "KANDY"}
        ).json()
        assert [t["id"] for t in body] == ["17", "99"]

    def test_search_saved_as_recent(self, client):
        client.get("/trains", params={"source": "Colombo Fort", "destination": "Kandy", "date": "2030-01-01"})
        recent = client.get("/searches/recent").json()
        assert len(recent) == 1
        assert recent[0]["destination"] == "Kandy"
        assert recent[0]["date"] == "2030-01-01"

    def test_listing_is_not_saved_as_recent(self, client):
        client.get("/trains")
        assert client.get("/searches/recent").json() == []

    def test_only_source_returns_422(self, client):
        assert client.get("/trains", params={"source": "Colombo Fort"}).status_code == 422

    def test_invalid_date_returns_422(self, client):
        resp = client.get(
            "/trains", params={"source": "Colombo Fort", "destination": "Kandy", "date": "01/01/2030"}
        )
        assert resp.status_code == 422

    def test_train_shape(self, client):
        body = client.get("/trains/1").json()
        assert body["fare"] == {"firstClass": 2200, "secondClass": 1100, "thirdClass": 550}
        assert body["status"] == "On Time"
        assert body["amenities"] == ["Wi-Fi"]
        assert body["is_favorite"] is False

    def test_unknown_train_returns_404(self, client):
        assert client.get("/trains/404").status_code == 404


class TestTrainRoute:
    def test_route_with_known_stops(self, client):
        body = client.get("/trains/17/route").json()
        names = [s["name"] for s in body["stations"]]
        assert names == ["Colombo Fort", "Ragama", "Gampaha", "Peradeniya", "Kandy"]
        assert body["duration_minutes"] == 150
        assert body["stations"][0]["departure_time"] == "07:00"
        assert body["stations"][-1]["arrival_time"] == "09:30"

    def test_generic_route(self, client):
        body = client.get("/trains/1/route").json()
        assert body["stations"][1]["name"] == "Station 1"

    def test_bad_schedule_reports_unavailable(self, client):
        resp = client.get("/trains/bad/route")
        assert resp.status_code == 422
        assert resp.json()["detail"].startswith("Train data unavailable")

    def test_unknown_train_returns_404(self, client):
        assert client.get("/trains/404/route").status_code == 404


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------

class TestPosition:
    def test_position_at_clock_time(self, client):
        body = client.get("/trains/17/position", params={"at": "08:15"}).json()
        assert body["last_station"] == "Gampaha"
        assert body["next_station"] == "Peradeniya"
        assert body["progress_percent"] == 50.0
        assert body["is_running"] is True
        assert body["has_arrived"] is False
        assert body["next_station_time"] == "08:52"
        assert body["time_to_next_station"] == "37 min"

    def test_position_from_progress(self, client):
        body = client.get("/trains/17/position", params={"progress": 100}).json()
        assert body["next_station"] == "Kandy"
        assert body["has_arrived"] is True

    def test_position_now(self, client):
        assert client.get("/trains/17/position").status_code == 200

    def test_strict_out_of_range_returns_422(self, client):
        resp = client.get("/trains/17/position", params={"progress": 150, "strict": True})
        assert resp.status_code == 422

    def test_out_of_range_clamped_by_default(self, client):
        body = client.get("/trains/17/position", params={"progress": 150}).json()
        assert body["progress_percent"] == 100.0

    def test_invalid_clock_returns_422(self, client):
        assert client.get("/trains/17/position", params={"at": "25:00"}).status_code == 422

    def test_bad_schedule_reports_unavailable(self, client):
        resp = client.get("/trains/bad/position", params={"at": "08:00"})
        assert resp.status_code == 422
        assert resp.json()["detail"].startswith("Train data unavailable")

    def test_unknown_train_returns_404(self, client):
        assert client.get("/trains/404/position").status_code == 404


class TestActivePositions:
    def test_snapshot_from_last_refresh(self, client):
        body = client.get("/tracking/active").json()
        assert body["last_refreshed_at"] == MORNING.isoformat()
        assert [p["train_id"] for p in body["positions"]] == ["1", "17"]


# ---------------------------------------------------------------------------
# Fares
# ---------------------------------------------------------------------------

class TestFares:
    def test_quote(self, client):
        body = client.post(
            "/fares/quote", json={"train_id": "1", "fare_class": "2nd", "passengers": 2}
        ).json()
        assert body["fare_class"] == "secondClass"
        assert body["base_fare"] == 1100
        assert body["total"] == 2500
        assert body["formatted_total"] == "2500.00 Rs"

    def test_quote_in_other_currency(self, client):
        body = client.post(
            "/fares/quote",
            json={"train_id": "1", "fare_class": "secondClass", "passengers": 2, "currency": "USD"},
        ).json()
        assert body["formatted_total"] == "$8.25"

    def test_unknown_class_returns_422(self, client):
        resp = client.post("/fares/quote", json={"train_id": "1", "fare_class": "business"})
        assert resp.status_code == 422

    def test_zero_passengers_returns_422(self, client):
        resp = client.post("/fares/quote", json={"train_id": "1", "passengers": 0})
        assert resp.status_code == 422

    def test_unknown_train_returns_404(self, client):
        assert client.post("/fares/quote", json={"train_id": "404"}).status_code == 404

    def test_format(self, client):
        body = client.get("/fares/format", params={"amount": 1100, "currency": "EUR"}).json()
        assert body == {"amount": 1100, "currency": "EUR", "formatted": "€3.30"}

    def test_format_uses_settings_currency(self, client):
        client.put("/settings", json={"currency": "usd"})
        body = client.get("/fares/format", params={"amount": 1100}).json()
        assert body["formatted"] == "$3.63"

    @pytest.mark.parametrize("amount", ["inf", "-inf", "nan"])
    def test_format_non_finite_returns_422(self, client, amount):
        resp = client.get("/fares/format", params={"amount": amount, "currency": "USD"})
        assert resp.status_code == 422

    def test_currencies(self, client):
        body = client.get("/currencies").json()
        assert [c["code"] for c in body] == ["LKR", "USD", "EUR", "GBP", "INR"]
        assert body[0] == {"code": "LKR", "name": "Sri Lankan Rupee", "symbol": "Rs", "rate": 1.0}


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------

class TestBookings:
    def test_create(self, client):
        resp = client.post("/bookings", json=_booking_body())
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "Confirmed"
        assert body["total_fare"] == 730
        assert body["formatted_total"] == "730.00 Rs"
        assert body["passengers"][0]["name"] == "Nimal Perera"
        assert body["contact"]["phone"] == "0771234567"
        assert body["payment_reference"].startswith("pmt_")

    def test_create_adds_notification(self, client):
        client.post("/bookings", json=_booking_body())
        body = client.get("/notifications").json()
        assert body["unread"] == 1
        assert body["notifications"][0]["type"] == "booking_confirmation"

    def test_detail(self, client):
        booking_id = client.post("/bookings", json=_booking_body()).json()["id"]
        body = client.get(f"/bookings/{booking_id}").json()
        assert body["id"] == booking_id
        assert body["journey_date"] == "2030-01-01"

    def test_detail_unknown_returns_404(self, client):
        assert client.get("/bookings/BK000000000000").status_code == 404

    def test_cancelled_train_returns_422(self, client):
        assert client.post("/bookings", json=_booking_body(train_id="99")).status_code == 422

    def test_unknown_train_returns_404(self, client):
        assert client.post("/bookings", json=_booking_body(train_id="404")).status_code == 404

    def test_invalid_payment_returns_402(self, client):
        resp = client.post("/bookings", json=_booking_body(payment_method="cheque"))
        assert resp.status_code == 402

    def test_unknown_class_returns_422(self, client):
        assert client.post("/bookings", json=_booking_body(fare_class="business")).status_code == 422

    def test_no_passengers_returns_422(self, client):
        assert client.post("/bookings", json=_booking_body(passengers=[])).status_code == 422

    def test_cancel(self, client):
        booking_id = client.post("/bookings", json=_booking_body()).json()["id"]
        resp = client.post(f"/bookings/{booking_id}/cancel")
        assert resp.status_code == 200
        assert resp.json()["status"] == "Cancelled"

    def test_cancel_twice_returns_409(self, client):
        booking_id = client.post("/bookings", json=_booking_body()).json()["id"]
        client.post(f"/bookings/{booking_id}/cancel")
        assert client.post(f"/bookings/{booking_id}/cancel").status_code == 409

    def test_cancel_unknown_returns_404(self, client):
        assert client.post("/bookings/BK000000000000/cancel").status_code == 404

    def test_list_by_tab(self, client):
        upcoming = client.post("/bookings", json=_booking_body()).json()["id"]
        past = client.post("/bookings", json=_booking_body(journey_date="2020-01-01")).json()["id"]
        assert [b["id"] for b in client.get("/bookings", params={"tab": "upcoming"}).json()] == [upcoming]
        assert [b["id"] for b in client.get("/bookings", params={"tab": "completed"}).json()] == [past]
        assert client.get("/bookings", params={"tab": "cancelled"}).json() == []
        assert len(client.get("/bookings").json()) == 2

    def test_unknown_tab_returns_422(self, client):
        assert client.get("/bookings", params={"tab": "archived"}).status_code == 422


# ---------------------------------------------------------------------------
# Favourites & settings
# ---------------------------------------------------------------------------

class TestFavorites:
    def test_add_and_list(self, client):
        assert client.put("/favorites/17").json() == {"train_ids": ["17"]}
        assert client.get("/favorites").json() == {"train_ids": ["17"]}
        assert client.get("/trains/17").json()["is_favorite"] is True

    def test_remove(self, client):
        client.put("/favorites/17")
        assert client.delete("/favorites/17").json() == {"train_ids": []}

    def test_unknown_train_returns_404(self, client):
        assert client.put("/favorites/404").status_code == 404


class TestSettings:
    def test_defaults(self, client):
        body = client.get("/settings").json()
        assert body["currency"] == "LKR"
        assert body["darkMode"] is False

    def test_update(self, client):
        body = client.put("/settings", json={"darkMode": True, "currency": "gbp"}).json()
        assert body["darkMode"] is True
        assert body["currency"] == "GBP"

    def test_unsupported_currency_returns_422(self, client):
        assert client.put("/settings", json={"currency": "JPY"}).status_code == 422


class TestProfile:
    def test_missing_returns_404(self, client):
        assert client.get("/profile").status_code == 404

    def test_save_then_read(self, client):
        body = {"name": "Nimal Perera", "email": "nimal@example.lk", "phone": "0771234567"}
        resp = client.put("/profile", json=body)
        assert resp.status_code == 200
        assert client.get("/profile").json() == {**body, "profile_image": None}

    def test_save_replaces_profile(self, client):
        client.put("/profile", json={"name": "Nimal", "phone": "0771234567"})
        client.put("/profile", json={"name": "Kamala"})
        assert client.get("/profile").json()["phone"] == ""

    def test_blank_name_returns_422(self, client):
        assert client.put("/profile", json={"name": ""}).status_code == 422


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class TestNotifications:
    def test_empty(self, client):
        assert client.get("/notifications").json() == {"unread": 0, "notifications": []}

    def test_mark_read(self, client):
        client.post("/bookings", json=_booking_body())
        note_id = client.get("/notifications").json()["notifications"][0]["id"]
        assert client.post(f"/notifications/{note_id}/read").status_code == 200
        assert client.get("/notifications").json()["unread"] == 0

    def test_mark_all_read(self, client):
        client.post("/bookings", json=_booking_body())
        client.post("/bookings", json=_booking_body())
        assert client.post("/notifications/read-all").json() == {"marked": 2}

    def test_mark_unknown_returns_404(self, client):
        assert client.post("/notifications/missing/read").status_code == 404

    def test_delete_and_clear(self, client):
        client.post("/bookings", json=_booking_body())
        client.post("/bookings", json=_booking_body())
        note_id = client.get("/notifications").json()["notifications"][0]["id"]
        assert client.delete(f"/notifications/{note_id}").status_code == 200
        assert len(client.get("/notifications").json()["notifications"]) == 1
        assert client.delete("/notifications").status_code == 200
        assert client.get("/notifications").json()["notifications"] == []

    def test_delete_unknown_returns_404(self, client):
        assert client.delete("/notifications/missing").status_code == 404

    def test_settings(self, client):
        assert client.get("/notifications/settings").json()["sound"] is True
        body = client.put("/notifications/settings", json={"sound": False}).json()
        assert body["sound"] is False

    def test_unknown_setting_returns_422(self, client):
        assert client.put("/notifications/settings", json={"telepathy": True}).status_code == 422


# ---------------------------------------------------------------------------
# POST /ingest/static-data
# ---------------------------------------------------------------------------

class TestIngest:
    def test_loads_shipped_dataset(self, client):
        body = client.post("/ingest/static-data").json()
        assert body["status"] == "ok"
        assert body["counts"] == {"stations": 62, "trains": 18, "route_stops": 68}

    def test_requires_key_when_configured(self, client):
        with patch("api.main.INGEST_API_KEY", "secret"):
            assert client.post("/ingest/static-data").status_code == 401
            resp = client.post("/ingest/static-data", headers={"X-API-Key": "secret"})
            assert resp.status_code == 200
