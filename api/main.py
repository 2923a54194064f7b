"""
FastAPI application entry point.

On startup:
  1. Initialise the database schema.
  2. Load the static train/station dataset if the catalogue is empty.
  3. Build the TrainTracker from the stored catalogue.
  4. Start the APScheduler job that refreshes active train positions
     every LOCATION_REFRESH_SECONDS.

Endpoints:
  GET  /health
  GET  /stations?query=<name>
  GET  /trains?source=&destination=&date=
  GET  /trains/{id}            /trains/{id}/route     /trains/{id}/position
  GET  /tracking/active
  POST /fares/quote            GET /fares/format      GET /currencies
  POST /bookings               GET /bookings          GET /bookings/{id}
  POST /bookings/{id}/cancel
  GET|PUT|DELETE /favorites    GET /searches/recent   GET|PUT /settings
  GET|PUT /profile
  GET|POST|DELETE /notifications…
  POST /ingest/static-data
"""

import logging
from contextlib import asynccontextmanager
from datetime import date as Date, datetime
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from api.schemas import (
    ActivePositionsResponse,
    BookingRequest,
    BookingResponse,
    CurrencyInfo,
    FareQuoteRequest,
    FareQuoteResponse,
    FavoritesResponse,
    FormattedPrice,
    HealthResponse,
    IngestResponse,
    JourneyPositionResponse,
    NotificationsResponse,
    ProfileModel,
    RecentSearch,
    RouteResponse,
    StationResult,
    TrainResult,
)
from bookings.payment import PaymentError
from bookings.service import (
    BOOKING_TABS,
    BookingNotFoundError,
    BookingValidationError,
    ContactInfo,
    InvalidTransitionError,
    PassengerInput,
    cancel_booking,
    create_booking,
    get_booking,
    list_bookings,
)
from config import (
    CORS_ORIGINS,
    INGEST_API_KEY,
    LOCATION_REFRESH_SECONDS,
    SERVICE_FEE,
    STRICT_PROGRESS,
    TAX_FEE,
)
from db.models import Booking, Station, Train
from db.session import SessionLocal, get_session, init_db
from formatting.currency import format_price, list_currencies, resolve_currency
from ingestion.static_data import (
    load_route_stops,
    load_static_data,
    load_station_codes,
    load_trains,
    search_stations,
)
from journey.clock import hhmm_to_minutes
from journey.errors import InvalidClassError, InvalidProgressError, JourneyDataError, ParseError
from journey.fares import FareClass, compute_fare
from journey.position import JourneyPosition, time_to_next_station
from journey.schedule import TrainSchedule, search_trains
from storage import notifications as notes
from storage.kv import KeyValueStore
from storage.user_data import (
    add_favorite,
    get_favorites,
    get_profile,
    get_recent_searches,
    get_settings,
    remove_favorite,
    save_recent_search,
    save_profile,
    update_settings,
)
from tracking.tracker import TrainTracker

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_ingest_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _require_ingest_key(key: str | None = Security(_ingest_key_header)) -> None:
    """
    Optional API-key guard for the ingest endpoint.

    If INGEST_API_KEY is not set the endpoint is open (local dev / testing).
    If it is set, the request must include the matching X-API-Key header.
    """
    if not INGEST_API_KEY:
        return  # no key configured → open
    if key != INGEST_API_KEY:
        raise HTTPException(status_code=401, detail="Invalid or missing X-API-Key header.")


def build_tracker(session: Session) -> TrainTracker:
    """Snapshot the stored catalogue into a new TrainTracker."""
    tracker = TrainTracker(
        load_trains(session),
        route_stops=load_route_stops(session),
        station_codes=load_station_codes(session),
    )
    logger.info("Tracker built for %d trains.", len(tracker.trains))
    return tracker


def _refresh_positions(tracker: TrainTracker) -> None:
    """
    Scheduled job: recompute active train positions.

    Exceptions are caught and logged so one bad refresh cannot stop the
    scheduler.
    """
    try:
        active = tracker.refresh()
        logger.debug("Position refresh complete: %d active trains.", active)
    except Exception as exc:
        logger.error("Position refresh failed: %s", exc, exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    init_db()
    logger.info("Database initialised.")

    db = SessionLocal()
    try:
        if db.query(Train).count() == 0:
            load_static_data(db)
        app.state.tracker = build_tracker(db)
    except Exception as exc:
        logger.warning("Could not load train catalogue on startup: %s", exc)
        app.state.tracker = None
    finally:
        db.close()

    scheduler = AsyncIOScheduler()
    app.state.scheduler = scheduler
    if app.state.tracker is not None and LOCATION_REFRESH_SECONDS > 0:
        _refresh_positions(app.state.tracker)
        scheduler.add_job(
            _refresh_positions,
            "interval",
            seconds=LOCATION_REFRESH_SECONDS,
            args=[app.state.tracker],
            id="tracking_refresh",
            replace_existing=True,
        )
        logger.info("Position refresh scheduled (every %ds).", LOCATION_REFRESH_SECONDS)
    else:
        logger.info("Position refresh disabled.")
    scheduler.start()

    yield

    # Shutdown
    if scheduler.running:
        scheduler.shutdown()


app = FastAPI(
    title="Sri Lanka Rail Companion",
    description="Train search, simulated tracking, fares and bookings for Sri Lankan passenger trains.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Dependencies & helpers
# ---------------------------------------------------------------------------

def get_tracker(request: Request) -> TrainTracker:
    tracker = getattr(request.app.state, "tracker", None)
    if tracker is None:
        raise HTTPException(status_code=503, detail="Train data unavailable: catalogue not loaded.")
    return tracker


def get_store(session: Session = Depends(get_session)) -> KeyValueStore:
    return KeyValueStore(session)


def _train_or_404(tracker: TrainTracker, train_id: str) -> TrainSchedule:
    try:
        return tracker.train(train_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Train '{train_id}' not found.")


def _unavailable(exc: JourneyDataError) -> HTTPException:
    """Route/position data problems surface as 'train data unavailable'."""
    if isinstance(exc, (InvalidClassError, InvalidProgressError)):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=422, detail=f"Train data unavailable: {exc}")


def _train_payload(train: TrainSchedule, favorites: list[str]) -> dict[str, Any]:
    return {
        "id": train.id,
        "name": train.name,
        "number": train.number,
        "source": train.source,
        "destination": train.destination,
        "departure_time": train.departure_time,
        "arrival_time": train.arrival_time,
        "duration_minutes": train.duration_minutes,
        "distance_km": train.distance_km,
        "fare": train.fare_table.as_dict(),
        "amenities": sorted(train.amenities),
        "status": train.status.value,
        "train_type": train.train_type,
        "frequency": train.frequency,
        "is_favorite": train.id in favorites,
    }


def _position_payload(pos: JourneyPosition, running: bool) -> dict[str, Any]:
    now_hhmm = pos.computed_at.strftime("%H:%M")
    return {
        "train_id": pos.train_id,
        "train_number": pos.train_number,
        "last_station": pos.last_station,
        "next_station": pos.next_station,
        "last_station_time": pos.last_station_time,
        "next_station_time": pos.next_station_time,
        "progress_percent": round(pos.progress_percent, 2),
        "segment_progress": round(pos.segment_progress, 2),
        "status": pos.status,
        "has_arrived": pos.has_arrived,
        "is_running": running,
        "time_to_next_station": time_to_next_station(now_hhmm, pos.next_station_time),
        "route_stations": list(pos.route_stations),
        "computed_at": pos.computed_at.isoformat(),
    }


def _booking_payload(booking: Booking, currency: str) -> dict[str, Any]:
    return {
        "id": booking.id,
        "train_id": booking.train_id,
        "journey_date": booking.journey_date,
        "fare_class": booking.fare_class,
        "total_fare": booking.total_fare,
        "formatted_total": format_price(booking.total_fare, currency),
        "passengers": [
            {"name": p.name, "age": p.age, "gender": p.gender or "", "seat_number": p.seat_number}
            for p in booking.passengers
        ],
        "contact": {
            "name": booking.contact_name or "",
            "phone": booking.contact_phone or "",
            "email": booking.contact_email or "",
        },
        "payment_method": booking.payment_method,
        "payment_reference": booking.payment_reference,
        "status": booking.status,
        "booked_at": booking.booked_at,
    }


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get("/health", response_model=HealthResponse)
async def health(request: Request, session: Session = Depends(get_session)) -> HealthResponse:
    """Liveness check plus catalogue and tracking freshness."""
    tracker: TrainTracker | None = getattr(request.app.state, "tracker", None)
    scheduler: AsyncIOScheduler | None = getattr(request.app.state, "scheduler", None)

    next_refresh_at: str | None = None
    job = scheduler.get_job("tracking_refresh") if scheduler else None
    if job and job.next_run_time:
        next_refresh_at = job.next_run_time.isoformat()

    last_refreshed = tracker.last_refreshed_at if tracker else None
    return {
        "status": "ok",
        "timestamp": datetime.utcnow().isoformat(),
        "catalogue": {
            "stations": session.query(Station).count(),
            "trains": session.query(Train).count(),
            "bookings": session.query(Booking).count(),
        },
        "tracking": {
            "active_trains": len(tracker.active_positions()) if tracker else 0,
            "last_refreshed_at": last_refreshed.isoformat() if last_refreshed else None,
            "next_refresh_at": next_refresh_at,
        },
    }


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------

@app.get("/stations", response_model=list[StationResult])
async def list_stations(
    query: str = Query(..., min_length=2, description="Station name substring to search"),
    session: Session = Depends(get_session),
) -> list[StationResult]:
    """Search stations by name substring."""
    return [
        {"id": s.id, "name": s.name, "code": s.code, "city": s.city, "province": s.province}
        for s in search_stations(session, query)
    ]


@app.get("/trains", response_model=list[TrainResult])
async def list_trains(
    source: str | None = Query(None, description="Source station name"),
    destination: str | None = Query(None, description="Destination station name"),
    travel_date: str | None = Query(None, alias="date", description="Journey date as YYYY-MM-DD"),
    tracker: TrainTracker = Depends(get_tracker),
    store: KeyValueStore = Depends(get_store),
) -> list[TrainResult]:
    """
    All trains, or those running source → destination when both are given.
    A source/destination search is remembered in recent searches.
    """
    if (source is None) != (destination is None):
        raise HTTPException(status_code=422, detail="Provide both source and destination, or neither.")
    if travel_date:
        try:
            Date.fromisoformat(travel_date)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=f"Invalid date parameter: {exc}")

    trains = tracker.trains
    if source is not None:
        trains = search_trains(trains, source, destination)
        save_recent_search(store, source, destination, travel_date)

    favorites = get_favorites(store)
    return [_train_payload(t, favorites) for t in trains]


@app.get("/trains/{train_id}", response_model=TrainResult)
async def get_train(
    train_id: str,
    tracker: TrainTracker = Depends(get_tracker),
    store: KeyValueStore = Depends(get_store),
) -> TrainResult:
    train = _train_or_404(tracker, train_id)
    return _train_payload(train, get_favorites(store))


@app.get("/trains/{train_id}/route", response_model=RouteResponse)
async def get_train_route(
    train_id: str,
    tracker: TrainTracker = Depends(get_tracker),
) -> RouteResponse:
    """Station-by-station timetable with interpolated times."""
    _train_or_404(tracker, train_id)
    try:
        route = tracker.route_for(train_id)
    except JourneyDataError as exc:
        raise _unavailable(exc)
    return {
        "train_id": train_id,
        "route_id": route.id,
        "distance_km": route.distance_km,
        "duration_minutes": route.duration_minutes,
        "stations": [
            {
                "name": s.name,
                "code": s.code,
                "arrival_time": s.arrival_time,
                "departure_time": s.departure_time,
            }
            for s in route.stations
        ],
    }


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------

@app.get("/trains/{train_id}/position", response_model=JourneyPositionResponse)
async def get_train_position(
    train_id: str,
    at: str | None = Query(None, description="Clock time HH:MM. Defaults to now."),
    progress: float | None = Query(None, description="Explicit journey progress 0–100"),
    strict: bool = Query(STRICT_PROGRESS, description="Reject out-of-range progress instead of clamping"),
    tracker: TrainTracker = Depends(get_tracker),
) -> JourneyPositionResponse:
    """Current (or hypothetical) position of a train along its route."""
    _train_or_404(tracker, train_id)
    now = datetime.now()
    if at:
        try:
            minutes = hhmm_to_minutes(at)
        except ParseError as exc:
            raise HTTPException(status_code=422, detail=f"Invalid at parameter: {exc}")
        now = now.replace(hour=minutes // 60, minute=minutes % 60, second=0, microsecond=0)
    try:
        position = tracker.get_journey_position(train_id, now=now, progress=progress, strict=strict)
        running = tracker.is_running(train_id, now)
    except JourneyDataError as exc:
        raise _unavailable(exc)
    return _position_payload(position, running)


@app.get("/tracking/active", response_model=ActivePositionsResponse)
async def active_trains(tracker: TrainTracker = Depends(get_tracker)) -> ActivePositionsResponse:
    """Positions from the most recent scheduled refresh."""
    last = tracker.last_refreshed_at
    return {
        "last_refreshed_at": last.isoformat() if last else None,
        "positions": [_position_payload(p, True) for p in tracker.active_positions()],
    }


# ---------------------------------------------------------------------------
# Fares
# ---------------------------------------------------------------------------

@app.post("/fares/quote", response_model=FareQuoteResponse)
async def quote_fare(
    body: FareQuoteRequest,
    tracker: TrainTracker = Depends(get_tracker),
    store: KeyValueStore = Depends(get_store),
) -> FareQuoteResponse:
    train = _train_or_404(tracker, body.train_id)
    try:
        fare_class = FareClass.parse(body.fare_class)
        base = train.fare_table.price_for(fare_class)
        total = compute_fare(train.fare_table, fare_class, body.passengers, SERVICE_FEE, TAX_FEE)
    except JourneyDataError as exc:
        raise _unavailable(exc)
    currency = resolve_currency(body.currency or get_settings(store)["currency"])
    return {
        "train_id": train.id,
        "fare_class": fare_class.value,
        "passengers": body.passengers,
        "base_fare": base,
        "service_fee": SERVICE_FEE,
        "tax": TAX_FEE,
        "total": total,
        "currency": currency,
        "formatted_total": format_price(total, currency),
    }


@app.get("/fares/format", response_model=FormattedPrice)
async def format_amount(
    amount: float = Query(..., description="Amount in LKR"),
    currency: str | None = Query(None, description="LKR, USD, EUR, GBP or INR"),
    store: KeyValueStore = Depends(get_store),
) -> FormattedPrice:
    code = resolve_currency(currency or get_settings(store)["currency"])
    try:
        formatted = format_price(amount, code)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {"amount": amount, "currency": code, "formatted": formatted}


@app.get("/currencies", response_model=list[CurrencyInfo])
async def currencies() -> list[CurrencyInfo]:
    return list_currencies()


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------

@app.post("/bookings", response_model=BookingResponse, status_code=201)
async def book_ticket(
    body: BookingRequest,
    tracker: TrainTracker = Depends(get_tracker),
    session: Session = Depends(get_session),
    store: KeyValueStore = Depends(get_store),
) -> BookingResponse:
    train = _train_or_404(tracker, body.train_id)
    try:
        booking = create_booking(
            session,
            train,
            body.journey_date,
            [PassengerInput(p.name, p.age, p.gender, p.seat_number) for p in body.passengers],
            body.fare_class,
            body.payment_method,
            contact=ContactInfo(body.contact.name, body.contact.phone, body.contact.email),
            store=store,
        )
    except BookingValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except PaymentError as exc:
        raise HTTPException(status_code=402, detail=f"Payment failed: {exc}")
    except JourneyDataError as exc:
        raise _unavailable(exc)
    return _booking_payload(booking, get_settings(store)["currency"])


@app.get("/bookings", response_model=list[BookingResponse])
async def my_bookings(
    tab: str | None = Query(None, description=f"One of {', '.join(BOOKING_TABS)}"),
    session: Session = Depends(get_session),
    store: KeyValueStore = Depends(get_store),
) -> list[BookingResponse]:
    try:
        bookings = list_bookings(session, tab=tab)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    currency = get_settings(store)["currency"]
    return [_booking_payload(b, currency) for b in bookings]


@app.get("/bookings/{booking_id}", response_model=BookingResponse)
async def booking_detail(
    booking_id: str,
    session: Session = Depends(get_session),
    store: KeyValueStore = Depends(get_store),
) -> BookingResponse:
    try:
        booking = get_booking(session, booking_id)
    except BookingNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return _booking_payload(booking, get_settings(store)["currency"])


@app.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel(
    booking_id: str,
    session: Session = Depends(get_session),
    store: KeyValueStore = Depends(get_store),
) -> BookingResponse:
    try:
        booking = cancel_booking(session, booking_id)
    except BookingNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return _booking_payload(booking, get_settings(store)["currency"])


# ---------------------------------------------------------------------------
# Favourites, recent searches, settings
# ---------------------------------------------------------------------------

@app.get("/favorites", response_model=FavoritesResponse)
async def favorites(store: KeyValueStore = Depends(get_store)) -> FavoritesResponse:
    return {"train_ids": get_favorites(store)}


@app.put("/favorites/{train_id}", response_model=FavoritesResponse)
async def favorite_add(
    train_id: str,
    tracker: TrainTracker = Depends(get_tracker),
    store: KeyValueStore = Depends(get_store),
) -> FavoritesResponse:
    _train_or_404(tracker, train_id)
    return {"train_ids": add_favorite(store, train_id)}


@app.delete("/favorites/{train_id}", response_model=FavoritesResponse)
async def favorite_remove(train_id: str, store: KeyValueStore = Depends(get_store)) -> FavoritesResponse:
    return {"train_ids": remove_favorite(store, train_id)}


@app.get("/searches/recent", response_model=list[RecentSearch])
async def recent_searches(store: KeyValueStore = Depends(get_store)) -> list[RecentSearch]:
    return get_recent_searches(store)


@app.get("/settings")
async def read_settings(store: KeyValueStore = Depends(get_store)) -> dict[str, Any]:
    return get_settings(store)


@app.put("/settings")
async def write_settings(
    changes: dict[str, Any] = Body(...),
    store: KeyValueStore = Depends(get_store),
) -> dict[str, Any]:
    try:
        return update_settings(store, changes)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


@app.get("/profile", response_model=ProfileModel)
async def read_profile(store: KeyValueStore = Depends(get_store)) -> ProfileModel:
    profile = get_profile(store)
    if profile is None:
        raise HTTPException(status_code=404, detail="No profile saved")
    return profile


@app.put("/profile", response_model=ProfileModel)
async def write_profile(
    body: ProfileModel,
    store: KeyValueStore = Depends(get_store),
) -> ProfileModel:
    return save_profile(store, body.model_dump())


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

@app.get("/notifications", response_model=NotificationsResponse)
async def list_notifications(store: KeyValueStore = Depends(get_store)) -> NotificationsResponse:
    return {"unread": notes.unread_count(store), "notifications": notes.get_notifications(store)}


@app.get("/notifications/settings")
async def read_notification_settings(store: KeyValueStore = Depends(get_store)) -> dict[str, bool]:
    return notes.get_notification_settings(store)


@app.put("/notifications/settings")
async def write_notification_settings(
    changes: dict[str, bool] = Body(...),
    store: KeyValueStore = Depends(get_store),
) -> dict[str, bool]:
    try:
        return notes.save_notification_settings(store, changes)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


@app.post("/notifications/read-all")
async def read_all_notifications(store: KeyValueStore = Depends(get_store)) -> dict[str, int]:
    return {"marked": notes.mark_all_as_read(store)}


@app.post("/notifications/{notification_id}/read")
async def read_notification(notification_id: str, store: KeyValueStore = Depends(get_store)) -> dict[str, str]:
    if not notes.mark_as_read(store, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found.")
    return {"status": "ok"}


@app.delete("/notifications/{notification_id}")
async def delete_notification(notification_id: str, store: KeyValueStore = Depends(get_store)) -> dict[str, str]:
    if not notes.delete_notification(store, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found.")
    return {"status": "ok"}


@app.delete("/notifications")
async def clear_notifications(store: KeyValueStore = Depends(get_store)) -> dict[str, str]:
    notes.clear_notifications(store)
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Ingest
# ---------------------------------------------------------------------------

@app.post("/ingest/static-data", response_model=IngestResponse)
async def trigger_static_ingest(
    request: Request,
    session: Session = Depends(get_session),
    _: None = Depends(_require_ingest_key),
) -> IngestResponse:
    """
    Reload the static train/station CSVs and rebuild the tracker.
    Existing bookings and user data are kept.
    """
    counts = load_static_data(session)
    tracker = build_tracker(session)
    tracker.refresh()
    request.app.state.tracker = tracker

    scheduler: AsyncIOScheduler | None = getattr(request.app.state, "scheduler", None)
    if scheduler is not None and scheduler.get_job("tracking_refresh"):
        scheduler.modify_job("tracking_refresh", args=[tracker])
    return {
        "status": "ok",
        "counts": counts,
        "message": (
            f"Loaded {counts['stations']} stations, {counts['trains']} trains "
            f"and {counts['route_stops']} route stops; tracker rebuilt."
        ),
    }
