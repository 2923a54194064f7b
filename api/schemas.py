from __future__ import annotations
from datetime import date
from typing import Any, Literal
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Catalogue: /stations, /trains
# ---------------------------------------------------------------------------

class StationResult(BaseModel):
    id: str
    name: str
    code: str
    city: str | None = None
    province: str | None = None


class FareTableModel(BaseModel):
    firstClass: float | None
    secondClass: float | None
    thirdClass: float | None


class TrainResult(BaseModel):
    id: str
    name: str
    number: str
    source: str
    destination: str
    departure_time: str
    arrival_time: str
    duration_minutes: int
    distance_km: float
    fare: FareTableModel
    amenities: list[str]
    status: Literal["On Time", "Delayed", "Cancelled"]
    train_type: str
    frequency: str
    is_favorite: bool = False


class RouteStation(BaseModel):
    name: str
    code: str
    arrival_time: str
    departure_time: str


class RouteResponse(BaseModel):
    train_id: str
    route_id: str
    distance_km: float
    duration_minutes: int
    stations: list[RouteStation]


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------

class JourneyPositionResponse(BaseModel):
    train_id: str
    train_number: str
    last_station: str
    next_station: str
    last_station_time: str
    next_station_time: str
    progress_percent: float
    segment_progress: float
    status: str
    has_arrived: bool
    is_running: bool
    time_to_next_station: str
    route_stations: list[str]
    computed_at: str


class ActivePositionsResponse(BaseModel):
    last_refreshed_at: str | None
    positions: list[JourneyPositionResponse]


# ---------------------------------------------------------------------------
# Fares
# ---------------------------------------------------------------------------

class FareQuoteRequest(BaseModel):
    train_id: str
    fare_class: str = Field("secondClass", description="firstClass | secondClass | thirdClass (or 1st/2nd/3rd)")
    passengers: int = Field(1, ge=1)
    currency: str | None = None


class FareQuoteResponse(BaseModel):
    train_id: str
    fare_class: str
    passengers: int
    base_fare: float
    service_fee: float
    tax: float
    total: float
    currency: str
    formatted_total: str


class FormattedPrice(BaseModel):
    amount: float
    currency: str
    formatted: str


class CurrencyInfo(BaseModel):
    code: str
    name: str
    symbol: str
    rate: float  # 1 LKR in this currency


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------

class PassengerModel(BaseModel):
    name: str = Field(..., min_length=1)
    age: int = Field(..., ge=0)
    gender: str = ""
    seat_number: str | None = None


class ContactModel(BaseModel):
    name: str = ""
    phone: str = ""
    email: str = ""


class BookingRequest(BaseModel):
    train_id: str
    journey_date: date
    fare_class: str = "secondClass"
    passengers: list[PassengerModel]
    contact: ContactModel = Field(default_factory=ContactModel)
    payment_method: str


class BookingResponse(BaseModel):
    id: str
    train_id: str
    journey_date: date
    fare_class: str
    total_fare: float
    formatted_total: str
    passengers: list[PassengerModel]
    contact: ContactModel
    payment_method: str
    payment_reference: str | None
    status: Literal["Confirmed", "Cancelled"]
    booked_at: str | None


# ---------------------------------------------------------------------------
# User data
# ---------------------------------------------------------------------------

class FavoritesResponse(BaseModel):
    train_ids: list[str]


class ProfileModel(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = ""
    phone: str = ""
    profile_image: str | None = None


class RecentSearch(BaseModel):
    source: str
    destination: str
    date: str | None = None
    timestamp: str


class Notification(BaseModel):
    id: str
    type: str
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: str
    read: bool


class NotificationsResponse(BaseModel):
    unread: int
    notifications: list[Notification]


# ---------------------------------------------------------------------------
# GET /health, POST /ingest/*
# ---------------------------------------------------------------------------

class CatalogueStats(BaseModel):
    stations: int
    trains: int
    bookings: int


class TrackingStats(BaseModel):
    active_trains: int
    last_refreshed_at: str | None
    next_refresh_at: str | None


class HealthResponse(BaseModel):
    status: Literal["ok"]
    timestamp: str
    catalogue: CatalogueStats
    tracking: TrackingStats


class IngestResponse(BaseModel):
    status: Literal["ok"]
    counts: dict[str, int]
    message: str
