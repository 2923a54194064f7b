"""
SQLAlchemy ORM models for the static train catalogue, bookings and the
local key-value store.

Schedule times (departure_time, arrival_time) are stored as HH:MM strings.
An arrival earlier than the departure means the train arrives the next day.
Fares are stored already normalised into the three class columns.
"""

from sqlalchemy import (
    Column, Date, Float, ForeignKey, Integer, String, Text
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Station(Base):
    __tablename__ = "stations"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, unique=True, index=True)
    code = Column(String, nullable=False)
    city = Column(String)
    province = Column(String)
    address = Column(String)


class Train(Base):
    __tablename__ = "trains"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    number = Column(String, nullable=False)
    source = Column(String, nullable=False, index=True)
    destination = Column(String, nullable=False, index=True)
    departure_time = Column(String, nullable=False)  # HH:MM
    arrival_time = Column(String, nullable=False)    # HH:MM (may be next day)
    duration = Column(String, nullable=False)        # e.g. "8h 35m"
    distance_km = Column(Float, default=0.0)
    fare_first = Column(Float, nullable=True)
    fare_second = Column(Float, nullable=True)
    fare_third = Column(Float, nullable=True)
    amenities = Column(String, default="")           # "|"-separated
    status = Column(String, default="On Time")
    train_type = Column(String, default="Express")
    frequency = Column(String, default="Daily")


class RouteStop(Base):
    """Intermediate stop on a source → destination corridor."""
    __tablename__ = "route_stops"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String, index=True)
    destination = Column(String, index=True)
    stop_sequence = Column(Integer)
    station_name = Column(String, nullable=False)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String, primary_key=True)
    train_id = Column(String, ForeignKey("trains.id"), index=True)
    journey_date = Column(Date, nullable=False, index=True)
    fare_class = Column(String, nullable=False)
    total_fare = Column(Float, nullable=False)
    contact_name = Column(String)
    contact_phone = Column(String)
    contact_email = Column(String)
    payment_method = Column(String, nullable=False)
    payment_reference = Column(String)
    status = Column(String, nullable=False, default="Confirmed")
    booked_at = Column(String)  # ISO 8601 timestamp

    passengers = relationship(
        "Passenger",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="Passenger.position",
    )


class Passenger(Base):
    __tablename__ = "passengers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(String, ForeignKey("bookings.id"), index=True)
    position = Column(Integer)  # order within the booking
    name = Column(String, nullable=False)
    age = Column(Integer, nullable=False)
    gender = Column(String)
    seat_number = Column(String, nullable=True)

    booking = relationship("Booking", back_populates="passengers")


class KeyValueEntry(Base):
    """One JSON document per key."""
    __tablename__ = "kv_entries"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)  # JSON
    updated_at = Column(String)           # ISO 8601 timestamp
