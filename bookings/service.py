"""
Ticket booking flow.

A booking is created only after the (mock) payment succeeds, so it starts
life as Confirmed.  Its only possible transition is Confirmed → Cancelled;
Cancelled is terminal.

  create_booking   validate passengers → price → pay → persist → notify
  cancel_booking   Confirmed → Cancelled
  list_bookings    optional tab filter: upcoming / completed / cancelled
"""

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from bookings.payment import process_payment
from config import MAX_PASSENGERS, SERVICE_FEE, TAX_FEE
from db.models import Booking, Passenger
from journey.fares import FareClass, compute_fare
from journey.schedule import TrainSchedule, TrainStatus
from storage.kv import KeyValueStore
from storage.notifications import BOOKING_CONFIRMATION, add_notification

logger = logging.getLogger(__name__)


class BookingStatus(str, enum.Enum):
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"


BOOKING_TABS = ("upcoming", "completed", "cancelled")


class BookingError(Exception):
    """Base class for booking flow failures."""


class BookingValidationError(BookingError):
    pass


class BookingNotFoundError(BookingError):
    pass


class InvalidTransitionError(BookingError):
    pass


@dataclass(frozen=True)
class PassengerInput:
    name: str
    age: int
    gender: str = ""
    seat_number: Optional[str] = None


@dataclass(frozen=True)
class ContactInfo:
    name: str = ""
    phone: str = ""
    email: str = ""


def _validate_passengers(passengers: Sequence[PassengerInput]) -> None:
    if not 1 <= len(passengers) <= MAX_PASSENGERS:
        raise BookingValidationError(
            f"A booking needs between 1 and {MAX_PASSENGERS} passengers, got {len(passengers)}."
        )
    for i, p in enumerate(passengers, 1):
        if not p.name or not p.name.strip():
            raise BookingValidationError(f"Passenger {i} has no name.")
        if p.age is None or p.age < 0:
            raise BookingValidationError(f"Passenger {i} has an invalid age.")


def quote_fare(train: TrainSchedule, fare_class: str, passenger_count: int) -> float:
    """Total price with the configured service fee and tax."""
    return compute_fare(train.fare_table, fare_class, passenger_count, SERVICE_FEE, TAX_FEE)


def create_booking(
    session: Session,
    train: TrainSchedule,
    journey_date: date,
    passengers: Sequence[PassengerInput],
    fare_class: str,
    payment_method: str,
    contact: Optional[ContactInfo] = None,
    store: Optional[KeyValueStore] = None,
) -> Booking:
    """
    Raises:
        BookingValidationError: bad passenger list, or the train is cancelled.
        InvalidClassError:      unknown fare class.
        PaymentError:           mock payment rejected; nothing is stored.
    """
    _validate_passengers(passengers)
    if train.status is TrainStatus.CANCELLED:
        raise BookingValidationError(f"Train {train.number} is cancelled.")

    cls = FareClass.parse(fare_class)
    total = quote_fare(train, cls, len(passengers))
    payment = process_payment(payment_method, total)
    contact = contact or ContactInfo()

    booking = Booking(
        id="BK" + uuid.uuid4().hex[:12].upper(),
        train_id=train.id,
        journey_date=journey_date,
        fare_class=cls.value,
        total_fare=total,
        contact_name=contact.name,
        contact_phone=contact.phone,
        contact_email=contact.email,
        payment_method=payment_method,
        payment_reference=payment.reference,
        status=BookingStatus.CONFIRMED.value,
        booked_at=datetime.utcnow().isoformat(),
    )
    booking.passengers = [
        Passenger(
            position=i,
            name=p.name.strip(),
            age=p.age,
            gender=p.gender,
            seat_number=p.seat_number,
        )
        for i, p in enumerate(passengers)
    ]
    session.add(booking)
    session.commit()
    logger.info(
        "Booking %s confirmed: train %s on %s, %d passenger(s), %.2f LKR.",
        booking.id, train.number, journey_date, len(passengers), total,
    )

    if store is not None:
        add_notification(
            store,
            BOOKING_CONFIRMATION,
            "Booking Confirmed",
            f"Your booking {booking.id} for {train.name} on {journey_date.isoformat()} is confirmed.",
            data={"bookingId": booking.id, "trainId": train.id},
        )
    return booking


def get_booking(session: Session, booking_id: str) -> Booking:
    booking = session.get(Booking, booking_id)
    if booking is None:
        raise BookingNotFoundError(f"Booking {booking_id!r} not found.")
    return booking


def cancel_booking(session: Session, booking_id: str) -> Booking:
    """
    Raises:
        BookingNotFoundError:   unknown id.
        InvalidTransitionError: booking already cancelled.
    """
    booking = get_booking(session, booking_id)
    if booking.status == BookingStatus.CANCELLED.value:
        raise InvalidTransitionError(f"Booking {booking_id} is already cancelled.")
    booking.status = BookingStatus.CANCELLED.value
    session.commit()
    logger.info("Booking %s cancelled.", booking_id)
    return booking


def list_bookings(
    session: Session,
    tab: Optional[str] = None,
    today: Optional[date] = None,
) -> list[Booking]:
    """
    All bookings, newest journey first, optionally filtered by tab:
      upcoming   journey_date >= today, not cancelled
      completed  journey_date <  today, not cancelled
      cancelled  status Cancelled
    """
    if tab is not None and tab not in BOOKING_TABS:
        raise ValueError(f"Unknown bookings tab {tab!r}; expected one of {', '.join(BOOKING_TABS)}.")
    today = today or date.today()
    query = session.query(Booking)
    cancelled = BookingStatus.CANCELLED.value

    if tab == "upcoming":
        query = query.filter(Booking.journey_date >= today, Booking.status != cancelled)
    elif tab == "completed":
        query = query.filter(Booking.journey_date < today, Booking.status != cancelled)
    elif tab == "cancelled":
        query = query.filter(Booking.status == cancelled)

    return query.order_by(Booking.journey_date.desc(), Booking.booked_at.desc()).all()
