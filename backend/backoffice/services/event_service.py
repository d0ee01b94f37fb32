# Overview: Service-layer operations for event bookings and event stock allocations.

"""
Event capacity invariants (authoritative)

- 0 <= current_attendees <= max_attendees, always.
- Booking increments current_attendees with ONE conditional UPDATE
  (status = SCHEDULED AND current_attendees + n <= max_attendees) in the
  same transaction as the CONFIRMED booking row.
- Cancelling a CONFIRMED booking flips its status conditionally and
  decrements current_attendees by exactly number_of_tickets, once.
- PENDING bookings hold no seats; cancelling them only changes status.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..errors import (
    CapacityExceededError,
    InvalidStateError,
    NotAvailableError,
    NotFoundError,
    ValidationError,
)
from ..models import Event, EventBooking, EventStock
from ..models.events import (
    BOOKING_ATTENDED,
    BOOKING_CANCELLED,
    BOOKING_CONFIRMED,
    BOOKING_PENDING,
    EVENT_SCHEDULED,
    EVENT_STATUSES,
)
from backoffice.time_utils import normalize_datetime, utcnow
from .concurrency import run_with_retry
from .inventory_service import REASON_EVENT_ALLOCATION, REASON_EVENT_RELEASE, reserve, return_stock
from .pack_service import money


def _require_positive(value, label: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{label} must be greater than 0.", details={label: value})


def get_event(event_id: int) -> Event:
    event = db.session.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event not found", details={"event_id": event_id})
    return event


def get_booking(booking_id: int, *, customer_id: int | None = None) -> EventBooking:
    booking = db.session.get(EventBooking, booking_id)
    if booking is None or (customer_id is not None and booking.customer_id != customer_id):
        raise NotFoundError("Booking not found", details={"booking_id": booking_id})
    return booking


def create_event(
    *,
    name: str,
    event_date,
    max_attendees: int,
    ticket_price,
    description: str | None = None,
    end_date=None,
    created_by_user_id: int | None = None,
) -> Event:
    if not name or not name.strip():
        raise ValidationError("Event name is required")
    if isinstance(max_attendees, bool) or not isinstance(max_attendees, int) or max_attendees < 0:
        raise ValidationError("max_attendees must be a non-negative integer")
    price = money(ticket_price)
    if price < 0:
        raise ValidationError("ticket_price cannot be negative")
    try:
        starts_at = normalize_datetime(event_date)
        ends_at = normalize_datetime(end_date)
    except ValueError as exc:
        raise ValidationError("event_date and end_date must be ISO-8601 datetimes") from exc
    if starts_at is None:
        raise ValidationError("event_date is required")
    if ends_at is not None and ends_at < starts_at:
        raise ValidationError("end_date must not be before event_date")

    def _op():
        event = Event(
            name=name.strip(),
            description=description,
            event_date=starts_at,
            end_date=ends_at,
            max_attendees=max_attendees,
            current_attendees=0,
            ticket_price=price,
            status=EVENT_SCHEDULED,
            created_by_user_id=created_by_user_id,
        )
        db.session.add(event)
        db.session.commit()
        return event

    return run_with_retry(_op)


def update_event_status(event_id: int, status: str) -> Event:
    if status not in EVENT_STATUSES:
        raise ValidationError(f"Unknown event status {status!r}")

    def _op():
        event = get_event(event_id)
        event.status = status
        db.session.commit()
        return event

    return run_with_retry(_op)


def book_event(event_id: int, customer_id: int, ticket_count: int) -> EventBooking:
    """Reserve ticket_count seats and record a CONFIRMED booking."""
    _require_positive(ticket_count, "ticket_count")

    def _op():
        event = get_event(event_id)
        if event.status != EVENT_SCHEDULED:
            raise NotAvailableError(
                "Event not available for booking.",
                details={"event_id": event_id, "status": event.status},
            )

        result = db.session.execute(
            update(Event)
            .where(
                Event.id == event_id,
                Event.status == EVENT_SCHEDULED,
                Event.current_attendees + ticket_count <= Event.max_attendees,
            )
            .values(
                current_attendees=Event.current_attendees + ticket_count,
                version_id=Event.version_id + 1,
            )
            .execution_options(synchronize_session=False)
        )
        event = db.session.get(Event, event_id, populate_existing=True)
        if result.rowcount != 1:
            if event.status != EVENT_SCHEDULED:
                raise NotAvailableError(
                    "Event not available for booking.",
                    details={"event_id": event_id, "status": event.status},
                )
            remaining = event.max_attendees - event.current_attendees
            raise CapacityExceededError(
                f"Not enough tickets available. Only {remaining} tickets left.",
                details={"event_id": event_id, "remaining": remaining, "requested": ticket_count},
            )

        booking = EventBooking(
            event_id=event_id,
            customer_id=customer_id,
            number_of_tickets=ticket_count,
            total_amount=money(event.ticket_price * ticket_count),
            status=BOOKING_CONFIRMED,
            booking_date=utcnow(),
        )
        db.session.add(booking)
        db.session.commit()
        current_app.logger.info("Booked %d tickets for event %s (booking %s)", ticket_count, event_id, booking.id)
        return booking

    return run_with_retry(_op)


def cancel_booking(booking_id: int, *, customer_id: int | None = None) -> EventBooking:
    """
    Cancel a booking and give its seats back.

    Already cancelled: returned unchanged. ATTENDED bookings cannot be cancelled.
    """
    def _op():
        booking = get_booking(booking_id, customer_id=customer_id)
        if booking.status == BOOKING_CANCELLED:
            return booking
        if booking.status == BOOKING_ATTENDED:
            raise InvalidStateError(
                "Attended bookings cannot be cancelled",
                details={"booking_id": booking_id},
            )

        previous_status = booking.status
        result = db.session.execute(
            update(EventBooking)
            .where(EventBooking.id == booking_id, EventBooking.status == previous_status)
            .values(status=BOOKING_CANCELLED, cancelled_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        booking = db.session.get(EventBooking, booking_id, populate_existing=True)
        if result.rowcount != 1:
            if booking.status == BOOKING_CANCELLED:
                return booking
            raise InvalidStateError(
                f"Booking changed to {booking.status} while cancelling",
                details={"booking_id": booking_id},
            )

        if previous_status == BOOKING_CONFIRMED:
            seats = db.session.execute(
                update(Event)
                .where(
                    Event.id == booking.event_id,
                    Event.current_attendees >= booking.number_of_tickets,
                )
                .values(
                    current_attendees=Event.current_attendees - booking.number_of_tickets,
                    version_id=Event.version_id + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if seats.rowcount != 1:
                raise InvalidStateError(
                    "Event attendee count is lower than the booking being cancelled",
                    details={"booking_id": booking_id, "event_id": booking.event_id},
                )
            db.session.get(Event, booking.event_id, populate_existing=True)

        db.session.commit()
        current_app.logger.info("Booking %s cancelled (%s)", booking_id, previous_status)
        return booking

    return run_with_retry(_op)


def list_upcoming_events(now=None) -> list[Event]:
    now = normalize_datetime(now) or utcnow()
    return db.session.query(Event).filter(
        Event.status == EVENT_SCHEDULED,
        Event.event_date >= now,
    ).order_by(Event.event_date.asc()).all()


def list_customer_bookings(customer_id: int) -> list[EventBooking]:
    return db.session.query(EventBooking).filter_by(customer_id=customer_id).order_by(
        EventBooking.booking_date.desc(), EventBooking.id.desc()
    ).all()


def allocate_event_stock(event_id: int, product_id: int, units: int) -> EventStock:
    """Take units out of general stock and set them aside for an event."""
    _require_positive(units, "units")

    def _op():
        get_event(event_id)
        allocation = EventStock(event_id=event_id, product_id=product_id, quantity_allocated=units)
        db.session.add(allocation)
        db.session.flush()
        reserve(
            product_id,
            units,
            reason=REASON_EVENT_ALLOCATION,
            reference=f"event:{event_id}",
            commit=False,
        )
        db.session.commit()
        return allocation

    return run_with_retry(_op)


def release_event_stock(allocation_id: int, *, used_units: int = 0) -> EventStock:
    """Record usage and return the unused remainder of an allocation to stock."""
    if isinstance(used_units, bool) or not isinstance(used_units, int) or used_units < 0:
        raise ValidationError("used_units must be a non-negative integer")

    def _op():
        allocation = db.session.get(EventStock, allocation_id)
        if allocation is None:
            raise NotFoundError("Event stock allocation not found", details={"allocation_id": allocation_id})
        if used_units > allocation.quantity_allocated:
            raise ValidationError(
                "Cannot use more than was allocated",
                details={"allocated": allocation.quantity_allocated, "used": used_units},
            )

        result = db.session.execute(
            update(EventStock)
            .where(EventStock.id == allocation_id, EventStock.released_at.is_(None))
            .values(quantity_used=used_units, released_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateError("Allocation already released", details={"allocation_id": allocation_id})

        remainder = allocation.quantity_allocated - used_units
        if remainder > 0:
            return_stock(
                allocation.product_id,
                remainder,
                reason=REASON_EVENT_RELEASE,
                reference=f"event:{allocation.event_id}",
                commit=False,
            )
        allocation = db.session.get(EventStock, allocation_id, populate_existing=True)
        db.session.commit()
        return allocation

    return run_with_retry(_op)
