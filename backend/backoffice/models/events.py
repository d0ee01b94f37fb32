from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import utcnow, to_utc_z

EVENT_SCHEDULED = "SCHEDULED"
EVENT_ONGOING = "ONGOING"
EVENT_COMPLETED = "COMPLETED"
EVENT_CANCELLED = "CANCELLED"
EVENT_STATUSES = (EVENT_SCHEDULED, EVENT_ONGOING, EVENT_COMPLETED, EVENT_CANCELLED)

BOOKING_PENDING = "PENDING"
BOOKING_CONFIRMED = "CONFIRMED"
BOOKING_CANCELLED = "CANCELLED"
BOOKING_ATTENDED = "ATTENDED"
BOOKING_STATUSES = (BOOKING_PENDING, BOOKING_CONFIRMED, BOOKING_CANCELLED, BOOKING_ATTENDED)


def _money(value) -> str | None:
    return None if value is None else f"{value:.2f}"


class Event(db.Model):
    """
    Ticketed event with a fixed attendee capacity.

    current_attendees only moves through event_service conditional UPDATEs;
    the CHECK constraint pins 0 <= current_attendees <= max_attendees.
    """
    __tablename__ = "events"
    __table_args__ = (
        db.CheckConstraint(
            "current_attendees >= 0 AND current_attendees <= max_attendees",
            name="ck_events_attendees_within_capacity",
        ),
        db.Index("ix_events_status_date", "status", "event_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)

    event_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=EVENT_SCHEDULED)

    max_attendees = db.Column(db.Integer, nullable=False)
    current_attendees = db.Column(db.Integer, nullable=False, default=0)
    ticket_price = db.Column(db.Numeric(12, 2), nullable=False)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def remaining_capacity(self) -> int:
        return self.max_attendees - self.current_attendees

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "event_date": to_utc_z(self.event_date),
            "end_date": to_utc_z(self.end_date),
            "status": self.status,
            "max_attendees": self.max_attendees,
            "current_attendees": self.current_attendees,
            "remaining_capacity": self.remaining_capacity,
            "ticket_price": _money(self.ticket_price),
            "created_by_user_id": self.created_by_user_id,
            "version_id": self.version_id,
        }


class EventBooking(db.Model):
    __tablename__ = "event_bookings"
    __table_args__ = (
        db.CheckConstraint("number_of_tickets >= 1", name="ck_event_bookings_tickets_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, nullable=False, index=True)

    number_of_tickets = db.Column(db.Integer, nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=BOOKING_CONFIRMED)

    booking_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "customer_id": self.customer_id,
            "number_of_tickets": self.number_of_tickets,
            "total_amount": _money(self.total_amount),
            "status": self.status,
            "booking_date": to_utc_z(self.booking_date),
            "cancelled_at": to_utc_z(self.cancelled_at),
        }


class EventStock(db.Model):
    """Product units set aside for an event (taken out of stock until released)."""
    __tablename__ = "event_stock"
    __table_args__ = (
        db.CheckConstraint("quantity_allocated >= 1", name="ck_event_stock_allocated_positive"),
        db.CheckConstraint(
            "quantity_used >= 0 AND quantity_used <= quantity_allocated",
            name="ck_event_stock_used_within_allocation",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_allocated = db.Column(db.Integer, nullable=False)
    quantity_used = db.Column(db.Integer, nullable=False, default=0)

    allocated_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    released_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "product_id": self.product_id,
            "quantity_allocated": self.quantity_allocated,
            "quantity_used": self.quantity_used,
            "allocated_at": to_utc_z(self.allocated_at),
            "released_at": to_utc_z(self.released_at),
        }
