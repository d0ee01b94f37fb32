from datetime import timedelta
from decimal import Decimal

import pytest

from backoffice.errors import (
    CapacityExceededError,
    InsufficientStockError,
    InvalidStateError,
    NotAvailableError,
    NotFoundError,
    ValidationError,
)
from backoffice.models import Event, EventBooking, Product
from backoffice.models.events import (
    BOOKING_ATTENDED,
    BOOKING_CANCELLED,
    BOOKING_CONFIRMED,
    BOOKING_PENDING,
    EVENT_CANCELLED,
)
from backoffice.services import event_service
from backoffice.time_utils import utcnow

CUSTOMER = 42


def _attendees(db_session, event_id):
    return db_session.get(Event, event_id, populate_existing=True).current_attendees


def test_booking_beyond_capacity_fails_then_exact_fit_succeeds(db_session, make_event):
    event = make_event(max_attendees=100, current_attendees=95)

    with pytest.raises(CapacityExceededError) as exc_info:
        event_service.book_event(event.id, CUSTOMER, 10)
    assert exc_info.value.details["remaining"] == 5
    assert _attendees(db_session, event.id) == 95

    booking = event_service.book_event(event.id, CUSTOMER, 5)
    assert booking.status == BOOKING_CONFIRMED
    assert booking.total_amount == Decimal("750.00")
    assert _attendees(db_session, event.id) == 100


def test_failed_booking_leaves_no_row(db_session, make_event):
    event = make_event(max_attendees=2)
    with pytest.raises(CapacityExceededError):
        event_service.book_event(event.id, CUSTOMER, 3)
    assert db_session.query(EventBooking).count() == 0


@pytest.mark.parametrize("tickets", [0, -1])
def test_ticket_count_must_be_positive(db_session, make_event, tickets):
    event = make_event()
    with pytest.raises(ValidationError):
        event_service.book_event(event.id, CUSTOMER, tickets)


def test_only_scheduled_events_take_bookings(db_session, make_event):
    event = make_event(status=EVENT_CANCELLED)
    with pytest.raises(NotAvailableError):
        event_service.book_event(event.id, CUSTOMER, 1)


def test_unknown_event(db_session):
    with pytest.raises(NotFoundError):
        event_service.book_event(404, CUSTOMER, 1)


def test_cancel_confirmed_booking_frees_seats_once(db_session, make_event):
    event = make_event(max_attendees=10)
    booking = event_service.book_event(event.id, CUSTOMER, 4)
    assert _attendees(db_session, event.id) == 4

    cancelled = event_service.cancel_booking(booking.id)
    assert cancelled.status == BOOKING_CANCELLED
    assert cancelled.cancelled_at is not None
    assert _attendees(db_session, event.id) == 0

    event_service.cancel_booking(booking.id)
    assert _attendees(db_session, event.id) == 0


def test_cancel_pending_booking_does_not_touch_attendees(db_session, make_event):
    event = make_event(max_attendees=10, current_attendees=3)
    pending = EventBooking(event_id=event.id, customer_id=CUSTOMER, number_of_tickets=2,
                           total_amount=Decimal("300.00"), status=BOOKING_PENDING)
    db_session.add(pending)
    db_session.commit()

    event_service.cancel_booking(pending.id)
    assert _attendees(db_session, event.id) == 3


def test_attended_booking_cannot_be_cancelled(db_session, make_event):
    event = make_event()
    booking = event_service.book_event(event.id, CUSTOMER, 1)
    booking.status = BOOKING_ATTENDED
    db_session.commit()

    with pytest.raises(InvalidStateError):
        event_service.cancel_booking(booking.id)


def test_customer_cannot_cancel_someone_elses_booking(db_session, make_event):
    event = make_event()
    booking = event_service.book_event(event.id, CUSTOMER, 1)

    with pytest.raises(NotFoundError):
        event_service.cancel_booking(booking.id, customer_id=CUSTOMER + 1)
    assert _attendees(db_session, event.id) == 1


def test_create_event_and_status_update(db_session):
    event = event_service.create_event(
        name="Jazz on the Stoep",
        event_date=(utcnow() + timedelta(days=3)).isoformat(),
        max_attendees=40,
        ticket_price="85.5",
    )
    assert event.ticket_price == Decimal("85.50")
    assert event.current_attendees == 0

    updated = event_service.update_event_status(event.id, EVENT_CANCELLED)
    assert updated.status == EVENT_CANCELLED

    with pytest.raises(ValidationError):
        event_service.update_event_status(event.id, "POSTPONED")


@pytest.mark.parametrize("event_date", [None, "", "next friday"])
def test_create_event_requires_a_real_date(db_session, event_date):
    with pytest.raises(ValidationError):
        event_service.create_event(name="Quiz", event_date=event_date, max_attendees=10, ticket_price="50")
    assert db_session.query(Event).count() == 0


def test_create_event_end_before_start_rejected(db_session):
    starts = utcnow() + timedelta(days=3)
    with pytest.raises(ValidationError):
        event_service.create_event(
            name="Quiz", event_date=starts, end_date=starts - timedelta(hours=1),
            max_attendees=10, ticket_price="50",
        )


def test_upcoming_events_excludes_past_and_cancelled(db_session, make_event):
    soon = make_event(name="Soon", days_ahead=1)
    make_event(name="Later", days_ahead=10)
    make_event(name="Past", days_ahead=-2)
    make_event(name="Off", status=EVENT_CANCELLED)

    names = [e.name for e in event_service.list_upcoming_events()]
    assert names == ["Soon", "Later"]
    assert soon.remaining_capacity == 100


def test_customer_bookings_listed_newest_first(db_session, make_event):
    event = make_event()
    first = event_service.book_event(event.id, CUSTOMER, 1)
    second = event_service.book_event(event.id, CUSTOMER, 2)
    event_service.book_event(event.id, CUSTOMER + 1, 1)

    ids = [b.id for b in event_service.list_customer_bookings(CUSTOMER)]
    assert ids == [second.id, first.id]


class TestEventStock:
    def test_allocate_and_release_returns_unused(self, db_session, make_event, castle_lager):
        event = make_event()

        allocation = event_service.allocate_event_stock(event.id, castle_lager.id, 36)
        assert db_session.get(Product, castle_lager.id, populate_existing=True).stock_level == 64

        released = event_service.release_event_stock(allocation.id, used_units=30)
        assert released.quantity_used == 30
        assert released.released_at is not None
        assert db_session.get(Product, castle_lager.id, populate_existing=True).stock_level == 70

    def test_release_twice_is_rejected(self, db_session, make_event, t_bone):
        event = make_event()
        allocation = event_service.allocate_event_stock(event.id, t_bone.id, 10)
        event_service.release_event_stock(allocation.id)

        with pytest.raises(InvalidStateError):
            event_service.release_event_stock(allocation.id)
        assert db_session.get(Product, t_bone.id, populate_existing=True).stock_level == 50

    def test_allocation_cannot_exceed_stock(self, db_session, make_event, t_bone):
        event = make_event()
        with pytest.raises(InsufficientStockError):
            event_service.allocate_event_stock(event.id, t_bone.id, 51)
        assert db_session.get(Product, t_bone.id, populate_existing=True).stock_level == 50

    def test_cannot_use_more_than_allocated(self, db_session, make_event, t_bone):
        event = make_event()
        allocation = event_service.allocate_event_stock(event.id, t_bone.id, 5)
        with pytest.raises(ValidationError):
            event_service.release_event_stock(allocation.id, used_units=6)
