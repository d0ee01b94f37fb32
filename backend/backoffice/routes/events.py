# Overview: Flask API routes for events, bookings and event stock.

# backend/backoffice/routes/events.py
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_identity
from ..errors import EngineError
from ..services import event_service
from ..validation import (
    coerce_datetime,
    coerce_int,
    coerce_money,
    json_payload,
    optional_str,
    require_fields,
)


events_bp = Blueprint("events", __name__, url_prefix="/api/events")


@events_bp.get("")
def list_events_route():
    """Upcoming SCHEDULED events, soonest first."""
    try:
        events = event_service.list_upcoming_events()
        return jsonify({"events": [e.to_dict() for e in events]}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list events")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.post("")
@require_identity(user=True)
def create_event_route():
    try:
        data = json_payload(request.get_json(silent=True))
        require_fields(data, "name", "event_date", "max_attendees", "ticket_price")
        event = event_service.create_event(
            name=str(data["name"]),
            description=optional_str(data.get("description")),
            event_date=coerce_datetime(data["event_date"], "event_date"),
            end_date=coerce_datetime(data["end_date"], "end_date") if data.get("end_date") else None,
            max_attendees=coerce_int(data["max_attendees"], "max_attendees", minimum=0),
            ticket_price=coerce_money(data["ticket_price"], "ticket_price"),
            created_by_user_id=g.identity.user_id,
        )
        return jsonify({"event": event.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create event")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.get("/<int:event_id>")
def get_event_route(event_id: int):
    try:
        event = event_service.get_event(event_id)
        return jsonify({"event": event.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load event")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.patch("/<int:event_id>/status")
@require_identity(user=True)
def update_event_status_route(event_id: int):
    try:
        data = json_payload(request.get_json(silent=True))
        require_fields(data, "status")
        event = event_service.update_event_status(event_id, str(data["status"]).strip().upper())
        return jsonify({"event": event.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update event status")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.post("/<int:event_id>/bookings")
@require_identity(customer=True)
def book_event_route(event_id: int):
    """Body: {"tickets": int}. 409 CAPACITY_EXCEEDED carries the remaining seats."""
    try:
        data = json_payload(request.get_json(silent=True))
        require_fields(data, "tickets")
        booking = event_service.book_event(
            event_id,
            g.identity.customer_id,
            coerce_int(data["tickets"], "tickets"),
        )
        return jsonify({"booking": booking.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to book event")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.get("/bookings")
@require_identity(customer=True)
def list_bookings_route():
    try:
        bookings = event_service.list_customer_bookings(g.identity.customer_id)
        return jsonify({"bookings": [b.to_dict() for b in bookings]}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list bookings")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.post("/bookings/<int:booking_id>/cancel")
@require_identity(customer=True)
def cancel_booking_route(booking_id: int):
    try:
        booking = event_service.cancel_booking(booking_id, customer_id=g.identity.customer_id)
        return jsonify({"booking": booking.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel booking")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.post("/<int:event_id>/stock")
@require_identity(user=True)
def allocate_stock_route(event_id: int):
    """Body: {"product_id": int, "units": int} (single items)."""
    try:
        data = json_payload(request.get_json(silent=True))
        require_fields(data, "product_id", "units")
        allocation = event_service.allocate_event_stock(
            event_id,
            coerce_int(data["product_id"], "product_id", minimum=1),
            coerce_int(data["units"], "units"),
        )
        return jsonify({"allocation": allocation.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to allocate event stock")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.post("/stock/<int:allocation_id>/release")
@require_identity(user=True)
def release_stock_route(allocation_id: int):
    """Body: {"used_units": int}; the unused remainder goes back to stock."""
    try:
        data = json_payload(request.get_json(silent=True))
        allocation = event_service.release_event_stock(
            allocation_id,
            used_units=coerce_int(data.get("used_units", 0), "used_units", minimum=0),
        )
        return jsonify({"allocation": allocation.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to release event stock")
        return jsonify({"error": "Internal server error"}), 500
