# Overview: Flask API routes for orders; parses input and returns JSON responses.

# backend/backoffice/routes/orders.py
"""
Order API routes.

Staff calls carry X-User-Id. Customers (X-Customer-Id only) can see and
cancel their own orders and nothing else.
"""

from datetime import date

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_identity
from ..errors import EngineError, ValidationError
from ..models.orders import ORDER_COMPLETED, PAYMENT_CASH
from ..services import order_service
from ..validation import coerce_datetime, coerce_int, json_payload, optional_str, require_fields


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _visible_customer_id():
    """None for staff (sees everything), else the calling customer's id."""
    identity = g.identity
    if identity.user_id is not None:
        return None
    if identity.customer_id is None:
        raise ValidationError("X-User-Id or X-Customer-Id header required")
    return identity.customer_id


@orders_bp.post("")
@require_identity(user=True)
def create_order_route():
    """
    Direct order entry.

    Body:
    {
      "items": [{"product_id": 1, "quantity": 2, "sale_unit": "PACK"}],
      "customer_id": 7,                 # optional
      "status": "COMPLETED",            # PENDING or COMPLETED
      "payment_method": "CASH",
      "payment_reference": "..."
    }
    """
    try:
        data = json_payload(request.get_json(silent=True))
        require_fields(data, "items")
        raw_items = data["items"]
        if not isinstance(raw_items, list):
            raise ValidationError("items must be a list")

        items = []
        for raw in raw_items:
            raw = json_payload(raw)
            require_fields(raw, "product_id", "quantity")
            items.append(order_service.OrderItemRequest(
                product_id=coerce_int(raw["product_id"], "product_id", minimum=1),
                quantity=coerce_int(raw["quantity"], "quantity"),
                sale_unit=raw.get("sale_unit") or "PACK",
            ))

        customer_id = data.get("customer_id")
        order = order_service.create_order(
            items,
            g.identity.user_id,
            customer_id=coerce_int(customer_id, "customer_id", minimum=1) if customer_id is not None else None,
            status=data.get("status") or ORDER_COMPLETED,
            payment_method=data.get("payment_method") or PAYMENT_CASH,
            payment_reference=optional_str(data.get("payment_reference")),
        )
        return jsonify({"order": order.to_dict(include_lines=True)}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_identity()
def list_orders_route():
    """Query params: start, end (ISO-8601), status, customer_id (staff only)."""
    try:
        customer_id = _visible_customer_id()
        args = request.args
        if customer_id is None and args.get("customer_id"):
            customer_id = coerce_int(args["customer_id"], "customer_id", minimum=1)

        orders = order_service.list_orders(
            start=coerce_datetime(args["start"], "start") if args.get("start") else None,
            end=coerce_datetime(args["end"], "end") if args.get("end") else None,
            customer_id=customer_id,
            status=args.get("status") or None,
        )
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/daily-total")
@require_identity(user=True)
def daily_total_route():
    try:
        raw = request.args.get("day")
        try:
            day = date.fromisoformat(raw) if raw else date.today()
        except ValueError:
            raise ValidationError("day must be YYYY-MM-DD")
        total = order_service.daily_sales_total(day)
        return jsonify({"day": day.isoformat(), "total": f"{total:.2f}"}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to compute daily sales total")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_identity()
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id, customer_id=_visible_customer_id())
        return jsonify({"order": order.to_dict(include_lines=True)}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_identity()
def cancel_order_route(order_id: int):
    """Cancel and restock. Repeating the call returns the cancelled order unchanged."""
    try:
        data = json_payload(request.get_json(silent=True))
        # Ownership check for customers
        order_service.get_order(order_id, customer_id=_visible_customer_id())
        order = order_service.cancel_order(order_id, reason=optional_str(data.get("reason")))
        return jsonify({"order": order.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/status")
@require_identity(user=True)
def update_status_route(order_id: int):
    """Body: {"status": "APPROVED" | "COMPLETED" | "CANCELLED" | "REFUNDED", "reason": "..."}"""
    try:
        data = json_payload(request.get_json(silent=True))
        require_fields(data, "status")
        order = order_service.update_order_status(
            order_id,
            str(data["status"]).strip().upper(),
            actor_user_id=g.identity.user_id,
            reason=optional_str(data.get("reason")),
        )
        return jsonify({"order": order.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500
