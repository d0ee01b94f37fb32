# Overview: Flask API routes for the customer cart; parses input and returns JSON responses.

# backend/backoffice/routes/cart.py
"""Cart API routes. The customer comes from the X-Customer-Id header."""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_identity
from ..errors import EngineError, NotFoundError
from ..services import cart_service, order_service
from ..validation import coerce_int, json_payload, optional_str, require_fields


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _owned_line_id(customer_id: int, line_id: int) -> int:
    if not any(line.id == line_id for line in cart_service.get_cart_lines(customer_id)):
        raise NotFoundError("Cart line not found", details={"cart_line_id": line_id})
    return line_id


@cart_bp.get("")
@require_identity(customer=True)
def get_cart_route():
    try:
        summary = cart_service.summarize(g.identity.customer_id)
        return jsonify({"cart": summary.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/items")
@require_identity(customer=True)
def add_item_route():
    """
    Add a product to the cart (quantity in packs for six-pack products).

    Body: {"product_id": int, "quantity": int}
    """
    try:
        data = json_payload(request.get_json(silent=True))
        require_fields(data, "product_id", "quantity")
        product_id = coerce_int(data["product_id"], "product_id", minimum=1)
        quantity = coerce_int(data["quantity"], "quantity")

        line = cart_service.add_item(g.identity.customer_id, product_id, quantity)
        summary = cart_service.summarize(g.identity.customer_id)
        return jsonify({"line": line.to_dict(), "cart": summary.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.patch("/items/<int:line_id>")
@require_identity(customer=True)
def update_item_route(line_id: int):
    """Set a line's quantity; zero or less removes the line."""
    try:
        data = json_payload(request.get_json(silent=True))
        require_fields(data, "quantity")
        quantity = coerce_int(data["quantity"], "quantity")

        _owned_line_id(g.identity.customer_id, line_id)
        line = cart_service.update_quantity(line_id, quantity)
        summary = cart_service.summarize(g.identity.customer_id)
        return jsonify({
            "line": line.to_dict() if line is not None else None,
            "cart": summary.to_dict(),
        }), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/items/<int:line_id>")
@require_identity(customer=True)
def remove_item_route(line_id: int):
    try:
        _owned_line_id(g.identity.customer_id, line_id)
        cart_service.remove_item(line_id)
        summary = cart_service.summarize(g.identity.customer_id)
        return jsonify({"cart": summary.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("")
@require_identity(customer=True)
def clear_cart_route():
    try:
        cleared = cart_service.clear_cart(g.identity.customer_id)
        return jsonify({"cleared": cleared}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to clear cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/checkout")
@require_identity(customer=True)
def checkout_route():
    """
    Convert the cart into a PENDING order.

    Body (optional): {"payment_method": "CASH", "payment_reference": "..."}
    The order is processed by X-User-Id when present, otherwise by the customer.
    """
    try:
        data = json_payload(request.get_json(silent=True))
        identity = g.identity
        order = order_service.create_order_from_cart(
            identity.customer_id,
            identity.user_id or identity.customer_id,
            payment_method=data.get("payment_method") or "CASH",
            payment_reference=optional_str(data.get("payment_reference")),
        )
        return jsonify({"order": order.to_dict(include_lines=True)}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to check out cart")
        return jsonify({"error": "Internal server error"}), 500
