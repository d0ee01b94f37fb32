# Overview: Flask API routes for stock levels, pack sales and adjustments.

# backend/backoffice/routes/inventory.py
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_identity
from ..errors import EngineError, ValidationError
from ..services import inventory_service
from ..services.pack_service import default_engine
from ..validation import coerce_int, json_payload, optional_str, require_fields


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/products")
def list_products_route():
    """Active products with stock and pack breakdown."""
    try:
        products = inventory_service.list_active_products()
        return jsonify({
            "products": [
                {**p.to_dict(), "pack": default_engine.pack_breakdown(p).to_dict()}
                for p in products
            ]
        }), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/products/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = inventory_service.get_product(product_id)
        movements = inventory_service.recent_movements(product_id, limit=20)
        return jsonify({
            "product": product.to_dict(),
            "pack": default_engine.pack_breakdown(product).to_dict(),
            "movements": [m.to_dict() for m in movements],
        }), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load product")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/low-stock")
def low_stock_route():
    try:
        products = inventory_service.low_stock_products()
        return jsonify({"products": [p.to_dict() for p in products]}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list low stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/products/<int:product_id>/adjust")
@require_identity(user=True)
def adjust_route(product_id: int):
    """
    Manual stock correction in single items.

    Body: {"delta": int, "note": "..."}; 409 if the result would be negative.
    """
    try:
        data = json_payload(request.get_json(silent=True))
        require_fields(data, "delta")
        delta = coerce_int(data["delta"], "delta")
        if delta == 0:
            raise ValidationError("delta must not be 0")
        level = inventory_service.adjust(product_id, delta, reference=optional_str(data.get("note")))
        return jsonify({"product_id": product_id, "stock_level": level}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/products/<int:product_id>/sell")
@require_identity(user=True)
def counter_sale_route(product_id: int):
    """
    Counter sale without an order.

    Body: {"packs": int} or {"units": int}
    """
    try:
        data = json_payload(request.get_json(silent=True))
        if data.get("packs") is not None:
            packs = coerce_int(data["packs"], "packs")
            units = inventory_service.process_pack_sale(product_id, packs)
            return jsonify({"product_id": product_id, "packs": packs, "units_deducted": units}), 200

        require_fields(data, "units")
        units = coerce_int(data["units"], "units")
        total = inventory_service.process_single_unit_sale(product_id, units)
        return jsonify({"product_id": product_id, "units_deducted": units, "total": f"{total:.2f}"}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record counter sale")
        return jsonify({"error": "Internal server error"}), 500
