# backend/backoffice/routes/system.py
"""
Health endpoint for the back office.

The database check is the only one that decides the HTTP status; the
inventory probe is informational.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Event, Order, Product
from ..models.inventory import PRODUCT_ACTIVE
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def check_database_health() -> dict:
    """Count the core tables; any storage error marks the database unhealthy."""
    started = time.perf_counter()
    try:
        counts = {
            "products": db.session.query(Product).count(),
            "orders": db.session.query(Order).count(),
            "events": db.session.query(Event).count(),
        }
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(started), "error": "Database error"}

    return {"status": "healthy", "latency_ms": _elapsed_ms(started), "details": counts}


def check_stock_alerts() -> dict:
    try:
        low = db.session.query(Product).filter(
            Product.lifecycle_status == PRODUCT_ACTIVE,
            Product.stock_level <= Product.minimum_stock_level,
        ).count()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Stock alert probe failed")
        return {"status": "unknown"}
    return {"status": "attention" if low else "ok", "low_stock_products": low}


@system_bp.get("/health")
def health():
    database = check_database_health()
    checks = {"database": database}
    if database["status"] == "healthy":
        checks["inventory"] = check_stock_alerts()

    return jsonify({
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": checks,
    }), 200 if database["status"] == "healthy" else 503
