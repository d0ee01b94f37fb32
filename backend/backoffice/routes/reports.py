# Overview: Flask API routes for reports; read-only.

# backend/backoffice/routes/reports.py
"""
Reporting API routes.

All date-ranged reports take ?start=YYYY-MM-DD&end=YYYY-MM-DD (full
datetimes are accepted too); a bare end date covers that whole day.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_identity
from ..errors import EngineError, ValidationError
from ..services import reporting_service
from ..validation import coerce_int


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range_args() -> tuple[str, str]:
    start = request.args.get("start")
    end = request.args.get("end")
    if not start or not end:
        raise ValidationError("start and end query parameters are required")
    return start, end


@reports_bp.get("/sales")
@require_identity(user=True)
def sales_report_route():
    try:
        start, end = _range_args()
        top = request.args.get("top")
        report = reporting_service.generate_sales_report(
            start,
            end,
            top_n=coerce_int(top, "top", minimum=1) if top else None,
        )
        return jsonify(report), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to generate sales report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/financial")
@require_identity(user=True)
def financial_report_route():
    try:
        start, end = _range_args()
        return jsonify(reporting_service.generate_financial_report(start, end)), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to generate financial report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/attendance")
@require_identity(user=True)
def attendance_report_route():
    try:
        start, end = _range_args()
        return jsonify(reporting_service.generate_attendance_report(start, end)), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to generate attendance report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/inventory")
@require_identity(user=True)
def inventory_report_route():
    try:
        return jsonify(reporting_service.inventory_report()), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to generate inventory report")
        return jsonify({"error": "Internal server error"}), 500
