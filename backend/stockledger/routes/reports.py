# Overview: Flask API routes for reports; parses query parameters and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import json_errors
from ..errors import ValidationError
from ..services.reporting_service import get_engine


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _period() -> tuple[int, int]:
    year = request.args.get("year", type=int)
    month = request.args.get("month", type=int)
    if year is None or month is None:
        raise ValidationError("year and month are required")
    return year, month


@reports_bp.get("/monthly")
@json_errors("build monthly report")
def monthly_report():
    year, month = _period()
    use_cache = request.args.get("refresh", "false").lower() != "true"
    report = get_engine().monthly_activity(year, month, use_cache=use_cache)
    return jsonify(report), 200


@reports_bp.get("/monthly/details")
@json_errors("build monthly details")
def monthly_details():
    year, month = _period()
    kind = request.args.get("kind", "stock_in")
    rows = get_engine().monthly_details(year, month, kind)
    return jsonify({"year": year, "month": month, "kind": kind, "rows": rows}), 200


@reports_bp.get("/sales")
@json_errors("build sales report")
def sales_report():
    report = get_engine().sales_report(
        request.args.get("start"),
        request.args.get("end"),
        dealer=request.args.get("dealer"),
        location=request.args.get("location"),
    )
    return jsonify(report), 200


@reports_bp.get("/months")
@json_errors("list report months")
def available_months():
    return jsonify({"months": get_engine().available_months()}), 200


@reports_bp.delete("/cache")
@json_errors("clear report cache")
def clear_cache():
    cleared = get_engine().cache.clear()
    return jsonify({"cleared": cleared}), 200
