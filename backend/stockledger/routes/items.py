# Overview: Flask API routes for inventory items; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import with_actor, json_errors
from ..services import ledger_service
from ..validation import json_object, string_fields
from ..services.transaction_service import get_transaction_history, derive_status


items_bp = Blueprint("items", __name__, url_prefix="/api/items")


@items_bp.post("")
@with_actor
@json_errors("stock in item")
def stock_in_route():
    """
    Receive a new serialized unit.

    Request body:
    {
        "serial_number": "SN-001",
        "equipment_category": "Interactive Panel",
        "model": "IFP-65",
        "size": "65",          (optional)
        "batch": "B2024-01",
        "remarks": "",         (optional)
        "date": "2024-01-15T08:00:00Z"  (optional, defaults to now)
    }
    """
    data = string_fields(
        json_object(),
        "serial_number", "equipment_category", "model", "size", "batch", "remarks", "date", "source",
    )

    item = ledger_service.stock_in(
        serial_number=data.get("serial_number"),
        equipment_category=data.get("equipment_category"),
        model=data.get("model"),
        size=data.get("size"),
        batch=data.get("batch"),
        remarks=data.get("remarks"),
        occurred_at=data.get("date"),
        actor_uid=g.actor_uid,
        source=data.get("source") or "manual",
    )
    return jsonify({"item": item.to_dict()}), 201


@items_bp.get("")
@json_errors("list items")
def list_items_route():
    items = ledger_service.list_items(
        status=request.args.get("status"),
        category=request.args.get("category"),
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"items": [item.to_dict() for item in items]}), 200


@items_bp.get("/summary")
@json_errors("summarize inventory")
def summary_route():
    return jsonify(ledger_service.status_summary()), 200


@items_bp.get("/<serial_number>")
@json_errors("get item")
def get_item_route(serial_number: str):
    item = ledger_service.get_item(serial_number)
    return jsonify({"item": item.to_dict()}), 200


@items_bp.get("/<serial_number>/transactions")
@json_errors("get item transactions")
def item_transactions_route(serial_number: str):
    item = ledger_service.get_item(serial_number)
    history = get_transaction_history(item.serial_number)
    return jsonify({
        "serial_number": item.serial_number,
        "status": item.status,
        "derived_status": derive_status(history),
        "transactions": [tx.to_dict() for tx in history],
    }), 200
