# Overview: Flask API routes for returns; parses input and returns JSON responses.

from flask import Blueprint, jsonify, g

from ..decorators import with_actor, json_errors
from ..services import return_service
from ..validation import json_object, string_fields


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@with_actor
@json_errors("process return")
def process_return_route():
    """
    Swap a returned unit for a replacement.

    Request body:
    {
        "returned_serial": "SN-001",
        "replacement_serial": "SN-050",
        "dealer": "Acme Sdn Bhd",   (fallback when SN-001 has no order history)
        "remarks": "Dead pixels"     (optional)
    }
    """
    data = string_fields(json_object(), "returned_serial", "replacement_serial", "dealer", "remarks", "date")

    result = return_service.process_return(
        returned_serial=data.get("returned_serial"),
        replacement_serial=data.get("replacement_serial"),
        dealer=data.get("dealer"),
        remarks=data.get("remarks"),
        occurred_at=data.get("date"),
        actor_uid=g.actor_uid,
    )
    return jsonify(result), 201
