# Overview: Flask API routes for orders; parses input and returns JSON responses.

# backend/stockledger/routes/orders.py
"""
Order API Routes

DESIGN:
- POST /api/orders reserves Active items under a new order number
- Documents are multipart uploads in the "file" field
- Invoice and delivery axes have separate endpoints; neither writes the other
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import with_actor, json_errors
from ..errors import ValidationError
from ..services import order_service
from ..validation import json_object, string_fields


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _uploaded_file() -> tuple[bytes, str]:
    if "file" not in request.files:
        raise ValidationError("file is required")
    file = request.files["file"]
    return file.read(), file.filename or ""


# =============================================================================
# ORDERS
# =============================================================================

@orders_bp.post("")
@with_actor
@json_errors("create order")
def create_order_route():
    """
    Reserve items under a new order.

    Request body:
    {
        "order_number": "PO-1001",
        "dealer": "Acme Sdn Bhd",
        "client": "SMK Taman Jaya",   (optional, default "N/A")
        "location": "SGR",
        "items": [{"serial_number": "SN-001", "warranty_type": "1 year"}],
        "remarks": ""                 (optional)
    }

    Returns:
        201: order with resolved items
        400: invalid input
        404: unknown serial numbers
        409: order exists or items not available
    """
    data = string_fields(
        json_object(), "order_number", "dealer", "client", "location", "remarks", "date",
    )
    items = data.get("items")
    if not isinstance(items, list):
        raise ValidationError("items must be a list")
    items = [
        string_fields(dict(line) if isinstance(line, dict) else {"serial_number": line},
                      "serial_number", "warranty_type")
        for line in items
    ]

    order = order_service.create_order(
        order_number=data.get("order_number"),
        dealer=data.get("dealer"),
        client=data.get("client"),
        location=data.get("location"),
        items=items,
        remarks=data.get("remarks"),
        occurred_at=data.get("date"),
        actor_uid=g.actor_uid,
    )
    return jsonify({"order": order_service.get_order_details(order.order_number)}), 201


@orders_bp.get("")
@json_errors("list orders")
def list_orders_route():
    view = request.args.get("view")
    if view == "invoicing":
        orders = order_service.orders_for_invoicing()
    elif view == "delivery":
        orders = order_service.orders_for_delivery()
    elif view:
        raise ValidationError("view must be 'invoicing' or 'delivery'")
    else:
        orders = order_service.list_orders(
            invoice_status=request.args.get("invoice_status"),
            delivery_status=request.args.get("delivery_status"),
            limit=request.args.get("limit", 100, type=int),
        )
    return jsonify({"orders": [order.to_dict() for order in orders]}), 200


@orders_bp.get("/<order_number>")
@json_errors("get order")
def get_order_route(order_number: str):
    return jsonify({"order": order_service.get_order_details(order_number)}), 200


@orders_bp.patch("/<order_number>")
@json_errors("update order")
def update_order_route(order_number: str):
    data = string_fields(json_object(), "order_number")
    if "order_number" not in data:
        raise ValidationError("order_number is required")
    order = order_service.rename_order(
        order_number=order_number,
        new_order_number=data.get("order_number"),
    )
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.get("/<order_number>/files")
@json_errors("get order file status")
def order_files_route(order_number: str):
    return jsonify(order_service.order_file_status(order_number)), 200


# =============================================================================
# INVOICE
# =============================================================================

@orders_bp.post("/<order_number>/invoice")
@json_errors("attach invoice")
def attach_invoice_route(order_number: str):
    data, filename = _uploaded_file()
    order = order_service.attach_invoice(
        order_number=order_number,
        data=data,
        filename=filename,
        invoice_number=request.form.get("invoice_number"),
        invoice_date=request.form.get("invoice_date") or None,
        remarks=request.form.get("remarks"),
    )
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.delete("/<order_number>/invoice")
@json_errors("remove invoice")
def remove_invoice_route(order_number: str):
    order = order_service.remove_invoice(order_number=order_number)
    return jsonify({"order": order.to_dict()}), 200


# =============================================================================
# DELIVERY
# =============================================================================

@orders_bp.post("/<order_number>/delivery-order")
@json_errors("attach delivery order")
def attach_delivery_order_route(order_number: str):
    data, filename = _uploaded_file()
    order = order_service.attach_delivery_order(
        order_number=order_number,
        data=data,
        filename=filename,
    )
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/<order_number>/signed-delivery-order")
@with_actor
@json_errors("attach signed delivery order")
def attach_signed_delivery_order_route(order_number: str):
    data, filename = _uploaded_file()
    order = order_service.attach_signed_delivery_order(
        order_number=order_number,
        data=data,
        filename=filename,
        delivery_date=request.form.get("delivery_date") or None,
        actor_uid=g.actor_uid,
    )
    return jsonify({"order": order_service.get_order_details(order.order_number)}), 200


@orders_bp.delete("/<order_number>/delivery")
@json_errors("remove delivery data")
def remove_delivery_route(order_number: str):
    order = order_service.remove_delivery_data(order_number=order_number)
    return jsonify({"order": order.to_dict()}), 200
