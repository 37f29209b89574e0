# backend/stockledger/routes/system.py
"""
System health endpoint.

Reports database connectivity and the size of the ledger for deployment
debugging.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import InventoryItem, StockTransaction, Order
from ..services.sequence_service import peek_next_entry_number
from stockledger.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        item_count = db.session.query(InventoryItem).count()
        transaction_count = db.session.query(StockTransaction).count()
        order_count = db.session.query(Order).count()
        next_entry = peek_next_entry_number()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "items": item_count,
                "transactions": transaction_count,
                "orders": order_count,
                "next_entry_number": next_entry,
            }
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    payload = {
        "status": "ok" if healthy else "error",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }
    return jsonify(payload), 200 if healthy else 503
