# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import InventoryError


ACTOR_HEADER = "X-User-Id"


def with_actor(f):
    """
    Record the acting user for the request.

    Authentication happens in front of this service; the gateway forwards the
    user id in the X-User-Id header. Sets g.actor_uid (None when absent).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = (request.headers.get(ACTOR_HEADER) or "").strip()
        g.actor_uid = actor or None
        return f(*args, **kwargs)

    return decorated_function


def json_errors(action: str):
    """
    Translate ledger errors into JSON responses.

    InventoryError subclasses map to {"error", "code"} with their HTTP status;
    anything else is logged as "Failed to <action>" and answered with 500.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except InventoryError as e:
                payload = {"error": str(e), "code": e.code}
                serials = getattr(e, "serial_numbers", None)
                if serials:
                    payload["serial_numbers"] = serials
                return jsonify(payload), e.http_status
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": f"Failed to {action}"}), 500

        return decorated_function

    return decorator
