# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app


ACTOR_HEADER = "X-Employee-Id"


def _resolve_actor_id():
    """Acting employee id from the request header; None when absent or malformed."""
    raw = request.headers.get(ACTOR_HEADER)
    if raw is None:
        return None
    raw = raw.strip()
    if not raw.isdigit():
        return None
    return int(raw)


def require_permission(permission_code: str):
    """
    Require a specific permission.

    Authentication happens in front of this service: the gateway forwards the
    acting employee in X-Employee-Id. The decision is delegated to the
    PERMISSION_CHECKER config callable (actor_id, permission_code) -> bool;
    without one every request is allowed.

    Sets g.actor_id (int or None) for the wrapped route.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            g.actor_id = _resolve_actor_id()

            checker = current_app.config.get("PERMISSION_CHECKER")
            if checker is not None and not checker(g.actor_id, permission_code):
                current_app.logger.warning(
                    "Permission denied: actor=%s permission=%s path=%s",
                    g.actor_id, permission_code, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
