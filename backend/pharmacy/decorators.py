# Overview: Request decorators for API routes; bearer auth and policy checks.

from functools import wraps

from flask import g, jsonify, request

from .permissions import get_access_policy
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.current_user and g.session_token. Returns 401 if the header is
    missing, the token is unknown, expired or revoked, or the user is
    deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        user = session_service.validate_session(token)
        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_permission(resource: str, action: str):
    """
    Require the app's access policy to allow resource:action.

    Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"error": "Authentication required"}), 401

            if not get_access_policy().authorize(user, resource, action):
                return jsonify({
                    "error": "Permission denied",
                    "code": "FORBIDDEN",
                    "details": {"resource": resource, "action": action},
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
