# Overview: Flask API routes for login, logout and the current user.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import DomainError
from ..permissions import RESOURCES, get_access_policy
from ..services import auth_service, session_service
from pharmacy.time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _permissions_for(user) -> dict:
    policy = get_access_policy()
    return {resource: sorted(policy.actions_for(user.role, resource)) for resource in RESOURCES}


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be sent as `Authorization: Bearer <token>` on protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.warning("Failed login for %r from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(user)

        return jsonify({
            "user": user.to_dict(),
            "permissions": _permissions_for(user),
            "token": token,
            "expires_at": to_utc_z(session.expires_at),
            "message": "Login successful",
        }), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.session_token)
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return jsonify({"user": user.to_dict(), "permissions": _permissions_for(user)}), 200
