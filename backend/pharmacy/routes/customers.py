# Overview: Flask API routes for the customer registry and loyalty ledger.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import DomainError
from ..models import Customer
from ..services import loyalty_service
from ..services.loyalty_service import CustomerNotFoundError
from ..validation import CUSTOMER_POLICY, enforce_rules_customer, validate_payload


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _load(customer_id: int) -> Customer:
    customer = loyalty_service.get_customer(customer_id)
    if customer is None:
        raise CustomerNotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


@customers_bp.post("")
@require_auth
@require_permission("customers", "create")
def create_customer_route():
    try:
        patch = validate_payload(
            model=Customer,
            payload=request.get_json(silent=True),
            policy=CUSTOMER_POLICY,
            partial=False,
        )
        enforce_rules_customer(patch)
        customer = loyalty_service.create_customer(patch)
        return jsonify({"customer": customer.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_permission("customers", "read")
def get_customer_route(customer_id: int):
    try:
        return jsonify({"customer": _load(customer_id).to_dict()}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/loyalty-transactions")
@require_auth
@require_permission("customers", "read")
def list_loyalty_transactions_route(customer_id: int):
    try:
        txns = loyalty_service.list_transactions(customer_id)
        return jsonify({"transactions": [t.to_dict() for t in txns]}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list loyalty transactions")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/<int:customer_id>/loyalty/redeem")
@require_auth
@require_permission("customers", "update")
def redeem_points_route(customer_id: int):
    """Body: {"points": int, "description": str (optional)}"""
    try:
        data = request.get_json(silent=True) or {}
        txn = loyalty_service.redeem(
            customer_id,
            data.get("points"),
            g.current_user,
            description=data.get("description"),
        )
        return jsonify({"transaction": txn.to_dict(), "customer": _load(customer_id).to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to redeem loyalty points")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/<int:customer_id>/loyalty/bonus")
@require_auth
@require_permission("customers", "update")
def grant_bonus_route(customer_id: int):
    """Body: {"points": int, "description": str}"""
    try:
        data = request.get_json(silent=True) or {}
        txn = loyalty_service.grant_bonus(
            customer_id,
            data.get("points"),
            g.current_user,
            description=data.get("description") or "",
        )
        return jsonify({"transaction": txn.to_dict(), "customer": _load(customer_id).to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to grant loyalty bonus")
        return jsonify({"error": "Internal server error"}), 500
