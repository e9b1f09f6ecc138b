# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/pharmacy/routes/sales.py
"""
Sales API routes.

Authorization happens inside sales_service against the app's access
policy, so these handlers only authenticate and translate errors.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import DomainError
from ..services import sales_service
from ..validation import parse_cart, parse_void_reason


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def commit_sale_route():
    """
    Commit a cart as a sale and debit stock.

    Available to: admin, pharmacist, cashier
    """
    try:
        cart = parse_cart(request.get_json(silent=True))
        sale = sales_service.commit_sale(cart, g.current_user)
        return jsonify({"sale": sale.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to commit sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id, g.current_user)
        return jsonify({"sale": sale.to_dict()}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/receipt")
@require_auth
def get_receipt_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id, g.current_user)
        return jsonify({"receipt": sales_service.build_receipt(sale)}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build receipt")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/void")
@require_auth
def void_sale_route(sale_id: int):
    """
    Void a committed sale and restore its stock.

    Available to: admin
    """
    try:
        reason = parse_void_reason(request.get_json(silent=True))
        sale = sales_service.void_sale(sale_id, reason, g.current_user)
        return jsonify({"sale": sale.to_dict(), "message": "Sale voided successfully"}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": "Internal server error"}), 500
