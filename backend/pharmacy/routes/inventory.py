# Overview: Flask API routes for the drug catalog and its stock counters.

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import IntegrityError

from ..decorators import require_auth, require_permission
from ..errors import DomainError, ConflictError, ValidationError
from ..extensions import db
from ..models import InventoryItem
from ..services import inventory_service
from ..validation import INVENTORY_ITEM_POLICY, enforce_rules_inventory_item, validate_payload


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("")
@require_auth
@require_permission("inventory", "create")
def create_item_route():
    try:
        patch = validate_payload(
            model=InventoryItem,
            payload=request.get_json(silent=True),
            policy=INVENTORY_ITEM_POLICY,
            partial=False,
        )
        enforce_rules_inventory_item(patch)
        try:
            item = inventory_service.create_item(patch)
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("An item with this barcode already exists")
        return jsonify({"item": item.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create inventory item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:item_id>")
@require_auth
@require_permission("inventory", "read")
def get_item_route(item_id: int):
    try:
        item = inventory_service.get_item(item_id)
        if not item:
            return jsonify({"error": "Drug not found"}), 404
        return jsonify({"item": item.to_dict()}), 200
    except Exception:
        current_app.logger.exception("Failed to load inventory item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:item_id>/restock")
@require_auth
@require_permission("inventory", "update")
def restock_route(item_id: int):
    """Body: {"quantity": int, "unit_cost_cents": int (optional)}"""
    try:
        data = request.get_json(silent=True) or {}
        quantity = data.get("quantity")
        unit_cost_cents = data.get("unit_cost_cents")
        if unit_cost_cents is not None and (isinstance(unit_cost_cents, bool) or not isinstance(unit_cost_cents, int)):
            raise ValidationError("unit_cost_cents must be an integer")

        item = inventory_service.restock(item_id, quantity, unit_cost_cents=unit_cost_cents)
        current_app.logger.info("Restocked item %s by %s", item_id, quantity)
        return jsonify({"item": item.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to restock item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:item_id>/status")
@require_auth
@require_permission("inventory", "update")
def set_status_route(item_id: int):
    """Body: {"status": "ACTIVE" | "PENDING_DEACTIVATION" | "INACTIVE"}"""
    try:
        data = request.get_json(silent=True) or {}
        item = inventory_service.set_item_status(item_id, data.get("status"))
        return jsonify({"item": item.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change item status")
        return jsonify({"error": "Internal server error"}), 500
