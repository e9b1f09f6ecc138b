# Overview: Stock ledger for catalog items; reserve, debit, credit and restock.

"""
Stock Ledger Invariants (authoritative)

- InventoryItem.quantity is never negative.
- Every mutation of quantity / total_sold / total_revenue_cents is a single
  UPDATE statement evaluated by the database:
    debit:   quantity = quantity - n   WHERE quantity >= n
    credit:  quantity = quantity + n   (counters floored at zero)
    restock: quantity = quantity + n
  No read-then-write happens in Python, so two concurrent debits on the
  same item serialize in the database and at most one can win the last
  units.
- reserve() is a read-only pre-check that produces precise errors. debit()
  re-checks atomically; reserve() passing never guarantees debit() succeeds.
- Items are never deleted. Status moves through ItemStatus.TRANSITIONS.

reserve, debit and credit never commit; the caller owns the transaction.
"""

from __future__ import annotations

from sqlalchemy import case, update
from sqlalchemy.orm.util import identity_key

from ..errors import ValidationError, ConflictError
from ..extensions import db
from ..models import InventoryItem, ItemStatus
from pharmacy.time_utils import utcnow


class StockError(ValidationError):
    """A cart line that cannot be fulfilled. Names the item and line."""
    code = "STOCK_ERROR"

    def __init__(self, message: str, *, item_id: int, line_index: int | None = None, details: dict | None = None):
        merged = {"item_id": item_id}
        if line_index is not None:
            merged["line"] = line_index
        merged.update(details or {})
        super().__init__(message, details=merged)
        self.item_id = item_id
        self.line_index = line_index


class ItemNotFoundError(StockError):
    status_code = 404
    code = "ITEM_NOT_FOUND"


class ItemInactiveError(StockError):
    code = "ITEM_INACTIVE"


class PrescriptionRequiredError(StockError):
    code = "PRESCRIPTION_REQUIRED"


class InsufficientStockError(StockError):
    code = "INSUFFICIENT_STOCK"


def get_item(item_id: int) -> InventoryItem | None:
    return db.session.get(InventoryItem, item_id)


def reserve(
    item_id: int,
    quantity: int,
    *,
    prescription_number: str | None = None,
    line_index: int | None = None,
) -> InventoryItem:
    """
    Check that `quantity` units of an item can be sold.

    Checks run in a fixed order and the first failure wins:
    exists -> sellable status -> prescription present if required -> enough stock.
    """
    item = get_item(item_id)
    if item is None:
        raise ItemNotFoundError(
            f"Drug with ID {item_id} not found",
            item_id=item_id,
            line_index=line_index,
        )

    if not item.is_active:
        raise ItemInactiveError(
            f"Drug {item.name} is not available",
            item_id=item_id,
            line_index=line_index,
            details={"status": item.status},
        )

    if item.is_prescription_required and not prescription_number:
        raise PrescriptionRequiredError(
            f"Prescription is required for {item.name}",
            item_id=item_id,
            line_index=line_index,
        )

    if item.quantity < quantity:
        raise InsufficientStockError(
            f"Insufficient stock for {item.name}. Available: {item.quantity}",
            item_id=item_id,
            line_index=line_index,
            details={"available": item.quantity, "requested": quantity},
        )

    return item


def debit(item_id: int, quantity: int, revenue_cents: int, *, line_index: int | None = None) -> None:
    """
    Remove sold units and bump the sold/revenue counters in one statement.

    Raises InsufficientStockError if the item no longer has `quantity` on
    hand at the moment the UPDATE runs; nothing is changed in that case.
    """
    stmt = (
        update(InventoryItem)
        .where(InventoryItem.id == item_id, InventoryItem.quantity >= quantity)
        .values(
            quantity=InventoryItem.quantity - quantity,
            total_sold=InventoryItem.total_sold + quantity,
            total_revenue_cents=InventoryItem.total_revenue_cents + revenue_cents,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        _expire(item_id)
        item = get_item(item_id)
        available = item.quantity if item is not None else 0
        name = item.name if item is not None else f"ID {item_id}"
        raise InsufficientStockError(
            f"Insufficient stock for {name}. Available: {available}",
            item_id=item_id,
            line_index=line_index,
            details={"available": available, "requested": quantity},
        )
    _expire(item_id)


def credit(item_id: int, quantity: int, revenue_cents: int) -> None:
    """
    Exact inverse of debit, used when a sale is voided.

    Succeeds regardless of item status. Sold/revenue counters are floored
    at zero. Raises ItemNotFoundError if the item row no longer exists.
    """
    stmt = (
        update(InventoryItem)
        .where(InventoryItem.id == item_id)
        .values(
            quantity=InventoryItem.quantity + quantity,
            total_sold=case(
                (InventoryItem.total_sold >= quantity, InventoryItem.total_sold - quantity),
                else_=0,
            ),
            total_revenue_cents=case(
                (InventoryItem.total_revenue_cents >= revenue_cents, InventoryItem.total_revenue_cents - revenue_cents),
                else_=0,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise ItemNotFoundError(f"Drug with ID {item_id} not found", item_id=item_id)
    _expire(item_id)


def restock(item_id: int, quantity: int, *, unit_cost_cents: int | None = None) -> InventoryItem:
    """Add received units. Commits."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    if unit_cost_cents is not None and unit_cost_cents < 0:
        raise ValidationError("unit_cost_cents cannot be negative")

    values = {
        "quantity": InventoryItem.quantity + quantity,
        "last_restocked_at": utcnow(),
    }
    if unit_cost_cents is not None:
        values["unit_cost_cents"] = unit_cost_cents

    stmt = (
        update(InventoryItem)
        .where(InventoryItem.id == item_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        db.session.rollback()
        raise ItemNotFoundError(f"Drug with ID {item_id} not found", item_id=item_id)
    db.session.commit()
    return get_item(item_id)


def set_item_status(item_id: int, new_status: str) -> InventoryItem:
    """Move an item along its lifecycle. Commits."""
    if new_status not in ItemStatus.ALL:
        raise ValidationError(f"status must be one of {', '.join(ItemStatus.ALL)}")

    item = get_item(item_id)
    if item is None:
        raise ItemNotFoundError(f"Drug with ID {item_id} not found", item_id=item_id)

    if new_status == item.status:
        return item

    if new_status not in ItemStatus.TRANSITIONS[item.status]:
        raise ConflictError(
            f"Cannot move item from {item.status} to {new_status}",
            details={"item_id": item_id, "from": item.status, "to": new_status},
        )

    item.status = new_status
    db.session.commit()
    return item


def create_item(fields: dict) -> InventoryItem:
    """Insert a validated catalog item. Commits."""
    item = InventoryItem(**fields)
    db.session.add(item)
    db.session.commit()
    return item


def _expire(item_id: int) -> None:
    # Bulk UPDATEs bypass the identity map; drop any cached copy.
    item = db.session.identity_map.get(identity_key(InventoryItem, item_id))
    if item is not None:
        db.session.expire(item)
