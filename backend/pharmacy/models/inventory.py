from __future__ import annotations

from ..extensions import db
from pharmacy.time_utils import to_utc_z


class ItemStatus:
    """
    Lifecycle of a catalog item. Items are never deleted, only moved
    to INACTIVE.

    PENDING_DEACTIVATION keeps the item sellable while stock runs down.
    """
    ACTIVE = "ACTIVE"
    PENDING_DEACTIVATION = "PENDING_DEACTIVATION"
    INACTIVE = "INACTIVE"

    ALL = (ACTIVE, PENDING_DEACTIVATION, INACTIVE)
    SELLABLE = (ACTIVE, PENDING_DEACTIVATION)

    TRANSITIONS = {
        ACTIVE: {PENDING_DEACTIVATION, INACTIVE},
        PENDING_DEACTIVATION: {ACTIVE, INACTIVE},
        INACTIVE: {ACTIVE},
    }


CATEGORIES = (
    "Analgesics",
    "Antibiotics",
    "Antihypertensives",
    "Antidiabetics",
    "Antimalarials",
    "Vitamins",
    "Supplements",
    "First Aid",
    "Personal Care",
    "Medical Devices",
    "Other",
)


class InventoryItem(db.Model):
    """
    Drug catalog entry and its stock ledger counters.

    INVARIANTS:
    - quantity >= 0 at all times (enforced by conditional UPDATEs in
      inventory_service, backed by a CHECK constraint)
    - total_sold / total_revenue_cents only go down through a sale void

    Quantity and counters are mutated exclusively through
    inventory_service.debit / credit / restock, never by read-modify-write.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_nonneg"),
        db.Index("ix_inventory_items_name", "name"),
        db.Index("ix_inventory_items_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(200), nullable=False)
    generic_name = db.Column(db.String(200), nullable=True)
    brand_name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(64), nullable=False, default="Other")
    strength = db.Column(db.String(50), nullable=True)
    dosage_form = db.Column(db.String(32), nullable=True)
    batch_number = db.Column(db.String(64), nullable=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False)
    reorder_level = db.Column(db.Integer, nullable=False, default=10)
    expiry_date = db.Column(db.Date, nullable=True)

    is_prescription_required = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(32), nullable=False, default=ItemStatus.ACTIVE)

    total_sold = db.Column(db.Integer, nullable=False, default=0)
    total_revenue_cents = db.Column(db.Integer, nullable=False, default=0)
    last_restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} name={self.name!r} quantity={self.quantity}>"

    @property
    def is_active(self) -> bool:
        return self.status in ItemStatus.SELLABLE

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.reorder_level

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "generic_name": self.generic_name,
            "brand_name": self.brand_name,
            "category": self.category,
            "strength": self.strength,
            "dosage_form": self.dosage_form,
            "batch_number": self.batch_number,
            "barcode": self.barcode,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "selling_price_cents": self.selling_price_cents,
            "reorder_level": self.reorder_level,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "is_prescription_required": self.is_prescription_required,
            "status": self.status,
            "is_active": self.is_active,
            "is_low_stock": self.is_low_stock,
            "total_sold": self.total_sold,
            "total_revenue_cents": self.total_revenue_cents,
            "last_restocked_at": to_utc_z(self.last_restocked_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
