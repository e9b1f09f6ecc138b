from __future__ import annotations

from ..extensions import db
from pharmacy.time_utils import to_utc_z


class SaleStatus:
    """
    DRAFT -> COMMITTED -> VOIDED.

    DRAFT exists only in memory while a cart is validated; every
    persisted sale is COMMITTED or VOIDED. VOIDED is terminal.
    """
    DRAFT = "DRAFT"
    COMMITTED = "COMMITTED"
    VOIDED = "VOIDED"

    TRANSITIONS = {
        DRAFT: {COMMITTED},
        COMMITTED: {VOIDED},
        VOIDED: set(),
    }


PAYMENT_METHODS = ("cash", "mobile_money", "card", "bank_transfer")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")


class Sale(db.Model):
    """
    Committed sale with a full line snapshot.

    Customer fields are free text captured at the counter, not a foreign
    key; loyalty_customer_id records which registry customer (if any) was
    credited for this sale.

    Once VOIDED the record only carries audit changes.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("receipt_number", name="uq_sales_receipt_number"),
        db.Index("ix_sales_status_created", "status", "created_at"),
        db.Index("ix_sales_customer_name", "customer_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    receipt_number = db.Column(db.String(32), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=SaleStatus.DRAFT, index=True)

    customer_name = db.Column(db.String(100), nullable=False)
    customer_phone = db.Column(db.String(16), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    pharmacist_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    prescription_number = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    loyalty_customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    # Void audit trail
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(200), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    committed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "SaleLine",
        backref="sale",
        order_by="SaleLine.line_number",
        lazy=True,
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_void(self) -> bool:
        return self.status == SaleStatus.VOIDED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "status": self.status,
            "is_void": self.is_void,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "lines": [line.to_dict() for line in self.lines],
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "cashier_id": self.cashier_id,
            "pharmacist_id": self.pharmacist_id,
            "prescription_number": self.prescription_number,
            "notes": self.notes,
            "loyalty_customer_id": self.loyalty_customer_id,
            "voided_by_user_id": self.voided_by_user_id,
            "voided_at": to_utc_z(self.voided_at),
            "void_reason": self.void_reason,
            "created_at": to_utc_z(self.created_at),
            "committed_at": to_utc_z(self.committed_at),
            "version_id": self.version_id,
        }


class SaleLine(db.Model):
    """Line snapshot: name and price as they were when the sale committed."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "line_number", name="uq_sale_lines_sale_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    # Plain reference: the line must survive later catalog changes.
    item_id = db.Column(db.Integer, nullable=False, index=True)
    item_name = db.Column(db.String(200), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    prescription_required = db.Column(db.Boolean, nullable=False, default=False)
    prescription_number = db.Column(db.String(50), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "line_number": self.line_number,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "prescription_required": self.prescription_required,
            "prescription_number": self.prescription_number,
        }
