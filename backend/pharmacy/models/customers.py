from __future__ import annotations

from ..extensions import db
from pharmacy.time_utils import to_utc_z


class LoyaltyTier:
    """Ordered tiers, lowest first."""
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"

    ORDER = (BRONZE, SILVER, GOLD, PLATINUM)


class LoyaltyTransactionType:
    EARNED = "earned"
    REDEEMED = "redeemed"
    EXPIRED = "expired"
    BONUS = "bonus"

    ALL = (EARNED, REDEEMED, EXPIRED, BONUS)


class Customer(db.Model):
    """
    Customer registry entry with its loyalty profile.

    INVARIANTS:
    - points_balance >= 0
    - tier == loyalty_service.tier_for_spend(total_spent_cents)

    Loyalty fields are written only by loyalty_service.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("customer_number", name="uq_customers_number"),
        db.CheckConstraint("points_balance >= 0", name="ck_customers_points_nonneg"),
        db.Index("ix_customers_name", "first_name", "last_name"),
        db.Index("ix_customers_phone", "phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_number = db.Column(db.String(32), nullable=False)

    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(16), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Loyalty program (amounts in cents)
    points_balance = db.Column(db.Integer, nullable=False, default=0)
    tier = db.Column(db.String(16), nullable=False, default=LoyaltyTier.BRONZE, index=True)
    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    total_purchases = db.Column(db.Integer, nullable=False, default=0)
    last_purchase_at = db.Column(db.DateTime(timezone=True), nullable=True)
    member_since = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_number": self.customer_number,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "is_active": self.is_active,
            "loyalty": {
                "points": self.points_balance,
                "tier": self.tier,
                "total_spent_cents": self.total_spent_cents,
                "total_purchases": self.total_purchases,
                "last_purchase_at": to_utc_z(self.last_purchase_at),
                "member_since": to_utc_z(self.member_since),
            },
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class LoyaltyTransaction(db.Model):
    """
    Append-only ledger of loyalty point events.

    points is signed: positive for earned/bonus, negative for
    redeemed/expired. Rows are never updated or deleted here.
    """
    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        db.Index("ix_loyalty_txns_customer_date", "customer_id", "transaction_date"),
        db.Index("ix_loyalty_txns_expiry", "expiry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    points = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(200), nullable=False)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    customer = db.relationship("Customer", backref=db.backref("loyalty_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "transaction_type": self.transaction_type,
            "points": self.points,
            "description": self.description,
            "transaction_date": to_utc_z(self.transaction_date),
            "expiry_date": to_utc_z(self.expiry_date),
            "sale_id": self.sale_id,
            "created_by_user_id": self.created_by_user_id,
        }
