# Overview: Loyalty ledger; point accrual, redemption and tier recomputation.

"""
Loyalty Ledger Invariants (authoritative)

- Customer.points_balance never goes below zero.
- Customer.tier is a pure function of total_spent_cents (tier_for_spend)
  and is recomputed on every write, before commit.
- Every balance change appends exactly one LoyaltyTransaction in the same
  DB transaction; ledger rows are never updated or deleted.
- Accrual for a sale is idempotent: a second accrue() with the same
  sale_id returns the existing "earned" entry without touching the balance.

Customer rows carry a version_id, so two concurrent writers on the same
customer resolve through StaleDataError + run_with_retry.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError, NotFoundError
from ..extensions import db
from ..models import Customer, LoyaltyTransaction, LoyaltyTier, LoyaltyTransactionType
from pharmacy.time_utils import utcnow, add_years
from .concurrency import begin_write, lock_for_update, run_with_retry
from .sequence_service import DuplicateIdentifierError, next_customer_number


# Minimum cumulative spend (cents) per tier, highest first.
TIER_THRESHOLDS = (
    (1_000_000, LoyaltyTier.PLATINUM),
    (500_000, LoyaltyTier.GOLD),
    (200_000, LoyaltyTier.SILVER),
)

POINTS_EXPIRE_AFTER_YEARS = 1
CUSTOMER_NUMBER_ATTEMPTS = 3


class LoyaltyError(ValidationError):
    code = "LOYALTY_ERROR"


class InsufficientPointsError(LoyaltyError):
    code = "INSUFFICIENT_POINTS"


class CustomerNotFoundError(NotFoundError):
    code = "CUSTOMER_NOT_FOUND"


def tier_for_spend(total_spent_cents: int) -> str:
    for threshold, tier in TIER_THRESHOLDS:
        if total_spent_cents >= threshold:
            return tier
    return LoyaltyTier.BRONZE


def points_for_amount(amount_cents: int) -> int:
    """One point per whole currency unit spent, truncated."""
    return amount_cents // 100


def get_customer(customer_id: int) -> Customer | None:
    return db.session.get(Customer, customer_id)


def _load_customer_locked(customer_id: int) -> Customer:
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if customer is None:
        raise CustomerNotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def _require_positive_points(points) -> None:
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise LoyaltyError("points must be a positive integer")


def _earned_for_sale(sale_id: int | None) -> LoyaltyTransaction | None:
    if sale_id is None:
        return None
    return (
        db.session.query(LoyaltyTransaction)
        .filter_by(sale_id=sale_id, transaction_type=LoyaltyTransactionType.EARNED)
        .first()
    )


def accrue(
    customer_id: int,
    amount_cents: int,
    principal,
    *,
    sale_id: int | None = None,
    description: str | None = None,
) -> LoyaltyTransaction:
    """
    Credit a purchase to a customer's loyalty profile. Commits.

    points += floor(amount); total_spent += amount; total_purchases += 1;
    last_purchase_at = now; tier recomputed; one "earned" entry appended
    that expires a year from now.
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents < 0:
        raise LoyaltyError("amount_cents must be a non-negative integer")

    def _op() -> LoyaltyTransaction:
        begin_write()
        existing = _earned_for_sale(sale_id)
        if existing is not None:
            db.session.rollback()
            return existing

        customer = _load_customer_locked(customer_id)
        # Re-check under the lock: a concurrent accrual may have committed meanwhile.
        existing = _earned_for_sale(sale_id)
        if existing is not None:
            db.session.rollback()
            return existing

        if not customer.is_active:
            raise LoyaltyError(f"Customer {customer.full_name} is inactive", details={"customer_id": customer_id})

        now = utcnow()
        points = points_for_amount(amount_cents)

        customer.points_balance += points
        customer.total_spent_cents += amount_cents
        customer.total_purchases += 1
        customer.last_purchase_at = now
        customer.tier = tier_for_spend(customer.total_spent_cents)

        txn = LoyaltyTransaction(
            customer_id=customer.id,
            transaction_type=LoyaltyTransactionType.EARNED,
            points=points,
            description=description or f"Points earned on purchase of {amount_cents / 100:.2f}",
            transaction_date=now,
            expiry_date=add_years(now, POINTS_EXPIRE_AFTER_YEARS),
            sale_id=sale_id,
            created_by_user_id=principal.id,
        )
        db.session.add(txn)
        db.session.commit()
        return txn

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def redeem(customer_id: int, points: int, principal, *, description: str | None = None) -> LoyaltyTransaction:
    """Spend points. Rejects if the balance would go negative. Commits."""
    _require_positive_points(points)

    def _op() -> LoyaltyTransaction:
        begin_write()
        customer = _load_customer_locked(customer_id)
        if customer.points_balance < points:
            raise InsufficientPointsError(
                f"Insufficient points: balance {customer.points_balance}, requested {points}",
                details={"customer_id": customer_id, "balance": customer.points_balance, "requested": points},
            )

        customer.points_balance -= points
        customer.tier = tier_for_spend(customer.total_spent_cents)

        txn = LoyaltyTransaction(
            customer_id=customer.id,
            transaction_type=LoyaltyTransactionType.REDEEMED,
            points=-points,
            description=description or f"Redeemed {points} points",
            transaction_date=utcnow(),
            created_by_user_id=principal.id,
        )
        db.session.add(txn)
        db.session.commit()
        return txn

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def grant_bonus(customer_id: int, points: int, principal, *, description: str) -> LoyaltyTransaction:
    """Manually award points outside of a purchase. Commits."""
    _require_positive_points(points)
    if not description or not description.strip():
        raise LoyaltyError("description is required")

    def _op() -> LoyaltyTransaction:
        begin_write()
        customer = _load_customer_locked(customer_id)
        now = utcnow()

        customer.points_balance += points
        customer.tier = tier_for_spend(customer.total_spent_cents)

        txn = LoyaltyTransaction(
            customer_id=customer.id,
            transaction_type=LoyaltyTransactionType.BONUS,
            points=points,
            description=description.strip()[:200],
            transaction_date=now,
            expiry_date=add_years(now, POINTS_EXPIRE_AFTER_YEARS),
            created_by_user_id=principal.id,
        )
        db.session.add(txn)
        db.session.commit()
        return txn

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def list_transactions(customer_id: int) -> list[LoyaltyTransaction]:
    if get_customer(customer_id) is None:
        raise CustomerNotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return (
        db.session.query(LoyaltyTransaction)
        .filter_by(customer_id=customer_id)
        .order_by(LoyaltyTransaction.transaction_date.desc(), LoyaltyTransaction.id.desc())
        .all()
    )


def find_customer_for_sale(customer_name: str, customer_phone: str | None = None) -> Customer | None:
    """
    Best-effort match of a counter-entered name to a registered customer.

    First token is compared to first_name and last token to last_name,
    case-insensitively, among active customers. A single hit wins; several
    hits are narrowed by phone; anything still ambiguous matches nobody.
    """
    tokens = (customer_name or "").split()
    if len(tokens) < 2:
        return None

    first, last = tokens[0].lower(), tokens[-1].lower()
    candidates = (
        db.session.query(Customer)
        .filter(
            Customer.is_active.is_(True),
            func.lower(Customer.first_name) == first,
            func.lower(Customer.last_name) == last,
        )
        .order_by(Customer.id)
        .all()
    )

    if len(candidates) == 1:
        return candidates[0]

    if len(candidates) > 1 and customer_phone:
        by_phone = [c for c in candidates if c.phone == customer_phone]
        if len(by_phone) == 1:
            return by_phone[0]

    if len(candidates) > 1:
        current_app.logger.warning(
            "Ambiguous loyalty match for %r: %d customers, no accrual",
            customer_name,
            len(candidates),
        )
    return None


def create_customer(fields: dict) -> Customer:
    """Register a customer with a freshly minted customer number. Commits."""
    for attempt in range(1, CUSTOMER_NUMBER_ATTEMPTS + 1):
        customer = Customer(customer_number=next_customer_number(), **fields)
        customer.tier = tier_for_spend(customer.total_spent_cents or 0)
        db.session.add(customer)
        try:
            db.session.commit()
            return customer
        except IntegrityError:
            db.session.rollback()
            current_app.logger.warning(
                "Customer number collision on attempt %d/%d", attempt, CUSTOMER_NUMBER_ATTEMPTS
            )
    raise DuplicateIdentifierError(
        "Could not allocate a unique customer number",
        details={"attempts": CUSTOMER_NUMBER_ATTEMPTS},
    )
