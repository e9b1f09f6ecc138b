# Overview: Sale transaction engine; commits carts against the stock ledger and voids them.

"""
Sale Lifecycle Invariants (authoritative)

- DRAFT -> COMMITTED -> VOIDED, nothing else (SaleStatus.TRANSITIONS).
- A committed sale satisfies total = subtotal + tax - discount and
  subtotal = sum(line totals), in integer cents.
- Commit is one DB transaction: reserve, price, mint receipt number,
  insert sale and lines, debit every line. Any failure rolls all of it
  back, so no stock moves without a persisted sale.
- Receipt numbers are random; a unique-constraint hit regenerates the
  number, bounded by RECEIPT_NUMBER_ATTEMPTS.
- Loyalty accrual runs after the commit in its own transaction, keyed by
  sale id. Its failure is logged and never undoes the sale.
- Void restores stock line by line, each credit in its own savepoint; a
  line whose credit fails is logged and skipped. Loyalty is not reversed
  on void.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Sale, SaleLine, SaleStatus
from ..permissions import get_access_policy
from ..validation import Cart, check_void_reason
from pharmacy.time_utils import utcnow, to_utc_z
from . import inventory_service, loyalty_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .pricing import PricedLine, compute_totals
from .sequence_service import DuplicateIdentifierError, next_receipt_number


RESOURCE = "sales"


class SaleNotFoundError(NotFoundError):
    code = "SALE_NOT_FOUND"


class AlreadyVoidError(ConflictError):
    code = "ALREADY_VOID"


class InvalidTransitionError(ConflictError):
    code = "INVALID_TRANSITION"


def _authorize(policy, principal, action: str) -> None:
    policy = policy or get_access_policy()
    if not policy.authorize(principal, RESOURCE, action):
        raise ForbiddenError(
            f"Not permitted to {action} sales",
            details={"resource": RESOURCE, "action": action},
        )


def _transition(sale: Sale, new_status: str) -> None:
    if new_status not in SaleStatus.TRANSITIONS.get(sale.status, set()):
        raise InvalidTransitionError(
            f"Cannot move sale from {sale.status} to {new_status}",
            details={"from": sale.status, "to": new_status},
        )
    sale.status = new_status


def _reserve_lines(cart: Cart) -> list:
    """
    Reserve every cart line, first failure wins.

    Lines naming the same item are checked against their running total,
    so two lines of 3 against 5 on hand fail on the second line.
    """
    requested: dict[int, int] = {}
    items = []
    for index, line in enumerate(cart.lines):
        requested[line.item_id] = requested.get(line.item_id, 0) + line.quantity
        items.append(
            inventory_service.reserve(
                line.item_id,
                requested[line.item_id],
                prescription_number=line.prescription_number or cart.prescription_number,
                line_index=index,
            )
        )
    return items


def _is_receipt_collision(exc: IntegrityError) -> bool:
    return "receipt_number" in str(exc.orig)


def _commit_once(cart: Cart, principal) -> Sale:
    begin_write()
    items = _reserve_lines(cart)

    priced = [PricedLine(item.selling_price_cents, line.quantity) for item, line in zip(items, cart.lines)]
    totals = compute_totals(priced, cart.discount_cents, current_app.config["TAX_RATE_BPS"])

    if current_app.config.get("REJECT_DISCOUNT_OVER_TOTAL") and totals.total_cents < 0:
        raise ValidationError(
            "Discount exceeds sale total",
            details={"discount_cents": cart.discount_cents, "total_cents": totals.total_cents},
        )

    sale = Sale(
        status=SaleStatus.DRAFT,
        customer_name=cart.customer_name,
        customer_phone=cart.customer_phone,
        customer_email=cart.customer_email,
        subtotal_cents=totals.subtotal_cents,
        tax_cents=totals.tax_cents,
        discount_cents=totals.discount_cents,
        total_cents=totals.total_cents,
        payment_method=cart.payment_method,
        cashier_id=principal.id,
        pharmacist_id=principal.id if principal.role == "pharmacist" else None,
        prescription_number=cart.prescription_number,
        notes=cart.notes,
    )
    for number, (item, line, price) in enumerate(zip(items, cart.lines, priced), start=1):
        rx = line.prescription_number or cart.prescription_number
        sale.lines.append(
            SaleLine(
                line_number=number,
                item_id=item.id,
                item_name=item.name,
                quantity=line.quantity,
                unit_price_cents=price.unit_price_cents,
                line_total_cents=price.line_total_cents,
                prescription_required=bool(item.is_prescription_required),
                prescription_number=rx if item.is_prescription_required else None,
            )
        )

    _transition(sale, SaleStatus.COMMITTED)
    sale.payment_status = "completed"
    sale.committed_at = utcnow()
    receipt_number = next_receipt_number()
    sale.receipt_number = receipt_number

    db.session.add(sale)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        if not _is_receipt_collision(exc):
            raise
        raise DuplicateIdentifierError(
            f"Receipt number {receipt_number} already exists",
            details={"receipt_number": receipt_number},
        )

    for index, line in enumerate(sale.lines):
        inventory_service.debit(line.item_id, line.quantity, line.line_total_cents, line_index=index)

    db.session.commit()
    return sale


def commit_sale(cart: Cart, principal, *, policy=None) -> Sale:
    """
    Turn a validated cart into a committed sale and debit stock.

    Loyalty is credited afterwards on a best-effort basis; the returned
    sale is committed either way.
    """
    _authorize(policy, principal, "create")

    attempts = current_app.config.get("RECEIPT_NUMBER_ATTEMPTS", 3)
    sale = None
    for attempt in range(1, attempts + 1):
        try:
            sale = run_with_retry(lambda: _commit_once(cart, principal))
            break
        except DuplicateIdentifierError as exc:
            current_app.logger.warning(
                "Receipt number collision on attempt %d/%d: %s", attempt, attempts, exc.message
            )
        except Exception:
            db.session.rollback()
            raise

    if sale is None:
        raise DuplicateIdentifierError(
            "Could not allocate a unique receipt number",
            details={"attempts": attempts},
        )

    current_app.logger.info(
        "Sale %s committed by user %s: %d line(s), total %d cents",
        sale.receipt_number,
        principal.id,
        len(sale.lines),
        sale.total_cents,
    )

    _apply_loyalty(sale, cart, principal)
    return sale


def _resolve_loyalty_customer(customer_id, customer_name, customer_phone):
    if customer_id is not None:
        customer = loyalty_service.get_customer(customer_id)
        if customer is None or not customer.is_active:
            current_app.logger.warning("Loyalty customer %s not found or inactive, no accrual", customer_id)
            return None
        return customer
    return loyalty_service.find_customer_for_sale(customer_name, customer_phone)


def _accrue_for_sale(sale: Sale, customer, principal):
    if sale.total_cents < 0:
        current_app.logger.warning(
            "Sale %s has a negative total (%d cents), no accrual", sale.receipt_number, sale.total_cents
        )
        return None

    txn = loyalty_service.accrue(
        customer.id,
        sale.total_cents,
        principal,
        sale_id=sale.id,
        description=f"Points earned from sale {sale.receipt_number}",
    )
    if sale.loyalty_customer_id != customer.id:
        sale.loyalty_customer_id = customer.id
        db.session.commit()
    current_app.logger.info(
        "Loyalty: %d point(s) to customer %s for sale %s",
        txn.points,
        customer.customer_number,
        sale.receipt_number,
    )
    return txn


def _apply_loyalty(sale: Sale, cart: Cart, principal):
    try:
        customer = _resolve_loyalty_customer(cart.customer_id, cart.customer_name, cart.customer_phone)
        if customer is None:
            return None
        return _accrue_for_sale(sale, customer, principal)
    except Exception:
        db.session.rollback()
        current_app.logger.warning(
            "Loyalty accrual failed for sale %s; sale stays committed",
            sale.receipt_number,
            exc_info=True,
        )
        return None


def replay_loyalty(sale_id: int, principal, *, policy=None):
    """
    Re-run the loyalty step of a committed sale.

    Safe to repeat: accrual is keyed by sale id. Returns the earned entry,
    or None when the sale matches no customer.
    """
    _authorize(policy, principal, "update")

    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    if sale.is_void:
        raise AlreadyVoidError(f"Sale {sale.receipt_number} is void", details={"sale_id": sale_id})

    customer = _resolve_loyalty_customer(sale.loyalty_customer_id, sale.customer_name, sale.customer_phone)
    if customer is None:
        return None
    return _accrue_for_sale(sale, customer, principal)


def _credit_line(sale: Sale, line: SaleLine) -> None:
    """Put one line's stock back. Failures are logged and skipped so the void still lands."""
    try:
        with db.session.begin_nested():
            inventory_service.credit(line.item_id, line.quantity, line.line_total_cents)
    except inventory_service.ItemNotFoundError:
        current_app.logger.warning(
            "Void %s: item %s no longer exists, stock for line %d not restored",
            sale.receipt_number,
            line.item_id,
            line.line_number,
        )
    except OperationalError:
        # Lock contention; run_with_retry replays the whole void.
        raise
    except SQLAlchemyError:
        current_app.logger.warning(
            "Void %s: stock credit failed for line %d (item %s), not restored",
            sale.receipt_number,
            line.line_number,
            line.item_id,
            exc_info=True,
        )


def void_sale(sale_id: int, reason: str, principal, *, policy=None) -> Sale:
    """
    Void a committed sale and put its stock back.

    Either fails before touching anything (forbidden, not found, already
    void) or ends with the sale VOIDED.
    """
    _authorize(policy, principal, "void")
    reason = check_void_reason(reason)

    def _op() -> Sale:
        begin_write()
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
        if sale.is_void:
            raise AlreadyVoidError(
                f"Sale {sale.receipt_number} is already void",
                details={"sale_id": sale_id, "voided_at": to_utc_z(sale.voided_at)},
            )

        _transition(sale, SaleStatus.VOIDED)

        for line in sale.lines:
            _credit_line(sale, line)

        sale.void_reason = reason
        sale.voided_by_user_id = principal.id
        sale.voided_at = utcnow()
        db.session.commit()
        return sale

    try:
        sale = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Sale %s voided by user %s: %s", sale.receipt_number, principal.id, reason)
    return sale


def get_sale(sale_id: int, principal, *, policy=None) -> Sale:
    _authorize(policy, principal, "read")
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def find_sale_by_receipt(receipt_number: str) -> Sale | None:
    return db.session.query(Sale).filter_by(receipt_number=receipt_number).first()


def build_receipt(sale: Sale) -> dict:
    """Printable view of a sale: header, lines and totals."""
    return {
        "receipt_number": sale.receipt_number,
        "date": to_utc_z(sale.committed_at or sale.created_at),
        "status": sale.status,
        "customer": {
            "name": sale.customer_name,
            "phone": sale.customer_phone,
            "email": sale.customer_email,
        },
        "items": [
            {
                "name": line.item_name,
                "quantity": line.quantity,
                "unit_price_cents": line.unit_price_cents,
                "total_cents": line.line_total_cents,
                "prescription_number": line.prescription_number,
            }
            for line in sale.lines
        ],
        "subtotal_cents": sale.subtotal_cents,
        "tax_rate_bps": current_app.config["TAX_RATE_BPS"],
        "tax_cents": sale.tax_cents,
        "discount_cents": sale.discount_cents,
        "total_cents": sale.total_cents,
        "payment_method": sale.payment_method,
        "payment_status": sale.payment_status,
        "cashier_id": sale.cashier_id,
        "pharmacist_id": sale.pharmacist_id,
        "void": {
            "reason": sale.void_reason,
            "voided_at": to_utc_z(sale.voided_at),
            "voided_by_user_id": sale.voided_by_user_id,
        } if sale.is_void else None,
    }
