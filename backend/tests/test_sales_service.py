"""
Sale engine tests: commit and void against the stock and loyalty ledgers.

Verifies:
- Totals identity and stock movement on commit
- Cart-line rejections leave stock and sales untouched
- Receipt number collisions are retried, then surfaced
- Loyalty accrual is best-effort and replayable
- Void restores stock exactly once
"""

import re

import pytest
from sqlalchemy.exc import IntegrityError

from pharmacy.errors import ForbiddenError, ValidationError
from pharmacy.extensions import db
from pharmacy.models import ItemStatus, LoyaltyTransaction, Sale, SaleStatus
from pharmacy.permissions import RolePolicy
from pharmacy.services import inventory_service, loyalty_service, sales_service
from pharmacy.services.inventory_service import (
    InsufficientStockError,
    ItemInactiveError,
    ItemNotFoundError,
    PrescriptionRequiredError,
)
from pharmacy.services.sales_service import (
    AlreadyVoidError,
    InvalidTransitionError,
    SaleNotFoundError,
)
from pharmacy.services.sequence_service import DuplicateIdentifierError
from pharmacy.validation import parse_cart


def _cart(items, **overrides):
    payload = {
        "customer_name": "Walk In",
        "items": items,
        "payment_method": "cash",
    }
    payload.update(overrides)
    return parse_cart(payload)


def _quantity(item_id):
    return inventory_service.get_item(item_id).quantity


def _sale_count():
    return db.session.query(Sale).count()


# =============================================================================
# COMMIT
# =============================================================================


class TestCommit:
    def test_two_of_item_a(self, paracetamol, cashier):
        sale = sales_service.commit_sale(_cart([{"item_id": paracetamol.id, "quantity": 2}]), cashier)

        assert sale.status == SaleStatus.COMMITTED
        assert sale.payment_status == "completed"
        assert sale.subtotal_cents == 4000
        assert sale.tax_cents == 500
        assert sale.discount_cents == 0
        assert sale.total_cents == 4500
        assert re.fullmatch(r"RCP-\d{8}-\d{4}", sale.receipt_number)
        assert sale.cashier_id == cashier.id
        assert sale.pharmacist_id is None
        assert sale.committed_at is not None

        item = inventory_service.get_item(paracetamol.id)
        assert item.quantity == 8
        assert item.total_sold == 2
        assert item.total_revenue_cents == 4000

    def test_lines_are_snapshots(self, paracetamol, cashier):
        sale = sales_service.commit_sale(_cart([{"item_id": paracetamol.id, "quantity": 3}]), cashier)

        paracetamol.name = "Renamed"
        paracetamol.selling_price_cents = 9999
        db.session.commit()

        line = db.session.get(Sale, sale.id).lines[0]
        assert line.line_number == 1
        assert line.item_name == "Paracetamol 500mg"
        assert line.unit_price_cents == 2000
        assert line.line_total_cents == 6000

    def test_multi_line_totals(self, paracetamol, amoxicillin, pharmacist):
        cart = _cart(
            [
                {"item_id": paracetamol.id, "quantity": 1},
                {"item_id": amoxicillin.id, "quantity": 2},
            ],
            prescription_number="RX-20261016-0001",
            discount_cents=300,
        )
        sale = sales_service.commit_sale(cart, pharmacist)

        assert sale.subtotal_cents == 2000 + 2 * 1550
        assert sale.subtotal_cents == sum(line.line_total_cents for line in sale.lines)
        assert sale.total_cents == sale.subtotal_cents + sale.tax_cents - sale.discount_cents
        assert sale.pharmacist_id == pharmacist.id

        rx_line = sale.lines[1]
        assert rx_line.prescription_required is True
        assert rx_line.prescription_number == "RX-20261016-0001"
        assert sale.lines[0].prescription_number is None

    def test_negative_total_allowed_by_default(self, paracetamol, cashier):
        sale = sales_service.commit_sale(
            _cart([{"item_id": paracetamol.id, "quantity": 1}], discount_cents=5000),
            cashier,
        )
        assert sale.total_cents == 2250 - 5000

    def test_negative_total_rejected_when_configured(self, app, paracetamol, cashier):
        app.config["REJECT_DISCOUNT_OVER_TOTAL"] = True

        with pytest.raises(ValidationError):
            sales_service.commit_sale(
                _cart([{"item_id": paracetamol.id, "quantity": 1}], discount_cents=5000),
                cashier,
            )
        assert _quantity(paracetamol.id) == 10
        assert _sale_count() == 0


class TestCommitRejections:
    def test_insufficient_stock(self, paracetamol, cashier):
        with pytest.raises(InsufficientStockError) as exc:
            sales_service.commit_sale(_cart([{"item_id": paracetamol.id, "quantity": 11}]), cashier)

        assert "Paracetamol 500mg" in exc.value.message
        assert exc.value.details["item_id"] == paracetamol.id
        assert exc.value.details["line"] == 0
        assert _quantity(paracetamol.id) == 10
        assert _sale_count() == 0

    def test_same_item_on_two_lines_is_combined(self, paracetamol, cashier):
        cart = _cart([
            {"item_id": paracetamol.id, "quantity": 6},
            {"item_id": paracetamol.id, "quantity": 6},
        ])
        with pytest.raises(InsufficientStockError) as exc:
            sales_service.commit_sale(cart, cashier)

        assert exc.value.details["line"] == 1
        assert _quantity(paracetamol.id) == 10

    def test_failure_on_later_line_leaves_earlier_lines_untouched(self, paracetamol, make_item, cashier):
        scarce = make_item(name="Vitamin C", brand_name="Redoxon", quantity=1)
        cart = _cart([
            {"item_id": paracetamol.id, "quantity": 2},
            {"item_id": scarce.id, "quantity": 2},
        ])
        with pytest.raises(InsufficientStockError):
            sales_service.commit_sale(cart, cashier)

        assert _quantity(paracetamol.id) == 10
        assert _quantity(scarce.id) == 1
        assert _sale_count() == 0

    def test_prescription_required(self, amoxicillin, cashier):
        with pytest.raises(PrescriptionRequiredError) as exc:
            sales_service.commit_sale(_cart([{"item_id": amoxicillin.id, "quantity": 1}]), cashier)

        assert "Amoxicillin" in exc.value.message
        assert _quantity(amoxicillin.id) == 20
        assert _sale_count() == 0

    def test_line_level_prescription_number(self, amoxicillin, cashier):
        cart = _cart([{"item_id": amoxicillin.id, "quantity": 1, "prescription_number": "RX-77"}])
        sale = sales_service.commit_sale(cart, cashier)
        assert sale.lines[0].prescription_number == "RX-77"

    def test_inactive_item(self, make_item, cashier):
        item = make_item(status=ItemStatus.INACTIVE)
        with pytest.raises(ItemInactiveError):
            sales_service.commit_sale(_cart([{"item_id": item.id, "quantity": 1}]), cashier)

    def test_unknown_item(self, app, cashier):
        with pytest.raises(ItemNotFoundError):
            sales_service.commit_sale(_cart([{"item_id": 404, "quantity": 1}]), cashier)

    def test_forbidden_by_policy(self, paracetamol, cashier):
        policy = RolePolicy({"cashier": {"sales": {"read"}}})
        with pytest.raises(ForbiddenError):
            sales_service.commit_sale(_cart([{"item_id": paracetamol.id, "quantity": 1}]), cashier, policy=policy)
        assert _quantity(paracetamol.id) == 10

    def test_inactive_principal_forbidden(self, paracetamol, cashier):
        cashier.is_active = False
        db.session.commit()
        with pytest.raises(ForbiddenError):
            sales_service.commit_sale(_cart([{"item_id": paracetamol.id, "quantity": 1}]), cashier)


class TestReceiptNumbers:
    def test_collision_is_retried(self, paracetamol, cashier, monkeypatch):
        numbers = iter(["RCP-20261016-0001", "RCP-20261016-0001", "RCP-20261016-0002"])
        monkeypatch.setattr(sales_service, "next_receipt_number", lambda: next(numbers))

        first = sales_service.commit_sale(_cart([{"item_id": paracetamol.id, "quantity": 1}]), cashier)
        second = sales_service.commit_sale(_cart([{"item_id": paracetamol.id, "quantity": 1}]), cashier)

        assert first.receipt_number == "RCP-20261016-0001"
        assert second.receipt_number == "RCP-20261016-0002"
        assert _quantity(paracetamol.id) == 8
        assert _sale_count() == 2

    def test_collision_exhausts_attempts(self, paracetamol, cashier, monkeypatch):
        monkeypatch.setattr(sales_service, "next_receipt_number", lambda: "RCP-20261016-0001")

        sales_service.commit_sale(_cart([{"item_id": paracetamol.id, "quantity": 1}]), cashier)
        with pytest.raises(DuplicateIdentifierError) as exc:
            sales_service.commit_sale(_cart([{"item_id": paracetamol.id, "quantity": 1}]), cashier)

        assert exc.value.status_code == 500
        assert exc.value.details["attempts"] == 3
        assert _quantity(paracetamol.id) == 9
        assert _sale_count() == 1


# =============================================================================
# LOYALTY
# =============================================================================


class TestLoyaltyOnCommit:
    def test_name_match_accrues_total(self, paracetamol, customer, cashier):
        sale = sales_service.commit_sale(
            _cart([{"item_id": paracetamol.id, "quantity": 2}], customer_name="Ama Mensah"),
            cashier,
        )

        assert sale.loyalty_customer_id == customer.id
        customer = loyalty_service.get_customer(customer.id)
        assert customer.points_balance == 45
        assert customer.total_spent_cents == 4500
        assert customer.total_purchases == 1

        txn = db.session.query(LoyaltyTransaction).filter_by(sale_id=sale.id).one()
        assert txn.points == 45

    def test_explicit_customer_id_wins(self, paracetamol, customer, cashier):
        sale = sales_service.commit_sale(
            _cart([{"item_id": paracetamol.id, "quantity": 1}], customer_name="Someone Else", customer_id=customer.id),
            cashier,
        )
        assert sale.loyalty_customer_id == customer.id
        assert loyalty_service.get_customer(customer.id).points_balance == 22

    def test_unknown_customer_commits_without_accrual(self, paracetamol, customer, cashier):
        sale = sales_service.commit_sale(_cart([{"item_id": paracetamol.id, "quantity": 1}]), cashier)

        assert sale.status == SaleStatus.COMMITTED
        assert sale.loyalty_customer_id is None
        assert loyalty_service.get_customer(customer.id).points_balance == 0

    def test_accrual_failure_keeps_sale(self, paracetamol, customer, cashier, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("loyalty store unavailable")

        monkeypatch.setattr(loyalty_service, "accrue", boom)

        sale = sales_service.commit_sale(
            _cart([{"item_id": paracetamol.id, "quantity": 2}], customer_name="Ama Mensah"),
            cashier,
        )

        assert sale.status == SaleStatus.COMMITTED
        assert sale.loyalty_customer_id is None
        assert _quantity(paracetamol.id) == 8
        assert _sale_count() == 1

    def test_replay_after_failure_and_twice(self, paracetamol, customer, cashier, pharmacist, monkeypatch):
        real_accrue = loyalty_service.accrue

        def boom(*args, **kwargs):
            raise RuntimeError("loyalty store unavailable")

        monkeypatch.setattr(loyalty_service, "accrue", boom)
        sale = sales_service.commit_sale(
            _cart([{"item_id": paracetamol.id, "quantity": 2}], customer_name="Ama Mensah"),
            cashier,
        )
        monkeypatch.setattr(loyalty_service, "accrue", real_accrue)

        first = sales_service.replay_loyalty(sale.id, pharmacist)
        second = sales_service.replay_loyalty(sale.id, pharmacist)

        assert first.id == second.id
        assert loyalty_service.get_customer(customer.id).points_balance == 45
        assert db.session.get(Sale, sale.id).loyalty_customer_id == customer.id

    def test_replay_needs_update_permission(self, paracetamol, cashier):
        sale = sales_service.commit_sale(_cart([{"item_id": paracetamol.id, "quantity": 1}]), cashier)
        with pytest.raises(ForbiddenError):
            sales_service.replay_loyalty(sale.id, cashier)


# =============================================================================
# VOID
# =============================================================================


@pytest.fixture
def committed_sale(paracetamol, amoxicillin, cashier):
    cart = _cart(
        [
            {"item_id": paracetamol.id, "quantity": 2},
            {"item_id": amoxicillin.id, "quantity": 3},
        ],
        prescription_number="RX-20261016-0009",
    )
    return sales_service.commit_sale(cart, cashier)


class TestVoid:
    def test_void_restores_stock_and_counters(self, committed_sale, paracetamol, amoxicillin, admin):
        assert _quantity(paracetamol.id) == 8
        assert _quantity(amoxicillin.id) == 17

        sale = sales_service.void_sale(committed_sale.id, "Customer changed mind", admin)

        assert sale.status == SaleStatus.VOIDED
        assert sale.is_void
        assert sale.void_reason == "Customer changed mind"
        assert sale.voided_by_user_id == admin.id
        assert sale.voided_at is not None

        for item_id, qty in ((paracetamol.id, 10), (amoxicillin.id, 20)):
            item = inventory_service.get_item(item_id)
            assert item.quantity == qty
            assert item.total_sold == 0
            assert item.total_revenue_cents == 0

    def test_void_twice_is_rejected_without_mutation(self, committed_sale, paracetamol, admin):
        sales_service.void_sale(committed_sale.id, "Wrong items rung", admin)

        with pytest.raises(AlreadyVoidError) as exc:
            sales_service.void_sale(committed_sale.id, "Wrong items rung", admin)

        assert exc.value.status_code == 409
        assert _quantity(paracetamol.id) == 10

    def test_cashier_cannot_void(self, committed_sale, paracetamol, cashier):
        with pytest.raises(ForbiddenError):
            sales_service.void_sale(committed_sale.id, "Wrong items rung", cashier)

        assert db.session.get(Sale, committed_sale.id).status == SaleStatus.COMMITTED
        assert _quantity(paracetamol.id) == 8

    def test_pharmacist_cannot_void(self, committed_sale, pharmacist):
        with pytest.raises(ForbiddenError):
            sales_service.void_sale(committed_sale.id, "Wrong items rung", pharmacist)

    def test_missing_sale(self, app, admin):
        with pytest.raises(SaleNotFoundError):
            sales_service.void_sale(404, "Wrong items rung", admin)

    def test_reason_length(self, committed_sale, admin):
        with pytest.raises(ValidationError):
            sales_service.void_sale(committed_sale.id, "oops", admin)
        assert db.session.get(Sale, committed_sale.id).status == SaleStatus.COMMITTED

    def test_void_credits_deactivated_item(self, committed_sale, paracetamol, admin):
        inventory_service.set_item_status(paracetamol.id, ItemStatus.INACTIVE)

        sales_service.void_sale(committed_sale.id, "Recalled batch", admin)
        assert _quantity(paracetamol.id) == 10

    def test_void_skips_hard_deleted_item(self, committed_sale, paracetamol, amoxicillin, admin):
        db.session.delete(inventory_service.get_item(paracetamol.id))
        db.session.commit()

        sale = sales_service.void_sale(committed_sale.id, "Item withdrawn", admin)

        assert sale.status == SaleStatus.VOIDED
        assert _quantity(amoxicillin.id) == 20

    def test_void_survives_failed_line_credit(self, committed_sale, paracetamol, amoxicillin, admin, monkeypatch):
        real_credit = inventory_service.credit

        def flaky_credit(item_id, quantity, revenue_cents):
            if item_id == paracetamol.id:
                raise IntegrityError("UPDATE inventory_items", {}, Exception("constraint failed"))
            return real_credit(item_id, quantity, revenue_cents)

        monkeypatch.setattr(inventory_service, "credit", flaky_credit)

        sale = sales_service.void_sale(committed_sale.id, "Customer changed mind", admin)

        assert sale.status == SaleStatus.VOIDED
        assert db.session.get(Sale, committed_sale.id).is_void
        assert _quantity(paracetamol.id) == 8
        assert _quantity(amoxicillin.id) == 20

    def test_void_keeps_loyalty(self, paracetamol, customer, cashier, admin):
        sale = sales_service.commit_sale(
            _cart([{"item_id": paracetamol.id, "quantity": 2}], customer_name="Ama Mensah"),
            cashier,
        )
        sales_service.void_sale(sale.id, "Customer changed mind", admin)

        assert loyalty_service.get_customer(customer.id).points_balance == 45

    def test_void_keeps_payment_status(self, committed_sale, admin):
        sale = sales_service.void_sale(committed_sale.id, "Customer changed mind", admin)
        assert sale.payment_status == "completed"


class TestTransitions:
    def test_draft_cannot_be_voided(self):
        sale = Sale(status=SaleStatus.DRAFT)
        with pytest.raises(InvalidTransitionError):
            sales_service._transition(sale, SaleStatus.VOIDED)

    def test_voided_is_terminal(self):
        sale = Sale(status=SaleStatus.VOIDED)
        with pytest.raises(InvalidTransitionError):
            sales_service._transition(sale, SaleStatus.COMMITTED)


class TestReads:
    def test_get_sale_and_receipt(self, committed_sale, cashier):
        sale = sales_service.get_sale(committed_sale.id, cashier)
        receipt = sales_service.build_receipt(sale)

        assert receipt["receipt_number"] == sale.receipt_number
        assert receipt["tax_rate_bps"] == 1250
        assert [i["quantity"] for i in receipt["items"]] == [2, 3]
        assert receipt["total_cents"] == sale.total_cents
        assert receipt["void"] is None

    def test_get_missing(self, app, cashier):
        with pytest.raises(SaleNotFoundError):
            sales_service.get_sale(404, cashier)

    def test_find_by_receipt(self, committed_sale):
        assert sales_service.find_sale_by_receipt(committed_sale.receipt_number).id == committed_sale.id
