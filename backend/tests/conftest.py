"""
Pytest fixtures for the pharmacy backend tests.

Every test gets a fresh app bound to its own in-memory SQLite database,
seeded staff accounts (one per role) and a small drug catalog.
"""

import pytest

from pharmacy import create_app
from pharmacy.extensions import db
from pharmacy.models import InventoryItem, ItemStatus
from pharmacy.services import auth_service, loyalty_service


PASSWORD = "Password123"


@pytest.fixture(scope="function")
def app():
    """Create application for testing."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "BCRYPT_ROUNDS": 4,
        "TAX_RATE_BPS": 1250,
        "RECEIPT_NUMBER_ATTEMPTS": 3,
        "REJECT_DISCOUNT_OVER_TOTAL": False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope="function")
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope="function")
def admin(app):
    return auth_service.create_user("admin", "admin@pharmacy.local", PASSWORD, role="admin")


@pytest.fixture(scope="function")
def pharmacist(app):
    return auth_service.create_user("pharm", "pharm@pharmacy.local", PASSWORD, role="pharmacist")


@pytest.fixture(scope="function")
def cashier(app):
    return auth_service.create_user("cashier", "cashier@pharmacy.local", PASSWORD, role="cashier")


@pytest.fixture(scope="function")
def make_item(app):
    """Factory for catalog items; defaults to an active OTC drug."""
    def _make(**overrides):
        fields = {
            "name": "Paracetamol 500mg",
            "brand_name": "Panadol",
            "category": "Analgesics",
            "quantity": 10,
            "unit_cost_cents": 1200,
            "selling_price_cents": 2000,
            "is_prescription_required": False,
            "status": ItemStatus.ACTIVE,
        }
        fields.update(overrides)
        item = InventoryItem(**fields)
        db.session.add(item)
        db.session.commit()
        return item
    return _make


@pytest.fixture(scope="function")
def paracetamol(make_item):
    return make_item()


@pytest.fixture(scope="function")
def amoxicillin(make_item):
    return make_item(
        name="Amoxicillin 250mg",
        brand_name="Amoxil",
        category="Antibiotics",
        quantity=20,
        selling_price_cents=1550,
        is_prescription_required=True,
    )


@pytest.fixture(scope="function")
def customer(app):
    return loyalty_service.create_customer({
        "first_name": "Ama",
        "last_name": "Mensah",
        "phone": "0241234567",
        "email": "ama@example.com",
    })


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post("/api/auth/login", json={
        "username": username,
        "password": password,
    })
    if response.status_code == 200:
        return response.json.get("token")
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.username))


@pytest.fixture(scope="function")
def pharmacist_headers(client, pharmacist):
    return auth_headers(get_auth_token(client, pharmacist.username))


@pytest.fixture(scope="function")
def cashier_headers(client, cashier):
    return auth_headers(get_auth_token(client, cashier.username))
