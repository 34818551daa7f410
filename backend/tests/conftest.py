"""
Pytest fixtures for RIOM backend tests.

Provides test database setup, users with each role, catalog factories and
the test client.
"""

import pytest

from riom import create_app
from riom.extensions import db
from riom.services.auth_service import create_user
from riom.services.products_service import create_product
from riom.services.settings_service import init_settings_if_missing
from riom.services.sku_service import create_sku


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        init_settings_if_missing()
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def admin_user(db_session):
    return create_user(email="admin@riom.test", password=TEST_PASSWORD, name="Admin", role="admin")


@pytest.fixture(scope='function')
def staff_user(db_session):
    return create_user(email="staff@riom.test", password=TEST_PASSWORD, name="Staff", role="staff")


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.email, TEST_PASSWORD))


@pytest.fixture(scope='function')
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, staff_user.email, TEST_PASSWORD))


@pytest.fixture(scope='function')
def product(db_session):
    """A bare product with no SKUs."""
    return create_product({"name": "T-Shirt", "category": "Apparel", "base_price_cents": 1000})


@pytest.fixture(scope='function')
def make_sku(db_session, product):
    """Factory: create a SKU under `product` with the given stock."""
    counter = {"n": 0}

    def _make(stock=0, price_cents=1000, reorder_threshold=None, sku=None, **extra):
        counter["n"] += 1
        payload = {
            "product_id": product.id,
            "sku": sku or f"TSHIRT-{counter['n']:03d}",
            "price_cents": price_cents,
            "stock": stock,
            **extra,
        }
        if reorder_threshold is not None:
            payload["reorder_threshold"] = reorder_threshold
        return create_sku(payload)

    return _make


@pytest.fixture(scope='function')
def place_order(client):
    """POST /api/orders for a list of (sku_id, quantity) pairs."""
    def _place(headers, lines, **extra):
        return client.post(
            '/api/orders',
            json={"items": [{"sku_id": s, "quantity": q} for s, q in lines], **extra},
            headers=headers,
        )

    return _place


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
