"""
Pytest fixtures for brecho backend tests.

Provides test database setup, one owner-run shop per tenant, users per role
and a test client.
"""

import pytest
from brecho import create_app
from brecho.extensions import db
from brecho.models import PaymentMethod, User
from brecho.services import auth_service, product_service, session_service


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ASSISTANT_WEBHOOK_URL': '',
        'ASSISTANT_SIMULATION': True,
        'POINTS_PER_REAL': 1,
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
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def shop_a(db_session):
    """Shop A (first tenant) with its owner account."""
    shop, _ = auth_service.register_shop(
        shop_name="Brechó Ana",
        username="owner_a",
        email="owner_a@brecho-a.com",
        password=PASSWORD,
    )
    return shop


@pytest.fixture(scope='function')
def shop_b(db_session):
    """Shop B (second tenant) with its owner account."""
    shop, _ = auth_service.register_shop(
        shop_name="Brechó Bia",
        username="owner_b",
        email="owner_b@brecho-b.com",
        password=PASSWORD,
    )
    return shop


@pytest.fixture(scope='function')
def owner_a(shop_a):
    return db.session.query(User).filter_by(shop_id=shop_a.id, username="owner_a").one()


@pytest.fixture(scope='function')
def owner_b(shop_b):
    return db.session.query(User).filter_by(shop_id=shop_b.id, username="owner_b").one()


@pytest.fixture(scope='function')
def manager_a(shop_a):
    return auth_service.create_user(
        shop_id=shop_a.id,
        username="manager_a",
        email="manager_a@brecho-a.com",
        password=PASSWORD,
        role="manager",
    )


@pytest.fixture(scope='function')
def seller_user_a(shop_a):
    return auth_service.create_user(
        shop_id=shop_a.id,
        username="seller_a",
        email="seller_a@brecho-a.com",
        password=PASSWORD,
        role="seller",
    )


def _headers_for(user) -> dict:
    _, token = session_service.create_session(user_id=user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def owner_headers(owner_a):
    return _headers_for(owner_a)


@pytest.fixture(scope='function')
def owner_b_headers(owner_b):
    return _headers_for(owner_b)


@pytest.fixture(scope='function')
def manager_headers(manager_a):
    return _headers_for(manager_a)


@pytest.fixture(scope='function')
def seller_headers(seller_user_a):
    return _headers_for(seller_user_a)


@pytest.fixture(scope='function')
def cash_method(shop_a):
    """Immediate payment method seeded at sign-up."""
    return db.session.query(PaymentMethod).filter_by(shop_id=shop_a.id, name="Dinheiro").one()


@pytest.fixture(scope='function')
def credit_method(shop_a):
    """Store-credit (installment) payment method seeded at sign-up."""
    return db.session.query(PaymentMethod).filter_by(shop_id=shop_a.id, name="Crediário").one()


@pytest.fixture(scope='function')
def product_a(shop_a):
    """Single-piece product in Shop A."""
    return product_service.create_product(
        shop_id=shop_a.id,
        patch={
            "name": "Jaqueta jeans vintage",
            "sku": "JAQ-001",
            "cost_price_cents": 3000,
            "sale_price_cents": 8990,
            "quantity": 1,
        },
    )


@pytest.fixture(scope='function')
def product_stack(shop_a):
    """Product with several units in Shop A."""
    return product_service.create_product(
        shop_id=shop_a.id,
        patch={
            "name": "Camiseta básica",
            "sku": "CAM-010",
            "cost_price_cents": 800,
            "sale_price_cents": 2500,
            "quantity": 5,
        },
    )


@pytest.fixture(scope='function')
def product_b(shop_b):
    """Product in Shop B."""
    return product_service.create_product(
        shop_id=shop_b.id,
        patch={
            "name": "Vestido floral",
            "sku": "VES-001",
            "cost_price_cents": 2000,
            "sale_price_cents": 5990,
            "quantity": 1,
        },
    )


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
