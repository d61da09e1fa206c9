"""
Pytest fixtures for the shop backend tests.

Provides the test app (in-memory SQLite), a per-test table wipe, the test
client, an authenticated admin, and a product factory.
"""

import pytest

from shopkeeper import create_app
from shopkeeper.config import TestingConfig
from shopkeeper.extensions import db
from shopkeeper.models import Product
from shopkeeper.money import to_cents
from shopkeeper.services import auth_service
from shopkeeper.services.transaction_service import get_processor


ADMIN_EMAIL = "owner@shop.test"
ADMIN_PASSWORD = "secret123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def processor(app, db_session):
    """The app's transaction processor, restored to its configured behaviour after each test."""
    proc = get_processor()
    strategy = proc.strategy
    saved = (strategy.enabled, strategy.replica_set_name, strategy.database_url, proc.refresh_dashboard)

    yield proc

    strategy.enabled, strategy.replica_set_name, strategy.database_url, proc.refresh_dashboard = saved


@pytest.fixture(scope='function')
def transactional(processor):
    """Switch batches onto the transactional path (replica set configured)."""
    processor.strategy.enabled = True
    processor.strategy.replica_set_name = "rs0"
    return processor


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product("SKU-1", price=10, quantity=5, reorder_point=2)."""
    def _make(code, *, price=10, quantity=5, reorder_point=2, name=None, size="", gsm=""):
        product = Product(
            product_code=code.upper(),
            sku=code.upper(),
            name=name or f"Product {code}",
            price_cents=to_cents(price),
            quantity=quantity,
            reorder_point=reorder_point,
            size=size,
            gsm=gsm,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def admin_user(db_session):
    return auth_service.create_user("Shop Owner", ADMIN_EMAIL, ADMIN_PASSWORD, role="admin")


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    token = get_auth_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    assert token, "login failed in fixture"
    return auth_headers(token)


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
