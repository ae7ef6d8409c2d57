"""
Pytest fixtures for inventory_pos backend tests.

Provides the test app on in-memory SQLite, a per-test table wipe, and small
factories for users and products.
"""

import pytest
from sqlalchemy import update

from inventory_pos import create_app
from inventory_pos.extensions import db
from inventory_pos.models import User, Product, Receipt
from inventory_pos.models.auth import ROLE_CASHIER, ROLE_OWNER
from inventory_pos.services.inventory_service import get_quantity_on_hand
from inventory_pos.services.user_service import hash_password


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
    'WRITE_RETRY_BACKOFF': 0.01,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()
    db.session.remove()


@pytest.fixture(scope='function')
def make_user(db_session):
    def _make(username: str, role: str = ROLE_CASHIER, is_active: bool = True) -> User:
        user = User(
            username=username,
            password_hash=hash_password("Password123!"),
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    def _make(name: str, price_cents: int = 1000, quantity: int = 10, min_stock_level: int = 0) -> Product:
        product = Product(
            name=name,
            price_cents=price_cents,
            quantity=quantity,
            min_stock_level=min_stock_level,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def cashier(make_user):
    return make_user("alice", ROLE_CASHIER)


@pytest.fixture(scope='function')
def owner(make_user):
    return make_user("owen", ROLE_OWNER)


def stock_of(product_id: int) -> int:
    """Committed on-hand quantity, bypassing the identity map."""
    return get_quantity_on_hand(product_id)


def set_transaction_date(receipt_id: int, when) -> None:
    db.session.execute(
        update(Receipt).where(Receipt.id == receipt_id).values(transaction_date=when)
    )
    db.session.commit()


def actor_headers(username: str) -> dict:
    """Helper to create the actor header the auth layer forwards."""
    return {'X-Actor': username}
