"""
Pytest fixtures for the bakery ledger tests.

Provides the app on an in-memory database, a per-test clean session, staff
accounts for each role, and small factories for stocked products.
"""

from decimal import Decimal

import pytest

from bakery import create_app
from bakery.config import TestingConfig
from bakery.extensions import db
from bakery.models import Unit, User
from bakery.models.auth import ROLE_ADMIN, ROLE_PASTRY_CHEF, ROLE_PRODUCTION, ROLE_SHOP
from bakery.services import ledger_service, purchase_service, transfer_service
from bakery.services.auth_service import hash_password


DEFAULT_PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

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
    """Fresh tables and a clean identity map for each test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()
        app.extensions["stock_stats_cache"].invalidate()

        yield db.session

        db.session.rollback()


def _make_user(session, username: str, role: str) -> User:
    user = User(
        username=username,
        email=f"{username}@boulangerie.test",
        password_hash=hash_password(DEFAULT_PASSWORD),
        role=role,
        is_active=True,
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def chef_user(db_session):
    return _make_user(db_session, "chef", ROLE_PASTRY_CHEF)


@pytest.fixture(scope='function')
def production_user(db_session):
    return _make_user(db_session, "atelier", ROLE_PRODUCTION)


@pytest.fixture(scope='function')
def shop_user(db_session):
    return _make_user(db_session, "vendeuse", ROLE_SHOP)


@pytest.fixture(scope='function')
def kg(db_session):
    unit = Unit(value="kg", label="Kilogramme")
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture(scope='function')
def make_ingredient(db_session, admin_user, kg):
    """
    Purchase an ingredient. `purchase_price` is the total paid, so the unit
    cost is purchase_price / quantity.
    """
    def _make(name, quantity, purchase_price=Decimal("0")):
        return purchase_service.create_purchase(
            name=name,
            purchase_price=purchase_price,
            quantity=quantity,
            unit_id=kg.id,
            actor_id=admin_user.id,
        )
    return _make


@pytest.fixture(scope='function')
def stock_workshop(admin_user):
    """Move raw stock of a product into the workshop."""
    def _stock(product, quantity):
        return transfer_service.transfer(
            product.id, "raw", "workshop", quantity, actor_id=admin_user.id
        )
    return _stock


@pytest.fixture(scope='function')
def shop_product(db_session, make_ingredient, admin_user):
    """
    A product sitting in the shop at a known selling price.

    Returns a factory: shop_product(name, available, price).
    """
    def _make(name, available, price):
        product = make_ingredient(name, available, Decimal("0"))
        transfer_service.transfer(product.id, "raw", "shop", available, actor_id=admin_user.id)
        ledger_service.set_sale_price(product.id, price)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def kitchen_product(db_session, make_ingredient, admin_user):
    """Same as shop_product, for the kitchen till."""
    def _make(name, available, price):
        product = make_ingredient(name, available, Decimal("0"))
        transfer_service.transfer(
            product.id, "raw", "kitchen", available, actor_id=admin_user.id, sale_price=price
        )
        db_session.commit()
        return product
    return _make


def get_auth_token(client, username: str, password: str = DEFAULT_PASSWORD) -> str:
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


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture(scope='function')
def chef_headers(client, chef_user):
    return auth_headers(get_auth_token(client, chef_user.username))


@pytest.fixture(scope='function')
def shop_headers(client, shop_user):
    return auth_headers(get_auth_token(client, shop_user.username))


@pytest.fixture(scope='function')
def production_headers(client, production_user):
    return auth_headers(get_auth_token(client, production_user.username))
