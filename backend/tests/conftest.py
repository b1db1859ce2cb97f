"""
Pytest fixtures for mall backend tests.

Provides the app (file-backed SQLite so worker threads share one database),
a fresh database per test, catalog and user fixtures, and auth helpers.
"""

from decimal import Decimal

import pytest

from mall import create_app
from mall.extensions import db
from mall.models import Brand, Category
from mall.permissions import ROLE_ADMIN, ROLE_MERCHANT, ROLE_USER
from mall.services.auth_service import create_user
from mall.services.authorization_service import get_authorization_engine
from mall.services.products_service import ProductService
from mall.services.token_service import get_token_service

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    db_path = tmp_path_factory.mktemp("db") / "mall-test.sqlite3"
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'JWT_SECRET': 'test-secret-key-0123456789abcdef0123',
        'BCRYPT_ROUNDS': 4,
        'AUTHZ_AUTOLOAD': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh database and an empty, loaded policy for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        get_authorization_engine().load_policy()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def engine(db_session):
    return get_authorization_engine()


@pytest.fixture(scope='function')
def setup_policies(engine):
    """Default role grants, saved."""
    engine.init_default_policies()
    return engine


@pytest.fixture(scope='function')
def admin_user(db_session, setup_policies):
    return create_user("admin", "admin@mall.test", PASSWORD, ROLE_ADMIN, engine=setup_policies)


@pytest.fixture(scope='function')
def merchant_user(db_session, setup_policies):
    return create_user("merchant", "merchant@mall.test", PASSWORD, ROLE_MERCHANT, engine=setup_policies)


@pytest.fixture(scope='function')
def other_merchant(db_session, setup_policies):
    return create_user("merchant2", "merchant2@mall.test", PASSWORD, ROLE_MERCHANT, engine=setup_policies)


@pytest.fixture(scope='function')
def customer_user(db_session, setup_policies):
    return create_user("customer", "customer@mall.test", PASSWORD, ROLE_USER, engine=setup_policies)


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Phones", description="Mobile phones")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def brand(db_session):
    brand = Brand(name="Acme")
    db_session.add(brand)
    db_session.commit()
    return brand


@pytest.fixture(scope='function')
def product_service(db_session):
    return ProductService(db_session)


@pytest.fixture(scope='function')
def make_product(product_service, category, merchant_user):
    """Factory: create a product owned by merchant_user, return its dict."""
    def _make(name="Widget", price="19.99", stock=100, images=None, attributes=None, **fields):
        merchant_id = fields.pop("merchant_id", merchant_user.id)
        patch = {"name": name, "category_id": category.id, "price": Decimal(price), "stock": stock}
        patch.update(fields)
        return product_service.create_product(
            merchant_id=merchant_id,
            patch=patch,
            images=images,
            attributes=attributes,
        )
    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product(
        images=["https://img.test/a.jpg", "https://img.test/b.jpg"],
        attributes=[{"attr_name": "Color", "attr_value": "Red"}],
    )


def token_for(user) -> str:
    """Issue a session token for user without going through /login."""
    return get_token_service().issue_token(user.id, user.username, user.role)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user through the login route."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None
