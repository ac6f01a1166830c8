"""
Pytest fixtures for shopadmin backend tests.

Provides test database setup, an authenticated admin and test client.
"""

import pytest
from shopadmin import create_app
from shopadmin.extensions import db
from shopadmin.models import AdminUser, Category, Customer, Product
from shopadmin.services import session_service, taxonomy_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'DEBUG',
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
def admin(db_session):
    """Active admin account."""
    user = AdminUser(username="admin", email="admin@shop.test", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def auth_headers(admin):
    """Bearer headers for the admin fixture."""
    _, token = session_service.create_session(admin.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def customer(db_session):
    c = Customer(full_name="Nguyen Van A", email="a@shop.test")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def category(db_session):
    c = taxonomy_service.create_category(name="Cups")
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def product(db_session, category):
    p = Product(
        name="Ly A",
        slug="ly-a",
        description="Ceramic cup",
        price_cents=45000,
        attributes={"capacity": "350ml", "colors": ["white", "blue"]},
        category_id=category.id,
    )
    db_session.add(p)
    db_session.commit()
    return p


def make_category(name, parent=None):
    """Create + commit a category through the service."""
    c = taxonomy_service.create_category(name=name, parent_id=parent.id if parent else None)
    db.session.commit()
    return c


@pytest.fixture
def category_factory(db_session):
    return make_category
