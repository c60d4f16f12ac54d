"""
Pytest fixtures for workshop backend tests.

Provides test database setup, tenant isolation fixtures, bearer tokens and
small seed helpers for materials, receipts and products.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from workshop import create_app
from workshop.extensions import db
from workshop.models import Organization, ROLE_OWNER, ROLE_MEMBER
from workshop.services.auth_service import create_user, add_member
from workshop.services.session_service import create_session
from workshop.services import material_service, receipt_service, product_service

PRODUCT_DECIMAL_FIELDS = {"weight", "estimated_cost", "markup_percent", "recommended_price"}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Metal Works", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Wood Shop", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


def _member(org, email, role):
    user = create_user(email, email.split("@")[0], "Password123")
    add_member(org.id, user.id, role)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def owner_a(db_session, org_a):
    return _member(org_a, "owner@a.test", ROLE_OWNER)


@pytest.fixture(scope='function')
def member_a(db_session, org_a):
    return _member(org_a, "member@a.test", ROLE_MEMBER)


@pytest.fixture(scope='function')
def owner_b(db_session, org_b):
    return _member(org_b, "owner@b.test", ROLE_OWNER)


def _headers(user, org):
    _, token = create_session(user.id, org.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def owner_a_headers(owner_a, org_a):
    return _headers(owner_a, org_a)


@pytest.fixture(scope='function')
def member_a_headers(member_a, org_a):
    return _headers(member_a, org_a)


@pytest.fixture(scope='function')
def owner_b_headers(owner_b, org_b):
    return _headers(owner_b, org_b)


@pytest.fixture(scope='function')
def make_material(db_session):
    """Factory: make_material(org, name, unit="kg", **fields) -> material id."""
    def _make(org, name, unit="kg", **fields):
        patch = {"name": name, "unit": unit, **fields}
        if "minimum_stock" in patch and patch["minimum_stock"] is not None:
            patch["minimum_stock"] = Decimal(str(patch["minimum_stock"]))
        return material_service.create_material(org_id=org.id, user_id=None, patch=patch)["id"]
    return _make


@pytest.fixture(scope='function')
def make_receipt(db_session):
    """Factory: make_receipt(org, material_id, quantity, unit_price, day=1) -> receipt id."""
    def _make(org, material_id, quantity, unit_price, day=1, **fields):
        patch = {
            "material_id": material_id,
            "quantity": Decimal(str(quantity)),
            "unit_price": Decimal(str(unit_price)),
            "receipt_date": datetime(2026, 1, day, 9, 0),
            **fields,
        }
        return receipt_service.create_receipt(org_id=org.id, user_id=None, patch=patch)["id"]
    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(org, name, recipe=[(material_id, qty)], **fields) -> product id."""
    def _make(org, name, recipe=None, **fields):
        patch = {"name": name}
        for key, value in fields.items():
            patch[key] = Decimal(str(value)) if key in PRODUCT_DECIMAL_FIELDS and value is not None else value
        items = [(mid, Decimal(str(qty))) for mid, qty in (recipe or [])]
        return product_service.create_product(
            org_id=org.id, user_id=None, patch=patch, recipe_items=items or None
        )["id"]
    return _make
