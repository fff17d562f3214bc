"""
Pytest fixtures for RetailPOS ledger tests.

Provides test database setup, tenant/store fixtures, actor contexts and a
test client.
"""

import pytest
from retailpos import create_app
from retailpos.config import TestConfig
from retailpos.context import ActorContext
from retailpos.extensions import db
from retailpos.models import Tenant, Store
from retailpos.services import register_service, stock_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
def tenant_a(db_session):
    """Create Tenant A (first tenant)."""
    tenant = Tenant(name="Tenant A - Acme Corp", code="ACME", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Create Tenant B (second tenant)."""
    tenant = Tenant(name="Tenant B - Beta Inc", code="BETA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def store_a(db_session, tenant_a):
    """Create Store A1 in Tenant A."""
    store = Store(tenant_id=tenant_a.id, name="Store A1", code="A1")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_a2(db_session, tenant_a):
    """Create a second store in Tenant A (transfer destination)."""
    store = Store(tenant_id=tenant_a.id, name="Store A2", code="A2")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session, tenant_b):
    """Create Store B1 in Tenant B."""
    store = Store(tenant_id=tenant_b.id, name="Store B1", code="B1")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def actor(tenant_a):
    """Actor in Tenant A holding every permission."""
    return ActorContext.with_all_permissions(tenant_id=tenant_a.id, user_id=101)


@pytest.fixture(scope='function')
def actor_b(tenant_b):
    """Actor in Tenant B holding every permission."""
    return ActorContext.with_all_permissions(tenant_id=tenant_b.id, user_id=202)


@pytest.fixture(scope='function')
def open_session(actor, store_a):
    """Open register session on Store A1 with a 100.00 float."""
    return register_service.open_register(actor, store_id=store_a.id, opening_float="100.00")


@pytest.fixture(scope='function')
def stock_up(actor):
    """Receive units into a store through the ledger (PURCHASE move)."""
    def _stock_up(variant_id, store_id, qty):
        return stock_service.receive_stock(
            actor, variant_id=variant_id, store_id=store_id, qty=qty, reference="SEED"
        )
    return _stock_up


@pytest.fixture(scope='function')
def auth_headers(tenant_a):
    """Gateway headers for Tenant A; pass permissions as "action:Resource" strings."""
    def _headers(*permissions, tenant_id=None, user_id=101):
        headers = {
            "X-Tenant-Id": str(tenant_id if tenant_id is not None else tenant_a.id),
            "X-User-Id": str(user_id),
        }
        if permissions:
            headers["X-Permissions"] = ",".join(permissions)
        return headers
    return _headers
