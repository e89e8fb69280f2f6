"""
Pytest fixtures for prodtrack tests.

Provides the Flask app on in-memory SQLite, a per-test table wipe, both
record store backends, a controllable clock, role actors, and pairs of
DataService instances sharing one store (two open "tabs").
"""

import pytest

from prodtrack import create_app
from prodtrack.extensions import db
from prodtrack.permissions import ROLE_ACCOUNTANT, ROLE_OWNER, ROLE_SUPERVISOR
from prodtrack.services.data_service import DataService
from prodtrack.services.permission_service import Actor
from prodtrack.services.record_store import MemoryRecordStore, SqlRecordStore


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'INSTANCE_ID': 'test-app',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions.pop("prodtrack.data_service", None)

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def memory_store():
    return MemoryRecordStore()


@pytest.fixture(scope='function')
def sql_store(db_session):
    return SqlRecordStore()


class FakeClock:
    """Monotonic-style clock the test moves by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope='function')
def clock():
    return FakeClock()


# =============================================================================
# ACTORS
# =============================================================================


@pytest.fixture
def owner():
    return Actor(id=1, name="Boss", role=ROLE_OWNER, username="boss")


@pytest.fixture
def accountant():
    return Actor(id=2, name="Accountant", role=ROLE_ACCOUNTANT, username="accountant")


@pytest.fixture
def mahape_supervisor():
    return Actor(id=3, name="Amit Patel", role=ROLE_SUPERVISOR, factory="Mahape", username="mahape")


@pytest.fixture
def taloja_supervisor():
    return Actor(id=4, name="Sunita Verma", role=ROLE_SUPERVISOR, factory="Taloja", username="taloja")


# =============================================================================
# SERVICES
# =============================================================================


@pytest.fixture
def service(memory_store):
    """One DataService over an in-memory store."""
    return DataService(memory_store, instance_id="tab-a")


@pytest.fixture
def tabs(memory_store):
    """Two instances sharing one in-memory store."""
    return (
        DataService(memory_store, instance_id="tab-a"),
        DataService(memory_store, instance_id="tab-b"),
    )


@pytest.fixture
def sql_tabs(sql_store):
    """Two instances sharing the SQL record store."""
    return (
        DataService(sql_store, instance_id="tab-a"),
        DataService(sql_store, instance_id="tab-b"),
    )


@pytest.fixture
def seeded(service, owner):
    """A client and one project per factory."""
    client = service.create_client(owner, {"name": "Acme Publishing", "company": "Acme"})
    mahape = service.create_project(owner, {
        "name": "Grade 5 Maths",
        "clientId": client["id"],
        "totalQuantity": 100,
        "factory": "Mahape",
        "startDate": "2026-01-01",
        "endDate": "2026-03-31",
    })
    taloja = service.create_project(owner, {
        "name": "Atlas Reprint",
        "client": "Acme Publishing",
        "totalQuantity": 50,
        "factory": "Taloja",
    })
    return {"client": client, "mahape": mahape, "taloja": taloja}
