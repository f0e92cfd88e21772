"""Pytest configuration.

Every test gets a fresh in-memory SQLite database built from the model
metadata; the environment is set before the application settings load.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fee_engine.core.deps import get_db
from fee_engine.core.security import get_password_hash
from fee_engine.models import BackOfficeUser, Base
from fee_engine.services.fee_assignments import ClientFeeAssignmentManager
from fee_engine.services.fee_resolver import FeeResolver
from fee_engine.services.fee_schedules import FeeScheduleStore

STAFF_USERNAME = "backoffice"
STAFF_PASSWORD = "s3cret-pass"

STANDARD_RATES = [
    {"payment_method": "CREDIT", "installment_count": 1, "final_rate_percent": "3.50",
     "root_share_percent": "2.00", "forwarding_share_percent": "1.50"},
    {"payment_method": "CREDIT", "installment_count": 6, "final_rate_percent": "5.90",
     "root_share_percent": "3.00", "forwarding_share_percent": "2.90"},
    {"payment_method": "DEBIT", "installment_count": 1, "final_rate_percent": "1.20",
     "root_share_percent": "1.20", "forwarding_share_percent": "0.00"},
    {"payment_method": "PIX", "installment_count": 1, "final_rate_percent": "0.90",
     "root_share_percent": "0.90", "forwarding_share_percent": "0.00"},
]

PREMIUM_RATES = [
    {"payment_method": "CREDIT", "installment_count": 1, "final_rate_percent": "2.50",
     "root_share_percent": "1.50", "forwarding_share_percent": "1.00"},
    {"payment_method": "DEBIT", "installment_count": 1, "final_rate_percent": "0.80",
     "root_share_percent": "0.80", "forwarding_share_percent": "0"},
]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    return FeeScheduleStore(db)


@pytest.fixture
def manager(db, store):
    return ClientFeeAssignmentManager(db, store)


@pytest.fixture
def resolver(db, manager):
    return FeeResolver(db, manager, fallback_policy="nearest_lower")


@pytest.fixture
def standard(store):
    return store.create_schedule("Standard", "Default pricing", STANDARD_RATES)


@pytest.fixture
def premium(store):
    return store.create_schedule("Premium", None, PREMIUM_RATES)


@pytest.fixture
def client_id():
    return "client-" + uuid.uuid4().hex[:8]


@pytest.fixture
def staff_user(db):
    user = BackOfficeUser(
        id=str(uuid.uuid4()),
        username=STAFF_USERNAME,
        hashed_password=get_password_hash(STAFF_PASSWORD),
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def api(session_factory):
    from fee_engine.main import app

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(api, staff_user):
    resp = api.post("/auth/login", json={"username": STAFF_USERNAME, "password": STAFF_PASSWORD})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
def standard_rates():
    return [dict(r) for r in STANDARD_RATES]


@pytest.fixture
def premium_rates():
    return [dict(r) for r in PREMIUM_RATES]
