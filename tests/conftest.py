"""Shared fixtures: an in-memory SQLite ledger and an authenticated API client."""

import os

# Must be set before backend.models / backend.auth are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["API_KEY_USER1"] = "test-owner-key"
os.environ["API_KEY_USER2"] = "test-clerk-key"
os.environ.pop("EXPOSURE_LIMIT", None)

import pytest
from fastapi.testclient import TestClient

from backend.models import Base, SessionLocal, engine, get_db
from backend.main import app
from backend.services import ledger_store


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def match(db):
    return ledger_store.create_match(db, name="Final", team_a="Mumbai", team_b="Chennai")


@pytest.fixture
def customers(db):
    return (
        ledger_store.create_customer(db, name="Ravi"),
        ledger_store.create_customer(db, name="Sunil"),
    )


@pytest.fixture
def two_entries(db, match, customers):
    """E1 {-9500, 10000, 20%} and E2 {5000, -4000, 50%} on the Final."""
    ravi, sunil = customers
    e1 = ledger_store.create_entry(db, match.id, ravi.id, -9500, 10000, 20)
    e2 = ledger_store.create_entry(db, match.id, sunil.id, 5000, -4000, 50)
    return e1, e2
