"""Shared test fixtures for the acquirer settlement dashboard tests.

Uses a SQLite database file so tests run without PostgreSQL.
"""

from __future__ import annotations

import os

# Override DATABASE_URL before importing anything from app: the Settings
# model reads .env eagerly via pydantic-settings, and the module-level
# ``engine`` in app.core.database would try to connect to PostgreSQL.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"

from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.core.database import Base, get_db
from app.main import app
from app.schemas.transaction import TransactionCreate
from app.services.store.sql_store import SqlTransactionStore

# Use SQLite file-based database for tests (no PostgreSQL needed)
TEST_DATABASE_URL = "sqlite:///./test.db"

SAO_PAULO = ZoneInfo("America/Sao_Paulo")

DATA_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "data")

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)


# Enable foreign keys for SQLite
@event.listens_for(engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store(db_session) -> SqlTransactionStore:
    return SqlTransactionStore(db_session)


@pytest.fixture(scope="function")
def client(db_session):
    """FastAPI test client with overridden DB dependency."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def sample_csv_bytes() -> bytes:
    with open(os.path.join(DATA_DIR, "sample_export.csv"), "rb") as f:
        return f.read()


@pytest.fixture
def make_record():
    """Factory for ``TransactionCreate`` objects with sensible defaults.

    ``when`` is a naive local (Sao Paulo) wall-clock datetime.
    """

    def _make(
        transaction_id: str = "TXN-1",
        when: datetime = datetime(2025, 1, 15, 12, 0),
        **overrides,
    ) -> TransactionCreate:
        local = when.replace(tzinfo=SAO_PAULO)
        data = {
            "export_timestamp": local,
            "transaction_timestamp": local,
            "transaction_id": transaction_id,
            "acquirer_transaction_id": f"ACQ-{transaction_id}",
            "establishment_name": "PADARIA PAO DOURADO LTDA",
            "modality": "CREDITO",
            "gross_amount": Decimal("100.00"),
            "net_amount": Decimal("98.00"),
            "original_amount": Decimal("100.00"),
            "acquirer_name": "Cielo",
        }
        data.update(overrides)
        return TransactionCreate(**data)

    return _make
