"""
Shared fixtures: in-memory SQLite database, stored room searches and a
TestClient wired to the test database.
"""

import os
import sys
from datetime import date, datetime, timedelta
from unittest.mock import MagicMock

# Settings are read on import, so the environment goes first
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_broker.db")
os.environ.setdefault("ROYAL_API_FEED_ID_B2B", "feed-b2b")
os.environ.setdefault("ROYAL_API_FEED_ID_B2C", "feed-b2c")
os.environ.setdefault("ROYAL_API_USERNAME", "broker")
os.environ.setdefault("ROYAL_API_PASSWORD", "secret")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("LOG_JSON", "false")

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from broker.database import Base
import broker.models  # noqa: F401


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT to behave
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    db = TestingSession()
    try:
        yield db
    finally:
        db.close()


def make_room(room_code="DBL", price_code="PC-1", total_price="1000.00", board_type="BB", currency="EUR"):
    """A stored room result, as the quote cache keeps it"""
    return {
        "room_code": room_code,
        "room_name": "Double Room",
        "board_type": board_type,
        "board_type_name": "Bed & Breakfast",
        "price_code": price_code,
        "total_price": total_price,
        "nightly_price": None,
        "currency": currency,
        "cancellation_policies": [],
        "attributes": [],
        "images": [],
        "allotment": 2,
    }


@pytest.fixture
def make_search(db_session):
    """Insert a room search session directly"""
    from broker.models.quote import RoomSearchSession

    def _make(rooms=None, expires_in=timedelta(minutes=30), agency_id=None, hotel_code="HTL1"):
        now = datetime.utcnow()
        session = RoomSearchSession(
            room_search_id="rs-123",
            feed_id="feed-b2b",
            hotel_code=hotel_code,
            check_in=date(2026, 12, 1),
            check_out=date(2026, 12, 4),
            occupancy=[{"adult": 2, "child_ages": []}],
            currency="EUR",
            nationality="TR",
            user_id="user-1",
            agency_id=agency_id,
            rooms=rooms if rooms is not None else [make_room()],
            created_at=now,
            expires_at=now + expires_in,
        )
        db_session.add(session)
        db_session.commit()
        return session

    return _make


@pytest.fixture
def upstream():
    """Stand-in for RoyalClient"""
    from broker.services.royal_client import RoyalClient
    return MagicMock(spec=RoyalClient)


@pytest.fixture
def api_client(engine):
    """TestClient using the test database, rate limits off"""
    from fastapi.testclient import TestClient
    from broker.database import get_db
    from broker.main import app
    from broker.utils.rate_limiter import limiter

    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
    limiter.enabled = True
