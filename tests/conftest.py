"""
Test configuration and fixtures for the symptom correlator.

Implements the transaction rollback pattern:
- Session-scoped engine (in-memory SQLite unless TEST_DATABASE_URL is set)
- Function-scoped transactional session with automatic rollback
- TestClient with database dependency override
"""

import os
from typing import Generator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from correlator.api.dependencies import get_scheduler
from correlator.database import Base, get_db
from correlator.main import app
from correlator.models import User


# =============================================================================
# Database Fixtures
# =============================================================================


def get_test_database_url() -> str:
    """
    Get the test database URL.

    Priority:
    1. TEST_DATABASE_URL environment variable (e.g. a Postgres instance)
    2. In-memory SQLite shared across the session
    """
    return os.environ.get("TEST_DATABASE_URL", "sqlite://")


@pytest.fixture(scope="session")
def test_engine():
    """
    Create test database engine once per session.

    Tables are created at the start and dropped at the end.
    """
    database_url = get_test_database_url()

    if database_url.startswith("sqlite"):
        # One shared connection so every session sees the same in-memory DB;
        # TestClient runs the app on another thread.
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(database_url)

    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(test_engine) -> Generator[Session, None, None]:
    """
    Provide a transactional database session that rolls back after each test.

    This pattern ensures:
    - Complete test isolation (tests can't affect each other)
    - No cleanup queries needed
    - Fast execution (just rollback, no actual deletion)
    """
    connection = test_engine.connect()
    transaction = connection.begin()

    TestingSessionLocal = sessionmaker(bind=connection)
    session = TestingSessionLocal()

    # Handle nested transactions (for savepoints within tests)
    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(session, transaction):
        if transaction.nested and not transaction._parent.nested:
            session.begin_nested()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


# =============================================================================
# TestClient Fixtures
# =============================================================================


@pytest.fixture
def mock_scheduler() -> MagicMock:
    """Scheduler stand-in so API tests never touch Redis or Dramatiq."""
    scheduler = MagicMock()
    scheduler.schedule.return_value = True
    return scheduler


@pytest.fixture
def client(db: Session, mock_scheduler: MagicMock) -> Generator[TestClient, None, None]:
    """
    TestClient with database and scheduler dependency overrides.

    The database session is injected into the app's get_db dependency.
    """

    def override_get_db():
        try:
            yield db
        finally:
            pass  # Don't close - managed by db fixture

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scheduler] = lambda: mock_scheduler

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
def test_user(db: Session) -> User:
    """Create a test user."""
    user = User(id="user-1", email="testuser@example.com")
    db.add(user)
    db.flush()
    return user


# =============================================================================
# pytest markers
# =============================================================================


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m not slow')"
    )
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
