"""
Pytest configuration and fixtures for backend tests.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Set test environment variables before importing config
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["CORS_ORIGINS"] = '["http://localhost:3000"]'
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["LOG_DIR"] = ""
os.environ["NTFY_URL"] = ""

from authentication.auth import create_access_token  # noqa: E402
from repositories.database import Base, get_db  # noqa: E402
import repositories.db_models as db_models  # noqa: E402
from services.event_service import EventService  # noqa: E402
from services.geo.sqlite_backend import register_haversine_function  # noqa: E402
from services.geo.spatial_service import SpatialService  # noqa: E402
from services.issue_service import IssueFactory  # noqa: E402

# Test database engine (in-memory SQLite)
TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine, "connect")
def _register_sqlite_functions(dbapi_connection, connection_record):
    register_haversine_function(dbapi_connection)


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Reference point used across tests (Delhi); 0.0001 deg is roughly 11-14 m here
BASE_LON = 77.1000
BASE_LAT = 28.7000


@pytest.fixture(autouse=True)
def reset_shared_state():
    """Cached spatial backend and event subscribers are class-level."""
    SpatialService.reset_backend()
    EventService.clear_subscribers()
    yield
    SpatialService.reset_backend()
    EventService.clear_subscribers()


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh in-memory database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db(db_session):
    """Alias for db_session."""
    return db_session


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with overridden database dependency."""
    from main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _make_user(db_session, email: str, name: str, role=db_models.UserRole.CITIZEN):
    user = db_models.User(email=email, name=name, role=role, is_active=True)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def citizen(db_session) -> db_models.User:
    """Create the citizen who files the first report."""
    return _make_user(db_session, "asha@example.com", "Asha")


@pytest.fixture
def other_citizen(db_session) -> db_models.User:
    """Create a second, unrelated citizen."""
    return _make_user(db_session, "ravi@example.com", "Ravi")


@pytest.fixture
def third_citizen(db_session) -> db_models.User:
    """Create a third citizen."""
    return _make_user(db_session, "meera@example.com", "Meera")


@pytest.fixture
def government_user(db_session) -> db_models.User:
    """Create a government staff account."""
    return _make_user(
        db_session,
        "officer@city.gov",
        "Officer Singh",
        role=db_models.UserRole.GOVERNMENT,
    )


@pytest.fixture
def make_issue(db_session):
    """
    Factory fixture that persists an issue directly, bypassing intake.

    No duplicate matching or priority is applied, so tests control the exact
    layout of canonical issues.
    """

    def _make(
        reporter: db_models.User,
        lon: float = BASE_LON,
        lat: float = BASE_LAT,
        category: db_models.IssueCategory = db_models.IssueCategory.WATER_SUPPLY,
        created_minutes_ago: float = 0,
        votes: int = 1,
        images=None,
        title: str = "Burst pipe on main road",
        priority: db_models.IssuePriority = db_models.IssuePriority.LOW,
        priority_auto: bool = True,
    ) -> db_models.Issue:
        issue = IssueFactory.new_issue(
            title=title,
            description="Water is flooding the street",
            category=category,
            longitude=lon,
            latitude=lat,
            address="Sector 7, Rohini",
            reported_by_id=reporter.id,
            images=images,
            priority=priority,
        )
        created = datetime.now(timezone.utc) - timedelta(minutes=created_minutes_ago)
        issue.created_at = created
        issue.updated_at = created
        issue.votes = votes
        issue.priority_auto = priority_auto
        db_session.add(issue)
        db_session.commit()
        db_session.refresh(issue)
        return issue

    return _make


@pytest.fixture
def events():
    """Collect every event emitted during the test."""
    collected = []
    EventService.subscribe(collected.append)
    return collected


def auth_headers_for(user: db_models.User) -> dict:
    token = create_access_token(data={"sub": user.id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def citizen_headers(citizen) -> dict:
    """Get authentication headers for the first citizen."""
    return auth_headers_for(citizen)


@pytest.fixture
def other_citizen_headers(other_citizen) -> dict:
    """Get authentication headers for the second citizen."""
    return auth_headers_for(other_citizen)


@pytest.fixture
def government_headers(government_user) -> dict:
    """Get authentication headers for government staff."""
    return auth_headers_for(government_user)
