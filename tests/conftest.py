"""
Test configuration and fixtures for EventHub.
"""

import os
import tempfile

# Settings must be in place before the application module is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ALGORITHM"] = "HS256"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="eventhub-uploads-")
os.environ["PUBLIC_BASE_URL"] = "http://testserver"
for key in ("REDIS_URL", "REDIS_HOST", "ZERO_TOKEN"):
    os.environ.pop(key, None)

import asyncio
import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock
from fastapi.testclient import TestClient

from eventhub.db.database import DatabaseConnection, EventRepository, UserRepository
from eventhub.main import create_app
from eventhub.models.event import UserRole
from eventhub.schemas.user import Identity
from eventhub.services.event_notifier import EventNotifier
from eventhub.services.event_service import EventLifecycleService
from eventhub.services.identity import IdentityProvider, JWTService

NOW = datetime(2030, 6, 15, 12, 0, 0)


class FakeWebSocket:
    """Records what a push connection writes."""

    def __init__(self, fail: bool = False, block: bool = False):
        self.sent = []
        self.closed_with = None
        self.fail = fail
        self.block = block
        self._release = asyncio.Event()

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket is gone")
        if self.block:
            await self._release.wait()
        self.sent.append(message)

    async def close(self, code: int = 1000):
        self.closed_with = code


async def settle():
    """Let writer tasks drain their queues."""
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.fixture
def database():
    """In-memory database with all tables."""
    connection = DatabaseConnection()
    connection.initialize("sqlite://")
    connection.create_tables()
    yield connection
    connection.close()


@pytest.fixture
def db_session(database):
    """Create a database session for testing."""
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def event_repo(db_session):
    return EventRepository(db_session)


@pytest.fixture
def user_repo(db_session):
    return UserRepository(db_session)


@pytest.fixture
def admin():
    return Identity(id=1, name="Ada Admin", email="admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def alice():
    return Identity(id=2, name="Alice", email="alice@example.com", role=UserRole.USER)


@pytest.fixture
def bob():
    return Identity(id=3, name="Bob", email="bob@example.com", role=UserRole.USER)


@pytest.fixture
def jwt_svc():
    """JWT service signing with the test secret."""
    service = JWTService()
    service.configure("test-secret", "HS256")
    return service


@pytest.fixture
def make_token(jwt_svc):
    """Mint a bearer token for an identity."""
    def _make_token(identity: Identity, **overrides) -> str:
        claims = {
            "user_id": identity.id,
            "email": identity.email,
            "name": identity.name,
            "role": identity.role.value,
        }
        claims.update(overrides)
        return jwt_svc.create_token(claims)
    return _make_token


@pytest.fixture
def auth_headers(make_token):
    def _auth_headers(identity: Identity) -> dict:
        return {"Authorization": f"Bearer {make_token(identity)}"}
    return _auth_headers


@pytest.fixture
def identity_provider(jwt_svc, user_repo):
    return IdentityProvider(jwt_svc, user_repo)


@pytest.fixture
def mock_notifier():
    """Notifier double recording lifecycle notifications."""
    return MagicMock(spec=EventNotifier)


@pytest.fixture
def clock():
    """Mutable clock pinned to NOW."""
    current = {"now": NOW}

    def _clock():
        return current["now"]

    _clock.current = current
    return _clock


@pytest.fixture
def lifecycle_service(event_repo, identity_provider, mock_notifier, clock):
    return EventLifecycleService(event_repo, identity_provider, mock_notifier, clock=clock)


@pytest.fixture
def event_draft():
    """Draft for an event a week after NOW."""
    return {
        "title": "PyCon Meetup",
        "description": "Talks and pizza",
        "location": "Main Hall",
        "date": NOW + timedelta(days=7),
        "category": "Meetup",
        "max_attendees": 10,
    }


@pytest.fixture
def api_event_data():
    """Event payload dated relative to the real clock."""
    return {
        "title": "API Conference",
        "description": "Everything about APIs",
        "location": "Expo Center",
        "date": (datetime.now() + timedelta(days=30)).isoformat(),
        "category": "Conference",
        "max_attendees": 2,
    }


@pytest.fixture
def client():
    """Create test client with a fresh in-memory database."""
    with TestClient(create_app()) as test_client:
        yield test_client


@pytest.fixture
def fake_websocket():
    return FakeWebSocket


@pytest.fixture
def settle_tasks():
    return settle
