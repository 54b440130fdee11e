"""Test configuration and fixtures."""

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("BEARER_TOKEN_SECRET", "test-secret-key-for-hs256-tokens-0123456789")
os.environ.setdefault("NOTIFICATIONS_ENABLED", "false")
os.environ.setdefault("BOOKING_RETRY_BACKOFF_SECONDS", "0")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tourops.core.database import get_db
from tourops.services.notification_service import NotificationDispatcher

from factories import (
    RecordingEmailSender,
    auth_header,
    create_operator,
    create_schema_engine,
    create_tour_with_schedule,
    session_maker,
)


@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = await create_schema_engine()
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def test_session(test_engine):
    async with session_maker(test_engine)() as session:
        yield session


@pytest_asyncio.fixture
async def operator(test_session):
    """Operator owning the sample catalog."""
    return await create_operator(test_session)


@pytest_asyncio.fixture
async def other_operator(test_session):
    """A second, unrelated operator."""
    return await create_operator(test_session, company_name="Red Sands Tours")


@pytest_asyncio.fixture
async def tour_and_schedule(test_session, operator):
    """Tour with max capacity 10 at 100.00 per guest, plus one departure."""
    return await create_tour_with_schedule(test_session, operator.id)


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def dispatcher(email_sender):
    """Enabled notification dispatcher recording into ``email_sender``."""
    return NotificationDispatcher(sender=email_sender, enabled=True)


@pytest_asyncio.fixture
async def test_app(test_session):
    """Create the application with the database dependency overridden."""
    from tourops.main import create_app

    app = create_app()

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def operator_headers(operator):
    """Bearer auth headers for ``operator``."""
    return auth_header(operator.id, email="owner@deserttrails.example", role="admin")


@pytest.fixture
def sample_tour_data():
    """Sample tour data for testing."""
    return {
        "title": "Edge of the World Sunset Hike",
        "slug": "edge-of-the-world",
        "description": "Guided hike to the Tuwaiq escarpment",
        "max_capacity": 12,
        "base_price": "350.00",
        "meeting_point": "Kingdom Centre, north entrance",
    }


@pytest.fixture
def sample_booking_data():
    """Sample booking data for testing; ``schedule_id`` is filled in by tests."""
    return {
        "customer_name": "Layla Haddad",
        "customer_email": "layla@example.com",
        "customer_phone": "+966500000000",
        "num_guests": 3,
        "guests": [
            {"name": "Layla Haddad", "age": 34, "nationality": "SA"},
            {"name": "Omar Haddad", "age": 36, "nationality": "SA"},
            {"name": "Sara Haddad", "age": 9},
        ],
        "booking_notes": "One vegetarian meal",
    }
