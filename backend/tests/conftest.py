"""Shared test configuration and fixtures.

Key principles:
- All HTTP calls go through the local ASGI app (httpx + ASGITransport).
- AnyIO is the single async runner via pytest-anyio (@pytest.mark.anyio).
- Service and HTTP tests run on in-memory repositories, so their
  concurrency tests only show the services handle a lost guard. The real
  BookingRepository guards run on in-memory collections in
  test_booking_repository_guards.py; server-side atomicity is only proven
  by test_booking_repository_mongo.py, which needs a live MongoDB at
  MONGO_URL and skips without one.
"""

from typing import Any, AsyncGenerator, Callable, Dict

import os
import sys
import uuid
from pathlib import Path

import httpx
import pytest
from httpx import ASGITransport
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

# Ensure backend root is on sys.path so that `server` module is importable
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("JWT_SECRET", "test_jwt_secret")

from server import app  # noqa: E402
from booking_core.auth import create_access_token  # noqa: E402
from booking_core.deps import get_booking_service, get_hotel_search_service  # noqa: E402
from booking_core.services.booking_service import BookingService  # noqa: E402
from booking_core.services.hotel_search import HotelSearchService  # noqa: E402

from fakes import FakeBookingRepository, FakeHotelRepository, FakePromotionRepository, Store  # noqa: E402

MONGO_URL = os.environ.get("MONGO_URL", "mongodb://localhost:27017")


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force pytest-anyio to use asyncio event loop."""

    return "asyncio"


@pytest.fixture
def store() -> Store:
    return Store()


@pytest.fixture
def search_service(store: Store) -> HotelSearchService:
    return HotelSearchService(
        FakeHotelRepository(store),
        FakePromotionRepository(store),
        FakeBookingRepository(store),
        default_radius_km=10.0,
    )


@pytest.fixture
def booking_service(store: Store) -> BookingService:
    return BookingService(
        FakeBookingRepository(store),
        FakeHotelRepository(store),
        FakePromotionRepository(store),
    )


@pytest.fixture
async def async_client(
    search_service: HotelSearchService, booking_service: BookingService
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """ASGI client with both services bound to the in-memory store."""

    app.dependency_overrides[get_hotel_search_service] = lambda: search_service
    app.dependency_overrides[get_booking_service] = lambda: booking_service
    transport = ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[..., Dict[str, str]]:
    def _make(user_id: str, role: str) -> Dict[str, str]:
        token = create_access_token(subject=user_id, role=role)
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
async def mongo_db() -> AsyncGenerator[Any, None]:
    """Throwaway database on the live MongoDB; skips when none is reachable."""

    client = AsyncIOMotorClient(MONGO_URL, serverSelectionTimeoutMS=1500)
    try:
        await client.admin.command("ping")
    except PyMongoError:
        client.close()
        pytest.skip(f"MongoDB not reachable at {MONGO_URL}")

    db_name = f"booking_core_test_{uuid.uuid4().hex}"
    db = client[db_name]
    try:
        yield db
    finally:
        await client.drop_database(db_name)
        client.close()
