# tests/conftest.py
import logging
from datetime import timedelta
from typing import Any, Callable, List

import aiosqlite
import pytest
import pytest_asyncio

from pixmap_persistence.domain.location import Location
from pixmap_persistence.domain.tip import TipType
from pixmap_persistence.domain.values import Address, Coordinate
from pixmap_persistence.repositories.camera_body_repository import CameraBodyRepository
from pixmap_persistence.repositories.location_repository import LocationRepository
from pixmap_persistence.repositories.setting_repository import SettingRepository
from pixmap_persistence.repositories.subscription_repository import SubscriptionRepository
from pixmap_persistence.repositories.tip_repository import TipRepository
from pixmap_persistence.repositories.tip_type_repository import TipTypeRepository
from pixmap_persistence.repositories.weather_repository import WeatherRepository
from pixmap_persistence.sqlite.context import DatabaseContext
from pixmap_persistence.unit_of_work import UnitOfWork

# --- Constants ---
TEST_BATCH_SIZE = 10
SETTINGS_TTL = timedelta(minutes=15)


class ManualClock:
    """Monotonic clock stand-in that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CallSpy:
    """Records calls made through a wrapped coroutine method."""

    def __init__(self, target: Callable[..., Any]):
        self._target = target
        self.calls: List[tuple] = []

    async def __call__(self, *args: Any, **kwargs: Any) -> Any:
        self.calls.append(args)
        return await self._target(*args, **kwargs)

    @property
    def count(self) -> int:
        return len(self.calls)


# --- Connection and Context Fixtures ---


@pytest_asyncio.fixture
async def sqlite_memory_db_conn():
    """Provides an in-memory aiosqlite connection in autocommit mode."""
    conn = None
    try:
        conn = await aiosqlite.connect(":memory:", isolation_level=None)
        conn.row_factory = aiosqlite.Row
        yield conn
    finally:
        if conn:
            await conn.close()


@pytest_asyncio.fixture
async def db_context(sqlite_memory_db_conn, logger):
    """An initialized DatabaseContext over the in-memory connection."""
    context = DatabaseContext(sqlite_memory_db_conn, batch_size=TEST_BATCH_SIZE, logger=logger)
    await context.initialize()
    yield context


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def spy(monkeypatch):
    """Factory that replaces `obj.name` with a CallSpy and returns the spy."""

    def _spy(obj: Any, name: str) -> CallSpy:
        call_spy = CallSpy(getattr(obj, name))
        monkeypatch.setattr(obj, name, call_spy)
        return call_spy

    return _spy


# --- Repository Fixtures ---


@pytest.fixture
def setting_repository(db_context, clock):
    return SettingRepository(db_context, cache_ttl=SETTINGS_TTL, clock=clock)


@pytest.fixture
def location_repository(db_context):
    return LocationRepository(db_context)


@pytest.fixture
def tip_type_repository(db_context):
    return TipTypeRepository(db_context)


@pytest.fixture
def tip_repository(db_context):
    return TipRepository(db_context)


@pytest.fixture
def weather_repository(db_context):
    return WeatherRepository(db_context)


@pytest.fixture
def subscription_repository(db_context):
    return SubscriptionRepository(db_context)


@pytest.fixture
def camera_body_repository(db_context):
    return CameraBodyRepository(db_context)


@pytest.fixture
def unit_of_work(db_context, clock):
    return UnitOfWork(db_context, cache_ttl=SETTINGS_TTL, clock=clock)


# --- Sample Entities ---


@pytest_asyncio.fixture
async def saved_location(location_repository):
    return await location_repository.create(
        Location.create(
            title="Space Needle",
            coordinate=Coordinate(latitude=47.6205, longitude=-122.3493),
            description="Observation tower",
            address=Address(city="Seattle", state="WA"),
        )
    )


@pytest_asyncio.fixture
async def saved_tip_type(tip_type_repository):
    return await tip_type_repository.create(TipType.create("Landscape"))


# --- Logging ---


@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_pixmap_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})
