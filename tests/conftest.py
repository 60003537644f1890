"""
Pytest configuration and fixtures
"""

import re
import pytest
import pytest_asyncio
import httpx
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from models import Base
from core.config import Settings
from core.events import EventSink
from crawler.client import CatalogClient
from crawler.orchestrator import CrawlContext, CrawlOrchestrator
from typing import AsyncGenerator

# In-memory SQLite shared by every connection of the engine
TEST_DATABASE_URL = "sqlite+aiosqlite://"

BASE_URL = "https://catalog.test/api/"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


class RecordingEventSink(EventSink):
    """Keeps every emitted event for assertions"""

    def __init__(self):
        self.events = []

    def emit(self, tag, event, *args):
        self.events.append((tag, event, args))

    def named(self, event):
        return [args for _, name, args in self.events if name == event]


class FakeClock:
    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        return self.now


class FakeSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


async def no_sleep(seconds):
    return None


class FakeCatalog:
    """
    Remote catalog served through httpx.MockTransport.

    ``categories`` maps category id -> list of product stubs, ``details``
    maps product id -> detail payload. ``responses`` queues one-off
    overrides per path: a status code, or an exception to raise.
    """

    def __init__(self, categories=None, details=None):
        self.categories = categories or {}
        self.details = details or {}
        self.responses = {}
        self.requests = []

    def queue(self, path, *outcomes):
        self.responses.setdefault(path, []).extend(outcomes)

    def requested(self, path):
        return [r for r in self.requests if r.url.path == "/api/" + path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len("/api/"):]

        pending = self.responses.get(path)
        if pending:
            outcome = pending.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, httpx.Response):
                return outcome
            return httpx.Response(outcome, json={"error": "failure"})

        if path == "categories/":
            return httpx.Response(200, json={"results": [
                {"id": 1, "categories": [{"id": category_id} for category_id in self.categories]}
            ]})

        match = re.fullmatch(r"categories/(\d+)/", path)
        if match:
            products = self.categories.get(int(match.group(1)))
            if products is None:
                return httpx.Response(404, json={"detail": "Not found"})
            return httpx.Response(200, json={"categories": [{"id": 0, "products": products}]})

        match = re.fullmatch(r"products/([^/]+)/", path)
        if match and match.group(1) in self.details:
            return httpx.Response(200, json=self.details[match.group(1)])

        return httpx.Response(404, json={"detail": "Not found"})


@pytest.fixture
def events():
    return RecordingEventSink()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def make_settings():
    def _make(**overrides):
        values = {
            "DATABASE_URL": TEST_DATABASE_URL,
            "REQUEST_DELAY_SECONDS": 0,
            "RATE_LIMIT_BACKOFF_SECONDS": 300,
        }
        values.update(overrides)
        return Settings(**values)
    return _make


@pytest.fixture
def make_client(catalog, events):
    def _make(warehouse="svq1"):
        http_client = httpx.AsyncClient(
            base_url=BASE_URL,
            transport=httpx.MockTransport(catalog.handler)
        )
        return CatalogClient(
            warehouse=warehouse,
            base_url=BASE_URL,
            delay=0,
            events=events,
            http_client=http_client,
            sleep=no_sleep
        )
    return _make


@pytest.fixture
def make_orchestrator(db_session, make_client, make_settings, events, clock, fake_sleep):
    """Build an orchestrator over the fake catalog; each call is a new process run"""
    def _make(warehouse="svq1", **overrides):
        context = CrawlContext(
            settings=make_settings(**overrides),
            events=events,
            clock=clock,
            sleep=fake_sleep
        )
        return CrawlOrchestrator(db_session, make_client(warehouse), context, warehouse=warehouse)
    return _make
