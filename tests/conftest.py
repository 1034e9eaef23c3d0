"""
Pytest configuration and fixtures for volunteer board tests
"""
import os

# Must be set before the application settings are imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from typing import AsyncGenerator
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine

from volunteer_board.main import app
from volunteer_board.db.database import build_engine, build_session_factory, get_db, init_db
from volunteer_board.db.record_store import SqlRecordStore
from volunteer_board.realtime.change_feed import ChangeFeed
from volunteer_board.core.lifecycle import TaskLifecycleEngine
from volunteer_board.core.crediting import CompletionCreditingEngine
from volunteer_board.core.volunteers import VolunteerService
from tests.fakes import RecordingNotifier

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database for each test"""
    engine = build_engine(TEST_DATABASE_URL)
    await init_db(bind=engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
async def feed() -> AsyncGenerator[ChangeFeed, None]:
    change_feed = ChangeFeed(queue_size=100)
    yield change_feed
    await change_feed.close()


@pytest.fixture
def store(session_factory, feed) -> SqlRecordStore:
    return SqlRecordStore(session_factory, feed)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def lifecycle(store, notifier) -> TaskLifecycleEngine:
    return TaskLifecycleEngine(store, notifier)


@pytest.fixture
def crediting(store, notifier) -> CompletionCreditingEngine:
    return CompletionCreditingEngine(store, notifier)


@pytest.fixture
def volunteer_service(store) -> VolunteerService:
    return VolunteerService(store)


@pytest.fixture
async def volunteer_a(volunteer_service):
    return await volunteer_service.register_volunteer("discord:1001", "Ada")


@pytest.fixture
async def volunteer_b(volunteer_service):
    return await volunteer_service.register_volunteer("discord:1002", "Grace")


@pytest.fixture
def task_data():
    """Task creation payload"""
    return {
        "title": "Sweep the woodshop",
        "description": "Sawdust under the table saw",
        "zone": "Woodshop",
        "estimated_minutes": 60
    }


@pytest.fixture(scope="function")
async def client(store, notifier, feed, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Test client wired to the per-test store"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.state.store = store
    app.state.notifier = notifier
    app.state.feed = feed
    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
