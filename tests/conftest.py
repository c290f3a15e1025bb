"""Pytest fixtures for testing."""
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from api.dependencies import Services, build_services, get_services
from core.config import Settings
from core.events import EventName
from db.session import build_engine, build_session_factory, create_schema
from db.storage import StorageManager
from services.annots_list import AnnotationsListPlugin
from services.url_scraper import ScrapedPage


class RecordingEventSink:
    """Event sink that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list[tuple[EventName, dict[str, Any]]] = []

    def process_event(self, name: EventName, **details: Any) -> None:
        self.events.append((name, details))

    @property
    def names(self) -> list[EventName]:
        return [name for name, _ in self.events]


class FakeScraper:
    """
    Stand-in for services.url_scraper.scrape_url.

    URLs registered in pages come back with their title and text; any other URL
    comes back as a fetch error.
    """

    def __init__(self) -> None:
        self.pages: dict[str, tuple[str, str]] = {}
        self.calls: list[str] = []

    async def __call__(self, url: str) -> ScrapedPage:
        self.calls.append(url)
        if url not in self.pages:
            return ScrapedPage(title=None, text=None, final_url=url, error="HTTP 404")
        title, text = self.pages[url]
        return ScrapedPage(title=title, text=text, final_url=url, error=None)


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """A fresh SQLite file per test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'pagekeeper-test.db'}"


@pytest.fixture
def test_settings(database_url: str) -> Settings:
    """Settings pointing at the per-test database."""
    return Settings(database_url=database_url, analytics_enabled=False)


@pytest.fixture
async def async_engine(database_url: str) -> AsyncGenerator[AsyncEngine]:
    """Create an async engine with every table created."""
    engine = build_engine(database_url, busy_timeout=30.0)
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory over the test engine."""
    return build_session_factory(async_engine)


@pytest.fixture
def storage(session_factory: async_sessionmaker[AsyncSession]) -> StorageManager:
    """Storage manager with the annotations plugin registered."""
    manager = StorageManager(session_factory)
    manager.register_plugin(AnnotationsListPlugin())
    return manager


@pytest.fixture
def event_sink() -> RecordingEventSink:
    """Event sink that records emitted events."""
    return RecordingEventSink()


@pytest.fixture
def fake_scraper() -> FakeScraper:
    """Scraper that never touches the network."""
    return FakeScraper()


@pytest.fixture
def app_services(
    session_factory: async_sessionmaker[AsyncSession],
    test_settings: Settings,
    fake_scraper: FakeScraper,
    event_sink: RecordingEventSink,
) -> Services:
    """Fully wired services over the test database."""
    return build_services(session_factory, test_settings, scrape=fake_scraper, events=event_sink)


@pytest.fixture
async def client(app_services: Services) -> AsyncGenerator[AsyncClient]:
    """Create a test client wired to the test services."""
    from api.main import app

    app.dependency_overrides[get_services] = lambda: app_services

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
