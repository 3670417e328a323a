"""
Test fixtures for Flight Extractor tests.
"""
import os

# Must be set before flight_extractor.database builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("NTFY_TOPIC", "")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

from flight_extractor import models  # noqa: F401
from flight_extractor.database import Base, get_db
from flight_extractor.main import app
from flight_extractor.services.batch_state import BatchStateStore
from flight_extractor.services.export import ResultExporter
from flight_extractor.services.extraction_service import ExtractionService, get_extraction_service
from flight_extractor.services.progress import NtfyProgressNotifier
from tests.fakes import FakePage, FakeScraper, make_card, make_settings


# In-memory SQLite shared across sessions of one test
test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def session_factory():
    """
    Session factory over a fresh schema.
    Creates all tables before the test and drops them after.
    """
    Base.metadata.create_all(bind=test_engine)
    try:
        yield TestSessionLocal
    finally:
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def store(session_factory):
    return BatchStateStore(session_factory=session_factory)


@pytest.fixture
def listing_page():
    return FakePage(selectors={
        "div.listingCard": [
            make_card(),
            make_card(airline="Air India", flight_code="AI 805", departure_time="11:40",
                      arrival_time="14:25", price="₹ 6,120"),
        ],
    })


@pytest.fixture
def service(store, listing_page, tmp_path):
    settings = make_settings()
    svc = ExtractionService(
        settings=settings,
        scraper=FakeScraper(
            listing_page,
            settings=settings,
            screenshots_dir=tmp_path / "screenshots",
            html_dir=tmp_path / "html",
        ),
        store=store,
        exporter=ResultExporter(tmp_path / "exports"),
        notifier=NtfyProgressNotifier(ntfy_topic=""),
    )
    yield svc
    if svc.current is not None and svc.current.in_progress:
        svc.current.finish()


@pytest.fixture(scope="function")
async def client(db_session, service):
    """
    Async test client with the database and service dependencies overridden.
    """
    def _override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_extraction_service] = lambda: service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
