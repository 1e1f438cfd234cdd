"""
Pytest configuration and fixtures.

Every test gets its own SQLite database, a fixed clock, a fresh cache and a
mailer that records instead of sending.
"""

import os
import tempfile

# Keep logs and the default database out of the project BEFORE importing app modules
TEST_DIR = tempfile.mkdtemp(prefix="reservation_boss_tests_")
os.environ.setdefault("LOG_DIR", os.path.join(TEST_DIR, "logs"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(TEST_DIR, 'default.db')}")

import pytest
from sqlalchemy.orm import sessionmaker

from cache import TTLCache
from config import Settings
from database import Base, create_db_engine
from services import CancellationService, ReportService, ReservationService

from helpers import ADMIN_TOKEN, FixedClock, RecordingMailer, local_time


@pytest.fixture
def settings():
    return Settings(
        parking_spots=["A", "B"],
        max_weekly_reservations=3,
        allowed_domain="@northhighland.com",
        timezone="America/Guayaquil",
        week_cutover_hour=19,
        admin_api_tokens=[ADMIN_TOKEN],
        allowed_origins=["http://localhost:3000"],
    )


@pytest.fixture
def clock():
    # Monday 2024-01-01 10:00 in Guayaquil: visible week is 2024-01-01..05
    return FixedClock(local_time(2024, 1, 1, 10))


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def cache():
    return TTLCache(ttl_seconds=60)


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def reservation_service(settings, cache, mailer, clock):
    return ReservationService(settings, cache=cache, mailer=mailer, clock=clock)


@pytest.fixture
def cancellation_service(settings, cache, mailer, clock):
    return CancellationService(settings, cache=cache, mailer=mailer, clock=clock)


@pytest.fixture
def report_service(settings, clock):
    return ReportService(settings, clock=clock)


@pytest.fixture
def client(settings, session_factory, cache, mailer, clock):
    """API client with every shared component overridden."""
    from fastapi.testclient import TestClient

    from api import deps
    from api.main import app
    from config import get_settings

    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[deps.get_db] = override_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[deps.get_cache] = lambda: cache
    app.dependency_overrides[deps.get_mailer] = lambda: mailer
    app.dependency_overrides[deps.get_clock] = lambda: clock

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
