"""
Pytest configuration and fixtures for backend testing
"""

import os
import shutil
import tempfile
from dataclasses import replace
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

# Set test environment before the application reads it
_TEST_ROOT = tempfile.mkdtemp(prefix="scorm-tests-")
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT}/app.db"
os.environ["SCORM_STORAGE_PATH"] = os.path.join(_TEST_ROOT, "storage")
os.environ["SCORM_LAUNCH_SECRET"] = "test-launch-secret-with-enough-bytes"
os.environ.pop("AUTO_MIGRATE", None)

from scorm_backend.config import ScormSettings, get_settings  # noqa: E402
from scorm_backend.db.config import engine_options, get_session  # noqa: E402
from scorm_backend.main import app  # noqa: E402
from scorm_backend.models.persisted_scorm import Base  # noqa: E402
from scorm_backend.services.package_ingestor import PackageIngestor  # noqa: E402
from scorm_backend.services.progress import get_progress_notifier  # noqa: E402
from scorm_backend.storage.factory import get_storage_provider  # noqa: E402
from scorm_backend.storage.local import LocalStorage  # noqa: E402
from scorm_fixtures import grouped_package  # noqa: E402


class RecordingNotifier:
    """Progress notifier double that records every notification."""

    def __init__(self):
        self.calls = []
        self.fail = False

    async def on_content_object_terminal(self, learner_id, lesson_context, outcome):
        self.calls.append((learner_id, lesson_context, outcome))
        if self.fail:
            raise RuntimeError("progress engine unavailable")


@pytest.fixture(scope="session")
def test_client():
    """Create a test client for FastAPI application"""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def temp_directory():
    """Create a temporary directory for testing file operations"""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def scorm_settings(temp_directory: Path) -> ScormSettings:
    """Settings with small limits so size checks are cheap to trigger"""
    return replace(
        ScormSettings.from_env(),
        storage_path=str(temp_directory / "storage"),
        max_archive_bytes=2 * 1024 * 1024,
        max_extracted_bytes=4 * 1024 * 1024,
        max_archive_entries=200,
        ingest_timeout_seconds=10.0,
        suspend_data_max_bytes=4096,
    )


@pytest.fixture
def storage(scorm_settings: ScormSettings) -> LocalStorage:
    return LocalStorage(scorm_settings.storage_path)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
async def session_factory(temp_directory: Path):
    """Isolated SQLite database per test"""
    url = f"sqlite+aiosqlite:///{temp_directory}/test.db"
    engine = create_async_engine(url, poolclass=NullPool, **engine_options(url))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def ingested_package(session_factory, storage, scorm_settings):
    """A grouped four-SCO package owned by tenant-a"""
    async with session_factory() as session:
        ingestor = PackageIngestor(session, storage, scorm_settings)
        package, content_objects = await ingestor.ingest(
            grouped_package(),
            tenant_id="tenant-a",
            uploaded_by="instructor-1",
            course_id="course-1",
            filename="grouped.zip",
        )
    return package, content_objects


@pytest.fixture
async def test_app(session_factory, storage, scorm_settings, notifier):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_storage_provider] = lambda: storage
    app.dependency_overrides[get_settings] = lambda: scorm_settings
    app.dependency_overrides[get_progress_notifier] = lambda: notifier

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app):
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_TEST_ROOT, ignore_errors=True)

