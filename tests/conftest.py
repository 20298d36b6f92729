import shutil

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import journal_service.main as main
from journal_service.content_store import LocalContentStore
from journal_service.locks import UserLocks
from journal_service.main import app
from journal_service.models import Base
from journal_service.repositories import JournalRepository
from journal_service.services import WriteCoordinator
from journal_service.version_repository import GitVersionRepository


@pytest.fixture(autouse=True)
def disable_backend_lifecycle(monkeypatch):
    async def noop():
        return None

    for name in (
        "startup_db",
        "shutdown_db",
        "startup_content_store",
        "shutdown_content_store",
        "startup_version_repository",
        "shutdown_version_repository",
    ):
        monkeypatch.setattr(main, name, noop)
    app.router.on_startup.clear()
    app.router.on_shutdown.clear()
    yield


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'journal.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture
def repo():
    return JournalRepository()


@pytest.fixture
def content_store(tmp_path):
    return LocalContentStore(tmp_path / "blobs")


@pytest.fixture
def versions(tmp_path):
    if shutil.which("git") is None:
        pytest.skip("git binary not available")
    return GitVersionRepository(tmp_path / "git")


@pytest.fixture
def coordinator(session, content_store, versions, repo):
    return WriteCoordinator(
        session,
        content_store=content_store,
        versions=versions,
        locks=UserLocks(),
        repo=repo,
    )


@pytest_asyncio.fixture
async def journal(coordinator):
    return await coordinator.create_journal("user-1", "J", "Daily notes")
