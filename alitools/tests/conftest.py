"""
Test fixtures - per-test SQLite database, sample GEKO feed and HTTP client
"""
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from alitools.database import Base, get_db, get_session_factory
from alitools.main import app
from alitools.api import imports, geko_sync as geko_sync_api
from alitools.services.catalog_importer import STAGES, run_stage
from alitools.services.geko_sync import GekoSyncScheduler

FIXTURES = Path(__file__).parent / "fixtures"


@pytest_asyncio.fixture()
async def engine(tmp_path):
    """Fresh SQLite database file for each test (stages open their own sessions)"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def feed_path():
    return FIXTURES / "geko_sample.xml"


@pytest_asyncio.fixture()
async def imported(feed_path, session_factory):
    """Run every stage against the sample feed"""
    return {
        stage: await run_stage(stage, feed_path, session_factory=session_factory)
        for stage in STAGES
    }


@pytest_asyncio.fixture()
async def scheduler():
    """Private sync scheduler, stopped after the test"""
    scheduler = GekoSyncScheduler()
    yield scheduler
    await scheduler.stop()


@pytest_asyncio.fixture()
async def client(session_factory, scheduler, tmp_path, monkeypatch):
    """httpx AsyncClient bound to the FastAPI app"""

    async def override_get_db():
        async with session_factory() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[geko_sync_api.get_sync_scheduler] = lambda: scheduler
    monkeypatch.setattr(imports.settings, "UPLOAD_DIR", str(tmp_path / "uploads"))

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac

    app.dependency_overrides.clear()
