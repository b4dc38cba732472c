"""
Pytest configuration and shared fixtures.
"""

import os
from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager
from pathlib import Path
from typing import Any
from uuid import uuid4

# Settings are cached on first use, so the environment must be set BEFORE
# any import that might read them
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["OTEL_EXPORTER_OTLP_ENDPOINT"] = ""
os.environ["API_SECRET_KEY"] = "test-secret-key"
os.environ["API_KEY"] = ""
os.environ["PANEL_BASE_URL"] = ""
os.environ["PANEL_API_KEY"] = ""

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

from invite_jobs.api.auth import create_access_token  # noqa: E402
from invite_jobs.api.main import create_app  # noqa: E402
from invite_jobs.db import (  # noqa: E402
    Base,
    create_session_factory,
    get_async_session,
    session_scope,
)
from invite_jobs.worker.dispatcher import Dispatcher  # noqa: E402

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


@pytest_asyncio.fixture
async def async_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """Create a file-backed SQLite engine with a fresh schema per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured like the application's."""
    return create_session_factory(async_engine)


@pytest.fixture
def session_factory(session_maker: async_sessionmaker[AsyncSession]) -> SessionFactory:
    """Transactional scope factory, as used by the runner and reaper."""
    return session_scope(session_maker)


@pytest_asyncio.fixture
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a database session for tests."""
    async with session_maker() as session:
        yield session
        # Rollback any uncommitted changes
        await session.rollback()


@pytest.fixture
def app(session_maker: async_sessionmaker[AsyncSession]) -> FastAPI:
    """Create a FastAPI app bound to the test database."""
    app = create_app()

    async def override_session() -> AsyncGenerator[AsyncSession]:
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_async_session] = override_session
    return app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def owner_id() -> str:
    """Generate a test owner ID."""
    return f"user-{uuid4().hex[:8]}"


@pytest.fixture
def auth_headers(owner_id: str) -> dict[str, str]:
    """Create authentication headers for testing."""
    token = create_access_token(owner_id=owner_id)
    return {"Authorization": f"Bearer {token}"}


class RecordingHandlers:
    """Handlers with scripted behavior that remember every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.failures: dict[str, list[BaseException]] = {}

    def fail_next(self, job_type: str, *errors: BaseException) -> None:
        """Make the next calls for a job type raise the given errors in order."""
        self.failures.setdefault(job_type, []).extend(errors)

    def build(self) -> Dispatcher:
        dispatcher = Dispatcher()
        for job_type in (
            "iptv.provision",
            "iptv.renew",
            "iptv.suspend",
            "iptv.sync",
            "iptv.changePassword",
            "iptv.changePlan",
        ):
            dispatcher.add_handler(job_type, self._handler_for(job_type))
        return dispatcher

    def _handler_for(self, job_type: str):
        async def handler(context) -> None:
            self.calls.append((job_type, context))
            pending = self.failures.get(job_type)
            if pending:
                raise pending.pop(0)
        return handler


@pytest.fixture
def handlers() -> RecordingHandlers:
    """Scriptable handlers for every job type."""
    return RecordingHandlers()
