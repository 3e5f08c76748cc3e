"""Global pytest fixtures for the CrabNet trust service.

Service and API tests run against an in-memory SQLite database (aiosqlite)
built from the ORM metadata, one fresh database per test.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from crabnet.models import Agent, Base, Task, Vouch
from tests.factories import AgentFactory, TaskFactory, VouchFactory

FIXED_NOW = datetime(2026, 3, 16, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """A fixed evaluation time so scores are deterministic."""
    return FIXED_NOW


# ===========================================
# DATABASE FIXTURES
# ===========================================


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs behave (pysqlite quirk)
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with factory() as session:
        yield session


# ===========================================
# DATA HELPERS
# ===========================================


@pytest.fixture
def make_agent(session: AsyncSession, now: datetime) -> Callable[..., Awaitable[Agent]]:
    async def _make(agent_id: str | None = None, **overrides: Any) -> Agent:
        agent = Agent(**AgentFactory.create(agent_id=agent_id, now=now, **overrides))
        session.add(agent)
        await session.flush()
        return agent

    return _make


@pytest.fixture
def make_vouch(session: AsyncSession, now: datetime) -> Callable[..., Awaitable[Vouch]]:
    async def _make(voucher_id: str, vouchee_id: str, **overrides: Any) -> Vouch:
        vouch = Vouch(**VouchFactory.create(voucher_id, vouchee_id, now=now, **overrides))
        session.add(vouch)
        await session.flush()
        return vouch

    return _make


@pytest.fixture
def make_task(session: AsyncSession) -> Callable[..., Awaitable[Task]]:
    async def _make(requester_id: str, claimed_by: str | None, **overrides: Any) -> Task:
        task = Task(**TaskFactory.create(requester_id, claimed_by, **overrides))
        session.add(task)
        await session.flush()
        return task

    return _make
