"""Test configuration and fixtures for caustics."""

from dotenv import load_dotenv
import pytest
import asyncio
import os
import sys
from typing import AsyncGenerator
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from caustics.client import Client
from caustics.registry import EntityRegistry
from tests.models import Base

# Try to load environment variables from .env file
load_dotenv()


@pytest.fixture(scope="session", autouse=True)
def event_loop_policy():
    """Set event loop policy for Windows compatibility."""
    if sys.platform.startswith("win"):
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    yield


@pytest.fixture(scope="function")
async def engine(tmp_path):
    """Create a test database engine for each test function."""
    test_db_url = os.getenv('CAUSTICS_TEST_DATABASE_URL')

    if test_db_url:
        if test_db_url.lower().startswith("mssql+aioodbc"):
            engine = create_async_engine(test_db_url, echo=False, poolclass=NullPool)
        else:
            engine = create_async_engine(test_db_url, echo=False, pool_size=5, max_overflow=10, pool_pre_ping=True)
        # Ensure a clean slate before tests: drop then create all tables
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        is_external_db = True
    else:
        # File-backed SQLite so separate connections see committed data and rollbacks are real
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'caustics.db'}", echo=False)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        is_external_db = False

    yield engine

    if is_external_db:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a new database session for each test function."""
    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session


@pytest.fixture(scope="function")
def registry() -> EntityRegistry:
    reg = EntityRegistry()
    reg.register_all(Base)
    return reg


@pytest.fixture(scope="function")
def client(engine, registry) -> Client:
    return Client(engine, registry)


@pytest.fixture(scope="function")
def sql_statements(engine):
    """Lower-cased, whitespace-normalized statements executed during the test."""
    statements: list[str] = []

    def _capture(conn, cursor, statement, parameters, context, executemany):  # noqa: ANN001
        statements.append(" ".join(str(statement).lower().split()))

    event.listen(engine.sync_engine, "before_cursor_execute", _capture)
    try:
        yield statements
    finally:
        event.remove(engine.sync_engine, "before_cursor_execute", _capture)


# Import fixtures from fixtures module
from tests.fixtures import (  # noqa: E402,F401
    sample_users,
    sample_categories,
    sample_posts,
    sample_comments,
    sample_items,
    populated_db,
)
