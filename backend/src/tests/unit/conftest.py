"""
Shared pytest fixtures and path setup for unit tests.
"""

import os
import sys
from pathlib import Path

# Set required environment variables BEFORE any adminkit imports to prevent
# Pydantic Settings validation errors. These are test-only defaults.
os.environ.setdefault("ADMINKIT_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ADMINKIT_PLUGIN_SCHEDULER_ENABLED", "false")

# Add backend/src to sys.path so adminkit.* imports work when running pytest from repo root.
PROJECT_SRC = Path(__file__).resolve().parents[2]
if str(PROJECT_SRC) not in sys.path:
    sys.path.insert(0, str(PROJECT_SRC))

import pytest
import pytest_asyncio
from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, insert
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from adminkit.data.store import RecordStore
from adminkit.plugins.host import ContextBuilder, InMemoryStorageBackend

# 27 widgets: ids 1..27, every third one inactive, colours cycling
WIDGET_COUNT = 27
COLOURS = ("red", "green", "blue")


def widget_rows() -> list[dict]:
    return [
        {
            "id": i,
            "name": f"widget-{i:02d}",
            "colour": COLOURS[i % 3],
            "active": i % 3 != 0,
            "note": None if i % 5 == 0 else f"note {i}",
        }
        for i in range(1, WIDGET_COUNT + 1)
    ]


@pytest_asyncio.fixture
async def sqlite_engine():
    """In-memory SQLite engine shared by every connection (StaticPool), seeded with widgets."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    metadata = MetaData()
    widgets = Table(
        "widgets",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("name", String(50), nullable=False, unique=True),
        Column("colour", String(20)),
        Column("active", Boolean, nullable=False, default=True),
        Column("note", String(100), nullable=True),
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        await conn.execute(insert(widgets), widget_rows())
    yield engine
    await engine.dispose()


@pytest.fixture
def record_store(sqlite_engine) -> RecordStore:
    return RecordStore(sqlite_engine)


@pytest.fixture
def storage_backend() -> InMemoryStorageBackend:
    return InMemoryStorageBackend()


@pytest.fixture
def context_builder(storage_backend) -> ContextBuilder:
    return ContextBuilder(storage_backend=storage_backend, environ={}, max_storage_bytes=1024)
