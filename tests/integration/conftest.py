"""Fixtures for integration tests against a SQLite file."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio

from graphcms_mirror.db import SqlNodeStore, get_engine


@pytest_asyncio.fixture
async def sql_store(tmp_path: Path) -> AsyncGenerator[SqlNodeStore, None]:
    """A ready node store on a fresh SQLite database file."""
    store = SqlNodeStore(get_engine(f"sqlite+aiosqlite:///{tmp_path / 'mirror.db'}"))
    await store.ensure_ready()
    yield store
    await store.dispose()
