import os

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///graphcms-mirror.db"


def get_engine(db_url: str | None = None) -> AsyncEngine:
    db_url = db_url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    return create_async_engine(db_url, future=True)
