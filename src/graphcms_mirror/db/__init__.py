from graphcms_mirror.db.engine import DEFAULT_DATABASE_URL, get_engine
from graphcms_mirror.db.memory import InMemoryNodeStore
from graphcms_mirror.db.sql import SqlNodeStore

__all__ = [
    "DEFAULT_DATABASE_URL",
    "InMemoryNodeStore",
    "SqlNodeStore",
    "get_engine",
]
