import json
import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncEngine

from graphcms_mirror.models import LocalNode

logger = logging.getLogger(__name__)

_NODES_DDL = """
CREATE TABLE IF NOT EXISTS nodes (
    id VARCHAR(255) PRIMARY KEY,
    type VARCHAR(255) NOT NULL,
    remote_type_name VARCHAR(255),
    remote_id VARCHAR(255),
    stage VARCHAR(64),
    locale VARCHAR(64),
    content_digest VARCHAR(64) NOT NULL,
    parent VARCHAR(255),
    data TEXT NOT NULL,
    last_pass INTEGER NOT NULL DEFAULT 0
)
"""
_NODES_TYPE_INDEX = "CREATE INDEX IF NOT EXISTS ix_nodes_type ON nodes (type)"

_COLUMNS = "id, type, remote_type_name, remote_id, stage, locale, content_digest, parent, data"

_UPSERT = text(
    f"INSERT INTO nodes ({_COLUMNS}, last_pass) "
    "VALUES (:id, :type, :remote_type_name, :remote_id, :stage, :locale, :content_digest, :parent, :data, :pass) "
    "ON CONFLICT (id) DO UPDATE SET "
    "type = excluded.type, remote_type_name = excluded.remote_type_name, remote_id = excluded.remote_id, "
    "stage = excluded.stage, locale = excluded.locale, content_digest = excluded.content_digest, "
    "parent = excluded.parent, data = excluded.data, last_pass = excluded.last_pass"
)


def _row_to_node(row: Any) -> LocalNode:
    return LocalNode(
        id=row.id,
        type=row.type,
        remote_type_name=row.remote_type_name,
        remote_id=row.remote_id,
        stage=row.stage,
        locale=row.locale,
        content_digest=row.content_digest,
        parent=row.parent,
        data=json.loads(row.data),
    )


class SqlNodeStore:
    """Node store on a SQLAlchemy async engine (SQLite through aiosqlite by default)."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._pass = 0

    async def ensure_ready(self) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(text(_NODES_DDL))
            await conn.execute(text(_NODES_TYPE_INDEX))

    async def begin_pass(self) -> None:
        async with self._engine.begin() as conn:
            result = await conn.execute(text("SELECT COALESCE(MAX(last_pass), 0) FROM nodes"))
            self._pass = int(result.scalar_one()) + 1
        logger.debug("Starting pass %d", self._pass)

    async def get_node(self, node_id: str) -> LocalNode | None:
        async with self._engine.connect() as conn:
            result = await conn.execute(text(f"SELECT {_COLUMNS} FROM nodes WHERE id = :id"), {"id": node_id})
            row = result.fetchone()
        return _row_to_node(row) if row is not None else None

    async def get_nodes_by_type(self, node_type: str) -> list[LocalNode]:
        async with self._engine.connect() as conn:
            result = await conn.execute(
                text(f"SELECT {_COLUMNS} FROM nodes WHERE type = :type ORDER BY id"), {"type": node_type}
            )
            return [_row_to_node(row) for row in result.fetchall()]

    async def create_node(self, node: LocalNode) -> None:
        params = node.model_dump(exclude={"data"})
        params["data"] = json.dumps(node.data, ensure_ascii=False)
        params["pass"] = self._pass
        async with self._engine.begin() as conn:
            await conn.execute(_UPSERT, params)

    async def touch_node(self, node: LocalNode) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                text("UPDATE nodes SET last_pass = :pass WHERE id = :id"), {"pass": self._pass, "id": node.id}
            )

    async def delete_node(self, node: LocalNode) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(text("DELETE FROM nodes WHERE id = :id"), {"id": node.id})

    async def sweep_stale(self, node_types: Iterable[str]) -> int:
        types = list(node_types)
        if not types:
            return 0
        statement = text("DELETE FROM nodes WHERE type IN :types AND last_pass <> :pass").bindparams(
            bindparam("types", expanding=True)
        )
        async with self._engine.begin() as conn:
            result = await conn.execute(statement, {"types": types, "pass": self._pass})
        return result.rowcount or 0

    async def dispose(self) -> None:
        await self._engine.dispose()
