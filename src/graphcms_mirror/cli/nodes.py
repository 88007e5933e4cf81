import asyncio
import json
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from graphcms_mirror.config import DEFAULT_TYPE_PREFIX
from graphcms_mirror.core.assets import FILE_NODE_TYPE
from graphcms_mirror.core.ports.store import NodeStore
from graphcms_mirror.db.engine import get_engine
from graphcms_mirror.db.sql import SqlNodeStore

console = Console()


def _get_store() -> NodeStore:
    return SqlNodeStore(get_engine())


def nodes(
    type: Annotated[str, typer.Argument(help="Node type, e.g. Post or GraphCMS_Post.")],
    type_prefix: Annotated[str, typer.Option(envvar="GRAPHCMS_TYPE_PREFIX", help="Prefix for local node types.")] = (
        DEFAULT_TYPE_PREFIX
    ),
    limit: Annotated[int, typer.Option(help="Max rows to return.")] = 50,
    show_data: Annotated[bool, typer.Option("--data", help="Print the node payloads.")] = False,
) -> None:
    """List stored nodes of a type."""
    store = _get_store()
    node_type = type if type.startswith(type_prefix) or type == FILE_NODE_TYPE else f"{type_prefix}{type}"

    async def _run() -> None:
        try:
            await store.ensure_ready()
            found = await store.get_nodes_by_type(node_type)
            table = Table(show_lines=show_data)
            for header in ("id", "remote_id", "stage", "locale", "digest"):
                table.add_column(header)
            if show_data:
                table.add_column("data")
            for node in found[:limit]:
                row = [node.id, node.remote_id or "", node.stage or "", node.locale or "", node.content_digest[:12]]
                if show_data:
                    row.append(json.dumps(node.data, indent=2, ensure_ascii=False))
                table.add_row(*row)
            console.print(table)
            console.print(f"({min(len(found), limit)} of {len(found)} {node_type} nodes)")
        finally:
            await store.dispose()

    asyncio.run(_run())
