from collections.abc import Iterable
from typing import Protocol

from graphcms_mirror.models import LocalNode


class NodeStore(Protocol):
    async def ensure_ready(self) -> None: ...

    async def begin_pass(self) -> None: ...

    async def get_node(self, node_id: str) -> LocalNode | None: ...

    async def get_nodes_by_type(self, node_type: str) -> list[LocalNode]: ...

    async def create_node(self, node: LocalNode) -> None: ...

    async def touch_node(self, node: LocalNode) -> None: ...

    async def delete_node(self, node: LocalNode) -> None: ...

    async def sweep_stale(self, node_types: Iterable[str]) -> int: ...

    async def dispose(self) -> None: ...
