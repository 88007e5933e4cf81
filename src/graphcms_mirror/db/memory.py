from collections.abc import Iterable

from graphcms_mirror.models import LocalNode


class InMemoryNodeStore:
    """Dict-backed node store; nodes are kept as deep copies so callers cannot mutate stored state."""

    def __init__(self) -> None:
        self.nodes: dict[str, LocalNode] = {}
        self.last_pass: dict[str, int] = {}
        self.current_pass = 0
        self.deleted: list[str] = []

    async def ensure_ready(self) -> None:
        return None

    async def begin_pass(self) -> None:
        self.current_pass += 1

    async def get_node(self, node_id: str) -> LocalNode | None:
        node = self.nodes.get(node_id)
        return node.model_copy(deep=True) if node is not None else None

    async def get_nodes_by_type(self, node_type: str) -> list[LocalNode]:
        return [n.model_copy(deep=True) for n in self.nodes.values() if n.type == node_type]

    async def create_node(self, node: LocalNode) -> None:
        self.nodes[node.id] = node.model_copy(deep=True)
        self.last_pass[node.id] = self.current_pass

    async def touch_node(self, node: LocalNode) -> None:
        if node.id in self.nodes:
            self.last_pass[node.id] = self.current_pass

    async def delete_node(self, node: LocalNode) -> None:
        if self.nodes.pop(node.id, None) is not None:
            self.last_pass.pop(node.id, None)
            self.deleted.append(node.id)

    async def sweep_stale(self, node_types: Iterable[str]) -> int:
        types = set(node_types)
        stale = [
            node
            for node_id, node in self.nodes.items()
            if node.type in types and self.last_pass.get(node_id) != self.current_pass
        ]
        for node in stale:
            await self.delete_node(node)
        return len(stale)

    async def dispose(self) -> None:
        return None
