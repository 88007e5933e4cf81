from typing import Any, Protocol


class QueryExecutor(Protocol):
    async def execute(
        self, operation_name: str, query: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]: ...
