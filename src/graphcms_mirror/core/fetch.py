from collections.abc import AsyncIterator
from typing import Any

from graphcms_mirror.core.ports.executor import QueryExecutor
from graphcms_mirror.errors import RemoteExecutionError
from graphcms_mirror.models import ListQuery, NodeTypeConfig


def normalize_remote_value(value: Any) -> Any:
    """Rename ``__typename``/``id`` to ``remoteTypeName``/``remoteId`` on every typed object."""
    if isinstance(value, list):
        return [normalize_remote_value(item) for item in value]
    if not isinstance(value, dict):
        return value
    typed = "__typename" in value
    normalized: dict[str, Any] = {}
    for key, item in value.items():
        if typed and key == "__typename":
            normalized["remoteTypeName"] = item
        elif typed and key == "id":
            normalized["remoteId"] = item
        else:
            normalized[key] = normalize_remote_value(item)
    return normalized


def annotate_stage_and_locale(node: dict[str, Any], query: ListQuery) -> dict[str, Any]:
    """Key the node by the queried stage/locale, keeping the API's own values as ``actual*``."""
    annotated = {k: v for k, v in node.items() if k not in ("stage", "locale")}
    annotated["stage"] = query.stage
    annotated["actualStage"] = node.get("stage")
    if node.get("locale"):
        annotated["actualLocale"] = node["locale"]
        annotated["locale"] = query.locale
    return annotated


async def stream_remote_nodes(
    executor: QueryExecutor, node_type: NodeTypeConfig, page_size: int
) -> AsyncIterator[dict[str, Any]]:
    """Yield every remote node of a type, query by query and page by page, in API order."""
    for query in node_type.list_queries:
        offset = 0
        while True:
            result = await executor.execute(
                query.operation_name, query.document, {"limit": page_size, "offset": offset}
            )
            page = (result.get("data") or {}).get(node_type.plural_field)
            if not isinstance(page, list):
                raise RemoteExecutionError(query.operation_name, f"response has no {node_type.plural_field} list")
            for item in page:
                if isinstance(item, dict):
                    yield annotate_stage_and_locale(normalize_remote_value(item), query)
            if len(page) < page_size:
                break
            offset += page_size


async def fetch_remote_node(
    executor: QueryExecutor,
    node_type: NodeTypeConfig,
    remote_id: str,
    stage: str,
    locale: str | None = None,
) -> dict[str, Any] | None:
    """Look up a single remote node through the type's singular root field."""
    if node_type.node_query is None or node_type.singular_field is None:
        raise ValueError(f"Node type {node_type.remote_type_name} has no single node query")
    result = await executor.execute(
        node_type.node_query.operation_name,
        node_type.node_query.document,
        node_type.node_query_variables(remote_id, locale, stage),
    )
    node = (result.get("data") or {}).get(node_type.singular_field)
    if not isinstance(node, dict):
        return None
    return normalize_remote_value(node)
