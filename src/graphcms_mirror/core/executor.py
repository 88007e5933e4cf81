import asyncio
import logging
from typing import Any

import httpx

from graphcms_mirror.config import SourcingOptions
from graphcms_mirror.core.ports.executor import QueryExecutor
from graphcms_mirror.errors import RemoteExecutionError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=10.0)


def build_headers(options: SourcingOptions) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if options.default_stage:
        headers["gcms-stage"] = options.default_stage
    if options.token:
        headers["Authorization"] = f"Bearer {options.token}"
    return headers


class RemoteExecutor:
    """Send one GraphQL POST per call; any transport or GraphQL error is fatal."""

    def __init__(self, options: SourcingOptions, client: httpx.AsyncClient | None = None) -> None:
        self._endpoint = options.endpoint
        self._headers = build_headers(options)
        self._client = client
        self._owns_client = client is None
        if options.default_stage:
            logger.info("Using default GraphCMS stage: %s", options.default_stage)
        else:
            logger.info("No default stage for GraphCMS")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=_DEFAULT_TIMEOUT)
        return self._client

    async def execute(
        self, operation_name: str, query: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        payload = {"query": query, "variables": variables or {}, "operationName": operation_name}
        try:
            response = await self._get_client().post(self._endpoint, json=payload, headers=self._headers)
        except httpx.HTTPError as exc:
            raise RemoteExecutionError(operation_name, str(exc) or type(exc).__name__) from exc

        if not response.is_success:
            raise RemoteExecutionError(operation_name, f"HTTP {response.status_code} {response.reason_phrase}")

        try:
            result = response.json()
        except ValueError as exc:
            raise RemoteExecutionError(operation_name, "response body is not valid JSON") from exc

        errors = result.get("errors") if isinstance(result, dict) else None
        if errors:
            messages = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
            raise RemoteExecutionError(operation_name, messages)
        if not isinstance(result, dict):
            raise RemoteExecutionError(operation_name, "response is not a JSON object")
        return result

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class QueuedExecutor:
    """Limit the number of in-flight GraphQL requests across all callers."""

    def __init__(self, executor: QueryExecutor, concurrency: int) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._executor = executor
        self._semaphore = asyncio.Semaphore(concurrency)

    async def execute(
        self, operation_name: str, query: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        async with self._semaphore:
            logger.debug("Executing %s", operation_name)
            return await self._executor.execute(operation_name, query, variables)
