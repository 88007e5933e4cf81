"""Whole-pass orchestration: schema context once per process, then one pass per run."""

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any

import httpx

from graphcms_mirror.config import ASSET_TYPE_NAME, SourcingOptions
from graphcms_mirror.core.assets import FILE_NODE_TYPE, AssetCache
from graphcms_mirror.core.executor import QueuedExecutor, RemoteExecutor
from graphcms_mirror.core.ports.executor import QueryExecutor
from graphcms_mirror.core.ports.store import NodeStore
from graphcms_mirror.core.reconcile import Reconciler, SourcingContext
from graphcms_mirror.core.schema import retrieve_schema
from graphcms_mirror.core.special_fields import build_special_field_map
from graphcms_mirror.core.usage import AssetUsageTracker
from graphcms_mirror.errors import ContextNotInitializedError
from graphcms_mirror.models import ReconcileStats

logger = logging.getLogger(__name__)


@dataclass
class SourcingReport:
    stats: list[ReconcileStats] = field(default_factory=list)
    used_assets: frozenset[str] = frozenset()
    swept: int = 0

    def for_type(self, remote_type_name: str) -> ReconcileStats | None:
        for stats in self.stats:
            if stats.remote_type_name == remote_type_name:
                return stats
        return None


async def initialize_context(executor: QueryExecutor, options: SourcingOptions) -> SourcingContext:
    schema_information = await retrieve_schema(executor, options)
    special_fields = build_special_field_map(
        schema_information.schema, schema_information.node_type_names, options
    )
    logger.info("Special fields found on %d node types", len(special_fields))
    return SourcingContext.create(options, schema_information, special_fields)


async def _gather_or_cancel(*coros: Coroutine[Any, Any, ReconcileStats]) -> list[ReconcileStats]:
    tasks = [asyncio.create_task(coro) for coro in coros]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def source_all_nodes(
    context: SourcingContext | None,
    executor: QueryExecutor,
    store: NodeStore,
    asset_cache: AssetCache | None = None,
) -> SourcingReport:
    """Reconcile every node type, assets last, then drop derived nodes nothing kept alive."""
    if context is None:
        raise ContextNotInitializedError("No schema configuration")

    await store.begin_pass()
    usage = AssetUsageTracker()
    reconciler = Reconciler(context, executor, store, usage, asset_cache)
    type_names = context.schema_information.node_type_names

    report = SourcingReport()
    report.stats.extend(
        await _gather_or_cancel(
            *(reconciler.reconcile(name) for name in type_names if name != ASSET_TYPE_NAME)
        )
    )
    if ASSET_TYPE_NAME in type_names:
        logger.debug("%d assets referenced by content", len(usage.snapshot()))
        report.stats.append(await reconciler.reconcile(ASSET_TYPE_NAME))

    report.used_assets = usage.snapshot()
    report.swept = await store.sweep_stale([context.markdown_type, FILE_NODE_TYPE])
    if report.swept:
        logger.info("Removed %d derived nodes no longer referenced", report.swept)
    return report


async def run_sourcing(
    store: NodeStore,
    options: SourcingOptions,
    http_client: httpx.AsyncClient | None = None,
) -> tuple[SourcingContext, SourcingReport]:
    remote = RemoteExecutor(options, client=http_client)
    executor = QueuedExecutor(remote, options.concurrency)
    asset_cache = AssetCache(store, options, client=http_client) if options.asset_download_enabled else None
    try:
        await store.ensure_ready()
        context = await initialize_context(executor, options)
        report = await source_all_nodes(context, executor, store, asset_cache)
        return context, report
    finally:
        if asset_cache is not None:
            await asset_cache.aclose()
        await remote.aclose()
