"""Per-type reconciliation of remote nodes against the local node store.

Every remote node is fingerprinted. An unchanged node is touched together
with the derived nodes it links to; a new or changed node is rebuilt, which
recreates its derived nodes. Stored nodes of the type that did not show up in
the remote stream are deleted once the stream is exhausted.

Asset nodes additionally get a ``localFile`` link when the options ask for a
download and, with ``skip_unused_assets``, when another node references them.
Asset reconciliation must run after every other type so the usage tracker is
complete.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any
from urllib.parse import urlparse

from graphcms_mirror.config import ASSET_TYPE_NAME, SourcingOptions
from graphcms_mirror.core.assets import LARGE_ASSET_BYTES, AssetCache, RemoteAsset
from graphcms_mirror.core.fetch import stream_remote_nodes
from graphcms_mirror.core.identity import compute_content_digest, create_node_id
from graphcms_mirror.core.ports.executor import QueryExecutor
from graphcms_mirror.core.ports.store import NodeStore
from graphcms_mirror.core.schema import SchemaInformation
from graphcms_mirror.core.special_fields import SpecialFieldMap
from graphcms_mirror.core.usage import AssetUsageTracker
from graphcms_mirror.core.walker import CreateVisitor, KeepAliveVisitor, walk_special_fields
from graphcms_mirror.errors import AssetDownloadError, ContextNotInitializedError
from graphcms_mirror.models import LocalNode, ReconcileStats

logger = logging.getLogger(__name__)

RESIZABLE_IMAGE_HOST = "media.graphcms.com"


@dataclass(frozen=True)
class SourcingContext:
    """Schema-derived state computed once per process and shared by every pass."""

    options: SourcingOptions
    schema_information: SchemaInformation
    special_fields: SpecialFieldMap

    @classmethod
    def create(
        cls,
        options: SourcingOptions,
        schema_information: SchemaInformation,
        special_fields: dict[str, Any],
    ) -> "SourcingContext":
        return cls(options, schema_information, MappingProxyType(dict(special_fields)))

    def internal_type(self, remote_type_name: str) -> str:
        return f"{self.options.type_prefix}{remote_type_name}"

    @property
    def markdown_type(self) -> str:
        return f"{self.options.type_prefix}MarkdownNode"


def resized_image_url(url: str, max_width: int) -> str:
    if not max_width:
        return url
    parsed = urlparse(url)
    if parsed.hostname != RESIZABLE_IMAGE_HOST:
        return url
    resized = f"https://{parsed.hostname}/resize=width:{max_width},fit:max{parsed.path}"
    logger.debug("Using %s for %s", resized, url)
    return resized


class Reconciler:
    def __init__(
        self,
        context: SourcingContext | None,
        executor: QueryExecutor,
        store: NodeStore,
        usage: AssetUsageTracker,
        asset_cache: AssetCache | None = None,
    ) -> None:
        if context is None:
            raise ContextNotInitializedError("No schema configuration; initialize the sourcing context first")
        self._context = context
        self._options = context.options
        self._executor = executor
        self._store = store
        self._usage = usage
        self._asset_cache = asset_cache

    async def reconcile(self, remote_type_name: str) -> ReconcileStats:
        node_type = self._context.schema_information.get_node_type(remote_type_name)
        if node_type is None:
            raise ContextNotInitializedError(f"Node type {remote_type_name} is not part of the loaded schema")

        internal_type = self._context.internal_type(remote_type_name)
        stats = ReconcileStats(remote_type_name=remote_type_name)
        previous_ids = {node.id for node in await self._store.get_nodes_by_type(internal_type)}
        seen: set[str] = set()
        pending: dict[str, asyncio.Task[None]] = {}

        try:
            async for remote in stream_remote_nodes(self._executor, node_type, self._options.page_size):
                remote_id = remote.get("remoteId")
                if not isinstance(remote_id, str):
                    logger.warning("Skipping %s node without id", remote_type_name)
                    continue
                node_id = create_node_id(remote_type_name, remote_id, remote.get("stage"), remote.get("locale"))
                first_sight = node_id not in seen
                seen.add(node_id)

                if remote_type_name != ASSET_TYPE_NAME:
                    await self._process_node(node_id, internal_type, remote, stats, first_sight)
                    continue

                # Downloads overlap across assets; writes to one id stay ordered.
                previous = pending.get(node_id)
                pending[node_id] = asyncio.create_task(
                    self._process_after(previous, node_id, internal_type, remote, stats, first_sight)
                )
            if pending:
                await asyncio.gather(*pending.values())
        except BaseException:
            for task in pending.values():
                task.cancel()
            await asyncio.gather(*pending.values(), return_exceptions=True)
            raise

        for stale_id in previous_ids - seen:
            stale = await self._store.get_node(stale_id)
            if stale is not None:
                await self._store.delete_node(stale)
                stats.deleted += 1

        logger.info(
            "Reconciled %s: %d created, %d updated, %d touched, %d deleted",
            remote_type_name,
            stats.created,
            stats.updated,
            stats.touched,
            stats.deleted,
        )
        return stats

    async def _process_after(
        self,
        previous: "asyncio.Task[None] | None",
        node_id: str,
        internal_type: str,
        remote: dict[str, Any],
        stats: ReconcileStats,
        first_sight: bool,
    ) -> None:
        if previous is not None:
            await previous
        await self._process_node(node_id, internal_type, remote, stats, first_sight)

    async def _process_node(
        self,
        node_id: str,
        internal_type: str,
        remote: dict[str, Any],
        stats: ReconcileStats,
        first_sight: bool,
    ) -> None:
        remote_type_name = remote.get("remoteTypeName") or internal_type.removeprefix(self._options.type_prefix)
        digest = compute_content_digest(remote)
        existing = await self._store.get_node(node_id)

        if existing is not None and existing.content_digest == digest:
            await self._store.touch_node(existing)
            await self._keep_alive(existing, remote_type_name, stats)
            if first_sight:
                stats.touched += 1
            return

        node = LocalNode(
            id=node_id,
            type=internal_type,
            content_digest=digest,
            remote_type_name=remote_type_name,
            remote_id=remote["remoteId"],
            stage=remote.get("stage"),
            locale=remote.get("locale"),
            data=remote,
        )
        visitor = CreateVisitor(self._store, self._usage, self._options, node_id)
        await walk_special_fields(self._context.special_fields.get(remote_type_name, ()), node.data, node_id, visitor)
        if remote_type_name == ASSET_TYPE_NAME:
            await self._attach_local_file(node, "created" if existing is None else "updated", stats)
        await self._store.create_node(node)

        if existing is None and first_sight:
            stats.created += 1
        else:
            stats.updated += 1

    async def _keep_alive(self, node: LocalNode, remote_type_name: str, stats: ReconcileStats) -> None:
        visitor = KeepAliveVisitor(self._store, self._usage)
        await walk_special_fields(self._context.special_fields.get(remote_type_name, ()), node.data, node.id, visitor)
        if remote_type_name != ASSET_TYPE_NAME:
            return

        file_id = node.data.get("localFile")
        if file_id:
            file_node = await self._store.get_node(file_id)
            if file_node is not None:
                await self._store.touch_node(file_node)
                return
            logger.warning("No file node of id %s", file_id)

        refreshed = node.model_copy(deep=True)
        refreshed.data.pop("localFile", None)
        await self._attach_local_file(refreshed, "kept", stats)
        if refreshed.data.get("localFile") != node.data.get("localFile"):
            await self._store.create_node(refreshed)

    def _should_download(self, asset: RemoteAsset) -> bool:
        if self._options.dont_download:
            return False
        if self._options.skip_unused_assets and asset.remote_id not in self._usage:
            logger.debug("Skipping unused asset %s (%s)", asset.file_name, asset.remote_id)
            return False
        return self._options.download_all_assets or (self._options.download_local_images and asset.is_image)

    async def _attach_local_file(self, node: LocalNode, reason: str, stats: ReconcileStats) -> None:
        asset = RemoteAsset.from_node_data(node.data)
        if asset is None:
            logger.warning("Asset node %s has no usable url, not downloading it", node.id)
            return
        if not self._should_download(asset):
            return
        if self._asset_cache is None:
            logger.warning("Asset downloads requested but no asset cache configured")
            return

        if asset.size and asset.size > LARGE_ASSET_BYTES:
            logger.warning("Asset %s %s is too large: %d", asset.file_name, asset.remote_id, asset.size)
        if asset.is_image and self._options.max_image_width and (asset.width or 0) > self._options.max_image_width:
            asset = replace(asset, url=resized_image_url(asset.url, self._options.max_image_width))

        try:
            file_id = await self._asset_cache.materialize(asset, reason, parent_id=node.id)
        except AssetDownloadError as exc:
            logger.error("Asset %s (%s) not downloaded: %s", exc.file_name, exc.url, exc.reason)
            stats.failed_downloads += 1
            return
        node.data["localFile"] = file_id
        stats.downloaded += 1
