import asyncio
import logging
import os
import re
import uuid
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import urlparse

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from graphcms_mirror.config import SourcingOptions
from graphcms_mirror.core.identity import compute_content_digest, create_file_node_id
from graphcms_mirror.core.ports.store import NodeStore
from graphcms_mirror.errors import AssetDownloadError
from graphcms_mirror.models import LocalNode

logger = logging.getLogger(__name__)

FILE_NODE_TYPE = "File"
LARGE_ASSET_BYTES = 10 * 1024 * 1024

_ILLEGAL_FILENAME_CHARS = re.compile(r'[/\\?%*:|"<>]')
_DOWNLOAD_TIMEOUT = httpx.Timeout(120.0, connect=10.0)


@dataclass(frozen=True)
class RemoteAsset:
    remote_id: str
    url: str
    file_name: str
    mime_type: str | None = None
    size: int | None = None
    width: int | None = None
    height: int | None = None

    @property
    def is_image(self) -> bool:
        return bool(self.width and self.height) or (self.mime_type or "").startswith("image/")

    @classmethod
    def from_node_data(cls, data: dict[str, Any]) -> "RemoteAsset | None":
        url = data.get("url")
        remote_id = data.get("remoteId")
        if not isinstance(url, str) or not url or not isinstance(remote_id, str):
            return None
        file_name = data.get("fileName") or PurePosixPath(urlparse(url).path).name or remote_id
        return cls(
            remote_id=remote_id,
            url=url,
            file_name=file_name,
            mime_type=data.get("mimeType"),
            size=data.get("size"),
            width=data.get("width"),
            height=data.get("height"),
        )


def sanitize_file_name(file_name: str) -> str:
    return _ILLEGAL_FILENAME_CHARS.sub("-", file_name)


def cache_path_for(url: str, cache_dir: Path) -> Path:
    """Mirror the URL path below ``cache_dir``; ``..`` segments are dropped."""
    parts = [p for p in PurePosixPath(urlparse(url).path).parts if p not in ("/", "..", ".")]
    if not parts:
        raise ValueError(f"Asset URL has no path: {url}")
    return cache_dir.joinpath(*parts)


def atomic_write_bytes(path: Path, content: bytes) -> None:
    """Write to a unique sibling temp file and rename it over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.part")
    try:
        temp_path.write_bytes(content)
        os.replace(temp_path, path)
    finally:
        with suppress(FileNotFoundError):
            temp_path.unlink()


def write_if_missing(path: Path, content: bytes) -> None:
    if not path.exists():
        atomic_write_bytes(path, content)


class AssetCache:
    """Resolve remote assets to local ``File`` nodes, deduplicating concurrent requests per URL."""

    def __init__(
        self,
        store: NodeStore,
        options: SourcingOptions,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._store = store
        self._options = options
        self._client = client
        self._owns_client = client is None
        self._semaphore = asyncio.Semaphore(options.concurrent_downloads)
        self._in_flight: dict[str, asyncio.Task[str]] = {}

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=_DOWNLOAD_TIMEOUT, follow_redirects=True)
        return self._client

    async def materialize(self, asset: RemoteAsset, reason: str, parent_id: str | None = None) -> str:
        """Return the id of a ``File`` node holding the asset's bytes."""
        current = self._in_flight.get(asset.url)
        if current is not None:
            logger.debug("Using in-flight request for %s", asset.url)
            return await asyncio.shield(current)

        task = asyncio.create_task(self._materialize(asset, reason, parent_id))
        self._in_flight[asset.url] = task
        task.add_done_callback(lambda _: self._in_flight.pop(asset.url, None))
        return await asyncio.shield(task)

    async def _materialize(self, asset: RemoteAsset, reason: str, parent_id: str | None) -> str:
        async with self._semaphore:
            file_name = sanitize_file_name(asset.file_name)
            if file_name != asset.file_name:
                logger.warning('Renaming remote filename "%s" to "%s"', asset.file_name, file_name)

            cache_path: Path | None = None
            if self._options.local_cache:
                try:
                    cache_path = cache_path_for(asset.url, self._options.local_cache_dir)
                except ValueError as exc:
                    raise AssetDownloadError(asset.url, file_name, str(exc)) from exc
                try:
                    content = await asyncio.to_thread(cache_path.read_bytes)
                except OSError:
                    pass
                else:
                    logger.debug("Using cached asset %s from %s (%s)", file_name, asset.url, reason)
                    return await self._create_file_node(asset, file_name, content, parent_id)

            logger.debug("Downloading asset %s from %s (%s)", file_name, asset.url, reason)
            content = await self._download(asset.url, file_name)

            if cache_path is not None:
                try:
                    await asyncio.to_thread(atomic_write_bytes, cache_path, content)
                except OSError as exc:
                    logger.warning("Could not write %s to the local cache: %s", cache_path, exc)
            logger.debug("Downloaded asset %s from %s", file_name, asset.url)
            return await self._create_file_node(asset, file_name, content, parent_id)

    def _log_retry(self, url: str) -> Callable[[RetryCallState], None]:
        def _before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning("Error downloading url %s: %s", url, error)

        return _before_sleep

    async def _download(self, url: str, file_name: str) -> bytes:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._options.retries + 1),
            wait=wait_exponential(
                multiplier=self._options.retry_min_timeout,
                exp_base=self._options.retry_factor,
                min=self._options.retry_min_timeout,
            ),
            retry=retry_if_exception_type(httpx.HTTPError),
            before_sleep=self._log_retry(url),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._get_client().get(url)
                    response.raise_for_status()
                    return response.content
        except httpx.HTTPError as exc:
            raise AssetDownloadError(url, file_name, str(exc) or type(exc).__name__) from exc
        raise AssetDownloadError(url, file_name, "no download attempt was made")

    async def _create_file_node(
        self, asset: RemoteAsset, file_name: str, content: bytes, parent_id: str | None
    ) -> str:
        digest = compute_content_digest(content)
        stem, ext = os.path.splitext(file_name)
        absolute_path = (self._options.files_dir / digest / file_name).resolve()
        try:
            await asyncio.to_thread(write_if_missing, absolute_path, content)
        except OSError as exc:
            raise AssetDownloadError(asset.url, file_name, f"could not write {absolute_path}: {exc}") from exc

        node = LocalNode(
            id=create_file_node_id(asset.url),
            type=FILE_NODE_TYPE,
            content_digest=digest,
            parent=parent_id,
            data={
                "url": asset.url,
                "name": stem,
                "ext": ext,
                "absolutePath": str(absolute_path),
                "size": len(content),
                "mediaType": asset.mime_type,
            },
        )
        await self._store.create_node(node)
        return node.id

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
