import asyncio
import logging
from pathlib import Path

import httpx
import pytest

from graphcms_mirror.core.assets import (
    FILE_NODE_TYPE,
    AssetCache,
    RemoteAsset,
    atomic_write_bytes,
    cache_path_for,
    sanitize_file_name,
)
from graphcms_mirror.core.identity import create_file_node_id
from graphcms_mirror.db import InMemoryNodeStore
from graphcms_mirror.errors import AssetDownloadError
from tests.conftest import make_options

URL = "https://media.graphcms.com/abc123"


def _asset(url: str = URL, file_name: str = "cover.png") -> RemoteAsset:
    return RemoteAsset(remote_id="a1", url=url, file_name=file_name, mime_type="image/png", width=4, height=3)


class TestHelpers:
    def test_sanitize_file_name(self) -> None:
        assert sanitize_file_name('a/b\\c?d%e*f:g|h"i<j>k.png') == "a-b-c-d-e-f-g-h-i-j-k.png"
        assert sanitize_file_name("plain.png") == "plain.png"

    def test_cache_path_mirrors_url_path(self, tmp_path: Path) -> None:
        assert cache_path_for("https://media.graphcms.com/x/y.png", tmp_path) == tmp_path / "x" / "y.png"
        assert cache_path_for("https://media.graphcms.com/../../etc/passwd", tmp_path) == tmp_path / "etc" / "passwd"

    def test_cache_path_requires_path(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            cache_path_for("https://media.graphcms.com/", tmp_path)

    def test_atomic_write_leaves_no_temp_files(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "file.bin"
        atomic_write_bytes(target, b"one")
        atomic_write_bytes(target, b"two")

        assert target.read_bytes() == b"two"
        assert [p.name for p in target.parent.iterdir()] == ["file.bin"]

    def test_remote_asset_from_node_data(self) -> None:
        asset = RemoteAsset.from_node_data({"remoteId": "a1", "url": URL, "mimeType": "application/pdf"})
        assert asset is not None
        assert asset.file_name == "abc123"
        assert asset.is_image is False
        assert RemoteAsset.from_node_data({"remoteId": "a1"}) is None


class TestAssetCache:
    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_download(self, tmp_path: Path) -> None:
        requests: list[str] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            requests.append(str(request.url))
            await asyncio.sleep(0.01)
            return httpx.Response(200, content=b"image-bytes")

        options = make_options(local_cache=True, local_cache_dir=tmp_path / "cache", files_dir=tmp_path / "files")
        store = InMemoryNodeStore()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            cache = AssetCache(store, options, client=client)
            first, second = await asyncio.gather(
                cache.materialize(_asset(), "created"), cache.materialize(_asset(), "created")
            )
            assert cache.in_flight == 0
            third = await cache.materialize(_asset(), "updated")

        assert first == second == third == create_file_node_id(URL)
        assert requests == [URL]
        assert (tmp_path / "cache" / "abc123").read_bytes() == b"image-bytes"

        node = store.nodes[first]
        assert node.type == FILE_NODE_TYPE
        assert node.data["name"] == "cover"
        assert node.data["ext"] == ".png"
        assert node.data["size"] == len(b"image-bytes")
        assert Path(node.data["absolutePath"]).read_bytes() == b"image-bytes"

    @pytest.mark.asyncio
    async def test_cached_file_skips_network(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("network must not be used")

        cache_dir = tmp_path / "cache"
        (cache_dir / "abc123").parent.mkdir(parents=True, exist_ok=True)
        (cache_dir / "abc123").write_bytes(b"cached")
        options = make_options(local_cache=True, local_cache_dir=cache_dir, files_dir=tmp_path / "files")
        store = InMemoryNodeStore()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            file_id = await AssetCache(store, options, client=client).materialize(_asset(), "created")

        assert store.nodes[file_id].data["size"] == len(b"cached")

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                return httpx.Response(503)
            return httpx.Response(200, content=b"ok")

        options = make_options(retries=3, retry_min_timeout=0, files_dir=tmp_path / "files")
        caplog.set_level(logging.WARNING, logger="graphcms_mirror.core.assets")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            file_id = await AssetCache(InMemoryNodeStore(), options, client=client).materialize(_asset(), "created")

        assert file_id == create_file_node_id(URL)
        assert attempts == 3
        retry_warnings = [r for r in caplog.records if r.getMessage().startswith("Error downloading url")]
        assert len(retry_warnings) == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        options = make_options(retries=1, retry_min_timeout=0, files_dir=tmp_path / "files")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            cache = AssetCache(InMemoryNodeStore(), options, client=client)
            with pytest.raises(AssetDownloadError) as excinfo:
                await cache.materialize(_asset(), "created")

        assert excinfo.value.url == URL
        assert excinfo.value.file_name == "cover.png"
        assert cache.in_flight == 0

    @pytest.mark.asyncio
    async def test_unsafe_file_name_is_renamed(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"x")

        options = make_options(files_dir=tmp_path / "files")
        store = InMemoryNodeStore()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            file_id = await AssetCache(store, options, client=client).materialize(
                _asset(file_name="a:b?.png"), "created"
            )

        assert Path(store.nodes[file_id].data["absolutePath"]).name == "a-b-.png"
        assert 'Renaming remote filename "a:b?.png" to "a-b-.png"' in caplog.text

    @pytest.mark.asyncio
    async def test_unwritable_files_dir_raises_download_error(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"x")

        blocker = tmp_path / "not-a-dir"
        blocker.write_bytes(b"")
        options = make_options(files_dir=blocker)
        store = InMemoryNodeStore()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            cache = AssetCache(store, options, client=client)
            with pytest.raises(AssetDownloadError) as excinfo:
                await cache.materialize(_asset(), "created")

        assert excinfo.value.url == URL
        assert cache.in_flight == 0
        assert not store.nodes

    @pytest.mark.asyncio
    async def test_url_without_path_raises_download_error_when_caching(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"x")

        options = make_options(local_cache=True, local_cache_dir=tmp_path / "cache", files_dir=tmp_path / "files")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            cache = AssetCache(InMemoryNodeStore(), options, client=client)
            with pytest.raises(AssetDownloadError):
                await cache.materialize(_asset(url="https://media.graphcms.com/"), "created")

        assert cache.in_flight == 0
