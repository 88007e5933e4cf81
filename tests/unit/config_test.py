from pathlib import Path

import pytest
from pydantic import ValidationError

from graphcms_mirror.config import SourcingOptions
from tests.conftest import ENDPOINT


class TestSourcingOptionsDefaults:
    def test_defaults(self) -> None:
        options = SourcingOptions(endpoint=ENDPOINT)
        assert options.locales == ["en"]
        assert options.stages == ["PUBLISHED"]
        assert options.type_prefix == "GraphCMS_"
        assert options.skip_unused_assets is True
        assert options.local_cache_dir == Path("graphcms-assets")
        assert options.concurrency == 10
        assert options.concurrent_downloads == 50
        assert options.retries == 3
        assert options.retry_factor == 1.1
        assert options.retry_min_timeout == 5.0

    def test_default_stage_only_with_single_stage(self) -> None:
        assert SourcingOptions(endpoint=ENDPOINT).default_stage == "PUBLISHED"
        assert SourcingOptions(endpoint=ENDPOINT, stages=["DRAFT", "PUBLISHED"]).default_stage is None

    def test_markdown_fields_for_type(self) -> None:
        options = SourcingOptions(endpoint=ENDPOINT, markdown_fields={"Post": ["body", "excerpt"]})
        assert options.markdown_fields_for("Post") == frozenset({"body", "excerpt"})
        assert options.markdown_fields_for("Author") == frozenset()

    def test_asset_download_enabled(self) -> None:
        assert not SourcingOptions(endpoint=ENDPOINT).asset_download_enabled
        assert SourcingOptions(endpoint=ENDPOINT, download_local_images=True).asset_download_enabled
        assert not SourcingOptions(
            endpoint=ENDPOINT, download_all_assets=True, dont_download=True
        ).asset_download_enabled

    def test_options_are_frozen(self) -> None:
        options = SourcingOptions(endpoint=ENDPOINT)
        with pytest.raises(ValidationError):
            options.token = "changed"  # type: ignore[misc]


class TestSourcingOptionsValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"locales": []},
            {"stages": []},
            {"concurrency": 0},
            {"concurrent_downloads": 0},
            {"page_size": 0},
            {"endpoint": "ftp://example.test/graphql"},
        ],
        ids=["no-locales", "no-stages", "zero-concurrency", "zero-downloads", "zero-page", "non-http"],
    )
    def test_rejects_invalid_values(self, overrides: dict[str, object]) -> None:
        values: dict[str, object] = {"endpoint": ENDPOINT, **overrides}
        with pytest.raises(ValidationError):
            SourcingOptions(**values)
