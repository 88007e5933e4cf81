from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_TYPE_PREFIX = "GraphCMS_"
ASSET_TYPE_NAME = "Asset"
RICH_TEXT_SUFFIX = "RichText"


class SourcingOptions(BaseModel):
    """Options controlling what is fetched from the CMS and how it is mirrored."""

    model_config = ConfigDict(frozen=True)

    endpoint: str
    token: str | None = None
    locales: list[str] = Field(default_factory=lambda: ["en"], min_length=1)
    stages: list[str] = Field(default_factory=lambda: ["PUBLISHED"], min_length=1)
    type_prefix: str = DEFAULT_TYPE_PREFIX
    markdown_fields: dict[str, list[str]] = Field(default_factory=dict)

    build_markdown_nodes: bool = False
    cleanup_rtf: bool = False

    download_all_assets: bool = False
    download_local_images: bool = False
    skip_unused_assets: bool = True
    dont_download: bool = False
    max_image_width: int = Field(default=0, ge=0)

    local_cache: bool = False
    local_cache_dir: Path = Path("graphcms-assets")
    files_dir: Path = Path(".graphcms-files")

    concurrency: int = Field(default=10, ge=1)
    concurrent_downloads: int = Field(default=50, ge=1)
    page_size: int = Field(default=100, ge=1)

    retries: int = Field(default=3, ge=1)
    retry_factor: float = Field(default=1.1, gt=0)
    retry_min_timeout: float = Field(default=5.0, ge=0)

    @field_validator("endpoint")
    @classmethod
    def _endpoint_is_http(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"Endpoint must be an http(s) URL, got '{value}'")
        return value

    @property
    def default_stage(self) -> str | None:
        """The stage sent as ``gcms-stage`` header, only when exactly one is configured."""
        return self.stages[0] if len(self.stages) == 1 else None

    def markdown_fields_for(self, type_name: str) -> frozenset[str]:
        return frozenset(self.markdown_fields.get(type_name, ()))

    @property
    def asset_download_enabled(self) -> bool:
        return not self.dont_download and (self.download_all_assets or self.download_local_images)
