import asyncio
from collections.abc import Sequence
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from graphcms_mirror.cli.options import (
    Endpoint,
    Locales,
    MarkdownFields,
    Stages,
    Token,
    TypePrefix,
    build_options,
)
from graphcms_mirror.config import DEFAULT_TYPE_PREFIX
from graphcms_mirror.core.sourcing import run_sourcing
from graphcms_mirror.db.engine import get_engine
from graphcms_mirror.db.sql import SqlNodeStore
from graphcms_mirror.errors import SourcingError
from graphcms_mirror.models import ReconcileStats

console = Console()


def render_stats(stats: Sequence[ReconcileStats]) -> None:
    table = Table(show_lines=False)
    for header in ("type", "created", "updated", "touched", "deleted", "downloaded", "failed"):
        table.add_column(header, justify="left" if header == "type" else "right")
    for row in stats:
        table.add_row(
            row.remote_type_name,
            str(row.created),
            str(row.updated),
            str(row.touched),
            str(row.deleted),
            str(row.downloaded),
            str(row.failed_downloads),
        )
    console.print(table)


def sync(
    endpoint: Endpoint,
    token: Token = None,
    locale: Locales = None,
    stage: Stages = None,
    type_prefix: TypePrefix = DEFAULT_TYPE_PREFIX,
    markdown_field: MarkdownFields = None,
    build_markdown_nodes: Annotated[bool, typer.Option(help="Create markdown nodes for rich-text fields.")] = False,
    cleanup_rtf: Annotated[bool, typer.Option(help="Store a cleaned copy of rich-text trees.")] = False,
    download_all_assets: Annotated[bool, typer.Option(help="Download every asset.")] = False,
    download_local_images: Annotated[bool, typer.Option(help="Download image assets.")] = False,
    skip_unused_assets: Annotated[bool, typer.Option(help="Only download assets referenced by content.")] = True,
    dont_download: Annotated[bool, typer.Option(help="Never download assets.")] = False,
    max_image_width: Annotated[int, typer.Option(help="Resize wider images on download; 0 disables.")] = 0,
    local_cache: Annotated[bool, typer.Option(help="Cache downloaded assets on disk.")] = False,
    local_cache_dir: Annotated[Path, typer.Option(help="Directory of the asset cache.")] = Path("graphcms-assets"),
    files_dir: Annotated[Path, typer.Option(help="Directory for materialized files.")] = Path(".graphcms-files"),
    concurrency: Annotated[int, typer.Option(help="Max concurrent GraphQL requests.")] = 10,
    concurrent_downloads: Annotated[int, typer.Option(help="Max concurrent asset downloads.")] = 50,
    page_size: Annotated[int, typer.Option(help="Nodes per list query page.")] = 100,
) -> None:
    """Mirror all content of the remote CMS into the local node store."""
    options = build_options(
        endpoint,
        token,
        locale,
        stage,
        type_prefix,
        markdown_field,
        build_markdown_nodes=build_markdown_nodes,
        cleanup_rtf=cleanup_rtf,
        download_all_assets=download_all_assets,
        download_local_images=download_local_images,
        skip_unused_assets=skip_unused_assets,
        dont_download=dont_download,
        max_image_width=max_image_width,
        local_cache=local_cache,
        local_cache_dir=local_cache_dir,
        files_dir=files_dir,
        concurrency=concurrency,
        concurrent_downloads=concurrent_downloads,
        page_size=page_size,
    )
    store = SqlNodeStore(get_engine())

    async def _run() -> None:
        try:
            _, report = await run_sourcing(store, options)
            render_stats(report.stats)
            console.print(f"[green]Synced[/green] {len(report.stats)} node types, {len(report.used_assets)} assets in use")
            if report.swept:
                console.print(f"Removed {report.swept} stale derived nodes")
        finally:
            await store.dispose()

    try:
        asyncio.run(_run())
    except SourcingError as exc:
        console.print(f"[red]Sourcing failed:[/red] {exc}")
        raise typer.Exit(1) from exc
