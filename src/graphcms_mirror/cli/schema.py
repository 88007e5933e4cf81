import asyncio
from collections.abc import Sequence

import typer
from rich.console import Console
from rich.tree import Tree

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
from graphcms_mirror.core.executor import RemoteExecutor
from graphcms_mirror.core.reconcile import SourcingContext
from graphcms_mirror.core.sourcing import initialize_context
from graphcms_mirror.core.special_fields import FieldEntry, ObjectEntry, SpecialFieldEntry, UnionEntry
from graphcms_mirror.errors import SourcingError

console = Console()


def _add_entries(branch: Tree, entries: Sequence[SpecialFieldEntry]) -> None:
    for entry in entries:
        match entry:
            case FieldEntry(kind=kind, name=name):
                branch.add(f"{name} [dim]({kind})[/dim]")
            case ObjectEntry(name=name, children=children):
                _add_entries(branch.add(f"{name} [dim](object)[/dim]"), children)
            case UnionEntry(name=name, children=members):
                union = branch.add(f"{name} [dim](union)[/dim]")
                for member, member_entries in members.items():
                    _add_entries(union.add(f"[cyan]{member}[/cyan]"), member_entries)


def render_context(context: SourcingContext) -> None:
    tree = Tree("[bold]Node types[/bold]")
    for node_type in context.schema_information.node_types:
        label = f"[bold]{node_type.remote_type_name}[/bold] ({node_type.plural_field})"
        if node_type.localized:
            label += " [dim]localized[/dim]"
        branch = tree.add(label)
        queries = branch.add("queries")
        for query in node_type.list_queries:
            queries.add(query.operation_name)
        if node_type.node_query is not None:
            queries.add(node_type.node_query.operation_name)
        entries = context.special_fields.get(node_type.remote_type_name)
        if entries:
            _add_entries(branch.add("special fields"), entries)
    console.print(tree)


def schema(
    endpoint: Endpoint,
    token: Token = None,
    locale: Locales = None,
    stage: Stages = None,
    type_prefix: TypePrefix = DEFAULT_TYPE_PREFIX,
    markdown_field: MarkdownFields = None,
) -> None:
    """Show node types, their queries and special fields discovered from the remote schema."""
    options = build_options(endpoint, token, locale, stage, type_prefix, markdown_field)
    executor = RemoteExecutor(options)

    async def _run() -> SourcingContext:
        try:
            return await initialize_context(executor, options)
        finally:
            await executor.aclose()

    try:
        context = asyncio.run(_run())
    except SourcingError as exc:
        console.print(f"[red]Schema could not be loaded:[/red] {exc}")
        raise typer.Exit(1) from exc
    render_context(context)
