"""Shared CLI options that map onto ``SourcingOptions``."""

from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console

from graphcms_mirror.config import DEFAULT_TYPE_PREFIX, SourcingOptions

console = Console()

Endpoint = Annotated[str, typer.Option(envvar="GRAPHCMS_ENDPOINT", help="GraphQL content API endpoint.")]
Token = Annotated[str | None, typer.Option(envvar="GRAPHCMS_TOKEN", help="Permanent auth token.")]
Locales = Annotated[
    list[str] | None, typer.Option("--locale", help="Locale to fetch; repeat for several. Default: en.")
]
Stages = Annotated[
    list[str] | None, typer.Option("--stage", help="Content stage to fetch; repeat for several. Default: PUBLISHED.")
]
TypePrefix = Annotated[str, typer.Option(envvar="GRAPHCMS_TYPE_PREFIX", help="Prefix for local node types.")]
MarkdownFields = Annotated[
    list[str] | None,
    typer.Option("--markdown-field", help="Markdown field as Type.field; repeat for several."),
]


def parse_markdown_fields(values: list[str] | None) -> dict[str, list[str]]:
    fields: dict[str, list[str]] = {}
    for value in values or []:
        type_name, sep, field_name = value.partition(".")
        if not sep or not type_name or not field_name:
            raise typer.BadParameter(f"Expected Type.field, got '{value}'", param_hint="--markdown-field")
        fields.setdefault(type_name, []).append(field_name)
    return fields


def build_options(
    endpoint: str,
    token: str | None = None,
    locales: list[str] | None = None,
    stages: list[str] | None = None,
    type_prefix: str = DEFAULT_TYPE_PREFIX,
    markdown_fields: list[str] | None = None,
    **extra: object,
) -> SourcingOptions:
    values: dict[str, object] = {
        "endpoint": endpoint,
        "token": token,
        "type_prefix": type_prefix,
        "markdown_fields": parse_markdown_fields(markdown_fields),
        **extra,
    }
    if locales:
        values["locales"] = locales
    if stages:
        values["stages"] = stages
    try:
        return SourcingOptions.model_validate(values)
    except ValidationError as exc:
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"])
            console.print(f"[red]Invalid option {location}:[/red] {error['msg']}")
        raise typer.Exit(1) from exc
