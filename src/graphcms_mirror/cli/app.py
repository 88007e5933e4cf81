import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from graphcms_mirror.cli.nodes import nodes
from graphcms_mirror.cli.schema import schema
from graphcms_mirror.cli.sync import sync

app = typer.Typer(
    name="graphcms-mirror",
    help="GraphCMS mirror CLI: sync a remote content graph into a local node store.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def configure(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log per-node and per-asset details.")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


app.command("sync")(sync)
app.command("schema")(schema)
app.command("nodes")(nodes)


def main() -> None:
    app()
