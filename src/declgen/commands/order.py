"""declgen order command - show the emission order."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from declgen.cli import DeclgenContext
    from declgen.pipeline import PreparedGraph


def _format_table(prepared: PreparedGraph, no_color: bool) -> str:
    """Render the order as a Rich table."""
    from io import StringIO

    from rich.console import Console
    from rich.table import Table

    from declgen.graph.ordering import EntryKind

    graph = prepared.graph
    forwards = len(prepared.order.forward_declarations())
    table = Table(
        title=f"Emission Order ({len(prepared.order.definitions())} definitions, {forwards} forward)",
        show_header=True,
    )
    table.add_column("#", justify="right")
    table.add_column("Entry", style="yellow" if not no_color else None)
    table.add_column("Token", justify="right")
    table.add_column("Kind")
    table.add_column("Type", style="cyan" if not no_color else None)

    for i, entry in enumerate(prepared.order, start=1):
        node = graph.node(entry.token)
        kind = "instantiation" if node.is_instantiation else node.kind.value
        marker = "forward" if entry.kind == EntryKind.FORWARD else "define"
        table.add_row(str(i), marker, f"0x{entry.token:x}", kind, node.full_name)

    string_io = StringIO()
    console = Console(file=string_io, force_terminal=not no_color, width=160)
    console.print(table)
    return string_io.getvalue()


def _format_json(prepared: PreparedGraph) -> str:
    graph = prepared.graph
    entries = [
        {**entry.to_dict(), "name": graph.node(entry.token).full_name} for entry in prepared.order
    ]
    return json.dumps(
        {
            "stats": graph.stats(),
            "forward_declarations": prepared.order.forward_declarations(),
            "order": entries,
        },
        indent=2,
    )


@click.command("order")
@click.option(
    "--metadata",
    "-m",
    required=True,
    type=click.Path(path_type=Path),
    help="Decoded metadata snapshot (JSON)",
)
@click.option(
    "--image",
    "-i",
    type=click.Path(path_type=Path),
    help="Image layout document (JSON)",
)
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.pass_obj
def order(
    ctx: DeclgenContext,
    metadata: Path,
    image: Path | None,
    output_format: str,
    no_color: bool,
) -> None:
    """Show the order types would be emitted in.

    Forward-declaration entries mark where a reference cycle was broken.

    \b
    Examples:
        declgen order -m metadata.json -i image.json
        declgen order -m metadata.json -f json > order.json
    """
    import sys

    from declgen.commands._utils import fail, open_snapshot, require_config
    from declgen.errors import DeclgenError
    from declgen.pipeline import prepare

    config = require_config(ctx)
    try:
        prepared = prepare(open_snapshot(metadata, image), config)
    except DeclgenError as e:
        fail(ctx, e)

    if output_format == "json":
        click.echo(_format_json(prepared))
    else:
        click.echo(_format_table(prepared, no_color or not sys.stdout.isatty()))


__all__ = ["order"]
