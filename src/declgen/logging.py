"""Logging and console output for declgen.

Log records and diagnostics go to stderr so that `--json` and
`order -f json` output on stdout stays machine-readable.
"""

from __future__ import annotations

import logging
from typing import Literal

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

Verbosity = Literal["quiet", "normal", "verbose"]

LEVELS: dict[str, int] = {
    "quiet": logging.ERROR,
    "normal": logging.INFO,
    "verbose": logging.DEBUG,
}

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbosity: Verbosity = "normal") -> logging.Logger:
    """Route the declgen logger hierarchy through a Rich handler on stderr."""
    verbose = verbosity == "verbose"
    handler = RichHandler(
        console=err_console,
        show_time=verbose,
        show_path=verbose,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = get_logger()
    logger.handlers.clear()
    logger.setLevel(LEVELS[verbosity])
    logger.addHandler(handler)
    # The CLI owns the output; do not duplicate through the root logger
    logger.propagate = False
    return logger


def get_logger() -> logging.Logger:
    return logging.getLogger("declgen")


def create_progress() -> Progress:
    """Transient spinner that shows the current pipeline stage."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=err_console,
        transient=True,
    )


def print_error(message: str) -> None:
    err_console.print(f"[red]Error:[/red] {message}", highlight=False)


def print_warning(message: str) -> None:
    err_console.print(f"[yellow]Warning:[/yellow] {message}", highlight=False)


def print_success(message: str) -> None:
    console.print(f"[green]{message}[/green]")


def print_info(message: str) -> None:
    console.print(message)
