"""Shared helpers for declgen commands."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

if TYPE_CHECKING:
    from declgen.cli import DeclgenContext
    from declgen.config import DeclgenConfig
    from declgen.errors import DeclgenError
    from declgen.metadata.snapshot import SnapshotAdapter


def require_config(ctx: DeclgenContext) -> DeclgenConfig:
    """Return the loaded configuration or exit with a config error."""
    from declgen.errors import ExitCode
    from declgen.logging import print_error, print_info

    if ctx.config is None:
        print_error(f"Failed to load configuration: {ctx.config_error}")
        print_info("Fix the file or run 'declgen init --force' to recreate it")
        sys.exit(ExitCode.CONFIG_ERROR)
    return ctx.config


def fail(ctx: DeclgenContext, error: DeclgenError) -> NoReturn:
    """Print a single diagnostic for a declgen error and exit with its code.

    With --debug the error is re-raised so the traceback is shown.
    """
    from declgen.logging import print_error

    if ctx.debug:
        raise error
    print_error(error.diagnostic())
    sys.exit(error.exit_code)


def open_snapshot(metadata: Path, image: Path | None) -> SnapshotAdapter:
    """Load the metadata snapshot and image layout.

    Raises:
        SourceUnavailable: If either file is missing or invalid
    """
    from declgen.metadata.snapshot import SnapshotAdapter

    return SnapshotAdapter.open(metadata, image)


__all__ = ["require_config", "fail", "open_snapshot"]
