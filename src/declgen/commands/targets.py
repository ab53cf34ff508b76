"""declgen targets command - list emission targets."""

from __future__ import annotations

import click


@click.command("targets")
def targets() -> None:
    """List the registered emission targets."""
    from declgen.emit import get_default_manager
    from declgen.logging import print_info

    manager = get_default_manager()
    print_info("Available targets:")
    for emitter in manager.list_emitters():
        print_info(f"  {emitter['name']:22} - {emitter['description']}")


__all__ = ["targets"]
