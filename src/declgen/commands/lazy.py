"""Click group that imports subcommand modules on first use."""

from __future__ import annotations

import importlib
from typing import Any

import click


class LazyGroup(click.Group):
    """A Click group whose subcommands are named by import path.

    Command modules pull in the graph and emitter packages, so deferring
    them keeps `declgen --help` and `declgen init` fast.
    """

    def __init__(
        self,
        *args: Any,
        lazy_subcommands: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize lazy group.

        Args:
            lazy_subcommands: Command name -> "module.path:attribute",
                e.g. {"generate": "declgen.commands.generate:generate"}
        """
        super().__init__(*args, **kwargs)
        self._specs: dict[str, str] = dict(lazy_subcommands or {})

    def list_commands(self, ctx: click.Context) -> list[str]:
        return sorted({*super().list_commands(ctx), *self._specs})

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        cmd = super().get_command(ctx, cmd_name)
        if cmd is None and cmd_name in self._specs:
            cmd = self._load(cmd_name)
            # Register so later lookups skip the import
            self.add_command(cmd, cmd_name)
        return cmd

    def _load(self, cmd_name: str) -> click.Command:
        module_path, _, attr_name = self._specs[cmd_name].partition(":")
        try:
            cmd = getattr(importlib.import_module(module_path), attr_name)
        except (ImportError, AttributeError) as e:
            raise click.ClickException(f"Failed to load command '{cmd_name}': {e}") from None
        if not isinstance(cmd, click.Command):
            raise click.ClickException(f"'{self._specs[cmd_name]}' is not a click command")
        return cmd


__all__ = ["LazyGroup"]
