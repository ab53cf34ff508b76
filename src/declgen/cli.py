"""declgen CLI - generate native declarations from managed type metadata."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv

# DECLGEN_* settings may come from a .env file
load_dotenv()

import click  # noqa: E402

from declgen import __version__  # noqa: E402
from declgen.commands.lazy import LazyGroup  # noqa: E402

if TYPE_CHECKING:
    from declgen.config import DeclgenConfig
    from declgen.logging import Verbosity


class DeclgenContext:
    """State shared by every subcommand of one invocation."""

    def __init__(self) -> None:
        self.config: DeclgenConfig | None = None
        self.config_error: str | None = None
        self.verbosity: Verbosity = "normal"
        self.debug: bool = False

    def load_config(self, path: Path | None) -> None:
        """Load configuration, keeping the failure for commands that need it.

        init must still work when the existing file is broken.
        """
        from pydantic import ValidationError

        from declgen.config import DeclgenConfig

        try:
            self.config = DeclgenConfig.load(path)
        except (OSError, ValueError, ValidationError) as e:
            self.config_error = str(e)


pass_context = click.make_pass_decorator(DeclgenContext, ensure=True)


SUBCOMMANDS: dict[str, str] = {
    "generate": "declgen.commands.generate:generate",
    "order": "declgen.commands.order:order",
    "targets": "declgen.commands.targets:targets",
    "init": "declgen.commands.init_cmd:init",
}


@click.group(cls=LazyGroup, lazy_subcommands=SUBCOMMANDS)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("-q", "--quiet", is_flag=True, help="Suppress non-error output")
@click.option("--debug", is_flag=True, help="Show full tracebacks on errors")
@click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file",
)
@click.version_option(version=__version__, prog_name="declgen")
@pass_context
def cli(
    ctx: DeclgenContext,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config: Path | None,
) -> None:
    """declgen - native declarations from managed type metadata.

    \b
    Commands:
      generate     Emit C++ headers, a Rust crate or a JSON document
      order        Show the emission order and forward declarations
      targets      List emission targets
      init         Write a default .declgenrc.toml

    Use 'declgen <command> --help' for details.
    Use --debug to show full tracebacks on errors.
    """
    from declgen.logging import setup_logging

    ctx.debug = debug
    ctx.verbosity = "quiet" if quiet else "verbose" if verbose else "normal"
    setup_logging(ctx.verbosity)
    ctx.load_config(config)


def main() -> None:
    """Entry point for the CLI."""
    import sys

    try:
        cli()
    except KeyboardInterrupt:
        sys.exit(130)
    except Exception as e:
        from declgen.errors import DeclgenError, ExitCode
        from declgen.logging import print_error, print_info

        # Reached only with --debug or for crashes outside the pipeline
        if isinstance(e, DeclgenError):
            print_error(e.diagnostic())
            exit_code = e.exit_code
        else:
            print_error(f"Unexpected error: {e}")
            exit_code = ExitCode.FATAL_ERROR

        if "--debug" in sys.argv:
            import traceback

            print_info("")
            print_info("Full traceback (--debug mode):")
            traceback.print_exc()
        else:
            print_info("Run with --debug for full traceback.")
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
