"""declgen init command - write a default .declgenrc.toml."""

from __future__ import annotations

import sys
from pathlib import Path

import click


@click.command()
@click.option("--force", "-f", is_flag=True, help="Overwrite existing .declgenrc.toml")
def init(force: bool) -> None:
    """Initialize a new .declgenrc.toml configuration file.

    Creates a configuration file with the defaults in the current directory.
    """
    from declgen.config import get_default_config_toml
    from declgen.errors import ExitCode
    from declgen.logging import print_error, print_info, print_success, print_warning
    from declgen.paths import CONFIG_FILE

    config_path = Path.cwd() / CONFIG_FILE

    if config_path.exists() and not force:
        print_warning(f"Configuration file already exists: {config_path}")
        print_info("Use --force to overwrite")
        sys.exit(ExitCode.CONFIG_ERROR)

    try:
        config_path.write_text(get_default_config_toml())
    except OSError as e:
        print_error(f"Failed to create config file: {e}")
        sys.exit(ExitCode.CONFIG_ERROR)

    print_success(f"Created {config_path}")
    print_info("\nNext steps:")
    print_info(f"  1. Edit {CONFIG_FILE} to choose pointer size and target options")
    print_info("  2. Run 'declgen order -m metadata.json -i image.json' to inspect the emission order")
    print_info("  3. Run 'declgen generate -m metadata.json -i image.json -t native-header -o out/'")


__all__ = ["init"]
