"""Centralized file and directory names used by declgen.

Generated output for a target is assembled in a staging directory that
sits next to the destination and is swapped in once complete:

    <output>/                    # final artifacts for one target
    .<output>.declgen-staging-*  # in-progress staging (removed on success)

The configuration file (.declgenrc.toml) lives at the project root or in
the user's home directory.
"""

from __future__ import annotations

from pathlib import Path

CONFIG_FILE = ".declgenrc.toml"

STAGING_SUFFIX = ".declgen-staging-"
BACKUP_SUFFIX = ".declgen-previous"

# Native header layout
RUNTIME_HEADER = "declgen_runtime.hpp"
NAMESPACE_HEADER = "__namespace.hpp"

# Source crate layout
CRATE_MANIFEST = "Cargo.toml"
CRATE_SRC_DIR = "src"
CRATE_RUNTIME_MODULE = "runtime.rs"

# Interchange layout
INTERCHANGE_DOCUMENT = "types.json"
INTERCHANGE_INDEX = "index.json"

GLOBAL_NAMESPACE = "GlobalNamespace"


def staging_prefix(destination: Path) -> str:
    """Prefix for staging directories created for a destination."""
    return f".{destination.name}{STAGING_SUFFIX}"


def backup_path(destination: Path) -> Path:
    """Path an existing destination is moved to while swapping in new output."""
    return destination.with_name(f".{destination.name}{BACKUP_SUFFIX}")


def namespace_dir(segments: list[str]) -> Path:
    """Relative directory for already-sanitized namespace segments."""
    if not segments:
        return Path(GLOBAL_NAMESPACE)
    return Path(*segments)
