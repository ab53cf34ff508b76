"""Atomic artifact writer.

A target's artifacts are written to a staging directory created next to
the destination (same filesystem) and swapped in with os.replace. A
previous destination is moved aside first and removed once the new
output is in place, so a failure at any point leaves the destination as
it was.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path, PurePosixPath

from declgen.emit.base import EmitResult
from declgen.errors import OutputWriteFailure
from declgen.paths import backup_path, staging_prefix

logger = logging.getLogger(__name__)


class ArtifactWriter:
    """Write an EmitResult to a destination directory."""

    def write(self, result: EmitResult, destination: Path) -> Path:
        """Write every artifact of a result, replacing the destination.

        Args:
            result: Rendered artifacts of one target
            destination: Directory that will hold exactly these artifacts

        Returns:
            The destination path

        Raises:
            OutputWriteFailure: If staging or swapping fails; the
                destination is left untouched
        """
        destination = Path(destination).absolute()
        parent = destination.parent
        staging: Path | None = None
        try:
            parent.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=staging_prefix(destination), dir=parent))
            for relative, content in sorted(result.artifacts.items()):
                target = staging / self._safe_relative(relative, result.target)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8", newline="\n")
            self._swap(staging, destination)
            staging = None
        except OSError as e:
            raise OutputWriteFailure(
                f"cannot write {result.target} artifacts to {destination}: {e}",
                target=result.target,
                path=str(destination),
            ) from e
        finally:
            if staging is not None and staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

        logger.info("Wrote %d %s artifacts to %s", result.artifact_count, result.target, destination)
        return destination

    def _safe_relative(self, relative: str, target: str) -> Path:
        path = PurePosixPath(relative)
        if path.is_absolute() or ".." in path.parts or not path.parts:
            raise OutputWriteFailure(f"artifact path escapes the destination: {relative}", target=target)
        return Path(*path.parts)

    def _swap(self, staging: Path, destination: Path) -> None:
        if destination.exists() and not destination.is_dir():
            raise NotADirectoryError(f"{destination} exists and is not a directory")

        backup = backup_path(destination)
        if backup.exists():
            shutil.rmtree(backup)

        moved_aside = False
        if destination.exists():
            os.replace(destination, backup)
            moved_aside = True
        try:
            os.replace(staging, destination)
        except OSError:
            if moved_aside:
                os.replace(backup, destination)
            raise
        if moved_aside:
            shutil.rmtree(backup, ignore_errors=True)


__all__ = ["ArtifactWriter"]
