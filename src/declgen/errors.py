"""Error handling framework for declgen."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum, IntEnum
from typing import Any


class ExitCode(IntEnum):
    """declgen CLI exit codes."""

    SUCCESS = 0
    CONFIG_ERROR = 1  # Bad configuration or CLI usage (user fixable)
    SOURCE_ERROR = 2  # Metadata or image source missing/unreadable
    GENERATION_ERROR = 3  # Graph could not be generated with full fidelity
    OUTPUT_ERROR = 4  # Artifacts could not be written
    FATAL_ERROR = 5  # Unexpected crash


class Stage(Enum):
    """Pipeline stage at which a condition was raised."""

    CONFIG = "config"
    SOURCE = "source"
    BUILD = "build"
    GENERICS = "generics"
    ORDERING = "ordering"
    LAYOUT = "layout"
    NAMING = "naming"
    EMIT = "emit"
    WRITE = "write"


class DeclgenError(Exception):
    """Base exception for declgen errors."""

    exit_code: ExitCode = ExitCode.FATAL_ERROR
    stage: Stage = Stage.BUILD

    def __init__(self, message: str, stage: Stage | None = None, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage
        self.context = context

    @property
    def condition(self) -> str:
        """Name of the condition, as shown to the operator."""
        return self.__class__.__name__

    def diagnostic(self) -> str:
        """Single-line terminal diagnostic."""
        return f"{self.condition} during {self.stage.value}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSON output."""
        return {
            "error": self.condition,
            "message": self.message,
            "stage": self.stage.value,
            "exit_code": int(self.exit_code),
            **self.context,
        }


class ConfigError(DeclgenError):
    """Configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR
    stage = Stage.CONFIG


class SourceUnavailable(DeclgenError):
    """Metadata or native-image source is missing, unreadable or malformed."""

    exit_code = ExitCode.SOURCE_ERROR
    stage = Stage.SOURCE

    def __init__(self, message: str, path: str | None = None, **context: Any) -> None:
        super().__init__(message, path=path, **context)
        self.path = path


class MetadataInconsistency(DeclgenError):
    """The adapter yielded a reference with no backing record, or contradictory data."""

    exit_code = ExitCode.GENERATION_ERROR

    def __init__(
        self,
        message: str,
        token: int,
        referenced_by: int | None = None,
        stage: Stage | None = None,
        **context: Any,
    ) -> None:
        super().__init__(message, stage=stage, token=token, referenced_by=referenced_by, **context)
        self.token = token
        self.referenced_by = referenced_by

    def diagnostic(self) -> str:
        where = f" (referenced by {self.referenced_by})" if self.referenced_by is not None else ""
        return f"{self.condition} during {self.stage.value}: token {self.token}{where}: {self.message}"


class UnresolvedGenericBinding(DeclgenError):
    """A generic instantiation cannot be fully concretized."""

    exit_code = ExitCode.GENERATION_ERROR
    stage = Stage.GENERICS

    def __init__(self, message: str, definition: int | None = None, **context: Any) -> None:
        super().__init__(message, definition=definition, **context)
        self.definition = definition


class UnbreakableCycle(DeclgenError):
    """A by-value dependency cycle that no forward declaration can break."""

    exit_code = ExitCode.GENERATION_ERROR
    stage = Stage.ORDERING

    def __init__(self, members: Iterable[int], names: Iterable[str] = ()) -> None:
        self.members = sorted(members)
        self.names = list(names)
        cycle = " -> ".join(str(t) for t in self.members)
        if self.members:
            cycle += f" -> {self.members[0]}"
        super().__init__(f"by-value dependency cycle: {cycle}", members=self.members, names=self.names)


class OutputWriteFailure(DeclgenError):
    """Filesystem-level failure while writing artifacts for one target."""

    exit_code = ExitCode.OUTPUT_ERROR
    stage = Stage.WRITE

    def __init__(self, message: str, target: str, path: str | None = None) -> None:
        super().__init__(message, target=target, path=path)
        self.target = target
        self.path = path


class GenerationReport:
    """Outcome of generating one or more targets in a single run."""

    def __init__(self) -> None:
        self.written: dict[str, str] = {}
        self.artifact_counts: dict[str, int] = {}
        self.errors: dict[str, DeclgenError] = {}

    @property
    def success(self) -> bool:
        """True if every requested target was written."""
        return not self.errors

    @property
    def exit_code(self) -> ExitCode:
        """Most severe exit code across targets."""
        if not self.errors:
            return ExitCode.SUCCESS
        return max(e.exit_code for e in self.errors.values())

    def add_written(self, target: str, destination: str, artifact_count: int) -> None:
        """Record a target whose artifacts were written."""
        self.written[target] = destination
        self.artifact_counts[target] = artifact_count

    def add_error(self, target: str, error: DeclgenError) -> None:
        """Record a failed target."""
        self.errors[target] = error

    def to_dict(self) -> dict[str, Any]:
        """Convert report to dictionary for JSON output."""
        return {
            "success": self.success,
            "exit_code": int(self.exit_code),
            "written": self.written,
            "artifacts": self.artifact_counts,
            "errors": {target: e.to_dict() for target, e in self.errors.items()},
        }
