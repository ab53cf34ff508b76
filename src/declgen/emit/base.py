"""Base protocol for backend emitters.

Defines the interface every emission target implements and the manager
that selects one per target.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from declgen.errors import ConfigError

if TYPE_CHECKING:
    from declgen.graph.ordering import EmissionOrder
    from declgen.graph.store import TypeGraph
    from declgen.naming.rules import NamingRules
    from declgen.naming.sanitizer import NameTable


@dataclass
class EmitOptions:
    """Options for emit operations.

    Common options that apply to all emitters.
    """

    verbose_comments: bool = True
    """Emit doc comments with offsets, sizes and vtable slots."""

    layout_asserts: bool = True
    """Emit compile-time checks of offsets and sizes."""

    extra: dict[str, Any] = field(default_factory=dict)
    """Target-specific options."""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "verbose_comments": self.verbose_comments,
            "layout_asserts": self.layout_asserts,
            "extra": self.extra,
        }


@dataclass
class EmitResult:
    """Artifacts produced for one target."""

    target: str
    """The target name (e.g. 'native-header')."""

    artifacts: dict[str, str]
    """Relative POSIX path -> file content."""

    type_count: int
    """Number of type definitions rendered."""

    forward_count: int = 0
    """Number of forward declarations emitted at cycle-break points."""

    @property
    def artifact_count(self) -> int:
        return len(self.artifacts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "target": self.target,
            "artifacts": sorted(self.artifacts),
            "type_count": self.type_count,
            "forward_count": self.forward_count,
        }


@runtime_checkable
class Emitter(Protocol):
    """Protocol for backend emitters.

    Emitters only read the frozen graph; anything they need to remember
    while rendering lives in local state of the emit call.
    """

    @property
    def target_name(self) -> str:
        """Return the target name identifier."""
        ...

    @property
    def description(self) -> str:
        """Return a short description of this target."""
        ...

    @property
    def naming_rules(self) -> NamingRules:
        """Return the identifier rules for this target."""
        ...

    def emit(
        self,
        graph: TypeGraph,
        order: EmissionOrder,
        names: NameTable,
        options: EmitOptions | None = None,
    ) -> EmitResult:
        """Render the graph.

        Args:
            graph: Frozen type graph
            order: Emission order with forward-declaration markers
            names: Identifiers built with this emitter's naming rules
            options: Emit options

        Returns:
            EmitResult with the rendered artifacts
        """
        ...


class EmitterManager:
    """Manage and dispatch to registered emitters."""

    def __init__(self) -> None:
        self._emitters: dict[str, Emitter] = {}

    def register(self, emitter: Emitter) -> None:
        """Register an emitter under its target name."""
        self._emitters[emitter.target_name] = emitter

    def get_emitter(self, target: str) -> Emitter:
        """Get an emitter by target name.

        Raises:
            ConfigError: If no emitter is registered for the target
        """
        emitter = self._emitters.get(target)
        if emitter is None:
            raise ConfigError(f"Unknown target: {target}. Available: {', '.join(self.list_targets())}")
        return emitter

    def emit(
        self,
        graph: TypeGraph,
        order: EmissionOrder,
        target: str,
        options: EmitOptions | None = None,
    ) -> EmitResult:
        """Name and render the graph for one target.

        Args:
            graph: Frozen type graph
            order: Emission order
            target: Target name
            options: Emit options

        Returns:
            EmitResult with the rendered artifacts
        """
        from declgen.naming.sanitizer import NameTable

        emitter = self.get_emitter(target)
        names = NameTable.build(graph, order, emitter.naming_rules)
        return emitter.emit(graph, order, names, options)

    def list_targets(self) -> list[str]:
        """List all registered target names."""
        return sorted(self._emitters.keys())

    def list_emitters(self) -> list[dict[str, str]]:
        """List all registered emitters with details."""
        return [
            {"name": e.target_name, "description": e.description}
            for e in sorted(self._emitters.values(), key=lambda e: e.target_name)
        ]


def get_default_manager() -> EmitterManager:
    """Get an EmitterManager with the native-header, source-crate and
    interchange-document emitters registered."""
    from declgen.emit.interchange import InterchangeEmitter
    from declgen.emit.native_header import NativeHeaderEmitter
    from declgen.emit.source_crate import SourceCrateEmitter

    manager = EmitterManager()
    manager.register(NativeHeaderEmitter())
    manager.register(SourceCrateEmitter())
    manager.register(InterchangeEmitter())
    return manager


__all__ = [
    "EmitOptions",
    "EmitResult",
    "Emitter",
    "EmitterManager",
    "get_default_manager",
]
