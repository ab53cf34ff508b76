"""Generation pipeline.

Adapter -> GraphBuilder -> GenericResolver (instantiations, then generic
method specializations when enabled) -> DependencyResolver ->
LayoutCalculator -> (frozen graph) -> per-target naming, emission and
writing.

Graph stages fail fast: any DeclgenError aborts the run before a single
artifact is written. Emission runs once per target; a failure there is
recorded in the GenerationReport and leaves that target's destination
untouched while the other targets still complete.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from declgen.config import DeclgenConfig
from declgen.emit.base import EmitOptions, EmitResult, EmitterManager, get_default_manager
from declgen.emit.writer import ArtifactWriter
from declgen.errors import DeclgenError, GenerationReport
from declgen.graph.builder import GraphBuilder
from declgen.graph.generics import GenericResolver
from declgen.graph.layout import LayoutCalculator
from declgen.graph.ordering import DependencyResolver, EmissionOrder
from declgen.graph.store import TypeGraph
from declgen.metadata.adapter import MetadataAdapter

logger = logging.getLogger(__name__)

# Called with a stage description as the pipeline advances
StageCallback = Callable[[str], None]


@dataclass
class PreparedGraph:
    """A frozen graph and its emission order, ready for any target."""

    graph: TypeGraph
    order: EmissionOrder
    instantiation_count: int = 0
    specialization_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "stats": self.graph.stats(),
            "instantiations_created": self.instantiation_count,
            "method_specializations": self.specialization_count,
            "order": self.order.to_list(),
        }


def prepare(
    adapter: MetadataAdapter,
    config: DeclgenConfig | None = None,
    on_stage: StageCallback | None = None,
) -> PreparedGraph:
    """Build, expand, order and lay out the graph, then freeze it.

    The pointer size comes from the adapter when it knows the image's
    (SnapshotAdapter does), otherwise from generate.pointer_size.

    Raises:
        MetadataInconsistency: Dangling tokens or contradictory layout
        UnresolvedGenericBinding: An instantiation cannot be concretized
        UnbreakableCycle: Types contain each other by value
    """
    config = config or DeclgenConfig()
    pointer_size = getattr(adapter, "pointer_size", None) or config.generate.pointer_size

    def stage(description: str) -> None:
        logger.debug(description)
        if on_stage is not None:
            on_stage(description)

    stage("Building type graph")
    graph = GraphBuilder(workers=config.generate.workers, pointer_size=pointer_size).build(adapter)

    stage("Resolving generic instantiations")
    resolver = GenericResolver(graph, max_depth=config.generics.max_depth)
    created = resolver.resolve(adapter.generic_instantiations())
    specialized = 0
    if config.generics.method_specializations:
        specialized = resolver.specialize_methods(adapter.generic_method_instantiations())

    stage("Ordering types")
    order = DependencyResolver(graph).resolve()

    stage("Computing layouts")
    LayoutCalculator(graph).apply(order)

    graph.freeze()
    stats = graph.stats()
    logger.info(
        "Graph ready: %d types, %d instantiations, %d edges, %d forward declarations",
        stats["types"],
        stats["instantiations"],
        stats["edges"],
        len(order.forward_declarations()),
    )
    return PreparedGraph(
        graph=graph,
        order=order,
        instantiation_count=created,
        specialization_count=specialized,
    )


def emit_options(config: DeclgenConfig, target: str) -> EmitOptions:
    """EmitOptions for a target from its configuration section."""
    if target == "native-header":
        section = config.native_header
        return EmitOptions(
            verbose_comments=section.verbose_comments,
            layout_asserts=section.layout_asserts,
            extra={
                "properties": section.properties,
                "namespace_headers": section.namespace_headers,
                "umbrella": section.umbrella,
            },
        )
    if target == "source-crate":
        crate = config.source_crate
        return EmitOptions(
            verbose_comments=crate.verbose_comments,
            layout_asserts=crate.layout_asserts,
            extra={
                "crate_name": crate.crate_name,
                "crate_version": crate.crate_version,
                "edition": crate.edition,
            },
        )
    if target == "interchange-document":
        return EmitOptions(
            extra={"pretty": config.interchange.pretty, "split": config.interchange.split},
        )
    return EmitOptions()


def destination_for(output_dir: Path, target: str, targets: Sequence[str]) -> Path:
    """A single target writes to output_dir itself, several to one subdirectory each."""
    if len(targets) == 1:
        return output_dir
    return output_dir / target


def generate(
    adapter: MetadataAdapter,
    targets: Sequence[str],
    output_dir: Path,
    config: DeclgenConfig | None = None,
    manager: EmitterManager | None = None,
    writer: ArtifactWriter | None = None,
    on_stage: StageCallback | None = None,
) -> GenerationReport:
    """Run the whole pipeline and write every requested target.

    Args:
        adapter: Source of metadata records
        targets: Target names, e.g. ["native-header", "source-crate"]
        output_dir: Output root
        config: Configuration, defaults when omitted
        manager: Emitter registry, the default targets when omitted
        writer: Artifact writer
        on_stage: Progress callback

    Returns:
        GenerationReport with one entry per target

    Raises:
        ConfigError: If a target is unknown
        DeclgenError: If the graph cannot be prepared
    """
    config = config or DeclgenConfig()
    manager = manager or get_default_manager()
    writer = writer or ArtifactWriter()
    targets = list(dict.fromkeys(targets))

    # Unknown targets are rejected before any work is done
    for target in targets:
        manager.get_emitter(target)

    prepared = prepare(adapter, config, on_stage)
    if on_stage is not None:
        on_stage(f"Emitting {', '.join(targets)}")

    def run(target: str) -> tuple[str, EmitResult | DeclgenError, Path]:
        destination = destination_for(output_dir, target, targets)
        try:
            result = manager.emit(prepared.graph, prepared.order, target, emit_options(config, target))
            writer.write(result, destination)
        except DeclgenError as e:
            logger.debug("Target %s failed: %s", target, e.diagnostic())
            return target, e, destination
        return target, result, destination

    if config.generate.parallel_emit and len(targets) > 1:
        with ThreadPoolExecutor(max_workers=len(targets), thread_name_prefix="declgen-emit") as pool:
            outcomes = list(pool.map(run, targets))
    else:
        outcomes = [run(target) for target in targets]

    report = GenerationReport()
    for target, outcome, destination in outcomes:
        if isinstance(outcome, DeclgenError):
            report.add_error(target, outcome)
        else:
            report.add_written(target, str(destination), outcome.artifact_count)
    return report


__all__ = ["PreparedGraph", "prepare", "generate", "emit_options", "destination_for"]
