"""Graph builder converting metadata records to type nodes and edges.

Assemblies are independent until their references are resolved, so each
one is turned into nodes on its own worker thread. The partial results are
merged in assembly-token order once every worker has finished, and the
cross-assembly passes run afterwards on the merged graph.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from declgen.errors import MetadataInconsistency, Stage
from declgen.graph.models import FieldNode, MethodNode, ParameterNode, PropertyNode, TypeNode
from declgen.graph.schema import RefKind, TypeKind
from declgen.graph.store import TypeGraph

if TYPE_CHECKING:
    from declgen.metadata.adapter import MetadataAdapter
    from declgen.metadata.records import AssemblyRecord, TypeDefinitionRecord

logger = logging.getLogger(__name__)


class GraphBuilder:
    """Builds a TypeGraph from a metadata adapter.

    The builder performs no I/O of its own; everything comes from the
    adapter.
    """

    def __init__(self, workers: int = 4, pointer_size: int = 8) -> None:
        """Initialize builder.

        Args:
            workers: Worker threads used for per-assembly construction
            pointer_size: Native pointer size of the inspected image
        """
        self.workers = max(1, workers)
        self.pointer_size = pointer_size

    def build(self, adapter: MetadataAdapter) -> TypeGraph:
        """Convert adapter records to a type graph.

        Args:
            adapter: Source of decoded metadata records

        Returns:
            Graph holding one node per type definition and its edges

        Raises:
            MetadataInconsistency: If a record references a token with no
                backing record, or vtable data contradicts itself
        """
        graph = TypeGraph(pointer_size=self.pointer_size)
        assemblies = sorted(adapter.assemblies(), key=lambda a: a.token)
        for asm in assemblies:
            graph.assemblies[asm.token] = asm.name

        by_assembly: dict[int, list[TypeDefinitionRecord]] = defaultdict(list)
        for record in adapter.type_definitions():
            if record.assembly not in graph.assemblies:
                raise MetadataInconsistency(
                    f"type {record.namespace}.{record.name} belongs to an unknown assembly",
                    token=record.assembly,
                    referenced_by=record.token,
                    stage=Stage.BUILD,
                )
            by_assembly[record.assembly].append(record)

        # First pass: nodes per assembly, in parallel
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="declgen-build") as pool:
            futures = [
                pool.submit(self._build_assembly, adapter, asm, by_assembly.get(asm.token, []))
                for asm in assemblies
            ]
            partials = [future.result() for future in futures]

        # Barrier passed: merge in assembly-token order
        for nodes in partials:
            for node in nodes:
                try:
                    graph.add_node(node)
                except ValueError as e:
                    raise MetadataInconsistency(
                        "type token defined more than once",
                        token=node.token,
                        stage=Stage.BUILD,
                    ) from e

        # Second pass: every referenced token must have a record
        for node in graph.nodes():
            self._resolve_tokens(graph, node)

        qualified = {node.token: self._qualify(graph, node) for node in graph.nodes()}
        for node in graph.nodes():
            node.full_name, node.namespace = qualified[node.token]

        # Third pass: vtable slots along override chains, bases first
        depths: dict[int, int] = {}
        for node in sorted(graph.nodes(), key=lambda n: (self._inheritance_depth(graph, n, depths), n.token)):
            self._check_overrides(graph, node)

        # Fourth pass: edges
        for node in graph.nodes():
            graph.link_node(node)

        logger.debug(
            "Built graph: %d assemblies, %d types, %d edges",
            len(assemblies),
            len(graph),
            len(graph.edges()),
        )
        return graph

    # -------------------------------------------------------------------------
    # First pass
    # -------------------------------------------------------------------------

    def _build_assembly(
        self,
        adapter: MetadataAdapter,
        assembly: AssemblyRecord,
        records: list[TypeDefinitionRecord],
    ) -> list[TypeNode]:
        """Create nodes for one assembly's type definitions."""
        nodes = [self._create_type_node(adapter, record) for record in sorted(records, key=lambda r: r.token)]
        logger.debug("Assembly %s: %d types", assembly.name, len(nodes))
        return nodes

    def _create_type_node(self, adapter: MetadataAdapter, record: TypeDefinitionRecord) -> TypeNode:
        generic_parameters = sorted(adapter.generic_parameters_of(record.token), key=lambda g: g.position)
        vtable_entries = adapter.vtable_of(record.token)

        vtable: list[int | None] = []
        if vtable_entries:
            vtable = [None] * (max(e.slot for e in vtable_entries) + 1)
            for entry in vtable_entries:
                vtable[entry.slot] = entry.method
        slot_of = {method: slot for slot, method in enumerate(vtable) if method is not None}

        methods = [
            MethodNode(
                token=m.token,
                name=m.name,
                return_type=m.return_type,
                parameters=[ParameterNode(p.name, p.type, p.mode) for p in m.parameters],
                generic_parameters=list(m.generic_parameters),
                vtable_slot=m.slot if m.slot is not None else slot_of.get(m.token),
                is_static=m.is_static,
                is_virtual=m.is_virtual or m.is_abstract,
                is_abstract=m.is_abstract,
                overrides=m.overrides,
            )
            for m in adapter.methods_of(record.token)
        ]

        return TypeNode(
            token=record.token,
            name=record.name,
            namespace=record.namespace,
            kind=record.kind,
            assembly=record.assembly,
            declaring_token=record.declaring_token,
            generic_parameters=[g.name for g in generic_parameters],
            parent=record.parent,
            interfaces=list(record.interfaces),
            fields=[
                FieldNode(
                    token=f.token,
                    name=f.name,
                    type=f.type,
                    offset=f.offset,
                    is_static=f.is_static,
                    is_literal=f.is_literal,
                    default_value=f.default_value,
                )
                for f in adapter.fields_of(record.token)
            ],
            methods=methods,
            properties=[
                PropertyNode(p.name, p.type, p.getter, p.setter) for p in adapter.properties_of(record.token)
            ],
            vtable=vtable,
            layout=record.layout,
            packing=record.packing,
            size=record.size,
            alignment=record.alignment,
            enum_underlying=record.enum_underlying,
        )

    # -------------------------------------------------------------------------
    # Second pass
    # -------------------------------------------------------------------------

    def _resolve_tokens(self, graph: TypeGraph, node: TypeNode) -> None:
        """Check every token the node mentions against the merged graph."""

        def require(token: int, what: str) -> None:
            if not graph.has(token):
                raise MetadataInconsistency(
                    f"{what} of {node.namespace}.{node.name} has no type record",
                    token=token,
                    referenced_by=node.token,
                    stage=Stage.BUILD,
                )

        if node.declaring_token is not None:
            require(node.declaring_token, "declaring type")

        for site, ref, method in node.reference_sites():
            for sub in ref.walk():
                if sub.kind in (RefKind.TYPE, RefKind.GENERIC_INST) and sub.token is not None:
                    require(sub.token, site)
                elif sub.kind == RefKind.METHOD_GENERIC_PARAM and (
                    method is None or sub.index >= len(method.generic_parameters)
                ):
                    raise MetadataInconsistency(
                        f"{site} of {node.namespace}.{node.name} uses method generic parameter "
                        f"{sub.index} outside a method declaring it",
                        token=method.token if method is not None else node.token,
                        referenced_by=node.token,
                        stage=Stage.BUILD,
                    )

        if node.parent is not None:
            base = graph.target_of(node.parent)
            if base is None:
                base = node.parent.innermost().token
            if base is not None and graph.node(base).kind == TypeKind.INTERFACE:
                raise MetadataInconsistency(
                    f"{node.namespace}.{node.name} inherits from an interface",
                    token=base,
                    referenced_by=node.token,
                    stage=Stage.BUILD,
                )

        for slot, method_token in enumerate(node.vtable):
            if method_token is not None and graph.method_owner(method_token) is None:
                raise MetadataInconsistency(
                    f"vtable slot {slot} of {node.namespace}.{node.name} names an unknown method",
                    token=method_token,
                    referenced_by=node.token,
                    stage=Stage.BUILD,
                )

        for method in node.methods:
            if method.overrides is not None and graph.method_owner(method.overrides) is None:
                raise MetadataInconsistency(
                    f"{method.name} overrides an unknown method",
                    token=method.overrides,
                    referenced_by=method.token,
                    stage=Stage.BUILD,
                )

    def _qualify(self, graph: TypeGraph, node: TypeNode) -> tuple[str, str]:
        """Full name (nested types joined by '/') and the outermost type's namespace."""
        parts = [node.name]
        namespace = node.namespace
        seen = {node.token}
        declaring = node.declaring_token
        while declaring is not None and declaring not in seen:
            seen.add(declaring)
            outer = graph.node(declaring)
            parts.append(outer.name)
            namespace = outer.namespace
            declaring = outer.declaring_token
        name = "/".join(reversed(parts))
        return (f"{namespace}.{name}" if namespace else name), namespace

    # -------------------------------------------------------------------------
    # Third pass
    # -------------------------------------------------------------------------

    def _inheritance_depth(self, graph: TypeGraph, node: TypeNode, depths: dict[int, int]) -> int:
        """Number of known bases above a node, memoized along the parent chain."""
        chain: list[int] = []
        on_chain: set[int] = set()
        current = graph.get(node.token)
        while current is not None and current.token not in depths and current.token not in on_chain:
            chain.append(current.token)
            on_chain.add(current.token)
            base = current.parent.innermost().token if current.parent is not None else None
            current = graph.get(base) if base is not None else None
        depth = depths[current.token] + 1 if current is not None and current.token in depths else 0
        for token in reversed(chain):
            depths[token] = depth
            depth += 1
        return depths[node.token]

    def _check_overrides(self, graph: TypeGraph, node: TypeNode) -> None:
        """Derived overrides keep the overridden method's vtable slot."""
        for method in node.methods:
            if method.overrides is None:
                continue
            owner = graph.method_owner(method.overrides)
            owner_node = graph.get(owner) if owner is not None else None
            base = owner_node.method_by_token(method.overrides) if owner_node is not None else None
            if owner_node is None or base is None:
                raise MetadataInconsistency(
                    f"{method.name} overrides an unknown method",
                    token=method.overrides,
                    referenced_by=method.token,
                    stage=Stage.BUILD,
                )
            # Interface slots are numbered per interface, not per class
            if base.vtable_slot is None or owner_node.kind == TypeKind.INTERFACE:
                continue
            if method.vtable_slot is None:
                method.vtable_slot = base.vtable_slot
            elif method.vtable_slot != base.vtable_slot:
                raise MetadataInconsistency(
                    f"{node.full_name}::{method.name} overrides slot {base.vtable_slot} "
                    f"but occupies slot {method.vtable_slot}",
                    token=method.token,
                    referenced_by=node.token,
                    stage=Stage.BUILD,
                    base_method=base.token,
                )
            if len(node.vtable) > method.vtable_slot and node.vtable[method.vtable_slot] not in (
                None,
                method.token,
            ):
                raise MetadataInconsistency(
                    f"vtable slot {method.vtable_slot} of {node.full_name} holds another method",
                    token=method.token,
                    referenced_by=node.token,
                    stage=Stage.BUILD,
                )
