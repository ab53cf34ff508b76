"""In-memory type graph.

TypeGraph is an arena of TypeNodes addressed by token plus a set of typed
edges. It is built once per run, extended by the generic resolver, and
frozen before naming and emission.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any

from declgen.graph.models import Edge, TypeNode
from declgen.graph.references import InstantiationKey, TypeReference
from declgen.graph.schema import EdgeType, RefKind

logger = logging.getLogger(__name__)


class TypeGraph:
    """Arena of type nodes and the edges between them."""

    def __init__(self, pointer_size: int = 8) -> None:
        self.pointer_size = pointer_size
        self.assemblies: dict[int, str] = {}
        self._nodes: dict[int, TypeNode] = {}
        self._edges: dict[tuple[int, int, EdgeType], Edge] = {}
        # source token -> edges leaving it, keyed like _edges
        self._outgoing: dict[int, dict[tuple[int, int, EdgeType], Edge]] = defaultdict(dict)
        self._instantiations: dict[InstantiationKey, int] = {}
        self._method_owners: dict[int, int] = {}
        self._frozen = False

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    def add_node(self, node: TypeNode) -> None:
        """Add a node. Tokens must be unique.

        Raises:
            ValueError: If the token is already present
        """
        self._check_mutable()
        if node.token in self._nodes:
            raise ValueError(f"duplicate type token {node.token}")
        self._nodes[node.token] = node
        if not node.is_instantiation:
            for method in node.methods:
                self._method_owners.setdefault(method.token, node.token)

    def node(self, token: int) -> TypeNode:
        """Get a node by token.

        Raises:
            KeyError: If no node has the token
        """
        return self._nodes[token]

    def get(self, token: int) -> TypeNode | None:
        return self._nodes.get(token)

    def has(self, token: int) -> bool:
        return token in self._nodes

    def nodes(self) -> list[TypeNode]:
        """All nodes sorted by token."""
        return [self._nodes[t] for t in sorted(self._nodes)]

    def definitions(self) -> list[TypeNode]:
        """Type definition nodes sorted by token."""
        return [n for n in self.nodes() if not n.is_instantiation]

    def instantiations(self) -> list[TypeNode]:
        """Generic instantiation nodes sorted by token."""
        return [n for n in self.nodes() if n.is_instantiation]

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, token: object) -> bool:
        return token in self._nodes

    def next_token(self) -> int:
        """A token greater than any present token."""
        return max(self._nodes, default=0) + 1

    def method_owner(self, method_token: int) -> int | None:
        """Token of the type definition declaring a method."""
        return self._method_owners.get(method_token)

    # -------------------------------------------------------------------------
    # Instantiations
    # -------------------------------------------------------------------------

    def register_instantiation(self, key: InstantiationKey, token: int) -> None:
        self._check_mutable()
        self._instantiations[key] = token

    def instantiation_token(self, key: InstantiationKey) -> int | None:
        return self._instantiations.get(key)

    def instantiation_keys(self) -> dict[InstantiationKey, int]:
        return dict(self._instantiations)

    def target_of(self, ref: TypeReference) -> int | None:
        """Token of the node a reference ultimately names.

        Pointer, byref and array wrappers are looked through. Open
        instantiations name their definition; closed ones name their
        instantiation node, or None if it has not been materialized.
        """
        ref = ref.innermost()
        if ref.kind == RefKind.TYPE:
            return ref.token
        if ref.kind == RefKind.GENERIC_INST:
            if ref.is_closed:
                return self._instantiations.get(InstantiationKey.from_reference(ref))
            return ref.token
        return None

    def is_by_value(self, ref: TypeReference) -> bool:
        """True if a field of this type embeds the target's storage."""
        if ref.kind not in (RefKind.TYPE, RefKind.GENERIC_INST):
            return False
        target = self.target_of(ref)
        if target is None:
            token = ref.token
            return token in self._nodes and self._nodes[token].is_value_type
        return target in self._nodes and self._nodes[target].is_value_type

    def display_name(self, ref: TypeReference) -> str:
        """Structural name of a reference, e.g. System.Collections.Generic.List`1<i4>."""
        return ref.display(lambda token: self._nodes[token].full_name if token in self._nodes else f"<{token}>")

    # -------------------------------------------------------------------------
    # Edges
    # -------------------------------------------------------------------------

    def add_edge(self, edge: Edge) -> None:
        """Add an edge; a duplicate merges its by_value flag."""
        self._check_mutable()
        existing = self._edges.get(edge.key)
        if existing is not None and (existing.by_value or not edge.by_value):
            return
        self._edges[edge.key] = edge
        self._outgoing[edge.source][edge.key] = edge

    def edges(self, edge_type: EdgeType | None = None) -> list[Edge]:
        """All edges sorted by (source, target, type)."""
        result = [e for e in self._edges.values() if edge_type is None or e.type == edge_type]
        return sorted(result, key=lambda e: (e.source, e.target, e.type.value))

    def edges_from(self, token: int) -> list[Edge]:
        """Edges leaving a node sorted by (target, type)."""
        outgoing = self._outgoing.get(token, {})
        return sorted(outgoing.values(), key=lambda e: (e.target, e.type.value))

    def link_node(self, node: TypeNode) -> None:
        """Add the edges implied by a node's references.

        References to closed instantiations that are not materialized yet
        are skipped; linking again later adds them.
        """

        def link(target: int | None, edge_type: EdgeType, by_value: bool = False) -> None:
            if target is not None and target in self._nodes:
                self.add_edge(Edge(node.token, target, edge_type, by_value))

        if node.parent is not None:
            link(self.target_of(node.parent), EdgeType.INHERITS)
        for iface in node.interfaces:
            link(self.target_of(iface), EdgeType.IMPLEMENTS)
        for f in node.fields:
            by_value = f.is_instance and self.is_by_value(f.type)
            link(self.target_of(f.type), EdgeType.CONTAINS_FIELD_OF, by_value)
        if node.declaring_token is not None:
            link(node.declaring_token, EdgeType.NESTED_IN)
        for arg in node.generic_arguments:
            source = self.target_of(arg)
            if source is not None and source in self._nodes:
                self.add_edge(Edge(source, node.token, EdgeType.GENERIC_ARGUMENT_OF))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def freeze(self) -> None:
        """Make the graph read-only for naming and emission."""
        self._frozen = True
        logger.debug("Graph frozen with %d nodes and %d edges", len(self._nodes), len(self._edges))

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("type graph is frozen")

    def layout_start(self, node: TypeNode) -> int:
        """First byte a type's own instance fields may occupy."""
        if node.is_value_type:
            return 0
        if node.parent is None:
            return 2 * self.pointer_size
        base = self.target_of(node.parent)
        base_node = self._nodes.get(base) if base is not None else None
        if base_node is None or base_node.size is None:
            return 2 * self.pointer_size
        return base_node.size

    def stats(self) -> dict[str, Any]:
        """Node and edge counts for logging and summaries."""
        edge_counts: dict[str, int] = {}
        for edge in self._edges.values():
            edge_counts[edge.type.value] = edge_counts.get(edge.type.value, 0) + 1
        return {
            "assemblies": len(self.assemblies),
            "types": len(self.definitions()),
            "instantiations": len(self._instantiations),
            "edges": len(self._edges),
            "edges_by_type": edge_counts,
        }
