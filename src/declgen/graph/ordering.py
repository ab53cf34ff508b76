"""Dependency resolver producing the emission order.

A type can be emitted once everything it depends on has been emitted. A
hard dependency needs the complete definition (base types, interfaces,
by-value fields, an instantiation's definition). A soft dependency only
needs a name, so a forward declaration satisfies it (by-reference fields,
an instantiation's arguments).

Strongly connected components are found with Tarjan's algorithm and
emitted in topological order, ties broken by smallest member token. A
component made only of soft edges is broken at its smallest-token member
that is the target of a soft edge inside the component: a forward
declaration is emitted for it, soft edges into it are dropped and the
rest of the component is ordered the same way. Hard cycles cannot be
broken and are reported with every member.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from declgen.errors import UnbreakableCycle
from declgen.graph.schema import EdgeType
from declgen.graph.store import TypeGraph

logger = logging.getLogger(__name__)

# token -> {dependency token: is_hard}
Dependencies = dict[int, dict[int, bool]]


class EntryKind(Enum):
    DEFINITION = "definition"
    FORWARD = "forward"


@dataclass(frozen=True)
class OrderEntry:
    """One step of the emission order."""

    kind: EntryKind
    token: int

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "token": self.token}


class EmissionOrder:
    """Ordered definitions and forward-declaration markers."""

    def __init__(self, entries: list[OrderEntry]) -> None:
        self.entries = entries
        self._positions = {e.token: i for i, e in enumerate(entries) if e.kind == EntryKind.DEFINITION}

    def __iter__(self) -> Iterator[OrderEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def definitions(self) -> list[int]:
        """Tokens in definition order."""
        return [e.token for e in self.entries if e.kind == EntryKind.DEFINITION]

    def forward_declarations(self) -> list[int]:
        """Tokens that receive a forward declaration marker."""
        return [e.token for e in self.entries if e.kind == EntryKind.FORWARD]

    def position(self, token: int) -> int:
        """Index of a token's definition entry."""
        return self._positions[token]

    def to_list(self) -> list[dict[str, Any]]:
        return [e.to_dict() for e in self.entries]


def strongly_connected(tokens: list[int], successors: Callable[[int], list[int]]) -> list[list[int]]:
    """Tarjan's algorithm, iterative.

    Args:
        tokens: Vertices, visited in the given order
        successors: Sorted successors of a vertex

    Returns:
        Components, each sorted by token
    """
    index: dict[int, int] = {}
    lowlink: dict[int, int] = {}
    on_stack: set[int] = set()
    stack: list[int] = []
    components: list[list[int]] = []
    counter = 0

    for root in tokens:
        if root in index:
            continue
        work: list[tuple[int, Iterator[int]]] = []
        index[root] = lowlink[root] = counter
        counter += 1
        stack.append(root)
        on_stack.add(root)
        work.append((root, iter(successors(root))))

        while work:
            vertex, children = work[-1]
            advanced = False
            for child in children:
                if child not in index:
                    index[child] = lowlink[child] = counter
                    counter += 1
                    stack.append(child)
                    on_stack.add(child)
                    work.append((child, iter(successors(child))))
                    advanced = True
                    break
                if child in on_stack:
                    lowlink[vertex] = min(lowlink[vertex], index[child])
            if advanced:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[vertex])
            if lowlink[vertex] == index[vertex]:
                component = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == vertex:
                        break
                components.append(sorted(component))

    return components


class DependencyResolver:
    """Linearizes the type graph into an EmissionOrder."""

    def __init__(self, graph: TypeGraph) -> None:
        self.graph = graph

    def dependencies(self) -> Dependencies:
        """Hard and soft dependencies of every node.

        Soft self-dependencies are dropped; a hard self-dependency is an
        unbreakable cycle.
        """
        deps: Dependencies = {node.token: {} for node in self.graph.nodes()}

        def depend(token: int, on: int, hard: bool) -> None:
            if token == on:
                if hard:
                    raise UnbreakableCycle([token], [self.graph.node(token).full_name])
                return
            deps[token][on] = deps[token].get(on, False) or hard

        for edge in self.graph.edges():
            if edge.type in (EdgeType.INHERITS, EdgeType.IMPLEMENTS):
                depend(edge.source, edge.target, True)
            elif edge.type == EdgeType.CONTAINS_FIELD_OF:
                depend(edge.source, edge.target, edge.by_value)
            elif edge.type == EdgeType.GENERIC_ARGUMENT_OF:
                depend(edge.target, edge.source, False)

        for node in self.graph.instantiations():
            depend(node.token, node.definition, True)

        return deps

    def resolve(self) -> EmissionOrder:
        """Compute the emission order.

        Raises:
            UnbreakableCycle: If types contain each other by value
        """
        deps = self.dependencies()
        entries = self._linearize(sorted(deps), deps)
        order = EmissionOrder(entries)
        logger.debug(
            "Emission order: %d definitions, %d forward declarations",
            len(order.definitions()),
            len(order.forward_declarations()),
        )
        return order

    def _linearize(self, tokens: list[int], deps: Dependencies) -> list[OrderEntry]:
        # Explicit stack of plans; broken components push a sub-plan
        entries: list[OrderEntry] = []
        plans: list[Iterator[OrderEntry | tuple[list[int], Dependencies]]] = [self._plan(tokens, deps)]
        while plans:
            item = next(plans[-1], None)
            if item is None:
                plans.pop()
            elif isinstance(item, OrderEntry):
                entries.append(item)
            else:
                plans.append(self._plan(*item))
        return entries

    def _plan(self, tokens: list[int], deps: Dependencies) -> Iterator[OrderEntry | tuple[list[int], Dependencies]]:
        for component in self._components_in_order(tokens, deps):
            if len(component) == 1:
                yield OrderEntry(EntryKind.DEFINITION, component[0])
                continue
            pivot, sub_deps = self._break(component, deps)
            yield OrderEntry(EntryKind.FORWARD, pivot)
            yield (component, sub_deps)

    def _components_in_order(self, tokens: list[int], deps: Dependencies) -> Iterator[list[int]]:
        """Components of the subgraph over tokens, dependencies first."""
        members = set(tokens)
        components = strongly_connected(tokens, lambda t: sorted(d for d in deps[t] if d in members))

        component_of: dict[int, int] = {}
        for i, component in enumerate(components):
            for token in component:
                component_of[token] = i

        remaining = [0] * len(components)
        dependents: list[set[int]] = [set() for _ in components]
        for i, component in enumerate(components):
            needs = {component_of[d] for t in component for d in deps[t] if d in members} - {i}
            remaining[i] = len(needs)
            for j in needs:
                dependents[j].add(i)

        ready = [(components[i][0], i) for i in range(len(components)) if remaining[i] == 0]
        heapq.heapify(ready)
        while ready:
            _, i = heapq.heappop(ready)
            yield components[i]
            for j in sorted(dependents[i]):
                remaining[j] -= 1
                if remaining[j] == 0:
                    heapq.heappush(ready, (components[j][0], j))

    def _break(self, component: list[int], deps: Dependencies) -> tuple[int, Dependencies]:
        """Pick the forward-declared member of a cyclic component.

        Returns:
            Tuple of (pivot token, dependencies restricted to the
            component with soft edges into the pivot removed)
        """
        members = set(component)
        hard_cycles = strongly_connected(
            component, lambda t: sorted(d for d, hard in deps[t].items() if hard and d in members)
        )
        for cycle in hard_cycles:
            if len(cycle) > 1:
                raise UnbreakableCycle(cycle, [self.graph.node(t).full_name for t in cycle])

        soft_targets = sorted(
            {d for t in component for d, hard in deps[t].items() if not hard and d in members}
        )
        pivot = soft_targets[0]
        sub_deps: Dependencies = {
            t: {d: hard for d, hard in deps[t].items() if d in members and (hard or d != pivot)}
            for t in component
        }
        logger.debug(
            "Breaking cycle of %d types at %s", len(component), self.graph.node(pivot).full_name
        )
        return pivot, sub_deps


__all__ = [
    "EntryKind",
    "OrderEntry",
    "EmissionOrder",
    "DependencyResolver",
    "strongly_connected",
]
