"""declgen type graph.

The graph is an arena of TypeNodes addressed by integer tokens plus typed
edges between them. It is built from metadata records, extended with
generic instantiations, ordered for emission and laid out before it is
frozen and handed to the emitters.

Example:
    >>> from declgen.graph import DependencyResolver, GenericResolver, GraphBuilder, LayoutCalculator
    >>> graph = GraphBuilder(workers=4, pointer_size=8).build(adapter)
    >>> GenericResolver(graph).resolve(adapter.generic_instantiations())
    >>> order = DependencyResolver(graph).resolve()
    >>> LayoutCalculator(graph).apply(order)
    >>> graph.freeze()
"""

from declgen.graph.builder import GraphBuilder
from declgen.graph.generics import GenericResolver, InstantiationTable
from declgen.graph.layout import LayoutCalculator
from declgen.graph.models import (
    Edge,
    FieldNode,
    MethodNode,
    MethodSpecialization,
    ParameterNode,
    PropertyNode,
    TypeNode,
)
from declgen.graph.ordering import DependencyResolver, EmissionOrder, EntryKind, OrderEntry
from declgen.graph.references import InstantiationKey, TypeReference
from declgen.graph.schema import EdgeType, LayoutKind, ParameterMode, Primitive, RefKind, TypeKind
from declgen.graph.store import TypeGraph

__all__ = [
    # Construction
    "GraphBuilder",
    "GenericResolver",
    "InstantiationTable",
    "DependencyResolver",
    "LayoutCalculator",
    # Storage
    "TypeGraph",
    "TypeNode",
    "FieldNode",
    "MethodNode",
    "MethodSpecialization",
    "ParameterNode",
    "PropertyNode",
    "Edge",
    "TypeReference",
    "InstantiationKey",
    # Ordering
    "EmissionOrder",
    "EntryKind",
    "OrderEntry",
    # Schema
    "EdgeType",
    "LayoutKind",
    "ParameterMode",
    "Primitive",
    "RefKind",
    "TypeKind",
]
