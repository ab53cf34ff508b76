"""Generic instantiation resolver.

Every closed generic instantiation referenced from the metadata becomes
one TypeNode, keyed by its definition token and argument references.
Instantiation members are the definition's members with class generic
parameters substituted by the arguments.

Materialization is transitive only through the parent, the interfaces and
the by-value fields of an instantiation, since those are what its layout
needs. Instantiations mentioned only by reference inside synthesized
members stay deferred and are named structurally by the emitters.

Generic method instantiations the image declares are attached to the
definition owning the method as MethodSpecialization entries.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import replace
from typing import TYPE_CHECKING

from declgen.errors import MetadataInconsistency, Stage, UnresolvedGenericBinding
from declgen.graph.models import (
    FieldNode,
    MethodNode,
    MethodSpecialization,
    ParameterNode,
    PropertyNode,
    TypeNode,
)
from declgen.graph.references import InstantiationKey, TypeReference
from declgen.graph.schema import RefKind
from declgen.graph.store import TypeGraph

if TYPE_CHECKING:
    from declgen.metadata.records import MethodInstantiationRecord

logger = logging.getLogger(__name__)

# (method token, declaring type arguments, method arguments)
SpecializationKey = tuple[int, tuple[TypeReference, ...], tuple[TypeReference, ...]]


class InstantiationTable:
    """Memo of instantiation nodes keyed by InstantiationKey.

    Reads do not take the lock. The first insertion for a key happens
    under the lock, so concurrent requesters for the same key all get the
    single node created by whichever came first.
    """

    def __init__(self) -> None:
        self._nodes: dict[InstantiationKey, TypeNode] = {}
        self._building: set[InstantiationKey] = set()
        self._lock = threading.Lock()

    def get(self, key: InstantiationKey) -> TypeNode | None:
        return self._nodes.get(key)

    def get_or_insert(
        self, key: InstantiationKey, factory: Callable[[], TypeNode]
    ) -> tuple[TypeNode, bool]:
        """Return the node for key, creating it with factory if absent.

        Returns:
            Tuple of (node, created). A node that is still being populated
            is returned as-is to re-entrant requesters.
        """
        node = self._nodes.get(key)
        if node is not None:
            return node, False
        with self._lock:
            node = self._nodes.get(key)
            if node is not None:
                return node, False
            node = factory()
            self._nodes[key] = node
            self._building.add(key)
            return node, True

    def finish(self, key: InstantiationKey) -> None:
        with self._lock:
            self._building.discard(key)

    def is_building(self, key: InstantiationKey) -> bool:
        return key in self._building

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, key: object) -> bool:
        return key in self._nodes


class GenericResolver:
    """Materializes closed generic instantiations into the graph."""

    def __init__(self, graph: TypeGraph, max_depth: int = 16) -> None:
        """Initialize resolver.

        Args:
            graph: Graph produced by GraphBuilder
            max_depth: Deepest generic nesting allowed for one instantiation
        """
        self.graph = graph
        self.max_depth = max_depth
        self.table = InstantiationTable()
        self._next_token = graph.next_token()

    def resolve(self, declared: Iterable[TypeReference] = ()) -> int:
        """Materialize every instantiation the graph references.

        Args:
            declared: Extra closed instantiations the image declares

        Returns:
            Number of instantiation nodes created

        Raises:
            UnresolvedGenericBinding: On arity mismatch, unbound generic
                parameters or excessive nesting
        """
        definitions = self.graph.definitions()

        for node in definitions:
            for site, ref, method in node.reference_sites():
                self._check_bindings(node, site, ref, method)

        for node in definitions:
            for _site, ref, _method in node.reference_sites():
                self._materialize_closed(ref)

        for ref in declared:
            if ref.kind != RefKind.GENERIC_INST or not ref.is_closed:
                raise UnresolvedGenericBinding(
                    f"declared instantiation {self.graph.display_name(ref)} is not closed",
                    definition=ref.token,
                )
            self._check_bindings(None, "declared", ref, None)
            self._materialize_closed(ref)

        for node in self.graph.nodes():
            self.graph.link_node(node)
        self._verify()

        logger.debug("Materialized %d generic instantiations", len(self.table))
        return len(self.table)

    def specialize_methods(self, records: Iterable[MethodInstantiationRecord]) -> int:
        """Attach closed generic method instantiations to their definitions.

        Runs after resolve(). Each distinct (method, declaring arguments,
        arguments) combination becomes one MethodSpecialization with its
        signature substituted and a fresh token.

        Returns:
            Number of specializations attached

        Raises:
            MetadataInconsistency: If a record names an unknown method or type
            UnresolvedGenericBinding: On arity mismatch or open arguments
        """
        pending: dict[SpecializationKey, TypeNode] = {}
        for record in records:
            owner_token = self.graph.method_owner(record.method)
            owner = self.graph.get(owner_token) if owner_token is not None else None
            if owner is None:
                raise MetadataInconsistency(
                    "generic method instantiation of an unknown method",
                    token=record.method,
                    stage=Stage.GENERICS,
                )
            self._check_method_arguments(owner, record)
            pending.setdefault((record.method, record.declaring_arguments, record.arguments), owner)

        def order(item: tuple[SpecializationKey, TypeNode]) -> tuple:
            (method, declaring, arguments), owner = item
            return (
                owner.token,
                method,
                [self.graph.display_name(a) for a in declaring],
                [self.graph.display_name(a) for a in arguments],
            )

        for (method_token, declaring, arguments), owner in sorted(pending.items(), key=order):
            index = next(i for i, m in enumerate(owner.methods) if m.token == method_token)
            method = owner.methods[index]
            try:
                return_type = method.return_type.substitute(declaring, arguments)
                parameter_types = [p.type.substitute(declaring, arguments) for p in method.parameters]
            except IndexError as e:
                raise UnresolvedGenericBinding(
                    f"generic parameter {e.args[0]} of {owner.full_name}::{method.name} has no argument",
                    definition=owner.token,
                ) from e
            owner.method_specializations.append(
                MethodSpecialization(
                    token=self._next_token,
                    method_index=index,
                    arguments=list(arguments),
                    return_type=return_type,
                    parameter_types=parameter_types,
                    declaring_arguments=list(declaring),
                )
            )
            self._next_token += 1

        logger.debug("Attached %d generic method specializations", len(pending))
        return len(pending)

    def instantiate(self, ref: TypeReference) -> TypeNode:
        """Get or create the instantiation node for a closed reference."""
        key = InstantiationKey.from_reference(ref)
        existing = self.table.get(key)
        if existing is not None:
            return existing

        depth = ref.depth()
        if depth > self.max_depth:
            raise UnresolvedGenericBinding(
                f"instantiation nesting depth {depth} exceeds {self.max_depth}: "
                f"{self.graph.display_name(ref)}",
                definition=key.definition,
            )

        definition = self.graph.get(key.definition)
        if definition is None:
            raise MetadataInconsistency(
                "generic instantiation of an unknown definition",
                token=key.definition,
                stage=Stage.GENERICS,
            )
        self._check_arity(definition, ref)

        node, created = self.table.get_or_insert(key, lambda: self._create_node(definition, key, ref))
        if not created:
            return node
        try:
            self._populate(node, definition, key)
        finally:
            self.table.finish(key)
        return node

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    def _create_node(self, definition: TypeNode, key: InstantiationKey, ref: TypeReference) -> TypeNode:
        """Allocate and register a bare instantiation node. Runs under the table lock."""
        token = self._next_token
        self._next_token += 1
        node = TypeNode(
            token=token,
            name=definition.name,
            namespace=definition.namespace,
            kind=definition.kind,
            assembly=definition.assembly,
            full_name=self.graph.display_name(ref),
            declaring_token=definition.declaring_token,
            generic_parameters=list(definition.generic_parameters),
            layout=definition.layout,
            packing=definition.packing,
            enum_underlying=definition.enum_underlying,
            definition_token=definition.token,
            generic_arguments=list(key.arguments),
        )
        self.graph.add_node(node)
        self.graph.register_instantiation(key, token)
        return node

    def _populate(self, node: TypeNode, definition: TypeNode, key: InstantiationKey) -> None:
        """Copy the definition's members with generic parameters substituted."""

        def subst(ref: TypeReference) -> TypeReference:
            try:
                return ref.substitute(key.arguments)
            except IndexError as e:
                raise UnresolvedGenericBinding(
                    f"generic parameter !{e.args[0]} of {definition.full_name} has no argument",
                    definition=definition.token,
                ) from e

        node.parent = subst(definition.parent) if definition.parent else None
        node.interfaces = [subst(i) for i in definition.interfaces]
        node.fields = [
            FieldNode(
                token=f.token,
                name=f.name,
                type=subst(f.type),
                is_static=f.is_static,
                is_literal=f.is_literal,
                default_value=f.default_value,
            )
            for f in definition.fields
        ]
        node.methods = [
            replace(
                m,
                return_type=subst(m.return_type),
                parameters=[ParameterNode(p.name, subst(p.type), p.mode) for p in m.parameters],
                generic_parameters=list(m.generic_parameters),
            )
            for m in definition.methods
        ]
        node.properties = [PropertyNode(p.name, subst(p.type), p.getter, p.setter) for p in definition.properties]
        node.vtable = list(definition.vtable)

        for arg in key.arguments:
            self._materialize_closed(arg)
        for ref in [node.parent, *node.interfaces]:
            if ref is not None:
                self._materialize_closed(ref)
        for f in node.instance_fields():
            if self._is_by_value_instantiation(f.type):
                self.instantiate(f.type)

    def _materialize_closed(self, ref: TypeReference) -> None:
        """Instantiate every closed generic instantiation inside ref."""
        for sub in ref.walk():
            if sub.kind == RefKind.GENERIC_INST and sub.is_closed:
                self.instantiate(sub)

    def _is_by_value_instantiation(self, ref: TypeReference) -> bool:
        if ref.kind != RefKind.GENERIC_INST or not ref.is_closed:
            return False
        definition = self.graph.get(ref.token) if ref.token is not None else None
        return definition is not None and definition.is_value_type

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    def _check_arity(self, definition: TypeNode, ref: TypeReference) -> None:
        expected = len(definition.generic_parameters)
        if definition.is_instantiation or expected == 0:
            raise UnresolvedGenericBinding(
                f"{definition.full_name} is not a generic type definition",
                definition=definition.token,
            )
        if len(ref.arguments) != expected:
            raise UnresolvedGenericBinding(
                f"{definition.full_name} expects {expected} generic argument(s), got {len(ref.arguments)}",
                definition=definition.token,
            )

    def _check_method_arguments(self, owner: TypeNode, record: MethodInstantiationRecord) -> None:
        method = owner.method_by_token(record.method)
        if method is None:
            raise MetadataInconsistency(
                "generic method instantiation of an unknown method",
                token=record.method,
                stage=Stage.GENERICS,
            )
        label = f"{owner.full_name}::{method.name}"
        expected = len(method.generic_parameters)
        if expected == 0:
            raise UnresolvedGenericBinding(f"{label} is not a generic method", definition=owner.token)
        if len(record.arguments) != expected:
            raise UnresolvedGenericBinding(
                f"{label} expects {expected} generic argument(s), got {len(record.arguments)}",
                definition=owner.token,
            )
        declaring_expected = len(owner.generic_parameters)
        if len(record.declaring_arguments) != declaring_expected:
            raise UnresolvedGenericBinding(
                f"{owner.full_name} expects {declaring_expected} declaring argument(s) "
                f"for {method.name}, got {len(record.declaring_arguments)}",
                definition=owner.token,
            )
        for ref in (*record.declaring_arguments, *record.arguments):
            if not ref.is_closed:
                raise UnresolvedGenericBinding(
                    f"argument {self.graph.display_name(ref)} of {label} is not closed",
                    definition=owner.token,
                )
            for sub in ref.walk():
                if sub.kind in (RefKind.TYPE, RefKind.GENERIC_INST) and not self.graph.has(sub.target):
                    raise MetadataInconsistency(
                        f"argument of {label} has no type record",
                        token=sub.target,
                        referenced_by=record.method,
                        stage=Stage.GENERICS,
                    )
                if sub.kind == RefKind.GENERIC_INST:
                    self._check_arity(self.graph.node(sub.target), sub)

    def _check_bindings(
        self,
        node: TypeNode | None,
        site: str,
        ref: TypeReference,
        method: MethodNode | None,
    ) -> None:
        """Every generic parameter in ref must be bound where it appears."""
        owner = node.full_name if node is not None else "declared instantiation"
        for sub in ref.walk():
            if sub.kind == RefKind.GENERIC_PARAM:
                arity = len(node.generic_parameters) if node is not None else 0
                if sub.position is None or sub.position >= arity:
                    raise UnresolvedGenericBinding(
                        f"generic parameter !{sub.position} in {site} of {owner} is unbound",
                        definition=node.token if node is not None else None,
                    )
            elif sub.kind == RefKind.METHOD_GENERIC_PARAM:
                arity = len(method.generic_parameters) if method is not None else 0
                if sub.position is None or sub.position >= arity:
                    raise UnresolvedGenericBinding(
                        f"method generic parameter !!{sub.position} in {site} of {owner} is unbound",
                        definition=node.token if node is not None else None,
                    )
            elif sub.kind == RefKind.GENERIC_INST and sub.token is not None:
                definition = self.graph.get(sub.token)
                if definition is not None:
                    self._check_arity(definition, sub)

    def _verify(self) -> None:
        """Every reference a node needs for its layout resolves to a node."""
        for node in self.graph.nodes():
            required: list[TypeReference] = []
            if node.is_instantiation:
                required.extend(r for r in [node.parent, *node.interfaces] if r is not None)
                required.extend(f.type for f in node.instance_fields() if self._is_by_value_instantiation(f.type))
            else:
                required.extend(ref for _site, ref, _method in node.reference_sites())
            for ref in required:
                for sub in ref.walk():
                    if sub.kind != RefKind.GENERIC_INST or not sub.is_closed:
                        continue
                    if self.graph.instantiation_token(InstantiationKey.from_reference(sub)) is None:
                        raise UnresolvedGenericBinding(
                            f"{self.graph.display_name(sub)} referenced by {node.full_name} was never materialized",
                            definition=sub.token,
                        )
