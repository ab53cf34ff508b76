"""Tests for generic instantiation resolution."""

from __future__ import annotations

import threading

import pytest
from helpers import (
    BOX,
    BOX_OF_INT,
    CONVERT,
    HOLDER,
    I4,
    IDENTITY,
    PAIR,
    R4,
    STRING,
    UTIL,
    VECTOR3,
    add_generic_methods,
    field_record,
    method_record,
    ref,
    type_record,
)

from declgen.errors import MetadataInconsistency, Stage, UnresolvedGenericBinding
from declgen.graph import (
    EdgeType,
    GenericResolver,
    GraphBuilder,
    InstantiationKey,
    InstantiationTable,
    TypeKind,
    TypeNode,
    TypeReference,
)
from declgen.metadata import InMemoryAdapter, MethodInstantiationRecord


def resolve(adapter: InMemoryAdapter, **kwargs):
    graph = GraphBuilder().build(adapter)
    count = GenericResolver(graph, **kwargs).resolve(adapter.generic_instantiations())
    return graph, count


class TestGenericResolver:
    """Materialization of closed instantiations."""

    def test_same_instantiation_is_one_node(self, sample_adapter: InMemoryAdapter) -> None:
        graph, count = resolve(sample_adapter)
        assert count == 1
        key = InstantiationKey(BOX, (I4,))
        assert graph.instantiation_token(key) == BOX_OF_INT

        node = graph.node(BOX_OF_INT)
        assert node.is_instantiation
        assert node.definition_token == BOX
        assert node.full_name == "Game.Box`1<i4>"
        assert node.fields[0].type == I4

    def test_instantiation_tokens_follow_definitions(self, sample_adapter: InMemoryAdapter) -> None:
        graph, _ = resolve(sample_adapter)
        assert min(n.token for n in graph.instantiations()) > max(n.token for n in graph.definitions())

    def test_instantiation_edges(self, sample_adapter: InMemoryAdapter) -> None:
        graph, _ = resolve(sample_adapter)
        holder_targets = {e.target for e in graph.edges_from(HOLDER) if e.type == EdgeType.CONTAINS_FIELD_OF}
        assert holder_targets == {BOX_OF_INT, VECTOR3}

    def test_nested_arguments_materialize(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(
            type_record(20, "Box`1"),
            fields=[field_record(200, "value", TypeReference.var(0))],
            generic_parameters=["T"],
        )
        nested = TypeReference.generic(20, TypeReference.generic(20, I4))
        adapter.add_type(type_record(21, "User"), fields=[field_record(201, "nested", nested)])
        graph, count = resolve(adapter)
        assert count == 2
        outer = graph.node(graph.instantiation_token(InstantiationKey.from_reference(nested)))
        assert outer.fields[0].type == TypeReference.generic(20, I4)
        inner_token = graph.instantiation_token(InstantiationKey(20, (I4,)))
        assert inner_token is not None
        assert any(e.type == EdgeType.GENERIC_ARGUMENT_OF and e.source == inner_token for e in graph.edges())

    def test_declared_instantiations(self, sample_adapter: InMemoryAdapter) -> None:
        sample_adapter.add_instantiation(TypeReference.generic(BOX, STRING))
        graph, count = resolve(sample_adapter)
        assert count == 2
        assert graph.instantiation_token(InstantiationKey(BOX, (STRING,))) is not None

    def test_declared_open_instantiation_rejected(self, sample_adapter: InMemoryAdapter) -> None:
        sample_adapter.add_instantiation(TypeReference.generic(BOX, TypeReference.var(0)))
        with pytest.raises(UnresolvedGenericBinding):
            resolve(sample_adapter)

    def test_arity_mismatch(self, sample_adapter: InMemoryAdapter) -> None:
        sample_adapter.add_type(
            type_record(20, "Bad"),
            fields=[field_record(300, "pair", TypeReference.generic(BOX, I4, I4))],
        )
        with pytest.raises(UnresolvedGenericBinding) as exc_info:
            resolve(sample_adapter)
        assert exc_info.value.definition == BOX

    def test_unbound_parameter(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(type_record(20, "Plain"), fields=[field_record(300, "value", TypeReference.var(0))])
        with pytest.raises(UnresolvedGenericBinding) as exc_info:
            resolve(adapter)
        assert "unbound" in exc_info.value.message

    def test_method_parameter_bound_by_method(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(
            type_record(20, "Util"),
            methods=[method_record(400, "Identity", TypeReference.mvar(0), generic_parameters=("U",))],
        )
        _, count = resolve(adapter)
        assert count == 0

    def test_depth_limit(self, sample_adapter: InMemoryAdapter) -> None:
        deep = TypeReference.generic(BOX, TypeReference.generic(BOX, TypeReference.generic(BOX, I4)))
        sample_adapter.add_type(type_record(20, "Deep"), fields=[field_record(300, "deep", deep)])
        with pytest.raises(UnresolvedGenericBinding) as exc_info:
            resolve(sample_adapter, max_depth=2)
        assert "depth 3" in exc_info.value.message

    def test_self_referential_instantiation(self, adapter: InMemoryAdapter) -> None:
        # class Node<T> { T value; Node<T> next; }
        adapter.add_type(
            type_record(20, "Node`1"),
            fields=[
                field_record(200, "value", TypeReference.var(0)),
                field_record(201, "next", TypeReference.generic(20, TypeReference.var(0))),
            ],
            generic_parameters=["T"],
        )
        adapter.add_type(type_record(21, "List"), fields=[field_record(202, "head", TypeReference.generic(20, I4))])
        graph, count = resolve(adapter)
        assert count == 1
        node = graph.node(graph.instantiation_token(InstantiationKey(20, (I4,))))
        assert node.fields[1].type == TypeReference.generic(20, I4)

    def test_value_type_instantiation_fields_materialize(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(
            type_record(20, "Pair`1", kind=TypeKind.STRUCT),
            fields=[field_record(200, "a", TypeReference.var(0))],
            generic_parameters=["T"],
        )
        adapter.add_type(
            type_record(21, "Wrapper`1", kind=TypeKind.STRUCT),
            fields=[field_record(201, "inner", TypeReference.generic(20, TypeReference.var(0)))],
            generic_parameters=["T"],
        )
        adapter.add_type(
            type_record(22, "User"),
            fields=[field_record(202, "w", TypeReference.generic(21, ref(22)))],
        )
        graph, count = resolve(adapter)
        assert count == 2
        assert graph.instantiation_token(InstantiationKey(20, (ref(22),))) is not None


class TestMethodSpecializations:
    """Closed generic method instantiations listed by the image."""

    def specialize(self, adapter: InMemoryAdapter):
        graph = GraphBuilder().build(adapter)
        resolver = GenericResolver(graph)
        resolver.resolve(adapter.generic_instantiations())
        return graph, resolver.specialize_methods(adapter.generic_method_instantiations())

    def test_attached_to_declaring_definition(self, adapter: InMemoryAdapter) -> None:
        add_generic_methods(adapter)
        graph, count = self.specialize(adapter)
        assert count == 3
        identity = graph.node(UTIL).method_specializations
        assert [s.arguments for s in identity] == [[I4], [STRING]]
        assert identity[0].return_type == I4
        assert identity[0].parameter_types == [I4]
        assert identity[1].parameter_types == [STRING]

    def test_declaring_arguments_substituted(self, adapter: InMemoryAdapter) -> None:
        add_generic_methods(adapter)
        graph, _ = self.specialize(adapter)
        (convert,) = graph.node(PAIR).method_specializations
        assert convert.declaring_arguments == [I4]
        assert convert.return_type == R4
        assert convert.parameter_types == [I4]

    def test_tokens_are_fresh_and_ordered(self, adapter: InMemoryAdapter) -> None:
        add_generic_methods(adapter)
        graph, _ = self.specialize(adapter)
        tokens = [s.token for n in graph.definitions() for s in n.method_specializations]
        assert tokens == [22, 23, 24]
        assert all(not graph.has(t) for t in tokens)

    def test_unknown_method(self, adapter: InMemoryAdapter) -> None:
        adapter.add_method_instantiation(MethodInstantiationRecord(999, (I4,)))
        with pytest.raises(MetadataInconsistency) as exc_info:
            self.specialize(adapter)
        assert exc_info.value.token == 999
        assert exc_info.value.stage == Stage.GENERICS

    def test_method_is_not_generic(self, sample_adapter: InMemoryAdapter) -> None:
        sample_adapter.add_method_instantiation(MethodInstantiationRecord(201, (I4,)))
        with pytest.raises(UnresolvedGenericBinding, match="not a generic method"):
            self.specialize(sample_adapter)

    def test_argument_count_mismatch(self, adapter: InMemoryAdapter) -> None:
        add_generic_methods(adapter)
        adapter.add_method_instantiation(MethodInstantiationRecord(IDENTITY, (I4, I4)))
        with pytest.raises(UnresolvedGenericBinding) as exc_info:
            self.specialize(adapter)
        assert exc_info.value.definition == UTIL

    def test_missing_declaring_arguments(self, adapter: InMemoryAdapter) -> None:
        add_generic_methods(adapter)
        adapter.add_method_instantiation(MethodInstantiationRecord(CONVERT, (R4,)))
        with pytest.raises(UnresolvedGenericBinding, match="declaring argument"):
            self.specialize(adapter)

    def test_open_argument_rejected(self, adapter: InMemoryAdapter) -> None:
        add_generic_methods(adapter)
        adapter.add_method_instantiation(MethodInstantiationRecord(IDENTITY, (TypeReference.mvar(0),)))
        with pytest.raises(UnresolvedGenericBinding, match="not closed"):
            self.specialize(adapter)

    def test_argument_with_unknown_type(self, adapter: InMemoryAdapter) -> None:
        add_generic_methods(adapter)
        adapter.add_method_instantiation(MethodInstantiationRecord(IDENTITY, (ref(777),)))
        with pytest.raises(MetadataInconsistency) as exc_info:
            self.specialize(adapter)
        assert exc_info.value.token == 777


class TestInstantiationTable:
    """Concurrent get-or-insert."""

    def test_single_node_under_contention(self) -> None:
        table = InstantiationTable()
        key = InstantiationKey(1, (I4,))
        created: list[TypeNode] = []
        results: list[TypeNode] = []
        lock = threading.Lock()

        def factory() -> TypeNode:
            node = TypeNode(100, "Box`1", "Game", TypeKind.CLASS)
            created.append(node)
            return node

        def worker() -> None:
            node, _ = table.get_or_insert(key, factory)
            with lock:
                results.append(node)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(created) == 1
        assert all(r is created[0] for r in results)
        assert table.is_building(key)
        table.finish(key)
        assert not table.is_building(key)
        assert key in table
