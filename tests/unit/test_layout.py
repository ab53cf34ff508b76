"""Tests for field offset and size computation."""

from __future__ import annotations

import pytest
from helpers import (
    BOX,
    BOX_OF_INT,
    COLOR,
    ENTITY,
    HOLDER,
    I4,
    PLAYER,
    R4,
    VECTOR3,
    field_record,
    prepare_graph,
    ref,
    type_record,
)

from declgen.errors import MetadataInconsistency, Stage
from declgen.graph import LayoutKind, Primitive, TypeKind, TypeReference
from declgen.graph.layout import align_up
from declgen.metadata import InMemoryAdapter

U1 = TypeReference.of_primitive(Primitive.U1)


def offsets(graph, token: int) -> dict[str, int | None]:
    return {f.name: f.offset for f in graph.node(token).instance_fields()}


class TestSampleLayout:
    """Offsets of the sample program at pointer size 8."""

    def test_entity(self, sample_graph) -> None:
        graph, _ = sample_graph
        assert offsets(graph, ENTITY) == {"id": 16, "name": 24}
        assert graph.node(ENTITY).size == 32

    def test_player_starts_after_base(self, sample_graph) -> None:
        graph, _ = sample_graph
        assert offsets(graph, PLAYER) == {"health": 32, "target": 40}
        assert graph.node(PLAYER).size == 48

    def test_value_type(self, sample_graph) -> None:
        graph, _ = sample_graph
        vector = graph.node(VECTOR3)
        assert offsets(graph, VECTOR3) == {"x": 0, "y": 4, "z": 8}
        assert (vector.size, vector.alignment) == (12, 4)

    def test_instantiation(self, sample_graph) -> None:
        graph, _ = sample_graph
        assert offsets(graph, BOX_OF_INT) == {"value": 16}
        assert graph.node(BOX_OF_INT).size == 24
        # Open definitions have no layout
        assert graph.node(BOX).size is None

    def test_embedded_value_type(self, sample_graph) -> None:
        graph, _ = sample_graph
        assert offsets(graph, HOLDER) == {"box": 16, "other": 24, "position": 32}
        assert graph.node(HOLDER).size == 48

    def test_enum(self, sample_graph) -> None:
        graph, _ = sample_graph
        color = graph.node(COLOR)
        assert (color.size, color.alignment) == (4, 4)
        assert color.fields[0].offset == 0


class TestLayoutRules:
    def test_pointer_size_four(self, sample_adapter: InMemoryAdapter) -> None:
        graph, _ = prepare_graph(sample_adapter, pointer_size=4)
        assert offsets(graph, ENTITY) == {"id": 8, "name": 12}
        assert graph.node(ENTITY).size == 16

    def test_image_offsets_are_kept(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(
            type_record(20, "Padded", kind=TypeKind.STRUCT, size=16),
            fields=[field_record(200, "a", I4, offset=0), field_record(201, "b", I4, offset=8)],
        )
        graph, _ = prepare_graph(adapter)
        assert offsets(graph, 20) == {"a": 0, "b": 8}
        assert graph.node(20).size == 16

    def test_explicit_overlap(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(
            type_record(20, "Bits", kind=TypeKind.STRUCT, layout=LayoutKind.EXPLICIT),
            fields=[field_record(200, "i", I4, offset=0), field_record(201, "f", R4, offset=0)],
        )
        graph, _ = prepare_graph(adapter)
        assert offsets(graph, 20) == {"i": 0, "f": 0}
        assert graph.node(20).size == 4

    def test_explicit_without_offset_raises(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(
            type_record(20, "Bits", kind=TypeKind.STRUCT, layout=LayoutKind.EXPLICIT),
            fields=[field_record(200, "i", I4)],
        )
        with pytest.raises(MetadataInconsistency) as exc_info:
            prepare_graph(adapter)
        assert exc_info.value.token == 200
        assert exc_info.value.stage == Stage.LAYOUT

    def test_sequential_out_of_order_raises(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(
            type_record(20, "Seq", kind=TypeKind.STRUCT, layout=LayoutKind.SEQUENTIAL),
            fields=[field_record(200, "a", I4, offset=4), field_record(201, "b", I4, offset=0)],
        )
        with pytest.raises(MetadataInconsistency) as exc_info:
            prepare_graph(adapter)
        assert exc_info.value.token == 201

    def test_field_overlapping_base_raises(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(type_record(20, "Base"), fields=[field_record(200, "a", I4)])
        adapter.add_type(
            type_record(21, "Derived", parent=ref(20)),
            fields=[field_record(201, "b", I4, offset=8)],
        )
        with pytest.raises(MetadataInconsistency):
            prepare_graph(adapter)

    def test_packing(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(
            type_record(20, "Packed", kind=TypeKind.STRUCT, layout=LayoutKind.SEQUENTIAL, packing=1),
            fields=[field_record(200, "flag", U1), field_record(201, "value", I4)],
        )
        graph, _ = prepare_graph(adapter)
        assert offsets(graph, 20) == {"flag": 0, "value": 1}
        assert graph.node(20).size == 5

    def test_empty_struct_has_size_one(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(type_record(20, "Empty", kind=TypeKind.STRUCT))
        graph, _ = prepare_graph(adapter)
        assert graph.node(20).size == 1

    def test_static_fields_have_no_offset(self, sample_graph) -> None:
        graph, _ = sample_graph
        assert all(f.offset is None for f in graph.node(COLOR).static_fields())

    def test_align_up(self) -> None:
        assert align_up(13, 8) == 16
        assert align_up(16, 8) == 16
        assert align_up(5, 1) == 5
