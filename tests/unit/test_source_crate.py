"""Tests for the Rust crate emitter."""

from __future__ import annotations

import zlib

import pytest
from helpers import (
    I4,
    add_generic_methods,
    build_sample_adapter,
    field_record,
    method_record,
    prepare_graph,
    ref,
    type_record,
)

from declgen.emit import EmitOptions, EmitResult, SourceCrateEmitter, get_default_manager
from declgen.graph import LayoutKind, Primitive, TypeKind, TypeReference
from declgen.metadata import InMemoryAdapter, MethodInstantiationRecord, ParameterRecord


def emit(graph, order, **options) -> EmitResult:
    extra = options.pop("extra", {})
    return get_default_manager().emit(graph, order, "source-crate", EmitOptions(extra=extra, **options))


@pytest.fixture
def crate(sample_graph) -> dict[str, str]:
    graph, order = sample_graph
    return emit(graph, order).artifacts


class TestSourceCrateEmitter:
    """Crate layout and content for the sample program."""

    def test_properties(self) -> None:
        emitter = SourceCrateEmitter()
        assert emitter.target_name == "source-crate"
        assert emitter.naming_rules.target == "source-crate"

    def test_artifact_paths(self, crate: dict[str, str]) -> None:
        assert set(crate) == {"Cargo.toml", "src/lib.rs", "src/runtime.rs", "src/Game/mod.rs"}

    def test_manifest(self, crate: dict[str, str]) -> None:
        manifest = crate["Cargo.toml"]
        assert 'name = "declgen_types"' in manifest
        assert 'edition = "2021"' in manifest

    def test_lib(self, crate: dict[str, str]) -> None:
        lib = crate["src/lib.rs"]
        assert lib.startswith("//! Generated by declgen.")
        assert "#![allow(non_snake_case" in lib
        assert "pub mod runtime;" in lib
        assert "pub mod Game;" in lib

    def test_derived_struct(self, crate: dict[str, str]) -> None:
        module = crate["src/Game/mod.rs"]
        assert "#[repr(C, packed)]\npub struct Player {" in module
        assert "    pub __parent: crate::Game::Entity," in module
        assert "    pub health: f32," in module
        assert "    pub _padding_0x24: [u8; 0x4]," in module
        assert "    pub target: *mut crate::Game::Entity," in module
        assert "impl crate::Game::IDamageable for Player {}" in module

    def test_root_struct_embeds_object_header(self, crate: dict[str, str]) -> None:
        module = crate["src/Game/mod.rs"]
        assert "    pub __parent: crate::runtime::Il2CppObject," in module
        assert "    pub name: *mut crate::runtime::Il2CppString," in module

    def test_value_type_has_no_parent(self, crate: dict[str, str]) -> None:
        module = crate["src/Game/mod.rs"]
        start = module.index("pub struct Vector3 {")
        body = module[start : module.index("}", start)]
        assert "__parent" not in body
        assert "pub x: f32," in body

    def test_extern_methods(self, crate: dict[str, str]) -> None:
        module = crate["src/Game/mod.rs"]
        assert 'extern "C" {' in module
        assert '    #[link_name = "Game.Player::GetId@0xc9"]' in module
        assert "    pub fn Player__GetId(__this: *mut Player) -> i32;" in module
        assert "    pub fn Player__TakeDamage(__this: *mut Player, amount: i32);" in module
        assert "    pub fn IDamageable__TakeDamage(__this: *mut crate::runtime::Il2CppObject, amount: i32);" in module

    def test_generic_definition(self, crate: dict[str, str]) -> None:
        module = crate["src/Game/mod.rs"]
        assert "#[repr(C)]\npub struct Box_1<T> {" in module
        assert "    pub value: T," in module
        assert "    pub __phantom: ::core::marker::PhantomData<(T,)>," in module

    def test_instantiation_alias(self, crate: dict[str, str]) -> None:
        module = crate["src/Game/mod.rs"]
        assert "pub type Box_1_i4 = crate::Game::Box_1<i32>;" in module
        assert "    pub _dg_box: *mut crate::Game::Box_1<i32>," in module
        assert "    pub position: crate::Game::Vector3," in module

    def test_enum(self, crate: dict[str, str]) -> None:
        module = crate["src/Game/mod.rs"]
        assert "#[repr(transparent)]" in module
        assert "pub struct Color(pub i32);" in module
        assert "    pub const Red: Color = Color(0);" in module
        assert "    pub const Green: Color = Color(1);" in module

    def test_trait(self, crate: dict[str, str]) -> None:
        assert "pub trait IDamageable {}" in crate["src/Game/mod.rs"]

    def test_layout_asserts(self, crate: dict[str, str]) -> None:
        module = crate["src/Game/mod.rs"]
        assert "const _: () = assert!(::core::mem::offset_of!(Player, health) == 0x20);" in module
        assert "const _: () = assert!(::core::mem::size_of::<Player>() == 0x30);" in module

    def test_edition_2024_uses_unsafe_extern(self, sample_graph) -> None:
        graph, order = sample_graph
        artifacts = emit(graph, order, extra={"edition": "2024", "crate_name": "game_types"}).artifacts
        assert 'edition = "2024"' in artifacts["Cargo.toml"]
        assert 'name = "game_types"' in artifacts["Cargo.toml"]
        assert 'unsafe extern "C" {' in artifacts["src/Game/mod.rs"]

    def test_options_disable_comments_and_asserts(self, sample_graph) -> None:
        graph, order = sample_graph
        module = emit(graph, order, verbose_comments=False, layout_asserts=False).artifacts["src/Game/mod.rs"]
        assert "assert!" not in module
        assert "/// " not in module

    def test_output_is_identical_across_runs(self) -> None:
        first = emit(*prepare_graph(build_sample_adapter(), workers=1)).artifacts
        second = emit(*prepare_graph(build_sample_adapter(), workers=4)).artifacts
        assert list(first) == list(second)
        assert first == second


class TestCrateEdgeCases:
    def test_nested_namespaces_become_modules(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(type_record(20, "A", namespace="Game.Core"))
        adapter.add_type(type_record(21, "B", namespace=""))
        graph, order = prepare_graph(adapter)
        artifacts = emit(graph, order).artifacts
        assert "pub mod Game;" in artifacts["src/lib.rs"]
        assert "pub mod GlobalNamespace;" in artifacts["src/lib.rs"]
        assert "pub mod Core;" in artifacts["src/Game/mod.rs"]
        assert "pub struct A {" in artifacts["src/Game/Core/mod.rs"]
        assert "pub struct B {" in artifacts["src/GlobalNamespace/mod.rs"]

    def test_namespace_named_like_runtime_module(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(type_record(20, "Clock", namespace="runtime"))
        graph, order = prepare_graph(adapter)
        artifacts = emit(graph, order).artifacts
        renamed = f"runtime_{zlib.crc32(b'runtime')}"
        lib = artifacts["src/lib.rs"]
        assert lib.count("pub mod runtime;") == 1
        assert f"pub mod {renamed};" in lib
        assert "pub struct Clock {" in artifacts[f"src/{renamed}/mod.rs"]
        assert "src/runtime/mod.rs" not in artifacts

    def test_reserved_words(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(
            type_record(20, "Thing"),
            fields=[field_record(200, "type", I4)],
            methods=[method_record(300, "Move", parameters=(ParameterRecord("targetPosition", I4),))],
        )
        graph, order = prepare_graph(adapter)
        module = emit(graph, order).artifacts["src/Game/mod.rs"]
        assert "    pub _dg_type: i32," in module
        assert "pub fn Thing__Move(__this: *mut Thing, target_position: i32);" in module

    def test_overloads_get_distinct_symbols(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(
            type_record(20, "Thing"),
            methods=[
                method_record(300, "Run"),
                method_record(301, "Run", parameters=(ParameterRecord("speed", I4),)),
            ],
        )
        graph, order = prepare_graph(adapter)
        module = emit(graph, order).artifacts["src/Game/mod.rs"]
        assert "pub fn Thing__Run(__this: *mut Thing);" in module
        assert "pub fn Thing__Run_301(__this: *mut Thing, speed: i32);" in module

    def test_generic_methods_are_skipped(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(
            type_record(20, "Util"),
            methods=[
                method_record(300, "Identity", TypeReference.mvar(0), generic_parameters=("U",)),
                method_record(301, "Count", I4, is_static=True),
            ],
        )
        graph, order = prepare_graph(adapter)
        module = emit(graph, order).artifacts["src/Game/mod.rs"]
        assert "Identity" not in module.split('extern "C"')[1]
        assert "pub fn Util__Count() -> i32;" in module

    def test_overlapping_fields_become_union(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(
            type_record(20, "Bits", kind=TypeKind.STRUCT, layout=LayoutKind.EXPLICIT),
            fields=[
                field_record(200, "whole", TypeReference.of_primitive(Primitive.I8), offset=0),
                field_record(201, "low", I4, offset=0),
                field_record(202, "high", I4, offset=4),
            ],
        )
        graph, order = prepare_graph(adapter)
        module = emit(graph, order).artifacts["src/Game/mod.rs"]
        assert "    pub __union_0x0: Bits__Union_0x0," in module
        assert "pub union Bits__Union_0x0 {" in module
        assert "    pub whole: ::core::mem::ManuallyDrop<i64>," in module
        assert "    pub high: ::core::mem::ManuallyDrop<Bits__Union_0x0__high>," in module
        assert "pub struct Bits__Union_0x0__high {" in module
        assert "    pub _padding_0x4: [u8; 0x4]," in module

    def test_interface_fields_render_as_objects(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(type_record(20, "IThing", kind=TypeKind.INTERFACE))
        adapter.add_type(type_record(21, "Holder"), fields=[field_record(200, "thing", ref(20))])
        graph, order = prepare_graph(adapter)
        module = emit(graph, order).artifacts["src/Game/mod.rs"]
        assert "    pub thing: *mut crate::runtime::Il2CppObject," in module

    def test_generic_method_specializations_get_externs(self, adapter: InMemoryAdapter) -> None:
        add_generic_methods(adapter)
        graph, order = prepare_graph(adapter, specialize=True)
        module = emit(graph, order).artifacts["src/Game/mod.rs"]
        externs = module.split('extern "C"', 1)[1]
        assert '    #[link_name = "Game.Util::Identity<i4>@0x16"]' in externs
        assert "    pub fn Util__Identity__i4(value: i32) -> i32;" in externs
        assert (
            "    pub fn Util__Identity__string(value: *mut crate::runtime::Il2CppString)"
            " -> *mut crate::runtime::Il2CppString;"
        ) in externs
        assert '    #[link_name = "Game.Pair`1::Convert<r4>@0x18"]' in externs
        assert "    pub fn Pair_1__Convert__i4_r4(__this: *mut Pair_1<i32>, input: i32) -> f32;" in externs

    def test_specialization_symbol_collision(self, adapter: InMemoryAdapter) -> None:
        adapter.add_type(
            type_record(30, "Tool"),
            methods=[
                method_record(310, "Make__i4", is_static=True),
                method_record(311, "Make", TypeReference.mvar(0), generic_parameters=("U",), is_static=True),
            ],
        )
        adapter.add_method_instantiation(MethodInstantiationRecord(311, (I4,)))
        graph, order = prepare_graph(adapter, specialize=True)
        module = emit(graph, order).artifacts["src/Game/mod.rs"]
        assert "    pub fn Tool__Make__i4();" in module
        assert "    pub fn Tool__Make__i4_31() -> i32;" in module
