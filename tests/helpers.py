"""Record factories and sample documents shared by declgen tests."""

from __future__ import annotations

from typing import Any

from declgen.graph import (
    DependencyResolver,
    EmissionOrder,
    GenericResolver,
    GraphBuilder,
    LayoutCalculator,
    LayoutKind,
    Primitive,
    TypeGraph,
    TypeKind,
    TypeReference,
)
from declgen.metadata import (
    AssemblyRecord,
    FieldRecord,
    InMemoryAdapter,
    MethodInstantiationRecord,
    MethodRecord,
    ParameterRecord,
    TypeDefinitionRecord,
)

# =============================================================================
# Reference shorthands
# =============================================================================

VOID = TypeReference.of_primitive(Primitive.VOID)
I4 = TypeReference.of_primitive(Primitive.I4)
R4 = TypeReference.of_primitive(Primitive.R4)
STRING = TypeReference.of_primitive(Primitive.STRING)


def ref(token: int) -> TypeReference:
    return TypeReference.of_type(token)


# =============================================================================
# Record factories
# =============================================================================


def type_record(
    token: int,
    name: str,
    namespace: str = "Game",
    kind: TypeKind = TypeKind.CLASS,
    assembly: int = 1,
    **kwargs: Any,
) -> TypeDefinitionRecord:
    return TypeDefinitionRecord(token=token, name=name, namespace=namespace, assembly=assembly, kind=kind, **kwargs)


def field_record(token: int, name: str, type: TypeReference, **kwargs: Any) -> FieldRecord:
    return FieldRecord(token=token, name=name, type=type, **kwargs)


def method_record(token: int, name: str, return_type: TypeReference = VOID, **kwargs: Any) -> MethodRecord:
    return MethodRecord(token=token, name=name, return_type=return_type, **kwargs)


def new_adapter() -> InMemoryAdapter:
    adapter = InMemoryAdapter()
    adapter.add_assembly(AssemblyRecord(1, "Game.dll"))
    return adapter


def prepare_graph(
    adapter: InMemoryAdapter, pointer_size: int = 8, workers: int = 2, specialize: bool = False
) -> tuple[TypeGraph, EmissionOrder]:
    """Run the graph stages and freeze the result."""
    graph = GraphBuilder(workers=workers, pointer_size=pointer_size).build(adapter)
    resolver = GenericResolver(graph)
    resolver.resolve(adapter.generic_instantiations())
    if specialize:
        resolver.specialize_methods(adapter.generic_method_instantiations())
    order = DependencyResolver(graph).resolve()
    LayoutCalculator(graph).apply(order)
    graph.freeze()
    return graph, order


# Tokens of the sample program
ENTITY, PLAYER, VECTOR3, BOX, HOLDER, IDAMAGEABLE, COLOR = 10, 11, 12, 13, 14, 15, 16
# First token handed out to an instantiation
BOX_OF_INT = 17


def build_sample_adapter() -> InMemoryAdapter:
    """A small program exercising inheritance, interfaces, generics and enums.

    Game.Entity      class   { int id; string name; virtual int GetId(); }
    Game.Player      class : Entity, IDamageable { float health; Entity target; ... }
    Game.Vector3     struct  { float x, y, z; }
    Game.Box`1<T>    class   { T value; }
    Game.Holder      class   { Box<int> box; Box<int> other; Vector3 position; }
    Game.IDamageable interface { void TakeDamage(int amount); }
    Game.Color       enum    { Red = 0, Green = 1 }
    """
    adapter = new_adapter()
    adapter.add_type(
        type_record(ENTITY, "Entity"),
        fields=[field_record(100, "id", I4), field_record(101, "name", STRING)],
        methods=[method_record(200, "GetId", I4, is_virtual=True)],
        vtable=[200],
    )
    adapter.add_type(
        type_record(PLAYER, "Player", parent=ref(ENTITY), interfaces=(ref(IDAMAGEABLE),)),
        fields=[field_record(102, "health", R4), field_record(103, "target", ref(ENTITY))],
        methods=[
            method_record(201, "GetId", I4, is_virtual=True, overrides=200),
            method_record(
                203,
                "TakeDamage",
                parameters=(ParameterRecord("amount", I4),),
                is_virtual=True,
                overrides=202,
            ),
        ],
        vtable=[201, 203],
    )
    adapter.add_type(
        type_record(VECTOR3, "Vector3", kind=TypeKind.STRUCT, layout=LayoutKind.SEQUENTIAL),
        fields=[field_record(104, "x", R4), field_record(105, "y", R4), field_record(106, "z", R4)],
    )
    adapter.add_type(
        type_record(BOX, "Box`1"),
        fields=[field_record(107, "value", TypeReference.var(0, "T"))],
        generic_parameters=["T"],
    )
    box_of_int = TypeReference.generic(BOX, I4)
    adapter.add_type(
        type_record(HOLDER, "Holder"),
        fields=[
            field_record(108, "box", box_of_int),
            field_record(109, "other", box_of_int),
            field_record(110, "position", ref(VECTOR3)),
        ],
    )
    adapter.add_type(
        type_record(IDAMAGEABLE, "IDamageable", kind=TypeKind.INTERFACE),
        methods=[
            method_record(
                202,
                "TakeDamage",
                parameters=(ParameterRecord("amount", I4),),
                is_virtual=True,
                is_abstract=True,
                slot=0,
            )
        ],
    )
    adapter.add_type(
        type_record(COLOR, "Color", kind=TypeKind.ENUM, enum_underlying=Primitive.I4),
        fields=[
            field_record(111, "value__", I4),
            field_record(112, "Red", ref(COLOR), is_static=True, is_literal=True, default_value=0),
            field_record(113, "Green", ref(COLOR), is_static=True, is_literal=True, default_value=1),
        ],
    )
    return adapter


# =============================================================================
# Snapshot documents
# =============================================================================


def _prim(name: str) -> dict[str, Any]:
    return {"kind": "primitive", "primitive": name}


def _type(token: int) -> dict[str, Any]:
    return {"kind": "type", "token": token}


def sample_metadata_document() -> dict[str, Any]:
    """Metadata snapshot of a subset of the sample program."""
    box_of_int = {"kind": "generic_inst", "token": BOX, "arguments": [_prim("i4")]}
    return {
        "assemblies": [{"token": 1, "name": "Game.dll"}],
        "types": [
            {
                "token": ENTITY,
                "name": "Entity",
                "namespace": "Game",
                "assembly": 1,
                "kind": "class",
                "fields": [
                    {"token": 100, "name": "id", "type": _prim("i4")},
                    {"token": 101, "name": "name", "type": _prim("string")},
                ],
                "methods": [{"token": 200, "name": "GetId", "return": _prim("i4"), "virtual": True}],
            },
            {
                "token": PLAYER,
                "name": "Player",
                "namespace": "Game",
                "assembly": 1,
                "kind": "class",
                "parent": _type(ENTITY),
                "fields": [
                    {"token": 102, "name": "health", "type": _prim("r4")},
                    {"token": 103, "name": "target", "type": _type(ENTITY)},
                ],
                "methods": [
                    {"token": 201, "name": "GetId", "return": _prim("i4"), "virtual": True, "overrides": 200}
                ],
            },
            {
                "token": BOX,
                "name": "Box`1",
                "namespace": "Game",
                "assembly": 1,
                "kind": "class",
                "generic_parameters": ["T"],
                "fields": [{"token": 107, "name": "value", "type": {"kind": "var", "position": 0, "name": "T"}}],
            },
            {
                "token": HOLDER,
                "name": "Holder",
                "namespace": "Game",
                "assembly": 1,
                "kind": "class",
                "fields": [{"token": 108, "name": "box", "type": box_of_int}],
            },
            {
                "token": COLOR,
                "name": "Color",
                "namespace": "Game",
                "assembly": 1,
                "kind": "enum",
                "enum_underlying": "i4",
                "fields": [
                    {"token": 111, "name": "value__", "type": _prim("i4")},
                    {"token": 112, "name": "Red", "type": _type(COLOR), "static": True, "literal": True, "default": 0},
                ],
            },
        ],
    }


def sample_image_document() -> dict[str, Any]:
    return {
        "pointer_size": 8,
        "types": {
            str(ENTITY): {"size": 32, "field_offsets": {"100": 16, "101": 24}, "vtable": [200]},
            str(PLAYER): {"size": 48, "field_offsets": {"102": 32, "103": 40}, "vtable": [201]},
        },
        "method_slots": {"200": 0},
        "generic_instantiations": [{"kind": "generic_inst", "token": BOX, "arguments": [_prim("string")]}],
    }


def generic_method_documents() -> tuple[dict[str, Any], dict[str, Any]]:
    """Sample documents where Box`1 declares U Map<U>(T input).

    The image lists Box`1<i4>::Map<r4>.
    """
    metadata = sample_metadata_document()
    box = next(t for t in metadata["types"] if t["token"] == BOX)
    box["methods"] = [
        {
            "token": 204,
            "name": "Map",
            "return": {"kind": "mvar", "position": 0},
            "parameters": [{"name": "input", "type": {"kind": "var", "position": 0}}],
            "generic_parameters": ["U"],
        }
    ]
    image = sample_image_document()
    image["generic_method_instantiations"] = [
        {"method": 204, "declaring_arguments": [_prim("i4")], "arguments": [_prim("r4")]}
    ]
    return metadata, image


# Tokens of the generic method program
UTIL, PAIR, IDENTITY, CONVERT = 20, 21, 300, 301


def add_generic_methods(adapter: InMemoryAdapter) -> None:
    """Generic methods on a plain and a generic type, with their instantiations.

    Game.Util        class   { static U Identity<U>(U value); }
    Game.Pair`1<T>   class   { U Convert<U>(T input); }

    The image lists Identity<i4> twice, Identity<string> and
    Pair`1<i4>::Convert<r4>.
    """
    adapter.add_type(
        type_record(UTIL, "Util"),
        methods=[
            method_record(
                IDENTITY,
                "Identity",
                TypeReference.mvar(0),
                parameters=(ParameterRecord("value", TypeReference.mvar(0)),),
                generic_parameters=("U",),
                is_static=True,
            )
        ],
    )
    adapter.add_type(
        type_record(PAIR, "Pair`1"),
        methods=[
            method_record(
                CONVERT,
                "Convert",
                TypeReference.mvar(0),
                parameters=(ParameterRecord("input", TypeReference.var(0)),),
                generic_parameters=("U",),
            )
        ],
        generic_parameters=["T"],
    )
    adapter.add_method_instantiation(MethodInstantiationRecord(IDENTITY, (STRING,)))
    adapter.add_method_instantiation(MethodInstantiationRecord(IDENTITY, (I4,)))
    adapter.add_method_instantiation(MethodInstantiationRecord(IDENTITY, (I4,)))
    adapter.add_method_instantiation(MethodInstantiationRecord(CONVERT, (R4,), (I4,)))
