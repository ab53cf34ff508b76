"""Data models for the type graph.

Defines TypeNode, its member nodes and Edge. Nodes are addressed by
integer tokens; relationships between types are explicit edges kept by
the TypeGraph rather than object references.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from declgen.graph.references import TypeReference
from declgen.graph.schema import EdgeType, LayoutKind, ParameterMode, Primitive, TypeKind


@dataclass
class FieldNode:
    """A field of a type.

    Offsets and sizes are filled in by the layout pass when the image does
    not supply them.
    """

    token: int
    name: str
    type: TypeReference
    offset: int | None = None
    size: int | None = None
    is_static: bool = False
    is_literal: bool = False
    default_value: Any = None

    @property
    def is_instance(self) -> bool:
        return not self.is_static and not self.is_literal

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "token": self.token,
            "name": self.name,
            "type": self.type.to_dict(),
            "offset": self.offset,
            "size": self.size,
            "static": self.is_static,
            "literal": self.is_literal,
            "default": self.default_value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldNode:
        return cls(
            token=data["token"],
            name=data["name"],
            type=TypeReference.from_dict(data["type"]),
            offset=data.get("offset"),
            size=data.get("size"),
            is_static=data.get("static", False),
            is_literal=data.get("literal", False),
            default_value=data.get("default"),
        )


@dataclass
class ParameterNode:
    """A method parameter."""

    name: str
    type: TypeReference
    mode: ParameterMode | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.to_dict(),
            "mode": self.mode.value if self.mode else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParameterNode:
        mode = data.get("mode")
        return cls(
            name=data["name"],
            type=TypeReference.from_dict(data["type"]),
            mode=ParameterMode(mode) if mode else None,
        )


@dataclass
class MethodNode:
    """A method declaration. Bodies are never reconstructed."""

    token: int
    name: str
    return_type: TypeReference
    parameters: list[ParameterNode] = field(default_factory=list)
    generic_parameters: list[str] = field(default_factory=list)
    vtable_slot: int | None = None
    is_static: bool = False
    is_virtual: bool = False
    is_abstract: bool = False
    overrides: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "token": self.token,
            "name": self.name,
            "return": self.return_type.to_dict(),
            "parameters": [p.to_dict() for p in self.parameters],
            "generic_parameters": list(self.generic_parameters),
            "slot": self.vtable_slot,
            "static": self.is_static,
            "virtual": self.is_virtual,
            "abstract": self.is_abstract,
            "overrides": self.overrides,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MethodNode:
        return cls(
            token=data["token"],
            name=data["name"],
            return_type=TypeReference.from_dict(data["return"]),
            parameters=[ParameterNode.from_dict(p) for p in data.get("parameters", [])],
            generic_parameters=list(data.get("generic_parameters", [])),
            vtable_slot=data.get("slot"),
            is_static=data.get("static", False),
            is_virtual=data.get("virtual", False),
            is_abstract=data.get("abstract", False),
            overrides=data.get("overrides"),
        )


@dataclass
class PropertyNode:
    """A managed property backed by getter/setter methods."""

    name: str
    type: TypeReference
    getter: int | None = None
    setter: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.to_dict(),
            "getter": self.getter,
            "setter": self.setter,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PropertyNode:
        return cls(
            name=data["name"],
            type=TypeReference.from_dict(data["type"]),
            getter=data.get("getter"),
            setter=data.get("setter"),
        )


@dataclass
class MethodSpecialization:
    """A generic method closed over concrete arguments.

    Kept on the definition that declares the method. The signature is
    stored with every generic parameter substituted; parameter names and
    modes stay those of the generic method.
    """

    token: int
    method_index: int
    arguments: list[TypeReference]
    return_type: TypeReference
    parameter_types: list[TypeReference] = field(default_factory=list)
    declaring_arguments: list[TypeReference] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "method_index": self.method_index,
            "arguments": [a.to_dict() for a in self.arguments],
            "declaring_arguments": [a.to_dict() for a in self.declaring_arguments],
            "return": self.return_type.to_dict(),
            "parameters": [p.to_dict() for p in self.parameter_types],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MethodSpecialization:
        return cls(
            token=data["token"],
            method_index=data["method_index"],
            arguments=[TypeReference.from_dict(a) for a in data["arguments"]],
            declaring_arguments=[TypeReference.from_dict(a) for a in data.get("declaring_arguments", [])],
            return_type=TypeReference.from_dict(data["return"]),
            parameter_types=[TypeReference.from_dict(p) for p in data.get("parameters", [])],
        )


@dataclass
class TypeNode:
    """A node in the type graph.

    Represents a type definition or a closed generic instantiation. For
    instantiations, definition_token and generic_arguments are set and the
    members are the definition's members with class generic parameters
    substituted.
    """

    token: int
    name: str
    namespace: str
    kind: TypeKind
    assembly: int | None = None
    full_name: str = ""
    declaring_token: int | None = None
    generic_parameters: list[str] = field(default_factory=list)
    parent: TypeReference | None = None
    interfaces: list[TypeReference] = field(default_factory=list)
    fields: list[FieldNode] = field(default_factory=list)
    methods: list[MethodNode] = field(default_factory=list)
    properties: list[PropertyNode] = field(default_factory=list)
    vtable: list[int | None] = field(default_factory=list)
    layout: LayoutKind = LayoutKind.AUTO
    packing: int | None = None
    size: int | None = None
    alignment: int | None = None
    enum_underlying: Primitive | None = None
    definition_token: int | None = None
    generic_arguments: list[TypeReference] = field(default_factory=list)
    method_specializations: list[MethodSpecialization] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.full_name:
            self.full_name = f"{self.namespace}.{self.name}" if self.namespace else self.name

    @property
    def is_value_type(self) -> bool:
        return self.kind in (TypeKind.STRUCT, TypeKind.ENUM)

    @property
    def is_instantiation(self) -> bool:
        return self.definition_token is not None

    @property
    def definition(self) -> int:
        """Token of the generic definition an instantiation closes."""
        if self.definition_token is None:
            raise ValueError(f"{self.full_name} is not a generic instantiation")
        return self.definition_token

    @property
    def is_generic_definition(self) -> bool:
        """True for open generic type definitions."""
        return bool(self.generic_parameters) and not self.is_instantiation

    def instance_fields(self) -> list[FieldNode]:
        return [f for f in self.fields if f.is_instance]

    def static_fields(self) -> list[FieldNode]:
        return [f for f in self.fields if not f.is_instance]

    def method_by_token(self, token: int) -> MethodNode | None:
        for method in self.methods:
            if method.token == token:
                return method
        return None

    def reference_sites(self) -> Iterator[tuple[str, TypeReference, MethodNode | None]]:
        """Yield every type reference held by this node in declaration order.

        Each item is (site, reference, method) where site is one of
        "parent", "interface", "field", "static-field", "return",
        "parameter", "property" or "argument", and method is the owning
        method for method signature sites.
        """
        for arg in self.generic_arguments:
            yield "argument", arg, None
        if self.parent is not None:
            yield "parent", self.parent, None
        for iface in self.interfaces:
            yield "interface", iface, None
        for f in self.fields:
            yield ("field" if f.is_instance else "static-field"), f.type, None
        for method in self.methods:
            yield "return", method.return_type, method
            for param in method.parameters:
                yield "parameter", param.type, method
        for prop in self.properties:
            yield "property", prop.type, None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "token": self.token,
            "name": self.name,
            "namespace": self.namespace,
            "full_name": self.full_name,
            "kind": self.kind.value,
            "assembly": self.assembly,
            "declaring": self.declaring_token,
            "generic_parameters": list(self.generic_parameters),
            "definition": self.definition_token,
            "generic_arguments": [a.to_dict() for a in self.generic_arguments],
            "parent": self.parent.to_dict() if self.parent else None,
            "interfaces": [i.to_dict() for i in self.interfaces],
            "layout": {
                "kind": self.layout.value,
                "packing": self.packing,
                "size": self.size,
                "alignment": self.alignment,
                "enum_underlying": self.enum_underlying.value if self.enum_underlying else None,
            },
            "fields": [f.to_dict() for f in self.fields],
            "methods": [m.to_dict() for m in self.methods],
            "properties": [p.to_dict() for p in self.properties],
            "vtable": list(self.vtable),
            "method_specializations": [s.to_dict() for s in self.method_specializations],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TypeNode:
        """Create TypeNode from its dictionary form."""
        layout = data.get("layout", {})
        underlying = layout.get("enum_underlying")
        return cls(
            token=data["token"],
            name=data["name"],
            namespace=data.get("namespace", ""),
            full_name=data.get("full_name", ""),
            kind=TypeKind(data["kind"]),
            assembly=data.get("assembly"),
            declaring_token=data.get("declaring"),
            generic_parameters=list(data.get("generic_parameters", [])),
            definition_token=data.get("definition"),
            generic_arguments=[TypeReference.from_dict(a) for a in data.get("generic_arguments", [])],
            parent=TypeReference.from_dict(data["parent"]) if data.get("parent") else None,
            interfaces=[TypeReference.from_dict(i) for i in data.get("interfaces", [])],
            layout=LayoutKind(layout.get("kind", LayoutKind.AUTO.value)),
            packing=layout.get("packing"),
            size=layout.get("size"),
            alignment=layout.get("alignment"),
            enum_underlying=Primitive(underlying) if underlying else None,
            fields=[FieldNode.from_dict(f) for f in data.get("fields", [])],
            methods=[MethodNode.from_dict(m) for m in data.get("methods", [])],
            properties=[PropertyNode.from_dict(p) for p in data.get("properties", [])],
            vtable=list(data.get("vtable", [])),
            method_specializations=[
                MethodSpecialization.from_dict(s) for s in data.get("method_specializations", [])
            ],
        )


@dataclass(frozen=True)
class Edge:
    """A typed relation between two type nodes, read "source type target"."""

    source: int
    target: int
    type: EdgeType
    by_value: bool = False

    @property
    def key(self) -> tuple[int, int, EdgeType]:
        return (self.source, self.target, self.type)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "source": self.source,
            "target": self.target,
            "type": self.type.value,
        }
        if self.type == EdgeType.CONTAINS_FIELD_OF:
            data["by_value"] = self.by_value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Edge:
        return cls(
            source=data["source"],
            target=data["target"],
            type=EdgeType(data["type"]),
            by_value=data.get("by_value", False),
        )


__all__ = [
    "FieldNode",
    "ParameterNode",
    "MethodNode",
    "PropertyNode",
    "TypeNode",
    "Edge",
]
