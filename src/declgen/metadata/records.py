"""Decoded metadata records.

These are the shapes a MetadataAdapter yields. They mirror the tables of
the runtime's metadata store after decoding, with native-image facts
(sizes, offsets, vtable slots) merged in where the adapter knows them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from declgen.graph.references import TypeReference
from declgen.graph.schema import LayoutKind, ParameterMode, Primitive, TypeKind


@dataclass(frozen=True)
class AssemblyRecord:
    """One assembly (image) of the metadata store."""

    token: int
    name: str


@dataclass(frozen=True)
class TypeDefinitionRecord:
    """A type definition.

    name is the simple name as stored in metadata (e.g. "List`1"); nested
    types carry their declaring type's token and an empty namespace is
    allowed.
    """

    token: int
    name: str
    namespace: str
    assembly: int
    kind: TypeKind
    declaring_token: int | None = None
    parent: TypeReference | None = None
    interfaces: tuple[TypeReference, ...] = ()
    layout: LayoutKind = LayoutKind.AUTO
    packing: int | None = None
    size: int | None = None
    alignment: int | None = None
    enum_underlying: Primitive | None = None


@dataclass(frozen=True)
class FieldRecord:
    token: int
    name: str
    type: TypeReference
    offset: int | None = None
    is_static: bool = False
    is_literal: bool = False
    default_value: Any = None


@dataclass(frozen=True)
class ParameterRecord:
    name: str
    type: TypeReference
    mode: ParameterMode | None = None


@dataclass(frozen=True)
class MethodRecord:
    """A method signature with its flags.

    slot is the vtable slot when the adapter knows it directly; the
    builder also consults vtable_of().
    """

    token: int
    name: str
    return_type: TypeReference
    parameters: tuple[ParameterRecord, ...] = ()
    generic_parameters: tuple[str, ...] = ()
    is_static: bool = False
    is_virtual: bool = False
    is_abstract: bool = False
    slot: int | None = None
    overrides: int | None = None


@dataclass(frozen=True)
class GenericParameterRecord:
    owner: int
    position: int
    name: str


@dataclass(frozen=True)
class VTableEntry:
    slot: int
    method: int | None


@dataclass(frozen=True)
class PropertyRecord:
    name: str
    type: TypeReference
    getter: int | None = None
    setter: int | None = None


@dataclass(frozen=True)
class MethodInstantiationRecord:
    """A closed instantiation of a generic method present in the image.

    declaring_arguments close the declaring type when it is itself
    generic and is empty otherwise.
    """

    method: int
    arguments: tuple[TypeReference, ...]
    declaring_arguments: tuple[TypeReference, ...] = ()


__all__ = [
    "AssemblyRecord",
    "TypeDefinitionRecord",
    "FieldRecord",
    "ParameterRecord",
    "MethodRecord",
    "GenericParameterRecord",
    "VTableEntry",
    "PropertyRecord",
    "MethodInstantiationRecord",
]
