"""Metadata adapter protocol and in-memory implementation.

The adapter is the boundary to the binary-format reader: everything the
generator knows about the inspected program comes through these methods.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol, runtime_checkable

from declgen.graph.references import TypeReference
from declgen.metadata.records import (
    AssemblyRecord,
    FieldRecord,
    GenericParameterRecord,
    MethodInstantiationRecord,
    MethodRecord,
    PropertyRecord,
    TypeDefinitionRecord,
    VTableEntry,
)


@runtime_checkable
class MetadataAdapter(Protocol):
    """Read-only view over decoded metadata and native-image facts."""

    def assemblies(self) -> Iterable[AssemblyRecord]: ...

    def type_definitions(self) -> Iterable[TypeDefinitionRecord]: ...

    def fields_of(self, type_token: int) -> Sequence[FieldRecord]: ...

    def methods_of(self, type_token: int) -> Sequence[MethodRecord]: ...

    def generic_parameters_of(self, type_token: int) -> Sequence[GenericParameterRecord]: ...

    def vtable_of(self, type_token: int) -> Sequence[VTableEntry]: ...

    def properties_of(self, type_token: int) -> Sequence[PropertyRecord]: ...

    def generic_instantiations(self) -> Iterable[TypeReference]:
        """Closed instantiations the image declares, referenced or not."""
        ...

    def generic_method_instantiations(self) -> Iterable[MethodInstantiationRecord]:
        """Closed generic method instantiations the image contains."""
        ...


class InMemoryAdapter:
    """Adapter holding records directly.

    Used by the snapshot loader and by tests to describe small programs.
    """

    def __init__(self) -> None:
        self._assemblies: dict[int, AssemblyRecord] = {}
        self._types: dict[int, TypeDefinitionRecord] = {}
        self._fields: dict[int, list[FieldRecord]] = {}
        self._methods: dict[int, list[MethodRecord]] = {}
        self._generic_parameters: dict[int, list[GenericParameterRecord]] = {}
        self._vtables: dict[int, list[VTableEntry]] = {}
        self._properties: dict[int, list[PropertyRecord]] = {}
        self._instantiations: list[TypeReference] = []
        self._method_instantiations: list[MethodInstantiationRecord] = []

    def add_assembly(self, record: AssemblyRecord) -> AssemblyRecord:
        self._assemblies[record.token] = record
        return record

    def add_type(
        self,
        record: TypeDefinitionRecord,
        fields: Iterable[FieldRecord] = (),
        methods: Iterable[MethodRecord] = (),
        generic_parameters: Iterable[str] = (),
        vtable: Iterable[int | None] = (),
        properties: Iterable[PropertyRecord] = (),
    ) -> TypeDefinitionRecord:
        """Register a type definition together with its members.

        Args:
            record: The type definition
            fields: Field records in declaration order
            methods: Method records in declaration order
            generic_parameters: Generic parameter names in position order
            vtable: Method token per vtable slot (None for empty slots)
            properties: Property records in declaration order

        Returns:
            The registered record
        """
        self._types[record.token] = record
        self._fields[record.token] = list(fields)
        self._methods[record.token] = list(methods)
        self._generic_parameters[record.token] = [
            GenericParameterRecord(record.token, i, name) for i, name in enumerate(generic_parameters)
        ]
        self._vtables[record.token] = [VTableEntry(slot, m) for slot, m in enumerate(vtable)]
        self._properties[record.token] = list(properties)
        return record

    def add_instantiation(self, ref: TypeReference) -> None:
        self._instantiations.append(ref)

    def add_method_instantiation(self, record: MethodInstantiationRecord) -> None:
        self._method_instantiations.append(record)

    def assemblies(self) -> list[AssemblyRecord]:
        return [self._assemblies[t] for t in sorted(self._assemblies)]

    def type_definitions(self) -> list[TypeDefinitionRecord]:
        return [self._types[t] for t in sorted(self._types)]

    def fields_of(self, type_token: int) -> list[FieldRecord]:
        return list(self._fields.get(type_token, ()))

    def methods_of(self, type_token: int) -> list[MethodRecord]:
        return list(self._methods.get(type_token, ()))

    def generic_parameters_of(self, type_token: int) -> list[GenericParameterRecord]:
        return list(self._generic_parameters.get(type_token, ()))

    def vtable_of(self, type_token: int) -> list[VTableEntry]:
        return list(self._vtables.get(type_token, ()))

    def properties_of(self, type_token: int) -> list[PropertyRecord]:
        return list(self._properties.get(type_token, ()))

    def generic_instantiations(self) -> list[TypeReference]:
        return list(self._instantiations)

    def generic_method_instantiations(self) -> list[MethodInstantiationRecord]:
        return list(self._method_instantiations)


__all__ = ["MetadataAdapter", "InMemoryAdapter"]
