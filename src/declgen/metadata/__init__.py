"""Metadata adapter layer.

Everything the generator knows about the inspected program arrives
through a MetadataAdapter as decoded records.

Example:
    >>> from declgen.metadata import SnapshotAdapter
    >>> adapter = SnapshotAdapter.open(Path("metadata.json"), Path("image.json"))
    >>> for record in adapter.type_definitions():
    ...     print(record.namespace, record.name)
"""

from declgen.metadata.adapter import InMemoryAdapter, MetadataAdapter
from declgen.metadata.records import (
    AssemblyRecord,
    FieldRecord,
    GenericParameterRecord,
    MethodInstantiationRecord,
    MethodRecord,
    ParameterRecord,
    PropertyRecord,
    TypeDefinitionRecord,
    VTableEntry,
)
from declgen.metadata.snapshot import SnapshotAdapter

__all__ = [
    "MetadataAdapter",
    "InMemoryAdapter",
    "SnapshotAdapter",
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
