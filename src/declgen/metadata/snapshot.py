"""Adapter over a decoded metadata snapshot.

A snapshot is two JSON files produced by a binary-format reader:

- the metadata document: assemblies and type definitions with their
  fields, methods, properties and generic parameters;
- the image-layout document: native facts recovered from the compiled
  image (pointer size, type sizes, field offsets, vtables, method slots
  and the closed generic type and method instantiations the image
  contains).

Both documents are validated with pydantic before any graph construction
starts; anything missing or malformed raises SourceUnavailable.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from declgen.errors import SourceUnavailable
from declgen.graph.references import TypeReference, missing_part
from declgen.graph.schema import LayoutKind, ParameterMode, Primitive, RefKind, TypeKind
from declgen.metadata.adapter import InMemoryAdapter
from declgen.metadata.records import (
    AssemblyRecord,
    FieldRecord,
    MethodInstantiationRecord,
    MethodRecord,
    ParameterRecord,
    PropertyRecord,
    TypeDefinitionRecord,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Metadata document
# =============================================================================


class RefModel(BaseModel):
    """A type reference as spelled in snapshot documents."""

    kind: RefKind
    token: int | None = None
    primitive: Primitive | None = None
    element: RefModel | None = None
    arguments: list[RefModel] = Field(default_factory=list)
    position: int | None = None
    name: str | None = None

    @model_validator(mode="after")
    def check_parts(self) -> RefModel:
        part = missing_part(self.kind, self)
        if part is not None:
            raise ValueError(f"{self.kind.value} reference requires '{part}'")
        return self

    def to_reference(self) -> TypeReference:
        return TypeReference(
            kind=self.kind,
            token=self.token,
            primitive=self.primitive,
            element=self.element.to_reference() if self.element else None,
            arguments=tuple(a.to_reference() for a in self.arguments),
            position=self.position,
            name=self.name,
        )


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class FieldModel(_Record):
    token: int
    name: str
    type: RefModel
    is_static: bool = Field(default=False, alias="static")
    is_literal: bool = Field(default=False, alias="literal")
    default_value: Any = Field(default=None, alias="default")


class ParameterModel(_Record):
    name: str
    type: RefModel
    mode: ParameterMode | None = None


class MethodModel(_Record):
    token: int
    name: str
    return_type: RefModel = Field(alias="return")
    parameters: list[ParameterModel] = Field(default_factory=list)
    generic_parameters: list[str] = Field(default_factory=list)
    is_static: bool = Field(default=False, alias="static")
    is_virtual: bool = Field(default=False, alias="virtual")
    is_abstract: bool = Field(default=False, alias="abstract")
    overrides: int | None = None


class PropertyModel(_Record):
    name: str
    type: RefModel
    getter: int | None = None
    setter: int | None = None


class TypeModel(_Record):
    token: int
    name: str
    namespace: str = ""
    assembly: int
    kind: TypeKind
    declaring: int | None = None
    parent: RefModel | None = None
    interfaces: list[RefModel] = Field(default_factory=list)
    layout: LayoutKind = LayoutKind.AUTO
    packing: int | None = Field(default=None, ge=1)
    enum_underlying: Primitive | None = None
    generic_parameters: list[str] = Field(default_factory=list)
    fields: list[FieldModel] = Field(default_factory=list)
    methods: list[MethodModel] = Field(default_factory=list)
    properties: list[PropertyModel] = Field(default_factory=list)


class AssemblyModel(_Record):
    token: int
    name: str


class MetadataSnapshot(_Record):
    """Decoded metadata document."""

    assemblies: list[AssemblyModel]
    types: list[TypeModel]


# =============================================================================
# Image-layout document
# =============================================================================


class TypeLayoutModel(_Record):
    size: int | None = Field(default=None, ge=0)
    alignment: int | None = Field(default=None, ge=1)
    field_offsets: dict[int, int] = Field(default_factory=dict)
    vtable: list[int | None] = Field(default_factory=list)


class MethodInstantiationModel(_Record):
    method: int
    arguments: list[RefModel] = Field(min_length=1)
    declaring_arguments: list[RefModel] = Field(default_factory=list)


class ImageLayout(_Record):
    """Native facts recovered from the compiled image."""

    pointer_size: Literal[4, 8] = 8
    types: dict[int, TypeLayoutModel] = Field(default_factory=dict)
    method_slots: dict[int, int] = Field(default_factory=dict)
    generic_instantiations: list[RefModel] = Field(default_factory=list)
    generic_method_instantiations: list[MethodInstantiationModel] = Field(default_factory=list)


def _load_json(path: Path, what: str) -> Any:
    if not path.exists():
        raise SourceUnavailable(f"{what} not found: {path}", path=str(path))
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise SourceUnavailable(f"cannot read {what}: {e}", path=str(path)) from e
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SourceUnavailable(f"{what} is not valid JSON: {e}", path=str(path)) from e


def _validate(model: type[BaseModel], data: Any, path: Path, what: str) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise SourceUnavailable(
            f"invalid {what} at {location}: {first['msg']} ({e.error_count()} error(s))",
            path=str(path),
        ) from e


class SnapshotAdapter(InMemoryAdapter):
    """Metadata adapter backed by a decoded JSON snapshot."""

    def __init__(self, pointer_size: int | None = None) -> None:
        super().__init__()
        # None when no image layout was given; the configured size applies
        self.pointer_size = pointer_size

    @classmethod
    def open(cls, metadata_path: Path, image_path: Path | None = None) -> SnapshotAdapter:
        """Load and validate a snapshot.

        Args:
            metadata_path: Decoded metadata document
            image_path: Image-layout document, if available

        Returns:
            Adapter over the snapshot

        Raises:
            SourceUnavailable: If a document is missing, unreadable or invalid
        """
        metadata = _validate(
            MetadataSnapshot, _load_json(metadata_path, "metadata"), metadata_path, "metadata"
        )
        image = ImageLayout()
        if image_path is not None:
            image = _validate(ImageLayout, _load_json(image_path, "image layout"), image_path, "image layout")

        adapter = cls(pointer_size=image.pointer_size if image_path is not None else None)
        adapter._populate(metadata, image)
        logger.debug(
            "Loaded snapshot %s: %d assemblies, %d types",
            metadata_path,
            len(metadata.assemblies),
            len(metadata.types),
        )
        return adapter

    def _populate(self, metadata: MetadataSnapshot, image: ImageLayout) -> None:
        for asm in metadata.assemblies:
            self.add_assembly(AssemblyRecord(asm.token, asm.name))

        for t in metadata.types:
            native = image.types.get(t.token, TypeLayoutModel())
            record = TypeDefinitionRecord(
                token=t.token,
                name=t.name,
                namespace=t.namespace,
                assembly=t.assembly,
                kind=t.kind,
                declaring_token=t.declaring,
                parent=t.parent.to_reference() if t.parent else None,
                interfaces=tuple(i.to_reference() for i in t.interfaces),
                layout=t.layout,
                packing=t.packing,
                size=native.size,
                alignment=native.alignment,
                enum_underlying=t.enum_underlying,
            )
            fields = [
                FieldRecord(
                    token=f.token,
                    name=f.name,
                    type=f.type.to_reference(),
                    offset=native.field_offsets.get(f.token),
                    is_static=f.is_static,
                    is_literal=f.is_literal,
                    default_value=f.default_value,
                )
                for f in t.fields
            ]
            methods = [
                MethodRecord(
                    token=m.token,
                    name=m.name,
                    return_type=m.return_type.to_reference(),
                    parameters=tuple(
                        ParameterRecord(p.name, p.type.to_reference(), p.mode) for p in m.parameters
                    ),
                    generic_parameters=tuple(m.generic_parameters),
                    is_static=m.is_static,
                    is_virtual=m.is_virtual,
                    is_abstract=m.is_abstract,
                    slot=image.method_slots.get(m.token),
                    overrides=m.overrides,
                )
                for m in t.methods
            ]
            properties = [
                PropertyRecord(p.name, p.type.to_reference(), p.getter, p.setter) for p in t.properties
            ]
            self.add_type(
                record,
                fields=fields,
                methods=methods,
                generic_parameters=t.generic_parameters,
                vtable=native.vtable,
                properties=properties,
            )

        for inst in image.generic_instantiations:
            self.add_instantiation(inst.to_reference())

        for inst in image.generic_method_instantiations:
            self.add_method_instantiation(
                MethodInstantiationRecord(
                    method=inst.method,
                    arguments=tuple(a.to_reference() for a in inst.arguments),
                    declaring_arguments=tuple(a.to_reference() for a in inst.declaring_arguments),
                )
            )


__all__ = ["SnapshotAdapter", "MetadataSnapshot", "ImageLayout"]
