"""Field offset and type size computation.

Fills in whatever the image did not supply, in emission order so that a
type's base and by-value field types are always laid out first.
"""

from __future__ import annotations

import logging

from declgen.errors import MetadataInconsistency, Stage
from declgen.graph.models import TypeNode
from declgen.graph.ordering import EmissionOrder
from declgen.graph.references import TypeReference
from declgen.graph.schema import LayoutKind, Primitive, RefKind, TypeKind
from declgen.graph.store import TypeGraph

logger = logging.getLogger(__name__)

# Fixed-size primitives; native ints and references are pointer-sized
PRIMITIVE_SIZES: dict[Primitive, int] = {
    Primitive.VOID: 0,
    Primitive.BOOLEAN: 1,
    Primitive.CHAR: 2,
    Primitive.I1: 1,
    Primitive.U1: 1,
    Primitive.I2: 2,
    Primitive.U2: 2,
    Primitive.I4: 4,
    Primitive.U4: 4,
    Primitive.I8: 8,
    Primitive.U8: 8,
    Primitive.R4: 4,
    Primitive.R8: 8,
}


def align_up(value: int, alignment: int) -> int:
    if alignment <= 1:
        return value
    return (value + alignment - 1) // alignment * alignment


class LayoutCalculator:
    """Computes field offsets, sizes and alignments."""

    def __init__(self, graph: TypeGraph) -> None:
        self.graph = graph
        self.pointer_size = graph.pointer_size

    @property
    def object_header_size(self) -> int:
        """Size of the klass and monitor words every object starts with."""
        return 2 * self.pointer_size

    def apply(self, order: EmissionOrder) -> None:
        """Lay out every type in emission order."""
        for token in order.definitions():
            self.lay_out(self.graph.node(token))

    def primitive_size(self, primitive: Primitive) -> int:
        return PRIMITIVE_SIZES.get(primitive, self.pointer_size)

    def size_of(self, ref: TypeReference, owner: TypeNode) -> tuple[int, int]:
        """Storage size and alignment of a field of the given type."""
        if ref.kind == RefKind.PRIMITIVE:
            size = self.primitive_size(ref.scalar)
            return size, max(size, 1)
        if ref.kind not in (RefKind.TYPE, RefKind.GENERIC_INST):
            return self.pointer_size, self.pointer_size

        target = self.graph.target_of(ref)
        node = self.graph.get(target) if target is not None else None
        if node is None:
            raise MetadataInconsistency(
                f"field type {self.graph.display_name(ref)} of {owner.full_name} is not in the graph",
                token=ref.token if ref.token is not None else -1,
                referenced_by=owner.token,
                stage=Stage.LAYOUT,
            )
        if not node.is_value_type:
            return self.pointer_size, self.pointer_size
        if node.size is None:
            raise MetadataInconsistency(
                f"size of {node.full_name} is unknown when laying out {owner.full_name}",
                token=node.token,
                referenced_by=owner.token,
                stage=Stage.LAYOUT,
            )
        return node.size, node.alignment or 1

    def lay_out(self, node: TypeNode) -> None:
        """Fill in offsets, size and alignment of one type."""
        if node.kind == TypeKind.INTERFACE or node.is_generic_definition:
            return

        if node.kind == TypeKind.ENUM:
            underlying = self.primitive_size(node.enum_underlying or Primitive.I4)
            for f in node.instance_fields():
                f.offset = 0 if f.offset is None else f.offset
                f.size = underlying
            node.size = node.size if node.size is not None else underlying
            node.alignment = node.alignment or underlying
            return

        start, alignment = self._base(node)
        cursor = start
        previous: int | None = None

        for f in node.instance_fields():
            size, field_alignment = self.size_of(f.type, node)
            if node.packing:
                field_alignment = min(field_alignment, node.packing)
            f.size = size

            if f.offset is None:
                if node.layout == LayoutKind.EXPLICIT:
                    raise MetadataInconsistency(
                        f"field {f.name} of explicit-layout {node.full_name} has no offset",
                        token=f.token,
                        referenced_by=node.token,
                        stage=Stage.LAYOUT,
                    )
                f.offset = align_up(cursor, field_alignment)
            else:
                if node.layout == LayoutKind.SEQUENTIAL and previous is not None and f.offset < previous:
                    raise MetadataInconsistency(
                        f"field {f.name} of sequential {node.full_name} at 0x{f.offset:x} "
                        f"precedes the previous field at 0x{previous:x}",
                        token=f.token,
                        referenced_by=node.token,
                        stage=Stage.LAYOUT,
                    )
                if f.offset < start:
                    raise MetadataInconsistency(
                        f"field {f.name} at 0x{f.offset:x} overlaps the base of {node.full_name}",
                        token=f.token,
                        referenced_by=node.token,
                        stage=Stage.LAYOUT,
                    )

            previous = f.offset
            cursor = max(cursor, f.offset + size)
            alignment = max(alignment, field_alignment)

        if node.alignment is None:
            node.alignment = alignment
        if node.size is None:
            size = align_up(cursor, node.alignment)
            # Empty structs still occupy one byte
            node.size = max(size, 1) if node.is_value_type else size

    def _base(self, node: TypeNode) -> tuple[int, int]:
        """Offset the first field may start at and the inherited alignment."""
        if node.is_value_type:
            return 0, 1
        if node.parent is None:
            return self.object_header_size, self.pointer_size
        base_token = self.graph.target_of(node.parent)
        base = self.graph.get(base_token) if base_token is not None else None
        if base is None or base.size is None:
            raise MetadataInconsistency(
                f"base of {node.full_name} has no layout",
                token=base_token if base_token is not None else -1,
                referenced_by=node.token,
                stage=Stage.LAYOUT,
            )
        return base.size, base.alignment or self.pointer_size


__all__ = ["LayoutCalculator", "PRIMITIVE_SIZES", "align_up"]
