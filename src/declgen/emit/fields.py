"""Instance field placement shared by the struct-emitting targets.

Turns a laid-out type's instance fields into a sequence of slots that,
rendered in order inside a packed struct, reproduce the runtime layout
byte for byte: explicit padding between fields and at the tail, and
unions for fields whose byte ranges overlap (explicit layouts).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from declgen.graph.models import FieldNode, TypeNode


@dataclass
class Padding:
    offset: int
    size: int


@dataclass
class Placed:
    """A field at its offset. index is the position in TypeNode.fields."""

    index: int
    field: FieldNode
    offset: int
    size: int


@dataclass
class Overlap:
    """Fields sharing bytes; rendered as a union starting at offset."""

    offset: int
    size: int
    members: list[Placed] = field(default_factory=list)


Slot = Padding | Placed | Overlap


def plan_instance_fields(node: TypeNode, start: int) -> list[Slot] | None:
    """Slots covering [start, node.size).

    Args:
        node: Type whose instance fields have offsets and sizes
        start: First byte owned by the type (after base or object header)

    Returns:
        Slots in offset order, or None if any field has no layout yet
        (open generic definitions)
    """
    placed = [
        Placed(i, f, f.offset, f.size)  # type: ignore[arg-type]
        for i, f in enumerate(node.fields)
        if f.is_instance
    ]
    if any(p.offset is None or p.size is None for p in placed):
        return None
    placed.sort(key=lambda p: (p.offset, p.index))

    groups: list[list[Placed]] = []
    group_end = -1
    for p in placed:
        if groups and p.offset < group_end:
            groups[-1].append(p)
            group_end = max(group_end, p.offset + p.size)
        else:
            groups.append([p])
            group_end = p.offset + p.size

    slots: list[Slot] = []
    cursor = start
    for group in groups:
        offset = group[0].offset
        end = max(p.offset + p.size for p in group)
        if offset > cursor:
            slots.append(Padding(cursor, offset - cursor))
        if len(group) == 1:
            slots.append(group[0])
        else:
            slots.append(Overlap(offset, end - offset, group))
        cursor = max(cursor, end)

    if node.size is not None and node.size > cursor:
        slots.append(Padding(cursor, node.size - cursor))
    return slots


def padding_name(offset: int) -> str:
    return f"_padding_0x{offset:x}"


__all__ = ["Padding", "Placed", "Overlap", "Slot", "plan_instance_fields", "padding_name"]
