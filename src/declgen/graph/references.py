"""Structural type references.

A TypeReference points at a type node by token, at a primitive, or at a
shape built from other references (pointer, array, generic instantiation).
References compare and hash structurally, so two instantiations spelled
the same way anywhere in the metadata are the same key.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, NamedTuple

from declgen.graph.schema import Primitive, RefKind

_WRAPPERS = (RefKind.POINTER, RefKind.BYREF, RefKind.ARRAY)

# Attribute a reference of each kind cannot do without
REQUIRED_PART: dict[RefKind, str] = {
    RefKind.PRIMITIVE: "primitive",
    RefKind.TYPE: "token",
    RefKind.POINTER: "element",
    RefKind.BYREF: "element",
    RefKind.ARRAY: "element",
    RefKind.GENERIC_INST: "token",
    RefKind.GENERIC_PARAM: "position",
    RefKind.METHOD_GENERIC_PARAM: "position",
}


def missing_part(kind: RefKind, parts: Any) -> str | None:
    """Name of the required attribute `parts` lacks for a reference kind."""
    part = REQUIRED_PART[kind]
    return part if getattr(parts, part) is None else None


@dataclass(frozen=True)
class TypeReference:
    """A possibly-indirect reference to a type.

    Generic parameter references carry their position; the name is kept
    for display only and does not take part in equality.
    """

    kind: RefKind
    token: int | None = None
    primitive: Primitive | None = None
    element: TypeReference | None = None
    arguments: tuple[TypeReference, ...] = ()
    position: int | None = None
    name: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        part = missing_part(self.kind, self)
        if part is not None:
            raise ValueError(f"{self.kind.value} reference requires '{part}'")

    @property
    def target(self) -> int:
        """Token of a type or generic instantiation reference."""
        if self.token is None:
            raise ValueError(f"{self.kind.value} reference names no type")
        return self.token

    @property
    def inner(self) -> TypeReference:
        """Element of a pointer, byref or array reference."""
        if self.element is None:
            raise ValueError(f"{self.kind.value} reference has no element")
        return self.element

    @property
    def index(self) -> int:
        """Position of a generic parameter reference."""
        if self.position is None:
            raise ValueError(f"{self.kind.value} reference has no position")
        return self.position

    @property
    def scalar(self) -> Primitive:
        """Primitive of a primitive reference."""
        if self.primitive is None:
            raise ValueError(f"{self.kind.value} reference has no primitive")
        return self.primitive

    @classmethod
    def of_primitive(cls, primitive: Primitive) -> TypeReference:
        return cls(RefKind.PRIMITIVE, primitive=primitive)

    @classmethod
    def of_type(cls, token: int) -> TypeReference:
        return cls(RefKind.TYPE, token=token)

    @classmethod
    def pointer_to(cls, element: TypeReference) -> TypeReference:
        return cls(RefKind.POINTER, element=element)

    @classmethod
    def byref_to(cls, element: TypeReference) -> TypeReference:
        return cls(RefKind.BYREF, element=element)

    @classmethod
    def array_of(cls, element: TypeReference) -> TypeReference:
        return cls(RefKind.ARRAY, element=element)

    @classmethod
    def generic(cls, definition: int, *arguments: TypeReference) -> TypeReference:
        return cls(RefKind.GENERIC_INST, token=definition, arguments=tuple(arguments))

    @classmethod
    def var(cls, position: int, name: str | None = None) -> TypeReference:
        return cls(RefKind.GENERIC_PARAM, position=position, name=name)

    @classmethod
    def mvar(cls, position: int, name: str | None = None) -> TypeReference:
        return cls(RefKind.METHOD_GENERIC_PARAM, position=position, name=name)

    @property
    def is_wrapper(self) -> bool:
        """True for pointer, byref and array references."""
        return self.kind in _WRAPPERS

    @property
    def is_closed(self) -> bool:
        """True if no generic parameter appears anywhere in the reference."""
        return not any(
            ref.kind in (RefKind.GENERIC_PARAM, RefKind.METHOD_GENERIC_PARAM) for ref in self.walk()
        )

    def walk(self) -> Iterator[TypeReference]:
        """Yield this reference and every nested reference, depth first."""
        stack = [self]
        while stack:
            ref = stack.pop()
            yield ref
            if ref.element is not None:
                stack.append(ref.element)
            stack.extend(reversed(ref.arguments))

    def innermost(self) -> TypeReference:
        """Strip pointer, byref and array wrappers."""
        ref = self
        while ref.is_wrapper and ref.element is not None:
            ref = ref.element
        return ref

    def depth(self) -> int:
        """Generic nesting depth: 0 for non-generic, 1 for List<int>, 2 for List<List<int>>."""
        if self.element is not None:
            return self.element.depth()
        if self.kind != RefKind.GENERIC_INST:
            return 0
        return 1 + max((arg.depth() for arg in self.arguments), default=0)

    def substitute(
        self,
        arguments: Sequence[TypeReference],
        method_arguments: Sequence[TypeReference] | None = None,
    ) -> TypeReference:
        """Replace generic parameters with concrete arguments.

        Method generic parameters are only replaced when method_arguments
        is given.

        Raises:
            IndexError: If a parameter position has no argument
        """
        if self.kind == RefKind.GENERIC_PARAM:
            if self.index >= len(arguments):
                raise IndexError(self.index)
            return arguments[self.index]
        if self.kind == RefKind.METHOD_GENERIC_PARAM:
            if method_arguments is None:
                return self
            if self.index >= len(method_arguments):
                raise IndexError(self.index)
            return method_arguments[self.index]
        if self.element is not None:
            return TypeReference(self.kind, element=self.element.substitute(arguments, method_arguments))
        if self.arguments:
            return TypeReference(
                self.kind,
                token=self.token,
                arguments=tuple(a.substitute(arguments, method_arguments) for a in self.arguments),
            )
        return self

    def display(self, type_name: Callable[[int], str]) -> str:
        """Human-readable spelling, using type_name to name tokens."""
        if self.kind == RefKind.PRIMITIVE:
            return self.scalar.value
        if self.kind == RefKind.TYPE:
            return type_name(self.target)
        if self.kind == RefKind.POINTER:
            return f"{self.inner.display(type_name)}*"
        if self.kind == RefKind.BYREF:
            return f"{self.inner.display(type_name)}&"
        if self.kind == RefKind.ARRAY:
            return f"{self.inner.display(type_name)}[]"
        if self.kind == RefKind.GENERIC_INST:
            args = ", ".join(a.display(type_name) for a in self.arguments)
            return f"{type_name(self.target)}<{args}>"
        prefix = "!" if self.kind == RefKind.GENERIC_PARAM else "!!"
        return self.name or f"{prefix}{self.position}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {"kind": self.kind.value}
        if self.token is not None:
            data["token"] = self.token
        if self.primitive is not None:
            data["primitive"] = self.primitive.value
        if self.element is not None:
            data["element"] = self.element.to_dict()
        if self.arguments:
            data["arguments"] = [a.to_dict() for a in self.arguments]
        if self.position is not None:
            data["position"] = self.position
        if self.name is not None:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TypeReference:
        """Create a reference from its dictionary form."""
        return cls(
            kind=RefKind(data["kind"]),
            token=data.get("token"),
            primitive=Primitive(data["primitive"]) if data.get("primitive") else None,
            element=cls.from_dict(data["element"]) if data.get("element") else None,
            arguments=tuple(cls.from_dict(a) for a in data.get("arguments", ())),
            position=data.get("position"),
            name=data.get("name"),
        )


class InstantiationKey(NamedTuple):
    """Identity of a closed generic instantiation.

    Two keys are equal iff their definitions and argument sequences are
    structurally equal.
    """

    definition: int
    arguments: tuple[TypeReference, ...]

    @classmethod
    def from_reference(cls, ref: TypeReference) -> InstantiationKey:
        if ref.kind != RefKind.GENERIC_INST or ref.token is None:
            raise ValueError(f"not a generic instantiation: {ref.kind.value}")
        return cls(ref.token, ref.arguments)

    def to_reference(self) -> TypeReference:
        return TypeReference.generic(self.definition, *self.arguments)


__all__ = ["TypeReference", "InstantiationKey"]
