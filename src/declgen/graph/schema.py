"""Type graph schema definitions.

Defines the kinds of types, references, layouts and edges that make up
the in-memory type graph built from metadata records.
"""

from __future__ import annotations

from enum import Enum


class TypeKind(Enum):
    """Kinds of type nodes in the graph."""

    CLASS = "class"
    STRUCT = "struct"
    INTERFACE = "interface"
    ENUM = "enum"


class LayoutKind(Enum):
    """How instance fields of a type are laid out."""

    AUTO = "auto"  # Runtime chooses; offsets come from the image
    SEQUENTIAL = "sequential"  # Declaration order, natural alignment
    EXPLICIT = "explicit"  # Every field carries an explicit offset


class Primitive(Enum):
    """Built-in element types (ECMA-335 II.23.1.16)."""

    VOID = "void"
    BOOLEAN = "bool"
    CHAR = "char"
    I1 = "i1"
    U1 = "u1"
    I2 = "i2"
    U2 = "u2"
    I4 = "i4"
    U4 = "u4"
    I8 = "i8"
    U8 = "u8"
    R4 = "r4"
    R8 = "r8"
    I = "i"  # noqa: E741  native int
    U = "u"  # native unsigned int
    STRING = "string"
    OBJECT = "object"

    @property
    def is_reference(self) -> bool:
        """True for primitives that are managed references."""
        return self in (Primitive.STRING, Primitive.OBJECT)


class RefKind(Enum):
    """Shapes a type reference can take."""

    PRIMITIVE = "primitive"
    TYPE = "type"  # A type definition by token
    POINTER = "pointer"  # Unmanaged pointer T*
    BYREF = "byref"  # Managed reference ref T
    ARRAY = "array"  # Single-dimension zero-based array T[]
    GENERIC_INST = "generic_inst"  # Definition token + ordered arguments
    GENERIC_PARAM = "var"  # Class generic parameter by position
    METHOD_GENERIC_PARAM = "mvar"  # Method generic parameter by position


class ParameterMode(Enum):
    """Passing mode of a by-reference method parameter."""

    IN = "in"
    OUT = "out"
    REF = "ref"


class EdgeType(Enum):
    """Typed relations between type nodes.

    Every edge reads "source <relation> target".
    """

    INHERITS = "inherits"  # Derived -> base
    IMPLEMENTS = "implements"  # Type -> interface
    CONTAINS_FIELD_OF = "contains-field-of"  # Owner -> field type
    GENERIC_ARGUMENT_OF = "generic-argument-of"  # Argument -> instantiation
    NESTED_IN = "nested-in"  # Nested type -> declaring type


__all__ = [
    "TypeKind",
    "LayoutKind",
    "Primitive",
    "RefKind",
    "ParameterMode",
    "EdgeType",
]
