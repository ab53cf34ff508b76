"""Identifier sanitizer and per-target name table.

Original metadata names may contain characters no target language
accepts, collide with reserved words, or collide with each other once
cleaned. The sanitizer turns (original, scope, kind, token) into a legal
identifier that is unique within its scope. A colliding name gets the
token of the thing it names as a suffix, so the result depends only on
the input and never on which thread asked first.
"""

from __future__ import annotations

import logging
import re
import zlib
from collections import defaultdict

from declgen.graph.models import TypeNode
from declgen.graph.ordering import EmissionOrder
from declgen.graph.store import TypeGraph
from declgen.naming.rules import CaseStyle, NameKind, NamingRules
from declgen.paths import GLOBAL_NAMESPACE

logger = logging.getLogger(__name__)

# Scope of top-level namespace segments
ROOT_SCOPE = "ns:"

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_WORD_SPLIT = re.compile(r"[^0-9A-Za-z]+")


def to_snake(name: str) -> str:
    """GetHTTPValue -> get_http_value."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def to_pascal(name: str) -> str:
    """get_value -> GetValue."""
    return "".join(part[:1].upper() + part[1:] for part in _WORD_SPLIT.split(name) if part)


class NameSanitizer:
    """Maps original names to legal identifiers unique per scope."""

    def __init__(self, rules: NamingRules) -> None:
        self.rules = rules
        self._pattern = re.compile(rules.invalid_characters) if rules.invalid_characters else None
        self._taken: dict[str, dict[str, tuple[NameKind, str]]] = defaultdict(dict)
        self._assigned: dict[tuple[str, NameKind, int], str] = {}

    def clean(self, original: str, kind: NameKind) -> str:
        """Legal spelling of a name, ignoring collisions."""
        if not original.strip():
            return f"{self.rules.prefix}unnamed"

        name = original
        style = self.rules.case_for(kind)
        if style == CaseStyle.SNAKE:
            name = to_snake(name)
        elif style == CaseStyle.PASCAL:
            name = to_pascal(name) or name

        if self._pattern is None:
            return name

        trailing_invalid = bool(self._pattern.fullmatch(name[-1]))
        name = self._pattern.sub("_", name)
        if trailing_invalid:
            name = name.rstrip("_") or "_"

        if name in self.rules.reserved or name.lower() in self.rules.reserved_lowercase:
            name = f"{self.rules.prefix}{name}"
        if name[0].isdigit():
            name = f"{self.rules.prefix}{name}"
        return name

    def sanitize(self, original: str, scope: str, kind: NameKind, token: int) -> str:
        """Unique legal identifier for a named thing.

        Args:
            original: Name as found in metadata
            scope: Emission scope the identifier must be unique in
            kind: What the identifier names
            token: Stable token of the named thing, used for collision suffixes

        Returns:
            The identifier; asking again with the same scope, kind and
            token returns the same identifier
        """
        key = (scope, kind, token)
        if key in self._assigned:
            return self._assigned[key]

        taken = self._taken[scope]
        name = self.clean(original, kind)
        holder = taken.get(name)
        shares_overload = (
            holder is not None
            and self.rules.allow_overloads
            and kind == NameKind.METHOD
            and holder == (NameKind.METHOD, original)
        )
        if holder is not None and not shares_overload:
            base = name
            # Synthetic keys are negative; "-" is not an identifier character
            suffix = str(token) if token >= 0 else f"n{-token}"
            name = f"{base}_{suffix}"
            counter = 2
            while name in taken:
                name = f"{base}_{suffix}_{counter}"
                counter += 1
            logger.debug("Renamed %r to %s in %s", original, name, scope)

        taken.setdefault(name, (kind, original))
        self._assigned[key] = name
        return name

    def reserve(self, scope: str, name: str) -> None:
        """Keep an identifier out of a scope; later claimants get a suffix."""
        self._taken[scope].setdefault(name, (NameKind.NAMESPACE, ""))

    def original_of(self, scope: str, name: str) -> str | None:
        """Original name an identifier was assigned for."""
        holder = self._taken.get(scope, {}).get(name)
        return holder[1] if holder else None


class NameTable:
    """Every identifier a target needs, assigned in emission order."""

    def __init__(self, rules: NamingRules) -> None:
        self.rules = rules
        self.sanitizer = NameSanitizer(rules)
        self._namespaces: dict[str, list[str]] = {}
        self._types: dict[int, str] = {}
        self._members: dict[tuple[str, int, int], str] = {}
        self._parameters: dict[tuple[int, int, int], str] = {}
        self._method_generics: dict[tuple[int, int, int], str] = {}
        for name in sorted(rules.reserved_namespaces):
            self.sanitizer.reserve(ROOT_SCOPE, name)

    @classmethod
    def build(cls, graph: TypeGraph, order: EmissionOrder, rules: NamingRules) -> NameTable:
        """Assign names for namespaces, types and members of a frozen graph."""
        table = cls(rules)
        for namespace in sorted({node.namespace for node in graph.nodes()}):
            table._assign_namespace(namespace)
        tokens = order.definitions()
        for token in tokens:
            table._assign_type(graph, graph.node(token))
        for token in tokens:
            table._assign_members(graph.node(token))
        return table

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def namespace_segments(self, namespace: str) -> list[str]:
        """Sanitized path segments of a namespace; the global namespace has one."""
        return self._namespaces[namespace]

    def type_name(self, token: int) -> str:
        return self._types[token]

    def field_name(self, owner: int, index: int) -> str:
        return self._members[("field", owner, index)]

    def method_name(self, owner: int, index: int) -> str:
        return self._members[("method", owner, index)]

    def property_name(self, owner: int, index: int) -> str:
        return self._members[("property", owner, index)]

    def generic_parameter_name(self, owner: int, index: int) -> str:
        return self._members[("generic", owner, index)]

    def parameter_name(self, owner: int, method: int, index: int) -> str:
        return self._parameters[(owner, method, index)]

    def method_generic_parameter_name(self, owner: int, method: int, index: int) -> str:
        return self._method_generics[(owner, method, index)]

    def original_type_name(self, namespace: str, name: str) -> str | None:
        return self.sanitizer.original_of(self._type_scope(namespace), name)

    # -------------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------------

    @staticmethod
    def _type_scope(namespace: str) -> str:
        return f"ns:{namespace or GLOBAL_NAMESPACE}"

    def _assign_namespace(self, namespace: str) -> None:
        parts = namespace.split(".") if namespace else [GLOBAL_NAMESPACE]
        segments: list[str] = []
        for i, part in enumerate(parts):
            prefix = ".".join(parts[: i + 1])
            if prefix in self._namespaces:
                segments = list(self._namespaces[prefix])
                continue
            parent = ".".join(parts[:i])
            scope = f"ns:{parent}" if parent else ROOT_SCOPE
            token = zlib.crc32(prefix.encode("utf-8"))
            segments.append(self.sanitizer.sanitize(part, scope, NameKind.NAMESPACE, token))
            self._namespaces[prefix] = list(segments)
        self._namespaces[namespace] = segments

    def _assign_type(self, graph: TypeGraph, node: TypeNode) -> None:
        scope = self._type_scope(node.namespace)
        if node.is_instantiation:
            definition = graph.node(node.definition)
            args = ", ".join(graph.display_name(a) for a in node.generic_arguments)
            original = f"{self._relative_name(definition)}<{args}>"
        else:
            original = self._relative_name(node)
        self._types[node.token] = self.sanitizer.sanitize(original, scope, NameKind.TYPE, node.token)

    @staticmethod
    def _relative_name(node: TypeNode) -> str:
        if node.namespace and node.full_name.startswith(node.namespace + "."):
            return node.full_name[len(node.namespace) + 1 :]
        return node.full_name

    def _assign_members(self, node: TypeNode) -> None:
        scope = f"members:{node.token}"
        sanitize = self.sanitizer.sanitize

        if not node.is_instantiation:
            for i, name in enumerate(node.generic_parameters):
                self._members[("generic", node.token, i)] = sanitize(name, scope, NameKind.GENERIC_PARAMETER, i)
        for i, f in enumerate(node.fields):
            self._members[("field", node.token, i)] = sanitize(f.name, scope, NameKind.FIELD, f.token)
        for i, prop in enumerate(node.properties):
            self._members[("property", node.token, i)] = sanitize(prop.name, scope, NameKind.PROPERTY, -1 - i)
        for mi, method in enumerate(node.methods):
            self._members[("method", node.token, mi)] = sanitize(method.name, scope, NameKind.METHOD, method.token)
            param_scope = f"params:{node.token}:{mi}"
            # Parameters may not shadow the enclosing type's generic parameters
            for gi in range(len(node.generic_parameters) if not node.is_instantiation else 0):
                sanitize(node.generic_parameters[gi], param_scope, NameKind.GENERIC_PARAMETER, -1 - gi)
            for gi, name in enumerate(method.generic_parameters):
                self._method_generics[(node.token, mi, gi)] = sanitize(
                    name, param_scope, NameKind.GENERIC_PARAMETER, gi
                )
            for pi, param in enumerate(method.parameters):
                self._parameters[(node.token, mi, pi)] = sanitize(
                    param.name or f"arg{pi}", param_scope, NameKind.PARAMETER, pi
                )


__all__ = ["NameSanitizer", "NameTable", "to_snake", "to_pascal"]
