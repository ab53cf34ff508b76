"""Native header emitter (C++).

Output layout, relative to the destination:

    declgen_runtime.hpp          # object header, string, array, TypeList
    declgen.hpp                  # umbrella: everything in emission order
    <Namespace>/<Segments>/
        <Type>.hpp               # one self-contained header per type
        __namespace.hpp          # every type of the namespace

Headers include each other root-relative, so the destination directory
goes on the include path.
"""

from __future__ import annotations

from collections import defaultdict
from pathlib import PurePosixPath

from declgen.emit.base import EmitOptions, EmitResult
from declgen.emit.fields import Overlap, Padding, Placed, Slot, padding_name, plan_instance_fields
from declgen.graph.models import FieldNode, MethodNode, MethodSpecialization, TypeNode
from declgen.graph.ordering import EmissionOrder, EntryKind
from declgen.graph.references import TypeReference
from declgen.graph.schema import EdgeType, ParameterMode, Primitive, RefKind, TypeKind
from declgen.graph.store import TypeGraph
from declgen.naming.rules import CPP_RULES, NamingRules
from declgen.naming.sanitizer import NameTable
from declgen.paths import NAMESPACE_HEADER, RUNTIME_HEADER, namespace_dir

BANNER = "// Generated by declgen. Do not edit."

PRIMITIVES: dict[Primitive, str] = {
    Primitive.VOID: "void",
    Primitive.BOOLEAN: "bool",
    Primitive.CHAR: "char16_t",
    Primitive.I1: "int8_t",
    Primitive.U1: "uint8_t",
    Primitive.I2: "int16_t",
    Primitive.U2: "uint16_t",
    Primitive.I4: "int32_t",
    Primitive.U4: "uint32_t",
    Primitive.I8: "int64_t",
    Primitive.U8: "uint64_t",
    Primitive.R4: "float",
    Primitive.R8: "double",
    Primitive.I: "intptr_t",
    Primitive.U: "uintptr_t",
    Primitive.STRING: "::declgen::Il2CppString*",
    Primitive.OBJECT: "::declgen::Il2CppObject*",
}

RUNTIME_PRELUDE = f"""#pragma once
{BANNER}
#include <cstddef>
#include <cstdint>

namespace declgen {{

struct Il2CppObject {{
    void* klass;
    void* monitor;
}};

struct Il2CppString : public Il2CppObject {{
    int32_t length;
    char16_t chars[1];
}};

template<typename T>
struct Il2CppArray : public Il2CppObject {{
    void* bounds;
    uintptr_t max_length;
    T values[1];
}};

template<typename... Ts>
struct TypeList {{}};

}}  // namespace declgen
"""


def hex_(value: int) -> str:
    return f"0x{value:x}"


class NativeHeaderEmitter:
    """Emit header-only C++ declarations."""

    @property
    def target_name(self) -> str:
        return "native-header"

    @property
    def description(self) -> str:
        return "Header-only C++ declarations with packed layouts"

    @property
    def naming_rules(self) -> NamingRules:
        return CPP_RULES

    def emit(
        self,
        graph: TypeGraph,
        order: EmissionOrder,
        names: NameTable,
        options: EmitOptions | None = None,
    ) -> EmitResult:
        """Render one header per type plus runtime, namespace and umbrella headers."""
        options = options or EmitOptions()
        renderer = _HeaderRenderer(graph, names, options)

        artifacts: dict[str, str] = {RUNTIME_HEADER: RUNTIME_PRELUDE}
        by_namespace: dict[str, list[int]] = defaultdict(list)
        type_count = 0
        for token in order.definitions():
            node = graph.node(token)
            by_namespace[node.namespace].append(token)
            if node.is_instantiation:
                continue
            artifacts[renderer.header_path(token)] = renderer.type_header(node)
            type_count += 1

        if options.extra.get("namespace_headers", True):
            for namespace in sorted(by_namespace):
                path = str(PurePosixPath(renderer.namespace_path(namespace)) / NAMESPACE_HEADER)
                artifacts[path] = renderer.namespace_header(by_namespace[namespace])

        umbrella = options.extra.get("umbrella", "declgen.hpp")
        artifacts[umbrella] = renderer.umbrella(order)

        return EmitResult(
            target=self.target_name,
            artifacts=artifacts,
            type_count=type_count,
            forward_count=len(order.forward_declarations()),
        )


class _HeaderRenderer:
    """Rendering state for one emit call."""

    def __init__(self, graph: TypeGraph, names: NameTable, options: EmitOptions) -> None:
        self.graph = graph
        self.names = names
        self.verbose = options.verbose_comments
        self.asserts = options.layout_asserts
        self.properties = options.extra.get("properties", True)

    # -------------------------------------------------------------------------
    # Names and paths
    # -------------------------------------------------------------------------

    def namespace_path(self, namespace: str) -> str:
        return namespace_dir(self.names.namespace_segments(namespace)).as_posix()

    def cpp_namespace(self, namespace: str) -> str:
        return "::".join(self.names.namespace_segments(namespace))

    def header_path(self, token: int) -> str:
        node = self.graph.node(token)
        if node.is_instantiation:
            return self.header_path(node.definition)
        return f"{self.namespace_path(node.namespace)}/{self.names.type_name(token)}.hpp"

    def qualified(self, token: int) -> str:
        node = self.graph.node(token)
        return f"::{self.cpp_namespace(node.namespace)}::{self.names.type_name(token)}"

    def type_id(self, ref: TypeReference, owner: int, method: int | None = None) -> str:
        """Spelling of a named type without the pointer for reference types."""
        if ref.kind == RefKind.TYPE:
            return self.qualified(ref.target)
        if ref.kind == RefKind.GENERIC_INST:
            args = ", ".join(self.render(a, owner, method) for a in ref.arguments)
            return f"{self.qualified(ref.target)}<{args}>"
        return self.render(ref, owner, method)

    def render(self, ref: TypeReference, owner: int, method: int | None = None) -> str:
        """C++ spelling of a reference as a field, parameter or argument type."""
        if ref.kind == RefKind.PRIMITIVE:
            return PRIMITIVES[ref.scalar]
        if ref.kind in (RefKind.TYPE, RefKind.GENERIC_INST):
            spelled = self.type_id(ref, owner, method)
            return spelled if self.graph.node(ref.target).is_value_type else f"{spelled}*"
        if ref.kind in (RefKind.POINTER, RefKind.BYREF):
            return f"{self.render(ref.inner, owner, method)}*"
        if ref.kind == RefKind.ARRAY:
            return f"::declgen::Il2CppArray<{self.render(ref.inner, owner, method)}>*"
        if ref.kind == RefKind.GENERIC_PARAM:
            return self.names.generic_parameter_name(owner, ref.index)
        assert method is not None
        return self.names.method_generic_parameter_name(owner, method, ref.index)

    def template_head(self, node: TypeNode) -> str:
        params = ", ".join(
            f"typename {self.names.generic_parameter_name(node.token, i)}"
            for i in range(len(node.generic_parameters))
        )
        return f"template<{params}>"

    def forward_decl(self, token: int) -> str:
        """Declaration that makes a type's name usable before its definition."""
        node = self.graph.node(token)
        if node.is_instantiation:
            return self.forward_decl(node.definition)
        name = self.names.type_name(token)
        if node.kind == TypeKind.ENUM:
            return f"enum class {name} : {PRIMITIVES[node.enum_underlying or Primitive.I4]};"
        if node.is_generic_definition:
            return f"{self.template_head(node)} struct {name};"
        return f"struct {name};"

    def in_namespace(self, namespace: str, lines: list[str]) -> list[str]:
        cpp_ns = self.cpp_namespace(namespace)
        return [f"namespace {cpp_ns} {{", *lines, f"}}  // namespace {cpp_ns}"]

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    def headers_for(self, token: int) -> set[str]:
        """Headers that make a type complete."""
        node = self.graph.node(token)
        if not node.is_instantiation:
            return {self.header_path(token)}
        headers = {self.header_path(token)}
        for arg in node.generic_arguments:
            target = self.graph.target_of(arg)
            if arg.kind in (RefKind.TYPE, RefKind.GENERIC_INST) and target is not None:
                if self.graph.node(target).is_value_type:
                    headers |= self.headers_for(target)
        return headers

    def includes(self, node: TypeNode) -> list[str]:
        headers: set[str] = set()
        for edge in self.graph.edges_from(node.token):
            if edge.type == EdgeType.INHERITS and node.is_value_type:
                continue
            if edge.type in (EdgeType.INHERITS, EdgeType.IMPLEMENTS) or (
                edge.type == EdgeType.CONTAINS_FIELD_OF and edge.by_value
            ):
                headers |= self.headers_for(edge.target)
        headers.discard(self.header_path(node.token))
        return sorted(headers)

    def forward_declarations(self, node: TypeNode, included: list[str]) -> list[str]:
        wanted: set[int] = set()
        for _site, ref, _method in node.reference_sites():
            for sub in ref.walk():
                if sub.kind in (RefKind.TYPE, RefKind.GENERIC_INST) and sub.token is not None:
                    wanted.add(sub.token)
        if node.declaring_token is not None:
            wanted.add(node.declaring_token)
        wanted.discard(node.token)

        by_namespace: dict[str, list[str]] = defaultdict(list)
        for token in sorted(wanted):
            if self.header_path(token) in included:
                continue
            target = self.graph.node(token)
            by_namespace[target.namespace].append(self.forward_decl(token))

        lines: list[str] = []
        for namespace in sorted(by_namespace):
            lines.extend(self.in_namespace(namespace, sorted(set(by_namespace[namespace]))))
        return lines

    # -------------------------------------------------------------------------
    # Type headers
    # -------------------------------------------------------------------------

    def type_header(self, node: TypeNode) -> str:
        included = self.includes(node)
        lines = ["#pragma once", BANNER]
        if self.verbose and node.assembly is not None:
            lines.append(f"// Assembly: {self.graph.assemblies.get(node.assembly, node.assembly)}")
        lines.append(f'#include "{RUNTIME_HEADER}"')
        lines.extend(f'#include "{header}"' for header in included)

        forwards = self.forward_declarations(node, included)
        if forwards:
            lines.append("")
            lines.extend(forwards)

        lines.append("")
        lines.extend(self.in_namespace(node.namespace, self.definition(node)))

        asserts = self.layout_asserts(node)
        if asserts:
            lines.append("")
            lines.extend(asserts)
        return "\n".join(lines) + "\n"

    def definition(self, node: TypeNode) -> list[str]:
        if node.kind == TypeKind.ENUM:
            return self.enum_definition(node)

        name = self.names.type_name(node.token)
        lines: list[str] = []
        if self.verbose:
            lines.append(f"/// @brief {self.describe(node)}")

        packed = not node.is_generic_definition and node.kind != TypeKind.INTERFACE
        head = f"struct {name}"
        base = self.base_clause(node)
        if base:
            head += f" : public {base}"
        if node.is_generic_definition:
            lines.append(self.template_head(node))
        if packed:
            lines.append("#pragma pack(push, 1)")
        lines.append(f"{head} {{")

        body: list[str] = []
        body.extend(self.fields(node))
        if node.interfaces:
            listed = ", ".join(self.type_id(i, node.token) for i in node.interfaces)
            body.append(f"using InterfaceList = ::declgen::TypeList<{listed}>;")
        body.extend(self.constants(node))
        body.extend(self.static_fields(node))
        body.extend(self.methods(node))
        if self.properties:
            body.extend(self.property_accessors(node))

        lines.extend(f"    {line}" if line else "" for line in body)
        lines.append("};")
        if packed:
            lines.append("#pragma pack(pop)")
        return lines

    def describe(self, node: TypeNode) -> str:
        text = f"{node.kind.value.capitalize()} {node.full_name}, token {hex_(node.token)}"
        if node.size is not None and not node.is_generic_definition:
            text += f", size {hex_(node.size)}"
        return text

    def base_clause(self, node: TypeNode) -> str | None:
        if node.kind == TypeKind.INTERFACE or node.is_value_type:
            return None
        if node.parent is None:
            return "::declgen::Il2CppObject"
        return self.type_id(node.parent, node.token)

    def fields(self, node: TypeNode) -> list[str]:
        if node.kind == TypeKind.INTERFACE:
            return []
        slots = None if node.is_generic_definition else plan_instance_fields(node, self.graph.layout_start(node))
        if slots is None:
            lines: list[str] = []
            for i, f in enumerate(node.fields):
                if f.is_instance:
                    lines.extend(self.field_decl(node, i, f))
            return lines
        lines = []
        for slot in slots:
            lines.extend(self.slot_decl(node, slot))
        return lines

    def slot_decl(self, node: TypeNode, slot: Slot) -> list[str]:
        if isinstance(slot, Padding):
            return [f"uint8_t {padding_name(slot.offset)}[{hex_(slot.size)}];"]
        if isinstance(slot, Placed):
            return self.field_decl(node, slot.index, slot.field)
        assert isinstance(slot, Overlap)
        lines = ["union {"]
        if self.verbose:
            lines.insert(0, f"/// @brief Overlapping fields at {hex_(slot.offset)}, size {hex_(slot.size)}")
        for member in slot.members:
            lead = member.offset - slot.offset
            decl = self.field_decl(node, member.index, member.field)
            if lead == 0:
                lines.extend(f"    {line}" for line in decl)
            else:
                lines.append("    struct {")
                lines.append(f"        uint8_t {padding_name(member.offset)}[{hex_(lead)}];")
                lines.extend(f"        {line}" for line in decl)
                lines.append("    };")
        lines.append("};")
        return lines

    def field_decl(self, node: TypeNode, index: int, f: FieldNode) -> list[str]:
        lines = []
        if self.verbose:
            where = f", offset {hex_(f.offset)}" if f.offset is not None else ""
            size = f", size {hex_(f.size)}" if f.size is not None else ""
            lines.append(f"/// @brief Field {f.name}{where}{size}")
        lines.append(f"{self.render(f.type, node.token)} {self.names.field_name(node.token, index)};")
        return lines

    def constants(self, node: TypeNode) -> list[str]:
        lines = []
        for i, f in enumerate(node.fields):
            if not f.is_literal or f.type.kind != RefKind.PRIMITIVE:
                continue
            value = literal(f.type.primitive, f.default_value)
            if value is None:
                continue
            spelled = self.render(f.type, node.token)
            lines.append(f"static constexpr {spelled} {self.names.field_name(node.token, i)} = {value};")
        return lines

    def static_fields(self, node: TypeNode) -> list[str]:
        if not self.verbose:
            return []
        return [
            f"// static {self.graph.display_name(f.type)} {f.name}"
            for f in node.fields
            if f.is_static and not f.is_literal
        ]

    def methods(self, node: TypeNode) -> list[str]:
        lines: list[str] = []
        for mi, method in enumerate(node.methods):
            if self.verbose:
                lines.append(f"/// @brief {self.describe_method(method)}")
            if method.generic_parameters:
                params = ", ".join(
                    f"typename {self.names.method_generic_parameter_name(node.token, mi, gi)}"
                    for gi in range(len(method.generic_parameters))
                )
                lines.append(f"template<{params}>")
            lines.append(self.method_decl(node, mi, method))
        return lines

    def describe_method(self, method: MethodNode) -> str:
        text = f"Method {method.name}, token {hex_(method.token)}"
        if method.vtable_slot is not None:
            text += f", vtable slot {hex_(method.vtable_slot)}"
        if method.is_abstract:
            text += ", abstract"
        return text

    def parameter_list(self, node: TypeNode, mi: int, types: list[TypeReference]) -> str:
        params = []
        for pi, (param, ref) in enumerate(zip(node.methods[mi].parameters, types)):
            mode = f"/* {param.mode.value} */ " if param.mode is not None else ""
            if param.mode is None and ref.kind == RefKind.BYREF:
                mode = f"/* {ParameterMode.REF.value} */ "
            spelled = self.render(ref, node.token, mi)
            params.append(f"{mode}{spelled} {self.names.parameter_name(node.token, mi, pi)}")
        return ", ".join(params)

    def method_decl(self, node: TypeNode, mi: int, method: MethodNode) -> str:
        params = self.parameter_list(node, mi, [p.type for p in method.parameters])
        static = "static " if method.is_static else ""
        returns = self.render(method.return_type, node.token, mi)
        return f"{static}{returns} {self.names.method_name(node.token, mi)}({params});"

    def specialization_decl(self, node: TypeNode, specialization: MethodSpecialization) -> str:
        """Explicit specialization of a member template for closed arguments."""
        mi = specialization.method_index
        owner = self.names.type_name(node.token)
        head = "template<>"
        if specialization.declaring_arguments:
            head = "template<> template<>"
            declaring = ", ".join(self.render(a, node.token) for a in specialization.declaring_arguments)
            owner += f"<{declaring}>"
        args = ", ".join(self.render(a, node.token) for a in specialization.arguments)
        params = self.parameter_list(node, mi, specialization.parameter_types)
        returns = self.render(specialization.return_type, node.token, mi)
        return f"{head} {returns} {owner}::{self.names.method_name(node.token, mi)}<{args}>({params});"

    def property_accessors(self, node: TypeNode) -> list[str]:
        index_of = {m.token: i for i, m in enumerate(node.methods)}
        lines = []
        for i, prop in enumerate(node.properties):
            parts = []
            for keyword, token in (("get", prop.getter), ("put", prop.setter)):
                mi = index_of.get(token) if token is not None else None
                if mi is not None and not node.methods[mi].is_static:
                    parts.append(f"{keyword} = {self.names.method_name(node.token, mi)}")
            if not parts:
                continue
            spelled = self.render(prop.type, node.token)
            name = self.names.property_name(node.token, i)
            lines.append(f"__declspec(property({', '.join(parts)})) {spelled} {name};")
        return lines

    def enum_definition(self, node: TypeNode) -> list[str]:
        underlying = PRIMITIVES[node.enum_underlying or Primitive.I4]
        lines = []
        if self.verbose:
            lines.append(f"/// @brief {self.describe(node)}")
        lines.append(f"enum class {self.names.type_name(node.token)} : {underlying} {{")
        for i, f in enumerate(node.fields):
            if f.is_literal and f.default_value is not None:
                lines.append(f"    {self.names.field_name(node.token, i)} = {int(f.default_value)},")
        lines.append("};")
        return lines

    def layout_asserts(self, node: TypeNode) -> list[str]:
        if not self.asserts or node.is_generic_definition or node.kind == TypeKind.INTERFACE:
            return []
        qualified = self.qualified(node.token)
        lines = []
        if node.kind != TypeKind.ENUM:
            for i, f in enumerate(node.fields):
                if f.is_instance and f.offset is not None:
                    name = self.names.field_name(node.token, i)
                    lines.append(
                        f'static_assert(offsetof({qualified}, {name}) == {hex_(f.offset)}, "Offset mismatch!");'
                    )
        if node.size is not None:
            lines.append(f'static_assert(sizeof({qualified}) == {hex_(node.size)}, "Size mismatch!");')
        return lines

    # -------------------------------------------------------------------------
    # Instantiations and aggregate headers
    # -------------------------------------------------------------------------

    def instantiation_block(self, node: TypeNode) -> list[str]:
        ref = TypeReference.generic(node.definition, *node.generic_arguments)
        spelled = self.type_id(ref, node.token)
        lines = []
        if self.verbose:
            lines.append(f"// {node.full_name}")
        lines.extend(
            self.in_namespace(node.namespace, [f"using {self.names.type_name(node.token)} = {spelled};"])
        )
        if self.asserts and node.size is not None and node.kind != TypeKind.INTERFACE:
            lines.append(f'static_assert(sizeof({spelled}) == {hex_(node.size)}, "Size mismatch!");')
        return lines

    def namespace_header(self, tokens: list[int]) -> str:
        lines = ["#pragma once", BANNER, f'#include "{RUNTIME_HEADER}"']
        instantiations = []
        for token in tokens:
            node = self.graph.node(token)
            if node.is_instantiation:
                instantiations.append(node)
            else:
                lines.append(f'#include "{self.header_path(token)}"')
        for node in instantiations:
            for header in sorted(self.headers_for(node.token)):
                lines.append(f'#include "{header}"')
            lines.append("")
            lines.extend(self.instantiation_block(node))
        return "\n".join(lines) + "\n"

    def umbrella(self, order: EmissionOrder) -> str:
        lines = ["#pragma once", BANNER, f'#include "{RUNTIME_HEADER}"']
        for entry in order:
            node = self.graph.node(entry.token)
            if entry.kind == EntryKind.FORWARD:
                lines.append("")
                if self.verbose:
                    lines.append(f"// Forward declaration breaking a reference cycle at {node.full_name}")
                lines.extend(self.in_namespace(node.namespace, [self.forward_decl(entry.token)]))
            elif node.is_instantiation:
                lines.extend(f'#include "{header}"' for header in sorted(self.headers_for(node.token)))
                lines.append("")
                lines.extend(self.instantiation_block(node))
            else:
                lines.append(f'#include "{self.header_path(entry.token)}"')
        lines.extend(self.specializations(order))
        return "\n".join(lines) + "\n"

    def specializations(self, order: EmissionOrder) -> list[str]:
        """Generic method specializations, after every owner is complete."""
        lines: list[str] = []
        for token in order.definitions():
            node = self.graph.node(token)
            if not node.method_specializations:
                continue
            block = []
            for specialization in node.method_specializations:
                if self.verbose:
                    method = node.methods[specialization.method_index]
                    args = ", ".join(self.graph.display_name(a) for a in specialization.arguments)
                    block.append(f"// {node.full_name}::{method.name}<{args}>, token {hex_(specialization.token)}")
                block.append(self.specialization_decl(node, specialization))
            lines.append("")
            lines.extend(self.in_namespace(node.namespace, block))
        return lines


def literal(primitive: Primitive | None, value: object) -> str | None:
    """C++ spelling of a constant, or None if it has no constexpr form."""
    if value is None or primitive is None:
        return None
    if primitive == Primitive.BOOLEAN:
        return "true" if value else "false"
    if primitive in (Primitive.R4, Primitive.R8):
        number = float(value)  # type: ignore[arg-type]
        if number != number or number in (float("inf"), float("-inf")):
            return None
        spelled = repr(number)
        return f"{spelled}f" if primitive == Primitive.R4 else spelled
    if primitive in (Primitive.STRING, Primitive.OBJECT, Primitive.VOID):
        return None
    if primitive == Primitive.CHAR and isinstance(value, str):
        return str(ord(value[0])) if value else "0"
    number = int(value)  # type: ignore[arg-type,call-overload]
    if primitive == Primitive.U8:
        return f"{number}ull"
    if primitive in (Primitive.U4, Primitive.U):
        return f"{number}u"
    if primitive == Primitive.I8:
        return "INT64_MIN" if number == -(2**63) else f"{number}ll"
    if primitive == Primitive.I4 and number == -(2**31):
        return "INT32_MIN"
    return str(number)


__all__ = ["NativeHeaderEmitter", "RUNTIME_PRELUDE", "PRIMITIVES"]
