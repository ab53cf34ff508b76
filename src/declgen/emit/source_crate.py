"""Source crate emitter (Rust).

Output layout, relative to the destination:

    Cargo.toml
    src/lib.rs                   # crate attributes and top-level modules
    src/runtime.rs               # object header, string and array layouts
    src/<Segments>/mod.rs        # one module per namespace

Concrete types are #[repr(C, packed)] structs whose padding fields
reproduce the runtime layout; a derived class embeds its parent as the
first field. Open generic definitions are #[repr(C)] generic structs and
closed instantiations are `pub type` aliases of them.
"""

from __future__ import annotations

from collections import defaultdict
from pathlib import PurePosixPath

from declgen.emit.base import EmitOptions, EmitResult
from declgen.emit.fields import Overlap, Padding, Placed, padding_name, plan_instance_fields
from declgen.graph.models import FieldNode, MethodNode, MethodSpecialization, TypeNode
from declgen.graph.ordering import EmissionOrder
from declgen.graph.references import TypeReference
from declgen.graph.schema import Primitive, RefKind, TypeKind
from declgen.graph.store import TypeGraph
from declgen.naming.rules import RUST_RULES, NameKind, NamingRules
from declgen.naming.sanitizer import NameSanitizer, NameTable
from declgen.paths import CRATE_MANIFEST, CRATE_RUNTIME_MODULE, CRATE_SRC_DIR

BANNER = "//! Generated by declgen. Do not edit."

PRIMITIVES: dict[Primitive, str] = {
    Primitive.VOID: "()",
    Primitive.BOOLEAN: "bool",
    Primitive.CHAR: "u16",
    Primitive.I1: "i8",
    Primitive.U1: "u8",
    Primitive.I2: "i16",
    Primitive.U2: "u16",
    Primitive.I4: "i32",
    Primitive.U4: "u32",
    Primitive.I8: "i64",
    Primitive.U8: "u64",
    Primitive.R4: "f32",
    Primitive.R8: "f64",
    Primitive.I: "isize",
    Primitive.U: "usize",
    Primitive.STRING: "*mut crate::runtime::Il2CppString",
    Primitive.OBJECT: "*mut crate::runtime::Il2CppObject",
}

OBJECT_POINTER = "*mut crate::runtime::Il2CppObject"

RUNTIME_MODULE = f"""{BANNER}

#[repr(C)]
pub struct Il2CppObject {{
    pub klass: *mut ::core::ffi::c_void,
    pub monitor: *mut ::core::ffi::c_void,
}}

#[repr(C)]
pub struct Il2CppString {{
    pub __parent: Il2CppObject,
    pub length: i32,
    pub chars: [u16; 0],
}}

#[repr(C)]
pub struct Il2CppArray<T> {{
    pub __parent: Il2CppObject,
    pub bounds: *mut ::core::ffi::c_void,
    pub max_length: usize,
    pub values: [T; 0],
}}
"""

LIB_ATTRIBUTES = (
    "#![allow(non_snake_case, non_camel_case_types, non_upper_case_globals, "
    "dead_code, improper_ctypes, clippy::all)]"
)


def hex_(value: int) -> str:
    return f"0x{value:x}"


class SourceCrateEmitter:
    """Emit a Rust crate of layout-exact type declarations."""

    @property
    def target_name(self) -> str:
        return "source-crate"

    @property
    def description(self) -> str:
        return "Rust crate with repr(C) layouts, marker traits and extern declarations"

    @property
    def naming_rules(self) -> NamingRules:
        return RUST_RULES

    def emit(
        self,
        graph: TypeGraph,
        order: EmissionOrder,
        names: NameTable,
        options: EmitOptions | None = None,
    ) -> EmitResult:
        """Render the crate manifest, lib.rs, runtime module and one module per namespace."""
        options = options or EmitOptions()
        renderer = _CrateRenderer(graph, names, options)

        modules: dict[tuple[str, ...], list[int]] = defaultdict(list)
        children: dict[tuple[str, ...], set[str]] = defaultdict(set)
        for node in graph.nodes():
            path = tuple(names.namespace_segments(node.namespace))
            modules.setdefault(path, [])
            for depth in range(len(path)):
                children[path[:depth]].add(path[depth])
        type_count = 0
        for token in order.definitions():
            node = graph.node(token)
            modules[tuple(names.namespace_segments(node.namespace))].append(token)
            if not node.is_instantiation:
                type_count += 1

        src = PurePosixPath(CRATE_SRC_DIR)
        artifacts: dict[str, str] = {
            CRATE_MANIFEST: renderer.manifest(),
            str(src / "lib.rs"): renderer.lib(sorted(children[()])),
            str(src / CRATE_RUNTIME_MODULE): RUNTIME_MODULE,
        }
        for path in sorted(set(modules) | {p for p in children if p}):
            artifacts[str(src.joinpath(*path, "mod.rs"))] = renderer.module(
                path, sorted(children.get(path, ())), modules.get(path, [])
            )

        return EmitResult(
            target=self.target_name,
            artifacts=artifacts,
            type_count=type_count,
            forward_count=len(order.forward_declarations()),
        )


class _CrateRenderer:
    """Rendering state for one emit call."""

    def __init__(self, graph: TypeGraph, names: NameTable, options: EmitOptions) -> None:
        self.graph = graph
        self.names = names
        self.verbose = options.verbose_comments
        self.asserts = options.layout_asserts
        self.crate_name = options.extra.get("crate_name", "declgen_types")
        self.crate_version = options.extra.get("crate_version", "0.1.0")
        self.edition = str(options.extra.get("edition", "2021"))
        # Extern function names share one value namespace per module
        self.symbols = NameSanitizer(RUST_RULES)

    # -------------------------------------------------------------------------
    # Crate skeleton
    # -------------------------------------------------------------------------

    def manifest(self) -> str:
        return "\n".join(
            [
                "# Generated by declgen. Do not edit.",
                "[package]",
                f'name = "{self.crate_name}"',
                f'version = "{self.crate_version}"',
                f'edition = "{self.edition}"',
                "",
                "[lib]",
                'path = "src/lib.rs"',
                "",
            ]
        )

    def lib(self, top_level: list[str]) -> str:
        lines = [BANNER, LIB_ATTRIBUTES, "", "pub mod runtime;"]
        lines.extend(f"pub mod {name};" for name in top_level)
        return "\n".join(lines) + "\n"

    def module(self, path: tuple[str, ...], children: list[str], tokens: list[int]) -> str:
        lines = [BANNER]
        if self.verbose:
            lines.append(f"//! Namespace {'.'.join(path)}")
        if children:
            lines.append("")
            lines.extend(f"pub mod {child};" for child in children)
        scope = "::".join(path)
        for token in tokens:
            node = self.graph.node(token)
            lines.append("")
            if node.is_instantiation:
                lines.extend(self.alias(node))
            else:
                lines.extend(self.definition(node, scope))
        return "\n".join(lines) + "\n"

    # -------------------------------------------------------------------------
    # Names
    # -------------------------------------------------------------------------

    def path_of(self, token: int) -> str:
        node = self.graph.node(token)
        segments = "::".join(self.names.namespace_segments(node.namespace))
        return f"crate::{segments}::{self.names.type_name(token)}"

    def type_path(self, ref: TypeReference, owner: int) -> str:
        """Path of a named type, without the pointer for reference types."""
        if ref.kind == RefKind.GENERIC_INST:
            args = ", ".join(self.render(a, owner) for a in ref.arguments)
            return f"{self.path_of(ref.target)}<{args}>"
        return self.path_of(ref.target)

    def render(self, ref: TypeReference, owner: int) -> str:
        """Rust spelling of a reference as a field, parameter or argument type."""
        if ref.kind == RefKind.PRIMITIVE:
            return PRIMITIVES[ref.scalar]
        if ref.kind in (RefKind.TYPE, RefKind.GENERIC_INST):
            target = self.graph.node(ref.target)
            if target.kind == TypeKind.INTERFACE:
                return OBJECT_POINTER
            spelled = self.type_path(ref, owner)
            return spelled if target.is_value_type else f"*mut {spelled}"
        if ref.kind in (RefKind.POINTER, RefKind.BYREF):
            return f"*mut {self.render(ref.inner, owner)}"
        if ref.kind == RefKind.ARRAY:
            return f"*mut crate::runtime::Il2CppArray<{self.render(ref.inner, owner)}>"
        if ref.kind == RefKind.GENERIC_PARAM:
            return self.names.generic_parameter_name(owner, ref.index)
        # Method generic parameters have no extern "C" spelling
        return "*mut ::core::ffi::c_void"

    def generics(self, node: TypeNode) -> str:
        if not node.is_generic_definition:
            return ""
        params = ", ".join(self.names.generic_parameter_name(node.token, i) for i in range(len(node.generic_parameters)))
        return f"<{params}>"

    # -------------------------------------------------------------------------
    # Definitions
    # -------------------------------------------------------------------------

    def definition(self, node: TypeNode, scope: str) -> list[str]:
        if node.kind == TypeKind.INTERFACE:
            lines = self.trait(node)
        elif node.kind == TypeKind.ENUM:
            lines = self.enum(node)
        else:
            lines = self.struct(node)
        lines.extend(self.constants(node))
        lines.extend(self.impls(node))
        lines.extend(self.externs(node, scope))
        lines.extend(self.layout_asserts(node))
        return lines

    def describe(self, node: TypeNode) -> str:
        text = f"{node.kind.value.capitalize()} {node.full_name}, token {hex_(node.token)}"
        if node.size is not None and not node.is_generic_definition:
            text += f", size {hex_(node.size)}"
        return text

    def trait(self, node: TypeNode) -> list[str]:
        lines = [f"/// {self.describe(node)}"] if self.verbose else []
        lines.append(f"pub trait {self.names.type_name(node.token)}{self.generics(node)} {{}}")
        return lines

    def enum(self, node: TypeNode) -> list[str]:
        name = self.names.type_name(node.token)
        underlying = PRIMITIVES[node.enum_underlying or Primitive.I4]
        lines = [f"/// {self.describe(node)}"] if self.verbose else []
        lines.extend(
            [
                "#[repr(transparent)]",
                "#[derive(Clone, Copy, PartialEq, Eq, Hash, Debug)]",
                f"pub struct {name}(pub {underlying});",
            ]
        )
        values = [
            f"    pub const {self.names.field_name(node.token, i)}: {name} = {name}({int(f.default_value)});"
            for i, f in enumerate(node.fields)
            if f.is_literal and f.default_value is not None
        ]
        if values:
            lines.append(f"impl {name} {{")
            lines.extend(values)
            lines.append("}")
        return lines

    def struct(self, node: TypeNode) -> list[str]:
        name = self.names.type_name(node.token)
        generic = node.is_generic_definition
        lines = [f"/// {self.describe(node)}"] if self.verbose else []
        members: list[str] = []
        extra: list[str] = []

        parent = self.parent_type(node)
        if parent is not None:
            members.append(f"pub __parent: {parent},")

        slots = None if generic else plan_instance_fields(node, self.graph.layout_start(node))
        if slots is None:
            for i, f in enumerate(node.fields):
                if f.is_instance:
                    members.extend(self.field(node, i, f))
        else:
            for slot in slots:
                if isinstance(slot, Padding):
                    members.append(f"pub {padding_name(slot.offset)}: [u8; {hex_(slot.size)}],")
                elif isinstance(slot, Placed):
                    members.extend(self.field(node, slot.index, slot.field))
                else:
                    union_name, union_lines = self.union(node, slot)
                    extra.extend(union_lines)
                    members.append(f"pub __union_{hex_(slot.offset)}: {union_name},")

        if generic:
            params = ", ".join(self.names.generic_parameter_name(node.token, i) for i in range(len(node.generic_parameters)))
            members.append(f"pub __phantom: ::core::marker::PhantomData<({params},)>,")

        lines.append("#[repr(C)]" if generic else "#[repr(C, packed)]")
        lines.append(f"pub struct {name}{self.generics(node)} {{")
        lines.extend(f"    {m}" for m in members)
        lines.append("}")
        lines.extend(extra)
        if self.verbose:
            lines.extend(
                f"// static {self.graph.display_name(f.type)} {f.name}"
                for f in node.fields
                if f.is_static and not f.is_literal
            )
        return lines

    def parent_type(self, node: TypeNode) -> str | None:
        if node.is_value_type:
            return None
        if node.parent is None:
            return "crate::runtime::Il2CppObject"
        return self.type_path(node.parent, node.token)

    def field(self, node: TypeNode, index: int, f: FieldNode) -> list[str]:
        lines = []
        if self.verbose:
            where = f", offset {hex_(f.offset)}" if f.offset is not None else ""
            size = f", size {hex_(f.size)}" if f.size is not None else ""
            lines.append(f"/// Field {f.name}{where}{size}")
        lines.append(f"pub {self.names.field_name(node.token, index)}: {self.render(f.type, node.token)},")
        return lines

    def union(self, node: TypeNode, slot: Overlap) -> tuple[str, list[str]]:
        """Named union for overlapping fields, plus lead-padded member structs."""
        owner = self.names.type_name(node.token)
        union_name = f"{owner}__Union_{hex_(slot.offset)}"
        lines: list[str] = []
        members: list[str] = []
        for member in slot.members:
            field_name = self.names.field_name(node.token, member.index)
            spelled = self.render(member.field.type, node.token)
            lead = member.offset - slot.offset
            if lead == 0:
                members.append(f"pub {field_name}: ::core::mem::ManuallyDrop<{spelled}>,")
                continue
            wrapper = f"{union_name}__{field_name}"
            lines.extend(
                [
                    "#[repr(C, packed)]",
                    f"pub struct {wrapper} {{",
                    f"    pub {padding_name(member.offset)}: [u8; {hex_(lead)}],",
                    f"    pub {field_name}: {spelled},",
                    "}",
                ]
            )
            members.append(f"pub {field_name}: ::core::mem::ManuallyDrop<{wrapper}>,")
        head = [f"/// Overlapping fields at {hex_(slot.offset)}, size {hex_(slot.size)}"] if self.verbose else []
        head.extend(["#[repr(C, packed)]", f"pub union {union_name} {{"])
        head.extend(f"    {m}" for m in members)
        head.append("}")
        return union_name, head + lines

    def constants(self, node: TypeNode) -> list[str]:
        if node.kind == TypeKind.ENUM:
            return []
        consts = []
        for i, f in enumerate(node.fields):
            if not f.is_literal or f.type.kind != RefKind.PRIMITIVE:
                continue
            value = literal(f.type.primitive, f.default_value)
            if value is None:
                continue
            spelled = self.render(f.type, node.token)
            consts.append(f"    pub const {self.names.field_name(node.token, i)}: {spelled} = {value};")
        if not consts or node.kind == TypeKind.INTERFACE:
            return []
        generics = self.generics(node)
        return [f"impl{generics} {self.names.type_name(node.token)}{generics} {{", *consts, "}"]

    def impls(self, node: TypeNode) -> list[str]:
        generics = self.generics(node)
        this = f"{self.names.type_name(node.token)}{generics}"
        lines = []
        for iface in node.interfaces:
            if iface.token is None:
                continue
            if node.kind == TypeKind.INTERFACE:
                continue
            lines.append(f"impl{generics} {self.type_path(iface, node.token)} for {this} {{}}")
        return lines

    def externs(self, node: TypeNode, scope: str) -> list[str]:
        """extern "C" declarations of the type's methods.

        Generic methods, and every method of a generic definition, have no
        C ABI spelling. Only their closed specializations are declared.
        """
        owner = self.names.type_name(node.token)
        receiver = OBJECT_POINTER if node.kind == TypeKind.INTERFACE else f"*mut {owner}"
        decls: list[str] = []
        for mi, method in enumerate(node.methods):
            if method.generic_parameters or node.is_generic_definition:
                continue
            symbol = self.symbols.sanitize(
                f"{owner}__{self.names.method_name(node.token, mi)}",
                f"fn:{scope}",
                NameKind.METHOD,
                method.token,
            )
            params = [] if method.is_static else [f"__this: {receiver}"]
            params.extend(self.parameters(node, mi, [p.type for p in method.parameters]))
            if self.verbose:
                decls.append(f"    /// {self.describe_method(method)}")
            decls.append(f'    #[link_name = "{node.full_name}::{method.name}@{hex_(method.token)}"]')
            decls.append(f"    pub fn {symbol}({', '.join(params)}){self.returns(method.return_type, node.token)};")
        for specialization in node.method_specializations:
            decls.extend(self.specialization_extern(node, scope, specialization))
        if not decls:
            return []
        keyword = 'unsafe extern "C"' if self.edition == "2024" else 'extern "C"'
        return [f"{keyword} {{", *decls, "}"]

    def specialization_extern(self, node: TypeNode, scope: str, specialization: MethodSpecialization) -> list[str]:
        mi = specialization.method_index
        method = node.methods[mi]
        owner = self.names.type_name(node.token)
        closing = [self.graph.display_name(a) for a in (*specialization.declaring_arguments, *specialization.arguments)]
        symbol = self.symbols.sanitize(
            f"{owner}__{self.names.method_name(node.token, mi)}__{'_'.join(closing)}",
            f"fn:{scope}",
            NameKind.SPECIALIZATION,
            specialization.token,
        )
        if node.kind == TypeKind.INTERFACE:
            receiver = OBJECT_POINTER
        elif specialization.declaring_arguments:
            declaring = ", ".join(self.render(a, node.token) for a in specialization.declaring_arguments)
            receiver = f"*mut {owner}<{declaring}>"
        else:
            receiver = f"*mut {owner}"
        params = [] if method.is_static else [f"__this: {receiver}"]
        params.extend(self.parameters(node, mi, specialization.parameter_types))
        args = ", ".join(self.graph.display_name(a) for a in specialization.arguments)
        lines = []
        if self.verbose:
            lines.append(f"    /// Specialization of {method.name}, token {hex_(specialization.token)}")
        lines.append(f'    #[link_name = "{node.full_name}::{method.name}<{args}>@{hex_(specialization.token)}"]')
        lines.append(f"    pub fn {symbol}({', '.join(params)}){self.returns(specialization.return_type, node.token)};")
        return lines

    def parameters(self, node: TypeNode, mi: int, types: list[TypeReference]) -> list[str]:
        return [
            f"{self.names.parameter_name(node.token, mi, pi)}: {self.render(ref, node.token)}"
            for pi, ref in enumerate(types)
        ]

    def returns(self, ref: TypeReference, owner: int) -> str:
        if ref.kind == RefKind.PRIMITIVE and ref.scalar == Primitive.VOID:
            return ""
        return f" -> {self.render(ref, owner)}"

    def describe_method(self, method: MethodNode) -> str:
        text = f"Method {method.name}, token {hex_(method.token)}"
        if method.vtable_slot is not None:
            text += f", vtable slot {hex_(method.vtable_slot)}"
        if method.is_abstract:
            text += ", abstract"
        for param in method.parameters:
            if param.mode is not None:
                text += f", {param.name} is {param.mode.value}"
        return text

    def layout_asserts(self, node: TypeNode) -> list[str]:
        if not self.asserts or node.is_generic_definition or node.kind == TypeKind.INTERFACE:
            return []
        name = self.names.type_name(node.token)
        lines = []
        if node.kind != TypeKind.ENUM:
            slots = plan_instance_fields(node, self.graph.layout_start(node)) or []
            for slot in slots:
                if isinstance(slot, Placed):
                    field_name = self.names.field_name(node.token, slot.index)
                    lines.append(
                        f"const _: () = assert!(::core::mem::offset_of!({name}, {field_name}) == {hex_(slot.offset)});"
                    )
        if node.size is not None:
            lines.append(f"const _: () = assert!(::core::mem::size_of::<{name}>() == {hex_(node.size)});")
        return lines

    # -------------------------------------------------------------------------
    # Instantiations
    # -------------------------------------------------------------------------

    def alias(self, node: TypeNode) -> list[str]:
        name = self.names.type_name(node.token)
        if node.kind == TypeKind.INTERFACE:
            # Traits cannot be aliased
            return [f"// {node.full_name}"] if self.verbose else []
        ref = TypeReference.generic(node.definition, *node.generic_arguments)
        lines = [f"/// {node.full_name}"] if self.verbose else []
        lines.append(f"pub type {name} = {self.type_path(ref, node.token)};")
        if self.asserts and node.size is not None:
            lines.append(f"const _: () = assert!(::core::mem::size_of::<{name}>() == {hex_(node.size)});")
        return lines


def literal(primitive: Primitive | None, value: object) -> str | None:
    """Rust spelling of a constant, or None if it has no const form."""
    if value is None or primitive is None:
        return None
    if primitive == Primitive.BOOLEAN:
        return "true" if value else "false"
    if primitive in (Primitive.R4, Primitive.R8):
        number = float(value)  # type: ignore[arg-type]
        if number != number or number in (float("inf"), float("-inf")):
            return None
        return repr(number)
    if primitive in (Primitive.STRING, Primitive.OBJECT, Primitive.VOID):
        return None
    if primitive == Primitive.CHAR and isinstance(value, str):
        return str(ord(value[0])) if value else "0"
    return str(int(value))  # type: ignore[arg-type,call-overload]


__all__ = ["SourceCrateEmitter", "RUNTIME_MODULE", "PRIMITIVES"]
