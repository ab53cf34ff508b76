"""Interchange document emitter.

Serializes the frozen graph as JSON that another toolchain can consume:
types with their layout and members, edges, the emission order and the
assemblies. In split mode every type gets its own document and an index
ties them together. read_document turns either form back into a graph.
"""

from __future__ import annotations

import json
from pathlib import Path, PurePosixPath
from typing import Any

from declgen.emit.base import EmitOptions, EmitResult
from declgen.errors import SourceUnavailable
from declgen.graph.models import Edge, TypeNode
from declgen.graph.ordering import EmissionOrder, EntryKind, OrderEntry
from declgen.graph.references import InstantiationKey
from declgen.graph.store import TypeGraph
from declgen.naming.rules import JSON_RULES, NamingRules
from declgen.naming.sanitizer import NameTable
from declgen.paths import INTERCHANGE_DOCUMENT, INTERCHANGE_INDEX

FORMAT = "declgen-interchange"
SCHEMA_VERSION = 1
TYPES_DIR = "types"


def type_document_path(token: int) -> str:
    """Relative path of a type's document in split mode."""
    return str(PurePosixPath(TYPES_DIR) / f"0x{token:08x}.json")


class InterchangeEmitter:
    """Export the graph as a schema-stable JSON document.

    The document is deterministic: keys and lists are ordered by token
    and no timestamps are recorded, so identical input gives identical
    bytes.
    """

    @property
    def target_name(self) -> str:
        return "interchange-document"

    @property
    def description(self) -> str:
        return "Schema-stable JSON document of types, edges and emission order"

    @property
    def naming_rules(self) -> NamingRules:
        return JSON_RULES

    def emit(
        self,
        graph: TypeGraph,
        order: EmissionOrder,
        names: NameTable,
        options: EmitOptions | None = None,
    ) -> EmitResult:
        """Render the graph as one document, or one per type plus an index.

        Args:
            graph: Frozen type graph
            order: Emission order with forward-declaration markers
            names: Identifiers built with the interchange rules
            options: Emit options; extra["pretty"] indents output and
                extra["split"] writes one document per type

        Returns:
            EmitResult with the rendered documents
        """
        options = options or EmitOptions()
        pretty = options.extra.get("pretty", True)
        split = options.extra.get("split", False)

        types = [self._type_to_dict(node, names) for node in graph.nodes()]
        header = self._header(graph, order)

        artifacts: dict[str, str] = {}
        if split:
            index = dict(header)
            index["types"] = []
            for data in types:
                path = type_document_path(data["token"])
                artifacts[path] = _dumps(data, pretty)
                index["types"].append(
                    {"token": data["token"], "full_name": data["full_name"], "document": path}
                )
            artifacts[INTERCHANGE_INDEX] = _dumps(index, pretty)
        else:
            document = dict(header)
            document["types"] = types
            artifacts[INTERCHANGE_DOCUMENT] = _dumps(document, pretty)

        return EmitResult(
            target=self.target_name,
            artifacts=artifacts,
            type_count=len(graph.definitions()),
            forward_count=len(order.forward_declarations()),
        )

    def _header(self, graph: TypeGraph, order: EmissionOrder) -> dict[str, Any]:
        stats = graph.stats()
        return {
            "format": FORMAT,
            "schema_version": SCHEMA_VERSION,
            "pointer_size": graph.pointer_size,
            "stats": {
                "types": stats["types"],
                "instantiations": stats["instantiations"],
                "edges": stats["edges"],
                "edges_by_type": dict(sorted(stats["edges_by_type"].items())),
                "forward_declarations": len(order.forward_declarations()),
            },
            "assemblies": [{"token": t, "name": n} for t, n in sorted(graph.assemblies.items())],
            "edges": [e.to_dict() for e in graph.edges()],
            "order": order.to_list(),
        }

    def _type_to_dict(self, node: TypeNode, names: NameTable) -> dict[str, Any]:
        data = node.to_dict()
        data["identifier"] = names.type_name(node.token)
        return data


def _dumps(data: dict[str, Any], pretty: bool) -> str:
    text = json.dumps(data, indent=2 if pretty else None, sort_keys=False)
    return text + "\n"


# =============================================================================
# Reading documents back
# =============================================================================


def _load_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise SourceUnavailable(f"interchange document not found: {path}", path=str(path)) from e
    except (OSError, UnicodeDecodeError) as e:
        raise SourceUnavailable(f"cannot read interchange document {path}: {e}", path=str(path)) from e
    except json.JSONDecodeError as e:
        raise SourceUnavailable(f"interchange document {path} is not valid JSON: {e}", path=str(path)) from e
    if not isinstance(data, dict):
        raise SourceUnavailable(f"interchange document {path} is not a JSON object", path=str(path))
    return data


def load_document(data: dict[str, Any], base: Path | None = None) -> tuple[TypeGraph, EmissionOrder]:
    """Rebuild a frozen graph and its emission order from a parsed document.

    Args:
        data: Single document, or a split-mode index
        base: Directory holding the per-type documents of a split index

    Returns:
        (graph, order)

    Raises:
        SourceUnavailable: If the document is not an interchange document
            or a split-mode type document is missing
    """
    if data.get("format") != FORMAT:
        raise SourceUnavailable(f"not a {FORMAT} document (format={data.get('format')!r})")
    if data.get("schema_version") != SCHEMA_VERSION:
        raise SourceUnavailable(f"unsupported interchange schema version {data.get('schema_version')!r}")

    types: list[dict[str, Any]] = []
    for entry in data.get("types", []):
        if "document" in entry:
            if base is None:
                raise SourceUnavailable("split interchange index read without its directory")
            types.append(_load_json(base / entry["document"]))
        else:
            types.append(entry)

    try:
        graph = TypeGraph(pointer_size=data.get("pointer_size", 8))
        for assembly in data.get("assemblies", []):
            graph.assemblies[assembly["token"]] = assembly["name"]
        for type_data in sorted(types, key=lambda t: t["token"]):
            node = TypeNode.from_dict(type_data)
            graph.add_node(node)
            if node.definition_token is not None:
                key = InstantiationKey(node.definition_token, tuple(node.generic_arguments))
                graph.register_instantiation(key, node.token)
        for edge_data in data.get("edges", []):
            graph.add_edge(Edge.from_dict(edge_data))
        order = EmissionOrder(
            [OrderEntry(EntryKind(e["kind"]), e["token"]) for e in data.get("order", [])]
        )
    except (KeyError, TypeError, ValueError) as e:
        raise SourceUnavailable(f"malformed interchange document: {e}") from e

    graph.freeze()
    return graph, order


def read_document(path: Path) -> tuple[TypeGraph, EmissionOrder]:
    """Read an interchange document (or split index) from disk.

    A directory is accepted too; its index.json or types.json is read.
    """
    path = Path(path)
    if path.is_dir():
        index = path / INTERCHANGE_INDEX
        path = index if index.exists() else path / INTERCHANGE_DOCUMENT
    return load_document(_load_json(path), base=path.parent)


__all__ = [
    "InterchangeEmitter",
    "load_document",
    "read_document",
    "type_document_path",
    "FORMAT",
    "SCHEMA_VERSION",
]
