"""declgen emitters - render the frozen type graph for each target.

Targets:
- native-header: C++ headers mirroring the namespace tree
- source-crate: a Rust crate of layout-exact declarations
- interchange-document: JSON for other toolchains

Example:
    >>> from declgen.emit import ArtifactWriter, EmitOptions, get_default_manager
    >>>
    >>> manager = get_default_manager()
    >>> result = manager.emit(graph, order, "native-header")
    >>> ArtifactWriter().write(result, Path("out/headers"))
    >>>
    >>> # Split interchange documents, compact JSON
    >>> options = EmitOptions(extra={"split": True, "pretty": False})
    >>> result = manager.emit(graph, order, "interchange-document", options)
    >>>
    >>> for target in manager.list_emitters():
    ...     print(f"{target['name']}: {target['description']}")
"""

from declgen.emit.base import (
    EmitOptions,
    EmitResult,
    Emitter,
    EmitterManager,
    get_default_manager,
)
from declgen.emit.interchange import InterchangeEmitter, load_document, read_document
from declgen.emit.native_header import NativeHeaderEmitter
from declgen.emit.source_crate import SourceCrateEmitter
from declgen.emit.writer import ArtifactWriter

__all__ = [
    # Protocol and core classes
    "Emitter",
    "EmitOptions",
    "EmitResult",
    "EmitterManager",
    "get_default_manager",
    "ArtifactWriter",
    # Individual emitters
    "NativeHeaderEmitter",
    "SourceCrateEmitter",
    "InterchangeEmitter",
    # Reading interchange documents
    "load_document",
    "read_document",
]
