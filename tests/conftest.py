"""Shared fixtures for declgen tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from helpers import build_sample_adapter, new_adapter, prepare_graph, sample_image_document, sample_metadata_document

from declgen.graph import EmissionOrder, TypeGraph
from declgen.metadata import InMemoryAdapter


@pytest.fixture
def adapter() -> InMemoryAdapter:
    """Empty adapter with one assembly."""
    return new_adapter()


@pytest.fixture
def sample_adapter() -> InMemoryAdapter:
    return build_sample_adapter()


@pytest.fixture
def sample_graph(sample_adapter: InMemoryAdapter) -> tuple[TypeGraph, EmissionOrder]:
    """Frozen, laid-out graph of the sample program and its emission order."""
    return prepare_graph(sample_adapter)


@pytest.fixture
def snapshot_files(tmp_path: Path) -> tuple[Path, Path]:
    """Metadata and image-layout documents written to disk."""
    metadata = tmp_path / "metadata.json"
    image = tmp_path / "image.json"
    metadata.write_text(json.dumps(sample_metadata_document()))
    image.write_text(json.dumps(sample_image_document()))
    return metadata, image
