"""Configuration models for declgen."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from declgen.paths import CONFIG_FILE


class GenerateConfig(BaseModel):
    """Pipeline-wide generation settings."""

    workers: int = Field(
        default=4,
        ge=1,
        description="Worker threads for per-assembly graph construction",
    )
    parallel_emit: bool = Field(
        default=True,
        description="Run emitters for different targets in parallel threads",
    )
    pointer_size: Literal[4, 8] = Field(
        default=8,
        description="Native pointer size in bytes of the inspected image",
    )


class GenericsConfig(BaseModel):
    """Generic instantiation resolver settings."""

    max_depth: int = Field(
        default=16,
        ge=1,
        description="Maximum nesting depth of a materialized instantiation",
    )
    method_specializations: bool = Field(
        default=False,
        description="Declare the generic method instantiations the image lists",
    )


class NativeHeaderConfig(BaseModel):
    """Native (C++) header target settings."""

    verbose_comments: bool = Field(
        default=True,
        description="Emit doc comments with offsets, sizes and vtable slots",
    )
    layout_asserts: bool = Field(
        default=True,
        description="Emit static_assert checks for field offsets and type sizes",
    )
    properties: bool = Field(
        default=True,
        description="Emit __declspec(property) accessors for managed properties",
    )
    namespace_headers: bool = Field(
        default=True,
        description="Emit one aggregate header per namespace",
    )
    umbrella: str = Field(
        default="declgen.hpp",
        description="File name of the header that includes every type in emission order",
    )


class SourceCrateConfig(BaseModel):
    """Source crate (Rust) target settings."""

    crate_name: str = Field(
        default="declgen_types",
        description="Package name written to Cargo.toml",
    )
    crate_version: str = Field(
        default="0.1.0",
        description="Package version written to Cargo.toml",
    )
    edition: Literal["2018", "2021", "2024"] = Field(
        default="2021",
        description="Rust edition of the generated crate",
    )
    verbose_comments: bool = Field(
        default=True,
        description="Emit doc comments with offsets, sizes and vtable slots",
    )
    layout_asserts: bool = Field(
        default=True,
        description="Emit compile-time size assertions",
    )

    @field_validator("crate_name")
    @classmethod
    def _crate_name_is_identifier(cls, value: str) -> str:
        if not value.replace("-", "_").isidentifier():
            raise ValueError(f"invalid crate name: {value!r}")
        return value


class InterchangeConfig(BaseModel):
    """Interchange document (JSON) target settings."""

    pretty: bool = Field(
        default=True,
        description="Indent the JSON document",
    )
    split: bool = Field(
        default=False,
        description="Write one document per type plus an index instead of a single document",
    )


class DeclgenConfig(BaseSettings):
    """Main declgen configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DECLGEN_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    version: str = Field(default="1.0", description="Config version")
    generate: GenerateConfig = Field(default_factory=GenerateConfig)
    generics: GenericsConfig = Field(default_factory=GenericsConfig)
    native_header: NativeHeaderConfig = Field(default_factory=NativeHeaderConfig)
    source_crate: SourceCrateConfig = Field(default_factory=SourceCrateConfig)
    interchange: InterchangeConfig = Field(default_factory=InterchangeConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> DeclgenConfig:
        """Load configuration from file and environment.

        Resolution order (highest to lowest priority):
        1. Environment variables
        2. Provided config file path
        3. .declgenrc.toml in current directory
        4. .declgenrc.toml in home directory
        5. Built-in defaults
        """
        config_data: dict[str, Any] = {}

        locations = []
        if config_path:
            locations.append(config_path)
        locations.extend(
            [
                Path.cwd() / CONFIG_FILE,
                Path.home() / CONFIG_FILE,
            ]
        )

        for loc in locations:
            if loc.exists():
                with open(loc, "rb") as f:
                    config_data = tomllib.load(f)
                break

        config_data.pop("declgen", None)
        return cls(**config_data)


def get_default_config_toml() -> str:
    """Generate default .declgenrc.toml content."""
    return """# declgen configuration

[declgen]
version = "1.0"

[generate]
workers = 4           # Threads used to build assemblies in parallel
parallel_emit = true  # Run emitters for several targets concurrently
pointer_size = 8      # 4 for 32-bit images

[generics]
max_depth = 16                 # Deepest instantiation nesting before giving up
method_specializations = false # Declare generic method instantiations from the image

[native_header]
verbose_comments = true
layout_asserts = true    # static_assert(offsetof(...)) and sizeof checks
properties = true        # __declspec(property) accessors
namespace_headers = true
umbrella = "declgen.hpp"

[source_crate]
crate_name = "declgen_types"
crate_version = "0.1.0"
edition = "2021"
verbose_comments = true
layout_asserts = true

[interchange]
pretty = true
split = false  # One document per type plus index.json
"""
