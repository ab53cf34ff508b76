"""declgen generate command - emit declarations for one or more targets."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

if TYPE_CHECKING:
    from declgen.cli import DeclgenContext
    from declgen.config import DeclgenConfig

TARGETS = ["native-header", "source-crate", "interchange-document"]


def _apply_overrides(
    config: DeclgenConfig,
    workers: int | None,
    no_comments: bool,
    no_asserts: bool,
    split: bool,
    method_specializations: bool | None = None,
) -> DeclgenConfig:
    """Copy of the configuration with command-line overrides applied."""
    update: dict[str, Any] = {}
    if workers is not None:
        update["generate"] = config.generate.model_copy(update={"workers": workers})
    section_update: dict[str, bool] = {}
    if no_comments:
        section_update["verbose_comments"] = False
    if no_asserts:
        section_update["layout_asserts"] = False
    if section_update:
        update["native_header"] = config.native_header.model_copy(update=section_update)
        update["source_crate"] = config.source_crate.model_copy(update=section_update)
    if split:
        update["interchange"] = config.interchange.model_copy(update={"split": True})
    if method_specializations is not None:
        update["generics"] = config.generics.model_copy(update={"method_specializations": method_specializations})
    return config.model_copy(update=update)


@click.command("generate")
@click.option(
    "--metadata",
    "-m",
    required=True,
    type=click.Path(path_type=Path),
    help="Decoded metadata snapshot (JSON)",
)
@click.option(
    "--image",
    "-i",
    type=click.Path(path_type=Path),
    help="Image layout document with sizes, offsets, vtables and instantiations (JSON)",
)
@click.option(
    "--target",
    "-t",
    "targets",
    required=True,
    multiple=True,
    type=click.Choice(TARGETS),
    help="Emission target (repeat for several)",
)
@click.option(
    "--output",
    "-o",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Output directory; with several targets each gets a subdirectory",
)
@click.option("--workers", "-w", type=click.IntRange(min=1), help="Graph construction threads")
@click.option("--no-comments", is_flag=True, help="Omit offset, size and slot comments")
@click.option("--no-asserts", is_flag=True, help="Omit compile-time layout assertions")
@click.option("--split", is_flag=True, help="Write one interchange document per type")
@click.option(
    "--method-specializations/--no-method-specializations",
    default=None,
    help="Declare the generic method instantiations listed in the image layout",
)
@click.option("--json", "as_json", is_flag=True, help="Print the generation report as JSON")
@click.pass_obj
def generate(
    ctx: DeclgenContext,
    metadata: Path,
    image: Path | None,
    targets: tuple[str, ...],
    output: Path,
    workers: int | None,
    no_comments: bool,
    no_asserts: bool,
    split: bool,
    method_specializations: bool | None,
    as_json: bool,
) -> None:
    """Generate declarations from a metadata snapshot.

    \b
    Examples:
        declgen generate -m metadata.json -i image.json -t native-header -o include/
        declgen generate -m metadata.json -t source-crate -o crates/game_types
        declgen generate -m metadata.json -i image.json -t native-header -t interchange-document -o out/
        declgen generate -m metadata.json -t interchange-document --split -o docs/types
        declgen generate -m metadata.json -i image.json -t native-header --method-specializations -o include/
    """
    from declgen.commands._utils import fail, open_snapshot, require_config
    from declgen.errors import DeclgenError
    from declgen.logging import console, create_progress, print_error, print_info, print_success
    from declgen.pipeline import generate as run_pipeline

    config = _apply_overrides(
        require_config(ctx), workers, no_comments, no_asserts, split, method_specializations
    )
    show_progress = ctx.verbosity != "quiet" and not as_json

    try:
        adapter = open_snapshot(metadata, image)
        if show_progress:
            with create_progress() as progress:
                task = progress.add_task("Loading metadata", total=None)
                report = run_pipeline(
                    adapter,
                    list(targets),
                    output,
                    config,
                    on_stage=lambda stage: progress.update(task, description=stage),
                )
        else:
            report = run_pipeline(adapter, list(targets), output, config)
    except DeclgenError as e:
        fail(ctx, e)

    if as_json:
        console.print_json(json.dumps(report.to_dict()))
    else:
        for target, destination in report.written.items():
            if ctx.verbosity != "quiet":
                print_success(f"{target}: {report.artifact_counts[target]} files written to {destination}")
        for target, error in report.errors.items():
            print_error(f"{target}: {error.diagnostic()}")
        if report.errors and ctx.verbosity != "quiet":
            print_info("Failed targets left their destinations untouched.")

    if not report.success:
        if ctx.debug:
            raise next(iter(report.errors.values()))
        sys.exit(report.exit_code)


__all__ = ["generate"]
