"""Tests for the declgen error framework."""

from __future__ import annotations

from declgen.errors import (
    ConfigError,
    DeclgenError,
    ExitCode,
    GenerationReport,
    MetadataInconsistency,
    OutputWriteFailure,
    SourceUnavailable,
    Stage,
    UnbreakableCycle,
    UnresolvedGenericBinding,
)


class TestDeclgenError:
    """Base error behavior."""

    def test_defaults(self) -> None:
        error = DeclgenError("boom")
        assert error.message == "boom"
        assert error.exit_code == ExitCode.FATAL_ERROR
        assert error.stage == Stage.BUILD
        assert str(error) == "boom"

    def test_stage_override(self) -> None:
        error = DeclgenError("boom", stage=Stage.EMIT)
        assert error.stage == Stage.EMIT
        assert DeclgenError.stage == Stage.BUILD

    def test_to_dict_includes_context(self) -> None:
        error = DeclgenError("boom", stage=Stage.LAYOUT, extra=3)
        data = error.to_dict()
        assert data == {
            "error": "DeclgenError",
            "message": "boom",
            "stage": "layout",
            "exit_code": int(ExitCode.FATAL_ERROR),
            "extra": 3,
        }

    def test_diagnostic_is_single_line(self) -> None:
        error = ConfigError("bad value")
        assert error.diagnostic() == "ConfigError during config: bad value"
        assert "\n" not in error.diagnostic()


class TestConditions:
    """Each condition carries its category, stage and tokens."""

    def test_source_unavailable(self) -> None:
        error = SourceUnavailable("missing", path="/tmp/meta.json")
        assert error.exit_code == ExitCode.SOURCE_ERROR
        assert error.stage == Stage.SOURCE
        assert error.to_dict()["path"] == "/tmp/meta.json"

    def test_metadata_inconsistency_names_token(self) -> None:
        error = MetadataInconsistency("no record", token=9999, referenced_by=10)
        assert error.exit_code == ExitCode.GENERATION_ERROR
        assert error.stage == Stage.BUILD
        assert error.token == 9999
        assert "9999" in error.diagnostic()
        assert "referenced by 10" in error.diagnostic()

    def test_metadata_inconsistency_stage(self) -> None:
        error = MetadataInconsistency("bad offset", token=5, stage=Stage.LAYOUT)
        assert error.stage == Stage.LAYOUT

    def test_unresolved_generic_binding(self) -> None:
        error = UnresolvedGenericBinding("arity", definition=13)
        assert error.stage == Stage.GENERICS
        assert error.definition == 13

    def test_unbreakable_cycle_lists_members(self) -> None:
        error = UnbreakableCycle([21, 20], ["Game.Y", "Game.X"])
        assert error.members == [20, 21]
        assert error.stage == Stage.ORDERING
        assert "20 -> 21 -> 20" in error.message
        assert error.to_dict()["members"] == [20, 21]

    def test_output_write_failure(self) -> None:
        error = OutputWriteFailure("disk full", target="native-header", path="/out")
        assert error.exit_code == ExitCode.OUTPUT_ERROR
        assert error.stage == Stage.WRITE
        assert error.target == "native-header"


class TestGenerationReport:
    """Aggregation of per-target outcomes."""

    def test_empty_report_succeeds(self) -> None:
        report = GenerationReport()
        assert report.success
        assert report.exit_code == ExitCode.SUCCESS

    def test_written_targets(self) -> None:
        report = GenerationReport()
        report.add_written("native-header", "/out/native-header", 12)
        data = report.to_dict()
        assert data["success"] is True
        assert data["written"] == {"native-header": "/out/native-header"}
        assert data["artifacts"] == {"native-header": 12}

    def test_most_severe_exit_code(self) -> None:
        report = GenerationReport()
        report.add_error("source-crate", OutputWriteFailure("x", target="source-crate"))
        report.add_error("native-header", MetadataInconsistency("y", token=1))
        assert not report.success
        assert report.exit_code == ExitCode.OUTPUT_ERROR
        assert report.to_dict()["errors"]["native-header"]["token"] == 1
