"""Tests for declgen CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner
from helpers import generic_method_documents, sample_metadata_document

from declgen.cli import cli
from declgen.errors import ExitCode
from declgen.paths import CONFIG_FILE


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep user configuration out of the tests."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    return home


class TestCLIHelp:
    def test_main_help(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("generate", "order", "targets", "init"):
            assert command in result.output

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "declgen" in result.output

    def test_targets(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["targets"])
        assert result.exit_code == 0
        assert "native-header" in result.output
        assert "source-crate" in result.output
        assert "interchange-document" in result.output


class TestInit:
    def test_creates_config(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["init"])
        assert result.exit_code == 0
        assert (tmp_path / CONFIG_FILE).exists()
        assert "[generate]" in (tmp_path / CONFIG_FILE).read_text()

    def test_refuses_to_overwrite(self, runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILE).write_text("# mine\n")
        result = runner.invoke(cli, ["init"])
        assert result.exit_code == ExitCode.CONFIG_ERROR
        assert (tmp_path / CONFIG_FILE).read_text() == "# mine\n"

    def test_force_overwrites(self, runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILE).write_text("# mine\n")
        result = runner.invoke(cli, ["init", "--force"])
        assert result.exit_code == 0
        assert "# mine" not in (tmp_path / CONFIG_FILE).read_text()


class TestGenerateCommand:
    def test_single_target(self, runner: CliRunner, snapshot_files: tuple[Path, Path], tmp_path: Path) -> None:
        metadata, image = snapshot_files
        out = tmp_path / "include"
        result = runner.invoke(
            cli, ["-q", "generate", "-m", str(metadata), "-i", str(image), "-t", "native-header", "-o", str(out)]
        )
        assert result.exit_code == 0, result.output
        assert (out / "declgen.hpp").exists()
        assert "struct Player : public ::Game::Entity {" in (out / "Game" / "Player.hpp").read_text()

    def test_several_targets_json_report(
        self, runner: CliRunner, snapshot_files: tuple[Path, Path], tmp_path: Path
    ) -> None:
        metadata, image = snapshot_files
        out = tmp_path / "out"
        result = runner.invoke(
            cli,
            [
                "-q",
                "generate",
                "-m",
                str(metadata),
                "-i",
                str(image),
                "-t",
                "source-crate",
                "-t",
                "interchange-document",
                "-o",
                str(out),
                "--json",
            ],
        )
        assert result.exit_code == 0, result.output
        report = json.loads(result.output)
        assert report["success"] is True
        assert set(report["written"]) == {"source-crate", "interchange-document"}
        assert (out / "source-crate" / "Cargo.toml").exists()
        assert (out / "interchange-document" / "types.json").exists()

    def test_overrides(self, runner: CliRunner, snapshot_files: tuple[Path, Path], tmp_path: Path) -> None:
        metadata, image = snapshot_files
        out = tmp_path / "include"
        result = runner.invoke(
            cli,
            [
                "-q",
                "generate",
                "-m",
                str(metadata),
                "-i",
                str(image),
                "-t",
                "native-header",
                "-o",
                str(out),
                "--no-asserts",
                "--no-comments",
                "--workers",
                "1",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "static_assert" not in (out / "Game" / "Player.hpp").read_text()

    @pytest.mark.parametrize(
        ("flag", "declared"),
        [("--method-specializations", True), ("--no-method-specializations", False)],
    )
    def test_method_specializations(self, runner: CliRunner, tmp_path: Path, flag: str, declared: bool) -> None:
        metadata_doc, image_doc = generic_method_documents()
        metadata = tmp_path / "metadata.json"
        image = tmp_path / "image.json"
        metadata.write_text(json.dumps(metadata_doc))
        image.write_text(json.dumps(image_doc))
        out = tmp_path / "include"
        result = runner.invoke(
            cli,
            ["-q", "generate", "-m", str(metadata), "-i", str(image), "-t", "native-header", "-o", str(out), flag],
        )
        assert result.exit_code == 0, result.output
        umbrella = (out / "declgen.hpp").read_text()
        assert ("template<> template<> float Box_1<int32_t>::Map<float>(int32_t input);" in umbrella) is declared

    def test_split_interchange(self, runner: CliRunner, snapshot_files: tuple[Path, Path], tmp_path: Path) -> None:
        metadata, image = snapshot_files
        out = tmp_path / "docs"
        result = runner.invoke(
            cli,
            ["-q", "generate", "-m", str(metadata), "-i", str(image), "-t", "interchange-document", "--split", "-o", str(out)],
        )
        assert result.exit_code == 0, result.output
        assert (out / "index.json").exists()
        assert not (out / "types.json").exists()

    def test_missing_metadata(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(
            cli, ["generate", "-m", str(tmp_path / "nope.json"), "-t", "native-header", "-o", str(tmp_path / "out")]
        )
        assert result.exit_code == ExitCode.SOURCE_ERROR
        assert "SourceUnavailable" in result.output
        assert not (tmp_path / "out").exists()

    def test_unbreakable_cycle(self, runner: CliRunner, tmp_path: Path) -> None:
        document = sample_metadata_document()
        document["types"].append(
            {
                "token": 30,
                "name": "Loop",
                "namespace": "Game",
                "assembly": 1,
                "kind": "struct",
                "layout": "sequential",
                "fields": [{"token": 300, "name": "inner", "type": {"kind": "type", "token": 30}}],
            }
        )
        metadata = tmp_path / "metadata.json"
        metadata.write_text(json.dumps(document))
        result = runner.invoke(
            cli, ["generate", "-m", str(metadata), "-t", "native-header", "-o", str(tmp_path / "out")]
        )
        assert result.exit_code == ExitCode.GENERATION_ERROR
        assert "UnbreakableCycle" in result.output

    def test_broken_config(self, runner: CliRunner, snapshot_files: tuple[Path, Path], tmp_path: Path) -> None:
        metadata, _ = snapshot_files
        config = tmp_path / "bad.toml"
        config.write_text("[generate]\nworkers = 0\n")
        result = runner.invoke(
            cli,
            ["--config", str(config), "generate", "-m", str(metadata), "-t", "native-header", "-o", str(tmp_path / "o")],
        )
        assert result.exit_code == ExitCode.CONFIG_ERROR
        assert "Failed to load configuration" in result.output

    def test_unknown_target_is_usage_error(self, runner: CliRunner, snapshot_files: tuple[Path, Path]) -> None:
        metadata, _ = snapshot_files
        result = runner.invoke(cli, ["generate", "-m", str(metadata), "-t", "cobol", "-o", "out"])
        assert result.exit_code == 2
        assert "cobol" in result.output


class TestOrderCommand:
    def test_json(self, runner: CliRunner, snapshot_files: tuple[Path, Path]) -> None:
        metadata, image = snapshot_files
        result = runner.invoke(cli, ["-q", "order", "-m", str(metadata), "-i", str(image), "-f", "json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        names = [entry["name"] for entry in data["order"]]
        assert names.index("Game.Entity") < names.index("Game.Player")
        assert data["forward_declarations"] == []
        assert data["stats"]["types"] == 5
        assert data["stats"]["instantiations"] == 2

    def test_table(self, runner: CliRunner, snapshot_files: tuple[Path, Path]) -> None:
        metadata, image = snapshot_files
        result = runner.invoke(cli, ["-q", "order", "-m", str(metadata), "-i", str(image)])
        assert result.exit_code == 0, result.output
        assert "Emission Order" in result.output
        assert "Game.Player" in result.output
        assert "instantiation" in result.output
