"""
tests/test_cli.py
Tests for the schemagen command-line interface.

Tests cover:
- Exit codes for success, validation, export and input errors
- --validate-only, --dry-run and --quiet output
- --fail-on-warnings
- Settings overrides reaching the generated files
"""

from __future__ import annotations

import json
import pathlib
from typing import Any, Dict

import pytest

import schemagen
from schemagen.cli import (
    EXIT_EXPORT_ERROR,
    EXIT_INPUT_ERROR,
    EXIT_SUCCESS,
    EXIT_VALIDATION_ERROR,
    main,
    run,
)


def _write_json(path: pathlib.Path, data: Dict[str, Any]) -> pathlib.Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestExitCodes:
    """run() return values."""

    def test_success(self, schema_yaml_path: pathlib.Path, output_dir: pathlib.Path) -> None:
        assert run(["-s", str(schema_yaml_path), "-o", str(output_dir), "-q"]) == EXIT_SUCCESS
        assert (output_dir / "app" / "main.py").is_file()

    def test_missing_output_dir(self, schema_yaml_path: pathlib.Path) -> None:
        assert run(["-s", str(schema_yaml_path), "-q"]) == EXIT_INPUT_ERROR

    def test_missing_schema_file(self, tmp_path: pathlib.Path) -> None:
        code = run(["-s", str(tmp_path / "nope.yaml"), "--validate-only", "-q"])
        assert code == EXIT_INPUT_ERROR

    def test_undecodable_schema_file(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "binary.yaml"
        path.write_bytes(b"\xff\xfe\x00")
        assert run(["-s", str(path), "--validate-only", "-q"]) == EXIT_INPUT_ERROR

    def test_validation_error(self, tmp_path: pathlib.Path, output_dir: pathlib.Path) -> None:
        path = _write_json(tmp_path / "bad.json", {"name": "bad", "entities": []})
        assert run(["-s", str(path), "-o", str(output_dir), "-q"]) == EXIT_VALIDATION_ERROR
        assert not output_dir.exists()

    def test_output_is_a_file(self, schema_yaml_path: pathlib.Path, tmp_path: pathlib.Path) -> None:
        target = tmp_path / "occupied"
        target.write_text("x", encoding="utf-8")
        assert run(["-s", str(schema_yaml_path), "-o", str(target), "-q"]) == EXIT_EXPORT_ERROR

    def test_schema_argument_is_required(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run([])
        assert exc_info.value.code == 2

    def test_main_exits_with_run_code(self, schema_yaml_path: pathlib.Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["-s", str(schema_yaml_path), "--validate-only", "-q"])
        assert exc_info.value.code == EXIT_SUCCESS


class TestModes:
    """Validate-only, dry run, quiet and version output."""

    def test_validate_only(
        self,
        schema_yaml_path: pathlib.Path,
        output_dir: pathlib.Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        code = run(["-s", str(schema_yaml_path), "-o", str(output_dir), "--validate-only"])
        assert code == EXIT_SUCCESS
        assert "Status:           SUCCESS" in capsys.readouterr().out
        assert not output_dir.exists()

    def test_dry_run_lists_files(
        self,
        minimal_schema_dict: Dict[str, Any],
        tmp_path: pathlib.Path,
        output_dir: pathlib.Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        path = _write_json(tmp_path / "schema.json", minimal_schema_dict)
        assert run(["-s", str(path), "-o", str(output_dir), "--dry-run"]) == EXIT_SUCCESS
        lines = capsys.readouterr().out.splitlines()
        assert "  app/main.py" in lines
        assert "  app/routers/item.py" in lines
        assert not output_dir.exists()

    def test_quiet_prints_nothing(
        self,
        schema_yaml_path: pathlib.Path,
        output_dir: pathlib.Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        run(["-s", str(schema_yaml_path), "-o", str(output_dir), "-q"])
        assert capsys.readouterr().out == ""

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run(["--version"])
        assert exc_info.value.code == 0
        assert schemagen.__version__ in capsys.readouterr().out


class TestWarningsAndOverrides:
    """--fail-on-warnings and settings overrides."""

    @pytest.fixture()
    def warning_schema_path(
        self, minimal_schema_dict: Dict[str, Any], tmp_path: pathlib.Path
    ) -> pathlib.Path:
        minimal_schema_dict["modules"] = [{"name": "websockets"}]
        return _write_json(tmp_path / "warn.json", minimal_schema_dict)

    def test_warnings_pass_by_default(self, warning_schema_path: pathlib.Path) -> None:
        assert run(["-s", str(warning_schema_path), "--validate-only", "-q"]) == EXIT_SUCCESS

    def test_fail_on_warnings(self, warning_schema_path: pathlib.Path) -> None:
        code = run(["-s", str(warning_schema_path), "--validate-only", "--fail-on-warnings", "-q"])
        assert code == EXIT_VALIDATION_ERROR

    def test_overrides(self, schema_yaml_path: pathlib.Path, output_dir: pathlib.Path) -> None:
        code = run([
            "-s", str(schema_yaml_path),
            "-o", str(output_dir),
            "--database", "sqlite",
            "--port", "8080",
            "--no-docker",
            "--no-swagger",
            "--no-manifest",
            "-q",
        ])
        assert code == EXIT_SUCCESS
        assert not (output_dir / "Dockerfile").exists()
        assert not (output_dir / "manifest.json").exists()
        config = (output_dir / "app" / "config.py").read_text(encoding="utf-8")
        assert "sqlite:///./app.db" in config
        assert "8080" in config

    def test_database_url_override(
        self, schema_yaml_path: pathlib.Path, output_dir: pathlib.Path
    ) -> None:
        code = run([
            "-s", str(schema_yaml_path),
            "-o", str(output_dir),
            "--database-url", "postgres://me:pw@db.local/prod",
            "-q",
        ])
        assert code == EXIT_SUCCESS
        config = (output_dir / "app" / "config.py").read_text(encoding="utf-8")
        assert "postgresql+psycopg://me:pw@db.local/prod" in config
