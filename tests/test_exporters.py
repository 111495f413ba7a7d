"""
tests/test_exporters.py
Unit tests for schemagen.exporters (ProjectExporter).

Tests cover:
- Writing nested files and recording size / lines / checksum
- manifest.json contents and the opt-out flag
- Cleaning the output directory (.git survives)
- Unsafe relative paths and unusable output roots
"""

from __future__ import annotations

import hashlib
import json
import pathlib

import pytest

import schemagen
from schemagen.exporters import MANIFEST_NAME, ExportError, ProjectExporter


FILES = {
    "app/__init__.py": '"""Package."""\n',
    "app/main.py": "app = None\nprint(app)\n",
    "README.md": "# Demo",
}


class TestProjectExporter:
    """Tests for ProjectExporter.export()."""

    def test_writes_every_file(self, output_dir: pathlib.Path) -> None:
        result = ProjectExporter(output_dir, project_name="demo").export(FILES)
        assert result.success
        assert result.errors == ()
        for rel_path, content in FILES.items():
            assert (output_dir / rel_path).read_text(encoding="utf-8") == content

    def test_file_records(self, output_dir: pathlib.Path) -> None:
        result = ProjectExporter(output_dir).export(FILES)
        records = {r.relative_path: r for r in result.manifest.files}
        main = records["app/main.py"]
        assert main.line_count == 2
        assert main.size_bytes == len(FILES["app/main.py"].encode("utf-8"))
        assert main.sha256 == hashlib.sha256(FILES["app/main.py"].encode("utf-8")).hexdigest()
        assert records["README.md"].line_count == 1

    def test_manifest_file(self, output_dir: pathlib.Path) -> None:
        ProjectExporter(output_dir, project_name="demo").export(FILES)
        manifest = json.loads((output_dir / MANIFEST_NAME).read_text(encoding="utf-8"))
        assert manifest["project_name"] == "demo"
        assert manifest["generator_version"] == schemagen.__version__
        assert manifest["total_files"] == len(FILES)
        assert [f["relative_path"] for f in manifest["files"]] == sorted(FILES)

    def test_manifest_can_be_disabled(self, output_dir: pathlib.Path) -> None:
        ProjectExporter(output_dir, write_manifest=False).export(FILES)
        assert not (output_dir / MANIFEST_NAME).exists()

    def test_non_atomic_writes(self, output_dir: pathlib.Path) -> None:
        result = ProjectExporter(output_dir, atomic_writes=False).export(FILES)
        assert result.success
        assert (output_dir / "app" / "main.py").exists()

    def test_clean_keeps_git(self, output_dir: pathlib.Path) -> None:
        (output_dir / ".git").mkdir(parents=True)
        (output_dir / ".git" / "HEAD").write_text("ref", encoding="utf-8")
        (output_dir / "old").mkdir()
        (output_dir / "old" / "file.py").write_text("x", encoding="utf-8")
        ProjectExporter(output_dir, clean_before_export=True).export(FILES)
        assert (output_dir / ".git" / "HEAD").exists()
        assert not (output_dir / "old").exists()

    def test_without_clean_existing_files_survive(self, output_dir: pathlib.Path) -> None:
        output_dir.mkdir()
        (output_dir / "keep.txt").write_text("keep", encoding="utf-8")
        ProjectExporter(output_dir).export(FILES)
        assert (output_dir / "keep.txt").exists()

    @pytest.mark.parametrize("bad_path", ["../escape.py", "/etc/passwd", "app/../../x.py", ""])
    def test_unsafe_paths_are_rejected(self, output_dir: pathlib.Path, bad_path: str) -> None:
        result = ProjectExporter(output_dir).export({bad_path: "x", "ok.py": "y"})
        assert not result.success
        assert len(result.errors) == 1
        assert (output_dir / "ok.py").exists()
        assert not (output_dir.parent / "escape.py").exists()

    def test_output_root_is_a_file(self, tmp_path: pathlib.Path) -> None:
        target = tmp_path / "taken"
        target.write_text("file", encoding="utf-8")
        with pytest.raises(ExportError):
            ProjectExporter(target).export(FILES)

    def test_output_dir_is_resolved(self, tmp_path: pathlib.Path) -> None:
        exporter = ProjectExporter(tmp_path / "a" / ".." / "b")
        assert exporter.output_dir == (tmp_path / "b").resolve()
