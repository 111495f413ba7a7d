# File: schemagen/exporters.py
"""
schemagen - Project Exporter
============================
Writes a generated file set below an output directory and describes what
was written in ``manifest.json`` (size, line count and SHA-256 per file).

Per-file failures never stop the batch: they are collected on the
:class:`ExportResult`.  Only an unusable output root raises
:class:`ExportError`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Tuple

from schemagen.utils import Timer, clean_directory, count_lines, sha256_hex, write_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.exporters")

MANIFEST_NAME: str = "manifest.json"


class ExportError(OSError):
    """The output directory cannot be used."""


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FileRecord:
    """What one written file looks like on disk."""

    relative_path: str
    size_bytes: int
    line_count: int
    sha256: str

    @classmethod
    def for_content(cls, relative_path: str, content: str, size_bytes: int) -> "FileRecord":
        return cls(
            relative_path=relative_path,
            size_bytes=size_bytes,
            line_count=count_lines(content),
            sha256=sha256_hex(content),
        )


@dataclass(frozen=True, slots=True)
class ExportManifest:
    """Description of one export; totals are derived from ``files``."""

    project_name: str
    generator_version: str
    export_timestamp: str
    output_directory: str
    files: Tuple[FileRecord, ...] = ()

    @property
    def total_files(self) -> int:
        return len(self.files)

    @property
    def total_bytes(self) -> int:
        return sum(record.size_bytes for record in self.files)

    @property
    def total_lines(self) -> int:
        return sum(record.line_count for record in self.files)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_name": self.project_name,
            "generator_version": self.generator_version,
            "export_timestamp": self.export_timestamp,
            "output_directory": self.output_directory,
            "total_files": self.total_files,
            "total_bytes": self.total_bytes,
            "total_lines": self.total_lines,
            "files": [asdict(record) for record in self.files],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"


@dataclass(frozen=True, slots=True)
class ExportResult:
    """Outcome of :meth:`ProjectExporter.export`."""

    manifest: ExportManifest
    errors: Tuple[str, ...]
    warnings: Tuple[str, ...]
    elapsed_seconds: float

    @property
    def success(self) -> bool:
        return not self.errors


# ---------------------------------------------------------------------------
# ProjectExporter
# ---------------------------------------------------------------------------


def resolve_relative(root: Path, rel_path: str) -> Optional[Path]:
    """
    Target of *rel_path* below *root*, or None when it would land outside.

    Paths are the POSIX-style keys of a generated file set; absolute paths,
    empty paths and any ``..`` component are refused.
    """
    pure: PurePosixPath = PurePosixPath(rel_path)
    if not rel_path or pure.is_absolute() or ".." in pure.parts:
        return None
    return root.joinpath(*pure.parts)


class ProjectExporter:
    """
    Writes ``{relative path: content}`` below ``output_dir``.

    Usage::

        exporter = ProjectExporter(Path("./my-api"), project_name="my-api")
        result = exporter.export(output.files)
        if not result.success:
            print("\\n".join(result.errors))
    """

    def __init__(
        self,
        output_dir: Path,
        *,
        project_name: str = "",
        clean_before_export: bool = False,
        atomic_writes: bool = True,
        write_manifest: bool = True,
    ) -> None:
        self.output_dir: Path = output_dir.resolve()
        self.project_name: str = project_name
        self.clean_before_export: bool = clean_before_export
        self.atomic_writes: bool = atomic_writes
        self.write_manifest: bool = write_manifest

    def export(self, files: Dict[str, str]) -> ExportResult:
        """
        Write *files* in path order and return the result.

        Raises:
            ExportError: if the output root is a file or cannot be created.
        """
        self._prepare_root()
        records: List[FileRecord] = []
        errors: List[str] = []
        warnings: List[str] = []

        with Timer("export") as timer:
            for rel_path in sorted(files):
                try:
                    records.append(self._write_one(rel_path, files[rel_path]))
                except (ValueError, OSError) as exc:
                    errors.append(f"{rel_path or '<empty path>'}: {exc}")
                    logger.error("Could not write %r: %s", rel_path, exc)

            manifest: ExportManifest = self._manifest(records)
            if self.write_manifest:
                try:
                    self._write(self.output_dir / MANIFEST_NAME, manifest.to_json())
                except OSError as exc:
                    warnings.append(f"Could not write {MANIFEST_NAME}: {exc}")
                    logger.warning("Could not write %s: %s", MANIFEST_NAME, exc)

        result: ExportResult = ExportResult(
            manifest=manifest,
            errors=tuple(errors),
            warnings=tuple(warnings),
            elapsed_seconds=timer.elapsed,
        )
        log = logger.info if result.success else logger.error
        log(
            "Exported %d file(s), %d bytes to %s in %.3fs (%d error(s)).",
            manifest.total_files,
            manifest.total_bytes,
            self.output_dir,
            timer.elapsed,
            len(errors),
        )
        return result

    # -----------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------

    def _prepare_root(self) -> None:
        if self.output_dir.exists() and not self.output_dir.is_dir():
            raise ExportError(f"Output path is not a directory: {self.output_dir}")
        try:
            if self.clean_before_export:
                logger.info("Cleaning output directory: %s", self.output_dir)
                clean_directory(self.output_dir)
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ExportError(f"Cannot prepare {self.output_dir}: {exc}") from exc

    def _write_one(self, rel_path: str, content: str) -> FileRecord:
        target: Optional[Path] = resolve_relative(self.output_dir, rel_path)
        if target is None:
            raise ValueError("refusing to write outside the output directory")
        return FileRecord.for_content(rel_path, content, self._write(target, content))

    def _write(self, target: Path, content: str) -> int:
        return write_file(target, content, atomic=self.atomic_writes)

    def _manifest(self, records: List[FileRecord]) -> ExportManifest:
        from schemagen import __version__

        return ExportManifest(
            project_name=self.project_name,
            generator_version=__version__,
            export_timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            output_directory=str(self.output_dir),
            files=tuple(records),
        )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "MANIFEST_NAME",
    "ExportError",
    "FileRecord",
    "ExportManifest",
    "ExportResult",
    "ProjectExporter",
    "resolve_relative",
]

logger.debug("schemagen.exporters loaded: %d public symbols.", len(__all__))
