# File: schemagen/generator.py
"""
schemagen - Project Assembler and Generation Pipeline
=====================================================

The assembler is the engine's single public entry point::

    raw document -> Schema Validator -> Relation Resolver
                 -> every synthesizer -> one path-keyed file map
                 -> Security Scorer

:func:`generate` is a pure function: the same project always yields the
same, path-sorted file map.  Validation failures produce zero files and
the complete error list.

:class:`ProjectGenerator` wraps the assembler in the file-driven pipeline
the CLI uses:

    1. Load a schema file (``.json``, ``.yaml`` or ``.yml``).
    2. Assemble.
    3. Hand the files to :class:`~schemagen.exporters.ProjectExporter`.
    4. Return a :class:`GenerationReport` with per-step timing.

Error handling strategy:
    - User errors (bad input) are collected on the report, never raised.
    - Programming defects (``GenerationDefectError``,
      ``UnmappedFieldTypeError``, ``AssemblerStateError``) propagate.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from schemagen.auth_templates import AuthTemplateGenerator
from schemagen.deployment import DeploymentGenerator
from schemagen.exporters import ExportResult, ProjectExporter
from schemagen.models import Project
from schemagen.relations import ResolvedSchema, resolve_project
from schemagen.security import SecurityReport, format_security_report, score_project
from schemagen.templates import TemplateGenerator, module_name, router_import_line
from schemagen.utils import Timer, count_lines
from schemagen.validators import ValidationError, ValidationOutcome, validate_project

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.generator")

SECURITY_REPORT_PATH: str = "security-report.json"
AUTH_ROUTER_IMPORT: str = "from app.auth.router import router as auth_router"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class SchemaLoadError(ValueError):
    """The schema file is missing, unreadable or not a mapping."""


class GenerationDefectError(RuntimeError):
    """The synthesizers produced an inconsistent file set."""


class AssemblerStateError(RuntimeError):
    """A :class:`ProjectAssembler` was run twice."""


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------


class AssemblerState(str, Enum):
    COLLECTING = "collecting"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class GenerationOutput:
    """Terminal output of the assembler."""

    files: Dict[str, str]
    security_report: Optional[SecurityReport]
    errors: List[ValidationError] = field(default_factory=list)
    warnings: List[ValidationError] = field(default_factory=list)
    state: str = AssemblerState.DONE.value

    @property
    def ok(self) -> bool:
        return not self.errors


class ProjectAssembler:
    """
    One-shot orchestrator with two states, ``collecting -> done``.

    Usage::

        output = ProjectAssembler(raw).run()
        if output.ok:
            write(output.files)
    """

    def __init__(self, raw: Union[Mapping[str, Any], Project]) -> None:
        self._raw: Union[Mapping[str, Any], Project] = raw
        self.state: AssemblerState = AssemblerState.COLLECTING

    def run(self) -> GenerationOutput:
        if self.state is AssemblerState.DONE:
            raise AssemblerStateError("ProjectAssembler instances run exactly once")

        outcome: ValidationOutcome = validate_project(self._raw)
        if not outcome.ok or outcome.data is None:
            self.state = AssemblerState.DONE
            return GenerationOutput(
                files={},
                security_report=None,
                errors=list(outcome.errors),
                warnings=list(outcome.warnings),
            )

        project: Project = outcome.data
        resolved: ResolvedSchema = resolve_project(project)
        warnings: List[ValidationError] = list(outcome.warnings)
        for message in resolved.skipped:
            warnings.append(ValidationError("warning", "RELATION_SKIPPED", "entities", message))

        templates: TemplateGenerator = TemplateGenerator(resolved)
        files: Dict[str, str] = {}
        files.update(templates.generate_all())
        files.update(AuthTemplateGenerator(templates).generate_all())
        files.update(DeploymentGenerator(project).generate_all())
        self._check_bootstrap(project, files)

        report: SecurityReport = score_project(project)
        files[SECURITY_REPORT_PATH] = report.to_json()

        self.state = AssemblerState.DONE
        logger.info("Assembled %d file(s) for project %s.", len(files), project.name)
        return GenerationOutput(
            files={path: files[path] for path in sorted(files)},
            security_report=report,
            errors=[],
            warnings=warnings,
        )

    @staticmethod
    def _check_bootstrap(project: Project, files: Dict[str, str]) -> None:
        """The bootstrap must import one router module per entity."""
        main: Optional[str] = files.get("app/main.py")
        if main is None:
            raise GenerationDefectError("app/main.py was not generated")
        main_lines: List[str] = main.splitlines()
        for entity in project.entities:
            wanted: str = router_import_line(entity.name)
            if main_lines.count(wanted) != 1:
                raise GenerationDefectError(
                    f"Bootstrap must import the {entity.name} router exactly once"
                )
            if f"app/routers/{module_name(entity.name)}.py" not in files:
                raise GenerationDefectError(f"Router module for {entity.name} is missing")
        if project.auth_active and AUTH_ROUTER_IMPORT not in main_lines:
            raise GenerationDefectError("Bootstrap does not wire the auth router")


def generate(raw: Union[Mapping[str, Any], Project]) -> GenerationOutput:
    """Validate, resolve and synthesize *raw* in one call."""
    return ProjectAssembler(raw).run()


# ---------------------------------------------------------------------------
# Generation report
# ---------------------------------------------------------------------------


@dataclass(frozen=False, slots=True)
class GenerationStepMetric:
    """Timing and outcome for a single pipeline step."""

    step_name: str = ""
    success: bool = True
    elapsed_seconds: float = 0.0
    detail: str = ""


@dataclass(frozen=False, slots=True)
class GenerationReport:
    """Everything :meth:`ProjectGenerator.generate_from_file` learned."""

    success: bool = False
    project_name: str = ""
    output_directory: str = ""
    dry_run: bool = False

    total_files: int = 0
    total_bytes: int = 0
    total_lines: int = 0
    total_entities: int = 0
    total_elapsed_seconds: float = 0.0

    step_metrics: List[GenerationStepMetric] = field(default_factory=list)
    validation_errors: List[str] = field(default_factory=list)
    validation_warnings: List[str] = field(default_factory=list)
    load_errors: List[str] = field(default_factory=list)
    export_errors: List[str] = field(default_factory=list)

    output: Optional[GenerationOutput] = None
    export: Optional[ExportResult] = None

    @property
    def security_report(self) -> Optional[SecurityReport]:
        return self.output.security_report if self.output is not None else None

    def summary(self) -> str:
        """Return a human-readable summary string."""
        lines: List[str] = []
        status: str = "SUCCESS" if self.success else "FAILED"
        lines.append("=" * 60)
        lines.append("  schemagen - Generation Report")
        lines.append("=" * 60)
        lines.append(f"  Status:           {status}")
        lines.append(f"  Project:          {self.project_name}")
        lines.append(f"  Output:           {self.output_directory}")
        if self.dry_run:
            lines.append("  Mode:             dry run (nothing written)")
        lines.append(f"  Entities:         {self.total_entities}")
        lines.append(f"  Files generated:  {self.total_files}")
        lines.append(f"  Total lines:      {self.total_lines:,}")
        lines.append(f"  Total bytes:      {self.total_bytes:,}")
        lines.append(f"  Total time:       {self.total_elapsed_seconds:.3f}s")
        lines.append("─" * 60)

        if self.step_metrics:
            lines.append("  Pipeline Steps:")
            for step in self.step_metrics:
                icon: str = "✓" if step.success else "✗"
                lines.append(
                    f"    {icon} {step.step_name:<24s} "
                    f"{step.elapsed_seconds:>7.3f}s  {step.detail}"
                )

        sections: List[Tuple[str, List[str], str]] = [
            ("Load Errors", self.load_errors, "✗"),
            ("Validation Errors", self.validation_errors, "✗"),
            ("Validation Warnings", self.validation_warnings, "!"),
            ("Export Errors", self.export_errors, "✗"),
        ]
        for title, items, marker in sections:
            if not items:
                continue
            lines.append("─" * 60)
            lines.append(f"  {title} ({len(items)}):")
            for item in items:
                lines.append(f"    {marker} {item}")

        if self.security_report is not None:
            lines.append("─" * 60)
            lines.append(format_security_report(self.security_report))

        lines.append("=" * 60)
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Schema loader
# ---------------------------------------------------------------------------


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise SchemaLoadError(f"Schema file is not valid UTF-8: {path}: {exc}") from exc
    except OSError as exc:
        raise SchemaLoadError(f"Cannot read schema file {path}: {exc}") from exc


def _load_json_file(path: Path) -> Dict[str, Any]:
    try:
        data: Any = json.loads(_read_text(path))
    except json.JSONDecodeError as exc:
        raise SchemaLoadError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise SchemaLoadError(
            f"Expected a JSON object at top level, got {type(data).__name__}."
        )
    return data


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    try:
        data: Any = yaml.safe_load(_read_text(path))
    except yaml.YAMLError as exc:
        raise SchemaLoadError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise SchemaLoadError(
            f"Expected a YAML mapping at top level, got {type(data).__name__}."
        )
    return data


def load_schema_file(path: Path) -> Dict[str, Any]:
    """
    Load a project document from a JSON or YAML file.

    Dispatches on the extension; unknown extensions are tried as JSON
    first, then YAML.

    Raises:
        SchemaLoadError: if the file cannot be read or parsed.
    """
    if not path.exists():
        raise SchemaLoadError(f"Schema file not found: {path}")
    if not path.is_file():
        raise SchemaLoadError(f"Schema path is not a file: {path}")

    suffix: str = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return _load_yaml_file(path)
    if suffix == ".json":
        return _load_json_file(path)
    logger.info("Unknown extension '%s'; trying JSON then YAML.", suffix)
    try:
        return _load_json_file(path)
    except SchemaLoadError:
        return _load_yaml_file(path)


# ---------------------------------------------------------------------------
# ProjectGenerator: file pipeline
# ---------------------------------------------------------------------------


class ProjectGenerator:
    """
    Load, assemble and export in one call.

    Usage::

        report = ProjectGenerator().generate_from_file(
            Path("schema.yaml"), Path("./my-api")
        )
        print(report.summary())

    The generator is reusable; every call builds a fresh assembler.
    """

    def __init__(
        self,
        *,
        clean_output: bool = False,
        write_manifest: bool = True,
    ) -> None:
        self._clean_output: bool = clean_output
        self._write_manifest: bool = write_manifest
        logger.debug(
            "ProjectGenerator initialised: clean=%s, manifest=%s.",
            clean_output,
            write_manifest,
        )

    def generate_from_file(
        self,
        schema_path: Path,
        output_dir: Path,
        *,
        dry_run: bool = False,
        validate_only: bool = False,
        settings_overrides: Optional[Dict[str, Any]] = None,
    ) -> GenerationReport:
        """
        Full pipeline from a schema file.

        *settings_overrides* (wire names, e.g. ``{"database": "sqlite"}``)
        replace keys of the document's ``settings`` before validation.
        """
        report: GenerationReport = GenerationReport(
            output_directory=str(output_dir.resolve()), dry_run=dry_run
        )
        start: float = time.perf_counter()

        with Timer("load_schema") as t_load:
            try:
                raw: Dict[str, Any] = load_schema_file(schema_path)
            except SchemaLoadError as exc:
                raw = {}
                report.load_errors.append(str(exc))
        report.step_metrics.append(GenerationStepMetric(
            step_name="Load Schema File",
            success=not report.load_errors,
            elapsed_seconds=t_load.elapsed,
            detail=report.load_errors[0] if report.load_errors else f"from {schema_path.name}",
        ))
        if report.load_errors:
            return self._finalise(report, start)

        if settings_overrides:
            if raw.get("settings") is None:
                raw["settings"] = {}
            settings: Any = raw["settings"]
            if isinstance(settings, dict):
                settings.update(settings_overrides)
                logger.info("Applied settings overrides: %s", sorted(settings_overrides))

        return self._run(raw, output_dir, report, start, dry_run, validate_only)

    def generate(
        self,
        raw: Union[Mapping[str, Any], Project],
        output_dir: Path,
        *,
        dry_run: bool = False,
        validate_only: bool = False,
    ) -> GenerationReport:
        """Full pipeline from an in-memory document or ``Project``."""
        report: GenerationReport = GenerationReport(
            output_directory=str(output_dir.resolve()), dry_run=dry_run
        )
        return self._run(raw, output_dir, report, time.perf_counter(), dry_run, validate_only)

    # -----------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------

    def _run(
        self,
        raw: Union[Mapping[str, Any], Project],
        output_dir: Path,
        report: GenerationReport,
        start: float,
        dry_run: bool,
        validate_only: bool,
    ) -> GenerationReport:
        if validate_only:
            with Timer("validation") as t_val:
                outcome: ValidationOutcome = validate_project(raw)
            report.validation_errors.extend(_describe(e) for e in outcome.errors)
            report.validation_warnings.extend(_describe(w) for w in outcome.warnings)
            if outcome.data is not None:
                report.project_name = outcome.data.name
                report.total_entities = len(outcome.data.entities)
            report.step_metrics.append(GenerationStepMetric(
                step_name="Validate Schema",
                success=outcome.ok,
                elapsed_seconds=t_val.elapsed,
                detail=f"{len(outcome.errors)} error(s), {len(outcome.warnings)} warning(s)",
            ))
            return self._finalise(report, start)

        with Timer("assemble") as t_gen:
            output: GenerationOutput = generate(raw)
        report.output = output
        report.validation_errors.extend(_describe(e) for e in output.errors)
        report.validation_warnings.extend(_describe(w) for w in output.warnings)
        report.total_files = len(output.files)
        report.total_lines = sum(count_lines(c) for c in output.files.values())
        report.total_bytes = sum(len(c.encode("utf-8")) for c in output.files.values())
        if isinstance(raw, Project):
            report.project_name = raw.name
            report.total_entities = len(raw.entities)
        elif output.ok:
            report.project_name = str(raw.get("name", ""))
            report.total_entities = len(raw.get("entities") or [])
        report.step_metrics.append(GenerationStepMetric(
            step_name="Assemble Project",
            success=output.ok,
            elapsed_seconds=t_gen.elapsed,
            detail=(
                f"{report.total_files} files, ~{report.total_lines:,} lines"
                if output.ok
                else f"{len(output.errors)} validation error(s)"
            ),
        ))
        if not output.ok:
            logger.error("Generation aborted: %d validation error(s).", len(output.errors))
            return self._finalise(report, start)

        if dry_run:
            logger.info("Dry run: %d file(s) not written.", report.total_files)
            return self._finalise(report, start)

        with Timer("export") as t_exp:
            exporter: ProjectExporter = ProjectExporter(
                output_dir,
                project_name=report.project_name,
                clean_before_export=self._clean_output,
                write_manifest=self._write_manifest,
            )
            result: ExportResult = exporter.export(output.files)
        report.export = result
        report.export_errors.extend(result.errors)
        report.step_metrics.append(GenerationStepMetric(
            step_name="Export to Filesystem",
            success=result.success,
            elapsed_seconds=t_exp.elapsed,
            detail=f"{result.manifest.total_files} files, {result.manifest.total_bytes:,} bytes",
        ))
        return self._finalise(report, start)

    @staticmethod
    def _finalise(report: GenerationReport, start: float) -> GenerationReport:
        report.total_elapsed_seconds = time.perf_counter() - start
        report.success = not (
            report.load_errors or report.validation_errors or report.export_errors
        )
        return report


def _describe(item: ValidationError) -> str:
    return f"{item.path or '<root>'}: {item.message}"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "SECURITY_REPORT_PATH",
    "SchemaLoadError",
    "GenerationDefectError",
    "AssemblerStateError",
    "AssemblerState",
    "GenerationOutput",
    "ProjectAssembler",
    "generate",
    "GenerationStepMetric",
    "GenerationReport",
    "load_schema_file",
    "ProjectGenerator",
]

logger.debug("schemagen.generator loaded: %d public symbols.", len(__all__))
