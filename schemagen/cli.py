# File: schemagen/cli.py
"""
schemagen - Command-Line Interface
==================================

Thin ``argparse`` shim over :class:`~schemagen.generator.ProjectGenerator`.

Usage examples::

    # Generate a service
    schemagen -s schema.yaml -o ./my-api

    # Validate only
    schemagen -s schema.json --validate-only

    # Override deployment settings for this run
    schemagen -s schema.yaml -o ./out --database sqlite --no-docker

    # Print the file list without writing anything
    schemagen -s schema.yaml -o ./out --dry-run -v

Exit codes:
    0 - success
    1 - validation error
    2 - generation error
    3 - export error
    4 - input/argument error
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Sequence, Tuple

from schemagen.exporters import ExportError
from schemagen.generator import (
    AssemblerStateError,
    GenerationDefectError,
    GenerationReport,
    ProjectGenerator,
)
from schemagen.type_mapper import UnmappedFieldTypeError

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_VALIDATION_ERROR: int = 1
EXIT_GENERATION_ERROR: int = 2
EXIT_EXPORT_ERROR: int = 3
EXIT_INPUT_ERROR: int = 4


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Send ``schemagen.*`` records to stderr.

    *verbosity*: -1 (quiet) = ERROR, 0 = WARNING, 1 = INFO, 2 or more = DEBUG.
    """
    levels: Tuple[int, ...] = (logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG)
    level: int = levels[max(0, min(verbosity + 1, len(levels) - 1))]

    handler: logging.Handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    ))

    package_logger: logging.Logger = logging.getLogger("schemagen")
    package_logger.handlers[:] = [handler]
    package_logger.setLevel(level)
    package_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    from schemagen import __version__

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="schemagen",
        description=(
            "Generate a FastAPI + SQLAlchemy backend service from a declarative "
            "project schema (JSON or YAML)."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s -s schema.yaml -o ./my-api\n"
            "  %(prog)s -s schema.json --validate-only\n"
            "  %(prog)s -s schema.yaml -o ./out --database sqlite --no-docker\n"
        ),
    )
    parser.add_argument("--version", action="version", version=f"schemagen {__version__}")
    parser.add_argument(
        "-s", "--schema",
        required=True,
        metavar="PATH",
        help="Path to the project schema (JSON or YAML).",
    )
    parser.add_argument(
        "-o", "--output",
        default=None,
        metavar="DIR",
        help="Output directory. Required unless --validate-only is set.",
    )

    mode_group = parser.add_argument_group("operation modes")
    mode_group.add_argument(
        "--validate-only",
        action="store_true",
        help="Only validate the schema.",
    )
    mode_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the whole pipeline but write nothing.",
    )

    override_group = parser.add_argument_group("settings overrides")
    override_group.add_argument(
        "--database",
        choices=["postgresql", "mysql", "sqlite"],
        default=None,
        help="Override settings.database.",
    )
    override_group.add_argument(
        "--database-url",
        default=None,
        metavar="URL",
        help="Override settings.databaseUrl.",
    )
    override_group.add_argument(
        "--port",
        type=int,
        default=None,
        help="Override settings.port.",
    )
    override_group.add_argument(
        "--no-docker",
        action="store_true",
        help="Skip the Dockerfile and docker-compose.yml.",
    )
    override_group.add_argument(
        "--no-swagger",
        action="store_true",
        help="Disable the interactive API docs.",
    )

    behaviour_group = parser.add_argument_group("behaviour flags")
    behaviour_group.add_argument(
        "--clean",
        action="store_true",
        help="Empty the output directory first (.git is kept).",
    )
    behaviour_group.add_argument(
        "--no-manifest",
        action="store_true",
        help="Do not write manifest.json.",
    )
    behaviour_group.add_argument(
        "--fail-on-warnings",
        action="store_true",
        help="Treat validation warnings as errors.",
    )

    verbosity_group = parser.add_argument_group("verbosity")
    verbosity_group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    verbosity_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Only log errors and skip the summary.",
    )
    return parser


def _build_settings_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Wire-named ``settings`` keys set on the command line."""
    overrides: Dict[str, Any] = {}
    if args.database is not None:
        overrides["database"] = args.database
    if args.database_url is not None:
        overrides["databaseUrl"] = args.database_url
    if args.port is not None:
        overrides["port"] = args.port
    if args.no_docker:
        overrides["docker"] = False
    if args.no_swagger:
        overrides["enableSwagger"] = False
    return overrides


def _exit_code(report: GenerationReport, fail_on_warnings: bool) -> int:
    if report.load_errors:
        return EXIT_INPUT_ERROR
    if report.validation_errors:
        return EXIT_VALIDATION_ERROR
    if fail_on_warnings and report.validation_warnings:
        return EXIT_VALIDATION_ERROR
    if report.export_errors:
        return EXIT_EXPORT_ERROR
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Parse *argv*, run the pipeline and return the exit code."""
    parser: argparse.ArgumentParser = _build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    _setup_logging(-1 if args.quiet else args.verbose)

    if not args.validate_only and args.output is None:
        logger.error("Output directory is required. Use -o/--output or --validate-only.")
        parser.print_usage(sys.stderr)
        return EXIT_INPUT_ERROR

    schema_path: Path = Path(args.schema)
    output_dir: Path = Path(args.output or ".")
    generator: ProjectGenerator = ProjectGenerator(
        clean_output=args.clean,
        write_manifest=not args.no_manifest,
    )

    try:
        report: GenerationReport = generator.generate_from_file(
            schema_path,
            output_dir,
            dry_run=args.dry_run,
            validate_only=args.validate_only,
            settings_overrides=_build_settings_overrides(args),
        )
    except ExportError as exc:
        logger.error("Export failed: %s", exc)
        return EXIT_EXPORT_ERROR
    except (GenerationDefectError, UnmappedFieldTypeError, AssemblerStateError) as exc:
        logger.error("Generation defect: %s", exc, exc_info=True)
        return EXIT_GENERATION_ERROR

    if not args.quiet:
        print(report.summary())
        if args.dry_run and report.output is not None:
            for path in report.output.files:
                print(f"  {path}")

    code: int = _exit_code(report, args.fail_on_warnings)
    if code == EXIT_SUCCESS:
        logger.info("Done.")
    else:
        logger.error("Finished with exit code %d.", code)
    return code


def main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """Console-script entry point."""
    sys.exit(run(argv))


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "run",
    "main",
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_ERROR",
    "EXIT_GENERATION_ERROR",
    "EXIT_EXPORT_ERROR",
    "EXIT_INPUT_ERROR",
]

logger.debug("schemagen.cli loaded: %d public symbols.", len(__all__))
