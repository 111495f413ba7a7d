# File: schemagen/__init__.py
"""
schemagen - Schema-to-Service Generator
=======================================

Turns a declarative project schema (entities, fields, relations, feature
modules, deployment settings) into a complete FastAPI + SQLAlchemy 2.0 +
Pydantic v2 service skeleton.

Architecture overview::

    ┌──────────────┐     ┌──────────────────┐     ┌───────────────────┐
    │  CLI / Entry │────▶│ ProjectGenerator │────▶│ ProjectAssembler  │
    │   (cli.py)   │     │  (generator.py)  │     │  (generator.py)   │
    └──────────────┘     └────────┬─────────┘     └─────────┬─────────┘
                                  │                         │
                                  ▼          ┌──────────────┼───────────────┐
                           ┌───────────┐     ▼              ▼               ▼
                           │ exporters │ validators  relations/type_mapper  templates
                           └───────────┘                               auth_templates
                                                                       deployment
                                                                       security

Usage::

    # As a library
    from schemagen import generate
    output = generate(raw_document)
    if output.ok:
        print(sorted(output.files))

    # From the command line
    schemagen --schema schema.yaml --output ./my-api -v

Public API:
    - generate / ProjectAssembler  pure engine entry point
    - ProjectGenerator             load, assemble, export
    - validate_project             schema validation
    - compute_fk_fields            foreign-key resolution
    - score_project                security checklist
"""

from __future__ import annotations

__version__: str = "0.1.0"
__license__: str = "MIT"

from schemagen.models import (
    AuthPolicy,
    CrudOperation,
    DatabaseType,
    Entity,
    EntityField,
    FieldType,
    ModuleConfig,
    ModuleName,
    OnDeleteAction,
    Project,
    ProjectSettings,
    Relation,
    RelationType,
)
from schemagen.validators import (
    ValidationError,
    ValidationOutcome,
    parse_project_json,
    validate_project,
)
from schemagen.relations import (
    ResolvedFkField,
    ResolvedSchema,
    compute_fk_fields,
    resolve_fk_map,
    resolve_project,
)
from schemagen.type_mapper import TypeMapping, UnmappedFieldTypeError, map_type
from schemagen.templates import TemplateGenerator
from schemagen.auth_templates import AuthTemplateGenerator
from schemagen.deployment import DeploymentGenerator
from schemagen.security import SecurityCheck, SecurityReport, format_security_report, score_project
from schemagen.exporters import ExportError, ExportResult, ProjectExporter
from schemagen.generator import (
    AssemblerStateError,
    GenerationDefectError,
    GenerationOutput,
    GenerationReport,
    ProjectAssembler,
    ProjectGenerator,
    SchemaLoadError,
    generate,
    load_schema_file,
)

__all__: list[str] = [
    "__version__",
    "__license__",
    # Engine
    "generate",
    "ProjectAssembler",
    "GenerationOutput",
    "ProjectGenerator",
    "GenerationReport",
    "load_schema_file",
    # Errors
    "SchemaLoadError",
    "GenerationDefectError",
    "AssemblerStateError",
    "UnmappedFieldTypeError",
    "ExportError",
    # Models
    "AuthPolicy",
    "CrudOperation",
    "DatabaseType",
    "Entity",
    "EntityField",
    "FieldType",
    "ModuleConfig",
    "ModuleName",
    "OnDeleteAction",
    "Project",
    "ProjectSettings",
    "Relation",
    "RelationType",
    # Validation
    "ValidationError",
    "ValidationOutcome",
    "validate_project",
    "parse_project_json",
    # Resolution & types
    "ResolvedFkField",
    "ResolvedSchema",
    "compute_fk_fields",
    "resolve_fk_map",
    "resolve_project",
    "TypeMapping",
    "map_type",
    # Synthesizers
    "TemplateGenerator",
    "AuthTemplateGenerator",
    "DeploymentGenerator",
    "SecurityCheck",
    "SecurityReport",
    "score_project",
    "format_security_report",
    # Export
    "ProjectExporter",
    "ExportResult",
]
