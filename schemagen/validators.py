# File: schemagen/validators.py
"""
schemagen - Schema Validators
=============================
Two-pass validation of a raw project document.

1. **Structural pass**: the Pydantic models in ``schemagen.models`` check
   types, shapes and identifier syntax and apply defaults.
2. **Cross-field pass**: pure functions over the parsed ``Project`` check,
   in this order, duplicate entity names, duplicate field names, enum
   fields without values, relations pointing at unknown entities,
   defaults that do not fit their field type, entities whose generated
   modules, tables, routes or classes collide, and relations that reuse
   a column name of their entity.

Every problem is collected; nothing short-circuits.  Each error carries a
dotted ``path`` into the wire document and a ``message``.

Usage by downstream modules:
    from schemagen.validators import validate_project
    outcome = validate_project(raw)
    if not outcome.ok:
        for error in outcome.errors:
            print(error.path, error.message)
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Set, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from schemagen.models import (
    PRINCIPAL_ENTITY_NAME,
    SYNTHESIZED_MODULES,
    Entity,
    EntityField,
    FieldType,
    Project,
    RelationType,
)
from schemagen.relations import compute_fk_fields
from schemagen.type_mapper import (
    enum_type_name,
    is_generated_default,
    parse_datetime_default,
    parse_uuid_default,
)
from schemagen.utils import module_name, route_tag, safe_identifier, table_name, to_snake_case

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.validators")

# ---------------------------------------------------------------------------
# Validation result container
# ---------------------------------------------------------------------------


class ValidationError:
    """Lightweight error descriptor addressed by a dotted document path."""

    __slots__ = ("level", "code", "path", "message")

    def __init__(
        self,
        level: str,
        code: str,
        path: str,
        message: str,
    ) -> None:
        self.level: str = level  # "error" | "warning"
        self.code: str = code
        self.path: str = path
        self.message: str = message

    @property
    def is_error(self) -> bool:
        return self.level == "error"

    @property
    def is_warning(self) -> bool:
        return self.level == "warning"

    def __repr__(self) -> str:
        location: str = self.path or "<root>"
        return f"[{self.level.upper()}] {location}: {self.message}"

    def __str__(self) -> str:
        return self.__repr__()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ValidationError):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((self.level, self.code, self.path, self.message))

    def to_dict(self) -> Dict[str, str]:
        return {
            "level": self.level,
            "code": self.code,
            "path": self.path,
            "message": self.message,
        }


class ValidationResult:
    """Accumulates ``ValidationError`` instances in the order they are found."""

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: List[ValidationError] = []

    # -- Mutation -----------------------------------------------------------

    def add_error(self, code: str, path: str, message: str) -> None:
        self._items.append(ValidationError("error", code, path, message))

    def add_warning(self, code: str, path: str, message: str) -> None:
        self._items.append(ValidationError("warning", code, path, message))

    def merge(self, other: "ValidationResult") -> None:
        self._items.extend(other._items)

    # -- Query --------------------------------------------------------------

    @property
    def errors(self) -> List[ValidationError]:
        return [e for e in self._items if e.is_error]

    @property
    def warnings(self) -> List[ValidationError]:
        return [e for e in self._items if e.is_warning]

    @property
    def has_errors(self) -> bool:
        return any(e.is_error for e in self._items)

    @property
    def error_count(self) -> int:
        return sum(1 for e in self._items if e.is_error)

    @property
    def warning_count(self) -> int:
        return sum(1 for e in self._items if e.is_warning)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    def summary(self) -> str:
        return (
            f"Validation: {self.error_count} error(s), "
            f"{self.warning_count} warning(s)."
        )

    def __repr__(self) -> str:
        return f"<ValidationResult {self.summary()}>"

    def __bool__(self) -> bool:
        """Truthy when there are NO errors (i.e. valid)."""
        return self.is_valid

    def __len__(self) -> int:
        return len(self._items)


class ValidationOutcome:
    """
    Result of :func:`validate_project`.

    ``ok`` is True exactly when ``data`` holds a fully validated
    ``Project``; otherwise ``errors`` lists every problem found.
    """

    __slots__ = ("ok", "data", "errors", "warnings")

    def __init__(
        self,
        ok: bool,
        data: Optional[Project],
        errors: List[ValidationError],
        warnings: List[ValidationError],
    ) -> None:
        self.ok: bool = ok
        self.data: Optional[Project] = data
        self.errors: List[ValidationError] = errors
        self.warnings: List[ValidationError] = warnings

    def format_report(self) -> str:
        """Human-readable multi-line report."""
        lines: List[str] = [
            f"Validation {'passed' if self.ok else 'failed'}: "
            f"{len(self.errors)} error(s), {len(self.warnings)} warning(s)."
        ]
        for item in self.errors + self.warnings:
            marker: str = "✗" if item.is_error else "!"
            location: str = item.path or "<root>"
            lines.append(f"  {marker} {location}: {item.message}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"<ValidationOutcome ok={self.ok} errors={len(self.errors)}>"


# ---------------------------------------------------------------------------
# Structural pass
# ---------------------------------------------------------------------------


def _format_loc(loc: Any) -> str:
    return ".".join(str(part) for part in loc)


def validate_structure(raw: Any) -> Union[Project, ValidationResult]:
    """
    Parse *raw* into a ``Project``.

    Returns the model on success, or a ``ValidationResult`` holding one
    ``STRUCTURAL`` error per Pydantic error.
    """
    try:
        return Project.model_validate(raw)
    except PydanticValidationError as exc:
        result: ValidationResult = ValidationResult()
        for err in exc.errors():
            result.add_error("STRUCTURAL", _format_loc(err["loc"]), err["msg"])
        logger.debug("Structural pass found %d error(s).", len(result))
        return result


# ---------------------------------------------------------------------------
# Cross-field pass (each function is a single O(n) sweep)
# ---------------------------------------------------------------------------


def validate_duplicate_entities(project: Project) -> ValidationResult:
    """Entity names must be unique across the project."""
    result: ValidationResult = ValidationResult()
    seen: Set[str] = set()
    for entity in project.entities:
        if entity.name in seen:
            result.add_error(
                "DUPLICATE_ENTITY",
                "entities",
                f'Duplicate entity name: "{entity.name}"',
            )
        seen.add(entity.name)
    return result


def validate_duplicate_fields(project: Project) -> ValidationResult:
    """Field names must be unique within each entity."""
    result: ValidationResult = ValidationResult()
    for entity in project.entities:
        seen: Set[str] = set()
        for field in entity.fields:
            if field.name in seen:
                result.add_error(
                    "DUPLICATE_FIELD",
                    f"entities.{entity.name}.fields",
                    f'Duplicate field name: "{field.name}" in entity "{entity.name}"',
                )
            seen.add(field.name)
    return result


def validate_enum_values(project: Project) -> ValidationResult:
    """Every enum field needs a non-empty ``enumValues`` list."""
    result: ValidationResult = ValidationResult()
    for entity in project.entities:
        for field in entity.fields:
            if field.type == FieldType.ENUM and not field.enum_values:
                result.add_error(
                    "ENUM_WITHOUT_VALUES",
                    f"entities.{entity.name}.fields.{field.name}",
                    f'Enum field "{field.name}" must have enumValues',
                )
    return result


def validate_relation_targets(project: Project) -> ValidationResult:
    """Every relation must target an entity declared in the same project."""
    result: ValidationResult = ValidationResult()
    names: Set[str] = {e.name for e in project.entities}
    for entity in project.entities:
        for relation in entity.relations:
            if relation.target not in names:
                result.add_error(
                    "UNKNOWN_RELATION_TARGET",
                    f"entities.{entity.name}.relations.{relation.name}",
                    f'Relation "{relation.name}" targets unknown entity '
                    f'"{relation.target}"',
                )
    return result


def _default_fits(field_type: str, default: Any, enum_values: Optional[List[str]]) -> bool:
    if field_type in (FieldType.INT, FieldType.FLOAT):
        if isinstance(default, bool):
            return False
        try:
            value: float = float(default if isinstance(default, (int, float)) else str(default))
        except (ValueError, OverflowError):
            return False
        if not math.isfinite(value):
            return False
        return field_type == FieldType.FLOAT or value.is_integer()
    if field_type == FieldType.BOOLEAN:
        return isinstance(default, bool) or str(default).lower() in ("true", "false")
    if field_type == FieldType.ENUM:
        return str(default) in (enum_values or [])
    if field_type == FieldType.DATETIME:
        return (
            is_generated_default(FieldType.DATETIME.value, default)
            or parse_datetime_default(default) is not None
        )
    if field_type == FieldType.UUID:
        return (
            is_generated_default(FieldType.UUID.value, default)
            or parse_uuid_default(default) is not None
        )
    if field_type == FieldType.JSON and isinstance(default, str):
        try:
            json.loads(default)
        except ValueError:
            return False
    return True


def validate_defaults(project: Project) -> ValidationResult:
    """Defaults must be convertible to their field's type."""
    result: ValidationResult = ValidationResult()
    for entity in project.entities:
        for field in entity.fields:
            if field.default is None:
                continue
            if field.type == FieldType.ENUM and not field.enum_values:
                continue  # already reported
            if not _default_fits(field.type, field.default, field.enum_values):
                result.add_error(
                    "INCOMPATIBLE_DEFAULT",
                    f"entities.{entity.name}.fields.{field.name}.default",
                    f'Default {field.default!r} is not a valid {field.type} '
                    f'value for field "{field.name}"',
                )
    return result


# ---------------------------------------------------------------------------
# Generated-name checks
# ---------------------------------------------------------------------------

# Names the generated models and services import at module level
_GENERATED_IMPORT_NAMES: FrozenSet[str] = frozenset({
    "Any", "Base", "Boolean", "Column", "DateTime", "Dict", "Float",
    "ForeignKey", "Integer", "JSON", "List", "Mapped", "NotFoundError",
    "Optional", "SQLEnum", "Session", "String", "Table", "Text", "UUID", "Uuid",
})

# Imported next to an entity's enums in its schema module
_SCHEMA_IMPORT_NAMES: FrozenSet[str] = frozenset({"BaseModel", "ConfigDict", "Field"})

_SCHEMA_CLASS_SUFFIXES: Tuple[str, ...] = ("Create", "Read", "Update", "Service")


def validate_generated_names(project: Project) -> ValidationResult:
    """
    Distinct entities must not produce the same generated name.

    Module names, table names and URL segments are compared across
    entities; entity and enum classes share the namespace of
    ``app/models.py`` with each other and with its imports; join tables
    share the table namespace.
    """
    result: ValidationResult = ValidationResult()
    claims: Dict[Tuple[str, str], str] = {}

    def claim(kind: str, value: str, owner: str, path: str) -> None:
        holder: str = claims.setdefault((kind, value), owner)
        if holder != owner:
            result.add_error(
                "NAME_COLLISION",
                path,
                f'"{owner}" and "{holder}" both generate {kind} "{value}"',
            )

    for entity in project.entities:
        path: str = f"entities.{entity.name}"
        if entity.name in _GENERATED_IMPORT_NAMES:
            result.add_error(
                "RESERVED_ENTITY_NAME",
                path,
                f'Entity name "{entity.name}" shadows a name the generated '
                f"models import",
            )
        claim("module", module_name(entity.name), entity.name, path)
        claim("table", table_name(entity.name), entity.name, path)
        claim("route", route_tag(entity.name), entity.name, path)
        claim("class", entity.name, entity.name, path)

    for entity in project.entities:
        schema_classes: Set[str] = {f"{entity.name}{s}" for s in _SCHEMA_CLASS_SUFFIXES}
        for field in entity.fields:
            if field.type != FieldType.ENUM or not field.enum_values:
                continue
            if shadows_generated_column(project, entity, field):
                continue
            path = f"entities.{entity.name}.fields.{field.name}"
            owner: str = f"{entity.name}.{field.name}"
            type_name: str = enum_type_name(entity.name, field.name)
            if type_name in _GENERATED_IMPORT_NAMES | _SCHEMA_IMPORT_NAMES | schema_classes:
                result.add_error(
                    "NAME_COLLISION",
                    path,
                    f'Enum class "{type_name}" of "{owner}" shadows a generated name',
                )
            claim("class", type_name, owner, path)

        for relation in entity.relations:
            if relation.type != RelationType.MANY_TO_MANY or relation.target == entity.name:
                continue
            join: str = f"{to_snake_case(entity.name)}_{to_snake_case(relation.name)}"
            claim(
                "table",
                join,
                f"{entity.name}.{relation.name}",
                f"entities.{entity.name}.relations.{relation.name}",
            )
    return result


def validate_relation_names(project: Project) -> ValidationResult:
    """A relation must not reuse a column or another relation of its entity."""
    result: ValidationResult = ValidationResult()
    for entity in project.entities:
        owners: Dict[str, str] = {
            column: f'generated column "{column}"' for column in sorted(_GENERATED_COLUMNS)
        }
        if project.auth_active and project.is_principal(entity):
            owners["password_hash"] = 'generated column "password_hash"'
        for field in entity.fields:
            if not shadows_generated_column(project, entity, field):
                owners.setdefault(safe_identifier(field.name), f'field "{field.name}"')
        for fk_field in compute_fk_fields(entity, project):
            owners.setdefault(safe_identifier(fk_field.name), f'foreign key "{fk_field.name}"')

        for relation in entity.relations:
            attr: str = safe_identifier(relation.name)
            if attr in owners:
                result.add_error(
                    "RELATION_NAME_COLLISION",
                    f"entities.{entity.name}.relations.{relation.name}",
                    f'Relation "{relation.name}" of entity "{entity.name}" reuses '
                    f"the attribute of {owners[attr]}",
                )
            owners.setdefault(attr, f'relation "{relation.name}"')
    return result


# ---------------------------------------------------------------------------
# Advisory checks (warnings only, never block generation)
# ---------------------------------------------------------------------------

_GENERATED_COLUMNS: Set[str] = {"id", "created_at", "updated_at"}


def shadows_generated_column(project: Project, entity: Entity, field: EntityField) -> bool:
    """True when *field* collides with a column every generated model already has."""
    reserved: Set[str] = set(_GENERATED_COLUMNS)
    if project.auth_active and project.is_principal(entity):
        reserved |= {"password", "password_hash"}
    return safe_identifier(field.name).rstrip("_") in reserved


def validate_attribute_collisions(project: Project) -> ValidationResult:
    """Warn when fields collapse to the same Python attribute or shadow generated columns."""
    result: ValidationResult = ValidationResult()
    for entity in project.entities:
        owners: Dict[str, str] = {}
        for field in entity.fields:
            path: str = f"entities.{entity.name}.fields.{field.name}"
            attr: str = safe_identifier(field.name)
            if shadows_generated_column(project, entity, field):
                result.add_warning(
                    "RESERVED_FIELD_NAME",
                    path,
                    f'Field "{field.name}" shadows a generated attribute and is '
                    f"left out of the generated code",
                )
            if attr in owners:
                result.add_warning(
                    "ATTRIBUTE_COLLISION",
                    path,
                    f'Fields "{owners[attr]}" and "{field.name}" both map to '
                    f'attribute "{attr}"',
                )
            owners.setdefault(attr, field.name)
    return result


def validate_modules(project: Project) -> ValidationResult:
    """Warn about modules that are accepted but do not change the output."""
    result: ValidationResult = ValidationResult()
    for index, module in enumerate(project.modules):
        if module.enabled and module.name not in SYNTHESIZED_MODULES:
            result.add_warning(
                "MODULE_NOT_SYNTHESIZED",
                f"modules.{index}",
                f'Module "{module.name}" is accepted but produces no artifacts',
            )
    if project.auth_enabled:
        principal: Optional[Entity] = project.get_entity(PRINCIPAL_ENTITY_NAME)
        if principal is None:
            result.add_warning(
                "AUTH_WITHOUT_PRINCIPAL",
                "modules",
                f'auth-jwt is enabled but there is no "{PRINCIPAL_ENTITY_NAME}" '
                f"entity; the auth subsystem is skipped",
            )
        elif principal.login_field is None:
            result.add_warning(
                "AUTH_WITHOUT_LOGIN_FIELD",
                f"entities.{PRINCIPAL_ENTITY_NAME}.fields",
                f'"{PRINCIPAL_ENTITY_NAME}" has no string field to log in with; '
                f"the auth subsystem is skipped",
            )
    return result


# ---------------------------------------------------------------------------
# Composite validation orchestrators
# ---------------------------------------------------------------------------

ProjectValidator = Callable[[Project], ValidationResult]

CROSS_FIELD_VALIDATORS: List[ProjectValidator] = [
    validate_duplicate_entities,
    validate_duplicate_fields,
    validate_enum_values,
    validate_relation_targets,
    validate_defaults,
    validate_generated_names,
    validate_relation_names,
]

ADVISORY_VALIDATORS: List[ProjectValidator] = [
    validate_attribute_collisions,
    validate_modules,
]


def validate_cross_fields(project: Project) -> ValidationResult:
    """Run every cross-field and advisory check over an already parsed project."""
    result: ValidationResult = ValidationResult()
    for validator_fn in CROSS_FIELD_VALIDATORS + ADVISORY_VALIDATORS:
        logger.debug("Running validator: %s", validator_fn.__name__)
        result.merge(validator_fn(project))
    return result


def validate_project(raw: Union[Mapping[str, Any], Project]) -> ValidationOutcome:
    """
    **Master validation entry point.**

    Accepts a raw wire document (dict) or an already constructed
    ``Project``.  Pure function of its input.
    """
    if isinstance(raw, Project):
        project: Project = raw
    else:
        parsed: Union[Project, ValidationResult] = validate_structure(raw)
        if isinstance(parsed, ValidationResult):
            logger.error("Validation FAILED: %s", parsed.summary())
            return ValidationOutcome(False, None, parsed.errors, [])
        project = parsed

    result: ValidationResult = validate_cross_fields(project)
    for warning in result.warnings:
        logger.warning("%s", warning)

    if result.has_errors:
        logger.error("Validation FAILED: %s", result.summary())
        return ValidationOutcome(False, None, result.errors, result.warnings)

    logger.info("Validation PASSED. %s", result.summary())
    return ValidationOutcome(True, project, [], result.warnings)


def parse_project_json(text: str) -> ValidationOutcome:
    """Parse a JSON document and validate it as a project."""
    try:
        raw: Any = json.loads(text)
    except ValueError:
        return ValidationOutcome(
            False, None, [ValidationError("error", "INVALID_JSON", "", "Invalid JSON")], []
        )
    return validate_project(raw)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ValidationError",
    "ValidationResult",
    "ValidationOutcome",
    "validate_structure",
    "validate_duplicate_entities",
    "validate_duplicate_fields",
    "validate_enum_values",
    "validate_relation_targets",
    "validate_defaults",
    "validate_generated_names",
    "validate_relation_names",
    "shadows_generated_column",
    "validate_attribute_collisions",
    "validate_modules",
    "validate_cross_fields",
    "validate_project",
    "parse_project_json",
]

logger.debug("schemagen.validators loaded: %d public symbols.", len(__all__))
