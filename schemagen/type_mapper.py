# File: schemagen/type_mapper.py
"""
schemagen - Type Mapper
=======================
Single source of truth mapping an abstract ``FieldType`` to:

- the persistence type (SQLAlchemy column type expression),
- the Python type used for ``Mapped[...]`` and response models,
- the validation rule (Pydantic annotation plus ``Field`` constraints),
- the serialized JSON type.

Every synthesizer calls :func:`map_type` (or :func:`map_fk_type` for
resolved foreign keys) instead of re-deriving type names, so the model,
schema and service artifacts always agree.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple
from uuid import UUID

from schemagen.models import EntityField, FieldType
from schemagen.utils import py_literal, to_snake_case, upper_first

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.type_mapper")


class UnmappedFieldTypeError(TypeError):
    """Raised when a field type has no entry in the mapping table."""


# ---------------------------------------------------------------------------
# Mapping records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ValidationRule:
    """Pydantic annotation plus ``Field(...)`` keyword constraints."""

    annotation: str
    constraints: Tuple[Tuple[str, str], ...] = ()
    # Extra constraints applied only when the value is required on create
    required_constraints: Tuple[Tuple[str, str], ...] = ()

    def kwargs(self, required: bool) -> List[str]:
        pairs: Tuple[Tuple[str, str], ...] = self.constraints
        if required:
            pairs = self.required_constraints + pairs
        return [f"{key}={value}" for key, value in pairs]


@dataclass(frozen=True, slots=True)
class TypeMapping:
    """Everything a synthesizer needs to know about one field type."""

    field_type: str
    storage_type: str
    python_type: str
    validation: ValidationRule
    serialized_type: str
    storage_imports: Dict[str, FrozenSet[str]] = field(default_factory=dict)
    python_imports: Dict[str, FrozenSet[str]] = field(default_factory=dict)

    def storage_import_dict(self) -> Dict[str, Set[str]]:
        return {module: set(names) for module, names in self.storage_imports.items()}

    def python_import_dict(self) -> Dict[str, Set[str]]:
        return {module: set(names) for module, names in self.python_imports.items()}


@dataclass(frozen=True, slots=True)
class DefaultExpression:
    """
    Rendered default for one field.

    ``orm`` is a ``mapped_column`` keyword (``default=...`` or
    ``server_default=...``); ``schema`` is a Pydantic ``Field`` keyword or
    None when the create schema should fall back to ``None`` and leave the
    value to the database.
    """

    orm: str
    schema: Optional[str]
    orm_imports: Dict[str, FrozenSet[str]] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# The declarative table
# ---------------------------------------------------------------------------

_SA: str = "sqlalchemy"

_TYPE_TABLE: Dict[str, TypeMapping] = {
    FieldType.STRING.value: TypeMapping(
        field_type="string",
        storage_type="String(255)",
        python_type="str",
        validation=ValidationRule(
            "str",
            constraints=(("max_length", "255"),),
            required_constraints=(("min_length", "1"),),
        ),
        serialized_type="string",
        storage_imports={_SA: frozenset({"String"})},
    ),
    FieldType.TEXT.value: TypeMapping(
        field_type="text",
        storage_type="Text",
        python_type="str",
        validation=ValidationRule("str", required_constraints=(("min_length", "1"),)),
        serialized_type="string",
        storage_imports={_SA: frozenset({"Text"})},
    ),
    FieldType.INT.value: TypeMapping(
        field_type="int",
        storage_type="Integer",
        python_type="int",
        validation=ValidationRule("int"),
        serialized_type="integer",
        storage_imports={_SA: frozenset({"Integer"})},
    ),
    FieldType.FLOAT.value: TypeMapping(
        field_type="float",
        storage_type="Float",
        python_type="float",
        validation=ValidationRule("float"),
        serialized_type="number",
        storage_imports={_SA: frozenset({"Float"})},
    ),
    FieldType.BOOLEAN.value: TypeMapping(
        field_type="boolean",
        storage_type="Boolean",
        python_type="bool",
        validation=ValidationRule("bool"),
        serialized_type="boolean",
        storage_imports={_SA: frozenset({"Boolean"})},
    ),
    FieldType.DATETIME.value: TypeMapping(
        field_type="datetime",
        storage_type="DateTime(timezone=True)",
        python_type="datetime",
        validation=ValidationRule("datetime"),
        serialized_type="string",
        storage_imports={_SA: frozenset({"DateTime"})},
        python_imports={"datetime": frozenset({"datetime"})},
    ),
    FieldType.JSON.value: TypeMapping(
        field_type="json",
        storage_type="JSON",
        python_type="Dict[str, Any]",
        validation=ValidationRule("Dict[str, Any]"),
        serialized_type="object",
        storage_imports={_SA: frozenset({"JSON"})},
        python_imports={"typing": frozenset({"Any", "Dict"})},
    ),
    FieldType.UUID.value: TypeMapping(
        field_type="uuid",
        storage_type="Uuid",
        python_type="UUID",
        validation=ValidationRule("UUID"),
        serialized_type="string",
        storage_imports={_SA: frozenset({"Uuid"})},
        python_imports={"uuid": frozenset({"UUID"})},
    ),
}

# Enum mappings depend on the owning entity, so they are built per call.
_DYNAMIC_TYPES: FrozenSet[str] = frozenset({FieldType.ENUM.value})

_FK_MAPPING: TypeMapping = TypeMapping(
    field_type="fk",
    storage_type="Integer",
    python_type="int",
    validation=ValidationRule("int", constraints=(("ge", "1"),)),
    serialized_type="integer",
    storage_imports={_SA: frozenset({"ForeignKey"})},
)


def _check_table_is_total() -> None:
    covered: Set[str] = set(_TYPE_TABLE) | set(_DYNAMIC_TYPES)
    missing: Set[str] = {t.value for t in FieldType} - covered
    if missing:
        raise UnmappedFieldTypeError(f"Field types without a mapping: {sorted(missing)}")


_check_table_is_total()


# ---------------------------------------------------------------------------
# Enum naming
# ---------------------------------------------------------------------------


def enum_type_name(entity_name: str, field_name: str) -> str:
    """``Post`` + ``status`` -> ``PostStatus``."""
    return f"{entity_name}{upper_first(field_name)}"


def enum_db_name(entity_name: str, field_name: str) -> str:
    """Database-level enum type name, e.g. ``post_status``."""
    return to_snake_case(enum_type_name(entity_name, field_name))


def enum_member_name(value: str) -> str:
    """
    Python member name for an enum value.

    Examples:
        >>> enum_member_name("in-progress")
        'IN_PROGRESS'
        >>> enum_member_name("2fa")
        'V_2FA'
    """
    name: str = to_snake_case(value).upper()
    if not name:
        return "VALUE"
    if name[0].isdigit():
        name = f"V_{name}"
    return name


def enum_members(values: List[str]) -> List[Tuple[str, str]]:
    """(member name, value) pairs with collisions suffixed ``_2``, ``_3`` ..."""
    members: List[Tuple[str, str]] = []
    used: Set[str] = set()
    for value in values:
        base: str = enum_member_name(value)
        candidate: str = base
        counter: int = 2
        while candidate in used:
            candidate = f"{base}_{counter}"
            counter += 1
        used.add(candidate)
        members.append((candidate, value))
    return members


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def map_type(field_def: EntityField, entity_name: str) -> TypeMapping:
    """
    Map a declared field to its persistence, Python, validation and
    serialized types.

    Raises:
        UnmappedFieldTypeError: if the field type has no table entry.
    """
    field_type: str = str(getattr(field_def.type, "value", field_def.type))

    if field_type == FieldType.ENUM.value:
        type_name: str = enum_type_name(entity_name, field_def.name)
        db_name: str = enum_db_name(entity_name, field_def.name)
        return TypeMapping(
            field_type="enum",
            storage_type=(
                f'SQLEnum({type_name}, name="{db_name}", values_callable=_enum_values)'
            ),
            python_type=type_name,
            validation=ValidationRule(type_name),
            serialized_type="string",
            storage_imports={_SA: frozenset({"Enum as SQLEnum"})},
            python_imports={"app.models": frozenset({type_name})},
        )

    mapping: Optional[TypeMapping] = _TYPE_TABLE.get(field_type)
    if mapping is None:
        raise UnmappedFieldTypeError(
            f"No type mapping for field '{entity_name}.{field_def.name}' "
            f"of type '{field_type}'."
        )
    return mapping


def map_fk_type() -> TypeMapping:
    """Mapping used for every resolved foreign-key field."""
    return _FK_MAPPING


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

# Default tokens that ask for a value generated at insert time
DATETIME_NOW_TOKENS: FrozenSet[str] = frozenset({"now"})
UUID_AUTO_TOKENS: FrozenSet[str] = frozenset({"auto", "uuid", "uuid4"})


def is_generated_default(field_type: str, value: Any) -> bool:
    """True when *value* is the ``now`` / ``auto`` token of its field type."""
    if not isinstance(value, str):
        return False
    token: str = value.strip().lower()
    if field_type == FieldType.DATETIME.value:
        return token in DATETIME_NOW_TOKENS
    if field_type == FieldType.UUID.value:
        return token in UUID_AUTO_TOKENS
    return False


def parse_datetime_default(value: Any) -> Optional[datetime]:
    """
    ISO-8601 timestamp given as a literal default, or None.

    A trailing ``Z`` is read as UTC.
    """
    if not isinstance(value, str):
        return None
    text: str = value.strip()
    if text[-1:] in ("Z", "z"):
        text = f"{text[:-1]}+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def parse_uuid_default(value: Any) -> Optional[UUID]:
    if not isinstance(value, str):
        return None
    try:
        return UUID(value.strip())
    except ValueError:
        return None


def render_default(field_def: EntityField, entity_name: str) -> Optional[DefaultExpression]:
    """
    Render the default of *field_def*, or None when it has none.

    - ``datetime``: ``now`` becomes ``server_default=func.now()``, an
      ISO-8601 literal becomes a fixed ``datetime``
    - ``uuid``: ``auto`` becomes ``default=uuid4``, a UUID literal is kept
    - ``json`` string defaults are parsed and emitted through a factory
    - everything else is a literal of the mapped type

    Raises:
        ValueError: for a default that validation should have rejected.
    """
    value: Any = field_def.default
    if value is None:
        return None

    field_type: str = str(getattr(field_def.type, "value", field_def.type))

    if is_generated_default(field_type, value):
        if field_type == FieldType.DATETIME.value:
            return DefaultExpression(
                orm="server_default=func.now()",
                schema=None,
                orm_imports={_SA: frozenset({"func"})},
            )
        return DefaultExpression(
            orm="default=uuid4",
            schema=None,
            orm_imports={"uuid": frozenset({"uuid4"})},
        )
    if field_type == FieldType.DATETIME.value:
        moment: Optional[datetime] = parse_datetime_default(value)
        if moment is None:
            raise ValueError(f"Not an ISO-8601 datetime default: {value!r}")
        ref: str = f"datetime.fromisoformat({py_literal(moment.isoformat())})"
        return DefaultExpression(
            orm=f"default={ref}",
            schema=f"default={ref}",
            orm_imports={"datetime": frozenset({"datetime"})},
        )
    if field_type == FieldType.UUID.value:
        parsed_uuid: Optional[UUID] = parse_uuid_default(value)
        if parsed_uuid is None:
            raise ValueError(f"Not a UUID default: {value!r}")
        ref = f"UUID({py_literal(str(parsed_uuid))})"
        return DefaultExpression(
            orm=f"default={ref}",
            schema=f"default={ref}",
            orm_imports={"uuid": frozenset({"UUID"})},
        )
    if field_type == FieldType.JSON.value:
        parsed: Any = json.loads(value) if isinstance(value, str) else value
        literal: str = py_literal(parsed)
        return DefaultExpression(
            orm=f"default=lambda: {literal}",
            schema=f"default_factory=lambda: {literal}",
        )
    if field_type == FieldType.ENUM.value:
        members: Dict[str, str] = {
            v: k for k, v in enum_members(list(field_def.enum_values or []))
        }
        ref = f"{enum_type_name(entity_name, field_def.name)}.{members[str(value)]}"
        return DefaultExpression(orm=f"default={ref}", schema=f"default={ref}")
    if field_type == FieldType.BOOLEAN.value:
        flag: bool = value if isinstance(value, bool) else str(value).lower() == "true"
        literal = py_literal(flag)
    elif field_type == FieldType.INT.value:
        literal = py_literal(int(float(value)))
    elif field_type == FieldType.FLOAT.value:
        number: float = float(value)
        if not math.isfinite(number):
            raise ValueError(f"Float default must be finite, got {value!r}")
        literal = py_literal(number)
    elif field_type in (FieldType.STRING.value, FieldType.TEXT.value):
        literal = py_literal(str(value))
    else:
        raise UnmappedFieldTypeError(
            f"No default rendering for field type '{field_type}'."
        )
    return DefaultExpression(orm=f"default={literal}", schema=f"default={literal}")


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "UnmappedFieldTypeError",
    "ValidationRule",
    "TypeMapping",
    "DefaultExpression",
    "enum_type_name",
    "enum_db_name",
    "enum_member_name",
    "enum_members",
    "map_type",
    "map_fk_type",
    "DATETIME_NOW_TOKENS",
    "UUID_AUTO_TOKENS",
    "is_generated_default",
    "parse_datetime_default",
    "parse_uuid_default",
    "render_default",
]

logger.debug("schemagen.type_mapper loaded: %d public symbols.", len(__all__))
