# File: schemagen/templates.py
"""
schemagen - Artifact Synthesizers
=================================
Turns a :class:`~schemagen.relations.ResolvedSchema` into the source files
of a FastAPI + SQLAlchemy 2.0 + Pydantic v2 service:

    1. ``app/models.py``            persistence schema (one model per entity)
    2. ``app/schemas/<entity>.py``  create / update / read validation objects
    3. ``app/services/<entity>.py`` CRUD service layer
    4. ``app/routers/<entity>.py``  API routes carrying the entity's auth policy
    5. ``app/main.py``              bootstrap wiring
    6. config, database, errors, middleware and rate-limit modules

**Performance contract:**
    - All string assembly uses ``List[str]`` + ``"\\n".join()``.
    - Column specs are computed once per entity in ``__init__``; every
      template method afterwards is a pure read of that state.

**Agreement contract:**
    - The model column and every schema field of one entity come from the
      same :class:`ColumnSpec`, i.e. from one Type Mapper call.

Authentication artifacts live in :mod:`schemagen.auth_templates`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from schemagen.deployment import resolve_database_url
from schemagen.models import (
    AuthPolicy,
    CrudOperation,
    Entity,
    EntityField,
    OnDeleteAction,
    Project,
    ProjectSettings,
)
from schemagen.relations import AssociationTable, RelationSide, ResolvedSchema
from schemagen.type_mapper import (
    DefaultExpression,
    TypeMapping,
    enum_members,
    enum_type_name,
    map_fk_type,
    map_type,
    render_default,
)
from schemagen.utils import (
    docstring_text,
    import_statements,
    merge_import_dicts,
    module_name,
    route_tag,
    safe_identifier,
    table_name,
    to_plural,
    to_snake_case,
    to_title_human,
    wrap_in_quotes,
)
from schemagen.validators import shadows_generated_column

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.templates")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_INDENT: str = "    "
_DOUBLE_INDENT: str = "        "
_TRIPLE_INDENT: str = "            "

_LINE_LIMIT: int = 99

GENERATED_NOTE: str = "Generated by schemagen."
API_PREFIX: str = "/api"

_STDLIB_MODULES: FrozenSet[str] = frozenset({
    "__future__", "contextlib", "datetime", "enum", "logging", "os",
    "sys", "typing", "uuid",
})

_SECURITY_HEADERS: Tuple[Tuple[str, str], ...] = (
    ("X-Content-Type-Options", "nosniff"),
    ("X-Frame-Options", "DENY"),
    ("Referrer-Policy", "no-referrer"),
    ("Strict-Transport-Security", "max-age=15552000; includeSubDomains"),
    ("Cross-Origin-Opener-Policy", "same-origin"),
    ("X-XSS-Protection", "0"),
)


# ---------------------------------------------------------------------------
# Naming shared with the assembler and the auth synthesizer
# ---------------------------------------------------------------------------


def router_import_line(entity_name: str) -> str:
    """The bootstrap line that wires one entity's router."""
    name: str = module_name(entity_name)
    return f"from app.routers.{name} import router as {name}_router"


def module_docstring(title: str, detail: str = "") -> List[str]:
    """Opening docstring of every generated Python module."""
    lines: List[str] = ['"""', title, ""]
    if detail:
        lines.extend([detail, ""])
    lines.extend([GENERATED_NOTE, '"""', ""])
    return lines


def render_imports(imports: Dict[str, Set[str]]) -> List[str]:
    """Import block split into future / stdlib / third-party / local groups."""
    groups: List[Dict[str, Set[str]]] = [{}, {}, {}, {}]
    for module, names in imports.items():
        root: str = module.split(".")[0]
        if module == "__future__":
            groups[0][module] = names
        elif root in _STDLIB_MODULES:
            groups[1][module] = names
        elif root == "app":
            groups[3][module] = names
        else:
            groups[2][module] = names
    lines: List[str] = []
    for group in groups:
        if not group:
            continue
        if lines:
            lines.append("")
        lines.extend(import_statements(group))
    return lines


def format_call(head: str, args: List[str], indent: str = "") -> List[str]:
    """
    ``head(arg, arg)`` on one line, or one argument per line when it
    would exceed the line limit.
    """
    single: str = f"{indent}{head}({', '.join(args)})"
    if len(single) <= _LINE_LIMIT or not args:
        return [single]
    lines: List[str] = [f"{indent}{head}("]
    lines.extend(f"{indent}{_INDENT}{arg}," for arg in args)
    lines.append(f"{indent})")
    return lines


# ---------------------------------------------------------------------------
# Column definition
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ColumnSpec:
    """One emitted column, shared by the model and the schema synthesizers."""

    wire_name: str
    attribute: str
    column: str
    mapping: TypeMapping
    required: bool
    unique: bool
    index: bool
    default: Optional[DefaultExpression]
    # (referenced table, SQL ON DELETE action)
    foreign_key: Optional[Tuple[str, str]]
    description: Optional[str]
    resolved: bool

    @property
    def alias(self) -> Optional[str]:
        return self.wire_name if self.wire_name != self.attribute else None


# ===========================================================================
# TemplateGenerator
# ===========================================================================


class TemplateGenerator:
    """
    Synthesizes every non-auth Python artifact of the generated service.

    Usage::

        gen = TemplateGenerator(resolve_project(project))
        files = gen.generate_all()   # {"app/models.py": "...", ...}
    """

    def __init__(self, resolved: ResolvedSchema) -> None:
        self.resolved: ResolvedSchema = resolved
        self.project: Project = resolved.project
        self._columns: Dict[str, List[ColumnSpec]] = {
            entity.name: self._build_columns(entity) for entity in self.project.entities
        }
        logger.debug(
            "TemplateGenerator initialised for %d entities (auth=%s).",
            len(self._columns),
            self.project.auth_active,
        )

    # -- shared lookups -------------------------------------------------------

    def columns_for(self, entity: Entity) -> List[ColumnSpec]:
        return self._columns[entity.name]

    def is_auth_principal(self, entity: Entity) -> bool:
        return self.project.auth_active and self.project.is_principal(entity)

    def effective_policy(self, entity: Entity) -> AuthPolicy:
        """Without the auth subsystem every route is public."""
        if not self.project.auth_active:
            return AuthPolicy.PUBLIC
        return entity.policy

    def _build_columns(self, entity: Entity) -> List[ColumnSpec]:
        fk_by_attr: Dict[str, Tuple[str, str]] = {}
        for (owner, field_name), target in self.resolved.fk_targets.items():
            if owner == entity.name:
                fk_by_attr.setdefault(safe_identifier(field_name), target)

        columns: List[ColumnSpec] = []
        seen: Set[str] = set()

        for field_def in entity.fields:
            if shadows_generated_column(self.project, entity, field_def):
                continue
            attr: str = safe_identifier(field_def.name)
            if attr in seen:
                continue
            seen.add(attr)
            fk: Optional[Tuple[str, str]] = fk_by_attr.get(attr)
            columns.append(ColumnSpec(
                wire_name=field_def.name,
                attribute=attr,
                column=to_snake_case(field_def.name),
                mapping=map_fk_type() if fk else map_type(field_def, entity.name),
                required=field_def.required,
                unique=field_def.unique,
                index=field_def.index or fk is not None,
                default=None if fk else render_default(field_def, entity.name),
                foreign_key=self._fk_reference(fk),
                description=field_def.description,
                resolved=False,
            ))

        for fk_field in self.resolved.fks_for(entity.name):
            attr = safe_identifier(fk_field.name)
            if attr in seen:
                continue
            seen.add(attr)
            target: Tuple[str, str] = fk_by_attr.get(
                attr, (fk_field.target_entity_name, OnDeleteAction.CASCADE.value)
            )
            columns.append(ColumnSpec(
                wire_name=fk_field.name,
                attribute=attr,
                column=to_snake_case(fk_field.name),
                mapping=map_fk_type(),
                required=False,
                unique=False,
                index=True,
                default=None,
                foreign_key=self._fk_reference(target),
                description=f"References {fk_field.target_entity_name}.",
                resolved=True,
            ))
        return columns

    @staticmethod
    def _fk_reference(target: Optional[Tuple[str, str]]) -> Optional[Tuple[str, str]]:
        if target is None:
            return None
        referenced, on_delete = target
        return table_name(referenced), OnDeleteAction(on_delete).sql

    # ===================================================================
    # 1. Persistence schema (app/models.py)
    # ===================================================================

    def generate_models(self) -> str:
        """Generate ``app/models.py`` with enums, join tables and models."""
        imports: Dict[str, Set[str]] = {
            "__future__": {"annotations"},
            "datetime": {"datetime"},
            "typing": {"List", "Optional"},
            "sqlalchemy": {"DateTime", "Integer", "func"},
            "sqlalchemy.orm": {"Mapped", "mapped_column"},
            "app.database": {"Base"},
        }
        body: List[str] = []

        enum_blocks: List[str] = self._enum_blocks()
        if enum_blocks:
            imports["enum"] = set()
            body.extend(enum_blocks)

        if self.resolved.association_tables:
            imports["sqlalchemy"] |= {"Column", "ForeignKey", "Table"}
            for table in self.resolved.association_tables:
                body.extend(self._association_table(table))

        for entity in self.project.entities:
            class_lines, class_imports = self._model_class(entity)
            imports = merge_import_dicts(imports, class_imports)
            body.extend(class_lines)

        lines: List[str] = module_docstring(
            "SQLAlchemy models.",
            f"One declarative model per entity of the {self.project.name} schema.",
        )
        lines.extend(render_imports(imports))
        lines.extend(["", ""])
        lines.extend(body)

        content: str = "\n".join(lines).rstrip("\n") + "\n"
        logger.debug("Generated models: %d lines.", content.count("\n"))
        return content

    def _enum_blocks(self) -> List[str]:
        lines: List[str] = []
        for entity in self.project.entities:
            for field_def in entity.fields:
                if field_def.type != "enum" or not field_def.enum_values:
                    continue
                if shadows_generated_column(self.project, entity, field_def):
                    continue
                lines.append(
                    f"class {enum_type_name(entity.name, field_def.name)}(str, enum.Enum):"
                )
                for member, value in enum_members(list(field_def.enum_values)):
                    lines.append(f"{_INDENT}{member} = {wrap_in_quotes(value)}")
                lines.extend(["", ""])
        if lines:
            lines.extend([
                "def _enum_values(enum_cls: type) -> List[str]:",
                f'{_INDENT}"""Persist enum values rather than member names."""',
                f"{_INDENT}return [member.value for member in enum_cls]",
                "",
                "",
            ])
        return lines

    @staticmethod
    def _association_table(table: AssociationTable) -> List[str]:
        left: str = table_name(table.left_entity)
        right: str = table_name(table.right_entity)
        return [
            f"{table.name} = Table(",
            f'{_INDENT}"{table.name}",',
            f"{_INDENT}Base.metadata,",
            f'{_INDENT}Column("{table.left_column}", ForeignKey("{left}.id", '
            f'ondelete="CASCADE"), primary_key=True),',
            f'{_INDENT}Column("{table.right_column}", ForeignKey("{right}.id", '
            f'ondelete="CASCADE"), primary_key=True),',
            ")",
            "",
            "",
        ]

    def _model_class(self, entity: Entity) -> Tuple[List[str], Dict[str, Set[str]]]:
        imports: Dict[str, Set[str]] = {}
        lines: List[str] = [f"class {entity.name}(Base):"]
        doc: str = docstring_text(entity.description) or f"{entity.name} record."
        lines.append(f'{_INDENT}"""{doc}"""')
        lines.append("")
        lines.append(f'{_INDENT}__tablename__ = "{table_name(entity.name)}"')
        lines.append("")
        lines.append(
            f"{_INDENT}id: Mapped[int] = mapped_column(Integer, primary_key=True, "
            f"autoincrement=True)"
        )

        for col in self.columns_for(entity):
            lines.extend(self._column_lines(col))
            imports = merge_import_dicts(imports, col.mapping.storage_import_dict())
            python_imports: Dict[str, Set[str]] = {
                module: names
                for module, names in col.mapping.python_import_dict().items()
                if module != "app.models"
            }
            imports = merge_import_dicts(imports, python_imports)
            if col.foreign_key:
                imports = merge_import_dicts(imports, {"sqlalchemy": {"ForeignKey"}})
            if col.default:
                imports = merge_import_dicts(
                    imports,
                    {m: set(n) for m, n in col.default.orm_imports.items()},
                )

        if self.is_auth_principal(entity):
            lines.append(
                f"{_INDENT}password_hash: Mapped[str] = mapped_column(String(255), "
                f"nullable=False)"
            )
            imports = merge_import_dicts(imports, {"sqlalchemy": {"String"}})

        lines.extend(format_call(
            "created_at: Mapped[datetime] = mapped_column",
            ["DateTime(timezone=True)", "server_default=func.now()", "nullable=False"],
            _INDENT,
        ))
        lines.extend(format_call(
            "updated_at: Mapped[datetime] = mapped_column",
            [
                "DateTime(timezone=True)",
                "server_default=func.now()",
                "onupdate=func.now()",
                "nullable=False",
            ],
            _INDENT,
        ))

        sides: List[RelationSide] = self.resolved.sides_for(entity.name)
        if sides:
            lines.append("")
            imports = merge_import_dicts(imports, {"sqlalchemy.orm": {"relationship"}})
            for side in sides:
                lines.extend(self._relationship_lines(side))

        lines.append("")
        lines.append(f"{_INDENT}def __repr__(self) -> str:")
        lines.append(f'{_DOUBLE_INDENT}return f"<{entity.name} id={{self.id}}>"')
        lines.extend(["", ""])
        return lines, imports

    @staticmethod
    def _column_lines(col: ColumnSpec) -> List[str]:
        python_type: str = col.mapping.python_type
        annotation: str = python_type if col.required else f"Optional[{python_type}]"
        args: List[str] = []
        if col.column != col.attribute:
            args.append(wrap_in_quotes(col.column))
        args.append(col.mapping.storage_type)
        if col.foreign_key:
            table, action = col.foreign_key
            args.append(f'ForeignKey("{table}.id", ondelete="{action}")')
        args.append(f"nullable={not col.required}")
        if col.unique:
            args.append("unique=True")
        if col.index:
            args.append("index=True")
        if col.default:
            args.append(col.default.orm)
        if col.description:
            args.append(f"comment={wrap_in_quotes(docstring_text(col.description))}")
        return format_call(
            f"{col.attribute}: Mapped[{annotation}] = mapped_column", args, _INDENT
        )

    def _relationship_lines(self, side: RelationSide) -> List[str]:
        annotation: str = (
            f"List[{side.target}]" if side.uselist else f"Optional[{side.target}]"
        )
        args: List[str] = []
        if side.back_populates:
            args.append(f'back_populates="{safe_identifier(side.back_populates)}"')
        if side.secondary:
            args.append(f"secondary={side.secondary}")
        else:
            args.append(
                f'foreign_keys="{side.fk_entity}.{safe_identifier(side.fk_field or "")}"'
            )
            if side.remote_side:
                args.append(f'remote_side="{side.entity}.id"')
            args.extend(self._cascade_args(side))
        return format_call(
            f"{safe_identifier(side.attribute)}: Mapped[{annotation}] = relationship",
            args,
            _INDENT,
        )

    @staticmethod
    def _cascade_args(side: RelationSide) -> List[str]:
        """ORM-side delete behaviour of the parent side, mirroring ON DELETE."""
        if side.is_self_referential:
            is_parent: bool = not side.remote_side
        else:
            is_parent = not side.holds_fk
        if not is_parent:
            return []
        action: OnDeleteAction = OnDeleteAction(side.on_delete)
        if action is OnDeleteAction.CASCADE:
            return ['cascade="all"', "passive_deletes=True"]
        if action in (OnDeleteAction.RESTRICT, OnDeleteAction.NO_ACTION):
            return ['passive_deletes="all"']
        return []

    # ===================================================================
    # 2. Validation objects (app/schemas/<entity>.py)
    # ===================================================================

    def generate_schemas(self, entity: Entity) -> str:
        """Generate the Create / Update / Read models of one entity."""
        columns: List[ColumnSpec] = self.columns_for(entity)
        imports: Dict[str, Set[str]] = {
            "datetime": {"datetime"},
            "typing": {"Optional"},
            "pydantic": {"BaseModel", "ConfigDict", "Field"},
        }
        for col in columns:
            imports = merge_import_dicts(imports, col.mapping.python_import_dict())

        name: str = entity.name
        human: str = to_title_human(name)
        lines: List[str] = module_docstring(f"Validation objects for {name}.")
        lines.extend(render_imports(imports))
        lines.extend(["", ""])

        # Create
        lines.append(f"class {name}Create(BaseModel):")
        lines.append(f'{_INDENT}"""Payload accepted when creating a {human}."""')
        lines.append("")
        lines.append(
            f'{_INDENT}model_config = ConfigDict(extra="forbid", populate_by_name=True, '
            f"protected_namespaces=())"
        )
        lines.append("")
        for col in columns:
            lines.extend(self._schema_field(col, "create"))
        if self.is_auth_principal(entity):
            lines.append(f"{_INDENT}password: str = Field(..., min_length=8, max_length=72)")
        lines.extend(["", ""])

        # Update
        lines.append(f"class {name}Update(BaseModel):")
        lines.append(f'{_INDENT}"""Partial update of a {human}; every field is optional."""')
        lines.append("")
        lines.append(
            f'{_INDENT}model_config = ConfigDict(extra="forbid", populate_by_name=True, '
            f"protected_namespaces=())"
        )
        lines.append("")
        for col in columns:
            lines.extend(self._schema_field(col, "update"))
        lines.extend(["", ""])

        # Read
        lines.append(f"class {name}Read(BaseModel):")
        lines.append(f'{_INDENT}"""{name} as returned by the API."""')
        lines.append("")
        lines.append(
            f"{_INDENT}model_config = ConfigDict(from_attributes=True, populate_by_name=True, "
            f"protected_namespaces=())"
        )
        lines.append("")
        lines.append(f"{_INDENT}id: int")
        for col in columns:
            lines.extend(self._schema_field(col, "read"))
        lines.append(f'{_INDENT}created_at: datetime = Field(..., alias="createdAt")')
        lines.append(f'{_INDENT}updated_at: datetime = Field(..., alias="updatedAt")')

        content: str = "\n".join(lines) + "\n"
        logger.debug("Generated schemas for %s: %d lines.", name, content.count("\n"))
        return content

    @staticmethod
    def _schema_field(col: ColumnSpec, variant: str) -> List[str]:
        python_type: str = col.mapping.validation.annotation
        args: List[str]

        if variant == "read":
            annotation: str = python_type if col.required else f"Optional[{python_type}]"
            args = ["..."] if col.required else ["default=None"]
        elif variant == "update":
            annotation = f"Optional[{python_type}]"
            args = ["default=None"] + col.mapping.validation.kwargs(False)
        elif col.required and col.default is None:
            annotation = python_type
            args = ["..."] + col.mapping.validation.kwargs(True)
        elif col.default is not None and col.default.schema is not None:
            annotation = python_type if col.required else f"Optional[{python_type}]"
            args = [col.default.schema] + col.mapping.validation.kwargs(col.required)
        else:
            # Database-side default or an optional column
            annotation = f"Optional[{python_type}]"
            args = ["default=None"] + col.mapping.validation.kwargs(False)

        if col.alias:
            args.append(f"alias={wrap_in_quotes(col.alias)}")
        if col.description and variant != "update":
            args.append(f"description={wrap_in_quotes(docstring_text(col.description))}")
        return format_call(f"{col.attribute}: {annotation} = Field", args, _INDENT)

    # ===================================================================
    # 3. Service layer (app/services/<entity>.py)
    # ===================================================================

    def generate_service(self, entity: Entity) -> str:
        """Generate the CRUD service of one entity."""
        name: str = entity.name
        module: str = module_name(name)
        principal: bool = self.is_auth_principal(entity)

        imports: Dict[str, Set[str]] = {
            "typing": {"List"},
            "sqlalchemy": {"select"},
            "sqlalchemy.orm": {"Session"},
            "app.errors": {"NotFoundError"},
            "app.models": {name},
            f"app.schemas.{module}": {f"{name}Create", f"{name}Read", f"{name}Update"},
        }
        if principal:
            imports["typing"].add("Optional")
            imports["app.auth.security"] = {"hash_password"}

        lines: List[str] = module_docstring(f"Service layer for {name}.")
        lines.extend(render_imports(imports))
        lines.extend(["", ""])

        lines.append(f"class {name}Service:")
        lines.append(f'{_INDENT}"""CRUD operations on {name} records."""')
        lines.append("")
        lines.append(f"{_INDENT}def __init__(self, db: Session) -> None:")
        lines.append(f"{_DOUBLE_INDENT}self.db = db")
        lines.append("")

        # create
        lines.append(f"{_INDENT}def create(self, payload: {name}Create) -> {name}Read:")
        lines.append(f"{_DOUBLE_INDENT}data = payload.model_dump(exclude_unset=True)")
        if principal:
            lines.append(f'{_DOUBLE_INDENT}data["password_hash"] = hash_password(data.pop("password"))')
        lines.append(f"{_DOUBLE_INDENT}record = {name}(**data)")
        lines.append(f"{_DOUBLE_INDENT}self.db.add(record)")
        lines.append(f"{_DOUBLE_INDENT}self.db.commit()")
        lines.append(f"{_DOUBLE_INDENT}self.db.refresh(record)")
        lines.append(f"{_DOUBLE_INDENT}return self._to_read(record)")
        lines.append("")

        # list
        lines.append(f"{_INDENT}def list_all(self) -> List[{name}Read]:")
        lines.append(
            f"{_DOUBLE_INDENT}records = self.db.scalars(select({name}).order_by({name}.id)).all()"
        )
        lines.append(f"{_DOUBLE_INDENT}return [self._to_read(record) for record in records]")
        lines.append("")

        # get
        lines.append(f"{_INDENT}def get(self, record_id: int) -> {name}Read:")
        lines.append(f"{_DOUBLE_INDENT}return self._to_read(self._get_or_raise(record_id))")
        lines.append("")

        # update
        lines.append(
            f"{_INDENT}def update(self, record_id: int, payload: {name}Update) -> {name}Read:"
        )
        lines.append(f"{_DOUBLE_INDENT}record = self._get_or_raise(record_id)")
        lines.append(
            f"{_DOUBLE_INDENT}for key, value in payload.model_dump(exclude_unset=True).items():"
        )
        lines.append(f"{_TRIPLE_INDENT}setattr(record, key, value)")
        lines.append(f"{_DOUBLE_INDENT}self.db.commit()")
        lines.append(f"{_DOUBLE_INDENT}self.db.refresh(record)")
        lines.append(f"{_DOUBLE_INDENT}return self._to_read(record)")
        lines.append("")

        # delete
        lines.append(f"{_INDENT}def delete(self, record_id: int) -> None:")
        lines.append(f"{_DOUBLE_INDENT}record = self._get_or_raise(record_id)")
        lines.append(f"{_DOUBLE_INDENT}self.db.delete(record)")
        lines.append(f"{_DOUBLE_INDENT}self.db.commit()")
        lines.append("")

        if principal:
            login: Optional[EntityField] = entity.login_field
            login_attr: str = safe_identifier(login.name) if login else "email"
            lines.append(f"{_INDENT}def get_by_login(self, value: str) -> Optional[{name}]:")
            lines.append(
                f'{_DOUBLE_INDENT}"""Stored record, credential hash included, or None."""'
            )
            lines.append(
                f"{_DOUBLE_INDENT}statement = select({name}).where({name}.{login_attr} == value)"
            )
            lines.append(f"{_DOUBLE_INDENT}return self.db.scalars(statement).first()")
            lines.append("")

        lines.append(f"{_INDENT}def _get_or_raise(self, record_id: int) -> {name}:")
        lines.append(f"{_DOUBLE_INDENT}record = self.db.get({name}, record_id)")
        lines.append(f"{_DOUBLE_INDENT}if record is None:")
        lines.append(f'{_TRIPLE_INDENT}raise NotFoundError("{name}", record_id)')
        lines.append(f"{_DOUBLE_INDENT}return record")
        lines.append("")
        lines.append(f"{_INDENT}@staticmethod")
        lines.append(f"{_INDENT}def _to_read(record: {name}) -> {name}Read:")
        lines.append(f"{_DOUBLE_INDENT}return {name}Read.model_validate(record)")

        content: str = "\n".join(lines) + "\n"
        logger.debug("Generated service for %s: %d lines.", name, content.count("\n"))
        return content

    # ===================================================================
    # 4. API layer (app/routers/<entity>.py)
    # ===================================================================

    def generate_router(self, entity: Entity) -> str:
        """Generate the five CRUD routes of one entity."""
        name: str = entity.name
        module: str = module_name(name)
        snake: str = to_snake_case(name)
        plural_snake: str = to_snake_case(to_plural(name))
        if plural_snake == snake:
            plural_snake = f"{snake}_list"
        human: str = to_title_human(name)
        policy: AuthPolicy = self.effective_policy(entity)
        guarded: List[CrudOperation] = [op for op in CrudOperation if policy.requires_auth(op)]

        imports: Dict[str, Set[str]] = {
            "typing": {"List"},
            "fastapi": {"APIRouter", "Depends", "Response", "status"},
            "sqlalchemy.orm": {"Session"},
            "app.database": {"get_db"},
            f"app.schemas.{module}": {f"{name}Create", f"{name}Read", f"{name}Update"},
            f"app.services.{module}": {f"{name}Service"},
        }
        if guarded:
            imports["app.auth.dependencies"] = {"get_current_user"}

        lines: List[str] = module_docstring(
            f"API routes for {name}.",
            f"Authorization policy: {policy.value}. {policy.describe()}",
        )
        lines.extend(render_imports(imports))
        lines.extend(["", ""])
        tag: str = route_tag(name)
        lines.append(f'router = APIRouter(prefix="/{tag}", tags=["{tag}"])')
        lines.extend(["", ""])
        lines.append(f"def get_service(db: Session = Depends(get_db)) -> {name}Service:")
        lines.append(f"{_INDENT}return {name}Service(db)")
        lines.extend(["", ""])

        service_arg: str = f"service: {name}Service = Depends(get_service)"

        routes: List[Tuple[CrudOperation, str, List[str], str, List[str]]] = [
            (
                CrudOperation.CREATE,
                "post",
                ['""', f"response_model={name}Read", "status_code=status.HTTP_201_CREATED"],
                f"create_{snake}(payload: {name}Create, {service_arg}) -> {name}Read",
                ["return service.create(payload)"],
            ),
            (
                CrudOperation.LIST,
                "get",
                ['""', f"response_model=List[{name}Read]"],
                f"list_{plural_snake}({service_arg}) -> List[{name}Read]",
                ["return service.list_all()"],
            ),
            (
                CrudOperation.GET,
                "get",
                ['"/{record_id}"', f"response_model={name}Read"],
                f"get_{snake}(record_id: int, {service_arg}) -> {name}Read",
                ["return service.get(record_id)"],
            ),
            (
                CrudOperation.UPDATE,
                "patch",
                ['"/{record_id}"', f"response_model={name}Read"],
                f"update_{snake}(\n{_INDENT}record_id: int,\n{_INDENT}payload: {name}Update,"
                f"\n{_INDENT}{service_arg},\n) -> {name}Read",
                ["return service.update(record_id, payload)"],
            ),
            (
                CrudOperation.DELETE,
                "delete",
                [
                    '"/{record_id}"',
                    "status_code=status.HTTP_204_NO_CONTENT",
                    "response_class=Response",
                ],
                f"delete_{snake}(record_id: int, {service_arg}) -> Response",
                [
                    "service.delete(record_id)",
                    "return Response(status_code=status.HTTP_204_NO_CONTENT)",
                ],
            ),
        ]
        summaries: Dict[CrudOperation, str] = {
            CrudOperation.CREATE: f"Create a {human}",
            CrudOperation.LIST: f"List {to_title_human(to_plural(name))}",
            CrudOperation.GET: f"Get a {human} by id",
            CrudOperation.UPDATE: f"Update a {human}",
            CrudOperation.DELETE: f"Delete a {human}",
        }

        for operation, method, decorator_args, signature, body in routes:
            args: List[str] = list(decorator_args)
            args.append(f"summary={wrap_in_quotes(summaries[operation])}")
            if operation in guarded:
                args.append(
                    f'description="Requires a bearer token ({policy.value} policy)."'
                )
                args.append("dependencies=[Depends(get_current_user)]")
            else:
                args.append(f'description="Public endpoint ({policy.value} policy)."')
            lines.append(f"@router.{method}(")
            lines.extend(f"{_INDENT}{arg}," for arg in args)
            lines.append(")")
            lines.append(f"def {signature}:")
            lines.extend(f"{_INDENT}{statement}" for statement in body)
            lines.extend(["", ""])

        content: str = "\n".join(lines).rstrip("\n") + "\n"
        logger.debug(
            "Generated router for %s: %d lines, %d guarded route(s).",
            name,
            content.count("\n"),
            len(guarded),
        )
        return content

    # ===================================================================
    # 5. Application modules
    # ===================================================================

    def generate_config(self) -> str:
        """Generate ``app/config.py``; settings come from environment variables."""
        project: Project = self.project
        lines: List[str] = module_docstring(
            "Runtime settings read from the environment.",
            "Every value can be overridden by an environment variable of the same "
            "name in upper case.",
        )
        lines.extend(["import os", "from typing import List", "", ""])
        lines.append("def _split(value: str) -> List[str]:")
        lines.append(f'{_INDENT}return [item.strip() for item in value.split(",") if item.strip()]')
        lines.extend(["", ""])
        lines.append("class Settings:")
        lines.append(f'{_INDENT}"""Settings resolved once at import time."""')
        lines.append("")
        lines.append(f"{_INDENT}def __init__(self) -> None:")
        settings_lines: List[Tuple[str, str, str]] = [
            ("app_name", "str", f'os.getenv("APP_NAME", {wrap_in_quotes(project.name)})'),
            ("app_version", "str", f'os.getenv("APP_VERSION", {wrap_in_quotes(project.version)})'),
            (
                "database_url",
                "str",
                f'os.getenv("DATABASE_URL", {wrap_in_quotes(resolve_database_url(project))})',
            ),
            ("port", "int", f'int(os.getenv("PORT", "{project.settings.port}"))'),
            ("cors_origins", "List[str]", '_split(os.getenv("CORS_ORIGINS", "*"))'),
        ]
        if project.auth_active:
            settings_lines.extend([
                ("jwt_secret", "str", 'os.getenv("JWT_SECRET", "change-me-in-production")'),
                ("jwt_expires_minutes", "int", 'int(os.getenv("JWT_EXPIRES_MINUTES", "15"))'),
                (
                    "jwt_refresh_secret",
                    "str",
                    'os.getenv("JWT_REFRESH_SECRET", "change-me-in-production-refresh")',
                ),
                (
                    "jwt_refresh_expires_days",
                    "int",
                    'int(os.getenv("JWT_REFRESH_EXPIRES_DAYS", "7"))',
                ),
                ("jwt_algorithm", "str", 'os.getenv("JWT_ALGORITHM", "HS256")'),
            ])
        for attr, annotation, expression in settings_lines:
            lines.append(f"{_DOUBLE_INDENT}self.{attr}: {annotation} = {expression}")
        lines.extend(["", ""])
        lines.append("settings = Settings()")
        return "\n".join(lines) + "\n"

    def generate_database(self) -> str:
        """Generate ``app/database.py``: engine, session factory, ``Base``, ``get_db``."""
        lines: List[str] = module_docstring("Database engine, session factory and declarative base.")
        lines.extend(render_imports({
            "typing": {"Any", "Iterator"},
            "sqlalchemy": {"create_engine", "event"},
            "sqlalchemy.engine": {"Engine"},
            "sqlalchemy.orm": {"DeclarativeBase", "Session", "sessionmaker"},
            "app.config": {"settings"},
        }))
        lines.extend(["", ""])
        lines.extend([
            "class Base(DeclarativeBase):",
            f'{_INDENT}"""Declarative base shared by every model."""',
            "",
            "",
            "_IS_SQLITE: bool = settings.database_url.startswith(\"sqlite\")",
            "",
            "engine: Engine = create_engine(",
            f"{_INDENT}settings.database_url,",
            f"{_INDENT}pool_pre_ping=True,",
            f'{_INDENT}connect_args={{"check_same_thread": False}} if _IS_SQLITE else {{}},',
            ")",
            "",
            "if _IS_SQLITE:",
            "",
            f'{_INDENT}@event.listens_for(engine, "connect")',
            f"{_INDENT}def _enable_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:",
            f'{_DOUBLE_INDENT}"""SQLite ignores ON DELETE unless foreign keys are switched on."""',
            f"{_DOUBLE_INDENT}cursor = dbapi_connection.cursor()",
            f'{_DOUBLE_INDENT}cursor.execute("PRAGMA foreign_keys=ON")',
            f"{_DOUBLE_INDENT}cursor.close()",
            "",
            "",
            "SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)",
            "",
            "",
            "def get_db() -> Iterator[Session]:",
            f'{_INDENT}"""FastAPI dependency yielding one session per request."""',
            f"{_INDENT}db = SessionLocal()",
            f"{_INDENT}try:",
            f"{_DOUBLE_INDENT}yield db",
            f"{_INDENT}finally:",
            f"{_DOUBLE_INDENT}db.close()",
        ])
        return "\n".join(lines) + "\n"

    def generate_errors(self) -> str:
        """Generate ``app/errors.py``: ``NotFoundError`` and the exception handlers."""
        lines: List[str] = module_docstring(
            "Application errors and their HTTP mapping.",
            "NotFoundError -> 404, foreign-key or NOT NULL violations -> 400, "
            "other integrity errors (unique) -> 409.",
        )
        lines.extend(render_imports({
            "logging": set(),
            "fastapi": {"FastAPI", "Request", "status"},
            "fastapi.responses": {"JSONResponse"},
            "sqlalchemy.exc": {"IntegrityError"},
        }))
        lines.extend(["", ""])
        lines.extend([
            'logger = logging.getLogger("app.errors")',
            "",
            '_BAD_REFERENCE_MARKERS = ("foreign key", "not null", "not-null")',
            "",
            "",
            "class NotFoundError(Exception):",
            f'{_INDENT}"""Raised by services when a record does not exist."""',
            "",
            f"{_INDENT}def __init__(self, entity: str, record_id: object) -> None:",
            f"{_DOUBLE_INDENT}self.entity = entity",
            f"{_DOUBLE_INDENT}self.record_id = record_id",
            f'{_DOUBLE_INDENT}super().__init__(f"{{entity}} with id {{record_id}} not found")',
            "",
            "",
            "def register_exception_handlers(app: FastAPI) -> None:",
            f'{_INDENT}"""Attach the domain exception handlers to *app*."""',
            "",
            f"{_INDENT}@app.exception_handler(NotFoundError)",
            f"{_INDENT}async def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:",
            f"{_DOUBLE_INDENT}return JSONResponse(",
            f"{_TRIPLE_INDENT}status_code=status.HTTP_404_NOT_FOUND,",
            f'{_TRIPLE_INDENT}content={{"detail": str(exc)}},',
            f"{_DOUBLE_INDENT})",
            "",
            f"{_INDENT}@app.exception_handler(IntegrityError)",
            f"{_INDENT}async def handle_integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:",
            f"{_DOUBLE_INDENT}message = str(exc.orig if exc.orig is not None else exc).lower()",
            f'{_DOUBLE_INDENT}logger.info("Integrity error on %s %s: %s", request.method, request.url.path, message)',
            f"{_DOUBLE_INDENT}if any(marker in message for marker in _BAD_REFERENCE_MARKERS):",
            f"{_TRIPLE_INDENT}return JSONResponse(",
            f"{_TRIPLE_INDENT}{_INDENT}status_code=status.HTTP_400_BAD_REQUEST,",
            f'{_TRIPLE_INDENT}{_INDENT}content={{"detail": "Referenced record is missing or still in use."}},',
            f"{_TRIPLE_INDENT})",
            f"{_DOUBLE_INDENT}return JSONResponse(",
            f"{_TRIPLE_INDENT}status_code=status.HTTP_409_CONFLICT,",
            f'{_TRIPLE_INDENT}content={{"detail": "Record conflicts with an existing record."}},',
            f"{_DOUBLE_INDENT})",
        ])
        return "\n".join(lines) + "\n"

    def generate_middleware(self) -> str:
        """Generate ``app/middleware.py``: the security-headers middleware."""
        lines: List[str] = module_docstring("Security headers added to every response.")
        lines.extend(render_imports({
            "typing": {"Awaitable", "Callable", "Dict"},
            "starlette.middleware.base": {"BaseHTTPMiddleware"},
            "starlette.requests": {"Request"},
            "starlette.responses": {"Response"},
        }))
        lines.extend(["", ""])
        lines.append("SECURITY_HEADERS: Dict[str, str] = {")
        for header, value in _SECURITY_HEADERS:
            lines.append(f'{_INDENT}"{header}": "{value}",')
        lines.append("}")
        lines.extend(["", ""])
        lines.extend([
            "class SecurityHeadersMiddleware(BaseHTTPMiddleware):",
            f'{_INDENT}"""Sets the headers above unless a route already set them."""',
            "",
            f"{_INDENT}async def dispatch(",
            f"{_DOUBLE_INDENT}self,",
            f"{_DOUBLE_INDENT}request: Request,",
            f"{_DOUBLE_INDENT}call_next: Callable[[Request], Awaitable[Response]],",
            f"{_INDENT}) -> Response:",
            f"{_DOUBLE_INDENT}response = await call_next(request)",
            f"{_DOUBLE_INDENT}for name, value in SECURITY_HEADERS.items():",
            f"{_TRIPLE_INDENT}response.headers.setdefault(name, value)",
            f"{_DOUBLE_INDENT}return response",
        ])
        return "\n".join(lines) + "\n"

    def rate_limit_expression(self) -> str:
        settings: ProjectSettings = self.project.settings
        return f"{settings.rate_limit_max} per {settings.rate_limit_ttl} seconds"

    def generate_rate_limit(self) -> str:
        """Generate ``app/rate_limit.py``: the slowapi limiter."""
        lines: List[str] = module_docstring(
            "Request rate limiting.",
            f"Every route shares the default limit of {self.rate_limit_expression()} "
            f"per client address.",
        )
        lines.extend(render_imports({
            "slowapi": {"Limiter"},
            "slowapi.util": {"get_remote_address"},
        }))
        lines.extend(["", ""])
        lines.append(f"DEFAULT_LIMIT = {wrap_in_quotes(self.rate_limit_expression())}")
        lines.append("")
        lines.append("limiter = Limiter(key_func=get_remote_address, default_limits=[DEFAULT_LIMIT])")
        return "\n".join(lines) + "\n"

    def generate_main(self) -> str:
        """
        Generate ``app/main.py``.

        Wires exactly one router per entity, plus the auth router when the
        auth subsystem is synthesized.  The OpenAPI tag descriptions are
        rendered from the same ``AuthPolicy`` values as the routes.
        """
        project: Project = self.project
        settings: ProjectSettings = project.settings
        auth: bool = project.auth_active

        imports: Dict[str, Set[str]] = {
            "contextlib": {"asynccontextmanager"},
            "typing": {"AsyncIterator", "Dict", "List"},
            "uvicorn": set(),
            "fastapi": {"FastAPI"},
            "app.config": {"settings"},
            "app.database": {"Base", "engine"},
            "app.errors": {"register_exception_handlers"},
        }
        if settings.enable_cors:
            imports["fastapi.middleware.cors"] = {"CORSMiddleware"}
        if settings.enable_helmet:
            imports["app.middleware"] = {"SecurityHeadersMiddleware"}
        if settings.enable_rate_limit:
            imports["slowapi"] = {"_rate_limit_exceeded_handler"}
            imports["slowapi.errors"] = {"RateLimitExceeded"}
            imports["slowapi.middleware"] = {"SlowAPIMiddleware"}
            imports["app.rate_limit"] = {"limiter"}

        title: str = to_title_human(project.name).title()
        description: str = docstring_text(project.description) or f"{title} service."

        lines: List[str] = module_docstring(f"{title} application bootstrap.")
        lines.extend(render_imports(imports))
        lines.append("from app import models  # noqa: F401  (registers every table)")
        if auth:
            lines.append("from app.auth.router import router as auth_router")
        for entity in project.entities:
            lines.append(router_import_line(entity.name))
        lines.extend(["", ""])

        lines.append(f'API_PREFIX = "{API_PREFIX}"')
        lines.append("")
        lines.append("OPENAPI_TAGS: List[Dict[str, str]] = [")
        if auth:
            lines.append(
                f'{_INDENT}{{"name": "auth", "description": '
                f'"Registration, login, token refresh and profile."}},'
            )
        for entity in project.entities:
            policy: AuthPolicy = self.effective_policy(entity)
            about: str = docstring_text(entity.description) or f"{entity.name} records."
            tag_description: str = wrap_in_quotes(f"{about} {policy.describe()}")
            lines.append(
                f'{_INDENT}{{"name": "{route_tag(entity.name)}", '
                f'"description": {tag_description}}},'
            )
        lines.append("]")
        lines.extend(["", ""])

        lines.extend([
            "@asynccontextmanager",
            "async def lifespan(app: FastAPI) -> AsyncIterator[None]:",
            f'{_INDENT}"""Create missing tables on startup; release pooled connections on shutdown."""',
            f"{_INDENT}Base.metadata.create_all(bind=engine)",
            f"{_INDENT}yield",
            f"{_INDENT}engine.dispose()",
            "",
            "",
            "app = FastAPI(",
            f"{_INDENT}title={wrap_in_quotes(title)},",
            f"{_INDENT}version=settings.app_version,",
            f"{_INDENT}description={wrap_in_quotes(description)},",
        ])
        if settings.enable_swagger:
            lines.append(f'{_INDENT}docs_url=f"{{API_PREFIX}}/docs",')
            lines.append(f'{_INDENT}openapi_url=f"{{API_PREFIX}}/openapi.json",')
        else:
            lines.append(f"{_INDENT}docs_url=None,")
            lines.append(f"{_INDENT}openapi_url=None,")
        lines.extend([
            f"{_INDENT}redoc_url=None,",
            f"{_INDENT}openapi_tags=OPENAPI_TAGS,",
            f"{_INDENT}lifespan=lifespan,",
            ")",
            "",
        ])

        if settings.enable_cors:
            lines.extend([
                "app.add_middleware(",
                f"{_INDENT}CORSMiddleware,",
                f"{_INDENT}allow_origins=settings.cors_origins,",
                f'{_INDENT}allow_credentials="*" not in settings.cors_origins,',
                f'{_INDENT}allow_methods=["*"],',
                f'{_INDENT}allow_headers=["*"],',
                ")",
            ])
        if settings.enable_helmet:
            lines.append("app.add_middleware(SecurityHeadersMiddleware)")
        if settings.enable_rate_limit:
            lines.extend([
                "app.state.limiter = limiter",
                "app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)",
                "app.add_middleware(SlowAPIMiddleware)",
            ])
        lines.append("register_exception_handlers(app)")
        lines.append("")

        if auth:
            lines.append("app.include_router(auth_router, prefix=API_PREFIX)")
        for entity in project.entities:
            lines.append(
                f"app.include_router({module_name(entity.name)}_router, prefix=API_PREFIX)"
            )
        lines.extend(["", ""])

        lines.extend([
            '@app.get("/health", tags=["health"])',
            "def health() -> Dict[str, str]:",
            f'{_INDENT}return {{"status": "ok"}}',
            "",
            "",
            'if __name__ == "__main__":',
            f'{_INDENT}uvicorn.run("app.main:app", host="0.0.0.0", port=settings.port)',
        ])

        content: str = "\n".join(lines) + "\n"
        logger.debug("Generated main app: %d lines.", content.count("\n"))
        return content

    @staticmethod
    def generate_init_file(title: str) -> str:
        """Package marker holding only a docstring."""
        return "\n".join(module_docstring(title)).rstrip("\n") + "\n"

    # ===================================================================
    # Orchestration
    # ===================================================================

    def generate_entity_files(self, entity: Entity) -> Dict[str, str]:
        module: str = module_name(entity.name)
        return {
            f"app/schemas/{module}.py": self.generate_schemas(entity),
            f"app/services/{module}.py": self.generate_service(entity),
            f"app/routers/{module}.py": self.generate_router(entity),
        }

    def generate_all(self) -> Dict[str, str]:
        """
        Generate every artifact this synthesizer owns.

        Returns:
            Dict mapping relative file path -> file content.
        """
        settings: ProjectSettings = self.project.settings
        files: Dict[str, str] = {
            "app/__init__.py": self.generate_init_file(
                f"{to_title_human(self.project.name).title()} service package."
            ),
            "app/schemas/__init__.py": self.generate_init_file("Pydantic validation objects."),
            "app/services/__init__.py": self.generate_init_file("Service layer."),
            "app/routers/__init__.py": self.generate_init_file("API routers."),
            "app/config.py": self.generate_config(),
            "app/database.py": self.generate_database(),
            "app/errors.py": self.generate_errors(),
            "app/models.py": self.generate_models(),
            "app/main.py": self.generate_main(),
        }
        if settings.enable_helmet:
            files["app/middleware.py"] = self.generate_middleware()
        if settings.enable_rate_limit:
            files["app/rate_limit.py"] = self.generate_rate_limit()
        for entity in self.project.entities:
            files.update(self.generate_entity_files(entity))

        logger.info("TemplateGenerator produced %d file(s).", len(files))
        return files


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "GENERATED_NOTE",
    "API_PREFIX",
    "ColumnSpec",
    "TemplateGenerator",
    "table_name",
    "module_name",
    "route_tag",
    "router_import_line",
    "module_docstring",
    "render_imports",
    "format_call",
]

logger.debug("schemagen.templates loaded: %d public symbols.", len(__all__))
