# File: schemagen/auth_templates.py
"""
schemagen - Authentication Synthesizer
======================================
Emits the JWT authentication subsystem of the generated service when the
``auth-jwt`` module is enabled and the project has a ``User`` entity with
a string login field:

    app/auth/security.py      passlib bcrypt hashing, python-jose tokens
    app/auth/dependencies.py  ``get_current_user`` (HTTP bearer)
    app/auth/schemas.py       login / refresh / token-pair models
    app/auth/router.py        register, login, refresh, profile
    scripts/seed.py           idempotent seed of ``options.seedUsers``

The synthesizer reuses the :class:`~schemagen.templates.TemplateGenerator`
column specs, so the seed script and the login route use exactly the
attribute names and types of the persisted model.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from schemagen.models import Entity, EntityField, ModuleConfig, ModuleName
from schemagen.templates import (
    API_PREFIX,
    ColumnSpec,
    TemplateGenerator,
    format_call,
    module_docstring,
    module_name,
    render_imports,
)
from schemagen.utils import py_literal, safe_identifier, wrap_in_quotes

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.auth_templates")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_INDENT: str = "    "
_DOUBLE_INDENT: str = "        "
_TRIPLE_INDENT: str = "            "

DEFAULT_SEED_USERS: Tuple[Dict[str, Any], ...] = (
    {"email": "admin@example.com", "password": "password123", "extraFields": {}},
)


class AuthTemplateGenerator:
    """
    Synthesizes the auth subsystem.  Construct only when
    ``project.auth_active`` is true; :meth:`generate_all` returns an empty
    mapping otherwise.
    """

    def __init__(self, templates: TemplateGenerator) -> None:
        self.templates: TemplateGenerator = templates
        self.project = templates.project
        self.principal: Optional[Entity] = self.project.principal_entity
        self.login: Optional[EntityField] = (
            self.principal.login_field if self.principal is not None else None
        )

    # -- naming -------------------------------------------------------------

    @property
    def user_class(self) -> str:
        return self.principal.name if self.principal else "User"

    @property
    def user_module(self) -> str:
        return module_name(self.user_class)

    @property
    def login_attr(self) -> str:
        return safe_identifier(self.login.name) if self.login else "email"

    @property
    def login_wire(self) -> str:
        return self.login.name if self.login else "email"

    # ===================================================================
    # app/auth/security.py
    # ===================================================================

    def generate_security(self) -> str:
        lines: List[str] = module_docstring(
            "Password hashing and JWT helpers.",
            "Access and refresh tokens carry the user id in ``sub`` and their kind "
            "in ``type``; each kind is signed with its own secret.",
        )
        lines.extend(render_imports({
            "datetime": {"datetime", "timedelta", "timezone"},
            "typing": {"Any", "Dict"},
            "jose": {"JWTError", "jwt"},
            "passlib.context": {"CryptContext"},
            "app.config": {"settings"},
        }))
        lines.extend(["", ""])
        lines.extend([
            '_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")',
            "",
            'ACCESS_TOKEN = "access"',
            'REFRESH_TOKEN = "refresh"',
            "",
            "",
            "class TokenError(Exception):",
            f'{_INDENT}"""Raised for any token that cannot be trusted."""',
            "",
            "",
            "def hash_password(password: str) -> str:",
            f"{_INDENT}return _pwd_context.hash(password)",
            "",
            "",
            "def verify_password(password: str, password_hash: str) -> bool:",
            f"{_INDENT}return _pwd_context.verify(password, password_hash)",
            "",
            "",
            "def _encode(user_id: int, token_type: str, lifetime: timedelta, secret: str) -> str:",
            f"{_INDENT}now = datetime.now(timezone.utc)",
            f"{_INDENT}payload: Dict[str, Any] = {{",
            f'{_DOUBLE_INDENT}"sub": str(user_id),',
            f'{_DOUBLE_INDENT}"type": token_type,',
            f'{_DOUBLE_INDENT}"iat": int(now.timestamp()),',
            f'{_DOUBLE_INDENT}"exp": int((now + lifetime).timestamp()),',
            f"{_INDENT}}}",
            f"{_INDENT}return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)",
            "",
            "",
            "def create_access_token(user_id: int) -> str:",
            f"{_INDENT}return _encode(",
            f"{_DOUBLE_INDENT}user_id,",
            f"{_DOUBLE_INDENT}ACCESS_TOKEN,",
            f"{_DOUBLE_INDENT}timedelta(minutes=settings.jwt_expires_minutes),",
            f"{_DOUBLE_INDENT}settings.jwt_secret,",
            f"{_INDENT})",
            "",
            "",
            "def create_refresh_token(user_id: int) -> str:",
            f"{_INDENT}return _encode(",
            f"{_DOUBLE_INDENT}user_id,",
            f"{_DOUBLE_INDENT}REFRESH_TOKEN,",
            f"{_DOUBLE_INDENT}timedelta(days=settings.jwt_refresh_expires_days),",
            f"{_DOUBLE_INDENT}settings.jwt_refresh_secret,",
            f"{_INDENT})",
            "",
            "",
            "def decode_token(token: str, refresh: bool = False) -> int:",
            f'{_INDENT}"""Return the user id of a valid token of the expected kind."""',
            f"{_INDENT}secret = settings.jwt_refresh_secret if refresh else settings.jwt_secret",
            f"{_INDENT}expected = REFRESH_TOKEN if refresh else ACCESS_TOKEN",
            f"{_INDENT}try:",
            f"{_DOUBLE_INDENT}payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])",
            f"{_INDENT}except JWTError as exc:",
            f'{_DOUBLE_INDENT}raise TokenError("Invalid or expired token") from exc',
            f'{_INDENT}if payload.get("type") != expected:',
            f'{_DOUBLE_INDENT}raise TokenError("Wrong token type")',
            f"{_INDENT}try:",
            f'{_DOUBLE_INDENT}return int(payload["sub"])',
            f"{_INDENT}except (KeyError, TypeError, ValueError) as exc:",
            f'{_DOUBLE_INDENT}raise TokenError("Token has no valid subject") from exc',
        ])
        return "\n".join(lines) + "\n"

    # ===================================================================
    # app/auth/dependencies.py
    # ===================================================================

    def generate_dependencies(self) -> str:
        user: str = self.user_class
        lines: List[str] = module_docstring("Request dependencies that authenticate the caller.")
        lines.extend(render_imports({
            "typing": {"Optional"},
            "fastapi": {"Depends", "HTTPException", "status"},
            "fastapi.security": {"HTTPAuthorizationCredentials", "HTTPBearer"},
            "sqlalchemy.orm": {"Session"},
            "app.auth.security": {"TokenError", "decode_token"},
            "app.database": {"get_db"},
            "app.models": {user},
        }))
        lines.extend(["", ""])
        lines.extend([
            "bearer_scheme = HTTPBearer(auto_error=False)",
            "",
            "",
            "def unauthorized(detail: str) -> HTTPException:",
            f"{_INDENT}return HTTPException(",
            f"{_DOUBLE_INDENT}status_code=status.HTTP_401_UNAUTHORIZED,",
            f"{_DOUBLE_INDENT}detail=detail,",
            f'{_DOUBLE_INDENT}headers={{"WWW-Authenticate": "Bearer"}},',
            f"{_INDENT})",
            "",
            "",
            "def get_current_user(",
            f"{_INDENT}credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),",
            f"{_INDENT}db: Session = Depends(get_db),",
            f") -> {user}:",
            f'{_INDENT}"""Resolve the bearer token to a stored {user}, or fail with 401."""',
            f"{_INDENT}if credentials is None:",
            f'{_DOUBLE_INDENT}raise unauthorized("Not authenticated")',
            f"{_INDENT}try:",
            f"{_DOUBLE_INDENT}user_id = decode_token(credentials.credentials)",
            f"{_INDENT}except TokenError as exc:",
            f"{_DOUBLE_INDENT}raise unauthorized(str(exc)) from exc",
            f"{_INDENT}user = db.get({user}, user_id)",
            f"{_INDENT}if user is None:",
            f'{_DOUBLE_INDENT}raise unauthorized("User no longer exists")',
            f"{_INDENT}return user",
        ])
        return "\n".join(lines) + "\n"

    # ===================================================================
    # app/auth/schemas.py
    # ===================================================================

    def generate_schemas(self) -> str:
        lines: List[str] = module_docstring("Request and response models of the auth routes.")
        lines.extend(render_imports({"pydantic": {"BaseModel", "ConfigDict", "Field"}}))
        lines.extend(["", ""])

        login_args: List[str] = ["...", "min_length=1"]
        if self.login_attr != self.login_wire:
            login_args.append(f"alias={wrap_in_quotes(self.login_wire)}")

        lines.extend([
            "class LoginRequest(BaseModel):",
            f'{_INDENT}model_config = ConfigDict(extra="forbid", populate_by_name=True)',
            "",
        ])
        lines.extend(format_call(f"{self.login_attr}: str = Field", login_args, _INDENT))
        lines.extend([
            f"{_INDENT}password: str = Field(..., min_length=1)",
            "",
            "",
            "class RefreshRequest(BaseModel):",
            f'{_INDENT}model_config = ConfigDict(extra="forbid")',
            "",
            f"{_INDENT}refresh_token: str",
            "",
            "",
            "class TokenPair(BaseModel):",
            f"{_INDENT}access_token: str",
            f"{_INDENT}refresh_token: str",
            f'{_INDENT}token_type: str = "bearer"',
        ])
        return "\n".join(lines) + "\n"

    # ===================================================================
    # app/auth/router.py
    # ===================================================================

    def generate_router(self) -> str:
        user: str = self.user_class
        module: str = self.user_module
        attr: str = self.login_attr
        required_login: bool = bool(self.login and self.login.required)

        lines: List[str] = module_docstring(
            "Authentication routes: register, login, refresh and profile.",
            f"Mounted under {API_PREFIX}/auth.",
        )
        lines.extend(render_imports({
            "fastapi": {"APIRouter", "Depends", "HTTPException", "status"},
            "sqlalchemy.orm": {"Session"},
            "app.auth.dependencies": {"get_current_user", "unauthorized"},
            "app.auth.schemas": {"LoginRequest", "RefreshRequest", "TokenPair"},
            "app.auth.security": {
                "TokenError",
                "create_access_token",
                "create_refresh_token",
                "decode_token",
                "verify_password",
            },
            "app.database": {"get_db"},
            "app.models": {user},
            f"app.schemas.{module}": {f"{user}Create", f"{user}Read"},
            f"app.services.{module}": {f"{user}Service"},
        }))
        lines.extend(["", ""])

        if required_login:
            duplicate_check: str = f"if service.get_by_login(payload.{attr}) is not None:"
        else:
            duplicate_check = (
                f"if payload.{attr} is not None and "
                f"service.get_by_login(payload.{attr}) is not None:"
            )

        lines.extend([
            'router = APIRouter(prefix="/auth", tags=["auth"])',
            "",
            "",
            f"def get_user_service(db: Session = Depends(get_db)) -> {user}Service:",
            f"{_INDENT}return {user}Service(db)",
            "",
            "",
            "def issue_tokens(user_id: int) -> TokenPair:",
            f"{_INDENT}return TokenPair(",
            f"{_DOUBLE_INDENT}access_token=create_access_token(user_id),",
            f"{_DOUBLE_INDENT}refresh_token=create_refresh_token(user_id),",
            f"{_INDENT})",
            "",
            "",
            "@router.post(",
            f'{_INDENT}"/register",',
            f"{_INDENT}response_model=TokenPair,",
            f"{_INDENT}status_code=status.HTTP_201_CREATED,",
            f'{_INDENT}summary="Register a new account",',
            ")",
            "def register(",
            f"{_INDENT}payload: {user}Create,",
            f"{_INDENT}service: {user}Service = Depends(get_user_service),",
            ") -> TokenPair:",
            f"{_INDENT}{duplicate_check}",
            f"{_DOUBLE_INDENT}raise HTTPException(",
            f"{_TRIPLE_INDENT}status_code=status.HTTP_409_CONFLICT,",
            f'{_TRIPLE_INDENT}detail="An account with this {self.login_wire} already exists",',
            f"{_DOUBLE_INDENT})",
            f"{_INDENT}created = service.create(payload)",
            f"{_INDENT}return issue_tokens(created.id)",
            "",
            "",
            '@router.post("/login", response_model=TokenPair, summary="Log in and receive tokens")',
            "def login(",
            f"{_INDENT}payload: LoginRequest,",
            f"{_INDENT}service: {user}Service = Depends(get_user_service),",
            ") -> TokenPair:",
            f"{_INDENT}account = service.get_by_login(payload.{attr})",
            f"{_INDENT}if account is None or not verify_password(payload.password, account.password_hash):",
            f'{_DOUBLE_INDENT}raise unauthorized("Invalid credentials")',
            f"{_INDENT}return issue_tokens(account.id)",
            "",
            "",
            '@router.post("/refresh", response_model=TokenPair, summary="Exchange a refresh token")',
            "def refresh(payload: RefreshRequest, db: Session = Depends(get_db)) -> TokenPair:",
            f"{_INDENT}try:",
            f"{_DOUBLE_INDENT}user_id = decode_token(payload.refresh_token, refresh=True)",
            f"{_INDENT}except TokenError as exc:",
            f"{_DOUBLE_INDENT}raise unauthorized(str(exc)) from exc",
            f"{_INDENT}if db.get({user}, user_id) is None:",
            f'{_DOUBLE_INDENT}raise unauthorized("User no longer exists")',
            f"{_INDENT}return issue_tokens(user_id)",
            "",
            "",
            f'@router.get("/profile", response_model={user}Read, summary="Current account")',
            f"def profile(current_user: {user} = Depends(get_current_user)) -> {user}Read:",
            f"{_INDENT}return {user}Read.model_validate(current_user)",
        ])
        return "\n".join(lines) + "\n"

    # ===================================================================
    # scripts/seed.py
    # ===================================================================

    def seed_users(self) -> List[Dict[str, Any]]:
        """``options.seedUsers`` of the auth module, or the default admin."""
        module: Optional[ModuleConfig] = self.project.get_module(ModuleName.AUTH_JWT)
        raw: Any = module.options.get("seedUsers") if module is not None else None
        if not isinstance(raw, list) or not raw:
            return [dict(entry) for entry in DEFAULT_SEED_USERS]
        return [dict(entry) for entry in raw if isinstance(entry, Mapping)]

    def _seed_expression(
        self, col: ColumnSpec, value: Any, imports: Dict[str, Set[str]]
    ) -> str:
        """Python expression for *value* stored in column *col*."""
        kind: str = col.mapping.field_type
        if kind in ("int", "fk"):
            return py_literal(int(float(value)))
        if kind == "float":
            return py_literal(float(value))
        if kind == "boolean":
            if isinstance(value, str):
                return py_literal(value.strip().lower() == "true")
            return py_literal(bool(value))
        if kind == "enum":
            imports.setdefault("app.models", set()).add(col.mapping.python_type)
            return f"{col.mapping.python_type}({wrap_in_quotes(str(value))})"
        if kind == "datetime":
            imports.setdefault("datetime", set()).add("datetime")
            return f"datetime.fromisoformat({wrap_in_quotes(str(value))})"
        if kind == "uuid":
            imports.setdefault("uuid", set()).add("UUID")
            return f"UUID({wrap_in_quotes(str(value))})"
        if kind == "json":
            parsed: Any = json.loads(value) if isinstance(value, str) else value
            return py_literal(parsed)
        return py_literal(str(value))

    def _placeholder(
        self, col: ColumnSpec, index: int, imports: Dict[str, Set[str]]
    ) -> str:
        """Value for a required column the seed entry does not provide."""
        kind: str = col.mapping.field_type
        if kind == "boolean":
            return "False"
        if kind in ("int", "fk"):
            return "0"
        if kind == "float":
            return "0.0"
        if kind == "json":
            return "{}"
        if kind == "datetime":
            imports.setdefault("datetime", set()).update({"datetime", "timezone"})
            return "datetime.now(timezone.utc)"
        if kind == "uuid":
            imports.setdefault("uuid", set()).add("uuid4")
            return "uuid4()"
        if kind == "enum":
            field_def: Optional[EntityField] = (
                self.principal.get_field(col.wire_name) if self.principal else None
            )
            first: str = (field_def.enum_values or ["value"])[0] if field_def else "value"
            imports.setdefault("app.models", set()).add(col.mapping.python_type)
            return f"{col.mapping.python_type}({wrap_in_quotes(first)})"
        text: str = f"{col.wire_name}-{index + 1}" if col.unique else col.wire_name
        return wrap_in_quotes(text)

    def generate_seed(self) -> str:
        user: str = self.user_class
        assert self.principal is not None
        columns: List[ColumnSpec] = self.templates.columns_for(self.principal)
        by_wire: Dict[str, ColumnSpec] = {col.wire_name: col for col in columns}
        imports: Dict[str, Set[str]] = {
            "logging": set(),
            "typing": {"Any", "Dict", "List"},
            "sqlalchemy": {"select"},
            "app.auth.security": {"hash_password"},
            "app.database": {"Base", "SessionLocal", "engine"},
            "app.models": {user},
        }

        entries: List[List[str]] = []
        for index, seed in enumerate(self.seed_users()):
            extra: Dict[str, Any] = dict(seed.get("extraFields") or {})
            for key, value in seed.items():
                if key not in ("password", "extraFields"):
                    extra.setdefault(key, value)
            login_value: Any = extra.pop(self.login_wire, None)
            if login_value is None:
                login_value = extra.pop("email", None)
            if login_value is None:
                login_value = f"user{index + 1}@example.com"
            password: str = str(seed.get("password") or "password123")

            pairs: List[Tuple[str, str]] = [
                (self.login_attr, py_literal(str(login_value))),
                ("password", py_literal(password)),
            ]
            for wire, value in extra.items():
                col: Optional[ColumnSpec] = by_wire.get(wire)
                if col is None or col.attribute == self.login_attr:
                    logger.warning(
                        "Seed user %d: ignoring unknown field %r.", index + 1, wire
                    )
                    continue
                pairs.append((col.attribute, self._seed_expression(col, value, imports)))
            given: Set[str] = {attr for attr, _ in pairs}
            for col in columns:
                if col.attribute in given or not col.required:
                    continue
                if col.default is not None or col.foreign_key is not None:
                    continue
                pairs.append((col.attribute, self._placeholder(col, index, imports)))

            entries.append([f'{_DOUBLE_INDENT}"{attr}": {expr},' for attr, expr in pairs])

        lines: List[str] = module_docstring(
            f"Seed initial {user} accounts.",
            "Run from the project root with ``python -m scripts.seed``.  Existing "
            f"accounts (matched by {self.login_wire}) are updated, not duplicated.",
        )
        lines.extend(render_imports(imports))
        lines.extend(["", ""])
        lines.append('logger = logging.getLogger("scripts.seed")')
        lines.append("")
        lines.append("SEED_USERS: List[Dict[str, Any]] = [")
        for entry in entries:
            lines.append(f"{_INDENT}{{")
            lines.extend(entry)
            lines.append(f"{_INDENT}}},")
        lines.append("]")
        lines.extend(["", ""])
        lines.extend([
            "def seed() -> int:",
            f'{_INDENT}"""Upsert every seed account; return how many were created."""',
            f"{_INDENT}Base.metadata.create_all(bind=engine)",
            f"{_INDENT}created = 0",
            f"{_INDENT}with SessionLocal() as db:",
            f"{_DOUBLE_INDENT}for entry in SEED_USERS:",
            f"{_TRIPLE_INDENT}data = dict(entry)",
            f'{_TRIPLE_INDENT}data["password_hash"] = hash_password(data.pop("password"))',
            f"{_TRIPLE_INDENT}statement = select({user}).where({user}.{self.login_attr} == data[\"{self.login_attr}\"])",
            f"{_TRIPLE_INDENT}existing = db.scalars(statement).first()",
            f"{_TRIPLE_INDENT}if existing is None:",
            f"{_TRIPLE_INDENT}{_INDENT}db.add({user}(**data))",
            f"{_TRIPLE_INDENT}{_INDENT}created += 1",
            f"{_TRIPLE_INDENT}else:",
            f"{_TRIPLE_INDENT}{_INDENT}for key, value in data.items():",
            f"{_TRIPLE_INDENT}{_DOUBLE_INDENT}setattr(existing, key, value)",
            f"{_DOUBLE_INDENT}db.commit()",
            f"{_INDENT}return created",
            "",
            "",
            'if __name__ == "__main__":',
            f"{_INDENT}logging.basicConfig(level=logging.INFO)",
            f'{_INDENT}logger.info("Seeded %d new account(s).", seed())',
        ])
        return "\n".join(lines) + "\n"

    # ===================================================================
    # Orchestration
    # ===================================================================

    def generate_all(self) -> Dict[str, str]:
        if not self.project.auth_active:
            logger.debug("Auth subsystem not synthesized.")
            return {}
        files: Dict[str, str] = {
            "app/auth/__init__.py": TemplateGenerator.generate_init_file(
                "JWT authentication subsystem."
            ),
            "app/auth/security.py": self.generate_security(),
            "app/auth/dependencies.py": self.generate_dependencies(),
            "app/auth/schemas.py": self.generate_schemas(),
            "app/auth/router.py": self.generate_router(),
            "scripts/__init__.py": TemplateGenerator.generate_init_file("Maintenance scripts."),
            "scripts/seed.py": self.generate_seed(),
        }
        logger.info(
            "AuthTemplateGenerator produced %d file(s); login field %r.",
            len(files),
            self.login_wire,
        )
        return files


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "DEFAULT_SEED_USERS",
    "AuthTemplateGenerator",
]

logger.debug("schemagen.auth_templates loaded: %d public symbols.", len(__all__))
