"""
tests/test_templates.py
Unit tests for schemagen.templates (TemplateGenerator).

Tests cover:
- SQLAlchemy model generation (columns, enums, FKs, join tables, relationships)
- Pydantic Create / Update / Read generation and wire aliases
- CRUD service and router generation, including per-entity auth policies
- Config, database, errors, middleware, rate limit and main modules
- Full generate_all pipeline
- Code correctness (valid Python syntax via ast.parse)
"""

from __future__ import annotations

import ast
from typing import Any, Dict

import pytest

from schemagen.relations import resolve_project
from schemagen.templates import (
    TemplateGenerator,
    format_call,
    module_name,
    render_imports,
    route_tag,
    router_import_line,
    table_name,
)

from tests.conftest import build_project


def _generator(raw: Dict[str, Any]) -> TemplateGenerator:
    return TemplateGenerator(resolve_project(build_project(raw)))


def _is_valid_python(code: str, filename: str = "<generated>") -> bool:
    """Check if a string of Python code is syntactically valid."""
    try:
        ast.parse(code, filename=filename)
        return True
    except SyntaxError:
        return False


# ===========================================================================
# Naming helpers
# ===========================================================================


class TestNaming:
    """Names shared by every synthesizer."""

    def test_table_name(self) -> None:
        assert table_name("BlogPost") == "blog_posts"
        assert table_name("Category") == "categories"

    def test_route_tag(self) -> None:
        assert route_tag("BlogPost") == "blog-posts"

    def test_module_name(self) -> None:
        assert module_name("BlogPost") == "blog_post"

    def test_router_import_line(self) -> None:
        assert router_import_line("BlogPost") == (
            "from app.routers.blog_post import router as blog_post_router"
        )

    def test_render_imports_groups(self) -> None:
        lines = render_imports({
            "__future__": {"annotations"},
            "typing": {"List"},
            "fastapi": {"FastAPI"},
            "app.models": {"Post"},
        })
        assert lines == [
            "from __future__ import annotations",
            "",
            "from typing import List",
            "",
            "from fastapi import FastAPI",
            "",
            "from app.models import Post",
        ]

    def test_format_call_wraps_long_calls(self) -> None:
        assert format_call("f", ["a", "b"]) == ["f(a, b)"]
        wrapped = format_call("f", ["x" * 60, "y" * 60], "    ")
        assert wrapped[0] == "    f("
        assert wrapped[-1] == "    )"
        assert len(wrapped) == 4


# ===========================================================================
# Models
# ===========================================================================


class TestModelGeneration:
    """Tests for app/models.py."""

    def test_models_are_valid_python(self, shop_schema_dict: Dict[str, Any]) -> None:
        assert _is_valid_python(_generator(shop_schema_dict).generate_models())

    def test_one_class_per_entity(self, shop_schema_dict: Dict[str, Any]) -> None:
        code = _generator(shop_schema_dict).generate_models()
        for name, table in [("Category", "categories"), ("Product", "products"), ("Tag", "tags")]:
            assert f"class {name}(Base):" in code
            assert f'__tablename__ = "{table}"' in code

    def test_required_and_optional_columns(self, shop_schema_dict: Dict[str, Any]) -> None:
        code = _generator(shop_schema_dict).generate_models()
        assert "price: Mapped[float] = mapped_column(Float, nullable=False)" in code
        assert "summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)" in code

    def test_unique_and_index_flags(self, shop_schema_dict: Dict[str, Any]) -> None:
        code = _generator(shop_schema_dict).generate_models()
        assert "label: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)" in code
        assert "name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)" in code

    def test_enum_class_and_default(self, shop_schema_dict: Dict[str, Any]) -> None:
        code = _generator(shop_schema_dict).generate_models()
        assert "class ProductStatus(str, enum.Enum):" in code
        assert 'RETIRED = "retired"' in code
        assert "default=ProductStatus.DRAFT" in code
        assert "values_callable=_enum_values" in code

    def test_foreign_key_with_on_delete(self, shop_schema_dict: Dict[str, Any]) -> None:
        code = _generator(shop_schema_dict).generate_models()
        assert 'ForeignKey("categories.id", ondelete="SET NULL")' in code
        assert "category_id: Mapped[Optional[int]]" in code

    def test_association_table(self, shop_schema_dict: Dict[str, Any]) -> None:
        code = _generator(shop_schema_dict).generate_models()
        assert "product_tags = Table(" in code
        assert 'Column("product_id", ForeignKey("products.id", ondelete="CASCADE")' in code
        assert "secondary=product_tags" in code

    def test_relationship_sides(self, blog_schema_dict: Dict[str, Any]) -> None:
        code = _generator(blog_schema_dict).generate_models()
        assert "posts: Mapped[List[Post]] = relationship(" in code
        assert 'back_populates="user"' in code
        assert "user: Mapped[Optional[User]] = relationship(" in code
        assert 'foreign_keys="Post.author_id"' in code
        assert 'cascade="all"' in code

    def test_reserved_attribute_keeps_column_name(self, schema_dict: Dict[str, Any]) -> None:
        code = _generator(schema_dict).generate_models()
        assert "metadata_: Mapped[Optional[Dict[str, Any]]] = mapped_column(" in code
        assert '"metadata"' in code
        assert _is_valid_python(code)

    def test_generated_columns_always_present(self, minimal_schema_dict: Dict[str, Any]) -> None:
        code = _generator(minimal_schema_dict).generate_models()
        assert "id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)" in code
        assert "created_at: Mapped[datetime]" in code
        assert "onupdate=func.now()" in code

    def test_password_hash_only_on_principal(self, auth_schema_dict: Dict[str, Any]) -> None:
        code = _generator(auth_schema_dict).generate_models()
        assert code.count("password_hash: Mapped[str]") == 1

    def test_shadowing_field_is_left_out(self, minimal_schema_dict: Dict[str, Any]) -> None:
        minimal_schema_dict["entities"][0]["fields"].append({"name": "createdAt", "type": "string"})
        code = _generator(minimal_schema_dict).generate_models()
        assert code.count("created_at: Mapped") == 1


# ===========================================================================
# Schemas
# ===========================================================================


class TestSchemaGeneration:
    """Tests for app/schemas/<entity>.py."""

    def test_three_models_per_entity(self, blog_schema_dict: Dict[str, Any]) -> None:
        gen = _generator(blog_schema_dict)
        code = gen.generate_schemas(gen.project.get_entity("Post"))
        assert _is_valid_python(code)
        for suffix in ("Create", "Update", "Read"):
            assert f"class Post{suffix}(BaseModel):" in code

    def test_fk_field_uses_wire_alias(self, blog_schema_dict: Dict[str, Any]) -> None:
        gen = _generator(blog_schema_dict)
        code = gen.generate_schemas(gen.project.get_entity("Post"))
        assert 'alias="authorId"' in code
        assert 'created_at: datetime = Field(..., alias="createdAt")' in code

    def test_required_string_constraints(self, blog_schema_dict: Dict[str, Any]) -> None:
        gen = _generator(blog_schema_dict)
        code = gen.generate_schemas(gen.project.get_entity("Post"))
        assert "title: str = Field(..., min_length=1, max_length=255)" in code
        assert "title: Optional[str] = Field(default=None, max_length=255)" in code

    def test_password_only_on_principal_create(self, auth_schema_dict: Dict[str, Any]) -> None:
        gen = _generator(auth_schema_dict)
        user_code = gen.generate_schemas(gen.project.get_entity("User"))
        post_code = gen.generate_schemas(gen.project.get_entity("Post"))
        assert user_code.count("password: str") == 1
        create_block = user_code.split("class UserUpdate")[0]
        assert "password: str = Field(..., min_length=8, max_length=72)" in create_block
        assert "password" not in post_code

    def test_read_model_from_attributes(self, minimal_schema_dict: Dict[str, Any]) -> None:
        gen = _generator(minimal_schema_dict)
        code = gen.generate_schemas(gen.project.entities[0])
        assert "from_attributes=True" in code
        assert 'extra="forbid"' in code

    def test_json_default_factory(self, minimal_schema_dict: Dict[str, Any]) -> None:
        minimal_schema_dict["entities"][0]["fields"].append(
            {"name": "extra", "type": "json", "default": "{}"}
        )
        gen = _generator(minimal_schema_dict)
        code = gen.generate_schemas(gen.project.entities[0])
        assert "default_factory=lambda: {}" in code
        assert _is_valid_python(code)


# ===========================================================================
# Services and routers
# ===========================================================================


class TestServiceAndRouterGeneration:
    """Tests for app/services and app/routers."""

    def test_service_operations(self, minimal_schema_dict: Dict[str, Any]) -> None:
        gen = _generator(minimal_schema_dict)
        code = gen.generate_service(gen.project.entities[0])
        assert _is_valid_python(code)
        for method in ("create", "list_all", "get", "update", "delete"):
            assert f"def {method}(self" in code
        assert 'raise NotFoundError("Item", record_id)' in code
        assert "hash_password" not in code

    def test_principal_service_hashes_password(self, auth_schema_dict: Dict[str, Any]) -> None:
        gen = _generator(auth_schema_dict)
        code = gen.generate_service(gen.project.get_entity("User"))
        assert 'data["password_hash"] = hash_password(data.pop("password"))' in code
        assert "def get_by_login(self, value: str)" in code
        assert "User.email == value" in code

    def test_router_has_five_routes(self, minimal_schema_dict: Dict[str, Any]) -> None:
        gen = _generator(minimal_schema_dict)
        code = gen.generate_router(gen.project.entities[0])
        assert _is_valid_python(code)
        assert 'router = APIRouter(prefix="/items", tags=["items"])' in code
        assert code.count("@router.") == 5
        assert "status_code=status.HTTP_201_CREATED" in code
        assert "status_code=status.HTTP_204_NO_CONTENT" in code

    def test_without_auth_every_route_is_public(self, blog_schema_dict: Dict[str, Any]) -> None:
        gen = _generator(blog_schema_dict)
        code = gen.generate_router(gen.project.get_entity("Post"))
        assert "get_current_user" not in code
        assert "Authorization policy: public." in code

    @pytest.mark.parametrize(
        "entity, guarded",
        [("Post", 3), ("Tag", 0), ("Comment", 5)],
    )
    def test_policy_guards_routes(
        self, schema_dict: Dict[str, Any], entity: str, guarded: int
    ) -> None:
        gen = _generator(schema_dict)
        code = gen.generate_router(gen.project.get_entity(entity))
        assert code.count("dependencies=[Depends(get_current_user)]") == guarded
        assert _is_valid_python(code)


# ===========================================================================
# Application modules
# ===========================================================================


class TestApplicationModules:
    """config, database, errors, middleware, rate limit and main."""

    def test_config_defaults(self, shop_schema_dict: Dict[str, Any]) -> None:
        code = _generator(shop_schema_dict).generate_config()
        assert _is_valid_python(code)
        assert 'os.getenv("DATABASE_URL", "sqlite:///./app.db")' in code
        assert 'int(os.getenv("PORT", "3000"))' in code
        assert "JWT_SECRET" not in code

    def test_config_with_auth(self, auth_schema_dict: Dict[str, Any]) -> None:
        code = _generator(auth_schema_dict).generate_config()
        assert 'os.getenv("JWT_SECRET", "change-me-in-production")' in code
        assert 'os.getenv("JWT_EXPIRES_MINUTES", "15")' in code
        assert 'os.getenv("JWT_REFRESH_EXPIRES_DAYS", "7")' in code

    def test_database_module(self, minimal_schema_dict: Dict[str, Any]) -> None:
        code = _generator(minimal_schema_dict).generate_database()
        assert _is_valid_python(code)
        assert "class Base(DeclarativeBase):" in code
        assert "def get_db() -> Iterator[Session]:" in code
        assert "PRAGMA foreign_keys=ON" in code

    def test_errors_module(self, minimal_schema_dict: Dict[str, Any]) -> None:
        code = _generator(minimal_schema_dict).generate_errors()
        assert _is_valid_python(code)
        assert "HTTP_404_NOT_FOUND" in code
        assert "HTTP_409_CONFLICT" in code
        assert "HTTP_400_BAD_REQUEST" in code

    def test_rate_limit_expression(self, minimal_schema_dict: Dict[str, Any]) -> None:
        minimal_schema_dict["settings"] = {"rateLimitMax": 10, "rateLimitTtl": 30}
        gen = _generator(minimal_schema_dict)
        assert 'DEFAULT_LIMIT = "10 per 30 seconds"' in gen.generate_rate_limit()

    def test_main_wires_each_router_once(self, schema_dict: Dict[str, Any]) -> None:
        code = _generator(schema_dict).generate_main()
        assert _is_valid_python(code)
        for entity in ("user", "post", "tag", "comment"):
            line = router_import_line(entity.title())
            assert code.count(line) == 1
            assert code.count(f"app.include_router({entity}_router, prefix=API_PREFIX)") == 1
        assert "app.include_router(auth_router, prefix=API_PREFIX)" in code
        assert "app.add_middleware(SecurityHeadersMiddleware)" in code
        assert "app.add_middleware(SlowAPIMiddleware)" in code

    def test_main_without_optional_features(self, minimal_schema_dict: Dict[str, Any]) -> None:
        minimal_schema_dict["settings"] = {
            "enableSwagger": False,
            "enableCors": False,
            "enableHelmet": False,
            "enableRateLimit": False,
        }
        code = _generator(minimal_schema_dict).generate_main()
        assert "docs_url=None," in code
        assert "CORSMiddleware" not in code
        assert "SecurityHeadersMiddleware" not in code
        assert "slowapi" not in code
        assert "auth_router" not in code

    def test_openapi_tags_describe_policies(self, schema_dict: Dict[str, Any]) -> None:
        code = _generator(schema_dict).generate_main()
        assert '"name": "tags"' in code
        assert "All operations are public." in code
        assert "All operations require a bearer token." in code


# ===========================================================================
# generate_all
# ===========================================================================


class TestGenerateAll:
    """Tests for the full TemplateGenerator.generate_all pipeline."""

    def test_file_set(self, minimal_schema_dict: Dict[str, Any]) -> None:
        files = _generator(minimal_schema_dict).generate_all()
        assert {
            "app/__init__.py",
            "app/config.py",
            "app/database.py",
            "app/errors.py",
            "app/models.py",
            "app/main.py",
            "app/middleware.py",
            "app/rate_limit.py",
            "app/schemas/item.py",
            "app/services/item.py",
            "app/routers/item.py",
        } <= set(files)

    def test_optional_modules_follow_settings(self, shop_schema_dict: Dict[str, Any]) -> None:
        files = _generator(shop_schema_dict).generate_all()
        assert "app/rate_limit.py" not in files
        assert "app/middleware.py" in files

    def test_all_files_are_valid_python(self, schema_dict: Dict[str, Any]) -> None:
        for path, code in _generator(schema_dict).generate_all().items():
            assert _is_valid_python(code, path), f"Syntax error in {path}"

    def test_is_deterministic(self, schema_dict: Dict[str, Any]) -> None:
        assert _generator(schema_dict).generate_all() == _generator(schema_dict).generate_all()
