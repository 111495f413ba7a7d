"""
tests/conftest.py
Shared fixtures for the schemagen test suite.

Raw project documents are plain dicts, deep-copied per test so each test
can mutate freely.  Generated services are written to ``tmp_path`` and
imported from there; no external mocking libraries are used.
"""

from __future__ import annotations

import copy
import importlib
import pathlib
import sys
from typing import Any, Callable, Dict, Iterator

import pytest
import yaml

from schemagen.generator import generate
from schemagen.models import Project


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

ROOT_DIR: pathlib.Path = pathlib.Path(__file__).resolve().parent.parent
SCHEMA_EXAMPLE_PATH: pathlib.Path = ROOT_DIR / "schema_example.yaml"


def build_project(raw: Dict[str, Any]) -> Project:
    """Parse a wire document without the cross-field pass."""
    return Project.model_validate(raw)


# ---------------------------------------------------------------------------
# The blog-api example document
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def raw_schema_dict() -> Dict[str, Any]:
    """schema_example.yaml parsed once; never mutate it, use ``schema_dict``."""
    data = yaml.safe_load(SCHEMA_EXAMPLE_PATH.read_text(encoding="utf-8"))
    assert isinstance(data, dict), f"{SCHEMA_EXAMPLE_PATH.name} must hold a mapping"
    return data


@pytest.fixture()
def schema_dict(raw_schema_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Per-test copy of the example document."""
    return copy.deepcopy(raw_schema_dict)


@pytest.fixture()
def schema_yaml_path(schema_dict: Dict[str, Any], tmp_path: pathlib.Path) -> pathlib.Path:
    """The example document saved as YAML under ``tmp_path``."""
    path = tmp_path / "schema.yaml"
    path.write_text(yaml.safe_dump(schema_dict, sort_keys=False), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Minimal / scenario fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def minimal_schema_dict() -> Dict[str, Any]:
    """Smallest valid project: one entity, one field, defaults everywhere else."""
    return {
        "name": "mini-app",
        "entities": [
            {"name": "Item", "fields": [{"name": "title", "type": "string"}]},
        ],
    }


@pytest.fixture()
def blog_schema_dict() -> Dict[str, Any]:
    """User has many Posts through ``authorId``; no modules."""
    return {
        "name": "blog-api",
        "entities": [
            {
                "name": "User",
                "fields": [{"name": "email", "type": "string", "unique": True}],
                "relations": [
                    {
                        "name": "posts",
                        "type": "one-to-many",
                        "target": "Post",
                        "foreignKey": "authorId",
                    }
                ],
            },
            {"name": "Post", "fields": [{"name": "title", "type": "string"}]},
        ],
    }


@pytest.fixture()
def auth_schema_dict(blog_schema_dict: Dict[str, Any]) -> Dict[str, Any]:
    """The blog project with auth-jwt, SQLite and no rate limiting."""
    raw = copy.deepcopy(blog_schema_dict)
    raw["modules"] = [{"name": "auth-jwt"}]
    raw["settings"] = {"database": "sqlite", "enableRateLimit": False}
    return raw


@pytest.fixture()
def shop_schema_dict() -> Dict[str, Any]:
    """Every field type, every relation type, SQLite, no auth."""
    return {
        "name": "shop-api",
        "description": "Catalogue service.",
        "entities": [
            {
                "name": "Category",
                "fields": [
                    {"name": "label", "type": "string", "unique": True},
                    {"name": "position", "type": "int", "default": 0},
                ],
                "relations": [
                    {
                        "name": "products",
                        "type": "one-to-many",
                        "target": "Product",
                        "foreignKey": "categoryId",
                        "onDelete": "SET_NULL",
                    }
                ],
            },
            {
                "name": "Product",
                "description": "Something for sale.",
                "fields": [
                    {"name": "name", "type": "string", "index": True},
                    {"name": "summary", "type": "text", "required": False},
                    {"name": "price", "type": "float"},
                    {"name": "inStock", "type": "boolean", "default": True},
                    {
                        "name": "status",
                        "type": "enum",
                        "enumValues": ["draft", "live", "retired"],
                        "default": "draft",
                    },
                    {"name": "attributes", "type": "json", "required": False},
                    {"name": "sku", "type": "uuid", "required": False},
                    {"name": "launchedAt", "type": "datetime", "required": False},
                ],
                "relations": [
                    {"name": "tags", "type": "many-to-many", "target": "Tag"},
                ],
            },
            {"name": "Tag", "fields": [{"name": "label", "type": "string"}]},
        ],
        "settings": {"database": "sqlite", "enableRateLimit": False, "docker": False},
    }


@pytest.fixture()
def output_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    """An output directory that does not exist yet."""
    return tmp_path / "generated"


# ---------------------------------------------------------------------------
# Generated-service fixture
# ---------------------------------------------------------------------------

_GENERATED_PACKAGES = ("app", "scripts")


def _forget_generated_modules() -> None:
    for name in list(sys.modules):
        if name.split(".")[0] in _GENERATED_PACKAGES:
            del sys.modules[name]


@pytest.fixture()
def load_generated_app(
    tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> Iterator[Callable[[Dict[str, Any]], Any]]:
    """
    Factory: generate *raw*, write it below ``tmp_path`` and import its
    ``app.main`` module against a fresh SQLite file.
    """

    def _load(raw: Dict[str, Any]) -> Any:
        output = generate(raw)
        assert output.ok, [e.to_dict() for e in output.errors]
        root = tmp_path / "service"
        for rel_path, content in output.files.items():
            target = root / rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'service.db'}")
        monkeypatch.setenv("CORS_ORIGINS", "http://localhost:5173")
        monkeypatch.syspath_prepend(str(root))
        _forget_generated_modules()
        importlib.invalidate_caches()
        return importlib.import_module("app.main")

    yield _load
    _forget_generated_modules()
