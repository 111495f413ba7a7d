"""
tests/test_relations.py
Unit tests for schemagen.relations.

Tests cover:
- Owned and inverse foreign-key derivation and naming
- Deduplication against declared fields
- Back-reference suppression, including the two-relations edge case
- Relationship sides, association tables and referential actions
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List

from schemagen.relations import (
    ResolvedFkField,
    compute_fk_fields,
    resolve_fk_map,
    resolve_project,
)

from tests.conftest import build_project


def _fk_names(fks: List[ResolvedFkField]) -> List[str]:
    return [f.name for f in fks]


def _two_entity_project(
    left_relations: List[Dict[str, Any]],
    right_relations: List[Dict[str, Any]],
    right_fields: List[Dict[str, Any]] | None = None,
) -> Dict[str, Any]:
    return {
        "name": "rel-test",
        "entities": [
            {
                "name": "User",
                "fields": [{"name": "email", "type": "string"}],
                "relations": left_relations,
            },
            {
                "name": "Post",
                "fields": right_fields or [{"name": "title", "type": "string"}],
                "relations": right_relations,
            },
        ],
    }


# ===========================================================================
# compute_fk_fields
# ===========================================================================


class TestComputeFkFields:
    """FK derivation rules."""

    def test_one_to_many_puts_fk_on_many_side(self, blog_schema_dict: Dict[str, Any]) -> None:
        project = build_project(blog_schema_dict)
        user, post = project.entities
        assert compute_fk_fields(post, project) == [ResolvedFkField("authorId", "User")]
        assert compute_fk_fields(user, project) == []

    def test_back_reference_suppresses_inverse_fk(self, blog_schema_dict: Dict[str, Any]) -> None:
        blog_schema_dict["entities"][1]["relations"] = [
            {"name": "author", "type": "one-to-one", "target": "User", "foreignKey": "userId"}
        ]
        project = build_project(blog_schema_dict)
        post = project.get_entity("Post")
        assert compute_fk_fields(post, project) == [ResolvedFkField("userId", "User")]
        assert compute_fk_fields(project.get_entity("User"), project) == []

    def test_default_fk_name_from_source_entity(self) -> None:
        raw = _two_entity_project(
            [{"name": "posts", "type": "one-to-many", "target": "Post"}], []
        )
        project = build_project(raw)
        assert _fk_names(compute_fk_fields(project.get_entity("Post"), project)) == ["userId"]

    def test_one_to_one_without_fk_goes_to_target(self) -> None:
        raw = _two_entity_project(
            [{"name": "post", "type": "one-to-one", "target": "Post"}], []
        )
        project = build_project(raw)
        assert _fk_names(compute_fk_fields(project.get_entity("Post"), project)) == ["userId"]
        assert compute_fk_fields(project.get_entity("User"), project) == []

    def test_one_to_one_with_fk_stays_on_owner(self) -> None:
        raw = _two_entity_project(
            [{"name": "pinned", "type": "one-to-one", "target": "Post", "foreignKey": "pinnedId"}],
            [],
        )
        project = build_project(raw)
        assert compute_fk_fields(project.get_entity("User"), project) == [
            ResolvedFkField("pinnedId", "Post")
        ]
        assert compute_fk_fields(project.get_entity("Post"), project) == []

    def test_many_to_many_has_no_fk(self, shop_schema_dict: Dict[str, Any]) -> None:
        project = build_project(shop_schema_dict)
        assert compute_fk_fields(project.get_entity("Tag"), project) == []
        assert _fk_names(compute_fk_fields(project.get_entity("Product"), project)) == [
            "categoryId"
        ]

    def test_declared_field_is_not_duplicated(self, blog_schema_dict: Dict[str, Any]) -> None:
        blog_schema_dict["entities"][1]["fields"].append({"name": "authorId", "type": "int"})
        project = build_project(blog_schema_dict)
        assert compute_fk_fields(project.get_entity("Post"), project) == []

    def test_owned_fk_wins_over_inverse_of_same_name(self) -> None:
        raw = _two_entity_project(
            [{"name": "posts", "type": "one-to-many", "target": "Post", "foreignKey": "ownerId"}],
            [],
        )
        raw["entities"].append({
            "name": "Team",
            "fields": [{"name": "label", "type": "string"}],
        })
        raw["entities"][1]["relations"] = [
            {"name": "owner", "type": "one-to-one", "target": "Team", "foreignKey": "ownerId"}
        ]
        project = build_project(raw)
        # The owned one-to-one claims ownerId before User.posts is considered.
        assert compute_fk_fields(project.get_entity("Post"), project) == [
            ResolvedFkField("ownerId", "Team")
        ]

    def test_multiple_sources_each_add_an_fk(self) -> None:
        raw = {
            "name": "multi",
            "entities": [
                {
                    "name": "Author",
                    "fields": [{"name": "name", "type": "string"}],
                    "relations": [{"name": "books", "type": "one-to-many", "target": "Book"}],
                },
                {
                    "name": "Publisher",
                    "fields": [{"name": "name", "type": "string"}],
                    "relations": [{"name": "books", "type": "one-to-many", "target": "Book"}],
                },
                {"name": "Book", "fields": [{"name": "title", "type": "string"}]},
            ],
        }
        project = build_project(raw)
        assert compute_fk_fields(project.get_entity("Book"), project) == [
            ResolvedFkField("authorId", "Author"),
            ResolvedFkField("publisherId", "Publisher"),
        ]

    def test_fk_map_covers_every_entity(self, shop_schema_dict: Dict[str, Any]) -> None:
        fk_map = resolve_fk_map(build_project(shop_schema_dict))
        assert list(fk_map) == ["Category", "Product", "Tag"]

    def test_is_deterministic(self, schema_dict: Dict[str, Any]) -> None:
        first = resolve_fk_map(build_project(copy.deepcopy(schema_dict)))
        second = resolve_fk_map(build_project(copy.deepcopy(schema_dict)))
        assert first == second

    def test_to_dict_uses_wire_names(self) -> None:
        assert ResolvedFkField("authorId", "User").to_dict() == {
            "name": "authorId",
            "targetEntityName": "User",
        }


# ===========================================================================
# Back-reference edge case
# ===========================================================================


class TestBackReferenceEdgeCase:
    """Any relation back to the source suppresses the inverse FK, even an unrelated one."""

    def test_unrelated_back_reference_under_generates(self) -> None:
        raw = _two_entity_project(
            [{"name": "posts", "type": "one-to-many", "target": "Post", "foreignKey": "authorId"}],
            [{"name": "reviewer", "type": "one-to-one", "target": "User"}],
        )
        project = build_project(raw)
        resolved = resolve_project(project)
        assert resolved.fks_for("Post") == []
        assert resolved.fks_for("User") == []
        assert len(resolved.skipped) == 1
        assert "User.posts" in resolved.skipped[0]
        assert resolved.sides_for("User") == []


# ===========================================================================
# resolve_project
# ===========================================================================


class TestResolveProject:
    """Relationship sides and join tables."""

    def test_one_to_many_sides(self, blog_schema_dict: Dict[str, Any]) -> None:
        resolved = resolve_project(build_project(blog_schema_dict))
        (posts,) = resolved.sides_for("User")
        (inverse,) = resolved.sides_for("Post")
        assert posts.attribute == "posts"
        assert posts.uselist is True
        assert posts.back_populates == "user"
        assert posts.fk_entity == "Post"
        assert posts.fk_field == "authorId"
        assert inverse.attribute == "user"
        assert inverse.uselist is False
        assert inverse.synthesized is True
        assert inverse.holds_fk
        assert resolved.fk_target("Post", "authorId") == ("User", "CASCADE")

    def test_paired_relations_share_one_fk(self, blog_schema_dict: Dict[str, Any]) -> None:
        blog_schema_dict["entities"][1]["relations"] = [
            {"name": "author", "type": "one-to-one", "target": "User", "foreignKey": "userId"}
        ]
        resolved = resolve_project(build_project(blog_schema_dict))
        (posts,) = resolved.sides_for("User")
        (author,) = resolved.sides_for("Post")
        assert posts.fk_field == author.fk_field == "userId"
        assert posts.back_populates == "author"
        assert author.back_populates == "posts"
        assert posts.uselist is True
        assert author.uselist is False
        assert not author.synthesized
        assert resolved.skipped == []

    def test_on_delete_carried_to_fk_target(self, shop_schema_dict: Dict[str, Any]) -> None:
        resolved = resolve_project(build_project(shop_schema_dict))
        assert resolved.fk_target("Product", "categoryId") == ("Category", "SET_NULL")

    def test_many_to_many_association_table(self, shop_schema_dict: Dict[str, Any]) -> None:
        resolved = resolve_project(build_project(shop_schema_dict))
        (table,) = resolved.association_tables
        assert table.name == "product_tags"
        assert table.left_column == "product_id"
        assert table.right_column == "tag_id"
        tag_sides = resolved.sides_for("Tag")
        assert [s.attribute for s in tag_sides] == ["products"]
        assert tag_sides[0].secondary == "product_tags"
        assert tag_sides[0].uselist is True

    def test_inverse_name_avoids_declared_field(self, blog_schema_dict: Dict[str, Any]) -> None:
        blog_schema_dict["entities"][1]["fields"].append({"name": "user", "type": "string"})
        resolved = resolve_project(build_project(blog_schema_dict))
        (inverse,) = resolved.sides_for("Post")
        assert inverse.attribute == "userPosts"

    def test_self_referential_one_to_one(self) -> None:
        raw = {
            "name": "org",
            "entities": [{
                "name": "Employee",
                "fields": [{"name": "name", "type": "string"}],
                "relations": [{
                    "name": "manager",
                    "type": "one-to-one",
                    "target": "Employee",
                    "foreignKey": "managerId",
                }],
            }],
        }
        resolved = resolve_project(build_project(raw))
        assert resolved.fks_for("Employee") == [ResolvedFkField("managerId", "Employee")]
        (side,) = resolved.sides_for("Employee")
        assert side.is_self_referential
        assert side.remote_side is True
        assert side.uselist is False

    def test_self_many_to_many_is_skipped(self) -> None:
        raw = {
            "name": "social",
            "entities": [{
                "name": "Person",
                "fields": [{"name": "name", "type": "string"}],
                "relations": [{"name": "friends", "type": "many-to-many", "target": "Person"}],
            }],
        }
        resolved = resolve_project(build_project(raw))
        assert resolved.association_tables == []
        assert resolved.sides_for("Person") == []
        assert "Person.friends" in resolved.skipped[0]

    def test_reference_schema_resolves_without_skips(self, schema_dict: Dict[str, Any]) -> None:
        resolved = resolve_project(build_project(schema_dict))
        assert resolved.skipped == []
        assert resolved.fks_for("Post")
