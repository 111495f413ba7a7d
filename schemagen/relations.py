# File: schemagen/relations.py
"""
schemagen - Relation Resolver
=============================
Turns declared relations into explicit structure:

- :func:`compute_fk_fields` decides which foreign-key fields each entity
  carries.  Two ordered phases: FKs owned by the entity's own one-to-one
  relations, then FKs implied by other entities' relations that target it.
  A running name set seeded with the declared fields keeps every FK unique
  and lets declared fields win.  An entity that declares any relation back
  to a source entity never receives an inverse FK from that source.
- :func:`resolve_project` pairs relations with their back-references and
  decides, per link, where the FK column lives.  The persistence
  synthesizer uses the result to emit both sides of every relationship.

The output is transient: it is recomputed from the validated ``Project``
on every generation run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

from schemagen.models import Entity, OnDeleteAction, Project, Relation, RelationType
from schemagen.utils import lower_first, safe_identifier, to_plural, to_snake_case, upper_first

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.relations")


# ---------------------------------------------------------------------------
# Result records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ResolvedFkField:
    """A derived foreign-key field: ``name`` references ``target_entity_name``."""

    name: str
    target_entity_name: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "targetEntityName": self.target_entity_name}


@dataclass(frozen=True, slots=True)
class RelationSide:
    """One ``relationship()`` attribute on one entity's model."""

    entity: str
    attribute: str
    target: str
    uselist: bool
    back_populates: Optional[str]
    fk_entity: Optional[str]
    fk_field: Optional[str]
    secondary: Optional[str]
    on_delete: str
    synthesized: bool
    remote_side: bool = False

    @property
    def holds_fk(self) -> bool:
        return self.fk_entity == self.entity

    @property
    def is_self_referential(self) -> bool:
        return self.entity == self.target

    @property
    def is_to_one(self) -> bool:
        return not self.uselist


@dataclass(frozen=True, slots=True)
class AssociationTable:
    """Join table backing a many-to-many link."""

    name: str
    left_entity: str
    right_entity: str

    @property
    def left_column(self) -> str:
        return f"{to_snake_case(self.left_entity)}_id"

    @property
    def right_column(self) -> str:
        return f"{to_snake_case(self.right_entity)}_id"


@dataclass(slots=True)
class ResolvedSchema:
    """Everything the synthesizers need beyond the ``Project`` itself."""

    project: Project
    fk_fields: Dict[str, List[ResolvedFkField]] = field(default_factory=dict)
    relation_sides: Dict[str, List[RelationSide]] = field(default_factory=dict)
    association_tables: List[AssociationTable] = field(default_factory=list)
    # (entity, fk field) -> (target entity, on-delete action)
    fk_targets: Dict[Tuple[str, str], Tuple[str, str]] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    def fks_for(self, entity_name: str) -> List[ResolvedFkField]:
        return self.fk_fields.get(entity_name, [])

    def sides_for(self, entity_name: str) -> List[RelationSide]:
        return self.relation_sides.get(entity_name, [])

    def fk_target(self, entity_name: str, field_name: str) -> Optional[Tuple[str, str]]:
        return self.fk_targets.get((entity_name, field_name))


# ---------------------------------------------------------------------------
# Foreign-key field computation
# ---------------------------------------------------------------------------


def _has_back_reference(entity: Entity, source_name: str) -> bool:
    return any(r.target == source_name for r in entity.relations)


def compute_fk_fields(entity: Entity, project: Project) -> List[ResolvedFkField]:
    """
    Compute the foreign-key fields *entity* carries.

    Phase 1: the entity's own one-to-one relations with an explicit
    ``foreign_key``.  Phase 2: one-to-many relations of other entities
    that target this one, and their one-to-one relations without an
    explicit ``foreign_key``; skipped entirely for a source entity this
    entity already points back to.
    """
    fk_fields: List[ResolvedFkField] = []
    assigned: Set[str] = {f.name for f in entity.fields}

    # Phase 1: owned relations
    for relation in entity.relations:
        if relation.type != RelationType.ONE_TO_ONE or not relation.foreign_key:
            continue
        if relation.foreign_key in assigned:
            continue
        fk_fields.append(ResolvedFkField(relation.foreign_key, relation.target))
        assigned.add(relation.foreign_key)

    # Phase 2: inverse relations
    for source in project.entities:
        if source.name == entity.name:
            continue
        for relation in source.relations:
            if relation.target != entity.name:
                continue
            if _has_back_reference(entity, source.name):
                continue

            fk_name: Optional[str] = None
            if relation.type == RelationType.ONE_TO_MANY:
                fk_name = relation.foreign_key or f"{lower_first(source.name)}Id"
            elif relation.type == RelationType.ONE_TO_ONE and not relation.foreign_key:
                fk_name = f"{lower_first(source.name)}Id"

            if fk_name is None or fk_name in assigned:
                continue
            fk_fields.append(ResolvedFkField(fk_name, source.name))
            assigned.add(fk_name)

    logger.debug(
        "compute_fk_fields(%s): %s", entity.name, [f.name for f in fk_fields]
    )
    return fk_fields


def resolve_fk_map(project: Project) -> Dict[str, List[ResolvedFkField]]:
    """Run :func:`compute_fk_fields` for every entity, in declaration order."""
    return {e.name: compute_fk_fields(e, project) for e in project.entities}


# ---------------------------------------------------------------------------
# Relationship links
# ---------------------------------------------------------------------------

_RelKey = Tuple[str, int]


def _fk_location(source: Entity, relation: Relation) -> Optional[Tuple[str, str]]:
    """(entity holding the FK, FK field name) implied by one relation."""
    if relation.type == RelationType.ONE_TO_MANY:
        return relation.target, relation.foreign_key or f"{lower_first(source.name)}Id"
    if relation.type == RelationType.ONE_TO_ONE:
        if relation.foreign_key:
            return source.name, relation.foreign_key
        return relation.target, f"{lower_first(source.name)}Id"
    return None


def _is_many_to_many(relation: Relation) -> bool:
    return relation.type == RelationType.MANY_TO_MANY


class _LinkBuilder:
    """Mutable scratch state for a single :func:`resolve_project` call."""

    def __init__(self, project: Project, fk_map: Dict[str, List[ResolvedFkField]]) -> None:
        self.project: Project = project
        self.fk_map: Dict[str, List[ResolvedFkField]] = fk_map
        self.resolved: ResolvedSchema = ResolvedSchema(project=project, fk_fields=fk_map)
        self.taken: Dict[str, Set[str]] = {}
        for entity in project.entities:
            names: Set[str] = {"id", "created_at", "updated_at", "password_hash"}
            names |= {safe_identifier(f.name) for f in entity.fields}
            names |= {safe_identifier(f.name) for f in fk_map.get(entity.name, [])}
            names |= {safe_identifier(r.name) for r in entity.relations}
            self.taken[entity.name] = names
            self.resolved.relation_sides[entity.name] = []

    # -- helpers ------------------------------------------------------------

    def has_column(self, location: Tuple[str, str]) -> bool:
        entity_name, field_name = location
        entity: Optional[Entity] = self.project.get_entity(entity_name)
        if entity is None:
            return False
        if entity.get_field(field_name) is not None:
            return True
        return any(f.name == field_name for f in self.fk_map.get(entity_name, []))

    def inverse_name(self, owner: str, base: str, relation: Relation) -> str:
        taken: Set[str] = self.taken[owner]
        candidate: str = base
        if safe_identifier(candidate) in taken:
            candidate = f"{base}{upper_first(relation.name)}"
        counter: int = 2
        stem: str = candidate
        while safe_identifier(candidate) in taken:
            candidate = f"{stem}{counter}"
            counter += 1
        taken.add(safe_identifier(candidate))
        return candidate

    def add_side(self, side: RelationSide) -> None:
        self.resolved.relation_sides[side.entity].append(side)

    def record_fk(self, location: Tuple[str, str], referenced: str, on_delete: str) -> None:
        self.resolved.fk_targets.setdefault(location, (referenced, on_delete))

    def skip(self, message: str) -> None:
        logger.warning("%s", message)
        self.resolved.skipped.append(message)

    # -- link kinds ---------------------------------------------------------

    def column_link(
        self,
        source: Entity,
        relation: Relation,
        partner: Optional[Tuple[Entity, Relation]],
    ) -> None:
        location: Optional[Tuple[str, str]] = _fk_location(source, relation)
        owner: Relation = relation
        if location is None or not self.has_column(location):
            location = None
            if partner is not None:
                alt: Optional[Tuple[str, str]] = _fk_location(partner[0], partner[1])
                if alt is not None and self.has_column(alt):
                    location = alt
                    owner = partner[1]
        if location is None:
            self.skip(
                f"Relation {source.name}.{relation.name} has no foreign-key column "
                f"after back-reference suppression; relationship not emitted."
            )
            return

        fk_entity, fk_field = location
        referenced: str = relation.target if fk_entity == source.name else source.name
        on_delete: str = OnDeleteAction(owner.on_delete).value
        self.record_fk(location, referenced, on_delete)

        def side(
            entity: str, attribute: str, target: str, uselist: bool,
            back: Optional[str], remote: bool, synthesized: bool,
        ) -> RelationSide:
            return RelationSide(
                entity=entity, attribute=attribute, target=target, uselist=uselist,
                back_populates=back, fk_entity=fk_entity, fk_field=fk_field,
                secondary=None, on_delete=on_delete, synthesized=synthesized,
                remote_side=remote,
            )

        if source.name == relation.target:
            self._self_link(source, relation, partner, owner, side)
            return

        if partner is None:
            inverse: str = self.inverse_name(relation.target, lower_first(source.name), relation)
            forward_list: bool = (
                relation.type == RelationType.ONE_TO_MANY and fk_entity != source.name
            )
            self.add_side(side(source.name, relation.name, relation.target,
                               forward_list, inverse, False, False))
            self.add_side(side(relation.target, inverse, source.name,
                               False, relation.name, False, True))
            return

        other_entity, other_relation = partner
        self.add_side(side(
            source.name, relation.name, relation.target,
            source.name != fk_entity and relation.type == RelationType.ONE_TO_MANY,
            other_relation.name, False, False,
        ))
        self.add_side(side(
            other_entity.name, other_relation.name, source.name,
            other_entity.name != fk_entity
            and other_relation.type == RelationType.ONE_TO_MANY,
            relation.name, False, False,
        ))

    def _self_link(
        self,
        entity: Entity,
        relation: Relation,
        partner: Optional[Tuple[Entity, Relation]],
        owner: Relation,
        side: Callable[..., RelationSide],
    ) -> None:
        # Both sides live on one table: a declared one-to-many is the list
        # side, the many-to-one side needs ``remote_side``.
        owner_is_list: bool = owner.type == RelationType.ONE_TO_MANY
        if partner is None:
            self.add_side(side(entity.name, relation.name, entity.name,
                               owner_is_list, None, not owner_is_list, False))
            return
        other: Relation = partner[1] if owner is relation else relation
        if owner_is_list:
            other_list: bool = False
            other_remote: bool = True
        else:
            other_list = other.type == RelationType.ONE_TO_MANY
            other_remote = False
        self.add_side(side(entity.name, owner.name, entity.name,
                           owner_is_list, other.name, not owner_is_list, False))
        self.add_side(side(entity.name, other.name, entity.name,
                           other_list, owner.name, other_remote, False))

    def association_link(
        self,
        source: Entity,
        relation: Relation,
        partner: Optional[Tuple[Entity, Relation]],
    ) -> None:
        if source.name == relation.target:
            self.skip(
                f"Self-referential many-to-many relation {source.name}.{relation.name} "
                f"is not supported; relationship not emitted."
            )
            return
        table: AssociationTable = AssociationTable(
            name=f"{to_snake_case(source.name)}_{to_snake_case(relation.name)}",
            left_entity=source.name,
            right_entity=relation.target,
        )
        self.resolved.association_tables.append(table)

        if partner is None:
            back: str = self.inverse_name(
                relation.target, to_plural(lower_first(source.name)), relation
            )
            synthesized: bool = True
        else:
            back = partner[1].name
            synthesized = False

        self.add_side(RelationSide(
            entity=source.name, attribute=relation.name, target=relation.target,
            uselist=True, back_populates=back, fk_entity=None, fk_field=None,
            secondary=table.name, on_delete=OnDeleteAction.CASCADE.value,
            synthesized=False,
        ))
        self.add_side(RelationSide(
            entity=relation.target, attribute=back, target=source.name,
            uselist=True, back_populates=relation.name, fk_entity=None, fk_field=None,
            secondary=table.name, on_delete=OnDeleteAction.CASCADE.value,
            synthesized=synthesized,
        ))


def _pair_relations(project: Project) -> Dict[_RelKey, Optional[_RelKey]]:
    """
    Pair every relation with the first unpaired back-reference of the same
    family (many-to-many with many-to-many, the rest together).
    """
    pairs: Dict[_RelKey, Optional[_RelKey]] = {}
    for entity in project.entities:
        for index, relation in enumerate(entity.relations):
            key: _RelKey = (entity.name, index)
            if key in pairs:
                continue
            target: Optional[Entity] = project.get_entity(relation.target)
            partner: Optional[_RelKey] = None
            if target is not None:
                for other_index, other in enumerate(target.relations):
                    other_key: _RelKey = (target.name, other_index)
                    if other_key == key or other_key in pairs:
                        continue
                    if other.target != entity.name:
                        continue
                    if _is_many_to_many(other) != _is_many_to_many(relation):
                        continue
                    partner = other_key
                    break
            pairs[key] = partner
            if partner is not None:
                pairs[partner] = key
    return pairs


def resolve_project(project: Project) -> ResolvedSchema:
    """
    Resolve FK fields and relationship links for a validated project.

    Links whose FK column was suppressed and self-referential
    many-to-many links are skipped and listed in ``skipped``.
    """
    fk_map: Dict[str, List[ResolvedFkField]] = resolve_fk_map(project)
    builder: _LinkBuilder = _LinkBuilder(project, fk_map)
    pairs: Dict[_RelKey, Optional[_RelKey]] = _pair_relations(project)
    done: Set[_RelKey] = set()

    for entity in project.entities:
        for index, relation in enumerate(entity.relations):
            key: _RelKey = (entity.name, index)
            if key in done:
                continue
            partner_key: Optional[_RelKey] = pairs.get(key)
            partner: Optional[Tuple[Entity, Relation]] = None
            if partner_key is not None:
                partner_entity: Optional[Entity] = project.get_entity(partner_key[0])
                if partner_entity is not None:
                    partner = (partner_entity, partner_entity.relations[partner_key[1]])
                done.add(partner_key)
            done.add(key)

            if _is_many_to_many(relation):
                builder.association_link(entity, relation, partner)
            else:
                builder.column_link(entity, relation, partner)

    # FK columns no link claimed still reference their source entity
    for entity_name, fks in fk_map.items():
        for fk in fks:
            builder.record_fk((entity_name, fk.name), fk.target_entity_name, OnDeleteAction.CASCADE.value)

    logger.info(
        "Resolved %d FK field(s), %d relationship attribute(s), %d join table(s).",
        sum(len(v) for v in fk_map.values()),
        sum(len(v) for v in builder.resolved.relation_sides.values()),
        len(builder.resolved.association_tables),
    )
    return builder.resolved


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ResolvedFkField",
    "RelationSide",
    "AssociationTable",
    "ResolvedSchema",
    "compute_fk_fields",
    "resolve_fk_map",
    "resolve_project",
]

logger.debug("schemagen.relations loaded: %d public symbols.", len(__all__))
