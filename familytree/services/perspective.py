from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List

from sqlalchemy.ext.asyncio import AsyncSession

from familytree.models import Person, RelationType
from familytree.services import stores

logger = logging.getLogger(__name__)


@dataclass
class PerspectiveRelation:
    id: int                 # underlying edge id
    type: RelationType      # kind as experienced by the person whose view this is
    person_id: int          # the other participant
    from_member_id: int     # source of the underlying edge


def perspective_type(kind: RelationType) -> RelationType:
    """Fixed transform table, used for both sides of an edge."""
    kind = RelationType(kind)
    if kind is RelationType.parent:
        return RelationType.child
    if kind is RelationType.child:
        return RelationType.parent
    if kind is RelationType.spouse:
        return RelationType.spouse
    if kind is RelationType.sibling:
        return RelationType.sibling
    raise ValueError(f"Unknown relation type: {kind!r}")


def _edges_touching(person_id: int, edges: Iterable) -> list:
    return [e for e in edges if int(e.from_member_id) == person_id or int(e.to_member_id) == person_id]


def resolve_perspective(person_id: int, edges: Iterable) -> List[PerspectiveRelation]:
    """
    Deduplicated, person-centric view of `edges` for `person_id`.

    At most one relation per other person is returned. When a second edge to the
    same person shows up: a kept spouse/sibling relation stays; a kept parent/child
    relation is replaced only when this person is the source of the new edge.
    """
    pid = int(person_id)
    kept: List[PerspectiveRelation] = []
    index: Dict[int, int] = {}

    for e in _edges_touching(pid, edges):
        is_source = int(e.from_member_id) == pid
        other = int(e.to_member_id) if is_source else int(e.from_member_id)
        rel = PerspectiveRelation(
            id=int(e.id),
            type=perspective_type(e.relation_type),
            person_id=other,
            from_member_id=int(e.from_member_id),
        )
        pos = index.get(other)
        if pos is None:
            index[other] = len(kept)
            kept.append(rel)
            continue
        existing = kept[pos]
        if existing.type in (RelationType.spouse, RelationType.sibling):
            continue
        if rel.from_member_id == pid:
            kept[pos] = rel
    return kept


def resolve_all_perspectives(persons: Iterable[Person], edges: Iterable) -> Dict[int, List[PerspectiveRelation]]:
    edge_list = list(edges)
    return {int(p.id): resolve_perspective(int(p.id), edge_list) for p in persons}


async def load_perspective(db: AsyncSession, person_id: int) -> List[PerspectiveRelation]:
    """Re-fetch the person's edges and resolve them. Store errors propagate untouched."""
    await stores.get_person(db, person_id)
    try:
        edges = await stores.get_edges_for(db, person_id)
    except stores.StoreError:
        logger.exception("Failed to load relations for member %s", person_id)
        raise
    return resolve_perspective(person_id, edges)


async def load_members_with_relations(db: AsyncSession) -> list[tuple[Person, List[PerspectiveRelation]]]:
    try:
        persons = await stores.get_all_persons(db)
        edges = await stores.get_all_edges(db)
    except stores.StoreError:
        logger.exception("Failed to load family members with relations")
        raise
    views = resolve_all_perspectives(persons, edges)
    return [(p, views.get(int(p.id), [])) for p in persons]
