"""Async data access for family members and relationship edges.

The engine only talks to the database through these functions. SQLAlchemy
errors are translated into the small exception family below so callers can
tell a user-correctable conflict from an infrastructure failure.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from familytree.models import Person, RelationshipEdge, RelationType

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Connectivity failure or constraint violation at the store layer."""


class StoreConflict(StoreError):
    """A write collided with an existing row (e.g. a racing duplicate edge)."""


class NotFound(StoreError):
    """A referenced person or edge does not exist."""


# ---------------------------
# Persons
# ---------------------------
async def get_person(db: AsyncSession, person_id: int) -> Person:
    try:
        p = await db.get(Person, person_id)
    except SQLAlchemyError as exc:
        raise StoreError(str(exc)) from exc
    if p is None:
        raise NotFound(f"Family member {person_id} not found")
    return p


async def get_persons(db: AsyncSession, ids: Iterable[int]) -> List[Person]:
    wanted = {int(i) for i in ids}
    if not wanted:
        return []
    try:
        rows = (await db.execute(select(Person).where(Person.id.in_(wanted)))).scalars().all()
    except SQLAlchemyError as exc:
        raise StoreError(str(exc)) from exc
    missing = wanted - {int(p.id) for p in rows}
    if missing:
        raise NotFound(f"Family member(s) not found: {sorted(missing)}")
    return list(rows)


async def get_all_persons(db: AsyncSession) -> List[Person]:
    try:
        return list((await db.execute(select(Person).order_by(Person.first_name, Person.id))).scalars().all())
    except SQLAlchemyError as exc:
        raise StoreError(str(exc)) from exc


# ---------------------------
# Edges
# ---------------------------
async def insert_edge(
    db: AsyncSession,
    from_id: int,
    to_id: int,
    kind: RelationType,
    meta: Optional[dict] = None,
) -> int:
    """Insert one directed row and return its id. Flushes, does not commit."""
    edge = RelationshipEdge(
        from_member_id=int(from_id),
        to_member_id=int(to_id),
        relation_type=RelationType(kind),
        meta=dict(meta) if meta else None,
    )
    db.add(edge)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise StoreConflict(
            f"A relationship row from {from_id} to {to_id} already exists"
        ) from exc
    except SQLAlchemyError as exc:
        raise StoreError(str(exc)) from exc
    return int(edge.id)


async def get_edge(db: AsyncSession, edge_id: int) -> RelationshipEdge:
    try:
        e = await db.get(RelationshipEdge, edge_id)
    except SQLAlchemyError as exc:
        raise StoreError(str(exc)) from exc
    if e is None:
        raise NotFound(f"Relationship {edge_id} not found")
    return e


async def find_edge(
    db: AsyncSession, from_id: int, to_id: int, kind: Optional[RelationType] = None
) -> Optional[RelationshipEdge]:
    q = select(RelationshipEdge).where(
        RelationshipEdge.from_member_id == from_id,
        RelationshipEdge.to_member_id == to_id,
    )
    if kind is not None:
        q = q.where(RelationshipEdge.relation_type == RelationType(kind))
    try:
        return (await db.execute(q.limit(1))).scalars().first()
    except SQLAlchemyError as exc:
        raise StoreError(str(exc)) from exc


async def delete_edge(db: AsyncSession, edge_id: int) -> None:
    e = await get_edge(db, edge_id)
    try:
        await db.delete(e)
        await db.flush()
    except SQLAlchemyError as exc:
        raise StoreError(str(exc)) from exc


async def get_edges_for(db: AsyncSession, person_id: int) -> List[RelationshipEdge]:
    try:
        rows = await db.execute(
            select(RelationshipEdge)
            .where(or_(RelationshipEdge.from_member_id == person_id, RelationshipEdge.to_member_id == person_id))
            .order_by(RelationshipEdge.id)
        )
    except SQLAlchemyError as exc:
        raise StoreError(str(exc)) from exc
    return list(rows.scalars().all())


async def get_all_edges(db: AsyncSession) -> List[RelationshipEdge]:
    try:
        rows = await db.execute(select(RelationshipEdge).order_by(RelationshipEdge.id))
    except SQLAlchemyError as exc:
        raise StoreError(str(exc)) from exc
    return list(rows.scalars().all())
