"""Create and delete logical relationships (a directed row plus its reciprocal)."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from familytree.models import Person, RelationshipEdge, RelationType
from familytree.services import stores
from familytree.services.direction import suggest_direction
from familytree.services.validation import validate
from familytree.settings.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass
class RelationshipResult:
    success: bool
    relationship_id: Optional[int] = None
    reciprocal_id: Optional[int] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    partial: bool = False      # primary row written, reciprocal missing
    conflict: bool = False     # lost a race against a concurrent writer
    error_kind: Optional[str] = None  # validation | store | conflict | not_found | partial
    corrected: bool = False
    actual_relation_type: Optional[RelationType] = None


def reciprocal_type(kind: RelationType) -> RelationType:
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


async def _insert_reciprocal(db: AsyncSession, from_id: int, to_id: int, kind: RelationType,
                             meta: Optional[dict], attempts: int) -> int:
    """Insert the mirror row in a SAVEPOINT. A unique violation is never retried."""
    attempt = 1
    while True:
        try:
            async with db.begin_nested():
                return await stores.insert_edge(db, from_id, to_id, kind, meta)
        except stores.StoreConflict:
            raise
        except stores.StoreError as exc:
            logger.warning("Reciprocal insert %s-%s->%s failed (attempt %d/%d): %s",
                           from_id, kind.value, to_id, attempt, attempts, exc)
            if attempt >= attempts:
                raise
            attempt += 1


async def create_relationship(
    db: AsyncSession,
    from_id: int,
    to_id: int,
    kind: RelationType,
    meta: Optional[dict] = None,
    cfg: Optional[Settings] = None,
) -> RelationshipResult:
    """
    Validate, insert the primary row, then the reciprocal row, then commit.

    The primary insert always completes before the reciprocal is attempted. If the
    reciprocal cannot be written the primary stays committed and the result is
    reported as a partial failure, unless the pair already has a row the other way
    round: that is a lost race, and both writes are rolled back as a conflict.
    """
    cfg = cfg or default_settings
    kind = RelationType(kind)

    try:
        validation = await validate(db, from_id, to_id, kind, cfg)
    except stores.StoreError as exc:
        await db.rollback()
        logger.error("Could not load members for %s-%s->%s: %s", from_id, kind.value, to_id, exc)
        return RelationshipResult(
            success=False, error_kind="store",
            error=f"Failed to load family members for validation: {exc}",
        )
    if not validation.is_valid:
        message = "; ".join(validation.errors)
        if validation.suggestions:
            message += "\n\nSuggested solution: " + "; ".join(validation.suggestions)
        return RelationshipResult(success=False, error=message, error_kind="validation", warnings=validation.warnings)
    if validation.warnings:
        logger.info("Relationship %s-%s->%s created with warnings: %s",
                    from_id, kind.value, to_id, validation.warnings)

    try:
        primary_id = await stores.insert_edge(db, from_id, to_id, kind, meta)
    except stores.StoreConflict as exc:
        await db.rollback()
        logger.warning("Concurrent write conflict for %s->%s: %s", from_id, to_id, exc)
        return RelationshipResult(
            success=False, conflict=True, error_kind="conflict", warnings=validation.warnings,
            error=f"Relationship was created concurrently by someone else; reload and try again ({exc})",
        )
    except stores.StoreError as exc:
        await db.rollback()
        logger.exception("Primary insert %s-%s->%s failed", from_id, kind.value, to_id)
        return RelationshipResult(
            success=False, error_kind="store", warnings=validation.warnings,
            error=f"Failed to create relationship in database: {exc}",
        )

    recip = reciprocal_type(kind)
    attempts = 1 + max(0, int(cfg.RECIPROCAL_INSERT_RETRIES))
    try:
        reciprocal_id = await _insert_reciprocal(db, to_id, from_id, recip, meta, attempts)
    except stores.StoreConflict as exc:
        # the pair already has a row the other way round; keep neither side of ours
        await db.rollback()
        logger.warning("Concurrent write conflict on reciprocal %s->%s: %s", to_id, from_id, exc)
        return RelationshipResult(
            success=False, conflict=True, error_kind="conflict", warnings=validation.warnings,
            error=f"Relationship was created concurrently by someone else; reload and try again ({exc})",
        )
    except stores.StoreError as exc:
        await db.commit()
        logger.error(
            "Half-written relationship: edge %s (%s-%s->%s) stored but reciprocal %s failed: %s",
            primary_id, from_id, kind.value, to_id, recip.value, exc,
        )
        return RelationshipResult(
            success=False, relationship_id=primary_id, partial=True, error_kind="partial",
            warnings=validation.warnings,
            error=(
                f"Relationship {primary_id} was stored but its reciprocal could not be written ({exc}). "
                f"Run an integrity repair to restore symmetry."
            ),
        )

    await db.commit()
    logger.info("Created relationship %s (%s-%s->%s) with reciprocal %s",
                primary_id, from_id, kind.value, to_id, reciprocal_id)
    return RelationshipResult(
        success=True, relationship_id=primary_id, reciprocal_id=reciprocal_id, warnings=validation.warnings,
    )


async def create_relationship_smart(
    db: AsyncSession,
    from_id: int,
    to_id: int,
    kind: RelationType,
    meta: Optional[dict] = None,
    cfg: Optional[Settings] = None,
) -> RelationshipResult:
    """Create as requested; for parent/child, retry once in the birth-order direction."""
    kind = RelationType(kind)
    result = await create_relationship(db, from_id, to_id, kind, meta, cfg)
    if result.success or result.error_kind != "validation" or kind not in (RelationType.parent, RelationType.child):
        return result

    try:
        persons = {int(p.id): p for p in await stores.get_persons(db, {from_id, to_id})}
    except stores.StoreError:
        return result
    suggestion = suggest_direction(persons[int(from_id)], persons[int(to_id)], kind)
    if suggestion is None or suggestion.suggested_type is kind:
        return result

    corrected = await create_relationship(db, from_id, to_id, suggestion.suggested_type, meta, cfg)
    if corrected.success:
        logger.info("Corrected %s->%s from %s to %s: %s", from_id, to_id, kind.value,
                    suggestion.suggested_type.value, suggestion.reason)
        corrected.corrected = True
        corrected.actual_relation_type = suggestion.suggested_type
        return corrected
    return result


async def delete_relationship(db: AsyncSession, edge_id: int, cascade: bool = True) -> RelationshipResult:
    """Delete an edge and, unless `cascade` is False, the reciprocal row on (to, from)."""
    try:
        edge = await stores.get_edge(db, edge_id)
    except stores.NotFound:
        logger.warning("Relationship %s not found", edge_id)
        return RelationshipResult(success=False, error="Relationship not found", error_kind="not_found")
    except stores.StoreError as exc:
        logger.error("Failed to load relationship %s: %s", edge_id, exc)
        return RelationshipResult(success=False, error=f"Failed to delete relationship: {exc}", error_kind="store")

    src, dst, kind = int(edge.from_member_id), int(edge.to_member_id), RelationType(edge.relation_type)
    try:
        await stores.delete_edge(db, edge_id)
        reciprocal_id = None
        if cascade:
            mirror = await stores.find_edge(db, dst, src)
            if mirror is not None and RelationType(mirror.relation_type) is reciprocal_type(kind):
                reciprocal_id = int(mirror.id)
                await stores.delete_edge(db, reciprocal_id)
            elif mirror is not None:
                logger.warning(
                    "Relationship %s deleted but reverse row %s is %s, expected %s; left in place",
                    edge_id, mirror.id, RelationType(mirror.relation_type).value, reciprocal_type(kind).value,
                )
        await db.commit()
    except stores.StoreError as exc:
        await db.rollback()
        logger.exception("Failed to delete relationship %s", edge_id)
        return RelationshipResult(success=False, error=f"Failed to delete relationship: {exc}", error_kind="store")

    logger.info("Deleted relationship %s (%s-%s->%s), reciprocal=%s", edge_id, src, kind.value, dst, reciprocal_id)
    return RelationshipResult(success=True, relationship_id=int(edge_id), reciprocal_id=reciprocal_id)


async def list_relations(db: AsyncSession) -> list[dict]:
    """All stored rows, newest first, with both member names."""
    src = aliased(Person)
    dst = aliased(Person)
    rows = await db.execute(
        select(RelationshipEdge, src.first_name, src.last_name, dst.first_name, dst.last_name)
        .join(src, src.id == RelationshipEdge.from_member_id)
        .join(dst, dst.id == RelationshipEdge.to_member_id)
        .order_by(RelationshipEdge.created_at.desc(), RelationshipEdge.id.desc())
    )
    out = []
    for e, sf, sl, df, dl in rows.all():
        out.append({
            "id": e.id,
            "from_member_id": e.from_member_id,
            "to_member_id": e.to_member_id,
            "relation_type": RelationType(e.relation_type),
            "from_member": {"first_name": sf, "last_name": sl},
            "to_member": {"first_name": df, "last_name": dl},
            "meta": e.meta,
        })
    return out
