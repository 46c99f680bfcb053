from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy.ext.asyncio import AsyncSession

from familytree.models import Person, RelationType
from familytree.services import stores
from familytree.services.perspective import PerspectiveRelation, resolve_perspective
from familytree.settings.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def parents_index(edges: Iterable) -> Dict[int, Set[int]]:
    """child_id -> {parent_id}, accepting both storage directions."""
    out: Dict[int, Set[int]] = {}
    for e in edges:
        kind = RelationType(e.relation_type)
        if kind is RelationType.parent:
            out.setdefault(int(e.to_member_id), set()).add(int(e.from_member_id))
        elif kind is RelationType.child:
            out.setdefault(int(e.from_member_id), set()).add(int(e.to_member_id))
    return out


def is_ancestor(candidate_id: int, person_id: int, parents_of: Dict[int, Set[int]], max_depth: int = 64) -> bool:
    """BFS upward from person_id via parent links looking for candidate_id."""
    frontier = deque([(int(person_id), 0)])
    seen: Set[int] = {int(person_id)}
    while frontier:
        node, d = frontier.popleft()
        if d >= max_depth:
            continue
        for par in parents_of.get(node, ()):
            if par == candidate_id:
                return True
            if par not in seen:
                seen.add(par)
                frontier.append((par, d + 1))
    return False


def _check_parent_child(
    from_person: Person, to_person: Person, kind: RelationType, cfg: Settings, out: ValidationResult
) -> None:
    if not from_person.birth_date or not to_person.birth_date:
        out.warnings.append("Birth dates are recommended for parent-child relationships to ensure accuracy")
        return

    from_year = from_person.birth_date.year
    to_year = to_person.birth_date.year
    gap = abs(from_year - to_year)

    if kind is RelationType.parent and not from_person.birth_date < to_person.birth_date:
        out.errors.append(
            f"{from_person.full_name} (born {from_year}) cannot be the parent of "
            f"{to_person.full_name} (born {to_year}): a parent cannot be younger than or "
            f"the same age as their child."
        )
        out.suggestions.append(
            f"Try creating the relationship in the opposite direction: "
            f"{to_person.first_name} as parent of {from_person.first_name}"
        )
        return
    if kind is RelationType.child and not from_person.birth_date > to_person.birth_date:
        out.errors.append(
            f"{from_person.full_name} (born {from_year}) cannot be the child of "
            f"{to_person.full_name} (born {to_year}): a child cannot be older than or "
            f"the same age as their parent."
        )
        out.suggestions.append(
            f"Try creating the relationship in the opposite direction: "
            f"{to_person.first_name} as child of {from_person.first_name}"
        )
        return

    if gap < cfg.MIN_PARENT_AGE_GAP:
        out.warnings.append(
            f"Age difference of {gap} years is unusually small for a parent-child relationship. "
            f"Please verify this is correct."
        )
    elif gap > cfg.MAX_PARENT_AGE_GAP:
        out.warnings.append(
            f"Age difference of {gap} years is unusually large for a parent-child relationship. "
            f"Please verify this is correct."
        )


def _check_symmetric(
    from_person: Person, to_person: Person, kind: RelationType, cfg: Settings, out: ValidationResult
) -> None:
    if not from_person.birth_date or not to_person.birth_date:
        return
    gap = abs(from_person.birth_date.year - to_person.birth_date.year)
    if kind is RelationType.spouse and gap > cfg.MAX_SPOUSE_AGE_GAP:
        out.warnings.append(f"Age difference of {gap} years is quite large for a spouse relationship")
    elif kind is RelationType.sibling and gap > cfg.MAX_SIBLING_AGE_GAP:
        out.warnings.append(f"Age difference of {gap} years is quite large for a sibling relationship")


def validate_relationship(
    from_person: Person,
    to_person: Person,
    kind: RelationType,
    from_relations: Sequence[PerspectiveRelation],
    edges: Iterable = (),
    cfg: Optional[Settings] = None,
) -> ValidationResult:
    """
    Check a directed edge candidate. Pure: same inputs, same result.

    `from_relations` is the perspective view of `from_person`; `edges` is the
    edge set used for the parent/child cycle check.
    """
    cfg = cfg or default_settings
    kind = RelationType(kind)
    out = ValidationResult()

    if int(from_person.id) == int(to_person.id):
        out.errors.append(f"{from_person.full_name} cannot have a relationship with themselves")
        return out
    for p in (from_person, to_person):
        if not (p.first_name or "").strip() or not (p.last_name or "").strip():
            out.errors.append(f"Family member {p.id} is missing a first or last name")
    if out.errors:
        return out

    existing = next((r for r in from_relations if int(r.person_id) == int(to_person.id)), None)
    if existing is not None:
        out.errors.append(
            f"Relationship already exists: {to_person.full_name} is already the "
            f"{existing.type.value} of {from_person.full_name}"
        )
        return out

    if kind in (RelationType.parent, RelationType.child):
        _check_parent_child(from_person, to_person, kind, cfg, out)
        parent_id, child_id = (
            (int(from_person.id), int(to_person.id)) if kind is RelationType.parent
            else (int(to_person.id), int(from_person.id))
        )
        if is_ancestor(child_id, parent_id, parents_index(edges)):
            out.errors.append("This relationship would create a circular parent-child relationship")
    else:
        _check_symmetric(from_person, to_person, kind, cfg, out)

    return out


async def validate(db: AsyncSession, from_id: int, to_id: int, kind: RelationType,
                   cfg: Optional[Settings] = None) -> ValidationResult:
    """Fetch both members and the current edges, then run `validate_relationship`."""
    try:
        persons = {int(p.id): p for p in await stores.get_persons(db, {from_id, to_id})}
    except stores.NotFound:
        return ValidationResult(errors=["Could not find both family members"])
    edges = await stores.get_all_edges(db)
    from_relations = resolve_perspective(from_id, edges)
    result = validate_relationship(persons[int(from_id)], persons[int(to_id)], kind, from_relations, edges, cfg)
    if result.warnings:
        logger.debug("Validation warnings for %s-%s->%s: %s", from_id, RelationType(kind).value, to_id, result.warnings)
    return result
