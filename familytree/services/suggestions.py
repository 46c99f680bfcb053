from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from familytree.models import Person, RelationType
from familytree.services import stores
from familytree.services.direction import resolve_direction
from familytree.services.perspective import resolve_perspective
from familytree.services.validation import parents_index
from familytree.services.writer import RelationshipResult, create_relationship
from familytree.settings.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 0.8
SHARED_PARENT_BASE = 0.85
SHARED_PARENT_EXTRA = 0.03      # per additional shared parent
AGE_GAP_BASE = 0.55
SIMILAR_AGE_BASE = 0.35
CORROBORATION_BONUS = 0.1       # same surname / same birth place
WEAK_CAP = 0.75                 # date heuristics never reach HIGH_CONFIDENCE on their own


@dataclass
class RelationshipSuggestion:
    member: Person
    suggested_relationship: RelationType  # role the member would hold relative to the target
    confidence: float
    reason: str


def _same_surname(a: Person, b: Person) -> bool:
    x = (a.last_name or "").strip().lower()
    return bool(x) and x == (b.last_name or "").strip().lower()


def _same_birth_place(a: Person, b: Person) -> bool:
    x = (a.birth_place or "").strip().lower()
    return bool(x) and x == (b.birth_place or "").strip().lower()


def _corroboration(target: Person, cand: Person) -> Tuple[float, List[str]]:
    bonus, notes = 0.0, []
    if _same_surname(target, cand):
        bonus += CORROBORATION_BONUS
        notes.append(f"shared surname {cand.last_name}")
    if _same_birth_place(target, cand):
        bonus += CORROBORATION_BONUS
        notes.append(f"both born in {cand.birth_place}")
    return bonus, notes


def _with_notes(reason: str, notes: List[str]) -> str:
    return f"{reason} ({', '.join(notes)})" if notes else reason


def _clamp(x: float, hi: float = 1.0) -> float:
    return round(max(0.0, min(hi, x)), 4)


def _score_candidate(
    target: Person,
    cand: Person,
    parents_of: Dict[int, Set[int]],
    names: Dict[int, str],
    cfg: Settings,
) -> Optional[RelationshipSuggestion]:
    bonus, notes = _corroboration(target, cand)
    matches: List[RelationshipSuggestion] = []

    # 1) Shared parent -> sibling
    shared = parents_of.get(int(target.id), set()) & parents_of.get(int(cand.id), set())
    if shared:
        shared_names = ", ".join(sorted(names.get(p, str(p)) for p in shared))
        conf = SHARED_PARENT_BASE + SHARED_PARENT_EXTRA * (len(shared) - 1) + bonus
        matches.append(RelationshipSuggestion(
            cand, RelationType.sibling, _clamp(conf),
            _with_notes(f"{cand.first_name} and {target.first_name} share parent {shared_names}", notes),
        ))

    if target.birth_date and cand.birth_date:
        gap = abs(target.birth_date.year - cand.birth_date.year)

        # 2) Generational gap -> parent/child
        if cfg.SUGGEST_PARENT_GAP_MIN <= gap <= cfg.SUGGEST_PARENT_GAP_MAX and gap > 0:
            cand_older = cand.birth_date < target.birth_date
            role = RelationType.parent if cand_older else RelationType.child
            child_id = int(target.id) if cand_older else int(cand.id)
            # a third parent would conflict with what is already recorded
            if len(parents_of.get(child_id, set())) < 2:
                matches.append(RelationshipSuggestion(
                    cand, role, _clamp(AGE_GAP_BASE + bonus, WEAK_CAP),
                    _with_notes(f"Age difference of {gap} years suggests a parent-child relationship", notes),
                ))

        # 3) Similar age -> sibling
        if gap <= cfg.SUGGEST_SIBLING_GAP_MAX and not shared:
            matches.append(RelationshipSuggestion(
                cand, RelationType.sibling, _clamp(SIMILAR_AGE_BASE + bonus, WEAK_CAP),
                _with_notes(f"Similar age ({gap} years difference) suggests a sibling relationship", notes),
            ))

    if not matches:
        return None
    return max(matches, key=lambda s: s.confidence)


def suggest_relationships(
    target: Person,
    persons: Iterable[Person],
    edges: Iterable,
    cfg: Optional[Settings] = None,
) -> List[RelationshipSuggestion]:
    """
    Propose missing relationships for `target` from existing edges and dates.
    Read-only; returns at most `MAX_SUGGESTIONS` items, best first.
    """
    cfg = cfg or default_settings
    edge_list = list(edges)
    people = list(persons)
    tid = int(target.id)

    related = {r.person_id for r in resolve_perspective(tid, edge_list)}
    parents_of = parents_index(edge_list)
    names = {int(p.id): p.full_name for p in people}

    out: List[RelationshipSuggestion] = []
    for cand in people:
        cid = int(cand.id)
        if cid == tid or cid in related:
            continue
        s = _score_candidate(target, cand, parents_of, names, cfg)
        if s is not None:
            out.append(s)

    out.sort(key=lambda s: (-s.confidence, s.member.full_name.lower(), int(s.member.id)))
    return out[: max(0, int(cfg.MAX_SUGGESTIONS))]


async def get_suggestions(db: AsyncSession, person_id: int, cfg: Optional[Settings] = None) -> List[RelationshipSuggestion]:
    target = await stores.get_person(db, person_id)
    persons = await stores.get_all_persons(db)
    edges = await stores.get_all_edges(db)
    return suggest_relationships(target, persons, edges, cfg)


@dataclass
class AppliedSuggestion:
    member_id: int
    role: RelationType
    result: RelationshipResult


async def apply_suggestions(
    db: AsyncSession,
    person_id: int,
    accepted: Sequence[Tuple[int, RelationType]],
    cfg: Optional[Settings] = None,
) -> List[AppliedSuggestion]:
    """Apply accepted (member_id, role) pairs one at a time; each stands or falls alone."""
    out: List[AppliedSuggestion] = []
    for member_id, role in accepted:
        direction = resolve_direction(person_id, member_id, role)
        result = await create_relationship(
            db, direction.from_member_id, direction.to_member_id, direction.relation_type, cfg=cfg,
        )
        if not result.success:
            logger.info("Suggestion %s as %s for %s not applied: %s", member_id, RelationType(role).value,
                        person_id, result.error)
        out.append(AppliedSuggestion(member_id=int(member_id), role=RelationType(role), result=result))
    return out
