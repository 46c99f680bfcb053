"""Find and repair relationship rows that break the two-row symmetry."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from familytree.models import RelationType
from familytree.services import stores
from familytree.services.validation import is_ancestor, parents_index
from familytree.services.writer import reciprocal_type

logger = logging.getLogger(__name__)

ORPHANED = "orphaned_relationship"
INCOMPLETE = "incomplete_bidirectional"
MISMATCHED = "mismatched_reciprocal"
CIRCULAR = "circular_relationship"


@dataclass
class IntegrityIssue:
    issue_type: str
    description: str
    member_id_1: int
    member_id_2: int
    relationship_id: int


@dataclass
class RepairReport:
    created: int = 0
    deleted: int = 0
    issues_before: List[IntegrityIssue] = field(default_factory=list)
    issues_after: List[IntegrityIssue] = field(default_factory=list)


def check_integrity(person_ids: Iterable[int], edges: Iterable) -> List[IntegrityIssue]:
    known: Set[int] = {int(i) for i in person_ids}
    edge_list = list(edges)
    by_pair: Dict[Tuple[int, int], object] = {
        (int(e.from_member_id), int(e.to_member_id)): e for e in edge_list
    }
    parents_of = parents_index(edge_list)
    issues: List[IntegrityIssue] = []

    for e in edge_list:
        a, b, kind = int(e.from_member_id), int(e.to_member_id), RelationType(e.relation_type)
        if a not in known or b not in known:
            issues.append(IntegrityIssue(ORPHANED, "Relationship references non-existent member", a, b, int(e.id)))
            continue
        mirror = by_pair.get((b, a))
        if mirror is None:
            issues.append(IntegrityIssue(INCOMPLETE, "Missing reverse relationship", a, b, int(e.id)))
        elif RelationType(mirror.relation_type) is not reciprocal_type(kind):
            issues.append(IntegrityIssue(
                MISMATCHED,
                f"Reverse relationship is {RelationType(mirror.relation_type).value}, "
                f"expected {reciprocal_type(kind).value}",
                a, b, int(e.id),
            ))
        if kind is RelationType.parent and is_ancestor(b, a, parents_of):
            issues.append(IntegrityIssue(CIRCULAR, "Member is their own ancestor", a, b, int(e.id)))
    return issues


async def find_issues(db: AsyncSession) -> List[IntegrityIssue]:
    persons = await stores.get_all_persons(db)
    edges = await stores.get_all_edges(db)
    return check_integrity((p.id for p in persons), edges)


async def repair_integrity(db: AsyncSession) -> RepairReport:
    """
    Delete orphaned rows and insert missing reciprocals. Mismatched and circular
    rows need a person to decide which side is right, so they are only reported.
    """
    report = RepairReport(issues_before=await find_issues(db))
    edges = {int(e.id): e for e in await stores.get_all_edges(db)}

    for issue in report.issues_before:
        if issue.issue_type == ORPHANED:
            await stores.delete_edge(db, issue.relationship_id)
            report.deleted += 1
        elif issue.issue_type == INCOMPLETE:
            e = edges[issue.relationship_id]
            kind = reciprocal_type(RelationType(e.relation_type))
            await stores.insert_edge(db, int(e.to_member_id), int(e.from_member_id), kind, e.meta)
            report.created += 1
    await db.commit()

    report.issues_after = await find_issues(db)
    logger.info("Integrity repair: created=%d deleted=%d issues %d -> %d",
                report.created, report.deleted, len(report.issues_before), len(report.issues_after))
    return report
