from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from familytree.models import Person, RelationType


@dataclass(frozen=True)
class RelationshipDirection:
    from_member_id: int
    to_member_id: int
    relation_type: RelationType
    current_member_role: RelationType   # what the current person becomes
    selected_member_role: RelationType  # what the other person becomes


@dataclass(frozen=True)
class DirectionSuggestion:
    suggested_type: RelationType
    reason: str


def resolve_direction(current_id: int, other_id: int, role: RelationType) -> RelationshipDirection:
    """
    Map "other person is my <role>" (as picked while looking at the current person)
    to the directed edge that should be stored.
    """
    role = RelationType(role)
    cur, oth = int(current_id), int(other_id)
    if role is RelationType.parent:
        return RelationshipDirection(oth, cur, RelationType.parent, RelationType.child, RelationType.parent)
    if role is RelationType.child:
        return RelationshipDirection(cur, oth, RelationType.parent, RelationType.parent, RelationType.child)
    if role is RelationType.spouse:
        return RelationshipDirection(cur, oth, RelationType.spouse, RelationType.spouse, RelationType.spouse)
    if role is RelationType.sibling:
        return RelationshipDirection(cur, oth, RelationType.sibling, RelationType.sibling, RelationType.sibling)
    raise ValueError(f"Unknown relation type: {role!r}")


def suggest_direction(from_person: Person, to_person: Person, kind: RelationType) -> Optional[DirectionSuggestion]:
    """Pick parent/child for a directed pair from birth order. None when undecidable."""
    kind = RelationType(kind)
    if kind not in (RelationType.parent, RelationType.child):
        return None
    if not from_person.birth_date or not to_person.birth_date:
        return None
    if from_person.birth_date < to_person.birth_date:
        return DirectionSuggestion(
            RelationType.parent,
            f"{from_person.first_name} is older than {to_person.first_name}, so they should be the parent",
        )
    if from_person.birth_date > to_person.birth_date:
        return DirectionSuggestion(
            RelationType.child,
            f"{from_person.first_name} is younger than {to_person.first_name}, so they should be the child",
        )
    return None
