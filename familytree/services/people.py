import logging
from datetime import date
from typing import Optional

from sqlalchemy import select, func, or_, delete
from sqlalchemy.ext.asyncio import AsyncSession

from familytree.models import Person, RelationshipEdge, Gender
from familytree.services import stores

logger = logging.getLogger(__name__)


def split_display_name(display_name: str) -> tuple[str | None, str | None]:
    """
    Very small heuristic: split the last token as last_name, the rest as first_name.
    If there is only one token, store it as first_name and leave last_name None.
    """
    if not display_name:
        return None, None
    parts = display_name.strip().split()
    if len(parts) == 1:
        return parts[0], None
    return " ".join(parts[:-1]), parts[-1]


def _check_dates(birth: Optional[date], death: Optional[date]) -> None:
    if birth and death and death < birth:
        raise ValueError("death_date must be on or after birth_date")


async def create_person(
    db: AsyncSession,
    *,
    first_name: str,
    last_name: str,
    birth_date: Optional[date] = None,
    death_date: Optional[date] = None,
    birth_place: Optional[str] = None,
    gender: Gender = Gender.other,
    bio: Optional[str] = None,
) -> Person:
    _check_dates(birth_date, death_date)
    p = Person(
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        birth_date=birth_date,
        death_date=death_date,
        birth_place=(birth_place or "").strip() or None,
        gender=Gender(gender),
        bio=bio,
    )
    db.add(p)
    await db.commit()
    logger.info("Created family member %s (%s)", p.id, p.full_name)
    return p


async def update_person(db: AsyncSession, person_id: int, **changes) -> Person:
    p = await stores.get_person(db, person_id)
    for key in ("first_name", "last_name", "birth_date", "death_date", "birth_place", "gender", "bio"):
        if key in changes:
            setattr(p, key, changes[key])
    _check_dates(p.birth_date, p.death_date)
    await db.commit()
    logger.info("Updated family member %s: %s", person_id, sorted(changes))
    return p


async def delete_person(db: AsyncSession, person_id: int) -> int:
    """Remove every edge that references the member, then the member. Returns edges removed."""
    p = await stores.get_person(db, person_id)
    res = await db.execute(
        delete(RelationshipEdge).where(
            or_(RelationshipEdge.from_member_id == person_id, RelationshipEdge.to_member_id == person_id)
        )
    )
    await db.delete(p)
    await db.commit()
    removed = int(res.rowcount or 0)
    logger.info("Deleted family member %s and %d relationship row(s)", person_id, removed)
    return removed


async def search_people(db: AsyncSession, query: str, limit: int = 20) -> list[Person]:
    name = (query or "").strip().lower()
    if not name:
        return []
    first, last = split_display_name(name)
    conds = [
        func.lower(Person.first_name).contains(name),
        func.lower(Person.last_name).contains(name),
    ]
    if first and last:
        conds.append((func.lower(Person.first_name) == first) & (func.lower(Person.last_name) == last))
    rows = await db.execute(select(Person).where(or_(*conds)).order_by(Person.first_name, Person.id).limit(limit))
    return list(rows.scalars().all())
