from sqlalchemy import (
    Column, Integer, String, ForeignKey, Text, Date, DateTime, JSON,
    UniqueConstraint, Index, CheckConstraint
)
from sqlalchemy import Enum as SAEnum
from .database import Base
from datetime import datetime
import enum


class Gender(str, enum.Enum):
    male = "male"
    female = "female"
    other = "other"


class RelationType(str, enum.Enum):
    """Stored edge kinds. `parent` from A to B means A is parent of B;
    `child` from A to B means A is child of B."""
    parent = "parent"
    child = "child"
    spouse = "spouse"
    sibling = "sibling"


# ---------------------------
# FAMILY MEMBERS
# ---------------------------
class Person(Base):
    __tablename__ = "family_member"

    id = Column(Integer, primary_key=True)
    first_name = Column(String(100), nullable=False, index=True)
    last_name = Column(String(100), nullable=False, index=True)
    birth_date = Column(Date, nullable=True)
    death_date = Column(Date, nullable=True)
    birth_place = Column(String(200), nullable=True)
    gender = Column(SAEnum(Gender, name="gender"), nullable=False, default=Gender.other)
    bio = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "death_date IS NULL OR birth_date IS NULL OR death_date >= birth_date",
            name="ck_member_death_after_birth",
        ),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def birth_year(self):
        return self.birth_date.year if self.birth_date else None

    def __repr__(self):
        return f"<Person {self.id} {self.full_name!r} b={self.birth_date}>"


# ---------------------------
# RELATIONSHIP EDGES
# ---------------------------
class RelationshipEdge(Base):
    __tablename__ = "relation"

    id = Column(Integer, primary_key=True)
    from_member_id = Column(ForeignKey("family_member.id", ondelete="CASCADE"), index=True, nullable=False)
    to_member_id = Column(ForeignKey("family_member.id", ondelete="CASCADE"), index=True, nullable=False)
    relation_type = Column(SAEnum(RelationType, name="relation_type"), index=True, nullable=False)
    meta = Column(JSON)  # {"marriage_date": .., "divorce_date": .., "notes": ..}
    created_at = Column(DateTime, default=datetime.utcnow)

    # one directed row per ordered pair; the reciprocal lives on (to, from)
    __table_args__ = (
        UniqueConstraint("from_member_id", "to_member_id", name="uq_relation_pair"),
        Index("ix_relation_pair_type", "from_member_id", "to_member_id", "relation_type"),
    )

    def __repr__(self):
        return f"<RelationshipEdge {self.id} {self.from_member_id}-{self.relation_type.value}->{self.to_member_id}>"
