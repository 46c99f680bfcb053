from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import date

from .models import Gender, RelationType

# =========================
# FAMILY MEMBER SCHEMAS
# =========================
class PersonBase(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    birth_date: Optional[date] = None
    death_date: Optional[date] = None
    birth_place: Optional[str] = None
    gender: Gender = Gender.other
    bio: Optional[str] = None

    @model_validator(mode="after")
    def _death_after_birth(self):
        if self.birth_date and self.death_date and self.death_date < self.birth_date:
            raise ValueError("death_date must be on or after birth_date")
        return self

class PersonCreate(PersonBase):
    pass

class PersonUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    birth_date: Optional[date] = None
    death_date: Optional[date] = None
    birth_place: Optional[str] = None
    gender: Optional[Gender] = None
    bio: Optional[str] = None

class PersonRead(PersonBase):
    id: int

    class Config:
        from_attributes = True


# =========================
# RELATION SCHEMAS
# =========================
class PerspectiveRelationRead(BaseModel):
    id: int
    type: RelationType
    person_id: int

    class Config:
        from_attributes = True

class PersonWithRelations(PersonRead):
    relations: List[PerspectiveRelationRead] = []

class RelationMeta(BaseModel):
    marriage_date: Optional[date] = None
    divorce_date: Optional[date] = None
    notes: Optional[str] = None

class DirectionReq(BaseModel):
    current_member_id: int
    selected_member_id: int
    role: RelationType

class DirectionRead(BaseModel):
    from_member_id: int
    to_member_id: int
    relation_type: RelationType
    current_member_role: RelationType
    selected_member_role: RelationType

    class Config:
        from_attributes = True

class RelationshipReq(BaseModel):
    from_member_id: int
    to_member_id: int
    relation_type: RelationType
    metadata: Optional[RelationMeta] = None
    smart: bool = False  # retry parent/child in birth order on failure

class ValidationRead(BaseModel):
    is_valid: bool
    errors: List[str] = []
    warnings: List[str] = []
    suggestions: List[str] = []

class RelationshipResultRead(BaseModel):
    success: bool
    relationship_id: Optional[int] = None
    reciprocal_id: Optional[int] = None
    error: Optional[str] = None
    warnings: List[str] = []
    partial: bool = False
    conflict: bool = False
    error_kind: Optional[str] = None
    corrected: bool = False
    actual_relation_type: Optional[RelationType] = None

    class Config:
        from_attributes = True

class MemberName(BaseModel):
    first_name: str
    last_name: str

class RelationListItem(BaseModel):
    id: int
    from_member_id: int
    to_member_id: int
    relation_type: RelationType
    from_member: Optional[MemberName] = None
    to_member: Optional[MemberName] = None
    meta: Optional[Dict[str, Any]] = None


# =========================
# SUGGESTION SCHEMAS
# =========================
class SuggestionRead(BaseModel):
    member: PersonRead
    suggested_relationship: RelationType
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str

    class Config:
        from_attributes = True

class AcceptedSuggestion(BaseModel):
    member_id: int
    role: RelationType

class ApplySuggestionsReq(BaseModel):
    accepted: List[AcceptedSuggestion]

class AppliedSuggestionRead(BaseModel):
    member_id: int
    role: RelationType
    result: RelationshipResultRead

    class Config:
        from_attributes = True


# =========================
# INTEGRITY SCHEMAS
# =========================
class IntegrityIssueRead(BaseModel):
    issue_type: str
    description: str
    member_id_1: int
    member_id_2: int
    relationship_id: int

    class Config:
        from_attributes = True

class RepairReportRead(BaseModel):
    created: int
    deleted: int
    issues_before: List[IntegrityIssueRead] = []
    issues_after: List[IntegrityIssueRead] = []

    class Config:
        from_attributes = True
