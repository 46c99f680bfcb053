from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging
from .database import get_db
from .schemas import (
    PersonCreate, PersonUpdate, PersonRead, PersonWithRelations, PerspectiveRelationRead,
    DirectionReq, DirectionRead, RelationshipReq, ValidationRead, RelationshipResultRead,
    RelationListItem, SuggestionRead, ApplySuggestionsReq, AppliedSuggestionRead,
    IntegrityIssueRead, RepairReportRead,
)
from .services import stores
from .services.people import create_person, update_person, delete_person, search_people
from .services.perspective import load_perspective, load_members_with_relations
from .services.direction import resolve_direction
from .services.validation import validate
from .services.writer import create_relationship, create_relationship_smart, delete_relationship, list_relations
from .services.suggestions import get_suggestions, apply_suggestions
from .services.integrity import find_issues, repair_integrity
logger = logging.getLogger(__name__)
router = APIRouter()

_ERROR_STATUS = {'validation': 422, 'not_found': 404, 'conflict': 409, 'store': 503, 'partial': 500}

def _result_response(result, ok_status: int=200) -> JSONResponse:
    body = RelationshipResultRead.model_validate(result).model_dump(mode='json')
    if result.success:
        return JSONResponse(body, status_code=ok_status)
    return JSONResponse(body, status_code=_ERROR_STATUS.get(result.error_kind, 422))

@router.get('/healthz')
async def healthz():
    return {'ok': True}

# ---------------------------
# Family members
# ---------------------------
@router.get('/api/people', response_model=List[PersonWithRelations])
async def api_people_list(db: AsyncSession=Depends(get_db)):
    rows = await load_members_with_relations(db)
    out = []
    for p, rels in rows:
        item = PersonWithRelations.model_validate(p)
        item.relations = [PerspectiveRelationRead.model_validate(r) for r in rels]
        out.append(item)
    return out

@router.get('/api/people/search', response_model=List[PersonRead])
async def api_people_search(q: str=Query(..., min_length=1), limit: int=Query(20, ge=1, le=100), db: AsyncSession=Depends(get_db)):
    return await search_people(db, q, limit=limit)

@router.post('/api/people', response_model=PersonRead, status_code=201)
async def api_people_add(payload: PersonCreate, db: AsyncSession=Depends(get_db)):
    return await create_person(db, **payload.model_dump())

@router.get('/api/people/{person_id}', response_model=PersonWithRelations)
async def api_people_detail(person_id: int, db: AsyncSession=Depends(get_db)):
    p = await stores.get_person(db, person_id)
    rels = await load_perspective(db, person_id)
    item = PersonWithRelations.model_validate(p)
    item.relations = [PerspectiveRelationRead.model_validate(r) for r in rels]
    return item

@router.patch('/api/people/{person_id}', response_model=PersonRead)
async def api_people_update(person_id: int, payload: PersonUpdate, db: AsyncSession=Depends(get_db)):
    changes = payload.model_dump(exclude_unset=True)
    try:
        return await update_person(db, person_id, **changes)
    except ValueError as e:
        await db.rollback()
        raise HTTPException(422, str(e))

@router.delete('/api/people/{person_id}')
async def api_people_delete(person_id: int, db: AsyncSession=Depends(get_db)):
    removed = await delete_person(db, person_id)
    return {'ok': True, 'relations_removed': removed}

@router.get('/api/people/{person_id}/relations', response_model=List[PerspectiveRelationRead])
async def api_people_relations(person_id: int, db: AsyncSession=Depends(get_db)):
    return await load_perspective(db, person_id)

@router.get('/api/people/{person_id}/suggestions', response_model=List[SuggestionRead])
async def api_people_suggestions(person_id: int, db: AsyncSession=Depends(get_db)):
    return [SuggestionRead.model_validate(s) for s in await get_suggestions(db, person_id)]

@router.post('/api/people/{person_id}/suggestions/apply', response_model=List[AppliedSuggestionRead])
async def api_people_suggestions_apply(person_id: int, payload: ApplySuggestionsReq, db: AsyncSession=Depends(get_db)):
    await stores.get_person(db, person_id)
    accepted = [(a.member_id, a.role) for a in payload.accepted]
    return await apply_suggestions(db, person_id, accepted)

# ---------------------------
# Relationships
# ---------------------------
@router.post('/api/relationships/direction', response_model=DirectionRead)
async def api_relationship_direction(payload: DirectionReq):
    return resolve_direction(payload.current_member_id, payload.selected_member_id, payload.role)

@router.post('/api/relationships/validate', response_model=ValidationRead)
async def api_relationship_validate(payload: RelationshipReq, db: AsyncSession=Depends(get_db)):
    res = await validate(db, payload.from_member_id, payload.to_member_id, payload.relation_type)
    return ValidationRead(is_valid=res.is_valid, errors=res.errors, warnings=res.warnings, suggestions=res.suggestions)

@router.post('/api/relationships')
async def api_relationship_create(payload: RelationshipReq, db: AsyncSession=Depends(get_db)):
    meta = payload.metadata.model_dump(mode='json', exclude_none=True) if payload.metadata else None
    create = create_relationship_smart if payload.smart else create_relationship
    result = await create(db, payload.from_member_id, payload.to_member_id, payload.relation_type, meta)
    return _result_response(result, ok_status=201)

@router.get('/api/relationships', response_model=List[RelationListItem])
async def api_relationship_list(db: AsyncSession=Depends(get_db)):
    return await list_relations(db)

@router.delete('/api/relationships/{edge_id}')
async def api_relationship_delete(edge_id: int, cascade: bool=Query(True), db: AsyncSession=Depends(get_db)):
    result = await delete_relationship(db, edge_id, cascade=cascade)
    return _result_response(result)

# ---------------------------
# Integrity
# ---------------------------
@router.get('/api/integrity', response_model=List[IntegrityIssueRead])
async def api_integrity(db: AsyncSession=Depends(get_db)):
    return await find_issues(db)

@router.post('/api/integrity/repair', response_model=RepairReportRead)
async def api_integrity_repair(db: AsyncSession=Depends(get_db)):
    return await repair_integrity(db)
