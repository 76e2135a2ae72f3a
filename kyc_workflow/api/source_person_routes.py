from fastapi import APIRouter, Depends, Query, status
from typing import Optional

from kyc_workflow.core.auth_dependencies import get_admin_user, get_current_active_user
from kyc_workflow.schemas.registry_schema import SourcePersonCreate, SourcePersonUpdate
from kyc_workflow.services.source_person_service import source_person_service

router = APIRouter(prefix="/source-persons", tags=["Source Persons"])


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_source_person(body: SourcePersonCreate, admin: dict = Depends(get_admin_user)):
    person = await source_person_service.create(body, admin["id"], admin["role"])
    return source_person_service.snapshot(person)


# Lists source persons; city and state filter by partial, case-insensitive match
@router.get("/")
async def list_source_persons(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    search: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None, description="Active or Inactive"),
    city: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    current_user: dict = Depends(get_current_active_user),
):
    return await source_person_service.list(
        skip=skip, limit=limit, search=search, status=status, city=city, state=state
    )


@router.get("/statistics")
async def get_source_person_statistics(admin: dict = Depends(get_admin_user)):
    return await source_person_service.statistics(admin["role"])


@router.get("/{person_id}")
async def get_source_person(person_id: str, current_user: dict = Depends(get_current_active_user)):
    return source_person_service.snapshot(await source_person_service.get(person_id))


@router.put("/{person_id}")
async def update_source_person(person_id: str, body: SourcePersonUpdate, admin: dict = Depends(get_admin_user)):
    person = await source_person_service.update(person_id, body, admin["id"], admin["role"])
    return source_person_service.snapshot(person)


@router.delete("/{person_id}")
async def delete_source_person(person_id: str, admin: dict = Depends(get_admin_user)):
    return await source_person_service.delete(person_id, admin["id"], admin["role"])
