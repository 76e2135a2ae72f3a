from fastapi import APIRouter, Depends, Query, status
from typing import Optional

from kyc_workflow.core.auth_dependencies import get_admin_user, get_current_active_user
from kyc_workflow.schemas.registry_schema import BranchCreate, BranchUpdate
from kyc_workflow.services.branch_service import branch_service

router = APIRouter(prefix="/branches", tags=["Branches"])


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_branch(body: BranchCreate, admin: dict = Depends(get_admin_user)):
    branch = await branch_service.create(body, admin["id"], admin["role"])
    return branch_service.snapshot(branch)


# Lists branches, searching name, code and GST number
@router.get("/")
async def list_branches(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    search: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None, description="Active or Inactive"),
    current_user: dict = Depends(get_current_active_user),
):
    return await branch_service.list(skip=skip, limit=limit, search=search, status=status)


@router.get("/statistics")
async def get_branch_statistics(admin: dict = Depends(get_admin_user)):
    return await branch_service.statistics(admin["role"])


@router.get("/code/{code}")
async def get_branch_by_code(code: str, current_user: dict = Depends(get_current_active_user)):
    return branch_service.snapshot(await branch_service.get_by_code(code))


@router.get("/{branch_id}")
async def get_branch(branch_id: str, current_user: dict = Depends(get_current_active_user)):
    return branch_service.snapshot(await branch_service.get(branch_id))


# Partial update; only the fields sent are changed
@router.put("/{branch_id}")
async def update_branch(branch_id: str, body: BranchUpdate, admin: dict = Depends(get_admin_user)):
    branch = await branch_service.update(branch_id, body, admin["id"], admin["role"])
    return branch_service.snapshot(branch)


@router.delete("/{branch_id}")
async def delete_branch(branch_id: str, admin: dict = Depends(get_admin_user)):
    return await branch_service.delete(branch_id, admin["id"], admin["role"])
