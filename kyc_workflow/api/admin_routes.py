from fastapi import APIRouter, Depends, Query
from typing import Optional

from kyc_workflow.core.auth_dependencies import get_admin_user
from kyc_workflow.schemas.user_schemas import KycDecisionRequest, RoleUpdate, UserDeleteRequest
from kyc_workflow.schemas.verification_schema import DecisionRequest
from kyc_workflow.services.admin_service import admin_service

router = APIRouter(prefix="/admin", tags=["Admin"])


# Lists users with optional role / KYC status filters
@router.get("/users")
async def list_users(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    role: Optional[str] = Query(default=None),
    kyc_status: Optional[str] = Query(default=None),
    admin: dict = Depends(get_admin_user),
):
    return await admin_service.list_users(admin["role"], skip=skip, limit=limit, role=role, kyc_status=kyc_status)


@router.get("/users/{user_id}")
async def get_user(user_id: str, admin: dict = Depends(get_admin_user)):
    return await admin_service.get_user(user_id, admin["role"])


# Deletes a user account and emails them about it
@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    body: Optional[UserDeleteRequest] = None,
    admin: dict = Depends(get_admin_user),
):
    return await admin_service.delete_user(
        user_id, admin["id"], admin["role"], reason=body.reason if body else None
    )


# Sets the account-level KYC status that gates login
@router.patch("/users/{user_id}/kyc")
async def decide_user_kyc(user_id: str, body: KycDecisionRequest, admin: dict = Depends(get_admin_user)):
    return await admin_service.decide_user_kyc(user_id, body.status, admin["id"], admin["role"], reason=body.reason)


@router.patch("/users/{user_id}/role")
async def update_user_role(user_id: str, body: RoleUpdate, admin: dict = Depends(get_admin_user)):
    return await admin_service.update_user_role(user_id, body.role, admin["id"], admin["role"])


# Applies a decision to a verification record, addressed by its document number
@router.post("/verifications/decision")
async def decide_verification(
    body: DecisionRequest,
    document_number: str = Query(..., description="NNN/DD-MM-YYYY"),
    admin: dict = Depends(get_admin_user),
):
    return await admin_service.decide(document_number, body.decision, admin["id"], admin["role"], reason=body.reason)
