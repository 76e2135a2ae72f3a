from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from kyc_workflow.core.auth_dependencies import get_admin_user, get_current_active_user
from kyc_workflow.core.permissions import ensure_can_work_on_verification
from kyc_workflow.schemas.verification_schema import (
    StatusUpdateRequest,
    StepUpdateRequest,
    VerificationCreateRequest,
)
from kyc_workflow.services.sequence_service import sequence_service
from kyc_workflow.services.verification_service import record_snapshot, verification_service

router = APIRouter(prefix="/verifications", tags=["Verifications"])


# Creates a verification record, or merges the types into an existing one
@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_verification(
    body: VerificationCreateRequest,
    current_user: dict = Depends(get_current_active_user),
):
    record = await verification_service.create_or_merge(
        body.document_number,
        body.verification_type,
        current_user["id"],
        administrative_details=body.administrative_details,
        link_user_id=body.user_id,
        actor_role=current_user["role"],
    )
    return record_snapshot(record)


# Shows the document number the next create would receive
@router.get("/next-number")
async def peek_next_number(current_user: dict = Depends(get_current_active_user)):
    return {"document_number": await sequence_service.peek()}


# Lists records created by the caller
@router.get("/mine")
async def list_my_verifications(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: dict = Depends(get_current_active_user),
):
    return await verification_service.list_by_creator(current_user["id"], skip=skip, limit=limit)


@router.get("/statistics")
async def get_verification_statistics(admin: dict = Depends(get_admin_user)):
    return await verification_service.statistics(admin["role"])


# Lists records carrying one verification type
@router.get("/type/{verification_type}")
async def list_verifications_by_type(
    verification_type: str,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: dict = Depends(get_current_active_user),
):
    return await verification_service.list_by_type(verification_type, skip=skip, limit=limit)


# Document numbers contain "/", so they travel as a query parameter
@router.get("/by-number")
async def get_verification_by_number(
    document_number: str = Query(..., description="NNN/DD-MM-YYYY"),
    current_user: dict = Depends(get_current_active_user),
):
    record = await verification_service.get_by_number(document_number)
    ensure_can_work_on_verification(current_user["id"], current_user["role"], record.created_by)
    return record_snapshot(record)


@router.get("/completion")
async def get_verification_completion(
    document_number: str = Query(..., description="NNN/DD-MM-YYYY"),
    current_user: dict = Depends(get_current_active_user),
):
    return await verification_service.completion(document_number)


# Merges field values into one step of one type's form
@router.patch("/steps/{step_name}")
async def update_verification_step(
    step_name: str,
    body: StepUpdateRequest,
    document_number: str = Query(..., description="NNN/DD-MM-YYYY"),
    current_user: dict = Depends(get_current_active_user),
):
    record = await verification_service.update_step(
        document_number,
        body.verification_type.value if body.verification_type else None,
        step_name,
        body.data,
        current_user["id"],
        current_user["role"],
    )
    return record_snapshot(record)


# Attaches an uploaded file to the record
@router.post("/documents", status_code=status.HTTP_201_CREATED)
async def upload_verification_document(
    document_number: str = Query(..., description="NNN/DD-MM-YYYY"),
    file: UploadFile = File(...),
    document_type: str = Form(...),
    current_user: dict = Depends(get_current_active_user),
):
    contents = await file.read()
    record = await verification_service.upload_document_file(
        document_number,
        document_type,
        contents,
        file.filename,
        file.content_type,
        current_user["id"],
        current_user["role"],
    )
    return record_snapshot(record)


# Admin decision on one type, or on the whole record when no type is given
@router.patch("/status")
async def update_verification_status(
    body: StatusUpdateRequest,
    document_number: str = Query(..., description="NNN/DD-MM-YYYY"),
    admin: dict = Depends(get_admin_user),
):
    record = await verification_service.update_status(
        document_number,
        body.status,
        admin["id"],
        admin["role"],
        verification_type=body.verification_type.value if body.verification_type else None,
        reason=body.reason,
    )
    return record_snapshot(record)


@router.delete("/")
async def delete_verification(
    document_number: str = Query(..., description="NNN/DD-MM-YYYY"),
    admin: dict = Depends(get_admin_user),
):
    return await verification_service.delete(document_number, admin["id"], admin["role"])


@router.get("/{verification_id}")
async def get_verification(verification_id: str, current_user: dict = Depends(get_current_active_user)):
    record = await verification_service.get_by_id(verification_id)
    ensure_can_work_on_verification(current_user["id"], current_user["role"], record.created_by)
    return record_snapshot(record)
