from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from fastapi.responses import Response, StreamingResponse
from typing import Optional

from kyc_workflow.core.auth_dependencies import get_admin_user, get_current_active_user
from kyc_workflow.core.errors import NotFoundError
from kyc_workflow.core.permissions import ensure_owner_or_admin
from kyc_workflow.helpers.response_builder import content_disposition, stream_file, stream_zip
from kyc_workflow.schemas.document_schema import DocumentRegisterRequest, DocumentVerifyRequest
from kyc_workflow.schemas.enums import DocumentCategory
from kyc_workflow.services.document_registry_service import (
    document_registry_service,
    parse_category,
    record_snapshot,
)
from kyc_workflow.services.pdf_conversion_service import pdf_conversion_service
from kyc_workflow.services.storage_service import storage_service

router = APIRouter(prefix="/documents", tags=["Documents"])


# Creates the caller's document record, or another user's when called by an admin
@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_documents(
    body: Optional[DocumentRegisterRequest] = None,
    current_user: dict = Depends(get_current_active_user),
):
    user_id = (body.user_id if body else None) or current_user["id"]
    ensure_owner_or_admin(current_user["id"], current_user["role"], user_id)
    record = await document_registry_service.register_or_get(user_id)
    return record_snapshot(record)


# Retrieves the caller's document record
@router.get("/me")
async def get_my_documents(current_user: dict = Depends(get_current_active_user)):
    record = await document_registry_service.get_record(current_user["id"])
    return record_snapshot(record)


# Summarizes completion and review status of the caller's documents
@router.get("/status")
async def get_my_document_status(current_user: dict = Depends(get_current_active_user)):
    return await document_registry_service.get_status(current_user["id"])


# Lists records waiting for an admin review, oldest first
@router.get("/admin/pending")
async def list_pending_documents(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    admin: dict = Depends(get_admin_user),
):
    return await document_registry_service.list_pending_review(admin["role"], skip=skip, limit=limit)


# Counts records per overall status
@router.get("/admin/statistics")
async def get_document_statistics(admin: dict = Depends(get_admin_user)):
    return await document_registry_service.statistics(admin["role"])


# Uploads one file into a category of the caller's record
@router.post("/upload/{category}", status_code=status.HTTP_201_CREATED)
async def upload_document(
    category: str,
    file: UploadFile = File(...),
    document_type: str = Form(...),
    document_number: Optional[str] = Form(None),
    user_id: Optional[str] = Form(None),
    current_user: dict = Depends(get_current_active_user),
):
    owner_id = user_id or current_user["id"]
    ensure_owner_or_admin(current_user["id"], current_user["role"], owner_id)
    contents = await file.read()
    record = await document_registry_service.upload_document(
        owner_id,
        category,
        document_type,
        contents,
        file.filename,
        file.content_type,
        document_number=document_number,
        actor_id=current_user["id"],
    )
    return record_snapshot(record)


# Retrieves a user's document record
@router.get("/{user_id}")
async def get_user_documents(user_id: str, current_user: dict = Depends(get_current_active_user)):
    ensure_owner_or_admin(current_user["id"], current_user["role"], user_id)
    record = await document_registry_service.get_record(user_id)
    return record_snapshot(record)


# Streams every file of a user's record as one ZIP archive
@router.get("/{user_id}/download")
async def download_all_documents(
    user_id: str,
    request: Request,
    current_user: dict = Depends(get_current_active_user),
):
    ensure_owner_or_admin(current_user["id"], current_user["role"], user_id)
    record = await document_registry_service.get_record(user_id)
    entries = [
        (f"{category.value}/{entry.entry_id}_{entry.file_name}", entry.file_url)
        for category in DocumentCategory
        for entry in record.entries_for(category)
    ]
    if not entries:
        raise NotFoundError("No documents to download", details={"user_id": user_id})

    return StreamingResponse(
        stream_zip(request, entries, storage_service.read),
        media_type="application/zip",
        headers={"Content-Disposition": content_disposition(f"documents_{user_id}.zip")},
    )


# Merges the images of one category into a single PDF
@router.get("/{user_id}/{category}/pdf")
async def download_category_pdf(
    user_id: str,
    category: str,
    request: Request,
    current_user: dict = Depends(get_current_active_user),
):
    ensure_owner_or_admin(current_user["id"], current_user["role"], user_id)
    parsed = parse_category(category)
    record = await document_registry_service.get_record(user_id)
    entries = record.entries_for(parsed)
    if not entries:
        raise NotFoundError("No documents in this category", details={"category": parsed.value})

    files = []
    for entry in entries:
        files.append((entry.file_name, entry.mime_type, await storage_service.read(entry.file_url)))
    path, skipped = await pdf_conversion_service.merge_to_pdf(files, f"{parsed.value}_{user_id}")

    headers = {"Content-Disposition": content_disposition(f"{parsed.value}_documents.pdf")}
    if skipped:
        headers["X-Skipped-Files"] = str(len(skipped))
    return StreamingResponse(stream_file(request, str(path)), media_type="application/pdf", headers=headers)


# Downloads a single document entry
@router.get("/{user_id}/{category}/{entry_id}/download")
async def download_document_entry(
    user_id: str,
    category: str,
    entry_id: str,
    current_user: dict = Depends(get_current_active_user),
):
    ensure_owner_or_admin(current_user["id"], current_user["role"], user_id)
    entry, contents = await document_registry_service.read_entry_file(user_id, category, entry_id)
    return Response(
        content=contents,
        media_type=entry.mime_type or "application/octet-stream",
        headers={"Content-Disposition": content_disposition(entry.file_name)},
    )


# Approves or rejects a single document entry
@router.patch("/{user_id}/{category}/{entry_id}/verify")
async def verify_document_entry(
    user_id: str,
    category: str,
    entry_id: str,
    body: DocumentVerifyRequest,
    admin: dict = Depends(get_admin_user),
):
    record = await document_registry_service.verify_document_entry(
        user_id,
        category,
        entry_id,
        body.approved,
        admin["id"],
        admin["role"],
        reason=body.rejection_reason,
    )
    return record_snapshot(record)


# Removes a single file entry; the record itself stays
@router.delete("/{user_id}/{category}/{entry_id}")
async def delete_document_entry(
    user_id: str,
    category: str,
    entry_id: str,
    current_user: dict = Depends(get_current_active_user),
):
    record = await document_registry_service.delete_document_entry(
        user_id, category, entry_id, current_user["id"], current_user["role"]
    )
    return record_snapshot(record)
