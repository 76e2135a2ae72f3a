from beanie import Document
from pymongo import ASCENDING, IndexModel
from pydantic import BaseModel, Field
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any
import uuid

from kyc_workflow.schemas.enums import (
    DocumentCategory,
    DocumentOverallStatus,
    EntryStatus,
    HistoryAction,
)
from kyc_workflow.workflow.document_progress import (
    DocumentCompletionSteps,
    VerificationProgress,
    recompute_derived,
)

MAX_HISTORY_ENTRIES = 50
NEXT_REVIEW_DELAY = timedelta(days=7)

CATEGORY_FIELDS = {
    DocumentCategory.PERSONAL: "personal_documents",
    DocumentCategory.FINANCIAL: "financial_documents",
    DocumentCategory.ADDRESS: "address_documents",
}


class DocumentEntry(BaseModel):
    entry_id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Stable id of this upload")
    document_type: str = Field(..., description="Document type, validated against the category's enum")
    document_number: Optional[str] = Field(None, description="Number printed on the document (PAN, Aadhaar, ...)")
    file_url: str = Field(..., description="Storage reference returned by the storage backend")
    file_name: str = Field(..., description="Original file name")
    size: int = Field(default=0, description="File size in bytes")
    mime_type: Optional[str] = Field(None, description="Content type of the stored file")
    uploaded_at: datetime = Field(default_factory=datetime.utcnow)
    verified: bool = Field(default=False)
    status: EntryStatus = Field(default=EntryStatus.PENDING)
    rejection_reason: Optional[str] = None
    verified_by: Optional[str] = None
    verification_date: Optional[datetime] = None
    extra: Dict[str, Any] = Field(default_factory=dict, description="Category specific fields (bank name, address, ...)")


class RecordMetadata(BaseModel):
    total_documents: int = 0
    verified_documents: int = 0
    rejected_documents: int = 0
    last_document_upload: Optional[datetime] = None
    last_verification_update: Optional[datetime] = None


class HistoryEntry(BaseModel):
    action: HistoryAction
    document_type: Optional[str] = None
    entry_id: Optional[str] = None
    performed_by: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    notes: Optional[str] = None
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class DocumentRecord(Document):
    user_id: str = Field(..., description="Owning user; one record per user")
    personal_documents: List[DocumentEntry] = Field(default_factory=list)
    financial_documents: List[DocumentEntry] = Field(default_factory=list)
    address_documents: List[DocumentEntry] = Field(default_factory=list)
    verifications: List[str] = Field(default_factory=list, description="Linked verification record ids")

    # Derived fields, rewritten by apply_derived() on every mutation
    completion_steps: DocumentCompletionSteps = Field(default_factory=DocumentCompletionSteps)
    completion_percentage: int = 0
    verification_progress: VerificationProgress = Field(default_factory=VerificationProgress)
    overall_status: DocumentOverallStatus = DocumentOverallStatus.INCOMPLETE
    metadata: RecordMetadata = Field(default_factory=RecordMetadata)

    verification_history: List[HistoryEntry] = Field(default_factory=list)
    review_date: Optional[datetime] = None
    next_review_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "document_records"
        use_revision = True
        indexes = [
            IndexModel([("user_id", ASCENDING)], unique=True),
            IndexModel([("overall_status", ASCENDING)]),
            IndexModel([("personal_documents.document_type", ASCENDING)]),
            IndexModel([("created_at", ASCENDING)]),
        ]

    def entries_for(self, category: DocumentCategory) -> List[DocumentEntry]:
        return getattr(self, CATEGORY_FIELDS[DocumentCategory(category)])

    def find_entry(self, entry_id: str) -> Optional[tuple]:
        """Return ``(category, entry)`` for an entry id across all categories."""
        for category in DocumentCategory:
            for entry in self.entries_for(category):
                if entry.entry_id == entry_id:
                    return category, entry
        return None

    def add_history(self, entry: HistoryEntry) -> None:
        self.verification_history.append(entry)
        if len(self.verification_history) > MAX_HISTORY_ENTRIES:
            self.verification_history = self.verification_history[-MAX_HISTORY_ENTRIES:]

    def apply_derived(self, now: Optional[datetime] = None) -> None:
        derived = recompute_derived(
            self.personal_documents,
            self.financial_documents,
            self.address_documents,
            self.verifications,
        )
        self.completion_steps = derived.completion_steps
        self.completion_percentage = derived.completion_percentage
        self.verification_progress = derived.verification_progress
        self.overall_status = derived.overall_status
        self.metadata = RecordMetadata(
            total_documents=derived.total_documents,
            verified_documents=derived.verified_documents,
            rejected_documents=derived.rejected_documents,
            last_document_upload=self.metadata.last_document_upload,
            last_verification_update=self.metadata.last_verification_update,
        )

        now = now or datetime.utcnow()
        if self.review_date is None and self.overall_status == DocumentOverallStatus.PENDING:
            self.review_date = now
        if self.next_review_date is None and self.overall_status == DocumentOverallStatus.UNDER_REVIEW:
            self.next_review_date = now + NEXT_REVIEW_DELAY
