from beanie import Document
from pymongo import ASCENDING, IndexModel
from pydantic import Field
from datetime import datetime
from typing import Optional, List, Dict

from kyc_workflow.schemas.enums import VerificationOverallStatus, VerificationType
from kyc_workflow.schemas.verification_forms import (
    AdministrativeDetails,
    BusinessVerificationForm,
    OfficeVerificationForm,
    ResidenceVerificationForm,
    VerificationDocumentEntry,
)
from kyc_workflow.workflow.transitions import completion_status
from kyc_workflow.workflow.verification_steps import (
    HANDLERS,
    VerificationCompletionSteps,
    completion_percentage,
    compute_completion_steps,
)


class VerificationRecord(Document):
    document_number: str = Field(..., description="Daily sequenced reference, NNN/DD-MM-YYYY")
    verification_type: List[VerificationType] = Field(default_factory=list)
    administrative_details: AdministrativeDetails = Field(default_factory=AdministrativeDetails)
    residence_verification: Optional[ResidenceVerificationForm] = None
    office_verification: Optional[OfficeVerificationForm] = None
    business_verification: Optional[BusinessVerificationForm] = None
    documents: List[VerificationDocumentEntry] = Field(default_factory=list)

    completion_steps: VerificationCompletionSteps = Field(default_factory=VerificationCompletionSteps)
    completion_percentage: int = 0
    overall_status: VerificationOverallStatus = VerificationOverallStatus.DRAFT

    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "verification_records"
        use_revision = True
        indexes = [
            IndexModel([("document_number", ASCENDING)], unique=True),
            IndexModel([("verification_type", ASCENDING)]),
            IndexModel([("overall_status", ASCENDING)]),
            IndexModel([("created_by", ASCENDING)]),
            IndexModel([("administrative_details.reference_no", ASCENDING)]),
        ]

    class Config:
        json_encoders = {datetime: lambda v: v.isoformat()}

    def forms(self) -> Dict[VerificationType, Optional[object]]:
        return {
            verification_type: getattr(self, handler.form_field)
            for verification_type, handler in HANDLERS.items()
        }

    def ensure_forms(self) -> None:
        """Attach an empty form for every listed type that has none yet."""
        for verification_type in self.verification_type:
            handler = HANDLERS[verification_type]
            if getattr(self, handler.form_field) is None:
                setattr(self, handler.form_field, handler.new_form())

    def apply_derived(self) -> None:
        self.ensure_forms()
        self.completion_steps = compute_completion_steps(
            self.verification_type,
            self.forms(),
            self.administrative_details,
            len(self.documents),
        )
        self.completion_percentage = completion_percentage(self.completion_steps)
        self.overall_status = completion_status(self.overall_status, self.completion_percentage)
