from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from kyc_workflow.schemas.enums import VerificationType


class VerificationCreateRequest(BaseModel):
    document_number: Optional[str] = Field(None, description="NNN/DD-MM-YYYY; generated when omitted")
    verification_type: List[VerificationType] = Field(..., min_length=1)
    administrative_details: Optional[Dict[str, Any]] = None
    user_id: Optional[str] = Field(None, description="Applicant whose document record should link this verification")


class StepUpdateRequest(BaseModel):
    verification_type: Optional[VerificationType] = Field(None, description="Not needed for administrative_details")
    data: Dict[str, Any] = Field(default_factory=dict)


class StatusUpdateRequest(BaseModel):
    status: str = Field(..., description="PENDING, IN_PROGRESS, VERIFIED or REJECTED")
    verification_type: Optional[VerificationType] = Field(None, description="Omit to apply to every attached type")
    reason: Optional[str] = None


class DecisionRequest(BaseModel):
    decision: str = Field(..., description="verified, rejected, hold or pending")
    reason: Optional[str] = None
