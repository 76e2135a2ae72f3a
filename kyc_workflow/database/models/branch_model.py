from beanie import Document
from pymongo import ASCENDING, IndexModel
from pydantic import Field
from datetime import datetime
from typing import Optional

from kyc_workflow.schemas.enums import RegistryStatus


class Branch(Document):
    branch_name: str = Field(..., description="Display name of the branch")
    code: str = Field(..., description="Unique branch code, stored uppercase")
    local: float = Field(..., ge=0, description="Fee charged for a local verification")
    non_local: float = Field(..., ge=0, description="Fee charged for a non-local verification")
    gst: str = Field(..., description="15 character GST number, stored uppercase")
    status: RegistryStatus = Field(default=RegistryStatus.ACTIVE)
    address: Optional[str] = None
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    opening_date: Optional[datetime] = None
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    class Settings:
        name = "branches"
        indexes = [
            IndexModel([("code", ASCENDING)], unique=True),
            IndexModel([("gst", ASCENDING)], unique=True),
            IndexModel([("status", ASCENDING)]),
        ]

    @property
    def total_amount(self) -> float:
        return (self.local or 0) + (self.non_local or 0)
