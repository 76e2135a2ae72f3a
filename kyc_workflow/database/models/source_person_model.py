from beanie import Document
from pymongo import ASCENDING, IndexModel
from pydantic import Field
from datetime import datetime
from typing import Optional

from kyc_workflow.schemas.enums import RegistryStatus


class SourcePerson(Document):
    """A referral contact who brings verification work to a branch."""

    name: str = Field(..., description="Full name of the source person")
    mobile: str = Field(..., description="10 digit mobile number, unique")
    email: str = Field(..., description="Lowercased email address, unique")
    city: str
    state: str
    county: str
    status: RegistryStatus = Field(default=RegistryStatus.ACTIVE)
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    class Settings:
        name = "source_persons"
        indexes = [
            IndexModel([("mobile", ASCENDING)], unique=True),
            IndexModel([("email", ASCENDING)], unique=True),
            IndexModel([("status", ASCENDING)]),
            IndexModel([("city", ASCENDING)]),
        ]

    @property
    def full_address(self) -> str:
        return f"{self.city}, {self.state}, {self.county}"
