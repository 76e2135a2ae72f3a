from beanie import Document
from pymongo import ASCENDING, IndexModel
from pydantic import EmailStr, Field
from datetime import datetime
from typing import Optional
from bson import ObjectId

from kyc_workflow.schemas.enums import KycStatus, UserRole


class User(Document):
    email: EmailStr = Field(..., description="Email address of the user")
    first_name: str = Field(..., description="First name of the user")
    last_name: str = Field(..., description="Last name of the user")
    phone: str = Field(..., description="Contact number of the user")
    hashed_password: str = Field(..., description="Hashed password for the user account")
    role: UserRole = Field(default=UserRole.USER, description="Access role of the user")
    is_verified: bool = Field(default=False, description="Set once the account has been verified")
    kyc_status: KycStatus = Field(default=KycStatus.NOT_STARTED, description="Account-level KYC gate")
    is_active: bool = Field(default=True, description="Indicates if the user account is active")
    last_login: Optional[datetime] = Field(None, description="Timestamp of the last successful login")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Timestamp when the user was created")
    updated_at: Optional[datetime] = Field(None, description="Timestamp when the user was last updated")

    class Settings:
        name = "users"
        indexes = [IndexModel([("email", ASCENDING)], unique=True)]

    class Config:
        populate_by_name = True
        arbitrary_types_allowed = True
        json_encoders = {
            ObjectId: str,
            datetime: lambda v: v.isoformat()
        }

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def public_dict(self) -> dict:
        return {
            "id": str(self.id),
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "role": self.role.value,
            "is_verified": self.is_verified,
            "kyc_status": self.kyc_status.value,
            "last_login": self.last_login.isoformat() if self.last_login else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
