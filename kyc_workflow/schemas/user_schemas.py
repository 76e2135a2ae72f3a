from pydantic import BaseModel, EmailStr, Field
from typing import Optional


class UserCreate(BaseModel):
    email: EmailStr = Field(..., description="Email address of the user")
    password: str = Field(..., min_length=8, description="Password for the user account")
    first_name: str = Field(..., min_length=1, description="First name of the user")
    last_name: str = Field(..., min_length=1, description="Last name of the user")
    phone: str = Field(..., min_length=7, description="Contact number of the user")


class UserResponse(BaseModel):
    id: str = Field(..., description="Unique identifier for the user")
    email: EmailStr = Field(..., description="Email address of the user")
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: str
    is_verified: bool = False
    kyc_status: str
    last_login: Optional[str] = None
    created_at: Optional[str] = None
    message: Optional[str] = None


class Token(BaseModel):
    access_token: str = Field(..., description="Access token for the user")
    token_type: str = Field(default="bearer", description="Type of the token")


class LoginGateResponse(BaseModel):
    can_login: bool
    reason: Optional[str] = None


class RoleUpdate(BaseModel):
    role: str = Field(..., description="New role: user, contract, admin or verifier")


class KycDecisionRequest(BaseModel):
    status: str = Field(..., description="pending, verified, rejected, not_started or hold")
    reason: Optional[str] = Field(None, description="Shown to the user in the notification email")


class UserDeleteRequest(BaseModel):
    reason: Optional[str] = None
