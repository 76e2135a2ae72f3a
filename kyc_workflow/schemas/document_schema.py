from pydantic import BaseModel, Field
from typing import Optional


class DocumentVerifyRequest(BaseModel):
    approved: bool = Field(..., description="True approves the entry, False rejects it")
    rejection_reason: Optional[str] = Field(None, description="Required when rejecting")


class DocumentRegisterRequest(BaseModel):
    user_id: Optional[str] = Field(None, description="Admins may register a record for another user")
