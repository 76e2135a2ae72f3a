from beanie import Document
from pydantic import Field
from datetime import datetime
from typing import Any, Dict, Optional


class AuditLog(Document):
    action: str = Field(..., description="Action performed (e.g. 'login', 'kyc_decision')")
    actor: Optional[str] = Field(None, description="Identifier of the actor who performed the action")
    acted: Optional[str] = Field(None, description="Identifier of the entity acted upon (user id, document number, etc.)")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="When the action occurred")
    status: str = Field(..., description="Result status: 'successful' or 'failed'")
    details: Optional[Dict[str, Any]] = Field(None, description="Old/new values or other context for the action")

    class Settings:
        name = "audit_logs"

    class Config:
        json_encoders = {datetime: lambda v: v.isoformat()}
