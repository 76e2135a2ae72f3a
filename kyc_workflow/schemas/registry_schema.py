"""Request bodies for the branch and source person registries.

Create models require every mandatory field; update models accept any
subset and are applied with ``exclude_unset``. Codes and GST numbers are
normalised to uppercase, emails to lowercase, before uniqueness checks.
"""
import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from kyc_workflow.schemas.enums import RegistryStatus

GST_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")
MOBILE_PATTERN = re.compile(r"^[0-9]{10}$")
EMAIL_PATTERN = re.compile(r"^[\w.+-]+@[\w-]+(\.[\w-]+)*\.[A-Za-z]{2,}$")


def _upper(value):
    return value.strip().upper() if isinstance(value, str) else value


def _check_gst(value):
    if value is not None and not GST_PATTERN.match(value):
        raise ValueError("Invalid GST number format")
    return value


def _check_mobile(value):
    if value is not None and not MOBILE_PATTERN.match(value):
        raise ValueError("Mobile number must be 10 digits")
    return value


def _check_email(value):
    if value is not None and not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email format")
    return value


class BranchCreate(BaseModel):
    branch_name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=10)
    local: float = Field(..., ge=0, description="Fee for a local verification")
    non_local: float = Field(..., ge=0, description="Fee for a non-local verification")
    gst: str
    status: RegistryStatus = RegistryStatus.ACTIVE
    address: Optional[str] = Field(None, max_length=500)
    contact_person: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = None
    email: Optional[str] = None
    opening_date: Optional[datetime] = None
    description: Optional[str] = Field(None, max_length=1000)

    @field_validator("code", "gst", mode="before")
    @classmethod
    def normalise_codes(cls, value):
        return _upper(value)

    @field_validator("branch_name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("gst")
    @classmethod
    def valid_gst(cls, value):
        return _check_gst(value)

    @field_validator("phone")
    @classmethod
    def valid_phone(cls, value):
        return _check_mobile(value.strip()) if value else None

    @field_validator("email")
    @classmethod
    def valid_email(cls, value):
        return _check_email(value.strip().lower()) if value else None


class BranchUpdate(BranchCreate):
    branch_name: Optional[str] = Field(None, min_length=1, max_length=100)
    code: Optional[str] = Field(None, min_length=1, max_length=10)
    local: Optional[float] = Field(None, ge=0)
    non_local: Optional[float] = Field(None, ge=0)
    gst: Optional[str] = None
    status: Optional[RegistryStatus] = None


class SourcePersonCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    mobile: str
    email: str
    city: str = Field(..., min_length=1, max_length=50)
    state: str = Field(..., min_length=1, max_length=50)
    county: str = Field(..., min_length=1, max_length=50)
    status: RegistryStatus = RegistryStatus.ACTIVE
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("name", "mobile", "city", "state", "county", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("mobile")
    @classmethod
    def valid_mobile(cls, value):
        return _check_mobile(value)

    @field_validator("email", mode="before")
    @classmethod
    def valid_email(cls, value):
        return _check_email(value.strip().lower()) if isinstance(value, str) else value


class SourcePersonUpdate(SourcePersonCreate):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    mobile: Optional[str] = None
    email: Optional[str] = None
    city: Optional[str] = Field(None, min_length=1, max_length=50)
    state: Optional[str] = Field(None, min_length=1, max_length=50)
    county: Optional[str] = Field(None, min_length=1, max_length=50)
    status: Optional[RegistryStatus] = None
