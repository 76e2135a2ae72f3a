"""Nested step forms of a verification record.

Each verification type carries its own multi-step form. Fields are all
optional because agents fill the steps in over several calls.
"""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
import uuid

from kyc_workflow.schemas.enums import (
    BusinessRating,
    InteriorFurniture,
    LocatingOffice,
    OfficeLocation,
    OfficePremises,
    OwnershipResidence,
    TypeOfResidence,
    TypeOfRoof,
    TypeStatus,
)


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    country: str = "India"

    def is_filled(self) -> bool:
        # country has a default, so it does not count as user input
        return any([self.street, self.city, self.state, self.pincode])


def address_present(address: Optional[Address]) -> bool:
    return address is not None and address.is_filled()


class AdministrativeDetails(BaseModel):
    date_of_receipt: Optional[datetime] = None
    date_of_report: Optional[datetime] = None
    reference_no: Optional[str] = None
    branch_name: Optional[str] = None
    type_of_loan: Optional[str] = None
    applicant_name: Optional[str] = None


class TypeVerificationStatus(BaseModel):
    status: TypeStatus = TypeStatus.PENDING
    verified_by: Optional[str] = None
    verification_date: Optional[datetime] = None


class CommentsAuthorization(BaseModel):
    comments: Optional[str] = None
    field_executive_comments: Optional[str] = None
    verifiers_name: Optional[str] = None
    authorized_signatory: Optional[str] = None


# Residence verification

class ResidenceAddressInformation(BaseModel):
    present_address: Optional[Address] = None
    permanent_address: Optional[Address] = None
    locality: Optional[str] = None
    accessibility: Optional[str] = None
    within_municipal_limit: Optional[bool] = None
    land_mark: Optional[str] = None


class ResidencePropertyDetails(BaseModel):
    ownership_residence: Optional[OwnershipResidence] = None
    type_of_residence: Optional[TypeOfResidence] = None
    interior_furniture: Optional[InteriorFurniture] = None
    type_of_roof: Optional[TypeOfRoof] = None
    number_of_floors: Optional[int] = None
    vehicles_found_at_residence: List[str] = Field(default_factory=list)
    years_of_stay: Optional[int] = None
    months_of_stay: Optional[int] = None
    area_sq_ft: Optional[float] = None
    name_plate_sighted: Optional[bool] = None
    entry_into_residence_permitted: Optional[bool] = None


class ResidencePersonalInformation(BaseModel):
    relationship_of_person: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    aadhar_card_no: Optional[str] = None
    pan_card_no: Optional[str] = None
    mobile_no1: Optional[str] = None
    mobile_no2: Optional[str] = None
    mobile_no3: Optional[str] = None
    qualification: Optional[str] = None
    total_family_members: Optional[int] = None
    visible_items: List[str] = Field(default_factory=list)


class ResidenceVerificationStatus(TypeVerificationStatus):
    address_confirmed: Optional[bool] = None
    neighbours_verification: Optional[bool] = None
    neighbours_comments: Optional[str] = None


class ResidenceVerificationForm(BaseModel):
    address_information: ResidenceAddressInformation = Field(default_factory=ResidenceAddressInformation)
    property_details: ResidencePropertyDetails = Field(default_factory=ResidencePropertyDetails)
    personal_information: ResidencePersonalInformation = Field(default_factory=ResidencePersonalInformation)
    verification_status: ResidenceVerificationStatus = Field(default_factory=ResidenceVerificationStatus)
    comments_authorization: CommentsAuthorization = Field(default_factory=CommentsAuthorization)


# Office verification

class OfficeInformation(BaseModel):
    office_address: Optional[Address] = None
    exact_company_name: Optional[str] = None
    designation: Optional[str] = None
    employee_id: Optional[str] = None
    working_since: Optional[datetime] = None
    net_salary: Optional[float] = None
    office_floor: Optional[str] = None


class EmployeeDetails(BaseModel):
    person_contacted: Optional[bool] = None
    person_contacted_name: Optional[str] = None
    person_met: Optional[bool] = None
    person_met_name: Optional[str] = None
    designation_of_person: Optional[str] = None


class ContactInformation(BaseModel):
    mobile_no1: Optional[str] = None
    mobile_no2: Optional[str] = None
    mobile_no3: Optional[str] = None


class OfficeBusinessDetails(BaseModel):
    nature_of_business: Optional[str] = None
    number_of_employees_seen: Optional[int] = None
    land_mark: Optional[str] = None
    name_board_sighted: Optional[bool] = None
    business_activity_seen: Optional[bool] = None
    equipment_sighted: Optional[bool] = None
    visiting_card_obtained: Optional[bool] = None
    residence_cum_office: Optional[bool] = None
    work_confirmed: Optional[bool] = None


class OfficeVerificationForm(BaseModel):
    office_information: OfficeInformation = Field(default_factory=OfficeInformation)
    employee_details: EmployeeDetails = Field(default_factory=EmployeeDetails)
    contact_information: ContactInformation = Field(default_factory=ContactInformation)
    business_details: OfficeBusinessDetails = Field(default_factory=OfficeBusinessDetails)
    comments_authorization: CommentsAuthorization = Field(default_factory=CommentsAuthorization)
    verification_status: TypeVerificationStatus = Field(default_factory=TypeVerificationStatus)


# Business verification

class BusinessAddress(BaseModel):
    office_address: Optional[Address] = None
    exact_company_name: Optional[str] = None
    designation_of_applicant: Optional[str] = None


class CompanyContactDetails(BaseModel):
    contact_person_name: Optional[str] = None
    contact_person_designation: Optional[str] = None
    mobile_no1: Optional[str] = None
    mobile_no2: Optional[str] = None
    mobile_no3: Optional[str] = None


class BusinessPremises(BaseModel):
    nature_of_business: Optional[str] = None
    office_premises: Optional[OfficePremises] = None
    number_of_years: Optional[int] = None
    paying_rent: Optional[float] = None
    name_board_sighted: Optional[bool] = None
    business_activity_seen: Optional[bool] = None
    equipment_sighted: Optional[bool] = None
    visiting_card_obtained: Optional[bool] = None
    residence_cum_office: Optional[bool] = None
    locating_office: Optional[LocatingOffice] = None
    area_in_sq_ft: Optional[float] = None
    number_of_employees: Optional[int] = None
    office_location: Optional[OfficeLocation] = None
    business_neighbour: Optional[str] = None


class LegalInformation(BaseModel):
    trade_license_no: Optional[str] = None
    gst_no: Optional[str] = None


class BusinessCommentsAuthorization(BaseModel):
    field_executive_comments: Optional[str] = None
    rating: Optional[BusinessRating] = None
    field_executive_name: Optional[str] = None
    authorized_signatory: Optional[str] = None


class BusinessVerificationForm(BaseModel):
    business_address: BusinessAddress = Field(default_factory=BusinessAddress)
    company_contact_details: CompanyContactDetails = Field(default_factory=CompanyContactDetails)
    business_premises: BusinessPremises = Field(default_factory=BusinessPremises)
    legal_information: LegalInformation = Field(default_factory=LegalInformation)
    comments_authorization: BusinessCommentsAuthorization = Field(default_factory=BusinessCommentsAuthorization)
    verification_status: TypeVerificationStatus = Field(default_factory=TypeVerificationStatus)


class VerificationDocumentEntry(BaseModel):
    """File attached to a verification record, shared by all its types."""

    entry_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    document_type: str
    file_url: str
    file_name: str
    file_size: int = 0
    mime_type: Optional[str] = None
    uploaded_at: datetime = Field(default_factory=datetime.utcnow)
    verified: bool = False
    status: str = "PENDING"
    rejection_reason: Optional[str] = None
