from enum import Enum


class UserRole(str, Enum):
    USER = "user"
    CONTRACT = "contract"
    ADMIN = "admin"
    VERIFIER = "verifier"


class KycStatus(str, Enum):
    NOT_STARTED = "not_started"
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    HOLD = "hold"


class DocumentCategory(str, Enum):
    PERSONAL = "personal"
    FINANCIAL = "financial"
    ADDRESS = "address"


class PersonalDocumentType(str, Enum):
    AADHAAR = "AADHAAR"
    PAN = "PAN"
    PASSPORT = "PASSPORT"
    VOTER_ID = "VOTER_ID"
    DRIVING_LICENSE = "DRIVING_LICENSE"


class FinancialDocumentType(str, Enum):
    BANK_STATEMENT = "BANK_STATEMENT"
    SALARY_SLIP = "SALARY_SLIP"
    ITR = "ITR"
    FORM_16 = "FORM_16"
    PAYSLIP = "PAYSLIP"


class AddressDocumentType(str, Enum):
    UTILITY_BILL = "UTILITY_BILL"
    RENT_AGREEMENT = "RENT_AGREEMENT"
    PROPERTY_TAX = "PROPERTY_TAX"
    LEASE_DEED = "LEASE_DEED"


DOCUMENT_TYPES_BY_CATEGORY = {
    DocumentCategory.PERSONAL: PersonalDocumentType,
    DocumentCategory.FINANCIAL: FinancialDocumentType,
    DocumentCategory.ADDRESS: AddressDocumentType,
}


class EntryStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class DocumentOverallStatus(str, Enum):
    INCOMPLETE = "INCOMPLETE"
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class HistoryAction(str, Enum):
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
    DOCUMENT_VERIFIED = "DOCUMENT_VERIFIED"
    DOCUMENT_REJECTED = "DOCUMENT_REJECTED"
    DOCUMENT_DELETED = "DOCUMENT_DELETED"
    STATUS_CHANGED = "STATUS_CHANGED"
    VERIFICATION_ADDED = "VERIFICATION_ADDED"


class VerificationType(str, Enum):
    RESIDENCE_VERIFICATION = "RESIDENCE_VERIFICATION"
    OFFICE_VERIFICATION = "OFFICE_VERIFICATION"
    BUSINESS_VERIFICATION = "BUSINESS_VERIFICATION"


class TypeStatus(str, Enum):
    """Admin decision held inside each verification type's sub-form."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class VerificationOverallStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    IN_PROGRESS = "IN_PROGRESS"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class CompletionStep(str, Enum):
    ADMINISTRATIVE_DETAILS = "administrative_details"
    ADDRESS_INFORMATION = "address_information"
    PROPERTY_DETAILS = "property_details"
    PERSONAL_INFORMATION = "personal_information"
    VERIFICATION_STATUS = "verification_status"
    COMMENTS_AUTHORIZATION = "comments_authorization"
    DOCUMENT_UPLOAD = "document_upload"


# Residence form choices
class OwnershipResidence(str, Enum):
    OWNED = "OWNED"
    RENTED = "RENTED"
    PARENTAL = "PARENTAL"
    COMPANY_PROVIDED = "COMPANY_PROVIDED"
    OTHER = "OTHER"


class TypeOfResidence(str, Enum):
    INDEPENDENT_HOUSE = "INDEPENDENT_HOUSE"
    APARTMENT = "APARTMENT"
    VILLA = "VILLA"
    CHAWL = "CHAWL"
    SLUM = "SLUM"
    OTHER = "OTHER"


class InteriorFurniture(str, Enum):
    WELL_FURNISHED = "WELL_FURNISHED"
    FURNISHED = "FURNISHED"
    SEMI_FURNISHED = "SEMI_FURNISHED"
    UNFURNISHED = "UNFURNISHED"


class TypeOfRoof(str, Enum):
    RCC = "RCC"
    ASBESTOS = "ASBESTOS"
    TILE = "TILE"
    THATCHED = "THATCHED"
    OTHER = "OTHER"


# Business form choices
class OfficePremises(str, Enum):
    OWNED = "OWNED"
    RENTED = "RENTED"
    SHARED = "SHARED"
    OTHER = "OTHER"


class LocatingOffice(str, Enum):
    EASY = "EASY"
    MODERATE = "MODERATE"
    DIFFICULT = "DIFFICULT"


class OfficeLocation(str, Enum):
    COMMERCIAL_AREA = "COMMERCIAL_AREA"
    RESIDENTIAL_AREA = "RESIDENTIAL_AREA"
    INDUSTRIAL_AREA = "INDUSTRIAL_AREA"
    MIXED_USE = "MIXED_USE"
    OTHER = "OTHER"


class BusinessRating(str, Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    AVERAGE = "AVERAGE"
    POOR = "POOR"
    NEGATIVE = "NEGATIVE"


class KycDecision(str, Enum):
    """Decisions an admin can take on a user or a verification record."""

    VERIFIED = "verified"
    REJECTED = "rejected"
    HOLD = "hold"
    PENDING = "pending"


class RegistryStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


def enum_text(value) -> str:
    """Raw text of an enum member or of a plain string.

    ``str()`` of a ``(str, Enum)`` member gives ``Class.NAME`` on current
    interpreters, so parsers normalise through this first.
    """
    return str(getattr(value, "value", value))
