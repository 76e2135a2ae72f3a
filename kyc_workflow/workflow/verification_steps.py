"""
Completion steps of a verification record.

A record can carry several verification types at once. Each type has its
own handler that knows which form holds it and when each of the shared
step names counts as done. The record-level flags are the logical OR of
what every attached type reports, so attaching another type never clears
a step that is already complete.
"""
from typing import Dict, List, Optional, Type

from pydantic import BaseModel

from kyc_workflow.schemas.enums import CompletionStep, VerificationType
from kyc_workflow.schemas.verification_forms import (
    AdministrativeDetails,
    BusinessAddress,
    BusinessCommentsAuthorization,
    BusinessPremises,
    BusinessVerificationForm,
    CommentsAuthorization,
    CompanyContactDetails,
    ContactInformation,
    EmployeeDetails,
    LegalInformation,
    OfficeBusinessDetails,
    OfficeInformation,
    OfficeVerificationForm,
    ResidenceAddressInformation,
    ResidencePersonalInformation,
    ResidencePropertyDetails,
    ResidenceVerificationForm,
    ResidenceVerificationStatus,
    TypeVerificationStatus,
    address_present,
)
from kyc_workflow.workflow.rounding import percentage

# Changing the set of steps changes this denominator everywhere.
TOTAL_COMPLETION_STEPS = len(CompletionStep)

# Steps answered by the per-type forms; the other two are record level.
TYPE_STEPS = (
    CompletionStep.ADDRESS_INFORMATION,
    CompletionStep.PROPERTY_DETAILS,
    CompletionStep.PERSONAL_INFORMATION,
    CompletionStep.VERIFICATION_STATUS,
    CompletionStep.COMMENTS_AUTHORIZATION,
)


class VerificationCompletionSteps(BaseModel):
    administrative_details: bool = False
    address_information: bool = False
    property_details: bool = False
    personal_information: bool = False
    verification_status: bool = False
    comments_authorization: bool = False
    document_upload: bool = False

    def completed(self) -> int:
        return sum(1 for step in CompletionStep if getattr(self, step.value))


class VerificationTypeHandler:
    """Knows the form of one verification type and its step predicates."""

    verification_type: VerificationType
    form_field: str
    form_model: Type[BaseModel]
    step_models: Dict[str, Type[BaseModel]] = {}

    def new_form(self) -> BaseModel:
        return self.form_model()

    def step_model(self, step_name: str) -> Optional[Type[BaseModel]]:
        return self.step_models.get(step_name)

    def status_of(self, form: BaseModel) -> TypeVerificationStatus:
        return form.verification_status

    def completed_steps(self, form: Optional[BaseModel]) -> Dict[CompletionStep, bool]:
        if form is None:
            return {step: False for step in TYPE_STEPS}
        return {
            CompletionStep.ADDRESS_INFORMATION: self.address_information(form),
            CompletionStep.PROPERTY_DETAILS: self.property_details(form),
            CompletionStep.PERSONAL_INFORMATION: self.personal_information(form),
            CompletionStep.VERIFICATION_STATUS: bool(form.verification_status.status),
            CompletionStep.COMMENTS_AUTHORIZATION: self.comments_authorization(form),
        }

    def address_information(self, form) -> bool:
        raise NotImplementedError

    def property_details(self, form) -> bool:
        raise NotImplementedError

    def personal_information(self, form) -> bool:
        raise NotImplementedError

    def comments_authorization(self, form) -> bool:
        raise NotImplementedError


class ResidenceHandler(VerificationTypeHandler):
    verification_type = VerificationType.RESIDENCE_VERIFICATION
    form_field = "residence_verification"
    form_model = ResidenceVerificationForm
    step_models = {
        "address_information": ResidenceAddressInformation,
        "property_details": ResidencePropertyDetails,
        "personal_information": ResidencePersonalInformation,
        "verification_status": ResidenceVerificationStatus,
        "comments_authorization": CommentsAuthorization,
    }

    def address_information(self, form: ResidenceVerificationForm) -> bool:
        return address_present(form.address_information.present_address)

    def property_details(self, form: ResidenceVerificationForm) -> bool:
        return form.property_details.ownership_residence is not None

    def personal_information(self, form: ResidenceVerificationForm) -> bool:
        return form.personal_information.date_of_birth is not None

    def comments_authorization(self, form: ResidenceVerificationForm) -> bool:
        return bool(form.comments_authorization.verifiers_name)


class OfficeHandler(VerificationTypeHandler):
    verification_type = VerificationType.OFFICE_VERIFICATION
    form_field = "office_verification"
    form_model = OfficeVerificationForm
    step_models = {
        "office_information": OfficeInformation,
        "employee_details": EmployeeDetails,
        "contact_information": ContactInformation,
        "business_details": OfficeBusinessDetails,
        "comments_authorization": CommentsAuthorization,
        "verification_status": TypeVerificationStatus,
    }

    def address_information(self, form: OfficeVerificationForm) -> bool:
        return address_present(form.office_information.office_address)

    def property_details(self, form: OfficeVerificationForm) -> bool:
        # False is an answer too
        return form.employee_details.person_contacted is not None

    def personal_information(self, form: OfficeVerificationForm) -> bool:
        return bool(form.contact_information.mobile_no1)

    def comments_authorization(self, form: OfficeVerificationForm) -> bool:
        return bool(form.comments_authorization.verifiers_name)


class BusinessHandler(VerificationTypeHandler):
    verification_type = VerificationType.BUSINESS_VERIFICATION
    form_field = "business_verification"
    form_model = BusinessVerificationForm
    step_models = {
        "business_address": BusinessAddress,
        "company_contact_details": CompanyContactDetails,
        "business_premises": BusinessPremises,
        "legal_information": LegalInformation,
        "comments_authorization": BusinessCommentsAuthorization,
        "verification_status": TypeVerificationStatus,
    }

    def address_information(self, form: BusinessVerificationForm) -> bool:
        return address_present(form.business_address.office_address)

    def property_details(self, form: BusinessVerificationForm) -> bool:
        return bool(form.company_contact_details.contact_person_name)

    def personal_information(self, form: BusinessVerificationForm) -> bool:
        return bool(form.business_premises.nature_of_business)

    def comments_authorization(self, form: BusinessVerificationForm) -> bool:
        return bool(form.comments_authorization.field_executive_name)


HANDLERS: Dict[VerificationType, VerificationTypeHandler] = {
    handler.verification_type: handler
    for handler in (ResidenceHandler(), OfficeHandler(), BusinessHandler())
}


def handler_for(verification_type: VerificationType) -> VerificationTypeHandler:
    return HANDLERS[VerificationType(verification_type)]


def administrative_details_complete(details: Optional[AdministrativeDetails]) -> bool:
    return details is not None and details.date_of_receipt is not None and bool(details.reference_no)


def compute_completion_steps(
    types: List[VerificationType],
    forms: Dict[VerificationType, Optional[BaseModel]],
    administrative_details: Optional[AdministrativeDetails],
    document_count: int,
) -> VerificationCompletionSteps:
    """OR-merge the per-type predicates into the record's seven flags."""
    steps = VerificationCompletionSteps(
        administrative_details=administrative_details_complete(administrative_details),
        document_upload=document_count > 0,
    )
    for verification_type in types:
        handler = handler_for(verification_type)
        for step, done in handler.completed_steps(forms.get(verification_type)).items():
            if done:
                setattr(steps, step.value, True)
    return steps


def completion_percentage(steps: VerificationCompletionSteps) -> int:
    return percentage(steps.completed(), TOTAL_COMPLETION_STEPS)
