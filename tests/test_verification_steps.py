from datetime import datetime

from kyc_workflow.schemas.enums import CompletionStep, VerificationType
from kyc_workflow.schemas.verification_forms import (
    Address,
    AdministrativeDetails,
    BusinessVerificationForm,
    OfficeVerificationForm,
    ResidenceVerificationForm,
)
from kyc_workflow.workflow.verification_steps import (
    TOTAL_COMPLETION_STEPS,
    VerificationCompletionSteps,
    administrative_details_complete,
    completion_percentage,
    compute_completion_steps,
    handler_for,
)

RESIDENCE = VerificationType.RESIDENCE_VERIFICATION
OFFICE = VerificationType.OFFICE_VERIFICATION
BUSINESS = VerificationType.BUSINESS_VERIFICATION


def test_there_are_seven_steps():
    assert TOTAL_COMPLETION_STEPS == 7


def test_fresh_type_only_satisfies_status_step():
    steps = compute_completion_steps([RESIDENCE], {RESIDENCE: ResidenceVerificationForm()}, None, 0)
    assert steps.verification_status is True
    assert steps.completed() == 1
    assert completion_percentage(steps) == 14


def test_address_step_uses_each_types_own_field():
    office = OfficeVerificationForm()
    office.office_information.office_address = Address(city="Pune")
    residence = ResidenceVerificationForm()

    steps = compute_completion_steps(
        [RESIDENCE, OFFICE],
        {RESIDENCE: residence, OFFICE: office},
        None,
        0,
    )
    # residence has no present address, but office answers the step
    assert steps.address_information is True
    assert handler_for(RESIDENCE).completed_steps(residence)[CompletionStep.ADDRESS_INFORMATION] is False


def test_country_default_does_not_make_an_address_present():
    residence = ResidenceVerificationForm()
    residence.address_information.present_address = Address()
    steps = compute_completion_steps([RESIDENCE], {RESIDENCE: residence}, None, 0)
    assert steps.address_information is False


def test_attaching_another_type_never_clears_a_step():
    residence = ResidenceVerificationForm()
    residence.comments_authorization.verifiers_name = "R. Iyer"
    before = compute_completion_steps([RESIDENCE], {RESIDENCE: residence}, None, 0)

    after = compute_completion_steps(
        [RESIDENCE, BUSINESS],
        {RESIDENCE: residence, BUSINESS: BusinessVerificationForm()},
        None,
        0,
    )
    assert before.comments_authorization is True
    assert after.comments_authorization is True


def test_business_comments_use_field_executive_name():
    business = BusinessVerificationForm()
    business.comments_authorization.field_executive_comments = "Looks fine"
    assert compute_completion_steps([BUSINESS], {BUSINESS: business}, None, 0).comments_authorization is False

    business.comments_authorization.field_executive_name = "K. Rao"
    assert compute_completion_steps([BUSINESS], {BUSINESS: business}, None, 0).comments_authorization is True


def test_office_person_contacted_false_still_counts():
    office = OfficeVerificationForm()
    office.employee_details.person_contacted = False
    steps = compute_completion_steps([OFFICE], {OFFICE: office}, None, 0)
    assert steps.property_details is True


def test_administrative_details_need_receipt_date_and_reference():
    assert administrative_details_complete(None) is False
    assert administrative_details_complete(AdministrativeDetails(reference_no="REF-1")) is False
    assert administrative_details_complete(
        AdministrativeDetails(reference_no="REF-1", date_of_receipt=datetime(2025, 10, 1))
    ) is True


def test_fully_filled_residence_record_is_complete():
    residence = ResidenceVerificationForm()
    residence.address_information.present_address = Address(street="12 MG Road")
    residence.property_details.ownership_residence = "OWNED"
    residence.personal_information.date_of_birth = datetime(1990, 1, 1)
    residence.comments_authorization.verifiers_name = "R. Iyer"
    admin = AdministrativeDetails(reference_no="REF-1", date_of_receipt=datetime(2025, 10, 1))

    steps = compute_completion_steps([RESIDENCE], {RESIDENCE: residence}, admin, 1)
    assert steps == VerificationCompletionSteps(**{name: True for name in steps.model_dump()})
    assert completion_percentage(steps) == 100


def test_missing_form_reports_nothing():
    steps = compute_completion_steps([OFFICE], {}, None, 0)
    assert steps.completed() == 0
