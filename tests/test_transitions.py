import pytest

from kyc_workflow.core.errors import InvalidTransitionError, ValidationError
from kyc_workflow.schemas.enums import KycDecision, KycStatus, TypeStatus, VerificationOverallStatus as Status
from kyc_workflow.workflow.transitions import (
    DECISION_TO_TYPE_STATUS,
    completion_status,
    ensure_admin_transition,
    is_terminal,
    parse_decision,
    parse_user_kyc_status,
    record_status_for,
)


def test_completion_moves_between_draft_and_submitted():
    assert completion_status(Status.DRAFT, 100) == Status.SUBMITTED
    assert completion_status(Status.SUBMITTED, 86) == Status.DRAFT
    assert completion_status(Status.DRAFT, 57) == Status.DRAFT


@pytest.mark.parametrize("status", [Status.IN_PROGRESS, Status.VERIFIED, Status.REJECTED])
def test_completion_never_moves_admin_states(status):
    assert completion_status(status, 0) == status
    assert completion_status(status, 100) == status


def test_terminal_states():
    assert is_terminal(Status.VERIFIED)
    assert is_terminal(Status.REJECTED)
    assert not is_terminal(Status.IN_PROGRESS)


def test_admin_can_finalize_submitted_or_in_progress():
    assert ensure_admin_transition(Status.SUBMITTED, Status.VERIFIED) == Status.VERIFIED
    assert ensure_admin_transition(Status.IN_PROGRESS, Status.REJECTED) == Status.REJECTED
    assert ensure_admin_transition(Status.DRAFT, Status.IN_PROGRESS) == Status.IN_PROGRESS


@pytest.mark.parametrize("current,target", [
    (Status.DRAFT, Status.VERIFIED),
    (Status.VERIFIED, Status.REJECTED),
    (Status.REJECTED, Status.IN_PROGRESS),
])
def test_invalid_admin_transitions(current, target):
    with pytest.raises(InvalidTransitionError) as exc:
        ensure_admin_transition(current, target)
    assert exc.value.status_code == 409


def test_hold_and_pending_decisions_map_to_in_progress():
    assert DECISION_TO_TYPE_STATUS[KycDecision.HOLD] == TypeStatus.IN_PROGRESS
    assert DECISION_TO_TYPE_STATUS[KycDecision.PENDING] == TypeStatus.IN_PROGRESS
    assert record_status_for(TypeStatus.PENDING) is None
    assert record_status_for(TypeStatus.VERIFIED) == Status.VERIFIED


def test_parse_decision_and_user_status():
    assert parse_decision("VERIFIED") == KycDecision.VERIFIED
    assert parse_user_kyc_status("not_started") == KycStatus.NOT_STARTED
    with pytest.raises(ValidationError):
        parse_decision("approved")
    with pytest.raises(ValidationError):
        parse_user_kyc_status("maybe")
