"""
Status transitions of a verification record.

``overallStatus`` has two drivers. Completion moves a record between
DRAFT and SUBMITTED on every mutation. Admin decisions move it into
IN_PROGRESS, VERIFIED or REJECTED; the last two are terminal and are
never moved by completion again.
"""
from typing import Dict, FrozenSet, Optional

from kyc_workflow.core.errors import InvalidTransitionError, ValidationError
from kyc_workflow.schemas.enums import (
    KycDecision,
    KycStatus,
    TypeStatus,
    VerificationOverallStatus as Status,
    enum_text,
)

COMPLETION_DRIVEN: FrozenSet[Status] = frozenset({Status.DRAFT, Status.SUBMITTED})
TERMINAL: FrozenSet[Status] = frozenset({Status.VERIFIED, Status.REJECTED})

ADMIN_TRANSITIONS: Dict[Status, FrozenSet[Status]] = {
    Status.DRAFT: frozenset({Status.IN_PROGRESS}),
    Status.SUBMITTED: frozenset({Status.IN_PROGRESS, Status.VERIFIED, Status.REJECTED}),
    Status.IN_PROGRESS: frozenset({Status.IN_PROGRESS, Status.VERIFIED, Status.REJECTED}),
    Status.VERIFIED: frozenset(),
    Status.REJECTED: frozenset(),
}

# Admin decision -> status written into each type's verification_status
DECISION_TO_TYPE_STATUS: Dict[KycDecision, TypeStatus] = {
    KycDecision.VERIFIED: TypeStatus.VERIFIED,
    KycDecision.REJECTED: TypeStatus.REJECTED,
    KycDecision.PENDING: TypeStatus.IN_PROGRESS,
    KycDecision.HOLD: TypeStatus.IN_PROGRESS,
}

TYPE_STATUS_TO_RECORD_STATUS: Dict[TypeStatus, Optional[Status]] = {
    TypeStatus.PENDING: None,
    TypeStatus.IN_PROGRESS: Status.IN_PROGRESS,
    TypeStatus.VERIFIED: Status.VERIFIED,
    TypeStatus.REJECTED: Status.REJECTED,
}

USER_KYC_STATUSES = frozenset(status.value for status in KycStatus)


def completion_status(current: Status, completion_percentage: int) -> Status:
    """Status after a completion recompute; admin-owned states are kept."""
    current = Status(current)
    if current not in COMPLETION_DRIVEN:
        return current
    return Status.SUBMITTED if completion_percentage == 100 else Status.DRAFT


def is_terminal(status: Status) -> bool:
    return Status(status) in TERMINAL


def ensure_admin_transition(current: Status, target: Status) -> Status:
    current, target = Status(current), Status(target)
    if target not in ADMIN_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot move verification from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )
    return target


def record_status_for(type_status: TypeStatus) -> Optional[Status]:
    """Record level status implied by an admin type-level decision."""
    return TYPE_STATUS_TO_RECORD_STATUS[TypeStatus(type_status)]


def parse_decision(value: str) -> KycDecision:
    try:
        return KycDecision(enum_text(value).lower())
    except ValueError:
        allowed = ", ".join(d.value for d in KycDecision)
        raise ValidationError.for_field("status", f"Invalid decision '{value}'. Allowed: {allowed}")


def parse_user_kyc_status(value: str) -> KycStatus:
    if enum_text(value).lower() not in USER_KYC_STATUSES:
        allowed = ", ".join(sorted(USER_KYC_STATUSES))
        raise ValidationError.for_field("status", f"Invalid status. Must be one of: {allowed}")
    return KycStatus(enum_text(value).lower())
