"""Actor checks shared by every admin-gated workflow operation.

The auth layer has already verified the token; these helpers only look at
the role and id it handed over.
"""
from typing import Optional

from kyc_workflow.core.errors import AuthorizationError
from kyc_workflow.schemas.enums import KycStatus, UserRole


def ensure_admin(actor_role: Optional[str], action: str = "perform this action") -> None:
    if actor_role != UserRole.ADMIN.value:
        raise AuthorizationError(
            f"Admin role required to {action}",
            details={"required_role": UserRole.ADMIN.value, "actor_role": actor_role},
        )


def ensure_not_self_demotion(actor_id: str, target_user_id: str, new_role: str) -> None:
    if str(actor_id) == str(target_user_id) and new_role != UserRole.ADMIN.value:
        raise AuthorizationError(
            "Admins cannot change their own role away from admin",
            details={"reason": "self_demotion"},
        )


def ensure_owner_or_admin(actor_id: str, actor_role: Optional[str], owner_id: Optional[str]) -> None:
    if actor_role == UserRole.ADMIN.value:
        return
    if owner_id is not None and str(actor_id) != str(owner_id):
        raise AuthorizationError("You can only access your own records")


def ensure_can_work_on_verification(actor_id: str, actor_role: Optional[str], created_by: Optional[str]) -> None:
    """Admins and field verifiers work on any record, others only on their own."""
    if actor_role in (UserRole.ADMIN.value, UserRole.VERIFIER.value):
        return
    if created_by is not None and str(actor_id) != str(created_by):
        raise AuthorizationError("You can only work on verification records you created")


def ensure_not_self_lockout(actor_id: str, target_user_id: str, new_kyc_status: str) -> None:
    """An admin's own KYC status may only be set to verified; anything else blocks their login."""
    if str(actor_id) == str(target_user_id) and new_kyc_status != KycStatus.VERIFIED.value:
        raise AuthorizationError(
            "Admins cannot move their own KYC status away from verified",
            details={"reason": "self_lockout"},
        )


def ensure_not_self_delete(actor_id: str, target_user_id: str) -> None:
    if str(actor_id) == str(target_user_id):
        raise AuthorizationError("Admins cannot delete their own account", details={"reason": "self_delete"})
