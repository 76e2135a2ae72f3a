"""
Admin actions on users and verification records.

The account-level KYC gate on ``User`` and the per-record verification
status are separate state machines. ``decide`` routes a decision to one of
them based on the identifier it is given; neither one updates the other.
Notifications and emails are queued after the state change is stored.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from kyc_workflow.core.errors import ValidationError
from kyc_workflow.core.permissions import (
    ensure_admin,
    ensure_not_self_delete,
    ensure_not_self_demotion,
    ensure_not_self_lockout,
)
from kyc_workflow.database.models import DocumentRecord, User
from kyc_workflow.schemas.enums import KycStatus, UserRole, enum_text
from kyc_workflow.services.audit_service import audit_service
from kyc_workflow.services.auth_service import auth_service
from kyc_workflow.services.notification_service import NotificationType, notification_service
from kyc_workflow.services.sequence_service import DOCUMENT_NUMBER_PATTERN
from kyc_workflow.services.verification_service import record_snapshot, verification_service
from kyc_workflow.workflow.transitions import parse_user_kyc_status

logger = logging.getLogger(__name__)

KYC_EMAIL_TEMPLATES = {
    KycStatus.VERIFIED: "kyc_verified",
    KycStatus.REJECTED: "kyc_rejected",
    KycStatus.HOLD: "kyc_hold",
    KycStatus.PENDING: "kyc_pending",
}


class AdminService:

    async def decide(
        self,
        target: str,
        decision: str,
        actor_id: str,
        actor_role: Optional[str],
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Apply a KYC decision to a user id or a verification document number."""
        ensure_admin(actor_role, "make KYC decisions")
        if DOCUMENT_NUMBER_PATTERN.match(str(target)):
            record = await verification_service.decide_record(target, decision, actor_id, actor_role, reason=reason)
            return {"target": "verification", "verification": record_snapshot(record)}
        user = await self.decide_user_kyc(target, decision, actor_id, actor_role, reason=reason)
        return {"target": "user", "user": user}

    async def decide_user_kyc(
        self,
        user_id: str,
        status: str,
        actor_id: str,
        actor_role: Optional[str],
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        ensure_admin(actor_role, "update user verification")
        new_status = parse_user_kyc_status(status)
        ensure_not_self_lockout(actor_id, user_id, new_status.value)
        user = await auth_service.get_user_or_404(user_id)

        old_status = user.kyc_status
        user.kyc_status = new_status
        if new_status == KycStatus.VERIFIED:
            user.is_verified = True
        user.updated_at = datetime.utcnow()
        await user.save()
        logger.info(f"User {user_id} KYC status {KycStatus(old_status).value} -> {new_status.value}")

        await audit_service.record(
            action="kyc_decision",
            actor=str(actor_id),
            acted=str(user.id),
            details={"old_status": KycStatus(old_status).value, "new_status": new_status.value, "reason": reason},
        )

        payload = {
            "user": user.public_dict(),
            "old_status": KycStatus(old_status).value,
            "new_status": new_status.value,
            "updated_by": str(actor_id),
        }
        notification_service.notify_user(str(user.id), NotificationType.VERIFICATION_STATUS_UPDATE, payload)
        notification_service.notify_admins(NotificationType.USER_VERIFICATION_UPDATED, payload)

        template = KYC_EMAIL_TEMPLATES.get(new_status)
        if template:
            notification_service.queue_email(user.email, template, {
                "first_name": user.first_name,
                "reason": reason,
            })
        return user.public_dict()

    async def update_user_role(self, user_id: str, role: str, actor_id: str, actor_role: Optional[str]) -> Dict[str, Any]:
        ensure_admin(actor_role, "change user roles")
        try:
            new_role = UserRole(enum_text(role).lower())
        except ValueError:
            raise ValidationError.for_field("role", "Invalid role. Must be: user, contract, admin, or verifier")
        ensure_not_self_demotion(actor_id, user_id, new_role.value)

        user = await auth_service.get_user_or_404(user_id)
        actor = await auth_service.get_user_model(actor_id)
        old_role = user.role
        user.role = new_role
        user.updated_at = datetime.utcnow()
        await user.save()
        logger.info(f"User {user_id} role {UserRole(old_role).value} -> {new_role.value} by {actor_id}")

        await audit_service.record(
            action="role_update",
            actor=str(actor_id),
            acted=str(user.id),
            details={"old_role": UserRole(old_role).value, "new_role": new_role.value},
        )

        payload = {
            "user_id": str(user.id),
            "old_role": UserRole(old_role).value,
            "new_role": new_role.value,
            "updated_by": str(actor_id),
            "message": f"Your account role has been updated to {new_role.value.upper()}",
        }
        notification_service.notify_user(str(user.id), NotificationType.ROLE_UPDATED, payload)
        notification_service.notify_admins(NotificationType.ROLE_UPDATED, {
            **payload,
            "message": f"User {user.full_name} role changed from {UserRole(old_role).value} to {new_role.value}",
        })
        notification_service.queue_email(user.email, "role_changed", {
            "first_name": user.first_name,
            "old_role": UserRole(old_role).value,
            "new_role": new_role.value,
            "changed_by": actor.full_name if actor else str(actor_id),
        })
        return user.public_dict()

    async def delete_user(
        self,
        user_id: str,
        actor_id: str,
        actor_role: Optional[str],
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        ensure_admin(actor_role, "delete users")
        ensure_not_self_delete(actor_id, user_id)
        user = await auth_service.get_user_or_404(user_id)
        details = user.public_dict()

        await user.delete()
        logger.info(f"Deleted user {user_id}")

        await audit_service.record(action="user_delete", actor=str(actor_id), acted=str(user_id), details={"reason": reason})
        notification_service.notify_admins(NotificationType.USER_DELETED, {"user": details, "deleted_by": str(actor_id)})
        notification_service.queue_email(details["email"], "account_deleted", {
            "first_name": details["first_name"],
            "reason": reason,
        })
        return {"deleted": True, "user": details}

    async def list_users(
        self,
        actor_role: Optional[str],
        skip: int = 0,
        limit: int = 20,
        role: Optional[str] = None,
        kyc_status: Optional[str] = None,
    ) -> Dict[str, Any]:
        ensure_admin(actor_role, "list users")
        query: Dict[str, Any] = {}
        if role:
            query["role"] = role
        if kyc_status:
            query["kyc_status"] = kyc_status
        total = await User.find(query).count()
        users = await User.find(query).sort("-created_at").skip(skip).limit(limit).to_list()
        return {"data": [u.public_dict() for u in users], "total": total, "skip": skip, "limit": limit}

    async def get_user(self, user_id: str, actor_role: Optional[str]) -> Dict[str, Any]:
        ensure_admin(actor_role, "view users")
        user = await auth_service.get_user_or_404(user_id)
        data = user.public_dict()
        record = await DocumentRecord.find_one(DocumentRecord.user_id == str(user.id))
        data["document_status"] = record.overall_status.value if record else None
        return data


admin_service = AdminService()
