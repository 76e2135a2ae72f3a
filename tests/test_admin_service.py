import pytest

from kyc_workflow.core import decode_token, settings
from kyc_workflow.core.errors import AuthorizationError, ConflictError, LoginBlockedError, ValidationError
from kyc_workflow.database.models import AuditLog, User
from kyc_workflow.schemas.enums import KycStatus, UserRole
from kyc_workflow.schemas.user_schemas import UserCreate
from kyc_workflow.services.admin_service import admin_service
from kyc_workflow.services.auth_service import auth_service
from kyc_workflow.services.email_service import EmailResult, email_service
from kyc_workflow.services.verification_service import verification_service

PASSWORD = "s3cret-pass"


def signup(email="asha@example.com"):
    return UserCreate(email=email, password=PASSWORD, first_name="Asha", last_name="Rao", phone="9800000001")


async def make_admin(email="admin@example.com"):
    created = await auth_service.register_user(signup(email))
    admin = await User.get(created["id"])
    admin.role = UserRole.ADMIN
    admin.is_verified = True
    admin.kyc_status = KycStatus.VERIFIED
    await admin.save()
    return str(admin.id)


class FailingProvider:
    async def send(self, message):
        raise ConnectionError("SMTP server unreachable")


async def test_register_starts_pending_and_alerts_admins(db, queued_events):
    created = await auth_service.register_user(signup())

    assert created["kyc_status"] == "pending"
    assert created["is_verified"] is False
    assert created["role"] == "user"
    events = queued_events()
    assert ("NEW_USER_REGISTERED", "admins") in events
    assert ("admin_new_registration", settings.ADMIN_EMAIL) in events


async def test_duplicate_email_conflicts(db):
    await auth_service.register_user(signup())
    with pytest.raises(ConflictError):
        await auth_service.register_user(signup())


async def test_login_gate_order(db):
    created = await auth_service.register_user(signup())

    with pytest.raises(AuthorizationError) as exc:
        await auth_service.login_user("asha@example.com", "wrong-password")
    assert not isinstance(exc.value, LoginBlockedError)

    with pytest.raises(LoginBlockedError) as exc:
        await auth_service.login_user("asha@example.com", PASSWORD)
    assert exc.value.reason == "account_not_verified"

    user = await User.get(created["id"])
    user.is_verified = True
    user.kyc_status = KycStatus.HOLD
    await user.save()
    with pytest.raises(LoginBlockedError) as exc:
        await auth_service.login_user("asha@example.com", PASSWORD)
    assert exc.value.reason == "verification_on_hold"

    user.kyc_status = KycStatus.PENDING
    await user.save()
    gate = await auth_service.can_login(created["id"])
    assert gate["can_login"] is False
    assert "pending" in gate["reason"]


async def test_verified_status_without_verified_flag_cannot_log_in(db):
    created = await auth_service.register_user(signup())
    user = await User.get(created["id"])
    user.kyc_status = KycStatus.VERIFIED
    user.is_verified = False
    await user.save()

    with pytest.raises(LoginBlockedError) as exc:
        await auth_service.login_user("asha@example.com", PASSWORD)
    assert exc.value.reason == "account_not_verified"
    assert (await auth_service.can_login(created["id"]))["can_login"] is False


async def test_verified_decision_unlocks_login(db, outbox):
    admin_id = await make_admin()
    created = await auth_service.register_user(signup())

    user = await admin_service.decide(created["id"], "verified", admin_id, "admin")
    assert user["target"] == "user"
    assert user["user"]["is_verified"] is True

    token_data = await auth_service.login_user("asha@example.com", PASSWORD)
    payload = decode_token(token_data["access_token"])
    assert payload["sub"] == "asha@example.com"
    assert payload["role"] == "user"
    assert token_data["user"]["last_login"] is not None

    audit = await AuditLog.find_one({"action": "kyc_decision"})
    assert audit.acted == created["id"]
    assert audit.details["new_status"] == "verified"


async def test_decision_emails_are_sent_by_the_dispatcher(db, outbox, notifications):
    admin_id = await make_admin()
    created = await auth_service.register_user(signup())
    await notifications.drain()
    outbox.clear_sent_emails()

    await admin_service.decide_user_kyc(created["id"], "rejected", admin_id, "admin", reason="Blurry PAN")
    assert outbox.get_sent_emails() == []

    await notifications.drain()
    sent = outbox.get_sent_emails()
    assert len(sent) == 1
    assert sent[0]["to"] == ["asha@example.com"]
    assert "Blurry PAN" in sent[0]["text_body"]


async def test_email_failure_does_not_roll_back_decision(db, notifications):
    admin_id = await make_admin()
    created = await auth_service.register_user(signup())
    email_service.use_provider(FailingProvider())
    try:
        await admin_service.decide_user_kyc(created["id"], "hold", admin_id, "admin", reason="Address mismatch")
        await notifications.drain()
    finally:
        email_service.use_provider(None)

    user = await User.get(created["id"])
    assert user.kyc_status == KycStatus.HOLD


async def test_email_html_escapes_user_supplied_values(outbox):
    result = await email_service.send("admin@example.com", "admin_new_registration", {
        "first_name": "<img src=x onerror=alert(1)>",
        "last_name": "Rao",
        "email": "asha@example.com",
    })

    assert result.success is True
    html_body = outbox.get_sent_emails()[0]["html_body"]
    assert "<img" not in html_body
    assert "&lt;img src=x onerror=alert(1)&gt; Rao" in html_body
    assert "<img src=x onerror=alert(1)> Rao" in outbox.get_sent_emails()[0]["text_body"]


async def test_email_service_reports_failures_instead_of_raising():
    email_service.use_provider(FailingProvider())
    try:
        result = await email_service.send("asha@example.com", "kyc_verified", {"first_name": "Asha"})
    finally:
        email_service.use_provider(None)
    assert isinstance(result, EmailResult)
    assert result.success is False
    assert "unreachable" in result.error


async def test_invalid_user_status_is_rejected(db):
    admin_id = await make_admin()
    created = await auth_service.register_user(signup())
    with pytest.raises(ValidationError):
        await admin_service.decide_user_kyc(created["id"], "approved", admin_id, "admin")
    with pytest.raises(AuthorizationError):
        await admin_service.decide_user_kyc(created["id"], "verified", created["id"], "user")


async def test_admin_cannot_demote_self(db):
    admin_id = await make_admin()
    with pytest.raises(AuthorizationError):
        await admin_service.update_user_role(admin_id, "user", admin_id, "admin")


async def test_admin_cannot_lock_themselves_out(db):
    admin_id = await make_admin()
    for status in ("hold", "rejected", "pending"):
        with pytest.raises(AuthorizationError):
            await admin_service.decide(admin_id, status, admin_id, "admin")

    admin = await User.get(admin_id)
    assert admin.kyc_status == KycStatus.VERIFIED
    assert await auth_service.can_login(admin_id) == {"can_login": True, "reason": None}

    # confirming their own verified status changes nothing
    await admin_service.decide(admin_id, "verified", admin_id, "admin")


async def test_role_update_notifies_user_and_admins(db, outbox, notifications, queued_events):
    admin_id = await make_admin()
    created = await auth_service.register_user(signup())
    queued_events()

    user = await admin_service.update_user_role(created["id"], "VERIFIER", admin_id, "admin")

    assert user["role"] == "verifier"
    events = queued_events()
    assert ("ROLE_UPDATED", created["id"]) in events
    assert ("ROLE_UPDATED", "admins") in events
    assert ("role_changed", "asha@example.com") in events

    with pytest.raises(ValidationError):
        await admin_service.update_user_role(created["id"], "superuser", admin_id, "admin")


async def test_delete_user(db, queued_events):
    admin_id = await make_admin()
    created = await auth_service.register_user(signup())

    with pytest.raises(AuthorizationError):
        await admin_service.delete_user(admin_id, admin_id, "admin")
    assert await User.get(admin_id) is not None

    result = await admin_service.delete_user(created["id"], admin_id, "admin", reason="Duplicate account")
    assert result["deleted"] is True
    assert await User.get(created["id"]) is None
    events = queued_events()
    assert ("USER_DELETED", "admins") in events
    assert ("account_deleted", "asha@example.com") in events


async def test_list_users_filters_by_status(db):
    await make_admin()
    await auth_service.register_user(signup())
    await auth_service.register_user(signup("ravi@example.com"))

    listing = await admin_service.list_users("admin", kyc_status="pending")
    assert listing["total"] == 2
    with pytest.raises(AuthorizationError):
        await admin_service.list_users("user")


async def test_decide_routes_document_numbers_to_verification_records(db):
    admin_id = await make_admin()
    await verification_service.create_or_merge("003/15-10-2025", ["OFFICE_VERIFICATION"], "agent-1")

    outcome = await admin_service.decide("003/15-10-2025", "pending", admin_id, "admin")

    assert outcome["target"] == "verification"
    assert outcome["verification"]["overall_status"] == "IN_PROGRESS"
    assert outcome["verification"]["office_verification"]["verification_status"]["status"] == "IN_PROGRESS"
