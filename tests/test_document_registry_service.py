import pytest
from beanie.exceptions import RevisionIdWasChanged

from kyc_workflow.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from kyc_workflow.database.models import AuditLog, DocumentRecord
from kyc_workflow.schemas.enums import DocumentCategory, DocumentOverallStatus, EntryStatus, HistoryAction
from kyc_workflow.services.document_registry_service import (
    document_registry_service as registry,
    parse_category,
    validate_document_type,
)

USER = "user-1"
ADMIN = "admin-1"
PNG = b"\x89PNG\r\n\x1a\n" + b"0" * 32


async def upload(category, document_type, name="scan.png", user_id=USER):
    return await registry.upload_document(user_id, category, document_type, PNG, name, "image/png")


async def test_register_or_get_is_idempotent(db):
    first = await registry.register_or_get(USER)
    second = await registry.register_or_get(USER)
    assert first.id == second.id
    assert first.overall_status == DocumentOverallStatus.INCOMPLETE
    assert await DocumentRecord.find_all().count() == 1


async def test_personal_upload_replaces_same_type(db, storage):
    first = await upload("personal", "AADHAAR", "old.png")
    old_url = first.personal_documents[0].file_url

    record = await upload("personal", "aadhaar", "new.png")

    assert len(record.personal_documents) == 1
    assert record.personal_documents[0].file_name == "new.png"
    assert record.personal_documents[0].document_type == "AADHAAR"
    assert old_url not in storage.files
    assert record.verification_history[-1].notes.startswith("Replaced entry")


async def test_financial_uploads_append(db, storage):
    await upload("financial", "BANK_STATEMENT", "jan.png")
    record = await upload("financial", "BANK_STATEMENT", "feb.png")
    assert [e.file_name for e in record.financial_documents] == ["jan.png", "feb.png"]


async def test_unknown_document_type_is_rejected_before_storing(db, storage):
    with pytest.raises(ValidationError):
        await upload("address", "PAN")
    assert storage.files == {}
    with pytest.raises(ValidationError):
        await upload("medical", "XRAY")


async def test_upload_validates_file_type(db, storage):
    with pytest.raises(ValidationError):
        await registry.upload_document(USER, "personal", "PAN", b"hello", "notes.txt", "text/plain")
    assert storage.files == {}


async def test_completing_all_categories_moves_record_to_pending(db, storage):
    await upload("personal", "PAN")
    await upload("financial", "ITR")
    await upload("address", "UTILITY_BILL")
    record = await registry.link_verification(USER, "verification-1")

    assert record.completion_percentage == 100
    assert record.completion_steps.verifications is True
    assert record.overall_status == DocumentOverallStatus.PENDING
    assert record.review_date is not None
    assert record.next_review_date is None
    assert record.verification_history[-1].action == HistoryAction.STATUS_CHANGED


async def test_verify_entry_updates_progress_and_review_dates(db, storage):
    await upload("personal", "PAN")
    await upload("financial", "ITR")
    record = await upload("address", "UTILITY_BILL")
    await registry.link_verification(USER, "verification-1")
    entry_id = record.personal_documents[0].entry_id

    record = await registry.verify_document_entry(USER, "personal", entry_id, True, ADMIN, "admin")

    entry = record.personal_documents[0]
    assert entry.verified is True
    assert entry.status == EntryStatus.APPROVED
    assert entry.verified_by == ADMIN
    assert record.verification_progress.overall_percentage == 33
    assert record.overall_status == DocumentOverallStatus.UNDER_REVIEW
    assert record.next_review_date is not None
    assert record.metadata.verified_documents == 1


async def test_reject_requires_reason_and_admin(db, storage):
    record = await upload("personal", "PAN")
    entry_id = record.personal_documents[0].entry_id

    with pytest.raises(AuthorizationError):
        await registry.verify_document_entry(USER, "personal", entry_id, True, USER, "user")
    with pytest.raises(ValidationError):
        await registry.verify_document_entry(USER, "personal", entry_id, False, ADMIN, "admin")

    record = await registry.verify_document_entry(
        USER, "personal", entry_id, False, ADMIN, "admin", reason="Blurry scan"
    )
    assert record.personal_documents[0].status == EntryStatus.REJECTED
    assert record.personal_documents[0].rejection_reason == "Blurry scan"
    assert record.metadata.rejected_documents == 1


async def test_delete_entry_removes_file_and_recomputes(db, storage):
    record = await upload("personal", "PAN")
    entry = record.personal_documents[0]

    record = await registry.delete_document_entry(USER, "personal", entry.entry_id, USER, "user")

    assert record.personal_documents == []
    assert record.completion_steps.personal_documents is False
    assert entry.file_url not in storage.files
    assert record.verification_history[-1].action == HistoryAction.DOCUMENT_DELETED


async def test_delete_entry_survives_storage_outage_and_audits_orphan(db, storage):
    record = await upload("personal", "PAN")
    entry = record.personal_documents[0]
    storage.fail_deletes = True

    record = await registry.delete_document_entry(USER, "personal", entry.entry_id, USER, "user")

    assert record.personal_documents == []
    stored = await registry.get_record(USER)
    assert stored.personal_documents == []
    orphan = await AuditLog.find_one(AuditLog.action == "orphaned_file")
    assert orphan.acted == entry.file_url
    assert orphan.status == "failed"
    assert orphan.details["reason"] == "deleted"


async def test_failed_record_write_keeps_entry_and_file(db, storage, monkeypatch):
    record = await upload("personal", "PAN")
    entry = record.personal_documents[0]

    async def failing_save(self, *args, **kwargs):
        raise RuntimeError("write failed")

    monkeypatch.setattr(DocumentRecord, "save", failing_save)
    with pytest.raises(RuntimeError):
        await registry.delete_document_entry(USER, "personal", entry.entry_id, USER, "user")
    monkeypatch.undo()

    stored = await registry.get_record(USER)
    assert [e.entry_id for e in stored.personal_documents] == [entry.entry_id]
    assert entry.file_url in storage.files


async def test_delete_other_users_entry_is_forbidden(db, storage):
    record = await upload("personal", "PAN")
    with pytest.raises(AuthorizationError):
        await registry.delete_document_entry(
            USER, "personal", record.personal_documents[0].entry_id, "someone-else", "user"
        )


async def test_missing_entry_is_not_found(db, storage):
    await upload("personal", "PAN")
    with pytest.raises(NotFoundError):
        await registry.get_entry(USER, "personal", "nope")


async def test_mutations_queue_notifications_for_owner_and_admins(db, storage, queued_events):
    await upload("personal", "PAN")
    events = queued_events()
    assert ("DOCUMENT_RECORD_UPDATED", USER) in events
    assert ("DOCUMENT_RECORD_UPDATED", "admins") in events


async def test_statistics_and_pending_list(db, storage):
    await upload("personal", "PAN")
    await upload("financial", "ITR")
    await upload("address", "UTILITY_BILL")
    await registry.link_verification(USER, "verification-1")
    await upload("personal", "PAN", user_id="user-2")

    stats = await registry.statistics("admin")
    assert stats["total_records"] == 2
    assert stats["by_status"]["PENDING"] == 1
    assert stats["by_status"]["INCOMPLETE"] == 1
    assert stats["total_documents"] == 4

    pending = await registry.list_pending_review("admin")
    assert pending["total"] == 1
    assert pending["data"][0]["user_id"] == USER

    with pytest.raises(AuthorizationError):
        await registry.statistics("user")


async def test_category_accepts_enum_members(db, storage):
    assert parse_category(DocumentCategory.PERSONAL) == DocumentCategory.PERSONAL
    assert parse_category("Financial") == DocumentCategory.FINANCIAL
    assert validate_document_type(DocumentCategory.PERSONAL, "pan") == "PAN"

    record = await registry.upload_document(USER, DocumentCategory.ADDRESS, "UTILITY_BILL", PNG, "bill.png", "image/png")
    assert record.address_documents[0].document_type == "UTILITY_BILL"


async def test_stale_copy_cannot_overwrite_newer_record(db):
    await registry.register_or_get(USER)
    first = await registry.get_record(USER)
    second = await registry.get_record(USER)

    first.verifications.append("verification-1")
    await first.save()
    second.verifications.append("verification-2")
    with pytest.raises(RevisionIdWasChanged):
        await second.save()

    stored = await registry.get_record(USER)
    assert stored.verifications == ["verification-1"]


async def test_write_racing_another_request_is_reapplied(db, storage, monkeypatch):
    await upload("financial", "ITR", "first.png")
    real_get = type(registry).register_or_get
    raced = []

    async def get_then_race(user_id):
        record = await real_get(registry, user_id)
        if not raced:
            raced.append(True)
            # another request saves after this copy was read
            other = await DocumentRecord.find_one(DocumentRecord.user_id == USER)
            other.verifications.append("verification-9")
            await other.save()
        return record

    monkeypatch.setattr(registry, "register_or_get", get_then_race)
    record = await upload("financial", "ITR", "second.png")

    assert [e.file_name for e in record.financial_documents] == ["first.png", "second.png"]
    assert record.verifications == ["verification-9"]
    stored = await registry.get_record(USER)
    assert len(stored.financial_documents) == 2
    assert stored.verifications == ["verification-9"]


async def test_write_gives_up_with_conflict_after_repeated_races(db, storage, monkeypatch):
    record = await upload("personal", "PAN")
    entry = record.personal_documents[0]

    async def always_stale(self, *args, **kwargs):
        raise RevisionIdWasChanged()

    monkeypatch.setattr(DocumentRecord, "save", always_stale)
    with pytest.raises(ConflictError):
        await registry.delete_document_entry(USER, "personal", entry.entry_id, USER, "user")
    monkeypatch.undo()

    assert entry.file_url in storage.files
