"""
Document registry: one DocumentRecord per user.

Every mutation follows the same path: load the record, change the source
lists, let ``apply_derived`` rewrite the derived fields, persist the whole
record with one revision-checked write, then queue a DOCUMENT_RECORD_UPDATED
notification. A write that loses to a concurrent one reloads and reapplies
the change.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from beanie.exceptions import RevisionIdWasChanged
from pymongo.errors import DuplicateKeyError

from kyc_workflow.core.errors import ConflictError, DependencyError, NotFoundError, ValidationError
from kyc_workflow.core.permissions import ensure_admin, ensure_owner_or_admin
from kyc_workflow.database.models.document_record_model import (
    DocumentEntry,
    DocumentRecord,
    HistoryEntry,
)
from kyc_workflow.schemas.enums import (
    DOCUMENT_TYPES_BY_CATEGORY,
    DocumentCategory,
    DocumentOverallStatus,
    EntryStatus,
    HistoryAction,
    enum_text,
)
from kyc_workflow.services.audit_service import audit_service
from kyc_workflow.services.notification_service import NotificationType, notification_service
from kyc_workflow.services.storage_service import storage_service

logger = logging.getLogger(__name__)

PENDING_REVIEW_STATUSES = [DocumentOverallStatus.PENDING.value, DocumentOverallStatus.UNDER_REVIEW.value]
MAX_WRITE_ATTEMPTS = 5
# returned by a change callback that found nothing to do
UNCHANGED = object()


def parse_category(category: str) -> DocumentCategory:
    try:
        return DocumentCategory(enum_text(category).lower())
    except ValueError:
        allowed = ", ".join(c.value for c in DocumentCategory)
        raise ValidationError.for_field("category", f"Invalid category '{category}'. Allowed: {allowed}")


def validate_document_type(category: DocumentCategory, document_type: str) -> str:
    enum_cls = DOCUMENT_TYPES_BY_CATEGORY[category]
    try:
        return enum_cls(enum_text(document_type).upper()).value
    except ValueError:
        allowed = ", ".join(t.value for t in enum_cls)
        raise ValidationError.for_field(
            "document_type", f"Invalid {category.value} document type '{document_type}'. Allowed: {allowed}"
        )


def record_snapshot(record: DocumentRecord) -> Dict[str, Any]:
    data = record.model_dump(mode="json", exclude={"verification_history", "revision_id"})
    data["id"] = str(record.id) if record.id else None
    return data


class DocumentRegistryService:

    async def _find(self, user_id: str) -> Optional[DocumentRecord]:
        return await DocumentRecord.find_one(DocumentRecord.user_id == str(user_id))

    async def get_record(self, user_id: str) -> DocumentRecord:
        record = await self._find(user_id)
        if record is None:
            raise NotFoundError("Document record not found", details={"user_id": str(user_id)})
        return record

    async def register_or_get(self, user_id: str) -> DocumentRecord:
        """Create the user's record if it does not exist yet."""
        record = await self._find(user_id)
        if record is not None:
            return record

        record = DocumentRecord(user_id=str(user_id))
        record.apply_derived()
        try:
            await record.insert()
            logger.info(f"Created document record for user {user_id}")
        except DuplicateKeyError:
            # created concurrently; the unique index decides
            record = await self._find(user_id)
            if record is None:
                raise
        return record

    async def _mutate(
        self,
        user_id: str,
        change: Callable[[DocumentRecord, datetime], Any],
        actor_id: str,
        create: bool = False,
    ) -> Tuple[DocumentRecord, Any]:
        """Apply ``change(record, now)`` and save it with a revision check.

        When another writer saved the record first, it is reloaded and
        ``change`` runs again, so ``change`` must only touch the record.
        Returning ``UNCHANGED`` from it skips the write.
        """
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            record = await (self.register_or_get(user_id) if create else self.get_record(user_id))
            previous_status = record.overall_status
            now = datetime.utcnow()
            outcome = change(record, now)
            if outcome is UNCHANGED:
                return record, outcome

            record.apply_derived(now=now)
            if record.overall_status != previous_status:
                record.add_history(HistoryEntry(
                    action=HistoryAction.STATUS_CHANGED,
                    performed_by=str(actor_id),
                    timestamp=now,
                    previous_status=DocumentOverallStatus(previous_status).value,
                    new_status=record.overall_status.value,
                ))
            record.updated_at = now
            try:
                await record.save()
            except RevisionIdWasChanged:
                logger.warning(f"Document record of user {user_id} changed concurrently (attempt {attempt}), reloading")
                continue

            snapshot = record_snapshot(record)
            notification_service.notify_user(record.user_id, NotificationType.DOCUMENT_RECORD_UPDATED, snapshot)
            notification_service.notify_admins(NotificationType.DOCUMENT_RECORD_UPDATED, snapshot)
            return record, outcome

        raise ConflictError(
            "Document record is being updated by another request, please retry",
            details={"user_id": str(user_id)},
        )

    async def _discard_file(self, url: str, actor_id: str, reason: str) -> None:
        """Delete a file no record points at any more; failures are audited for cleanup."""
        try:
            await storage_service.delete(url)
        except DependencyError as e:
            logger.error(f"Could not delete {reason} file {url}: {e.message}")
            await audit_service.record(
                action="orphaned_file",
                actor=str(actor_id),
                acted=url,
                status="failed",
                details={"reason": reason, "error": e.message},
            )

    async def add_document(
        self,
        user_id: str,
        category: str,
        entry: DocumentEntry,
        actor_id: Optional[str] = None,
    ) -> DocumentRecord:
        category = parse_category(category)
        entry.document_type = validate_document_type(category, entry.document_type)
        actor_id = actor_id or str(user_id)

        def change(record: DocumentRecord, now: datetime) -> Optional[DocumentEntry]:
            entries = record.entries_for(category)
            superseded = None
            if category == DocumentCategory.PERSONAL:
                for index, existing in enumerate(entries):
                    if existing.document_type == entry.document_type:
                        superseded = existing
                        entries[index] = entry
                        break
            if superseded is None:
                entries.append(entry)

            record.metadata.last_document_upload = now
            record.add_history(HistoryEntry(
                action=HistoryAction.DOCUMENT_UPLOADED,
                document_type=entry.document_type,
                entry_id=entry.entry_id,
                performed_by=str(actor_id),
                timestamp=now,
                notes=f"Replaced entry {superseded.entry_id}" if superseded else None,
            ))
            return superseded

        record, superseded = await self._mutate(user_id, change, actor_id, create=True)
        if superseded is not None and superseded.file_url != entry.file_url:
            await self._discard_file(superseded.file_url, actor_id, "superseded")
        return record

    async def upload_document(
        self,
        user_id: str,
        category: str,
        document_type: str,
        contents: bytes,
        filename: str,
        content_type: Optional[str],
        document_number: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        actor_id: Optional[str] = None,
    ) -> DocumentRecord:
        category = parse_category(category)
        document_type = validate_document_type(category, document_type)

        stored = await storage_service.save(contents, filename, content_type, folder=f"{user_id}/{category.value}")
        entry = DocumentEntry(
            document_type=document_type,
            document_number=document_number,
            file_url=stored.url,
            file_name=stored.file_name,
            size=stored.size,
            mime_type=stored.mime_type,
            extra=extra or {},
        )
        try:
            return await self.add_document(user_id, category, entry, actor_id=actor_id)
        except Exception:
            logger.error(f"Registering upload {stored.url} failed; removing stored file")
            try:
                await storage_service.delete(stored.url)
            except DependencyError as cleanup_error:
                logger.error(f"Cleanup of {stored.url} failed: {cleanup_error.message}")
            raise

    def _locate(self, record: DocumentRecord, category: DocumentCategory, entry_id: str) -> Tuple[int, DocumentEntry]:
        for index, entry in enumerate(record.entries_for(category)):
            if entry.entry_id == entry_id:
                return index, entry
        raise NotFoundError(
            "Document entry not found",
            details={"category": category.value, "entry_id": entry_id},
        )

    async def get_entry(self, user_id: str, category: str, entry_id: str) -> DocumentEntry:
        category = parse_category(category)
        record = await self.get_record(user_id)
        return self._locate(record, category, entry_id)[1]

    async def read_entry_file(self, user_id: str, category: str, entry_id: str) -> Tuple[DocumentEntry, bytes]:
        entry = await self.get_entry(user_id, category, entry_id)
        return entry, await storage_service.read(entry.file_url)

    async def delete_document_entry(
        self,
        user_id: str,
        category: str,
        entry_id: str,
        actor_id: str,
        actor_role: Optional[str] = None,
    ) -> DocumentRecord:
        """Remove one entry, then its file.

        The record is written first so it never points at a deleted file; a
        file that cannot be deleted afterwards is audited as orphaned.
        """
        ensure_owner_or_admin(actor_id, actor_role, user_id)
        category = parse_category(category)

        def change(record: DocumentRecord, now: datetime) -> DocumentEntry:
            index, entry = self._locate(record, category, entry_id)
            del record.entries_for(category)[index]
            record.add_history(HistoryEntry(
                action=HistoryAction.DOCUMENT_DELETED,
                document_type=entry.document_type,
                entry_id=entry.entry_id,
                performed_by=str(actor_id),
                timestamp=now,
            ))
            return entry

        record, removed = await self._mutate(user_id, change, actor_id)
        await self._discard_file(removed.file_url, actor_id, "deleted")
        return record

    async def verify_document_entry(
        self,
        user_id: str,
        category: str,
        entry_id: str,
        approved: bool,
        actor_id: str,
        actor_role: Optional[str],
        reason: Optional[str] = None,
    ) -> DocumentRecord:
        ensure_admin(actor_role, "verify documents")
        category = parse_category(category)
        if not approved and not reason:
            raise ValidationError.for_field("rejection_reason", "A reason is required when rejecting a document")

        def change(record: DocumentRecord, now: datetime) -> DocumentEntry:
            _, entry = self._locate(record, category, entry_id)
            previous_entry_status = entry.status
            entry.verified = approved
            entry.status = EntryStatus.APPROVED if approved else EntryStatus.REJECTED
            entry.rejection_reason = None if approved else reason
            entry.verified_by = str(actor_id)
            entry.verification_date = now
            record.metadata.last_verification_update = now
            record.add_history(HistoryEntry(
                action=HistoryAction.DOCUMENT_VERIFIED if approved else HistoryAction.DOCUMENT_REJECTED,
                document_type=entry.document_type,
                entry_id=entry.entry_id,
                performed_by=str(actor_id),
                timestamp=now,
                notes=reason,
                previous_status=EntryStatus(previous_entry_status).value,
                new_status=entry.status.value,
            ))
            return entry

        record, entry = await self._mutate(user_id, change, actor_id)
        await audit_service.record(
            action="document_verification",
            actor=str(actor_id),
            acted=entry.entry_id,
            details={"user_id": str(user_id), "category": category.value, "status": entry.status.value},
        )
        return record

    async def link_verification(self, user_id: str, verification_id: str, actor_id: Optional[str] = None) -> DocumentRecord:
        actor_id = actor_id or str(user_id)

        def change(record: DocumentRecord, now: datetime):
            if str(verification_id) in record.verifications:
                return UNCHANGED
            record.verifications.append(str(verification_id))
            record.add_history(HistoryEntry(
                action=HistoryAction.VERIFICATION_ADDED,
                performed_by=str(actor_id),
                timestamp=now,
                metadata={"verification_id": str(verification_id)},
            ))

        record, _ = await self._mutate(user_id, change, actor_id, create=True)
        return record

    async def unlink_verification(self, verification_id: str, actor_id: str) -> int:
        """Drop a deleted verification from every record that links it."""
        records = await DocumentRecord.find({"verifications": str(verification_id)}).to_list()

        def change(record: DocumentRecord, now: datetime):
            if str(verification_id) not in record.verifications:
                return UNCHANGED
            record.verifications = [v for v in record.verifications if v != str(verification_id)]

        for record in records:
            await self._mutate(record.user_id, change, actor_id)
        return len(records)

    async def get_status(self, user_id: str) -> Dict[str, Any]:
        record = await self.get_record(user_id)
        return {
            "user_id": record.user_id,
            "overall_status": record.overall_status.value,
            "completion_percentage": record.completion_percentage,
            "completion_steps": record.completion_steps.model_dump(),
            "verification_progress": record.verification_progress.model_dump(),
            "metadata": record.metadata.model_dump(mode="json"),
            "review_date": record.review_date.isoformat() if record.review_date else None,
            "next_review_date": record.next_review_date.isoformat() if record.next_review_date else None,
        }

    async def list_pending_review(self, actor_role: Optional[str], skip: int = 0, limit: int = 20) -> Dict[str, Any]:
        ensure_admin(actor_role, "list documents awaiting review")
        query = {"overall_status": {"$in": PENDING_REVIEW_STATUSES}}
        total = await DocumentRecord.find(query).count()
        records: List[DocumentRecord] = await (
            DocumentRecord.find(query).sort("+updated_at").skip(skip).limit(limit).to_list()
        )
        return {
            "data": [record_snapshot(r) for r in records],
            "total": total,
            "skip": skip,
            "limit": limit,
        }

    async def statistics(self, actor_role: Optional[str]) -> Dict[str, Any]:
        ensure_admin(actor_role, "view document statistics")
        pipeline = [
            {"$group": {
                "_id": "$overall_status",
                "count": {"$sum": 1},
                "total_documents": {"$sum": "$metadata.total_documents"},
                "verified_documents": {"$sum": "$metadata.verified_documents"},
                "rejected_documents": {"$sum": "$metadata.rejected_documents"},
            }},
        ]
        rows = await DocumentRecord.aggregate(pipeline).to_list()

        by_status = {status.value: 0 for status in DocumentOverallStatus}
        totals = {"total_documents": 0, "verified_documents": 0, "rejected_documents": 0}
        for row in rows:
            by_status[row["_id"]] = row["count"]
            for key in totals:
                totals[key] += row.get(key, 0)
        return {
            "total_records": sum(by_status.values()),
            "by_status": by_status,
            **totals,
        }


document_registry_service = DocumentRegistryService()
