"""
Verification record lifecycle.

A record is keyed by its document number and can carry several
verification types. Creating a record for a number that already exists
merges the requested types into it; the unique index on
``document_number`` decides which caller created it, so there is no
check-then-insert window. Every later change, merges included, is a
revision-checked save that reloads and reapplies itself when another
request wrote the record first.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from beanie import PydanticObjectId
from beanie.exceptions import RevisionIdWasChanged
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import DuplicateKeyError

from kyc_workflow.core.errors import (
    ConflictError,
    DependencyError,
    InvalidTransitionError,
    NotFoundError,
    SequenceUnavailableError,
    ValidationError,
    pydantic_details,
)
from kyc_workflow.core.permissions import ensure_admin, ensure_can_work_on_verification, ensure_owner_or_admin
from kyc_workflow.database.models.verification_record_model import VerificationRecord
from kyc_workflow.schemas.enums import (
    KycDecision,
    TypeStatus,
    VerificationOverallStatus,
    VerificationType,
    enum_text,
)
from kyc_workflow.schemas.verification_forms import AdministrativeDetails, VerificationDocumentEntry
from kyc_workflow.services.audit_service import audit_service
from kyc_workflow.services.document_registry_service import document_registry_service
from kyc_workflow.services.notification_service import NotificationType, notification_service
from kyc_workflow.services.sequence_service import sequence_service, validate_document_number
from kyc_workflow.services.storage_service import storage_service
from kyc_workflow.workflow.transitions import (
    DECISION_TO_TYPE_STATUS,
    ensure_admin_transition,
    is_terminal,
    parse_decision,
    record_status_for,
)
from kyc_workflow.workflow.verification_steps import HANDLERS, handler_for

logger = logging.getLogger(__name__)

MAX_CREATE_ATTEMPTS = 3
MAX_WRITE_ATTEMPTS = 5
ADMINISTRATIVE_STEP = "administrative_details"
# set only through update_status
ADMIN_ONLY_STATUS_FIELDS = {"status", "verified_by", "verification_date"}


def parse_types(types) -> List[VerificationType]:
    if not types:
        raise ValidationError.for_field("verification_type", "At least one verification type is required")
    parsed: List[VerificationType] = []
    for value in types:
        try:
            verification_type = VerificationType(enum_text(value).upper())
        except ValueError:
            allowed = ", ".join(t.value for t in VerificationType)
            raise ValidationError.for_field(
                "verification_type", f"Invalid verification type '{value}'. Allowed: {allowed}"
            )
        if verification_type not in parsed:
            parsed.append(verification_type)
    return parsed


def record_snapshot(record: VerificationRecord) -> Dict[str, Any]:
    data = record.model_dump(mode="json", exclude={"revision_id"})
    data["id"] = str(record.id) if record.id else None
    return data


class VerificationService:

    async def get_by_number(self, document_number: str) -> VerificationRecord:
        record = await VerificationRecord.find_one(VerificationRecord.document_number == document_number)
        if record is None:
            raise NotFoundError("Verification record not found", details={"document_number": document_number})
        return record

    async def get_by_id(self, verification_id: str) -> VerificationRecord:
        try:
            object_id = PydanticObjectId(verification_id)
        except Exception:
            raise NotFoundError("Verification record not found", details={"id": verification_id})
        record = await VerificationRecord.get(object_id)
        if record is None:
            raise NotFoundError("Verification record not found", details={"id": verification_id})
        return record

    async def _insert_new(
        self,
        document_number: str,
        types: List[VerificationType],
        created_by: str,
        administrative_details: Optional[AdministrativeDetails],
    ) -> Optional[VerificationRecord]:
        """Insert a fresh record; ``None`` when the number is already taken."""
        record = VerificationRecord(
            document_number=document_number,
            verification_type=list(types),
            administrative_details=administrative_details or AdministrativeDetails(),
            created_by=str(created_by),
            updated_by=str(created_by),
        )
        record.apply_derived()
        try:
            await record.insert()
        except DuplicateKeyError:
            return None
        logger.info(f"Created verification record {document_number} with types {[t.value for t in types]}")
        return record

    async def _mutate(
        self,
        document_number: str,
        change: Callable[[VerificationRecord], Any],
        actor_id: str,
    ) -> Tuple[VerificationRecord, Any]:
        """Apply ``change(record)`` and save it with a revision check.

        A save that loses to a concurrent writer reloads the record and runs
        ``change`` again, so checks made inside ``change`` see fresh state.
        """
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            record = await self.get_by_number(document_number)
            outcome = change(record)
            record.apply_derived()
            record.updated_by = str(actor_id)
            record.updated_at = datetime.utcnow()
            try:
                await record.save()
            except RevisionIdWasChanged:
                logger.warning(f"Verification record {document_number} changed concurrently (attempt {attempt}), reloading")
                continue
            return record, outcome

        raise ConflictError(
            "Verification record is being updated by another request, please retry",
            details={"document_number": document_number},
        )

    async def _merge_types(
        self,
        document_number: str,
        types: List[VerificationType],
        actor_id: str,
        actor_role: Optional[str],
    ) -> VerificationRecord:
        def change(record: VerificationRecord) -> None:
            ensure_can_work_on_verification(actor_id, actor_role, record.created_by)
            for verification_type in types:
                if verification_type not in record.verification_type:
                    record.verification_type.append(verification_type)
            # empty forms only where a type has none; existing answers are kept
            record.ensure_forms()

        record, _ = await self._mutate(document_number, change, actor_id)
        logger.info(f"Merged types {[t.value for t in types]} into verification record {document_number}")
        return record

    async def create_or_merge(
        self,
        document_number: Optional[str],
        types,
        created_by: str,
        administrative_details: Optional[Dict[str, Any]] = None,
        link_user_id: Optional[str] = None,
        actor_role: Optional[str] = None,
    ) -> VerificationRecord:
        types = parse_types(types)
        if link_user_id:
            ensure_owner_or_admin(created_by, actor_role, link_user_id)
        details = None
        if administrative_details:
            try:
                details = AdministrativeDetails.model_validate(administrative_details)
            except PydanticValidationError as e:
                raise ValidationError("Invalid administrative details", details=pydantic_details(e, ADMINISTRATIVE_STEP))

        record: Optional[VerificationRecord] = None
        if document_number is None:
            for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
                candidate = await sequence_service.allocate()
                record = await self._insert_new(candidate, types, created_by, details)
                if record is not None:
                    break
                logger.warning(f"Generated document number {candidate} already in use (attempt {attempt})")
            if record is None:
                raise SequenceUnavailableError("Could not allocate an unused document number, please retry")
        else:
            validate_document_number(document_number)
            record = await self._insert_new(document_number, types, created_by, details)
            if record is None:
                record = await self._merge_types(document_number, types, created_by, actor_role)

        self._notify(record)
        if link_user_id:
            await document_registry_service.link_verification(link_user_id, str(record.id), actor_id=created_by)
        return record

    def _notify(self, record: VerificationRecord, status_update: bool = False) -> None:
        snapshot = record_snapshot(record)
        notification_service.notify_admins(NotificationType.VERIFICATION_RECORD_UPDATED, snapshot)
        if record.created_by:
            notification_service.notify_user(record.created_by, NotificationType.VERIFICATION_RECORD_UPDATED, snapshot)
            if status_update:
                notification_service.notify_user(record.created_by, NotificationType.VERIFICATION_STATUS_UPDATE, {
                    "document_number": record.document_number,
                    "overall_status": record.overall_status.value,
                    "types": {
                        t.value: getattr(record, HANDLERS[t].form_field).verification_status.status.value
                        for t in record.verification_type
                        if getattr(record, HANDLERS[t].form_field) is not None
                    },
                })

    def _merge_step(self, model, current, step_data: Dict[str, Any], field: str):
        merged = {**(current.model_dump() if current is not None else {}), **step_data}
        try:
            return model.model_validate(merged)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid data for step '{field}'", details=pydantic_details(e, field))

    async def update_step(
        self,
        document_number: str,
        verification_type: Optional[str],
        step_name: str,
        step_data: Dict[str, Any],
        actor_id: str,
        actor_role: Optional[str] = None,
    ) -> VerificationRecord:
        """Shallow-merge ``step_data`` into one step of one type's form."""
        if not isinstance(step_data, dict):
            raise ValidationError.for_field("step_data", "Step data must be an object")

        def change(record: VerificationRecord) -> None:
            ensure_can_work_on_verification(actor_id, actor_role, record.created_by)
            if step_name == ADMINISTRATIVE_STEP:
                record.administrative_details = self._merge_step(
                    AdministrativeDetails, record.administrative_details, step_data, step_name
                )
                return

            if not verification_type:
                raise ValidationError.for_field("verification_type", "Verification type is required for this step")
            target = parse_types([verification_type])[0]
            if target not in record.verification_type:
                raise ValidationError.for_field(
                    "verification_type",
                    f"{target.value} is not attached to record {document_number}",
                )
            handler = handler_for(target)
            model = handler.step_model(step_name)
            if model is None:
                allowed = ", ".join([ADMINISTRATIVE_STEP, *handler.step_models])
                raise ValidationError.for_field("step_name", f"Unknown step '{step_name}'. Allowed: {allowed}")
            if step_name == "verification_status" and ADMIN_ONLY_STATUS_FIELDS & set(step_data):
                raise ValidationError.for_field(
                    "verification_status.status", "Verification status is changed through the status update"
                )

            form = getattr(record, handler.form_field) or handler.new_form()
            setattr(form, step_name, self._merge_step(model, getattr(form, step_name), step_data, step_name))
            setattr(record, handler.form_field, form)

        record, _ = await self._mutate(document_number, change, actor_id)
        self._notify(record)
        return record

    async def add_document_file(
        self,
        document_number: str,
        file_entry: VerificationDocumentEntry,
        actor_id: str,
        actor_role: Optional[str] = None,
    ) -> VerificationRecord:
        def change(record: VerificationRecord) -> None:
            ensure_can_work_on_verification(actor_id, actor_role, record.created_by)
            record.documents.append(file_entry)

        record, _ = await self._mutate(document_number, change, actor_id)
        self._notify(record)
        return record

    async def upload_document_file(
        self,
        document_number: str,
        document_type: str,
        contents: bytes,
        filename: str,
        content_type: Optional[str],
        actor_id: str,
        actor_role: Optional[str] = None,
    ) -> VerificationRecord:
        record = await self.get_by_number(document_number)
        ensure_can_work_on_verification(actor_id, actor_role, record.created_by)

        folder = "verifications/" + document_number.replace("/", "_")
        stored = await storage_service.save(contents, filename, content_type, folder=folder)
        entry = VerificationDocumentEntry(
            document_type=document_type,
            file_url=stored.url,
            file_name=stored.file_name,
            file_size=stored.size,
            mime_type=stored.mime_type,
        )
        try:
            return await self.add_document_file(document_number, entry, actor_id, actor_role)
        except Exception:
            logger.error(f"Attaching {stored.url} to {document_number} failed; removing stored file")
            try:
                await storage_service.delete(stored.url)
            except DependencyError as cleanup_error:
                logger.error(f"Cleanup of {stored.url} failed: {cleanup_error.message}")
            raise

    async def update_status(
        self,
        document_number: str,
        new_status: str,
        actor_id: str,
        actor_role: Optional[str],
        verification_type: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> VerificationRecord:
        """Admin decision on one attached type, or on every type when none is given.

        A decision on every type is a record level decision and also moves
        ``overall_status``; a single-type decision only changes that type.
        """
        ensure_admin(actor_role, "change verification status")
        try:
            new_status = TypeStatus(enum_text(new_status).upper())
        except ValueError:
            allowed = ", ".join(s.value for s in TypeStatus)
            raise ValidationError.for_field("status", f"Invalid status '{new_status}'. Allowed: {allowed}")

        def change(record: VerificationRecord) -> Tuple[List[VerificationType], VerificationOverallStatus]:
            if is_terminal(record.overall_status):
                raise InvalidTransitionError(
                    f"Verification record {document_number} is already {record.overall_status.value}",
                    details={"from": record.overall_status.value, "to": new_status.value},
                )

            if verification_type:
                targets = parse_types([verification_type])
                if targets[0] not in record.verification_type:
                    raise ValidationError.for_field(
                        "verification_type",
                        f"{targets[0].value} is not attached to record {document_number}",
                    )
            else:
                targets = list(record.verification_type)

            target_record_status = None
            if not verification_type:
                target_record_status = record_status_for(new_status)
                if target_record_status is not None:
                    ensure_admin_transition(record.overall_status, target_record_status)

            previous_status = record.overall_status
            record.ensure_forms()
            now = datetime.utcnow()
            for target in targets:
                status = getattr(record, handler_for(target).form_field).verification_status
                status.status = new_status
                status.verified_by = str(actor_id)
                status.verification_date = now
            if target_record_status is not None:
                record.overall_status = target_record_status
            return targets, previous_status

        record, (targets, previous_status) = await self._mutate(document_number, change, actor_id)
        self._notify(record, status_update=True)
        await audit_service.record(
            action="verification_status_update",
            actor=str(actor_id),
            acted=document_number,
            details={
                "types": [t.value for t in targets],
                "status": new_status.value,
                "previous_overall_status": VerificationOverallStatus(previous_status).value,
                "overall_status": record.overall_status.value,
                "reason": reason,
            },
        )
        return record

    async def decide_record(
        self,
        document_number: str,
        decision: str,
        actor_id: str,
        actor_role: Optional[str],
        reason: Optional[str] = None,
    ) -> VerificationRecord:
        decision = parse_decision(decision)
        return await self.update_status(
            document_number,
            DECISION_TO_TYPE_STATUS[KycDecision(decision)].value,
            actor_id,
            actor_role,
            reason=reason,
        )

    async def delete(self, document_number: str, actor_id: str, actor_role: Optional[str]) -> Dict[str, Any]:
        ensure_admin(actor_role, "delete verification records")
        record = await self.get_by_number(document_number)
        verification_id = str(record.id)
        await record.delete()
        logger.info(f"Deleted verification record {document_number}")

        await document_registry_service.unlink_verification(verification_id, actor_id)
        notification_service.notify_admins(NotificationType.VERIFICATION_RECORD_UPDATED, {
            "document_number": document_number,
            "id": verification_id,
            "deleted": True,
        })
        await audit_service.record(action="verification_delete", actor=str(actor_id), acted=document_number)
        return {"document_number": document_number, "id": verification_id, "deleted": True}

    async def _page(self, query: Dict[str, Any], skip: int, limit: int) -> Dict[str, Any]:
        total = await VerificationRecord.find(query).count()
        records = await VerificationRecord.find(query).sort("-created_at").skip(skip).limit(limit).to_list()
        return {
            "data": [record_snapshot(r) for r in records],
            "total": total,
            "skip": skip,
            "limit": limit,
        }

    async def list_by_type(self, verification_type: str, skip: int = 0, limit: int = 20) -> Dict[str, Any]:
        verification_type = parse_types([verification_type])[0]
        return await self._page({"verification_type": verification_type.value}, skip, limit)

    async def list_by_creator(self, created_by: str, skip: int = 0, limit: int = 20) -> Dict[str, Any]:
        return await self._page({"created_by": str(created_by)}, skip, limit)

    async def statistics(self, actor_role: Optional[str]) -> Dict[str, Any]:
        ensure_admin(actor_role, "view verification statistics")
        pipeline = [
            {"$unwind": "$verification_type"},
            {"$group": {
                "_id": {"type": "$verification_type", "status": "$overall_status"},
                "count": {"$sum": 1},
            }},
        ]
        rows = await VerificationRecord.aggregate(pipeline).to_list()

        by_type = {
            t.value: {"total": 0, "verified": 0, "rejected": 0, "in_progress": 0}
            for t in VerificationType
        }
        for row in rows:
            bucket = by_type.setdefault(row["_id"]["type"], {"total": 0, "verified": 0, "rejected": 0, "in_progress": 0})
            status = row["_id"]["status"]
            bucket["total"] += row["count"]
            if status == VerificationOverallStatus.VERIFIED.value:
                bucket["verified"] += row["count"]
            elif status == VerificationOverallStatus.REJECTED.value:
                bucket["rejected"] += row["count"]
            elif status == VerificationOverallStatus.IN_PROGRESS.value:
                bucket["in_progress"] += row["count"]

        total_records = await VerificationRecord.find_all().count()
        return {"total_records": total_records, "by_type": by_type}

    async def completion(self, document_number: str) -> Dict[str, Any]:
        record = await self.get_by_number(document_number)
        return {
            "document_number": record.document_number,
            "completion_percentage": record.completion_percentage,
            "completion_steps": record.completion_steps.model_dump(),
            "overall_status": record.overall_status.value,
        }


verification_service = VerificationService()
