"""
Admin-maintained reference registries (branches, source persons).

Each registry has a few fields that must be unique. A lookup before the
write gives a field-specific ``ConflictError``; the unique indexes still
decide when two requests race, and a ``DuplicateKeyError`` from them is
reported the same way.
"""
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Type

from beanie import Document, PydanticObjectId
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import DuplicateKeyError

from kyc_workflow.core.errors import ConflictError, NotFoundError, ValidationError, pydantic_details
from kyc_workflow.core.permissions import ensure_admin
from kyc_workflow.schemas.enums import RegistryStatus, enum_text
from kyc_workflow.services.audit_service import audit_service

logger = logging.getLogger(__name__)


def parse_registry_status(status) -> RegistryStatus:
    text = enum_text(status).strip().lower()
    for member in RegistryStatus:
        if member.value.lower() == text:
            return member
    allowed = ", ".join(s.value for s in RegistryStatus)
    raise ValidationError.for_field("status", f"Invalid status '{status}'. Allowed: {allowed}")


class RegistryService:
    model: Type[Document]
    create_schema: Type[BaseModel]
    update_schema: Type[BaseModel]
    label: str
    audit_prefix: str
    # field -> message raised when another entry already holds the value
    unique_fields: Dict[str, str] = {}
    search_fields: List[str] = []
    # fields that may not be cleared by an update
    required_fields: List[str] = []

    def snapshot(self, entry: Document) -> Dict[str, Any]:
        data = entry.model_dump(mode="json", exclude={"revision_id"})
        data["id"] = str(entry.id) if entry.id else None
        return data

    def _parse(self, schema: Type[BaseModel], data) -> BaseModel:
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_unset=True)
        try:
            return schema.model_validate(data or {})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid {self.label} details", details=pydantic_details(e))

    async def _ensure_unique(self, values: Dict[str, Any], exclude_id=None) -> None:
        for field, message in self.unique_fields.items():
            if values.get(field) is None:
                continue
            query: Dict[str, Any] = {field: values[field]}
            if exclude_id is not None:
                query["_id"] = {"$ne": exclude_id}
            if await self.model.find_one(query) is not None:
                raise ConflictError(message, details={"field": field, "value": values[field]})

    def _duplicate(self, values: Dict[str, Any]) -> ConflictError:
        fields = [f for f in self.unique_fields if values.get(f) is not None]
        return ConflictError(
            f"A {self.label} with the same {' or '.join(fields)} already exists",
            details={f: values[f] for f in fields},
        )

    async def get(self, entry_id: str) -> Document:
        try:
            object_id = PydanticObjectId(entry_id)
        except Exception:
            raise NotFoundError(f"{self.label.capitalize()} not found", details={"id": entry_id})
        entry = await self.model.get(object_id)
        if entry is None:
            raise NotFoundError(f"{self.label.capitalize()} not found", details={"id": entry_id})
        return entry

    async def create(self, data, actor_id: str, actor_role: Optional[str]) -> Document:
        ensure_admin(actor_role, f"register a {self.label}")
        values = self._parse(self.create_schema, data).model_dump()
        await self._ensure_unique(values)

        entry = self.model(**values)
        try:
            await entry.insert()
        except DuplicateKeyError:
            raise self._duplicate(values)
        logger.info(f"Registered {self.label} {entry.id}")
        await audit_service.record(action=f"{self.audit_prefix}_create", actor=str(actor_id), acted=str(entry.id))
        return entry

    async def update(self, entry_id: str, data, actor_id: str, actor_role: Optional[str]) -> Document:
        ensure_admin(actor_role, f"update a {self.label}")
        changes = self._parse(self.update_schema, data).model_dump(exclude_unset=True)
        for field in self.required_fields:
            if field in changes and changes[field] is None:
                raise ValidationError.for_field(field, f"{field} cannot be cleared")

        entry = await self.get(entry_id)
        moved = {f: changes[f] for f in self.unique_fields if f in changes and changes[f] != getattr(entry, f)}
        await self._ensure_unique(moved, exclude_id=entry.id)

        for field, value in changes.items():
            setattr(entry, field, value)
        entry.updated_at = datetime.utcnow()
        try:
            await entry.save()
        except DuplicateKeyError:
            raise self._duplicate(moved)
        await audit_service.record(
            action=f"{self.audit_prefix}_update",
            actor=str(actor_id),
            acted=str(entry.id),
            details={"fields": sorted(changes)},
        )
        return entry

    async def delete(self, entry_id: str, actor_id: str, actor_role: Optional[str]) -> Dict[str, Any]:
        ensure_admin(actor_role, f"delete a {self.label}")
        entry = await self.get(entry_id)
        await entry.delete()
        logger.info(f"Deleted {self.label} {entry_id}")
        await audit_service.record(action=f"{self.audit_prefix}_delete", actor=str(actor_id), acted=str(entry_id))
        return {"id": str(entry_id), "deleted": True}

    def _filters(self, search: Optional[str], status: Optional[str], **extra: Optional[str]) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if search:
            pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
            query["$or"] = [{field: pattern} for field in self.search_fields]
        if status:
            query["status"] = parse_registry_status(status).value
        for field, value in extra.items():
            if value:
                query[field] = {"$regex": re.escape(value.strip()), "$options": "i"}
        return query

    async def list(
        self,
        skip: int = 0,
        limit: int = 20,
        search: Optional[str] = None,
        status: Optional[str] = None,
        **extra: Optional[str],
    ) -> Dict[str, Any]:
        query = self._filters(search, status, **extra)
        total = await self.model.find(query).count()
        entries = await self.model.find(query).sort("-created_at").skip(skip).limit(limit).to_list()
        return {
            "data": [self.snapshot(e) for e in entries],
            "total": total,
            "skip": skip,
            "limit": limit,
        }
