import logging
from typing import Optional, Dict, Any, List
from datetime import datetime

from kyc_workflow.database.models.audit_log_model import AuditLog
from kyc_workflow.helpers.response_builder import convert_objectid

logger = logging.getLogger(__name__)


class AuditService:
    """Create and read audit logs stored in MongoDB using Beanie."""

    async def create_audit(
        self,
        *,
        action: str,
        actor: Optional[str] = None,
        acted: Optional[str] = None,
        status: str = "successful",
        details: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ) -> AuditLog:
        audit = AuditLog(
            action=action,
            actor=actor,
            acted=acted,
            status=status,
            details=details,
            timestamp=timestamp or datetime.utcnow(),
        )
        try:
            await audit.insert()
        except Exception as e:
            logger.error(f"Failed to create audit log: {e}")
            raise
        return audit

    async def record(self, **kwargs) -> Optional[AuditLog]:
        """Write an audit entry without letting a failure reach the caller."""
        try:
            return await self.create_audit(**kwargs)
        except Exception:
            logger.exception("Failed to write %s audit log", kwargs.get("action"))
            return None

    async def get_audits(self, skip: int = 0, limit: int = 50, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if filters:
            for key in ("action", "actor", "acted", "status"):
                if filters.get(key):
                    query[key] = filters[key]
            ts_query = {}
            if filters.get("start_date"):
                ts_query["$gte"] = filters["start_date"]
            if filters.get("end_date"):
                ts_query["$lte"] = filters["end_date"]
            if ts_query:
                query["timestamp"] = ts_query

        try:
            total = await AuditLog.find(query).count()
            docs = await AuditLog.find(query).sort("-timestamp").skip(skip).limit(limit).to_list()
        except Exception as e:
            logger.error(f"Failed to query audit logs: {e}")
            raise

        results: List[Dict[str, Any]] = []
        for d in docs:
            results.append({
                "id": str(d.id),
                "action": d.action,
                "actor": d.actor,
                "acted": d.acted,
                "timestamp": d.timestamp.isoformat() if d.timestamp else None,
                "status": d.status,
                "details": convert_objectid(d.details),
            })

        return {"data": results, "total": total, "skip": skip, "limit": limit}


audit_service = AuditService()
