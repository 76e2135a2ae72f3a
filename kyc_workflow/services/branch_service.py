"""Branches with their verification fee schedule and GST registration."""
from typing import Any, Dict, Optional

from kyc_workflow.core.errors import NotFoundError
from kyc_workflow.core.permissions import ensure_admin
from kyc_workflow.database.models.branch_model import Branch
from kyc_workflow.schemas.enums import RegistryStatus
from kyc_workflow.schemas.registry_schema import BranchCreate, BranchUpdate
from kyc_workflow.services.registry_service import RegistryService


class BranchService(RegistryService):
    model = Branch
    create_schema = BranchCreate
    update_schema = BranchUpdate
    label = "branch"
    audit_prefix = "branch"
    unique_fields = {"code": "Branch code already exists", "gst": "GST number already exists"}
    search_fields = ["branch_name", "code", "gst"]
    required_fields = ["branch_name", "code", "local", "non_local", "gst", "status"]

    def snapshot(self, entry: Branch) -> Dict[str, Any]:
        data = super().snapshot(entry)
        data["total_amount"] = entry.total_amount
        return data

    async def get_by_code(self, code: str) -> Branch:
        code = code.strip().upper()
        branch = await Branch.find_one(Branch.code == code)
        if branch is None:
            raise NotFoundError("Branch not found", details={"code": code})
        return branch

    async def statistics(self, actor_role: Optional[str]) -> Dict[str, Any]:
        ensure_admin(actor_role, "view branch statistics")
        branches = await Branch.find_all().to_list()
        active = [b for b in branches if b.status == RegistryStatus.ACTIVE]
        return {
            "total_branches": len(branches),
            "active_branches": len(active),
            "inactive_branches": len(branches) - len(active),
            "total_local": sum(b.local for b in branches),
            "total_non_local": sum(b.non_local for b in branches),
            "total_amount": sum(b.total_amount for b in branches),
        }


branch_service = BranchService()
