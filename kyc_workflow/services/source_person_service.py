"""Source persons: referral contacts, unique by mobile number and by email."""
from typing import Any, Dict, Optional

from kyc_workflow.core.permissions import ensure_admin
from kyc_workflow.database.models.source_person_model import SourcePerson
from kyc_workflow.schemas.enums import RegistryStatus
from kyc_workflow.schemas.registry_schema import SourcePersonCreate, SourcePersonUpdate
from kyc_workflow.services.registry_service import RegistryService


class SourcePersonService(RegistryService):
    model = SourcePerson
    create_schema = SourcePersonCreate
    update_schema = SourcePersonUpdate
    label = "source person"
    audit_prefix = "source_person"
    unique_fields = {"mobile": "Mobile number already exists", "email": "Email already exists"}
    search_fields = ["name", "mobile", "email", "city", "state", "county"]
    required_fields = ["name", "mobile", "email", "city", "state", "county", "status"]

    def snapshot(self, entry: SourcePerson) -> Dict[str, Any]:
        data = super().snapshot(entry)
        data["full_address"] = entry.full_address
        return data

    async def statistics(self, actor_role: Optional[str]) -> Dict[str, Any]:
        ensure_admin(actor_role, "view source person statistics")
        persons = await SourcePerson.find_all().to_list()
        active = sum(1 for p in persons if p.status == RegistryStatus.ACTIVE)
        return {
            "total_persons": len(persons),
            "active_persons": active,
            "inactive_persons": len(persons) - active,
            "total_cities": len({p.city.lower() for p in persons}),
            "total_states": len({p.state.lower() for p in persons}),
        }


source_person_service = SourcePersonService()
