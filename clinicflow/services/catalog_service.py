from typing import Any, List, Optional

from clinicflow.core.exceptions import NotFoundError, ValidationError
from clinicflow.core.resilience import retry_transient
from clinicflow.models.billing_model import Service
from clinicflow.repositories.billing_repo import BillingRepository
from clinicflow.schemas.billing_schemas import (
    ServiceCategory,
    ServiceCreateSchema,
    ServiceStatus,
)
from clinicflow.services.base import BaseService


def parse_category_filter(value: Any) -> Optional[ServiceCategory]:
    if value is None or value == "" or value == "all":
        return None
    try:
        return ServiceCategory(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(c.value for c in ServiceCategory)
        raise ValidationError(f"Unknown service category '{value}'. Expected one of: {allowed}")


class CatalogService(BaseService):
    """Priced, categorized services available for billing."""

    def __init__(self, db, clock=None, ids=None):
        super().__init__(db, clock, ids)
        self.repo = BillingRepository(self.db)

    @retry_transient
    async def add_service(self, service_draft: Any, actor_id: str) -> Service:
        """Add an ``active`` service; unknown categories become uncategorized."""
        data = self.validate_input(ServiceCreateSchema, service_draft, "service")
        actor_id = self.require_actor(actor_id)

        service = Service(
            name=data.name,
            description=data.description,
            price=data.price,
            category=data.category,
            status=ServiceStatus.ACTIVE,
            created_at=self.now(),
            created_by=actor_id,
        )

        async with self.unit_of_work("add_service"):
            await self.repo.create_service(service)

        self.log_info(
            {
                "event": "service_added",
                "service_id": str(service.id),
                "service_name": service.name,
                "created_by": actor_id,
            }
        )
        return service

    @retry_transient
    async def list_active_services(
        self, category: Any = None, search: Optional[str] = None
    ) -> List[Service]:
        """Active services ordered by name, optionally filtered."""
        category_filter = parse_category_filter(category)
        search = search.strip() if search else None
        async with self.unit_of_work("list_active_services", commit=False):
            return await self.repo.get_active_services(category_filter, search or None)

    @retry_transient
    async def get_service(self, service_id: Any) -> Service:
        sid = self.coerce_id(service_id, "Service")
        async with self.unit_of_work("get_service", commit=False):
            service = await self.repo.get_service_by_id(sid)
        if not service:
            raise NotFoundError("Service", sid)
        return service

    @retry_transient
    async def deactivate_service(self, service_id: Any, actor_id: str) -> Service:
        """Soft-deactivate a service. Existing bills keep their snapshot."""
        actor_id = self.require_actor(actor_id)
        sid = self.coerce_id(service_id, "Service")

        async with self.unit_of_work("deactivate_service"):
            service = await self.repo.get_service_by_id(sid)
            if not service:
                raise NotFoundError("Service", sid)
            service.status = ServiceStatus.INACTIVE
            await self.repo.update_service(service)

        self.log_info(
            {
                "event": "service_deactivated",
                "service_id": str(sid),
                "deactivated_by": actor_id,
            }
        )
        return service
