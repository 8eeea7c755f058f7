import uuid
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.dependencies import get_clock, get_db
from clinicflow.core.clock import Clock
from clinicflow.core.permission_checker import require_clinic_staff, require_front_desk
from clinicflow.schemas.auth_schemas import Actor
from clinicflow.schemas.billing_schemas import ServiceCreateSchema, ServiceResponseSchema
from clinicflow.services.catalog_service import CatalogService


router = APIRouter(prefix="/services", tags=["services"])


@router.post(
    "",
    response_model=ServiceResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def add_service(
    service_data: ServiceCreateSchema,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(require_front_desk()),
):
    """Add a billable service to the catalog."""
    service = CatalogService(db, clock)
    created = await service.add_service(service_data, actor.user_id)
    return ServiceResponseSchema.model_validate(created)


@router.get("", response_model=List[ServiceResponseSchema])
async def list_active_services(
    category: Optional[str] = Query(None, description="Category filter, or 'all'"),
    search: Optional[str] = Query(None, description="Case-insensitive name/description match"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_clinic_staff()),
):
    """Active services ordered by name."""
    service = CatalogService(db)
    services = await service.list_active_services(category=category, search=search)
    return [ServiceResponseSchema.model_validate(s) for s in services]


@router.get("/{service_id}", response_model=ServiceResponseSchema)
async def get_service(
    service_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_clinic_staff()),
):
    service = CatalogService(db)
    return ServiceResponseSchema.model_validate(await service.get_service(service_id))


@router.post("/{service_id}/deactivate", response_model=ServiceResponseSchema)
async def deactivate_service(
    service_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_front_desk()),
):
    """Withdraw a service from the catalog; existing bills are unaffected."""
    service = CatalogService(db)
    deactivated = await service.deactivate_service(service_id, actor.user_id)
    return ServiceResponseSchema.model_validate(deactivated)
