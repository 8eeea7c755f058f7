from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.dependencies import get_clock, get_db
from clinicflow.core.clock import Clock
from clinicflow.core.permission_checker import require_clinic_staff
from clinicflow.schemas.auth_schemas import Actor
from clinicflow.schemas.dashboard_schemas import DashboardStatsSchema
from clinicflow.services.dashboard_service import DashboardService


router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStatsSchema)
async def get_dashboard_stats(
    day: Optional[date] = Query(None, description="UTC day, defaults to today"),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(require_clinic_staff()),
):
    """
    Dashboard counters.

    Returns the number of patients in each pipeline status together with
    the bills created on ``day`` and their paid revenue.
    """
    service = DashboardService(db, clock)
    stats = await service.get_stats(day)
    return DashboardStatsSchema(**stats)
