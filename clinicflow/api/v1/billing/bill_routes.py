import traceback
import uuid
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.dependencies import get_clock, get_db, get_id_generator
from clinicflow.core.clock import Clock, IdGenerator
from clinicflow.core.exceptions import ClinicFlowError
from clinicflow.core.permission_checker import require_clinic_staff, require_front_desk
from clinicflow.schemas.auth_schemas import Actor
from clinicflow.schemas.billing_schemas import (
    BillCreateSchema,
    BillReportSchema,
    BillResponseSchema,
    BillStatus,
    BillStatusUpdateSchema,
)
from clinicflow.services.billing_service import BillingService
from clinicflow.core.utils import logger


router = APIRouter(prefix="/bills", tags=["bills"])


@router.post(
    "",
    response_model=BillResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def create_bill(
    bill_data: BillCreateSchema,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    ids: IdGenerator = Depends(get_id_generator),
    actor: Actor = Depends(require_front_desk()),
):
    """
    Create a pending bill from the selected services.

    Args:
        bill_data: Patient and selected services with their price snapshot
        db: Database session
        actor: Authenticated receptionist or admin

    Returns:
        BillResponseSchema: Created bill with its bill number and total
    """
    service = BillingService(db, clock, ids)
    try:
        bill = await service.create_bill(bill_data.patient_id, bill_data.services, actor.user_id)
        return BillResponseSchema.model_validate(bill)

    except (HTTPException, ClinicFlowError):
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "bill_creation_error",
                "patient_id": str(bill_data.patient_id),
                "error": str(e),
                "error_type": type(e).__name__,
                "traceback": traceback.format_exc(),
                "created_by": actor.user_id,
            }
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while creating bill",
        )


@router.get("", response_model=List[BillResponseSchema])
async def list_bills(
    patient_id: Optional[uuid.UUID] = Query(None),
    status_filter: Optional[BillStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_clinic_staff()),
):
    """Bills newest first, optionally for one patient or one status."""
    service = BillingService(db)
    bills = await service.list_bills(patient_id=patient_id, status=status_filter)
    return [BillResponseSchema.model_validate(b) for b in bills]


# Declared before "/{bill_id}" so "report" is not parsed as an id
@router.get("/report", response_model=BillReportSchema)
async def generate_bill_report(
    start: datetime = Query(..., description="Window start (inclusive)"),
    end: datetime = Query(..., description="Window end (inclusive)"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_front_desk()),
):
    """Bill counts and paid revenue for bills created in ``[start, end]``."""
    service = BillingService(db)
    report = await service.generate_report(start, end)

    logger.log_info(
        {
            "event": "bill_report_requested",
            "start": report["start"].isoformat(),
            "end": report["end"].isoformat(),
            "requested_by": actor.user_id,
        }
    )
    return BillReportSchema(
        **{key: value for key, value in report.items() if key != "bills"},
        bills=[BillResponseSchema.model_validate(b) for b in report["bills"]],
    )


@router.get("/{bill_id}", response_model=BillResponseSchema)
async def get_bill(
    bill_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_clinic_staff()),
):
    service = BillingService(db)
    return BillResponseSchema.model_validate(await service.get_bill(bill_id))


@router.patch("/{bill_id}/status", response_model=BillResponseSchema)
async def update_bill_status(
    bill_id: uuid.UUID,
    update_data: BillStatusUpdateSchema,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(require_front_desk()),
):
    """
    Mark a pending bill as paid or cancelled.

    Returns 409 if the bill is already settled or was changed since
    ``expected_version`` was read.
    """
    service = BillingService(db, clock)
    bill = await service.update_bill_status(
        bill_id,
        update_data.status,
        actor.user_id,
        expected_version=update_data.expected_version,
    )
    return BillResponseSchema.model_validate(bill)
