import traceback
import uuid
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.dependencies import get_clock, get_db, get_id_generator
from clinicflow.core.clock import Clock, IdGenerator
from clinicflow.core.exceptions import ClinicFlowError, NotFoundError
from clinicflow.core.permission_checker import require_clinic_staff, require_front_desk
from clinicflow.schemas.auth_schemas import Actor
from clinicflow.schemas.patient_schemas import (
    PatientCreateSchema,
    PatientHistorySchema,
    PatientResponseSchema,
    PatientStatus,
    PatientStatusUpdateSchema,
    VisitResponseSchema,
)
from clinicflow.services.patient_service import PatientService
from clinicflow.core.utils import logger


router = APIRouter(prefix="/patients", tags=["patients"])


# ============= Registration =============
@router.post(
    "",
    response_model=PatientResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def register_patient(
    patient_data: PatientCreateSchema,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    ids: IdGenerator = Depends(get_id_generator),
    actor: Actor = Depends(require_front_desk()),
):
    """
    Register a walk-in patient.

    The patient joins the queue as ``waiting`` with a fresh token.

    Args:
        patient_data: Patient registration data
        db: Database session
        actor: Authenticated receptionist or admin

    Returns:
        PatientResponseSchema: Registered patient
    """
    service = PatientService(db, clock, ids)
    try:
        patient = await service.register(patient_data, actor.user_id)
        return PatientResponseSchema.from_patient(patient)

    except (HTTPException, ClinicFlowError):
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "patient_registration_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "traceback": traceback.format_exc(),
                "created_by": actor.user_id,
            }
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while registering patient",
        )


# ============= Queries =============
@router.get("", response_model=List[PatientResponseSchema])
async def list_patients(
    status_filter: Optional[PatientStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_clinic_staff()),
):
    """List patients newest first, optionally only those in one status."""
    service = PatientService(db)
    patients = await service.list_patients(status_filter)
    return [PatientResponseSchema.from_patient(p) for p in patients]


@router.get("/{patient_id}", response_model=PatientResponseSchema)
async def get_patient(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_clinic_staff()),
):
    service = PatientService(db)
    patient = await service.get_by_id(patient_id)
    if not patient:
        raise NotFoundError("Patient", patient_id)
    return PatientResponseSchema.from_patient(patient)


@router.get("/{patient_id}/history", response_model=PatientHistorySchema)
async def get_patient_history(
    patient_id: uuid.UUID,
    oldest_first: bool = Query(False, description="Chronological order instead of newest first"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_clinic_staff()),
):
    """Audit trail of everything done to a patient."""
    service = PatientService(db)
    visits = await service.get_history(patient_id, oldest_first=oldest_first)
    return PatientHistorySchema(
        patient_id=patient_id,
        visits=[VisitResponseSchema.model_validate(v) for v in visits],
    )


# ============= Status Workflow =============
@router.patch("/{patient_id}/status", response_model=PatientResponseSchema)
async def update_patient_status(
    patient_id: uuid.UUID,
    update_data: PatientStatusUpdateSchema,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    ids: IdGenerator = Depends(get_id_generator),
    actor: Actor = Depends(require_clinic_staff()),
):
    """
    Move a patient through the visit pipeline.

    Returns 409 when the transition is not allowed or when
    ``expected_version`` no longer matches the stored record.
    """
    service = PatientService(db, clock, ids)
    try:
        patient = await service.update_status(
            patient_id,
            update_data.status,
            actor.user_id,
            expected_version=update_data.expected_version,
        )
        return PatientResponseSchema.from_patient(patient)

    except (HTTPException, ClinicFlowError):
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "patient_status_update_error",
                "patient_id": str(patient_id),
                "error": str(e),
                "error_type": type(e).__name__,
                "updated_by": actor.user_id,
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while updating patient status",
        )
