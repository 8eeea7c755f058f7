import uuid
from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.dependencies import get_clock, get_db, get_id_generator
from clinicflow.core.clock import Clock, IdGenerator
from clinicflow.core.permission_checker import require_clinic_staff, require_doctor
from clinicflow.schemas.auth_schemas import Actor
from clinicflow.schemas.prescription_schemas import (
    PrescriptionCreateSchema,
    PrescriptionResponseSchema,
)
from clinicflow.services.prescription_service import PrescriptionService
from clinicflow.core.utils import logger


router = APIRouter(prefix="/patients", tags=["prescriptions"])


@router.post(
    "/{patient_id}/prescriptions",
    response_model=PrescriptionResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def add_prescription(
    patient_id: uuid.UUID,
    prescription_data: PrescriptionCreateSchema,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    ids: IdGenerator = Depends(get_id_generator),
    actor: Actor = Depends(require_doctor()),
):
    """
    Record a prescription and move the patient to ``prescribed``.

    Medication rows missing name, dosage, frequency or duration are dropped;
    at least one complete row is required.

    Args:
        patient_id: Patient UUID
        prescription_data: Diagnosis, symptoms and medications
        db: Database session
        actor: Authenticated doctor or admin

    Returns:
        PrescriptionResponseSchema: Stored prescription
    """
    service = PrescriptionService(db, clock, ids)
    prescription = await service.add_prescription(patient_id, prescription_data, actor.user_id)

    logger.log_info(
        {
            "event": "prescription_created",
            "prescription_id": str(prescription.id),
            "patient_id": str(patient_id),
            "doctor_id": actor.user_id,
        }
    )
    return PrescriptionResponseSchema.model_validate(prescription)


@router.get(
    "/{patient_id}/prescriptions",
    response_model=List[PrescriptionResponseSchema],
)
async def list_patient_prescriptions(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_clinic_staff()),
):
    """Prescriptions for a patient, newest first."""
    service = PrescriptionService(db)
    prescriptions = await service.list_for_patient(patient_id)
    return [PrescriptionResponseSchema.model_validate(p) for p in prescriptions]
