from typing import Any, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.clock import Clock, IdGenerator
from clinicflow.core.exceptions import NotFoundError
from clinicflow.core.resilience import retry_transient
from clinicflow.models.patient_model import Prescription
from clinicflow.repositories.prescription_repo import PrescriptionRepository
from clinicflow.schemas.patient_schemas import PatientStatus
from clinicflow.schemas.prescription_schemas import (
    PrescriptionCreateSchema,
    PrescriptionStatus,
)
from clinicflow.services.base import BaseService
from clinicflow.services.patient_service import PatientService


PRESCRIBED_ACTION = "prescribed"


class PrescriptionService(BaseService):
    """Service layer for prescriptions written during a consultation."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
        workflow: Optional[PatientService] = None,
    ):
        super().__init__(db, clock, ids)
        self.repo = PrescriptionRepository(self.db)
        self.workflow = workflow or PatientService(self.db, self.clock, self.ids)

    @retry_transient
    async def add_prescription(
        self, patient_id: Any, draft: Any, doctor_id: str
    ) -> Prescription:
        """
        Store a prescription and advance the patient to ``prescribed``.

        Incomplete medication rows are dropped; at least one complete row is
        required. The prescription, the status change and both audit entries
        commit together or not at all.
        """
        data = self.validate_input(PrescriptionCreateSchema, draft, "prescription")
        doctor_id = self.require_actor(doctor_id)
        pid = self.coerce_id(patient_id, "Patient")

        async with self.unit_of_work("add_prescription"):
            patient = await self.workflow.load_patient(pid)
            now = self.now()

            prescription = Prescription(
                patient_id=pid,
                doctor_id=doctor_id,
                diagnosis=data.diagnosis,
                symptoms=data.symptoms,
                medications=[row.model_dump() for row in data.medications],
                lab_tests=data.lab_tests,
                notes=data.notes,
                follow_up_date=data.follow_up_date,
                status=PrescriptionStatus.ACTIVE.value,
                created_at=now,
            )
            await self.repo.create_prescription(prescription)
            await self.workflow.apply_status_change(
                patient, PatientStatus.PRESCRIBED, doctor_id, now=now
            )
            await self.workflow.append_visit(pid, doctor_id, PRESCRIBED_ACTION, now)

        self.log_info(
            {
                "event": "prescription_added",
                "prescription_id": str(prescription.id),
                "patient_id": str(pid),
                "medications": len(prescription.medications),
                "doctor_id": doctor_id,
            }
        )
        return prescription

    @retry_transient
    async def list_for_patient(self, patient_id: Any) -> List[Prescription]:
        """Prescriptions for a patient, newest first."""
        pid = self.coerce_id(patient_id, "Patient")
        async with self.unit_of_work("list_prescriptions", commit=False):
            await self.workflow.load_patient(pid)
            return await self.repo.get_patient_prescriptions(pid)

    @retry_transient
    async def get_prescription(self, prescription_id: Any) -> Optional[Prescription]:
        try:
            rid = self.coerce_id(prescription_id, "Prescription")
        except NotFoundError:
            return None
        async with self.unit_of_work("get_prescription", commit=False):
            return await self.repo.get_prescription_by_id(rid)
