from typing import List, Optional
import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.resilience import guarded
from clinicflow.models.patient_model import Prescription


class PrescriptionRepository:
    """Repository layer for prescription data access."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_prescription(self, prescription: Prescription) -> Prescription:
        self.db.add(prescription)
        await guarded(self.db.flush(), "create_prescription")
        return prescription

    async def get_prescription_by_id(
        self, prescription_id: uuid.UUID
    ) -> Optional[Prescription]:
        result = await guarded(
            self.db.execute(select(Prescription).where(Prescription.id == prescription_id)),
            "get_prescription_by_id",
        )
        return result.scalars().first()

    async def get_patient_prescriptions(self, patient_id: uuid.UUID) -> List[Prescription]:
        """Prescriptions for a patient, newest first."""
        result = await guarded(
            self.db.execute(
                select(Prescription)
                .where(Prescription.patient_id == patient_id)
                .order_by(Prescription.created_at.desc())
            ),
            "get_patient_prescriptions",
        )
        return list(result.scalars().all())
