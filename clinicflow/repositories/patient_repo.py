from typing import List, Optional
import uuid
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.resilience import guarded
from clinicflow.models.patient_model import Patient, Visit
from clinicflow.schemas.patient_schemas import PatientStatus


class PatientRepository:
    """
    Repository layer for patient and visit data access.

    Methods flush but never commit: the calling service owns the
    transaction so a status change and its audit entry land together.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============= Patient Operations =============
    async def create_patient(self, patient: Patient) -> Patient:
        """Stage a new patient and flush to obtain its row."""
        self.db.add(patient)
        await guarded(self.db.flush(), "create_patient")
        return patient

    async def get_patient_by_id(self, patient_id: uuid.UUID) -> Optional[Patient]:
        result = await guarded(
            self.db.execute(select(Patient).where(Patient.id == patient_id)),
            "get_patient_by_id",
        )
        return result.scalars().first()

    async def get_patients(self, status: Optional[PatientStatus] = None) -> List[Patient]:
        """All patients, newest first, optionally filtered by status."""
        query = select(Patient)
        if status is not None:
            query = query.where(Patient.status == status)
        query = query.order_by(Patient.created_at.desc(), Patient.token.desc())

        result = await guarded(self.db.execute(query), "get_patients")
        return list(result.scalars().all())

    async def update_patient(self, patient: Patient) -> Patient:
        """Flush pending field changes; the version column guards the UPDATE."""
        self.db.add(patient)
        await guarded(self.db.flush(), "update_patient")
        return patient

    async def count_by_status(self) -> dict:
        result = await guarded(
            self.db.execute(
                select(Patient.status, func.count(Patient.id)).group_by(Patient.status)
            ),
            "count_by_status",
        )
        return {PatientStatus(status).value: count for status, count in result.all()}

    # ============= Visit Operations =============
    async def create_visit(self, visit: Visit) -> Visit:
        self.db.add(visit)
        await guarded(self.db.flush(), "create_visit")
        return visit

    async def get_patient_visits(
        self, patient_id: uuid.UUID, oldest_first: bool = False
    ) -> List[Visit]:
        """Audit trail for a patient, newest first unless ``oldest_first``."""
        query = select(Visit).where(Visit.patient_id == patient_id)
        if oldest_first:
            query = query.order_by(Visit.timestamp.asc(), Visit.sequence.asc())
        else:
            query = query.order_by(Visit.timestamp.desc(), Visit.sequence.desc())

        result = await guarded(self.db.execute(query), "get_patient_visits")
        return list(result.scalars().all())
