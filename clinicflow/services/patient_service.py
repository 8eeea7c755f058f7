from datetime import datetime
from typing import Any, List, Optional
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.config.config import settings
from clinicflow.core.clock import Clock, IdGenerator
from clinicflow.core.exceptions import (
    ClinicFlowError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from clinicflow.core.resilience import retry_transient
from clinicflow.models.patient_model import Patient, Visit
from clinicflow.repositories.patient_repo import PatientRepository
from clinicflow.schemas.patient_schemas import (
    PatientCreateSchema,
    PatientStatus,
    can_transition,
)
from clinicflow.services.base import BaseService


REGISTERED_ACTION = "registered"


def status_change_action(status: PatientStatus) -> str:
    return f"status_changed_to_{PatientStatus(status).value}"


def parse_patient_status(value: Any) -> PatientStatus:
    try:
        return PatientStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in PatientStatus)
        raise ValidationError(
            f"Unknown patient status '{value}'. Expected one of: {allowed}"
        )


class PatientService(BaseService):
    """
    Patient workflow: registration, the status state machine and the visit
    audit trail.

    Every mutating operation appends a Visit entry in the same transaction as
    the change it records.
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
        strict_audit: Optional[bool] = None,
    ):
        super().__init__(db, clock, ids)
        self.repo = PatientRepository(self.db)
        self.strict_audit = settings.STRICT_AUDIT if strict_audit is None else strict_audit

    # ============= Registration =============
    @retry_transient
    async def register(self, patient_data: Any, actor_id: str) -> Patient:
        """Register a patient as ``waiting`` and log the ``registered`` visit."""
        data = self.validate_input(PatientCreateSchema, patient_data, "patient")
        actor_id = self.require_actor(actor_id)
        now = self.now()

        patient = Patient(
            **data.model_dump(),
            token=self.ids.new_patient_token(),
            status=PatientStatus.WAITING,
            created_at=now,
            created_by=actor_id,
        )

        async with self.unit_of_work("register_patient"):
            await self.repo.create_patient(patient)
            await self.append_visit(patient.id, actor_id, REGISTERED_ACTION, now)

        self.log_info(
            {
                "event": "patient_registered",
                "patient_id": str(patient.id),
                "token": patient.token,
                "created_by": actor_id,
            }
        )
        return patient

    # ============= Status Workflow =============
    @retry_transient
    async def update_status(
        self,
        patient_id: Any,
        new_status: Any,
        actor_id: str,
        expected_version: Optional[int] = None,
    ) -> Patient:
        """
        Move a patient to ``new_status``.

        A change to the current status is accepted and still logged.

        Raises:
            NotFoundError: unknown patient
            ValidationError: unknown status value
            InvalidTransitionError: target not allowed from the current status
            ConflictError: ``expected_version`` is stale
        """
        target = parse_patient_status(new_status)
        actor_id = self.require_actor(actor_id)
        pid = self.coerce_id(patient_id, "Patient")

        async with self.unit_of_work("update_patient_status"):
            patient = await self.load_patient(pid)
            previous = PatientStatus(patient.status)
            await self.apply_status_change(patient, target, actor_id, expected_version)

        self.log_info(
            {
                "event": "patient_status_updated",
                "patient_id": str(patient.id),
                "from": previous.value,
                "to": target.value,
                "updated_by": actor_id,
            }
        )
        return patient

    async def apply_status_change(
        self,
        patient: Patient,
        target: PatientStatus,
        actor_id: str,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Patient:
        """
        Apply a status change and its audit entry inside the caller's
        transaction. Does not commit.
        """
        if expected_version is not None and expected_version != patient.version:
            raise ConflictError(
                "Patient was modified by another user, reload and try again",
                details={"expected_version": expected_version, "current_version": patient.version},
            )

        current = PatientStatus(patient.status)
        if not can_transition(current, target):
            raise InvalidTransitionError("patient", current.value, target.value)

        now = now or self.now()
        patient.status = target
        patient.updated_at = now
        patient.updated_by = actor_id
        await self.repo.update_patient(patient)
        await self.append_visit(patient.id, actor_id, status_change_action(target), now)
        return patient

    # ============= Audit Trail =============
    async def append_visit(
        self,
        patient_id: uuid.UUID,
        actor_id: str,
        action: str,
        timestamp: Optional[datetime] = None,
    ) -> Optional[Visit]:
        """
        Append an audit entry in the current transaction.

        With strict auditing a failure fails the whole operation; otherwise
        the entry is written in a savepoint and a failure is only logged.
        """
        visit = Visit(
            patient_id=patient_id,
            user_id=actor_id,
            action=action,
            timestamp=timestamp or self.now(),
            sequence=self.ids.next_sequence(),
        )

        if self.strict_audit:
            return await self.repo.create_visit(visit)

        try:
            async with self.db.begin_nested():
                await self.repo.create_visit(visit)
            return visit
        except (ClinicFlowError, SQLAlchemyError) as e:
            self.log_error(
                {
                    "event": "visit_log_failed",
                    "patient_id": str(patient_id),
                    "action": action,
                    "error": str(e),
                }
            )
            return None

    @retry_transient
    async def get_history(self, patient_id: Any, oldest_first: bool = False) -> List[Visit]:
        """Visit entries for a patient, newest first unless ``oldest_first``."""
        pid = self.coerce_id(patient_id, "Patient")
        async with self.unit_of_work("get_patient_history", commit=False):
            await self.load_patient(pid)
            return await self.repo.get_patient_visits(pid, oldest_first=oldest_first)

    # ============= Queries =============
    @retry_transient
    async def list_patients(self, status: Any = None) -> List[Patient]:
        """All patients (or those with ``status``), newest first."""
        status_filter = parse_patient_status(status) if status is not None else None
        async with self.unit_of_work("list_patients", commit=False):
            return await self.repo.get_patients(status_filter)

    @retry_transient
    async def get_by_id(self, patient_id: Any) -> Optional[Patient]:
        """Return the patient or ``None`` when it does not exist."""
        try:
            pid = self.coerce_id(patient_id, "Patient")
        except NotFoundError:
            return None
        async with self.unit_of_work("get_patient", commit=False):
            return await self.repo.get_patient_by_id(pid)

    async def load_patient(self, patient_id: uuid.UUID) -> Patient:
        """Fetch a patient inside the current transaction or raise NotFoundError."""
        patient = await self.repo.get_patient_by_id(patient_id)
        if not patient:
            self.log_warning({"event": "patient_not_found", "patient_id": str(patient_id)})
            raise NotFoundError("Patient", patient_id)
        return patient
