from datetime import date, datetime
from enum import Enum
from typing import List, Optional
import uuid
from pydantic import BaseModel, field_validator


class PrescriptionStatus(str, Enum):
    ACTIVE = "active"


REQUIRED_MEDICATION_FIELDS = ("name", "dosage", "frequency", "duration")


# ============= Medication Schemas =============
class MedicationSchema(BaseModel):
    """
    One medication row from the prescription form.

    Rows may arrive partially filled; ``is_complete`` tells whether the row
    carries every required field.
    """

    name: Optional[str] = None
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    instructions: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    def is_complete(self) -> bool:
        return all(getattr(self, field) for field in REQUIRED_MEDICATION_FIELDS)


# ============= Prescription Schemas =============
class PrescriptionCreateSchema(BaseModel):
    """
    Schema for creating a prescription.

    Incomplete medication rows are dropped during validation; at least one
    complete row must remain.
    """

    diagnosis: str
    symptoms: str
    medications: List[MedicationSchema]
    lab_tests: Optional[str] = None
    notes: Optional[str] = None
    follow_up_date: Optional[date] = None

    @field_validator("diagnosis", "symptoms")
    @classmethod
    def validate_required_text(cls, v: str, info) -> str:
        if not v or not v.strip():
            raise ValueError(f"{info.field_name.capitalize()} is required")
        return v.strip()

    @field_validator("medications")
    @classmethod
    def keep_complete_medications(
        cls, v: List[MedicationSchema]
    ) -> List[MedicationSchema]:
        complete = [row for row in v if row.is_complete()]
        if not complete:
            raise ValueError(
                "At least one medication with name, dosage, frequency and duration is required"
            )
        return complete

    @field_validator("lab_tests", "notes", mode="before")
    @classmethod
    def strip_optional_text(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("follow_up_date", mode="before")
    @classmethod
    def blank_date_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class PrescriptionResponseSchema(BaseModel):
    """Schema for prescription response."""

    id: uuid.UUID
    patient_id: uuid.UUID
    doctor_id: str
    diagnosis: str
    symptoms: str
    medications: List[MedicationSchema]
    lab_tests: Optional[str] = None
    notes: Optional[str] = None
    follow_up_date: Optional[date] = None
    status: PrescriptionStatus
    created_at: datetime

    model_config = {"from_attributes": True}
