from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional
import uuid
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy import Enum as SQLEnum


class PatientStatus(str, Enum):
    """Patient visit pipeline status"""

    WAITING = "waiting"
    CONSULTED = "consulted"
    PRESCRIBED = "prescribed"
    COMPLETED = "completed"


class Gender(str, Enum):
    """Gender enumeration"""

    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


# ============= Status Transition Table =============
_ANY_STATUS: FrozenSet[PatientStatus] = frozenset(
    {
        PatientStatus.WAITING,
        PatientStatus.CONSULTED,
        PatientStatus.PRESCRIBED,
        PatientStatus.COMPLETED,
    }
)

PATIENT_STATUS_TRANSITIONS: Dict[PatientStatus, FrozenSet[PatientStatus]] = {
    PatientStatus.WAITING: _ANY_STATUS,
    PatientStatus.CONSULTED: _ANY_STATUS,
    PatientStatus.PRESCRIBED: _ANY_STATUS,
    # Terminal: only a repeated (logged) completion is accepted
    PatientStatus.COMPLETED: frozenset({PatientStatus.COMPLETED}),
}


def can_transition(current: PatientStatus, target: PatientStatus) -> bool:
    """Check the transition table for a patient status change."""
    return target in PATIENT_STATUS_TRANSITIONS[PatientStatus(current)]


# ============= Reusable SQL ENUM Types =============
patient_status_enum = SQLEnum(
    PatientStatus,
    name="patientstatus",
    values_callable=lambda members: [m.value for m in members],
    validate_strings=True,
)

gender_enum = SQLEnum(
    Gender,
    name="gender",
    values_callable=lambda members: [m.value for m in members],
    validate_strings=True,
)


def _clean_optional(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


# ============= Patient Schemas =============
class PatientCreateSchema(BaseModel):
    """Front-desk registration form."""

    name: str
    age: int
    gender: Gender
    phone: str
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    emergency_contact: Optional[str] = None
    medical_history: Optional[str] = None
    allergies: Optional[str] = None
    current_medications: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate name format."""
        if not v or not v.strip():
            raise ValueError("Name cannot be empty")

        v = v.strip()

        if len(v) > 255:
            raise ValueError("Name must be at most 255 characters long")

        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        """Phone is free text: short codes and local formats are accepted."""
        if not v or not v.strip():
            raise ValueError("Phone number is required")

        v = v.strip()

        if len(v) > 64:
            raise ValueError("Phone number must be at most 64 characters long")

        return v

    @field_validator("age")
    @classmethod
    def validate_age(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Age must be a positive integer")
        return v

    @field_validator("gender", mode="before")
    @classmethod
    def normalize_gender(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator(
        "address",
        "emergency_contact",
        "medical_history",
        "allergies",
        "current_medications",
    )
    @classmethod
    def strip_optional_text(cls, v: Optional[str]) -> Optional[str]:
        return _clean_optional(v)


class PatientStatusUpdateSchema(BaseModel):
    """Status change request from the doctor or front desk."""

    status: PatientStatus
    expected_version: Optional[int] = None


class PatientResponseSchema(BaseModel):
    """Schema for patient response."""

    id: uuid.UUID
    token: str
    name: str
    age: int
    gender: Gender
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    emergency_contact: Optional[str] = None
    medical_history: Optional[str] = None
    allergies: Optional[str] = None
    current_medications: Optional[str] = None
    status: PatientStatus
    created_at: datetime
    created_by: str
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    version: int
    links: Dict[str, str] = {}

    model_config = {"from_attributes": True}

    @classmethod
    def from_patient(cls, patient) -> "PatientResponseSchema":
        """Create schema including HATEOAS links."""
        base_id = str(patient.id)
        schema = cls.model_validate(patient)
        schema.links = {
            "self": f"/api/v1/patients/{base_id}",
            "update_status": f"/api/v1/patients/{base_id}/status",
            "history": f"/api/v1/patients/{base_id}/history",
            "prescriptions": f"/api/v1/patients/{base_id}/prescriptions",
            "bills": f"/api/v1/bills?patient_id={base_id}",
        }
        return schema


# ============= Visit (Audit) Schemas =============
class VisitResponseSchema(BaseModel):
    """One audit trail entry."""

    id: uuid.UUID
    patient_id: uuid.UUID
    user_id: str
    action: str
    timestamp: datetime

    model_config = {"from_attributes": True}


class PatientHistorySchema(BaseModel):
    patient_id: uuid.UUID
    visits: List[VisitResponseSchema]
