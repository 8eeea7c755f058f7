from enum import Enum

from pydantic import BaseModel, field_validator


class ActorRole(str, Enum):
    """Roles issued by the identity provider."""

    RECEPTIONIST = "receptionist"
    DOCTOR = "doctor"
    ADMIN = "admin"


class Actor(BaseModel):
    """The authenticated user performing a request."""

    user_id: str
    role: ActorRole

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Actor id cannot be empty")
        return v.strip()

    model_config = {"frozen": True}
