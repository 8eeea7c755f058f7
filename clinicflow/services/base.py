from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional, Type, TypeVar
import uuid

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.clock import Clock, IdGenerator, SystemClock
from clinicflow.core.exceptions import (
    CommitOutcomeUnknownError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from clinicflow.core.resilience import guarded
from clinicflow.core.utils import LoggerMixin


SchemaT = TypeVar("SchemaT", bound=BaseModel)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BaseService(LoggerMixin):
    """
    Shared plumbing for the domain services.

    Each public operation runs inside :meth:`unit_of_work`: repositories only
    flush, and the service commits once at the end or rolls back on any
    failure, so no operation is ever half-applied.
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.ids = ids or IdGenerator(self.clock)

    @asynccontextmanager
    async def unit_of_work(self, operation: str, commit: bool = True) -> AsyncIterator[None]:
        try:
            yield
            if commit:
                try:
                    await guarded(self.db.commit(), f"{operation}.commit")
                except TransientError as e:
                    self.log_error(
                        {
                            "event": "commit_outcome_unknown",
                            "operation": operation,
                            "error": str(e),
                        }
                    )
                    raise CommitOutcomeUnknownError(
                        f"Store failed while committing '{operation}'; "
                        "reload before retrying",
                        details={"operation": operation},
                    ) from e
        except Exception:
            await self.db.rollback()
            raise

    def now(self) -> datetime:
        return as_utc(self.clock.now())

    # ============= Input Helpers =============
    @staticmethod
    def validate_input(schema_cls: Type[SchemaT], data: Any, what: str) -> SchemaT:
        """Validate a dict (or schema instance) into ``schema_cls``."""
        if isinstance(data, schema_cls):
            return data
        if isinstance(data, BaseModel):
            data = data.model_dump()
        try:
            return schema_cls.model_validate(data)
        except PydanticValidationError as e:
            errors = [
                {
                    "field": ".".join(str(part) for part in err["loc"]) or what,
                    "message": err["msg"],
                }
                for err in e.errors()
            ]
            summary = "; ".join(f"{err['field']}: {err['message']}" for err in errors)
            raise ValidationError(f"Invalid {what}: {summary}", details={"errors": errors}) from e

    @staticmethod
    def require_actor(actor_id: Any) -> str:
        if actor_id is None or not str(actor_id).strip():
            raise ValidationError("Acting user id is required")
        return str(actor_id).strip()

    @staticmethod
    def coerce_id(value: Any, entity: str) -> uuid.UUID:
        """Parse a record id; empty ids are invalid, unparseable ones unknown."""
        if isinstance(value, uuid.UUID):
            return value
        if value is None or not str(value).strip():
            raise ValidationError(f"{entity} id is required")
        try:
            return uuid.UUID(str(value).strip())
        except ValueError:
            raise NotFoundError(entity, value)
