from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, List, Optional
import uuid
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import Enum as SQLEnum


class ServiceCategory(str, Enum):
    """Catalog categories shown on the billing screen"""

    CONSULTATION = "consultation"
    TREATMENT = "treatment"
    DIAGNOSTIC = "diagnostic"
    MEDICINE = "medicine"
    UNCATEGORIZED = "uncategorized"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ServiceCategory":
        """Map free-form input onto a category, defaulting to uncategorized."""
        if isinstance(value, cls):
            return value
        if value:
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.UNCATEGORIZED


class ServiceStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class BillStatus(str, Enum):
    """Bill payment status"""

    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


BILL_STATUS_TRANSITIONS: Dict[BillStatus, FrozenSet[BillStatus]] = {
    BillStatus.PENDING: frozenset({BillStatus.PAID, BillStatus.CANCELLED}),
    BillStatus.PAID: frozenset(),
    BillStatus.CANCELLED: frozenset(),
}

TERMINAL_BILL_STATUSES: FrozenSet[BillStatus] = frozenset(
    status for status, targets in BILL_STATUS_TRANSITIONS.items() if not targets
)


# ============= Reusable SQL ENUM Types =============
def _values(members):
    return [m.value for m in members]


service_category_enum = SQLEnum(
    ServiceCategory, name="servicecategory", values_callable=_values, validate_strings=True
)
service_status_enum = SQLEnum(
    ServiceStatus, name="servicestatus", values_callable=_values, validate_strings=True
)
bill_status_enum = SQLEnum(
    BillStatus, name="billstatus", values_callable=_values, validate_strings=True
)


def _validate_price(v: Decimal) -> Decimal:
    if not v.is_finite():
        raise ValueError("Price must be a finite number")
    if v < 0:
        raise ValueError("Price must be a non-negative number")
    return v.quantize(Decimal("0.01"))


# ============= Service (Catalog) Schemas =============
class ServiceCreateSchema(BaseModel):
    """Schema for adding a billable service to the catalog."""

    name: str
    price: Decimal
    description: Optional[str] = None
    category: ServiceCategory = ServiceCategory.UNCATEGORIZED

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Service name cannot be empty")
        v = v.strip()
        if len(v) > 255:
            raise ValueError("Service name must be at most 255 characters long")
        return v

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: Decimal) -> Decimal:
        return _validate_price(v)

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, v):
        return ServiceCategory.parse(v)

    @field_validator("description", mode="before")
    @classmethod
    def strip_description(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


class ServiceResponseSchema(BaseModel):
    """Schema for catalog service response."""

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    price: Decimal
    category: ServiceCategory
    status: ServiceStatus
    created_at: datetime
    created_by: str

    model_config = {"from_attributes": True}


# ============= Bill Schemas =============
class BillItemCreateSchema(BaseModel):
    """
    A selected service with its price snapshot.

    The price is taken as given: the bill total never consults the live
    catalog price.
    """

    service_id: uuid.UUID
    name: str
    price: Decimal
    category: ServiceCategory = ServiceCategory.UNCATEGORIZED
    quantity: int = Field(default=1)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Line item name cannot be empty")
        return v.strip()

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: Decimal) -> Decimal:
        return _validate_price(v)

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be a positive integer")
        return v

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, v):
        return ServiceCategory.parse(v)


class BillCreateSchema(BaseModel):
    """Schema for creating a bill from a service selection."""

    patient_id: uuid.UUID
    services: List[BillItemCreateSchema]

    @field_validator("services")
    @classmethod
    def validate_services(cls, v: List[BillItemCreateSchema]) -> List[BillItemCreateSchema]:
        if not v:
            raise ValueError("At least one service must be selected")
        return v


class BillStatusUpdateSchema(BaseModel):
    status: BillStatus
    expected_version: Optional[int] = None

    @field_validator("status")
    @classmethod
    def validate_target(cls, v: BillStatus) -> BillStatus:
        if v not in TERMINAL_BILL_STATUSES:
            raise ValueError("Bill status can only be changed to 'paid' or 'cancelled'")
        return v


class BillItemResponseSchema(BaseModel):
    service_id: uuid.UUID
    name: str
    price: Decimal
    category: ServiceCategory
    quantity: int

    model_config = {"from_attributes": True}


class BillResponseSchema(BaseModel):
    """Schema for bill response."""

    id: uuid.UUID
    patient_id: uuid.UUID
    bill_number: str
    services: List[BillItemResponseSchema]
    total_amount: Decimal
    status: BillStatus
    created_at: datetime
    created_by: str
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    version: int

    model_config = {"from_attributes": True}


# ============= Report Schemas =============
class BillReportQuerySchema(BaseModel):
    start: datetime
    end: datetime

    @model_validator(mode="after")
    def validate_window(self) -> "BillReportQuerySchema":
        if self.start > self.end:
            raise ValueError("Report start must not be after report end")
        return self


class BillReportSchema(BaseModel):
    """Revenue over a time window, computed from bills alone."""

    start: datetime
    end: datetime
    bills: List[BillResponseSchema]
    total_bills: int
    total_revenue: Decimal
    paid_count: int
    pending_count: int
    cancelled_count: int
