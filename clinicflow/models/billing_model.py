import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import (
    TIMESTAMP,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from clinicflow.db.base import Base
from clinicflow.schemas.billing_schemas import (
    TERMINAL_BILL_STATUSES,
    BillStatus,
    ServiceCategory,
    ServiceStatus,
    bill_status_enum,
    service_category_enum,
    service_status_enum,
)


class Service(Base):
    """Priced catalog entry that can be selected into a bill"""

    __tablename__ = "services"

    id: Mapped[uuid.UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    category: Mapped[ServiceCategory] = mapped_column(
        service_category_enum, default=ServiceCategory.UNCATEGORIZED, nullable=False, index=True
    )
    status: Mapped[ServiceStatus] = mapped_column(
        service_status_enum, default=ServiceStatus.ACTIVE, nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)

    def __repr__(self) -> str:
        return f"<Service name={self.name} price={self.price}>"

    def is_active(self) -> bool:
        return self.status == ServiceStatus.ACTIVE


class Bill(Base):
    """A patient's bill for services rendered"""

    __tablename__ = "bills"

    id: Mapped[uuid.UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("patients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    bill_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[BillStatus] = mapped_column(
        bill_status_enum, default=BillStatus.PENDING, nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, index=True
    )
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    updated_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Line items, named after the persisted ``services[]`` field
    services: Mapped[List["BillItem"]] = relationship(
        "BillItem",
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillItem.position",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Bill number={self.bill_number} total={self.total_amount} status={self.status}>"

    def is_terminal(self) -> bool:
        return BillStatus(self.status) in TERMINAL_BILL_STATUSES

    def compute_total(self) -> Decimal:
        return sum((item.price * item.quantity for item in self.services), Decimal("0.00"))


class BillItem(Base):
    """Service line item with the price captured when the bill was created"""

    __tablename__ = "bill_items"

    id: Mapped[uuid.UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    bill_id: Mapped[uuid.UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("bills.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    service_id: Mapped[uuid.UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("services.id", ondelete="RESTRICT"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    category: Mapped[ServiceCategory] = mapped_column(service_category_enum, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    bill: Mapped["Bill"] = relationship("Bill", back_populates="services")

    def __repr__(self) -> str:
        return f"<BillItem name={self.name} qty={self.quantity}>"
