"""
Service selection for the billing screen.

Clicking a service adds it with quantity 1, clicking it again bumps the
quantity, and setting a quantity of zero or less removes the line. The
selection snapshots each service's price when it is first added; that
snapshot is what the bill is charged.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List
import uuid

from clinicflow.core.exceptions import ValidationError
from clinicflow.schemas.billing_schemas import (
    BillItemCreateSchema,
    ServiceCategory,
)


@dataclass
class SelectedService:
    service_id: uuid.UUID
    name: str
    price: Decimal
    category: ServiceCategory
    quantity: int = 1

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class ServiceSelection:
    """Ordered set of selected services with accumulated quantities."""

    def __init__(self):
        self._lines: Dict[uuid.UUID, SelectedService] = {}

    def add(self, service: Any, quantity: int = 1) -> SelectedService:
        """Add a catalog service, or increase its quantity if already selected."""
        if quantity < 1:
            raise ValidationError("Quantity must be a positive integer")
        if not service.is_active():
            raise ValidationError(f"Service '{service.name}' is not active")

        line = self._lines.get(service.id)
        if line is None:
            line = SelectedService(
                service_id=service.id,
                name=service.name,
                price=Decimal(service.price),
                category=ServiceCategory.parse(service.category),
                quantity=quantity,
            )
            self._lines[service.id] = line
        else:
            line.quantity += quantity
        return line

    def set_quantity(self, service_id: uuid.UUID, quantity: int) -> None:
        if service_id not in self._lines:
            raise ValidationError("Service is not part of the selection")
        if quantity <= 0:
            del self._lines[service_id]
        else:
            self._lines[service_id].quantity = quantity

    def remove(self, service_id: uuid.UUID) -> None:
        self._lines.pop(service_id, None)

    def clear(self) -> None:
        self._lines.clear()

    @property
    def lines(self) -> List[SelectedService]:
        return list(self._lines.values())

    @property
    def total(self) -> Decimal:
        return sum((line.line_total for line in self._lines.values()), Decimal("0.00"))

    def __len__(self) -> int:
        return len(self._lines)

    def to_line_items(self) -> List[BillItemCreateSchema]:
        """Snapshot the selection as bill line items."""
        return [
            BillItemCreateSchema(
                service_id=line.service_id,
                name=line.name,
                price=line.price,
                category=line.category,
                quantity=line.quantity,
            )
            for line in self._lines.values()
        ]
