from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.clock import Clock, IdGenerator
from clinicflow.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from clinicflow.core.resilience import retry_transient
from clinicflow.models.billing_model import Bill, BillItem
from clinicflow.repositories.billing_repo import BillingRepository
from clinicflow.repositories.patient_repo import PatientRepository
from clinicflow.schemas.billing_schemas import (
    BillCreateSchema,
    BillItemCreateSchema,
    BillReportQuerySchema,
    BillStatus,
    BillStatusUpdateSchema,
)
from clinicflow.services.base import BaseService, as_utc


CENTS = Decimal("0.01")


def merge_line_items(items: List[BillItemCreateSchema]) -> List[BillItemCreateSchema]:
    """
    Collapse repeated selections of the same service at the same price into
    one line, accumulating quantity. First-seen order is kept.
    """
    merged: Dict[Tuple[uuid.UUID, Decimal], BillItemCreateSchema] = {}
    for item in items:
        key = (item.service_id, item.price)
        if key in merged:
            existing = merged[key]
            merged[key] = existing.model_copy(
                update={"quantity": existing.quantity + item.quantity}
            )
        else:
            merged[key] = item
    return list(merged.values())


def parse_bill_status(value: Any) -> BillStatus:
    try:
        return BillStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in BillStatus)
        raise ValidationError(f"Unknown bill status '{value}'. Expected one of: {allowed}")


class BillingService(BaseService):
    """
    Billing ledger: bill creation from a service selection, the payment
    status transitions and revenue reporting.
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
    ):
        super().__init__(db, clock, ids)
        self.repo = BillingRepository(self.db)
        self.patient_repo = PatientRepository(self.db)

    # ============= Bill Creation =============
    @retry_transient
    async def create_bill(
        self, patient_id: Any, selected_services: Any, actor_id: str
    ) -> Bill:
        """
        Create a ``pending`` bill for a patient.

        The total is charged from the price carried on each selection, not
        the live catalog price. Every selected service must still exist and
        be active.

        Raises:
            ValidationError: empty patient id or selection, bad line items,
                unknown or inactive services
            NotFoundError: unknown patient
        """
        actor_id = self.require_actor(actor_id)
        pid = self.coerce_id(patient_id, "Patient")
        if not selected_services:
            raise ValidationError("At least one service must be selected")

        data = self.validate_input(
            BillCreateSchema,
            {"patient_id": pid, "services": list(selected_services)},
            "bill",
        )
        items = merge_line_items(data.services)

        async with self.unit_of_work("create_bill"):
            patient = await self.patient_repo.get_patient_by_id(pid)
            if not patient:
                self.log_warning({"event": "bill_patient_not_found", "patient_id": str(pid)})
                raise NotFoundError("Patient", pid)

            await self._check_services_billable(items)

            bill = Bill(
                patient_id=pid,
                bill_number=self.ids.new_bill_number(),
                status=BillStatus.PENDING,
                created_at=self.now(),
                created_by=actor_id,
                services=[
                    BillItem(
                        position=position,
                        service_id=item.service_id,
                        name=item.name,
                        price=item.price,
                        category=item.category,
                        quantity=item.quantity,
                    )
                    for position, item in enumerate(items)
                ],
            )
            total = bill.compute_total().quantize(CENTS)
            bill.total_amount = total
            await self.repo.create_bill(bill)

        self.log_info(
            {
                "event": "bill_created",
                "bill_id": str(bill.id),
                "bill_number": bill.bill_number,
                "patient_id": str(pid),
                "total_amount": str(total),
                "lines": len(items),
                "created_by": actor_id,
            }
        )
        return bill

    async def _check_services_billable(self, items: List[BillItemCreateSchema]) -> None:
        requested = {item.service_id for item in items}
        services = {s.id: s for s in await self.repo.get_services_by_ids(requested)}

        missing = [str(sid) for sid in requested if sid not in services]
        if missing:
            raise ValidationError(
                "Selected services do not exist", details={"service_ids": sorted(missing)}
            )

        inactive = [
            str(sid) for sid, s in services.items() if not s.is_active()
        ]
        if inactive:
            raise ValidationError(
                "Selected services are no longer active",
                details={"service_ids": sorted(inactive)},
            )

    # ============= Status Workflow =============
    @retry_transient
    async def update_bill_status(
        self,
        bill_id: Any,
        new_status: Any,
        actor_id: str,
        expected_version: Optional[int] = None,
    ) -> Bill:
        """
        Settle a ``pending`` bill as ``paid`` or ``cancelled``.

        Raises:
            ValidationError: target is not ``paid`` or ``cancelled``
            NotFoundError: unknown bill
            InvalidTransitionError: the bill is already paid or cancelled
            ConflictError: ``expected_version`` is stale
        """
        target = parse_bill_status(new_status)
        self.validate_input(BillStatusUpdateSchema, {"status": target}, "bill status")
        actor_id = self.require_actor(actor_id)
        bid = self.coerce_id(bill_id, "Bill")

        async with self.unit_of_work("update_bill_status"):
            bill = await self.repo.get_bill_by_id(bid)
            if not bill:
                raise NotFoundError("Bill", bid)

            if expected_version is not None and expected_version != bill.version:
                raise ConflictError(
                    "Bill was modified by another user, reload and try again",
                    details={"expected_version": expected_version, "current_version": bill.version},
                )

            current = BillStatus(bill.status)
            if bill.is_terminal():
                self.log_warning(
                    {
                        "event": "bill_status_rejected",
                        "bill_id": str(bid),
                        "current": current.value,
                        "target": target.value,
                    }
                )
                raise InvalidTransitionError("bill", current.value, target.value)

            bill.status = target
            bill.updated_at = self.now()
            bill.updated_by = actor_id
            await self.repo.update_bill(bill)

        self.log_info(
            {
                "event": "bill_status_updated",
                "bill_id": str(bid),
                "from": current.value,
                "to": target.value,
                "updated_by": actor_id,
            }
        )
        return bill

    # ============= Queries =============
    @retry_transient
    async def get_bill(self, bill_id: Any) -> Bill:
        bid = self.coerce_id(bill_id, "Bill")
        async with self.unit_of_work("get_bill", commit=False):
            bill = await self.repo.get_bill_by_id(bid)
        if not bill:
            raise NotFoundError("Bill", bid)
        return bill

    @retry_transient
    async def list_bills(self, patient_id: Any = None, status: Any = None) -> List[Bill]:
        """Bills newest first, optionally for one patient and/or one status."""
        pid = self.coerce_id(patient_id, "Patient") if patient_id else None
        status_filter = parse_bill_status(status) if status else None
        async with self.unit_of_work("list_bills", commit=False):
            return await self.repo.get_bills(pid, status_filter)

    # ============= Reporting =============
    @retry_transient
    async def generate_report(self, start: datetime, end: datetime) -> Dict[str, Any]:
        """
        Revenue over bills created in ``[start, end]`` (inclusive).

        Revenue counts ``paid`` bills only. The figures come from the bill
        set alone, never from stored aggregates.
        """
        return await self.build_report(start, end)

    async def build_report(self, start: datetime, end: datetime) -> Dict[str, Any]:
        """Report body without retries, for operations that retry as a whole."""
        if start is None or end is None:
            raise ValidationError("Report start and end are required")
        window = self.validate_input(
            BillReportQuerySchema, {"start": as_utc(start), "end": as_utc(end)}, "report window"
        )

        async with self.unit_of_work("generate_report", commit=False):
            bills = await self.repo.get_bills_created_between(window.start, window.end)

        counts = {status: 0 for status in BillStatus}
        revenue = Decimal("0")
        for bill in bills:
            status = BillStatus(bill.status)
            counts[status] += 1
            if status == BillStatus.PAID:
                revenue += Decimal(bill.total_amount)

        report = {
            "start": window.start,
            "end": window.end,
            "bills": bills,
            "total_bills": len(bills),
            "total_revenue": revenue.quantize(CENTS),
            "paid_count": counts[BillStatus.PAID],
            "pending_count": counts[BillStatus.PENDING],
            "cancelled_count": counts[BillStatus.CANCELLED],
        }
        self.log_debug(
            {
                "event": "bill_report_generated",
                "start": window.start.isoformat(),
                "end": window.end.isoformat(),
                "total_bills": report["total_bills"],
                "total_revenue": str(report["total_revenue"]),
            }
        )
        return report
