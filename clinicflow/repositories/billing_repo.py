from datetime import datetime
from typing import Iterable, List, Optional
import uuid
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.resilience import guarded
from clinicflow.models.billing_model import Bill, Service
from clinicflow.schemas.billing_schemas import BillStatus, ServiceCategory, ServiceStatus


class BillingRepository:
    """Repository layer for catalog services and bills."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============= Service Operations =============
    async def create_service(self, service: Service) -> Service:
        self.db.add(service)
        await guarded(self.db.flush(), "create_service")
        return service

    async def get_service_by_id(self, service_id: uuid.UUID) -> Optional[Service]:
        result = await guarded(
            self.db.execute(select(Service).where(Service.id == service_id)),
            "get_service_by_id",
        )
        return result.scalars().first()

    async def get_services_by_ids(self, service_ids: Iterable[uuid.UUID]) -> List[Service]:
        ids = list(set(service_ids))
        if not ids:
            return []
        result = await guarded(
            self.db.execute(select(Service).where(Service.id.in_(ids))),
            "get_services_by_ids",
        )
        return list(result.scalars().all())

    async def get_active_services(
        self,
        category: Optional[ServiceCategory] = None,
        search: Optional[str] = None,
    ) -> List[Service]:
        """Active catalog entries ordered by name."""
        query = select(Service).where(Service.status == ServiceStatus.ACTIVE)

        if category is not None:
            query = query.where(Service.category == category)

        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.where(
                or_(
                    Service.name.ilike(pattern),
                    Service.description.ilike(pattern),
                )
            )

        query = query.order_by(Service.name.asc())
        result = await guarded(self.db.execute(query), "get_active_services")
        return list(result.scalars().all())

    async def update_service(self, service: Service) -> Service:
        self.db.add(service)
        await guarded(self.db.flush(), "update_service")
        return service

    # ============= Bill Operations =============
    async def create_bill(self, bill: Bill) -> Bill:
        self.db.add(bill)
        await guarded(self.db.flush(), "create_bill")
        return bill

    async def get_bill_by_id(self, bill_id: uuid.UUID) -> Optional[Bill]:
        result = await guarded(
            self.db.execute(select(Bill).where(Bill.id == bill_id)),
            "get_bill_by_id",
        )
        return result.scalars().first()

    async def get_bills(
        self,
        patient_id: Optional[uuid.UUID] = None,
        status: Optional[BillStatus] = None,
    ) -> List[Bill]:
        """Bills newest first, filterable by patient and/or status."""
        query = select(Bill)
        if patient_id is not None:
            query = query.where(Bill.patient_id == patient_id)
        if status is not None:
            query = query.where(Bill.status == status)
        query = query.order_by(Bill.created_at.desc(), Bill.bill_number.desc())

        result = await guarded(self.db.execute(query), "get_bills")
        return list(result.scalars().all())

    async def get_bills_created_between(self, start: datetime, end: datetime) -> List[Bill]:
        """Bills with created_at in the inclusive window [start, end]."""
        result = await guarded(
            self.db.execute(
                select(Bill)
                .where(Bill.created_at >= start, Bill.created_at <= end)
                .order_by(Bill.created_at.desc(), Bill.bill_number.desc())
            ),
            "get_bills_created_between",
        )
        return list(result.scalars().all())

    async def update_bill(self, bill: Bill) -> Bill:
        self.db.add(bill)
        await guarded(self.db.flush(), "update_bill")
        return bill
