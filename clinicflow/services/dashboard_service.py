from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Optional

from clinicflow.core.resilience import retry_transient
from clinicflow.repositories.patient_repo import PatientRepository
from clinicflow.schemas.patient_schemas import PatientStatus
from clinicflow.services.base import BaseService
from clinicflow.services.billing_service import BillingService


def day_window(day: date):
    """The inclusive UTC window covering ``day``."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    end = start + timedelta(days=1) - timedelta(microseconds=1)
    return start, end


class DashboardService(BaseService):
    """Summary counters for the front-desk and doctor dashboards."""

    def __init__(self, db, clock=None, ids=None, billing: Optional[BillingService] = None):
        super().__init__(db, clock, ids)
        self.patient_repo = PatientRepository(self.db)
        self.billing = billing or BillingService(self.db, self.clock, self.ids)

    @retry_transient
    async def get_stats(self, day: Optional[date] = None) -> Dict[str, Any]:
        """Patients per status plus the bills and paid revenue of ``day`` (UTC)."""
        day = day or self.now().date()
        start, end = day_window(day)

        async with self.unit_of_work("dashboard_patient_counts", commit=False):
            counts = await self.patient_repo.count_by_status()

        by_status = {status.value: counts.get(status.value, 0) for status in PatientStatus}
        report = await self.billing.build_report(start, end)

        return {
            "day": day,
            "total_patients": sum(by_status.values()),
            "patients_by_status": by_status,
            "bills_today": report["total_bills"],
            "paid_bills_today": report["paid_count"],
            "pending_bills_today": report["pending_count"],
            "revenue_today": report["total_revenue"],
        }
