"""
Dashboard Tests
"""

from datetime import date
from decimal import Decimal

import pytest

from clinicflow.config.config import settings
from clinicflow.core.exceptions import TransientError
from clinicflow.services.billing_service import BillingService
from clinicflow.services.dashboard_service import DashboardService, day_window


@pytest.mark.unit
def test_day_window_covers_whole_utc_day():
    start, end = day_window(date(2026, 3, 2))

    assert start.isoformat() == "2026-03-02T00:00:00+00:00"
    assert end.isoformat() == "2026-03-02T23:59:59.999999+00:00"


@pytest.mark.asyncio
class TestDashboardStats:
    async def test_counts_patients_and_todays_revenue(
        self, db_session, clock, ids, patient_service, patient_data, consultation, blood_test
    ):
        billing = BillingService(db_session, clock, ids)
        dashboard = DashboardService(db_session, clock, ids, billing=billing)

        waiting = await patient_service.register(patient_data, "rec-1")
        seen = await patient_service.register(patient_data, "rec-1")
        await patient_service.update_status(seen.id, "consulted", "doc-1")

        paid = await billing.create_bill(
            seen.id,
            [{"service_id": consultation.id, "name": consultation.name, "price": consultation.price}],
            "rec-1",
        )
        await billing.update_bill_status(paid.id, "paid", "rec-1")
        await billing.create_bill(
            waiting.id,
            [{"service_id": blood_test.id, "name": blood_test.name, "price": blood_test.price}],
            "rec-1",
        )

        clock.advance(days=1)
        await billing.create_bill(
            waiting.id,
            [{"service_id": consultation.id, "name": consultation.name, "price": consultation.price}],
            "rec-1",
        )

        stats = await dashboard.get_stats(date(2026, 3, 2))

        assert stats["total_patients"] == 2
        assert stats["patients_by_status"] == {
            "waiting": 1,
            "consulted": 1,
            "prescribed": 0,
            "completed": 0,
        }
        assert stats["bills_today"] == 2
        assert stats["paid_bills_today"] == 1
        assert stats["pending_bills_today"] == 1
        assert stats["revenue_today"] == Decimal("100.00")

    async def test_defaults_to_clock_day(self, db_session, clock, ids):
        dashboard = DashboardService(db_session, clock, ids)

        stats = await dashboard.get_stats()

        assert stats["day"] == date(2026, 3, 2)
        assert stats["total_patients"] == 0
        assert stats["revenue_today"] == Decimal("0.00")

    async def test_store_outage_retried_once_per_attempt(
        self, db_session, clock, ids, monkeypatch
    ):
        billing = BillingService(db_session, clock, ids)
        dashboard = DashboardService(db_session, clock, ids, billing=billing)
        calls = []

        async def store_down(start, end):
            calls.append((start, end))
            raise TransientError("store down")

        monkeypatch.setattr(billing.repo, "get_bills_created_between", store_down)

        with pytest.raises(TransientError):
            await dashboard.get_stats()

        assert len(calls) == settings.TRANSIENT_RETRY_ATTEMPTS
