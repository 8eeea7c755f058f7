"""
Billing Ledger Tests

Bill creation, payment status transitions and revenue reporting.
"""

import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from clinicflow.core.exceptions import (
    CommitOutcomeUnknownError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from clinicflow.schemas.billing_schemas import BillStatus
from clinicflow.services.billing_service import BillingService


def line(service, quantity=1, price=None):
    return {
        "service_id": service.id,
        "name": service.name,
        "price": price if price is not None else service.price,
        "category": service.category,
        "quantity": quantity,
    }


@pytest.fixture
def billing_service(db_session, clock, ids) -> BillingService:
    return BillingService(db_session, clock, ids)


@pytest.mark.asyncio
class TestCreateBill:
    async def test_total_from_price_and_quantity(
        self, billing_service, registered_patient, consultation, blood_test
    ):
        bill = await billing_service.create_bill(
            registered_patient.id,
            [line(consultation, 2), line(blood_test, 1)],
            "rec-1",
        )

        assert bill.total_amount == Decimal("250.00")
        assert bill.status == BillStatus.PENDING
        assert bill.bill_number.startswith("BILL-")
        assert [item.quantity for item in bill.services] == [2, 1]
        assert bill.total_amount == bill.compute_total()

    async def test_bill_numbers_unique(self, billing_service, registered_patient, consultation):
        first = await billing_service.create_bill(
            registered_patient.id, [line(consultation)], "rec-1"
        )
        second = await billing_service.create_bill(
            registered_patient.id, [line(consultation)], "rec-1"
        )

        assert first.bill_number != second.bill_number

    async def test_round_trip_by_id(self, billing_service, registered_patient, consultation):
        bill = await billing_service.create_bill(
            registered_patient.id, [line(consultation)], "rec-1"
        )

        fetched = await billing_service.get_bill(bill.id)

        assert fetched.id == bill.id
        assert fetched.bill_number == bill.bill_number
        assert fetched.total_amount == Decimal("100.00")

    async def test_duplicate_selections_merge(
        self, billing_service, registered_patient, consultation
    ):
        bill = await billing_service.create_bill(
            registered_patient.id, [line(consultation), line(consultation, 2)], "rec-1"
        )

        assert len(bill.services) == 1
        assert bill.services[0].quantity == 3
        assert bill.total_amount == Decimal("300.00")

    async def test_price_snapshot_is_charged(
        self, billing_service, registered_patient, consultation
    ):
        bill = await billing_service.create_bill(
            registered_patient.id, [line(consultation, price="90.00")], "rec-1"
        )

        assert bill.total_amount == Decimal("90.00")

    async def test_empty_patient_or_selection(self, billing_service, consultation):
        with pytest.raises(ValidationError):
            await billing_service.create_bill("", [line(consultation)], "rec-1")
        with pytest.raises(ValidationError):
            await billing_service.create_bill(uuid.uuid4(), [], "rec-1")

    @pytest.mark.parametrize("field,value", [("quantity", 0), ("price", "-5")])
    async def test_bad_line_items(
        self, billing_service, registered_patient, consultation, field, value
    ):
        item = line(consultation)
        item[field] = value

        with pytest.raises(ValidationError):
            await billing_service.create_bill(registered_patient.id, [item], "rec-1")

        assert await billing_service.list_bills() == []

    async def test_failed_commit_is_not_replayed(
        self, db_session, billing_service, registered_patient, consultation, monkeypatch
    ):
        selection = [line(consultation)]
        patient_id = registered_patient.id
        real_commit = db_session.commit

        async def commit_then_drop_connection():
            await real_commit()
            raise OperationalError("COMMIT", {}, Exception("connection reset"))

        monkeypatch.setattr(db_session, "commit", commit_then_drop_connection)

        with pytest.raises(CommitOutcomeUnknownError):
            await billing_service.create_bill(patient_id, selection, "rec-1")
        monkeypatch.undo()

        assert len(await billing_service.list_bills(patient_id=patient_id)) == 1

    async def test_unknown_patient(self, billing_service, consultation):
        with pytest.raises(NotFoundError):
            await billing_service.create_bill(uuid.uuid4(), [line(consultation)], "rec-1")

    async def test_inactive_service_rejected(
        self, billing_service, catalog_service, registered_patient, consultation
    ):
        selection = [line(consultation)]
        patient_id = registered_patient.id
        await catalog_service.deactivate_service(consultation.id, "admin-1")

        with pytest.raises(ValidationError):
            await billing_service.create_bill(patient_id, selection, "rec-1")

    async def test_unknown_service_rejected(self, billing_service, registered_patient):
        item = {"service_id": uuid.uuid4(), "name": "Ghost", "price": "10", "quantity": 1}

        with pytest.raises(ValidationError):
            await billing_service.create_bill(registered_patient.id, [item], "rec-1")


@pytest.mark.asyncio
class TestBillStatus:
    async def _pending_bill(self, billing_service, patient, service):
        return await billing_service.create_bill(patient.id, [line(service)], "rec-1")

    async def test_pay_pending_bill(
        self, billing_service, registered_patient, consultation, clock
    ):
        bill = await self._pending_bill(billing_service, registered_patient, consultation)
        clock.advance(minutes=10)

        paid = await billing_service.update_bill_status(bill.id, "paid", "rec-2")

        assert paid.status == BillStatus.PAID
        assert paid.updated_by == "rec-2"
        assert paid.updated_at == clock.now()

    @pytest.mark.parametrize("settled", ["paid", "cancelled"])
    @pytest.mark.parametrize("target", ["paid", "cancelled"])
    async def test_terminal_bills_cannot_change(
        self, billing_service, registered_patient, consultation, settled, target
    ):
        bill = await self._pending_bill(billing_service, registered_patient, consultation)
        bill_id = bill.id
        await billing_service.update_bill_status(bill_id, settled, "rec-1")

        with pytest.raises(InvalidTransitionError):
            await billing_service.update_bill_status(bill_id, target, "rec-1")

        stored = await billing_service.get_bill(bill_id)
        assert stored.status == BillStatus(settled)

    @pytest.mark.parametrize("target", ["pending", "refunded"])
    async def test_invalid_target(
        self, billing_service, registered_patient, consultation, target
    ):
        bill = await self._pending_bill(billing_service, registered_patient, consultation)

        with pytest.raises(ValidationError):
            await billing_service.update_bill_status(bill.id, target, "rec-1")

    async def test_unknown_bill(self, billing_service):
        with pytest.raises(NotFoundError):
            await billing_service.update_bill_status(uuid.uuid4(), "paid", "rec-1")

    async def test_stale_version(self, billing_service, registered_patient, consultation):
        bill = await self._pending_bill(billing_service, registered_patient, consultation)

        with pytest.raises(ConflictError):
            await billing_service.update_bill_status(
                bill.id, "paid", "rec-1", expected_version=bill.version + 1
            )


@pytest.mark.asyncio
class TestListBills:
    async def test_filters_and_order(
        self, billing_service, patient_service, patient_data, registered_patient, consultation, clock
    ):
        other = await patient_service.register(patient_data, "rec-1")
        first = await billing_service.create_bill(registered_patient.id, [line(consultation)], "rec-1")
        clock.advance(minutes=1)
        second = await billing_service.create_bill(other.id, [line(consultation)], "rec-1")
        await billing_service.update_bill_status(second.id, "paid", "rec-1")

        everything = await billing_service.list_bills()
        mine = await billing_service.list_bills(patient_id=registered_patient.id)
        paid = await billing_service.list_bills(status="paid")

        assert [b.id for b in everything] == [second.id, first.id]
        assert [b.id for b in mine] == [first.id]
        assert [b.id for b in paid] == [second.id]


@pytest.mark.asyncio
class TestRevenueReport:
    async def test_report_counts_and_paid_revenue(
        self, billing_service, catalog_service, registered_patient, clock
    ):
        start = clock.now()
        amounts = {}
        for price in ("100", "150", "75"):
            service = await catalog_service.add_service({"name": f"Item {price}", "price": price}, "rec-1")
            bill = await billing_service.create_bill(registered_patient.id, [line(service)], "rec-1")
            amounts[price] = bill.id
            clock.advance(minutes=1)
        await billing_service.update_bill_status(amounts["100"], "paid", "rec-1")
        await billing_service.update_bill_status(amounts["150"], "paid", "rec-1")

        report = await billing_service.generate_report(start, clock.now())

        assert report["total_bills"] == 3
        assert report["total_revenue"] == Decimal("250.00")
        assert report["paid_count"] == 2
        assert report["pending_count"] == 1
        assert report["cancelled_count"] == 0

    async def test_window_is_inclusive(
        self, billing_service, registered_patient, consultation, clock
    ):
        created_at = clock.now()
        await billing_service.create_bill(registered_patient.id, [line(consultation)], "rec-1")

        exact = await billing_service.generate_report(created_at, created_at)
        before = await billing_service.generate_report(
            created_at - timedelta(hours=2), created_at - timedelta(seconds=1)
        )

        assert exact["total_bills"] == 1
        assert before["total_bills"] == 0
        assert before["total_revenue"] == Decimal("0.00")

    async def test_cancelled_bills_earn_nothing(
        self, billing_service, registered_patient, consultation, clock
    ):
        bill = await billing_service.create_bill(registered_patient.id, [line(consultation)], "rec-1")
        await billing_service.update_bill_status(bill.id, "cancelled", "rec-1")

        report = await billing_service.generate_report(
            clock.now() - timedelta(days=1), clock.now() + timedelta(days=1)
        )

        assert report["cancelled_count"] == 1
        assert report["total_revenue"] == Decimal("0.00")

    async def test_naive_bounds_are_utc(self, billing_service, registered_patient, consultation):
        await billing_service.create_bill(registered_patient.id, [line(consultation)], "rec-1")

        report = await billing_service.generate_report(
            datetime(2026, 3, 2, 0, 0), datetime(2026, 3, 2, 23, 59, 59)
        )

        assert report["total_bills"] == 1
        assert report["start"].utcoffset() == timedelta(0)

    async def test_start_after_end_rejected(self, billing_service, clock):
        with pytest.raises(ValidationError):
            await billing_service.generate_report(clock.now(), clock.now() - timedelta(seconds=1))
