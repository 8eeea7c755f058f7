"""
Catalog, Bill, Report and Dashboard Route Tests
"""

import uuid

import pytest


async def _create_service(client, api, headers, name="Consultation", price="100.00", category="consultation"):
    response = await client.post(
        f"{api}/services",
        json={"name": name, "price": price, "category": category},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


async def _create_bill(client, api, headers, patient_id, service, quantity=1):
    response = await client.post(
        f"{api}/bills",
        json={
            "patient_id": str(patient_id),
            "services": [
                {
                    "service_id": service["id"],
                    "name": service["name"],
                    "price": service["price"],
                    "category": service["category"],
                    "quantity": quantity,
                }
            ],
        },
        headers=headers,
    )
    return response


@pytest.mark.asyncio
class TestServiceRoutes:
    async def test_add_and_list(self, client, api, receptionist_headers, doctor_headers):
        created = await _create_service(client, api, receptionist_headers)
        await _create_service(client, api, receptionist_headers, name="Malaria RDT", price="30", category="lab")

        response = await client.get(f"{api}/services", headers=doctor_headers)

        assert response.status_code == 200
        assert [s["name"] for s in response.json()] == ["Consultation", "Malaria RDT"]
        assert response.json()[1]["category"] == "uncategorized"
        assert created["status"] == "active"

    async def test_unknown_category_filter_is_400(self, client, api, receptionist_headers):
        response = await client.get(
            f"{api}/services", params={"category": "surgery"}, headers=receptionist_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    async def test_deactivate(self, client, api, receptionist_headers, admin_headers):
        created = await _create_service(client, api, receptionist_headers)

        response = await client.post(
            f"{api}/services/{created['id']}/deactivate", headers=admin_headers
        )
        listed = await client.get(f"{api}/services", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "inactive"
        assert listed.json() == []

    async def test_doctor_cannot_add_service(self, client, api, doctor_headers):
        response = await client.post(
            f"{api}/services", json={"name": "X", "price": "1"}, headers=doctor_headers
        )

        assert response.status_code == 403


@pytest.mark.asyncio
class TestBillRoutes:
    async def test_bill_lifecycle(
        self, client, api, receptionist_headers, registered_patient
    ):
        service = await _create_service(client, api, receptionist_headers)

        created = await _create_bill(
            client, api, receptionist_headers, registered_patient.id, service, quantity=2
        )
        assert created.status_code == 201, created.text
        bill = created.json()
        assert bill["status"] == "pending"
        assert float(bill["total_amount"]) == 200.0

        paid = await client.patch(
            f"{api}/bills/{bill['id']}/status",
            json={"status": "paid", "expected_version": bill["version"]},
            headers=receptionist_headers,
        )
        assert paid.status_code == 200
        assert paid.json()["status"] == "paid"

        again = await client.patch(
            f"{api}/bills/{bill['id']}/status",
            json={"status": "cancelled"},
            headers=receptionist_headers,
        )
        assert again.status_code == 409

        fetched = await client.get(f"{api}/bills/{bill['id']}", headers=receptionist_headers)
        assert fetched.json()["bill_number"] == bill["bill_number"]

    async def test_pending_target_is_422(self, client, api, receptionist_headers, registered_patient):
        service = await _create_service(client, api, receptionist_headers)
        bill = (await _create_bill(client, api, receptionist_headers, registered_patient.id, service)).json()

        response = await client.patch(
            f"{api}/bills/{bill['id']}/status",
            json={"status": "pending"},
            headers=receptionist_headers,
        )

        assert response.status_code == 422

    async def test_unknown_patient_is_404(self, client, api, receptionist_headers):
        service = await _create_service(client, api, receptionist_headers)

        response = await _create_bill(client, api, receptionist_headers, uuid.uuid4(), service)

        assert response.status_code == 404

    async def test_doctor_cannot_bill(self, client, api, receptionist_headers, doctor_headers, registered_patient):
        service = await _create_service(client, api, receptionist_headers)

        response = await _create_bill(client, api, doctor_headers, registered_patient.id, service)

        assert response.status_code == 403

    async def test_report_and_dashboard(
        self, client, api, receptionist_headers, doctor_headers, registered_patient
    ):
        service = await _create_service(client, api, receptionist_headers)
        first = (await _create_bill(client, api, receptionist_headers, registered_patient.id, service)).json()
        await _create_bill(client, api, receptionist_headers, registered_patient.id, service)
        await client.patch(
            f"{api}/bills/{first['id']}/status", json={"status": "paid"}, headers=receptionist_headers
        )

        report = await client.get(
            f"{api}/bills/report",
            params={"start": "2026-03-02T00:00:00Z", "end": "2026-03-02T23:59:59Z"},
            headers=receptionist_headers,
        )
        assert report.status_code == 200, report.text
        assert report.json()["total_bills"] == 2
        assert report.json()["paid_count"] == 1
        assert float(report.json()["total_revenue"]) == 100.0

        stats = await client.get(
            f"{api}/dashboard/stats", params={"day": "2026-03-02"}, headers=doctor_headers
        )
        assert stats.status_code == 200
        assert stats.json()["patients_by_status"]["waiting"] == 1
        assert float(stats.json()["revenue_today"]) == 100.0

    async def test_report_window_reversed_is_400(self, client, api, receptionist_headers):
        response = await client.get(
            f"{api}/bills/report",
            params={"start": "2026-03-03T00:00:00Z", "end": "2026-03-02T00:00:00Z"},
            headers=receptionist_headers,
        )

        assert response.status_code == 400

    async def test_doctor_cannot_view_report(self, client, api, doctor_headers):
        response = await client.get(
            f"{api}/bills/report",
            params={"start": "2026-03-02T00:00:00Z", "end": "2026-03-02T23:59:59Z"},
            headers=doctor_headers,
        )

        assert response.status_code == 403
