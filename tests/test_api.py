"""
Tests de los endpoints de citas y conciliación.
"""

from decimal import Decimal
from uuid import uuid4

import pytest_asyncio
from sqlalchemy.exc import IntegrityError
from starlette.requests import Request

from clinicas.auth.rbac import has_permission
from clinicas.main import integrity_error_handler
from clinicas.models.appointment import AppointmentStatus
from clinicas.models.user import User, UserRole
from conftest import at


@pytest_asyncio.fixture
async def receptionist(db_session, test_clinic) -> User:
    user = User(
        id=uuid4(),
        clinic_id=test_clinic.id,
        email="recepcion@test.com",
        name="Recepción Test",
        role=UserRole.RECEPTIONIST,
    )
    db_session.add(user)
    await db_session.commit()
    return user


def _payload(patient, professional, procedure, start_time):
    return {
        "patient_id": str(patient.id),
        "professional_id": str(professional.id),
        "procedure_id": str(procedure.id),
        "start_time": start_time.isoformat(),
    }


def test_rbac_matrix():
    assert has_permission(UserRole.RECEPTIONIST, "appointment", "create")
    assert not has_permission(UserRole.RECEPTIONIST, "appointment", "pay")
    assert has_permission(UserRole.ADMIN, "reconciliation", "backfill")
    assert not has_permission(UserRole.ADMIN, "reconciliation", "reset")
    assert has_permission(UserRole.OWNER, "reconciliation", "reset")


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_create_and_get_appointment(client, patient, professional, facial):
    response = await client.post(
        "/api/v1/appointments", json=_payload(patient, professional, facial, at(10))
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "SCHEDULED"
    assert data["duration_minutes"] == 60
    assert data["patient_name"] == "Maria Souza"

    detail = await client.get(f"/api/v1/appointments/{data['id']}")
    assert detail.status_code == 200
    assert detail.json()["transactions"] == []


async def test_create_conflict_returns_409(client, patient, professional, facial):
    first = await client.post(
        "/api/v1/appointments", json=_payload(patient, professional, facial, at(10))
    )
    assert first.status_code == 201

    response = await client.post(
        "/api/v1/appointments",
        json=_payload(patient, professional, facial, at(10, 30)),
    )

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "scheduling_conflict"
    assert detail["conflict"]["appointment_id"] == first.json()["id"]


async def test_create_with_unknown_patient_returns_404(
    client, patient, professional, facial
):
    payload = _payload(patient, professional, facial, at(10))
    payload["patient_id"] = str(uuid4())
    response = await client.post("/api/v1/appointments", json=payload)
    assert response.status_code == 404


async def test_status_flow_and_invalid_transition(client, facial, make_appointment):
    appt = await make_appointment(facial)

    confirmed = await client.patch(
        f"/api/v1/appointments/{appt.id}/status", json={"status": "CONFIRMED"}
    )
    assert confirmed.status_code == 200

    invalid = await client.patch(
        f"/api/v1/appointments/{appt.id}/status", json={"status": "PENDING_APPROVAL"}
    )
    assert invalid.status_code == 400
    assert invalid.json()["detail"]["code"] == "invalid_transition"

    completed = await client.patch(
        f"/api/v1/appointments/{appt.id}/status", json={"status": "COMPLETED"}
    )
    assert completed.status_code == 200
    assert completed.json()["stock_deducted"] is True

    again = await client.patch(
        f"/api/v1/appointments/{appt.id}/status", json={"status": "COMPLETED"}
    )
    assert again.status_code == 400
    assert again.json()["detail"]["code"] == "already_completed"


async def test_pay_endpoint(client, facial, make_appointment):
    appt = await make_appointment(facial, status=AppointmentStatus.CONFIRMED)

    response = await client.post(
        f"/api/v1/appointments/{appt.id}/pay", json={"payment_method": "PIX"}
    )

    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["income"]["amount"]) == Decimal("150.00")
    assert Decimal(data["expense"]["amount"]) == Decimal("20.00")
    assert Decimal(data["summary"]["profit"]) == Decimal("130.00")
    assert data["appointment"]["paid"] is True
    assert len(data["appointment"]["transactions"]) == 2

    again = await client.post(f"/api/v1/appointments/{appt.id}/pay")
    assert again.status_code == 400
    assert again.json()["detail"]["code"] == "already_paid"


async def test_receptionist_cannot_pay(
    client, login_as, receptionist, facial, make_appointment
):
    appt = await make_appointment(facial, status=AppointmentStatus.CONFIRMED)
    login_as(receptionist)

    response = await client.post(f"/api/v1/appointments/{appt.id}/pay")

    assert response.status_code == 403


async def test_cancel_endpoint(client, facial, make_appointment):
    appt = await make_appointment(facial)

    response = await client.delete(
        f"/api/v1/appointments/{appt.id}", params={"reason": "Reagendó"}
    )

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELED"
    assert response.json()["cancellation_reason"] == "Reagendó"

    history = await client.get(f"/api/v1/appointments/{appt.id}/history")
    assert [h["action"] for h in history.json()] == ["status_change"]


async def test_list_filters_by_status(client, facial, make_appointment):
    await make_appointment(facial, start_time=at(9))
    await make_appointment(facial, start_time=at(11), status=AppointmentStatus.CANCELED)

    response = await client.get("/api/v1/appointments", params={"status": "SCHEDULED"})

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["items"][0]["status"] == "SCHEDULED"


async def test_list_filters_by_local_date(client, facial, make_appointment):
    await make_appointment(facial, start_time=at(20))
    await make_appointment(facial, start_time=at(10, day=11))

    response = await client.get(
        "/api/v1/appointments",
        params={"date_from": "2026-03-10", "date_to": "2026-03-10"},
    )

    assert response.json()["total"] == 1


async def test_reconciliation_endpoints(client, facial, make_appointment):
    await make_appointment(
        facial, status=AppointmentStatus.COMPLETED, paid=True, stock_deducted=True
    )

    diagnose = await client.get("/api/v1/reconciliation/diagnose")
    assert diagnose.status_code == 200
    assert diagnose.json()["problems_found"] == 1
    assert diagnose.json()["problems"][0]["problem"] == "missing"

    backfill = await client.post("/api/v1/reconciliation/backfill")
    assert backfill.status_code == 200
    assert backfill.json()["created"] == 1

    ledger = await client.get("/api/v1/reconciliation/ledger", params={"limit": 5})
    assert ledger.status_code == 200
    assert ledger.json()["entries"][0]["needs_fix"] is False

    reset = await client.delete("/api/v1/reconciliation/supply-expenses")
    assert reset.status_code == 200
    assert reset.json()["deleted"] == 1
    assert reset.json()["created"] == 1


async def test_admin_cannot_reset(client, login_as, db_session, test_clinic):
    admin = User(
        id=uuid4(),
        clinic_id=test_clinic.id,
        email="admin@test.com",
        name="Admin Test",
        role=UserRole.ADMIN,
    )
    db_session.add(admin)
    await db_session.commit()
    login_as(admin)

    response = await client.delete("/api/v1/reconciliation/supply-expenses")

    assert response.status_code == 403


async def test_unique_violation_maps_to_conflict():
    request = Request({
        "type": "http",
        "method": "POST",
        "scheme": "http",
        "server": ("test", 80),
        "path": "/api/v1/appointments/x/pay",
        "query_string": b"",
        "headers": [],
    })
    exc = IntegrityError("INSERT INTO transactions", {}, Exception("duplicate key"))

    response = await integrity_error_handler(request, exc)

    assert response.status_code == 409
    assert b"concurrent_update" in response.body
