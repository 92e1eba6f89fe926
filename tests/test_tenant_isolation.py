"""
Tests de aislamiento por clínica (tenant).
"""

from uuid import uuid4

import pytest
import pytest_asyncio

from clinicas.core.exceptions import NotFoundException
from clinicas.models.appointment import AppointmentStatus
from clinicas.models.clinic import Clinic
from clinicas.models.user import User, UserRole
from clinicas.schemas.appointment import AppointmentPayRequest
from clinicas.services import appointment_service, reconciliation_service
from clinicas.services.tenant_scope import TenantScope


@pytest_asyncio.fixture
async def other_owner(db_session):
    clinic = Clinic(id=uuid4(), name="Otra Clínica", timezone="America/Sao_Paulo")
    db_session.add(clinic)
    await db_session.flush()
    user = User(
        id=uuid4(),
        clinic_id=clinic.id,
        email="owner@otra.com",
        name="Dueño Otra",
        role=UserRole.OWNER,
    )
    db_session.add(user)
    await db_session.commit()
    return user


async def test_scope_requires_clinic(db_session):
    with pytest.raises(ValueError):
        TenantScope(db_session, None)


async def test_other_clinic_appointment_is_not_found(
    db_session, other_owner, facial, make_appointment
):
    appt = await make_appointment(facial)

    with pytest.raises(NotFoundException):
        await appointment_service.get_appointment(
            db_session, other_owner.clinic_id, appt.id
        )
    with pytest.raises(NotFoundException):
        await appointment_service.pay_appointment(
            db_session, other_owner, appt.id, AppointmentPayRequest()
        )


async def test_listing_only_returns_own_clinic(
    db_session, test_clinic, other_owner, facial, make_appointment
):
    await make_appointment(facial)

    own = await appointment_service.list_appointments(db_session, test_clinic.id)
    other = await appointment_service.list_appointments(
        db_session, other_owner.clinic_id
    )

    assert own.total == 1
    assert other.total == 0
    assert other.items == []


async def test_reconciliation_is_scoped_to_clinic(
    db_session, other_owner, facial, make_appointment
):
    await make_appointment(
        facial, status=AppointmentStatus.COMPLETED, paid=True, stock_deducted=True
    )

    report = await reconciliation_service.diagnose(db_session, other_owner.clinic_id)
    result = await reconciliation_service.backfill(db_session, other_owner)

    assert report.total_paid_appointments == 0
    assert result.processed == 0
