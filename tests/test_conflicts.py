"""
Tests de detección de conflictos de agenda.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from clinicas.core.exceptions import SchedulingConflictException
from clinicas.models.appointment import AppointmentStatus
from clinicas.schemas.appointment import AppointmentCreate, AppointmentUpdate
from clinicas.services import appointment_service
from clinicas.services.conflict_service import (
    as_utc,
    day_bounds,
    has_conflict,
    intervals_overlap,
)
from clinicas.services.tenant_scope import TenantScope
from conftest import at


def _create_data(patient, professional, procedure, start_time, **fields):
    return AppointmentCreate(
        patient_id=patient.id,
        professional_id=professional.id,
        procedure_id=procedure.id,
        start_time=start_time,
        **fields,
    )


def test_intervals_are_half_open():
    assert intervals_overlap(at(10), at(10, 30), at(10, 29), at(10, 31))
    assert not intervals_overlap(at(10), at(10, 30), at(10, 30), at(11))
    assert not intervals_overlap(at(10, 30), at(11), at(10), at(10, 30))


def test_as_utc_treats_naive_as_utc():
    naive = datetime(2026, 3, 10, 13, 0)
    assert as_utc(naive) == datetime(2026, 3, 10, 13, 0, tzinfo=timezone.utc)


def test_day_bounds_use_clinic_timezone():
    start, end = day_bounds(at(19), ZoneInfo("America/Sao_Paulo"))
    assert start == datetime(2026, 3, 10, 3, 0, tzinfo=timezone.utc)
    assert end == datetime(2026, 3, 11, 3, 0, tzinfo=timezone.utc)


async def test_back_to_back_appointments_do_not_conflict(
    db_session, test_user, professional, patient, consultation, make_appointment
):
    await make_appointment(consultation, start_time=at(10), duration_minutes=30)

    response = await appointment_service.create_appointment(
        db_session,
        test_user,
        _create_data(patient, professional, consultation, at(10, 30)),
    )
    await db_session.commit()

    assert response.status == AppointmentStatus.SCHEDULED
    assert response.duration_minutes == 30


async def test_one_minute_overlap_is_a_conflict(
    db_session, test_clinic, professional, consultation, make_appointment
):
    await make_appointment(consultation, start_time=at(10), duration_minutes=30)
    scope = TenantScope(db_session, test_clinic.id)

    assert await has_conflict(scope, professional.id, at(10, 29), 2)
    assert not await has_conflict(scope, professional.id, at(10, 30), 30)
    assert not await has_conflict(scope, professional.id, at(9, 30), 30)


async def test_conflict_reports_the_blocking_window(
    db_session, test_user, professional, patient, consultation
):
    await appointment_service.create_appointment(
        db_session,
        test_user,
        _create_data(patient, professional, consultation, at(9), duration_minutes=30),
    )
    await appointment_service.create_appointment(
        db_session,
        test_user,
        _create_data(patient, professional, consultation, at(9, 30), duration_minutes=30),
    )
    await db_session.commit()

    with pytest.raises(SchedulingConflictException) as exc_info:
        await appointment_service.create_appointment(
            db_session,
            test_user,
            _create_data(patient, professional, consultation, at(9, 15), duration_minutes=30),
        )

    detail = exc_info.value.detail
    assert exc_info.value.status_code == 409
    assert detail["code"] == "scheduling_conflict"
    assert exc_info.value.conflicting_start == at(9)
    assert exc_info.value.conflicting_end == at(9, 30)
    assert "09:00 y 09:30" in detail["message"]
    assert detail["conflict"]["local_start_time"] == "2026-03-10T09:00:00-03:00"
    assert detail["conflict"]["start_time"] == "2026-03-10T12:00:00+00:00"


async def test_canceled_and_completed_appointments_do_not_block(
    db_session, test_clinic, professional, consultation, make_appointment
):
    await make_appointment(
        consultation, start_time=at(10), status=AppointmentStatus.CANCELED
    )
    await make_appointment(
        consultation, start_time=at(11), status=AppointmentStatus.COMPLETED
    )
    scope = TenantScope(db_session, test_clinic.id)

    assert not await has_conflict(scope, professional.id, at(10), 30)
    assert not await has_conflict(scope, professional.id, at(11), 30)


async def test_other_days_are_ignored(
    db_session, test_clinic, professional, consultation, make_appointment
):
    await make_appointment(consultation, start_time=at(10, day=11))
    scope = TenantScope(db_session, test_clinic.id)

    assert not await has_conflict(scope, professional.id, at(10), 30)


async def test_update_excludes_the_appointment_itself(
    db_session, test_user, consultation, make_appointment
):
    appt = await make_appointment(consultation, start_time=at(10), duration_minutes=30)

    response = await appointment_service.update_appointment(
        db_session,
        test_user,
        appt.id,
        AppointmentUpdate(start_time=at(10, 15)),
    )
    await db_session.commit()

    assert response.start_time == at(10, 15)
    assert response.end_time == at(10, 45)


async def test_update_into_another_appointment_conflicts(
    db_session, test_user, consultation, make_appointment
):
    await make_appointment(consultation, start_time=at(10), duration_minutes=30)
    other = await make_appointment(consultation, start_time=at(14), duration_minutes=30)

    with pytest.raises(SchedulingConflictException):
        await appointment_service.update_appointment(
            db_session,
            test_user,
            other.id,
            AppointmentUpdate(start_time=at(10, 15)),
        )


async def test_create_uses_procedure_defaults(
    db_session, test_user, professional, patient, facial
):
    response = await appointment_service.create_appointment(
        db_session,
        test_user,
        _create_data(patient, professional, facial, at(15), requires_approval=True),
    )

    assert response.duration_minutes == 60
    assert response.price == facial.price
    assert response.status == AppointmentStatus.PENDING_APPROVAL
    assert response.procedure_name == "Limpeza de Pele"
