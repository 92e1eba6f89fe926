"""
Tests del outbox: los eventos salen solo después del COMMIT.
"""

from sqlalchemy import select, text

from clinicas.models.appointment import Appointment
from clinicas.schemas.appointment import AppointmentCreate
from clinicas.services import appointment_service, outbox
from conftest import at


async def test_events_are_dispatched_after_commit(db_session, dispatched_events):
    await db_session.execute(text("SELECT 1"))
    outbox.enqueue(db_session, outbox.CALENDAR_PUSH, appointment_id="a1")

    assert dispatched_events == []
    assert len(outbox.pending_events(db_session)) == 1

    await db_session.commit()

    assert dispatched_events == [
        outbox.OutboundEvent(outbox.CALENDAR_PUSH, {"appointment_id": "a1"})
    ]
    assert outbox.pending_events(db_session) == []


async def test_rollback_discards_events(db_session, dispatched_events):
    await db_session.execute(text("SELECT 1"))
    outbox.enqueue(db_session, outbox.LOW_STOCK_ALERT, item_name="Luvas")

    await db_session.rollback()
    await db_session.commit()

    assert dispatched_events == []
    assert outbox.pending_events(db_session) == []


async def test_create_appointment_stages_calendar_push(
    db_session, test_user, professional, patient, consultation, dispatched_events
):
    response = await appointment_service.create_appointment(
        db_session,
        test_user,
        AppointmentCreate(
            patient_id=patient.id,
            professional_id=professional.id,
            procedure_id=consultation.id,
            start_time=at(10),
        ),
    )
    await db_session.commit()

    assert len(dispatched_events) == 1
    evt = dispatched_events[0]
    assert evt.kind == outbox.CALENDAR_PUSH
    assert evt.payload == {
        "clinic_id": str(test_user.clinic_id),
        "appointment_id": str(response.id),
    }


async def test_failing_dispatcher_does_not_break_the_operation(
    db_session, test_user, professional, patient, consultation
):
    def _broken(evt):
        raise ConnectionError("broker caído")

    previous = outbox.set_dispatcher(_broken)
    try:
        response = await appointment_service.create_appointment(
            db_session,
            test_user,
            AppointmentCreate(
                patient_id=patient.id,
                professional_id=professional.id,
                procedure_id=consultation.id,
                start_time=at(10),
            ),
        )
        await db_session.commit()
    finally:
        outbox.set_dispatcher(previous)

    stored = await db_session.scalar(
        select(Appointment).where(Appointment.id == response.id)
    )
    assert stored is not None


def test_dispatch_reports_failure():
    def _broken(evt):
        raise RuntimeError("boom")

    previous = outbox.set_dispatcher(_broken)
    try:
        assert outbox.dispatch(outbox.OutboundEvent("x")) is False
    finally:
        outbox.set_dispatcher(previous)
    assert outbox.dispatch(outbox.OutboundEvent("x")) is True
