"""
Tests de la state machine de citas y de los efectos al completar/cancelar.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from clinicas.core.exceptions import (
    AlreadyCompletedException,
    ImmutableAppointmentException,
    InvalidTransitionException,
)
from clinicas.models.appointment import (
    AppointmentStatus,
    TERMINAL_STATUSES,
    is_valid_transition,
)
from clinicas.models.inventory import StockMovement, StockMovementType
from clinicas.models.transaction import Transaction, TransactionType
from clinicas.schemas.appointment import AppointmentStatusChange, AppointmentUpdate
from clinicas.services import appointment_service, outbox
from conftest import at

S = AppointmentStatus


@pytest.mark.parametrize(
    "current,target,expected",
    [
        (S.PENDING_APPROVAL, S.SCHEDULED, True),
        (S.PENDING_APPROVAL, S.CANCELED, True),
        (S.PENDING_APPROVAL, S.CONFIRMED, False),
        (S.SCHEDULED, S.CONFIRMED, True),
        (S.SCHEDULED, S.COMPLETED, False),
        (S.CONFIRMED, S.COMPLETED, True),
        (S.CONFIRMED, S.SCHEDULED, False),
        (S.COMPLETED, S.SCHEDULED, False),
        (S.COMPLETED, S.CANCELED, False),
        (S.CANCELED, S.SCHEDULED, False),
    ],
)
def test_transition_table(current, target, expected):
    assert is_valid_transition(current, target) is expected


def test_terminal_statuses():
    assert TERMINAL_STATUSES == {S.COMPLETED, S.CANCELED}


async def test_invalid_transition_leaves_appointment_unchanged(
    db_session, test_user, facial, make_appointment
):
    appt = await make_appointment(facial, status=S.COMPLETED, stock_deducted=True)

    with pytest.raises(InvalidTransitionException) as exc_info:
        await appointment_service.change_status(
            db_session, test_user, appt.id, AppointmentStatusChange(status=S.SCHEDULED)
        )
    await db_session.rollback()

    assert exc_info.value.detail["code"] == "invalid_transition"
    assert exc_info.value.detail["current_status"] == "COMPLETED"
    assert exc_info.value.detail["allowed"] == []

    await db_session.refresh(appt)
    assert appt.status == S.COMPLETED


async def test_skipping_confirmation_is_rejected(
    db_session, test_user, facial, make_appointment
):
    appt = await make_appointment(facial, status=S.SCHEDULED)

    with pytest.raises(InvalidTransitionException) as exc_info:
        await appointment_service.change_status(
            db_session, test_user, appt.id, AppointmentStatusChange(status=S.COMPLETED)
        )
    assert exc_info.value.detail["allowed"] == ["CONFIRMED", "CANCELED"]


async def test_completing_twice_raises_already_completed(
    db_session, test_user, facial, make_appointment
):
    appt = await make_appointment(facial, status=S.COMPLETED, stock_deducted=True)

    with pytest.raises(AlreadyCompletedException):
        await appointment_service.change_status(
            db_session, test_user, appt.id, AppointmentStatusChange(status=S.COMPLETED)
        )


async def test_complete_deducts_stock_and_posts_supply_expense(
    db_session, test_user, facial, glove_item, patient, make_appointment
):
    appt = await make_appointment(facial, status=S.CONFIRMED)

    response = await appointment_service.change_status(
        db_session, test_user, appt.id, AppointmentStatusChange(status=S.COMPLETED)
    )
    await db_session.commit()

    assert response.status == S.COMPLETED
    assert response.stock_deducted is True
    assert response.paid is False

    await db_session.refresh(glove_item)
    assert glove_item.current_stock == Decimal("8")

    movements = (await db_session.execute(
        select(StockMovement).where(StockMovement.appointment_id == appt.id)
    )).scalars().all()
    assert len(movements) == 1
    assert movements[0].type == StockMovementType.OUT
    assert movements[0].quantity == Decimal("2")
    assert "Limpeza de Pele" in movements[0].reason

    transactions = (await db_session.execute(
        select(Transaction).where(Transaction.appointment_id == appt.id)
    )).scalars().all()
    assert len(transactions) == 1
    assert transactions[0].type == TransactionType.EXPENSE
    assert transactions[0].category == "Insumos"
    assert transactions[0].amount == Decimal("20.00")
    assert transactions[0].description == "Costo insumos: Limpeza de Pele - Maria Souza"

    await db_session.refresh(patient)
    assert patient.last_visit is not None


async def test_complete_does_not_deduct_again_when_flag_is_set(
    db_session, test_user, facial, glove_item, make_appointment
):
    appt = await make_appointment(facial, status=S.CONFIRMED, stock_deducted=True)

    await appointment_service.change_status(
        db_session, test_user, appt.id, AppointmentStatusChange(status=S.COMPLETED)
    )
    await db_session.commit()

    await db_session.refresh(glove_item)
    assert glove_item.current_stock == Decimal("10")
    count = await db_session.scalar(
        select(func.count()).select_from(StockMovement).where(
            StockMovement.appointment_id == appt.id
        )
    )
    assert count == 0


async def test_complete_without_supplies_posts_nothing(
    db_session, test_user, consultation, make_appointment
):
    appt = await make_appointment(consultation, status=S.CONFIRMED)

    response = await appointment_service.change_status(
        db_session, test_user, appt.id, AppointmentStatusChange(status=S.COMPLETED)
    )
    await db_session.commit()

    assert response.stock_deducted is True
    count = await db_session.scalar(
        select(func.count()).select_from(Transaction).where(
            Transaction.appointment_id == appt.id
        )
    )
    assert count == 0


async def test_low_stock_alert_is_dispatched_after_commit(
    db_session, test_user, facial, glove_item, make_appointment, dispatched_events
):
    glove_item.current_stock = Decimal("4")
    await db_session.commit()
    appt = await make_appointment(facial, status=S.CONFIRMED)

    await appointment_service.change_status(
        db_session, test_user, appt.id, AppointmentStatusChange(status=S.COMPLETED)
    )
    assert [e.kind for e in dispatched_events] == []

    await db_session.commit()

    kinds = [e.kind for e in dispatched_events]
    assert outbox.LOW_STOCK_ALERT in kinds
    alert = next(e for e in dispatched_events if e.kind == outbox.LOW_STOCK_ALERT)
    assert alert.payload["item_name"] == "Luvas"
    assert Decimal(alert.payload["current_stock"]) == Decimal("2")


async def test_cancel_keeps_stock_and_ledger(
    db_session, test_user, facial, glove_item, make_appointment, dispatched_events
):
    appt = await make_appointment(facial, status=S.CONFIRMED)

    response = await appointment_service.cancel_appointment(
        db_session, test_user, appt.id, reason="Paciente enfermo"
    )
    await db_session.commit()

    assert response.status == S.CANCELED
    assert response.cancellation_reason == "Paciente enfermo"
    await db_session.refresh(glove_item)
    assert glove_item.current_stock == Decimal("10")
    assert [e.kind for e in dispatched_events] == [outbox.CALENDAR_DELETE]


async def test_completed_appointment_cannot_be_canceled(
    db_session, test_user, facial, make_appointment
):
    appt = await make_appointment(facial, status=S.COMPLETED, stock_deducted=True)

    with pytest.raises(InvalidTransitionException):
        await appointment_service.cancel_appointment(db_session, test_user, appt.id)


async def test_terminal_appointment_is_immutable(
    db_session, test_user, facial, make_appointment
):
    appt = await make_appointment(facial, status=S.CANCELED)

    with pytest.raises(ImmutableAppointmentException):
        await appointment_service.update_appointment(
            db_session, test_user, appt.id, AppointmentUpdate(start_time=at(15))
        )


async def test_status_change_is_audited(
    db_session, test_user, facial, make_appointment
):
    appt = await make_appointment(facial, status=S.SCHEDULED)

    await appointment_service.change_status(
        db_session, test_user, appt.id, AppointmentStatusChange(status=S.CONFIRMED)
    )
    await db_session.commit()

    history = await appointment_service.get_appointment_history(
        db_session, test_user.clinic_id, appt.id
    )
    assert len(history) == 1
    assert history[0].action == "status_change"
    assert history[0].old_data == {"status": "SCHEDULED"}
    assert history[0].new_data["status"] == "CONFIRMED"
    assert history[0].user_id == test_user.id
