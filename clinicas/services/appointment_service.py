"""
Servicio de citas: CRUD, state machine, cobro y efectos secundarios.

Todas las operaciones corren dentro de la transacción del request. Las
guardas `stock_deducted` y `paid` se evalúan con la fila de la cita
bloqueada, así un doble click no descuenta ni cobra dos veces.
"""

import logging
import math
from datetime import date, datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from clinicas.config import get_settings
from clinicas.core.exceptions import (
    AlreadyCompletedException,
    AlreadyPaidException,
    ImmutableAppointmentException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
)
from clinicas.models.appointment import (
    Appointment,
    AppointmentStatus,
    VALID_TRANSITIONS,
    is_valid_transition,
)
from clinicas.models.patient import Patient
from clinicas.models.procedure import Procedure
from clinicas.models.transaction import (
    SUPPLY_EXPENSE_CATEGORY,
    Transaction,
    TransactionType,
)
from clinicas.models.user import User
from clinicas.schemas.appointment import (
    AppointmentCreate,
    AppointmentHistoryEntry,
    AppointmentListResponse,
    AppointmentPayRequest,
    AppointmentPayResponse,
    AppointmentResponse,
    AppointmentStatusChange,
    AppointmentUpdate,
    InventoryDelta,
    PaymentSummary,
)
from clinicas.schemas.transaction import TransactionResponse
from clinicas.services import outbox
from clinicas.services.audit_service import get_entity_history, log_action
from clinicas.services.availability_service import validate_appointment_time
from clinicas.services.conflict_service import (
    as_utc,
    day_bounds,
    ensure_no_conflict,
    get_clinic_timezone,
    lock_professional,
)
from clinicas.services.inventory_service import (
    StockDeduction,
    calculate_supply_cost,
    deduct_stock,
    load_supplies,
)
from clinicas.services.ledger_service import post_appointment_ledger
from clinicas.services.tenant_scope import TenantScope

logger = logging.getLogger(__name__)
settings = get_settings()

AUDIT_ENTITY = "appointment"


# ── Helpers ──────────────────────────────────────────

def _load_options():
    """Relaciones que necesitan las respuestas y los asientos del ledger."""
    return [
        selectinload(Appointment.patient),
        selectinload(Appointment.professional),
        selectinload(Appointment.procedure),
    ]


def _appointment_to_response(
    appt: Appointment,
    transactions: list[Transaction] | None = None,
) -> AppointmentResponse:
    """Convierte un modelo Appointment a su schema de respuesta."""
    start_time = as_utc(appt.start_time)
    return AppointmentResponse(
        id=appt.id,
        clinic_id=appt.clinic_id,
        patient_id=appt.patient_id,
        professional_id=appt.professional_id,
        procedure_id=appt.procedure_id,
        start_time=start_time,
        end_time=start_time + timedelta(minutes=appt.duration_minutes),
        duration_minutes=appt.duration_minutes,
        price=appt.price,
        status=appt.status,
        notes=appt.notes,
        paid=appt.paid,
        stock_deducted=appt.stock_deducted,
        cancellation_reason=appt.cancellation_reason,
        external_calendar_event_id=appt.external_calendar_event_id,
        patient_name=appt.patient.name if appt.patient else None,
        professional_name=appt.professional.name if appt.professional else None,
        procedure_name=appt.procedure.name if appt.procedure else None,
        transactions=[
            TransactionResponse.model_validate(t) for t in (transactions or [])
        ],
        created_at=appt.created_at,
        updated_at=appt.updated_at,
    )


async def _lock_appointment(scope: TenantScope, appointment_id: UUID) -> Appointment:
    return await scope.get(
        Appointment,
        appointment_id,
        resource="Cita",
        options=_load_options(),
        for_update=True,
    )


async def _reload(scope: TenantScope, appointment_id: UUID) -> Appointment:
    """Relee la cita con relaciones y columnas generadas por el servidor."""
    query = (
        scope.select(Appointment, Appointment.id == appointment_id)
        .options(*_load_options())
        .execution_options(populate_existing=True)
    )
    result = await scope.db.execute(query)
    return result.scalar_one()


async def _appointment_transactions(
    scope: TenantScope, appointment_id: UUID
) -> list[Transaction]:
    query = scope.select(
        Transaction, Transaction.appointment_id == appointment_id
    ).order_by(Transaction.type, Transaction.category)
    return await scope.all(query)


async def _find_supply_expense(
    scope: TenantScope, appointment_id: UUID
) -> Transaction | None:
    result = await scope.db.execute(
        scope.select(
            Transaction,
            Transaction.appointment_id == appointment_id,
            Transaction.type == TransactionType.EXPENSE,
            Transaction.category == SUPPLY_EXPENSE_CATEGORY,
        )
    )
    return result.scalars().first()


def _stage_calendar_event(
    db: AsyncSession, appointment: Appointment, status: AppointmentStatus
) -> None:
    """Encola la sincronización con el calendario (se envía tras el COMMIT)."""
    if not settings.CALENDAR_SYNC_ENABLED:
        return
    kind = (
        outbox.CALENDAR_DELETE
        if status == AppointmentStatus.CANCELED
        else outbox.CALENDAR_PUSH
    )
    outbox.enqueue(
        db,
        kind,
        clinic_id=str(appointment.clinic_id),
        appointment_id=str(appointment.id),
    )


def _deltas(deductions: list[StockDeduction]) -> list[InventoryDelta]:
    return [
        InventoryDelta(
            inventory_item_id=d.item.id,
            item_name=d.item.name,
            unit=d.item.unit,
            quantity=d.movement.quantity,
            stock_before=d.movement.stock_before,
            stock_after=d.movement.stock_after,
            low_stock=d.is_low_stock,
        )
        for d in deductions
    ]


# ── CRUD ─────────────────────────────────────────────

async def create_appointment(
    db: AsyncSession,
    user: User,
    data: AppointmentCreate,
    ip_address: str | None = None,
) -> AppointmentResponse:
    """Crea una cita validando que el profesional no tenga otra en ese horario."""
    scope = TenantScope(db, user.clinic_id)

    await scope.get(Patient, data.patient_id, resource="Paciente")
    procedure = await scope.get(Procedure, data.procedure_id, resource="Procedimiento")
    if not procedure.is_active:
        raise ValidationException(f"El procedimiento '{procedure.name}' está inactivo")

    professional = await lock_professional(scope, data.professional_id)
    if not professional.is_active:
        raise NotFoundException("Profesional")

    start_time = as_utc(data.start_time)
    duration = data.duration_minutes or procedure.duration_minutes
    price = data.price if data.price is not None else procedure.price

    await validate_appointment_time(scope, professional.id, start_time, duration)
    await ensure_no_conflict(scope, professional.id, start_time, duration)

    status = (
        AppointmentStatus.PENDING_APPROVAL
        if data.requires_approval
        else AppointmentStatus.SCHEDULED
    )
    appointment = Appointment(
        patient_id=data.patient_id,
        professional_id=professional.id,
        procedure_id=procedure.id,
        start_time=start_time,
        duration_minutes=duration,
        price=price,
        status=status,
        notes=data.notes,
        created_by=user.id,
    )
    scope.add(appointment)
    await scope.flush()

    await log_action(
        db,
        clinic_id=user.clinic_id,
        user_id=user.id,
        entity=AUDIT_ENTITY,
        entity_id=str(appointment.id),
        action="create",
        new_data={
            "patient_id": data.patient_id,
            "professional_id": professional.id,
            "procedure_id": procedure.id,
            "start_time": start_time,
            "duration_minutes": duration,
            "price": price,
            "status": status,
        },
        ip_address=ip_address,
    )

    _stage_calendar_event(db, appointment, status)

    appointment = await _reload(scope, appointment.id)
    return _appointment_to_response(appointment)


async def get_appointment(
    db: AsyncSession,
    clinic_id: UUID,
    appointment_id: UUID,
) -> AppointmentResponse:
    """Obtiene una cita con sus asientos financieros."""
    scope = TenantScope(db, clinic_id)
    appointment = await scope.get(
        Appointment, appointment_id, resource="Cita", options=_load_options()
    )
    transactions = await _appointment_transactions(scope, appointment.id)
    return _appointment_to_response(appointment, transactions)


async def list_appointments(
    db: AsyncSession,
    clinic_id: UUID,
    *,
    page: int = 1,
    size: int = 20,
    professional_id: UUID | None = None,
    patient_id: UUID | None = None,
    status: AppointmentStatus | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> AppointmentListResponse:
    """Lista citas con paginación y filtros (fechas en la zona de la clínica)."""
    scope = TenantScope(db, clinic_id)
    query = scope.select(Appointment)

    if professional_id:
        query = query.where(Appointment.professional_id == professional_id)
    if patient_id:
        query = query.where(Appointment.patient_id == patient_id)
    if status:
        query = query.where(Appointment.status == status)
    if date_from or date_to:
        tz = await get_clinic_timezone(scope)
        if date_from:
            start_dt, _ = day_bounds(datetime.combine(date_from, datetime.min.time(), tz), tz)
            query = query.where(Appointment.start_time >= start_dt)
        if date_to:
            _, end_dt = day_bounds(datetime.combine(date_to, datetime.min.time(), tz), tz)
            query = query.where(Appointment.start_time < end_dt)

    count_query = select(func.count()).select_from(
        query.with_only_columns(Appointment.id).subquery()
    )
    total_result = await db.execute(count_query)
    total = total_result.scalar() or 0

    offset = (page - 1) * size
    query = (
        query.options(*_load_options())
        .order_by(Appointment.start_time.desc())
        .offset(offset)
        .limit(size)
    )
    appointments = await scope.all(query)

    return AppointmentListResponse(
        items=[_appointment_to_response(a) for a in appointments],
        total=total,
        page=page,
        size=size,
        pages=math.ceil(total / size) if total > 0 else 0,
    )


async def update_appointment(
    db: AsyncSession,
    user: User,
    appointment_id: UUID,
    data: AppointmentUpdate,
    ip_address: str | None = None,
) -> AppointmentResponse:
    """
    Edita una cita no terminal. Si cambia el horario, la duración o el
    profesional, vuelve a verificar conflictos excluyendo la propia cita.
    """
    scope = TenantScope(db, user.clinic_id)
    appointment = await _lock_appointment(scope, appointment_id)

    if appointment.is_terminal:
        raise ImmutableAppointmentException(appointment.status.value)

    update_data = data.model_dump(exclude_unset=True)
    if not update_data:
        return _appointment_to_response(appointment)

    current_start = as_utc(appointment.start_time)
    new_professional_id = update_data.get("professional_id") or appointment.professional_id
    new_start = as_utc(update_data.get("start_time") or current_start)
    new_duration = update_data.get("duration_minutes") or appointment.duration_minutes

    schedule_changed = (
        new_professional_id != appointment.professional_id
        or new_start != current_start
        or new_duration != appointment.duration_minutes
    )

    if schedule_changed:
        professional = await lock_professional(scope, new_professional_id)
        if not professional.is_active:
            raise NotFoundException("Profesional")
        await validate_appointment_time(
            scope, new_professional_id, new_start, new_duration
        )
        await ensure_no_conflict(
            scope,
            new_professional_id,
            new_start,
            new_duration,
            exclude_appointment_id=appointment.id,
        )

    old_data = {
        "professional_id": appointment.professional_id,
        "start_time": current_start,
        "duration_minutes": appointment.duration_minutes,
        "price": appointment.price,
        "notes": appointment.notes,
    }

    appointment.professional_id = new_professional_id
    appointment.start_time = new_start
    appointment.duration_minutes = new_duration
    if "price" in update_data and update_data["price"] is not None:
        appointment.price = update_data["price"]
    if "notes" in update_data:
        appointment.notes = update_data["notes"]
    await scope.flush()

    await log_action(
        db,
        clinic_id=user.clinic_id,
        user_id=user.id,
        entity=AUDIT_ENTITY,
        entity_id=str(appointment.id),
        action="update",
        old_data=old_data,
        new_data=update_data,
        ip_address=ip_address,
    )

    if schedule_changed:
        _stage_calendar_event(db, appointment, appointment.status)

    appointment = await _reload(scope, appointment.id)
    return _appointment_to_response(appointment)


# ── State machine ────────────────────────────────────

async def change_status(
    db: AsyncSession,
    user: User,
    appointment_id: UUID,
    data: AppointmentStatusChange,
    ip_address: str | None = None,
) -> AppointmentResponse:
    """
    Cambia el estado de una cita respetando la state machine.

    Al pasar a COMPLETED descuenta los insumos y registra el gasto de
    insumos (una sola vez, guardado por `stock_deducted`) y actualiza la
    última visita del paciente. Al pasar a CANCELED guarda el motivo; no
    repone stock ni revierte asientos.
    """
    scope = TenantScope(db, user.clinic_id)
    appointment = await _lock_appointment(scope, appointment_id)

    current = appointment.status
    target = data.status

    if current == AppointmentStatus.COMPLETED and target == AppointmentStatus.COMPLETED:
        raise AlreadyCompletedException()
    if not is_valid_transition(current, target):
        raise InvalidTransitionException(
            current.value,
            target.value,
            [s.value for s in VALID_TRANSITIONS.get(current, [])],
        )

    new_data: dict = {"status": target}

    if target == AppointmentStatus.COMPLETED:
        if not appointment.stock_deducted:
            supplies = await load_supplies(scope, appointment.procedure_id)
            supply_cost = calculate_supply_cost(supplies)
            deductions = await deduct_stock(
                scope, appointment, appointment.procedure, user.id, supplies
            )
            await post_appointment_ledger(
                scope,
                appointment,
                supply_cost,
                include_income=False,
                include_expense=True,
            )
            appointment.stock_deducted = True
            new_data["supply_cost"] = supply_cost
            new_data["items_deducted"] = len(deductions)
        appointment.patient.last_visit = datetime.now(timezone.utc)

    if target == AppointmentStatus.CANCELED:
        appointment.cancellation_reason = data.cancellation_reason
        new_data["cancellation_reason"] = data.cancellation_reason

    appointment.status = target
    await scope.flush()

    await log_action(
        db,
        clinic_id=user.clinic_id,
        user_id=user.id,
        entity=AUDIT_ENTITY,
        entity_id=str(appointment.id),
        action="status_change",
        old_data={"status": current},
        new_data=new_data,
        ip_address=ip_address,
    )
    logger.info(f"Cita {appointment.id}: {current.value} -> {target.value}")

    _stage_calendar_event(db, appointment, target)

    appointment = await _reload(scope, appointment.id)
    return _appointment_to_response(appointment)


async def cancel_appointment(
    db: AsyncSession,
    user: User,
    appointment_id: UUID,
    reason: str | None = None,
    ip_address: str | None = None,
) -> AppointmentResponse:
    """Cancela una cita (transición a CANCELED)."""
    return await change_status(
        db,
        user,
        appointment_id,
        AppointmentStatusChange(
            status=AppointmentStatus.CANCELED, cancellation_reason=reason
        ),
        ip_address=ip_address,
    )


# ── Cobro ────────────────────────────────────────────

async def pay_appointment(
    db: AsyncSession,
    user: User,
    appointment_id: UUID,
    data: AppointmentPayRequest,
    ip_address: str | None = None,
) -> AppointmentPayResponse:
    """
    Cobra una cita: registra el INCOME, descuenta insumos y registra el
    gasto si aún no se hizo al completarla, y deja la cita COMPLETED.

    Cobrar dos veces lanza AlreadyPaidException. Una cita cancelada no se
    puede cobrar.
    """
    scope = TenantScope(db, user.clinic_id)
    appointment = await _lock_appointment(scope, appointment_id)

    if appointment.paid:
        raise AlreadyPaidException()
    if appointment.status == AppointmentStatus.CANCELED:
        raise InvalidTransitionException(
            appointment.status.value, AppointmentStatus.COMPLETED.value, []
        )

    previous_status = appointment.status
    supplies = await load_supplies(scope, appointment.procedure_id)
    supply_cost = calculate_supply_cost(supplies)

    deduct_now = not appointment.stock_deducted
    deductions: list[StockDeduction] = []
    if deduct_now:
        deductions = await deduct_stock(
            scope, appointment, appointment.procedure, user.id, supplies
        )

    posting = await post_appointment_ledger(
        scope,
        appointment,
        supply_cost,
        include_income=True,
        include_expense=deduct_now,
        payment_method=data.payment_method,
    )
    expense = posting.expense
    if expense is None and not deduct_now:
        expense = await _find_supply_expense(scope, appointment.id)

    appointment.paid = True
    appointment.stock_deducted = True
    appointment.status = AppointmentStatus.COMPLETED
    appointment.patient.last_visit = datetime.now(timezone.utc)
    await scope.flush()

    await log_action(
        db,
        clinic_id=user.clinic_id,
        user_id=user.id,
        entity=AUDIT_ENTITY,
        entity_id=str(appointment.id),
        action="pay",
        old_data={"status": previous_status, "paid": False},
        new_data={
            "status": AppointmentStatus.COMPLETED,
            "paid": True,
            "payment_method": data.payment_method,
            "revenue": appointment.price,
            "supply_cost": supply_cost,
        },
        ip_address=ip_address,
    )
    logger.info(
        f"Cita {appointment.id} cobrada: ingreso {appointment.price}, "
        f"insumos {supply_cost}"
    )

    _stage_calendar_event(db, appointment, AppointmentStatus.COMPLETED)

    appointment = await _reload(scope, appointment.id)
    transactions = await _appointment_transactions(scope, appointment.id)
    revenue = appointment.price

    return AppointmentPayResponse(
        appointment=_appointment_to_response(appointment, transactions),
        income=TransactionResponse.model_validate(posting.income),
        expense=TransactionResponse.model_validate(expense) if expense else None,
        inventory=_deltas(deductions),
        summary=PaymentSummary(
            revenue=revenue,
            cost=supply_cost,
            profit=revenue - supply_cost,
        ),
    )


# ── Historial ────────────────────────────────────────

async def get_appointment_history(
    db: AsyncSession,
    clinic_id: UUID,
    appointment_id: UUID,
) -> list[AppointmentHistoryEntry]:
    """Historial de auditoría de la cita."""
    scope = TenantScope(db, clinic_id)
    appointment = await scope.get(Appointment, appointment_id, resource="Cita")
    entries = await get_entity_history(
        db, clinic_id=clinic_id, entity=AUDIT_ENTITY, entity_id=appointment.id
    )
    return [AppointmentHistoryEntry.model_validate(e) for e in entries]
