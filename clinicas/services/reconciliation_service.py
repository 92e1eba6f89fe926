"""
Conciliación de gastos de insumos.

Para cada cita cobrada, el gasto correcto es Σ costo_unitario × cantidad
de sus insumos (la misma regla que usa el cobro). Este servicio detecta
citas cobradas sin gasto, con monto distinto o con descripción sin el
nombre del paciente, y las corrige.

Los procedimientos sin insumos (costo cero) no generan gasto y se ignoran.
"""

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from clinicas.config import get_settings
from clinicas.models.appointment import Appointment
from clinicas.models.procedure import Procedure
from clinicas.models.procedure_supply import ProcedureSupply
from clinicas.models.transaction import (
    SUPPLY_EXPENSE_CATEGORY,
    Transaction,
    TransactionType,
)
from clinicas.models.user import User
from clinicas.schemas.reconciliation import (
    BackfillDetail,
    BackfillResponse,
    DiagnoseResponse,
    ExpenseProblem,
    LedgerEntry,
    LedgerInspection,
    ResetResponse,
    SupplyLine,
)
from clinicas.schemas.transaction import TransactionResponse
from clinicas.services.audit_service import log_action
from clinicas.services.conflict_service import as_utc
from clinicas.services.inventory_service import calculate_supply_cost, supply_breakdown
from clinicas.services.ledger_service import build_supply_expense
from clinicas.services.tenant_scope import TenantScope

logger = logging.getLogger(__name__)
settings = get_settings()

AUDIT_ENTITY = "reconciliation"


# ── Helpers ──────────────────────────────────────────

def _costing_options():
    return [
        selectinload(Appointment.patient),
        selectinload(Appointment.procedure)
        .selectinload(Procedure.supplies)
        .selectinload(ProcedureSupply.inventory_item),
    ]


def _paid_query(scope: TenantScope):
    return (
        scope.select(Appointment, Appointment.paid.is_(True))
        .options(*_costing_options())
    )


async def _count_paid(scope: TenantScope) -> int:
    result = await scope.db.execute(
        select(func.count(Appointment.id)).where(
            Appointment.clinic_id == scope.clinic_id,
            Appointment.paid.is_(True),
        )
    )
    return result.scalar() or 0


async def _iter_paid_batches(scope: TenantScope, *, lock: bool = False):
    """Citas cobradas en lotes de RECONCILIATION_BATCH_SIZE."""
    batch_size = settings.RECONCILIATION_BATCH_SIZE
    offset = 0
    while True:
        query = (
            _paid_query(scope)
            .order_by(Appointment.start_time, Appointment.id)
            .offset(offset)
            .limit(batch_size)
        )
        if lock:
            query = query.with_for_update(of=Appointment)
        batch = await scope.all(query)
        if not batch:
            return
        yield batch
        if len(batch) < batch_size:
            return
        offset += batch_size


async def _supply_expenses_by_appointment(
    scope: TenantScope, appointment_ids: list[UUID]
) -> dict[UUID, Transaction]:
    if not appointment_ids:
        return {}
    query = scope.select(
        Transaction,
        Transaction.type == TransactionType.EXPENSE,
        Transaction.category == SUPPLY_EXPENSE_CATEGORY,
        Transaction.appointment_id.in_(appointment_ids),
    )
    return {t.appointment_id: t for t in await scope.all(query)}


def classify_expense(
    expense: Transaction | None,
    correct_cost: Decimal,
    patient_name: str,
) -> str | None:
    """Devuelve "missing", "wrong_amount", "wrong_description" o None si está bien."""
    if expense is None:
        return "missing"
    if abs(Decimal(expense.amount) - correct_cost) > settings.RECONCILIATION_TOLERANCE:
        return "wrong_amount"
    if patient_name not in expense.description:
        return "wrong_description"
    return None


def _new_expense(scope: TenantScope, appointment: Appointment, cost: Decimal) -> Transaction:
    expense = build_supply_expense(
        appointment,
        cost,
        procedure_name=appointment.procedure.name,
        patient_name=appointment.patient.name,
        date=as_utc(appointment.start_time),
    )
    scope.add(expense)
    return expense


# ── Diagnóstico ──────────────────────────────────────

async def diagnose(db: AsyncSession, clinic_id: UUID) -> DiagnoseResponse:
    """Lista las citas cobradas cuyo gasto de insumos falta o es incorrecto. Solo lectura."""
    scope = TenantScope(db, clinic_id)
    problems: list[ExpenseProblem] = []
    total = 0

    async for batch in _iter_paid_batches(scope):
        total += len(batch)
        expenses = await _supply_expenses_by_appointment(scope, [a.id for a in batch])
        for appointment in batch:
            supplies = appointment.procedure.supplies
            cost = calculate_supply_cost(supplies)
            if cost == 0:
                continue
            expense = expenses.get(appointment.id)
            problem = classify_expense(expense, cost, appointment.patient.name)
            if problem is None:
                continue
            problems.append(ExpenseProblem(
                appointment_id=appointment.id,
                date=as_utc(appointment.start_time),
                patient_name=appointment.patient.name,
                procedure_name=appointment.procedure.name,
                price=appointment.price,
                correct_supply_cost=cost,
                current_amount=expense.amount if expense else None,
                current_description=expense.description if expense else None,
                problem=problem,
                supplies=[SupplyLine(**line) for line in supply_breakdown(supplies)],
            ))

    logger.info(
        f"Diagnóstico clínica {clinic_id}: {len(problems)} problemas "
        f"en {total} citas cobradas"
    )
    return DiagnoseResponse(
        total_paid_appointments=total,
        problems_found=len(problems),
        problems=problems,
    )


# ── Corrección ───────────────────────────────────────

async def backfill(
    db: AsyncSession,
    user: User,
    force_recreate: bool = False,
    ip_address: str | None = None,
) -> BackfillResponse:
    """
    Crea los gastos de insumos faltantes y recrea los incorrectos.

    Con `force_recreate` recrea todos los gastos de citas con insumos.
    La fecha del gasto regenerado es la de la cita.
    """
    scope = TenantScope(db, user.clinic_id)
    result = BackfillResponse(
        processed=0, created=0, updated=0, skipped=0, deleted=0, details=[]
    )

    async for batch in _iter_paid_batches(scope, lock=True):
        result.processed += len(batch)
        expenses = await _supply_expenses_by_appointment(scope, [a.id for a in batch])

        for appointment in batch:
            cost = calculate_supply_cost(appointment.procedure.supplies)
            if cost == 0:
                result.skipped += 1
                result.details.append(BackfillDetail(
                    appointment_id=appointment.id,
                    action="skipped",
                    reason="Procedimiento sin insumos",
                ))
                continue

            existing = expenses.get(appointment.id)
            problem = classify_expense(existing, cost, appointment.patient.name)

            if existing is None:
                _new_expense(scope, appointment, cost)
                result.created += 1
                result.details.append(BackfillDetail(
                    appointment_id=appointment.id,
                    action="created",
                    amount=cost,
                ))
                continue

            if not force_recreate and problem is None:
                result.skipped += 1
                continue

            # El DELETE debe llegar a la base antes del INSERT (unique por cita)
            await scope.delete(existing)
            await scope.flush()
            result.deleted += 1

            _new_expense(scope, appointment, cost)
            result.updated += 1
            result.details.append(BackfillDetail(
                appointment_id=appointment.id,
                action="updated",
                reason=problem or "force_recreate",
                amount=cost,
            ))

        await scope.flush()

    await log_action(
        db,
        clinic_id=user.clinic_id,
        user_id=user.id,
        entity=AUDIT_ENTITY,
        entity_id=str(user.clinic_id),
        action="backfill_supply_expenses",
        new_data={
            "force_recreate": force_recreate,
            "processed": result.processed,
            "created": result.created,
            "updated": result.updated,
            "skipped": result.skipped,
            "deleted": result.deleted,
        },
        ip_address=ip_address,
    )
    logger.info(
        f"Backfill clínica {user.clinic_id}: {result.created} creados, "
        f"{result.updated} corregidos, {result.skipped} ignorados"
    )
    return result


async def reset_supply_expenses(
    db: AsyncSession,
    user: User,
    ip_address: str | None = None,
) -> ResetResponse:
    """
    Elimina TODOS los gastos de insumos de la clínica y los regenera con la
    regla de costeo vigente. Operación destructiva, solo OWNER.
    """
    scope = TenantScope(db, user.clinic_id)

    deleted = await db.execute(
        delete(Transaction).where(
            Transaction.clinic_id == user.clinic_id,
            Transaction.type == TransactionType.EXPENSE,
            Transaction.category == SUPPLY_EXPENSE_CATEGORY,
        )
    )
    deleted_count = deleted.rowcount or 0

    created = 0
    details: list[BackfillDetail] = []
    async for batch in _iter_paid_batches(scope, lock=True):
        for appointment in batch:
            cost = calculate_supply_cost(appointment.procedure.supplies)
            if cost == 0:
                continue
            _new_expense(scope, appointment, cost)
            created += 1
            details.append(BackfillDetail(
                appointment_id=appointment.id,
                action="created",
                amount=cost,
            ))
        await scope.flush()

    await log_action(
        db,
        clinic_id=user.clinic_id,
        user_id=user.id,
        entity=AUDIT_ENTITY,
        entity_id=str(user.clinic_id),
        action="reset_supply_expenses",
        new_data={"deleted": deleted_count, "created": created},
        ip_address=ip_address,
    )
    logger.warning(
        f"Reset de gastos de insumos en clínica {user.clinic_id}: "
        f"{deleted_count} eliminados, {created} regenerados"
    )
    return ResetResponse(deleted=deleted_count, created=created, details=details)


# ── Inspección ───────────────────────────────────────

async def inspect_ledger(
    db: AsyncSession, clinic_id: UUID, limit: int = 10
) -> LedgerInspection:
    """Últimas citas cobradas con sus asientos y el desglose de insumos."""
    scope = TenantScope(db, clinic_id)
    appointments = await scope.all(
        _paid_query(scope)
        .order_by(Appointment.start_time.desc(), Appointment.id)
        .limit(limit)
    )

    transactions = await scope.all(
        scope.select(
            Transaction,
            Transaction.appointment_id.in_([a.id for a in appointments]),
        )
    ) if appointments else []

    income_by_appt: dict[UUID, Transaction] = {}
    expense_by_appt: dict[UUID, Transaction] = {}
    for t in transactions:
        if t.type == TransactionType.INCOME:
            income_by_appt.setdefault(t.appointment_id, t)
        elif t.category == SUPPLY_EXPENSE_CATEGORY:
            expense_by_appt.setdefault(t.appointment_id, t)

    entries = []
    for appointment in appointments:
        supplies = appointment.procedure.supplies
        cost = calculate_supply_cost(supplies)
        expense = expense_by_appt.get(appointment.id)
        income = income_by_appt.get(appointment.id)
        if cost == 0:
            needs_fix = False
        else:
            needs_fix = classify_expense(expense, cost, appointment.patient.name) is not None
        entries.append(LedgerEntry(
            appointment_id=appointment.id,
            date=as_utc(appointment.start_time),
            patient_name=appointment.patient.name,
            procedure_name=appointment.procedure.name,
            price=appointment.price,
            supply_cost=cost,
            supplies=[SupplyLine(**line) for line in supply_breakdown(supplies)],
            income=TransactionResponse.model_validate(income) if income else None,
            expense=TransactionResponse.model_validate(expense) if expense else None,
            needs_fix=needs_fix,
        ))

    return LedgerInspection(
        total_paid_appointments=await _count_paid(scope),
        entries=entries,
    )
