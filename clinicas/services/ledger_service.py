"""
Generador de asientos financieros de una atención.

Por cita existe como máximo un INCOME ("Procedimentos") y un EXPENSE
("Insumos"). Los asientos comparten la transacción del llamador: si el
cambio de estado falla, no queda nada registrado.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from clinicas.models.appointment import Appointment
from clinicas.models.transaction import (
    INCOME_CATEGORY,
    SUPPLY_EXPENSE_CATEGORY,
    PaymentMethod,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from clinicas.services.tenant_scope import TenantScope

logger = logging.getLogger(__name__)


@dataclass
class LedgerPosting:
    income: Transaction | None = None
    expense: Transaction | None = None


def expense_description(procedure_name: str, patient_name: str) -> str:
    """Formato único de la descripción del gasto de insumos."""
    return f"Costo insumos: {procedure_name} - {patient_name}"


def income_description(procedure_name: str, patient_name: str) -> str:
    return f"Atención: {procedure_name} - {patient_name}"


def build_supply_expense(
    appointment: Appointment,
    supply_cost: Decimal,
    *,
    procedure_name: str,
    patient_name: str,
    date: datetime | None = None,
) -> Transaction:
    """Construye (sin persistir) el EXPENSE de insumos de una cita."""
    return Transaction(
        date=date or datetime.now(timezone.utc),
        description=expense_description(procedure_name, patient_name),
        amount=supply_cost,
        type=TransactionType.EXPENSE,
        category=SUPPLY_EXPENSE_CATEGORY,
        status=TransactionStatus.PAID,
        appointment_id=appointment.id,
        patient_id=appointment.patient_id,
        professional_id=appointment.professional_id,
    )


async def post_appointment_ledger(
    scope: TenantScope,
    appointment: Appointment,
    supply_cost: Decimal,
    *,
    include_income: bool,
    include_expense: bool,
    payment_method: PaymentMethod | None = None,
) -> LedgerPosting:
    """
    Registra los asientos de la cita.

    - INCOME por el precio congelado en la cita (si include_income).
    - EXPENSE por el costo de insumos, solo si include_expense y el costo
      es mayor a cero.

    `appointment.patient` y `appointment.procedure` deben estar cargados.
    """
    posting = LedgerPosting()
    patient_name = appointment.patient.name
    procedure_name = appointment.procedure.name
    now = datetime.now(timezone.utc)

    if include_income:
        posting.income = Transaction(
            date=now,
            description=income_description(procedure_name, patient_name),
            amount=appointment.price,
            type=TransactionType.INCOME,
            category=INCOME_CATEGORY,
            status=TransactionStatus.PAID,
            payment_method=payment_method,
            appointment_id=appointment.id,
            patient_id=appointment.patient_id,
            professional_id=appointment.professional_id,
        )
        scope.add(posting.income)
        logger.info(f"INCOME {appointment.price} registrado para cita {appointment.id}")

    if include_expense and supply_cost > 0:
        posting.expense = build_supply_expense(
            appointment,
            supply_cost,
            procedure_name=procedure_name,
            patient_name=patient_name,
            date=now,
        )
        scope.add(posting.expense)
        logger.info(f"EXPENSE insumos {supply_cost} registrado para cita {appointment.id}")

    if posting.income or posting.expense:
        await scope.flush()
    return posting
