"""
Schemas para la conciliación financiera de gastos de insumos.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel

from clinicas.schemas.transaction import TransactionResponse

ProblemKind = Literal["missing", "wrong_amount", "wrong_description"]


class SupplyLine(BaseModel):
    inventory_item_id: UUID
    item_name: str
    quantity_used: Decimal
    cost_per_unit: Decimal
    line_cost: Decimal


class ExpenseProblem(BaseModel):
    appointment_id: UUID
    date: datetime
    patient_name: str
    procedure_name: str
    price: Decimal
    correct_supply_cost: Decimal
    current_amount: Decimal | None = None
    current_description: str | None = None
    problem: ProblemKind
    supplies: list[SupplyLine] = []


class DiagnoseResponse(BaseModel):
    total_paid_appointments: int
    problems_found: int
    problems: list[ExpenseProblem]


class BackfillRequest(BaseModel):
    force_recreate: bool = False


class BackfillDetail(BaseModel):
    appointment_id: UUID
    action: Literal["created", "updated", "skipped"]
    reason: str | None = None
    amount: Decimal | None = None


class BackfillResponse(BaseModel):
    processed: int
    created: int
    updated: int
    skipped: int
    deleted: int
    details: list[BackfillDetail]


class ResetResponse(BaseModel):
    deleted: int
    created: int
    details: list[BackfillDetail]


class LedgerEntry(BaseModel):
    """Vista de inspección de una cita cobrada y sus asientos."""
    appointment_id: UUID
    date: datetime
    patient_name: str
    procedure_name: str
    price: Decimal
    supply_cost: Decimal
    supplies: list[SupplyLine]
    income: TransactionResponse | None = None
    expense: TransactionResponse | None = None
    needs_fix: bool


class LedgerInspection(BaseModel):
    total_paid_appointments: int
    entries: list[LedgerEntry]
