"""
Schemas para Appointment: citas, cambios de estado y cobro.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from clinicas.config import get_settings
from clinicas.models.appointment import AppointmentStatus
from clinicas.models.transaction import PaymentMethod
from clinicas.schemas.transaction import TransactionResponse

settings = get_settings()


# ── CRUD de Citas ────────────────────────────────────

class AppointmentCreate(BaseModel):
    patient_id: UUID
    professional_id: UUID
    procedure_id: UUID
    start_time: datetime
    duration_minutes: int | None = Field(
        None,
        ge=settings.APPOINTMENT_MIN_DURATION,
        le=settings.APPOINTMENT_MAX_DURATION,
        description="Por defecto, la duración del procedimiento",
    )
    price: Decimal | None = Field(
        None, ge=0, description="Por defecto, el precio vigente del procedimiento"
    )
    notes: str | None = Field(None, max_length=500)
    requires_approval: bool = False


class AppointmentUpdate(BaseModel):
    professional_id: UUID | None = None
    start_time: datetime | None = None
    duration_minutes: int | None = Field(
        None,
        ge=settings.APPOINTMENT_MIN_DURATION,
        le=settings.APPOINTMENT_MAX_DURATION,
    )
    price: Decimal | None = Field(None, ge=0)
    notes: str | None = Field(None, max_length=500)


class AppointmentStatusChange(BaseModel):
    """Schema para cambiar el estado de una cita."""
    status: AppointmentStatus
    cancellation_reason: str | None = Field(None, max_length=500)


class AppointmentResponse(BaseModel):
    id: UUID
    clinic_id: UUID
    patient_id: UUID
    professional_id: UUID
    procedure_id: UUID
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    price: Decimal
    status: AppointmentStatus
    notes: str | None = None
    paid: bool
    stock_deducted: bool
    cancellation_reason: str | None = None
    external_calendar_event_id: str | None = None

    # Datos de relaciones
    patient_name: str | None = None
    professional_name: str | None = None
    procedure_name: str | None = None
    transactions: list[TransactionResponse] = []

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Respuesta paginada de listado de citas."""
    items: list[AppointmentResponse]
    total: int
    page: int
    size: int
    pages: int


# ── Cobro ────────────────────────────────────────────

class AppointmentPayRequest(BaseModel):
    payment_method: PaymentMethod | None = None


class InventoryDelta(BaseModel):
    """Stock descontado de un insumo al cobrar."""
    inventory_item_id: UUID
    item_name: str
    unit: str
    quantity: Decimal
    stock_before: Decimal
    stock_after: Decimal
    low_stock: bool


class PaymentSummary(BaseModel):
    revenue: Decimal
    cost: Decimal
    profit: Decimal


class AppointmentPayResponse(BaseModel):
    appointment: AppointmentResponse
    income: TransactionResponse
    expense: TransactionResponse | None = None
    inventory: list[InventoryDelta]
    summary: PaymentSummary


# ── Historial ────────────────────────────────────────

class AppointmentHistoryEntry(BaseModel):
    action: str
    user_id: UUID | None = None
    old_data: dict | None = None
    new_data: dict | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
