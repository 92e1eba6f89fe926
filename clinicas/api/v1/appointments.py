"""
Endpoints de citas: CRUD, cambio de estado, cobro y cancelación.
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from clinicas.auth.dependencies import require_permission
from clinicas.database import get_db
from clinicas.models.appointment import AppointmentStatus
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
)
from clinicas.services import appointment_service

router = APIRouter()


def get_client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


# ── CRUD de Citas ────────────────────────────────────

@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    professional_id: UUID | None = Query(None, description="Filtrar por profesional"),
    patient_id: UUID | None = Query(None, description="Filtrar por paciente"),
    status: AppointmentStatus | None = Query(None, description="Filtrar por estado"),
    date_from: date | None = Query(None, description="Desde fecha (YYYY-MM-DD)"),
    date_to: date | None = Query(None, description="Hasta fecha (YYYY-MM-DD)"),
    user: User = Depends(require_permission("appointment", "read")),
    db: AsyncSession = Depends(get_db),
):
    """
    Lista citas de la clínica con filtros por profesional, paciente,
    estado y rango de fechas. Paginación incluida.
    """
    return await appointment_service.list_appointments(
        db,
        clinic_id=user.clinic_id,
        page=page,
        size=size,
        professional_id=professional_id,
        patient_id=patient_id,
        status=status,
        date_from=date_from,
        date_to=date_to,
    )


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: UUID,
    user: User = Depends(require_permission("appointment", "read")),
    db: AsyncSession = Depends(get_db),
):
    """Detalle de una cita con sus asientos financieros."""
    return await appointment_service.get_appointment(
        db, clinic_id=user.clinic_id, appointment_id=appointment_id
    )


@router.get("/{appointment_id}/history", response_model=list[AppointmentHistoryEntry])
async def get_appointment_history(
    appointment_id: UUID,
    user: User = Depends(require_permission("appointment", "read")),
    db: AsyncSession = Depends(get_db),
):
    return await appointment_service.get_appointment_history(
        db, clinic_id=user.clinic_id, appointment_id=appointment_id
    )


@router.post("", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    request: Request,
    user: User = Depends(require_permission("appointment", "create")),
    db: AsyncSession = Depends(get_db),
):
    """
    Crea una nueva cita. Rechaza con 409 si el profesional ya tiene
    otra cita en ese horario.
    """
    return await appointment_service.create_appointment(
        db, user=user, data=data, ip_address=get_client_ip(request)
    )


@router.put("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    request: Request,
    user: User = Depends(require_permission("appointment", "update")),
    db: AsyncSession = Depends(get_db),
):
    """Edita horario, duración, profesional, precio o notas de una cita no terminal."""
    return await appointment_service.update_appointment(
        db,
        user=user,
        appointment_id=appointment_id,
        data=data,
        ip_address=get_client_ip(request),
    )


# ── State machine ────────────────────────────────────

@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
async def change_appointment_status(
    appointment_id: UUID,
    data: AppointmentStatusChange,
    request: Request,
    user: User = Depends(require_permission("appointment", "status")),
    db: AsyncSession = Depends(get_db),
):
    """
    Cambia el estado de la cita. Al completarla se descuentan los insumos
    y se registra el gasto correspondiente.
    """
    return await appointment_service.change_status(
        db,
        user=user,
        appointment_id=appointment_id,
        data=data,
        ip_address=get_client_ip(request),
    )


@router.post("/{appointment_id}/pay", response_model=AppointmentPayResponse)
async def pay_appointment(
    appointment_id: UUID,
    request: Request,
    data: AppointmentPayRequest | None = None,
    user: User = Depends(require_permission("appointment", "pay")),
    db: AsyncSession = Depends(get_db),
):
    """Cobra la cita: ingreso, gasto de insumos y descuento de stock."""
    return await appointment_service.pay_appointment(
        db,
        user=user,
        appointment_id=appointment_id,
        data=data or AppointmentPayRequest(),
        ip_address=get_client_ip(request),
    )


@router.delete("/{appointment_id}", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: UUID,
    request: Request,
    reason: str | None = Query(None, max_length=500, description="Motivo de cancelación"),
    user: User = Depends(require_permission("appointment", "status")),
    db: AsyncSession = Depends(get_db),
):
    """Cancela la cita (no se elimina el registro)."""
    return await appointment_service.cancel_appointment(
        db,
        user=user,
        appointment_id=appointment_id,
        reason=reason,
        ip_address=get_client_ip(request),
    )
