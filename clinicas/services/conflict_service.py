"""
Detector de conflictos de agenda.

Una cita nueva (o reprogramada) choca con otra del mismo profesional si
los intervalos semiabiertos [inicio, fin) se solapan:

    propuesto.inicio < existente.fin  AND  propuesto.fin > existente.inicio

Citas consecutivas que solo se tocan en el borde no son conflicto.
Solo las citas SCHEDULED/CONFIRMED del mismo día calendario (zona horaria
de la clínica) ocupan la agenda.
"""

import logging
from datetime import datetime, time, timedelta, timezone
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from clinicas.config import get_settings
from clinicas.core.exceptions import SchedulingConflictException
from clinicas.models.appointment import Appointment, BLOCKING_STATUSES
from clinicas.models.clinic import Clinic
from clinicas.models.user import User
from clinicas.services.tenant_scope import TenantScope

logger = logging.getLogger(__name__)
settings = get_settings()


def as_utc(value: datetime) -> datetime:
    """Normaliza a UTC; un datetime naive se interpreta como UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def intervals_overlap(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Solapamiento de intervalos semiabiertos [start, end)."""
    return as_utc(start_a) < as_utc(end_b) and as_utc(end_a) > as_utc(start_b)


def day_bounds(moment: datetime, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Inicio y fin (UTC) del día calendario local que contiene `moment`."""
    local_day = as_utc(moment).astimezone(tz).date()
    day_start = datetime.combine(local_day, time.min, tzinfo=tz)
    day_end = day_start + timedelta(days=1)
    return day_start.astimezone(timezone.utc), day_end.astimezone(timezone.utc)


async def get_clinic_timezone(scope: TenantScope) -> ZoneInfo:
    clinic = await scope.db.get(Clinic, scope.clinic_id)
    tz_name = clinic.timezone if clinic and clinic.timezone else settings.DEFAULT_TIMEZONE
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError:
        logger.warning(f"Zona horaria inválida '{tz_name}' en clínica {scope.clinic_id}")
        return ZoneInfo(settings.DEFAULT_TIMEZONE)


async def lock_professional(scope: TenantScope, professional_id: UUID) -> User:
    """
    Bloquea la fila del profesional: dos reservas concurrentes para el mismo
    profesional se serializan entre la verificación y el INSERT.
    """
    return await scope.get(
        User,
        professional_id,
        resource="Profesional",
        for_update=True,
    )


async def find_conflict(
    scope: TenantScope,
    professional_id: UUID,
    proposed_start: datetime,
    duration_minutes: int,
    exclude_appointment_id: UUID | None = None,
    tz: ZoneInfo | None = None,
) -> Appointment | None:
    """Devuelve la primera cita que choca con el horario propuesto, o None."""
    proposed_start = as_utc(proposed_start)
    proposed_end = proposed_start + timedelta(minutes=duration_minutes)

    tz = tz or await get_clinic_timezone(scope)
    day_start, day_end = day_bounds(proposed_start, tz)

    query = scope.select(
        Appointment,
        Appointment.professional_id == professional_id,
        Appointment.status.in_(BLOCKING_STATUSES),
        Appointment.start_time >= day_start,
        Appointment.start_time < day_end,
    ).order_by(Appointment.start_time)
    if exclude_appointment_id:
        query = query.where(Appointment.id != exclude_appointment_id)

    for existing in await scope.all(query):
        existing_start = as_utc(existing.start_time)
        existing_end = existing_start + timedelta(minutes=existing.duration_minutes)
        if intervals_overlap(proposed_start, proposed_end, existing_start, existing_end):
            return existing
    return None


async def has_conflict(
    scope: TenantScope,
    professional_id: UUID,
    proposed_start: datetime,
    duration_minutes: int,
    exclude_appointment_id: UUID | None = None,
) -> bool:
    conflict = await find_conflict(
        scope, professional_id, proposed_start, duration_minutes, exclude_appointment_id
    )
    return conflict is not None


async def ensure_no_conflict(
    scope: TenantScope,
    professional_id: UUID,
    proposed_start: datetime,
    duration_minutes: int,
    exclude_appointment_id: UUID | None = None,
) -> None:
    """Lanza SchedulingConflictException con la ventana de la cita en conflicto."""
    tz = await get_clinic_timezone(scope)
    conflict = await find_conflict(
        scope, professional_id, proposed_start, duration_minutes, exclude_appointment_id, tz
    )
    if conflict is None:
        return

    conflict_start = as_utc(conflict.start_time)
    logger.info(
        f"Conflicto de agenda: profesional {professional_id} "
        f"{as_utc(proposed_start).isoformat()} choca con cita {conflict.id}"
    )
    raise SchedulingConflictException(
        appointment_id=conflict.id,
        start_time=conflict_start,
        end_time=conflict_start + timedelta(minutes=conflict.duration_minutes),
        tz=tz,
    )
