"""
Sincronización de citas con Google Calendar del profesional.

Best-effort: lo ejecutan los workers de Celery después del COMMIT de la
cita. Usa el access token guardado por el flujo OAuth; si el profesional
no tiene el calendario conectado no se hace nada. La renovación de tokens
y los webhooks de Google quedan fuera de este módulo.

Docs: https://developers.google.com/calendar/api/v3/reference/events
"""

import logging
from datetime import timedelta
from urllib.parse import quote
from uuid import UUID

import httpx
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from clinicas.config import get_settings
from clinicas.models.appointment import Appointment
from clinicas.services.conflict_service import as_utc
from clinicas.services.tenant_scope import TenantScope

settings = get_settings()
logger = logging.getLogger(__name__)

SOURCE_TAG = "clinicas"


class CalendarSyncError(Exception):
    """Error de comunicación con Google Calendar."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def build_event_body(appointment: Appointment) -> dict:
    """Cuerpo del evento de Google Calendar para una cita."""
    start = as_utc(appointment.start_time)
    end = start + timedelta(minutes=appointment.duration_minutes)
    procedure_name = appointment.procedure.name
    description = [f"Procedimiento: {procedure_name}"]
    if appointment.notes:
        description.append(f"Observaciones: {appointment.notes}")
    description += ["---", "Agendado vía SaaS Clínicas"]

    return {
        "summary": f"{appointment.patient.name} - {procedure_name}",
        "description": "\n".join(description),
        "start": {"dateTime": start.isoformat()},
        "end": {"dateTime": end.isoformat()},
        "extendedProperties": {"private": {"source": SOURCE_TAG}},
    }


def _events_url(calendar_id: str | None, event_id: str | None = None) -> str:
    url = f"{settings.GOOGLE_CALENDAR_API_URL}/calendars/{quote(calendar_id or 'primary', safe='')}/events"
    if event_id:
        url = f"{url}/{event_id}"
    return url


async def _load(scope: TenantScope, appointment_id: UUID) -> Appointment | None:
    result = await scope.db.execute(
        scope.select(Appointment, Appointment.id == appointment_id).options(
            selectinload(Appointment.patient),
            selectinload(Appointment.procedure),
            selectinload(Appointment.professional),
        )
    )
    return result.scalar_one_or_none()


async def _request(
    method: str,
    url: str,
    token: str,
    *,
    json: dict | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.Response:
    headers = {"Authorization": f"Bearer {token}"}
    try:
        async with httpx.AsyncClient(timeout=15.0, transport=transport) as client:
            response = await client.request(method, url, json=json, headers=headers)
    except httpx.TimeoutException:
        raise CalendarSyncError("Timeout al comunicar con Google Calendar")
    except httpx.RequestError as e:
        raise CalendarSyncError(f"Error de conexión con Google Calendar: {e}")

    # 404/410 en DELETE: el evento ya no existe en Google
    if response.status_code >= 400 and not (
        method == "DELETE" and response.status_code in (404, 410)
    ):
        raise CalendarSyncError(
            f"Google Calendar respondió {response.status_code}: {response.text[:200]}",
            status_code=response.status_code,
        )
    return response


async def _set_event_id(
    db: AsyncSession, appointment_id: UUID, event_id: str | None
) -> None:
    # UPDATE de una sola columna: no pisa cambios concurrentes de la cita
    await db.execute(
        update(Appointment)
        .where(Appointment.id == appointment_id)
        .values(external_calendar_event_id=event_id)
        .execution_options(synchronize_session=False)
    )


async def push_appointment(
    db: AsyncSession,
    clinic_id: UUID,
    appointment_id: UUID,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str | None:
    """
    Crea o actualiza el evento de la cita en el calendario del profesional.

    Returns:
        ID del evento en Google, o None si no hubo sincronización.
    """
    scope = TenantScope(db, clinic_id)
    appointment = await _load(scope, appointment_id)
    if appointment is None:
        logger.warning(f"Cita {appointment_id} no encontrada para sincronizar calendario")
        return None

    professional = appointment.professional
    if not professional.google_calendar_connected or not professional.google_access_token:
        return None

    body = build_event_body(appointment)
    event_id = appointment.external_calendar_event_id

    if event_id:
        await _request(
            "PUT",
            _events_url(professional.google_calendar_id, event_id),
            professional.google_access_token,
            json=body,
            transport=transport,
        )
        logger.info(f"Evento {event_id} actualizado para cita {appointment_id}")
        return event_id

    response = await _request(
        "POST",
        _events_url(professional.google_calendar_id),
        professional.google_access_token,
        json=body,
        transport=transport,
    )
    event_id = response.json().get("id")
    if event_id:
        await _set_event_id(db, appointment.id, event_id)
        logger.info(f"Evento {event_id} creado para cita {appointment_id}")
    return event_id


async def delete_event(
    db: AsyncSession,
    clinic_id: UUID,
    appointment_id: UUID,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """Elimina el evento de una cita cancelada. Devuelve True si se eliminó."""
    scope = TenantScope(db, clinic_id)
    appointment = await _load(scope, appointment_id)
    if appointment is None or not appointment.external_calendar_event_id:
        return False

    professional = appointment.professional
    if not professional.google_calendar_connected or not professional.google_access_token:
        return False

    await _request(
        "DELETE",
        _events_url(professional.google_calendar_id, appointment.external_calendar_event_id),
        professional.google_access_token,
        transport=transport,
    )
    await _set_event_id(db, appointment.id, None)
    logger.info(f"Evento de la cita {appointment_id} eliminado del calendario")
    return True
