"""
Tareas Celery de sincronización con Google Calendar.
Se encolan desde el outbox después del COMMIT de la cita.
"""

import logging
from uuid import UUID

from clinicas.database import worker_session
from clinicas.services import calendar_sync
from clinicas.tasks.celery_app import celery_app, run_async

logger = logging.getLogger(__name__)


async def _run_push(clinic_id: str, appointment_id: str) -> str | None:
    async with worker_session() as db:
        return await calendar_sync.push_appointment(db, UUID(clinic_id), UUID(appointment_id))


async def _run_delete(clinic_id: str, appointment_id: str) -> bool:
    async with worker_session() as db:
        return await calendar_sync.delete_event(db, UUID(clinic_id), UUID(appointment_id))


@celery_app.task(
    bind=True,
    max_retries=2,
    default_retry_delay=30,
    name="calendar.push_appointment",
)
def push_appointment_task(self, clinic_id: str, appointment_id: str):
    """Crea o actualiza el evento de calendario de una cita."""
    try:
        return run_async(_run_push(clinic_id, appointment_id))
    except Exception as exc:
        logger.warning(f"Sync de calendario falló para cita {appointment_id}: {exc}")
        raise self.retry(exc=exc)


@celery_app.task(
    bind=True,
    max_retries=2,
    default_retry_delay=30,
    name="calendar.delete_event",
)
def delete_event_task(self, clinic_id: str, appointment_id: str):
    """Elimina el evento de calendario de una cita cancelada."""
    try:
        return run_async(_run_delete(clinic_id, appointment_id))
    except Exception as exc:
        logger.warning(f"Borrado de evento falló para cita {appointment_id}: {exc}")
        raise self.retry(exc=exc)
