"""
Tareas Celery de conciliación financiera.
El diagnóstico es de solo lectura; las correcciones se hacen desde la API.
"""

import logging
from uuid import UUID

from sqlalchemy import select

from clinicas.database import worker_session
from clinicas.models.clinic import Clinic
from clinicas.services.reconciliation_service import diagnose
from clinicas.tasks.celery_app import celery_app, run_async

logger = logging.getLogger(__name__)


@celery_app.task(name="reconciliation.diagnose_clinic")
def diagnose_clinic_task(clinic_id: str) -> dict:
    """Diagnostica los gastos de insumos de una clínica."""

    async def _diagnose():
        async with worker_session() as db:
            return await diagnose(db, UUID(clinic_id))

    report = run_async(_diagnose())
    if report.problems_found:
        logger.warning(
            f"Clínica {clinic_id}: {report.problems_found} gastos de insumos "
            f"a corregir de {report.total_paid_appointments} citas cobradas"
        )
    return {
        "clinic_id": clinic_id,
        "total_paid_appointments": report.total_paid_appointments,
        "problems_found": report.problems_found,
    }


@celery_app.task(name="reconciliation.diagnose_all_clinics")
def diagnose_all_clinics_task():
    """Task periódico (Celery Beat): encola el diagnóstico de cada clínica activa."""

    async def _clinic_ids():
        async with worker_session() as db:
            result = await db.execute(
                select(Clinic.id).where(Clinic.is_active.is_(True))
            )
            return [str(row[0]) for row in result.all()]

    clinic_ids = run_async(_clinic_ids())
    for clinic_id in clinic_ids:
        diagnose_clinic_task.delay(clinic_id)

    logger.info(f"Encolados {len(clinic_ids)} diagnósticos de conciliación")
