"""
Aplicación Celery de los workers (calendario, alertas, conciliación).
"""

import asyncio
from typing import Any, Coroutine

from celery import Celery
from celery.schedules import crontab

import clinicas.models  # noqa: F401  registra todos los mappers
from clinicas.config import get_settings
from clinicas.database import engine

settings = get_settings()

celery_app = Celery(
    "clinicas",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "clinicas.tasks.calendar_tasks",
        "clinicas.tasks.alert_tasks",
        "clinicas.tasks.reconciliation_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        # Reporte diario de descuadres en gastos de insumos
        "reconciliation-daily-diagnose": {
            "task": "reconciliation.diagnose_all_clinics",
            "schedule": crontab(hour=3, minute=0),
        },
    },
)


def run_async(coro: Coroutine[Any, Any, Any]) -> Any:
    """
    Corre una corrutina en un event loop propio de la tarea.
    El pool se libera al final: sus conexiones quedan atadas a ese loop.
    """

    async def _run():
        try:
            return await coro
        finally:
            await engine.dispose()

    return asyncio.run(_run())
