"""
Tareas Celery de alertas internas (stock bajo).
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from clinicas.database import worker_session
from clinicas.models.notification import Notification, NotificationType
from clinicas.tasks.celery_app import celery_app, run_async

logger = logging.getLogger(__name__)


async def record_low_stock_alert(
    db: AsyncSession,
    *,
    clinic_id: UUID,
    item_name: str,
    current_stock: str,
    min_stock: str,
    unit: str = "un",
) -> Notification:
    """Registra el aviso de stock bajo para la clínica."""
    notification = Notification(
        clinic_id=clinic_id,
        message=(
            f"Stock bajo: {item_name} tiene {current_stock} {unit} "
            f"(mínimo {min_stock} {unit})"
        ),
        type=NotificationType.WARNING,
    )
    db.add(notification)
    await db.flush()
    return notification


@celery_app.task(name="alerts.low_stock")
def low_stock_alert_task(
    clinic_id: str,
    inventory_item_id: str,
    item_name: str,
    current_stock: str,
    min_stock: str,
    unit: str = "un",
):
    """Persiste una notificación cuando un insumo cruza su stock mínimo."""

    async def _record():
        async with worker_session() as db:
            await record_low_stock_alert(
                db,
                clinic_id=UUID(clinic_id),
                item_name=item_name,
                current_stock=current_stock,
                min_stock=min_stock,
                unit=unit,
            )

    run_async(_record())
    logger.info(f"Alerta de stock bajo registrada: {item_name} ({inventory_item_id})")
