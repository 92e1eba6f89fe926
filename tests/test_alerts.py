"""
Tests de alertas de stock bajo.
"""

from sqlalchemy import select

from clinicas.models.notification import Notification, NotificationType
from clinicas.tasks.alert_tasks import record_low_stock_alert


async def test_low_stock_alert_creates_warning_notification(db_session, test_clinic):
    await record_low_stock_alert(
        db_session,
        clinic_id=test_clinic.id,
        item_name="Luvas",
        current_stock="2.000",
        min_stock="3.000",
        unit="par",
    )
    await db_session.commit()

    notification = (await db_session.execute(select(Notification))).scalar_one()
    assert notification.clinic_id == test_clinic.id
    assert notification.type == NotificationType.WARNING
    assert notification.is_read is False
    assert "Luvas" in notification.message
    assert "mínimo 3.000 par" in notification.message
