"""
Modelo Notification: Avisos internos para la clínica (ej: stock bajo).
Los escribe el worker de alertas, fuera de la transacción de la cita.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from clinicas.database import Base


class NotificationType(str, enum.Enum):
    INFO = "INFO"
    WARNING = "WARNING"


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    clinic_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clinics.id"), nullable=False
    )
    message: Mapped[str] = mapped_column(String(500), nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType), nullable=False, default=NotificationType.INFO
    )
    is_read: Mapped[bool] = mapped_column(default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("idx_notification_clinic_read", "clinic_id", "is_read"),
    )

    def __repr__(self) -> str:
        return f"<Notification [{self.type.value}] {self.message}>"
