"""
Modelo Clinic: Tenant principal del sistema multi-tenant.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinicas.database import Base
from clinicas.models.audit_log import JSONType


class Clinic(Base):
    __tablename__ = "clinics"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    timezone: Mapped[str] = mapped_column(
        String(50), nullable=False, default="America/Sao_Paulo",
        comment="Zona horaria IANA; define el 'día calendario' de la agenda"
    )
    business_hours: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True,
        comment="Horario por día de la semana; null = sin restricción"
    )
    is_active: Mapped[bool] = mapped_column(default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # ── Relaciones ───────────────────────────────────
    users: Mapped[list["User"]] = relationship(  # noqa: F821
        "User", back_populates="clinic"
    )

    def __repr__(self) -> str:
        return f"<Clinic {self.name}>"
