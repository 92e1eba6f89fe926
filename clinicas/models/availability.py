"""
Modelo UnavailabilityRule: bloqueos de agenda (feriados, vacaciones,
reuniones).

Una regla bloquea la franja [start_time, end_time) en cada fecha de
`dates`. Con `professional_ids` vacío afecta a todo el equipo.
"""

import uuid
from datetime import datetime, time

from sqlalchemy import DateTime, ForeignKey, Index, String, Time, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from clinicas.database import Base
from clinicas.models.audit_log import JSONType


class UnavailabilityRule(Base):
    __tablename__ = "unavailability_rules"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    clinic_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clinics.id"), nullable=False
    )
    description: Mapped[str | None] = mapped_column(String(200))
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    dates: Mapped[list] = mapped_column(
        JSONType, nullable=False, default=list,
        comment="Fechas locales YYYY-MM-DD"
    )
    professional_ids: Mapped[list] = mapped_column(
        JSONType, nullable=False, default=list,
        comment="UUIDs afectados; vacío = todos"
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("idx_unavailability_clinic", "clinic_id"),
    )

    def applies_to(self, professional_id: uuid.UUID) -> bool:
        return not self.professional_ids or str(professional_id) in self.professional_ids

    def __repr__(self) -> str:
        return f"<UnavailabilityRule {self.start_time}-{self.end_time} {self.dates}>"
