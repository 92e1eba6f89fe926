"""
Modelo Appointment: Citas con state machine de estados.

Estados válidos y transiciones:
    pending_approval → scheduled, canceled
    scheduled        → confirmed, canceled
    confirmed        → completed, canceled
    completed, canceled: terminales

`stock_deducted` y `paid` son las guardas de idempotencia de los efectos
secundarios (descuento de insumos / asientos financieros).
"""

import enum
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinicas.database import Base


class AppointmentStatus(str, enum.Enum):
    """Estados de una cita."""
    PENDING_APPROVAL = "PENDING_APPROVAL"
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"


# ── Transiciones válidas de la state machine ─────────
VALID_TRANSITIONS: dict[AppointmentStatus, list[AppointmentStatus]] = {
    AppointmentStatus.PENDING_APPROVAL: [
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CANCELED,
    ],
    AppointmentStatus.SCHEDULED: [
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELED,
    ],
    AppointmentStatus.CONFIRMED: [
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELED,
    ],
    # Estados terminales: no tienen transiciones
    AppointmentStatus.COMPLETED: [],
    AppointmentStatus.CANCELED: [],
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)

# Solo estas citas ocupan la agenda del profesional
BLOCKING_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)


def is_valid_transition(current: AppointmentStatus, new: AppointmentStatus) -> bool:
    """Verifica si una transición de estado es válida."""
    return new in VALID_TRANSITIONS.get(current, [])


class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    clinic_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clinics.id"), nullable=False
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id"), nullable=False
    )
    professional_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    procedure_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("procedures.id"), nullable=False
    )

    # ── Datos de la cita ─────────────────────────────
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False,
        comment="Precio del procedimiento al momento de agendar"
    )
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus),
        nullable=False,
        default=AppointmentStatus.SCHEDULED,
    )
    notes: Mapped[str | None] = mapped_column(Text)

    # ── Guardas de idempotencia ──────────────────────
    paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stock_deducted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    # ── Metadata ─────────────────────────────────────
    cancellation_reason: Mapped[str | None] = mapped_column(String(500))
    external_calendar_event_id: Mapped[str | None] = mapped_column(
        String(255), comment="ID del evento en Google Calendar"
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id")
    )

    # ── Timestamps ───────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # ── Relaciones ───────────────────────────────────
    patient: Mapped["Patient"] = relationship("Patient")  # noqa: F821
    professional: Mapped["User"] = relationship(  # noqa: F821
        "User", foreign_keys=[professional_id]
    )
    procedure: Mapped["Procedure"] = relationship("Procedure")  # noqa: F821

    # ── Índices para consultas frecuentes ────────────
    __table_args__ = (
        Index("idx_appointment_clinic_date", "clinic_id", "start_time"),
        Index("idx_appointment_professional_date", "professional_id", "start_time"),
        Index("idx_appointment_clinic_paid", "clinic_id", "paid"),
        Index("idx_appointment_status", "clinic_id", "status"),
    )

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration_minutes)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<Appointment {self.id} [{self.status.value}] {self.start_time}>"
