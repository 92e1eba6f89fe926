"""
Modelo User: Usuarios del sistema con roles RBAC.
Los profesionales que atienden citas también son usuarios.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinicas.database import Base


class UserRole(str, enum.Enum):
    """Roles del sistema."""
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    RECEPTIONIST = "RECEPTIONIST"
    ESTHETICIAN = "ESTHETICIAN"


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    clinic_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clinics.id"), nullable=False, index=True
    )

    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole), nullable=False, default=UserRole.RECEPTIONIST
    )

    # ── Google Calendar (tokens gestionados por el flujo OAuth) ──
    google_calendar_connected: Mapped[bool] = mapped_column(default=False)
    google_calendar_id: Mapped[str | None] = mapped_column(
        String(255), comment="ID del calendario destino (null = primary)"
    )
    google_access_token: Mapped[str | None] = mapped_column(Text)

    is_active: Mapped[bool] = mapped_column(default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # ── Relaciones ───────────────────────────────────
    clinic: Mapped["Clinic"] = relationship(  # noqa: F821
        "Clinic", back_populates="users"
    )

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value})>"
