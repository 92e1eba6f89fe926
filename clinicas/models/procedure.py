"""
Modelo Procedure: Catálogo de procedimientos por clínica.

Cada clínica gestiona sus procedimientos con precio de venta, duración y
la lista de insumos (ProcedureSupply) que consume cada atención.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
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


class Procedure(Base):
    __tablename__ = "procedures"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    clinic_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clinics.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    duration_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=30,
        comment="Duración estimada en minutos"
    )
    price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00"),
        comment="Precio de venta vigente"
    )
    cost: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00"),
        comment="Costo estimado manual; solo para reportes, nunca para el ledger"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # ── Relaciones ───────────────────────────────────
    supplies: Mapped[list["ProcedureSupply"]] = relationship(  # noqa: F821
        "ProcedureSupply", back_populates="procedure"
    )

    __table_args__ = (
        Index("idx_procedure_clinic", "clinic_id"),
    )

    def __repr__(self) -> str:
        return f"<Procedure {self.name} R${self.price}>"
