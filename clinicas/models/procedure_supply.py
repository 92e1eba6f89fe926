"""
Modelo ProcedureSupply: Mapeo de procedimientos a insumos de inventario.

Define qué insumos (y en qué cantidad) se consumen al realizar un
procedimiento. Al completar o pagar una cita, el sistema descuenta stock.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinicas.database import Base


class ProcedureSupply(Base):
    __tablename__ = "procedure_supplies"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    clinic_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clinics.id"), nullable=False
    )
    procedure_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("procedures.id"), nullable=False
    )
    inventory_item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("inventory_items.id"), nullable=False
    )
    quantity_used: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=1,
        comment="Cantidad del insumo consumida por atención"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # ── Relaciones ────────────────────────────────────
    procedure: Mapped["Procedure"] = relationship(  # noqa: F821
        "Procedure", back_populates="supplies"
    )
    inventory_item: Mapped["InventoryItem"] = relationship("InventoryItem")  # noqa: F821

    __table_args__ = (
        UniqueConstraint(
            "procedure_id", "inventory_item_id",
            name="uq_procedure_supply_procedure_item"
        ),
        Index("idx_proc_supply_clinic_procedure", "clinic_id", "procedure_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ProcedureSupply procedure={self.procedure_id} "
            f"item={self.inventory_item_id} qty={self.quantity_used}>"
        )
