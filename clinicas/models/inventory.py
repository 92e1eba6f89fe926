"""
Modelos de Inventario: Artículos y Kardex de movimientos.

InventoryItem solo lo decrementa el motor de descuento de insumos
(y los flujos manuales de reposición). StockMovement es append-only.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinicas.database import Base


# ── Enums ─────────────────────────────────────────────


class StockMovementType(str, enum.Enum):
    """Tipo de movimiento de stock."""
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


# ── InventoryItem ─────────────────────────────────────


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    clinic_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clinics.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    unit: Mapped[str] = mapped_column(
        String(30), nullable=False, default="un",
        comment="Unidad de medida (un, ml, g, caja...)"
    )
    current_stock: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=0,
        comment="Stock actual (puede quedar negativo)"
    )
    min_stock: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=0,
        comment="Stock mínimo para alerta"
    )
    cost_per_unit: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=0,
        comment="Costo unitario vigente"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relaciones
    movements: Mapped[list["StockMovement"]] = relationship(
        "StockMovement", back_populates="item"
    )

    __table_args__ = (
        Index("idx_item_clinic", "clinic_id"),
    )

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.min_stock

    def __repr__(self) -> str:
        return f"<InventoryItem {self.name} stock={self.current_stock}>"


# ── StockMovement ─────────────────────────────────────


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    clinic_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clinics.id"), nullable=False
    )
    inventory_item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("inventory_items.id"), nullable=False,
        comment="Artículo afectado"
    )
    appointment_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("appointments.id"),
        comment="Cita que originó el consumo (null en movimientos manuales)"
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"),
        comment="Usuario que registró el movimiento"
    )
    type: Mapped[StockMovementType] = mapped_column(
        Enum(StockMovementType), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False,
        comment="Cantidad (siempre positiva)"
    )
    stock_before: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    stock_after: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[str] = mapped_column(String(300), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relaciones
    item: Mapped["InventoryItem"] = relationship(
        "InventoryItem", back_populates="movements"
    )

    __table_args__ = (
        # Un insumo se descuenta una sola vez por cita
        UniqueConstraint(
            "appointment_id", "inventory_item_id",
            name="uq_stock_mov_appointment_item"
        ),
        Index("idx_stock_mov_item", "inventory_item_id"),
        Index("idx_stock_mov_clinic_date", "clinic_id", "created_at"),
    )

    def __repr__(self) -> str:
        sign = "+" if self.type == StockMovementType.IN else "-"
        return f"<StockMovement {sign}{self.quantity} [{self.reason}]>"
