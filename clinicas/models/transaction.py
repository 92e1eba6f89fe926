"""
Modelo Transaction: Ledger financiero de la clínica.

Las atenciones generan, como máximo, un INCOME de categoría
"Procedimentos" y un EXPENSE de categoría "Insumos" por cita.
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
from sqlalchemy.orm import Mapped, mapped_column

from clinicas.database import Base

INCOME_CATEGORY = "Procedimentos"
SUPPLY_EXPENSE_CATEGORY = "Insumos"


class TransactionType(str, enum.Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class TransactionStatus(str, enum.Enum):
    PAID = "PAID"
    PENDING = "PENDING"


class PaymentMethod(str, enum.Enum):
    """Método de pago informado al cobrar la cita."""
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    PIX = "PIX"
    TRANSFER = "TRANSFER"
    OTHER = "OTHER"


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    clinic_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clinics.id"), nullable=False
    )
    date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
        comment="Fecha contable (la de la cita en asientos regenerados)"
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False,
        comment="Monto (siempre positivo)"
    )
    type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType), nullable=False
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus), nullable=False, default=TransactionStatus.PAID
    )
    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        Enum(PaymentMethod)
    )

    # ── Vínculos ─────────────────────────────────────
    appointment_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("appointments.id")
    )
    patient_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("patients.id")
    )
    professional_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "appointment_id", "type", "category",
            name="uq_transaction_appointment_type_category"
        ),
        Index("idx_transaction_clinic_date", "clinic_id", "date"),
        Index("idx_transaction_appointment", "appointment_id"),
    )

    def __repr__(self) -> str:
        sign = "+" if self.type == TransactionType.INCOME else "-"
        return f"<Transaction {sign}R${self.amount} [{self.category}]>"
