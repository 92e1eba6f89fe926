"""
Schemas para Transaction: asientos del ledger.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel

from clinicas.models.transaction import PaymentMethod, TransactionStatus, TransactionType


class TransactionResponse(BaseModel):
    id: UUID
    date: datetime
    description: str
    amount: Decimal
    type: TransactionType
    category: str
    status: TransactionStatus
    payment_method: PaymentMethod | None = None
    appointment_id: UUID | None = None
    patient_id: UUID | None = None
    professional_id: UUID | None = None

    model_config = {"from_attributes": True}
