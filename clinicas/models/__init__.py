"""
Modelos SQLAlchemy: exportar todos para que Alembic los detecte.
"""

from clinicas.models.clinic import Clinic
from clinicas.models.user import User
from clinicas.models.patient import Patient
from clinicas.models.audit_log import AuditLog
from clinicas.models.procedure import Procedure
from clinicas.models.procedure_supply import ProcedureSupply
from clinicas.models.inventory import InventoryItem, StockMovement
from clinicas.models.appointment import Appointment
from clinicas.models.availability import UnavailabilityRule
from clinicas.models.transaction import Transaction
from clinicas.models.notification import Notification

__all__ = [
    "Clinic",
    "User",
    "Patient",
    "AuditLog",
    "Procedure",
    "ProcedureSupply",
    "InventoryItem",
    "StockMovement",
    "Appointment",
    "UnavailabilityRule",
    "Transaction",
    "Notification",
]
