"""
Bitácora de auditoría de la agenda.

Cada cambio de estado, cobro y corrección de conciliación inserta una
fila en `audit_log` dentro de la misma transacción que el cambio; si la
operación se revierte, el registro también. Las filas no se actualizan
ni se borran.
"""

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicas.models.audit_log import AuditLog


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime, time)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {key: _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    return value


async def log_action(
    db: AsyncSession,
    *,
    clinic_id: UUID,
    user_id: UUID | None,
    entity: str,
    entity_id: str,
    action: str,
    old_data: dict | None = None,
    new_data: dict | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    entry = AuditLog(
        clinic_id=clinic_id,
        user_id=user_id,
        entity=entity,
        entity_id=str(entity_id),
        action=action,
        old_data=_to_json(old_data) if old_data is not None else None,
        new_data=_to_json(new_data) if new_data is not None else None,
        ip_address=ip_address,
    )
    db.add(entry)
    await db.flush()
    return entry


async def get_entity_history(
    db: AsyncSession,
    *,
    clinic_id: UUID,
    entity: str,
    entity_id: UUID,
) -> list[AuditLog]:
    """Registros de un objeto en orden cronológico."""
    result = await db.execute(
        select(AuditLog)
        .where(
            AuditLog.clinic_id == clinic_id,
            AuditLog.entity == entity,
            AuditLog.entity_id == str(entity_id),
        )
        .order_by(AuditLog.created_at, AuditLog.id)
    )
    return list(result.scalars().all())
