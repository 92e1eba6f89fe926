"""
Horario de atención de la clínica y reglas de indisponibilidad.

Antes de buscar conflictos, una cita nueva o reprogramada debe caber
entera dentro del horario del día (zona horaria de la clínica) y no
tocar ninguna franja bloqueada para su profesional.
"""

import logging
from datetime import datetime, time
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from clinicas.core.exceptions import NotFoundException, UnavailableTimeException
from clinicas.models.availability import UnavailabilityRule
from clinicas.models.clinic import Clinic
from clinicas.models.user import User
from clinicas.schemas.availability import (
    BusinessHours,
    BusinessHoursResponse,
    UnavailabilityRuleCreate,
    UnavailabilityRuleResponse,
)
from clinicas.services.audit_service import log_action
from clinicas.services.conflict_service import as_utc, get_clinic_timezone
from clinicas.services.tenant_scope import TenantScope

logger = logging.getLogger(__name__)

RULE_ENTITY = "unavailability_rule"
CLINIC_ENTITY = "clinic"

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
DAY_NAMES = {
    "monday": "lunes",
    "tuesday": "martes",
    "wednesday": "miércoles",
    "thursday": "jueves",
    "friday": "viernes",
    "saturday": "sábado",
    "sunday": "domingo",
}


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def business_hours_violation(
    local_start: datetime,
    duration_minutes: int,
    hours: BusinessHours | None,
) -> str | None:
    """Motivo por el que la cita no cabe en el horario, o None si cabe."""
    if hours is None:
        return None

    day = WEEKDAYS[local_start.weekday()]
    config = getattr(hours, day)
    if config is None or not config.is_open:
        return f"La clínica no atiende este día de la semana ({DAY_NAMES[day]})"

    start = _minutes(local_start.time())
    end = start + duration_minutes
    if start < _minutes(config.start):
        return f"Horario antes de la apertura. La clínica abre a las {config.start:%H:%M}"
    if end > _minutes(config.end):
        return f"La cita termina después del cierre. La clínica cierra a las {config.end:%H:%M}"
    return None


def unavailability_violation(
    local_start: datetime,
    duration_minutes: int,
    professional_id: UUID,
    rules: list[UnavailabilityRule],
) -> str | None:
    """Descripción de la primera regla que bloquea la cita, o None."""
    day = local_start.date().isoformat()
    start = _minutes(local_start.time())
    end = start + duration_minutes

    for rule in rules:
        if day not in rule.dates or not rule.applies_to(professional_id):
            continue
        if _minutes(rule.start_time) < end and _minutes(rule.end_time) > start:
            return rule.description or "Profesional no disponible en este horario"
    return None


def _load_business_hours(clinic: Clinic | None) -> BusinessHours | None:
    if clinic is None or not clinic.business_hours:
        return None
    return BusinessHours.model_validate(clinic.business_hours)


async def validate_appointment_time(
    scope: TenantScope,
    professional_id: UUID,
    start_time: datetime,
    duration_minutes: int,
) -> None:
    """Lanza UnavailableTimeException si el horario no está disponible."""
    clinic = await scope.db.get(Clinic, scope.clinic_id)
    tz = await get_clinic_timezone(scope)
    local_start = as_utc(start_time).astimezone(tz)

    reason = business_hours_violation(
        local_start, duration_minutes, _load_business_hours(clinic)
    )
    if reason is None:
        rules = await scope.all(scope.select(UnavailabilityRule))
        reason = unavailability_violation(
            local_start, duration_minutes, professional_id, rules
        )

    if reason is not None:
        logger.info(
            f"Horario rechazado para profesional {professional_id} "
            f"({local_start.isoformat()}): {reason}"
        )
        raise UnavailableTimeException(reason)


# ── Horario de atención ──────────────────────────────

async def get_business_hours(db: AsyncSession, clinic_id: UUID) -> BusinessHoursResponse:
    clinic = await db.get(Clinic, clinic_id)
    if clinic is None:
        raise NotFoundException("Clínica")
    return BusinessHoursResponse(
        clinic_id=clinic.id,
        timezone=clinic.timezone,
        business_hours=_load_business_hours(clinic),
    )


async def update_business_hours(
    db: AsyncSession,
    user: User,
    data: BusinessHours | None,
    ip_address: str | None = None,
) -> BusinessHoursResponse:
    """Reemplaza el horario completo; `None` quita la restricción."""
    clinic = await db.get(Clinic, user.clinic_id)
    if clinic is None:
        raise NotFoundException("Clínica")

    old_hours = clinic.business_hours
    clinic.business_hours = data.model_dump(mode="json") if data else None
    await db.flush()

    await log_action(
        db,
        clinic_id=user.clinic_id,
        user_id=user.id,
        entity=CLINIC_ENTITY,
        entity_id=str(clinic.id),
        action="business_hours",
        old_data={"business_hours": old_hours},
        new_data={"business_hours": clinic.business_hours},
        ip_address=ip_address,
    )
    return await get_business_hours(db, user.clinic_id)


# ── Reglas de indisponibilidad ───────────────────────

async def list_rules(
    db: AsyncSession,
    clinic_id: UUID,
    professional_id: UUID | None = None,
) -> list[UnavailabilityRuleResponse]:
    """Reglas de la clínica; con profesional, solo las que lo afectan."""
    scope = TenantScope(db, clinic_id)
    rules = await scope.all(
        scope.select(UnavailabilityRule).order_by(UnavailabilityRule.created_at.desc())
    )
    if professional_id:
        rules = [r for r in rules if r.applies_to(professional_id)]
    return [UnavailabilityRuleResponse.model_validate(r) for r in rules]


async def get_rule(
    db: AsyncSession, clinic_id: UUID, rule_id: UUID
) -> UnavailabilityRuleResponse:
    scope = TenantScope(db, clinic_id)
    rule = await scope.get(UnavailabilityRule, rule_id, resource="Regla")
    return UnavailabilityRuleResponse.model_validate(rule)


async def create_rule(
    db: AsyncSession,
    user: User,
    data: UnavailabilityRuleCreate,
    ip_address: str | None = None,
) -> UnavailabilityRuleResponse:
    scope = TenantScope(db, user.clinic_id)
    rule = UnavailabilityRule(
        description=data.description,
        start_time=data.start_time,
        end_time=data.end_time,
        dates=sorted({d.isoformat() for d in data.dates}),
        professional_ids=[str(p) for p in data.professional_ids],
        created_by=user.id,
    )
    scope.add(rule)
    await scope.flush()
    await db.refresh(rule)

    await log_action(
        db,
        clinic_id=user.clinic_id,
        user_id=user.id,
        entity=RULE_ENTITY,
        entity_id=str(rule.id),
        action="create",
        new_data=data.model_dump(),
        ip_address=ip_address,
    )
    logger.info(f"Regla de indisponibilidad {rule.id} creada: {len(rule.dates)} fecha(s)")
    return UnavailabilityRuleResponse.model_validate(rule)


async def delete_rule(
    db: AsyncSession,
    user: User,
    rule_id: UUID,
    ip_address: str | None = None,
) -> None:
    scope = TenantScope(db, user.clinic_id)
    rule = await scope.get(UnavailabilityRule, rule_id, resource="Regla")
    snapshot = {
        "description": rule.description,
        "start_time": rule.start_time,
        "end_time": rule.end_time,
        "dates": rule.dates,
        "professional_ids": rule.professional_ids,
    }
    await scope.delete(rule)
    await scope.flush()

    await log_action(
        db,
        clinic_id=user.clinic_id,
        user_id=user.id,
        entity=RULE_ENTITY,
        entity_id=str(rule_id),
        action="delete",
        old_data=snapshot,
        ip_address=ip_address,
    )
