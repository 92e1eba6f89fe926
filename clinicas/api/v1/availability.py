"""
Endpoints de horario de atención y reglas de indisponibilidad
(feriados, vacaciones, bloqueos de agenda).
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from clinicas.api.v1.appointments import get_client_ip
from clinicas.auth.dependencies import require_permission
from clinicas.database import get_db
from clinicas.models.user import User
from clinicas.schemas.availability import (
    BusinessHours,
    BusinessHoursResponse,
    UnavailabilityRuleCreate,
    UnavailabilityRuleResponse,
)
from clinicas.services import availability_service

router = APIRouter()


@router.get("/business-hours", response_model=BusinessHoursResponse)
async def get_business_hours(
    user: User = Depends(require_permission("availability", "read")),
    db: AsyncSession = Depends(get_db),
):
    return await availability_service.get_business_hours(db, user.clinic_id)


@router.put("/business-hours", response_model=BusinessHoursResponse)
async def update_business_hours(
    request: Request,
    data: BusinessHours | None = None,
    user: User = Depends(require_permission("availability", "update")),
    db: AsyncSession = Depends(get_db),
):
    """Reemplaza el horario semanal. Sin body, la agenda queda sin restricción."""
    return await availability_service.update_business_hours(
        db, user, data, ip_address=get_client_ip(request)
    )


@router.get("/unavailability", response_model=list[UnavailabilityRuleResponse])
async def list_rules(
    professional_id: UUID | None = Query(None, description="Solo reglas que lo afectan"),
    user: User = Depends(require_permission("availability", "read")),
    db: AsyncSession = Depends(get_db),
):
    return await availability_service.list_rules(
        db, user.clinic_id, professional_id=professional_id
    )


@router.post(
    "/unavailability",
    response_model=UnavailabilityRuleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_rule(
    request: Request,
    data: UnavailabilityRuleCreate,
    user: User = Depends(require_permission("availability", "update")),
    db: AsyncSession = Depends(get_db),
):
    return await availability_service.create_rule(
        db, user, data, ip_address=get_client_ip(request)
    )


@router.get("/unavailability/{rule_id}", response_model=UnavailabilityRuleResponse)
async def get_rule(
    rule_id: UUID,
    user: User = Depends(require_permission("availability", "read")),
    db: AsyncSession = Depends(get_db),
):
    return await availability_service.get_rule(db, user.clinic_id, rule_id)


@router.delete("/unavailability/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    request: Request,
    rule_id: UUID,
    user: User = Depends(require_permission("availability", "update")),
    db: AsyncSession = Depends(get_db),
):
    await availability_service.delete_rule(
        db, user, rule_id, ip_address=get_client_ip(request)
    )
