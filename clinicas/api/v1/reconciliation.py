"""
Endpoints de conciliación de gastos de insumos.
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from clinicas.api.v1.appointments import get_client_ip
from clinicas.auth.dependencies import require_permission
from clinicas.database import get_db
from clinicas.models.user import User
from clinicas.schemas.reconciliation import (
    BackfillRequest,
    BackfillResponse,
    DiagnoseResponse,
    LedgerInspection,
    ResetResponse,
)
from clinicas.services import reconciliation_service

router = APIRouter()


@router.get("/diagnose", response_model=DiagnoseResponse)
async def diagnose(
    user: User = Depends(require_permission("reconciliation", "diagnose")),
    db: AsyncSession = Depends(get_db),
):
    """Citas cobradas con gasto de insumos faltante o incorrecto."""
    return await reconciliation_service.diagnose(db, user.clinic_id)


@router.get("/ledger", response_model=LedgerInspection)
async def inspect_ledger(
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(require_permission("reconciliation", "diagnose")),
    db: AsyncSession = Depends(get_db),
):
    """Últimas citas cobradas con ingreso, gasto y desglose de insumos."""
    return await reconciliation_service.inspect_ledger(db, user.clinic_id, limit=limit)


@router.post("/backfill", response_model=BackfillResponse)
async def backfill(
    request: Request,
    data: BackfillRequest | None = None,
    user: User = Depends(require_permission("reconciliation", "backfill")),
    db: AsyncSession = Depends(get_db),
):
    """Crea los gastos faltantes y corrige los incorrectos."""
    data = data or BackfillRequest()
    return await reconciliation_service.backfill(
        db,
        user,
        force_recreate=data.force_recreate,
        ip_address=get_client_ip(request),
    )


@router.delete("/supply-expenses", response_model=ResetResponse)
async def reset_supply_expenses(
    request: Request,
    user: User = Depends(require_permission("reconciliation", "reset")),
    db: AsyncSession = Depends(get_db),
):
    """Borra y regenera todos los gastos de insumos de la clínica."""
    return await reconciliation_service.reset_supply_expenses(
        db, user, ip_address=get_client_ip(request)
    )
