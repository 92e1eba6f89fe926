"""
Router principal de la API v1.
Agrupa todos los sub-routers de la versión 1.
"""

from fastapi import APIRouter

from clinicas.api.v1.appointments import router as appointments_router
from clinicas.api.v1.availability import router as availability_router
from clinicas.api.v1.reconciliation import router as reconciliation_router

api_v1_router = APIRouter()

api_v1_router.include_router(
    appointments_router,
    prefix="/appointments",
    tags=["Citas"],
)

api_v1_router.include_router(
    availability_router,
    prefix="/availability",
    tags=["Disponibilidad"],
)

api_v1_router.include_router(
    reconciliation_router,
    prefix="/reconciliation",
    tags=["Conciliación"],
)
