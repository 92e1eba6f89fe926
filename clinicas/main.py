"""
Aplicación FastAPI del motor de agenda.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

import clinicas.models  # noqa: F401  registra todos los mappers
from clinicas.api.v1.router import api_v1_router
from clinicas.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info(f"{settings.APP_NAME} {VERSION} iniciando ({settings.APP_ENV})")
    yield
    logger.info(f"{settings.APP_NAME} detenido")


app = FastAPI(
    title=settings.APP_NAME,
    description="Agenda, cobro, inventario y conciliación para clínicas de estética",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    """
    Una restricción única rechazó la escritura: otra operación concurrente
    ya registró el mismo asiento o movimiento. La transacción se revirtió.
    """
    logger.warning(
        f"Violación de integridad en {request.method} {request.url.path}: {exc.orig}"
    )
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "detail": {
                "code": "concurrent_update",
                "message": "La operación entró en conflicto con otra simultánea, reintente",
            }
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Error no manejado en {request.method} {request.url.path}")
    content = {"detail": "Error interno del servidor"}
    if settings.DEBUG:
        content = {"detail": str(exc), "type": type(exc).__name__}
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": VERSION,
        "environment": settings.APP_ENV,
    }
