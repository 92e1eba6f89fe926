"""
Engine y sesiones async de SQLAlchemy 2.0.

`get_db` abre una sesión por request y la usa como unidad atómica;
`worker_session` hace lo mismo para los workers de Celery. Las políticas
RLS de PostgreSQL leen la clínica de `app.clinic_id`.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from clinicas.config import get_settings

settings = get_settings()

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def set_tenant_context(session: AsyncSession, clinic_id: UUID) -> None:
    """Fija `app.clinic_id` para la transacción actual (solo PostgreSQL)."""
    if session.bind.dialect.name != "postgresql":
        return
    # SET LOCAL no acepta parámetros bind
    await session.execute(text(f"SET LOCAL app.clinic_id = '{UUID(str(clinic_id))}'"))


@asynccontextmanager
async def worker_session() -> AsyncGenerator[AsyncSession, None]:
    """Sesión de un worker: COMMIT si el bloque termina bien, ROLLBACK si no."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency de FastAPI: una sesión por request.

    Toda la operación (estado, stock, asientos, auditoría) se confirma
    junta; cualquier excepción, incluidas las HTTPException de negocio,
    la revierte completa.
    """
    async with worker_session() as session:
        yield session
