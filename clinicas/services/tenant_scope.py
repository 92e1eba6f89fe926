"""
Acceso a datos acotado a una clínica (tenant).

Toda consulta del motor de citas se construye a través de `TenantScope`,
que no puede crearse sin clinic_id y agrega el filtro de tenant a cada
SELECT. Un registro de otra clínica se comporta igual que uno inexistente.
"""

from typing import Any, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicas.core.exceptions import NotFoundException

T = TypeVar("T")


class TenantScope:
    """Repositorio por request, ligado a una sesión y una clínica."""

    def __init__(self, db: AsyncSession, clinic_id: UUID):
        if clinic_id is None:
            raise ValueError("TenantScope requiere un clinic_id")
        self.db = db
        self.clinic_id = clinic_id

    def select(self, model: type[T], *criteria: Any) -> Select:
        """SELECT del modelo ya filtrado por la clínica."""
        return select(model).where(model.clinic_id == self.clinic_id, *criteria)

    async def get(
        self,
        model: type[T],
        entity_id: UUID,
        *,
        resource: str,
        options: Sequence[Any] = (),
        for_update: bool = False,
    ) -> T:
        """
        Obtiene un registro por ID dentro de la clínica o lanza 404.
        Con `for_update=True` bloquea la fila hasta el fin de la transacción
        y refresca el objeto si ya estaba en la sesión.
        """
        query = self.select(model, model.id == entity_id)
        if options:
            query = query.options(*options)
        if for_update:
            query = query.with_for_update(of=model).execution_options(
                populate_existing=True
            )
        result = await self.db.execute(query)
        entity = result.scalar_one_or_none()
        if entity is None:
            raise NotFoundException(resource)
        return entity

    async def find(self, model: type[T], entity_id: UUID) -> T | None:
        result = await self.db.execute(self.select(model, model.id == entity_id))
        return result.scalar_one_or_none()

    async def all(self, query: Select) -> list:
        result = await self.db.execute(query)
        return list(result.scalars().unique().all())

    def add(self, entity: Any) -> None:
        """Agrega una entidad nueva forzando el tenant del scope."""
        entity.clinic_id = self.clinic_id
        self.db.add(entity)

    async def delete(self, entity: Any) -> None:
        if entity.clinic_id != self.clinic_id:
            raise NotFoundException("Registro")
        await self.db.delete(entity)

    async def flush(self) -> None:
        await self.db.flush()
