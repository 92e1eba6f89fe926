"""
Motor de descuento de insumos.

Cada ProcedureSupply define cuánto de un artículo consume una atención.
Al completar (o cobrar) una cita se descuenta el stock una única vez;
la guarda `Appointment.stock_deducted` la evalúa el llamador bajo lock.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import selectinload

from clinicas.models.appointment import Appointment
from clinicas.models.inventory import InventoryItem, StockMovement, StockMovementType
from clinicas.models.procedure import Procedure
from clinicas.models.procedure_supply import ProcedureSupply
from clinicas.services import outbox
from clinicas.services.tenant_scope import TenantScope

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass
class StockDeduction:
    """Resultado de descontar una línea de insumo."""
    movement: StockMovement
    item: InventoryItem

    @property
    def is_low_stock(self) -> bool:
        return self.item.is_low_stock


async def load_supplies(scope: TenantScope, procedure_id: UUID) -> list[ProcedureSupply]:
    """Líneas de insumo del procedimiento con su artículo cargado."""
    query = (
        scope.select(ProcedureSupply, ProcedureSupply.procedure_id == procedure_id)
        .options(selectinload(ProcedureSupply.inventory_item))
        .order_by(ProcedureSupply.created_at, ProcedureSupply.id)
    )
    return await scope.all(query)


def calculate_supply_cost(supplies: Iterable[ProcedureSupply]) -> Decimal:
    """
    Costo de insumos = Σ costo_unitario × cantidad_usada.

    Sin líneas el costo es cero. Nunca usa `Procedure.cost` como respaldo.
    """
    total = Decimal("0")
    for supply in supplies:
        item = supply.inventory_item
        if item is None:
            logger.warning(
                f"ProcedureSupply {supply.id} apunta a un insumo inexistente "
                f"({supply.inventory_item_id}), se ignora en el costo"
            )
            continue
        total += Decimal(item.cost_per_unit) * Decimal(supply.quantity_used)
    return total.quantize(CENTS)


def supply_breakdown(supplies: Iterable[ProcedureSupply]) -> list[dict]:
    """Detalle por línea (para diagnóstico y respuestas de cobro)."""
    lines = []
    for supply in supplies:
        item = supply.inventory_item
        if item is None:
            continue
        quantity = Decimal(supply.quantity_used)
        unit_cost = Decimal(item.cost_per_unit)
        lines.append({
            "inventory_item_id": item.id,
            "item_name": item.name,
            "quantity_used": quantity,
            "cost_per_unit": unit_cost,
            "line_cost": (quantity * unit_cost).quantize(CENTS),
        })
    return lines


async def deduct_stock(
    scope: TenantScope,
    appointment: Appointment,
    procedure: Procedure,
    user_id: UUID | None,
    supplies: list[ProcedureSupply] | None = None,
) -> list[StockDeduction]:
    """
    Descuenta el stock de cada insumo del procedimiento y registra un
    movimiento OUT por línea. El stock puede quedar negativo.

    Si un insumo ya no existe se lanza NotFoundException y la transacción
    completa (incluido el cambio de estado) se revierte.

    Returns:
        Un StockDeduction (movimiento + artículo) por línea descontada.
    """
    if supplies is None:
        supplies = await load_supplies(scope, procedure.id)
    if not supplies:
        return []

    deductions = []
    for supply in supplies:
        item = await scope.get(
            InventoryItem,
            supply.inventory_item_id,
            resource="Insumo",
            for_update=True,
        )

        quantity = Decimal(supply.quantity_used)
        stock_before = Decimal(item.current_stock)
        stock_after = stock_before - quantity

        movement = StockMovement(
            inventory_item_id=item.id,
            appointment_id=appointment.id,
            created_by=user_id,
            type=StockMovementType.OUT,
            quantity=quantity,
            stock_before=stock_before,
            stock_after=stock_after,
            reason=f"Atención {appointment.id}: {procedure.name}",
        )
        scope.add(movement)
        item.current_stock = stock_after
        deductions.append(StockDeduction(movement=movement, item=item))

        logger.info(
            f"Descontado {quantity} {item.unit} de {item.name} "
            f"(cita {appointment.id}): {stock_before} -> {stock_after}"
        )

        if stock_after <= Decimal(item.min_stock):
            logger.warning(
                f"Stock bajo para {item.name}: {stock_after} <= min {item.min_stock}"
            )
            outbox.enqueue(
                scope.db,
                outbox.LOW_STOCK_ALERT,
                clinic_id=str(scope.clinic_id),
                inventory_item_id=str(item.id),
                item_name=item.name,
                current_stock=str(stock_after),
                min_stock=str(item.min_stock),
                unit=item.unit,
            )

    await scope.flush()
    return deductions

