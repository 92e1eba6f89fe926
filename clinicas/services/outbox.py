"""
Cola de eventos salientes (calendario, alertas de stock).

Los servicios encolan eventos en la sesión con `enqueue()`; recién cuando
la transacción hace COMMIT se despachan al dispatcher (por defecto Celery).
Si la transacción hace ROLLBACK, los eventos se descartan. Un fallo al
despachar se loguea y nunca se propaga a la operación de negocio.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_PENDING_KEY = "outbox.pending"

# ── Tipos de evento ──────────────────────────────────
CALENDAR_PUSH = "calendar.push_appointment"
CALENDAR_DELETE = "calendar.delete_event"
LOW_STOCK_ALERT = "alerts.low_stock"


@dataclass(frozen=True)
class OutboundEvent:
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)


Dispatcher = Callable[[OutboundEvent], None]


def celery_dispatcher(evt: OutboundEvent) -> None:
    """Publica el evento como tarea Celery (el nombre de la tarea es el kind)."""
    from clinicas.tasks.celery_app import celery_app

    celery_app.send_task(evt.kind, kwargs=evt.payload)


_dispatcher: Dispatcher = celery_dispatcher


def set_dispatcher(dispatcher: Dispatcher) -> Dispatcher:
    """Reemplaza el dispatcher activo y devuelve el anterior."""
    global _dispatcher
    previous = _dispatcher
    _dispatcher = dispatcher
    return previous


def enqueue(db: AsyncSession | Session, kind: str, **payload: Any) -> OutboundEvent:
    """Deja un evento pendiente hasta el COMMIT de la sesión."""
    session = db.sync_session if isinstance(db, AsyncSession) else db
    evt = OutboundEvent(kind=kind, payload=payload)
    session.info.setdefault(_PENDING_KEY, []).append(evt)
    return evt


def pending_events(db: AsyncSession | Session) -> list[OutboundEvent]:
    session = db.sync_session if isinstance(db, AsyncSession) else db
    return list(session.info.get(_PENDING_KEY, []))


def dispatch(evt: OutboundEvent) -> bool:
    """Despacha un evento; devuelve False si el dispatcher falló."""
    try:
        _dispatcher(evt)
    except Exception:
        logger.exception(f"No se pudo despachar el evento {evt.kind} {evt.payload}")
        return False
    return True


@event.listens_for(Session, "after_commit")
def _dispatch_after_commit(session: Session) -> None:
    events = session.info.pop(_PENDING_KEY, [])
    for evt in events:
        dispatch(evt)


@event.listens_for(Session, "after_rollback")
def _discard_after_rollback(session: Session) -> None:
    discarded = session.info.pop(_PENDING_KEY, [])
    if discarded:
        logger.info(f"Descartados {len(discarded)} eventos por rollback")
