"""
Fixtures compartidas para Pytest.
Configura base de datos de test, clientes HTTP y datos base de una clínica.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from fastapi import Depends
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from clinicas.auth.dependencies import get_current_user
from clinicas.database import Base, get_db
from clinicas.main import app
from clinicas.models.appointment import Appointment, AppointmentStatus
from clinicas.models.clinic import Clinic
from clinicas.models.inventory import InventoryItem
from clinicas.models.patient import Patient
from clinicas.models.procedure import Procedure
from clinicas.models.procedure_supply import ProcedureSupply
from clinicas.models.user import User, UserRole
from clinicas.services import outbox

# ── Engine de test (SQLite async) ────────────────────
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

# NullPool: cada test corre en su propio event loop
test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    """Crea y destruye las tablas para cada test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def dispatched_events():
    """Reemplaza el envío a Celery por una lista en memoria."""
    events: list[outbox.OutboundEvent] = []
    previous = outbox.set_dispatcher(events.append)
    yield events
    outbox.set_dispatcher(previous)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provee una sesión de DB de test."""
    async with test_session_factory() as session:
        yield session


# ── Cliente HTTP ─────────────────────────────────────

async def _get_test_db() -> AsyncGenerator[AsyncSession, None]:
    """Como get_db: una sesión por request, commit o rollback al final."""
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def _as_user(user_id: UUID):
    async def _current_user(db: AsyncSession = Depends(get_db)) -> User:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one()

    return _current_user


@pytest.fixture
def login_as():
    """Autentica las requests siguientes como el usuario dado."""

    def _login(user: User) -> None:
        app.dependency_overrides[get_current_user] = _as_user(user.id)

    return _login


@pytest_asyncio.fixture
async def client(test_user: User, login_as) -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP de test autenticado como OWNER de la clínica de test."""
    app.dependency_overrides[get_db] = _get_test_db
    login_as(test_user)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Datos base ───────────────────────────────────────

@pytest_asyncio.fixture
async def test_clinic(db_session: AsyncSession) -> Clinic:
    """Crea una clínica de test."""
    clinic = Clinic(
        id=uuid4(),
        name="Clínica Test",
        timezone="America/Sao_Paulo",
    )
    db_session.add(clinic)
    await db_session.commit()
    return clinic


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession, test_clinic: Clinic) -> User:
    """Crea el usuario OWNER de la clínica de test."""
    user = User(
        id=uuid4(),
        clinic_id=test_clinic.id,
        email="owner@test.com",
        name="Dueña Test",
        role=UserRole.OWNER,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def professional(db_session: AsyncSession, test_clinic: Clinic) -> User:
    user = User(
        id=uuid4(),
        clinic_id=test_clinic.id,
        email="ana@test.com",
        name="Ana Esteticista",
        role=UserRole.ESTHETICIAN,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def patient(db_session: AsyncSession, test_clinic: Clinic) -> Patient:
    patient = Patient(
        id=uuid4(),
        clinic_id=test_clinic.id,
        name="Maria Souza",
        phone="+5511999990000",
    )
    db_session.add(patient)
    await db_session.commit()
    return patient


@pytest_asyncio.fixture
async def glove_item(db_session: AsyncSession, test_clinic: Clinic) -> InventoryItem:
    item = InventoryItem(
        id=uuid4(),
        clinic_id=test_clinic.id,
        name="Luvas",
        unit="par",
        current_stock=Decimal("10"),
        min_stock=Decimal("3"),
        cost_per_unit=Decimal("10.00"),
    )
    db_session.add(item)
    await db_session.commit()
    return item


@pytest_asyncio.fixture
async def facial(
    db_session: AsyncSession, test_clinic: Clinic, glove_item: InventoryItem
) -> Procedure:
    """Limpeza de Pele: R$150, 60 min, consume 2 pares de luvas (costo R$20)."""
    procedure = Procedure(
        id=uuid4(),
        clinic_id=test_clinic.id,
        name="Limpeza de Pele",
        duration_minutes=60,
        price=Decimal("150.00"),
        cost=Decimal("99.00"),
    )
    db_session.add(procedure)
    await db_session.flush()
    db_session.add(ProcedureSupply(
        clinic_id=test_clinic.id,
        procedure_id=procedure.id,
        inventory_item_id=glove_item.id,
        quantity_used=Decimal("2"),
    ))
    await db_session.commit()
    return procedure


@pytest_asyncio.fixture
async def consultation(db_session: AsyncSession, test_clinic: Clinic) -> Procedure:
    """Procedimiento sin insumos."""
    procedure = Procedure(
        id=uuid4(),
        clinic_id=test_clinic.id,
        name="Avaliação",
        duration_minutes=30,
        price=Decimal("80.00"),
    )
    db_session.add(procedure)
    await db_session.commit()
    return procedure


def at(hour: int, minute: int = 0, day: int = 10) -> datetime:
    """Hora local de São Paulo (UTC-3) del 10/03/2026 expresada en UTC."""
    return datetime(2026, 3, day, hour + 3, minute, tzinfo=timezone.utc)


@pytest.fixture
def make_appointment(db_session: AsyncSession, test_clinic: Clinic, patient: Patient, professional: User):
    """Inserta una cita directamente (sin pasar por el servicio)."""

    async def _make(
        procedure: Procedure,
        start_time: datetime | None = None,
        status: AppointmentStatus = AppointmentStatus.SCHEDULED,
        duration_minutes: int | None = None,
        **fields,
    ) -> Appointment:
        appointment = Appointment(
            id=uuid4(),
            clinic_id=test_clinic.id,
            patient_id=patient.id,
            professional_id=professional.id,
            procedure_id=procedure.id,
            start_time=start_time or at(10),
            duration_minutes=duration_minutes or procedure.duration_minutes,
            price=fields.pop("price", procedure.price),
            status=status,
            **fields,
        )
        db_session.add(appointment)
        await db_session.commit()
        return appointment

    return _make
