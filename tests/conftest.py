"""
Shared test fixtures and configuration for pytest.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("TRANSIENT_RETRY_INITIAL_DELAY", "0")
os.environ.setdefault("TRANSIENT_RETRY_MAX_DELAY", "0")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from clinicflow.main import app
from clinicflow.db.base import Base
from clinicflow.api.dependencies import get_clock, get_db, get_id_generator
from clinicflow.core.clock import IdGenerator
from clinicflow.core.security import create_access_token
from clinicflow.schemas.auth_schemas import ActorRole
from clinicflow.services.catalog_service import CatalogService
from clinicflow.services.patient_service import PatientService


# Test database configuration
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# One shared connection so every session sees the same in-memory database
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
    echo=False,
)

TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class ManualClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, start: datetime):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def ids(clock: ManualClock) -> IdGenerator:
    return IdGenerator(clock)


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database for each test.

    Creates all tables, yields a session, then drops all tables.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def patient_service(db_session, clock, ids) -> PatientService:
    return PatientService(db_session, clock, ids, strict_audit=True)


@pytest.fixture
def catalog_service(db_session, clock, ids) -> CatalogService:
    return CatalogService(db_session, clock, ids)


@pytest.fixture
def patient_data() -> dict:
    return {
        "name": "Ama Mensah",
        "age": 34,
        "gender": "female",
        "phone": "+233 24 123 4567",
        "email": "ama@example.com",
        "address": "12 Ring Road",
    }


@pytest.fixture
async def registered_patient(patient_service, patient_data):
    return await patient_service.register(patient_data, "rec-1")


@pytest.fixture
async def consultation(catalog_service):
    return await catalog_service.add_service(
        {"name": "General Consultation", "price": "100.00", "category": "consultation"},
        "rec-1",
    )


@pytest.fixture
async def blood_test(catalog_service):
    return await catalog_service.add_service(
        {"name": "Full Blood Count", "price": Decimal("50"), "category": "diagnostic"},
        "rec-1",
    )


# ============= HTTP Client =============
@pytest.fixture
async def client(db_session, clock, ids) -> AsyncGenerator[AsyncClient, None]:
    """Test client bound to the test database, clock and id generator."""

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_id_generator] = lambda: ids

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def _headers(user_id: str, role: ActorRole) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


@pytest.fixture
def receptionist_headers() -> dict:
    return _headers("rec-1", ActorRole.RECEPTIONIST)


@pytest.fixture
def doctor_headers() -> dict:
    return _headers("doc-1", ActorRole.DOCTOR)


@pytest.fixture
def admin_headers() -> dict:
    return _headers("admin-1", ActorRole.ADMIN)


@pytest.fixture
def api() -> str:
    return "/api/v1"
