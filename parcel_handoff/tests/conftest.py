"""
Centralized Test Configuration.
"""

import pytest
from datetime import datetime, timedelta
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from parcel_handoff.app.main import app
from parcel_handoff.app.db.session import get_db, Base
from parcel_handoff.app.core.jwt import create_access_token
from parcel_handoff.app.core.redis_client import get_redis
import parcel_handoff.app.core.redis_client as redis_client_module
from parcel_handoff.app.models.enums import UserRole
from parcel_handoff.app.models.parcel import Parcel
from parcel_handoff.app.models.parcel_enums import ParcelSize
from parcel_handoff.app.models.user import User
from parcel_handoff.app.schemas.parcel import ParcelCreate, AddressCreate
from parcel_handoff.app.services.container import build_services

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Lyon, Place Bellecour
PICKUP_LAT = 45.7578
PICKUP_LNG = 4.8320


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class FrozenClock:
    """Clock the services read; tests move it forward explicitly."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingSettlementTrigger:
    """Settlement collaborator that records calls, optionally failing."""

    def __init__(self):
        self.calls = []
        self.fail = False

    async def on_delivery_confirmed(self, mission_id: int) -> None:
        self.calls.append(mission_id)
        if self.fail:
            raise RuntimeError("payment provider unavailable")


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False
    
    async def ping(self):
        if self._closed:
            return False
        return True
    
    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)
        
    async def set(self, key, value, ex=None, nx=False):
        if self._closed:
            return False
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True
    
    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0
        
    async def flushdb(self):
        if not self._closed:
            self.store = {}
        
    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 2, 9, 0, 0))


@pytest.fixture
def settlement_trigger():
    return RecordingSettlementTrigger()


@pytest.fixture
def services(session_factory, clock, settlement_trigger):
    return build_services(session_factory, clock=clock, settlement_trigger=settlement_trigger)


@pytest.fixture
def redis_mock():
    return MockRedis()


@pytest.fixture
def apply_overrides(session_factory, services, redis_mock):
    """Point the app at the per-test database, services and Redis."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_mock

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return redis_mock

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.state.services = services
    yield

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture
async def client(apply_overrides):
    """Async client for testing, wired to the per-test database and services."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def _create_user(session_factory, username: str, role: UserRole) -> User:
    async with session_factory() as session:
        user = User(
            email=f"{username}@example.com",
            username=username,
            first_name=username.split("_")[0].title(),
            role=role,
            is_active=True,
        )
        session.add(user)
        await session.commit()
        return user


@pytest.fixture
async def vendor(session_factory):
    return await _create_user(session_factory, "vendor_lea", UserRole.VENDOR)


@pytest.fixture
async def carrier(session_factory):
    return await _create_user(session_factory, "carrier_sam", UserRole.CARRIER)


@pytest.fixture
async def other_carrier(session_factory):
    return await _create_user(session_factory, "carrier_noa", UserRole.CARRIER)


def token_for(user: User) -> str:
    return create_access_token(data={"sub": user.username, "user_id": user.id, "role": user.role.value})


@pytest.fixture
def auth_headers():
    """Bearer header for a test user."""
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {token_for(user)}"}
    return _headers


class DeliveryFlow:
    """Drives a parcel through the lifecycle so tests can start mid-way."""

    def __init__(self, services, session_factory, vendor, carrier):
        self.services = services
        self.session_factory = session_factory
        self.vendor = vendor
        self.carrier = carrier

    async def create_parcel(self, price: float = 12.5) -> Parcel:
        return await self.services.parcels.create_parcel(self.vendor.id, ParcelCreate(
            pickup_address=AddressCreate(
                street="1 Place Bellecour",
                city="Lyon",
                postal_code="69002",
                latitude=PICKUP_LAT,
                longitude=PICKUP_LNG,
            ),
            description="Handmade ceramic bowl",
            size=ParcelSize.SMALL,
            dropoff_name="Camille Martin",
            dropoff_address="20 Rue de la Republique, 69002 Lyon",
            price=price,
        ))

    async def accepted(self, carrier=None):
        parcel = await self.create_parcel()
        mission = await self.services.lifecycle.accept_mission(parcel.id, (carrier or self.carrier).id)
        return parcel, mission

    async def packaged(self):
        parcel, mission = await self.accepted()
        await self.services.packaging.carrier_confirm_packaging(
            mission.id, self.carrier.id, "https://cdn.example.com/packaging/1.jpg"
        )
        await self.services.packaging.vendor_confirm_packaging(parcel.id, self.vendor.id)
        return parcel, mission

    async def picked_up(self):
        parcel, mission = await self.packaged()
        mission = await self.services.lifecycle.pickup_mission(mission.id, self.carrier.id)
        return parcel, mission

    async def dropped_off(self):
        parcel, mission = await self.picked_up()
        await self.services.lifecycle.confirm_delivery(
            mission.id, self.carrier.id, "https://cdn.example.com/proof/1.jpg"
        )
        return parcel, mission


@pytest.fixture
def flow(services, session_factory, vendor, carrier):
    return DeliveryFlow(services, session_factory, vendor, carrier)
