import os
import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.models.base import Base
# Import all models so they register with Base.metadata for create_all
import app.models  # noqa: F401
from app.models.shipment import Shipment, ShipmentDirection, TransportLeg
from app.status_engine.locks import release_session_locks

# Use SQLite for tests (no Postgres dependency needed for unit tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"



@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session")
async def test_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    # SQLAlchemy emits BEGIN itself so SAVEPOINTs nest inside the test transaction.
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
    # Clean up test db file
    if os.path.exists("./test.db"):
        os.remove("./test.db")


@pytest.fixture
async def db_session(test_engine):
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()
        await release_session_locks(session)


@pytest.fixture
async def client(db_session):
    from app.database import get_db
    from app.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_shipment(db_session):
    """Factory persisting a shipment; keyword args override column values."""

    async def _make(**fields) -> Shipment:
        fields.setdefault("sn", f"SN-{uuid.uuid4().hex[:8].upper()}")
        fields.setdefault("direction", ShipmentDirection.INCOMING)
        shipment = Shipment(id=uuid.uuid4(), **fields)
        db_session.add(shipment)
        await db_session.flush()
        return shipment

    return _make


@pytest.fixture
def add_leg(db_session):
    async def _add(shipment: Shipment, **fields) -> TransportLeg:
        leg = TransportLeg(id=uuid.uuid4(), shipment_id=shipment.id, **fields)
        db_session.add(leg)
        await db_session.flush()
        return leg

    return _add
