"""API test fixtures: async DB + FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use the test DB session
    - Factory fixtures go through the HTTP API so cascades run as in production

Design Decisions:
    - StaticPool: one shared connection, otherwise each session would see its own empty :memory: database
    - Lifespan not started: tables come from the fixture, the backup scheduler stays off
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import ASGITransport, AsyncClient

import textile_erp.models  # noqa: F401
from textile_erp.core.deps import get_db
from textile_erp.db.base import Base
from textile_erp.main import app


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
async def client(test_session_factory):
    """FastAPI test client with DB dependency overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
async def raw_client(test_session_factory):
    """Client that returns 500 responses instead of re-raising server errors."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False), base_url="http://test",
    ) as c:
        yield c
    app.dependency_overrides.clear()


# -- Factories -----------------------------------------------------------------

@pytest.fixture
def create_vendor(client):
    async def _create(**overrides):
        payload = {"name": "Sunrise Spinning Mills", "contact": "0300-1112233", **overrides}
        resp = await client.post("/api/vendors", json=payload)
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _create


@pytest.fixture
def create_customer(client):
    async def _create(**overrides):
        payload = {"name": "Al-Noor Garments", "contact": "0333-7778899", **overrides}
        resp = await client.post("/api/customers", json=payload)
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _create


@pytest.fixture
def create_purchase(client, create_vendor):
    """Received raw-thread purchase, added to inventory by default."""
    async def _create(**overrides):
        if "vendor_id" not in overrides:
            overrides["vendor_id"] = (await create_vendor())["id"]
        payload = {
            "thread_type": "Cotton 20s",
            "color_status": "RAW",
            "quantity": 1000,
            "unit_price": 50,
            "received": True,
            **overrides,
        }
        resp = await client.post("/api/thread", json=payload)
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _create


@pytest.fixture
def create_dyeing(client):
    """Completed dyeing process for a purchase."""
    async def _create(purchase_id, **overrides):
        payload = {
            "thread_purchase_id": purchase_id,
            "color_name": "Navy",
            "color_code": "#000080",
            "dye_quantity": 400,
            "output_quantity": 380,
            "labor_cost": 1000,
            "dye_material_cost": 900,
            "result_status": "COMPLETED",
            "completion_date": "2024-03-01T10:00:00",
            **overrides,
        }
        resp = await client.post("/api/dyeing", json=payload)
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _create


@pytest.fixture
def create_fabric(client):
    async def _create(**overrides):
        payload = {
            "fabric_type": "Poplin",
            "dimensions": "58 inch",
            "batch_number": "B-001",
            "quantity_produced": 150,
            "thread_used": 200,
            "production_cost": 3000,
            "labor_cost": 1500,
            **overrides,
        }
        resp = await client.post("/api/fabric/production", json=payload)
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _create


@pytest.fixture
def get_inventory(client):
    async def _get(inventory_id):
        resp = await client.get(f"/api/inventory/{inventory_id}")
        assert resp.status_code == 200, resp.text
        return resp.json()
    return _get


@pytest.fixture
def purchase_inventory(client):
    """Raw-thread inventory item created by a purchase."""
    async def _find(purchase_id):
        resp = await client.get("/api/inventory/transactions", params={"transaction_type": "PURCHASE"})
        assert resp.status_code == 200, resp.text
        rows = [t for t in resp.json()["data"] if t["thread_purchase_id"] == purchase_id]
        assert rows, f"no inventory for purchase {purchase_id}"
        inv = await client.get(f"/api/inventory/{rows[0]['inventory_id']}")
        return inv.json()
    return _find
