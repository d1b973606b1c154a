"""
Test fixtures - file-backed SQLite database + authenticated HTTP client.

Stats queries open their own sessions on the engine, so the database lives in
a temp file rather than in memory (each aiosqlite connection would otherwise
see a different, empty database).
"""
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from muattrans.database import Base, build_engine, get_db
from muattrans.main import app
from muattrans.api.auth import create_access_token
from muattrans.models.user import User
from muattrans.models.category import Category


@pytest_asyncio.fixture()
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(db_engine):
    """Fresh database for each test"""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def seed_data(db_session):
    """Insert baseline test data: admin + regular user, 2 categories"""
    admin = User(email="admin@muattrans.test", full_name="Admin User", is_admin=True)
    staff = User(email="staff@muattrans.test", full_name="Staff User", is_admin=False)
    electronics = Category(name="Electronics", description="Devices and gadgets")
    furniture = Category(name="Furniture")

    db_session.add_all([admin, staff, electronics, furniture])
    await db_session.commit()
    for obj in (admin, staff, electronics, furniture):
        await db_session.refresh(obj)

    return {"admin": admin, "staff": staff, "electronics": electronics, "furniture": furniture}


@pytest_asyncio.fixture()
async def ids(seed_data):
    """Plain id strings; seeded instances expire whenever a service rolls back"""
    return {key: obj.id for key, obj in seed_data.items()}


def _client_for(db_session, user=None):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    ac = AsyncClient(transport=transport, base_url="http://test", follow_redirects=True)
    if user is not None:
        token = create_access_token(data={"sub": user.id})
        ac.headers["Authorization"] = f"Bearer {token}"
    return ac


@pytest_asyncio.fixture()
async def client(db_session, seed_data):
    """Admin-authenticated httpx AsyncClient bound to the FastAPI app"""
    async with _client_for(db_session, seed_data["admin"]) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def staff_client(db_session, seed_data):
    """Non-admin authenticated client"""
    async with _client_for(db_session, seed_data["staff"]) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauth_client(db_session):
    """Unauthenticated httpx AsyncClient"""
    async with _client_for(db_session) as ac:
        yield ac

    app.dependency_overrides.clear()
