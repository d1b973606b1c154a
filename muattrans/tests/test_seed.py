"""
Tests for engine construction and default data seeding.
"""
from sqlalchemy import func, select, text

from muattrans.models import Category, User
from muattrans.utils.seed import DEFAULT_CATEGORY_NAME, SYSTEM_USER_EMAIL, seed_default_data


async def test_sqlite_engine_enforces_foreign_keys(db_engine):
    async with db_engine.connect() as conn:
        result = await conn.execute(text("PRAGMA foreign_keys"))
        assert result.scalar() == 1


async def test_seed_creates_defaults_once(db_session):
    assert await seed_default_data(db_session) == ["user", "category"]
    assert await seed_default_data(db_session) == []

    users = await db_session.execute(
        select(func.count()).select_from(User).where(User.email == SYSTEM_USER_EMAIL)
    )
    categories = await db_session.execute(
        select(func.count()).select_from(Category).where(Category.name == DEFAULT_CATEGORY_NAME)
    )
    assert users.scalar() == 1
    assert categories.scalar() == 1


async def test_seed_leaves_existing_rows(db_session, seed_data):
    assert await seed_default_data(db_session) == ["user", "category"]

    total = await db_session.execute(select(func.count()).select_from(Category))
    assert total.scalar() == 3
