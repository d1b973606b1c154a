"""
Default rows every fresh deployment needs: the system actor and a fallback category
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from muattrans.models import Category, User

logger = logging.getLogger(__name__)

SYSTEM_USER_EMAIL = "system@muattrans.local"
DEFAULT_CATEGORY_NAME = "General"


async def seed_default_data(session: AsyncSession) -> list[str]:
    """Insert missing defaults and commit; safe to run repeatedly"""
    created = []

    result = await session.execute(select(User).where(User.email == SYSTEM_USER_EMAIL))
    if not result.scalar_one_or_none():
        session.add(User(email=SYSTEM_USER_EMAIL, full_name="System", is_admin=True))
        created.append("user")

    result = await session.execute(
        select(Category).where(Category.name == DEFAULT_CATEGORY_NAME, Category.deleted_at.is_(None))
    )
    if not result.scalar_one_or_none():
        session.add(Category(name=DEFAULT_CATEGORY_NAME, description="Default product category"))
        created.append("category")

    await session.commit()
    if created:
        logger.info(f"Seeded default {', '.join(created)}")
    return created
