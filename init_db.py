"""Initialize database tables and default rows.

Usage: python init_db.py [--no-seed]
"""
import asyncio
import sys

from muattrans.database import engine, Base, AsyncSessionLocal
from muattrans.models import *  # noqa: F401,F403 - Import all models to register them
from muattrans.utils.seed import seed_default_data


async def init(seed: bool = True):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")

    if seed:
        async with AsyncSessionLocal() as session:
            created = await seed_default_data(session)
        print(f"Seeded: {', '.join(created)}" if created else "Default data already present.")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init(seed="--no-seed" not in sys.argv[1:]))
