"""
Recompute categories.product_count from live products.
Safety net for counter drift; run periodically (e.g. nightly cron).
"""
import asyncio

from muattrans.database import AsyncSessionLocal, engine
from muattrans.services.category_service import CategoryService
from muattrans.utils.logger import configure_logging


async def reconcile():
    async with AsyncSessionLocal() as session:
        corrections = await CategoryService(session).reconcile_product_counts()

    if not corrections:
        print("All category counters consistent.")
    for c in corrections:
        print(f"  {c['categoryId']}: {c['stored']} -> {c['actual']}")

    await engine.dispose()


if __name__ == "__main__":
    configure_logging()
    asyncio.run(reconcile())
