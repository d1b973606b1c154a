"""
Category service
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, func

from muattrans.errors import DuplicateConflict, InvalidState, NotFound
from muattrans.models.category import Category
from muattrans.models.product import Product
from muattrans.schemas.category import CategoryCreate, CategoryResponse, CategoryUpdate
from muattrans.services.base import BaseService

logger = logging.getLogger(__name__)


class CategoryService(BaseService):

    async def create(self, data: CategoryCreate, actor_id: Optional[str]) -> CategoryResponse:
        async with self.transaction():
            if await self._find_live_by_name(data.name):
                raise DuplicateConflict("Category with this name already exists")

            category = Category(
                name=data.name,
                description=data.description,
                product_count=0,
                created_by=actor_id,
            )
            self.db.add(category)
            await self.db.flush()

        logger.info(f"Category {category.id} created by {actor_id}")
        return CategoryResponse.model_validate(category)

    async def get_list(self) -> List[CategoryResponse]:
        async with self.guard():
            result = await self.db.execute(
                select(Category)
                .where(Category.deleted_at.is_(None))
                .order_by(Category.name)
                .execution_options(populate_existing=True)
            )
            categories = result.scalars().all()
        return [CategoryResponse.model_validate(c) for c in categories]

    async def get_by_id(self, category_id: str) -> Optional[CategoryResponse]:
        async with self.guard():
            category = await self._load(category_id)
        return CategoryResponse.model_validate(category) if category else None

    async def update(self, category_id: str, patch: CategoryUpdate, actor_id: Optional[str]) -> CategoryResponse:
        changes = patch.changes()

        async with self.transaction():
            category = await self._load(category_id)
            if category is None:
                raise NotFound("Category not found")

            if "name" in changes and changes["name"] != category.name:
                if await self._find_live_by_name(changes["name"], exclude_id=category.id):
                    raise DuplicateConflict("Category with this name already exists")

            for key, value in changes.items():
                setattr(category, key, value)

        logger.info(f"Category {category_id} updated by {actor_id}: {sorted(changes)}")
        return CategoryResponse.model_validate(category)

    async def delete(self, category_id: str, actor_id: Optional[str]) -> bool:
        """Soft delete; refused while the category still holds live products"""
        async with self.transaction():
            category = await self._load(category_id)
            if category is None:
                raise NotFound("Category not found")

            live_products = (await self.db.execute(
                select(func.count(Product.id)).where(
                    Product.category_id == category_id,
                    Product.deleted_at.is_(None),
                )
            )).scalar_one()
            if live_products or category.product_count:
                raise InvalidState("Cannot delete category that still has products")

            category.deleted_at = datetime.utcnow()
            category.deleted_by = actor_id

        logger.info(f"Category {category_id} soft-deleted by {actor_id}")
        return True

    async def reconcile_product_counts(self) -> List[Dict]:
        """Recompute product_count from live products; returns the corrections made.

        Safety net only: every product write already keeps the counter in step.
        """
        async with self.transaction():
            result = await self.db.execute(
                select(Product.category_id, func.count(Product.id))
                .where(Product.deleted_at.is_(None))
                .group_by(Product.category_id)
            )
            actual = {category_id: count for category_id, count in result.all()}

            result = await self.db.execute(
                select(Category).execution_options(populate_existing=True)
            )
            corrections = []
            for category in result.scalars().all():
                expected = actual.get(category.id, 0)
                if category.product_count != expected:
                    corrections.append({
                        "categoryId": category.id,
                        "stored": category.product_count,
                        "actual": expected,
                    })
                    category.product_count = expected

        for c in corrections:
            logger.warning(f"Category {c['categoryId']} product_count drifted: {c['stored']} -> {c['actual']}")
        return corrections

    async def _load(self, category_id: str) -> Optional[Category]:
        result = await self.db.execute(
            select(Category)
            .where(Category.id == category_id, Category.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _find_live_by_name(self, name: str, exclude_id: Optional[str] = None) -> Optional[str]:
        query = select(Category.id).where(Category.name == name, Category.deleted_at.is_(None))
        if exclude_id:
            query = query.where(Category.id != exclude_id)
        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none()
