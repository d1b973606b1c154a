"""
Product service - the unit of work behind every product endpoint.

Each mutating operation runs in one transaction and keeps
Category.product_count equal to the number of live products in the category.
"""
import asyncio
import logging
import math
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from muattrans.errors import (
    DuplicateConflict, InvalidState, NotFound, PartialReferenceNotFound, ReferenceNotFound, ValidationError,
)
from muattrans.models.category import Category
from muattrans.models.product import Product, ProductStatus
from muattrans.schemas.product import (
    BulkUpdateRequest, BulkUpdateResult, CategoryBreakdown, CategorySummary, CreatorSummary, PageInfo,
    ProductCreate, ProductListQuery, ProductPage, ProductResponse, ProductStats, ProductStatsQuery, ProductUpdate,
)
from muattrans.services.base import BaseService

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "name": Product.name,
    "price": Product.price,
    "createdAt": Product.created_at,
    "updatedAt": Product.updated_at,
    "sku": Product.sku,
}


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def format_product(p: Product) -> ProductResponse:
    return ProductResponse(
        id=p.id,
        name=p.name,
        description=p.description,
        sku=p.sku,
        price=float(p.price),
        stock=p.stock,
        weight=float(p.weight) if p.weight is not None else None,
        status=p.status,
        is_visible=p.is_visible,
        tags=p.tags,
        specifications=p.specifications,
        dimensions=p.dimensions,
        category_id=p.category_id,
        category=CategorySummary(
            id=p.category.id,
            name=p.category.name,
            description=p.category.description,
        ) if p.category else None,
        creator=CreatorSummary(
            id=p.creator.id,
            full_name=p.creator.full_name,
            email=p.creator.email,
        ) if p.creator else None,
        created_at=p.created_at,
        updated_at=p.updated_at,
        deleted_at=p.deleted_at,
    )


class ProductService(BaseService):

    def __init__(self, db: AsyncSession, read_sessions: Optional[async_sessionmaker] = None):
        super().__init__(db)
        self._read_sessions = read_sessions

    # --- Operations ---

    async def create(self, data: ProductCreate, actor_id: Optional[str]) -> ProductResponse:
        values = data.model_dump(exclude_none=True)
        values.setdefault("status", ProductStatus.ACTIVE)

        async with self.transaction():
            await self._validate_business_rules(values)

            if await self._find_live_by_name(values["name"], values["category_id"]):
                raise DuplicateConflict("Product with this name already exists in the category")

            if not await self._category_exists(values["category_id"]):
                raise ReferenceNotFound("Category not found")

            product = Product(**values, created_by=actor_id)
            self.db.add(product)
            await self.db.flush()

            await self._adjust_product_count(product.category_id, 1)

        logger.info(f"Product {product.id} created in category {product.category_id} by {actor_id}")
        created = await self._load(product.id)
        return format_product(created)

    async def get_list(self, query: ProductListQuery, include_deleted: bool = False) -> ProductPage:
        conditions = self._build_conditions(
            search=query.search,
            category_id=query.category_id,
            status=query.status,
            min_price=query.min_price,
            max_price=query.max_price,
            include_deleted=include_deleted,
        )
        column = SORT_COLUMNS[query.sort_by]
        order = column.asc() if query.sort_order.lower() == "asc" else column.desc()

        async with self.guard():
            total = (await self.db.execute(
                select(func.count(Product.id)).where(*conditions)
            )).scalar_one()

            result = await self.db.execute(
                select(Product)
                .options(*self._includes())
                .where(*conditions)
                .order_by(order)
                .offset((query.page - 1) * query.limit)
                .limit(query.limit)
                .execution_options(populate_existing=True)
            )
            products = result.scalars().all()

        total_pages = math.ceil(total / query.limit) if total else 0
        return ProductPage(
            items=[format_product(p) for p in products],
            page_info=PageInfo(
                page=query.page,
                limit=query.limit,
                total=total,
                total_pages=total_pages,
                has_next=query.page < total_pages,
                has_prev=query.page > 1,
            ),
        )

    async def get_by_id(self, product_id: str, include_deleted: bool = False) -> Optional[ProductResponse]:
        """Absence is not an error here; callers decide"""
        async with self.guard():
            product = await self._load(product_id, include_deleted=include_deleted)
        return format_product(product) if product else None

    async def update(self, product_id: str, patch: ProductUpdate, actor_id: Optional[str]) -> ProductResponse:
        changes = patch.changes()

        async with self.transaction():
            existing = await self._load(product_id)
            if existing is None:
                raise NotFound("Product not found")

            await self._validate_business_rules(changes, existing)

            new_name = changes.get("name", existing.name)
            new_category_id = changes.get("category_id", existing.category_id)

            if new_name != existing.name or new_category_id != existing.category_id:
                if await self._find_live_by_name(new_name, new_category_id, exclude_id=existing.id):
                    raise DuplicateConflict("Product with this name already exists in the category")

            if new_category_id != existing.category_id:
                if not await self._category_exists(new_category_id):
                    raise ReferenceNotFound("New category not found")
                await self._adjust_product_count(existing.category_id, -1)
                await self._adjust_product_count(new_category_id, 1)

            for key, value in changes.items():
                setattr(existing, key, value)
            existing.updated_by = actor_id
            existing.updated_at = datetime.utcnow()

        logger.info(f"Product {product_id} updated by {actor_id}: {sorted(changes)}")
        updated = await self._load(product_id)
        return format_product(updated)

    async def delete(self, product_id: str, actor_id: Optional[str]) -> bool:
        async with self.transaction():
            existing = await self._load(product_id)
            if existing is None:
                raise NotFound("Product not found")

            self._validate_deletion(existing)

            await self._adjust_product_count(existing.category_id, -1)
            existing.mark_deleted(actor_id)

        logger.info(f"Product {product_id} soft-deleted by {actor_id}")
        return True

    async def get_stats(self, query: ProductStatsQuery) -> ProductStats:
        conditions = [Product.deleted_at.is_(None)]
        if query.category_id:
            conditions.append(Product.category_id == query.category_id)
        if query.status:
            conditions.append(Product.status == query.status)
        if query.date_from:
            conditions.append(Product.created_at >= query.date_from)
        if query.date_to:
            conditions.append(Product.created_at <= query.date_to)

        breakdown_query = (
            select(Product.category_id, Category.name, func.count(Product.id))
            .join(Category, Category.id == Product.category_id)
            .where(*conditions)
            .group_by(Product.category_id, Category.name)
            .order_by(Category.name)
        )

        async with self.guard():
            total, active, inactive, avg_price, breakdown = await asyncio.gather(
                self._scalar(select(func.count(Product.id)).where(*conditions)),
                self._scalar(select(func.count(Product.id)).where(
                    *conditions, Product.status == ProductStatus.ACTIVE)),
                self._scalar(select(func.count(Product.id)).where(
                    *conditions, Product.status == ProductStatus.INACTIVE)),
                self._scalar(select(func.avg(Product.price)).where(*conditions)),
                self._rows(breakdown_query),
            )

        return ProductStats(
            total=total or 0,
            active=active or 0,
            inactive=inactive or 0,
            average_price=round(float(avg_price or 0), 2),
            breakdown=[
                CategoryBreakdown(category_id=cid, category_name=name, product_count=count)
                for cid, name, count in breakdown
            ],
        )

    async def bulk_update(self, request: BulkUpdateRequest, actor_id: Optional[str]) -> BulkUpdateResult:
        product_ids = list(dict.fromkeys(request.product_ids))
        changes = request.updates.changes()

        async with self.transaction():
            result = await self.db.execute(
                select(Product).where(Product.id.in_(product_ids), Product.deleted_at.is_(None))
            )
            products = result.scalars().all()

            if len(products) != len(product_ids):
                found = {p.id for p in products}
                missing = [pid for pid in product_ids if pid not in found]
                raise PartialReferenceNotFound("Some products not found", data={"missingIds": missing})

            await self._validate_business_rules(changes)

            if "category_id" in changes:
                await self._move_products(products, changes["category_id"])

            result = await self.db.execute(
                update(Product)
                .where(Product.id.in_(product_ids))
                .values(**changes, updated_by=actor_id, updated_at=datetime.utcnow())
                .execution_options(synchronize_session="evaluate")
            )
            updated_count = result.rowcount

        logger.info(f"Bulk update of {updated_count} products by {actor_id}: {sorted(changes)}")
        return BulkUpdateResult(updated_count=updated_count, product_ids=product_ids)

    # --- Helpers ---

    @staticmethod
    def _includes():
        return [selectinload(Product.category), selectinload(Product.creator)]

    async def _load(self, product_id: str, include_deleted: bool = False) -> Optional[Product]:
        query = (
            select(Product)
            .options(*self._includes())
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        )
        if not include_deleted:
            query = query.where(Product.deleted_at.is_(None))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    def _build_conditions(
        search: Optional[str] = None,
        category_id: Optional[str] = None,
        status: Optional[ProductStatus] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        include_deleted: bool = False,
    ) -> List[Any]:
        conditions = []
        if not include_deleted:
            conditions.append(Product.deleted_at.is_(None))

        if search:
            pattern = _like_pattern(search)
            conditions.append(or_(
                Product.name.ilike(pattern, escape="\\"),
                Product.description.ilike(pattern, escape="\\"),
                Product.sku.ilike(pattern, escape="\\"),
            ))

        if category_id:
            conditions.append(Product.category_id == category_id)
        if status:
            conditions.append(Product.status == status)
        if min_price is not None:
            conditions.append(Product.price >= min_price)
        if max_price is not None:
            conditions.append(Product.price <= max_price)
        return conditions

    async def _find_live_by_name(
        self, name: str, category_id: str, exclude_id: Optional[str] = None
    ) -> Optional[str]:
        query = select(Product.id).where(
            Product.name == name,
            Product.category_id == category_id,
            Product.deleted_at.is_(None),
        )
        if exclude_id:
            query = query.where(Product.id != exclude_id)
        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def _category_exists(self, category_id: str) -> bool:
        result = await self.db.execute(
            select(Category.id).where(Category.id == category_id, Category.deleted_at.is_(None))
        )
        return result.scalar_one_or_none() is not None

    async def _adjust_product_count(self, category_id: str, delta: int) -> None:
        """The only write path for Category.product_count outside reconciliation"""
        await self.db.execute(
            update(Category)
            .where(Category.id == category_id)
            .values(product_count=Category.product_count + delta)
            .execution_options(synchronize_session="fetch")
        )

    async def _move_products(self, products: Sequence[Product], category_id: str) -> None:
        if not await self._category_exists(category_id):
            raise ReferenceNotFound("New category not found")

        moving = [p for p in products if p.category_id != category_id]
        if not moving:
            return

        names = [p.name for p in moving]
        if len(set(names)) != len(names):
            raise DuplicateConflict("Products being moved share a name")

        clash = await self.db.execute(
            select(Product.name).where(
                Product.category_id == category_id,
                Product.name.in_(names),
                Product.deleted_at.is_(None),
            ).limit(1)
        )
        clashing_name = clash.scalar_one_or_none()
        if clashing_name:
            raise DuplicateConflict(f"Product '{clashing_name}' already exists in the target category")

        for old_category_id, count in Counter(p.category_id for p in moving).items():
            await self._adjust_product_count(old_category_id, -count)
        await self._adjust_product_count(category_id, len(moving))

    async def _validate_business_rules(self, data: Dict[str, Any], existing: Optional[Product] = None) -> None:
        """Rules that go beyond field shape"""
        price = data.get("price")
        if price is not None and price < 0:
            raise ValidationError(
                [{"field": "price", "rule": "min", "message": "Price must be greater than or equal to 0"}],
                "Price must be greater than or equal to 0",
            )

        status = data.get("status")
        if status is not None and status not in {s.value for s in ProductStatus}:
            raise ValidationError(
                [{"field": "status", "rule": "enum", "message": "Status must be active or inactive"}],
                "Status must be active or inactive",
            )

        sku = data.get("sku")
        if sku:
            query = select(Product.id).where(Product.sku == sku, Product.deleted_at.is_(None))
            if existing is not None:
                query = query.where(Product.id != existing.id)
            result = await self.db.execute(query.limit(1))
            if result.scalar_one_or_none():
                raise DuplicateConflict("SKU already exists")

    @staticmethod
    def _validate_deletion(product: Product) -> None:
        # TODO: block deletion of products referenced by orders once orders are modelled
        if product.status == ProductStatus.ACTIVE:
            raise InvalidState("Cannot delete active product. Please set to inactive first.")

    def _reader(self) -> AsyncSession:
        """Independent session so aggregate queries can run concurrently"""
        if self._read_sessions is None:
            self._read_sessions = async_sessionmaker(self.db.bind, expire_on_commit=False)
        return self._read_sessions()

    async def _scalar(self, statement):
        async with self._reader() as session:
            return (await session.execute(statement)).scalar()

    async def _rows(self, statement):
        async with self._reader() as session:
            return (await session.execute(statement)).all()
