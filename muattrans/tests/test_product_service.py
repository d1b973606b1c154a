"""
ProductService tests - transactional writes, category counters, stats.
"""
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from muattrans.errors import (
    DuplicateConflict, InternalFailure, InvalidState, NotFound, PartialReferenceNotFound, ReferenceNotFound,
)
from muattrans.models.category import Category
from muattrans.models.product import Product, ProductStatus, Deleted, Live
from muattrans.schemas.product import (
    BulkPatch, BulkUpdateRequest, ProductCreate, ProductListQuery, ProductStatsQuery, ProductUpdate,
)
from muattrans.services.product_service import ProductService


async def _counter(db, category_id):
    result = await db.execute(select(Category.product_count).where(Category.id == category_id))
    return result.scalar_one()


async def _create(service, category_id, actor_id, **overrides):
    fields = {"name": "Widget", "sku": "WID-001", "price": 10.00, "category_id": category_id}
    fields.update(overrides)
    return await service.create(ProductCreate(**fields), actor_id)


# ===================== CREATE =====================


async def test_create_increments_counter(db_session, ids):
    service = ProductService(db_session)
    product = await _create(service, ids["electronics"], ids["admin"])

    assert product.name == "Widget"
    assert product.status == ProductStatus.ACTIVE
    assert product.category.name == "Electronics"
    assert product.creator.email == "admin@muattrans.test"
    assert await _counter(db_session, ids["electronics"]) == 1


async def test_create_duplicate_name_in_category(db_session, ids):
    service = ProductService(db_session)
    await _create(service, ids["electronics"], ids["admin"])

    with pytest.raises(DuplicateConflict):
        await _create(service, ids["electronics"], ids["admin"], sku="WID-002")

    assert await _counter(db_session, ids["electronics"]) == 1


async def test_same_name_allowed_in_other_category(db_session, ids):
    service = ProductService(db_session)
    await _create(service, ids["electronics"], ids["admin"])
    await _create(service, ids["furniture"], ids["admin"], sku="WID-002")

    assert await _counter(db_session, ids["electronics"]) == 1
    assert await _counter(db_session, ids["furniture"]) == 1


async def test_create_duplicate_sku(db_session, ids):
    service = ProductService(db_session)
    await _create(service, ids["electronics"], ids["admin"])

    with pytest.raises(DuplicateConflict) as exc_info:
        await _create(service, ids["furniture"], ids["admin"], name="Gadget")
    assert exc_info.value.message == "SKU already exists"
    assert await _counter(db_session, ids["furniture"]) == 0


async def test_create_unknown_category(db_session, ids):
    service = ProductService(db_session)

    with pytest.raises(ReferenceNotFound) as exc_info:
        await _create(service, str(uuid.uuid4()), ids["admin"])
    assert exc_info.value.message == "Category not found"

    total = (await db_session.execute(select(Product.id))).all()
    assert total == []


async def test_create_then_get_by_id(db_session, ids):
    service = ProductService(db_session)
    created = await _create(
        service, ids["electronics"], ids["admin"],
        description="Small widget", stock=4, weight=1.25, tags=["blue", "small"],
        specifications={"voltage": "5V"}, dimensions={"length": 1, "width": 2, "height": 3},
    )

    fetched = await service.get_by_id(created.id)
    assert fetched == created
    assert fetched.price == 10.0
    assert fetched.weight == 1.25
    assert fetched.tags == ["blue", "small"]
    assert fetched.dimensions == {"length": 1.0, "width": 2.0, "height": 3.0}


async def test_create_keeps_exact_price(db_session, ids):
    service = ProductService(db_session)
    created = await _create(service, ids["electronics"], ids["admin"], price=Decimal("1234.56"), weight=Decimal("0.75"))

    stored = (await db_session.execute(select(Product.price).where(Product.id == created.id))).scalar_one()
    assert Decimal(str(stored)) == Decimal("1234.56")

    fetched = await service.get_by_id(created.id)
    assert fetched.price == 1234.56
    assert fetched.weight == 0.75


async def test_create_losing_name_race_is_duplicate(db_session, ids):
    service = ProductService(db_session)
    await _create(service, ids["electronics"], ids["admin"])

    # Pre-check sees nothing, as if the other insert committed right after it ran
    with patch.object(ProductService, "_find_live_by_name", new_callable=AsyncMock) as mock:
        mock.return_value = None
        with pytest.raises(DuplicateConflict) as exc_info:
            await _create(service, ids["electronics"], ids["admin"], sku="WID-002")

    assert exc_info.value.status_code == 400
    assert await _counter(db_session, ids["electronics"]) == 1
    total = (await db_session.execute(select(Product.id))).all()
    assert len(total) == 1


async def test_update_losing_sku_race_is_duplicate(db_session, ids):
    service = ProductService(db_session)
    await _create(service, ids["electronics"], ids["admin"])
    other = await _create(service, ids["electronics"], ids["admin"], name="Gizmo", sku="GIZ-001")

    with patch.object(ProductService, "_validate_business_rules", new_callable=AsyncMock):
        with pytest.raises(DuplicateConflict):
            await service.update(other.id, ProductUpdate(sku="WID-001"), ids["admin"])

    fetched = await service.get_by_id(other.id)
    assert fetched.sku == "GIZ-001"


async def test_other_integrity_errors_stay_internal(db_session, ids):
    service = ProductService(db_session)

    with patch.object(ProductService, "_category_exists", new_callable=AsyncMock) as mock:
        mock.return_value = True
        with pytest.raises(InternalFailure) as exc_info:
            await _create(service, str(uuid.uuid4()), ids["admin"])

    assert exc_info.value.status_code == 500
    assert "FOREIGN KEY" in exc_info.value.detail


async def test_get_by_id_absent_returns_none(db_session, ids):
    service = ProductService(db_session)
    assert await service.get_by_id(str(uuid.uuid4())) is None


# ===================== UPDATE =====================


async def test_update_fields_and_actor(db_session, ids):
    service = ProductService(db_session)
    created = await _create(service, ids["electronics"], ids["admin"])

    updated = await service.update(
        created.id, ProductUpdate(price=12.5, stock=7, description="Now bigger"), ids["staff"]
    )
    assert updated.price == 12.5
    assert updated.stock == 7
    assert updated.description == "Now bigger"
    assert updated.name == "Widget"

    updated_by = (await db_session.execute(
        select(Product.updated_by).where(Product.id == created.id)
    )).scalar_one()
    assert updated_by == ids["staff"]


async def test_update_moves_counter_between_categories(db_session, ids):
    service = ProductService(db_session)
    created = await _create(service, ids["electronics"], ids["admin"])

    updated = await service.update(created.id, ProductUpdate(category_id=ids["furniture"]), ids["admin"])

    assert updated.category_id == ids["furniture"]
    assert await _counter(db_session, ids["electronics"]) == 0
    assert await _counter(db_session, ids["furniture"]) == 1


async def test_update_to_unknown_category_rolls_back(db_session, ids):
    service = ProductService(db_session)
    created = await _create(service, ids["electronics"], ids["admin"])

    with pytest.raises(ReferenceNotFound) as exc_info:
        await service.update(created.id, ProductUpdate(category_id=str(uuid.uuid4())), ids["admin"])
    assert exc_info.value.message == "New category not found"

    assert await _counter(db_session, ids["electronics"]) == 1
    fetched = await service.get_by_id(created.id)
    assert fetched.category_id == ids["electronics"]


async def test_update_name_clash_in_category(db_session, ids):
    service = ProductService(db_session)
    await _create(service, ids["electronics"], ids["admin"])
    other = await _create(service, ids["electronics"], ids["admin"], name="Gizmo", sku="GIZ-001")

    with pytest.raises(DuplicateConflict):
        await service.update(other.id, ProductUpdate(name="Widget"), ids["admin"])


async def test_update_moving_into_category_with_same_name(db_session, ids):
    service = ProductService(db_session)
    await _create(service, ids["furniture"], ids["admin"])
    other = await _create(service, ids["electronics"], ids["admin"], sku="WID-002")

    with pytest.raises(DuplicateConflict):
        await service.update(other.id, ProductUpdate(category_id=ids["furniture"]), ids["admin"])

    assert await _counter(db_session, ids["electronics"]) == 1
    assert await _counter(db_session, ids["furniture"]) == 1


async def test_update_sku_taken_by_other_product(db_session, ids):
    service = ProductService(db_session)
    await _create(service, ids["electronics"], ids["admin"])
    other = await _create(service, ids["electronics"], ids["admin"], name="Gizmo", sku="GIZ-001")

    with pytest.raises(DuplicateConflict):
        await service.update(other.id, ProductUpdate(sku="WID-001"), ids["admin"])

    # Re-submitting its own SKU is not a conflict
    same = await service.update(other.id, ProductUpdate(sku="GIZ-001"), ids["admin"])
    assert same.sku == "GIZ-001"


async def test_update_not_found(db_session, ids):
    service = ProductService(db_session)
    with pytest.raises(NotFound):
        await service.update(str(uuid.uuid4()), ProductUpdate(price=1), ids["admin"])


# ===================== DELETE =====================


async def test_delete_active_product_refused(db_session, ids):
    service = ProductService(db_session)
    created = await _create(service, ids["electronics"], ids["admin"])

    with pytest.raises(InvalidState) as exc_info:
        await service.delete(created.id, ids["admin"])
    assert exc_info.value.message == "Cannot delete active product. Please set to inactive first."
    assert await _counter(db_session, ids["electronics"]) == 1


async def test_delete_inactive_product(db_session, ids):
    service = ProductService(db_session)
    created = await _create(service, ids["electronics"], ids["admin"])
    await service.update(created.id, ProductUpdate(status=ProductStatus.INACTIVE), ids["admin"])

    assert await service.delete(created.id, ids["staff"]) is True

    assert await _counter(db_session, ids["electronics"]) == 0
    assert await service.get_by_id(created.id) is None

    archived = await service.get_by_id(created.id, include_deleted=True)
    assert archived.deleted_at is not None

    row = (await db_session.execute(select(Product).where(Product.id == created.id))).scalar_one()
    assert isinstance(row.lifecycle, Deleted)
    assert row.lifecycle.by == ids["staff"]


async def test_delete_twice_is_not_found(db_session, ids):
    service = ProductService(db_session)
    created = await _create(service, ids["electronics"], ids["admin"], status="inactive")
    await service.delete(created.id, ids["admin"])

    with pytest.raises(NotFound):
        await service.delete(created.id, ids["admin"])
    assert await _counter(db_session, ids["electronics"]) == 0


async def test_deleted_product_frees_name_and_sku(db_session, ids):
    service = ProductService(db_session)
    created = await _create(service, ids["electronics"], ids["admin"], status="inactive")
    await service.delete(created.id, ids["admin"])

    again = await _create(service, ids["electronics"], ids["admin"])
    assert again.id != created.id

    row = (await db_session.execute(select(Product).where(Product.id == again.id))).scalar_one()
    assert isinstance(row.lifecycle, Live)
    assert await _counter(db_session, ids["electronics"]) == 1


# ===================== LIST =====================


async def _catalog(service, ids):
    await _create(service, ids["electronics"], ids["admin"], name="Wireless Mouse", sku="MS-100", price=20)
    await _create(service, ids["electronics"], ids["admin"], name="Mechanical Keyboard", sku="KB-100", price=80,
                  description="Clicky 100% layout")
    await _create(service, ids["furniture"], ids["admin"], name="Desk Lamp", sku="LMP-1", price=35, status="inactive")


async def test_list_pagination(db_session, ids):
    service = ProductService(db_session)
    await _catalog(service, ids)

    page = await service.get_list(ProductListQuery(limit=2))
    assert len(page.items) == 2
    assert page.page_info.total == 3
    assert page.page_info.total_pages == 2
    assert page.page_info.has_next is True
    assert page.page_info.has_prev is False

    page = await service.get_list(ProductListQuery(limit=2, page=2))
    assert len(page.items) == 1
    assert page.page_info.has_next is False
    assert page.page_info.has_prev is True


async def test_list_search_is_case_insensitive(db_session, ids):
    service = ProductService(db_session)
    await _catalog(service, ids)

    page = await service.get_list(ProductListQuery(search="MOUSE"))
    assert [p.name for p in page.items] == ["Wireless Mouse"]

    page = await service.get_list(ProductListQuery(search="kb-1"))
    assert [p.sku for p in page.items] == ["KB-100"]


async def test_list_search_treats_wildcards_literally(db_session, ids):
    service = ProductService(db_session)
    await _catalog(service, ids)

    page = await service.get_list(ProductListQuery(search="100%"))
    assert [p.name for p in page.items] == ["Mechanical Keyboard"]

    page = await service.get_list(ProductListQuery(search="%"))
    assert [p.name for p in page.items] == ["Mechanical Keyboard"]


async def test_list_filters_are_conjunctive(db_session, ids):
    service = ProductService(db_session)
    await _catalog(service, ids)

    page = await service.get_list(ProductListQuery(category_id=ids["electronics"], min_price=50))
    assert [p.name for p in page.items] == ["Mechanical Keyboard"]

    page = await service.get_list(ProductListQuery(status="inactive"))
    assert [p.name for p in page.items] == ["Desk Lamp"]

    page = await service.get_list(ProductListQuery(min_price=30, max_price=40))
    assert [p.name for p in page.items] == ["Desk Lamp"]


async def test_list_sorting(db_session, ids):
    service = ProductService(db_session)
    await _catalog(service, ids)

    page = await service.get_list(ProductListQuery(sort_by="price", sort_order="asc"))
    assert [p.price for p in page.items] == [20.0, 35.0, 80.0]

    page = await service.get_list(ProductListQuery(sort_by="name", sort_order="DESC"))
    assert [p.name for p in page.items] == ["Wireless Mouse", "Mechanical Keyboard", "Desk Lamp"]


async def test_list_excludes_deleted_unless_asked(db_session, ids):
    service = ProductService(db_session)
    await _catalog(service, ids)
    lamp = (await service.get_list(ProductListQuery(search="lamp"))).items[0]
    await service.delete(lamp.id, ids["admin"])

    page = await service.get_list(ProductListQuery())
    assert page.page_info.total == 2

    page = await service.get_list(ProductListQuery(), include_deleted=True)
    assert page.page_info.total == 3


async def test_list_empty_store(db_session, ids):
    page = await ProductService(db_session).get_list(ProductListQuery())
    assert page.items == []
    assert page.page_info.total == 0
    assert page.page_info.total_pages == 0
    assert page.page_info.has_next is False


# ===================== STATS =====================


async def test_stats_empty_store(db_session, ids):
    stats = await ProductService(db_session).get_stats(ProductStatsQuery())
    assert stats.model_dump(by_alias=True) == {
        "total": 0,
        "active": 0,
        "inactive": 0,
        "averagePrice": 0,
        "breakdown": [],
    }


async def test_stats_aggregates(db_session, ids):
    service = ProductService(db_session)
    await _catalog(service, ids)

    stats = await service.get_stats(ProductStatsQuery())
    assert stats.total == 3
    assert stats.active == 2
    assert stats.inactive == 1
    assert stats.average_price == 45.0
    assert [(b.category_name, b.product_count) for b in stats.breakdown] == [("Electronics", 2), ("Furniture", 1)]


async def test_stats_filters_apply_to_every_aggregate(db_session, ids):
    service = ProductService(db_session)
    await _catalog(service, ids)

    stats = await service.get_stats(ProductStatsQuery(category_id=ids["electronics"]))
    assert stats.total == 2
    assert stats.inactive == 0
    assert stats.average_price == 50.0
    assert [b.category_id for b in stats.breakdown] == [ids["electronics"]]

    stats = await service.get_stats(ProductStatsQuery(date_from=datetime.utcnow() + timedelta(days=1)))
    assert stats.total == 0
    assert stats.average_price == 0


async def test_stats_ignore_deleted(db_session, ids):
    service = ProductService(db_session)
    await _catalog(service, ids)
    lamp = (await service.get_list(ProductListQuery(search="lamp"))).items[0]
    await service.delete(lamp.id, ids["admin"])

    stats = await service.get_stats(ProductStatsQuery())
    assert stats.total == 2
    assert stats.inactive == 0
    assert [b.category_name for b in stats.breakdown] == ["Electronics"]


# ===================== BULK UPDATE =====================


async def test_bulk_update_status(db_session, ids):
    service = ProductService(db_session)
    first = await _create(service, ids["electronics"], ids["admin"])
    second = await _create(service, ids["electronics"], ids["admin"], name="Gizmo", sku="GIZ-001")

    result = await service.bulk_update(
        BulkUpdateRequest(product_ids=[first.id, second.id, first.id], updates=BulkPatch(status="inactive")),
        ids["staff"],
    )
    assert result.updated_count == 2
    assert result.product_ids == [first.id, second.id]

    for product_id in (first.id, second.id):
        fetched = await service.get_by_id(product_id)
        assert fetched.status == ProductStatus.INACTIVE


async def test_bulk_update_partial_failure_changes_nothing(db_session, ids):
    service = ProductService(db_session)
    created = await _create(service, ids["electronics"], ids["admin"])
    missing_id = str(uuid.uuid4())

    with pytest.raises(PartialReferenceNotFound) as exc_info:
        await service.bulk_update(
            BulkUpdateRequest(product_ids=[created.id, missing_id], updates=BulkPatch(status="inactive")),
            ids["admin"],
        )
    assert exc_info.value.data == {"missingIds": [missing_id]}

    fetched = await service.get_by_id(created.id)
    assert fetched.status == ProductStatus.ACTIVE


async def test_bulk_update_deleted_product_counts_as_missing(db_session, ids):
    service = ProductService(db_session)
    created = await _create(service, ids["electronics"], ids["admin"], status="inactive")
    await service.delete(created.id, ids["admin"])

    with pytest.raises(PartialReferenceNotFound):
        await service.bulk_update(
            BulkUpdateRequest(product_ids=[created.id], updates=BulkPatch(price=5)), ids["admin"]
        )


async def test_bulk_move_keeps_counters(db_session, ids):
    service = ProductService(db_session)
    first = await _create(service, ids["electronics"], ids["admin"])
    second = await _create(service, ids["electronics"], ids["admin"], name="Gizmo", sku="GIZ-001")
    third = await _create(service, ids["furniture"], ids["admin"], name="Chair", sku="CHR-001")

    result = await service.bulk_update(
        BulkUpdateRequest(
            product_ids=[first.id, second.id, third.id],
            updates=BulkPatch(category_id=ids["furniture"], price=15),
        ),
        ids["admin"],
    )
    assert result.updated_count == 3
    assert await _counter(db_session, ids["electronics"]) == 0
    assert await _counter(db_session, ids["furniture"]) == 3

    fetched = await service.get_by_id(first.id)
    assert fetched.category_id == ids["furniture"]
    assert fetched.price == 15.0


async def test_bulk_move_to_unknown_category(db_session, ids):
    service = ProductService(db_session)
    created = await _create(service, ids["electronics"], ids["admin"])

    with pytest.raises(ReferenceNotFound):
        await service.bulk_update(
            BulkUpdateRequest(product_ids=[created.id], updates=BulkPatch(category_id=str(uuid.uuid4()))),
            ids["admin"],
        )
    assert await _counter(db_session, ids["electronics"]) == 1


async def test_bulk_move_name_clash(db_session, ids):
    service = ProductService(db_session)
    await _create(service, ids["furniture"], ids["admin"])
    moving = await _create(service, ids["electronics"], ids["admin"], sku="WID-002")

    with pytest.raises(DuplicateConflict):
        await service.bulk_update(
            BulkUpdateRequest(product_ids=[moving.id], updates=BulkPatch(category_id=ids["furniture"])),
            ids["admin"],
        )
    assert await _counter(db_session, ids["electronics"]) == 1
    assert await _counter(db_session, ids["furniture"]) == 1
