"""
Products API endpoints.
/stats and /bulk are declared before /{product_id} so they are not captured by it.
"""
import uuid
from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from muattrans.api.auth import get_current_user
from muattrans.api.responses import show_message, tagged
from muattrans.database import get_db
from muattrans.errors import NotFound
from muattrans.models.user import User
from muattrans.services.product_service import ProductService
from muattrans.utils.validators import OperationKind, require_valid

router = APIRouter()

RESOURCE = "products"


def get_product_service(db: AsyncSession = Depends(get_db)) -> ProductService:
    return ProductService(db)


@router.post("/")
async def create_product(
    payload: Any = Body(None),
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
):
    """Create a new product"""
    actor_id = current_user.id
    with tagged("PRODUCT_CREATE"):
        data = require_valid(RESOURCE, OperationKind.CREATE, payload)
        result = await service.create(data, actor_id)
    return show_message(201, result, "PRODUCT_CREATE")


@router.get("/")
async def list_products(
    request: Request,
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
):
    """List products with pagination, search and filters"""
    with tagged("PRODUCT_LIST"):
        query = require_valid(RESOURCE, OperationKind.LIST, dict(request.query_params))
        include_deleted = query.include_deleted and bool(current_user.is_admin)
        result = await service.get_list(query, include_deleted=include_deleted)
    return show_message(200, result, "PRODUCT_LIST")


@router.get("/stats")
async def get_product_stats(
    request: Request,
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
):
    """Aggregate product statistics"""
    with tagged("PRODUCT_STATS"):
        query = require_valid(RESOURCE, OperationKind.STATS, dict(request.query_params))
        result = await service.get_stats(query)
    return show_message(200, result, "PRODUCT_STATS")


@router.patch("/bulk")
async def bulk_update_products(
    payload: Any = Body(None),
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
):
    """Apply the same allow-listed patch to several products"""
    actor_id = current_user.id
    with tagged("PRODUCT_BULK_UPDATE"):
        data = require_valid(RESOURCE, OperationKind.BULK_UPDATE, payload)
        result = await service.bulk_update(data, actor_id)
    return show_message(200, result, "PRODUCT_BULK_UPDATE")


@router.get("/{product_id}")
async def get_product(
    product_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
):
    """Get a single product"""
    include_deleted = (
        request.query_params.get("includeDeleted", "").lower() == "true"
        and bool(current_user.is_admin)
    )
    with tagged("PRODUCT_DETAIL"):
        params = require_valid(RESOURCE, OperationKind.GET_BY_ID, path_params={"id": product_id})
        result = await service.get_by_id(params.id, include_deleted=include_deleted)
        if result is None:
            raise NotFound("Product not found")
    return show_message(200, result, "PRODUCT_DETAIL")


@router.put("/{product_id}")
async def update_product(
    product_id: str,
    payload: Any = Body(None),
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
):
    """Update a product"""
    actor_id = current_user.id
    with tagged("PRODUCT_UPDATE"):
        patch = require_valid(RESOURCE, OperationKind.UPDATE, payload, path_params={"id": product_id})
        result = await service.update(str(uuid.UUID(product_id)), patch, actor_id)
    return show_message(200, result, "PRODUCT_UPDATE")


@router.delete("/{product_id}")
async def delete_product(
    product_id: str,
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
):
    """Soft-delete an inactive product"""
    actor_id = current_user.id
    with tagged("PRODUCT_DELETE"):
        params = require_valid(RESOURCE, OperationKind.DELETE, path_params={"id": product_id})
        await service.delete(params.id, actor_id)
    return show_message(200, None, "PRODUCT_DELETE")
