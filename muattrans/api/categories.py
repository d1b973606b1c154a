"""
Categories API endpoints
"""
import uuid
from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from muattrans.api.auth import get_current_user
from muattrans.api.responses import show_message, tagged
from muattrans.database import get_db
from muattrans.errors import NotFound
from muattrans.models.user import User
from muattrans.services.category_service import CategoryService
from muattrans.utils.validators import OperationKind, require_valid

router = APIRouter()

RESOURCE = "categories"


def get_category_service(db: AsyncSession = Depends(get_db)) -> CategoryService:
    return CategoryService(db)


@router.post("/")
async def create_category(
    payload: Any = Body(None),
    current_user: User = Depends(get_current_user),
    service: CategoryService = Depends(get_category_service),
):
    actor_id = current_user.id
    with tagged("CATEGORY_CREATE"):
        data = require_valid(RESOURCE, OperationKind.CREATE, payload)
        result = await service.create(data, actor_id)
    return show_message(201, result, "CATEGORY_CREATE")


@router.get("/")
async def list_categories(
    current_user: User = Depends(get_current_user),
    service: CategoryService = Depends(get_category_service),
):
    with tagged("CATEGORY_LIST"):
        result = await service.get_list()
    return show_message(200, result, "CATEGORY_LIST")


@router.get("/{category_id}")
async def get_category(
    category_id: str,
    current_user: User = Depends(get_current_user),
    service: CategoryService = Depends(get_category_service),
):
    with tagged("CATEGORY_DETAIL"):
        params = require_valid(RESOURCE, OperationKind.GET_BY_ID, path_params={"id": category_id})
        result = await service.get_by_id(params.id)
        if result is None:
            raise NotFound("Category not found")
    return show_message(200, result, "CATEGORY_DETAIL")


@router.put("/{category_id}")
async def update_category(
    category_id: str,
    payload: Any = Body(None),
    current_user: User = Depends(get_current_user),
    service: CategoryService = Depends(get_category_service),
):
    actor_id = current_user.id
    with tagged("CATEGORY_UPDATE"):
        patch = require_valid(RESOURCE, OperationKind.UPDATE, payload, path_params={"id": category_id})
        result = await service.update(str(uuid.UUID(category_id)), patch, actor_id)
    return show_message(200, result, "CATEGORY_UPDATE")


@router.delete("/{category_id}")
async def delete_category(
    category_id: str,
    current_user: User = Depends(get_current_user),
    service: CategoryService = Depends(get_category_service),
):
    """Soft-delete a category that holds no products"""
    actor_id = current_user.id
    with tagged("CATEGORY_DELETE"):
        params = require_valid(RESOURCE, OperationKind.DELETE, path_params={"id": category_id})
        await service.delete(params.id, actor_id)
    return show_message(200, None, "CATEGORY_DELETE")
