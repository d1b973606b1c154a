"""
Input validation utilities.

Runs the rule table registered for a (resource, operation kind) pair and
reports an ordered list of field-level violations. Never touches storage.
"""
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError as PydanticValidationError

from muattrans.errors import ValidationError
from muattrans.schemas.category import CategoryCreate, CategoryUpdate
from muattrans.schemas.product import (
    BulkUpdateRequest, IdParams, ProductCreate, ProductListQuery, ProductStatsQuery, ProductUpdate,
)


class OperationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    LIST = "list"
    GET_BY_ID = "getById"
    DELETE = "delete"
    STATS = "stats"
    BULK_UPDATE = "bulkUpdate"


# Kinds that address a single record through the path
ID_KINDS = {OperationKind.UPDATE, OperationKind.GET_BY_ID, OperationKind.DELETE}

RULES: Dict[Tuple[str, OperationKind], Optional[Type[BaseModel]]] = {
    ("products", OperationKind.CREATE): ProductCreate,
    ("products", OperationKind.UPDATE): ProductUpdate,
    ("products", OperationKind.LIST): ProductListQuery,
    ("products", OperationKind.GET_BY_ID): None,
    ("products", OperationKind.DELETE): None,
    ("products", OperationKind.STATS): ProductStatsQuery,
    ("products", OperationKind.BULK_UPDATE): BulkUpdateRequest,
    ("categories", OperationKind.CREATE): CategoryCreate,
    ("categories", OperationKind.UPDATE): CategoryUpdate,
    ("categories", OperationKind.GET_BY_ID): None,
    ("categories", OperationKind.DELETE): None,
}

FIELD_LABELS = {
    "id": "ID",
    "name": "Name",
    "description": "Description",
    "sku": "SKU",
    "price": "Price",
    "stock": "Stock",
    "weight": "Weight",
    "categoryId": "Category ID",
    "status": "Status",
    "isVisible": "Visibility",
    "tags": "Tags",
    "page": "Page",
    "limit": "Limit",
    "search": "Search term",
    "minPrice": "Minimum price",
    "maxPrice": "Maximum price",
    "sortBy": "Sort field",
    "sortOrder": "Sort order",
    "productIds": "Product IDs",
    "updates": "Updates",
    "dateFrom": "Date from",
    "dateTo": "Date to",
}

# Rules raised with PydanticCustomError already carry a readable message
CUSTOM_RULES = {"uuid", "price_range", "date_range", "required_fields"}


def _violation(error: Mapping[str, Any]) -> Dict[str, str]:
    loc = [str(part) for part in error["loc"]]
    field = ".".join(loc) or "body"
    rule = error["type"]
    label = FIELD_LABELS.get(loc[0], loc[0]) if loc else "Request body"

    if rule in CUSTOM_RULES:
        message = error["msg"]
    elif rule == "missing":
        message = f"{label} is required"
    elif rule == "extra_forbidden":
        message = f"Unknown field '{field}'"
    else:
        message = f"{label}: {error['msg']}"

    return {"field": field, "rule": rule, "message": message}


def _run(model_cls: Type[BaseModel], payload: Any) -> Tuple[Optional[BaseModel], List[Dict[str, str]]]:
    if not isinstance(payload, Mapping):
        return None, [{"field": "body", "rule": "type", "message": "Request body must be an object"}]
    try:
        return model_cls.model_validate(dict(payload)), []
    except PydanticValidationError as exc:
        return None, [_violation(e) for e in exc.errors()]


def validate_request(
    resource: str,
    kind: OperationKind,
    payload: Any = None,
    path_params: Optional[Mapping[str, Any]] = None,
) -> Tuple[Optional[BaseModel], List[Dict[str, str]]]:
    """Validate a raw request for one operation.

    Returns ``(model, errors)``. ``model`` is the sanitized request (or the
    parsed path params for body-less kinds) and is ``None`` whenever
    ``errors`` is non-empty. Path parameter violations come first.
    """
    kind = OperationKind(kind)
    if (resource, kind) not in RULES:
        raise KeyError(f"No validation rules for {resource}/{kind.value}")

    errors: List[Dict[str, str]] = []
    model: Optional[BaseModel] = None

    if kind in ID_KINDS:
        model, id_errors = _run(IdParams, path_params or {})
        errors.extend(id_errors)

    model_cls = RULES[(resource, kind)]
    if model_cls is not None:
        model, body_errors = _run(model_cls, payload if payload is not None else {})
        errors.extend(body_errors)

    if errors:
        return None, errors
    return model, errors


def require_valid(
    resource: str,
    kind: OperationKind,
    payload: Any = None,
    path_params: Optional[Mapping[str, Any]] = None,
) -> Optional[BaseModel]:
    """Like validate_request, but raises ValidationError on any violation"""
    model, errors = validate_request(resource, kind, payload, path_params)
    if errors:
        raise ValidationError(errors)
    return model
