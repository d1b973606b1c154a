"""
Product request/response schemas.
Request models are the validation rule tables for each operation kind;
responses are serialized in camelCase.
"""
import html
import re
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, StringConstraints, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from muattrans.models.product import ProductStatus

ProductName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=100)]
Description = Annotated[str, StringConstraints(strip_whitespace=True, max_length=1000)]
Sku = Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=50, pattern=r"^[A-Z0-9_-]+$")]
Tag = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=30)]
SearchTerm = Annotated[str, StringConstraints(strip_whitespace=True, max_length=100)]

# Same precision as the Numeric(15, 2) / Numeric(8, 2) columns
PRICE_LIMITS = {"max_digits": 15, "decimal_places": 2}
WEIGHT_LIMITS = {"max_digits": 8, "decimal_places": 2}

DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def check_uuid4(value: Optional[str], label: str) -> Optional[str]:
    """Normalize a UUID4 string or raise a 'uuid' rule violation"""
    if value is None:
        return value
    try:
        parsed = uuid.UUID(value)
    except ValueError:
        parsed = None
    if parsed is None or parsed.version != 4:
        raise PydanticCustomError("uuid", "{label} must be a valid UUID", {"label": label})
    return str(parsed)


def escape_markup(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    return html.escape(value, quote=True)


def blank_to_none(values: Any) -> Any:
    """Empty query values mean no constraint, not a match on the empty string"""
    if isinstance(values, dict):
        return {k: v for k, v in values.items() if v not in ("", None)}
    return values


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class RequestModel(CamelModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "forbid"


class QueryModel(CamelModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "ignore"


# --- Requests ---

class Dimensions(CamelModel):
    length: Optional[float] = Field(None, ge=0)
    width: Optional[float] = Field(None, ge=0)
    height: Optional[float] = Field(None, ge=0)


class _ProductFields(RequestModel):
    @field_validator("category_id", check_fields=False)
    @classmethod
    def validate_category_id(cls, v):
        return check_uuid4(v, "Category ID")

    @field_validator("name", "description", check_fields=False)
    @classmethod
    def escape_text(cls, v):
        return escape_markup(v)

    @field_validator("tags", check_fields=False)
    @classmethod
    def escape_tags(cls, v):
        if v is None:
            return v
        return [escape_markup(tag) for tag in v]


class ProductCreate(_ProductFields):
    name: ProductName
    description: Optional[Description] = None
    sku: Sku
    price: Decimal = Field(ge=0, **PRICE_LIMITS)
    stock: int = Field(0, ge=0)
    weight: Optional[Decimal] = Field(None, ge=0, **WEIGHT_LIMITS)
    category_id: str
    status: Optional[ProductStatus] = None
    is_visible: bool = True
    tags: Optional[List[Tag]] = Field(None, max_length=10)
    specifications: Optional[Dict[str, Any]] = None
    dimensions: Optional[Dimensions] = None


class ProductUpdate(_ProductFields):
    """Patch: omitted (or null) fields are left unchanged"""
    name: Optional[ProductName] = None
    description: Optional[Description] = None
    sku: Optional[Sku] = None
    price: Optional[Decimal] = Field(None, ge=0, **PRICE_LIMITS)
    stock: Optional[int] = Field(None, ge=0)
    weight: Optional[Decimal] = Field(None, ge=0, **WEIGHT_LIMITS)
    category_id: Optional[str] = None
    status: Optional[ProductStatus] = None
    is_visible: Optional[bool] = None
    tags: Optional[List[Tag]] = Field(None, max_length=10)
    specifications: Optional[Dict[str, Any]] = None
    dimensions: Optional[Dimensions] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class BulkPatch(RequestModel):
    """The only fields a bulk update may touch"""
    status: Optional[ProductStatus] = None
    price: Optional[Decimal] = Field(None, ge=0, **PRICE_LIMITS)
    category_id: Optional[str] = None

    @field_validator("category_id")
    @classmethod
    def validate_category_id(cls, v):
        return check_uuid4(v, "Category ID")

    @model_validator(mode="after")
    def require_some_field(self):
        if not self.model_dump(exclude_none=True):
            raise PydanticCustomError("required_fields", "At least one update field is required")
        return self

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class BulkUpdateRequest(RequestModel):
    product_ids: List[str] = Field(min_length=1, max_length=100)
    updates: BulkPatch

    @field_validator("product_ids")
    @classmethod
    def validate_product_ids(cls, v):
        return [check_uuid4(item, "Product ID") for item in v]


class ProductListQuery(QueryModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    search: Optional[SearchTerm] = None
    category_id: Optional[str] = None
    status: Optional[ProductStatus] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    sort_by: Literal["name", "price", "createdAt", "updatedAt", "sku"] = "createdAt"
    sort_order: Literal["asc", "desc", "ASC", "DESC"] = "DESC"
    include_deleted: bool = False

    @model_validator(mode="before")
    @classmethod
    def drop_blank_values(cls, data):
        return blank_to_none(data)

    @field_validator("category_id")
    @classmethod
    def validate_category_id(cls, v):
        return check_uuid4(v, "Category ID")

    @field_validator("search")
    @classmethod
    def escape_text(cls, v):
        return escape_markup(v) or None

    @field_validator("max_price")
    @classmethod
    def validate_price_range(cls, v, info: ValidationInfo):
        min_price = info.data.get("min_price")
        if v is not None and min_price is not None and v < min_price:
            raise PydanticCustomError("price_range", "Maximum price must be greater than minimum price")
        return v


class ProductStatsQuery(QueryModel):
    category_id: Optional[str] = None
    status: Optional[ProductStatus] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def drop_blank_values(cls, data):
        return blank_to_none(data)

    @field_validator("category_id")
    @classmethod
    def validate_category_id(cls, v):
        return check_uuid4(v, "Category ID")

    @field_validator("date_from", mode="before")
    @classmethod
    def start_of_day(cls, v):
        if isinstance(v, str) and DATE_ONLY.match(v):
            return f"{v}T00:00:00"
        return v

    @field_validator("date_to", mode="before")
    @classmethod
    def end_of_day(cls, v):
        """A bare date covers the whole day"""
        if isinstance(v, str) and DATE_ONLY.match(v):
            return f"{v}T23:59:59.999999"
        return v

    @field_validator("date_from")
    @classmethod
    def normalize_date_from(cls, v):
        return to_naive_utc(v)

    @field_validator("date_to")
    @classmethod
    def validate_date_range(cls, v, info: ValidationInfo):
        v = to_naive_utc(v)
        date_from = info.data.get("date_from")
        if v is not None and date_from is not None and v < date_from:
            raise PydanticCustomError("date_range", "Date to must be after date from")
        return v


class IdParams(BaseModel):
    id: str

    @field_validator("id")
    @classmethod
    def validate_id(cls, v):
        return check_uuid4(v, "ID")


# --- Responses ---

class CategorySummary(CamelModel):
    id: str
    name: str
    description: Optional[str] = None


class CreatorSummary(CamelModel):
    id: str
    full_name: str
    email: str


class ProductResponse(CamelModel):
    id: str
    name: str
    description: Optional[str]
    sku: str
    price: float
    stock: int
    weight: Optional[float]
    status: ProductStatus
    is_visible: bool
    tags: Optional[List[str]]
    specifications: Optional[Dict[str, Any]]
    dimensions: Optional[Dict[str, Any]]
    category_id: str
    category: Optional[CategorySummary]
    creator: Optional[CreatorSummary]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    deleted_at: Optional[datetime] = None


class PageInfo(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class ProductPage(CamelModel):
    items: List[ProductResponse]
    page_info: PageInfo


class CategoryBreakdown(CamelModel):
    category_id: str
    category_name: Optional[str]
    product_count: int


class ProductStats(CamelModel):
    total: int
    active: int
    inactive: int
    average_price: float
    breakdown: List[CategoryBreakdown]


class BulkUpdateResult(CamelModel):
    updated_count: int
    product_ids: List[str]
