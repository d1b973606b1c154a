"""
Category request/response schemas
"""
from datetime import datetime
from typing import Annotated, Optional

from pydantic import StringConstraints, field_validator
from pydantic.alias_generators import to_camel

from muattrans.schemas.product import CamelModel, RequestModel, Description, escape_markup

CategoryName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=100)]


class CategoryCreate(RequestModel):
    name: CategoryName
    description: Optional[Description] = None

    @field_validator("name", "description")
    @classmethod
    def escape_text(cls, v):
        return escape_markup(v)


class CategoryUpdate(CategoryCreate):
    name: Optional[CategoryName] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class CategoryResponse(CamelModel):
    id: str
    name: str
    description: Optional[str]
    product_count: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True
