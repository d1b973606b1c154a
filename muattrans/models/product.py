"""
Product model
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from sqlalchemy import (
    Column, String, Text, Integer, Numeric, Boolean, DateTime, JSON, ForeignKey,
    CheckConstraint, Index, Enum as SQLEnum, text,
)
from sqlalchemy.orm import relationship
from muattrans.database import Base


class ProductStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class Live:
    """Product is visible to default queries"""


@dataclass(frozen=True)
class Deleted:
    """Product was soft-deleted"""
    at: datetime
    by: Optional[str]


Lifecycle = Union[Live, Deleted]


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    sku = Column(String(50), nullable=False)

    # Pricing / inventory
    price = Column(Numeric(15, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    weight = Column(Numeric(8, 2), nullable=True)

    # Free-form attributes
    tags = Column(JSON, nullable=True)
    specifications = Column(JSON, nullable=True)
    dimensions = Column(JSON, nullable=True)  # {"length", "width", "height"}

    # Classification
    category_id = Column(String(36), ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False, index=True)
    status = Column(SQLEnum(ProductStatus, native_enum=False), nullable=False, default=ProductStatus.ACTIVE)
    is_visible = Column(Boolean, nullable=False, default=True)

    # Audit
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(String(36), nullable=True)
    deleted_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)

    # Relationships
    category = relationship("Category", back_populates="products")
    creator = relationship("User", foreign_keys=[created_by])

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("weight IS NULL OR weight >= 0", name="ck_products_weight_non_negative"),
        # Uniqueness only applies to live rows; soft-deleted rows keep their values
        Index(
            "uq_products_name_category_live", "name", "category_id", unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index(
            "uq_products_sku_live", "sku", unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )

    @property
    def lifecycle(self) -> Lifecycle:
        if self.deleted_at is None:
            return Live()
        return Deleted(at=self.deleted_at, by=self.deleted_by)

    @property
    def is_deleted(self) -> bool:
        return isinstance(self.lifecycle, Deleted)

    def mark_deleted(self, actor_id: Optional[str], at: Optional[datetime] = None) -> None:
        self.deleted_at = at or datetime.utcnow()
        self.deleted_by = actor_id
