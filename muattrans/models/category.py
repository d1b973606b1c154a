"""
Category model.
product_count is a denormalized counter of live (non-deleted) products; only
the product service changes it, inside the same transaction as the product write.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.orm import relationship
from muattrans.database import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    product_count = Column(Integer, nullable=False, default=0)

    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)
    deleted_by = Column(String(36), nullable=True)

    products = relationship("Product", back_populates="category", passive_deletes="all")

    __table_args__ = (
        CheckConstraint("product_count >= 0", name="ck_categories_product_count_non_negative"),
        Index(
            "uq_categories_name_live", "name", unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )
