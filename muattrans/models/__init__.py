from muattrans.models.user import User
from muattrans.models.category import Category
from muattrans.models.product import Product, ProductStatus

__all__ = [
    "User",
    "Category",
    "Product",
    "ProductStatus",
]
