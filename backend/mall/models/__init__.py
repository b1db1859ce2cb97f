from .auth import User, PolicyRule
from .catalog import (
    Category,
    Brand,
    Product,
    ProductImage,
    ProductAttribute,
    PRODUCT_STATUS_DRAFT,
    PRODUCT_STATUS_ACTIVE,
    PRODUCT_STATUS_INACTIVE,
    PRODUCT_STATUSES,
)

__all__ = [
    'User', 'PolicyRule',
    'Category', 'Brand', 'Product', 'ProductImage', 'ProductAttribute',
    'PRODUCT_STATUS_DRAFT', 'PRODUCT_STATUS_ACTIVE', 'PRODUCT_STATUS_INACTIVE', 'PRODUCT_STATUSES',
]
