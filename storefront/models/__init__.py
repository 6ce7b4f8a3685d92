"""Models package - exports all SQLAlchemy models."""
# Catalog (external collaborators, referenced by foreign keys)
from storefront.models.customer import Customer
from storefront.models.product import Category, Product

# Promotions
from storefront.models.special import Special, SpecialType

# Orders
from storefront.models.order import Order, OrderStatus, FulfillmentType
from storefront.models.order_line import OrderLine

__all__ = [
    'Customer', 'Category', 'Product',
    'Special', 'SpecialType',
    'Order', 'OrderStatus', 'FulfillmentType', 'OrderLine',
]
