"""Catalog feature: the master and transactional tables uploads are loaded into.

- Master data: Category, Customer, Product (natural keys: codes)
- Transactions: CustomerOrder (natural key: order_number), OrderItem
"""

from app.features.catalog.models import (
    Category,
    Customer,
    CustomerOrder,
    OrderItem,
    OrderStatus,
    Product,
)

__all__ = [
    "Category",
    "Customer",
    "CustomerOrder",
    "OrderItem",
    "OrderStatus",
    "Product",
]
