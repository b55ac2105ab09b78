"""Catalog ORM models targeted by bulk uploads.

This module defines master and transactional tables:
- Master data: Category, Customer, Product
- Transactions: CustomerOrder (header), OrderItem (line)

Every table carries a business natural key backed by a unique constraint so
uploads can be written with INSERT ... ON CONFLICT (natural key) DO UPDATE.
OrderItem is keyed by (order_id, product_id), making re-ingest idempotent.
"""

import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Computed,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, TimestampMixin


class OrderStatus(str, Enum):
    """Order lifecycle values accepted on upload."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


# ============================================================================
# MASTER DATA
# ============================================================================


class Category(TimestampMixin, Base):
    """Product category.

    Categories are not uploaded; product rows reference them by code.

    Attributes:
        id: Primary key.
        category_code: Unique upper-case category code (e.g., "ELEC").
        category_name: Display name.
        description: Free-form description.
    """

    __tablename__ = "category"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    category_code: Mapped[str] = mapped_column(String(50), index=True)
    category_name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    products: Mapped[list["Product"]] = relationship(back_populates="category")

    __table_args__ = (UniqueConstraint("category_code", name="uq_category_code"),)


class Customer(TimestampMixin, Base):
    """Customer master record.

    Attributes:
        id: Primary key.
        customer_code: Unique business code.
        first_name: Given name.
        last_name: Family name.
        email: Lower-cased email address (unique).
        phone: Contact phone.
        date_of_birth: Birth date.
        country: Country name.
        city: City name.
        address: Street address.
        postal_code: Postal code.
        loyalty_points: Non-negative loyalty balance (defaults to 0).
        is_active: Active flag (defaults to True).
    """

    __tablename__ = "customer"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_code: Mapped[str] = mapped_column(String(50), index=True)
    first_name: Mapped[str] = mapped_column(String(100))
    last_name: Mapped[str] = mapped_column(String(100))
    email: Mapped[str] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    date_of_birth: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    loyalty_points: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    orders: Mapped[list["CustomerOrder"]] = relationship(back_populates="customer")

    __table_args__ = (
        UniqueConstraint("customer_code", name="uq_customer_code"),
        UniqueConstraint("email", name="uq_customer_email"),
        CheckConstraint("loyalty_points >= 0", name="ck_customer_loyalty_points_non_negative"),
    )


class Product(TimestampMixin, Base):
    """Product master record.

    Attributes:
        id: Primary key.
        product_code: Unique business code.
        product_name: Display name.
        description: Free-form description.
        category_id: Foreign key to category (NULL when the code is unknown).
        unit_price: List price.
        stock_quantity: Units on hand (defaults to 0).
        weight_kg: Shipping weight.
        brand: Brand name.
        sku: Optional stock keeping unit (unique when present).
        is_active: Active flag (defaults to True).
    """

    __tablename__ = "product"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_code: Mapped[str] = mapped_column(String(50), index=True)
    product_name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("category.id"), nullable=True, index=True
    )
    unit_price: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0)
    weight_kg: Mapped[Decimal | None] = mapped_column(Numeric(8, 3), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    category: Mapped["Category | None"] = relationship(back_populates="products")
    order_items: Mapped[list["OrderItem"]] = relationship(back_populates="product")

    __table_args__ = (
        UniqueConstraint("product_code", name="uq_product_code"),
        UniqueConstraint("sku", name="uq_product_sku"),
        CheckConstraint("unit_price >= 0", name="ck_product_unit_price_non_negative"),
        CheckConstraint("stock_quantity >= 0", name="ck_product_stock_non_negative"),
    )


# ============================================================================
# TRANSACTIONS
# ============================================================================


class CustomerOrder(TimestampMixin, Base):
    """Order header.

    Named customer_order because "order" is a reserved word.

    Attributes:
        id: Primary key.
        order_number: Unique business order number.
        customer_id: Foreign key to customer.
        status: Order status (see OrderStatus), defaults to PENDING.
        total_amount: Order total.
        discount_amount: Order-level discount.
        tax_amount: Tax charged.
        shipping_amount: Shipping charged.
        currency: ISO currency code, defaults to USD.
        shipping_address: Delivery address.
        notes: Free-form notes.
        ordered_at: When the order was placed.
        shipped_at: When the order shipped.
        delivered_at: When the order was delivered.
    """

    __tablename__ = "customer_order"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(50), index=True)
    customer_id: Mapped[int] = mapped_column(Integer, ForeignKey("customer.id"), index=True)
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PENDING.value)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    shipping_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    shipping_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    ordered_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True))
    shipped_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delivered_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    customer: Mapped["Customer"] = relationship(back_populates="orders")
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("order_number", name="uq_customer_order_number"),
        Index("ix_customer_order_customer_ordered", "customer_id", "ordered_at"),
    )


class OrderItem(TimestampMixin, Base):
    """Order line item.

    Grain: one row per (order_id, product_id).

    Attributes:
        id: Primary key.
        order_id: Foreign key to customer_order.
        product_id: Foreign key to product.
        quantity: Units ordered (at least 1).
        unit_price: Price per unit.
        discount: Line discount.
        line_total: Stored computed value quantity * unit_price - discount.
    """

    __tablename__ = "order_item"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("customer_order.id", ondelete="CASCADE"), index=True
    )
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("product.id"), index=True)
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    discount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    line_total: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), Computed("quantity * unit_price - discount", persisted=True)
    )

    order: Mapped["CustomerOrder"] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship(back_populates="order_items")

    __table_args__ = (
        UniqueConstraint("order_id", "product_id", name="uq_order_item_order_product"),
        CheckConstraint("quantity >= 1", name="ck_order_item_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_order_item_unit_price_non_negative"),
    )
