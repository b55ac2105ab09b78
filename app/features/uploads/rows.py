"""Flat row shapes decoded from upload files.

Every field is an optional string keyed by the source column (CSV header or
JSON object key, camelCase). Nothing is typed at decode time; coercion and
validation live in validation.py so the decoders stay entity-agnostic.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class FlatRow(BaseModel):
    """Base for all-string upload rows.

    Columns absent from the source decode as None; unknown columns are ignored.
    JSON scalars (numbers, booleans) are stringified, nested values rejected.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    @field_validator("*", mode="before")
    @classmethod
    def stringify_scalar(cls, v: Any) -> str | None:
        """Render JSON scalars the way they appear in the source."""
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, (int, float, Decimal)):
            return str(v)
        raise ValueError(f"expected a scalar value, got {type(v).__name__}")


class CustomerRow(FlatRow):
    """One customer record."""

    customer_code: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    date_of_birth: str | None = None
    country: str | None = None
    city: str | None = None
    address: str | None = None
    postal_code: str | None = None
    loyalty_points: str | None = None
    is_active: str | None = None


class ProductRow(FlatRow):
    """One product record; category is referenced by code."""

    product_code: str | None = None
    product_name: str | None = None
    description: str | None = None
    category_code: str | None = None
    unit_price: str | None = None
    stock_quantity: str | None = None
    weight_kg: str | None = None
    brand: str | None = None
    sku: str | None = None
    is_active: str | None = None


class OrderRow(FlatRow):
    """One order line: header fields repeated on every line of the same order."""

    # Order header
    order_number: str | None = None
    customer_code: str | None = None
    status: str | None = None
    total_amount: str | None = None
    discount_amount: str | None = None
    tax_amount: str | None = None
    shipping_amount: str | None = None
    currency: str | None = None
    shipping_address: str | None = None
    notes: str | None = None
    ordered_at: str | None = None
    shipped_at: str | None = None
    delivered_at: str | None = None

    # Order item
    product_code: str | None = None
    quantity: str | None = None
    unit_price: str | None = None
    item_discount: str | None = None
