"""Entity processors: validate, resolve and upsert one batch of rows.

Each processor advances the run's shared row counter for every row it sees,
so row numbers stay continuous across batches of one job. Rows failing
validation are logged and excluded; they never abort the batch.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StoreError
from app.core.logging import get_logger
from app.features.catalog.models import OrderStatus
from app.features.uploads.models import EntityType
from app.features.uploads.resolver import RunContext
from app.features.uploads.rows import CustomerRow, FlatRow, OrderRow, ProductRow
from app.features.uploads.upsert import BatchUpserter
from app.features.uploads.validation import (
    is_blank,
    parse_bool,
    parse_date,
    parse_datetime,
    parse_decimal,
    parse_int,
    validate_customer_row,
    validate_order_row,
    validate_product_row,
)

logger = get_logger(__name__)

RowT = TypeVar("RowT", bound=FlatRow)

DEFAULT_CURRENCY = "USD"
ZERO = Decimal("0")


@dataclass
class BatchResult:
    """Outcome of processing one batch.

    Attributes:
        succeeded: Rows written to the store.
        failed: Rows rejected by validation, resolution or a failed chunk.
    """

    succeeded: int = 0
    failed: int = 0


def _clean(value: str | None) -> str | None:
    """Trim a cell, mapping blank to None."""
    if is_blank(value):
        return None
    return value.strip()  # type: ignore[union-attr]


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


class EntityProcessor(Generic[RowT]):
    """Base processor: row validation plus the shared row counter."""

    entity_type: ClassVar[EntityType]
    row_model: ClassVar[type[FlatRow]]
    validator: ClassVar[Callable[[Any, int], list[str]]]

    def __init__(self, upserter: BatchUpserter | None = None) -> None:
        self.upserter = upserter or BatchUpserter()

    def partition(self, rows: Sequence[RowT], ctx: RunContext) -> tuple[list[RowT], int]:
        """Split a batch into valid rows and a count of invalid ones.

        Args:
            rows: Decoded rows of one batch.
            ctx: Run context; its row offset advances by len(rows).

        Returns:
            Tuple of (valid rows in input order, number of invalid rows).
        """
        valid: list[RowT] = []
        failed = 0
        for row in rows:
            row_number = ctx.next_row_number()
            errors = type(self).validator(row, row_number)
            if errors:
                failed += 1
                logger.warning(
                    "uploads.validation_failed",
                    entity_type=self.entity_type.value,
                    row=row_number,
                    errors=errors,
                )
            else:
                valid.append(row)
        return valid, failed

    async def process_batch(
        self,
        db: AsyncSession,
        rows: Sequence[RowT],
        ctx: RunContext,
    ) -> BatchResult:
        raise NotImplementedError


# =============================================================================
# Customers
# =============================================================================


def map_customer_row(row: CustomerRow) -> dict[str, Any]:
    """Map a validated customer row to customer column values."""
    loyalty_points = parse_int(row.loyalty_points)
    is_active = parse_bool(row.is_active)
    return {
        "customer_code": _clean(row.customer_code),
        "first_name": _clean(row.first_name),
        "last_name": _clean(row.last_name),
        "email": _clean(row.email).lower(),  # type: ignore[union-attr]
        "phone": _clean(row.phone),
        "date_of_birth": parse_date(row.date_of_birth),
        "country": _clean(row.country),
        "city": _clean(row.city),
        "address": _clean(row.address),
        "postal_code": _clean(row.postal_code),
        "loyalty_points": loyalty_points if loyalty_points is not None else 0,
        "is_active": is_active if is_active is not None else True,
    }


class CustomerProcessor(EntityProcessor[CustomerRow]):
    """Upserts customers keyed by customer_code."""

    entity_type = EntityType.CUSTOMERS
    row_model = CustomerRow
    validator = staticmethod(validate_customer_row)

    async def process_batch(
        self,
        db: AsyncSession,
        rows: Sequence[CustomerRow],
        ctx: RunContext,
    ) -> BatchResult:
        valid, failed = self.partition(rows, ctx)
        if not valid:
            return BatchResult(succeeded=0, failed=failed)

        outcome = await self.upserter.upsert(db, "customer", [map_customer_row(r) for r in valid])
        return BatchResult(succeeded=outcome.affected, failed=failed + outcome.failed)


# =============================================================================
# Products
# =============================================================================


def map_product_row(row: ProductRow, category_id: int | None) -> dict[str, Any]:
    """Map a validated product row to product column values.

    Args:
        row: Validated product row.
        category_id: Resolved category id, None when blank or unknown.

    Returns:
        Column-value mapping for the product upsert.
    """
    unit_price = parse_decimal(row.unit_price)
    stock_quantity = parse_int(row.stock_quantity)
    is_active = parse_bool(row.is_active)
    return {
        "product_code": _clean(row.product_code),
        "product_name": _clean(row.product_name),
        "description": _clean(row.description),
        "category_id": category_id,
        "unit_price": unit_price if unit_price is not None else ZERO,
        "stock_quantity": stock_quantity if stock_quantity is not None else 0,
        "weight_kg": parse_decimal(row.weight_kg),
        "brand": _clean(row.brand),
        "sku": _clean(row.sku),
        "is_active": is_active if is_active is not None else True,
    }


class ProductProcessor(EntityProcessor[ProductRow]):
    """Upserts products keyed by product_code.

    Unknown category codes are stored as a NULL category, not a failure.
    """

    entity_type = EntityType.PRODUCTS
    row_model = ProductRow
    validator = staticmethod(validate_product_row)

    async def process_batch(
        self,
        db: AsyncSession,
        rows: Sequence[ProductRow],
        ctx: RunContext,
    ) -> BatchResult:
        valid, failed = self.partition(rows, ctx)
        if not valid:
            return BatchResult(succeeded=0, failed=failed)

        values: list[dict[str, Any]] = []
        for row in valid:
            category_id = await ctx.categories.resolve(db, row.category_code)
            if category_id is None and not is_blank(row.category_code):
                logger.info(
                    "uploads.category_not_found",
                    category_code=row.category_code,
                    product_code=row.product_code,
                )
            values.append(map_product_row(row, category_id))

        outcome = await self.upserter.upsert(db, "product", values)
        return BatchResult(succeeded=outcome.affected, failed=failed + outcome.failed)


# =============================================================================
# Orders
# =============================================================================


def map_order_header(row: OrderRow, customer_id: int) -> dict[str, Any]:
    """Map the first row of an order group to order header values."""
    status = _clean(row.status)
    currency = _clean(row.currency)
    ordered_at = _as_utc(parse_datetime(row.ordered_at))
    return {
        "order_number": _clean(row.order_number),
        "customer_id": customer_id,
        "status": status.upper() if status else OrderStatus.PENDING.value,
        "total_amount": parse_decimal(row.total_amount) or ZERO,
        "discount_amount": parse_decimal(row.discount_amount) or ZERO,
        "tax_amount": parse_decimal(row.tax_amount) or ZERO,
        "shipping_amount": parse_decimal(row.shipping_amount) or ZERO,
        "currency": currency.upper() if currency else DEFAULT_CURRENCY,
        "shipping_address": _clean(row.shipping_address),
        "notes": _clean(row.notes),
        "ordered_at": ordered_at or datetime.now(UTC),
        "shipped_at": _as_utc(parse_datetime(row.shipped_at)),
        "delivered_at": _as_utc(parse_datetime(row.delivered_at)),
    }


def map_order_item(row: OrderRow, order_id: int, product_id: int) -> dict[str, Any]:
    """Map one order line to order item values."""
    quantity = parse_int(row.quantity)
    return {
        "order_id": order_id,
        "product_id": product_id,
        "quantity": quantity if quantity is not None and quantity > 0 else 1,
        "unit_price": parse_decimal(row.unit_price) or ZERO,
        "discount": parse_decimal(row.item_discount) or ZERO,
    }


def merge_order_items(target: dict[str, Any], item: dict[str, Any]) -> None:
    """Fold another line for the same product into an order item.

    Quantities and discounts add up; the later line's unit price wins.
    """
    target["quantity"] += item["quantity"]
    target["discount"] += item["discount"]
    target["unit_price"] = item["unit_price"]


def group_by_order_number(rows: Sequence[OrderRow]) -> dict[str, list[OrderRow]]:
    """Group rows by trimmed order number, preserving first-seen order."""
    groups: dict[str, list[OrderRow]] = {}
    for row in rows:
        groups.setdefault(row.order_number.strip(), []).append(row)  # type: ignore[union-attr]
    return groups


class OrderProcessor(EntityProcessor[OrderRow]):
    """Upserts order headers and their line items.

    Rows are grouped per batch by order number. The header is taken from the
    first row of each group; every row contributes one order item.
    """

    entity_type = EntityType.ORDERS
    row_model = OrderRow
    validator = staticmethod(validate_order_row)

    async def process_batch(
        self,
        db: AsyncSession,
        rows: Sequence[OrderRow],
        ctx: RunContext,
    ) -> BatchResult:
        valid, failed = self.partition(rows, ctx)
        result = BatchResult(succeeded=0, failed=failed)
        for order_number, group in group_by_order_number(valid).items():
            group_result = await self._process_group(db, order_number, group, ctx)
            result.succeeded += group_result.succeeded
            result.failed += group_result.failed
        return result

    async def _process_group(
        self,
        db: AsyncSession,
        order_number: str,
        group: list[OrderRow],
        ctx: RunContext,
    ) -> BatchResult:
        first = group[0]
        try:
            customer_id = await ctx.customers.resolve(db, first.customer_code)
            if customer_id is None:
                logger.warning(
                    "uploads.order_customer_not_found",
                    order_number=order_number,
                    customer_code=first.customer_code,
                    rows=len(group),
                )
                return BatchResult(succeeded=0, failed=len(group))

            order_id = await self.upserter.upsert_returning_id(
                db, "order", map_order_header(first, customer_id)
            )
        except StoreError as e:
            logger.error(
                "uploads.order_header_failed",
                order_number=order_number,
                rows=len(group),
                error=e.message,
            )
            return BatchResult(succeeded=0, failed=len(group))

        # Lines for the same product merge into one item, keyed by product id
        items: dict[int, dict[str, Any]] = {}
        lines: dict[int, int] = {}
        failed = 0
        for index, row in enumerate(group):
            try:
                product_id = await ctx.products.resolve(db, row.product_code)
            except StoreError as e:
                remaining = len(group) - index
                logger.error(
                    "uploads.order_items_aborted",
                    order_number=order_number,
                    rows=remaining,
                    error=e.message,
                )
                failed += remaining
                break
            if product_id is None:
                logger.warning(
                    "uploads.order_product_not_found",
                    order_number=order_number,
                    product_code=row.product_code,
                )
                failed += 1
                continue
            item = map_order_item(row, order_id, product_id)
            if product_id in items:
                merge_order_items(items[product_id], item)
                lines[product_id] += 1
            else:
                items[product_id] = item
                lines[product_id] = 1

        succeeded = 0
        if items:
            outcome = await self.upserter.upsert(
                db, "order_item", list(items.values()), weights=list(lines.values())
            )
            succeeded = outcome.affected
            failed += outcome.failed
        return BatchResult(succeeded=succeeded, failed=failed)


PROCESSORS: dict[EntityType, type[EntityProcessor[Any]]] = {
    EntityType.CUSTOMERS: CustomerProcessor,
    EntityType.PRODUCTS: ProductProcessor,
    EntityType.ORDERS: OrderProcessor,
}


def get_processor(entity_type: EntityType, upserter: BatchUpserter | None = None) -> EntityProcessor[Any]:
    """Instantiate the processor for an entity type."""
    return PROCESSORS[entity_type](upserter)
