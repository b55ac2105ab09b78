"""Per-row validation and typed coercion for flat upload rows.

Validators are pure: ``(row, row_number) -> list[str]``. They never raise and
never touch shared state. An empty list means the row is accepted.

Coercion helpers try an ordered list of formats, first success wins, and
return None for blank or unparseable input.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from app.features.uploads.rows import CustomerRow, OrderRow, ProductRow

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")

DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%Y/%m/%d",
)

DATETIME_FORMATS: tuple[str, ...] = (
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M",
)

# Integer columns are 32-bit signed
INT_MIN = -(2**31)
INT_MAX = 2**31 - 1

_INT_PATTERN = re.compile(r"^[+-]?\d+$")
_DECIMAL_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

TRUE_VALUES = frozenset({"true", "1", "yes", "y"})
FALSE_VALUES = frozenset({"false", "0", "no", "n"})


# =============================================================================
# Coercion helpers
# =============================================================================


def is_blank(value: str | None) -> bool:
    """Check whether a cell is missing or whitespace only."""
    return value is None or not value.strip()


def parse_date(value: str | None) -> date | None:
    """Parse a date using the accepted formats in order.

    Args:
        value: Raw cell value.

    Returns:
        Parsed date, or None if blank or no format matches.
    """
    if is_blank(value):
        return None
    text = value.strip()  # type: ignore[union-attr]
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_datetime(value: str | None) -> datetime | None:
    """Parse a timestamp, falling back to a date at midnight.

    Args:
        value: Raw cell value.

    Returns:
        Naive datetime, or None if blank or no format matches.
    """
    if is_blank(value):
        return None
    text = value.strip()  # type: ignore[union-attr]
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    parsed_date = parse_date(text)
    if parsed_date is None:
        return None
    return datetime.combine(parsed_date, datetime.min.time())


def parse_decimal(value: str | None) -> Decimal | None:
    """Parse a decimal number, ignoring thousands-separator commas."""
    if is_blank(value):
        return None
    text = value.strip().replace(",", "")  # type: ignore[union-attr]
    if not _DECIMAL_PATTERN.match(text):
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def parse_int(value: str | None) -> int | None:
    """Parse a 32-bit signed integer; out-of-range values are rejected."""
    if is_blank(value):
        return None
    text = value.strip()  # type: ignore[union-attr]
    if not _INT_PATTERN.match(text):
        return None
    number = int(text)
    if number < INT_MIN or number > INT_MAX:
        return None
    return number


def parse_bool(value: str | None) -> bool | None:
    """Parse a case-insensitive boolean flag (true/1/yes/y, false/0/no/n)."""
    if is_blank(value):
        return None
    text = value.strip().lower()  # type: ignore[union-attr]
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return None


# =============================================================================
# Row validators
# =============================================================================


def _require(errors: list[str], row_number: int, value: str | None, column: str) -> bool:
    if is_blank(value):
        errors.append(f"Row {row_number}: {column} is required")
        return False
    return True


def validate_customer_row(row: CustomerRow, row_number: int) -> list[str]:
    """Validate one customer row.

    Args:
        row: Decoded customer row.
        row_number: 1-based row number within the job.

    Returns:
        Ordered error messages; empty when the row is valid.
    """
    errors: list[str] = []
    _require(errors, row_number, row.customer_code, "customerCode")
    _require(errors, row_number, row.first_name, "firstName")
    _require(errors, row_number, row.last_name, "lastName")
    if _require(errors, row_number, row.email, "email"):
        if not EMAIL_PATTERN.match(row.email.strip()):  # type: ignore[union-attr]
            errors.append(f"Row {row_number}: invalid email format '{row.email}'")
    if not is_blank(row.loyalty_points):
        points = parse_int(row.loyalty_points)
        if points is None or points < 0:
            errors.append(f"Row {row_number}: loyaltyPoints must be a non-negative integer")
    if not is_blank(row.date_of_birth) and parse_date(row.date_of_birth) is None:
        errors.append(f"Row {row_number}: invalid dateOfBirth format '{row.date_of_birth}'")
    return errors


def validate_product_row(row: ProductRow, row_number: int) -> list[str]:
    """Validate one product row.

    Args:
        row: Decoded product row.
        row_number: 1-based row number within the job.

    Returns:
        Ordered error messages; empty when the row is valid.
    """
    errors: list[str] = []
    _require(errors, row_number, row.product_code, "productCode")
    _require(errors, row_number, row.product_name, "productName")
    if _require(errors, row_number, row.unit_price, "unitPrice"):
        price = parse_decimal(row.unit_price)
        if price is None or price < 0:
            errors.append(f"Row {row_number}: unitPrice must be a non-negative decimal value")
    if not is_blank(row.stock_quantity):
        stock = parse_int(row.stock_quantity)
        if stock is None or stock < 0:
            errors.append(f"Row {row_number}: stockQuantity must be a non-negative integer")
    if not is_blank(row.weight_kg):
        weight = parse_decimal(row.weight_kg)
        if weight is None or weight < 0:
            errors.append(f"Row {row_number}: weightKg must be a non-negative decimal")
    return errors


def validate_order_row(row: OrderRow, row_number: int) -> list[str]:
    """Validate one order line row.

    Header-level optional fields (status, amounts, timestamps) are not
    checked; unparseable values fall back to defaults when mapped.
    """
    errors: list[str] = []
    _require(errors, row_number, row.order_number, "orderNumber")
    _require(errors, row_number, row.customer_code, "customerCode")
    _require(errors, row_number, row.product_code, "productCode")
    if _require(errors, row_number, row.quantity, "quantity"):
        quantity = parse_int(row.quantity)
        if quantity is None or quantity <= 0:
            errors.append(f"Row {row_number}: quantity must be a positive integer")
    if _require(errors, row_number, row.unit_price, "unitPrice"):
        price = parse_decimal(row.unit_price)
        if price is None or price < 0:
            errors.append(f"Row {row_number}: unitPrice must be a non-negative decimal value")
    return errors
