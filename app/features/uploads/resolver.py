"""Natural-key to surrogate-id resolution, memoized per ingestion run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StoreError
from app.core.logging import get_logger
from app.features.catalog.models import Category, Customer, Product
from app.features.uploads.validation import is_blank

logger = get_logger(__name__)


@runtime_checkable
class CodeLookupProtocol(Protocol):
    """Protocol for single-code id lookups against the store."""

    async def find_id_by_code(self, db: AsyncSession, code: str) -> int | None:
        """Return the surrogate id for a business code, or None."""
        ...


class TableCodeLookup:
    """Looks up one table's id by its natural-key column."""

    def __init__(self, id_column: Any, code_column: Any) -> None:
        self._id_column = id_column
        self._code_column = code_column

    async def find_id_by_code(self, db: AsyncSession, code: str) -> int | None:
        """Resolve a code to an id.

        Args:
            db: Async database session.
            code: Normalized business code.

        Returns:
            Matching id, or None if no row carries the code.
        """
        stmt = select(self._id_column).where(self._code_column == code).limit(1)
        result = await db.execute(stmt)
        found: int | None = result.scalar_one_or_none()
        return found


class ReferenceResolver:
    """Memoized code -> id resolver scoped to one ingestion run.

    Not-found outcomes are cached too, so a bad code is queried at most once
    per run. Rows created by other writers mid-run are not picked up.
    """

    def __init__(self, kind: str, lookup: CodeLookupProtocol, *, upper_case: bool = False) -> None:
        self.kind = kind
        self._lookup = lookup
        self._upper_case = upper_case
        self._cache: dict[str, int | None] = {}
        self.queries = 0

    def normalize(self, code: str) -> str:
        normalized = code.strip()
        return normalized.upper() if self._upper_case else normalized

    async def resolve(self, db: AsyncSession, code: str | None) -> int | None:
        """Resolve a business code to a surrogate id.

        Args:
            db: Async database session.
            code: Raw code from the row; trimmed (and upper-cased for
                categories) before lookup.

        Returns:
            Surrogate id, or None for blank or unknown codes.

        Raises:
            StoreError: If the lookup query fails. Failures are not cached. The
                session is rolled back first so it stays usable.
        """
        if is_blank(code):
            return None
        key = self.normalize(code)  # type: ignore[arg-type]
        if key in self._cache:
            return self._cache[key]

        self.queries += 1
        try:
            found = await self._lookup.find_id_by_code(db, key)
        except SQLAlchemyError as e:
            await db.rollback()
            raise StoreError(
                f"Lookup of {self.kind} code '{key}' failed: {e}",
                details={"kind": self.kind, "code": key},
            ) from e

        self._cache[key] = found
        if found is None:
            logger.debug("uploads.reference_not_found", kind=self.kind, code=key)
        return found

    @property
    def cached(self) -> int:
        return len(self._cache)


def _customer_resolver() -> ReferenceResolver:
    return ReferenceResolver("customer", TableCodeLookup(Customer.id, Customer.customer_code))


def _product_resolver() -> ReferenceResolver:
    return ReferenceResolver("product", TableCodeLookup(Product.id, Product.product_code))


def _category_resolver() -> ReferenceResolver:
    return ReferenceResolver(
        "category",
        TableCodeLookup(Category.id, Category.category_code),
        upper_case=True,
    )


@dataclass
class RunContext:
    """Mutable state owned by one ingestion run.

    Created when a job starts and discarded when it ends; never shared
    between jobs.

    Attributes:
        job_id: Upload job being processed.
        customers: Customer code resolver.
        products: Product code resolver.
        categories: Category code resolver (codes upper-cased).
        row_offset: Last row number handed out; continuous across batches.
    """

    job_id: str
    customers: ReferenceResolver = field(default_factory=_customer_resolver)
    products: ReferenceResolver = field(default_factory=_product_resolver)
    categories: ReferenceResolver = field(default_factory=_category_resolver)
    row_offset: int = 0

    def next_row_number(self) -> int:
        """Advance and return the 1-based row number."""
        self.row_offset += 1
        return self.row_offset
