"""Chunked INSERT ... ON CONFLICT DO UPDATE execution against the store.

Statement templates are registered once per entity kind in
``UPSERT_STATEMENTS`` and checked against the table metadata at import time.
Each chunk is its own transaction: a failing chunk is rolled back and counted
failed, later chunks still run. Inserted and updated rows are reported
together as ``affected``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import PrimaryKeyConstraint, Table, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import Insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import StoreError
from app.core.logging import get_logger
from app.features.catalog.models import Customer, CustomerOrder, OrderItem, Product

logger = get_logger(__name__)


@dataclass(frozen=True)
class UpsertStatement:
    """Parameterized upsert for one entity kind.

    Attributes:
        kind: Registry key (e.g., "customer").
        table: Target table.
        natural_key: Conflict target columns; must carry a unique constraint.
        update_columns: Columns overwritten from the incoming row on conflict.
    """

    kind: str
    table: Table
    natural_key: tuple[str, ...]
    update_columns: tuple[str, ...]

    def validate(self) -> None:
        """Check the template against the table metadata.

        Raises:
            ValueError: If a column is unknown or the natural key has no
                unique constraint behind it.
        """
        columns = set(self.table.c.keys())
        unknown = [c for c in (*self.natural_key, *self.update_columns) if c not in columns]
        if unknown:
            raise ValueError(f"Upsert '{self.kind}' references unknown columns on {self.table.name}: {unknown}")
        overlap = set(self.natural_key) & set(self.update_columns)
        if overlap:
            raise ValueError(f"Upsert '{self.kind}' updates natural-key columns: {sorted(overlap)}")
        if set(self.natural_key) not in _unique_column_sets(self.table):
            raise ValueError(
                f"Upsert '{self.kind}' natural key {self.natural_key} is not unique on {self.table.name}"
            )

    def build(self, rows: Sequence[dict[str, Any]]) -> Insert:
        """Build the INSERT ... ON CONFLICT DO UPDATE statement for a chunk."""
        insert_stmt = pg_insert(self.table).values(list(rows))
        set_: dict[str, Any] = {c: insert_stmt.excluded[c] for c in self.update_columns}
        if "updated_at" in self.table.c:
            set_["updated_at"] = func.now()
        return insert_stmt.on_conflict_do_update(
            index_elements=list(self.natural_key),
            set_=set_,
        )

    def key_of(self, row: dict[str, Any]) -> tuple[Any, ...]:
        return tuple(row.get(c) for c in self.natural_key)


def _unique_column_sets(table: Table) -> list[set[str]]:
    unique_sets: list[set[str]] = []
    for constraint in table.constraints:
        if isinstance(constraint, (UniqueConstraint, PrimaryKeyConstraint)):
            unique_sets.append({c.name for c in constraint.columns})
    for index in table.indexes:
        if index.unique:
            unique_sets.append({c.name for c in index.columns})
    unique_sets.extend({c.name} for c in table.columns if c.unique)
    return unique_sets


def _register(*statements: UpsertStatement) -> dict[str, UpsertStatement]:
    registry: dict[str, UpsertStatement] = {}
    for statement in statements:
        statement.validate()
        if statement.kind in registry:
            raise ValueError(f"Duplicate upsert statement for '{statement.kind}'")
        registry[statement.kind] = statement
    return registry


UPSERT_STATEMENTS: dict[str, UpsertStatement] = _register(
    UpsertStatement(
        kind="customer",
        table=Customer.__table__,  # type: ignore[arg-type]
        natural_key=("customer_code",),
        update_columns=(
            "first_name",
            "last_name",
            "email",
            "phone",
            "date_of_birth",
            "country",
            "city",
            "address",
            "postal_code",
            "loyalty_points",
            "is_active",
        ),
    ),
    UpsertStatement(
        kind="product",
        table=Product.__table__,  # type: ignore[arg-type]
        natural_key=("product_code",),
        update_columns=(
            "product_name",
            "description",
            "category_id",
            "unit_price",
            "stock_quantity",
            "weight_kg",
            "brand",
            "sku",
            "is_active",
        ),
    ),
    UpsertStatement(
        kind="order",
        table=CustomerOrder.__table__,  # type: ignore[arg-type]
        natural_key=("order_number",),
        update_columns=("status", "total_amount"),
    ),
    UpsertStatement(
        kind="order_item",
        table=OrderItem.__table__,  # type: ignore[arg-type]
        natural_key=("order_id", "product_id"),
        update_columns=("quantity", "unit_price", "discount"),
    ),
)


@dataclass
class UpsertOutcome:
    """Result of a chunked upsert.

    Attributes:
        affected: Rows in chunks that committed (inserts and updates alike).
        failed: Rows in chunks that were rolled back.
        failed_chunks: Number of rolled-back chunks.
    """

    affected: int = 0
    failed: int = 0
    failed_chunks: int = 0


def _dedupe_last_wins(
    statement: UpsertStatement, rows: Sequence[dict[str, Any]]
) -> list[dict[str, Any]]:
    # One statement cannot touch the same conflict target twice
    by_key: dict[tuple[Any, ...], dict[str, Any]] = {}
    for row in rows:
        by_key[statement.key_of(row)] = row
    return list(by_key.values())


class BatchUpserter:
    """Executes registered upserts in independently committed chunks."""

    def __init__(
        self,
        chunk_size: int | None = None,
        statements: dict[str, UpsertStatement] | None = None,
    ) -> None:
        self.chunk_size = chunk_size or get_settings().ingest_upsert_chunk_size
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size}")
        self._statements = statements if statements is not None else UPSERT_STATEMENTS

    def statement(self, kind: str) -> UpsertStatement:
        try:
            return self._statements[kind]
        except KeyError:
            raise ValueError(f"No upsert statement registered for '{kind}'") from None

    async def upsert(
        self,
        db: AsyncSession,
        kind: str,
        rows: Sequence[dict[str, Any]],
        weights: Sequence[int] | None = None,
    ) -> UpsertOutcome:
        """Upsert rows of one entity kind in chunks.

        Args:
            db: Async database session; committed once per chunk.
            kind: Registered entity kind.
            rows: Column-value mappings, all with the same keys.
            weights: Input lines each row stands for, when rows were merged
                upstream. Counts in the outcome are summed from these.

        Returns:
            UpsertOutcome with affected and failed row counts.
        """
        statement = self.statement(kind)
        if weights is not None and len(weights) != len(rows):
            raise ValueError(f"Got {len(weights)} weights for {len(rows)} rows")
        outcome = UpsertOutcome()
        for start in range(0, len(rows), self.chunk_size):
            chunk = rows[start : start + self.chunk_size]
            lines = len(chunk)
            if weights is not None:
                lines = sum(weights[start : start + self.chunk_size])
            try:
                await self._execute_chunk(db, statement, chunk)
            except StoreError as e:
                outcome.failed += lines
                outcome.failed_chunks += 1
                logger.error(
                    "uploads.upsert_chunk_failed",
                    kind=kind,
                    chunk_start=start,
                    chunk_size=len(chunk),
                    error=e.message,
                )
                continue
            outcome.affected += lines

        logger.debug(
            "uploads.upsert_completed",
            kind=kind,
            affected=outcome.affected,
            failed=outcome.failed,
            failed_chunks=outcome.failed_chunks,
        )
        return outcome

    async def upsert_returning_id(
        self,
        db: AsyncSession,
        kind: str,
        row: dict[str, Any],
    ) -> int:
        """Upsert a single row and return its surrogate id.

        Raises:
            StoreError: If the statement fails; the transaction is rolled back.
        """
        statement = self.statement(kind)
        stmt = statement.build([row]).returning(statement.table.c.id)
        try:
            result = await db.execute(stmt)
            row_id: int = result.scalar_one()
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            raise StoreError(
                f"Upsert of {kind} {statement.key_of(row)} failed: {e}",
                details={"kind": kind},
            ) from e
        return row_id

    async def _execute_chunk(
        self,
        db: AsyncSession,
        statement: UpsertStatement,
        chunk: Sequence[dict[str, Any]],
    ) -> None:
        try:
            await db.execute(statement.build(_dedupe_last_wins(statement, chunk)))
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            raise StoreError(
                f"Upsert chunk of {len(chunk)} {statement.kind} row(s) failed: {e}",
                details={"kind": statement.kind, "rows": len(chunk)},
            ) from e
