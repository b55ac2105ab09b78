"""Feature-specific test fixtures for the uploads module."""

from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import StoreError
from app.features.uploads.models import EntityType, FileFormat, JobStatus, UploadJob
from app.features.uploads.resolver import ReferenceResolver, RunContext
from app.features.uploads.upsert import UpsertOutcome


class MockCodeLookup:
    """Code lookup backed by a dict, counting queries."""

    def __init__(self, ids: dict[str, int] | None = None, fail: bool = False) -> None:
        self._ids = ids or {}
        self._fail = fail
        self.calls: list[str] = []

    async def find_id_by_code(self, db: Any, code: str) -> int | None:
        self.calls.append(code)
        if self._fail:
            raise OperationalError("SELECT", {}, Exception("connection lost"))
        return self._ids.get(code)


class MockUpserter:
    """Stand-in for BatchUpserter recording every call.

    Args:
        fail_kinds: Entity kinds whose chunked upserts fail entirely.
        fail_header_for: Order numbers whose header upsert raises StoreError.
    """

    def __init__(
        self,
        fail_kinds: set[str] | None = None,
        fail_header_for: set[str] | None = None,
    ) -> None:
        self.calls: list[tuple[str, list[dict[str, Any]]]] = []
        self.headers: list[dict[str, Any]] = []
        self._fail_kinds = fail_kinds or set()
        self._fail_header_for = fail_header_for or set()
        self._next_id = 1000

    async def upsert(
        self,
        db: Any,
        kind: str,
        rows: list[dict[str, Any]],
        weights: list[int] | None = None,
    ) -> UpsertOutcome:
        self.calls.append((kind, list(rows)))
        lines = sum(weights) if weights is not None else len(rows)
        if kind in self._fail_kinds:
            return UpsertOutcome(affected=0, failed=lines, failed_chunks=1)
        return UpsertOutcome(affected=lines, failed=0)

    async def upsert_returning_id(self, db: Any, kind: str, row: dict[str, Any]) -> int:
        if row.get("order_number") in self._fail_header_for:
            raise StoreError("Upsert of order failed: value too long")
        self.headers.append(row)
        self._next_id += 1
        return self._next_id

    def rows_for(self, kind: str) -> list[dict[str, Any]]:
        return [row for call_kind, rows in self.calls if call_kind == kind for row in rows]


@pytest.fixture
def mock_session() -> AsyncMock:
    """Async session mock; execute/commit/rollback are awaitable."""
    return AsyncMock()


@pytest.fixture
def mock_upserter() -> MockUpserter:
    return MockUpserter()


@pytest.fixture
def upserter_factory() -> type[MockUpserter]:
    """MockUpserter class, for tests that need failure injection."""
    return MockUpserter


@pytest.fixture
def lookup_factory() -> type[MockCodeLookup]:
    """MockCodeLookup class, for building resolvers in tests."""
    return MockCodeLookup


@pytest.fixture
def run_context() -> RunContext:
    """Run context with in-memory code lookups."""
    return RunContext(
        job_id="a" * 32,
        customers=ReferenceResolver("customer", MockCodeLookup({"C1": 1, "C2": 2})),
        products=ReferenceResolver("product", MockCodeLookup({"P1": 11, "P2": 12, "P3": 13})),
        categories=ReferenceResolver(
            "category", MockCodeLookup({"ELEC": 21, "HOME": 22}), upper_case=True
        ),
    )


@pytest.fixture
def make_job():
    """Factory for UploadJob ORM instances in a given state."""

    def _make(status: JobStatus = JobStatus.PENDING, **overrides: Any) -> UploadJob:
        values: dict[str, Any] = {
            "id": 1,
            "job_id": "f" * 32,
            "file_name": "customers.csv",
            "file_type": FileFormat.CSV.value,
            "entity_type": EntityType.CUSTOMERS.value,
            "status": status.value,
            "total_rows": 0,
            "processed_rows": 0,
            "failed_rows": 0,
            "error_message": None,
            "started_at": None,
            "completed_at": None,
            "created_at": datetime(2024, 1, 15, 10, 0, tzinfo=UTC),
            "updated_at": datetime(2024, 1, 15, 10, 0, tzinfo=UTC),
        }
        values.update(overrides)
        return UploadJob(**values)

    return _make
