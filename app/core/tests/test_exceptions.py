"""Tests for the ingestion error hierarchy and problem handlers."""

import json
from unittest.mock import MagicMock

import pytest
from fastapi.exceptions import RequestValidationError

from app.core import exceptions
from app.core.exceptions import (
    DatabaseError,
    DataLoaderError,
    FormatError,
    StoreError,
    dataloader_exception_handler,
    validation_exception_handler,
)


def test_store_error_is_a_database_error_with_its_own_code():
    err = StoreError("Upsert of customer ('C1',) failed", details={"kind": "customer"})

    assert isinstance(err, DatabaseError)
    assert err.code == "STORE_ERROR"
    assert err.status_code == 500
    assert err.error_type_uri == "/errors/store"


def test_format_error_is_a_client_error():
    err = FormatError("JSON element 3 is not an object")

    assert isinstance(err, DataLoaderError)
    assert (err.code, err.status_code) == ("FORMAT_ERROR", 400)


def test_row_validation_is_not_an_exception_type():
    """Bad rows are counted on the job, never raised."""
    assert not hasattr(exceptions, "ValidationError")


@pytest.mark.asyncio
async def test_dataloader_handler_renders_problem():
    response = await dataloader_exception_handler(
        MagicMock(), FormatError("CSV input has no header row")
    )

    assert response.status_code == 400
    body = json.loads(response.body)
    assert body["code"] == "FORMAT_ERROR"
    assert body["detail"] == "CSV input has no header row"


@pytest.mark.asyncio
async def test_request_validation_handler_lists_fields():
    request = MagicMock()
    request.url.path = "/uploads/jobs"
    exc = RequestValidationError(
        [{"loc": ("query", "page_size"), "msg": "too large", "type": "less_than_equal"}]
    )

    response = await validation_exception_handler(request, exc)

    assert response.status_code == 422
    body = json.loads(response.body)
    assert body["type"] == "/errors/validation"
    assert body["errors"] == [
        {"field": "query.page_size", "message": "too large", "type": "less_than_equal"}
    ]
