"""Tests for streaming CSV/JSON decoders."""

import io
import json

import pytest

from app.core.exceptions import FormatError
from app.features.uploads.decoders import BatchStream, decode_stream
from app.features.uploads.models import FileFormat
from app.features.uploads.rows import CustomerRow, OrderRow, ProductRow

CUSTOMER_HEADER = "customerCode,firstName,lastName,email"


def _csv(*lines: str) -> io.BytesIO:
    return io.BytesIO(("\n".join(lines) + "\n").encode("utf-8"))


def _json(payload: object) -> io.BytesIO:
    return io.BytesIO(json.dumps(payload).encode("utf-8"))


def _customers(n: int) -> list[str]:
    return [f"C{i},First{i},Last{i},c{i}@example.com" for i in range(1, n + 1)]


class TestBatchStream:
    """Tests for batch boundaries."""

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValueError, match="batch_size"):
            BatchStream(iter([]), 0)

    def test_exactly_n_rows_yield_one_batch(self):
        stream = decode_stream(_csv(CUSTOMER_HEADER, *_customers(3)), FileFormat.CSV, CustomerRow, 3)

        batches = list(stream)

        assert [len(b) for b in batches] == [3]
        assert stream.total_rows == 3
        assert stream.exhausted

    def test_n_plus_one_rows_yield_full_and_single_batch(self):
        stream = decode_stream(_csv(CUSTOMER_HEADER, *_customers(4)), FileFormat.CSV, CustomerRow, 3)

        batches = list(stream)

        assert [len(b) for b in batches] == [3, 1]
        assert stream.total_rows == 4

    def test_zero_rows_yield_no_batches(self):
        stream = decode_stream(_csv(CUSTOMER_HEADER), FileFormat.CSV, CustomerRow, 10)

        assert list(stream) == []
        assert stream.total_rows == 0

    def test_stream_is_not_restartable(self):
        stream = decode_stream(_csv(CUSTOMER_HEADER, *_customers(2)), FileFormat.CSV, CustomerRow, 5)

        assert len(list(stream)) == 1
        assert list(stream) == []

    def test_decoding_is_lazy(self):
        """Malformed input is only detected when batches are pulled."""
        stream = decode_stream(io.BytesIO(b"42"), FileFormat.JSON, CustomerRow, 5)

        with pytest.raises(FormatError):
            next(stream)


class TestCsvDecoder:
    """Tests for the CSV variant."""

    def test_decodes_columns_by_header_name(self):
        data = _csv("email,customerCode,firstName,lastName", "a@x.com,C1,Ann,Lee")

        [batch] = list(decode_stream(data, FileFormat.CSV, CustomerRow, 10))

        row = batch[0]
        assert row.customer_code == "C1"
        assert row.first_name == "Ann"
        assert row.email == "a@x.com"

    def test_missing_columns_decode_as_none(self):
        [batch] = list(decode_stream(_csv(CUSTOMER_HEADER, "C1,Ann,Lee,a@x.com"), FileFormat.CSV, CustomerRow, 10))

        assert batch[0].phone is None
        assert batch[0].loyalty_points is None

    def test_cells_are_trimmed_and_blank_lines_skipped(self):
        data = _csv(CUSTOMER_HEADER, "", "  C1 , Ann ,Lee,  a@x.com ", "   ", "C2,Bo,Ray,b@x.com")

        [batch] = list(decode_stream(data, FileFormat.CSV, CustomerRow, 10))

        assert [r.customer_code for r in batch] == ["C1", "C2"]
        assert batch[0].first_name == "Ann"
        assert batch[0].email == "a@x.com"

    def test_empty_cell_is_empty_string(self):
        [batch] = list(decode_stream(_csv(CUSTOMER_HEADER, "C2,,Roe,jane@x.com"), FileFormat.CSV, CustomerRow, 10))

        assert batch[0].first_name == ""

    def test_short_record_leaves_trailing_columns_none(self):
        [batch] = list(decode_stream(_csv(CUSTOMER_HEADER, "C1,Ann"), FileFormat.CSV, CustomerRow, 10))

        assert batch[0].last_name is None
        assert batch[0].email is None

    def test_quoted_cells_with_commas(self):
        data = _csv(
            "productCode,productName,unitPrice,description",
            'P1,"Desk, oak","1,299.00","Line one"',
        )

        [batch] = list(decode_stream(data, FileFormat.CSV, ProductRow, 10))

        assert batch[0].product_name == "Desk, oak"
        assert batch[0].unit_price == "1,299.00"

    def test_byte_order_mark_is_ignored(self):
        data = io.BytesIO(("\ufeff" + CUSTOMER_HEADER + "\nC1,Ann,Lee,a@x.com\n").encode("utf-8"))

        [batch] = list(decode_stream(data, FileFormat.CSV, CustomerRow, 10))

        assert batch[0].customer_code == "C1"

    def test_invalid_utf8_raises_format_error(self):
        data = io.BytesIO(CUSTOMER_HEADER.encode() + b"\nC1,\xff\xfe,Lee,a@x.com\n")

        with pytest.raises(FormatError):
            list(decode_stream(data, FileFormat.CSV, CustomerRow, 10))

    def test_caller_stream_stays_open(self):
        data = _csv(CUSTOMER_HEADER, "C1,Ann,Lee,a@x.com")

        list(decode_stream(data, FileFormat.CSV, CustomerRow, 10))

        assert not data.closed


class TestJsonDecoder:
    """Tests for the JSON variant."""

    def test_bare_array(self):
        data = _json([{"customerCode": "C1", "firstName": "Ann"}, {"customerCode": "C2"}])

        [batch] = list(decode_stream(data, FileFormat.JSON, CustomerRow, 10))

        assert [r.customer_code for r in batch] == ["C1", "C2"]
        assert batch[1].first_name is None

    def test_wrapped_and_bare_arrays_decode_identically(self):
        record = {"customerCode": "C1", "firstName": "Ann", "lastName": "Lee", "email": "a@x.com"}

        wrapped = list(decode_stream(_json({"data": [record]}), FileFormat.JSON, CustomerRow, 10))
        bare = list(decode_stream(_json([record]), FileFormat.JSON, CustomerRow, 10))

        assert wrapped == bare

    def test_scalars_are_stringified(self):
        data = io.BytesIO(
            b'[{"productCode": "P1", "unitPrice": 19.90, "stockQuantity": 7, "isActive": false}]'
        )

        [batch] = list(decode_stream(data, FileFormat.JSON, ProductRow, 10))

        row = batch[0]
        assert row.unit_price == "19.90"
        assert row.stock_quantity == "7"
        assert row.is_active == "false"

    def test_null_values_decode_as_none(self):
        [batch] = list(decode_stream(_json([{"orderNumber": "O1", "notes": None}]), FileFormat.JSON, OrderRow, 10))

        assert batch[0].notes is None

    def test_unknown_keys_are_ignored(self):
        [batch] = list(decode_stream(_json([{"customerCode": "C1", "extra": "x"}]), FileFormat.JSON, CustomerRow, 10))

        assert batch[0].customer_code == "C1"

    def test_scalar_root_is_rejected(self):
        with pytest.raises(FormatError, match="must start with an object or array"):
            list(decode_stream(io.BytesIO(b'"hello"'), FileFormat.JSON, CustomerRow, 10))

    def test_object_root_without_array_is_rejected(self):
        with pytest.raises(FormatError, match="not an array"):
            list(decode_stream(_json({"data": {"customerCode": "C1"}}), FileFormat.JSON, CustomerRow, 10))

    def test_non_object_element_is_rejected(self):
        with pytest.raises(FormatError, match="not an object"):
            list(decode_stream(_json([{"customerCode": "C1"}, 5]), FileFormat.JSON, CustomerRow, 10))

    def test_nested_value_is_rejected(self):
        with pytest.raises(FormatError, match="Row 1"):
            list(decode_stream(_json([{"customerCode": {"id": 1}}]), FileFormat.JSON, CustomerRow, 10))

    def test_truncated_document_is_rejected(self):
        data = io.BytesIO(b'[{"customerCode": "C1"}, {"customerCode": "C')

        with pytest.raises(FormatError):
            list(decode_stream(data, FileFormat.JSON, CustomerRow, 10))

    def test_empty_array_yields_nothing(self):
        stream = decode_stream(_json({"data": []}), FileFormat.JSON, CustomerRow, 10)

        assert list(stream) == []
        assert stream.total_rows == 0

    def test_extra_root_member_is_rejected(self):
        data = io.BytesIO(b'{"data": [{"customerCode": "C1"}], "extra": 1}')

        with pytest.raises(FormatError, match="only the 'data' array"):
            list(decode_stream(data, FileFormat.JSON, CustomerRow, 10))

    def test_unclosed_root_object_is_rejected(self):
        data = io.BytesIO(b'{"data": [{"customerCode": "C1"}]')

        with pytest.raises(FormatError, match="expected '}' after records array"):
            list(decode_stream(data, FileFormat.JSON, CustomerRow, 10))

    def test_content_after_array_is_rejected(self):
        data = io.BytesIO(b'[{"customerCode": "C1"}] [{"customerCode": "C2"}]')

        with pytest.raises(FormatError, match="Unexpected content after JSON records"):
            list(decode_stream(data, FileFormat.JSON, CustomerRow, 10))

    def test_trailing_comma_is_rejected(self):
        with pytest.raises(FormatError, match="Row 2"):
            list(decode_stream(io.BytesIO(b'[{"customerCode": "C1"},]'), FileFormat.JSON, CustomerRow, 10))

    def test_trailing_whitespace_is_accepted(self):
        data = io.BytesIO(b'{"data": [{"customerCode": "C1"}]}\n\n  ')

        [batch] = list(decode_stream(data, FileFormat.JSON, CustomerRow, 10))

        assert batch[0].customer_code == "C1"

    def test_elements_spanning_read_chunks(self):
        """Objects larger than one read are reassembled across reads."""
        records = [{"customerCode": f"C{i}", "address": "x" * 50} for i in range(25)]

        stream = decode_stream(_json(records), FileFormat.JSON, CustomerRow, 10, read_chunk_bytes=7)
        batches = list(stream)

        assert [len(b) for b in batches] == [10, 10, 5]
        assert batches[2][-1].customer_code == "C24"
        assert stream.total_rows == 25

    def test_batches_are_emitted_before_input_ends(self):
        """A full batch is available even if later input is malformed."""
        data = io.BytesIO(b'[{"customerCode": "C1"}, {"customerCode": "C2"}, oops]')
        stream = decode_stream(data, FileFormat.JSON, CustomerRow, 2)

        first = next(stream)

        assert [r.customer_code for r in first] == ["C1", "C2"]
        with pytest.raises(FormatError):
            next(stream)
