"""Streaming decoders turning upload bytes into batches of flat rows.

CSV and JSON inputs are read forward once, in fixed-size chunks, and never
materialized whole. Rows are grouped into batches of exactly ``batch_size``
with one trailing partial batch; an empty input yields no batches.

JSON accepts either a top-level array or an object whose first member is the
array (``{"data": [...]}``). Elements are decoded one object at a time.
"""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Iterator
from decimal import Decimal
from itertools import islice
from typing import IO, Any, Generic, TypeVar

from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import FormatError
from app.core.logging import get_logger
from app.features.uploads.models import FileFormat
from app.features.uploads.rows import FlatRow

logger = get_logger(__name__)

RowT = TypeVar("RowT", bound=FlatRow)

DEFAULT_READ_CHUNK_BYTES = 64 * 1024

# Upper bound on one pending JSON element, keeps a malformed tail from
# being buffered without limit.
MAX_JSON_ELEMENT_CHARS = 16 * 1024 * 1024

_WHITESPACE = " \t\r\n"


class BatchStream(Generic[RowT]):
    """Finite, non-restartable iterator of row batches.

    Iterating pulls rows from the underlying decoder lazily. ``total_rows``
    counts rows emitted so far and is final once ``exhausted`` is True.
    """

    def __init__(self, rows: Iterator[RowT], batch_size: int) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._rows = rows
        self._batch_size = batch_size
        self._total_rows = 0
        self._exhausted = False

    @property
    def total_rows(self) -> int:
        return self._total_rows

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def __iter__(self) -> BatchStream[RowT]:
        return self

    def __next__(self) -> list[RowT]:
        if self._exhausted:
            raise StopIteration
        batch = list(islice(self._rows, self._batch_size))
        self._total_rows += len(batch)
        if len(batch) < self._batch_size:
            self.close()
        if not batch:
            raise StopIteration
        return batch

    def close(self) -> None:
        """Stop decoding and release the underlying reader."""
        self._exhausted = True
        close = getattr(self._rows, "close", None)
        if close is not None:
            close()


def decode_stream(
    stream: IO[bytes],
    file_format: FileFormat,
    row_model: type[RowT],
    batch_size: int,
    read_chunk_bytes: int = DEFAULT_READ_CHUNK_BYTES,
) -> BatchStream[RowT]:
    """Build a batch stream over a binary upload.

    Args:
        stream: Readable binary stream positioned at the start of the file.
        file_format: Declared format of the stream.
        row_model: Flat row shape to decode each record into.
        batch_size: Number of rows per emitted batch.
        read_chunk_bytes: Characters requested per read when scanning JSON.

    Returns:
        Lazy BatchStream; nothing is read until the first batch is pulled.

    Raises:
        ValueError: If batch_size is less than 1.
    """
    if file_format == FileFormat.CSV:
        rows = _iter_csv_rows(stream, row_model)
    elif file_format == FileFormat.JSON:
        rows = _iter_json_rows(stream, row_model, read_chunk_bytes)
    else:
        raise ValueError(f"Unsupported file format: {file_format}")
    return BatchStream(rows, batch_size)


def _build_row(row_model: type[RowT], values: dict[str, Any], row_number: int) -> RowT:
    try:
        return row_model.model_validate(values)
    except PydanticValidationError as e:
        raise FormatError(
            f"Row {row_number}: cannot decode record ({e.error_count()} invalid field(s))",
            details={"row": row_number, "errors": e.errors(include_url=False)},
        ) from e


def _open_text(stream: IO[bytes]) -> io.TextIOWrapper:
    # utf-8-sig tolerates a leading byte order mark
    return io.TextIOWrapper(stream, encoding="utf-8-sig", newline="")  # type: ignore[arg-type]


def _is_blank_record(record: list[str]) -> bool:
    return len(record) <= 1 and not "".join(record).strip()


def _iter_csv_rows(stream: IO[bytes], row_model: type[RowT]) -> Iterator[RowT]:
    text = _open_text(stream)
    header: list[str] | None = None
    row_number = 0
    try:
        for record in csv.reader(text):
            if _is_blank_record(record):
                continue
            if header is None:
                header = [name.strip() for name in record]
                logger.debug("uploads.csv_header_read", columns=header)
                continue
            row_number += 1
            values = {name: cell.strip() for name, cell in zip(header, record) if name}
            yield _build_row(row_model, values, row_number)
    except (csv.Error, UnicodeDecodeError, OSError) as e:
        raise FormatError(f"Unreadable CSV input near row {row_number + 1}: {e}") from e
    finally:
        text.detach()


class _JsonArrayScanner:
    """Forward-only reader over a JSON array of objects.

    Keeps a text buffer of at most one pending element plus one read chunk.
    """

    def __init__(self, text: io.TextIOWrapper, read_chars: int) -> None:
        self._text = text
        self._read_chars = read_chars
        self._decoder = json.JSONDecoder(parse_float=Decimal)
        self._buf = ""
        self._pos = 0
        self._eof = False

    def _fill(self) -> bool:
        if self._eof:
            return False
        chunk = self._text.read(self._read_chars)
        if not chunk:
            self._eof = True
            return False
        if self._pos:
            self._buf = self._buf[self._pos :]
            self._pos = 0
        self._buf += chunk
        return True

    def peek(self) -> str:
        """Skip whitespace and return the next character ('' at end of input)."""
        while True:
            while self._pos < len(self._buf) and self._buf[self._pos] in _WHITESPACE:
                self._pos += 1
            if self._pos < len(self._buf):
                return self._buf[self._pos]
            if not self._fill():
                return ""

    def advance(self) -> None:
        self._pos += 1

    def expect(self, char: str, context: str) -> None:
        found = self.peek()
        if found != char:
            raise FormatError(f"Malformed JSON: expected '{char}' {context}, found {found!r}")
        self.advance()

    def decode_value(self, context: str) -> Any:
        """Decode the next complete JSON value, reading more input as needed."""
        while True:
            try:
                value, end = self._decoder.raw_decode(self._buf, self._pos)
            except json.JSONDecodeError as e:
                if len(self._buf) - self._pos > MAX_JSON_ELEMENT_CHARS or not self._fill():
                    raise FormatError(f"Malformed JSON {context}: {e.msg}") from e
                continue
            self._pos = end
            return value


def _iter_json_rows(
    stream: IO[bytes],
    row_model: type[RowT],
    read_chunk_bytes: int,
) -> Iterator[RowT]:
    text = _open_text(stream)
    scanner = _JsonArrayScanner(text, read_chunk_bytes)
    row_number = 0
    key: str | None = None
    try:
        first = scanner.peek()
        if first == "{":
            scanner.advance()
            if scanner.peek() != '"':
                raise FormatError("JSON object root must wrap an array of records")
            key = scanner.decode_value("in root object key")
            scanner.expect(":", f"after key '{key}'")
            if scanner.peek() != "[":
                raise FormatError(f"JSON root member '{key}' is not an array")
            logger.debug("uploads.json_wrapper_found", key=key)
        elif first != "[":
            raise FormatError("JSON must start with an object or array")
        scanner.expect("[", "at start of records array")

        separator = scanner.peek()
        while separator != "]":
            row_number += 1
            if scanner.peek() != "{":
                raise FormatError(f"Row {row_number}: JSON array element is not an object")
            element = scanner.decode_value(f"at row {row_number}")
            yield _build_row(row_model, element, row_number)

            separator = scanner.peek()
            if separator == ",":
                scanner.advance()
            elif separator != "]":
                raise FormatError(
                    f"Malformed JSON after row {row_number}: expected ',' or ']', "
                    f"found {separator!r}"
                )
        scanner.advance()

        if key is not None:
            if scanner.peek() == ",":
                raise FormatError(f"JSON root object must hold only the '{key}' array")
            scanner.expect("}", "after records array")
        trailing = scanner.peek()
        if trailing:
            raise FormatError(f"Unexpected content after JSON records: {trailing!r}")
    except (UnicodeDecodeError, OSError) as e:
        raise FormatError(f"Unreadable JSON input near row {row_number}: {e}") from e
    finally:
        text.detach()
