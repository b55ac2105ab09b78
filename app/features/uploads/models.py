"""Upload job ORM model and lifecycle enums.

An upload job tracks one asynchronous ingestion run from submission to a
terminal state, together with its row counters.
"""

from __future__ import annotations

import datetime
from enum import Enum

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, TimestampMixin


class FileFormat(str, Enum):
    """Declared format of an uploaded file."""

    CSV = "CSV"
    JSON = "JSON"


class EntityType(str, Enum):
    """Kind of records an upload carries."""

    CUSTOMERS = "CUSTOMERS"
    PRODUCTS = "PRODUCTS"
    ORDERS = "ORDERS"


class JobStatus(str, Enum):
    """Upload job lifecycle states.

    State transitions:
    - PENDING -> PROCESSING -> COMPLETED | FAILED | PARTIAL
    - PENDING -> FAILED (the job could not be started)
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"


TERMINAL_STATUSES: frozenset[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.PARTIAL}
)

# Valid state transitions for upload job status
VALID_JOB_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.PARTIAL},
    JobStatus.COMPLETED: set(),  # Terminal state
    JobStatus.FAILED: set(),  # Terminal state
    JobStatus.PARTIAL: set(),  # Terminal state
}

ERROR_MESSAGE_MAX_LENGTH = 4000


class UploadJob(TimestampMixin, Base):
    """Upload job tracking model.

    Counters are provisional while PROCESSING: total_rows is only known once
    the input stream has been fully consumed.

    Attributes:
        id: Primary key.
        job_id: Unique external identifier (UUID hex, 32 chars).
        file_name: Original name of the uploaded file.
        file_type: Declared file format (CSV, JSON).
        entity_type: Kind of records (CUSTOMERS, PRODUCTS, ORDERS).
        status: Current lifecycle state.
        total_rows: Rows decoded from the input.
        processed_rows: Rows written to the store.
        failed_rows: Rows rejected by validation, resolution or the store.
        error_message: Error details if the job aborted.
        started_at: When processing started.
        completed_at: When the job reached a terminal state.
    """

    __tablename__ = "upload_job"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_id: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    file_name: Mapped[str] = mapped_column(String(255))
    file_type: Mapped[str] = mapped_column(String(10))
    entity_type: Mapped[str] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20), default=JobStatus.PENDING.value, index=True)

    # Counters
    total_rows: Mapped[int] = mapped_column(BigInteger, default=0)
    processed_rows: Mapped[int] = mapped_column(BigInteger, default=0)
    failed_rows: Mapped[int] = mapped_column(BigInteger, default=0)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timing
    started_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_upload_job_status_created", "status", "created_at"),
        CheckConstraint(
            "status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'PARTIAL')",
            name="ck_upload_job_valid_status",
        ),
        CheckConstraint("file_type IN ('CSV', 'JSON')", name="ck_upload_job_valid_file_type"),
        CheckConstraint(
            "entity_type IN ('CUSTOMERS', 'PRODUCTS', 'ORDERS')",
            name="ck_upload_job_valid_entity_type",
        ),
        CheckConstraint(
            "processed_rows >= 0 AND failed_rows >= 0 AND total_rows >= 0",
            name="ck_upload_job_counters_non_negative",
        ),
    )
