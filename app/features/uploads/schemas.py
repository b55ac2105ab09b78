"""Pydantic schemas for upload job endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.features.uploads.models import EntityType, FileFormat, JobStatus

# =============================================================================
# Job Status Schemas
# =============================================================================


class JobStatusResponse(BaseModel):
    """Status view of a single upload job.

    Counters are provisional while the job is PROCESSING.
    """

    model_config = ConfigDict(from_attributes=True)

    job_id: str = Field(
        ...,
        description="Unique job identifier (32-char hex). Use for polling status.",
    )
    file_name: str = Field(..., description="Original name of the uploaded file.")
    file_type: FileFormat = Field(..., description="Declared file format: 'CSV' or 'JSON'.")
    entity_type: EntityType = Field(
        ...,
        description="Kind of records: 'CUSTOMERS', 'PRODUCTS' or 'ORDERS'.",
    )
    status: JobStatus = Field(
        ...,
        description="Current status: 'PENDING', 'PROCESSING', 'COMPLETED', 'FAILED' or 'PARTIAL'.",
    )
    total_rows: int = Field(0, ge=0, description="Rows decoded from the file so far.")
    processed_rows: int = Field(0, ge=0, description="Rows written to the store.")
    failed_rows: int = Field(0, ge=0, description="Rows rejected during processing.")
    error_message: str | None = Field(
        None,
        description="Error details if the job aborted with status='FAILED'.",
    )
    started_at: datetime | None = Field(
        None,
        description="When processing started. Null while pending.",
    )
    completed_at: datetime | None = Field(
        None,
        description="When the job reached a terminal status.",
    )
    created_at: datetime = Field(..., description="When the job was submitted.")
    progress_percent: float = Field(
        0.0,
        ge=0,
        description="processed_rows * 100 / total_rows, rounded to 2 decimals; 0 when total is 0.",
    )


# =============================================================================
# Job List Response
# =============================================================================


class JobListResponse(BaseModel):
    """Paginated list of upload jobs, newest first."""

    jobs: list[JobStatusResponse] = Field(
        ...,
        description="Jobs on the current page. Empty if no jobs match the filters.",
    )
    total: int = Field(..., ge=0, description="Total number of jobs matching the filters.")
    page: int = Field(..., ge=1, description="Current page number (1-indexed).")
    page_size: int = Field(..., ge=1, description="Number of jobs per page. Maximum is 100.")
