"""API routes for bulk uploads.

Submitting a file stores it under the upload directory, creates a PENDING
job and hands it to the worker pool. The response is 202 Accepted with the
job view; callers poll GET /uploads/jobs/{job_id} for progress.
"""

import asyncio
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db
from app.core.exceptions import BadRequestError, NotFoundError
from app.core.logging import get_logger
from app.features.uploads.models import EntityType, FileFormat, JobStatus
from app.features.uploads.orchestrator import IngestionWorkerPool
from app.features.uploads.schemas import JobListResponse, JobStatusResponse
from app.features.uploads.service import UploadJobService

logger = get_logger(__name__)

router = APIRouter(prefix="/uploads", tags=["uploads"])


def get_worker_pool(request: Request) -> IngestionWorkerPool:
    """Worker pool created by the application lifespan."""
    pool: IngestionWorkerPool = request.app.state.upload_pool
    return pool


def _safe_file_name(file: UploadFile) -> str:
    name = Path(file.filename or "").name.strip()
    if not name:
        raise BadRequestError("No file provided")
    return name


async def _store_upload(file: UploadFile, destination: Path, chunk_bytes: int) -> int:
    """Copy an upload to disk in chunks.

    Returns:
        Number of bytes written.
    """
    await asyncio.to_thread(destination.parent.mkdir, parents=True, exist_ok=True)
    written = 0
    out = await asyncio.to_thread(destination.open, "wb")
    try:
        while chunk := await file.read(chunk_bytes):
            await asyncio.to_thread(out.write, chunk)
            written += len(chunk)
    finally:
        await asyncio.to_thread(out.close)
    return written


async def _submit_upload(
    file: UploadFile,
    entity_type: EntityType,
    file_format: FileFormat,
    db: AsyncSession,
    pool: IngestionWorkerPool,
) -> JobStatusResponse:
    settings = get_settings()
    file_name = _safe_file_name(file)
    if file.size == 0:
        raise BadRequestError("File is empty", details={"file_name": file_name})

    service = UploadJobService()
    job = await service.create_job(db, file_name, file_format, entity_type)
    destination = Path(settings.ingest_upload_dir) / f"{job.job_id}_{file_name}"

    try:
        written = await _store_upload(file, destination, settings.ingest_read_chunk_bytes)
    except OSError as e:
        await asyncio.to_thread(destination.unlink, missing_ok=True)
        await service.mark_failed(db, job.job_id, f"Could not store upload: {e}")
        raise BadRequestError("Uploaded file could not be read") from e
    finally:
        await file.close()

    if written == 0:
        await asyncio.to_thread(destination.unlink, missing_ok=True)
        await service.mark_failed(db, job.job_id, "File is empty")
        raise BadRequestError("File is empty", details={"file_name": file_name})

    pool.submit(job.job_id, destination, entity_type, file_format)
    logger.info(
        "uploads.upload_accepted",
        job_id=job.job_id,
        file_name=file_name,
        bytes=written,
    )
    return job


# =============================================================================
# Submission
# =============================================================================


@router.post(
    "/csv",
    response_model=JobStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Upload a CSV file",
    description="""
Upload a CSV file of customers, products or orders for background ingestion.

The first line must be a header naming the columns (e.g. `customerCode,firstName,lastName,email`).
Rows that fail validation are counted in `failed_rows`; they do not abort the job.

**Error Handling**:
- Returns 400 if no file is provided or the file is empty
- Returns 422 if `entity_type` is not CUSTOMERS, PRODUCTS or ORDERS
""",
)
async def upload_csv(
    file: UploadFile = File(..., description="CSV file with a header row"),
    entity_type: EntityType = Form(..., description="CUSTOMERS, PRODUCTS or ORDERS"),
    db: AsyncSession = Depends(get_db),
    pool: IngestionWorkerPool = Depends(get_worker_pool),
) -> JobStatusResponse:
    """Accept a CSV upload and queue it for ingestion.

    Args:
        file: Uploaded CSV file.
        entity_type: Kind of records in the file.
        db: Database session.
        pool: Background worker pool.

    Returns:
        PENDING job view.
    """
    return await _submit_upload(file, entity_type, FileFormat.CSV, db, pool)


@router.post(
    "/json",
    response_model=JobStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Upload a JSON file",
    description="""
Upload a JSON file for background ingestion.

Accepted shapes: a top-level array of objects (`[{...}, ...]`) or an object
wrapping the array (`{"data": [{...}, ...]}`).

**Error Handling**:
- Returns 400 if no file is provided or the file is empty
- Returns 422 if `entity_type` is not CUSTOMERS, PRODUCTS or ORDERS
""",
)
async def upload_json(
    file: UploadFile = File(..., description="JSON file"),
    entity_type: EntityType = Form(..., description="CUSTOMERS, PRODUCTS or ORDERS"),
    db: AsyncSession = Depends(get_db),
    pool: IngestionWorkerPool = Depends(get_worker_pool),
) -> JobStatusResponse:
    """Accept a JSON upload and queue it for ingestion."""
    return await _submit_upload(file, entity_type, FileFormat.JSON, db, pool)


# =============================================================================
# Job Status
# =============================================================================


@router.get(
    "/jobs",
    response_model=JobListResponse,
    summary="List upload jobs",
)
async def list_jobs(
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(20, ge=1, le=100, description="Jobs per page (max 100)"),
    status: JobStatus | None = Query(None, description="Filter by status"),
) -> JobListResponse:
    """List upload jobs, newest first."""
    service = UploadJobService()
    return await service.list_jobs(db=db, page=page, page_size=page_size, status=status)


@router.get(
    "/jobs/{job_id}",
    response_model=JobStatusResponse,
    summary="Get upload job status",
    description="""
Poll the status of an upload job.

`progress_percent` is `processed_rows * 100 / total_rows`; while the job is
PROCESSING, `total_rows` only counts rows decoded so far.

**Error Handling**:
- Returns 404 if job_id doesn't exist
""",
)
async def get_job_status(
    job_id: str,
    db: AsyncSession = Depends(get_db),
) -> JobStatusResponse:
    """Get job status by ID.

    Raises:
        NotFoundError: If the job does not exist.
    """
    service = UploadJobService()
    result = await service.get_status(db=db, job_id=job_id)
    if result is None:
        raise NotFoundError(
            f"Upload job not found: {job_id}. Use GET /uploads/jobs to list jobs.",
            details={"job_id": job_id},
        )
    return result
