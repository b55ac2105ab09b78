"""Service layer for upload job tracking.

Persists the job lifecycle (PENDING -> PROCESSING -> terminal) and its row
counters. Every status change is validated against VALID_JOB_TRANSITIONS
and logged.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidJobTransitionError, NotFoundError
from app.core.logging import get_logger
from app.features.uploads.models import (
    ERROR_MESSAGE_MAX_LENGTH,
    VALID_JOB_TRANSITIONS,
    EntityType,
    FileFormat,
    JobStatus,
    UploadJob,
)
from app.features.uploads.schemas import JobListResponse, JobStatusResponse

logger = get_logger(__name__)


def progress_percent(processed_rows: int, total_rows: int) -> float:
    """Percentage of rows processed, rounded to 2 decimals (0 when total is 0)."""
    if total_rows <= 0:
        return 0.0
    return round(processed_rows * 100 / total_rows, 2)


def terminal_status(processed_rows: int, failed_rows: int) -> JobStatus:
    """Decide the terminal status from final counters.

    Returns:
        COMPLETED if nothing failed, FAILED if nothing succeeded,
        PARTIAL otherwise.
    """
    if failed_rows == 0:
        return JobStatus.COMPLETED
    if processed_rows == 0:
        return JobStatus.FAILED
    return JobStatus.PARTIAL


class UploadJobService:
    """Service for creating, advancing and reporting upload jobs."""

    async def create_job(
        self,
        db: AsyncSession,
        file_name: str,
        file_format: FileFormat,
        entity_type: EntityType,
    ) -> JobStatusResponse:
        """Create a PENDING job.

        Args:
            db: Database session.
            file_name: Original name of the uploaded file.
            file_format: Declared file format.
            entity_type: Kind of records in the file.

        Returns:
            Status view of the new job.
        """
        job = UploadJob(
            job_id=uuid.uuid4().hex,
            file_name=file_name,
            file_type=file_format.value,
            entity_type=entity_type.value,
            status=JobStatus.PENDING.value,
            total_rows=0,
            processed_rows=0,
            failed_rows=0,
        )
        db.add(job)
        await db.commit()
        await db.refresh(job)

        logger.info(
            "uploads.job_created",
            job_id=job.job_id,
            file_name=file_name,
            file_type=file_format.value,
            entity_type=entity_type.value,
        )
        return self._to_response(job)

    async def mark_processing(self, db: AsyncSession, job_id: str) -> None:
        """Move a job to PROCESSING and record its start time."""
        job = await self._get_job(db, job_id)
        self._transition(job, JobStatus.PROCESSING)
        job.started_at = datetime.now(UTC)
        await db.commit()

        logger.info("uploads.job_started", job_id=job_id)

    async def update_progress(
        self,
        db: AsyncSession,
        job_id: str,
        seen: int,
        succeeded: int,
        failed: int,
    ) -> None:
        """Publish provisional counters for a running job.

        Args:
            db: Database session.
            job_id: Unique job identifier.
            seen: Rows decoded so far.
            succeeded: Rows written so far.
            failed: Rows rejected so far.

        Raises:
            InvalidJobTransitionError: If the job is not PROCESSING.
            ValueError: If any counter would move backwards.
        """
        job = await self._get_job(db, job_id)
        if JobStatus(job.status) != JobStatus.PROCESSING:
            raise InvalidJobTransitionError(
                f"Cannot update progress of job in status '{job.status}'",
                details={"job_id": job_id, "status": job.status},
            )
        if seen < job.total_rows or succeeded < job.processed_rows or failed < job.failed_rows:
            raise ValueError(f"Progress counters for job {job_id} must not decrease")

        job.total_rows = seen
        job.processed_rows = succeeded
        job.failed_rows = failed
        await db.commit()

        logger.debug(
            "uploads.job_progress",
            job_id=job_id,
            total_rows=seen,
            processed_rows=succeeded,
            failed_rows=failed,
        )

    async def mark_completed(
        self,
        db: AsyncSession,
        job_id: str,
        total_rows: int,
        processed_rows: int,
        failed_rows: int,
    ) -> JobStatus:
        """Record final counters and the terminal status.

        Args:
            db: Database session.
            job_id: Unique job identifier.
            total_rows: Rows decoded from the whole input.
            processed_rows: Rows written to the store.
            failed_rows: Rows rejected.

        Returns:
            COMPLETED, FAILED or PARTIAL as decided by terminal_status().
        """
        job = await self._get_job(db, job_id)
        status = terminal_status(processed_rows, failed_rows)
        self._transition(job, status)
        job.total_rows = total_rows
        job.processed_rows = processed_rows
        job.failed_rows = failed_rows
        job.completed_at = datetime.now(UTC)
        await db.commit()

        logger.info(
            "uploads.job_completed",
            job_id=job_id,
            status=status.value,
            total_rows=total_rows,
            processed_rows=processed_rows,
            failed_rows=failed_rows,
        )
        return status

    async def mark_failed(self, db: AsyncSession, job_id: str, message: str) -> None:
        """Abort a job with an error message (truncated to the column size)."""
        job = await self._get_job(db, job_id)
        self._transition(job, JobStatus.FAILED)
        job.error_message = message[:ERROR_MESSAGE_MAX_LENGTH]
        job.completed_at = datetime.now(UTC)
        await db.commit()

        logger.error("uploads.job_failed", job_id=job_id, error=message)

    async def get_status(self, db: AsyncSession, job_id: str) -> JobStatusResponse | None:
        """Get job status by ID.

        Args:
            db: Database session.
            job_id: Unique job identifier.

        Returns:
            Status view or None if not found.
        """
        stmt = select(UploadJob).where(UploadJob.job_id == job_id)
        result = await db.execute(stmt)
        job = result.scalar_one_or_none()
        if job is None:
            return None
        return self._to_response(job)

    async def list_jobs(
        self,
        db: AsyncSession,
        page: int = 1,
        page_size: int = 20,
        status: JobStatus | None = None,
    ) -> JobListResponse:
        """List jobs with pagination and an optional status filter.

        Args:
            db: Database session.
            page: Page number (1-indexed).
            page_size: Number of jobs per page.
            status: Filter by status (optional).

        Returns:
            Paginated list of jobs, newest first.
        """
        stmt = select(UploadJob)
        if status is not None:
            stmt = stmt.where(UploadJob.status == status.value)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        count_result = await db.execute(count_stmt)
        total = count_result.scalar_one()

        offset = (page - 1) * page_size
        stmt = stmt.order_by(UploadJob.created_at.desc()).offset(offset).limit(page_size)
        result = await db.execute(stmt)
        jobs = result.scalars().all()

        return JobListResponse(
            jobs=[self._to_response(job) for job in jobs],
            total=total,
            page=page,
            page_size=page_size,
        )

    async def _get_job(self, db: AsyncSession, job_id: str) -> UploadJob:
        stmt = select(UploadJob).where(UploadJob.job_id == job_id)
        result = await db.execute(stmt)
        job = result.scalar_one_or_none()
        if job is None:
            raise NotFoundError(f"Upload job '{job_id}' not found", details={"job_id": job_id})
        return job

    def _transition(self, job: UploadJob, target: JobStatus) -> None:
        current = JobStatus(job.status)
        if target not in VALID_JOB_TRANSITIONS[current]:
            raise InvalidJobTransitionError(
                f"Cannot move job from '{current.value}' to '{target.value}'",
                details={"job_id": job.job_id, "from": current.value, "to": target.value},
            )
        job.status = target.value

    def _to_response(self, job: UploadJob) -> JobStatusResponse:
        """Convert ORM model to response schema.

        Args:
            job: UploadJob ORM model.

        Returns:
            Status view with progress_percent derived from the counters.
        """
        return JobStatusResponse(
            job_id=job.job_id,
            file_name=job.file_name,
            file_type=FileFormat(job.file_type),
            entity_type=EntityType(job.entity_type),
            status=JobStatus(job.status),
            total_rows=job.total_rows or 0,
            processed_rows=job.processed_rows or 0,
            failed_rows=job.failed_rows or 0,
            error_message=job.error_message,
            started_at=job.started_at,
            completed_at=job.completed_at,
            created_at=job.created_at,
            progress_percent=progress_percent(job.processed_rows or 0, job.total_rows or 0),
        )
