"""Background ingestion: drive decoder -> processor -> job tracker for one job.

Jobs run detached from the submitting request on a bounded worker pool.
Inside a job everything is sequential: pull a batch, process it, publish
progress, repeat. Decoding runs in a worker thread so large files do not
block the event loop.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import IO, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.core.database import get_session_maker
from app.core.exceptions import DataLoaderError
from app.core.logging import get_logger, job_id_ctx
from app.features.uploads.decoders import BatchStream, decode_stream
from app.features.uploads.models import EntityType, FileFormat, JobStatus
from app.features.uploads.processors import get_processor
from app.features.uploads.resolver import RunContext
from app.features.uploads.service import UploadJobService
from app.features.uploads.upsert import BatchUpserter

logger = get_logger(__name__)


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, DataLoaderError):
        return exc.message
    return str(exc) or type(exc).__name__


class IngestionOrchestrator:
    """Runs one upload job end to end.

    Failures never propagate out of run(): they are recorded on the job
    (status FAILED) and logged. Chunks committed before a failure stay
    committed.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
        job_service: UploadJobService | None = None,
        upserter: BatchUpserter | None = None,
        batch_size: int | None = None,
        read_chunk_bytes: int | None = None,
    ) -> None:
        settings = get_settings()
        self._session_maker = session_maker or get_session_maker()
        self._jobs = job_service or UploadJobService()
        self._upserter = upserter or BatchUpserter()
        self.batch_size = batch_size or settings.ingest_batch_size
        self.read_chunk_bytes = read_chunk_bytes or settings.ingest_read_chunk_bytes

    async def run(
        self,
        job_id: str,
        path: Path,
        entity_type: EntityType,
        file_format: FileFormat,
    ) -> JobStatus:
        """Ingest a stored upload file.

        Args:
            job_id: PENDING job to drive.
            path: Temporary file holding the upload; removed when done.
            entity_type: Kind of records in the file.
            file_format: Declared file format.

        Returns:
            Terminal status the job ended in.
        """
        token = job_id_ctx.set(job_id)
        try:
            return await self._run(job_id, path, entity_type, file_format)
        except Exception as e:
            logger.error(
                "uploads.job_aborted",
                error=_error_message(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            await self._record_failure(job_id, _error_message(e))
            return JobStatus.FAILED
        finally:
            await asyncio.to_thread(path.unlink, missing_ok=True)
            logger.debug("uploads.temp_file_removed", path=str(path))
            job_id_ctx.reset(token)

    async def _run(
        self,
        job_id: str,
        path: Path,
        entity_type: EntityType,
        file_format: FileFormat,
    ) -> JobStatus:
        processor = get_processor(entity_type, self._upserter)
        ctx = RunContext(job_id=job_id)
        seen = succeeded = failed = 0

        async with self._session_maker() as job_db, self._session_maker() as data_db:
            await self._jobs.mark_processing(job_db, job_id)

            stream: IO[bytes] = await asyncio.to_thread(path.open, "rb")
            batches: BatchStream[Any] | None = None
            try:
                batches = decode_stream(
                    stream,
                    file_format,
                    processor.row_model,
                    self.batch_size,
                    read_chunk_bytes=self.read_chunk_bytes,
                )
                while True:
                    batch = await asyncio.to_thread(next, batches, None)
                    if batch is None:
                        break
                    result = await processor.process_batch(data_db, batch, ctx)
                    seen += len(batch)
                    succeeded += result.succeeded
                    failed += result.failed
                    await self._jobs.update_progress(job_db, job_id, seen, succeeded, failed)

                    logger.info(
                        "uploads.batch_processed",
                        batch_rows=len(batch),
                        batch_succeeded=result.succeeded,
                        batch_failed=result.failed,
                        seen=seen,
                    )
            finally:
                if batches is not None:
                    batches.close()
                await asyncio.to_thread(stream.close)

            logger.info(
                "uploads.stream_exhausted",
                total_rows=batches.total_rows,
                customer_lookups=ctx.customers.queries,
                product_lookups=ctx.products.queries,
                category_lookups=ctx.categories.queries,
            )
            return await self._jobs.mark_completed(
                job_db, job_id, batches.total_rows, succeeded, failed
            )

    async def _record_failure(self, job_id: str, message: str) -> None:
        try:
            async with self._session_maker() as db:
                await self._jobs.mark_failed(db, job_id, message)
        except Exception as e:
            # The job stays in its last persisted state
            logger.error(
                "uploads.job_failure_not_recorded",
                error=_error_message(e),
                error_type=type(e).__name__,
            )


class IngestionWorkerPool:
    """Bounded pool of background ingestion jobs.

    At most ``max_concurrent`` jobs run at once; further submissions wait on
    the semaphore. There is no cancellation: shutdown() waits for every
    submitted job to finish.
    """

    def __init__(
        self,
        orchestrator: IngestionOrchestrator | None = None,
        max_concurrent: int | None = None,
    ) -> None:
        self.max_concurrent = max_concurrent or get_settings().ingest_max_concurrent_jobs
        self._orchestrator = orchestrator or IngestionOrchestrator()
        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._tasks: set[asyncio.Task[JobStatus]] = set()
        self._active = 0
        self._closed = False

    def submit(
        self,
        job_id: str,
        path: Path,
        entity_type: EntityType,
        file_format: FileFormat,
    ) -> asyncio.Task[JobStatus]:
        """Schedule a job and return immediately.

        Raises:
            RuntimeError: If the pool has been shut down.
        """
        if self._closed:
            raise RuntimeError("Ingestion worker pool is shut down")

        task = asyncio.create_task(
            self._run(job_id, path, entity_type, file_format),
            name=f"upload-{job_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(
            "uploads.job_submitted",
            job_id=job_id,
            entity_type=entity_type.value,
            file_type=file_format.value,
            pending=len(self._tasks),
        )
        return task

    async def _run(
        self,
        job_id: str,
        path: Path,
        entity_type: EntityType,
        file_format: FileFormat,
    ) -> JobStatus:
        async with self._semaphore:
            self._active += 1
            try:
                return await self._orchestrator.run(job_id, path, entity_type, file_format)
            finally:
                self._active -= 1

    async def shutdown(self) -> None:
        """Stop accepting jobs and wait for in-flight ones to finish."""
        self._closed = True
        pending = list(self._tasks)
        logger.info("uploads.pool_draining", pending=len(pending))
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("uploads.pool_drained")

    def stats(self) -> dict[str, int]:
        """Current pool occupancy."""
        return {
            "max_concurrent": self.max_concurrent,
            "active": self._active,
            "queued": len(self._tasks) - self._active,
        }
