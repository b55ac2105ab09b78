"""Tests for the ingestion orchestrator and worker pool."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.exceptions import NotFoundError
from app.features.uploads.models import EntityType, FileFormat, JobStatus
from app.features.uploads.orchestrator import IngestionOrchestrator, IngestionWorkerPool
from app.features.uploads.service import UploadJobService, terminal_status

JOB_ID = "c" * 32

CUSTOMERS_CSV = """customerCode,firstName,lastName,email
C1,Ann,Lee,ann@example.com
C2,,Roe,jane@example.com
C3,Bo,Ray,bo@example.com
"""


@pytest.fixture
def session_maker(mock_session):
    """Session maker whose sessions are all `mock_session`."""
    maker = MagicMock()
    maker.return_value.__aenter__.return_value = mock_session
    maker.return_value.__aexit__.return_value = False
    return maker


@pytest.fixture
def job_service():
    """Job service mock deciding terminal status from the counters."""
    service = AsyncMock(spec=UploadJobService)
    service.mark_completed.side_effect = lambda db, job_id, total, processed, failed: terminal_status(
        processed, failed
    )
    return service


@pytest.fixture
def orchestrator(session_maker, job_service, mock_upserter):
    return IngestionOrchestrator(
        session_maker=session_maker,
        job_service=job_service,
        upserter=mock_upserter,
        batch_size=2,
        read_chunk_bytes=16,
    )


class TestIngestionOrchestrator:
    @pytest.mark.asyncio
    async def test_partial_csv_job(self, orchestrator, job_service, mock_upserter, tmp_path):
        path = tmp_path / "customers.csv"
        path.write_text(CUSTOMERS_CSV)

        status = await orchestrator.run(JOB_ID, path, EntityType.CUSTOMERS, FileFormat.CSV)

        assert status == JobStatus.PARTIAL
        job_service.mark_processing.assert_awaited_once()
        progress = [c.args[1:] for c in job_service.update_progress.await_args_list]
        assert progress == [(JOB_ID, 2, 1, 1), (JOB_ID, 3, 2, 1)]
        assert job_service.mark_completed.await_args.args[1:] == (JOB_ID, 3, 2, 1)
        assert [r["customer_code"] for r in mock_upserter.rows_for("customer")] == ["C1", "C3"]
        job_service.mark_failed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_completed_json_job(self, orchestrator, job_service, tmp_path):
        path = tmp_path / "products.json"
        path.write_text(
            '{"data": [{"productCode": "P1", "productName": "Desk", "unitPrice": 120.5},'
            ' {"productCode": "P2", "productName": "Lamp", "unitPrice": "15"}]}'
        )

        status = await orchestrator.run(JOB_ID, path, EntityType.PRODUCTS, FileFormat.JSON)

        assert status == JobStatus.COMPLETED
        assert job_service.mark_completed.await_args.args[1:] == (JOB_ID, 2, 2, 0)

    @pytest.mark.asyncio
    async def test_empty_file_completes_with_zero_rows(self, orchestrator, job_service, tmp_path):
        path = tmp_path / "customers.csv"
        path.write_text("customerCode,firstName,lastName,email\n")

        status = await orchestrator.run(JOB_ID, path, EntityType.CUSTOMERS, FileFormat.CSV)

        assert status == JobStatus.COMPLETED
        job_service.update_progress.assert_not_awaited()
        assert job_service.mark_completed.await_args.args[1:] == (JOB_ID, 0, 0, 0)

    @pytest.mark.asyncio
    async def test_all_rows_invalid_fails_job(self, orchestrator, tmp_path):
        path = tmp_path / "customers.csv"
        path.write_text("customerCode,firstName\nC1,\nC2,\n")

        status = await orchestrator.run(JOB_ID, path, EntityType.CUSTOMERS, FileFormat.CSV)

        assert status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_malformed_input_marks_job_failed(self, orchestrator, job_service, tmp_path):
        path = tmp_path / "orders.json"
        path.write_text('"not records"')

        status = await orchestrator.run(JOB_ID, path, EntityType.ORDERS, FileFormat.JSON)

        assert status == JobStatus.FAILED
        job_service.mark_completed.assert_not_awaited()
        message = job_service.mark_failed.await_args.args[2]
        assert message == "JSON must start with an object or array"

    @pytest.mark.asyncio
    async def test_batches_before_failure_stay_counted(self, orchestrator, job_service, tmp_path):
        path = tmp_path / "customers.json"
        path.write_text(
            '[{"customerCode": "C1", "firstName": "A", "lastName": "B", "email": "a@x.io"},'
            ' {"customerCode": "C2", "firstName": "A", "lastName": "B", "email": "b@x.io"},'
            " 42]"
        )

        status = await orchestrator.run(JOB_ID, path, EntityType.CUSTOMERS, FileFormat.JSON)

        assert status == JobStatus.FAILED
        job_service.update_progress.assert_awaited_once()
        assert "Row 3" in job_service.mark_failed.await_args.args[2]

    @pytest.mark.asyncio
    async def test_temp_file_removed(self, orchestrator, tmp_path):
        path = tmp_path / "customers.csv"
        path.write_text(CUSTOMERS_CSV)

        await orchestrator.run(JOB_ID, path, EntityType.CUSTOMERS, FileFormat.CSV)

        assert not path.exists()

    @pytest.mark.asyncio
    async def test_temp_file_removed_after_failure(self, orchestrator, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{")

        await orchestrator.run(JOB_ID, path, EntityType.CUSTOMERS, FileFormat.JSON)

        assert not path.exists()

    @pytest.mark.asyncio
    async def test_failure_recording_errors_are_contained(self, orchestrator, job_service, tmp_path):
        job_service.mark_processing.side_effect = NotFoundError("gone")
        job_service.mark_failed.side_effect = NotFoundError("gone")
        path = tmp_path / "customers.csv"
        path.write_text(CUSTOMERS_CSV)

        status = await orchestrator.run(JOB_ID, path, EntityType.CUSTOMERS, FileFormat.CSV)

        assert status == JobStatus.FAILED
        assert not path.exists()


class _GatedOrchestrator:
    """Orchestrator stand-in that blocks until released."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.running = 0
        self.peak = 0
        self.started: list[str] = []

    async def run(self, job_id, path, entity_type, file_format) -> JobStatus:
        self.started.append(job_id)
        self.running += 1
        self.peak = max(self.peak, self.running)
        try:
            await self.release.wait()
        finally:
            self.running -= 1
        return JobStatus.COMPLETED


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class TestIngestionWorkerPool:
    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, tmp_path):
        gated = _GatedOrchestrator()
        pool = IngestionWorkerPool(orchestrator=gated, max_concurrent=2)

        tasks = [
            pool.submit(f"{i:032x}", tmp_path / f"{i}.csv", EntityType.CUSTOMERS, FileFormat.CSV)
            for i in range(5)
        ]
        await _settle()

        assert gated.running == 2
        assert pool.stats() == {"max_concurrent": 2, "active": 2, "queued": 3}

        gated.release.set()
        await pool.shutdown()

        assert gated.peak == 2
        assert [t.result() for t in tasks] == [JobStatus.COMPLETED] * 5
        assert pool.stats()["active"] == 0

    @pytest.mark.asyncio
    async def test_submit_returns_before_job_runs(self, tmp_path):
        gated = _GatedOrchestrator()
        pool = IngestionWorkerPool(orchestrator=gated, max_concurrent=1)

        task = pool.submit(JOB_ID, tmp_path / "a.csv", EntityType.ORDERS, FileFormat.CSV)

        assert not task.done()
        assert gated.started == []

        gated.release.set()
        await pool.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_running_jobs(self, tmp_path):
        gated = _GatedOrchestrator()
        pool = IngestionWorkerPool(orchestrator=gated, max_concurrent=1)
        task = pool.submit(JOB_ID, tmp_path / "a.csv", EntityType.ORDERS, FileFormat.CSV)
        await _settle()

        shutdown = asyncio.create_task(pool.shutdown())
        await _settle()
        assert not shutdown.done()

        gated.release.set()
        await shutdown
        assert task.done()

    @pytest.mark.asyncio
    async def test_submit_after_shutdown_rejected(self, tmp_path):
        pool = IngestionWorkerPool(orchestrator=_GatedOrchestrator(), max_concurrent=1)
        await pool.shutdown()

        with pytest.raises(RuntimeError, match="shut down"):
            pool.submit(JOB_ID, tmp_path / "a.csv", EntityType.ORDERS, FileFormat.CSV)
