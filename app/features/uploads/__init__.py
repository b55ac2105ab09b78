"""Uploads module for asynchronous bulk ingestion of CSV/JSON files.

This module provides endpoints for submitting customer, product and order
files, and for polling the resulting upload jobs.
"""

from app.features.uploads.models import EntityType, FileFormat, JobStatus, UploadJob
from app.features.uploads.orchestrator import IngestionOrchestrator, IngestionWorkerPool
from app.features.uploads.routes import router
from app.features.uploads.schemas import JobListResponse, JobStatusResponse
from app.features.uploads.service import UploadJobService

__all__ = [
    "EntityType",
    "FileFormat",
    "IngestionOrchestrator",
    "IngestionWorkerPool",
    "JobListResponse",
    "JobStatus",
    "JobStatusResponse",
    "UploadJob",
    "UploadJobService",
    "router",
]
