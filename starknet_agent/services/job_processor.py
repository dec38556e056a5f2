"""
Queue job processors.

``FileIngestionProcessor`` turns a queued job into a worker call.
``JobProcessor`` wraps it with job status bookkeeping in the metadata store
and result caching.
"""
import logging
from datetime import datetime as dt
from datetime import timezone
from typing import Any, Dict, Optional

from starknet_agent.domains.errors import IngestionError
from starknet_agent.domains.ingestion import FileIngestionJobData
from starknet_agent.domains.jobs import (
    JobRetrievalResult,
    JobStatus,
    JobType,
    ResultSource,
    ResultStatus,
)
from starknet_agent.services.cache import RedisCacheService
from starknet_agent.services.file_ingestion import FileIngestionWorkerService
from starknet_agent.services.jobs import JobsMetadataService
from starknet_agent.services.queue import QueueJob, QueueManager

logger = logging.getLogger(__name__)


class FileIngestionProcessor:
    """Runs file ingestion jobs through the worker service."""

    def __init__(self, worker_service: FileIngestionWorkerService):
        self.worker_service = worker_service

    async def process(self, job: QueueJob) -> Dict[str, Any]:
        """Process a job, raising IngestionError when ingestion fails."""
        job_data = FileIngestionJobData.model_validate(job.payload)
        logger.info(
            f"Processing file ingestion for agent {job_data.agent_id}, "
            f"file: {job_data.original_name} ({job_data.size} bytes)"
        )

        job_result = await self.worker_service.process_file_ingestion_job(job_data)
        if not job_result.success:
            logger.error(
                f"File ingestion failed for {job_data.original_name}: {job_result.error}"
            )
            raise IngestionError(
                job_result.error or "File ingestion failed",
                retryable=job_result.retryable,
            )

        result = job_result.result
        logger.info(
            f"File ingestion completed for {job_data.original_name}: {result.chunks_count} chunks, "
            f"{result.embeddings_count} embeddings in {result.processing_time:.2f}s"
        )
        return {
            "success": True,
            "file_id": job_data.document_id,
            "agent_id": job_data.agent_id,
            "user_id": job_data.user_id,
            "original_name": job_data.original_name,
            "mime_type": result.mime_type,
            "size": job_data.size,
            "processed_at": dt.now(tz=timezone.utc).isoformat(),
            "chunks_count": result.chunks_count,
            "embeddings_count": result.embeddings_count,
            "processing_time": result.processing_time,
        }


class JobProcessor:
    """Consumes queued jobs and records their outcome."""

    def __init__(
        self,
        queue_manager: QueueManager,
        file_ingestion_processor: FileIngestionProcessor,
        cache_service: RedisCacheService,
        jobs_metadata_service: JobsMetadataService,
        result_ttl_ms: Optional[int] = None,
    ):
        self.queue_manager = queue_manager
        self.file_ingestion_processor = file_ingestion_processor
        self.cache = cache_service
        self.jobs_metadata = jobs_metadata_service
        self.result_ttl_ms = result_ttl_ms
        self.is_processing_started = False

    def start_processing(self, concurrency: int = 1) -> None:
        if self.is_processing_started:
            logger.info("Job processing is already started")
            return
        self.queue_manager.process(
            JobType.FILE_INGESTION.value,
            self.handle_file_ingestion_job,
            concurrency=concurrency,
        )
        self.is_processing_started = True
        logger.info(f"File ingestion processor started with concurrency: {concurrency}")

    async def handle_file_ingestion_job(self, job: QueueJob) -> Dict[str, Any]:
        self._update_metadata(
            job.id,
            status=JobStatus.ACTIVE,
            started_at=dt.now(tz=timezone.utc),
            retry_count=job.attempts_made,
        )
        try:
            result = await self.file_ingestion_processor.process(job)
        except Exception as e:
            logger.error(f"File ingestion job {job.id} failed: {e}")
            if job.can_retry(e):
                self._update_metadata(
                    job.id,
                    status=JobStatus.RETRYING,
                    error=str(e),
                    retry_count=job.attempts_made + 1,
                )
            else:
                await self._cache_result(job, ResultStatus.FAILED, error=str(e))
                self._update_metadata(
                    job.id,
                    status=JobStatus.FAILED,
                    error=str(e),
                    completed_at=dt.now(tz=timezone.utc),
                )
            raise

        logger.info(f"File ingestion job {job.id} completed successfully")
        await self._cache_result(job, ResultStatus.COMPLETED, data=result)
        self._update_metadata(
            job.id,
            status=JobStatus.COMPLETED,
            result=result,
            completed_at=dt.now(tz=timezone.utc),
        )
        return result

    async def _cache_result(
        self,
        job: QueueJob,
        status: ResultStatus,
        data: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        try:
            await self.cache.set_job_retrieval_result(
                job.id,
                JobRetrievalResult(
                    job_id=job.id,
                    agent_id=job.payload.get("agent_id"),
                    user_id=job.payload.get("user_id", ""),
                    status=status,
                    data=data,
                    error=error,
                    created_at=job.created_at,
                    completed_at=dt.now(tz=timezone.utc),
                    source=ResultSource.QUEUE,
                ),
                ttl_ms=self.result_ttl_ms,
            )
        except Exception as e:
            logger.error(f"Failed to cache result for job {job.id}: {e}")

    def _update_metadata(self, job_id: str, **fields) -> None:
        try:
            self.jobs_metadata.update_job_metadata(job_id, **fields)
        except Exception as e:
            logger.error(f"Failed to update metadata for job {job_id}: {e}")
