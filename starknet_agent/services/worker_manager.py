"""
Worker manager.

Owns the queue manager and job processor of one process and is the entry
point for queuing file ingestion work.
"""
import logging
import uuid
from typing import List, Optional

from starknet_agent.domains.ingestion import FileIngestionJobData, FileProcessingOptions
from starknet_agent.domains.jobs import JobType, QueueMetrics
from starknet_agent.services.cache import RedisCacheService
from starknet_agent.services.job_processor import JobProcessor
from starknet_agent.services.jobs import JobsMetadataService
from starknet_agent.services.queue import QueueManager

logger = logging.getLogger(__name__)


class WorkerManager:
    """Starts, stops and feeds the ingestion workers."""

    def __init__(
        self,
        queue_manager: QueueManager,
        job_processor: JobProcessor,
        jobs_metadata_service: JobsMetadataService,
        cache_service: RedisCacheService,
        concurrency: int = 1,
    ):
        self.queue_manager = queue_manager
        self.job_processor = job_processor
        self.jobs_metadata = jobs_metadata_service
        self.cache = cache_service
        self.concurrency = concurrency
        self.is_running = False

    async def start(self) -> None:
        if self.is_running:
            logger.info("Worker manager is already running")
            return

        logger.info("Starting worker manager...")
        try:
            self.queue_manager.initialize()
            self.job_processor.start_processing(self.concurrency)
        except Exception as e:
            logger.error(f"Failed to start worker manager: {e}")
            await self.queue_manager.close()
            self.job_processor.is_processing_started = False
            raise

        self.is_running = True
        logger.info("Worker manager started successfully")

    async def stop(self) -> None:
        """Stop the workers. Calling it on a stopped manager does nothing."""
        if not self.is_running:
            logger.info("Worker manager is not running")
            return

        logger.info("Stopping worker manager...")
        await self.queue_manager.close()
        self.job_processor.is_processing_started = False
        self.is_running = False
        logger.info("Worker manager stopped successfully")

    async def drain(self) -> None:
        """Block until the queued ingestion work has finished."""
        if self.is_running:
            await self.queue_manager.drain()

    async def close(self) -> None:
        """Stop the workers and close the Redis connection."""
        await self.stop()
        await self.cache.close()

    async def enqueue_file_ingestion(
        self,
        agent_id: str,
        user_id: str,
        original_name: str,
        mime_type: str,
        content: bytes,
        options: Optional[FileProcessingOptions] = None,
        document_id: Optional[str] = None,
    ) -> str:
        """Queue a file for ingestion and return the job id."""
        if not self.is_running:
            raise RuntimeError("Worker manager is not running. Call start() first.")

        job_data = FileIngestionJobData(
            document_id=document_id or str(uuid.uuid4()),
            agent_id=agent_id,
            user_id=user_id,
            original_name=original_name,
            mime_type=mime_type,
            content=content,
            size=len(content),
            options=options or FileProcessingOptions(),
        )
        job_id = str(uuid.uuid4())

        self.jobs_metadata.create_job_metadata(
            job_id=job_id,
            agent_id=agent_id,
            user_id=user_id,
            job_type=JobType.FILE_INGESTION,
            payload={
                "document_id": job_data.document_id,
                "original_name": original_name,
                "mime_type": mime_type,
                "size": job_data.size,
            },
            max_retries=self.queue_manager.retry_config.max_retries,
        )
        await self.queue_manager.add_job(
            JobType.FILE_INGESTION.value,
            JobType.FILE_INGESTION.value,
            job_data.model_dump(),
            job_id=job_id,
        )
        logger.info(f"Queued file ingestion job {job_id} for {original_name}")
        return job_id

    def get_metrics(self) -> List[QueueMetrics]:
        return self.queue_manager.get_all_queue_metrics() if self.is_running else []

    def get_queue_metrics(self, queue_name: str) -> QueueMetrics:
        return self.queue_manager.get_queue_metrics(queue_name)

    def is_active(self) -> bool:
        return self.is_running
