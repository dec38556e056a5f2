"""
Job metadata service.

Persists job bookkeeping in the MongoDB ``jobs`` collection and resolves job
results for callers, preferring the Redis cache over the database.
"""
import asyncio
import logging
from datetime import datetime as dt
from datetime import timedelta, timezone
from typing import Any, Dict, List, Optional

from starknet_agent.adapters.mongodb_adapter import MongoDBAdapter
from starknet_agent.domains.jobs import (
    JobMetadata,
    JobRetrievalResult,
    JobStatistics,
    JobStatus,
    JobType,
    ResultSource,
    ResultStatus,
)
from starknet_agent.services.cache import RedisCacheService
from starknet_agent.services.mutex import RedisMutexService

logger = logging.getLogger(__name__)

RESULT_MUTEX_TIMEOUT_MS = 60_000
RESULT_MUTEX_RETRY_DELAY_MS = 100
RESULT_MUTEX_MAX_RETRIES = 300

_IN_FLIGHT = {JobStatus.PENDING, JobStatus.ACTIVE, JobStatus.RETRYING}
_UPDATABLE_FIELDS = (
    "status",
    "result",
    "error",
    "started_at",
    "completed_at",
    "retry_count",
)


def _to_document(job: JobMetadata) -> Dict[str, Any]:
    doc = job.model_dump()
    doc["_id"] = job.job_id
    doc["type"] = job.type.value
    doc["status"] = job.status.value
    return doc


def _from_document(doc: Dict[str, Any]) -> JobMetadata:
    doc = {k: v for k, v in doc.items() if k != "_id"}
    return JobMetadata.model_validate(doc)


class JobsMetadataService:
    """Stores job metadata and answers job result queries."""

    def __init__(
        self,
        mongodb_adapter: MongoDBAdapter,
        cache_service: Optional[RedisCacheService] = None,
        mutex_service: Optional[RedisMutexService] = None,
        queue_manager: Optional[Any] = None,
        collection_name: str = "jobs",
    ):
        self.mongo = mongodb_adapter
        self.cache = cache_service
        self.mutex = mutex_service
        self.queue_manager = queue_manager
        self.collection = collection_name
        self._background_tasks = set()
        self._ensure_collection()

    def _ensure_collection(self) -> None:
        if not self.mongo.collection_exists(self.collection):
            self.mongo.create_collection(self.collection)
            logger.info(f"Created MongoDB collection: {self.collection}")
        self.mongo.create_index(self.collection, [("job_id", 1)], unique=True)
        self.mongo.create_index(self.collection, [("user_id", 1)])
        self.mongo.create_index(self.collection, [("status", 1)])
        self.mongo.create_index(self.collection, [("created_at", -1)])

    def create_job_metadata(
        self,
        job_id: str,
        agent_id: str,
        user_id: str,
        job_type: JobType = JobType.FILE_INGESTION,
        status: JobStatus = JobStatus.PENDING,
        payload: Optional[Dict[str, Any]] = None,
        max_retries: int = 3,
    ) -> JobMetadata:
        """Record a newly queued job.

        Raises:
            ValueError: If job_id, agent_id or user_id is missing
        """
        if not job_id:
            raise ValueError("job_id is required")
        if not agent_id:
            raise ValueError("agent_id is required")
        if not user_id:
            raise ValueError("user_id is required")

        now = dt.now(tz=timezone.utc)
        job = JobMetadata(
            job_id=job_id,
            type=job_type,
            status=status,
            agent_id=agent_id,
            user_id=user_id,
            payload=payload or {},
            created_at=now,
            updated_at=now,
            max_retries=max_retries,
        )
        try:
            self.mongo.insert_one(self.collection, _to_document(job))
        except Exception as e:
            logger.error(f"Failed to create job metadata for {job_id}: {e}")
            raise
        logger.debug(f"Created job metadata for job {job_id}")
        return job

    def update_job_metadata(self, job_id: str, **fields) -> Optional[JobMetadata]:
        """Update the mutable fields of a job. Returns None when the job is unknown."""
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update job fields: {sorted(unknown)}")

        update = {k: v for k, v in fields.items() if v is not None}
        if not update:
            return self.get_job_metadata(job_id)
        if isinstance(update.get("status"), JobStatus):
            update["status"] = update["status"].value
        update["updated_at"] = dt.now(tz=timezone.utc)

        if not self.mongo.update_one(self.collection, {"job_id": job_id}, {"$set": update}):
            logger.warning(f"Job metadata not found for job {job_id}")
            return None
        logger.debug(f"Updated job metadata for job {job_id}")
        return self.get_job_metadata(job_id)

    def get_job_metadata(self, job_id: str) -> Optional[JobMetadata]:
        doc = self.mongo.find_one(self.collection, {"job_id": job_id})
        return _from_document(doc) if doc else None

    def get_job_metadata_for_user(self, job_id: str, user_id: str) -> Optional[JobMetadata]:
        doc = self.mongo.find_one(self.collection, {"job_id": job_id, "user_id": user_id})
        return _from_document(doc) if doc else None

    def delete_job_metadata(self, job_id: str) -> bool:
        deleted = self.mongo.delete_one(self.collection, {"job_id": job_id})
        if deleted:
            logger.debug(f"Deleted job metadata for job {job_id}")
        else:
            logger.warning(f"Job metadata not found for deletion: {job_id}")
        return deleted

    def list_jobs(
        self,
        user_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
        limit: int = 50,
        skip: int = 0,
    ) -> List[JobMetadata]:
        """List jobs, newest first, matching every given filter."""
        query: Dict[str, Any] = {}
        if user_id:
            query["user_id"] = user_id
        if agent_id:
            query["agent_id"] = agent_id
        if status:
            query["status"] = JobStatus(status).value
        docs = self.mongo.find(
            self.collection, query, sort=[("created_at", -1)], limit=limit, skip=skip
        )
        return [_from_document(doc) for doc in docs]

    def get_job_statistics(self, user_id: Optional[str] = None) -> JobStatistics:
        pipeline = [
            {"$match": {"user_id": user_id} if user_id else {}},
            {
                "$group": {
                    "_id": {"status": "$status", "type": "$type"},
                    "count": {"$sum": 1},
                }
            },
        ]
        stats = JobStatistics()
        for group in self.mongo.aggregate(self.collection, pipeline):
            key = group["_id"] or {}
            status = key.get("status") or JobStatus.PENDING.value
            job_type = key.get("type") or JobType.FILE_INGESTION.value
            count = group["count"]
            stats.total += count
            stats.by_status[status] = stats.by_status.get(status, 0) + count
            stats.by_type[job_type] = stats.by_type.get(job_type, 0) + count

        stats.pending = stats.by_status.get(JobStatus.PENDING.value, 0)
        stats.active = stats.by_status.get(JobStatus.ACTIVE.value, 0)
        stats.completed = stats.by_status.get(JobStatus.COMPLETED.value, 0)
        stats.failed = stats.by_status.get(JobStatus.FAILED.value, 0)
        return stats

    def cleanup_expired_jobs(self, older_than: timedelta = timedelta(days=7)) -> int:
        """Delete finished jobs created before ``older_than`` ago."""
        cutoff = dt.now(tz=timezone.utc) - older_than
        deleted = self.mongo.delete_all(
            self.collection,
            {
                "status": {"$in": [JobStatus.COMPLETED.value, JobStatus.FAILED.value]},
                "created_at": {"$lt": cutoff},
            },
        )
        if deleted:
            logger.info(f"Cleaned up {deleted} expired jobs")
        return deleted

    async def get_job_retrieval_result(
        self, job_id: str, user_id: str
    ) -> JobRetrievalResult:
        """Resolve a job's result for its owner.

        Looks in the cache first, then (holding a per-job lock) in the cache
        again and the database. Jobs still queued or running report
        ``processing``; anything else reports ``not_found``.
        """
        try:
            cached = await self._from_cache(job_id, user_id)
            if cached:
                logger.debug(f"Result retrieved from cache for job {job_id}")
                return cached

            release = None
            if self.mutex:
                release = await self.mutex.acquire_job_mutex(
                    job_id,
                    timeout_ms=RESULT_MUTEX_TIMEOUT_MS,
                    retry_delay_ms=RESULT_MUTEX_RETRY_DELAY_MS,
                    max_retries=RESULT_MUTEX_MAX_RETRIES,
                )
            try:
                cached = await self._from_cache(job_id, user_id)
                if cached:
                    logger.debug(f"Result retrieved from cache (double-check) for job {job_id}")
                    return cached

                job = self.get_job_metadata_for_user(job_id, user_id)
                stored = self._from_database(job)
                if stored:
                    self._cache_in_background(job_id, stored)
                    logger.debug(f"Result retrieved from database for job {job_id}")
                    return stored

                queued = self._from_queue(job_id, user_id)
                if queued:
                    return queued

                if job and job.status in _IN_FLIGHT:
                    return JobRetrievalResult(
                        job_id=job_id,
                        agent_id=job.agent_id,
                        user_id=job.user_id,
                        status=ResultStatus.PROCESSING,
                        created_at=job.created_at,
                        source=ResultSource.DATABASE,
                    )

                return JobRetrievalResult(
                    job_id=job_id,
                    user_id=user_id,
                    status=ResultStatus.NOT_FOUND,
                    source=ResultSource.DATABASE,
                )
            finally:
                if release:
                    try:
                        await release()
                    except Exception as e:
                        logger.error(f"Failed to release mutex for job {job_id}: {e}")
        except Exception as e:
            logger.error(f"Failed to retrieve result for job {job_id}: {e}")
            return JobRetrievalResult(
                job_id=job_id,
                user_id=user_id,
                status=ResultStatus.FAILED,
                error=str(e),
                source=ResultSource.DATABASE,
            )

    async def _from_cache(self, job_id: str, user_id: str) -> Optional[JobRetrievalResult]:
        if not self.cache:
            return None
        cached = await self.cache.get_job_retrieval_result(job_id)
        if not cached or cached.user_id != user_id:
            return None
        return cached.model_copy(update={"source": ResultSource.CACHE})

    @staticmethod
    def _from_database(job: Optional[JobMetadata]) -> Optional[JobRetrievalResult]:
        if not job:
            return None
        if job.status == JobStatus.COMPLETED and job.result is not None:
            status = ResultStatus.COMPLETED
        elif job.status == JobStatus.FAILED:
            status = ResultStatus.FAILED
        else:
            return None
        return JobRetrievalResult(
            job_id=job.job_id,
            agent_id=job.agent_id,
            user_id=job.user_id,
            status=status,
            data=job.result,
            error=job.error,
            created_at=job.created_at,
            completed_at=job.completed_at,
            source=ResultSource.DATABASE,
        )

    def _from_queue(self, job_id: str, user_id: str) -> Optional[JobRetrievalResult]:
        if not self.queue_manager:
            return None
        queued = self.queue_manager.get_job(job_id)
        if not queued or queued.payload.get("user_id") != user_id:
            return None
        if queued.state not in ("waiting", "active", "delayed"):
            return None
        return JobRetrievalResult(
            job_id=job_id,
            agent_id=queued.payload.get("agent_id"),
            user_id=user_id,
            status=ResultStatus.PROCESSING,
            created_at=queued.created_at,
            source=ResultSource.QUEUE,
        )

    def _cache_in_background(self, job_id: str, result: JobRetrievalResult) -> None:
        if not self.cache:
            return

        async def write() -> None:
            try:
                await self.cache.set_job_retrieval_result(job_id, result)
            except Exception as e:
                logger.warning(f"Failed to cache result for job {job_id}: {e}")

        task = asyncio.create_task(write())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
