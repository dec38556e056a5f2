"""
Domain models for background jobs and their results.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class JobType(str, Enum):
    FILE_INGESTION = "file-ingestion"


class JobStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


class ResultSource(str, Enum):
    CACHE = "cache"
    DATABASE = "database"
    QUEUE = "queue"


class ResultStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    PROCESSING = "processing"
    NOT_FOUND = "not_found"


class JobMetadata(BaseModel):
    """Job bookkeeping persisted in the jobs collection."""

    job_id: str = Field(..., description="Queue job identifier")
    type: JobType = JobType.FILE_INGESTION
    status: JobStatus = JobStatus.PENDING
    agent_id: str
    user_id: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    retry_count: int = 0
    max_retries: int = 3


class JobRetrievalResult(BaseModel):
    """Job result as returned to callers."""

    job_id: str
    agent_id: Optional[str] = None
    user_id: str
    status: ResultStatus
    data: Optional[Any] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))
    completed_at: Optional[datetime] = None
    source: ResultSource


class JobStatistics(BaseModel):
    total: int = 0
    pending: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    by_status: Dict[str, int] = Field(default_factory=dict)
    by_type: Dict[str, int] = Field(default_factory=dict)


class RetryConfig(BaseModel):
    """Retry schedule for failed jobs. Delays are in milliseconds."""

    max_retries: int = 3
    retry_delay: int = 1000
    backoff_multiplier: float = 2.0
    max_retry_delay: int = 30000

    def delay_for(self, attempt: int) -> float:
        """Return the delay in seconds before retry number ``attempt`` (1-based)."""
        delay = self.retry_delay * (self.backoff_multiplier ** max(attempt - 1, 0))
        return min(delay, self.max_retry_delay) / 1000


class QueueMetrics(BaseModel):
    queue_name: str
    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
    paused: bool = False
