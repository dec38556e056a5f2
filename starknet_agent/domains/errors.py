"""
Error types raised across the Starknet Agent system.

``ServerError`` carries a stable error code looked up in ``ERROR_MESSAGES``;
the first three characters of the code select the status code reported to
callers. Ingestion errors carry a ``retryable`` flag read by the queue.
"""
from typing import Dict, Optional


ERROR_MESSAGES: Dict[str, str] = {
    # E01: resource not found
    "E01TA400": "Agent not found",
    "E01TA410": "Conversation not found",
    "E01TA420": "Message not found",
    "E01TA430": "Resource not found",
    # E02: database operations
    "E02TA100": "Database read operation failed",
    "E02TA110": "Agent already exists",
    "E02TA120": "Agent creation failed",
    "E02TA130": "Agent deletion failed",
    "E02TA140": "Agent conversation not found",
    "E02TA150": "Agent conversation creation failed",
    "E02TA160": "Agent conversation deletion failed",
    "E02TA200": "Agent operation failed",
    "E02TA300": "Agent deletion operation failed",
    # E03: agent execution
    "E03TA100": "Agent execution failed",
    "E03TA110": "Agent request processing failed",
    "E03TA120": "Agent response generation failed",
    "E03TA200": "Agent execution timed out",
    # E04: input validation
    "E04TA100": "Invalid agent configuration",
    "E04TA110": "Invalid conversation parameters",
    "E04TA120": "Invalid request format",
    # E05: data retrieval
    "E05TA100": "Failed to retrieve data",
    "E05TA110": "Failed to retrieve conversations",
    "E05TA120": "Failed to retrieve messages",
    "E05TA130": "Failed to retrieve agents",
    # E06: authorization
    "E06TA100": "Unauthorized access to agent",
    "E06TA110": "Unauthorized access to conversation",
    # E07: system
    "E07TA100": "Internal server error",
    "E07TA110": "Service unavailable",
    "E07TA120": "Metrics recording failed",
}

STATUS_BY_PREFIX: Dict[str, int] = {
    "E01": 404,
    "E02": 500,
    "E03": 500,
    "E04": 400,
    "E05": 500,
    "E06": 403,
    "E07": 500,
}


class ServerError(Exception):
    """Error identified by a stable code from ``ERROR_MESSAGES``."""

    def __init__(self, error_code: str, original_error: Optional[Exception] = None):
        self.error_code = error_code
        self.message = ERROR_MESSAGES.get(error_code, "Unknown error")
        self.status_code = STATUS_BY_PREFIX.get(error_code[:3], 500)
        self.original_error = original_error
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, object]:
        return {
            "status": "failure",
            "error_code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
        }


class IngestionError(Exception):
    """Failure while ingesting a file."""

    retryable = True

    def __init__(self, message: str, retryable: Optional[bool] = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class FileValidationError(IngestionError):
    retryable = False


class StorageLimitError(IngestionError):
    retryable = False


class JobNotFoundError(Exception):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class JobAccessDeniedError(Exception):
    def __init__(self, job_id: str, user_id: str):
        super().__init__(f"Access denied: job {job_id} does not belong to user {user_id}")
        self.job_id = job_id
        self.user_id = user_id


class JobNotCompletedError(Exception):
    def __init__(self, job_id: str, status: str):
        super().__init__(f"Job {job_id} is not completed yet (status: {status})")
        self.job_id = job_id
        self.status = status


class JobFailedError(Exception):
    def __init__(self, job_id: str, reason: Optional[str] = None):
        super().__init__(f"Job {job_id} failed: {reason or 'unknown error'}")
        self.job_id = job_id
        self.reason = reason


class UnknownJobStatusError(Exception):
    def __init__(self, job_id: str, status: str):
        super().__init__(f"Job {job_id} has unknown status: {status}")
        self.job_id = job_id
        self.status = status
