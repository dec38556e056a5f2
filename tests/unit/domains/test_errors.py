"""
Tests for the error taxonomy.
"""

import pytest

from starknet_agent.domains.errors import (
    FileValidationError,
    IngestionError,
    JobAccessDeniedError,
    JobFailedError,
    ServerError,
    StorageLimitError,
)


class TestServerError:
    @pytest.mark.parametrize(
        "code,status",
        [
            ("E01TA400", 404),
            ("E02TA100", 500),
            ("E03TA100", 500),
            ("E04TA100", 400),
            ("E05TA100", 500),
            ("E06TA100", 403),
            ("E07TA100", 500),
        ],
    )
    def test_status_from_prefix(self, code, status):
        error = ServerError(code)
        assert error.status_code == status
        assert error.error_code == code

    def test_known_message(self):
        error = ServerError("E01TA400")
        assert error.message == "Agent not found"
        assert str(error) == "Agent not found"

    def test_unknown_code(self):
        error = ServerError("E99XX000")
        assert error.message == "Unknown error"
        assert error.status_code == 500

    def test_to_dict_and_original_error(self):
        cause = RuntimeError("boom")
        error = ServerError("E04TA100", cause)
        assert error.original_error is cause
        assert error.to_dict() == {
            "status": "failure",
            "error_code": "E04TA100",
            "message": "Invalid agent configuration",
            "status_code": 400,
        }


class TestIngestionErrors:
    def test_retryable_defaults(self):
        assert IngestionError("x").retryable is True
        assert FileValidationError("x").retryable is False
        assert StorageLimitError("x").retryable is False

    def test_retryable_override(self):
        assert IngestionError("x", retryable=False).retryable is False
        assert FileValidationError("x", retryable=True).retryable is True

    def test_job_error_messages(self):
        assert "does not belong to user u1" in str(JobAccessDeniedError("j1", "u1"))
        assert str(JobFailedError("j1")) == "Job j1 failed: unknown error"
