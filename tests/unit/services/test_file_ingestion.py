"""
Tests for the file ingestion worker service.
"""

import base64

import pytest
from unittest.mock import AsyncMock, MagicMock

from starknet_agent.domains.errors import IngestionError, StorageLimitError
from starknet_agent.domains.ingestion import FileIngestionJobData, FileProcessingOptions
from starknet_agent.services.chunking import MAX_CHUNKS, ChunkingService
from starknet_agent.services.file_ingestion import (
    FileIngestionWorkerService,
    decode_content,
    is_retryable_error,
)
from starknet_agent.services.file_validation import FileValidationService


@pytest.fixture
def embeddings():
    service = MagicMock()
    service.embed_documents = AsyncMock(side_effect=lambda texts: [[0.1, 0.2] for _ in texts])
    return service


@pytest.fixture
def vector_store():
    store = MagicMock()
    store.total_size_for_agent.return_value = 0
    store.total_size_for_user.return_value = 0
    store.upsert = AsyncMock()
    return store


@pytest.fixture
def mutex():
    service = MagicMock()
    service.release = AsyncMock()
    service.acquire_user_mutex = AsyncMock(return_value=service.release)
    return service


@pytest.fixture
def worker(embeddings, vector_store, mutex):
    return FileIngestionWorkerService(
        chunking_service=ChunkingService(),
        embeddings_service=embeddings,
        vector_store=vector_store,
        file_validation_service=FileValidationService(),
        mutex_service=mutex,
        rag_config={"max_agent_size": 1000, "max_process_size": 2000},
    )


def job_data(content=b"Starknet is a validity rollup.", **overrides):
    fields = {
        "document_id": "doc-1",
        "agent_id": "agent-1",
        "user_id": "user-1",
        "original_name": "notes.txt",
        "mime_type": "text/plain",
        "content": content,
        "size": len(content),
    }
    fields.update(overrides)
    return FileIngestionJobData(**fields)


def test_is_retryable_error():
    assert is_retryable_error(RuntimeError("timeout")) is True
    assert is_retryable_error(StorageLimitError("Agent rag storage limit exceeded")) is False
    assert is_retryable_error(IngestionError("x", retryable=False)) is False
    assert is_retryable_error(PermissionError("denied")) is False
    assert is_retryable_error(ValueError("process storage limit exceeded")) is False


def test_decode_content():
    assert decode_content(job_data(b"raw")) == b"raw"
    assert decode_content(job_data("text", size=4)) == b"text"
    encoded = base64.b64encode(b"binary").decode()
    data = job_data(
        encoded,
        size=6,
        options=FileProcessingOptions(content_encoding="base64"),
    )
    assert decode_content(data) == b"binary"


@pytest.mark.asyncio
async def test_successful_ingestion(worker, vector_store, mutex):
    result = await worker.process_file_ingestion_job(job_data())

    assert result.success is True
    assert result.result.chunks_count == 1
    assert result.result.embeddings_count == 1
    assert result.result.mime_type == "text/plain"
    assert mutex.acquire_user_mutex.call_args.args == ("user-1",)
    mutex.release.assert_awaited_once()

    agent_id, entries, user_id = vector_store.upsert.call_args.args
    assert (agent_id, user_id) == ("agent-1", "user-1")
    assert entries[0].id == "doc-1-0"
    assert entries[0].metadata["original_name"] == "notes.txt"
    assert entries[0].content == "Starknet is a validity rollup."


@pytest.mark.asyncio
async def test_storage_limit(worker, vector_store, mutex):
    vector_store.total_size_for_agent.return_value = 990
    result = await worker.process_file_ingestion_job(job_data())

    assert result.success is False
    assert result.error == "Agent rag storage limit exceeded"
    assert result.retryable is False
    vector_store.upsert.assert_not_called()
    mutex.release.assert_awaited_once()


@pytest.mark.asyncio
async def test_process_storage_limit(worker, vector_store):
    vector_store.total_size_for_user.return_value = 1990
    result = await worker.process_file_ingestion_job(job_data())
    assert result.error == "Process rag storage limit exceeded"


@pytest.mark.asyncio
async def test_invalid_file(worker, vector_store):
    result = await worker.process_file_ingestion_job(job_data(b"<?php system($x);"))
    assert result.success is False
    assert result.retryable is False
    assert "Suspicious" in result.error


@pytest.mark.asyncio
async def test_embedding_failure_is_retryable(worker, embeddings):
    embeddings.embed_documents = AsyncMock(side_effect=ConnectionError("rate limited"))
    result = await worker.process_file_ingestion_job(job_data())
    assert result.success is False
    assert result.retryable is True


@pytest.mark.asyncio
async def test_mutex_timeout(worker, mutex, embeddings):
    mutex.acquire_user_mutex = AsyncMock(side_effect=TimeoutError("busy"))
    result = await worker.process_file_ingestion_job(job_data())
    assert result.success is False
    assert result.retryable is True
    embeddings.embed_documents.assert_not_called()


@pytest.mark.asyncio
async def test_without_storage(worker, vector_store, embeddings):
    options = FileProcessingOptions(generate_embeddings=False, store_in_vector_db=False)
    result = await worker.process_file_ingestion_job(job_data(options=options))
    assert result.success is True
    assert result.result.embeddings_count == 0
    embeddings.embed_documents.assert_not_called()
    vector_store.upsert.assert_not_called()


@pytest.mark.asyncio
async def test_chunk_options_override(worker, vector_store):
    options = FileProcessingOptions(chunk_size=2, overlap=0, strategy="whitespace")
    result = await worker.process_file_ingestion_job(job_data(b"one two three four five", options=options))
    assert result.result.chunks_count == 3


@pytest.mark.asyncio
async def test_chunks_are_capped(worker, embeddings):
    worker.max_agent_size = worker.max_process_size = 10**6
    content = " ".join(["word"] * (MAX_CHUNKS + 50)).encode()
    options = FileProcessingOptions(chunk_size=1, overlap=0, strategy="whitespace")
    result = await worker.process_file_ingestion_job(job_data(content, options=options))
    assert result.result.chunks_count == MAX_CHUNKS
    assert len(embeddings.embed_documents.call_args.args[0]) == MAX_CHUNKS
