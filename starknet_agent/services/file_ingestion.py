"""
File ingestion worker service.

Runs one ingestion job end to end while holding the uploading user's lock:
storage limits, validation, text extraction, chunking, embedding and
storage in the vector store.
"""
import base64
import logging
import time
from typing import Any, Dict, List, Optional

from starknet_agent.domains.errors import (
    FileValidationError,
    IngestionError,
    StorageLimitError,
)
from starknet_agent.domains.ingestion import (
    Chunk,
    FileIngestionJobData,
    FileIngestionJobResult,
    FileProcessingResult,
    VectorStoreEntry,
)
from starknet_agent.services.chunking import (
    MAX_CHUNKS,
    ChunkingService,
    compute_chunk_params,
    determine_strategy,
)
from starknet_agent.services.embeddings import EmbeddingsService
from starknet_agent.services.file_validation import FileValidationService
from starknet_agent.services.mutex import RedisMutexService
from starknet_agent.services.text_extraction import extract_raw_text
from starknet_agent.services.vector_store import VectorStoreService

logger = logging.getLogger(__name__)

MUTEX_TIMEOUT_MS = 5 * 60 * 1000
MUTEX_RETRY_DELAY_MS = 100
MUTEX_MAX_RETRIES = 50

DEFAULT_MAX_AGENT_SIZE = 10 * 1024 * 1024
DEFAULT_MAX_PROCESS_SIZE = 50 * 1024 * 1024


def is_retryable_error(error: BaseException) -> bool:
    if isinstance(error, IngestionError):
        return error.retryable
    if isinstance(error, PermissionError):
        return False
    if "storage limit exceeded" in str(error):
        return False
    return True


def decode_content(data: FileIngestionJobData) -> bytes:
    if isinstance(data.content, bytes):
        return data.content
    if data.options.content_encoding == "base64":
        return base64.b64decode(data.content)
    return data.content.encode("utf-8")


class FileIngestionWorkerService:
    """Processes file ingestion jobs."""

    def __init__(
        self,
        chunking_service: ChunkingService,
        embeddings_service: EmbeddingsService,
        vector_store: VectorStoreService,
        file_validation_service: FileValidationService,
        mutex_service: RedisMutexService,
        rag_config: Optional[Dict[str, Any]] = None,
    ):
        self.chunking = chunking_service
        self.embeddings = embeddings_service
        self.vector_store = vector_store
        self.validation = file_validation_service
        self.mutex = mutex_service

        rag_config = rag_config or {}
        self.max_agent_size = int(rag_config.get("max_agent_size", DEFAULT_MAX_AGENT_SIZE))
        self.max_process_size = int(
            rag_config.get("max_process_size", DEFAULT_MAX_PROCESS_SIZE)
        )

    def check_storage_limits(self, agent_id: str, user_id: str, file_size: int) -> None:
        """Raise StorageLimitError if the file would exceed a storage quota."""
        agent_size = self.vector_store.total_size_for_agent(agent_id)
        total_size = self.vector_store.total_size_for_user(user_id)

        if agent_size + file_size > self.max_agent_size:
            logger.error(
                f"Agent storage limit exceeded: {agent_size + file_size} > {self.max_agent_size}"
            )
            raise StorageLimitError("Agent rag storage limit exceeded")

        if total_size + file_size > self.max_process_size:
            logger.error(
                f"Process storage limit exceeded: {total_size + file_size} > {self.max_process_size}"
            )
            raise StorageLimitError("Process rag storage limit exceeded")

    async def process_file_ingestion_job(
        self, job_data: FileIngestionJobData
    ) -> FileIngestionJobResult:
        """Ingest a file for an agent.

        Args:
            job_data: File content and ownership of the job

        Returns:
            FileIngestionJobResult; errors are reported with a retryable flag
        """
        start = time.monotonic()
        logger.info(
            f"Processing file ingestion for agent {job_data.agent_id}, file: {job_data.original_name}"
        )

        release = None
        try:
            release = await self.mutex.acquire_user_mutex(
                job_data.user_id,
                timeout_ms=MUTEX_TIMEOUT_MS,
                retry_delay_ms=MUTEX_RETRY_DELAY_MS,
                max_retries=MUTEX_MAX_RETRIES,
            )
            self.check_storage_limits(job_data.agent_id, job_data.user_id, job_data.size)

            content = decode_content(job_data)
            validation = self.validation.validate_file(
                content, job_data.original_name, job_data.mime_type
            )
            if not validation.is_valid:
                logger.error(
                    f"File validation failed for {job_data.original_name}: {validation.error} "
                    f"(detected={validation.detected_mime_type}, declared={validation.declared_mime_type})"
                )
                raise FileValidationError(validation.error or "File validation failed")
            mime_type = validation.validated_mime_type

            text = extract_raw_text(content, mime_type)

            chunk_size, overlap = compute_chunk_params(job_data.size)
            options = job_data.options
            chunks = self.chunking.chunk_text(
                job_data.document_id,
                text,
                chunk_size=options.chunk_size or chunk_size,
                overlap=options.overlap if options.overlap is not None else overlap,
                strategy=options.strategy or determine_strategy(mime_type),
            )
            if len(chunks) > MAX_CHUNKS:
                logger.warning(
                    f"File {job_data.original_name} had {len(chunks)} chunks, limited to {MAX_CHUNKS}"
                )
                chunks = chunks[:MAX_CHUNKS]

            embeddings: List[List[float]] = []
            if chunks and (options.generate_embeddings or options.store_in_vector_db):
                embeddings = await self.embeddings.embed_documents([c.text for c in chunks])
            if embeddings and len(embeddings) != len(chunks):
                raise IngestionError(
                    f"Embeddings/chunks mismatch: {len(embeddings)} vs {len(chunks)}"
                )

            if options.store_in_vector_db and chunks:
                if not embeddings:
                    raise IngestionError(
                        "store_in_vector_db requires embeddings, but none were generated"
                    )
                await self._store_chunks(job_data, chunks, embeddings, mime_type)

            processing_time = time.monotonic() - start
            logger.info(
                f"File ingestion completed for {job_data.original_name} in {processing_time:.2f}s"
            )
            return FileIngestionJobResult(
                success=True,
                result=FileProcessingResult(
                    document_id=job_data.document_id,
                    original_name=job_data.original_name,
                    mime_type=mime_type,
                    size=job_data.size,
                    chunks_count=len(chunks),
                    embeddings_count=len(embeddings),
                    processing_time=processing_time,
                    agent_id=job_data.agent_id,
                    user_id=job_data.user_id,
                ),
                retryable=False,
            )
        except Exception as e:
            logger.error(f"File ingestion failed for {job_data.original_name}: {e}")
            return FileIngestionJobResult(
                success=False, error=str(e) or type(e).__name__, retryable=is_retryable_error(e)
            )
        finally:
            if release:
                try:
                    await release()
                except Exception as e:
                    logger.error(f"Error releasing mutex: {e}")

    async def _store_chunks(
        self,
        job_data: FileIngestionJobData,
        chunks: List[Chunk],
        embeddings: List[List[float]],
        mime_type: str,
    ) -> None:
        entries = [
            VectorStoreEntry(
                id=chunk.id,
                vector=vector,
                content=chunk.text,
                metadata={
                    "document_id": job_data.document_id,
                    "chunk_index": chunk.metadata.chunk_index,
                    "original_name": job_data.original_name,
                    "mime_type": mime_type,
                    "file_size": job_data.size,
                },
            )
            for chunk, vector in zip(chunks, embeddings)
        ]
        try:
            await self.vector_store.upsert(job_data.agent_id, entries, job_data.user_id)
        except Exception as e:
            logger.error(f"Failed to store chunks in vector DB: {e}")
            raise
