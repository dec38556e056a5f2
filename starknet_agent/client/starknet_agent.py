"""
Simplified client interface for interacting with the Starknet Agent system.

This module provides a clean API for end users to run an agent and feed it
documents without dealing with internal implementation details.
"""

import importlib.util
import json
import logging
from typing import Any, AsyncGenerator, Dict, List, Optional

from starknet_agent.domains.errors import (
    JobAccessDeniedError,
    JobFailedError,
    JobNotCompletedError,
    JobNotFoundError,
    UnknownJobStatusError,
)
from starknet_agent.domains.ingestion import FileProcessingOptions
from starknet_agent.domains.jobs import JobRetrievalResult, ResultStatus
from starknet_agent.factories.agent_factory import StarknetAgentFactory
from starknet_agent.interfaces.client.client import StarknetAgent as StarknetAgentInterface
from starknet_agent.interfaces.plugins.plugins import Tool
from starknet_agent.services.file_validation import infer_mime_type_from_extension
from starknet_agent.services.agent_storage import AgentStorage
from starknet_agent.services.worker_manager import WorkerManager

logger = logging.getLogger(__name__)


def load_config(config_path: str) -> Dict[str, Any]:
    """Load configuration from a JSON file or a Python file defining ``config``."""
    with open(config_path, "r") as f:
        if config_path.endswith(".json"):
            return json.load(f)

    # Assume it's a Python file
    spec = importlib.util.spec_from_file_location("config", config_path)
    config_module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(config_module)
    return config_module.config


class StarknetAgent(StarknetAgentInterface):
    """Simplified client interface for interacting with the agent system."""

    def __init__(self, config_path: str = None, config: Dict[str, Any] = None):
        """Initialize the agent system from config file or dictionary.

        Args:
            config_path: Path to configuration file (JSON or Python)
            config: Configuration dictionary
        """
        if not config and not config_path:
            raise ValueError("Either config or config_path must be provided")

        if config_path:
            config = load_config(config_path)

        self.config = config
        self.llm_provider = StarknetAgentFactory.create_llm_provider(config)
        self.db_adapter = StarknetAgentFactory.create_db_adapter(config)
        self.vector_store = None
        if config.get("pinecone") and self.db_adapter:
            self.vector_store = StarknetAgentFactory.create_vector_store(
                config, self.db_adapter
            )

        self.agent_service = StarknetAgentFactory.create_from_config(
            config,
            llm_provider=self.llm_provider,
            vector_store=self.vector_store,
            db_adapter=self.db_adapter,
        )
        self.worker_manager: Optional[WorkerManager] = None
        self.agent_storage: Optional[AgentStorage] = None

    @property
    def agent_id(self) -> str:
        return self.agent_service.get_agent_id()

    async def process(
        self, user_id: str, message: str, prompt: Optional[str] = None
    ) -> AsyncGenerator[str, None]:
        """Process a user message and stream the response.

        Args:
            user_id: User ID
            message: Text message
            prompt: Optional additional prompt for this request

        Returns:
            Async generator yielding response text chunks
        """
        async for chunk in self.agent_service.process(
            user_id=user_id, message=message, prompt=prompt
        ):
            yield chunk

    async def run_autonomous(self, max_cycles: Optional[int] = None) -> List[str]:
        return await self.agent_service.run_autonomous(max_cycles=max_cycles)

    def stop(self) -> None:
        self.agent_service.stop()

    def _require_vector_store(self) -> None:
        if self.vector_store is None:
            raise ValueError(
                "Document storage requires 'pinecone' and 'mongo' configuration."
            )

    async def start_workers(self) -> WorkerManager:
        """Create (once) and start the file ingestion workers."""
        self._require_vector_store()
        if self.worker_manager is None:
            self.worker_manager = StarknetAgentFactory.create_worker_manager(
                self.config,
                llm_provider=self.llm_provider,
                vector_store=self.vector_store,
                db_adapter=self.db_adapter,
            )
        await self.worker_manager.start()
        return self.worker_manager

    def get_agent_storage(self) -> AgentStorage:
        """Return the user-defined agents stored in MongoDB, loading them on first use."""
        if self.agent_storage is None:
            if self.db_adapter is None:
                raise ValueError("Agent storage requires 'mongo' configuration.")
            storage = StarknetAgentFactory.create_agent_storage(
                self.config,
                llm_provider=self.llm_provider,
                vector_store=self.vector_store,
                db_adapter=self.db_adapter,
            )
            storage.initialize()
            self.agent_storage = storage
        return self.agent_storage

    async def stop_workers(self) -> None:
        if self.worker_manager is not None:
            await self.worker_manager.close()
            self.worker_manager = None

    async def wait_for_jobs(self) -> None:
        """Wait for every queued ingestion job to finish.

        Workers run inside this process, so call this before closing when
        jobs were queued without waiting on their results.
        """
        if self.worker_manager is not None:
            await self.worker_manager.drain()

    async def close(self) -> None:
        """Stop the workers and release the vector store connection."""
        await self.stop_workers()
        if self.agent_storage is not None:
            self.agent_storage.stop_all()
        if self.vector_store is not None:
            await self.vector_store.close()

    async def ingest_file(
        self,
        user_id: str,
        file_name: str,
        content: bytes,
        mime_type: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Queue a file for ingestion into the agent's document store.

        Args:
            user_id: Owner of the file
            file_name: Original file name
            content: Raw file bytes
            mime_type: Declared MIME type; inferred from the extension when omitted
            options: Chunking and storage options

        Returns:
            The ingestion job id
        """
        if self.worker_manager is None or not self.worker_manager.is_active():
            await self.start_workers()

        mime_type = mime_type or infer_mime_type_from_extension(file_name)
        return await self.worker_manager.enqueue_file_ingestion(
            agent_id=self.agent_id,
            user_id=user_id,
            original_name=file_name,
            mime_type=mime_type,
            content=content,
            options=FileProcessingOptions(**(options or {})),
        )

    async def get_job_result(
        self, job_id: str, user_id: str, strict: bool = False
    ) -> JobRetrievalResult:
        """Look up an ingestion job's result.

        With ``strict`` any outcome other than a completed job raises the
        matching job error instead of being returned.
        """
        if self.worker_manager is None:
            raise RuntimeError("Workers are not running. Call start_workers() first.")

        jobs = self.worker_manager.jobs_metadata
        result = await jobs.get_job_retrieval_result(job_id, user_id)
        if not strict or result.status == ResultStatus.COMPLETED:
            return result

        if result.status == ResultStatus.NOT_FOUND:
            job = jobs.get_job_metadata(job_id)
            if job and job.user_id != user_id:
                raise JobAccessDeniedError(job_id, user_id)
            raise JobNotFoundError(job_id)
        if result.status == ResultStatus.PROCESSING:
            raise JobNotCompletedError(job_id, result.status.value)
        if result.status == ResultStatus.FAILED:
            raise JobFailedError(job_id, result.error)
        raise UnknownJobStatusError(job_id, str(result.status))

    def list_documents(self, user_id: str) -> List[Dict[str, Any]]:
        self._require_vector_store()
        return self.vector_store.list_documents(self.agent_id, user_id)

    def get_document(self, user_id: str, document_id: str) -> List[Dict[str, Any]]:
        self._require_vector_store()
        return self.vector_store.get_document(self.agent_id, document_id, user_id)

    async def delete_document(self, user_id: str, document_id: str) -> int:
        self._require_vector_store()
        return await self.vector_store.delete_document(
            self.agent_id, document_id, user_id
        )

    def get_token_usage(self) -> Dict[str, int]:
        return self.agent_service.token_tracker.get_session_token_usage()

    def register_tool(self, tool: Tool) -> bool:
        """
        Register a tool and give this agent access to it.

        Args:
            tool: Tool instance to register

        Returns:
            True if successful, False
        """
        registry = self.agent_service.tool_registry
        success = registry.register_tool(tool)
        if success:
            registry.assign_tool_to_agent(self.agent_service.name, tool.name)
        return success
