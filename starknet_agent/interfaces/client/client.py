from abc import ABC, abstractmethod
from typing import Any, AsyncGenerator, Dict, List, Optional

from starknet_agent.domains.jobs import JobRetrievalResult
from starknet_agent.interfaces.plugins.plugins import Tool
from starknet_agent.services.agent_storage import AgentStorage


class StarknetAgent(ABC):
    """Library entry point: one configured agent with its documents and jobs."""

    @abstractmethod
    async def process(
        self, user_id: str, message: str, prompt: Optional[str] = None
    ) -> AsyncGenerator[str, None]:
        """Stream the agent's reply to ``message``."""
        pass

    @abstractmethod
    async def run_autonomous(self, max_cycles: Optional[int] = None) -> List[str]:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass

    @abstractmethod
    async def ingest_file(
        self,
        user_id: str,
        file_name: str,
        content: bytes,
        mime_type: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Queue ``content`` for ingestion; returns the job id."""
        pass

    @abstractmethod
    async def get_job_result(
        self, job_id: str, user_id: str, strict: bool = False
    ) -> JobRetrievalResult:
        """Look up a job for its owner.

        With ``strict`` a missing job or a foreign owner raises instead of
        returning a failed result.
        """
        pass

    @abstractmethod
    def list_documents(self, user_id: str) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def get_document(self, user_id: str, document_id: str) -> List[Dict[str, Any]]:
        """Chunks of one document, in order."""
        pass

    @abstractmethod
    async def delete_document(self, user_id: str, document_id: str) -> int:
        """Delete a document's chunks and vectors; returns the chunk count."""
        pass

    @abstractmethod
    def register_tool(self, tool: Tool) -> bool:
        pass

    @abstractmethod
    def get_agent_storage(self) -> AgentStorage:
        """User-defined agents kept alongside the configured one."""
        pass

    @abstractmethod
    def get_token_usage(self) -> Dict[str, int]:
        pass

    @abstractmethod
    async def close(self) -> None:
        """Stop workers and release storage connections."""
        pass
