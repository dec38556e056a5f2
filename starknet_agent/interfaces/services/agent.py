from abc import ABC, abstractmethod
from typing import Any, AsyncGenerator, Dict, List, Optional

from starknet_agent.domains.agent import AgentConfig


class StarknetAgentInterface(ABC):
    """Interface tools use to reach the agent they act for."""

    @abstractmethod
    def get_account_credentials(self) -> Dict[str, str]:
        """Return the account address and private key."""
        pass

    @abstractmethod
    def get_model_credentials(self) -> Dict[str, Optional[str]]:
        """Return the model provider settings."""
        pass

    @abstractmethod
    def get_provider(self) -> str:
        """Return the Starknet RPC URL."""
        pass

    @abstractmethod
    def get_agent_config(self) -> AgentConfig:
        """Return the agent configuration."""
        pass

    @abstractmethod
    def get_agent_id(self) -> str:
        """Return the identifier that scopes the agent's stored documents."""
        pass


class AgentService(StarknetAgentInterface):
    """Interface for agent execution."""

    @abstractmethod
    def get_system_prompt(self) -> str:
        """Get the system prompt for the agent."""
        pass

    @abstractmethod
    def get_tools(self) -> List[Dict[str, Any]]:
        """Get the function schemas of the agent's tools."""
        pass

    @abstractmethod
    async def execute_tool(
        self, tool_name: str, parameters: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Execute a tool on behalf of the agent."""
        pass

    @abstractmethod
    async def process(
        self, user_id: str, message: str, prompt: Optional[str] = None
    ) -> AsyncGenerator[str, None]:
        """Process a user message and stream the response text."""
        pass

    @abstractmethod
    async def run_autonomous(self, max_cycles: Optional[int] = None) -> List[str]:
        """Run the agent toward its objectives without user input."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop a running autonomous loop."""
        pass
