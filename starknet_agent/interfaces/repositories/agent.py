from abc import ABC, abstractmethod
from typing import List, Optional

from starknet_agent.domains.records import (
    AgentConfigRecord,
    ConversationRecord,
    MessageRecord,
)


class AgentRepository(ABC):
    """Interface for agent, conversation and message data access."""

    @abstractmethod
    def save_agent(self, agent: AgentConfigRecord) -> bool:
        """Insert or update an agent record."""
        pass

    @abstractmethod
    def get_agent(self, agent_id: str) -> Optional[AgentConfigRecord]:
        """Get an agent by id."""
        pass

    @abstractmethod
    def get_agents_for_user(self, user_id: str) -> List[AgentConfigRecord]:
        """Get all agents owned by a user."""
        pass

    @abstractmethod
    def get_all_agents(self) -> List[AgentConfigRecord]:
        """Get every stored agent."""
        pass

    @abstractmethod
    def find_names_like(self, user_id: str, base_name: str) -> List[str]:
        """Get a user's agent names equal to ``base_name`` or suffixed from it."""
        pass

    @abstractmethod
    def delete_agent(self, agent_id: str) -> bool:
        """Delete an agent with its conversations and messages."""
        pass

    @abstractmethod
    def count_agents(self) -> int:
        pass

    @abstractmethod
    def count_agents_for_user(self, user_id: str) -> int:
        pass

    @abstractmethod
    def create_conversation(self, agent_id: str, conversation_name: str) -> ConversationRecord:
        """Create a conversation for an agent."""
        pass

    @abstractmethod
    def get_conversation(self, agent_id: str, conversation_name: str) -> Optional[ConversationRecord]:
        pass

    @abstractmethod
    def get_conversations(self, agent_id: str) -> List[ConversationRecord]:
        pass

    @abstractmethod
    def delete_conversation(self, conversation_id: str) -> bool:
        pass

    @abstractmethod
    def add_message(self, message: MessageRecord) -> str:
        pass

    @abstractmethod
    def get_messages(self, conversation_id: str, limit: int = 0) -> List[MessageRecord]:
        """Get the most recent messages of a conversation, oldest first."""
        pass
