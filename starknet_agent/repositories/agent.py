"""
MongoDB implementation of the agent repository.
"""
import logging
import re
import uuid
from typing import List, Optional

from pymongo.errors import DuplicateKeyError

from starknet_agent.domains.records import (
    AgentConfigRecord,
    ConversationRecord,
    MessageRecord,
)
from starknet_agent.interfaces.repositories.agent import AgentRepository

logger = logging.getLogger(__name__)


class MongoAgentRepository(AgentRepository):
    """MongoDB implementation of the AgentRepository interface."""

    def __init__(self, db_adapter):
        """Initialize the repository with a database adapter."""
        self.db = db_adapter
        self.agents_collection = "agents"
        self.conversations_collection = "conversations"
        self.messages_collection = "messages"

        # Ensure collections exist
        for collection in (
            self.agents_collection,
            self.conversations_collection,
            self.messages_collection,
        ):
            self.db.create_collection(collection)

        # Create indexes
        self.db.create_index(self.agents_collection, [("id", 1)], unique=True)
        self.db.create_index(
            self.agents_collection, [("user_id", 1), ("name", 1)], unique=True
        )
        self.db.create_index(
            self.conversations_collection,
            [("agent_id", 1), ("conversation_name", 1)],
            unique=True,
        )
        self.db.create_index(
            self.messages_collection, [("conversation_id", 1), ("created_at", -1)]
        )

    # Agents

    def save_agent(self, agent: AgentConfigRecord) -> bool:
        """Save an agent, replacing any record with the same id."""
        doc = agent.model_dump()
        existing = self.db.find_one(self.agents_collection, {"id": agent.id})
        if existing:
            return self.db.update_one(
                self.agents_collection, {"id": agent.id}, {"$set": doc}
            )
        self.db.insert_one(self.agents_collection, doc)
        return True

    def get_agent(self, agent_id: str) -> Optional[AgentConfigRecord]:
        doc = self.db.find_one(self.agents_collection, {"id": agent_id})
        if not doc:
            return None
        return AgentConfigRecord.model_validate(doc)

    def _parse_agents(self, docs) -> List[AgentConfigRecord]:
        agents = []
        for doc in docs:
            try:
                agents.append(AgentConfigRecord.model_validate(doc))
            except Exception as e:
                # Log the error but continue processing other agents
                logger.error(f"Error parsing agent from database: {e}")
        return agents

    def get_agents_for_user(self, user_id: str) -> List[AgentConfigRecord]:
        docs = self.db.find(
            self.agents_collection, {"user_id": user_id}, sort=[("created_at", 1)]
        )
        return self._parse_agents(docs)

    def get_all_agents(self) -> List[AgentConfigRecord]:
        """Get every stored agent.

        Returns:
            List of all agents, oldest first
        """
        docs = self.db.find(self.agents_collection, {}, sort=[("created_at", 1)])
        return self._parse_agents(docs)

    def find_names_like(self, user_id: str, base_name: str) -> List[str]:
        pattern = f"^{re.escape(base_name)}(-\\d+)?$"
        docs = self.db.find(
            self.agents_collection,
            {"user_id": user_id, "name": {"$regex": pattern}},
        )
        return [doc["name"] for doc in docs]

    def delete_agent(self, agent_id: str) -> bool:
        """Delete an agent together with its conversations and their messages."""
        conversations = self.db.find(
            self.conversations_collection, {"agent_id": agent_id}
        )
        conversation_ids = [c["conversation_id"] for c in conversations]
        if conversation_ids:
            self.db.delete_all(
                self.messages_collection,
                {"conversation_id": {"$in": conversation_ids}},
            )
            self.db.delete_all(self.conversations_collection, {"agent_id": agent_id})
        return self.db.delete_one(self.agents_collection, {"id": agent_id})

    def count_agents(self) -> int:
        return self.db.count_documents(self.agents_collection, {})

    def count_agents_for_user(self, user_id: str) -> int:
        return self.db.count_documents(self.agents_collection, {"user_id": user_id})

    # Conversations

    def create_conversation(
        self, agent_id: str, conversation_name: str
    ) -> ConversationRecord:
        """Create a conversation.

        Raises:
            ValueError: If the agent already has a conversation with this name
        """
        conversation = ConversationRecord(
            conversation_id=str(uuid.uuid4()),
            agent_id=agent_id,
            conversation_name=conversation_name,
        )
        try:
            self.db.insert_one(self.conversations_collection, conversation.model_dump())
        except DuplicateKeyError:
            raise ValueError(
                f"Conversation '{conversation_name}' already exists for agent {agent_id}"
            )
        return conversation

    def get_conversation(
        self, agent_id: str, conversation_name: str
    ) -> Optional[ConversationRecord]:
        doc = self.db.find_one(
            self.conversations_collection,
            {"agent_id": agent_id, "conversation_name": conversation_name},
        )
        if not doc:
            return None
        return ConversationRecord.model_validate(doc)

    def get_conversations(self, agent_id: str) -> List[ConversationRecord]:
        docs = self.db.find(
            self.conversations_collection,
            {"agent_id": agent_id},
            sort=[("created_at", 1)],
        )
        return [ConversationRecord.model_validate(doc) for doc in docs]

    def delete_conversation(self, conversation_id: str) -> bool:
        self.db.delete_all(
            self.messages_collection, {"conversation_id": conversation_id}
        )
        return self.db.delete_one(
            self.conversations_collection, {"conversation_id": conversation_id}
        )

    # Messages

    def add_message(self, message: MessageRecord) -> str:
        doc = message.model_dump()
        doc["sender_type"] = message.sender_type.value
        self.db.insert_one(self.messages_collection, doc)
        return message.message_id

    def get_messages(self, conversation_id: str, limit: int = 0) -> List[MessageRecord]:
        """Get the most recent ``limit`` messages (all when 0), oldest first."""
        docs = self.db.find(
            self.messages_collection,
            {"conversation_id": conversation_id},
            sort=[("created_at", -1)],
            limit=limit,
        )
        return [MessageRecord.model_validate(doc) for doc in reversed(docs)]
