"""
Persisted record shapes for agents, conversations and messages.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class SenderType(str, Enum):
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class DatabaseCredentials(BaseModel):
    """Connection settings for the backing database."""

    connection_string: str = Field(..., description="MongoDB connection string")
    database: str = Field(..., description="Database name")

    @field_validator("connection_string", "database")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field cannot be empty")
        return v


class AgentConfigRecord(BaseModel):
    """A stored agent configuration owned by a user."""

    id: str = Field(..., description="Agent identifier")
    user_id: str = Field(..., description="Owner of the agent")
    name: str = Field(..., description="Unique agent name")
    config: Dict[str, Any] = Field(..., description="Raw agent JSON configuration")
    created_at: datetime = Field(default_factory=_utcnow)


class ConversationRecord(BaseModel):
    conversation_id: str
    agent_id: str
    conversation_name: str
    status: str = "active"
    created_at: datetime = Field(default_factory=_utcnow)


class MessageRecord(BaseModel):
    message_id: str
    conversation_id: str
    content: str
    sender_type: SenderType
    status: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
